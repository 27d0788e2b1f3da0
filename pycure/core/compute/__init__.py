"""
Shared compute infrastructure for pycure.

IMPORTANT: This is NOT where domain-specific kernels live. Those go in
{domain}/. This module contains shared NUMERIC infrastructure.

Submodules:
    timing: Execution timing utilities
    linalg: Linear algebra kernels (QR)
"""

from pycure.core.compute.timing import Timer

__all__ = [
    "Timer",
]
