"""
Linear algebra kernels for pycure.

All functions follow these conventions:
    - CPU functions use NumPy/SciPy (LAPACK under the hood)
    - Each operation returns a structured result dataclass
    - Errors are raised immediately with clear messages
"""

from pycure.core.compute.linalg.qr import (
    QRResult,
    qr_cpu,
    qr_solve_cpu,
)

__all__ = [
    "QRResult",
    "qr_cpu",
    "qr_solve_cpu",
]
