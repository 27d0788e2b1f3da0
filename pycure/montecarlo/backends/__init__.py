"""Bootstrap backends."""

from pycure.montecarlo.backends.cpu import (
    CPUStratifiedBootstrapBackend,
    replicate_streams,
    stratified_indices,
)

__all__ = [
    "CPUStratifiedBootstrapBackend",
    "replicate_streams",
    "stratified_indices",
]
