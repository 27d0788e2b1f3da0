"""
Stratified bootstrap inference for mixture cure models.

Public API:
    BootstrapDesign.for_cure_bootstrap(dataset, point_fit, n_bootstrap, ...)
    CPUStratifiedBootstrapBackend(engine).solve(design) -> Result[BootstrapParams]
    stratified_indices(strata, rng) -> row indices of one replicate
"""

from pycure.montecarlo._aggregate import (
    replicate_statistics,
    two_sided_p_value,
    undefined_statistics,
)
from pycure.montecarlo._common import (
    BootstrapParams,
    BootstrapStatistics,
    ReplicateFailure,
    ReplicateSuccess,
)
from pycure.montecarlo.backends.cpu import (
    CPUStratifiedBootstrapBackend,
    replicate_streams,
    stratified_indices,
)
from pycure.montecarlo.design import BootstrapDesign

__all__ = [
    "BootstrapDesign",
    "BootstrapParams",
    "BootstrapStatistics",
    "ReplicateSuccess",
    "ReplicateFailure",
    "CPUStratifiedBootstrapBackend",
    "stratified_indices",
    "replicate_streams",
    "replicate_statistics",
    "undefined_statistics",
    "two_sided_p_value",
]
