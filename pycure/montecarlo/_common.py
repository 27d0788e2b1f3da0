"""
Common data structures for the cure-model bootstrap.

Each replicate ends as exactly one ReplicateSuccess or ReplicateFailure;
BootstrapParams is the payload wrapped by Result[BootstrapParams].
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, TYPE_CHECKING

import numpy as np
from numpy.typing import NDArray

if TYPE_CHECKING:
    from pycure.cure._common import RawFit


@dataclass(frozen=True)
class ReplicateSuccess:
    """A replicate whose refit converged. index runs 1..nboot."""
    index: int
    fit: 'RawFit'

    @property
    def converged(self) -> bool:
        return True


@dataclass(frozen=True)
class ReplicateFailure:
    """A replicate whose refit raised or did not converge."""
    index: int
    reason: str

    @property
    def converged(self) -> bool:
        return False


@dataclass(frozen=True)
class BootstrapStatistics:
    """
    Per-coefficient resampling statistics for one sub-model.

    - variance: sample variance (ddof=1) over converged replicates
    - std_error: sqrt(variance)
    - statistic: estimate / std_error
    - p_value: 2 * min(Phi(z), 1 - Phi(z))
    - n_converged: replicates contributing a finite value

    All fields except n_converged are NaN where fewer than two replicates
    contributed.
    """
    names: tuple[str, ...]
    estimate: NDArray[np.floating[Any]]
    variance: NDArray[np.floating[Any]]
    std_error: NDArray[np.floating[Any]]
    statistic: NDArray[np.floating[Any]]
    p_value: NDArray[np.floating[Any]]
    n_converged: NDArray[np.integer[Any]]


@dataclass(frozen=True)
class BootstrapParams:
    """
    Parameter payload for a stratified bootstrap run.

    survival and cure statistics follow the rebuilt formulas' term order;
    the cure statistics lead with the intercept.
    """
    replicates: tuple[ReplicateSuccess | ReplicateFailure, ...]
    survival: BootstrapStatistics
    cure: BootstrapStatistics
    n_bootstrap: int
    n_failed: int

    @property
    def n_converged(self) -> int:
        return self.n_bootstrap - self.n_failed
