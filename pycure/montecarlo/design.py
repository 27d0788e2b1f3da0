"""
Design class for the stratified cure-model bootstrap.

BootstrapDesign encapsulates all inputs the backend needs to resample
the combined dataset and refit the model. Immutable, validated at
construction.
"""

from __future__ import annotations

import multiprocessing
from dataclasses import dataclass
from typing import TYPE_CHECKING

import numpy as np
from numpy.typing import NDArray

from pycure.core.exceptions import ValidationError
from pycure.core.validation import check_non_negative_int, check_positive

if TYPE_CHECKING:
    from pycure.cure._common import RawFit
    from pycure.cure.design import CombinedDataset
    from pycure.formula.spec import FormulaSpec


DEFAULT_N_JOBS = 4


@dataclass(frozen=True)
class BootstrapDesign:
    """
    Frozen design for stratified bootstrap resampling.

    Attributes:
        dataset: Complete-case combined dataset that replicates draw from.
        survival_formula: Rebuilt survival formula passed to every refit.
        cure_formula: Rebuilt cure formula passed to every refit.
        point_fit: Fit on the full data; variance is reported around it.
        strata: Boolean event indicator per row (True = event).
        n_bootstrap: Number of replicates.
        tolerance: Convergence tolerance handed to the engine.
        seed: Root of the per-replicate SeedSequence, or None for fresh
            entropy.
        n_jobs: Worker threads.
        n_dropped: Incomplete rows removed before stratification.
    """
    dataset: 'CombinedDataset'
    survival_formula: 'FormulaSpec'
    cure_formula: 'FormulaSpec'
    point_fit: 'RawFit'
    strata: NDArray[np.bool_]
    n_bootstrap: int
    tolerance: float
    seed: int | None
    n_jobs: int
    n_dropped: int

    @property
    def n_events(self) -> int:
        return int(self.strata.sum())

    @property
    def n_censored(self) -> int:
        return int(len(self.strata) - self.strata.sum())

    @classmethod
    def for_cure_bootstrap(
        cls,
        dataset: 'CombinedDataset',
        point_fit: 'RawFit',
        n_bootstrap: int,
        *,
        tolerance: float,
        seed: int | None = None,
        n_jobs: int | None = None,
    ) -> BootstrapDesign:
        """
        Create a bootstrap design with validation.

        Args:
            dataset: Combined dataset produced by merge_design_matrices().
            point_fit: Point estimate computed before any replicate runs.
            n_bootstrap: Number of replicates. Must be >= 0.
            tolerance: Engine convergence tolerance. Must be > 0.
            seed: Random seed.
            n_jobs: Worker threads. Defaults to min(cpu_count, 4).

        Returns:
            Validated BootstrapDesign.

        Raises:
            ValidationError: If inputs are invalid.
        """
        n_bootstrap = check_non_negative_int(n_bootstrap, 'n_bootstrap')
        tolerance = check_positive(tolerance, 'tolerance')

        if seed is not None:
            seed = check_non_negative_int(seed, 'seed')

        if n_jobs is None:
            n_jobs = min(multiprocessing.cpu_count(), DEFAULT_N_JOBS)
        elif check_non_negative_int(n_jobs, 'n_jobs') < 1:
            raise ValidationError(f"n_jobs: must be >= 1, got {n_jobs}")

        complete, n_dropped = dataset.complete_cases()
        strata = complete.status == 1.0
        strata.setflags(write=False)

        return cls(
            dataset=complete,
            survival_formula=dataset.survival_formula,
            cure_formula=dataset.cure_formula,
            point_fit=point_fit,
            strata=strata,
            n_bootstrap=n_bootstrap,
            tolerance=tolerance,
            seed=seed,
            n_jobs=int(n_jobs),
            n_dropped=n_dropped,
        )
