"""
CPU backend for the stratified cure-model bootstrap.

CPUStratifiedBootstrapBackend resamples events and censored rows
separately, refits the model on every replicate through a FitEngine, and
summarizes the converged replicates.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor

import numpy as np
from numpy.typing import NDArray

from pycure.core.compute.timing import Timer
from pycure.core.exceptions import PyCureError
from pycure.core.protocols import FitEngine
from pycure.core.result import Result
from pycure.montecarlo._aggregate import replicate_statistics, undefined_statistics
from pycure.montecarlo._common import (
    BootstrapParams,
    ReplicateFailure,
    ReplicateSuccess,
)
from pycure.montecarlo.design import BootstrapDesign


# Failures a replicate refit may raise; anything else is a bug and propagates
REPLICATE_ERRORS = (PyCureError, np.linalg.LinAlgError, ArithmeticError, ValueError)


def stratified_indices(strata: NDArray, rng: np.random.Generator) -> NDArray:
    """
    Sample with replacement within each stratum.

    Position i of the result is drawn from the stratum of row i, so every
    stratum keeps its size exactly.
    """
    n = len(strata)
    indices = np.empty(n, dtype=np.intp)
    for s in np.unique(strata):
        mask = strata == s
        s_indices = np.flatnonzero(mask)
        indices[mask] = rng.choice(s_indices, size=len(s_indices), replace=True)
    return indices


def replicate_streams(seed: int | None, n_bootstrap: int) -> list[np.random.SeedSequence]:
    """One independent SeedSequence child per replicate index."""
    return np.random.SeedSequence(seed).spawn(n_bootstrap)


class CPUStratifiedBootstrapBackend:
    """
    CPU backend for stratified bootstrap refits.

    Replicates run on a thread pool; each draws its rows from its own
    random stream so results do not depend on n_jobs or scheduling.
    """

    def __init__(self, engine: FitEngine):
        self._engine = engine

    @property
    def name(self) -> str:
        return 'cpu_stratified_bootstrap'

    def solve(self, design: BootstrapDesign) -> Result[BootstrapParams]:
        """Run the bootstrap and return Result[BootstrapParams]."""
        timer = Timer()
        timer.start()

        surv_names = design.survival_formula.covariates
        point = design.point_fit
        cure_names = tuple(point.b)
        warnings_list: list[str] = []

        if design.n_bootstrap == 0:
            timer.stop()
            return Result(
                params=BootstrapParams(
                    replicates=(),
                    survival=undefined_statistics(surv_names, point.beta),
                    cure=undefined_statistics(cure_names, point.b),
                    n_bootstrap=0,
                    n_failed=0,
                ),
                info={'n_bootstrap': 0, 'resampled': False},
                timing=timer.result(),
                backend_name=self.name,
                warnings=(),
            )

        streams = replicate_streams(design.seed, design.n_bootstrap)

        with timer.section('bootstrap_replicates'):
            if design.n_jobs == 1:
                replicates = [
                    self._run_replicate(design, i, stream)
                    for i, stream in enumerate(streams, start=1)
                ]
            else:
                with ThreadPoolExecutor(max_workers=design.n_jobs) as executor:
                    futures = [
                        executor.submit(self._run_replicate, design, i, stream)
                        for i, stream in enumerate(streams, start=1)
                    ]
                    replicates = [future.result() for future in futures]

        successes = [r for r in replicates if isinstance(r, ReplicateSuccess)]
        n_failed = design.n_bootstrap - len(successes)
        if n_failed > 0:
            warnings_list.append(
                f"{n_failed} of {design.n_bootstrap} bootstrap replicates did not converge."
            )

        with timer.section('summary_statistics'):
            beta_draws = np.array(
                [[r.fit.beta.get(name, np.nan) for name in surv_names] for r in successes],
                dtype=np.float64,
            )
            b_draws = np.array(
                [[r.fit.b.get(name, np.nan) for name in cure_names] for r in successes],
                dtype=np.float64,
            )
            survival = replicate_statistics(surv_names, point.beta, beta_draws)
            cure = replicate_statistics(cure_names, point.b, b_draws)

        timer.stop()

        return Result(
            params=BootstrapParams(
                replicates=tuple(replicates),
                survival=survival,
                cure=cure,
                n_bootstrap=design.n_bootstrap,
                n_failed=n_failed,
            ),
            info={
                'n_bootstrap': design.n_bootstrap,
                'resampled': True,
                'n': design.dataset.n_observations,
                'n_events': design.n_events,
                'n_censored': design.n_censored,
                'n_dropped': design.n_dropped,
                'n_jobs': design.n_jobs,
                'seed': design.seed,
            },
            timing=timer.result(),
            backend_name=self.name,
            warnings=tuple(warnings_list),
        )

    def _run_replicate(
        self,
        design: BootstrapDesign,
        index: int,
        stream: np.random.SeedSequence,
    ) -> ReplicateSuccess | ReplicateFailure:
        rng = np.random.default_rng(stream)
        rows = stratified_indices(design.strata, rng)
        sample = design.dataset.take(rows)
        try:
            fit = self._engine.fit(
                design.survival_formula,
                design.cure_formula,
                sample,
                design.tolerance,
                False,
            )
        except REPLICATE_ERRORS as e:
            return ReplicateFailure(index=index, reason=f"{type(e).__name__}: {e}")
        if not fit.converged:
            return ReplicateFailure(
                index=index,
                reason=f"did not converge in {fit.n_iter} iterations",
            )
        return ReplicateSuccess(index=index, fit=fit)
