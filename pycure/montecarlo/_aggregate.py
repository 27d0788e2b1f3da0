"""
Normal-approximation inference from bootstrap replicates.

    SE = sd(replicates)       (ddof = 1, converged replicates only)
    z  = estimate / SE
    p  = 2 * min(Phi(z), 1 - Phi(z))
"""

from __future__ import annotations

from typing import Mapping, Sequence

import numpy as np
from numpy.typing import NDArray
from scipy import stats

from pycure.montecarlo._common import BootstrapStatistics


def two_sided_p_value(z: NDArray) -> NDArray:
    """2 * min(Phi(z), 1 - Phi(z)); NaN where z is NaN."""
    z = np.asarray(z, dtype=np.float64)
    p = 2.0 * np.minimum(stats.norm.cdf(z), stats.norm.sf(z))
    return np.clip(p, 0.0, 1.0)


def replicate_statistics(
    names: Sequence[str],
    estimates: Mapping[str, float],
    draws: NDArray,
) -> BootstrapStatistics:
    """
    Summarize replicate draws of a set of coefficients.

    Args:
        names: coefficient names, in table order
        estimates: point estimates keyed by name
        draws: (n_converged, len(names)) matrix of converged replicate
            estimates; non-finite entries are ignored per coefficient

    Returns:
        BootstrapStatistics
    """
    k = len(names)
    draws = np.asarray(draws, dtype=np.float64)
    if draws.ndim != 2:
        draws = np.empty((0, k), dtype=np.float64)
    estimate = np.array([estimates[name] for name in names], dtype=np.float64)

    finite = np.isfinite(draws)
    counts = finite.sum(axis=0).astype(np.int64)

    variance = np.full(k, np.nan)
    for j in range(k):
        if counts[j] >= 2:
            variance[j] = np.var(draws[finite[:, j], j], ddof=1)

    std_error = np.sqrt(variance)
    with np.errstate(divide='ignore', invalid='ignore'):
        z = np.where(
            (std_error == 0.0) & (estimate == 0.0), 0.0, estimate / std_error
        )
    p_value = two_sided_p_value(z)

    return BootstrapStatistics(
        names=tuple(names),
        estimate=estimate,
        variance=variance,
        std_error=std_error,
        statistic=z,
        p_value=p_value,
        n_converged=counts,
    )


def undefined_statistics(
    names: Sequence[str],
    estimates: Mapping[str, float],
) -> BootstrapStatistics:
    """Statistics for a run without resampling: everything undefined."""
    k = len(names)
    return BootstrapStatistics(
        names=tuple(names),
        estimate=np.array([estimates[name] for name in names], dtype=np.float64),
        variance=np.full(k, np.nan),
        std_error=np.full(k, np.nan),
        statistic=np.full(k, np.nan),
        p_value=np.full(k, np.nan),
        n_converged=np.zeros(k, dtype=np.int64),
    )
