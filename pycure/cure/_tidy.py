"""
Coefficient tables for the two sub-models.

Merges point estimates with bootstrap statistics. Rows follow the rebuilt
formulas' term order; the cure intercept gets its own one-row table.
Confidence intervals use the normal approximation

    estimate ± Φ⁻¹((1 + conf_level) / 2) · SE

and are NaN when no resampling was requested.
"""

from __future__ import annotations

from typing import Mapping, Sequence

import numpy as np
from scipy import stats

from pycure.cure._common import INTERCEPT, CoefficientTable
from pycure.montecarlo._common import BootstrapStatistics


def _frozen(values, dtype=np.float64):
    out = np.array(values, dtype=dtype)
    out.setflags(write=False)
    return out


def coefficient_table(
    names: Sequence[str],
    labels: Mapping[str, str],
    statistics: BootstrapStatistics,
    conf_level: float,
    resampled: bool,
) -> CoefficientTable:
    """
    Build a table for the given terms out of a statistics block.

    Args:
        names: terms to report, in row order; all must be in statistics
        labels: term -> human-readable label
        statistics: per-coefficient bootstrap statistics
        conf_level: confidence level of the interval
        resampled: whether bootstrap replicates were drawn
    """
    idx = [statistics.names.index(name) for name in names]
    estimate = statistics.estimate[idx]
    std_error = statistics.std_error[idx]

    if resampled:
        crit = stats.norm.ppf((1.0 + conf_level) / 2.0)
        conf_low = estimate - crit * std_error
        conf_high = estimate + crit * std_error
    else:
        conf_low = np.full(len(idx), np.nan)
        conf_high = np.full(len(idx), np.nan)

    return CoefficientTable(
        term=tuple(names),
        label=tuple(labels.get(name, name) for name in names),
        estimate=_frozen(estimate),
        std_error=_frozen(std_error),
        statistic=_frozen(statistics.statistic[idx]),
        p_value=_frozen(statistics.p_value[idx]),
        conf_low=_frozen(conf_low),
        conf_high=_frozen(conf_high),
        n_converged=_frozen(statistics.n_converged[idx], dtype=np.int64),
    )


def build_tables(
    survival_terms: Sequence[str],
    cure_terms: Sequence[str],
    labels: Mapping[str, str],
    survival: BootstrapStatistics,
    cure: BootstrapStatistics,
    conf_level: float,
    resampled: bool,
) -> tuple[CoefficientTable, CoefficientTable, CoefficientTable]:
    """
    Returns:
        (survival_table, cure_table, intercept_table)
    """
    surv_table = coefficient_table(
        survival_terms, labels, survival, conf_level, resampled
    )
    cure_table = coefficient_table(
        cure_terms, labels, cure, conf_level, resampled
    )
    intercept_table = coefficient_table(
        (INTERCEPT,), {INTERCEPT: INTERCEPT}, cure, conf_level, resampled
    )
    return surv_table, cure_table, intercept_table
