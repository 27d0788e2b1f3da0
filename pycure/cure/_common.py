"""
Common data structures for the mixture cure pipeline.

RawFit is what a FitEngine returns; CoefficientTable is the tidy
per-sub-model summary; CureParams is the payload wrapped by
Result[CureParams] and exposed through CureSolution.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping, TYPE_CHECKING

import numpy as np
from numpy.typing import NDArray

from pycure.core.exceptions import DimensionError

if TYPE_CHECKING:
    import pandas as pd
    from pycure.core.datasource import Dataset
    from pycure.cure.design import CombinedDataset
    from pycure.formula.spec import FormulaSpec
    from pycure.montecarlo._common import ReplicateFailure, ReplicateSuccess


INTERCEPT = "(Intercept)"


@dataclass(frozen=True)
class RawFit:
    """
    Point estimates from one call to a FitEngine.

    Attributes:
        beta: survival (hazard) coefficients keyed by term name
        b: cure-logit coefficients keyed by term name, led by '(Intercept)'
        converged: whether the estimator met its tolerance
        n_iter: iterations used
        info: engine-specific diagnostics
    """
    beta: Mapping[str, float]
    b: Mapping[str, float]
    converged: bool
    n_iter: int = 0
    info: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))

    @classmethod
    def from_arrays(
        cls,
        beta: NDArray,
        beta_names: tuple[str, ...],
        b: NDArray,
        b_names: tuple[str, ...],
        *,
        converged: bool,
        n_iter: int = 0,
        info: Mapping[str, Any] | None = None,
    ) -> RawFit:
        """Pair coefficient vectors with their names."""
        if len(beta) != len(beta_names):
            raise DimensionError(
                f"beta has {len(beta)} values but {len(beta_names)} names"
            )
        if len(b) != len(b_names):
            raise DimensionError(
                f"b has {len(b)} values but {len(b_names)} names"
            )
        return cls(
            beta=MappingProxyType({k: float(v) for k, v in zip(beta_names, beta)}),
            b=MappingProxyType({k: float(v) for k, v in zip(b_names, b)}),
            converged=bool(converged),
            n_iter=int(n_iter),
            info=MappingProxyType(dict(info or {})),
        )


@dataclass(frozen=True)
class CoefficientTable:
    """
    Tidy coefficient table for one sub-model.

    One row per term, in the order of the fitted formula. Variance-derived
    columns are NaN when no resampling was requested or fewer than two
    replicates converged for that term.
    """
    term: tuple[str, ...]
    label: tuple[str, ...]
    estimate: NDArray[np.floating[Any]]
    std_error: NDArray[np.floating[Any]]
    statistic: NDArray[np.floating[Any]]
    p_value: NDArray[np.floating[Any]]
    conf_low: NDArray[np.floating[Any]]
    conf_high: NDArray[np.floating[Any]]
    n_converged: NDArray[np.integer[Any]]

    COLUMNS = (
        'term', 'label', 'estimate', 'std_error', 'statistic',
        'p_value', 'conf_low', 'conf_high', 'n_converged',
    )

    def __len__(self) -> int:
        return len(self.term)

    def row(self, term: str) -> dict[str, Any]:
        """All columns of one term as a dict."""
        try:
            i = self.term.index(term)
        except ValueError:
            raise KeyError(
                f"no term '{term}' in table. Available: {list(self.term)}"
            ) from None
        return {col: (getattr(self, col)[i]) for col in self.COLUMNS}

    @classmethod
    def stack(cls, *tables: CoefficientTable) -> CoefficientTable:
        """Concatenate tables row-wise, in argument order."""
        return cls(
            term=tuple(t for table in tables for t in table.term),
            label=tuple(t for table in tables for t in table.label),
            estimate=_frozen_concat([t.estimate for t in tables]),
            std_error=_frozen_concat([t.std_error for t in tables]),
            statistic=_frozen_concat([t.statistic for t in tables]),
            p_value=_frozen_concat([t.p_value for t in tables]),
            conf_low=_frozen_concat([t.conf_low for t in tables]),
            conf_high=_frozen_concat([t.conf_high for t in tables]),
            n_converged=_frozen_concat([t.n_converged for t in tables]),
        )

    def to_dataframe(self) -> 'pd.DataFrame':
        import pandas as pd

        return pd.DataFrame(
            {col: list(getattr(self, col)) for col in self.COLUMNS},
            columns=list(self.COLUMNS),
        )

    def __repr__(self) -> str:
        return f"CoefficientTable(terms={list(self.term)})"


def _frozen_concat(arrays: list[NDArray]) -> NDArray:
    out = np.concatenate(arrays)
    out.setflags(write=False)
    return out


@dataclass(frozen=True)
class CureParams:
    """
    Parameter payload for a fitted mixture cure model.

    Formulas are kept both as supplied by the caller and as rebuilt over
    the deduplicated combined dataset; tables and coefficient mappings
    follow the rebuilt formulas.
    """
    survival_formula: 'FormulaSpec'
    cure_formula: 'FormulaSpec'
    survival_formula_fitted: 'FormulaSpec'
    cure_formula_fitted: 'FormulaSpec'
    data: 'Dataset'
    combined: 'CombinedDataset'
    point_fit: RawFit
    surv_coefs: Mapping[str, float]
    cure_coefs: Mapping[str, float]
    cure_intercept: float
    surv_table: CoefficientTable
    cure_table: CoefficientTable
    intercept_table: CoefficientTable
    surv_xlevels: Mapping[str, tuple[str, ...]]
    cure_xlevels: Mapping[str, tuple[str, ...]]
    conf_level: float
    n_bootstrap: int
    tolerance: float
    n_failed: int
    bootstrap_fits: tuple['ReplicateSuccess | ReplicateFailure', ...]
