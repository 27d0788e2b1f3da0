"""
Combined dataset for the joint cure/latency fit.

The survival and cure formulas are authored independently and usually
share covariates. merge_design_matrices() binds the outcome columns, the
survival predictors and the cure predictors into one matrix, drops every
column that repeats an earlier column value for value, and rebuilds both
formulas over the columns that remain.
"""

from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Mapping, Sequence

import numpy as np
from numpy.typing import NDArray

from pycure.core.exceptions import ValidationError
from pycure.formula.design import DesignMatrix, OutcomeMatrix
from pycure.formula.spec import FormulaSpec


@dataclass(frozen=True)
class CombinedDataset:
    """
    Deduplicated column-bound outcome and predictor matrix.

    Attributes:
        values: (n, k) float64 matrix, read-only
        names: canonical column names, outcome columns first
        time_name: column holding follow-up time
        status_name: column holding the event indicator (1.0 / 0.0)
        survival_formula: Surv(time, status) ~ retained survival columns
        cure_formula: ~ retained cure columns
        labels: column -> human-readable label of its first occurrence
        terms: column -> source covariate of its first occurrence
        aliases: dropped column name -> retained column it duplicates
    """
    values: NDArray[np.floating[Any]]
    names: tuple[str, ...]
    time_name: str
    status_name: str
    survival_formula: FormulaSpec
    cure_formula: FormulaSpec
    labels: Mapping[str, str]
    terms: Mapping[str, str]
    aliases: Mapping[str, str]

    @property
    def n_observations(self) -> int:
        return self.values.shape[0]

    @property
    def time(self) -> NDArray[np.floating[Any]]:
        return self.column(self.time_name)

    @property
    def status(self) -> NDArray[np.floating[Any]]:
        return self.column(self.status_name)

    def column(self, name: str) -> NDArray[np.floating[Any]]:
        try:
            j = self.names.index(name)
        except ValueError:
            raise KeyError(
                f"CombinedDataset has no column '{name}'. "
                f"Available: {list(self.names)}"
            ) from None
        return self.values[:, j]

    def matrix(self, names: Sequence[str]) -> NDArray[np.floating[Any]]:
        """Columns in the given order as an (n, len(names)) array."""
        if not names:
            return np.empty((self.n_observations, 0), dtype=np.float64)
        return np.column_stack([self.column(name) for name in names])

    def complete_cases(self) -> tuple[CombinedDataset, int]:
        """Rows with no missing value, and how many rows were dropped."""
        keep = np.all(np.isfinite(self.values), axis=1)
        n_dropped = int(self.n_observations - keep.sum())
        if n_dropped == 0:
            return self, 0
        return self.take(np.flatnonzero(keep)), n_dropped

    def take(self, rows: NDArray[np.integer[Any]]) -> CombinedDataset:
        """New dataset made of the given rows (repeats allowed)."""
        values = self.values[np.asarray(rows, dtype=np.intp)]
        values.setflags(write=False)
        return CombinedDataset(
            values=values,
            names=self.names,
            time_name=self.time_name,
            status_name=self.status_name,
            survival_formula=self.survival_formula,
            cure_formula=self.cure_formula,
            labels=self.labels,
            terms=self.terms,
            aliases=self.aliases,
        )

    def split(self) -> tuple[OutcomeMatrix, DesignMatrix, DesignMatrix]:
        """
        The outcome, survival and cure matrices described by the rebuilt
        formulas. Merging them again gives back this dataset.
        """
        outcome = OutcomeMatrix(
            time=self.time,
            status=self.status,
            time_name=self.time_name,
            status_name=self.status_name,
        )
        return (
            outcome,
            self._side(self.survival_formula),
            self._side(self.cure_formula),
        )

    def _side(self, formula: FormulaSpec) -> DesignMatrix:
        names = formula.covariates
        X = self.matrix(names)
        X.setflags(write=False)
        return DesignMatrix(
            X=X,
            column_names=names,
            column_terms=tuple(self.terms[name] for name in names),
            column_labels=tuple(self.labels[name] for name in names),
        )

    def __repr__(self) -> str:
        return (
            f"CombinedDataset(n={self.n_observations}, "
            f"columns={list(self.names)}, aliases={dict(self.aliases)})"
        )


def _same_values(a: NDArray, b: NDArray) -> bool:
    return bool(np.array_equal(a, b, equal_nan=True))


def _unique_name(name: str, taken: set[str]) -> str:
    candidate = name
    k = 1
    while candidate in taken:
        k += 1
        candidate = f"{name}_{k}"
    return candidate


def merge_design_matrices(
    outcome: OutcomeMatrix,
    survival: DesignMatrix,
    cure: DesignMatrix,
) -> CombinedDataset:
    """
    Bind outcome, survival and cure columns, dropping structural duplicates.

    Columns are visited in the fixed order (time, status, survival
    predictors, cure predictors). A column whose values equal an earlier
    retained column across all rows (NaN matching NaN) is dropped and
    referenced through that earlier column. A retained column whose name
    is already taken by a different column gets a numeric suffix.

    Args:
        outcome: time/status columns of the survival formula
        survival: survival-side predictors
        cure: cure-side predictors

    Returns:
        CombinedDataset whose formulas reference only retained columns

    Raises:
        ValidationError: If the matrices do not share a row count
    """
    n = outcome.n
    if survival.n != n or cure.n != n:
        raise ValidationError(
            f"design matrices must have the same rows: outcome={n}, "
            f"survival={survival.n}, cure={cure.n}"
        )

    kept_values: list[NDArray] = []
    kept_names: list[str] = []
    labels: dict[str, str] = {}
    terms: dict[str, str] = {}
    aliases: dict[str, str] = {}

    def visit(name: str, values: NDArray, label: str, term: str) -> str:
        for prior_name, prior in zip(kept_names, kept_values):
            if _same_values(prior, values):
                if prior_name != name:
                    aliases[name] = prior_name
                return prior_name
        retained = _unique_name(name, set(kept_names))
        kept_names.append(retained)
        kept_values.append(values)
        labels[retained] = label
        terms[retained] = term
        return retained

    time_name = visit(outcome.time_name, outcome.time, outcome.time_name, outcome.time_name)
    status_name = visit(
        outcome.status_name, outcome.status, outcome.status_name, outcome.status_name
    )
    if time_name == status_name:
        raise ValidationError(
            f"time column '{outcome.time_name}' and status column "
            f"'{outcome.status_name}' hold identical values"
        )

    surv_names = [
        visit(name, survival.X[:, j], survival.column_labels[j], survival.column_terms[j])
        for j, name in enumerate(survival.column_names)
    ]
    cure_names = [
        visit(name, cure.X[:, j], cure.column_labels[j], cure.column_terms[j])
        for j, name in enumerate(cure.column_names)
    ]

    if kept_values:
        values = np.column_stack(kept_values).astype(np.float64)
    else:
        values = np.empty((n, 0), dtype=np.float64)
    values.setflags(write=False)

    survival_formula = FormulaSpec.survival(time_name, status_name, surv_names)
    cure_formula = FormulaSpec.one_sided(cure_names)

    return CombinedDataset(
        values=values,
        names=tuple(kept_names),
        time_name=time_name,
        status_name=status_name,
        survival_formula=survival_formula,
        cure_formula=cure_formula,
        labels=MappingProxyType(labels),
        terms=MappingProxyType(terms),
        aliases=MappingProxyType(aliases),
    )
