"""
Design matrix construction from a FormulaSpec and a Dataset.

Handles the translation from covariates to numeric columns:
    - Numeric covariates pass through as one column
    - Categorical covariates (factors, character columns, and numeric
      columns wrapped in factor()) use treatment coding: one indicator
      column per non-reference level, where the reference is the first
      observed level (declared order for factors, sorted order otherwise)
    - No intercept column is ever produced
    - Column names are canonicalized so that the same covariate gets the
      same name no matter which formula it came from

Everything here is a deterministic function of (FormulaSpec, Dataset).
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Iterable, Mapping

import numpy as np
from numpy.typing import NDArray

from pycure.core.datasource import COLUMN_NUMERIC, Column, Dataset
from pycure.core.exceptions import FormulaError, ValidationError
from pycure.formula.spec import FormulaSpec, encode_event


_NON_ALNUM = re.compile(r"[^a-z0-9]+")


def canonicalize_name(name: str) -> str:
    """
    Canonical column name: lower-case, delimiters normalized to '_'.

    >>> canonicalize_name("Tumor Grade (II)")
    'tumor_grade_ii'
    >>> canonicalize_name("2nd.line")
    'x2nd_line'
    """
    s = _NON_ALNUM.sub("_", str(name).lower()).strip("_")
    if not s:
        return "x"
    if s[0].isdigit():
        s = "x" + s
    return s


def canonicalize_names(names: Iterable[str]) -> tuple[str, ...]:
    """Canonicalize a sequence of names, suffixing collisions with _2, _3, ..."""
    out: list[str] = []
    seen: set[str] = set()
    for raw in names:
        base = canonicalize_name(raw)
        name = base
        k = 1
        while name in seen:
            k += 1
            name = f"{base}_{k}"
        seen.add(name)
        out.append(name)
    return tuple(out)


@dataclass(frozen=True)
class DesignMatrix:
    """
    Encoded covariate matrix with column metadata.

    Attributes:
        X: (n, p) float64 matrix, read-only. NaN marks missing input.
        column_names: canonical name of each column
        column_terms: covariate (formula term) each column came from
        column_labels: human-readable label ('age', 'grade[II]')
        reference_levels: categorical covariate -> reference level
    """
    X: NDArray[np.floating[Any]]
    column_names: tuple[str, ...]
    column_terms: tuple[str, ...]
    column_labels: tuple[str, ...]
    reference_levels: Mapping[str, str] = field(
        default_factory=lambda: MappingProxyType({})
    )

    @property
    def n(self) -> int:
        return self.X.shape[0]

    @property
    def p(self) -> int:
        return self.X.shape[1]

    def column(self, name: str) -> NDArray[np.floating[Any]]:
        try:
            j = self.column_names.index(name)
        except ValueError:
            raise KeyError(
                f"DesignMatrix has no column '{name}'. "
                f"Available: {list(self.column_names)}"
            ) from None
        return self.X[:, j]


@dataclass(frozen=True)
class OutcomeMatrix:
    """
    Right-censored outcome columns with canonical names.

    Attributes:
        time: (n,) follow-up time
        status: (n,) 1.0 = event, 0.0 = censored, NaN = missing
        time_name: canonical name of the time column
        status_name: canonical name of the status column
    """
    time: NDArray[np.floating[Any]]
    status: NDArray[np.floating[Any]]
    time_name: str
    status_name: str

    @property
    def n(self) -> int:
        return len(self.time)

    @property
    def names(self) -> tuple[str, str]:
        return (self.time_name, self.status_name)


def encode_treatment(
    values: NDArray,
    levels: tuple[str, ...],
) -> tuple[NDArray, tuple[str, ...], str]:
    """
    Treatment (dummy) coding for a single categorical covariate.

    Drops the first level (reference) and creates k-1 indicator columns.
    Rows with a missing value (None) get NaN in every column.

    Args:
        values: 1D object array of level strings (None = missing)
        levels: levels to code, reference first

    Returns:
        (X_coded, contrast_levels, reference)
    """
    reference = levels[0]
    contrasts = levels[1:]
    n = len(values)
    missing = np.array([v is None for v in values], dtype=bool)
    labels = np.array(["" if v is None else v for v in values], dtype=object)

    X = np.zeros((n, len(contrasts)), dtype=np.float64)
    for j, level in enumerate(contrasts):
        X[:, j] = (labels == level).astype(np.float64)
    X[missing, :] = np.nan

    return X, contrasts, reference


def _format_number(value: float) -> str:
    if float(value).is_integer():
        return str(int(value))
    return repr(float(value))


def _categorical_view(column: Column) -> tuple[NDArray, tuple[str, ...]]:
    """Object labels and the full level set of a column treated as categorical."""
    if column.kind != COLUMN_NUMERIC:
        return column.values, tuple(column.levels or ())
    values = column.values
    observed = np.unique(values[~np.isnan(values)])
    levels = tuple(_format_number(v) for v in observed)
    labels = np.array(
        [None if np.isnan(v) else _format_number(v) for v in values], dtype=object
    )
    return labels, levels


def _coded_levels(labels: NDArray, levels: tuple[str, ...]) -> tuple[str, ...]:
    """Levels actually present in the data, in level order."""
    present = {v for v in labels if v is not None}
    return tuple(lv for lv in levels if lv in present)


def _is_categorical(spec: FormulaSpec, column: Column) -> bool:
    return column.is_categorical or column.name in spec.factor_terms


def build_design_matrix(spec: FormulaSpec, dataset: Dataset) -> DesignMatrix:
    """
    Build the covariate matrix for one formula.

    Args:
        spec: Formula whose right-hand side is expanded
        dataset: Data the formula is evaluated against

    Returns:
        DesignMatrix with one column per non-intercept model term

    Raises:
        FormulaError: If a covariate is not a column of the dataset
        ValidationError: If a categorical covariate has fewer than two
            observed levels
    """
    n = dataset.n_observations
    blocks: list[NDArray] = []
    raw_names: list[str] = []
    terms: list[str] = []
    labels: list[str] = []
    references: dict[str, str] = {}

    for cov in spec.covariates:
        if cov not in dataset:
            raise FormulaError(
                f"covariate {cov!r} in {str(spec)!r} is not a column of the data. "
                f"Available: {list(dataset.names)}",
                formula=str(spec),
            )
        column = dataset[cov]

        if not _is_categorical(spec, column):
            blocks.append(np.asarray(column.values, dtype=np.float64).reshape(n, 1))
            raw_names.append(cov)
            terms.append(cov)
            labels.append(cov)
            continue

        values, levels = _categorical_view(column)
        coded = _coded_levels(values, levels)
        if len(coded) < 2:
            raise ValidationError(
                f"{cov}: categorical covariate needs at least 2 observed levels, "
                f"got {list(coded)}"
            )
        X_coded, contrasts, reference = encode_treatment(values, coded)
        blocks.append(X_coded)
        for level in contrasts:
            raw_names.append(f"{cov}_{level}")
            terms.append(cov)
            labels.append(f"{cov}[{level}]")
        references[cov] = reference

    if blocks:
        X = np.hstack(blocks)
    else:
        X = np.empty((n, 0), dtype=np.float64)
    X.setflags(write=False)

    return DesignMatrix(
        X=X,
        column_names=canonicalize_names(raw_names),
        column_terms=tuple(terms),
        column_labels=tuple(labels),
        reference_levels=MappingProxyType(references),
    )


def build_outcome_matrix(spec: FormulaSpec, dataset: Dataset) -> OutcomeMatrix:
    """
    Build the (time, status) outcome columns of a survival formula.

    Expects a formula that already passed validate_outcome().
    """
    time = np.array(dataset[spec.time].values, dtype=np.float64)
    status = encode_event(dataset[spec.event])
    time.setflags(write=False)
    status.setflags(write=False)
    time_name, status_name = canonicalize_names([spec.time, spec.event])
    return OutcomeMatrix(
        time=time,
        status=status,
        time_name=time_name,
        status_name=status_name,
    )


def observed_levels(spec: FormulaSpec, dataset: Dataset) -> dict[str, tuple[str, ...]]:
    """
    Category sets of a formula's covariates, snapshotted from the data.

    Factors report their full level set, character columns their sorted
    distinct values, factor()-wrapped numerics their sorted distinct
    values. Continuous covariates are omitted.
    """
    snapshot: dict[str, tuple[str, ...]] = {}
    for cov in spec.covariates:
        if cov not in dataset:
            continue
        column = dataset[cov]
        if _is_categorical(spec, column):
            _, levels = _categorical_view(column)
            snapshot[cov] = levels
    return snapshot


def observed_values(column: Column) -> set[str]:
    """Distinct non-missing values of a column, as level labels."""
    labels, _ = _categorical_view(column)
    return {v for v in labels if v is not None}
