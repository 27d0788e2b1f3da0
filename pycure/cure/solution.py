"""
Fitted mixture cure model.

CureSolution wraps a Result[CureParams] and exposes the coefficients,
tidy tables, formulas and fit metadata, with an R-style summary().
new_cure_solution() is the only place a CureSolution is assembled.
"""

from __future__ import annotations

import copy
from types import MappingProxyType
from typing import Any, Mapping, Sequence

import numpy as np
from numpy.typing import NDArray

from pycure.core.datasource import Dataset
from pycure.core.exceptions import DimensionError, ValidationError
from pycure.core.result import Result
from pycure.cure._common import INTERCEPT, CoefficientTable, CureParams, RawFit
from pycure.cure.design import CombinedDataset
from pycure.formula.design import observed_levels, observed_values
from pycure.formula.spec import FormulaSpec
from pycure.montecarlo._common import ReplicateFailure, ReplicateSuccess


_COMPONENTS = ('survival', 'cure')


def _check_coefficients(values: Any, names: Any, label: str) -> tuple[NDArray, tuple[str, ...]]:
    """Numeric coefficient vector and str name vector of equal length."""
    arr = np.asarray(values)
    if arr.ndim != 1 or not (
        np.issubdtype(arr.dtype, np.number) and not np.issubdtype(arr.dtype, np.complexfloating)
    ) or arr.dtype == np.bool_:
        raise ValidationError(f"`{label}_coefs` should be a numeric vector.")
    if isinstance(names, str) or not all(isinstance(n, str) for n in names):
        raise ValidationError(f"`{label}_coef_names` should be a character vector.")
    names = tuple(names)
    if len(arr) != len(names):
        raise DimensionError(
            f"`{label}_coefs` and `{label}_coef_names` must have the same length: "
            f"{len(arr)} != {len(names)}"
        )
    return arr.astype(np.float64), names


def _xlevels(formula: FormulaSpec, data: Dataset) -> Mapping[str, tuple[str, ...]]:
    return MappingProxyType(observed_levels(formula, data))


def new_cure_solution(
    surv_coefs: Any,
    surv_coef_names: Sequence[str],
    cure_coefs: Any,
    cure_coef_names: Sequence[str],
    *,
    survival_formula: FormulaSpec,
    cure_formula: FormulaSpec,
    data: Dataset,
    combined: CombinedDataset,
    point_fit: RawFit,
    tables: tuple[CoefficientTable, CoefficientTable, CoefficientTable],
    bootstrap_fits: Sequence[ReplicateSuccess | ReplicateFailure],
    conf_level: float,
    n_bootstrap: int,
    tolerance: float,
    info: dict[str, Any],
    timing: dict[str, float] | None,
    warnings: tuple[str, ...] = (),
    backend_name: str = 'cpu_em_ph',
) -> CureSolution:
    """
    Assemble an immutable CureSolution.

    Args:
        surv_coefs, surv_coef_names: survival coefficients and term names
        cure_coefs, cure_coef_names: cure coefficients and term names; an
            '(Intercept)' entry, if present, is reported separately
        survival_formula, cure_formula: formulas as supplied by the caller
        data: the caller's dataset
        combined: deduplicated combined dataset the model was fit on
        point_fit: engine output on the full data
        tables: (survival, cure, intercept) coefficient tables
        bootstrap_fits: replicate outcomes, in index order
        conf_level, n_bootstrap, tolerance: fit settings

    Raises:
        ValidationError: If a coefficient vector is not numeric or a name
            vector is not all strings
        DimensionError: If a coefficient vector and its names differ in length
    """
    surv_values, surv_names = _check_coefficients(surv_coefs, surv_coef_names, 'surv')
    cure_values, cure_names = _check_coefficients(cure_coefs, cure_coef_names, 'cure')

    cure_map = dict(zip(cure_names, cure_values.tolist()))
    cure_intercept = cure_map.pop(INTERCEPT, float('nan'))
    surv_table, cure_table, intercept_table = tables

    n_failed = sum(1 for r in bootstrap_fits if isinstance(r, ReplicateFailure))

    params = CureParams(
        survival_formula=survival_formula,
        cure_formula=cure_formula,
        survival_formula_fitted=combined.survival_formula,
        cure_formula_fitted=combined.cure_formula,
        data=data,
        combined=combined,
        point_fit=point_fit,
        surv_coefs=MappingProxyType(dict(zip(surv_names, surv_values.tolist()))),
        cure_coefs=MappingProxyType(cure_map),
        cure_intercept=float(cure_intercept),
        surv_table=surv_table,
        cure_table=cure_table,
        intercept_table=intercept_table,
        surv_xlevels=_xlevels(survival_formula, data),
        cure_xlevels=_xlevels(cure_formula, data),
        conf_level=float(conf_level),
        n_bootstrap=int(n_bootstrap),
        tolerance=float(tolerance),
        n_failed=n_failed,
        bootstrap_fits=tuple(bootstrap_fits),
    )
    return CureSolution(Result(
        params=params,
        info=info,
        timing=timing,
        backend_name=backend_name,
        warnings=tuple(warnings),
    ))


class CureSolution:
    """Mixture cure model solution.

    The survival sub-model gives log hazard ratios for the susceptible
    class; the cure sub-model gives log odds of being susceptible.
    """

    __slots__ = ('_result',)

    def __init__(self, _result: Result[CureParams]) -> None:
        self._result = _result

    # -- Coefficients --

    @property
    def surv_coefs(self) -> Mapping[str, float]:
        """Survival coefficients keyed by term."""
        return self._result.params.surv_coefs

    @property
    def cure_coefs(self) -> Mapping[str, float]:
        """Cure-logit coefficients keyed by term, intercept excluded."""
        return self._result.params.cure_coefs

    @property
    def cure_intercept(self) -> float:
        return self._result.params.cure_intercept

    @property
    def surv_table(self) -> CoefficientTable:
        return self._result.params.surv_table

    @property
    def cure_table(self) -> CoefficientTable:
        return self._result.params.cure_table

    def coefficients(self, component: str) -> Mapping[str, float]:
        """Name -> estimate mapping for 'survival' or 'cure'."""
        _check_component(component)
        return self.surv_coefs if component == 'survival' else self.cure_coefs

    def tidy(self, component: str, intercept: bool = False) -> CoefficientTable:
        """Coefficient table for 'survival' or 'cure'.

        With intercept=True the cure table is led by the '(Intercept)' row.
        """
        _check_component(component)
        if component == 'survival':
            return self.surv_table
        if intercept:
            return CoefficientTable.stack(
                self._result.params.intercept_table, self.cure_table
            )
        return self.cure_table

    # -- Formulas and data --

    @property
    def surv_formula(self) -> FormulaSpec:
        """Survival formula as supplied."""
        return self._result.params.survival_formula

    @property
    def cure_formula(self) -> FormulaSpec:
        """Cure formula as supplied."""
        return self._result.params.cure_formula

    @property
    def surv_formula_fitted(self) -> FormulaSpec:
        """Survival formula over the deduplicated columns."""
        return self._result.params.survival_formula_fitted

    @property
    def cure_formula_fitted(self) -> FormulaSpec:
        """Cure formula over the deduplicated columns."""
        return self._result.params.cure_formula_fitted

    @property
    def data(self) -> Dataset:
        return self._result.params.data

    @property
    def combined_data(self) -> CombinedDataset:
        return self._result.params.combined

    @property
    def surv_xlevels(self) -> Mapping[str, tuple[str, ...]]:
        """Category sets of categorical survival covariates."""
        return self._result.params.surv_xlevels

    @property
    def cure_xlevels(self) -> Mapping[str, tuple[str, ...]]:
        """Category sets of categorical cure covariates."""
        return self._result.params.cure_xlevels

    # -- Fit metadata --

    @property
    def conf_level(self) -> float:
        return self._result.params.conf_level

    @property
    def n_bootstrap(self) -> int:
        return self._result.params.n_bootstrap

    @property
    def tolerance(self) -> float:
        return self._result.params.tolerance

    @property
    def n_failed(self) -> int:
        """Bootstrap replicates that raised or did not converge."""
        return self._result.params.n_failed

    @property
    def n_converged(self) -> int:
        return self.n_bootstrap - self.n_failed

    @property
    def bootstrap_fits(self) -> tuple[ReplicateSuccess | ReplicateFailure, ...]:
        return self._result.params.bootstrap_fits

    @property
    def point_fit(self) -> RawFit:
        return self._result.params.point_fit

    @property
    def converged(self) -> bool:
        """Whether the point fit converged."""
        return self._result.params.point_fit.converged

    @property
    def info(self) -> dict[str, Any]:
        """A copy of the fit diagnostics."""
        return copy.deepcopy(dict(self._result.info))

    @property
    def warnings(self) -> tuple[str, ...]:
        return self._result.warnings

    def has_warning(self, substring: str) -> bool:
        return self._result.has_warning(substring)

    @property
    def backend_name(self) -> str:
        return self._result.backend_name

    @property
    def timing(self):
        return self._result.timing

    # -- Prediction support --

    def validate_new_data(self, data: Any) -> None:
        """
        Check that new data can be scored by this model.

        Every covariate of both formulas must be present, and values of
        categorical covariates must belong to the training category sets.

        Raises:
            ValidationError: On a missing covariate or an unseen category
        """
        dataset = Dataset.build(data)
        for formula, xlevels in (
            (self.surv_formula, self.surv_xlevels),
            (self.cure_formula, self.cure_xlevels),
        ):
            missing = [c for c in formula.covariates if c not in dataset]
            if missing:
                raise ValidationError(
                    f"new data is missing covariates {missing} required by "
                    f"'{formula}'"
                )
            for cov, levels in xlevels.items():
                unseen = sorted(observed_values(dataset[cov]) - set(levels))
                if unseen:
                    raise ValidationError(
                        f"{cov}: new data has levels {unseen} not seen in "
                        f"training (known levels: {list(levels)})"
                    )

    # -- Display --

    def summary(self) -> str:
        """R-style summary of the mixture cure fit."""
        lines = []
        lines.append("Call: fit_cure_model()")
        lines.append("")
        lines.append(f"  Survival formula: {self.surv_formula}")
        lines.append(f"  Cure formula:     {self.cure_formula}")
        lines.append("")
        lines.append(
            f"  n= {self.info.get('n', self.data.n_observations)}, "
            f"number of events= {self.info.get('n_events', 'NA')}, "
            f"converged= {self.converged}"
        )
        if self.n_bootstrap > 0:
            lines.append(
                f"  bootstrap replicates= {self.n_bootstrap}, "
                f"failed= {self.n_failed}"
            )
        lines.append("")

        ci_pct = int(round(self.conf_level * 100))
        for title, table in (
            ("Cure probability model (logit of susceptibility):",
             self.tidy('cure', intercept=True)),
            ("Failure time distribution model (log hazard ratio):",
             self.surv_table),
        ):
            lines.append(title)
            lines.append(
                f"  {'':>14s}  {'Estimate':>10s}  {'Std.Error':>10s}  "
                f"{'Z value':>10s}  {'Pr(>|Z|)':>10s}  "
                f"{'lower ' + str(ci_pct) + '%':>10s}  {'upper ' + str(ci_pct) + '%':>10s}"
            )
            for i in range(len(table)):
                lines.append(
                    f"  {table.label[i]:>14s}  {table.estimate[i]:10.6f}  "
                    f"{table.std_error[i]:10.6f}  {table.statistic[i]:10.4f}  "
                    f"{table.p_value[i]:10.4g}  {table.conf_low[i]:10.6f}  "
                    f"{table.conf_high[i]:10.6f}"
                )
            lines.append("")

        for w in self.warnings:
            lines.append(f"  Warning: {w}")

        return "\n".join(lines).rstrip()

    def __repr__(self) -> str:
        return (
            f"CureSolution(surv_terms={list(self.surv_coefs)}, "
            f"cure_terms={list(self.cure_coefs)}, "
            f"n_bootstrap={self.n_bootstrap}, n_failed={self.n_failed})"
        )


def _check_component(component: str) -> None:
    if component not in _COMPONENTS:
        raise ValidationError(
            f"component must be 'survival' or 'cure', got {component!r}"
        )
