"""
Mixture cure model fitting.

fit_cure_model() runs the whole pipeline: validate the formulas, build
the outcome and covariate matrices, merge them into one deduplicated
dataset, fit the point estimate, bootstrap, aggregate, and assemble the
CureSolution.
"""

from __future__ import annotations

import warnings
from typing import Any

from pycure.core.compute.timing import Timer
from pycure.core.datasource import Dataset
from pycure.core.exceptions import ValidationError
from pycure.core.protocols import FitEngine
from pycure.core.validation import check_non_negative_int, check_positive, check_probability
from pycure.cure._common import INTERCEPT
from pycure.cure._em import DEFAULT_MAX_ITER, EMCureEngine, EMSettings
from pycure.cure._tidy import build_tables
from pycure.cure.design import merge_design_matrices
from pycure.cure.solution import CureSolution, new_cure_solution
from pycure.formula.design import build_design_matrix, build_outcome_matrix
from pycure.formula.spec import FormulaSpec, validate_cure_formula, validate_outcome
from pycure.montecarlo.backends.cpu import CPUStratifiedBootstrapBackend
from pycure.montecarlo.design import BootstrapDesign


DEFAULT_CONF_LEVEL = 0.95
DEFAULT_N_BOOTSTRAP = 100
DEFAULT_TOLERANCE = 1e-7


def fit_cure_model(
    survival_formula: str | FormulaSpec,
    cure_formula: str | FormulaSpec,
    data: Any,
    conf_level: float = DEFAULT_CONF_LEVEL,
    n_bootstrap: int = DEFAULT_N_BOOTSTRAP,
    tolerance: float = DEFAULT_TOLERANCE,
    *,
    seed: int | None = None,
    n_jobs: int | None = None,
    max_iter: int = DEFAULT_MAX_ITER,
    engine: FitEngine | None = None,
) -> CureSolution:
    """
    Fit a semiparametric mixture cure model with bootstrap inference.

    Args:
        survival_formula: 'Surv(time, status) ~ x1 + x2' or a FormulaSpec.
            The outcome must be right-censored.
        cure_formula: '~ z1 + z2' or a FormulaSpec, with no outcome.
        data: pandas DataFrame, mapping of column arrays, or Dataset.
        conf_level: Confidence level of the bootstrap intervals, in (0, 1).
        n_bootstrap: Stratified bootstrap replicates. 0 skips inference.
        tolerance: EM convergence tolerance.
        seed: Seed for the replicate random streams.
        n_jobs: Worker threads for the bootstrap. Default min(cpu_count, 4).
        max_iter: EM iteration limit for the default engine.
        engine: Alternative FitEngine; EMCureEngine by default.

    Returns:
        CureSolution

    Raises:
        OutcomeSpecificationError: If the survival outcome is not a
            two-field right-censored Surv(time, status)
        FormulaError: If a formula is malformed or names a missing column
        ValidationError: If any other argument is invalid

    Warns:
        UserWarning: If the point fit did not converge, if incomplete rows
            were dropped, or if bootstrap replicates failed

    Examples:
        >>> fit = fit_cure_model(
        ...     "Surv(time, status) ~ age + grade",
        ...     "~ age",
        ...     df,
        ...     n_bootstrap=200,
        ...     seed=1,
        ... )
        >>> print(fit.summary())
    """
    timer = Timer()
    timer.start()

    with timer.section('validation'):
        surv_spec = FormulaSpec.coerce(survival_formula, 'survival_formula')
        cure_spec = FormulaSpec.coerce(cure_formula, 'cure_formula')
        dataset = Dataset.build(data)
        conf_level = check_probability(conf_level, 'conf_level')
        n_bootstrap = check_non_negative_int(n_bootstrap, 'n_bootstrap')
        tolerance = check_positive(tolerance, 'tolerance')
        if seed is not None:
            seed = check_non_negative_int(seed, 'seed')
        if n_jobs is not None and check_non_negative_int(n_jobs, 'n_jobs') < 1:
            raise ValidationError(f"n_jobs: must be >= 1, got {n_jobs}")
        if engine is None:
            engine = EMCureEngine(EMSettings.for_em(max_iter))
        elif not isinstance(engine, FitEngine):
            raise ValidationError(
                f"engine must implement FitEngine (name, fit), got {type(engine).__name__}"
            )

        validate_outcome(surv_spec, dataset)
        validate_cure_formula(cure_spec)

    with timer.section('design_matrices'):
        outcome = build_outcome_matrix(surv_spec, dataset)
        surv_design = build_design_matrix(surv_spec, dataset)
        cure_design = build_design_matrix(cure_spec, dataset)
        combined = merge_design_matrices(outcome, surv_design, cure_design)

    surv_fitted = combined.survival_formula
    cure_fitted = combined.cure_formula
    warnings_list: list[str] = []

    with timer.section('point_fit'):
        point_fit = engine.fit(
            surv_fitted, cure_fitted, combined, tolerance, n_bootstrap > 0
        )

    n_dropped = int(point_fit.info.get('n_dropped', 0))
    if n_dropped > 0:
        warnings_list.append(f"dropped {n_dropped} incomplete rows")
    if not point_fit.converged:
        warnings_list.append(
            f"EM algorithm did not converge in {point_fit.n_iter} iterations"
        )
    warnings_list.extend(point_fit.info.get('warnings', ()))

    with timer.section('bootstrap'):
        boot_design = BootstrapDesign.for_cure_bootstrap(
            combined, point_fit, n_bootstrap,
            tolerance=tolerance, seed=seed, n_jobs=n_jobs,
        )
        boot = CPUStratifiedBootstrapBackend(engine).solve(boot_design)
    warnings_list.extend(boot.warnings)

    with timer.section('aggregation'):
        tables = build_tables(
            surv_fitted.covariates,
            cure_fitted.covariates,
            combined.labels,
            boot.params.survival,
            boot.params.cure,
            conf_level,
            resampled=n_bootstrap > 0,
        )

    for message in warnings_list:
        warnings.warn(message, UserWarning, stacklevel=2)

    timer.stop()

    info = {
        'engine': engine.name,
        'n': int(point_fit.info.get('n', combined.n_observations)),
        'n_events': point_fit.info.get('n_events'),
        'n_dropped': n_dropped,
        'n_iter': point_fit.n_iter,
        'converged': point_fit.converged,
        'aliases': dict(combined.aliases),
        'bootstrap': dict(boot.info),
    }

    cure_names = (INTERCEPT,) + cure_fitted.covariates
    return new_cure_solution(
        [point_fit.beta[name] for name in surv_fitted.covariates],
        surv_fitted.covariates,
        [point_fit.b[name] for name in cure_names],
        cure_names,
        survival_formula=surv_spec,
        cure_formula=cure_spec,
        data=dataset,
        combined=combined,
        point_fit=point_fit,
        tables=tables,
        bootstrap_fits=boot.params.replicates,
        conf_level=conf_level,
        n_bootstrap=n_bootstrap,
        tolerance=tolerance,
        info=info,
        timing=timer.result(),
        warnings=tuple(warnings_list),
        backend_name=engine.name,
    )
