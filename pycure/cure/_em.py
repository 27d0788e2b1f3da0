"""
Semiparametric proportional hazards mixture cure model via EM.

Population survival is a mixture of a cured class (never fails) and a
susceptible class with Cox proportional hazards:

    S_pop(t | x, z) = (1 - π(z)) + π(z) · S0(t)^exp(x'β)
    π(z) = expit(b0 + z'b)           probability of being susceptible

Algorithm (Peng & Dear 2000; Sy & Taylor 2000):
    Initialize: w = status
        b  from logistic regression of w on [1, Z]
        β  from Breslow Cox on rows with w > 0, offset log(w)
        S0 from the weighted Breslow estimator
    Repeat:
        E-step:  S_u = S0^exp(Xβ)
                 w   = status + (1 - status) · π·S_u / ((1 - π) + π·S_u)
        M-step:  b  ← quasi-binomial logistic fit of w on [1, Z]
                 β  ← Breslow Cox on rows with w > 0, offset log(w)
                 S0 ← weighted Breslow baseline (S0 = 0 past the last event)
        Stop when Σ(Δb)² + Σ(Δβ)² + Σ(ΔS0)² < tolerance

References:
    Peng, Y. and Dear, K. B. G. (2000). A nonparametric mixture model for
        cure rate estimation. Biometrics, 56(1), 237-243.
    Sy, J. P. and Taylor, J. M. G. (2000). Estimation in a Cox
        proportional hazards cure model. Biometrics, 56(1), 227-236.
    Cai, C., Zou, Y., Peng, Y. and Zhang, J. (2012). smcure: An R-package
        for estimating semiparametric mixture cure models. Computer
        Methods and Programs in Biomedicine, 108(3), 1255-1260.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np
from numpy.typing import NDArray

from pycure.core.exceptions import NumericalError, ValidationError
from pycure.core.validation import check_non_negative_int
from pycure.cure._common import INTERCEPT, RawFit
from pycure.cure.design import CombinedDataset
from pycure.formula.spec import FormulaSpec
from pycure.regression import LogitLink, logistic_fit
from pycure.survival import CoxParams, breslow_baseline_survival, cox_fit


DEFAULT_MAX_ITER = 200


@dataclass(frozen=True)
class EMSettings:
    """
    Iteration limits of the EM loop and its inner solvers.

    Attributes:
        max_iter: EM iterations before giving up (converged=False)
        logistic_max_iter: IRLS iterations per M-step
        logistic_tol: IRLS relative deviance tolerance
        cox_max_iter: Newton-Raphson iterations per M-step
        cox_tol: Newton-Raphson coefficient tolerance
    """
    max_iter: int = DEFAULT_MAX_ITER
    logistic_max_iter: int = 25
    logistic_tol: float = 1e-8
    cox_max_iter: int = 30
    cox_tol: float = 1e-9

    @classmethod
    def for_em(cls, max_iter: int = DEFAULT_MAX_ITER) -> EMSettings:
        """Validated settings with default inner-solver limits."""
        max_iter = check_non_negative_int(max_iter, 'max_iter')
        if max_iter < 1:
            raise ValidationError(f"max_iter: must be >= 1, got {max_iter}")
        return cls(max_iter=max_iter)


class EMCureEngine:
    """
    FitEngine for the PH mixture cure model.

    Stateless: one instance can serve concurrent bootstrap replicates.
    No analytic variance is produced; variance_requested is recorded and
    inference is left to the bootstrap.
    """

    def __init__(self, settings: EMSettings | None = None):
        self._settings = settings if settings is not None else EMSettings()

    @property
    def name(self) -> str:
        return 'cpu_em_ph'

    @property
    def settings(self) -> EMSettings:
        return self._settings

    def fit(
        self,
        survival_formula: FormulaSpec,
        cure_formula: FormulaSpec,
        dataset: CombinedDataset,
        tolerance: float,
        variance_requested: bool,
    ) -> RawFit:
        complete, n_dropped = dataset.complete_cases()
        n = complete.n_observations

        time = complete.column(survival_formula.time)
        status = complete.column(survival_formula.event)
        X = complete.matrix(survival_formula.covariates)
        Z = np.column_stack([
            np.ones(n, dtype=np.float64),
            complete.matrix(cure_formula.covariates),
        ])

        if n == 0:
            raise ValidationError("no complete rows to fit")
        if not np.all((status == 0.0) | (status == 1.0)):
            raise ValidationError(
                f"{survival_formula.event}: event indicator must be coded 0/1"
            )
        if status.sum() == 0:
            raise ValidationError(
                f"{survival_formula.event}: no events among {n} complete rows"
            )

        b, beta, w, n_iter, change, converged, infinite = self._em(
            time, status, X, Z, tolerance
        )
        messages = tuple(
            f"latency coefficient for '{survival_formula.covariates[j]}' may be "
            f"infinite: the partial likelihood is monotone in it"
            for j in infinite
        )

        return RawFit.from_arrays(
            beta, survival_formula.covariates,
            b, (INTERCEPT,) + cure_formula.covariates,
            converged=converged,
            n_iter=n_iter,
            info={
                'n': n,
                'n_events': int(status.sum()),
                'n_dropped': n_dropped,
                'final_change': change,
                'tolerance': tolerance,
                'variance_requested': bool(variance_requested),
                'max_iter': self._settings.max_iter,
                'warnings': messages,
                'weights': w,
            },
        )

    def _em(
        self,
        time: NDArray,
        status: NDArray,
        X: NDArray,
        Z: NDArray,
        tolerance: float,
    ) -> tuple[NDArray, NDArray, NDArray, int, float, bool, tuple[int, ...]]:
        """Run EM; returns (b, beta, w, n_iter, change, converged, infinite).

        w are the E-step weights the final M-step was fitted with.
        """
        settings = self._settings
        link = LogitLink()

        w = status.copy()
        b = self._incidence(Z, w, None)
        cox = self._latency(time, status, X, w)
        beta = cox.coefficients
        S0 = self._baseline(time, status, X, beta, w)

        change = np.inf
        converged = False
        n_iter = 0
        for iteration in range(1, settings.max_iter + 1):
            n_iter = iteration

            # E-step
            pi = link.linkinv(Z @ b)
            S_u = S0 ** np.exp(X @ beta)
            w = status + (1.0 - status) * (pi * S_u) / ((1.0 - pi) + pi * S_u)
            if not np.all(np.isfinite(w)):
                raise NumericalError(
                    f"EM weights are not finite at iteration {iteration}"
                )

            # M-step
            b_new = self._incidence(Z, w, b)
            cox = self._latency(time, status, X, w)
            beta_new = cox.coefficients
            S0_new = self._baseline(time, status, X, beta_new, w)

            change = float(
                np.sum((b_new - b) ** 2)
                + np.sum((beta_new - beta) ** 2)
                + np.sum((S0_new - S0) ** 2)
            )
            b, beta, S0 = b_new, beta_new, S0_new
            if change < tolerance:
                converged = True
                break

        w.setflags(write=False)
        return b, beta, w, n_iter, change, converged, cox.infinite

    def _incidence(self, Z: NDArray, w: NDArray, start: NDArray | None) -> NDArray:
        fit = logistic_fit(
            Z, w,
            start=start,
            tol=self._settings.logistic_tol,
            max_iter=self._settings.logistic_max_iter,
        )
        return fit.coefficients

    def _latency(
        self,
        time: NDArray,
        status: NDArray,
        X: NDArray,
        w: NDArray,
    ) -> CoxParams:
        # refit from zero every M-step, never warm-started
        at_risk = w > 0.0
        fit = cox_fit(
            time[at_risk],
            status[at_risk],
            X[at_risk],
            offset=np.log(w[at_risk]),
            tol=self._settings.cox_tol,
            max_iter=self._settings.cox_max_iter,
        )
        return fit

    def _baseline(
        self,
        time: NDArray,
        status: NDArray,
        X: NDArray,
        beta: NDArray,
        w: NDArray,
    ) -> NDArray:
        risk = np.exp(X @ beta)
        if not np.all(np.isfinite(risk)):
            raise NumericalError("relative risks exp(X @ beta) overflowed")
        return breslow_baseline_survival(time, status, risk, w).survival
