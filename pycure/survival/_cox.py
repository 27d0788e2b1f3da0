"""
Cox proportional hazards model via Newton-Raphson, Breslow ties.

Used as the M-step of the mixture cure EM: the susceptible-class hazard
is fit with the E-step weights entering as an offset log(w).

Algorithm:
    Initialize β (zeros or a warm start)
    For iteration 1..max_iter:
        Compute: partial log-likelihood L(β), score U(β), information I(β)
        β_new = β + I(β)^{-1} @ U(β), halving the step while L decreases
        Check convergence: max|β_new - β| < tol
        Monotone likelihood: if L changes by less than tol·|L| on three
        consecutive steps while β still moves, stop and report the
        drifting coefficients as infinite

Breslow partial likelihood with offset o_i:
    L(β) = Σ_{i: event} [ η_i - log Σ_{l: t_l >= t_i} exp(η_l) ],
    η_i = x_i @ β + o_i

Risk-set sums are cumulative log-sum-exps over subjects sorted by
descending time, so each evaluation is O(n p²) with no per-time loop.

References:
    Cox, D. R. (1972). Regression models and life-tables. JRSS-B, 34(2), 187-220.
    Breslow, N. (1974). Covariance analysis of censored survival data.
        Biometrics, 30(1), 89-99.
"""

from __future__ import annotations

import numpy as np
from numpy.typing import NDArray

from pycure.core.compute.linalg.qr import qr_cpu
from pycure.core.exceptions import NumericalError, SingularMatrixError
from pycure.survival._common import BaselineSurvival, CoxParams


def cox_fit(
    time: NDArray,
    event: NDArray,
    X: NDArray,
    *,
    offset: NDArray | None = None,
    start: NDArray | None = None,
    tol: float = 1e-9,
    max_iter: int = 30,
) -> CoxParams:
    """Fit a Cox proportional hazards model with Breslow ties.

    Parameters
    ----------
    time : NDArray
        (n,) time to event or censoring.
    event : NDArray
        (n,) event indicator (1=event, 0=censored).
    X : NDArray
        (n, p) covariate matrix (NO intercept).
    offset : NDArray or None
        (n,) fixed term added to the linear predictor.
    start : NDArray or None
        (p,) warm-start coefficients.
    tol : float
        Convergence tolerance (max absolute change in β).
    max_iter : int
        Maximum Newton-Raphson iterations.

    Returns
    -------
    CoxParams

    Raises
    ------
    SingularMatrixError
        If a covariate is constant or the covariates are collinear among
        the rows being fit.
    """
    n, p = X.shape
    off = np.zeros(n, dtype=np.float64) if offset is None else offset
    n_events = int(np.sum(event))

    if p == 0 or n_events == 0:
        return CoxParams(
            coefficients=np.zeros(p, dtype=np.float64),
            loglik=0.0,
            n_events=n_events,
            n_observations=n,
            n_iter=0,
            converged=True,
        )

    # Cox has no intercept: a constant column is not identifiable
    constant = np.flatnonzero(np.ptp(X, axis=0) == 0.0)
    if len(constant) > 0:
        raise SingularMatrixError(
            f"latency design has constant columns {constant.tolist()} among "
            f"the {n} rows being fit",
            matrix_name='survival design',
            rank=p - len(constant),
            expected_rank=p,
        )
    centered = X - X.mean(axis=0)
    rank = qr_cpu(centered).rank if n > 1 else 0
    if rank < p:
        raise SingularMatrixError(
            f"latency design is rank-deficient after centering: rank={rank}, "
            f"expected={p}. A covariate is constant or collinear in this sample.",
            matrix_name='survival design',
            rank=rank,
            expected_rank=p,
        )

    order = np.argsort(-time, kind='stable')
    t_sorted = time[order]
    e_sorted = event[order]
    X_sorted = X[order]
    o_sorted = off[order]
    # index of the last subject tied with each position: risk set = [0, end]
    neg_t = -t_sorted
    group_end = np.searchsorted(neg_t, neg_t, side='right') - 1

    beta = np.zeros(p, dtype=np.float64) if start is None else start.astype(np.float64).copy()
    loglik, score, info = _score_and_information(
        beta, e_sorted, X_sorted, o_sorted, group_end
    )

    converged = False
    infinite: tuple[int, ...] = ()
    flat = 0
    n_iter = 0
    for iteration in range(1, max_iter + 1):
        n_iter = iteration
        try:
            step = np.linalg.solve(info, score)
        except np.linalg.LinAlgError as e:
            raise SingularMatrixError(
                f"Cox information matrix is singular at iteration {iteration}",
                matrix_name='Cox information',
            ) from e

        # Limit step size so the linear predictor stays in a sane range
        max_step = np.max(np.abs(step))
        if max_step > 5.0:
            step = step * (5.0 / max_step)

        beta_new = beta + step
        loglik_new, score_new, info_new = _score_and_information(
            beta_new, e_sorted, X_sorted, o_sorted, group_end
        )
        halvings = 0
        while (not np.isfinite(loglik_new) or loglik_new < loglik - 1e-12) and halvings < 10:
            step = step / 2.0
            beta_new = beta + step
            loglik_new, score_new, info_new = _score_and_information(
                beta_new, e_sorted, X_sorted, o_sorted, group_end
            )
            halvings += 1

        if not np.isfinite(loglik_new):
            raise NumericalError(
                f"Cox partial likelihood is not finite at iteration {iteration}"
            )

        change = np.abs(beta_new - beta)
        if abs(loglik_new - loglik) <= tol * abs(loglik_new):
            flat += 1
        else:
            flat = 0
        beta, loglik, score, info = beta_new, loglik_new, score_new, info_new

        if np.max(change) < tol:
            converged = True
            break
        if flat >= 3:
            # Monotone likelihood: L(β) has levelled off while some
            # coefficients keep moving towards ±inf.
            converged = True
            drifting = change > np.sqrt(tol) * (1.0 + np.abs(beta))
            infinite = tuple(int(j) for j in np.flatnonzero(drifting))
            break

    return CoxParams(
        coefficients=beta,
        loglik=float(loglik),
        n_events=n_events,
        n_observations=n,
        n_iter=n_iter,
        converged=converged,
        infinite=infinite,
    )


def _score_and_information(
    beta: NDArray,
    event: NDArray,
    X: NDArray,
    offset: NDArray,
    group_end: NDArray,
) -> tuple[float, NDArray, NDArray]:
    """Log-likelihood, score and observed information (data sorted by descending time).

    Risk-set sums are accumulated in the log domain, so a risk set whose
    members all have tiny relative risk keeps a finite log S0.

    Returns
    -------
    (loglik, score, info_matrix)
        loglik : float
        score : (p,) gradient of log-likelihood
        info_matrix : (p, p) negative Hessian (observed information)
    """
    eta = X @ beta + offset
    log_S0 = np.logaddexp.accumulate(eta)[group_end]                         # (n,)
    mean = _risk_set_mean(X, eta, log_S0, group_end)                          # (n, p)
    outer = X[:, :, np.newaxis] * X[:, np.newaxis, :]
    second = _risk_set_mean(outer, eta, log_S0, group_end)                    # (n, p, p)

    d = event == 1
    mean_d = mean[d]
    loglik = float(np.sum(eta[d] - log_S0[d]))
    score = np.sum(X[d] - mean_d, axis=0)
    info = np.sum(
        second[d] - mean_d[:, :, np.newaxis] * mean_d[:, np.newaxis, :],
        axis=0,
    )
    return loglik, score, info


def _risk_set_mean(
    values: NDArray,
    eta: NDArray,
    log_S0: NDArray,
    group_end: NDArray,
) -> NDArray:
    """Σ_{risk set} v_j exp(η_j) / S0 for signed v, from its positive and negative parts."""
    shape = (-1,) + (1,) * (values.ndim - 1)
    eta_b = eta.reshape(shape)
    log_norm = log_S0.reshape(shape)
    with np.errstate(divide='ignore'):
        log_pos = np.log(np.clip(values, 0.0, None)) + eta_b
        log_neg = np.log(np.clip(-values, 0.0, None)) + eta_b
    pos = np.logaddexp.accumulate(log_pos, axis=0)[group_end]
    neg = np.logaddexp.accumulate(log_neg, axis=0)[group_end]
    return np.exp(pos - log_norm) - np.exp(neg - log_norm)


def breslow_baseline_survival(
    time: NDArray,
    event: NDArray,
    risk: NDArray,
    weights: NDArray,
) -> BaselineSurvival:
    """Baseline survival of the susceptible class.

    λ_j = d_j / Σ_{i: t_i >= t_j} w_i r_i at each distinct event time t_j,
    H0(t) = Σ_{t_j <= t} λ_j, S0(t) = exp(-H0(t)), with the zero-tail
    constraint S0(t) = 0 for t beyond the last event time.

    Parameters
    ----------
    time, event : NDArray
        (n,) follow-up and event indicator.
    risk : NDArray
        (n,) relative risks exp(x_i @ β).
    weights : NDArray
        (n,) probabilities of belonging to the susceptible class.
    """
    event_times, d = np.unique(time[event == 1], return_counts=True)
    if len(event_times) == 0:
        return BaselineSurvival(
            survival=np.ones_like(time, dtype=np.float64),
            event_times=event_times,
            hazard_jumps=np.zeros(0, dtype=np.float64),
        )

    order = np.argsort(time, kind='stable')
    wr_sorted = (weights * risk)[order]
    # Σ over subjects with time >= t_j: suffix sums in ascending time order
    suffix = np.concatenate([np.cumsum(wr_sorted[::-1])[::-1], [0.0]])
    first_at_risk = np.searchsorted(time[order], event_times, side='left')
    at_risk = suffix[first_at_risk]

    with np.errstate(divide='ignore', invalid='ignore'):
        jumps = np.where(at_risk > 0, d / at_risk, np.inf)

    cumhaz = np.concatenate([[0.0], np.cumsum(jumps)])
    n_jumps = np.searchsorted(event_times, time, side='right')
    hazard = cumhaz[n_jumps]
    hazard = np.where(time > event_times[-1], np.inf, hazard)

    return BaselineSurvival(
        survival=np.exp(-hazard),
        event_times=event_times,
        hazard_jumps=jumps,
    )
