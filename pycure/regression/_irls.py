"""
Logistic regression via IRLS for fractional responses.

Implements Iteratively Reweighted Least Squares (Fisher scoring) as in
R's glm.fit(). Each iteration solves a weighted least squares problem
via QR on the transformed system √W·Z, √W·z.

Algorithm:
    Initialize: μ = family.initialize(y) (or from a warm start), η = link(μ)
    For iteration 1..max_iter:
        dμ/dη = link.mu_eta(η)
        z = η - offset + (y - μ) / dμ_dη    # working response
        w = (dμ/dη)² / V(μ)                  # working weights
        Solve WLS: min_b || √w·z - √w·Z·b ||²  via QR
        η_new = Z @ b + offset
        dev_new = family.deviance(y, μ_new, wt)
        Check: |dev_new - dev_old| / (|dev_new| + 0.1) < tol
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import numpy as np
from numpy.typing import NDArray

from pycure.core.compute.linalg.qr import qr_solve_cpu
from pycure.core.exceptions import NumericalError
from pycure.regression.families import QuasiBinomial


@dataclass(frozen=True)
class LogisticParams:
    """Parameter payload of a (quasi-)binomial logistic fit."""
    coefficients: NDArray[np.floating[Any]]
    fitted_values: NDArray[np.floating[Any]]
    linear_predictor: NDArray[np.floating[Any]]
    deviance: float
    n_iter: int
    converged: bool


def logistic_fit(
    Z: NDArray,
    y: NDArray,
    *,
    offset: NDArray | None = None,
    start: NDArray | None = None,
    tol: float = 1e-8,
    max_iter: int = 25,
) -> LogisticParams:
    """Fit a logistic model to responses in [0, 1].

    Parameters
    ----------
    Z : NDArray
        (n, q) design matrix. Include the intercept column explicitly.
    y : NDArray
        (n,) responses in [0, 1]; fractional values are allowed.
    offset : NDArray or None
        (n,) fixed term added to the linear predictor.
    start : NDArray or None
        (q,) warm-start coefficients.
    tol : float
        Relative deviance change for convergence.
    max_iter : int
        Maximum IRLS iterations.

    Returns
    -------
    LogisticParams

    Raises
    ------
    SingularMatrixError
        If the weighted design is rank-deficient.
    NumericalError
        If the iteration produces non-finite coefficients.
    """
    family = QuasiBinomial()
    link = family.link
    n, q = Z.shape
    wt = np.ones(n, dtype=np.float64)
    off = np.zeros(n, dtype=np.float64) if offset is None else offset

    if start is not None:
        eta = Z @ start + off
        mu = link.linkinv(eta)
    else:
        mu = family.initialize(y)
        eta = link.link(mu)

    coefficients = np.zeros(q, dtype=np.float64) if start is None else start.copy()
    dev_old = family.deviance(y, mu, wt)
    dev_new = dev_old
    converged = False
    n_iter = 0

    for iteration in range(1, max_iter + 1):
        mu_eta_val = link.mu_eta(eta)
        var_mu = family.variance(mu)

        z = (eta - off) + (y - mu) / mu_eta_val
        w = np.maximum(wt * (mu_eta_val ** 2) / var_mu, 1e-30)

        sqrt_w = np.sqrt(w)
        coefficients, _ = qr_solve_cpu(
            Z * sqrt_w[:, np.newaxis], z * sqrt_w, matrix_name='cure design'
        )
        if not np.all(np.isfinite(coefficients)):
            raise NumericalError(
                f"logistic IRLS produced non-finite coefficients at iteration {iteration}"
            )

        eta = Z @ coefficients + off
        mu = link.linkinv(eta)
        dev_new = family.deviance(y, mu, wt)
        n_iter = iteration

        if abs(dev_new - dev_old) / (abs(dev_new) + 0.1) < tol:
            converged = True
            break
        dev_old = dev_new

    return LogisticParams(
        coefficients=coefficients,
        fitted_values=mu,
        linear_predictor=eta,
        deviance=dev_new,
        n_iter=n_iter,
        converged=converged,
    )
