"""
Binomial family with logit link for the cure (incidence) sub-model.

The E-step of the cure EM produces fractional responses w in [0, 1], so
the family is used in its quasi-binomial form: the same variance and
deviance functions, with y allowed anywhere in [0, 1].

References:
    McCullagh, P., & Nelder, J. A. (1989). Generalized Linear Models (2nd ed.)
    R Core Team. stats::family, stats::make.link
"""

from __future__ import annotations

import numpy as np
from numpy.typing import NDArray


class LogitLink:
    """Logit link: g(μ) = log(μ/(1-μ))."""

    @property
    def name(self) -> str:
        return 'logit'

    def link(self, mu: NDArray) -> NDArray:
        mu = np.clip(mu, 1e-10, 1 - 1e-10)
        return np.log(mu / (1 - mu))

    def linkinv(self, eta: NDArray) -> NDArray:
        # Clip to prevent overflow in exp
        eta = np.clip(eta, -500, 500)
        return 1.0 / (1.0 + np.exp(-eta))

    def mu_eta(self, eta: NDArray) -> NDArray:
        """dμ/dη = μ(1-μ)."""
        eta = np.clip(eta, -500, 500)
        p = 1.0 / (1.0 + np.exp(-eta))
        return np.maximum(p * (1.0 - p), 1e-10)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}()"


class QuasiBinomial:
    """Quasi-binomial family. Link: logit.

    V(μ) = μ(1-μ)
    Deviance = 2 * Σ wt_i * [y_i log(y_i/μ_i) + (1-y_i) log((1-y_i)/(1-μ_i))]
    """

    def __init__(self) -> None:
        self._link = LogitLink()

    @property
    def name(self) -> str:
        return 'quasibinomial'

    @property
    def link(self) -> LogitLink:
        return self._link

    def variance(self, mu: NDArray) -> NDArray:
        mu = np.clip(mu, 1e-10, 1 - 1e-10)
        return mu * (1.0 - mu)

    def initialize(self, y: NDArray) -> NDArray:
        # R's default: (y + 0.5) / 2 for unit weights
        return (y + 0.5) / 2.0

    def deviance(self, y: NDArray, mu: NDArray, wt: NDArray) -> float:
        mu = np.clip(mu, 1e-10, 1 - 1e-10)
        # 0*log(0) = 0; np.where evaluates both branches
        with np.errstate(divide='ignore', invalid='ignore'):
            term1 = np.where(y > 0, y * np.log(y / mu), 0.0)
            term2 = np.where(y < 1, (1 - y) * np.log((1 - y) / (1 - mu)), 0.0)
        return 2.0 * float(np.sum(wt * (term1 + term2)))

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(link={self._link.name!r})"
