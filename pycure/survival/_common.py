"""
Parameter payloads for the latency (survival) sub-model kernels.
"""

from __future__ import annotations

from dataclasses import dataclass

from numpy.typing import NDArray


@dataclass(frozen=True)
class CoxParams:
    """Cox proportional hazards fit (Breslow ties, optional offset)."""

    coefficients: NDArray        # (p,) log hazard ratios
    loglik: float                # partial log-likelihood at the estimate
    n_events: int
    n_observations: int
    n_iter: int                  # Newton-Raphson iterations
    converged: bool
    infinite: tuple[int, ...] = ()   # columns still drifting when the likelihood went flat


@dataclass(frozen=True)
class BaselineSurvival:
    """Breslow-type baseline survival evaluated at each subject's time."""

    survival: NDArray            # (n,) S0(t_i)
    event_times: NDArray         # (m,) distinct event times
    hazard_jumps: NDArray        # (m,) baseline hazard increments
