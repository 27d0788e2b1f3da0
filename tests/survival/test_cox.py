"""
Tests for the Breslow Cox kernel and the weighted baseline survival.

Reference values come from a direct (quadratic-time) evaluation of the
Breslow partial likelihood over explicit risk sets.
"""

import numpy as np
import pytest
from numpy.testing import assert_allclose
from scipy.special import logsumexp

from pycure.core.exceptions import SingularMatrixError
from pycure.survival import breslow_baseline_survival, cox_fit


def reference_loglik_and_score(time, event, X, beta, offset=None):
    """Breslow log partial likelihood and score by explicit risk sets."""
    eta = X @ beta + (0.0 if offset is None else offset)
    loglik = 0.0
    score = np.zeros(X.shape[1])
    for i in np.flatnonzero(event == 1):
        at_risk = time >= time[i]
        log_total = logsumexp(eta[at_risk])
        p = np.exp(eta[at_risk] - log_total)
        loglik += eta[i] - log_total
        score += X[i] - (X[at_risk] * p[:, None]).sum(axis=0)
    return loglik, score


# ── Fixtures ─────────────────────────────────────────────────────────

# Two covariates, tied event times at 4 and 9
TIME = np.array([3, 5, 7, 4, 4, 9, 2, 9, 6, 8, 10, 12, 1, 11, 9],
                dtype=np.float64)
EVENT = np.array([1, 1, 0, 1, 1, 1, 1, 0, 1, 1, 0, 1, 1, 0, 1],
                 dtype=np.float64)
X2 = np.column_stack([
    [0.5, 1.2, -0.3, 0.8, -0.5, 1.0, -1.2, 0.3, 0.7, -0.8, 1.5, -0.2, 0.4, -1.0, 0.9],
    [1, 0, 1, 0, 1, 1, 0, 1, 0, 1, 0, 1, 0, 1, 1],
]).astype(np.float64)


class TestCoxFit:
    """Newton-Raphson maximizes the Breslow partial likelihood."""

    def test_score_is_zero_at_estimate(self):
        params = cox_fit(TIME, EVENT, X2)
        assert params.converged
        _, score = reference_loglik_and_score(TIME, EVENT, X2, params.coefficients)
        assert_allclose(score, 0.0, atol=1e-7)

    def test_loglik_matches_reference(self):
        params = cox_fit(TIME, EVENT, X2)
        loglik, _ = reference_loglik_and_score(TIME, EVENT, X2, params.coefficients)
        assert params.loglik == pytest.approx(loglik, rel=1e-10)

    def test_estimate_is_maximum(self):
        params = cox_fit(TIME, EVENT, X2)
        best, _ = reference_loglik_and_score(TIME, EVENT, X2, params.coefficients)
        for delta in ([0.05, 0.0], [0.0, -0.05], [-0.03, 0.03]):
            perturbed, _ = reference_loglik_and_score(
                TIME, EVENT, X2, params.coefficients + np.array(delta)
            )
            assert perturbed < best

    def test_counts(self):
        params = cox_fit(TIME, EVENT, X2)
        assert params.n_events == 11
        assert params.n_observations == 15

    def test_offset_shifts_coefficient(self):
        base = cox_fit(TIME, EVENT, X2)
        shifted = cox_fit(TIME, EVENT, X2, offset=0.4 * X2[:, 0])
        assert_allclose(
            shifted.coefficients,
            base.coefficients - np.array([0.4, 0.0]),
            atol=1e-7,
        )

    def test_offset_score(self):
        offset = np.log(np.linspace(0.2, 1.0, len(TIME)))
        params = cox_fit(TIME, EVENT, X2, offset=offset)
        _, score = reference_loglik_and_score(
            TIME, EVENT, X2, params.coefficients, offset=offset
        )
        assert_allclose(score, 0.0, atol=1e-7)

    def test_warm_start(self):
        cold = cox_fit(TIME, EVENT, X2)
        warm = cox_fit(TIME, EVENT, X2, start=cold.coefficients + 0.1)
        assert_allclose(warm.coefficients, cold.coefficients, atol=1e-8)

    def test_no_covariates(self):
        params = cox_fit(TIME, EVENT, np.empty((len(TIME), 0)))
        assert params.coefficients.shape == (0,)
        assert params.converged

    def test_no_events(self):
        params = cox_fit(TIME, np.zeros_like(EVENT), X2)
        assert_allclose(params.coefficients, 0.0)
        assert params.n_events == 0

    def test_constant_column_raises(self):
        X_bad = np.column_stack([X2[:, 0], np.ones(len(TIME))])
        with pytest.raises(SingularMatrixError) as excinfo:
            cox_fit(TIME, EVENT, X_bad)
        assert excinfo.value.matrix_name == 'survival design'

    def test_collinear_columns_raise(self):
        X_bad = np.column_stack([X2, X2[:, 0] + X2[:, 1]])
        with pytest.raises(SingularMatrixError):
            cox_fit(TIME, EVENT, X_bad)


class TestCoxExtremes:
    """Risk sets far below the largest relative risk, and monotone likelihoods."""

    def test_risk_sets_with_tiny_relative_risk(self):
        # every subject at risk from t = 9 on is exp(-800) below the rest
        offset = np.where(TIME >= 9, -800.0, 0.0)
        params = cox_fit(TIME, EVENT, X2, offset=offset)
        assert params.converged
        assert np.isfinite(params.loglik)
        loglik, score = reference_loglik_and_score(
            TIME, EVENT, X2, params.coefficients, offset=offset
        )
        assert params.loglik == pytest.approx(loglik, rel=1e-10)
        assert_allclose(score, 0.0, atol=1e-7)

    def test_monotone_likelihood_flags_coefficient(self):
        # only censored subjects carry the indicator: L(β) rises as β -> -inf
        X_mono = np.column_stack([X2[:, 0], 1.0 - EVENT])
        params = cox_fit(TIME, EVENT, X_mono)
        assert params.converged
        assert params.infinite == (1,)
        assert params.coefficients[1] < -5.0
        assert np.isfinite(params.loglik)
        assert np.all(np.isfinite(params.coefficients))

    def test_regular_fit_flags_nothing(self):
        assert cox_fit(TIME, EVENT, X2).infinite == ()


class TestBreslowBaseline:
    """Weighted baseline survival with the zero-tail constraint."""

    def test_unit_weights_is_nelson_aalen(self):
        time = np.array([1.0, 2.0, 2.0, 3.0, 4.0, 5.0])
        event = np.array([1.0, 1.0, 0.0, 1.0, 0.0, 1.0])
        ones = np.ones_like(time)
        base = breslow_baseline_survival(time, event, ones, ones)

        assert_allclose(base.event_times, [1.0, 2.0, 3.0, 5.0])
        assert_allclose(base.hazard_jumps, [1 / 6, 1 / 5, 1 / 3, 1 / 1])
        expected_h = np.cumsum([1 / 6, 1 / 5, 1 / 3])
        assert_allclose(
            base.survival[:5],
            np.exp(-np.array([expected_h[0], expected_h[1], expected_h[1],
                              expected_h[2], expected_h[2]])),
        )
        assert base.survival[5] == pytest.approx(np.exp(-(expected_h[2] + 1.0)))

    def test_zero_tail(self):
        time = np.array([1.0, 2.0, 3.0, 6.0, 8.0])
        event = np.array([1.0, 0.0, 1.0, 0.0, 0.0])
        ones = np.ones_like(time)
        base = breslow_baseline_survival(time, event, ones, ones)
        assert_allclose(base.survival[3:], 0.0)
        assert base.survival[2] > 0.0

    def test_weights_scale_risk_sets(self):
        time = np.array([1.0, 2.0, 3.0])
        event = np.array([1.0, 1.0, 1.0])
        risk = np.array([1.0, 2.0, 1.0])
        weights = np.array([1.0, 0.5, 0.25])
        base = breslow_baseline_survival(time, event, risk, weights)
        # at-risk sums of w*r: 1 + 1 + 0.25, 1 + 0.25, 0.25
        assert_allclose(base.hazard_jumps, [1 / 2.25, 1 / 1.25, 1 / 0.25])

    def test_no_events(self):
        time = np.array([1.0, 2.0])
        base = breslow_baseline_survival(time, np.zeros(2), np.ones(2), np.ones(2))
        assert_allclose(base.survival, 1.0)
        assert len(base.event_times) == 0
