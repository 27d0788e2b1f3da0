"""
Tests for the quasi-binomial logistic IRLS kernel.

The incidence sub-model is fit to fractional responses (E-step weights),
so the checks are stated through the score equations Z'(y - μ) = 0
rather than against a binary-data reference.
"""

import numpy as np
import pytest
from numpy.testing import assert_allclose

from pycure.core.exceptions import SingularMatrixError
from pycure.regression import LogitLink, QuasiBinomial, logistic_fit


# ── Fixtures ─────────────────────────────────────────────────────────

@pytest.fixture
def logistic_data(rng):
    n = 300
    x = rng.standard_normal(n)
    Z = np.column_stack([np.ones(n), x])
    p = 1.0 / (1.0 + np.exp(-(-0.4 + 1.1 * x)))
    y = (rng.uniform(size=n) < p).astype(np.float64)
    return Z, y


class TestLogitLink:

    def test_inverse(self):
        link = LogitLink()
        eta = np.array([-3.0, 0.0, 2.5])
        assert_allclose(link.link(link.linkinv(eta)), eta, rtol=1e-10)

    def test_mu_eta_is_derivative(self):
        link = LogitLink()
        eta = np.array([-1.0, 0.3, 2.0])
        h = 1e-6
        numeric = (link.linkinv(eta + h) - link.linkinv(eta - h)) / (2 * h)
        assert_allclose(link.mu_eta(eta), numeric, rtol=1e-6)

    def test_family_variance(self):
        family = QuasiBinomial()
        assert_allclose(family.variance(np.array([0.5, 0.2])), [0.25, 0.16])


class TestLogisticFit:
    """IRLS solves the logistic score equations."""

    def test_binary_score_equations(self, logistic_data):
        Z, y = logistic_data
        params = logistic_fit(Z, y)
        assert params.converged
        score = Z.T @ (y - params.fitted_values)
        assert_allclose(score, 0.0, atol=1e-5)

    def test_recovers_signs(self, logistic_data):
        Z, y = logistic_data
        params = logistic_fit(Z, y)
        assert params.coefficients[0] < 0
        assert params.coefficients[1] > 0.5

    def test_fractional_responses(self, rng):
        n = 200
        x = rng.standard_normal(n)
        Z = np.column_stack([np.ones(n), x])
        y = 1.0 / (1.0 + np.exp(-(0.3 - 0.8 * x))) * rng.uniform(0.6, 1.0, n)
        params = logistic_fit(Z, y)
        assert params.converged
        assert_allclose(Z.T @ (y - params.fitted_values), 0.0, atol=1e-5)
        assert np.all((params.fitted_values > 0) & (params.fitted_values < 1))

    def test_offset_shifts_coefficient(self, logistic_data):
        Z, y = logistic_data
        base = logistic_fit(Z, y)
        shifted = logistic_fit(Z, y, offset=0.5 * Z[:, 1])
        assert_allclose(shifted.coefficients[1], base.coefficients[1] - 0.5, atol=1e-5)
        assert_allclose(shifted.coefficients[0], base.coefficients[0], atol=1e-5)

    def test_warm_start_same_solution(self, logistic_data):
        Z, y = logistic_data
        cold = logistic_fit(Z, y)
        warm = logistic_fit(Z, y, start=np.array([-0.2, 0.9]))
        assert_allclose(warm.coefficients, cold.coefficients, atol=1e-5)

    def test_linear_predictor_consistent(self, logistic_data):
        Z, y = logistic_data
        params = logistic_fit(Z, y)
        assert_allclose(params.linear_predictor, Z @ params.coefficients)
        assert params.deviance > 0

    def test_collinear_design_raises(self, logistic_data):
        Z, y = logistic_data
        Z_bad = np.column_stack([Z, 2.0 * Z[:, 1]])
        with pytest.raises(SingularMatrixError):
            logistic_fit(Z_bad, y)
