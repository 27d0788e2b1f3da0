"""
Tests for assembling a CureSolution from coefficient vectors.
"""

import warnings

import numpy as np
import pytest

from pycure import DimensionError, ValidationError, fit_cure_model
from pycure.cure import INTERCEPT, new_cure_solution


@pytest.fixture
def parts(cure_df):
    with warnings.catch_warnings():
        warnings.simplefilter("ignore", UserWarning)
        fit = fit_cure_model("Surv(time, status) ~ A + B", "~ A", cure_df, n_bootstrap=0)
    return dict(
        survival_formula=fit.surv_formula,
        cure_formula=fit.cure_formula,
        data=fit.data,
        combined=fit.combined_data,
        point_fit=fit.point_fit,
        tables=(fit.surv_table, fit.cure_table, fit.tidy('cure', intercept=True)),
        bootstrap_fits=(),
        conf_level=0.9,
        n_bootstrap=0,
        tolerance=1e-6,
        info={'n': 200},
        timing=None,
    )


class TestNewCureSolution:

    def test_intercept_split_out(self, parts):
        sol = new_cure_solution(
            [0.1, 0.2], ('a', 'b'), [-1.0, 0.3], (INTERCEPT, 'a'), **parts
        )
        assert dict(sol.surv_coefs) == {'a': 0.1, 'b': 0.2}
        assert dict(sol.cure_coefs) == {'a': 0.3}
        assert sol.cure_intercept == -1.0
        assert sol.conf_level == 0.9
        assert sol.timing is None
        assert not sol.warnings

    def test_without_intercept(self, parts):
        sol = new_cure_solution([0.1, 0.2], ('a', 'b'), [0.3], ('a',), **parts)
        assert np.isnan(sol.cure_intercept)

    def test_integer_coefficients_accepted(self, parts):
        sol = new_cure_solution([1, 2], ('a', 'b'), [0], ('a',), **parts)
        assert sol.surv_coefs['b'] == 2.0

    @pytest.mark.parametrize("coefs, names, message", [
        (['x', 'y'], ('a', 'b'), "`surv_coefs` should be a numeric vector."),
        ([True, False], ('a', 'b'), "`surv_coefs` should be a numeric vector."),
        ([[0.1, 0.2]], ('a', 'b'), "`surv_coefs` should be a numeric vector."),
        ([0.1, 0.2], ('a', 2), "`surv_coef_names` should be a character vector."),
        ([0.1, 0.2], 'ab', "`surv_coef_names` should be a character vector."),
    ])
    def test_type_errors(self, parts, coefs, names, message):
        with pytest.raises(ValidationError) as excinfo:
            new_cure_solution(coefs, names, [0.3], ('a',), **parts)
        assert str(excinfo.value) == message

    def test_cure_type_error(self, parts):
        with pytest.raises(ValidationError, match="`cure_coefs` should be a numeric vector"):
            new_cure_solution([0.1], ('a',), ['bad'], ('a',), **parts)

    def test_length_mismatch(self, parts):
        with pytest.raises(DimensionError, match="same length"):
            new_cure_solution([0.1, 0.2, 0.3], ('a', 'b'), [0.3], ('a',), **parts)

    def test_xlevels_snapshot(self, parts):
        sol = new_cure_solution([0.1, 0.2], ('a', 'b'), [0.3], ('a',), **parts)
        assert dict(sol.surv_xlevels) == {}
        assert sol.n_failed == 0
