"""
Tests for the pycure exception hierarchy.

Validates:
    - Inheritance chain (all exceptions catchable via PyCureError)
    - Formula errors are validation errors
    - Diagnostic attributes and their defaults
"""

import pytest

from pycure.core.exceptions import (
    DimensionError,
    FormulaError,
    NumericalError,
    OutcomeSpecificationError,
    PyCureError,
    SingularMatrixError,
    ValidationError,
)


# ═══════════════════════════════════════════════════════════════════════
# Inheritance hierarchy
# ═══════════════════════════════════════════════════════════════════════


class TestInheritance:
    """Every exception is catchable via PyCureError."""

    def test_validation_error_is_pycure_error(self):
        with pytest.raises(PyCureError):
            raise ValidationError("bad input")

    def test_dimension_error_is_validation_error(self):
        with pytest.raises(ValidationError):
            raise DimensionError("wrong shape")

    def test_formula_error_is_validation_error(self):
        with pytest.raises(ValidationError):
            raise FormulaError("bad formula")

    def test_outcome_error_is_formula_error(self):
        with pytest.raises(FormulaError):
            raise OutcomeSpecificationError("not right-censored")

    def test_singular_matrix_error_is_numerical_error(self):
        with pytest.raises(NumericalError):
            raise SingularMatrixError("singular")

    def test_numerical_error_is_not_validation_error(self):
        assert not issubclass(NumericalError, ValidationError)


# ═══════════════════════════════════════════════════════════════════════
# Diagnostic attributes
# ═══════════════════════════════════════════════════════════════════════


class TestAttributes:
    """Exceptions carry what went wrong as attributes."""

    def test_formula_error_keeps_formula(self):
        e = FormulaError("bad", formula="y ~ x * z")
        assert e.formula == "y ~ x * z"
        assert str(e) == "bad"

    def test_outcome_error_attributes(self):
        e = OutcomeSpecificationError(
            "bad outcome", formula="Surv(t, s, type='interval') ~ x",
            censoring_type="interval",
        )
        assert e.formula.startswith("Surv(")
        assert e.censoring_type == "interval"

    def test_outcome_error_defaults(self):
        e = OutcomeSpecificationError("bad outcome")
        assert e.formula is None
        assert e.censoring_type is None

    def test_singular_matrix_attributes(self):
        e = SingularMatrixError(
            "rank deficient", matrix_name="survival design", rank=1, expected_rank=2
        )
        assert e.matrix_name == "survival design"
        assert e.rank == 1
        assert e.expected_rank == 2
        assert e.condition_number is None
