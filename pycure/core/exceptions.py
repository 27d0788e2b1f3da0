"""
Exception hierarchy for pycure.

All exceptions inherit from PyCureError to allow catching any
library-specific error. Domain-specific exceptions should inherit from
the appropriate base class here.

Design principles:
    - Exceptions carry diagnostic information as attributes
    - Error messages are actionable with actual vs expected values
    - Never catch and re-raise with less information
"""


class PyCureError(Exception):
    """Base exception for all pycure errors."""
    pass


class ValidationError(PyCureError):
    """
    Input validation failed.

    Raised when user-provided inputs fail validation checks.
    """
    pass


class DimensionError(ValidationError):
    """
    Array dimensions are incorrect or inconsistent.

    Raised when array shapes don't match expected dimensions or
    when multiple arrays have inconsistent shapes.
    """
    pass


class FormulaError(ValidationError):
    """
    A model formula could not be parsed or does not match the data.

    Attributes:
        formula: The offending formula text, if available
    """

    def __init__(self, message: str, formula: str | None = None):
        super().__init__(message)
        self.formula = formula


class OutcomeSpecificationError(FormulaError):
    """
    The survival outcome is not a two-field right-censored specification.

    Attributes:
        formula: The offending formula text, if available
        censoring_type: The censoring type that was requested, if any
    """

    def __init__(
        self,
        message: str,
        formula: str | None = None,
        censoring_type: str | None = None,
    ):
        super().__init__(message, formula=formula)
        self.censoring_type = censoring_type


class NumericalError(PyCureError):
    """
    Numerical computation failed.

    Base class for errors arising from numerical issues during computation.
    """
    pass


class SingularMatrixError(NumericalError):
    """
    Matrix is singular or nearly singular.

    Raised when a matrix operation requires invertibility but the matrix
    is singular or numerically rank-deficient.

    Attributes:
        matrix_name: Name/description of the problematic matrix
        condition_number: Estimated condition number, if available
        rank: Numerical rank, if computed
        expected_rank: Expected rank (typically min(n, p))
    """

    def __init__(
        self,
        message: str,
        matrix_name: str | None = None,
        condition_number: float | None = None,
        rank: int | None = None,
        expected_rank: int | None = None
    ):
        super().__init__(message)
        self.matrix_name = matrix_name
        self.condition_number = condition_number
        self.rank = rank
        self.expected_rank = expected_rank
