"""
Core infrastructure for pycure.

This module provides shared abstractions and utilities used by all
domain-specific submodules (formula, regression, survival, montecarlo,
cure).

Key components:
    protocols: FitEngine, CureModel protocols
    result: Generic Result[P] envelope
    exceptions: Exception hierarchy
    validation: Input validators
    datasource: Immutable Dataset of named columns
    compute: Timing and linear algebra primitives
"""

from pycure.core.protocols import FitEngine, CureModel
from pycure.core.result import Result
from pycure.core.datasource import Dataset
from pycure.core.exceptions import (
    PyCureError,
    ValidationError,
    DimensionError,
    FormulaError,
    OutcomeSpecificationError,
    NumericalError,
    SingularMatrixError,
)

__all__ = [
    # Protocols
    "FitEngine",
    "CureModel",
    # Result
    "Result",
    # Data
    "Dataset",
    # Exceptions
    "PyCureError",
    "ValidationError",
    "DimensionError",
    "FormulaError",
    "OutcomeSpecificationError",
    "NumericalError",
    "SingularMatrixError",
]
