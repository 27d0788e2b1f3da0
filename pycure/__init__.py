"""
pycure: semiparametric mixture cure models for Python.

Fits a proportional hazards mixture cure model from two formulas (the
survival/latency side and the cure/incidence side), with stratified
bootstrap inference.

Submodules:
    formula: Formula parsing, outcome validation, design matrices
    regression: Logistic IRLS for the incidence sub-model
    survival: Cox partial likelihood and baseline survival
    montecarlo: Stratified bootstrap
    cure: Model bridge, EM engine, result aggregation, fit_cure_model
"""

__version__ = "0.1.0"

from pycure.core import (
    CureModel,
    Dataset,
    DimensionError,
    FitEngine,
    FormulaError,
    NumericalError,
    OutcomeSpecificationError,
    PyCureError,
    SingularMatrixError,
    ValidationError,
)
from pycure.formula import FormulaSpec
from pycure.cure import CoefficientTable, CureSolution, EMCureEngine, RawFit, fit_cure_model

__all__ = [
    "__version__",
    "fit_cure_model",
    "CureSolution",
    "CoefficientTable",
    "EMCureEngine",
    "RawFit",
    "FormulaSpec",
    "Dataset",
    "FitEngine",
    "CureModel",
    "PyCureError",
    "ValidationError",
    "DimensionError",
    "FormulaError",
    "OutcomeSpecificationError",
    "NumericalError",
    "SingularMatrixError",
]
