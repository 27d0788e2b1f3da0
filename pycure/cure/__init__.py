"""
Semiparametric mixture cure models.

Public API:
    fit_cure_model(survival_formula, cure_formula, data, ...) -> CureSolution
    merge_design_matrices(outcome, survival, cure) -> CombinedDataset
    EMCureEngine: default FitEngine (PH mixture cure EM)
"""

from pycure.cure._common import INTERCEPT, CoefficientTable, CureParams, RawFit
from pycure.cure._em import DEFAULT_MAX_ITER, EMCureEngine, EMSettings
from pycure.cure._tidy import build_tables, coefficient_table
from pycure.cure.design import CombinedDataset, merge_design_matrices
from pycure.cure.solution import CureSolution, new_cure_solution
from pycure.cure.solvers import (
    DEFAULT_CONF_LEVEL,
    DEFAULT_N_BOOTSTRAP,
    DEFAULT_TOLERANCE,
    fit_cure_model,
)

__all__ = [
    "fit_cure_model",
    "CureSolution",
    "new_cure_solution",
    "CombinedDataset",
    "merge_design_matrices",
    "EMCureEngine",
    "EMSettings",
    "RawFit",
    "CoefficientTable",
    "CureParams",
    "INTERCEPT",
    "coefficient_table",
    "build_tables",
    "DEFAULT_CONF_LEVEL",
    "DEFAULT_N_BOOTSTRAP",
    "DEFAULT_TOLERANCE",
    "DEFAULT_MAX_ITER",
]
