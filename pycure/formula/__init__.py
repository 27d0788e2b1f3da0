"""
Model formulas and design matrices.

Public API:
    FormulaSpec.parse(text) -> FormulaSpec
    validate_outcome(spec, dataset) -> None
    build_design_matrix(spec, dataset) -> DesignMatrix
    build_outcome_matrix(spec, dataset) -> OutcomeMatrix
"""

from pycure.formula.spec import (
    FormulaSpec,
    encode_event,
    validate_cure_formula,
    validate_outcome,
)
from pycure.formula.design import (
    DesignMatrix,
    OutcomeMatrix,
    build_design_matrix,
    build_outcome_matrix,
    canonicalize_name,
    canonicalize_names,
    observed_levels,
    observed_values,
)

__all__ = [
    "FormulaSpec",
    "encode_event",
    "validate_cure_formula",
    "validate_outcome",
    "DesignMatrix",
    "OutcomeMatrix",
    "build_design_matrix",
    "build_outcome_matrix",
    "canonicalize_name",
    "canonicalize_names",
    "observed_levels",
    "observed_values",
]
