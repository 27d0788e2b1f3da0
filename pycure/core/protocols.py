"""
Core protocols for pycure.

These define structural interfaces that implementations must satisfy.
We use Protocol (structural typing) rather than ABC (nominal typing) so
that alternative fit engines and result types can be supplied without
inheriting from library classes.

Design Principles:
    - Minimal contracts: prescribe only what's truly universal
    - Fixed operations instead of runtime type-tag dispatch
"""

from __future__ import annotations

from typing import Protocol, Any, Mapping, TYPE_CHECKING, runtime_checkable

if TYPE_CHECKING:
    from pycure.cure._common import CoefficientTable, RawFit
    from pycure.cure.design import CombinedDataset
    from pycure.formula.spec import FormulaSpec


@runtime_checkable
class FitEngine(Protocol):
    """
    Protocol for the joint cure/latency estimator.

    The bootstrap and the point fit both call ``fit`` with the
    reconstructed formulas and a CombinedDataset (or a resampled copy).
    Engines must be deterministic for a given input and tolerance, and
    must not mutate the dataset.
    """

    @property
    def name(self) -> str:
        """
        Engine identifier.

        Convention: '{device}_{algorithm}', e.g. 'cpu_em_ph'.
        """
        ...

    def fit(
        self,
        survival_formula: 'FormulaSpec',
        cure_formula: 'FormulaSpec',
        dataset: 'CombinedDataset',
        tolerance: float,
        variance_requested: bool,
    ) -> 'RawFit':
        """
        Estimate the hazard (beta) and cure-logit (b) coefficients.

        Returns:
            RawFit with coefficients keyed by formula term names and a
            convergence flag

        Raises:
            NumericalError: If the estimate cannot be computed (singular
                design, non-finite values)
            ValidationError: If the dataset does not match the formulas
        """
        ...


@runtime_checkable
class CureModel(Protocol):
    """
    Operations every fitted mixture cure model exposes to reporting,
    prediction and nomogram collaborators.
    """

    def coefficients(self, component: str) -> Mapping[str, float]:
        """Name -> estimate mapping for 'cure' or 'survival'."""
        ...

    def tidy(self, component: str, intercept: bool = False) -> 'CoefficientTable':
        """Term-aligned coefficient table for 'cure' or 'survival'."""
        ...

    def validate_new_data(self, data: Any) -> None:
        """Raise ValidationError if data cannot be scored by this model."""
        ...
