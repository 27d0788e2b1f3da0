"""
Latency (survival) sub-model kernels.

Public API:
    cox_fit(time, event, X, ...) -> CoxParams
    breslow_baseline_survival(time, event, risk, weights) -> BaselineSurvival
"""

from pycure.survival._common import BaselineSurvival, CoxParams
from pycure.survival._cox import breslow_baseline_survival, cox_fit

__all__ = [
    "cox_fit",
    "breslow_baseline_survival",
    "CoxParams",
    "BaselineSurvival",
]
