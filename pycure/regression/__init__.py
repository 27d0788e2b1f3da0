"""
Logistic regression for the cure (incidence) sub-model.

Public API:
    logistic_fit(Z, y, ...) -> LogisticParams
"""

from pycure.regression._irls import LogisticParams, logistic_fit
from pycure.regression.families import LogitLink, QuasiBinomial

__all__ = [
    "logistic_fit",
    "LogisticParams",
    "LogitLink",
    "QuasiBinomial",
]
