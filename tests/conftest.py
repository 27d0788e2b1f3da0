"""
pytest configuration and shared fixtures.
"""

import numpy as np
import pandas as pd
import pytest


def simulate_cure_data(rng, n=200, cure_fraction=0.7):
    """
    Mixture cure data with covariates A (continuous) and B (binary).

    Susceptible subjects fail with hazard exp(0.5*A + 0.7*B); cured
    subjects never fail and are censored at their follow-up time. The
    cure-logit intercept is chosen so about `cure_fraction` are cured.
    """
    A = rng.standard_normal(n)
    B = rng.binomial(1, 0.5, n).astype(float)

    logit_susceptible = np.log((1 - cure_fraction) / cure_fraction) + 0.8 * A - 0.6 * (B - 0.5)
    susceptible = rng.uniform(size=n) < 1.0 / (1.0 + np.exp(-logit_susceptible))

    event_time = rng.exponential(1.0 / np.exp(0.5 * A + 0.7 * B))
    # overlaps the event times: censored rows before the last event get 0 < w < 1
    follow_up = rng.uniform(1.5, 8.0, n)

    time = np.where(susceptible, np.minimum(event_time, follow_up), follow_up)
    status = (susceptible & (event_time <= follow_up)).astype(float)

    return pd.DataFrame({'time': time, 'status': status, 'A': A, 'B': B})


@pytest.fixture
def rng():
    """Seeded random number generator for reproducible tests."""
    return np.random.default_rng(42)


@pytest.fixture
def cure_df(rng):
    """200-row mixture cure dataset with a 70% cure fraction."""
    return simulate_cure_data(rng)


@pytest.fixture
def combine():
    """Build the deduplicated combined dataset for a pair of formulas."""
    from pycure.core.datasource import Dataset
    from pycure.cure.design import merge_design_matrices
    from pycure.formula import (
        FormulaSpec,
        build_design_matrix,
        build_outcome_matrix,
    )

    def _combine(data, survival_formula, cure_formula):
        ds = Dataset.build(data)
        surv = FormulaSpec.parse(survival_formula)
        cure = FormulaSpec.parse(cure_formula)
        return merge_design_matrices(
            build_outcome_matrix(surv, ds),
            build_design_matrix(surv, ds),
            build_design_matrix(cure, ds),
        )

    return _combine


@pytest.fixture
def simulate():
    """The cure-data simulator, for tests that need a custom size."""
    return simulate_cure_data
