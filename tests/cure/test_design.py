"""
Tests for merging the outcome and both covariate matrices into one
deduplicated dataset.
"""

import numpy as np
import pandas as pd
import pytest
from numpy.testing import assert_array_equal

from pycure.core.exceptions import ValidationError
from pycure.cure.design import merge_design_matrices
from pycure.formula import DesignMatrix, OutcomeMatrix


@pytest.fixture
def frame(rng):
    n = 12
    return pd.DataFrame({
        'time': rng.uniform(1, 10, n),
        'status': rng.binomial(1, 0.5, n).astype(float),
        'A': rng.standard_normal(n),
        'B': rng.binomial(1, 0.5, n).astype(float),
        'C': rng.standard_normal(n),
    })


def design(names, X):
    X = np.asarray(X, dtype=np.float64)
    return DesignMatrix(
        X=X, column_names=tuple(names),
        column_terms=tuple(names), column_labels=tuple(names),
    )


class TestMergeDesignMatrices:
    """Structural duplicates collapse onto their first occurrence."""

    def test_shared_covariate_kept_once(self, frame, combine):
        ds = combine(frame, "Surv(time, status) ~ A + B", "~ A + C")
        assert ds.names == ('time', 'status', 'a', 'b', 'c')
        assert ds.survival_formula.covariates == ('a', 'b')
        assert ds.cure_formula.covariates == ('a', 'c')
        assert dict(ds.aliases) == {}

    def test_column_order(self, frame, combine):
        ds = combine(frame, "Surv(time, status) ~ C + A", "~ B")
        assert ds.names == ('time', 'status', 'c', 'a', 'b')
        assert_array_equal(ds.column('c'), frame['C'].to_numpy())

    def test_rebuilt_survival_formula(self, frame, combine):
        ds = combine(frame, "Surv(time, status) ~ A", "~ B")
        assert ds.survival_formula.time == 'time'
        assert ds.survival_formula.event == 'status'
        assert str(ds.survival_formula) == "Surv(time, status) ~ a"
        assert str(ds.cure_formula) == "~ b"

    def test_identical_values_under_another_name(self, frame, combine):
        frame['A_copy'] = frame['A']
        ds = combine(frame, "Surv(time, status) ~ A", "~ A_copy + B")
        assert ds.cure_formula.covariates == ('a', 'b')
        assert dict(ds.aliases) == {'a_copy': 'a'}
        assert 'a_copy' not in ds.names

    def test_covariate_equal_to_status(self, frame, combine):
        frame['event_flag'] = frame['status']
        ds = combine(frame, "Surv(time, status) ~ A", "~ event_flag")
        assert ds.cure_formula.covariates == ('status',)
        assert ds.aliases['event_flag'] == 'status'

    def test_name_collision_gets_suffix(self, frame, combine):
        frame['a'] = frame['C'] * 2.0
        ds = combine(frame, "Surv(time, status) ~ A", "~ a")
        assert ds.names == ('time', 'status', 'a', 'a_2')
        assert ds.cure_formula.covariates == ('a_2',)
        assert ds.labels['a_2'] == 'a'
        assert ds.labels['a'] == 'A'

    def test_missing_values_compared_as_equal(self, frame, combine):
        frame.loc[2, 'A'] = np.nan
        frame['A_copy'] = frame['A']
        ds = combine(frame, "Surv(time, status) ~ A", "~ A_copy")
        assert ds.cure_formula.covariates == ('a',)

    def test_partial_match_is_not_a_duplicate(self, frame, combine):
        frame['A_near'] = frame['A']
        frame.loc[0, 'A_near'] = frame.loc[0, 'A'] + 1.0
        ds = combine(frame, "Surv(time, status) ~ A", "~ A_near")
        assert ds.cure_formula.covariates == ('a_near',)

    def test_merge_is_idempotent(self, frame, combine):
        frame['A_copy'] = frame['A']
        ds = combine(frame, "Surv(time, status) ~ A + B", "~ A_copy + C")
        again = merge_design_matrices(*ds.split())
        assert again.names == ds.names
        assert_array_equal(again.values, ds.values)
        assert again.survival_formula == ds.survival_formula
        assert again.cure_formula == ds.cure_formula
        assert dict(again.aliases) == {}

    def test_factor_labels_survive(self, frame, combine):
        frame['grade'] = pd.Categorical(
            ['I', 'II', 'III'] * 4, categories=['I', 'II', 'III']
        )
        ds = combine(frame, "Surv(time, status) ~ grade", "~ grade")
        assert ds.survival_formula.covariates == ('grade_ii', 'grade_iii')
        assert ds.cure_formula.covariates == ('grade_ii', 'grade_iii')
        assert ds.labels['grade_ii'] == 'grade[II]'
        assert ds.terms['grade_iii'] == 'grade'

    def test_row_mismatch(self):
        outcome = OutcomeMatrix(
            time=np.array([1.0, 2.0, 3.0]), status=np.array([1.0, 0.0, 1.0]),
            time_name='time', status_name='status',
        )
        with pytest.raises(ValidationError, match="same rows"):
            merge_design_matrices(
                outcome, design(['a'], [[1.0], [2.0]]), design([], np.empty((3, 0)))
            )

    def test_time_equal_to_status(self):
        values = np.array([1.0, 0.0, 1.0])
        outcome = OutcomeMatrix(
            time=values, status=values, time_name='time', status_name='status',
        )
        empty = design([], np.empty((3, 0)))
        with pytest.raises(ValidationError, match="identical values"):
            merge_design_matrices(outcome, empty, empty)


class TestCombinedDataset:

    def test_complete_cases(self, frame, combine):
        frame.loc[[1, 4], 'C'] = np.nan
        ds = combine(frame, "Surv(time, status) ~ A", "~ C")
        complete, n_dropped = ds.complete_cases()
        assert n_dropped == 2
        assert complete.n_observations == 10
        assert np.all(np.isfinite(complete.values))

    def test_complete_cases_no_missing_returns_self(self, frame, combine):
        ds = combine(frame, "Surv(time, status) ~ A", "~ B")
        complete, n_dropped = ds.complete_cases()
        assert complete is ds
        assert n_dropped == 0

    def test_take_with_repeats(self, frame, combine):
        ds = combine(frame, "Surv(time, status) ~ A", "~ B")
        sample = ds.take(np.array([0, 0, 5]))
        assert sample.n_observations == 3
        assert_array_equal(sample.column('a'), frame['A'].to_numpy()[[0, 0, 5]])
        assert sample.cure_formula == ds.cure_formula

    def test_matrix_and_read_only(self, frame, combine):
        ds = combine(frame, "Surv(time, status) ~ A + B", "~ C")
        assert ds.matrix(['b', 'a']).shape == (12, 2)
        assert ds.matrix([]).shape == (12, 0)
        with pytest.raises(ValueError):
            ds.values[0, 0] = 0.0

    def test_unknown_column(self, frame, combine):
        ds = combine(frame, "Surv(time, status) ~ A", "~ B")
        with pytest.raises(KeyError):
            ds.column('A')

    def test_split_shapes(self, frame, combine):
        ds = combine(frame, "Surv(time, status) ~ A + B", "~ A")
        outcome, surv, cure = ds.split()
        assert outcome.names == ('time', 'status')
        assert surv.column_names == ('a', 'b')
        assert cure.column_names == ('a',)
        assert cure.column_labels == ('A',)
