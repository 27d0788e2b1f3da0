"""
Tests for design matrix construction.

Validates:
    - Numeric passthrough and treatment coding of categorical covariates
    - Canonical column names and collision handling
    - Level snapshots used for new-data checks
    - Outcome matrix encoding
"""

import numpy as np
import pandas as pd
import pytest

from pycure.core.datasource import Dataset
from pycure.core.exceptions import FormulaError, ValidationError
from pycure.formula import (
    FormulaSpec,
    build_design_matrix,
    build_outcome_matrix,
    canonicalize_name,
    canonicalize_names,
    observed_levels,
    observed_values,
)


@pytest.fixture
def mixed_ds():
    return Dataset.from_dataframe(pd.DataFrame({
        'Age': [50.0, 61.0, 47.0, 70.0, 55.0],
        'grade': pd.Categorical(
            ['low', 'high', 'mid', 'low', 'high'],
            categories=['low', 'mid', 'high'],
        ),
        'site': ['lung', 'breast', 'lung', 'colon', 'breast'],
        'arm': [1.0, 2.0, 3.0, 1.0, 2.0],
    }))


class TestCanonicalNames:

    def test_lower_case_and_delimiters(self):
        assert canonicalize_name("Tumor Grade (II)") == "tumor_grade_ii"
        assert canonicalize_name("trt.group") == "trt_group"

    def test_leading_digit(self):
        assert canonicalize_name("2nd.line") == "x2nd_line"

    def test_collisions_get_suffixes(self):
        assert canonicalize_names(["A", "a", "a "]) == ("a", "a_2", "a_3")


class TestBuildDesignMatrix:
    """Covariates expand to numeric columns with no intercept."""

    def test_numeric_passthrough(self, mixed_ds):
        design = build_design_matrix(FormulaSpec.one_sided(['Age']), mixed_ds)
        assert design.column_names == ('age',)
        assert design.column_labels == ('Age',)
        np.testing.assert_array_equal(design.X[:, 0], [50.0, 61.0, 47.0, 70.0, 55.0])

    def test_factor_treatment_coding(self, mixed_ds):
        design = build_design_matrix(FormulaSpec.one_sided(['grade']), mixed_ds)
        assert design.column_names == ('grade_mid', 'grade_high')
        assert design.column_labels == ('grade[mid]', 'grade[high]')
        assert design.column_terms == ('grade', 'grade')
        assert design.reference_levels['grade'] == 'low'
        np.testing.assert_array_equal(design.column('grade_high'), [0, 1, 0, 0, 1])

    def test_character_levels_sorted(self, mixed_ds):
        design = build_design_matrix(FormulaSpec.one_sided(['site']), mixed_ds)
        assert design.reference_levels['site'] == 'breast'
        assert design.column_names == ('site_colon', 'site_lung')

    def test_factor_wrapped_numeric(self, mixed_ds):
        spec = FormulaSpec.parse("~ factor(arm)")
        design = build_design_matrix(spec, mixed_ds)
        assert design.column_names == ('arm_2', 'arm_3')
        assert design.column_labels == ('arm[2]', 'arm[3]')

    def test_unobserved_level_not_coded(self):
        df = pd.DataFrame({
            'g': pd.Categorical(['a', 'b', 'a'], categories=['a', 'b', 'c']),
        })
        ds = Dataset.from_dataframe(df)
        spec = FormulaSpec.one_sided(['g'])
        design = build_design_matrix(spec, ds)
        assert design.column_names == ('g_b',)
        assert observed_levels(spec, ds) == {'g': ('a', 'b', 'c')}

    def test_missing_categorical_gives_nan_row(self):
        ds = Dataset.from_mapping({'g': np.array(['a', None, 'b'], dtype=object)})
        design = build_design_matrix(FormulaSpec.one_sided(['g']), ds)
        assert np.isnan(design.X[1, 0])
        assert design.X[2, 0] == 1.0

    def test_single_level_rejected(self):
        ds = Dataset.from_mapping({'g': ['a', 'a', 'a']})
        with pytest.raises(ValidationError, match="at least 2 observed levels"):
            build_design_matrix(FormulaSpec.one_sided(['g']), ds)

    def test_unknown_covariate(self, mixed_ds):
        with pytest.raises(FormulaError, match="not a column"):
            build_design_matrix(FormulaSpec.one_sided(['weight']), mixed_ds)

    def test_empty_rhs(self, mixed_ds):
        design = build_design_matrix(FormulaSpec.one_sided([]), mixed_ds)
        assert design.X.shape == (5, 0)

    def test_matrix_is_read_only(self, mixed_ds):
        design = build_design_matrix(FormulaSpec.one_sided(['Age']), mixed_ds)
        with pytest.raises(ValueError):
            design.X[0, 0] = 1.0

    def test_unknown_column_lookup(self, mixed_ds):
        design = build_design_matrix(FormulaSpec.one_sided(['Age']), mixed_ds)
        with pytest.raises(KeyError):
            design.column('Age')


class TestLevelSnapshots:

    def test_continuous_covariates_omitted(self, mixed_ds):
        spec = FormulaSpec.parse("~ Age + grade + site")
        levels = observed_levels(spec, mixed_ds)
        assert set(levels) == {'grade', 'site'}
        assert levels['site'] == ('breast', 'colon', 'lung')

    def test_observed_values_of_numeric(self, mixed_ds):
        assert observed_values(mixed_ds['arm']) == {'1', '2', '3'}


class TestOutcomeMatrix:

    def test_names_and_encoding(self):
        ds = Dataset.from_mapping({
            'Time': [1.0, 2.0, 3.0],
            'Status': [1, 2, 2],
        })
        spec = FormulaSpec.survival('Time', 'Status', [])
        outcome = build_outcome_matrix(spec, ds)
        assert outcome.names == ('time', 'status')
        np.testing.assert_array_equal(outcome.status, [0.0, 1.0, 1.0])
        assert outcome.n == 3
