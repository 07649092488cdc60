"""
Unit tests for summary tables and QQ data.
"""

import numpy as np
import pandas as pd
import pytest

from pyritechem.analysis.statistics import (
    fill_rate_table,
    imputation_summary,
    normality_table,
    qq_data,
)
from pyritechem.data.loader import compute_fill_rates


class TestFillRateTable:
    """Tests for fill_rate_table function."""

    def test_percentages_and_flags(self):
        fill = pd.Series({'As75': 0.95, 'Au197': 0.5, 'Te125': 0.2}, name='fill_rate')
        table = fill_rate_table(fill, retained=['As75', 'Au197'])

        assert table.loc['As75', 'fill_rate_pct'] == 95.0
        assert table.loc['Te125', 'fill_rate_pct'] == 20.0
        assert table['retained'].tolist() == [True, True, False]
        assert table.index.name == 'element'

    def test_sorted_descending(self, pyrite_dataset):
        fill = compute_fill_rates(pyrite_dataset)
        table = fill_rate_table(fill, retained=fill.index[:3].tolist())
        assert table['fill_rate_pct'].is_monotonic_decreasing
        assert table['retained'].sum() == 3


class TestImputationSummary:
    """Tests for imputation_summary function."""

    def test_counts_and_ranges(self):
        original = pd.DataFrame({'Au197': [1.0, np.nan, 3.0, np.nan], 'As75': [5.0, 6.0, 7.0, 8.0]})
        imputed = pd.DataFrame({'Au197': [1.0, 0.2, 3.0, 0.4], 'As75': [5.0, 6.0, 7.0, 8.0]})
        mask = original.isna()

        summary = imputation_summary(original, imputed, mask)

        assert summary.loc['Au197', 'n_imputed'] == 2
        assert summary.loc['Au197', 'pct_imputed'] == 50.0
        assert summary.loc['Au197', 'imputed_min'] == 0.2
        assert summary.loc['Au197', 'imputed_max'] == 0.4
        assert summary.loc['Au197', 'observed_min'] == 1.0
        assert summary.loc['Au197', 'observed_max'] == 3.0

    def test_nothing_imputed_is_nan(self):
        original = pd.DataFrame({'As75': [5.0, 6.0]})
        summary = imputation_summary(original, original, original.isna())

        assert summary.loc['As75', 'n_imputed'] == 0
        assert np.isnan(summary.loc['As75', 'imputed_min'])


class TestNormalityTable:
    """Tests for normality_table function."""

    def test_columns(self, clustered_clr):
        X, _ = clustered_clr
        table = normality_table(X)

        assert list(table.columns) == ['shapiro_w', 'p_value', 'skewness']
        assert list(table.index) == list(X.columns)
        assert table['p_value'].between(0, 1).all()

    def test_normal_vs_skewed(self):
        rng = np.random.default_rng(0)
        X = pd.DataFrame({
            'normal': rng.normal(size=300),
            'skewed': rng.lognormal(sigma=1.0, size=300),
        })
        table = normality_table(X)

        assert table.loc['normal', 'p_value'] > table.loc['skewed', 'p_value']
        assert table.loc['skewed', 'skewness'] > 1.0

    def test_constant_column_is_nan(self):
        X = pd.DataFrame({'flat': [1.0] * 10})
        assert np.isnan(normality_table(X).loc['flat', 'p_value'])


class TestQQData:
    """Tests for qq_data function."""

    def test_normal_sample_near_line(self):
        rng = np.random.default_rng(0)
        qq = qq_data(rng.normal(loc=2.0, scale=3.0, size=500))

        assert qq['r'] > 0.99
        assert qq['slope'] == pytest.approx(3.0, rel=0.1)
        assert qq['intercept'] == pytest.approx(2.0, abs=0.3)

    def test_sorted_quantiles(self):
        qq = qq_data([3.0, 1.0, 2.0, 5.0, 4.0])
        assert np.all(np.diff(qq['sample']) >= 0)
        assert np.all(np.diff(qq['theoretical']) > 0)
        assert len(qq['theoretical']) == 5

    def test_ignores_nan(self):
        qq = qq_data([1.0, np.nan, 2.0, 3.0, 4.0])
        assert len(qq['sample']) == 4

    def test_too_few_values_raise(self):
        with pytest.raises(ValueError, match="at least 3"):
            qq_data([1.0, np.nan, 2.0])
