"""
Edge case tests for the pyrite analysis.

Tests for boundary conditions and unusual inputs in laboratory exports:
tiny batches, elements never detected, missing LOD columns.
"""

from __future__ import annotations

import numpy as np
import pandas as pd
import pytest

from pyritechem.config import MIN_FILL_RATE
from pyritechem.data.loader import (
    censor_below_lod,
    compute_fill_rates,
    drop_unlabelled,
    select_elements,
    split_columns,
)
from pyritechem.data.transformers import (
    CLRTransformer,
    HighMissingRemover,
    RandomForestImputer,
    ZeroVarianceRemover,
)

from conftest import make_pyrite_frame


class TestTransformerEdgeCases:
    """Edge cases for the sklearn transformers."""

    def test_high_missing_remover_all_missing_column(self):
        df = pd.DataFrame({'Au197': [1.0, 2.0, 3.0], 'Te125': [np.nan] * 3})
        result = HighMissingRemover(min_fill_rate=0.5).fit_transform(df)
        assert list(result.columns) == ['Au197']

    def test_high_missing_remover_all_columns_removed(self):
        df = pd.DataFrame({'a': [np.nan, np.nan, 1.0], 'b': [np.nan, np.nan, np.nan]})
        result = HighMissingRemover(min_fill_rate=0.5).fit_transform(df)
        assert result.shape == (3, 0)

    def test_zero_variance_remover_all_nan_column(self):
        df = pd.DataFrame({'a': [1.0, 2.0], 'b': [np.nan, np.nan]})
        transformer = ZeroVarianceRemover().fit(df)
        assert transformer.all_nan_features_ == ['b']
        assert transformer.features_to_keep_ == ['a']

    def test_zero_variance_remover_single_row(self):
        """A single analysis has no variance anywhere."""
        df = pd.DataFrame({'a': [1.0], 'b': [2.0]})
        result = ZeroVarianceRemover().fit_transform(df)
        assert result.shape == (1, 0)

    def test_imputer_complete_data_is_identity(self, composition_df):
        """Nothing to impute returns the input values."""
        imputer = RandomForestImputer(n_estimators=5, max_iter=2)
        result = imputer.fit_transform(composition_df)
        pd.testing.assert_frame_equal(result, composition_df)
        assert not imputer.imputed_mask_.any().any()

    def test_clr_two_parts(self):
        """Two parts give symmetric coordinates."""
        df = pd.DataFrame({'a': [1.0, 4.0], 'b': [4.0, 1.0]})
        result = CLRTransformer().fit_transform(df)
        np.testing.assert_allclose(result['a'], -result['b'])


class TestInputValidation:
    """Tests for input validation edge cases."""

    def test_high_missing_fill_rate_validation(self):
        """HighMissingRemover validates min_fill_rate bounds."""
        with pytest.raises(ValueError, match="min_fill_rate must be in"):
            HighMissingRemover(min_fill_rate=1.5)

        with pytest.raises(ValueError, match="min_fill_rate must be in"):
            HighMissingRemover(min_fill_rate=-0.1)

    def test_high_missing_fill_rate_type_validation(self):
        """HighMissingRemover validates min_fill_rate type."""
        with pytest.raises(TypeError, match="min_fill_rate must be numeric"):
            HighMissingRemover(min_fill_rate="0.5")

        with pytest.raises(TypeError, match="min_fill_rate must be numeric"):
            HighMissingRemover(min_fill_rate=True)

    @pytest.mark.parametrize("transformer", [
        HighMissingRemover(),
        ZeroVarianceRemover(),
        RandomForestImputer(n_estimators=5),
        CLRTransformer(),
    ])
    def test_transformer_requires_dataframe(self, transformer):
        """Transformers require DataFrame input."""
        X_array = np.random.default_rng(0).uniform(1, 2, size=(10, 5))

        with pytest.raises(TypeError, match="requires pandas DataFrame"):
            transformer.fit(X_array)


class TestExportEdgeCases:
    """Edge cases in the shape of the laboratory export."""

    def test_no_lod_columns(self):
        """Without LOD columns detection falls back to presence."""
        df = make_pyrite_frame(n_samples=12)
        df = df.drop(columns=[c for c in df.columns if c.endswith('_LOD')])

        dataset = split_columns(df)
        fill = compute_fill_rates(dataset)

        assert dataset.lod.isna().all().all()
        # Only the marker cells and the zero reading are missing
        assert fill['Cu63'] == pytest.approx(11 / 12)
        assert fill['Au197'] == 1.0

    def test_unpaired_lod_column_ignored(self):
        df = make_pyrite_frame(n_samples=12)
        df['Hg202_LOD'] = 0.1
        dataset = split_columns(df)
        assert 'Hg202' not in dataset.elements
        assert 'Hg202_LOD' not in dataset.elements

    def test_tiny_batch_selection(self):
        """Three labelled analyses still go through censoring and selection."""
        df = make_pyrite_frame(n_samples=5, n_unlabelled=2)
        dataset = drop_unlabelled(split_columns(df))
        selected = select_elements(censor_below_lod(dataset), MIN_FILL_RATE)

        assert dataset.n_samples == 3
        assert len(selected.elements) >= 2

    def test_element_never_detected(self):
        df = make_pyrite_frame(n_samples=12)
        df['Au197'] = df['Au197_LOD'] / 2
        dataset = split_columns(df)
        assert compute_fill_rates(dataset)['Au197'] == 0.0
        assert 'Au197' not in select_elements(censor_below_lod(dataset), 0.5).elements
