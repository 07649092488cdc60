"""
Unit tests for the UMAP projection and confidence ellipses.
"""

import numpy as np
import pandas as pd
import pytest

from pyritechem.analysis.embedding import compute_umap, confidence_ellipse_params


class TestComputeUmap:
    """Tests for compute_umap function."""

    def test_output_shape_and_index(self, clustered_clr):
        X, _ = clustered_clr
        embedding = compute_umap(X)

        assert embedding.shape == (len(X), 2)
        assert list(embedding.columns) == ['UMAP1', 'UMAP2']
        assert embedding.index.equals(X.index)
        assert np.isfinite(embedding.to_numpy()).all()

    def test_deterministic_with_seed(self, clustered_clr):
        X, _ = clustered_clr
        first = compute_umap(X, random_state=42)
        second = compute_umap(X, random_state=42)
        np.testing.assert_allclose(first.to_numpy(), second.to_numpy())

    def test_separates_groups(self, clustered_clr):
        """Test that group centroids are further apart than group spread."""
        X, groups = clustered_clr
        embedding = compute_umap(X)
        centroids = embedding.groupby(groups).mean()
        spread = embedding.groupby(groups).std().mean().mean()

        distances = [
            np.linalg.norm(centroids.iloc[i] - centroids.iloc[j])
            for i in range(3) for j in range(i + 1, 3)
        ]
        assert min(distances) > spread

    def test_small_sample_reduces_neighbors(self, clustered_clr):
        X, _ = clustered_clr
        embedding = compute_umap(X.iloc[:10], n_neighbors=15)
        assert embedding.shape == (10, 2)

    def test_parameter_override(self, clustered_clr):
        X, _ = clustered_clr
        embedding = compute_umap(X, n_components=3)
        assert list(embedding.columns) == ['UMAP1', 'UMAP2', 'UMAP3']

    def test_too_few_samples_raise(self, clustered_clr):
        X, _ = clustered_clr
        with pytest.raises(ValueError, match="at least 3"):
            compute_umap(X.iloc[:2])

    def test_missing_values_raise(self, clustered_clr):
        X, _ = clustered_clr
        X = X.copy()
        X.iloc[0, 0] = np.nan
        with pytest.raises(ValueError, match="missing"):
            compute_umap(X)


class TestConfidenceEllipse:
    """Tests for confidence_ellipse_params function."""

    def test_axis_aligned(self):
        """Test widths for independent axes with known variances."""
        rng = np.random.default_rng(0)
        points = np.column_stack([rng.normal(0, 2.0, 5000), rng.normal(0, 0.5, 5000)])
        params = confidence_ellipse_params(points, confidence=0.95)

        scale = 2 * np.sqrt(5.991)  # chi2(2) 95% quantile
        assert params['width'] == pytest.approx(scale * 2.0, rel=0.05)
        assert params['height'] == pytest.approx(scale * 0.5, rel=0.05)
        assert abs(np.sin(np.radians(params['angle']))) < 0.05

    def test_center_is_mean(self):
        points = np.array([[0.0, 0.0], [2.0, 0.0], [0.0, 2.0], [2.0, 2.0]])
        params = confidence_ellipse_params(points)
        assert params['center'] == pytest.approx((1.0, 1.0))

    def test_rotated(self):
        """Test that a diagonal cloud gives a 45 degree major axis."""
        rng = np.random.default_rng(1)
        t = rng.normal(0, 1.0, 2000)
        points = np.column_stack([t, t + rng.normal(0, 0.1, 2000)])
        params = confidence_ellipse_params(points)
        assert abs(np.tan(np.radians(params['angle']))) == pytest.approx(1.0, rel=0.1)

    def test_larger_confidence_wider(self):
        rng = np.random.default_rng(2)
        points = rng.normal(size=(100, 2))
        small = confidence_ellipse_params(points, confidence=0.5)
        large = confidence_ellipse_params(points, confidence=0.99)
        assert large['width'] > small['width']

    def test_too_few_points_returns_none(self):
        assert confidence_ellipse_params(np.array([[0.0, 1.0], [1.0, 2.0]])) is None

    @pytest.mark.parametrize("confidence", [0.0, 1.0, 1.5])
    def test_invalid_confidence(self, confidence):
        with pytest.raises(ValueError, match="confidence"):
            confidence_ellipse_params(np.zeros((5, 2)), confidence=confidence)

    def test_wrong_shape(self):
        with pytest.raises(ValueError, match="shape"):
            confidence_ellipse_params(np.zeros((5, 3)))

    def test_accepts_dataframe(self):
        df = pd.DataFrame({'UMAP1': [0.0, 1.0, 2.0, 1.0], 'UMAP2': [0.0, 1.0, 0.0, -1.0]})
        assert confidence_ellipse_params(df) is not None
