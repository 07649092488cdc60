"""
UMAP projection of CLR coordinates and per-group confidence ellipses.
"""

from __future__ import annotations

import logging
import warnings
from typing import Any

import numpy as np
import pandas as pd
from numpy.typing import ArrayLike
from scipy.stats import chi2
import umap

from ..config import RANDOM_STATE, UMAP_PARAMS, ELLIPSE_CONFIDENCE

logger = logging.getLogger('pyritechem')

# Seeded UMAP runs single-threaded and says so on every call
warnings.filterwarnings('ignore', message='n_jobs value .* overridden', category=UserWarning)


def compute_umap(
    X: pd.DataFrame,
    random_state: int = RANDOM_STATE,
    **params: Any
) -> pd.DataFrame:
    """
    Project samples onto two UMAP axes.

    Args:
        X: Sample x element table (CLR coordinates)
        random_state: Seed for the stochastic layout
        **params: Overrides for UMAP_PARAMS (n_neighbors, min_dist, metric...)

    Returns:
        DataFrame with UMAP1, UMAP2 columns on X's index

    Raises:
        ValueError: If there are fewer than 3 samples or X has missing values
    """
    if len(X) < 3:
        raise ValueError(f"UMAP needs at least 3 samples, got {len(X)}")
    if X.isna().any().any():
        raise ValueError("UMAP input contains missing values; impute first")

    settings = {**UMAP_PARAMS, **params}
    n_neighbors = min(int(settings['n_neighbors']), len(X) - 1)
    if n_neighbors != settings['n_neighbors']:
        logger.info(f"UMAP: n_neighbors reduced to {n_neighbors} for {len(X)} samples")
    settings['n_neighbors'] = n_neighbors

    reducer = umap.UMAP(random_state=random_state, **settings)
    embedding = reducer.fit_transform(X.to_numpy(dtype=float))

    n_components = embedding.shape[1]
    columns = [f"UMAP{i + 1}" for i in range(n_components)]
    logger.info(f"UMAP: {len(X)} samples x {X.shape[1]} elements -> {n_components} axes "
                f"(n_neighbors={n_neighbors}, min_dist={settings['min_dist']}, "
                f"metric={settings['metric']})")
    return pd.DataFrame(embedding, index=X.index, columns=columns)


def confidence_ellipse_params(
    points: ArrayLike,
    confidence: float = ELLIPSE_CONFIDENCE
) -> dict[str, Any] | None:
    """
    Covariance ellipse enclosing ``confidence`` of a bivariate normal.

    Args:
        points: (n, 2) array of coordinates
        confidence: Coverage probability in (0, 1)

    Returns:
        Dict with center, width, height (full axis lengths) and angle in
        degrees, or None when fewer than 3 points are given
    """
    if not 0.0 < confidence < 1.0:
        raise ValueError(f"confidence must be in (0, 1), got {confidence}")

    pts = np.asarray(points, dtype=float)
    if pts.ndim != 2 or pts.shape[1] != 2:
        raise ValueError(f"Expected (n, 2) coordinates, got shape {pts.shape}")
    if len(pts) < 3:
        return None

    cov = np.cov(pts, rowvar=False)
    eigvals, eigvecs = np.linalg.eigh(cov)
    # eigh sorts ascending; major axis last
    order = eigvals.argsort()[::-1]
    eigvals = np.clip(eigvals[order], 0.0, None)
    eigvecs = eigvecs[:, order]

    scale = np.sqrt(chi2.ppf(confidence, df=2))
    width, height = 2.0 * scale * np.sqrt(eigvals)
    angle = float(np.degrees(np.arctan2(eigvecs[1, 0], eigvecs[0, 0])))

    return {
        'center': tuple(pts.mean(axis=0)),
        'width': float(width),
        'height': float(height),
        'angle': angle,
    }
