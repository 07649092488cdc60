"""
Hierarchical clustering of pyrite analyses and elements.

METHODOLOGY NOTES:
- Distances are Manhattan (scipy 'cityblock') on CLR coordinates, which is
  less dominated by a single extreme log-ratio than Euclidean distance
- Leaves are optimally ordered so heatmaps and tanglegrams read smoothly
- The number of sample clusters is picked by silhouette on the same
  distance matrix the tree was built from
"""

from __future__ import annotations

import logging

import numpy as np
import pandas as pd
from numpy.typing import ArrayLike, NDArray
from scipy.cluster.hierarchy import linkage, fcluster, cophenet, leaves_list
from scipy.spatial.distance import pdist, squareform
from sklearn.metrics import silhouette_score

from ..config import CLUSTER_METRIC, CLUSTER_LINKAGE, N_CLUSTERS_RANGE, MIN_GROUP_SIZE

logger = logging.getLogger('pyritechem')

# These linkage updates are only defined for Euclidean distances
_EUCLIDEAN_ONLY = ('ward', 'centroid', 'median')


def _linkage(values: NDArray, metric: str, method: str) -> NDArray:
    if method in _EUCLIDEAN_ONLY and metric != 'euclidean':
        raise ValueError(f"Linkage '{method}' requires Euclidean distances, got metric='{metric}'")
    if len(values) < 2:
        raise ValueError(f"Clustering needs at least 2 observations, got {len(values)}")
    distances = pdist(values, metric=metric)
    return linkage(distances, method=method, optimal_ordering=True)


def sample_linkage(
    X: pd.DataFrame,
    metric: str = CLUSTER_METRIC,
    method: str = CLUSTER_LINKAGE
) -> NDArray:
    """Linkage matrix over analyses (rows of X)."""
    Z = _linkage(X.to_numpy(dtype=float), metric, method)
    logger.debug(f"Sample linkage: {len(X)} analyses ({method}, {metric})")
    return Z


def element_linkage(
    X: pd.DataFrame,
    metric: str = CLUSTER_METRIC,
    method: str = CLUSTER_LINKAGE
) -> NDArray:
    """Linkage matrix over elements (columns of X)."""
    Z = _linkage(X.to_numpy(dtype=float).T, metric, method)
    logger.debug(f"Element linkage: {X.shape[1]} elements ({method}, {metric})")
    return Z


def leaf_order(Z: NDArray, labels: list[str]) -> list[str]:
    """Labels in dendrogram leaf order (left to right)."""
    return [labels[i] for i in leaves_list(Z)]


def cophenetic_correlation(Z: NDArray, values: ArrayLike, metric: str = CLUSTER_METRIC) -> float:
    """
    Correlation between cophenetic and original distances.

    Pass the same orientation used to build Z (samples as rows for a sample
    tree, elements as rows for an element tree).
    """
    c, _ = cophenet(Z, pdist(np.asarray(values, dtype=float), metric=metric))
    return float(c)


def cut_tree(Z: NDArray, n_clusters: int) -> NDArray:
    """Cut a tree into at most ``n_clusters`` flat clusters labelled 1..k."""
    if n_clusters < 1:
        raise ValueError(f"n_clusters must be >= 1, got {n_clusters}")
    return fcluster(Z, t=n_clusters, criterion='maxclust')


def choose_n_clusters(
    X: pd.DataFrame,
    Z: NDArray,
    k_range: tuple[int, int] = N_CLUSTERS_RANGE,
    metric: str = CLUSTER_METRIC
) -> tuple[int, pd.DataFrame]:
    """
    Pick the cut with the highest mean silhouette width.

    Args:
        X: Sample table the tree was built from
        Z: Sample linkage matrix
        k_range: Inclusive (min, max) number of clusters to try
        metric: Distance metric used for the tree

    Returns:
        Tuple of (best k, DataFrame with k and silhouette per candidate)

    Raises:
        ValueError: If no candidate yields between 2 and n-1 clusters
    """
    k_min, k_max = k_range
    n_samples = len(X)
    distances = squareform(pdist(X.to_numpy(dtype=float), metric=metric))

    rows = []
    for k in range(max(2, k_min), k_max + 1):
        labels = cut_tree(Z, k)
        n_found = len(np.unique(labels))
        if not 2 <= n_found <= n_samples - 1:
            continue
        score = silhouette_score(distances, labels, metric='precomputed')
        rows.append({'k': k, 'n_clusters': n_found, 'silhouette': float(score)})

    if not rows:
        raise ValueError(
            f"No valid cluster count in {k_range} for {n_samples} samples"
        )

    scores = pd.DataFrame(rows)
    best = scores.loc[scores['silhouette'].idxmax()]
    logger.info(f"Cluster count: k={int(best['k'])} (silhouette={best['silhouette']:.3f})")
    return int(best['k']), scores


def cluster_composition(labels: ArrayLike, groups: pd.Series) -> pd.DataFrame:
    """Cross-tabulate cluster membership against a metadata label."""
    clusters = pd.Series(np.asarray(labels), index=groups.index, name='cluster')
    return pd.crosstab(clusters, groups)


def cluster_profiles(X: pd.DataFrame, labels: ArrayLike) -> pd.DataFrame:
    """Median CLR coordinate of each element within each cluster."""
    return X.groupby(pd.Series(np.asarray(labels), index=X.index, name='cluster')).median()


def entanglement(
    left_order: list[str],
    right_order: list[str],
    l_norm: float = 1.5
) -> float:
    """
    Normalised entanglement between two dendrogram leaf orders.

    Sum of |position difference|^l_norm over all leaves, divided by the
    value for a fully reversed order. 0 means the two trees list the leaves
    identically and 1 means one is the mirror image of the other.

    Raises:
        ValueError: If the two orders do not contain the same labels
    """
    if sorted(left_order) != sorted(right_order):
        raise ValueError("Both trees must contain the same leaf labels")

    n = len(left_order)
    if n < 2:
        return 0.0

    right_position = {label: i for i, label in enumerate(right_order)}
    left_pos = np.arange(n)
    right_pos = np.array([right_position[label] for label in left_order])

    observed = np.sum(np.abs(left_pos - right_pos) ** l_norm)
    worst = np.sum(np.abs(left_pos - left_pos[::-1]) ** l_norm)
    return float(observed / worst)


def group_element_linkages(
    X: pd.DataFrame,
    groups: pd.Series,
    min_size: int = MIN_GROUP_SIZE,
    metric: str = CLUSTER_METRIC,
    method: str = CLUSTER_LINKAGE
) -> dict[str, NDArray]:
    """
    Element linkage per metadata group, largest groups first.

    Groups with fewer than ``min_size`` analyses are skipped.
    """
    counts = groups.value_counts()
    linkages = {}
    for label, size in counts.items():
        if size < min_size:
            logger.debug(f"Skipping element tree for {label}: {size} analyses")
            continue
        members = groups.index[groups == label]
        linkages[str(label)] = element_linkage(X.loc[members], metric=metric, method=method)

    logger.info(f"Element trees for {len(linkages)}/{len(counts)} {groups.name} groups "
                f"(>= {min_size} analyses)")
    return linkages
