"""
Dimensionality reduction, clustering and summary statistics.
"""

from .embedding import compute_umap, confidence_ellipse_params
from .clustering import (
    sample_linkage,
    element_linkage,
    leaf_order,
    cophenetic_correlation,
    cut_tree,
    choose_n_clusters,
    cluster_composition,
    cluster_profiles,
    entanglement,
    group_element_linkages,
)
from .statistics import (
    fill_rate_table,
    imputation_summary,
    normality_table,
    qq_data,
)

__all__ = [
    'compute_umap',
    'confidence_ellipse_params',
    'sample_linkage',
    'element_linkage',
    'leaf_order',
    'cophenetic_correlation',
    'cut_tree',
    'choose_n_clusters',
    'cluster_composition',
    'cluster_profiles',
    'entanglement',
    'group_element_linkages',
    'fill_rate_table',
    'imputation_summary',
    'normality_table',
    'qq_data',
]
