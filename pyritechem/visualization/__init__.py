"""
Visualization utilities.
"""

from .plots import (
    apply_style,
    finalize_figure,
    group_palette,
    plot_fill_rates,
    plot_missingness_matrix,
    plot_umap,
    plot_clustered_heatmap,
    plot_correlation_heatmap,
    plot_dendrogram,
    plot_tanglegram,
    plot_qq_grid,
    plot_silhouette_scores,
    plot_cluster_composition,
)
from .report import build_pdf_report, write_markdown_report

__all__ = [
    'apply_style',
    'finalize_figure',
    'group_palette',
    'plot_fill_rates',
    'plot_missingness_matrix',
    'plot_umap',
    'plot_clustered_heatmap',
    'plot_correlation_heatmap',
    'plot_dendrogram',
    'plot_tanglegram',
    'plot_qq_grid',
    'plot_silhouette_scores',
    'plot_cluster_composition',
    'build_pdf_report',
    'write_markdown_report',
]
