"""
Publication figures for the pyrite trace-element analysis.
"""

from __future__ import annotations

import logging
import warnings
from pathlib import Path
from typing import Any

import numpy as np
import pandas as pd
import matplotlib.pyplot as plt
import missingno as msno
import seaborn as sns
from matplotlib.colors import to_hex
from matplotlib.figure import Figure
from matplotlib.patches import Ellipse, Patch
from numpy.typing import NDArray
from scipy.cluster.hierarchy import dendrogram

from ..analysis.clustering import entanglement, leaf_order
from ..analysis.embedding import confidence_ellipse_params
from ..analysis.statistics import qq_data
from ..config import VIZ_CONFIG, ELLIPSE_CONFIDENCE, MIN_FILL_RATE, CLUSTER_LINKAGE, CLUSTER_METRIC
from ..data.loader import element_labels

logger = logging.getLogger('pyritechem')

# Suppress tight_layout chatter from clustermap and missingno
warnings.filterwarnings('ignore', category=UserWarning, module='matplotlib')


def apply_style() -> None:
    """Apply the seaborn theme used by every figure."""
    sns.set_theme(
        context=VIZ_CONFIG['context'],
        style=VIZ_CONFIG['style'],
        palette=VIZ_CONFIG['palette'],
    )


def finalize_figure(
    save_path: str | Path | None = None,
    close: bool = True,
    fig: Figure | None = None
) -> None:
    """
    Finalize figure with consistent save settings.

    Args:
        save_path: Optional path to save the figure. If None, figure is not saved.
        close: Whether to close the figure after saving (default: True)
        fig: Figure to save; defaults to the current figure
    """
    fig = fig or plt.gcf()
    if save_path is not None:
        fig.savefig(save_path, dpi=VIZ_CONFIG['dpi'], bbox_inches='tight', facecolor='white')
        logger.debug(f"Saved figure: {save_path}")
    if close:
        plt.close(fig)


def group_palette(groups: pd.Series) -> dict[str, Any]:
    """Stable label -> color mapping for a categorical column."""
    if isinstance(groups.dtype, pd.CategoricalDtype):
        labels = [c for c in groups.cat.categories if c in set(groups.dropna())]
    else:
        labels = sorted(groups.dropna().astype(str).unique())
    base = sns.color_palette(VIZ_CONFIG['palette'])
    colors = base if len(labels) <= len(base) else sns.color_palette('husl', len(labels))
    return {str(label): to_hex(colors[i]) for i, label in enumerate(labels)}


def plot_fill_rates(
    fill_table: pd.DataFrame,
    threshold: float = MIN_FILL_RATE,
    save_path: str | Path | None = None
) -> dict[str, int]:
    """
    Bar chart of element fill rates with the retention threshold.

    Args:
        fill_table: Output of fill_rate_table (fill_rate_pct, retained)
        threshold: Retention threshold as a fraction
        save_path: Optional path to save the figure

    Returns:
        Dict with n_retained and n_dropped
    """
    colors = [
        VIZ_CONFIG['retained_color'] if kept else VIZ_CONFIG['dropped_color']
        for kept in fill_table['retained']
    ]

    names = element_labels(fill_table.index.tolist())
    fig, ax = plt.subplots(figsize=VIZ_CONFIG['figsize_wide'])
    ax.bar([names[el] for el in fill_table.index], fill_table['fill_rate_pct'],
           color=colors, edgecolor='none')
    ax.axhline(threshold * 100, color=VIZ_CONFIG['threshold_color'], linestyle='--', linewidth=1.2)

    ax.set_ylabel('Analyses above LOD (%)', fontsize=VIZ_CONFIG['label_fontsize'])
    ax.set_xlabel('Element', fontsize=VIZ_CONFIG['label_fontsize'])
    ax.set_ylim(0, 105)
    ax.set_xlim(-0.6, len(fill_table) - 0.4)
    ax.tick_params(axis='x', labelrotation=90, labelsize=VIZ_CONFIG['tick_fontsize'])
    ax.legend(
        handles=[
            Patch(color=VIZ_CONFIG['retained_color'], label='Retained'),
            Patch(color=VIZ_CONFIG['dropped_color'], label='Dropped'),
            plt.Line2D([], [], color=VIZ_CONFIG['threshold_color'], linestyle='--',
                       label=f'Threshold ({threshold:.0%})'),
        ],
        loc='upper right', frameon=True,
    )
    ax.set_title('Element fill rates', fontsize=VIZ_CONFIG['title_fontsize'], fontweight='bold')

    plt.tight_layout()
    finalize_figure(save_path, fig=fig)

    n_retained = int(fill_table['retained'].sum())
    return {'n_retained': n_retained, 'n_dropped': int(len(fill_table) - n_retained)}


def plot_missingness_matrix(
    concentrations: pd.DataFrame,
    save_path: str | Path | None = None
) -> dict[str, float]:
    """Missingno matrix of censored concentrations (white = below LOD/missing)."""
    ax = msno.matrix(
        concentrations,
        figsize=VIZ_CONFIG['figsize_wide'],
        fontsize=VIZ_CONFIG['tick_fontsize'],
        sparkline=False,
        color=(0.12, 0.23, 0.37),
    )
    ax.set_title('Censored and missing concentrations', fontsize=VIZ_CONFIG['title_fontsize'])
    finalize_figure(save_path, fig=ax.get_figure())

    return {'missing_pct': float(100.0 * concentrations.isna().values.mean())}


def plot_umap(
    embedding: pd.DataFrame,
    groups: pd.Series,
    confidence: float = ELLIPSE_CONFIDENCE,
    title: str | None = None,
    save_path: str | Path | None = None
) -> dict[str, Any]:
    """
    UMAP scatter colored by group, with a confidence ellipse per group.

    Args:
        embedding: DataFrame with UMAP1, UMAP2 columns
        groups: Group label per analysis (aligned with embedding)
        confidence: Ellipse coverage
        title: Figure title (defaults to the group column name)
        save_path: Optional path to save the figure

    Returns:
        Dict with ellipse parameters per group (None for groups < 3 points)
    """
    groups = groups.loc[embedding.index]
    palette = group_palette(groups)

    fig, ax = plt.subplots(figsize=VIZ_CONFIG['figsize_square'])
    ellipses = {}

    for label, color in palette.items():
        points = embedding.loc[groups.astype(str) == label, ['UMAP1', 'UMAP2']]
        ax.scatter(points['UMAP1'], points['UMAP2'], s=VIZ_CONFIG['marker_size'],
                   color=color, alpha=0.8, edgecolor='white', linewidth=0.3,
                   label=f"{label} (n={len(points)})")

        params = confidence_ellipse_params(points.to_numpy(), confidence)
        ellipses[label] = params
        if params is None:
            continue
        ax.add_patch(Ellipse(
            xy=params['center'], width=params['width'], height=params['height'],
            angle=params['angle'], facecolor=color, edgecolor=color,
            alpha=0.15, linewidth=1.5,
        ))
        ax.add_patch(Ellipse(
            xy=params['center'], width=params['width'], height=params['height'],
            angle=params['angle'], facecolor='none', edgecolor=color, linewidth=1.2,
        ))

    ax.set_xlabel('UMAP 1', fontsize=VIZ_CONFIG['label_fontsize'])
    ax.set_ylabel('UMAP 2', fontsize=VIZ_CONFIG['label_fontsize'])
    ax.set_title(title or f'UMAP by {groups.name}', fontsize=VIZ_CONFIG['title_fontsize'],
                 fontweight='bold')
    ax.legend(loc='best', fontsize=8, frameon=True, title=f'{confidence:.0%} ellipses')

    plt.tight_layout()
    finalize_figure(save_path, fig=fig)

    return {'ellipses': ellipses}


def plot_clustered_heatmap(
    X: pd.DataFrame,
    row_linkage: NDArray,
    col_linkage: NDArray,
    row_groups: pd.DataFrame | None = None,
    save_path: str | Path | None = None
) -> dict[str, list]:
    """
    CLR heatmap with sample and element dendrograms.

    Args:
        X: Analyses x elements (CLR)
        row_linkage: Sample linkage
        col_linkage: Element linkage
        row_groups: Metadata columns drawn as color bars beside the rows
        save_path: Optional path to save the figure

    Returns:
        Dict with row_order (index labels) and col_order (element names)
    """
    row_colors = None
    legends = []
    if row_groups is not None:
        row_colors = pd.DataFrame(index=X.index)
        for column in row_groups.columns:
            palette = group_palette(row_groups[column])
            row_colors[column] = row_groups[column].astype(str).map(palette)
            legends.append((column, palette))

    limit = float(np.nanpercentile(np.abs(X.to_numpy()), 98))
    grid = sns.clustermap(
        X,
        row_linkage=row_linkage,
        col_linkage=col_linkage,
        row_colors=row_colors,
        cmap=VIZ_CONFIG['heatmap_cmap'],
        center=0,
        vmin=-limit,
        vmax=limit,
        yticklabels=False,
        xticklabels=list(element_labels(X.columns.tolist()).values()),
        figsize=VIZ_CONFIG['figsize_tall'],
        cbar_kws={'label': 'CLR'},
        dendrogram_ratio=(0.15, 0.12),
    )
    grid.ax_heatmap.tick_params(axis='x', labelsize=VIZ_CONFIG['tick_fontsize'])
    grid.ax_heatmap.set_xlabel('')
    grid.ax_heatmap.set_ylabel(f'Analyses (n={len(X)})')

    for i, (column, palette) in enumerate(legends):
        handles = [Patch(color=color, label=label) for label, color in palette.items()]
        grid.ax_col_dendrogram.legend(
            handles=handles, title=column, fontsize=7, title_fontsize=8,
            loc='upper left', bbox_to_anchor=(1.02 + 0.22 * i, 1.0), frameon=False,
        )

    finalize_figure(save_path, fig=grid.figure)

    return {
        'row_order': X.index[grid.dendrogram_row.reordered_ind].tolist(),
        'col_order': X.columns[grid.dendrogram_col.reordered_ind].tolist(),
    }


def plot_correlation_heatmap(
    X: pd.DataFrame,
    method: str = 'spearman',
    save_path: str | Path | None = None
) -> dict[str, Any]:
    """Clustered element correlation matrix."""
    corr = X.corr(method=method)
    names = list(element_labels(corr.columns.tolist()).values())

    grid = sns.clustermap(
        corr,
        method=CLUSTER_LINKAGE,
        metric=CLUSTER_METRIC,
        cmap=VIZ_CONFIG['correlation_cmap'],
        vmin=-1,
        vmax=1,
        center=0,
        xticklabels=names,
        yticklabels=names,
        figsize=VIZ_CONFIG['figsize_square'],
        cbar_kws={'label': f'{method.capitalize()} r'},
    )
    grid.ax_heatmap.tick_params(labelsize=VIZ_CONFIG['tick_fontsize'])
    finalize_figure(save_path, fig=grid.figure)

    return {
        'correlation': corr,
        'order': corr.columns[grid.dendrogram_col.reordered_ind].tolist(),
    }


def plot_dendrogram(
    Z: NDArray,
    labels: list[str],
    title: str = 'Element dendrogram',
    save_path: str | Path | None = None
) -> dict[str, list[str]]:
    """Single dendrogram labelled by element symbol; returns leaves as column names."""
    names = element_labels(labels)
    fig, ax = plt.subplots(figsize=VIZ_CONFIG['figsize_wide'])
    result = dendrogram(Z, labels=[names[label] for label in labels], ax=ax, leaf_rotation=90,
                        leaf_font_size=VIZ_CONFIG['tick_fontsize'],
                        above_threshold_color=VIZ_CONFIG['neutral'])
    ax.set_ylabel('Manhattan distance (CLR)', fontsize=VIZ_CONFIG['label_fontsize'])
    ax.set_title(title, fontsize=VIZ_CONFIG['title_fontsize'], fontweight='bold')
    ax.grid(False)

    plt.tight_layout()
    finalize_figure(save_path, fig=fig)

    return {'leaves': [labels[i] for i in result['leaves']]}


def plot_tanglegram(
    Z_left: NDArray,
    Z_right: NDArray,
    labels: list[str],
    titles: tuple[str, str] = ('Left', 'Right'),
    save_path: str | Path | None = None
) -> dict[str, Any]:
    """
    Two element dendrograms facing each other, joined leaf to leaf.

    Args:
        Z_left: Linkage drawn on the left (root at the left edge)
        Z_right: Linkage drawn on the right (root at the right edge)
        labels: Leaf labels shared by both trees, in column order
        titles: Titles above the two trees
        save_path: Optional path to save the figure

    Returns:
        Dict with entanglement and both leaf orders (bottom to top)
    """
    n = len(labels)
    left_order = leaf_order(Z_left, labels)
    right_order = leaf_order(Z_right, labels)
    score = entanglement(left_order, right_order)
    names = element_labels(labels)

    fig, (ax_left, ax_mid, ax_right) = plt.subplots(
        1, 3, figsize=(10, max(4.0, 0.28 * n)),
        gridspec_kw={'width_ratios': [1.0, 0.9, 1.0], 'wspace': 0.0},
    )

    dendrogram(Z_left, orientation='left', no_labels=True, ax=ax_left,
               color_threshold=0, above_threshold_color=VIZ_CONFIG['primary'])
    dendrogram(Z_right, orientation='right', no_labels=True, ax=ax_right,
               color_threshold=0, above_threshold_color=VIZ_CONFIG['secondary'])

    # scipy places leaf i at 5 + 10 * i along the leaf axis
    left_y = {label: 5 + 10 * i for i, label in enumerate(left_order)}
    right_y = {label: 5 + 10 * i for i, label in enumerate(right_order)}
    colors = plt.get_cmap('tab20')(np.linspace(0, 1, max(n, 2)))

    for i, label in enumerate(left_order):
        ax_mid.plot([0.22, 0.78], [left_y[label], right_y[label]],
                    color=colors[i], linewidth=1.0, alpha=0.9)
        ax_mid.text(0.2, left_y[label], names[label], ha='right', va='center',
                    fontsize=VIZ_CONFIG['tick_fontsize'])
        ax_mid.text(0.8, right_y[label], names[label], ha='left', va='center',
                    fontsize=VIZ_CONFIG['tick_fontsize'])

    for ax in (ax_left, ax_mid, ax_right):
        ax.set_ylim(0, 10 * n)
        ax.grid(False)
    ax_mid.set_xlim(0, 1)
    ax_mid.axis('off')
    ax_left.set_yticks([])
    ax_right.set_yticks([])
    ax_left.set_title(titles[0], fontsize=VIZ_CONFIG['label_fontsize'])
    ax_right.set_title(titles[1], fontsize=VIZ_CONFIG['label_fontsize'])
    fig.suptitle(f'Tanglegram (entanglement = {score:.3f})',
                 fontsize=VIZ_CONFIG['title_fontsize'], fontweight='bold')

    finalize_figure(save_path, fig=fig)

    return {'entanglement': score, 'left_order': left_order, 'right_order': right_order}


def plot_qq_grid(
    X: pd.DataFrame,
    n_cols: int = VIZ_CONFIG['qq_columns'],
    save_path: str | Path | None = None
) -> dict[str, dict[str, float]]:
    """
    Normal QQ plot per element.

    Returns:
        Dict with the QQ correlation r per element
    """
    n_plot = X.shape[1]
    n_cols = min(n_cols, n_plot)
    n_rows = (n_plot + n_cols - 1) // n_cols

    _, axes = plt.subplots(n_rows, n_cols, figsize=(2.2 * n_cols, 2.0 * n_rows))
    axes = np.atleast_1d(axes).ravel()

    names = element_labels(X.columns.tolist())
    r_values = {}
    for idx, element in enumerate(X.columns):
        ax = axes[idx]
        qq = qq_data(X[element])
        r_values[element] = qq['r']

        ax.scatter(qq['theoretical'], qq['sample'], s=4, color=VIZ_CONFIG['primary'], alpha=0.7)
        line_x = np.array([qq['theoretical'][0], qq['theoretical'][-1]])
        ax.plot(line_x, qq['intercept'] + qq['slope'] * line_x,
                color=VIZ_CONFIG['threshold_color'], linewidth=1)
        ax.set_title(names[element], fontsize=9)
        ax.tick_params(labelsize=6)

    # Hide unused axes
    for idx in range(n_plot, len(axes)):
        axes[idx].set_visible(False)

    plt.tight_layout()
    finalize_figure(save_path)

    return {'r': r_values}


def plot_silhouette_scores(
    scores: pd.DataFrame,
    best_k: int,
    save_path: str | Path | None = None
) -> None:
    """Mean silhouette width per candidate cluster count."""
    fig, ax = plt.subplots(figsize=(6, 4))
    ax.plot(scores['k'], scores['silhouette'], marker='o', color=VIZ_CONFIG['primary'])
    ax.axvline(best_k, color=VIZ_CONFIG['threshold_color'], linestyle='--', label=f'k = {best_k}')
    ax.set_xlabel('Number of clusters', fontsize=VIZ_CONFIG['label_fontsize'])
    ax.set_ylabel('Mean silhouette width', fontsize=VIZ_CONFIG['label_fontsize'])
    ax.set_xticks(scores['k'])
    ax.legend(loc='best')

    plt.tight_layout()
    finalize_figure(save_path, fig=fig)


def plot_cluster_composition(
    composition: pd.DataFrame,
    save_path: str | Path | None = None
) -> dict[str, Any]:
    """
    Stacked bars of metadata labels within each cluster.

    Returns:
        Dict with cluster sizes
    """
    label_name = composition.columns.name or 'group'
    palette = group_palette(pd.Series(composition.columns, name=label_name))

    fig, ax = plt.subplots(figsize=(7, 4.5))
    bottom = np.zeros(len(composition))
    for label in composition.columns:
        values = composition[label].to_numpy()
        ax.bar(composition.index.astype(str), values, bottom=bottom,
               color=palette[str(label)], label=str(label))
        bottom += values

    ax.set_xlabel('Cluster', fontsize=VIZ_CONFIG['label_fontsize'])
    ax.set_ylabel('Analyses', fontsize=VIZ_CONFIG['label_fontsize'])
    ax.legend(title=label_name, fontsize=8, loc='best')

    plt.tight_layout()
    finalize_figure(save_path, fig=fig)

    return {'sizes': dict(zip(composition.index.tolist(), bottom.astype(int).tolist()))}
