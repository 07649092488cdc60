#!/usr/bin/env python
"""
Pyrite Exploratory Analysis Pipeline

Runs the unsupervised analysis on the CLR table written by
pipelines.preprocess and renders the figure set:
- UMAP projection by pyrite type and reef, with confidence ellipses
- Hierarchical clustering of analyses and elements (Manhattan, average)
- Clustered CLR heatmap, element correlation heatmap and dendrogram
- Tanglegrams of element trees between the largest groups
- Normal QQ plots of CLR coordinates
- PDF and markdown reports, optional MLflow tracking

Usage:
    python -m pipelines.analyze
    python -m pipelines.analyze --verbose --track
    python -m pipelines.analyze --log-json reports/analyze_log.jsonl
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
import time
import warnings
from pathlib import Path
from typing import Any

import matplotlib
matplotlib.use('Agg')
import pandas as pd

# numba/UMAP emit deprecation and performance warnings on every call
warnings.filterwarnings('ignore', category=FutureWarning)
warnings.filterwarnings('ignore', category=DeprecationWarning)
warnings.filterwarnings('ignore', module='umap')

project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from pyritechem.config import (
    ARTIFACTS, CLUSTER_LINKAGE, CLUSTER_METRIC, ELLIPSE_CONFIDENCE, FIGURES_DIR,
    GROUP_COLUMNS, MIN_GROUP_SIZE, N_CLUSTERS_RANGE, RANDOM_STATE, REPORTS_DIR,
    TYPE_COLUMN, UMAP_PARAMS, ensure_directories, log_execution_time, log_metric,
    log_pipeline_step, setup_json_logging, setup_logging,
)
from pyritechem.data import load_processed
from pyritechem.analysis import (
    choose_n_clusters,
    cluster_composition,
    cluster_profiles,
    compute_umap,
    cophenetic_correlation,
    cut_tree,
    element_linkage,
    group_element_linkages,
    normality_table,
    sample_linkage,
)
from pyritechem.visualization import (
    apply_style,
    build_pdf_report,
    plot_cluster_composition,
    plot_clustered_heatmap,
    plot_correlation_heatmap,
    plot_dendrogram,
    plot_qq_grid,
    plot_silhouette_scores,
    plot_tanglegram,
    plot_umap,
    write_markdown_report,
)

logger = logging.getLogger('pyritechem')


def run_embedding(
    clr: pd.DataFrame,
    processed: pd.DataFrame,
    figures: list[dict[str, Any]],
    random_state: int = RANDOM_STATE
) -> pd.DataFrame:
    """UMAP projection plus one scatter per grouping column."""
    with log_execution_time(logger, "umap", level=logging.DEBUG):
        embedding = compute_umap(clr, random_state=random_state)

    for column in GROUP_COLUMNS:
        path = FIGURES_DIR / f'umap_{column.lower()}.png'
        plot_umap(embedding, processed[column], save_path=path)
        figures.append({
            'path': path,
            'caption': f'UMAP of CLR coordinates by {column.replace("_", " ").lower()} '
                       f'({ELLIPSE_CONFIDENCE:.0%} confidence ellipses)',
        })

    embedding.join(processed[list(GROUP_COLUMNS)]).to_csv(REPORTS_DIR / 'umap_embedding.csv')
    return embedding


def run_clustering(
    clr: pd.DataFrame,
    processed: pd.DataFrame,
    figures: list[dict[str, Any]],
    summary: dict[str, Any]
) -> pd.Series:
    """Sample and element trees, cluster count selection and heatmaps."""
    elements = clr.columns.tolist()

    Z_samples = sample_linkage(clr)
    Z_elements = element_linkage(clr)
    summary['cophenetic_samples'] = cophenetic_correlation(Z_samples, clr)
    summary['cophenetic_elements'] = cophenetic_correlation(Z_elements, clr.T)
    tree_context = {'metric': CLUSTER_METRIC, 'linkage': CLUSTER_LINKAGE}
    log_metric(logger, 'cophenetic_samples', summary['cophenetic_samples'], context=tree_context)
    log_metric(logger, 'cophenetic_elements', summary['cophenetic_elements'], context=tree_context)

    best_k, scores = choose_n_clusters(clr, Z_samples)
    labels = pd.Series(cut_tree(Z_samples, best_k), index=clr.index, name='cluster')
    summary['n_clusters'] = best_k
    summary['silhouette'] = float(scores.loc[scores['k'] == best_k, 'silhouette'].iloc[0])
    log_metric(logger, 'silhouette', summary['silhouette'], context={'k': best_k, **tree_context})

    path = FIGURES_DIR / 'silhouette_scores.png'
    plot_silhouette_scores(scores, best_k, save_path=path)
    figures.append({'path': path, 'caption': 'Mean silhouette width per cluster count'})

    composition = cluster_composition(labels, processed[TYPE_COLUMN])
    composition.to_csv(REPORTS_DIR / 'cluster_composition.csv')
    cluster_profiles(clr, labels).to_csv(REPORTS_DIR / 'cluster_profiles.csv')

    path = FIGURES_DIR / 'cluster_composition.png'
    plot_cluster_composition(composition, save_path=path)
    figures.append({'path': path, 'caption': f'Pyrite types within the {best_k} sample clusters'})

    membership = processed[list(GROUP_COLUMNS)].join(labels)
    membership.to_csv(REPORTS_DIR / 'cluster_membership.csv')

    path = FIGURES_DIR / 'clr_heatmap.png'
    plot_clustered_heatmap(clr, Z_samples, Z_elements,
                           row_groups=processed[list(GROUP_COLUMNS)], save_path=path)
    figures.append({'path': path, 'caption': 'CLR heatmap with sample and element dendrograms'})

    path = FIGURES_DIR / 'correlation_heatmap.png'
    plot_correlation_heatmap(clr, method='spearman', save_path=path)
    figures.append({'path': path, 'caption': 'Spearman correlation of CLR coordinates'})

    path = FIGURES_DIR / 'element_dendrogram.png'
    plot_dendrogram(Z_elements, elements, title='Element dendrogram (all analyses)', save_path=path)
    figures.append({'path': path, 'caption': 'Element dendrogram, Manhattan distance, average linkage'})

    return labels


def run_tanglegrams(
    clr: pd.DataFrame,
    processed: pd.DataFrame,
    figures: list[dict[str, Any]],
    summary: dict[str, Any]
) -> None:
    """Compare element trees of the two largest groups of each grouping column."""
    elements = clr.columns.tolist()

    for column in GROUP_COLUMNS:
        linkages = group_element_linkages(clr, processed[column], min_size=MIN_GROUP_SIZE)
        if len(linkages) < 2:
            logger.warning(f"Tanglegram by {column} skipped: fewer than 2 groups "
                           f"with >= {MIN_GROUP_SIZE} analyses")
            continue

        (left, Z_left), (right, Z_right) = list(linkages.items())[:2]
        path = FIGURES_DIR / f'tanglegram_{column.lower()}.png'
        result = plot_tanglegram(Z_left, Z_right, elements, titles=(left, right), save_path=path)
        summary[f'entanglement_{column.lower()}'] = result['entanglement']
        log_metric(logger, f'entanglement_{column.lower()}', result['entanglement'],
                   context={'column': column, 'left': left, 'right': right})
        figures.append({
            'path': path,
            'caption': f'Element trees of {left} vs {right} '
                       f'(entanglement {result["entanglement"]:.3f})',
        })


def write_reports(figures: list[dict[str, Any]], summary: dict[str, Any]) -> None:
    with open(ARTIFACTS['summary'], 'w') as f:
        json.dump(summary, f, indent=2, default=str)

    build_pdf_report(figures, summary, ARTIFACTS['pdf_report'])
    write_markdown_report(summary, figures, ARTIFACTS['markdown_report'])


def track_run(figures: list[dict[str, Any]], summary: dict[str, Any]) -> None:
    """Log parameters, summary metrics and figures to MLflow."""
    from pyritechem.mlflow_utils import setup_mlflow, log_analysis_run

    setup_mlflow()
    params = {
        'random_state': RANDOM_STATE,
        'cluster_metric': CLUSTER_METRIC,
        'cluster_linkage': CLUSTER_LINKAGE,
        'n_clusters_range': N_CLUSTERS_RANGE,
        **{f'umap_{key}': value for key, value in UMAP_PARAMS.items()},
    }
    metrics = {key: value for key, value in summary.items() if isinstance(value, (int, float))}
    artifacts = [Path(f['path']) for f in figures] + [ARTIFACTS['pdf_report'], ARTIFACTS['summary']]
    log_analysis_run('analyze', params, metrics, artifacts)


def main(argv: list[str] | None = None):
    parser = argparse.ArgumentParser(description='Pyrite trace-element exploratory analysis')
    parser.add_argument('--verbose', '-v', action='store_true', help='Verbose output')
    parser.add_argument('--track', action='store_true', help='Log the run to MLflow')
    parser.add_argument('--log-json', type=Path, default=None, metavar='PATH',
                        help='Also write a JSON-lines run log to PATH')
    args = parser.parse_args(argv)

    level = logging.DEBUG if args.verbose else logging.INFO
    if args.log_json:
        setup_json_logging(level, log_file=args.log_json)
    else:
        setup_logging(level)
    ensure_directories()
    apply_style()

    start = time.perf_counter()
    log_pipeline_step(logger, 'analyze', 'started')

    processed, clr = load_processed()

    summary: dict[str, Any] = {
        'n_samples': len(clr),
        'n_elements': clr.shape[1],
        'elements': clr.columns.tolist(),
    }
    figures: list[dict[str, Any]] = []

    preprocess_figures = [
        (FIGURES_DIR / 'fill_rates.png', 'Fraction of analyses above LOD per element'),
        (FIGURES_DIR / 'missingness_matrix.png', 'Censored and missing values per analysis'),
    ]
    figures.extend({'path': p, 'caption': c} for p, c in preprocess_figures if p.exists())

    run_embedding(clr, processed, figures)
    run_clustering(clr, processed, figures, summary)
    run_tanglegrams(clr, processed, figures, summary)

    normality = normality_table(clr)
    normality.to_csv(REPORTS_DIR / 'normality.csv')
    summary['n_elements_normal'] = int((normality['p_value'] >= 0.05).sum())

    path = FIGURES_DIR / 'qq_clr.png'
    plot_qq_grid(clr, save_path=path)
    figures.append({'path': path, 'caption': 'Normal QQ plots of CLR coordinates'})

    write_reports(figures, summary)

    if args.track:
        track_run(figures, summary)

    log_pipeline_step(
        logger, 'analyze', 'completed',
        duration_ms=(time.perf_counter() - start) * 1000,
        metrics={'n_figures': len(figures), 'n_clusters': summary['n_clusters']},
    )

    logger.info(f"Analysis complete: {len(figures)} figures. See {ARTIFACTS['pdf_report']}")


if __name__ == '__main__':
    main()
