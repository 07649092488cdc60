#!/usr/bin/env python
"""
Pyrite Data Preprocessing Pipeline

Turns the raw LA-ICP-MS export into an imputed, CLR-transformed table ready
for unsupervised analysis.

METHODOLOGY NOTES:
- Unlabelled analyses are dropped BEFORE fill rates so the retained elements
  reflect the rows that are analysed
- Below-LOD values are censored to NaN, never treated as zero
- Imputed values are capped at the cell's LOD (a censored value lies below it)
- CLR runs last because it needs a complete, strictly positive composition

Usage:
    python -m pipelines.preprocess
    python -m pipelines.preprocess --input data/raw/export.csv --verbose
    python -m pipelines.preprocess --log-json reports/preprocess_log.jsonl
"""

from __future__ import annotations

import argparse
import logging
import sys
import time
import warnings
from pathlib import Path

import joblib
import matplotlib
matplotlib.use('Agg')
import pandas as pd

warnings.filterwarnings('ignore', category=FutureWarning)
warnings.filterwarnings('ignore', module='sklearn')

project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from pyritechem.config import (
    ARTIFACTS, FIGURES_DIR, INPUT_CSV, IMPUTER_N_ESTIMATORS, IMPUTER_MAX_ITER,
    LABEL_RECODING, MIN_FILL_RATE, RANDOM_STATE,
    ensure_directories, log_pipeline_step, setup_json_logging, setup_logging,
)
from pyritechem.data import (
    PyriteDataset,
    build_preprocessing_pipeline,
    censor_below_lod,
    clip_to_lod,
    compute_fill_rates,
    drop_unlabelled,
    imputation_flag_columns,
    load_raw_data,
    recode_labels,
    select_elements,
    split_columns,
)
from pyritechem.analysis import fill_rate_table, imputation_summary
from pyritechem.visualization import apply_style, plot_fill_rates, plot_missingness_matrix

logger = logging.getLogger('pyritechem')


def prepare_dataset(
    input_path: Path,
    min_fill_rate: float = MIN_FILL_RATE
) -> tuple[PyriteDataset, PyriteDataset, pd.Series]:
    """
    Load, drop unlabelled rows, censor below LOD and select elements.

    Returns:
        Tuple of (censored dataset with all elements, selected dataset, fill rates)
    """
    dataset = split_columns(load_raw_data(input_path))
    dataset = drop_unlabelled(dataset)

    fill_rates = compute_fill_rates(dataset)
    censored = censor_below_lod(dataset)
    selected = select_elements(censored, min_fill_rate)

    return censored, selected, fill_rates


def impute_and_transform(
    selected: PyriteDataset,
    min_fill_rate: float = MIN_FILL_RATE,
    n_estimators: int = IMPUTER_N_ESTIMATORS,
    max_iter: int = IMPUTER_MAX_ITER,
    random_state: int = RANDOM_STATE
):
    """
    Fit the preprocessing pipeline, capping imputed cells at their LOD
    before the CLR step.

    Returns:
        Tuple of (fitted pipeline, capped concentrations, imputed mask, CLR table)
    """
    pipeline = build_preprocessing_pipeline(
        min_fill_rate=min_fill_rate,
        n_estimators=n_estimators,
        max_iter=max_iter,
        random_state=random_state,
    )

    # Slicing shares the step objects, so the full pipeline ends up fitted
    imputed = pipeline[:-1].fit_transform(selected.concentrations)
    imputer = pipeline.named_steps['impute']
    mask = imputer.imputed_mask_

    capped = clip_to_lod(imputed, selected.lod, mask)
    clr = pipeline.named_steps['clr'].fit_transform(capped)

    return pipeline, capped, mask, clr


def save_artifacts(
    pipeline,
    metadata: pd.DataFrame,
    censored: PyriteDataset,
    selected: PyriteDataset,
    fill_rates: pd.Series,
    capped: pd.DataFrame,
    mask: pd.DataFrame,
    clr: pd.DataFrame,
    min_fill_rate: float
) -> None:
    """Save processed tables, summaries, figures and the fitted pipeline."""
    elements = capped.columns.tolist()

    flags = mask[elements].copy()
    flags.columns = imputation_flag_columns(elements)
    processed = pd.concat([metadata, capped, flags], axis=1)
    processed.index.name = 'analysis'
    processed.to_csv(ARTIFACTS['processed'])

    clr = clr.copy()
    clr.index.name = 'analysis'
    clr.to_csv(ARTIFACTS['clr'])

    fill_table = fill_rate_table(fill_rates, elements)
    fill_table.to_csv(ARTIFACTS['fill_rates'])

    summary = imputation_summary(selected.concentrations[elements], capped, mask)
    summary.to_csv(ARTIFACTS['imputation_summary'])

    joblib.dump(pipeline, ARTIFACTS['preprocessing_pipeline'])

    apply_style()
    plot_fill_rates(fill_table, min_fill_rate, save_path=FIGURES_DIR / 'fill_rates.png')
    plot_missingness_matrix(censored.concentrations, save_path=FIGURES_DIR / 'missingness_matrix.png')

    logger.info(f"Saved processed data: {processed.shape[0]} analyses, {len(elements)} elements")
    logger.info(f"  {ARTIFACTS['processed']}")
    logger.info(f"  {ARTIFACTS['clr']}")
    logger.info(f"  {ARTIFACTS['preprocessing_pipeline']}")
    logger.debug(f"Imputed cells per element:\n{summary['n_imputed'].to_string()}")


def main(argv: list[str] | None = None):
    parser = argparse.ArgumentParser(description='Pyrite trace-element preprocessing')
    parser.add_argument('--input', '-i', type=Path, default=INPUT_CSV,
                        help=f'Raw LA-ICP-MS CSV (default: {INPUT_CSV})')
    parser.add_argument('--min-fill-rate', type=float, default=MIN_FILL_RATE,
                        help='Minimum fraction of analyses above LOD to keep an element')
    parser.add_argument('--n-estimators', type=int, default=IMPUTER_N_ESTIMATORS,
                        help='Trees per random forest in the imputer')
    parser.add_argument('--verbose', '-v', action='store_true', help='Verbose output')
    parser.add_argument('--log-json', type=Path, default=None, metavar='PATH',
                        help='Also write a JSON-lines run log to PATH')
    args = parser.parse_args(argv)

    level = logging.DEBUG if args.verbose else logging.INFO
    if args.log_json:
        setup_json_logging(level, log_file=args.log_json)
    else:
        setup_logging(level)
    ensure_directories()

    start = time.perf_counter()
    log_pipeline_step(logger, 'preprocess', 'started',
                      metrics={'min_fill_rate': args.min_fill_rate, 'n_estimators': args.n_estimators})

    censored, selected, fill_rates = prepare_dataset(args.input, args.min_fill_rate)
    metadata = recode_labels(selected.metadata, LABEL_RECODING)

    logger.info("Imputing censored concentrations (random forest)...")
    pipeline, capped, mask, clr = impute_and_transform(
        selected, min_fill_rate=args.min_fill_rate, n_estimators=args.n_estimators
    )

    save_artifacts(pipeline, metadata, censored, selected, fill_rates,
                   capped, mask, clr, args.min_fill_rate)

    log_pipeline_step(
        logger, 'preprocess', 'completed',
        duration_ms=(time.perf_counter() - start) * 1000,
        metrics={'n_samples': len(clr), 'n_elements': clr.shape[1],
                 'n_imputed': int(mask.values.sum())},
    )


if __name__ == '__main__':
    main()
