"""
Data loading and transformation utilities.
"""

from .loader import (
    PyriteDataset,
    element_symbol,
    element_labels,
    load_raw_data,
    split_columns,
    detection_mask,
    compute_fill_rates,
    censor_below_lod,
    select_elements,
    recode_labels,
    drop_unlabelled,
    imputation_flag_columns,
    load_processed,
)
from .transformers import (
    HighMissingRemover,
    ZeroVarianceRemover,
    RandomForestImputer,
    CLRTransformer,
    clip_to_lod,
    build_preprocessing_pipeline,
)

__all__ = [
    'PyriteDataset',
    'element_symbol',
    'element_labels',
    'load_raw_data',
    'split_columns',
    'detection_mask',
    'compute_fill_rates',
    'censor_below_lod',
    'select_elements',
    'recode_labels',
    'drop_unlabelled',
    'imputation_flag_columns',
    'load_processed',
    'HighMissingRemover',
    'ZeroVarianceRemover',
    'RandomForestImputer',
    'CLRTransformer',
    'clip_to_lod',
    'build_preprocessing_pipeline',
]
