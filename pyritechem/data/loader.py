"""
Data loading utilities for LA-ICP-MS pyrite analyses
"""

from __future__ import annotations

import logging
import re
from collections import Counter
from collections.abc import Mapping
from dataclasses import dataclass, replace
from pathlib import Path

import numpy as np
import pandas as pd

from ..config import (
    ARTIFACTS,
    CLASSIFICATION_COLUMNS,
    GENERATION_COLUMN,
    GENERATION_ORDER,
    IMPUTED_SUFFIX,
    LOD_SUFFIX,
    MISSING_MARKERS,
    N_METADATA_COLUMNS,
    REQUIRED_METADATA,
    UNCERTAINTY_SUFFIX,
)

logger = logging.getLogger('pyritechem')

# Element symbol followed by isotope mass, e.g. Au197, Fe57
_ELEMENT_PATTERN = re.compile(r'^([A-Z][a-z]?)(\d{1,3})')


@dataclass(frozen=True)
class PyriteDataset:
    """
    One batch of LA-ICP-MS spot analyses split into aligned tables.

    All frames share the sample index. ``lod`` and ``uncertainty`` carry the
    same column names as ``concentrations`` (missing partners are NaN).
    """
    metadata: pd.DataFrame
    concentrations: pd.DataFrame
    lod: pd.DataFrame
    uncertainty: pd.DataFrame

    @property
    def elements(self) -> list[str]:
        return self.concentrations.columns.tolist()

    @property
    def n_samples(self) -> int:
        return len(self.concentrations)

    def subset(self, rows: pd.Index | None = None, elements: list[str] | None = None) -> "PyriteDataset":
        """Return a new dataset restricted to the given rows and/or elements."""
        rows = self.concentrations.index if rows is None else rows
        elements = self.elements if elements is None else elements
        return PyriteDataset(
            metadata=self.metadata.loc[rows],
            concentrations=self.concentrations.loc[rows, elements],
            lod=self.lod.loc[rows, elements],
            uncertainty=self.uncertainty.loc[rows, elements],
        )


def element_symbol(column: str) -> str:
    """Strip the isotope mass from a column name (``Au197`` -> ``Au``)."""
    match = _ELEMENT_PATTERN.match(column)
    return match.group(1) if match else column


def element_labels(columns: list[str]) -> dict[str, str]:
    """
    Figure labels for element columns.

    Each column is shown as its element symbol unless two measured isotopes
    share it (``Pb206`` and ``Pb208``); those keep the full column name.
    """
    symbols = {column: element_symbol(column) for column in columns}
    counts = Counter(symbols.values())
    return {column: symbol if counts[symbol] == 1 else column
            for column, symbol in symbols.items()}


def load_raw_data(path: Path | str) -> pd.DataFrame:
    """
    Load the raw laboratory export with validation.

    Raises:
        FileNotFoundError: If the CSV is missing
        ValueError: If the file is empty, unparsable, or lacks the expected columns
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(
            f"Input data not found: {path}\n"
            "Place the LA-ICP-MS export in data/raw/ or pass --input."
        )

    try:
        df = pd.read_csv(path)
    except pd.errors.EmptyDataError as e:
        raise ValueError(f"Input file is empty: {path}") from e
    except pd.errors.ParserError as e:
        raise ValueError(f"Input file has invalid format: {e}") from e

    df.columns = [str(col).strip() for col in df.columns]

    if df.empty:
        raise ValueError(f"Input file has no data rows: {path}")

    if df.shape[1] <= N_METADATA_COLUMNS:
        raise ValueError(
            f"Expected {N_METADATA_COLUMNS} metadata columns followed by numeric columns, "
            f"got {df.shape[1]} columns"
        )

    missing = [col for col in REQUIRED_METADATA if col not in df.columns[:N_METADATA_COLUMNS]]
    if missing:
        raise ValueError(
            f"Metadata columns missing from the first {N_METADATA_COLUMNS} columns: {missing}"
        )

    logger.info(f"Raw data: {df.shape[0]} analyses, {df.shape[1]} columns")
    return df


def _to_numeric(block: pd.DataFrame) -> pd.DataFrame:
    """Coerce laboratory text markers (``<LOD``, ``bdl``...) to NaN."""
    cleaned = block.replace(list(MISSING_MARKERS), np.nan)
    return cleaned.apply(pd.to_numeric, errors='coerce')


def split_columns(df: pd.DataFrame) -> PyriteDataset:
    """
    Split a raw table into metadata, concentration, LOD and 2SE frames.

    Columns ending in the LOD/2SE suffixes are paired with the concentration
    column carrying the same stem. Unpaired LOD/2SE columns are ignored.
    """
    metadata = df.iloc[:, :N_METADATA_COLUMNS].copy()
    numeric = _to_numeric(df.iloc[:, N_METADATA_COLUMNS:])

    element_cols = [
        col for col in numeric.columns
        if not col.endswith(LOD_SUFFIX) and not col.endswith(UNCERTAINTY_SUFFIX)
        and not col.endswith(IMPUTED_SUFFIX)
    ]
    if not element_cols:
        raise ValueError("No concentration columns found after the metadata block")

    lod = pd.DataFrame(np.nan, index=numeric.index, columns=element_cols)
    uncertainty = pd.DataFrame(np.nan, index=numeric.index, columns=element_cols)

    for col in element_cols:
        lod_col = f"{col}{LOD_SUFFIX}"
        se_col = f"{col}{UNCERTAINTY_SUFFIX}"
        if lod_col in numeric.columns:
            lod[col] = numeric[lod_col]
        else:
            logger.warning(f"No LOD column for {col}; detection relies on presence only")
        if se_col in numeric.columns:
            uncertainty[col] = numeric[se_col]

    known = set(element_cols)
    for col in numeric.columns:
        for suffix in (LOD_SUFFIX, UNCERTAINTY_SUFFIX):
            if col.endswith(suffix) and col[: -len(suffix)] not in known:
                logger.warning(f"Ignoring {col}: no matching concentration column")

    n_missing = int(numeric[element_cols].isna().sum().sum())
    logger.info(f"Split: {len(element_cols)} elements, {n_missing} missing concentration cells")

    return PyriteDataset(
        metadata=metadata,
        concentrations=numeric[element_cols].copy(),
        lod=lod,
        uncertainty=uncertainty,
    )


def detection_mask(dataset: PyriteDataset) -> pd.DataFrame:
    """True where a value is present, positive, and not below its LOD."""
    conc = dataset.concentrations
    detected = conc.notna() & (conc > 0)
    below = conc < dataset.lod
    # Comparisons with a NaN LOD are False, so those cells count as detected
    return detected & ~below


def compute_fill_rates(dataset: PyriteDataset) -> pd.Series:
    """
    Fraction of analyses in which each element is detected.

    Returns:
        Series indexed by element, sorted descending
    """
    if dataset.n_samples == 0:
        raise ValueError("Cannot compute fill rates on an empty dataset")
    fill = detection_mask(dataset).mean()
    fill.name = 'fill_rate'
    return fill.sort_values(ascending=False)


def censor_below_lod(dataset: PyriteDataset) -> PyriteDataset:
    """Replace below-LOD and non-positive concentrations with NaN."""
    mask = detection_mask(dataset)
    censored = dataset.concentrations.where(mask)
    n_censored = int((dataset.concentrations.notna() & ~mask).sum().sum())
    logger.info(f"Censored {n_censored} values below LOD or non-positive")
    return replace(dataset, concentrations=censored)


def select_elements(dataset: PyriteDataset, min_fill_rate: float) -> PyriteDataset:
    """
    Keep elements detected in at least ``min_fill_rate`` of analyses.

    Raises:
        ValueError: If the threshold is outside [0, 1] or fewer than two
            elements survive (CLR needs at least two parts)
    """
    if not 0.0 <= min_fill_rate <= 1.0:
        raise ValueError(f"min_fill_rate must be in [0, 1], got {min_fill_rate}")

    fill = compute_fill_rates(dataset)
    keep = [el for el in dataset.elements if fill[el] >= min_fill_rate]

    if len(keep) < 2:
        raise ValueError(
            f"Only {len(keep)} element(s) reach fill rate {min_fill_rate:.0%}; "
            "at least 2 are required for compositional analysis"
        )

    dropped = sorted(set(dataset.elements) - set(keep))
    logger.info(f"Element selection (>= {min_fill_rate:.0%} detected): "
                f"{len(keep)}/{len(dataset.elements)} kept")
    if dropped:
        logger.debug(f"Dropped elements: {dropped}")

    return dataset.subset(elements=keep)


def recode_labels(metadata: pd.DataFrame, mapping: Mapping[str, Mapping[str, str]]) -> pd.DataFrame:
    """
    Translate laboratory codes to publication labels.

    Codes with no entry in ``mapping`` are kept unchanged. Generation is
    returned as an ordered categorical.
    """
    recoded = metadata.copy()

    for column, codes in mapping.items():
        if column not in recoded.columns:
            continue
        values = recoded[column]
        if pd.api.types.is_float_dtype(values) and (values.dropna() % 1 == 0).all():
            # Integer codes read as float because of blanks (1.0 -> "1")
            values = values.astype('Int64')
        raw = values.astype('string').str.strip()
        mapped = raw.map(dict(codes))
        unmapped = sorted(raw[mapped.isna() & raw.notna()].unique())
        if unmapped:
            logger.info(f"{column}: kept {len(unmapped)} unmapped code(s) as-is: {unmapped}")
        recoded[column] = mapped.fillna(raw).astype(object).where(raw.notna(), np.nan)

    if GENERATION_COLUMN in recoded.columns:
        observed = [g for g in recoded[GENERATION_COLUMN].dropna().unique() if g not in GENERATION_ORDER]
        categories = list(GENERATION_ORDER) + sorted(map(str, observed))
        recoded[GENERATION_COLUMN] = pd.Categorical(
            recoded[GENERATION_COLUMN], categories=categories, ordered=True
        )

    return recoded


def drop_unlabelled(
    dataset: PyriteDataset,
    columns: tuple[str, ...] = CLASSIFICATION_COLUMNS
) -> PyriteDataset:
    """Drop analyses missing any of the classification labels."""
    present = [col for col in columns if col in dataset.metadata.columns]
    labels = dataset.metadata[present].replace('', np.nan)
    keep = labels.notna().all(axis=1)
    n_dropped = int((~keep).sum())
    if n_dropped:
        logger.info(f"Dropped {n_dropped} analyses with missing {', '.join(present)} labels")
    if not keep.any():
        raise ValueError(f"No analyses left after dropping rows with missing {present}")
    return dataset.subset(rows=dataset.concentrations.index[keep.values])


def imputation_flag_columns(elements: list[str]) -> list[str]:
    return [f"{el}{IMPUTED_SUFFIX}" for el in elements]


def load_processed() -> tuple[pd.DataFrame, pd.DataFrame]:
    """
    Load the processed table (metadata + imputed ppm + flags) and CLR table.

    Raises:
        FileNotFoundError: If preprocessing has not been run
    """
    processed_path = ARTIFACTS['processed']
    clr_path = ARTIFACTS['clr']

    for path in (processed_path, clr_path):
        if not path.exists():
            raise FileNotFoundError(
                f"Processed data not found: {path}\n"
                "Run `python -m pipelines.preprocess` first."
            )

    processed = pd.read_csv(processed_path, index_col=0)
    clr = pd.read_csv(clr_path, index_col=0)

    if not processed.index.equals(clr.index):
        raise ValueError("Processed and CLR tables are not aligned on the sample index")

    if GENERATION_COLUMN in processed.columns:
        observed = [g for g in processed[GENERATION_COLUMN].dropna().unique() if g not in GENERATION_ORDER]
        processed[GENERATION_COLUMN] = pd.Categorical(
            processed[GENERATION_COLUMN],
            categories=list(GENERATION_ORDER) + sorted(map(str, observed)),
            ordered=True,
        )

    logger.info(f"Loaded processed data: {processed.shape[0]} analyses, {clr.shape[1]} elements")
    return processed, clr
