"""
Shared pytest fixtures for the pyrite trace-element tests.

Synthesizes a small LA-ICP-MS export with the real column layout: 11 metadata
columns followed by <element>, <element>_LOD and <element>_2SE per element.
"""

from __future__ import annotations

import sys
from pathlib import Path

import matplotlib
matplotlib.use('Agg')
import numpy as np
import pandas as pd
import pytest

# Add project root to path
project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from pyritechem.config import RANDOM_STATE, MIN_FILL_RATE
from pyritechem.data import (
    CLRTransformer,
    censor_below_lod,
    drop_unlabelled,
    select_elements,
    split_columns,
)


ELEMENTS = [
    'Co59', 'Ni60', 'Cu63', 'Zn66', 'As75', 'Se77',
    'Ag107', 'Sb121', 'Au197', 'Pb208', 'Bi209', 'Te125',
]
# Mostly below LOD, dropped by element selection
SPARSE_ELEMENT = 'Te125'

TYPE_SHIFTS = {'D': 0.0, 'A': 0.6, 'H': -0.5}


def make_pyrite_frame(
    n_samples: int = 60,
    seed: int = RANDOM_STATE,
    n_unlabelled: int = 2
) -> pd.DataFrame:
    """Raw export with pyrite-type structure, per-spot LODs and text markers."""
    rng = np.random.default_rng(seed)
    idx = np.arange(n_samples)
    types = np.array(list(TYPE_SHIFTS))[idx % 3]

    df = pd.DataFrame({
        'Source_file': [f'run_{i // 20:02d}.csv' for i in idx],
        'Unit': 'ppm',
        'Reef': np.where(idx % 2 == 0, 'Main', 'Leader').astype(object),
        'Pyrite_type': types,
        'Texture': rng.choice(['C', 'P', 'Z'], n_samples),
        'Generation': rng.integers(1, 4, n_samples).astype(float),
        'Sample': [f'S{i // 6:03d}' for i in idx],
        'Grain': [f'G{i % 6}' for i in idx],
        'Spot': idx + 1,
        'Mineral': 'pyrite',
        'Comment': '',
    })
    df.loc[:n_unlabelled - 1, 'Reef'] = np.nan

    base = rng.uniform(0.0, 2.0, len(ELEMENTS))
    for j, element in enumerate(ELEMENTS):
        sign = 1.0 if j % 2 == 0 else -1.0
        shift = np.array([TYPE_SHIFTS[t] for t in types]) * sign
        log_values = base[j] + shift + rng.normal(0.0, 0.3, n_samples)
        lod_offset = 0.5 if element == SPARSE_ELEMENT else -0.9
        lod = 10 ** (base[j] + lod_offset + rng.normal(0.0, 0.05, n_samples))

        values = 10 ** log_values
        df[element] = values
        df[f'{element}_LOD'] = lod
        df[f'{element}_2SE'] = values * 0.1

    # Laboratory markers and a non-positive reading
    if n_samples > 9:
        for col in ('Cu63', 'Zn66'):
            df[col] = df[col].astype(object)
        df.loc[5, 'Cu63'] = '<LOD'
        df.loc[7, 'Zn66'] = 'bdl'
        df.loc[9, 'Ag107'] = 0.0

    return df


# =============================================================================
# RAW DATA FIXTURES
# =============================================================================

@pytest.fixture
def raw_pyrite_df() -> pd.DataFrame:
    """Raw export (60 analyses, 12 elements, 2 rows without a reef)."""
    return make_pyrite_frame()


@pytest.fixture
def pyrite_csv(tmp_path: Path, raw_pyrite_df: pd.DataFrame) -> Path:
    """Raw export written to a temporary CSV."""
    path = tmp_path / 'pyrite.csv'
    raw_pyrite_df.to_csv(path, index=False)
    return path


@pytest.fixture
def pyrite_dataset(raw_pyrite_df: pd.DataFrame):
    """Raw export split into metadata, concentration, LOD and 2SE tables."""
    return split_columns(raw_pyrite_df)


@pytest.fixture
def selected_dataset(pyrite_dataset):
    """Labelled, LOD-censored dataset restricted to well-detected elements."""
    labelled = drop_unlabelled(pyrite_dataset)
    return select_elements(censor_below_lod(labelled), MIN_FILL_RATE)


# =============================================================================
# COMPOSITIONAL FIXTURES
# =============================================================================

@pytest.fixture
def composition_df() -> pd.DataFrame:
    """Strictly positive compositions (40 analyses, 6 parts)."""
    rng = np.random.default_rng(RANDOM_STATE)
    values = 10 ** rng.normal(1.0, 0.5, size=(40, 6))
    return pd.DataFrame(values, columns=[f'E{i}' for i in range(6)])


@pytest.fixture
def clustered_clr() -> tuple[pd.DataFrame, pd.Series]:
    """CLR table with three well-separated groups of 12 analyses."""
    rng = np.random.default_rng(RANDOM_STATE)
    centers = np.array([
        [3.0, 0.0, 0.0, 0.0, 0.0, 0.0],
        [0.0, 0.0, 3.0, 0.0, 0.0, 0.0],
        [0.0, 0.0, 0.0, 0.0, 3.0, 0.0],
    ])
    labels = np.repeat(['A', 'B', 'C'], 12)
    log_values = np.vstack([center + rng.normal(0.0, 0.2, (12, 6)) for center in centers])
    composition = pd.DataFrame(np.exp(log_values), columns=[f'E{i}' for i in range(6)])
    clr = CLRTransformer().fit_transform(composition)
    groups = pd.Series(labels, index=clr.index, name='Pyrite_type')
    return clr, groups
