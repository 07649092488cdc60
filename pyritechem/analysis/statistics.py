"""
Summary statistics reported alongside the figures.
"""

from __future__ import annotations

import logging
from typing import Any

import numpy as np
import pandas as pd
from numpy.typing import ArrayLike
from scipy import stats
from statsmodels.graphics.gofplots import ProbPlot

logger = logging.getLogger('pyritechem')


def fill_rate_table(fill_rates: pd.Series, retained: list[str]) -> pd.DataFrame:
    """Fill rate in percent per element, flagged by whether it was kept."""
    table = pd.DataFrame({
        'fill_rate_pct': (fill_rates * 100).round(2),
        'retained': fill_rates.index.isin(retained),
    }, index=fill_rates.index)
    table.index.name = 'element'
    return table.sort_values('fill_rate_pct', ascending=False)


def imputation_summary(
    original: pd.DataFrame,
    imputed: pd.DataFrame,
    mask: pd.DataFrame
) -> pd.DataFrame:
    """
    Per-element count and range of imputed versus observed values.

    Args:
        original: Censored concentrations (NaN where imputed)
        imputed: Concentrations after imputation
        mask: True where a cell was imputed

    Returns:
        DataFrame indexed by element with n_imputed, pct_imputed,
        observed_min/max and imputed_min/max (NaN when nothing was imputed)
    """
    rows = []
    for element in imputed.columns:
        flags = mask[element].astype(bool)
        observed = original.loc[~flags, element]
        filled = imputed.loc[flags, element]
        rows.append({
            'element': element,
            'n_imputed': int(flags.sum()),
            'pct_imputed': round(100.0 * flags.mean(), 2),
            'observed_min': observed.min(),
            'observed_max': observed.max(),
            'imputed_min': filled.min() if len(filled) else np.nan,
            'imputed_max': filled.max() if len(filled) else np.nan,
        })
    summary = pd.DataFrame(rows).set_index('element')
    logger.debug(f"Imputation summary: {int(summary['n_imputed'].sum())} cells imputed")
    return summary


def normality_table(X: pd.DataFrame) -> pd.DataFrame:
    """Shapiro-Wilk test of each element's CLR distribution."""
    rows = []
    for element in X.columns:
        values = X[element].dropna().to_numpy()
        if len(values) < 3 or np.ptp(values) == 0:
            statistic, p_value = np.nan, np.nan
        else:
            statistic, p_value = stats.shapiro(values)
        rows.append({
            'element': element,
            'shapiro_w': float(statistic),
            'p_value': float(p_value),
            'skewness': float(stats.skew(values)) if len(values) > 2 else np.nan,
        })
    return pd.DataFrame(rows).set_index('element')


def qq_data(values: ArrayLike) -> dict[str, Any]:
    """
    Normal QQ coordinates with a least-squares reference line.

    Returns:
        Dict with theoretical and sample quantiles (sorted), slope,
        intercept and the correlation r of the QQ points
    """
    data = np.asarray(values, dtype=float)
    data = data[~np.isnan(data)]
    if len(data) < 3:
        raise ValueError(f"QQ plot needs at least 3 values, got {len(data)}")

    probplot = ProbPlot(data, dist=stats.norm)
    theoretical = probplot.theoretical_quantiles
    sample = probplot.sample_quantiles

    slope, intercept = np.polyfit(theoretical, sample, 1)
    r = float(np.corrcoef(theoretical, sample)[0, 1]) if np.ptp(sample) > 0 else np.nan

    return {
        'theoretical': theoretical,
        'sample': sample,
        'slope': float(slope),
        'intercept': float(intercept),
        'r': r,
    }
