"""
Custom scikit-learn transformers for the compositional preprocessing

These transformers are used in the persisted preprocessing pipeline and need
to be importable when loading it with joblib.

METHODOLOGY NOTES:
- Imputation runs in log10 space: trace-element concentrations are
  right-skewed and strictly positive
- RandomForestImputer follows missForest (iterative random-forest regression
  of each incomplete element on all others)
- CLR needs strictly positive parts, so it runs after imputation
- All transformers preserve DataFrame structure
"""

from __future__ import annotations

import logging
from typing import Any

import numpy as np
from numpy.typing import ArrayLike, NDArray
import pandas as pd
from sklearn.base import BaseEstimator, TransformerMixin
from sklearn.ensemble import RandomForestRegressor
from sklearn.experimental import enable_iterative_imputer  # noqa: F401
from sklearn.impute import IterativeImputer
from sklearn.pipeline import Pipeline

from ..config import (
    RANDOM_STATE, MIN_FILL_RATE, IMPUTER_N_ESTIMATORS, IMPUTER_MAX_ITER
)

logger = logging.getLogger('pyritechem')


def _validate_dataframe(X: Any, transformer_name: str) -> None:
    """Validate input is a pandas DataFrame."""
    if not isinstance(X, pd.DataFrame):
        raise TypeError(
            f"{transformer_name} requires pandas DataFrame, "
            f"got {type(X).__name__}"
        )


class HighMissingRemover(TransformerMixin, BaseEstimator):
    """
    Remove elements present in too few analyses.

    An element is kept when its fraction of non-missing values is at least
    ``min_fill_rate``, the same comparison ``select_elements`` makes.

    Args:
        min_fill_rate: Minimum fraction of present values (default 0.50)
        name: Pipeline name for logging context

    Raises:
        TypeError: If input is not a pandas DataFrame
        ValueError: If min_fill_rate is not in [0, 1]
    """

    def __init__(self, min_fill_rate: float = MIN_FILL_RATE, name: str = ""):
        if not isinstance(min_fill_rate, (int, float)) or isinstance(min_fill_rate, bool):
            raise TypeError(f"min_fill_rate must be numeric, got {type(min_fill_rate).__name__}")
        if not 0.0 <= float(min_fill_rate) <= 1.0:
            raise ValueError(f"min_fill_rate must be in [0, 1], got {min_fill_rate}")
        self.min_fill_rate = float(min_fill_rate)
        self.name = name
        self.features_to_keep_: list[str] | None = None

    def fit(self, X: pd.DataFrame, y: ArrayLike | None = None) -> "HighMissingRemover":
        _validate_dataframe(X, "HighMissingRemover")
        fill_rate = X.notna().mean()
        self.features_to_keep_ = X.columns[fill_rate >= self.min_fill_rate].tolist()
        removed = len(X.columns) - len(self.features_to_keep_)
        prefix = f"  [{self.name}] " if self.name else "  "
        logger.info(f"{prefix}HighMissingRemover (>= {self.min_fill_rate:.0%} present): "
                    f"{len(self.features_to_keep_)}/{len(X.columns)} elements (removed {removed})")
        return self

    def transform(self, X: pd.DataFrame) -> pd.DataFrame:
        return X[self.features_to_keep_]

    def get_feature_names_out(self, input_features: ArrayLike | None = None) -> NDArray:
        """Return feature names for sklearn 1.1+ compatibility."""
        return np.array(self.features_to_keep_)


class ZeroVarianceRemover(TransformerMixin, BaseEstimator):
    """
    Remove elements with zero variance.

    A column is zero-variance if all non-null values are identical. All-NaN
    columns are removed as well.

    Args:
        name: Pipeline name for logging context

    Raises:
        TypeError: If input is not a pandas DataFrame
    """

    def __init__(self, name: str = ""):
        self.name = name
        self.features_to_keep_: list[str] | None = None
        self.all_nan_features_: list[str] | None = None

    def fit(self, X: pd.DataFrame, y: ArrayLike | None = None) -> "ZeroVarianceRemover":
        _validate_dataframe(X, "ZeroVarianceRemover")

        features_to_keep = []
        all_nan_features = []

        for col in X.columns:
            col_data = X[col].dropna()
            if len(col_data) == 0:
                all_nan_features.append(col)
                continue
            if col_data.nunique() > 1:
                features_to_keep.append(col)

        self.features_to_keep_ = features_to_keep
        self.all_nan_features_ = all_nan_features
        removed = len(X.columns) - len(self.features_to_keep_)
        prefix = f"  [{self.name}] " if self.name else "  "

        if all_nan_features:
            logger.warning(f"{prefix}ZeroVarianceRemover: {len(all_nan_features)} elements are all NaN")
        if removed > 0:
            logger.info(f"{prefix}ZeroVarianceRemover: removed {removed} constant/empty elements")

        return self

    def transform(self, X: pd.DataFrame) -> pd.DataFrame:
        return X[self.features_to_keep_]

    def get_feature_names_out(self, input_features: ArrayLike | None = None) -> NDArray:
        """Return feature names for sklearn 1.1+ compatibility."""
        return np.array(self.features_to_keep_)


class RandomForestImputer(TransformerMixin, BaseEstimator):
    """
    missForest-style imputation of censored/missing concentrations.

    Each incomplete element is regressed on all other elements with a random
    forest, iterating until the imputations stabilise or ``max_iter`` rounds
    have run. Observed values are returned untouched.

    Args:
        n_estimators: Trees per random forest
        max_iter: Maximum imputation rounds
        log_transform: Impute log10 concentrations and back-transform
        random_state: Seed for forests and imputation order

    Raises:
        TypeError: If input is not a pandas DataFrame
        ValueError: If a column is entirely missing, or if non-positive values
            are passed with log_transform=True
    """

    def __init__(
        self,
        n_estimators: int = IMPUTER_N_ESTIMATORS,
        max_iter: int = IMPUTER_MAX_ITER,
        log_transform: bool = True,
        random_state: int = RANDOM_STATE,
    ):
        for name, value in [('n_estimators', n_estimators), ('max_iter', max_iter)]:
            if not isinstance(value, int) or isinstance(value, bool):
                raise TypeError(f"{name} must be int, got {type(value).__name__}")
            if value < 1:
                raise ValueError(f"{name} must be >= 1, got {value}")

        self.n_estimators = n_estimators
        self.max_iter = max_iter
        self.log_transform = log_transform
        self.random_state = random_state
        self.imputer_: IterativeImputer | None = None
        self.feature_names_: list[str] | None = None
        self.imputed_mask_: pd.DataFrame | None = None
        self.n_iter_: int | None = None

    def _forward(self, X: pd.DataFrame) -> pd.DataFrame:
        if not self.log_transform:
            return X
        if (X <= 0).any().any():
            raise ValueError(
                "RandomForestImputer with log_transform=True requires positive values; "
                "censor non-positive concentrations to NaN first"
            )
        return np.log10(X)

    def _inverse(self, values: NDArray) -> NDArray:
        return np.power(10.0, values) if self.log_transform else values

    def fit(self, X: pd.DataFrame, y: ArrayLike | None = None) -> "RandomForestImputer":
        _validate_dataframe(X, "RandomForestImputer")

        empty = X.columns[X.isna().all()].tolist()
        if empty:
            raise ValueError(f"Cannot impute columns with no observed values: {empty}")

        self.feature_names_ = X.columns.tolist()
        self.imputed_mask_ = X.isna()

        self.imputer_ = IterativeImputer(
            estimator=RandomForestRegressor(
                n_estimators=self.n_estimators,
                random_state=self.random_state,
                n_jobs=1,
            ),
            max_iter=self.max_iter,
            initial_strategy='median',
            random_state=self.random_state,
        )
        self.imputer_.fit(self._forward(X))
        self.n_iter_ = int(self.imputer_.n_iter_)

        n_missing = int(self.imputed_mask_.values.sum())
        logger.info(f"  RandomForestImputer: {n_missing} cells "
                    f"({n_missing / X.size:.1%}) across {len(self.feature_names_)} elements, "
                    f"{self.n_iter_} rounds")
        return self

    def transform(self, X: pd.DataFrame) -> pd.DataFrame:
        _validate_dataframe(X, "RandomForestImputer")
        X = X[self.feature_names_]
        filled = self._inverse(self.imputer_.transform(self._forward(X)))
        imputed = pd.DataFrame(filled, columns=self.feature_names_, index=X.index)
        return X.where(X.notna(), imputed)

    def get_feature_names_out(self, input_features: ArrayLike | None = None) -> NDArray:
        """Return feature names for sklearn 1.1+ compatibility."""
        return np.array(self.feature_names_)


def clip_to_lod(imputed: pd.DataFrame, lod: pd.DataFrame, mask: pd.DataFrame) -> pd.DataFrame:
    """
    Cap imputed cells at their limit of detection.

    A censored cell is known to lie in (0, LOD], so any imputed value above
    the LOD is replaced by the LOD. Cells with an unknown LOD are left alone.

    Args:
        imputed: Imputed concentrations
        lod: LOD table aligned with ``imputed``
        mask: True where a cell was imputed
    """
    lod = lod.reindex(index=imputed.index, columns=imputed.columns)
    mask = mask.reindex(index=imputed.index, columns=imputed.columns).fillna(False).astype(bool)
    over = mask & lod.notna() & (imputed > lod)
    n_clipped = int(over.values.sum())
    if n_clipped:
        logger.info(f"  Capped {n_clipped} imputed values at LOD")
    return imputed.mask(over, lod)


class CLRTransformer(TransformerMixin, BaseEstimator):
    """
    Centered log-ratio transform of compositional data.

    clr(x)_i = ln(x_i) - mean_j ln(x_j), computed row-wise, so every output
    row sums to zero. The inverse returns compositions closed to 1.

    Args:
        pseudocount: Added to every part before the log. None requires all
            parts to be strictly positive.

    Raises:
        TypeError: If input is not a pandas DataFrame
        ValueError: On missing values, fewer than two parts, or non-positive parts
    """

    def __init__(self, pseudocount: float | None = None):
        self.pseudocount = pseudocount
        self.feature_names_: list[str] | None = None

    def fit(self, X: pd.DataFrame, y: ArrayLike | None = None) -> "CLRTransformer":
        _validate_dataframe(X, "CLRTransformer")
        if X.shape[1] < 2:
            raise ValueError(f"CLR needs at least 2 parts, got {X.shape[1]}")
        self.feature_names_ = X.columns.tolist()
        return self

    def transform(self, X: pd.DataFrame) -> pd.DataFrame:
        _validate_dataframe(X, "CLRTransformer")
        values = X[self.feature_names_].to_numpy(dtype=float)
        if self.pseudocount is not None:
            values = values + self.pseudocount

        if np.isnan(values).any():
            raise ValueError("CLR input contains missing values; impute first")
        if (values <= 0).any():
            raise ValueError(
                "CLR requires strictly positive parts; impute censored values "
                "or set a pseudocount"
            )

        log_values = np.log(values)
        clr = log_values - log_values.mean(axis=1, keepdims=True)
        return pd.DataFrame(clr, columns=self.feature_names_, index=X.index)

    def inverse_transform(self, X: pd.DataFrame) -> pd.DataFrame:
        values = np.exp(np.asarray(X, dtype=float))
        closed = values / values.sum(axis=1, keepdims=True)
        index = X.index if isinstance(X, pd.DataFrame) else None
        return pd.DataFrame(closed, columns=self.feature_names_, index=index)

    def get_feature_names_out(self, input_features: ArrayLike | None = None) -> NDArray:
        """Return feature names for sklearn 1.1+ compatibility."""
        return np.array(self.feature_names_)


def build_preprocessing_pipeline(
    min_fill_rate: float = MIN_FILL_RATE,
    n_estimators: int = IMPUTER_N_ESTIMATORS,
    max_iter: int = IMPUTER_MAX_ITER,
    random_state: int = RANDOM_STATE,
) -> Pipeline:
    """
    Build the censored-concentration -> CLR pipeline.

    Input is the element table with below-LOD cells already set to NaN.
    Steps: drop sparse elements -> drop constant elements -> impute -> CLR.
    """
    return Pipeline([
        ('high_missing', HighMissingRemover(min_fill_rate=min_fill_rate, name='preprocess')),
        ('zero_variance', ZeroVarianceRemover(name='preprocess')),
        ('impute', RandomForestImputer(
            n_estimators=n_estimators, max_iter=max_iter, random_state=random_state
        )),
        ('clr', CLRTransformer()),
    ])
