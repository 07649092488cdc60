"""
MLflow tracking of analysis runs (parameters, summary metrics, figures)
"""

from __future__ import annotations

import logging
import math
import time
from pathlib import Path
from typing import Any

import mlflow

from .config import MLFLOW_EXPERIMENT_NAME

logger = logging.getLogger('pyritechem')

# SQLAlchemy exceptions that indicate database contention (safe to retry)
try:
    from sqlalchemy.exc import OperationalError, DatabaseError
    _RETRYABLE_EXCEPTIONS = (OperationalError, DatabaseError)
except ImportError:
    _RETRYABLE_EXCEPTIONS = (OSError,)


def setup_mlflow(max_retries: int = 3) -> None:
    """
    Initialize MLflow experiment tracking.

    MLflow defaults to sqlite:///mlflow.db when no mlruns/ directory exists,
    and schema creation can collide with another process, so setup retries.

    Args:
        max_retries: Number of retry attempts for initialization

    Raises:
        RuntimeError: If initialization fails after all retries
    """
    last_exception: Exception | None = None

    for attempt in range(max_retries):
        try:
            mlflow.set_experiment(MLFLOW_EXPERIMENT_NAME)
            logger.debug(f"MLflow experiment: {MLFLOW_EXPERIMENT_NAME}")
            return
        except _RETRYABLE_EXCEPTIONS as e:
            last_exception = e
            logger.debug(f"MLflow setup attempt {attempt + 1}/{max_retries} failed ({type(e).__name__}): {e}")
            if attempt < max_retries - 1:
                time.sleep(1 * (attempt + 1))
        except Exception as e:
            logger.exception(f"MLflow setup failed with non-retryable error: {type(e).__name__}")
            raise RuntimeError(f"MLflow setup failed: {e}") from e

    raise RuntimeError(f"MLflow setup failed after {max_retries} attempts: {last_exception}") from last_exception


def log_analysis_run(
    run_name: str,
    params: dict[str, Any],
    metrics: dict[str, float],
    artifacts: list[Path] | None = None
) -> None:
    """
    Log one analysis run to MLflow.

    Non-numeric and NaN metrics are skipped with a debug message.

    Args:
        run_name: Name shown in the MLflow UI
        params: Run settings (seed, UMAP and clustering parameters...)
        metrics: Numeric summary values (n_samples, silhouette, entanglement...)
        artifacts: Files to attach (figures, PDF report)
    """
    with mlflow.start_run(run_name=run_name):
        mlflow.log_params({key: str(value) for key, value in params.items()})

        for key, value in metrics.items():
            if not isinstance(value, (int, float)) or math.isnan(value):
                logger.debug(f"MLflow: skipping metric {key}={value!r}")
                continue
            mlflow.log_metric(key, float(value))

        for path in artifacts or []:
            mlflow.log_artifact(str(path))

        mlflow.set_tag("stage", "analyze")

    logger.info(f"MLflow: logged run '{run_name}' ({len(metrics)} metrics, "
                f"{len(artifacts or [])} artifacts)")
