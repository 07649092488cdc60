"""
Configuration constants for the pyrite trace-element analysis
"""

from __future__ import annotations

import json
import logging
import math
import numbers
import os
import sys
import time
from contextlib import contextmanager
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from pathlib import Path
from types import MappingProxyType
from typing import Any, Generator


# Random seed for reproducibility
RANDOM_STATE = 42

# =============================================================================
# INPUT SCHEMA
# =============================================================================
# Columns 1-11 are sample metadata, everything after is numeric
N_METADATA_COLUMNS = 11

SOURCE_COLUMN = 'Source_file'
UNIT_COLUMN = 'Unit'
REEF_COLUMN = 'Reef'
TYPE_COLUMN = 'Pyrite_type'
TEXTURE_COLUMN = 'Texture'
GENERATION_COLUMN = 'Generation'

REQUIRED_METADATA = (
    SOURCE_COLUMN, UNIT_COLUMN, REEF_COLUMN,
    TYPE_COLUMN, TEXTURE_COLUMN, GENERATION_COLUMN,
)

# Rows missing any of these are dropped before plotting
CLASSIFICATION_COLUMNS = (REEF_COLUMN, TYPE_COLUMN)

LOD_SUFFIX = '_LOD'
UNCERTAINTY_SUFFIX = '_2SE'
IMPUTED_SUFFIX = '_imputed'

# Text the laboratory export writes in place of a number
MISSING_MARKERS = ('<LOD', '< LOD', 'bdl', 'b.d.l.', 'BDL', 'n.d.', 'nd', '-', '')

# =============================================================================
# PREPROCESSING THRESHOLDS
# =============================================================================

# Elements detected (present and >= LOD) in fewer analyses are dropped
MIN_FILL_RATE = 0.50

# missForest-style imputation
IMPUTER_N_ESTIMATORS = 100
IMPUTER_MAX_ITER = 10

# =============================================================================
# DIMENSIONALITY REDUCTION & CLUSTERING
# =============================================================================

UMAP_PARAMS = MappingProxyType({
    'n_neighbors': 15,
    'min_dist': 0.1,
    'n_components': 2,
    'metric': 'euclidean',
})

# scipy name for Manhattan distance
CLUSTER_METRIC = 'cityblock'
CLUSTER_LINKAGE = 'average'
N_CLUSTERS_RANGE = (2, 8)

# Per-group element dendrograms need at least this many analyses
MIN_GROUP_SIZE = 10

# Labels compared in UMAP scatters and tanglegrams
GROUP_COLUMNS = (TYPE_COLUMN, REEF_COLUMN)

ELLIPSE_CONFIDENCE = 0.95

# Raw codes in the laboratory sheet -> labels used in figures
LABEL_RECODING = MappingProxyType({
    TYPE_COLUMN: {
        'D': 'Detrital',
        'Dr': 'Detrital rounded',
        'A': 'Authigenic',
        'H': 'Hydrothermal',
        'E': 'Euhedral',
    },
    TEXTURE_COLUMN: {
        'C': 'Compact',
        'P': 'Porous',
        'Z': 'Zoned',
        'I': 'Inclusion-rich',
    },
    GENERATION_COLUMN: {
        '1': 'Py1',
        '2': 'Py2',
        '3': 'Py3',
        '4': 'Py4',
    },
})

GENERATION_ORDER = ('Py1', 'Py2', 'Py3', 'Py4')

# Libraries to suppress verbose logging
_SUPPRESS_LIBRARIES = (
    ('numba', logging.WARNING),
    ('mlflow', logging.WARNING),
    ('alembic', logging.WARNING),
    ('matplotlib', logging.WARNING),
)


def _apply_log_suppression() -> None:
    """Apply log level suppression to noisy libraries."""
    for lib_name, level in _SUPPRESS_LIBRARIES:
        logging.getLogger(lib_name).setLevel(level)


def setup_logging(level: int = logging.INFO, force: bool = False) -> logging.Logger:
    """
    Configure project logging with proper handler management.

    Unlike logging.basicConfig(), this function properly handles repeated calls
    by clearing existing handlers first when force=True.

    Args:
        level: Logging level (default: INFO)
        force: If True, remove existing handlers before adding new ones.

    Returns:
        Configured 'pyritechem' logger instance
    """
    logger = logging.getLogger('pyritechem')

    if force or not logger.handlers:
        for handler in logger.handlers[:]:
            logger.removeHandler(handler)

        logger.setLevel(level)

        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(level)
        console_handler.setFormatter(logging.Formatter('[%(levelname)s] %(message)s'))
        logger.addHandler(console_handler)

        # Avoid duplicate messages through the root logger
        logger.propagate = False

    _apply_log_suppression()
    return logger


# =============================================================================
# STRUCTURED LOGGING (JSON format)
# =============================================================================

def _json_safe(value: Any) -> Any:
    # numpy scalars become Python numbers; NaN and inf become null
    if isinstance(value, bool) or not isinstance(value, numbers.Real):
        return value
    if isinstance(value, numbers.Integral):
        return int(value)
    value = float(value)
    return value if math.isfinite(value) else None


@dataclass
class LogRecord:
    """One JSON line of a pipeline run log."""
    timestamp: str
    level: str
    message: str
    logger: str = "pyritechem"
    module: str | None = None
    function: str | None = None
    line: int | None = None
    duration_ms: float | None = None
    exception: str | None = None
    metrics: dict[str, Any] = field(default_factory=dict)
    context: dict[str, Any] = field(default_factory=dict)

    def to_json(self) -> str:
        data = {k: v for k, v in asdict(self).items() if v is not None}
        for key in ("metrics", "context"):
            if data.get(key):
                data[key] = {k: _json_safe(v) for k, v in data[key].items()}
            else:
                data.pop(key, None)
        return json.dumps(data, default=str, allow_nan=False)


class JSONFormatter(logging.Formatter):
    """Render records as LogRecord JSON lines, with traceback text on errors."""

    def format(self, record: logging.LogRecord) -> str:
        log_record = LogRecord(
            timestamp=datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            level=record.levelname,
            message=record.getMessage(),
            logger=record.name,
            module=record.module or None,
            function=record.funcName,
            line=record.lineno or None,
            duration_ms=getattr(record, "duration_ms", None),
            metrics=getattr(record, "metrics", None) or {},
            context=getattr(record, "context", None) or {},
        )
        if record.exc_info:
            log_record.exception = self.formatException(record.exc_info)

        return log_record.to_json()


def setup_json_logging(
    level: int = logging.INFO,
    log_file: Path | None = None,
    console: bool = True
) -> logging.Logger:
    """
    Configure logging for a pipeline run with a JSON-lines run log.

    The console keeps the plain ``[LEVEL] message`` format; the file gets one
    LogRecord JSON object per line, including the structured metrics emitted
    by log_metric and log_pipeline_step.

    Args:
        level: Logging level (default: INFO)
        log_file: Optional path of the JSON-lines run log
        console: Whether to also print plain messages to stdout

    Returns:
        Configured 'pyritechem' logger instance
    """
    logger = logging.getLogger("pyritechem")
    logger.setLevel(level)
    logger.handlers.clear()
    logger.propagate = False

    if console:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(logging.Formatter('[%(levelname)s] %(message)s'))
        logger.addHandler(console_handler)

    if log_file is not None:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(JSONFormatter())
        logger.addHandler(file_handler)

    _apply_log_suppression()
    return logger


def _emit(
    logger: logging.Logger,
    level: int,
    msg: str,
    duration_ms: float | None = None,
    metrics: dict[str, Any] | None = None,
    context: dict[str, Any] | None = None,
) -> None:
    record = logging.LogRecord(
        name=logger.name,
        level=level,
        pathname="",
        lineno=0,
        msg=msg,
        args=(),
        exc_info=None,
    )
    record.duration_ms = duration_ms
    record.metrics = metrics or {}
    record.context = context or {}
    logger.handle(record)


@contextmanager
def log_execution_time(
    logger: logging.Logger,
    operation: str,
    level: int = logging.INFO,
    extra_context: dict[str, Any] | None = None
) -> Generator[dict[str, Any], None, None]:
    """
    Context manager for logging operation execution time.

    Args:
        logger: Logger instance
        operation: Name of the operation being timed
        level: Log level for the completion message
        extra_context: Additional context to include in log

    Yields:
        Dict for collecting metrics during execution

    Example:
        with log_execution_time(logger, "imputation") as metrics:
            imputer.fit(X)
            metrics["n_imputed"] = int(imputer.imputed_mask_.sum().sum())
    """
    metrics: dict[str, Any] = {}
    context = extra_context or {}
    start_time = time.perf_counter()

    try:
        yield metrics
    finally:
        duration_ms = (time.perf_counter() - start_time) * 1000
        _emit(logger, level, f"{operation} completed",
              duration_ms=duration_ms, metrics=metrics,
              context={"operation": operation, **context})


def log_metric(
    logger: logging.Logger,
    metric_name: str,
    value: float | None,
    context: dict[str, Any] | None = None,
    level: int = logging.INFO
) -> None:
    """
    Log one analysis metric (silhouette, cophenetic correlation, ...).

    A missing or non-finite value is logged as null so the run log stays
    valid JSON.
    """
    value = _json_safe(value)
    shown = f"{value:.4f}" if isinstance(value, float) else value
    _emit(logger, level, f"metric:{metric_name}={shown}",
          metrics={metric_name: value}, context=context)


def log_pipeline_step(
    logger: logging.Logger,
    step_name: str,
    status: str,
    duration_ms: float | None = None,
    metrics: dict[str, Any] | None = None,
    level: int = logging.INFO
) -> None:
    """
    Log a pipeline step execution.

    Args:
        logger: Logger instance
        step_name: Name of the pipeline step
        status: Status (started, completed, failed)
        duration_ms: Execution time in milliseconds
        metrics: Step-specific metrics
        level: Log level
    """
    _emit(logger, level, f"pipeline:{step_name}:{status}",
          duration_ms=duration_ms, metrics=metrics,
          context={"step": step_name, "status": status})


# =============================================================================
# PROJECT PATHS
# =============================================================================
# PYRITECHEM_PROJECT_ROOT relocates every artifact (used by integration tests)
PROJECT_ROOT = Path(os.environ.get('PYRITECHEM_PROJECT_ROOT', Path(__file__).parent.parent))
RAW_DATA_DIR = PROJECT_ROOT / "data" / "raw"
DATA_DIR = PROJECT_ROOT / "data" / "processed"
MODELS_DIR = PROJECT_ROOT / "models"
REPORTS_DIR = PROJECT_ROOT / "reports"
FIGURES_DIR = REPORTS_DIR / "figures"

INPUT_CSV = Path(os.environ.get('PYRITECHEM_INPUT_CSV', RAW_DATA_DIR / 'pyrite_la_icp_ms.csv'))

# NOTE: Directories are NOT created at import time to avoid side effects.
# Call ensure_directories() explicitly in main entry points.


def ensure_directories(create: bool = True) -> dict[str, Path]:
    """
    Ensure required project directories exist and are accessible.

    Args:
        create: If True, create missing directories. If False, only validate.

    Returns:
        Dict mapping directory names to Path objects.

    Raises:
        RuntimeError: If directory creation fails (permissions, disk full, etc.)
    """
    directories = {
        'raw_data': RAW_DATA_DIR,
        'data': DATA_DIR,
        'models': MODELS_DIR,
        'reports': REPORTS_DIR,
        'figures': FIGURES_DIR,
    }

    if not create:
        return directories

    for name, path in directories.items():
        try:
            path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise RuntimeError(
                f"Cannot create {name} directory at {path}: {e}"
            ) from e

    return directories


# Artifact locations shared by pipelines and health checks
ARTIFACTS = MappingProxyType({
    'processed': DATA_DIR / 'pyrite_processed.csv',
    'clr': DATA_DIR / 'pyrite_clr.csv',
    'preprocessing_pipeline': MODELS_DIR / 'preprocessing_pipeline.pkl',
    'fill_rates': REPORTS_DIR / 'fill_rates.csv',
    'imputation_summary': REPORTS_DIR / 'imputation_summary.csv',
    'summary': REPORTS_DIR / 'analysis_summary.json',
    'pdf_report': REPORTS_DIR / 'pyrite_report.pdf',
    'markdown_report': REPORTS_DIR / 'pyrite_report.md',
})

# =============================================================================
# COLOR PALETTE (immutable to prevent runtime modification)
# =============================================================================
COLORS = MappingProxyType({
    'primary': '#1F3A5F',      # Slate blue
    'secondary': '#C9A227',    # Gold
    'retained': '#1F3A5F',
    'dropped': '#B0B0B0',
    'threshold': '#B22222',
    'neutral': '#757575',
})

# Visualization configuration (immutable)
VIZ_CONFIG = MappingProxyType({
    'dpi': 300,
    'style': 'whitegrid',
    'palette': 'colorblind',
    'context': 'paper',

    # Font sizes
    'title_fontsize': 13,
    'label_fontsize': 11,
    'tick_fontsize': 8,

    'primary': COLORS['primary'],
    'secondary': COLORS['secondary'],
    'neutral': COLORS['neutral'],
    'retained_color': COLORS['retained'],
    'dropped_color': COLORS['dropped'],
    'threshold_color': COLORS['threshold'],

    'heatmap_cmap': 'RdBu_r',
    'correlation_cmap': 'vlag',

    'figsize_wide': (12, 5),
    'figsize_square': (7, 6),
    'figsize_tall': (10, 12),

    'marker_size': 18,
    'qq_columns': 6,
})

# MLflow configuration
MLFLOW_EXPERIMENT_NAME = "pyrite-trace-elements"
