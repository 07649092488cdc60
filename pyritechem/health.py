"""
Health check utilities for the pyrite analysis.

Validates inputs and artifacts before or after a pipeline run.

Usage:
    python -m pyritechem.health
"""

from __future__ import annotations

import logging
import pickle
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import joblib

from .config import (
    ARTIFACTS,
    DATA_DIR,
    FIGURES_DIR,
    INPUT_CSV,
    MODELS_DIR,
    REPORTS_DIR,
    setup_logging,
)
from .data.loader import load_raw_data, split_columns

logger = logging.getLogger('pyritechem')


@dataclass
class HealthCheckResult:
    """Result of a health check."""
    name: str
    passed: bool
    message: str
    details: dict[str, Any] | None = None

    def __str__(self) -> str:
        status = "PASS" if self.passed else "FAIL"
        return f"[{status}] {self.name}: {self.message}"


def check_directories() -> HealthCheckResult:
    """Check if output directories exist."""
    directories = {
        'data': DATA_DIR,
        'models': MODELS_DIR,
        'reports': REPORTS_DIR,
        'figures': FIGURES_DIR,
    }

    issues = []
    for name, path in directories.items():
        if not path.exists():
            issues.append(f"{name} directory missing: {path}")
        elif not path.is_dir():
            issues.append(f"{name} is not a directory: {path}")

    if issues:
        return HealthCheckResult(
            name="directories",
            passed=False,
            message=f"{len(issues)} directory issues",
            details={"issues": issues}
        )

    return HealthCheckResult(
        name="directories",
        passed=True,
        message="All directories accessible",
        details={"directories": list(directories.keys())}
    )


def check_input_data(path: Path | None = None) -> HealthCheckResult:
    """Check the raw CSV exists and matches the expected column layout."""
    path = Path(path) if path is not None else INPUT_CSV

    try:
        dataset = split_columns(load_raw_data(path))
    except FileNotFoundError:
        return HealthCheckResult(
            name="input_data",
            passed=False,
            message="Input CSV not found",
            details={"path": str(path)}
        )
    except ValueError as e:
        return HealthCheckResult(
            name="input_data",
            passed=False,
            message=f"Input CSV invalid: {e}",
            details={"path": str(path)}
        )

    n_with_lod = int(dataset.lod.notna().any().sum())
    return HealthCheckResult(
        name="input_data",
        passed=True,
        message=f"{dataset.n_samples} analyses, {len(dataset.elements)} elements",
        details={"path": str(path), "elements": dataset.elements, "elements_with_lod": n_with_lod}
    )


def check_processed_data() -> HealthCheckResult:
    """Check if preprocessing outputs exist."""
    names = ('processed', 'clr', 'fill_rates', 'imputation_summary')
    found = [ARTIFACTS[name].name for name in names if ARTIFACTS[name].exists()]
    missing = [ARTIFACTS[name].name for name in names if not ARTIFACTS[name].exists()]

    if missing:
        return HealthCheckResult(
            name="processed_data",
            passed=False,
            message=f"Missing {len(missing)} processed files",
            details={"missing": missing, "found": found}
        )

    return HealthCheckResult(
        name="processed_data",
        passed=True,
        message=f"All {len(found)} processed files present",
        details={"found": found}
    )


def check_preprocessing_pipeline() -> HealthCheckResult:
    """Check if the fitted preprocessing pipeline is loadable."""
    pipeline_path = ARTIFACTS['preprocessing_pipeline']

    if not pipeline_path.exists():
        return HealthCheckResult(
            name="preprocessing_pipeline",
            passed=False,
            message="Preprocessing pipeline not found",
            details={"path": str(pipeline_path)}
        )

    try:
        pipeline = joblib.load(pipeline_path)
        steps = [name for name, _ in pipeline.steps]
        return HealthCheckResult(
            name="preprocessing_pipeline",
            passed=True,
            message=f"Pipeline loaded with {len(steps)} steps",
            details={"steps": steps}
        )
    except PermissionError:
        return HealthCheckResult(
            name="preprocessing_pipeline",
            passed=False,
            message="Permission denied reading pipeline file",
            details={"path": str(pipeline_path)}
        )
    except (EOFError, pickle.UnpicklingError, KeyError, ModuleNotFoundError) as e:
        # ModuleNotFoundError if the pickle references renamed transformers
        return HealthCheckResult(
            name="preprocessing_pipeline",
            passed=False,
            message=f"Pipeline file incompatible: {type(e).__name__}",
            details={"error": str(e), "path": str(pipeline_path)}
        )
    except OSError as e:
        return HealthCheckResult(
            name="preprocessing_pipeline",
            passed=False,
            message=f"Pipeline I/O error: {e}",
            details={"error": str(e), "path": str(pipeline_path)}
        )
    except AttributeError as e:
        return HealthCheckResult(
            name="preprocessing_pipeline",
            passed=False,
            message="Pipeline missing expected structure",
            details={"error": str(e), "path": str(pipeline_path)}
        )


def check_figures() -> HealthCheckResult:
    """Check that analysis figures and the PDF report were written."""
    figures = sorted(p.name for p in FIGURES_DIR.glob('*.png')) if FIGURES_DIR.exists() else []
    report = ARTIFACTS['pdf_report']

    issues = []
    if not figures:
        issues.append("no figures in reports/figures")
    if not report.exists():
        issues.append(f"{report.name} missing")
    elif report.stat().st_size == 0:
        issues.append(f"{report.name} is empty")

    if issues:
        return HealthCheckResult(
            name="figures",
            passed=False,
            message=f"{len(issues)} issues found",
            details={"issues": issues, "figures": figures}
        )

    return HealthCheckResult(
        name="figures",
        passed=True,
        message=f"{len(figures)} figures and PDF report present",
        details={"figures": figures}
    )


def run_all_health_checks(verbose: bool = True) -> list[HealthCheckResult]:
    """
    Run all health checks and return results.

    Args:
        verbose: If True, log each check result

    Returns:
        List of HealthCheckResult objects
    """
    checks = [
        check_directories,
        check_input_data,
        check_processed_data,
        check_preprocessing_pipeline,
        check_figures,
    ]

    results = []
    for check_fn in checks:
        result = check_fn()
        results.append(result)
        if verbose:
            log_fn = logger.info if result.passed else logger.warning
            log_fn(str(result))

    passed = sum(1 for r in results if r.passed)
    total = len(results)

    if verbose:
        if passed == total:
            logger.info(f"Health check: {passed}/{total} checks passed")
        else:
            logger.warning(f"Health check: {passed}/{total} checks passed")

    return results


def is_healthy() -> bool:
    """Quick check if all inputs and artifacts are in place."""
    results = run_all_health_checks(verbose=False)
    return all(r.passed for r in results)


if __name__ == '__main__':
    setup_logging()
    results = run_all_health_checks(verbose=True)
    sys.exit(0 if all(r.passed for r in results) else 1)
