"""
Unit tests for health check module.
"""

import logging

import joblib
import pandas as pd
import pytest

import pyritechem.health as health
from pyritechem.data.transformers import build_preprocessing_pipeline
from pyritechem.health import (
    HealthCheckResult,
    check_directories,
    check_figures,
    check_input_data,
    check_preprocessing_pipeline,
    check_processed_data,
    is_healthy,
    run_all_health_checks,
)


@pytest.fixture
def artifact_root(tmp_path, monkeypatch) -> dict:
    """Point health checks at an empty temporary project."""
    reports = tmp_path / 'reports'
    artifacts = {
        'processed': tmp_path / 'data' / 'processed' / 'pyrite_processed.csv',
        'clr': tmp_path / 'data' / 'processed' / 'pyrite_clr.csv',
        'preprocessing_pipeline': tmp_path / 'models' / 'preprocessing_pipeline.pkl',
        'fill_rates': reports / 'fill_rates.csv',
        'imputation_summary': reports / 'imputation_summary.csv',
        'pdf_report': reports / 'pyrite_report.pdf',
    }
    for path in artifacts.values():
        path.parent.mkdir(parents=True, exist_ok=True)
    (reports / 'figures').mkdir()

    monkeypatch.setattr(health, 'ARTIFACTS', artifacts)
    monkeypatch.setattr(health, 'FIGURES_DIR', reports / 'figures')
    return artifacts


class TestHealthCheckResult:
    """Tests for HealthCheckResult dataclass."""

    def test_passed_str_format(self):
        """Test string format for passed check."""
        result = HealthCheckResult(name="test_check", passed=True, message="Everything OK")
        assert "[PASS]" in str(result)
        assert "test_check" in str(result)

    def test_failed_str_format(self):
        """Test string format for failed check."""
        result = HealthCheckResult(name="test_check", passed=False, message="Something wrong")
        assert "[FAIL]" in str(result)
        assert "Something wrong" in str(result)

    def test_details_optional(self):
        """Test that details field is optional."""
        result = HealthCheckResult(name="test", passed=True, message="OK")
        assert result.details is None


class TestCheckDirectories:
    """Tests for check_directories function."""

    def test_returns_health_check_result(self):
        result = check_directories()
        assert isinstance(result, HealthCheckResult)
        assert result.name == "directories"
        assert result.details is not None

    def test_missing_directory_fails(self, tmp_path, monkeypatch):
        monkeypatch.setattr(health, 'DATA_DIR', tmp_path / 'absent')
        result = check_directories()
        assert not result.passed
        assert any('absent' in issue for issue in result.details['issues'])


class TestCheckInputData:
    """Tests for check_input_data function."""

    def test_valid_csv_passes(self, pyrite_csv):
        result = check_input_data(pyrite_csv)
        assert result.passed
        assert len(result.details['elements']) == 12
        assert "60 analyses" in result.message

    def test_missing_csv_fails(self, tmp_path):
        result = check_input_data(tmp_path / 'missing.csv')
        assert not result.passed
        assert "not found" in result.message

    def test_malformed_csv_fails(self, tmp_path):
        path = tmp_path / 'bad.csv'
        pd.DataFrame({'a': [1], 'b': [2]}).to_csv(path, index=False)
        result = check_input_data(path)
        assert not result.passed
        assert "invalid" in result.message


class TestCheckArtifacts:
    """Tests for processed data, pipeline and figure checks."""

    def test_processed_missing(self, artifact_root):
        result = check_processed_data()
        assert not result.passed
        assert len(result.details['missing']) == 4

    def test_processed_present(self, artifact_root):
        for name in ('processed', 'clr', 'fill_rates', 'imputation_summary'):
            artifact_root[name].write_text('analysis\n')
        assert check_processed_data().passed

    def test_pipeline_missing(self, artifact_root):
        result = check_preprocessing_pipeline()
        assert not result.passed
        assert "not found" in result.message

    def test_pipeline_loads(self, artifact_root):
        joblib.dump(build_preprocessing_pipeline(), artifact_root['preprocessing_pipeline'])
        result = check_preprocessing_pipeline()
        assert result.passed
        assert result.details['steps'] == ['high_missing', 'zero_variance', 'impute', 'clr']

    def test_pipeline_corrupt(self, artifact_root):
        artifact_root['preprocessing_pipeline'].write_bytes(b'not a pickle')
        result = check_preprocessing_pipeline()
        assert not result.passed

    def test_figures_missing(self, artifact_root):
        result = check_figures()
        assert not result.passed
        assert len(result.details['issues']) == 2

    def test_figures_present(self, artifact_root):
        (artifact_root['pdf_report'].parent / 'figures' / 'umap.png').write_bytes(b'png')
        artifact_root['pdf_report'].write_bytes(b'%PDF-1.4')
        result = check_figures()
        assert result.passed
        assert result.details['figures'] == ['umap.png']


class TestRunAllHealthChecks:
    """Tests for run_all_health_checks function."""

    def test_returns_list_of_results(self, artifact_root):
        results = run_all_health_checks(verbose=False)
        assert isinstance(results, list)
        assert all(isinstance(r, HealthCheckResult) for r in results)
        assert [r.name for r in results] == [
            'directories', 'input_data', 'processed_data', 'preprocessing_pipeline', 'figures'
        ]

    def test_verbose_mode(self, artifact_root, caplog, monkeypatch):
        """Test verbose mode logs a summary line."""
        monkeypatch.setattr(logging.getLogger('pyritechem'), 'propagate', True)
        with caplog.at_level(logging.INFO, logger='pyritechem'):
            run_all_health_checks(verbose=True)
        assert any("Health check:" in record.message for record in caplog.records)


class TestIsHealthy:
    """Tests for is_healthy function."""

    def test_empty_project_unhealthy(self, artifact_root):
        assert is_healthy() is False
