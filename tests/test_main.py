"""
Unit Tests for the CLI Entry Point
"""

import logging
import os
import sys
from unittest.mock import patch

import pytest

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from covpipe.errors import EXIT_CONFIG, EXIT_OK, EXIT_UPLOAD, UploadError
from covpipe.main import main
from covpipe.orchestration.states import PipelineRun, PipelineState

CI_VARIABLES = (
    "TRAVIS",
    "GITHUB_ACTIONS",
    "GITLAB_CI",
    "CI",
    "CI_JOB_ID",
    "COVPIPE_REPORT_FORMAT",
    "COVPIPE_REPORT_MODE",
    "TARPAULIN_SHA256",
)


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    for key in CI_VARIABLES:
        monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("COVPIPE_LOG_DIR", str(tmp_path / "logs"))
    return monkeypatch


@pytest.fixture(autouse=True)
def restore_logging():
    root = logging.getLogger()
    handlers = root.handlers[:]
    level = root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers = handlers
    root.setLevel(level)


def finished_run():
    run = PipelineRun()
    for state in (
        PipelineState.ACQUIRED,
        PipelineState.EXECUTED,
        PipelineState.REPORTED,
        PipelineState.UPLOADED,
        PipelineState.DONE,
    ):
        run.advance(state)
    return run


def failed_upload_run():
    run = PipelineRun()
    for state in (PipelineState.ACQUIRED, PipelineState.EXECUTED, PipelineState.REPORTED):
        run.advance(state)
    run.fail(UploadError("Upload negotiation failed"))
    return run


def test_success_exits_zero(clean_env):
    clean_env.setenv("CI_JOB_ID", "12345")

    with patch("covpipe.main.CoverageOrchestrator") as mock_orchestrator:
        mock_orchestrator.return_value.run.return_value = finished_run()
        assert main([]) == EXIT_OK

    settings, job_context = mock_orchestrator.call_args.args
    assert job_context.job_id == "12345"
    assert mock_orchestrator.call_args.kwargs["dry_run"] is False


def test_failed_step_sets_exit_code(clean_env):
    with patch("covpipe.main.CoverageOrchestrator") as mock_orchestrator:
        mock_orchestrator.return_value.run.return_value = failed_upload_run()
        assert main([]) == EXIT_UPLOAD


def test_dry_run_flag(clean_env):
    with patch("covpipe.main.CoverageOrchestrator") as mock_orchestrator:
        mock_orchestrator.return_value.run.return_value = finished_run()
        main(["--dry-run", "--verbose"])

    assert mock_orchestrator.call_args.kwargs["dry_run"] is True


def test_invalid_settings_exit_before_any_step(clean_env):
    clean_env.setenv("COVPIPE_REPORT_FORMAT", "Html")

    with patch("covpipe.main.CoverageOrchestrator") as mock_orchestrator:
        assert main([]) == EXIT_CONFIG

    mock_orchestrator.assert_not_called()


def test_unexpected_error_exits_non_zero(clean_env):
    with patch("covpipe.main.CoverageOrchestrator") as mock_orchestrator:
        mock_orchestrator.return_value.run.side_effect = RuntimeError("boom")
        assert main([]) == EXIT_CONFIG


def test_log_file_is_written(clean_env, tmp_path):
    with patch("covpipe.main.CoverageOrchestrator") as mock_orchestrator:
        mock_orchestrator.return_value.run.return_value = finished_run()
        main([])

    assert list((tmp_path / "logs").glob("pipeline_*.log"))
