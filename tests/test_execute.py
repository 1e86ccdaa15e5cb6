"""
Unit Tests for the Execution Layer

Command building for tarpaulin and the blocking subprocess wrapper.
"""

import logging
import os
import subprocess
import sys
from pathlib import Path
from unittest.mock import patch

import pytest

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from covpipe.acquire import ToolHandle
from covpipe.config import ReportFormat, load_settings
from covpipe.context import JobContext
from covpipe.coreutils.process import run_command
from covpipe.errors import EXIT_EXECUTE, EXIT_REPORT, ExecutionError
from covpipe.execute.tarpaulin import (
    TarpaulinRunner,
    build_report_command,
    build_test_command,
    tool_environment,
)

TOOL = ToolHandle(
    name="cargo-tarpaulin",
    version="0.31.2",
    executable=Path("/opt/covpipe/cargo-tarpaulin"),
)

TRAVIS_CTX = JobContext.from_env(
    {"TRAVIS": "true", "TRAVIS_JOB_ID": "12345", "COVERALLS_REPO_TOKEN": "repo-secret"}
)


# =============================================================================
# Command builders
# =============================================================================


def test_test_command_forwards_job_id_to_coveralls():
    command = build_test_command(TOOL, TRAVIS_CTX)

    assert command == [
        "/opt/covpipe/cargo-tarpaulin",
        "tarpaulin",
        "--ciserver",
        "travis-ci",
        "--coveralls",
        "12345",
    ]


def test_test_command_without_forwarding():
    command = build_test_command(TOOL, TRAVIS_CTX, forward_to_coveralls=False)
    assert "--coveralls" not in command


def test_test_command_without_job_id_skips_coveralls():
    command = build_test_command(TOOL, JobContext.from_env({}))

    assert command[2:] == ["--ciserver", "local"]


def test_test_command_uses_repo_token_without_job_id():
    context = JobContext.from_env(
        {"GITHUB_ACTIONS": "true", "COVERALLS_REPO_TOKEN": "tok"}
    )

    command = build_test_command(TOOL, context)

    assert command[2:] == ["--ciserver", "github-actions", "--coveralls", "tok"]


def test_single_pass_test_command_writes_report():
    command = build_test_command(
        TOOL,
        TRAVIS_CTX,
        report_format=ReportFormat.XML,
        output_dir=Path("target/coverage"),
        extra_args=["--workspace"],
    )

    assert command[-5:] == ["--out", "Xml", "--output-dir", "target/coverage", "--workspace"]


def test_report_command():
    command = build_report_command(TOOL, ReportFormat.LCOV, Path("out"), ["--all-features"])

    assert command == [
        "/opt/covpipe/cargo-tarpaulin",
        "tarpaulin",
        "--out",
        "Lcov",
        "--output-dir",
        "out",
        "--all-features",
    ]


def test_token_goes_to_environment_not_argv():
    assert tool_environment(TRAVIS_CTX) == {"COVERALLS_REPO_TOKEN": "repo-secret"}
    assert "repo-secret" not in build_test_command(TOOL, TRAVIS_CTX)
    assert tool_environment(JobContext.from_env({})) == {}


# =============================================================================
# TarpaulinRunner
# =============================================================================


def test_runner_runs_tests_with_token_environment(tmp_path):
    settings = load_settings({}, tool_args=["--workspace"], test_timeout=600)
    runner = TarpaulinRunner(settings, cwd=tmp_path)

    with patch("covpipe.execute.tarpaulin.run_command") as mock_run:
        runner.run_tests(TOOL, TRAVIS_CTX)

    command = mock_run.call_args.args[0]
    kwargs = mock_run.call_args.kwargs
    assert "--out" not in command
    assert command[-1] == "--workspace"
    assert kwargs["step"] == "execute"
    assert kwargs["cwd"] == tmp_path
    assert kwargs["env"] == {"COVERALLS_REPO_TOKEN": "repo-secret"}
    assert kwargs["timeout"] == 600


def test_runner_hides_repo_token_in_logs(tmp_path):
    context = JobContext.from_env(
        {"GITHUB_ACTIONS": "true", "COVERALLS_REPO_TOKEN": "tok"}
    )
    runner = TarpaulinRunner(load_settings({}), cwd=tmp_path)

    with patch("covpipe.execute.tarpaulin.run_command") as mock_run:
        runner.run_tests(TOOL, context)

    assert mock_run.call_args.args[0][-2:] == ["--coveralls", "tok"]
    assert mock_run.call_args.kwargs["secrets"] == ["tok"]


def test_runner_single_pass_adds_report_flags(tmp_path):
    settings = load_settings({"COVPIPE_REPORT_MODE": "single_pass"}, report_dir=tmp_path)
    runner = TarpaulinRunner(settings)

    with patch("covpipe.execute.tarpaulin.run_command") as mock_run:
        runner.run_tests(TOOL, TRAVIS_CTX)

    command = mock_run.call_args.args[0]
    assert ["--out", "Xml", "--output-dir", str(tmp_path)] == command[6:10]


def test_runner_report_pass_uses_report_step(tmp_path):
    settings = load_settings({}, report_dir=tmp_path)
    runner = TarpaulinRunner(settings)

    with patch("covpipe.execute.tarpaulin.run_command") as mock_run:
        runner.write_report(TOOL)

    assert mock_run.call_args.kwargs["step"] == "report"
    assert "--ciserver" not in mock_run.call_args.args[0]


# =============================================================================
# run_command
# =============================================================================


def test_run_command_success():
    completed = subprocess.CompletedProcess(args=["true"], returncode=0)

    with patch(
        "covpipe.coreutils.process.subprocess.run", return_value=completed
    ) as mock_run:
        result = run_command(["true"], env={"EXTRA": "1"})

    assert result is completed
    env = mock_run.call_args.kwargs["env"]
    assert env["EXTRA"] == "1"
    assert "PATH" in env


def test_run_command_masks_secrets_in_log(caplog):
    completed = subprocess.CompletedProcess(args=["cargo-tarpaulin"], returncode=0)

    with patch("covpipe.coreutils.process.subprocess.run", return_value=completed) as mock_run:
        with caplog.at_level(logging.DEBUG, logger="covpipe"):
            run_command(
                ["cargo-tarpaulin", "--coveralls", "repo-secret-7f3a"],
                secrets=["repo-secret-7f3a", None],
            )

    assert mock_run.call_args.args[0][-1] == "repo-secret-7f3a"
    assert "repo-secret-7f3a" not in caplog.text
    assert "--coveralls ***" in caplog.text


def test_run_command_nonzero_exit():
    completed = subprocess.CompletedProcess(args=["cargo-tarpaulin"], returncode=101)

    with patch("covpipe.coreutils.process.subprocess.run", return_value=completed):
        with pytest.raises(ExecutionError) as excinfo:
            run_command(["cargo-tarpaulin", "tarpaulin"])

    assert excinfo.value.returncode == 101
    assert excinfo.value.step == "execute"
    assert excinfo.value.exit_code == EXIT_EXECUTE


def test_run_command_report_step_exit_code():
    completed = subprocess.CompletedProcess(args=["cargo-tarpaulin"], returncode=1)

    with patch("covpipe.coreutils.process.subprocess.run", return_value=completed):
        with pytest.raises(ExecutionError) as excinfo:
            run_command(["cargo-tarpaulin"], step="report")

    assert excinfo.value.exit_code == EXIT_REPORT


def test_run_command_missing_executable():
    with patch(
        "covpipe.coreutils.process.subprocess.run",
        side_effect=FileNotFoundError("cargo-tarpaulin"),
    ):
        with pytest.raises(ExecutionError, match="Could not start") as excinfo:
            run_command(["cargo-tarpaulin"])

    assert isinstance(excinfo.value.cause, FileNotFoundError)


def test_run_command_timeout():
    with patch(
        "covpipe.coreutils.process.subprocess.run",
        side_effect=subprocess.TimeoutExpired(cmd="cargo-tarpaulin", timeout=5),
    ):
        with pytest.raises(ExecutionError, match="timed out"):
            run_command(["cargo-tarpaulin"], timeout=5)
