"""
Tarpaulin Runner - Execution Layer

cargo-tarpaulin is a cargo subcommand: invoked directly, its first argument
must be the subcommand name ``tarpaulin``.
"""

from pathlib import Path
from typing import Dict, List, Optional, Sequence
import logging

from covpipe.acquire import ToolHandle
from covpipe.config import PipelineSettings, ReportFormat, ReportMode
from covpipe.context import COVERALLS_TOKEN_KEY, JobContext
from covpipe.coreutils.process import run_command

logger = logging.getLogger(__name__)


def _base_command(tool: ToolHandle) -> List[str]:
    return [str(tool.executable), "tarpaulin"]


def build_test_command(
    tool: ToolHandle,
    job_context: JobContext,
    forward_to_coveralls: bool = True,
    report_format: Optional[ReportFormat] = None,
    output_dir: Optional[Path] = None,
    extra_args: Sequence[str] = (),
) -> List[str]:
    """
    Command for the instrumented test run

    Args:
        tool: Resolved tarpaulin executable
        job_context: Job identity forwarded via --ciserver/--coveralls (the
            repo token stands in for a missing job id)
        forward_to_coveralls: Let tarpaulin report to Coveralls itself
        report_format: Also write a report in this run (single-pass mode)
        output_dir: Report directory for single-pass mode
        extra_args: User supplied tarpaulin arguments

    Returns:
        List[str]: argv for the subprocess
    """
    command = _base_command(tool)
    command += ["--ciserver", job_context.ci_server]

    # tarpaulin takes either a CI job id or a Coveralls repo token as the key
    if forward_to_coveralls:
        coveralls_key = job_context.job_id or job_context.token("coveralls")
        if coveralls_key:
            command += ["--coveralls", coveralls_key]
    if report_format is not None:
        command += ["--out", report_format.value]
        if output_dir is not None:
            command += ["--output-dir", str(output_dir)]
    command += list(extra_args)
    return command


def build_report_command(
    tool: ToolHandle,
    report_format: ReportFormat,
    output_dir: Path,
    extra_args: Sequence[str] = (),
) -> List[str]:
    """Command for the second pass that only writes the report"""
    command = _base_command(tool)
    command += ["--out", report_format.value, "--output-dir", str(output_dir)]
    command += list(extra_args)
    return command


def tool_environment(job_context: JobContext) -> Dict[str, str]:
    """Environment additions for tarpaulin runs"""
    env = {}
    coveralls_token = job_context.token("coveralls")
    if coveralls_token:
        env[COVERALLS_TOKEN_KEY] = coveralls_token
    return env


class TarpaulinRunner:
    """Runs the instrumented test suite and the report pass"""

    def __init__(self, settings: PipelineSettings, cwd: Optional[Path] = None):
        self.settings = settings
        self.cwd = cwd

    @property
    def single_pass(self) -> bool:
        return self.settings.report_mode == ReportMode.SINGLE_PASS

    def run_tests(self, tool: ToolHandle, job_context: JobContext) -> None:
        """Run the test suite under coverage; raises ExecutionError on failure"""
        command = build_test_command(
            tool,
            job_context,
            forward_to_coveralls=self.settings.forward_to_coveralls,
            report_format=self.settings.report_format if self.single_pass else None,
            output_dir=self.settings.report_dir if self.single_pass else None,
            extra_args=self.settings.tool_args,
        )
        run_command(
            command,
            step="execute",
            cwd=self.cwd,
            env=tool_environment(job_context),
            timeout=self.settings.test_timeout,
            secrets=[job_context.token("coveralls")],
        )

    def write_report(self, tool: ToolHandle) -> None:
        """Second tarpaulin pass writing the report; raises ExecutionError on failure"""
        command = build_report_command(
            tool,
            self.settings.report_format,
            self.settings.report_dir,
            extra_args=self.settings.tool_args,
        )
        run_command(
            command,
            step="report",
            cwd=self.cwd,
            timeout=self.settings.test_timeout,
        )
