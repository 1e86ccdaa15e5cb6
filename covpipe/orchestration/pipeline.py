"""
Pipeline Orchestrator - Coverage Reporting

Four strictly sequential steps, each depending on the one before:
1. Acquire the coverage tool (pinned, checksum-verified)
2. Run the test suite under coverage, forwarding the job identity
3. Generate the coverage report in a fixed format
4. Upload the report to the aggregation backend

The first failure ends the run; nothing is retried here. A failed upload
leaves the report on disk for diagnosis.
"""

from datetime import datetime, timezone
from pathlib import Path
from typing import Optional
import logging
import xml.etree.ElementTree as ET

from covpipe.acquire import ToolHandle, ToolInstaller
from covpipe.config import PipelineSettings, ReportFormat, ReportMode
from covpipe.context import JobContext
from covpipe.errors import ExecutionError, PipelineError
from covpipe.execute.tarpaulin import TarpaulinRunner
from covpipe.load.codecov_uploader import CodecovUploader, UploadReceipt
from covpipe.orchestration.states import PipelineRun, PipelineState
from covpipe.report import (
    CoverageSummary,
    ReportArtifact,
    discard_stale_report,
    locate_report,
    parse_cobertura,
    save_summary,
)
from covpipe.report.cobertura import SUMMARY_FILENAME
from covpipe.report.validators import validate_report

logger = logging.getLogger(__name__)


class CoverageOrchestrator:
    """Orchestrates the coverage pipeline for one CI job"""

    def __init__(
        self,
        settings: PipelineSettings,
        job_context: JobContext,
        installer: Optional[ToolInstaller] = None,
        runner: Optional[TarpaulinRunner] = None,
        uploader: Optional[CodecovUploader] = None,
        root: Optional[Path] = None,
        dry_run: bool = False,
    ):
        """
        Initialize the coverage orchestrator

        Args:
            settings: Validated pipeline settings
            job_context: Job identity, built once at process start
            installer: Tool installer (built from settings if not provided)
            runner: Tarpaulin runner (built from settings if not provided)
            uploader: Report uploader (built from settings if not provided)
            root: Project directory the tool runs in (defaults to cwd)
            dry_run: If true, stop after the report and skip the upload
        """
        self.settings = settings
        self.job_context = job_context
        self.root = Path(root) if root is not None else Path.cwd()
        self.dry_run = dry_run

        self.installer = installer or ToolInstaller(settings)
        self.runner = runner or TarpaulinRunner(settings, cwd=self.root)

        if not self.dry_run:
            self.uploader = uploader or CodecovUploader(
                base_url=settings.upload_url,
                timeout=settings.upload_timeout,
                root=self.root,
            )
        else:
            self.uploader = None
            logger.info("🔍 DRY RUN MODE: uploader not initialized")

        self._report_not_before: Optional[datetime] = None

    @property
    def report_path(self) -> Path:
        report_dir = Path(self.settings.report_dir)
        if not report_dir.is_absolute():
            report_dir = self.root / report_dir
        return locate_report(report_dir, self.settings.report_format)

    def acquire_tool(self) -> ToolHandle:
        """Resolve the coverage tool; raises AcquisitionError"""
        return self.installer.install()

    def run_instrumented_tests(self, tool: ToolHandle, job_context: JobContext) -> None:
        """Run the test suite under coverage; raises ExecutionError"""
        if self.settings.report_mode == ReportMode.SINGLE_PASS:
            # This run writes the report, so clear any older one first
            discard_stale_report(self.report_path)
            self._report_not_before = datetime.now(timezone.utc)
        self.runner.run_tests(tool, job_context)

    def generate_report(
        self, tool: ToolHandle, report_format: Optional[ReportFormat] = None
    ) -> ReportArtifact:
        """
        Produce the coverage report and hand back its artifact

        Two-pass mode re-runs the tool with --out; single-pass mode only
        validates what the test run already wrote.

        Raises:
            ExecutionError: If the tool fails or the report is missing,
                stale or malformed
        """
        report_format = report_format or self.settings.report_format
        if report_format != self.settings.report_format:
            raise ValueError(
                f"Report format {report_format.value} does not match the configured "
                f"{self.settings.report_format.value}"
            )

        path = self.report_path
        if self.settings.report_mode == ReportMode.TWO_PASS:
            discard_stale_report(path)
            not_before = datetime.now(timezone.utc)
            self.runner.write_report(tool)
        else:
            not_before = self._report_not_before

        validate_report(path, report_format, not_before=not_before)
        try:
            return ReportArtifact.from_path(path, report_format)
        except OSError as e:
            raise ExecutionError(f"Could not read report {path}", cause=e, step="report") from e

    def upload_report(
        self, artifact: ReportArtifact, job_context: JobContext
    ) -> UploadReceipt:
        """Send the report to the aggregation backend; raises UploadError"""
        return self.uploader.upload(artifact, job_context)

    def _summarize(self, artifact: ReportArtifact) -> Optional[CoverageSummary]:
        """Write the Cobertura summary next to the report; never fails the run"""
        try:
            summary = parse_cobertura(artifact.path)
            save_summary(summary, artifact.path.parent / SUMMARY_FILENAME)
        except (ValueError, OSError, ET.ParseError) as e:
            logger.warning(f"⚠️ Could not summarize {artifact.path.name}: {e}")
            return None
        return summary

    def run(self) -> PipelineRun:
        """
        Run all steps in order

        Returns:
            PipelineRun: Final state, history and any failure
        """
        run = PipelineRun()
        logger.info("🚀 Starting Coverage Pipeline")
        logger.info("=" * 50)
        logger.info(f"Job context: {self.job_context.describe()}")

        try:
            logger.info("🔄 Step 1: Acquiring coverage tool...")
            run.tool = self.acquire_tool()
            run.advance(PipelineState.ACQUIRED)

            logger.info("🔄 Step 2: Running instrumented tests...")
            self.run_instrumented_tests(run.tool, self.job_context)
            run.advance(PipelineState.EXECUTED)
            logger.info("✅ Test suite passed under coverage")

            logger.info("🔄 Step 3: Generating coverage report...")
            run.artifact = self.generate_report(run.tool, self.settings.report_format)
            run.advance(PipelineState.REPORTED)
            logger.info(
                f"✅ Report written to {run.artifact.path} ({run.artifact.size_bytes} bytes)"
            )
            if run.artifact.format == ReportFormat.XML:
                run.summary = self._summarize(run.artifact)

            if not self.dry_run:
                logger.info("🔄 Step 4: Uploading coverage report...")
                run.receipt = self.upload_report(run.artifact, self.job_context)
                run.advance(PipelineState.UPLOADED)
            else:
                logger.info("🔍 DRY RUN: Skipping upload")

            run.advance(PipelineState.DONE)
            logger.info("✅ Coverage pipeline completed successfully")

        except PipelineError as e:
            logger.error(f"❌ Pipeline failed at step '{e.step}': {e}")
            run.fail(e)

        return run

    def get_pipeline_status(self) -> dict:
        """
        Get current pipeline configuration status

        Returns:
            dict: Pipeline status information
        """
        return {
            "timestamp": datetime.now().isoformat(),
            "dry_run": self.dry_run,
            "tool_version": self.settings.tool_version,
            "report_format": self.settings.report_format.value,
            "report_mode": self.settings.report_mode.value,
            "report_path": str(self.report_path),
            "upload_url": self.settings.upload_url,
            "job": self.job_context.describe(),
        }
