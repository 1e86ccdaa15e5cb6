"""
Main Entry Point - Coverage Pipeline

Runs the whole pipeline with no arguments. Exit code 0 means the report was
produced and uploaded; each failing step has its own non-zero code.
"""

import argparse
import logging
import sys
from typing import Optional, Sequence

from covpipe.config import PipelineSettings, load_settings
from covpipe.context import JobContext
from covpipe.coreutils.logging import setup_logging
from covpipe.errors import EXIT_CONFIG, ConfigError
from covpipe.orchestration.pipeline import CoverageOrchestrator

logger = logging.getLogger(__name__)


def run_pipeline(
    settings: PipelineSettings, job_context: JobContext, dry_run: bool = False
) -> int:
    """
    Run the coverage pipeline

    Args:
        settings: Validated settings
        job_context: Job identity, built once at process start
        dry_run: If True, stop after the report (no upload)

    Returns:
        int: Process exit code
    """
    logger.info(f"🚀 Running coverage pipeline (dry_run={dry_run})")

    orchestrator = CoverageOrchestrator(settings, job_context, dry_run=dry_run)
    run = orchestrator.run()

    if run.succeeded:
        logger.info(f"✅ Pipeline completed: {' -> '.join(s.value for s in run.states)}")
    else:
        logger.error(
            f"❌ Pipeline failed at step '{run.failed_step}' (exit code {run.exit_code})"
        )
    return run.exit_code


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main entry point"""
    parser = argparse.ArgumentParser(description="CI Coverage Reporting Pipeline")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Generate the report but skip the upload",
    )
    parser.add_argument(
        "--verbose", "-v", action="store_true", help="Enable verbose logging"
    )
    args = parser.parse_args(argv)

    log_level = logging.DEBUG if args.verbose else logging.INFO

    try:
        settings = load_settings()
    except ConfigError as e:
        setup_logging(level=log_level, log_dir=None)
        logger.error(f"❌ {e}")
        return EXIT_CONFIG

    setup_logging(level=log_level, log_dir=settings.log_dir)
    job_context = JobContext.from_env()

    try:
        return run_pipeline(settings, job_context, dry_run=args.dry_run)
    except Exception as e:
        logger.exception(f"❌ Pipeline failed: {e}")
        return EXIT_CONFIG


if __name__ == "__main__":
    sys.exit(main())
