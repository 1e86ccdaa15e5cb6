"""
Report Validators - Report Layer

A report is only handed to the upload step once it exists, is not older than
the report step and parses completely.
"""

import xml.etree.ElementTree as ET
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional
import logging

from covpipe.config import ReportFormat
from covpipe.errors import ExecutionError

logger = logging.getLogger(__name__)

LCOV_TERMINATOR = "end_of_record"

# Filesystems with coarse mtime resolution can stamp a fresh file slightly early
MTIME_TOLERANCE_SECONDS = 2.0


def validate_report(
    path: Path,
    report_format: ReportFormat,
    not_before: Optional[datetime] = None,
) -> bool:
    """
    Validate a freshly written coverage report

    Args:
        path: Report file
        report_format: Expected format
        not_before: Start of the step that wrote the report

    Returns:
        bool: True if valid, raises exception if invalid
    """
    path = Path(path)
    if not path.is_file():
        raise ExecutionError(f"Coverage report was not written: {path}", step="report")
    if path.stat().st_size == 0:
        raise ExecutionError(f"Coverage report is empty: {path}", step="report")

    if not_before is not None:
        modified = datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc)
        if (not_before - modified).total_seconds() > MTIME_TOLERANCE_SECONDS:
            raise ExecutionError(
                f"Coverage report {path} predates this run ({modified.isoformat()})",
                step="report",
            )

    if report_format == ReportFormat.XML:
        _validate_cobertura(path)
    elif report_format == ReportFormat.LCOV:
        _validate_lcov(path)

    logger.info(f"Coverage report validation passed: {path}")
    return True


def _validate_cobertura(path: Path) -> None:
    try:
        root = ET.parse(path).getroot()
    except ET.ParseError as e:
        raise ExecutionError(
            f"Coverage report is not well-formed XML: {path}", cause=e, step="report"
        ) from e

    tag = root.tag.split("}", 1)[-1]
    if tag != "coverage":
        raise ExecutionError(
            f"Unexpected root element <{tag}> in {path}, expected <coverage>",
            step="report",
        )


def _validate_lcov(path: Path) -> None:
    with open(path, "r", encoding="utf-8", errors="replace") as f:
        lines = [line.strip() for line in f if line.strip()]
    if not lines or lines[-1] != LCOV_TERMINATOR:
        raise ExecutionError(f"Lcov report is truncated: {path}", step="report")
