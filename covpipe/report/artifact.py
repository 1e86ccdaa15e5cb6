"""
Report Artifact - Report Layer

The single report file a run produces. One writer (the report step), one
reader (the upload step).
"""

import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
import logging

from covpipe.coreutils.files import sha256_file
from covpipe.config import ReportFormat
from covpipe.errors import ExecutionError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReportArtifact:
    path: Path
    format: ReportFormat
    size_bytes: int
    sha256: str
    generated_at: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    @classmethod
    def from_path(cls, path: Path, report_format: ReportFormat) -> "ReportArtifact":
        path = Path(path)
        stat = path.stat()
        return cls(
            path=path,
            format=report_format,
            size_bytes=stat.st_size,
            sha256=sha256_file(path),
            generated_at=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
        )


def locate_report(report_dir: Path, report_format: ReportFormat) -> Path:
    """Path tarpaulin writes ``report_format`` to inside ``report_dir``"""
    return Path(report_dir) / report_format.filename


def discard_stale_report(path: Path) -> bool:
    """
    Remove a report left behind by an earlier run

    Returns:
        bool: True if a file was removed

    Raises:
        ExecutionError: If the old report cannot be deleted
    """
    path = Path(path)
    if path.exists():
        logger.info(f"🧹 Removing stale report {path}")
        try:
            os.remove(path)
        except OSError as e:
            raise ExecutionError(
                f"Could not remove stale report {path}", cause=e, step="report"
            ) from e
        return True
    return False
