"""
Codecov Uploader - Load Layer

Implements the Codecov v4 upload handshake:
1. POST /upload/v4 with the job identity; the backend answers with two lines,
   the result page URL and a presigned storage URL
2. PUT the gzipped upload payload to the storage URL
"""

import gzip
import os
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional
import logging

import requests

from covpipe.context import JobContext
from covpipe.coreutils.request import (
    NO_RETRY_STRATEGY,
    new_session,
    redact_text,
    redact_url,
)
from covpipe.errors import UploadError
from covpipe.report.artifact import ReportArtifact

logger = logging.getLogger(__name__)

UPLOAD_ENDPOINT = "/upload/v4"
NETWORK_MARKER = "<<<<<< network"
EOF_MARKER = "<<<<<< EOF"


@dataclass(frozen=True)
class UploadReceipt:
    result_url: str
    storage_url: str
    bytes_sent: int


def list_tracked_files(root: Path) -> List[str]:
    """Files under version control, used by the backend to map report paths"""
    try:
        completed = subprocess.run(
            ["git", "ls-files"],
            cwd=str(root),
            capture_output=True,
            text=True,
            check=True,
        )
    except (OSError, subprocess.CalledProcessError) as e:
        logger.warning(f"⚠️ Could not list tracked files in {root}: {e}")
        return []
    return [line for line in completed.stdout.splitlines() if line.strip()]


def build_query(
    job_context: JobContext, artifact: Optional[ReportArtifact] = None
) -> Dict[str, str]:
    """Query parameters describing the job; empty values are omitted"""
    query = {
        "package": "covpipe",
        "service": job_context.service,
        "commit": job_context.commit,
        "branch": job_context.branch,
        "build": job_context.build_id,
        "job": job_context.job_id,
        "slug": job_context.slug,
        "token": job_context.token("coverage"),
    }
    if artifact is not None:
        query["name"] = artifact.path.name
    return {key: value for key, value in query.items() if value}


def build_payload(
    artifact: ReportArtifact, root: Path, tracked_files: Optional[List[str]] = None
) -> bytes:
    """Codecov upload body: tracked file listing, then the report itself"""
    if tracked_files is None:
        tracked_files = list_tracked_files(root)

    try:
        report_path = os.path.relpath(artifact.path.resolve(), Path(root).resolve())
    except ValueError:
        # Different drive on Windows
        report_path = str(artifact.path)

    with open(artifact.path, "r", encoding="utf-8", errors="replace") as f:
        report_body = f.read()

    parts = list(tracked_files)
    parts.append(NETWORK_MARKER)
    parts.append(f"# path={Path(report_path).as_posix()}")
    parts.append(report_body.rstrip("\n"))
    parts.append(EOF_MARKER)
    return ("\n".join(parts) + "\n").encode("utf-8")


class CodecovUploader:
    """Uploads one coverage report per run to Codecov"""

    def __init__(
        self,
        base_url: str = "https://codecov.io",
        timeout: int = 60,
        root: Optional[Path] = None,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.root = Path(root) if root is not None else Path.cwd()
        self.session = session or new_session(
            retry_strategy=NO_RETRY_STRATEGY, accept="text/plain"
        )

    def upload(self, artifact: ReportArtifact, job_context: JobContext) -> UploadReceipt:
        """
        Upload ``artifact`` for the job described by ``job_context``

        Returns:
            UploadReceipt: Where the backend published the report

        Raises:
            UploadError: On network failure or backend rejection
        """
        if job_context.token("coverage") is None:
            logger.warning(
                "⚠️ No COVERAGE_TOKEN/CODECOV_TOKEN set; attempting a tokenless upload"
            )

        try:
            payload = gzip.compress(build_payload(artifact, self.root))
        except OSError as e:
            raise UploadError(f"Could not read {artifact.path}", cause=e) from e
        result_url, storage_url = self._negotiate(artifact, job_context)
        self._put_payload(storage_url, payload)

        logger.info(f"✅ Uploaded {artifact.path.name} ({len(payload)} bytes): {result_url}")
        return UploadReceipt(
            result_url=result_url, storage_url=storage_url, bytes_sent=len(payload)
        )

    def _negotiate(self, artifact: ReportArtifact, job_context: JobContext):
        url = f"{self.base_url}{UPLOAD_ENDPOINT}"
        params = build_query(job_context, artifact)
        headers = {
            "Accept": "text/plain",
            "X-Reduced-Redundancy": "false",
            "X-Content-Type": "application/x-gzip",
        }

        try:
            response = self.session.post(
                url, params=params, headers=headers, timeout=self.timeout
            )
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            raise self._upload_error("Upload negotiation failed", e) from e

        lines = [line.strip() for line in response.text.splitlines() if line.strip()]
        if len(lines) < 2:
            raise UploadError(
                f"Unexpected upload negotiation response from {url}: {response.text[:200]!r}",
                status_code=response.status_code,
            )
        return lines[0], lines[1]

    def _put_payload(self, storage_url: str, payload: bytes) -> None:
        headers = {
            "Content-Type": "application/x-gzip",
            "Content-Encoding": "gzip",
        }
        try:
            response = self.session.put(
                storage_url, data=payload, headers=headers, timeout=self.timeout
            )
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            raise self._upload_error("Report storage upload failed", e) from e

    def _upload_error(self, message: str, error: requests.exceptions.RequestException):
        status_code = None
        if error.response is not None:
            status_code = error.response.status_code
            message = f"{message} (HTTP {status_code})"
        request_url = error.request.url if error.request is not None else None
        if request_url:
            message = f"{message} for {redact_url(request_url)}"
        logger.error(f"❌ {message}")
        return UploadError(message, cause=_RedactedCause(error), status_code=status_code)


class _RedactedCause(Exception):
    """Wraps a requests error so its URL never leaks a token into logs"""

    def __init__(self, error: requests.exceptions.RequestException):
        super().__init__(type(error).__name__)
        self.error = error

    def __str__(self) -> str:
        return f"{type(self.error).__name__}: {redact_text(str(self.error))}"
