"""
Pipeline Settings

Settings are read from the environment (a local .env is loaded by
covpipe.coreutils.env) and validated once, before any step runs.
"""

import os
import shlex
from enum import Enum
from pathlib import Path
from typing import List, Mapping, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator

from covpipe.coreutils.env import env_flag
from covpipe.errors import ConfigError

DEFAULT_TOOL_VERSION = "0.31.2"
DEFAULT_DOWNLOAD_URL = (
    "https://github.com/xd009642/tarpaulin/releases/download/"
    "{version}/cargo-tarpaulin-{target}.tar.gz"
)
DEFAULT_UPLOAD_URL = "https://codecov.io"


class ReportFormat(str, Enum):
    """Output formats tarpaulin can write, keyed by its --out value"""

    XML = "Xml"
    LCOV = "Lcov"

    @property
    def filename(self) -> str:
        return {"Xml": "cobertura.xml", "Lcov": "lcov.info"}[self.value]


class ReportMode(str, Enum):
    TWO_PASS = "two_pass"  # separate tarpaulin run writes the report
    SINGLE_PASS = "single_pass"  # the test run writes the report too


class PipelineSettings(BaseModel):
    """Validated settings for one pipeline run"""

    tool_version: str = Field(DEFAULT_TOOL_VERSION, description="Pinned tarpaulin release")
    tool_sha256: Optional[str] = Field(
        None, description="Expected SHA-256 of the release tarball"
    )
    allow_unverified: bool = Field(
        False, description="Permit installing a tarball without a pinned checksum"
    )
    tool_bin: Optional[Path] = Field(
        None, description="Preinstalled cargo-tarpaulin binary; skips the download"
    )
    tool_args: List[str] = Field(
        default_factory=list, description="Extra arguments for every tarpaulin run"
    )
    download_url: str = Field(DEFAULT_DOWNLOAD_URL, description="Release URL template")
    tools_dir: Path = Field(Path(".covpipe/bin"), description="Install directory")
    report_dir: Path = Field(Path("."), description="Directory the report is written to")
    report_format: ReportFormat = ReportFormat.XML
    report_mode: ReportMode = ReportMode.TWO_PASS
    forward_to_coveralls: bool = True
    upload_url: str = Field(DEFAULT_UPLOAD_URL, description="Aggregation backend base URL")
    download_timeout: int = Field(120, gt=0)
    upload_timeout: int = Field(60, gt=0)
    test_timeout: Optional[int] = Field(None, gt=0)
    log_dir: Optional[Path] = Path("logs")

    @field_validator("tool_sha256")
    @classmethod
    def validate_sha256(cls, v):
        """Checksums must be 64 hex characters; stored lower-case"""
        if v is None:
            return v
        v = v.strip().lower()
        if len(v) != 64 or any(c not in "0123456789abcdef" for c in v):
            raise ValueError("tool_sha256 must be a 64 character hex digest")
        return v

    @field_validator("download_url")
    @classmethod
    def validate_download_url(cls, v):
        if not v.startswith("https://"):
            raise ValueError("download_url must use https")
        if "{target}" not in v:
            raise ValueError("download_url must contain a {target} placeholder")
        return v

    @field_validator("upload_url")
    @classmethod
    def validate_upload_url(cls, v):
        if not v.startswith(("https://", "http://")):
            raise ValueError("upload_url must be an http(s) URL")
        return v.rstrip("/")


# env var -> settings field
ENV_FIELDS = {
    "TARPAULIN_VERSION": "tool_version",
    "TARPAULIN_SHA256": "tool_sha256",
    "TARPAULIN_BIN": "tool_bin",
    "TARPAULIN_DOWNLOAD_URL": "download_url",
    "COVPIPE_TOOLS_DIR": "tools_dir",
    "COVPIPE_REPORT_DIR": "report_dir",
    "COVPIPE_REPORT_FORMAT": "report_format",
    "COVPIPE_REPORT_MODE": "report_mode",
    "COVPIPE_UPLOAD_URL": "upload_url",
    "COVPIPE_DOWNLOAD_TIMEOUT": "download_timeout",
    "COVPIPE_UPLOAD_TIMEOUT": "upload_timeout",
    "COVPIPE_TEST_TIMEOUT": "test_timeout",
    "COVPIPE_LOG_DIR": "log_dir",
}


def load_settings(
    environ: Optional[Mapping[str, str]] = None, **overrides
) -> PipelineSettings:
    """
    Build PipelineSettings from the environment

    Args:
        environ: Mapping to read (defaults to os.environ)
        overrides: Field values that win over the environment

    Returns:
        PipelineSettings: Validated settings

    Raises:
        ConfigError: If any value fails validation
    """
    environ = os.environ if environ is None else environ

    values = {}
    for key, field_name in ENV_FIELDS.items():
        raw = environ.get(key)
        if raw is not None and raw.strip() != "":
            values[field_name] = raw.strip()

    if environ.get("TARPAULIN_ARGS"):
        try:
            values["tool_args"] = shlex.split(environ["TARPAULIN_ARGS"])
        except ValueError as e:
            raise ConfigError("TARPAULIN_ARGS is not valid shell syntax", cause=e) from e

    values["allow_unverified"] = env_flag(
        "TARPAULIN_ALLOW_UNVERIFIED", default=False, environ=environ
    )
    values["forward_to_coveralls"] = env_flag(
        "COVPIPE_FORWARD_COVERALLS", default=True, environ=environ
    )
    values.update(overrides)

    try:
        return PipelineSettings(**values)
    except ValidationError as e:
        raise ConfigError("Invalid pipeline settings", cause=e) from e
