"""
Tool Installer - Acquisition Layer

Resolves cargo-tarpaulin to a local executable before anything runs: either a
preinstalled binary, or a pinned release tarball verified against its SHA-256.
"""

import hashlib
import os
import shutil
import stat
import tarfile
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Optional
import logging

import requests

from covpipe.acquire.platforms import resolve_target
from covpipe.config import PipelineSettings
from covpipe.coreutils.request import download_file, new_session
from covpipe.errors import AcquisitionError

logger = logging.getLogger(__name__)

TOOL_NAME = "cargo-tarpaulin"


@dataclass(frozen=True)
class ToolHandle:
    """A coverage tool executable resolved for this run"""

    name: str
    version: str
    executable: Path
    sha256: Optional[str] = None
    source: str = "download"  # "download" | "preinstalled"


def _make_executable(path: Path) -> None:
    mode = path.stat().st_mode
    path.chmod(mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)


class ToolInstaller:
    """Fetches, verifies and installs the coverage tool"""

    def __init__(
        self,
        settings: PipelineSettings,
        session: Optional[requests.Session] = None,
        target: Optional[str] = None,
    ):
        self.settings = settings
        self.session = session
        self.target = target

    def install(self) -> ToolHandle:
        """
        Resolve the coverage tool to an executable handle

        Returns:
            ToolHandle: The ready-to-run tool

        Raises:
            AcquisitionError: On unsupported platform, network failure,
                checksum mismatch or a malformed archive
        """
        if self.settings.tool_bin is not None:
            return self._resolve_preinstalled(self.settings.tool_bin)

        target = self.target or resolve_target()
        expected = self.settings.tool_sha256
        if expected is None and not self.settings.allow_unverified:
            raise AcquisitionError(
                "No pinned checksum for the tool download; set TARPAULIN_SHA256 "
                "or TARPAULIN_ALLOW_UNVERIFIED=1"
            )

        url = self.settings.download_url.format(
            version=self.settings.tool_version, target=target
        )
        install_dir = Path(self.settings.tools_dir).resolve()
        try:
            install_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise AcquisitionError(f"Cannot create {install_dir}", cause=e) from e

        with tempfile.TemporaryDirectory(prefix="covpipe-") as tmp:
            archive = Path(tmp) / f"{TOOL_NAME}-{target}.tar.gz"
            actual = self._download(url, archive)

            if expected is None:
                logger.warning(
                    f"⚠️ Installing {TOOL_NAME} without checksum verification (sha256={actual})"
                )
            elif actual != expected:
                raise AcquisitionError(
                    f"Checksum mismatch for {url}: expected {expected}, got {actual}"
                )
            else:
                logger.info(f"🔐 Checksum verified for {archive.name}")

            executable = self._extract_binary(archive, install_dir)

        logger.info(
            f"✅ Installed {TOOL_NAME} {self.settings.tool_version} ({target}) at {executable}"
        )
        return ToolHandle(
            name=TOOL_NAME,
            version=self.settings.tool_version,
            executable=executable,
            sha256=actual,
            source="download",
        )

    def _resolve_preinstalled(self, tool_bin: Path) -> ToolHandle:
        candidate = Path(tool_bin)
        if not candidate.exists():
            found = shutil.which(str(tool_bin))
            if found is None:
                raise AcquisitionError(f"Preinstalled tool not found: {tool_bin}")
            candidate = Path(found)
        if not candidate.is_file() or not os.access(candidate, os.X_OK):
            raise AcquisitionError(f"Preinstalled tool is not executable: {candidate}")

        logger.info(f"📦 Using preinstalled {TOOL_NAME} at {candidate}")
        return ToolHandle(
            name=TOOL_NAME,
            version=self.settings.tool_version,
            executable=candidate,
            sha256=None,
            source="preinstalled",
        )

    def _download(self, url: str, destination: Path) -> str:
        digest = hashlib.sha256()
        session = self.session or new_session(accept="application/octet-stream")
        try:
            download_file(
                session,
                url,
                destination,
                timeout=self.settings.download_timeout,
                on_chunk=digest.update,
            )
        except requests.exceptions.RequestException as e:
            logger.error(f"❌ Failed to download {url}: {e}")
            raise AcquisitionError(f"Failed to download {url}", cause=e) from e
        except OSError as e:
            raise AcquisitionError(f"Failed to write {destination}", cause=e) from e
        finally:
            if self.session is None:
                session.close()
        return digest.hexdigest()

    def _extract_binary(self, archive: Path, install_dir: Path) -> Path:
        destination = install_dir / TOOL_NAME
        # Copied under a temporary name, then renamed over the final path
        partial = install_dir / f".{TOOL_NAME}.partial"
        try:
            with tarfile.open(archive, "r:gz") as tar:
                member = next(
                    (
                        m
                        for m in tar.getmembers()
                        if m.isfile() and Path(m.name).name == TOOL_NAME
                    ),
                    None,
                )
                if member is None:
                    raise AcquisitionError(f"{archive.name} does not contain {TOOL_NAME}")
                source = tar.extractfile(member)
                with source, open(partial, "wb") as out:
                    shutil.copyfileobj(source, out)
            _make_executable(partial)
            os.replace(partial, destination)
        except (tarfile.TarError, OSError) as e:
            partial.unlink(missing_ok=True)
            raise AcquisitionError(f"Failed to unpack {archive.name}", cause=e) from e

        return destination
