"""
Unit Tests for Pipeline Settings
"""

import os
import sys
from pathlib import Path

import pytest

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from covpipe.config import (
    DEFAULT_TOOL_VERSION,
    ReportFormat,
    ReportMode,
    load_settings,
)
from covpipe.errors import EXIT_CONFIG, ConfigError


def test_defaults_from_empty_environment():
    settings = load_settings({})

    assert settings.tool_version == DEFAULT_TOOL_VERSION
    assert settings.tool_sha256 is None
    assert settings.allow_unverified is False
    assert settings.report_format == ReportFormat.XML
    assert settings.report_mode == ReportMode.TWO_PASS
    assert settings.forward_to_coveralls is True
    assert settings.report_dir == Path(".")
    assert settings.upload_url == "https://codecov.io"


def test_environment_values_are_applied():
    settings = load_settings(
        {
            "TARPAULIN_VERSION": "0.27.3",
            "TARPAULIN_SHA256": "AB" * 32,
            "TARPAULIN_ARGS": "--workspace --exclude-files 'benches/*'",
            "COVPIPE_REPORT_FORMAT": "Lcov",
            "COVPIPE_REPORT_MODE": "single_pass",
            "COVPIPE_REPORT_DIR": "target/coverage",
            "COVPIPE_UPLOAD_URL": "https://codecov.example.com/",
            "COVPIPE_FORWARD_COVERALLS": "0",
            "COVPIPE_TEST_TIMEOUT": "900",
        }
    )

    assert settings.tool_version == "0.27.3"
    assert settings.tool_sha256 == "ab" * 32
    assert settings.tool_args == ["--workspace", "--exclude-files", "benches/*"]
    assert settings.report_format == ReportFormat.LCOV
    assert settings.report_mode == ReportMode.SINGLE_PASS
    assert settings.report_dir == Path("target/coverage")
    assert settings.report_format.filename == "lcov.info"
    assert settings.upload_url == "https://codecov.example.com"
    assert settings.forward_to_coveralls is False
    assert settings.test_timeout == 900


def test_overrides_win_over_environment(tmp_path):
    settings = load_settings({"COVPIPE_REPORT_DIR": "elsewhere"}, report_dir=tmp_path)
    assert settings.report_dir == tmp_path


@pytest.mark.parametrize(
    "environ",
    [
        {"TARPAULIN_SHA256": "not-a-digest"},
        {"COVPIPE_REPORT_FORMAT": "Html"},
        {"COVPIPE_REPORT_MODE": "three_pass"},
        {"COVPIPE_UPLOAD_TIMEOUT": "0"},
        {"COVPIPE_UPLOAD_URL": "ftp://codecov.io"},
        {"TARPAULIN_DOWNLOAD_URL": "http://example.com/{target}.tar.gz"},
        {"TARPAULIN_ARGS": "--exclude 'unterminated"},
    ],
)
def test_invalid_settings_raise_config_error(environ):
    with pytest.raises(ConfigError) as excinfo:
        load_settings(environ)

    assert excinfo.value.step == "config"
    assert excinfo.value.exit_code == EXIT_CONFIG
