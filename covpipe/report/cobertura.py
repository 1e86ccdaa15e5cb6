"""
Cobertura Summary - Report Layer

Reads a Cobertura XML report into a per-file polars table and aggregates it
into the numbers logged at the end of a run.

Cobertura layout (as written by tarpaulin and coverage.py):
    <coverage line-rate="0.85" branch-rate="0" lines-covered="100" lines-valid="117">
        <packages><package name="..."><classes>
            <class filename="src/lib.rs"><lines><line number="3" hits="1"/></lines></class>
        </classes></package></packages>
    </coverage>
"""

import json
import os
import re
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Tuple
import logging

import polars as pl

from covpipe.report.schemas import COVERAGE_FILES_SCHEMA, PACKAGE_SUMMARY_SCHEMA

logger = logging.getLogger(__name__)

SUMMARY_FILENAME = "coverage-summary.json"

_CONDITION_RE = re.compile(r"\((\d+)/(\d+)\)")


@dataclass
class CoverageSummary:
    """Overall numbers plus the per-file table of one report"""

    line_rate: float
    lines_covered: int
    lines_valid: int
    branch_rate: Optional[float]
    branches_covered: int
    branches_valid: int
    files: pl.DataFrame

    @property
    def line_percent(self) -> float:
        return round(self.line_rate * 100, 2)

    def to_dict(self) -> Dict[str, Any]:
        packages = summarize_by_package(self.files)
        return {
            "line_rate": self.line_rate,
            "lines_covered": self.lines_covered,
            "lines_valid": self.lines_valid,
            "branch_rate": self.branch_rate,
            "branches_covered": self.branches_covered,
            "branches_valid": self.branches_valid,
            "files": self.files.height,
            "packages": packages.to_dicts(),
        }


def _strip_namespaces(root: ET.Element) -> None:
    for elem in root.iter():
        if "}" in elem.tag:
            elem.tag = elem.tag.split("}", 1)[1]


def _branch_counts(line: ET.Element) -> Tuple[int, int]:
    """(covered, valid) from a line's condition-coverage attribute, e.g. ``50% (1/2)``"""
    if line.get("branch") != "true":
        return 0, 0
    match = _CONDITION_RE.search(line.get("condition-coverage", ""))
    if match is None:
        return 0, 0
    return int(match.group(1)), int(match.group(2))


def parse_cobertura(path: Path) -> CoverageSummary:
    """
    Parse a Cobertura XML report

    Args:
        path: Report file

    Returns:
        CoverageSummary: Totals and per-file rows
    """
    root = ET.parse(path).getroot()
    _strip_namespaces(root)

    rows = []
    for package in root.iter("package"):
        package_name = package.get("name", "")
        for cls in package.iter("class"):
            lines = cls.findall("./lines/line")
            branches = [_branch_counts(line) for line in lines]
            rows.append(
                {
                    "package": package_name,
                    "filename": cls.get("filename") or cls.get("name", ""),
                    "lines_valid": len(lines),
                    "lines_covered": sum(
                        1 for line in lines if int(line.get("hits", 0)) > 0
                    ),
                    "branches_valid": sum(valid for _, valid in branches),
                    "branches_covered": sum(covered for covered, _ in branches),
                }
            )

    files = pl.DataFrame(rows, schema=COVERAGE_FILES_SCHEMA)

    # Prefer the totals the tool wrote; fall back to the per-line counts
    lines_valid = int(root.get("lines-valid") or files["lines_valid"].sum())
    lines_covered = int(root.get("lines-covered") or files["lines_covered"].sum())
    branches_valid = int(root.get("branches-valid") or files["branches_valid"].sum())
    branches_covered = int(
        root.get("branches-covered") or files["branches_covered"].sum()
    )

    if root.get("line-rate") is not None:
        line_rate = float(root.get("line-rate"))
    else:
        line_rate = lines_covered / lines_valid if lines_valid > 0 else 0.0

    branch_rate = None
    if branches_valid > 0:
        branch_rate = branches_covered / branches_valid
    elif root.get("branch-rate") is not None and float(root.get("branch-rate")) > 0:
        branch_rate = float(root.get("branch-rate"))

    logger.info(
        f"📊 Coverage: {line_rate * 100:.2f}% ({lines_covered}/{lines_valid} lines) "
        f"across {files.height} files"
    )
    return CoverageSummary(
        line_rate=line_rate,
        lines_covered=lines_covered,
        lines_valid=lines_valid,
        branch_rate=branch_rate,
        branches_covered=branches_covered,
        branches_valid=branches_valid,
        files=files,
    )


def summarize_by_package(files: pl.DataFrame) -> pl.DataFrame:
    """Aggregate the per-file table into one row per package"""
    if files.height == 0:
        return pl.DataFrame(schema=PACKAGE_SUMMARY_SCHEMA)

    return (
        files.group_by("package")
        .agg(
            pl.len().alias("files"),
            pl.col("lines_valid").sum(),
            pl.col("lines_covered").sum(),
        )
        .with_columns(
            pl.when(pl.col("lines_valid") > 0)
            .then(pl.col("lines_covered") / pl.col("lines_valid"))
            .otherwise(0.0)
            .alias("line_rate")
        )
        .select(PACKAGE_SUMMARY_SCHEMA.names())
        .cast(PACKAGE_SUMMARY_SCHEMA)
        .sort("package")
    )


def save_summary(summary: CoverageSummary, filepath: Path) -> Path:
    """
    Save the summary as JSON

    Args:
        summary: Parsed report summary
        filepath: Path to save file

    Returns:
        Path: Path to saved file
    """
    filepath = Path(filepath)
    logger.info(f"Saving coverage summary to JSON: {filepath}")

    # Ensure directory exists
    os.makedirs(filepath.parent, exist_ok=True)

    with open(filepath, "w") as f:
        json.dump(summary.to_dict(), f, indent=2, default=str)

    return filepath
