"""
Report Layer - Coverage Report Handling

Locates, validates and summarizes the report the coverage tool writes.
- Stale reports are removed before a new one is generated
- Nothing is handed to the upload step until it parses completely
"""

from .artifact import ReportArtifact, discard_stale_report, locate_report
from .cobertura import CoverageSummary, parse_cobertura, save_summary

__all__ = [
    "ReportArtifact",
    "CoverageSummary",
    "discard_stale_report",
    "locate_report",
    "parse_cobertura",
    "save_summary",
]
