"""
Report Schemas

Polars schemas for the tables derived from a coverage report.
"""

import polars as pl

COVERAGE_FILES_SCHEMA = pl.Schema(
    [
        ("package", pl.String()),
        ("filename", pl.String()),
        ("lines_valid", pl.Int64()),
        ("lines_covered", pl.Int64()),
        ("branches_valid", pl.Int64()),
        ("branches_covered", pl.Int64()),
    ]
)

PACKAGE_SUMMARY_SCHEMA = pl.Schema(
    [
        ("package", pl.String()),
        ("files", pl.UInt32()),
        ("lines_valid", pl.Int64()),
        ("lines_covered", pl.Int64()),
        ("line_rate", pl.Float64()),
    ]
)
