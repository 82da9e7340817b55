"""Account snapshots, billing rows and report artifacts."""

from billing.report.formatter import INCOMPLETE, BillingRecordFormatter, format_decimal, localize
from billing.report.snapshot import AccountSnapshotBuilder
from billing.report.writer import ReportPaths, ReportWriter, render_csv

__all__ = [
    "INCOMPLETE",
    "AccountSnapshotBuilder",
    "BillingRecordFormatter",
    "ReportPaths",
    "ReportWriter",
    "format_decimal",
    "localize",
    "render_csv",
]
