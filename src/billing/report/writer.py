"""Persist a finished billing report as JSON and CSV.

Artifacts layout::

    <output_dir>/<folder_prefix>_DD_MM_YYYY/
        okx_trading_report_<iso-timestamp>.json   # raw aggregate
        okx_pnl_report_<iso-timestamp>.csv        # one billing row per account

The folder date is the report date in the billing timezone.
"""

import csv
import io
import json
from dataclasses import dataclass
from pathlib import Path

from billing.config import OutputSettings
from billing.logging import get_logger
from billing.models import BILLING_COLUMNS, BillingRecord, BillingReport
from billing.report.formatter import localize

logger = get_logger(__name__)


def render_csv(records: list[BillingRecord]) -> str:
    """Header plus one row per record, newline-terminated rows."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(BILLING_COLUMNS)
    for record in records:
        writer.writerow(record.as_row())
    return buffer.getvalue()


@dataclass(frozen=True)
class ReportPaths:
    """Where the artifacts of one run were written."""

    directory: Path
    json_path: Path
    csv_path: Path


class ReportWriter:
    """Writes the JSON and CSV artifacts of a report.

    Args:
        settings: Output directory and file naming.
        timezone_name: Zone used for the dated folder name.
    """

    def __init__(self, settings: OutputSettings, timezone_name: str = "Europe/Dublin") -> None:
        self._settings = settings
        self._timezone_name = timezone_name

    def paths_for(self, report: BillingReport) -> ReportPaths:
        date, _ = localize(report.timestamp, self._timezone_name)
        day, month, year = date.split("/")
        directory = Path(self._settings.output_dir) / (
            f"{self._settings.folder_prefix}_{day}_{month}_{year}"
        )
        stamp = report.timestamp.isoformat().replace(":", "-")
        return ReportPaths(
            directory=directory,
            json_path=directory / f"{self._settings.json_prefix}_{stamp}.json",
            csv_path=directory / f"{self._settings.csv_prefix}_{stamp}.csv",
        )

    def write(self, report: BillingReport) -> ReportPaths:
        """Write both artifacts, creating the dated folder if needed."""
        paths = self.paths_for(report)
        paths.directory.mkdir(parents=True, exist_ok=True)

        paths.json_path.write_text(
            json.dumps(report.to_dict(), indent=2, default=str), encoding="utf-8"
        )
        logger.info("json_report_written", path=str(paths.json_path))

        paths.csv_path.write_text(render_csv(report.records), encoding="utf-8")
        logger.info(
            "csv_report_written",
            path=str(paths.csv_path),
            rows=len(report.records),
        )
        return paths
