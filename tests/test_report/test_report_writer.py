"""Tests for the JSON/CSV report artifacts."""

import csv
import json
from datetime import datetime, timezone

from billing.config import OutputSettings
from billing.models import BILLING_COLUMNS, BillingRecord, BillingReport
from billing.report.writer import ReportWriter, render_csv

AS_OF = datetime(2025, 3, 15, 12, 0, tzinfo=timezone.utc)


def _record(name: str = "Alice", spot_pnl: str = "8.25000000") -> BillingRecord:
    values = {column: "0" for column in BILLING_COLUMNS}
    values.update(
        date="15/03/2025",
        time="12:00",
        name=name,
        email=f"{name.lower()}@example.com",
        spot_pnl=spot_pnl,
    )
    return BillingRecord(**values)


class TestRenderCsv:
    """Test CSV rendering of billing rows."""

    def test_header_only(self) -> None:
        assert render_csv([]) == ",".join(BILLING_COLUMNS) + "\n"

    def test_rows_follow_column_order(self) -> None:
        rows = list(csv.reader(render_csv([_record(), _record("Bob", "INCOMPLETE")]).splitlines()))

        assert rows[0] == list(BILLING_COLUMNS)
        assert rows[1][:5] == ["15/03/2025", "12:00", "Alice", "alice@example.com", "8.25000000"]
        assert rows[2][4] == "INCOMPLETE"
        assert all(len(row) == 18 for row in rows)

    def test_values_with_commas_are_quoted(self) -> None:
        rows = list(csv.reader(render_csv([_record("Smith, Jane")]).splitlines()))

        assert rows[1][2] == "Smith, Jane"


class TestReportWriter:
    """Test artifact naming and contents."""

    def test_paths(self, tmp_path) -> None:
        writer = ReportWriter(OutputSettings(output_dir=str(tmp_path)))

        paths = writer.paths_for(BillingReport(timestamp=AS_OF, report_name="r"))

        assert paths.directory == tmp_path / "reports_output_15_03_2025"
        assert paths.json_path.name == "okx_trading_report_2025-03-15T12-00-00+00-00.json"
        assert paths.csv_path.name == "okx_pnl_report_2025-03-15T12-00-00+00-00.csv"

    def test_folder_uses_local_date(self, tmp_path) -> None:
        writer = ReportWriter(OutputSettings(output_dir=str(tmp_path)), "Europe/Dublin")
        late = datetime(2025, 6, 30, 23, 30, tzinfo=timezone.utc)

        paths = writer.paths_for(BillingReport(timestamp=late, report_name="r"))

        assert paths.directory.name == "reports_output_01_07_2025"

    def test_write(self, tmp_path) -> None:
        writer = ReportWriter(OutputSettings(output_dir=str(tmp_path)))
        report = BillingReport(
            timestamp=AS_OF,
            report_name="OKX Trading Report",
            records=[_record()],
        )

        paths = writer.write(report)

        data = json.loads(paths.json_path.read_text(encoding="utf-8"))
        assert data == {
            "timestamp": "2025-03-15T12:00:00+00:00",
            "reportName": "OKX Trading Report",
            "totalAccounts": 0,
            "accounts": [],
        }
        lines = paths.csv_path.read_text(encoding="utf-8").splitlines()
        assert len(lines) == 2
        assert lines[0].startswith("date,time,name,email,spot_pnl")
