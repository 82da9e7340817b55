"""Tests for BillingRecordFormatter and the fixed-point/time helpers."""

from datetime import datetime, timezone
from decimal import Decimal
from zoneinfo import ZoneInfoNotFoundError

import pytest

from billing.models import (
    BILLING_COLUMNS,
    AccountIdentity,
    Fees,
    Instrument,
    MarketClass,
    PnLTotals,
)
from billing.report.formatter import (
    INCOMPLETE,
    BillingRecordFormatter,
    format_decimal,
    localize,
)
from billing.report.snapshot import AccountSnapshotBuilder

AS_OF = datetime(2025, 3, 15, 12, 0, tzinfo=timezone.utc)
ALICE = AccountIdentity(id="user-0001", name="Alice", email="alice@example.com")


def _snapshot(balance: dict | None, pnl: PnLTotals, fees: Fees, identity: AccountIdentity = ALICE):
    return AccountSnapshotBuilder().build(
        identity,
        balance,
        {"code": "0", "data": [], "msg": ""},
        pnl,
        fees,
        fetched_at=AS_OF,
        report_date="15/03/2025",
    )


def _worked_example_totals(incomplete: frozenset = frozenset()) -> PnLTotals:
    return PnLTotals(
        by_class={
            MarketClass.SPOT: Decimal("8.25"),
            MarketClass.LINEAR_PERPETUAL: Decimal("100"),
            MarketClass.INVERSE_PERPETUAL: Decimal("0"),
        },
        by_instrument={
            Instrument("BTC-USDT", MarketClass.SPOT): Decimal("8.25"),
            Instrument("BTC-USDT-SWAP", MarketClass.LINEAR_PERPETUAL): Decimal("100"),
        },
        incomplete=incomplete,
    )


@pytest.fixture
def formatter() -> BillingRecordFormatter:
    return BillingRecordFormatter("Europe/Dublin")


class TestFormatDecimal:
    """Test 8-place fixed-point rendering."""

    def test_pads_to_eight_places(self) -> None:
        assert format_decimal(Decimal("8.25")) == "8.25000000"

    def test_zero(self) -> None:
        assert format_decimal(Decimal("0")) == "0.00000000"

    def test_rounds_half_up(self) -> None:
        assert format_decimal(Decimal("0.000000005")) == "0.00000001"
        assert format_decimal(Decimal("0.0000000049")) == "0.00000000"

    def test_rounds_half_away_from_zero_for_losses(self) -> None:
        assert format_decimal(Decimal("-0.000000005")) == "-0.00000001"

    def test_no_negative_zero(self) -> None:
        assert format_decimal(Decimal("-0.000000004")) == "0.00000000"
        assert format_decimal(Decimal("-0")) == "0.00000000"

    def test_no_scientific_notation(self) -> None:
        assert format_decimal(Decimal("1E+3")) == "1000.00000000"
        assert format_decimal(Decimal("1E-12")) == "0.00000000"


class TestLocalize:
    """Test date/time rendering in the billing timezone."""

    def test_winter_is_utc(self) -> None:
        assert localize(AS_OF, "Europe/Dublin") == ("15/03/2025", "12:00")

    def test_summer_time_offset(self) -> None:
        as_of = datetime(2025, 7, 1, 12, 0, tzinfo=timezone.utc)
        assert localize(as_of, "Europe/Dublin") == ("01/07/2025", "13:00")

    def test_date_rolls_over_at_local_midnight(self) -> None:
        as_of = datetime(2025, 6, 30, 23, 30, tzinfo=timezone.utc)
        assert localize(as_of, "Europe/Dublin") == ("01/07/2025", "00:30")

    def test_naive_is_treated_as_utc(self) -> None:
        assert localize(datetime(2025, 7, 1, 12, 0), "Europe/Dublin") == ("01/07/2025", "13:00")

    def test_other_timezone(self) -> None:
        assert localize(AS_OF, "Asia/Tokyo") == ("15/03/2025", "21:00")


class TestBillingRecordFormatter:
    """Test flattening of a snapshot into the 18-column record."""

    def test_worked_example(self, formatter: BillingRecordFormatter, btc_balance: dict) -> None:
        snapshot = _snapshot(
            btc_balance,
            _worked_example_totals(),
            Fees(perps=Decimal("25.00"), invperps=Decimal("0")),
        )

        record = formatter.format(snapshot, AS_OF)

        assert record.date == "15/03/2025"
        assert record.time == "12:00"
        assert record.name == "Alice"
        assert record.email == "alice@example.com"
        assert record.spot_pnl == "8.25000000"
        assert record.perps_pnl == "100.00000000"
        assert record.invperps_pnl == "0.00000000"
        assert record.perps_fee == "25.00000000"
        assert record.invperps_fee == "0.00000000"
        assert record.btc_equity == "1.0"
        assert record.btc_usd_value == "60000"
        assert record.btc_available == "0.9"

    def test_missing_currencies_default_to_zero(
        self, formatter: BillingRecordFormatter, btc_balance: dict
    ) -> None:
        snapshot = _snapshot(btc_balance, _worked_example_totals(), Fees())

        record = formatter.format(snapshot, AS_OF)

        for column in ("eth_equity", "eth_usd_value", "eth_available",
                       "usdt_equity", "usdt_usd_value", "usdt_available"):
            assert getattr(record, column) == "0"

    def test_unavailable_balances_default_to_zero(self, formatter: BillingRecordFormatter) -> None:
        snapshot = _snapshot(None, _worked_example_totals(), Fees())

        record = formatter.format(snapshot, AS_OF)

        assert record.btc_equity == "0"
        assert record.spot_pnl == "8.25000000"

    def test_always_eighteen_fields(self, formatter: BillingRecordFormatter) -> None:
        snapshot = _snapshot(None, PnLTotals(by_class={}), Fees())

        row = formatter.format(snapshot, AS_OF).as_row()

        assert len(row) == len(BILLING_COLUMNS) == 18
        assert all(isinstance(value, str) and value for value in row)

    def test_incomplete_class_uses_sentinel(self, formatter: BillingRecordFormatter) -> None:
        totals = _worked_example_totals(incomplete=frozenset({MarketClass.LINEAR_PERPETUAL}))
        snapshot = _snapshot(None, totals, Fees(perps=None, invperps=Decimal("0")))

        record = formatter.format(snapshot, AS_OF)

        assert record.perps_pnl == INCOMPLETE
        assert record.perps_fee == INCOMPLETE
        assert record.spot_pnl == "8.25000000"
        assert record.invperps_fee == "0.00000000"

    def test_missing_identity_fields(self, formatter: BillingRecordFormatter) -> None:
        identity = AccountIdentity(id="", name="", email="")
        snapshot = _snapshot(None, _worked_example_totals(), Fees(), identity=identity)

        record = formatter.format(snapshot, AS_OF)

        assert record.name == "Unknown"
        assert record.email == "Unknown"

    def test_formatting_is_idempotent(
        self, formatter: BillingRecordFormatter, btc_balance: dict
    ) -> None:
        snapshot = _snapshot(btc_balance, _worked_example_totals(), Fees(perps=Decimal("25")))

        assert formatter.format(snapshot, AS_OF) == formatter.format(snapshot, AS_OF)

    def test_timezone_override(self, formatter: BillingRecordFormatter) -> None:
        snapshot = _snapshot(None, _worked_example_totals(), Fees())

        record = formatter.format(snapshot, AS_OF, timezone_name="America/New_York")

        assert (record.date, record.time) == ("15/03/2025", "08:00")

    def test_unknown_timezone_rejected(self) -> None:
        with pytest.raises(ZoneInfoNotFoundError):
            BillingRecordFormatter("Mars/Olympus_Mons")
