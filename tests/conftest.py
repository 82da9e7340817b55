"""Shared test fixtures for the billing pipeline."""

import pytest

from billing.config import AppSettings, BillingSettings, ExchangeSettings, FeeSettings, OutputSettings
from billing.exceptions import ExchangeRequestError
from billing.exchange.client import ExchangeClient

# 2025-03-15 12:00:00 UTC
NOW_MS = 1_742_040_000_000
DAY_MS = 86_400 * 1000


def make_bill(
    inst_id: str,
    bill_id: int,
    ts: int,
    pnl: str | None = "0",
) -> dict:
    """One OKX /account/bills element."""
    bill = {"instId": inst_id, "billId": str(bill_id), "ts": str(ts), "ccy": "USDT"}
    if pnl is not None:
        bill["pnl"] = pnl
    return bill


def make_ledger(inst_id: str, timestamps: list[int], pnl: str = "1") -> list[dict]:
    """Bills newest first with billId strictly decreasing with time."""
    ordered = sorted(timestamps, reverse=True)
    return [
        make_bill(inst_id, bill_id=10_000 + len(ordered) - i, ts=ts, pnl=pnl)
        for i, ts in enumerate(ordered)
    ]


class FakeExchangeClient(ExchangeClient):
    """In-memory OKX account honoring the ``after`` cursor and page limit.

    Args:
        ledgers: Bills per instrument, newest first.
        failing: Instruments whose bill query raises ExchangeRequestError.
        balance: Raw balance response, or an exception to raise.
        positions: Raw positions response, or an exception to raise.
    """

    def __init__(
        self,
        ledgers: dict[str, list[dict]] | None = None,
        failing: set[str] | None = None,
        balance: dict | Exception | None = None,
        positions: dict | Exception | None = None,
        account_config: dict | Exception | None = None,
    ) -> None:
        self.ledgers = ledgers or {}
        self.failing = failing or set()
        self.balance = balance if balance is not None else {"code": "0", "data": [{"details": []}], "msg": ""}
        self.positions = positions if positions is not None else {"code": "0", "data": [], "msg": ""}
        self.account_config = account_config if account_config is not None else {"code": "0", "data": [{"uid": "1"}], "msg": ""}
        self.page_calls: list[tuple[str, int, str | None]] = []
        self.connected = False
        self.closed = False

    async def connect(self) -> None:
        self.connected = True

    async def close(self) -> None:
        self.closed = True

    async def fetch_bills_page(
        self, inst_id: str, limit: int = 100, after: str | None = None
    ) -> list[dict]:
        self.page_calls.append((inst_id, limit, after))
        if inst_id in self.failing:
            raise ExchangeRequestError("API Error: Timestamp request expired (Code: 50102)", code="50102")
        bills = self.ledgers.get(inst_id, [])
        if after is not None:
            bills = [b for b in bills if int(b["billId"]) < int(after)]
        return [dict(b) if isinstance(b, dict) else b for b in bills[:limit]]

    async def fetch_balance_raw(self) -> dict:
        return self._answer(self.balance)

    async def fetch_positions_raw(self) -> dict:
        return self._answer(self.positions)

    async def fetch_account_config_raw(self) -> dict:
        return self._answer(self.account_config)

    @staticmethod
    def _answer(value: dict | Exception) -> dict:
        if isinstance(value, Exception):
            raise value
        return value


@pytest.fixture
def fake_exchange() -> type[FakeExchangeClient]:
    """The FakeExchangeClient class, for tests that build their own accounts."""
    return FakeExchangeClient


@pytest.fixture
def bill():
    """The make_bill helper."""
    return make_bill


@pytest.fixture
def ledger():
    """The make_ledger helper."""
    return make_ledger


@pytest.fixture
def billing_settings() -> BillingSettings:
    """Default instruments, no inter-page delay."""
    return BillingSettings(page_delay=0)


@pytest.fixture
def fee_settings() -> FeeSettings:
    """Default 25% profit share."""
    return FeeSettings()


@pytest.fixture
def mock_settings(billing_settings: BillingSettings, fee_settings: FeeSettings, tmp_path) -> AppSettings:
    """Return AppSettings with test defaults (dummy API keys, temp output dir)."""
    return AppSettings(
        log_level="DEBUG",
        exchange=ExchangeSettings(
            api_key="test-api-key",  # type: ignore[arg-type]
            secret_key="test-secret-key",  # type: ignore[arg-type]
            passphrase="test-passphrase",  # type: ignore[arg-type]
        ),
        billing=billing_settings,
        fees=fee_settings,
        output=OutputSettings(output_dir=str(tmp_path)),
    )


@pytest.fixture
def btc_balance() -> dict:
    """Balance response with a single BTC detail."""
    return {
        "code": "0",
        "data": [
            {
                "totalEq": "60000",
                "details": [
                    {
                        "ccy": "BTC",
                        "eq": "1.0",
                        "eqUsd": "60000",
                        "availBal": "0.9",
                        "frozenBal": "0.1",
                    }
                ],
            }
        ],
        "msg": "",
    }

