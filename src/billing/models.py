"""Shared data models for the billing pipeline.

CRITICAL: All monetary values use Decimal. Balance fields are the exception:
they are copied verbatim from OKX as strings and never recomputed.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping

from billing.exceptions import MalformedBillError


class MarketClass(str, Enum):
    """Trading category an instrument belongs to."""

    SPOT = "spot"
    LINEAR_PERPETUAL = "perps"  # USDT-margined
    INVERSE_PERPETUAL = "invperps"  # coin-margined


@dataclass(frozen=True)
class Instrument:
    """A tracked OKX instrument, e.g. BTC-USDT-SWAP / LINEAR_PERPETUAL."""

    inst_id: str
    market_class: MarketClass


@dataclass(frozen=True)
class LedgerEntry:
    """One OKX bill line.

    pnl is kept as the raw exchange string; parsing (and the zero default)
    happens during aggregation so malformed values can be reported there.
    """

    inst_id: str
    timestamp_ms: int
    bill_id: str
    pnl: str | None = None
    raw: Mapping[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @classmethod
    def from_api(cls, bill: Mapping[str, Any], instrument: Instrument) -> "LedgerEntry":
        """Build an entry from one element of the /account/bills data array.

        billId is an opaque cursor token; only its presence is checked.

        Raises:
            MalformedBillError: If the bill is not an object, ts is missing or
                not an integer, or billId is missing or empty.
        """
        if not isinstance(bill, Mapping):
            raise MalformedBillError(instrument.inst_id, f"bill is not an object: {bill!r}")
        bill_id = str(bill.get("billId") or "")
        try:
            timestamp_ms = int(bill["ts"])
        except (KeyError, TypeError, ValueError) as e:
            raise MalformedBillError(
                instrument.inst_id, f"bill without usable ts: {dict(bill)!r}"
            ) from e
        if not bill_id:
            raise MalformedBillError(
                instrument.inst_id, f"bill without billId: {dict(bill)!r}"
            )

        return cls(
            inst_id=str(bill.get("instId") or instrument.inst_id),
            timestamp_ms=timestamp_ms,
            bill_id=bill_id,
            pnl=bill.get("pnl"),
            raw=dict(bill),
        )


@dataclass(frozen=True)
class Credentials:
    """OKX API key triple. Never logged in clear."""

    api_key: str = field(repr=False)
    secret_key: str = field(repr=False)
    passphrase: str = field(repr=False)

    @property
    def is_complete(self) -> bool:
        return bool(self.api_key and self.secret_key and self.passphrase)

    @property
    def masked_api_key(self) -> str:
        if not self.api_key:
            return "unknown"
        return f"{self.api_key[:8]}...{self.api_key[-4:]}"


@dataclass(frozen=True)
class AccountIdentity:
    """Who an account belongs to. Used for labeling only."""

    id: str
    name: str
    email: str
    label: str = "No Label"

    @property
    def display_id(self) -> str:
        if not self.id:
            return "unknown"
        return "******" + self.id[-4:]


@dataclass(frozen=True)
class AccountCredentials:
    """One account as yielded by a credential provider."""

    identity: AccountIdentity
    credentials: Credentials


@dataclass(frozen=True)
class BalanceDetail:
    """Per-currency balance snapshot, verbatim from /account/balance."""

    currency: str
    equity: str = "0"
    usd_value: str = "0"
    available: str = "0"
    frozen: str = "0"


@dataclass(frozen=True)
class InstrumentBills:
    """Outcome of fetching one instrument's bills for the reporting window."""

    instrument: Instrument
    entries: tuple[LedgerEntry, ...] = ()
    error: str | None = None
    pages: int = 0

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict:
        if self.error is not None:
            return {"error": self.error}
        return {"code": "0", "data": [dict(e.raw) for e in self.entries], "msg": ""}


@dataclass(frozen=True)
class PnLTotals:
    """Realized PnL per market class for one account and one window.

    A class listed in ``incomplete`` had at least one instrument fail; its
    total covers only the instruments that succeeded and must not be
    reported as final.
    """

    by_class: Mapping[MarketClass, Decimal]
    by_instrument: Mapping[Instrument, Decimal] = field(default_factory=dict)
    incomplete: frozenset[MarketClass] = frozenset()
    failures: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "by_class", MappingProxyType(dict(self.by_class)))
        object.__setattr__(self, "by_instrument", MappingProxyType(dict(self.by_instrument)))
        object.__setattr__(self, "failures", MappingProxyType(dict(self.failures)))

    def total(self, market_class: MarketClass) -> Decimal:
        return self.by_class.get(market_class, Decimal("0"))

    def is_complete(self, market_class: MarketClass) -> bool:
        return market_class not in self.incomplete


@dataclass(frozen=True)
class Fees:
    """Profit-share fees. None means the underlying total is incomplete."""

    perps: Decimal | None = Decimal("0")
    invperps: Decimal | None = Decimal("0")


@dataclass(frozen=True)
class AccountSnapshot:
    """Everything known about one account at report time."""

    identity: AccountIdentity
    api_key: str
    fetched_at: datetime
    pnl: PnLTotals
    fees: Fees
    balances: tuple[BalanceDetail, ...] = ()
    open_positions: tuple[Mapping[str, Any], ...] = ()
    account_info: Mapping[str, Any] | None = None
    balances_raw: Mapping[str, Any] | None = None
    positions_raw: Mapping[str, Any] | None = None
    bills: Mapping[str, InstrumentBills] = field(default_factory=dict)
    degraded: tuple[str, ...] = ()
    summary: Mapping[str, Any] = field(default_factory=dict)

    def balance(self, currency: str) -> BalanceDetail | None:
        for detail in self.balances:
            if detail.currency == currency:
                return detail
        return None

    def to_dict(self) -> dict:
        """Render the per-account object of the raw aggregate JSON."""
        trading: dict[str, dict] = {cls.value: {} for cls in MarketClass}
        for inst_id, result in self.bills.items():
            trading[result.instrument.market_class.value][inst_id] = result.to_dict()

        return {
            "user": {
                "name": self.identity.name,
                "email": self.identity.email,
                "id": self.identity.display_id,
                "label": self.identity.label,
            },
            "summary": dict(self.summary),
            "accountInfo": self.account_info,
            "balances": self.balances_raw,
            "positions": self.positions_raw,
            "trading": trading,
        }


BILLING_COLUMNS: tuple[str, ...] = (
    "date",
    "time",
    "name",
    "email",
    "spot_pnl",
    "perps_pnl",
    "invperps_pnl",
    "btc_equity",
    "btc_usd_value",
    "btc_available",
    "eth_equity",
    "eth_usd_value",
    "eth_available",
    "usdt_equity",
    "usdt_usd_value",
    "usdt_available",
    "perps_fee",
    "invperps_fee",
)


@dataclass(frozen=True)
class BillingRecord:
    """One flattened billing row. Field order is the CSV column order."""

    date: str
    time: str
    name: str
    email: str
    spot_pnl: str
    perps_pnl: str
    invperps_pnl: str
    btc_equity: str
    btc_usd_value: str
    btc_available: str
    eth_equity: str
    eth_usd_value: str
    eth_available: str
    usdt_equity: str
    usdt_usd_value: str
    usdt_available: str
    perps_fee: str
    invperps_fee: str

    def as_row(self) -> list[str]:
        return [getattr(self, column) for column in BILLING_COLUMNS]


@dataclass
class BillingReport:
    """All accounts processed in one run."""

    timestamp: datetime
    report_name: str
    accounts: list[AccountSnapshot] = field(default_factory=list)
    records: list[BillingRecord] = field(default_factory=list)
    skipped: list[AccountIdentity] = field(default_factory=list)

    @property
    def total_accounts(self) -> int:
        return len(self.accounts)

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp.isoformat(),
            "reportName": self.report_name,
            "totalAccounts": self.total_accounts,
            "accounts": [account.to_dict() for account in self.accounts],
        }
