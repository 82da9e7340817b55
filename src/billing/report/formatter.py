"""Flatten an AccountSnapshot into the fixed-column billing record.

Output is a pure function of (snapshot, as_of, timezone): formatting the
same snapshot twice yields identical rows.
"""

from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from zoneinfo import ZoneInfo

from billing.models import AccountSnapshot, BillingRecord, MarketClass

INCOMPLETE = "INCOMPLETE"

_EIGHT_PLACES = Decimal("0.00000001")


def format_decimal(value: Decimal) -> str:
    """Fixed-point string with exactly 8 fractional digits.

    Rounds half away from zero and never emits scientific notation or -0.
    """
    quantized = value.quantize(_EIGHT_PLACES, rounding=ROUND_HALF_UP)
    if quantized.is_zero():
        quantized = abs(quantized)
    return f"{quantized:f}"


def localize(as_of: datetime, timezone_name: str) -> tuple[str, str]:
    """Render an instant as (DD/MM/YYYY, HH:MM) in the named timezone.

    Naive datetimes are taken to be UTC.
    """
    if as_of.tzinfo is None:
        as_of = as_of.replace(tzinfo=timezone.utc)
    local = as_of.astimezone(ZoneInfo(timezone_name))
    return local.strftime("%d/%m/%Y"), local.strftime("%H:%M")


class BillingRecordFormatter:
    """Produces BillingRecord rows.

    Args:
        timezone_name: IANA zone used when format() is not given one.
    """

    def __init__(self, timezone_name: str = "Europe/Dublin") -> None:
        ZoneInfo(timezone_name)  # fail fast on unknown zones
        self._timezone_name = timezone_name

    @property
    def timezone_name(self) -> str:
        return self._timezone_name

    def format(
        self,
        snapshot: AccountSnapshot,
        as_of: datetime,
        timezone_name: str | None = None,
    ) -> BillingRecord:
        date, time = localize(as_of, timezone_name or self._timezone_name)
        pnl = snapshot.pnl

        def class_total(market_class: MarketClass) -> str:
            if not pnl.is_complete(market_class):
                return INCOMPLETE
            return format_decimal(pnl.total(market_class))

        def fee(value: Decimal | None) -> str:
            return INCOMPLETE if value is None else format_decimal(value)

        balances: dict[str, str] = {}
        for currency in ("BTC", "ETH", "USDT"):
            detail = snapshot.balance(currency)
            prefix = currency.lower()
            balances[f"{prefix}_equity"] = (detail and detail.equity) or "0"
            balances[f"{prefix}_usd_value"] = (detail and detail.usd_value) or "0"
            balances[f"{prefix}_available"] = (detail and detail.available) or "0"

        return BillingRecord(
            date=date,
            time=time,
            name=snapshot.identity.name or "Unknown",
            email=snapshot.identity.email or "Unknown",
            spot_pnl=class_total(MarketClass.SPOT),
            perps_pnl=class_total(MarketClass.LINEAR_PERPETUAL),
            invperps_pnl=class_total(MarketClass.INVERSE_PERPETUAL),
            perps_fee=fee(snapshot.fees.perps),
            invperps_fee=fee(snapshot.fees.invperps),
            **balances,
        )
