"""Merge balances, positions and PnL into one per-account snapshot.

Nothing is recomputed here. Missing balance or position data degrades the
snapshot (flags plus empty defaults) instead of dropping the account.
"""

from collections.abc import Mapping
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any

from billing.logging import get_logger
from billing.models import (
    AccountIdentity,
    AccountSnapshot,
    BalanceDetail,
    Fees,
    InstrumentBills,
    MarketClass,
    PnLTotals,
)
from billing.report.formatter import format_decimal

logger = get_logger(__name__)

BALANCES_UNAVAILABLE = "balances_unavailable"
POSITIONS_UNAVAILABLE = "positions_unavailable"

_SUMMARY_KEYS = {
    MarketClass.SPOT: "spot",
    MarketClass.LINEAR_PERPETUAL: "perpetuals",
    MarketClass.INVERSE_PERPETUAL: "inversePerpetuals",
}


def parse_balance_details(raw: Mapping[str, Any]) -> tuple[BalanceDetail, ...] | None:
    """Extract per-currency details from a /account/balance response.

    Returns None when the response does not have the expected shape.
    """
    data = raw.get("data")
    if not isinstance(data, list) or not data or not isinstance(data[0], Mapping):
        return None
    details = data[0].get("details") or []
    return tuple(
        BalanceDetail(
            currency=str(d.get("ccy", "")),
            equity=str(d.get("eq") or "0"),
            usd_value=str(d.get("eqUsd") or "0"),
            available=str(d.get("availBal") or "0"),
            frozen=str(d.get("frozenBal") or "0"),
        )
        for d in details
        if isinstance(d, Mapping)
    )


def is_open(position: Mapping[str, Any]) -> bool:
    """True when the position's size parses to a nonzero number."""
    try:
        return Decimal(str(position.get("pos") or "0")) != 0
    except InvalidOperation:
        return False


class AccountSnapshotBuilder:
    """Builds AccountSnapshot objects for the report."""

    def build(
        self,
        identity: AccountIdentity,
        balances: Mapping[str, Any] | None,
        positions: Mapping[str, Any] | None,
        pnl: PnLTotals,
        fees: Fees,
        *,
        fetched_at: datetime,
        report_date: str,
        api_key: str = "unknown",
        account_info: Mapping[str, Any] | None = None,
        bills: Mapping[str, InstrumentBills] | None = None,
    ) -> AccountSnapshot:
        """Merge one account's data.

        Args:
            identity: Account owner, carried through unchanged.
            balances: Raw balance response, or None if it could not be fetched.
            positions: Raw positions response, or None if it could not be fetched.
            pnl: Aggregated PnL totals.
            fees: Fees derived from ``pnl``.
            fetched_at: When the account was queried.
            report_date: Local DD/MM/YYYY date shown in the summary.
            api_key: Masked API key for the audit trail.
            account_info: Raw account configuration response, if available.
            bills: Per-instrument fetch results keyed by instrument id.
        """
        degraded: list[str] = []

        details: tuple[BalanceDetail, ...] = ()
        if balances is None:
            degraded.append(BALANCES_UNAVAILABLE)
        else:
            parsed = parse_balance_details(balances)
            if parsed is None:
                logger.warning("balance_response_malformed", user=identity.name)
                degraded.append(BALANCES_UNAVAILABLE)
            else:
                details = parsed

        open_positions: tuple[Mapping[str, Any], ...] = ()
        position_rows = positions.get("data") if positions is not None else None
        if isinstance(position_rows, list):
            open_positions = tuple(
                p for p in position_rows if isinstance(p, Mapping) and is_open(p)
            )
        else:
            degraded.append(POSITIONS_UNAVAILABLE)

        if pnl.incomplete:
            degraded.append("pnl_incomplete")

        summary = self._summary(report_date, details, open_positions, pnl, fees)

        return AccountSnapshot(
            identity=identity,
            api_key=api_key,
            fetched_at=fetched_at,
            pnl=pnl,
            fees=fees,
            balances=details,
            open_positions=open_positions,
            account_info=account_info,
            balances_raw=balances,
            positions_raw=positions,
            bills=dict(bills or {}),
            degraded=tuple(degraded),
            summary=summary,
        )

    @staticmethod
    def _summary(
        report_date: str,
        details: tuple[BalanceDetail, ...],
        open_positions: tuple[Mapping[str, Any], ...],
        pnl: PnLTotals,
        fees: Fees,
    ) -> dict[str, Any]:
        """Human-readable digest. Display only -- never parsed back."""
        pnl_lines: dict[str, list[str]] = {key: [] for key in _SUMMARY_KEYS.values()}
        for instrument, total in pnl.by_instrument.items():
            if total != 0:
                pnl_lines[_SUMMARY_KEYS[instrument.market_class]].append(
                    f"{instrument.inst_id}: {format_decimal(total)}"
                )
        return {
            "reportDate": report_date,
            "balances": [
                f"{d.currency}: {d.available} (Available) + {d.frozen} (Frozen)"
                for d in details
            ],
            "pnl": pnl_lines,
            "positions": [
                f"{p.get('instId')}: {p.get('pos')} @ {p.get('avgPx')} (PnL: {p.get('upl')})"
                for p in open_positions
            ],
            "incomplete": sorted(cls.value for cls in pnl.incomplete),
            "fees": {
                "perps": None if fees.perps is None else format_decimal(fees.perps),
                "invperps": None if fees.invperps is None else format_decimal(fees.invperps),
            },
        }
