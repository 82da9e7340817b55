"""Realized PnL aggregation from OKX bills.

All calculations use Decimal arithmetic exclusively -- no float conversions
anywhere. Bill pnl strings carry at most ~18 significant digits, so the
default 28-digit context sums thousands of bills exactly.
"""

from collections.abc import Iterable, Mapping, Sequence
from decimal import Decimal, InvalidOperation

from billing.exceptions import FormatError
from billing.logging import get_logger
from billing.models import Instrument, InstrumentBills, LedgerEntry, MarketClass, PnLTotals

logger = get_logger(__name__)

_ZERO = Decimal("0")


def parse_pnl(value: object) -> Decimal:
    """Parse a bill's pnl field. Missing or empty means zero.

    Raises:
        FormatError: If the value is present but not a finite number.
    """
    if value is None or value == "":
        return _ZERO
    try:
        parsed = Decimal(str(value))
    except InvalidOperation as e:
        raise FormatError(f"non-numeric pnl {value!r}") from e
    if not parsed.is_finite():
        raise FormatError(f"non-finite pnl {value!r}")
    return parsed


class PnLAggregator:
    """Reduces bills into per-instrument and per-market-class PnL totals.

    Aggregation is a plain sum, so it is independent of entry order and of
    how the bills were split into pages.
    """

    def sum_entries(self, entries: Iterable[LedgerEntry]) -> Decimal:
        """Sum pnl over entries, counting malformed values as zero."""
        total = _ZERO
        for entry in entries:
            try:
                total += parse_pnl(entry.pnl)
            except FormatError as e:
                logger.warning(
                    "malformed_bill_pnl",
                    inst_id=entry.inst_id,
                    bill_id=entry.bill_id,
                    error=str(e),
                )
        return total

    def aggregate(
        self,
        entries_by_instrument: Mapping[Instrument, Sequence[LedgerEntry]],
        failures: Mapping[Instrument, str] | None = None,
    ) -> PnLTotals:
        """Build PnLTotals for one account.

        Every MarketClass gets a total, exactly zero when nothing was traded.
        An instrument listed in ``failures`` marks its class incomplete; the
        class total then covers only the instruments that did succeed.

        Args:
            entries_by_instrument: Bills of each successfully fetched instrument.
            failures: Error message per instrument whose fetch failed.
        """
        failures = failures or {}
        by_class: dict[MarketClass, Decimal] = {cls: _ZERO for cls in MarketClass}
        by_instrument: dict[Instrument, Decimal] = {}

        for instrument, entries in entries_by_instrument.items():
            if instrument in failures:
                continue
            instrument_total = self.sum_entries(entries)
            by_instrument[instrument] = instrument_total
            by_class[instrument.market_class] += instrument_total

        incomplete = frozenset(instrument.market_class for instrument in failures)
        if incomplete:
            logger.warning(
                "pnl_totals_incomplete",
                market_classes=sorted(cls.value for cls in incomplete),
                failed_instruments=sorted(i.inst_id for i in failures),
            )

        return PnLTotals(
            by_class=by_class,
            by_instrument=by_instrument,
            incomplete=incomplete,
            failures={i.inst_id: message for i, message in failures.items()},
        )

    def aggregate_results(self, results: Iterable[InstrumentBills]) -> PnLTotals:
        """Aggregate the outcome of fetch_all_instruments."""
        entries: dict[Instrument, Sequence[LedgerEntry]] = {}
        failures: dict[Instrument, str] = {}
        for result in results:
            if result.ok:
                entries[result.instrument] = result.entries
            else:
                failures[result.instrument] = result.error or "unknown error"
        return self.aggregate(entries, failures)
