"""Paginated bill retrieval for one instrument within a trailing time window.

Walks OKX /api/v5/account/bills backward with the ``after`` cursor until the
lookback window is exhausted.

CRITICAL implementation notes:
- OKX returns bills NEWEST FIRST and billId strictly decreases with time
  for an account+instrument. The walk relies on this: the first page that
  holds any bill older than the window start is the last page requested.
  If the exchange ever returned bills out of order, entries beyond that
  page would be missed. This is a precondition, not something we verify.
- Bill limit: 100 per call.
- No retry: a failed page fails the whole instrument. Returning the pages
  collected so far would under-report PnL as if it were complete.
"""

import asyncio
import time
from collections.abc import Callable

from billing.config import BillingSettings
from billing.exceptions import (
    ExchangeRequestError,
    FetchError,
    PaginationLimitExceeded,
)
from billing.exchange.client import ExchangeClient
from billing.logging import get_logger
from billing.models import Instrument, InstrumentBills, LedgerEntry

logger = get_logger(__name__)

_DAY_MS = 86_400 * 1000


class BillFetcher:
    """Fetches all bills inside the lookback window for one instrument.

    Usage:
        fetcher = BillFetcher(settings.billing)
        window_start = fetcher.window_start_ms()
        entries = await fetcher.fetch_bills(client, instrument, window_start)
    """

    def __init__(
        self,
        settings: BillingSettings,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._settings = settings
        self._clock = clock

    def window_start_ms(self, now_ms: int | None = None) -> int:
        """Epoch millis of the oldest bill included in the report."""
        if now_ms is None:
            now_ms = int(self._clock() * 1000)
        return now_ms - self._settings.lookback_days * _DAY_MS

    async def fetch_bills(
        self,
        client: ExchangeClient,
        instrument: Instrument,
        window_start_ms: int,
    ) -> list[LedgerEntry]:
        """Return every bill for ``instrument`` with ts >= window_start_ms.

        Entries are de-duplicated by billId; order is not guaranteed.

        Raises:
            FetchError: On any transport/exchange failure, a malformed bill,
                a cursor that stops advancing, or more than max_pages pages.
        """
        entries, _ = await self._walk(client, instrument, window_start_ms)
        return entries

    async def fetch_instrument(
        self,
        client: ExchangeClient,
        instrument: Instrument,
        window_start_ms: int,
    ) -> InstrumentBills:
        """Like fetch_bills, but captures any failure into the result.

        Never raises, so sibling instruments gathered alongside this one
        always run to completion.
        """
        try:
            entries, pages = await self._walk(client, instrument, window_start_ms)
        except FetchError as e:
            logger.error(
                "bill_fetch_failed",
                inst_id=instrument.inst_id,
                market_class=instrument.market_class.value,
                error=str(e),
            )
            return InstrumentBills(instrument=instrument, error=str(e))
        except Exception as e:
            logger.error(
                "bill_fetch_crashed",
                inst_id=instrument.inst_id,
                market_class=instrument.market_class.value,
                error=str(e),
                exc_info=True,
            )
            error = str(FetchError(instrument.inst_id, f"{type(e).__name__}: {e}"))
            return InstrumentBills(instrument=instrument, error=error)

        logger.info(
            "bill_fetch_complete",
            inst_id=instrument.inst_id,
            market_class=instrument.market_class.value,
            bills=len(entries),
            pages=pages,
        )
        return InstrumentBills(instrument=instrument, entries=tuple(entries), pages=pages)

    async def _walk(
        self,
        client: ExchangeClient,
        instrument: Instrument,
        window_start_ms: int,
    ) -> tuple[list[LedgerEntry], int]:
        inst_id = instrument.inst_id
        collected: dict[str, LedgerEntry] = {}
        after: str | None = None

        for page_number in range(1, self._settings.max_pages + 1):
            try:
                page = await client.fetch_bills_page(
                    inst_id, limit=self._settings.page_limit, after=after
                )
            except ExchangeRequestError as e:
                raise FetchError(inst_id, f"page {page_number}: {e}") from e

            if not page:
                return list(collected.values()), page_number

            parsed = [LedgerEntry.from_api(bill, instrument) for bill in page]
            in_window = [e for e in parsed if e.timestamp_ms >= window_start_ms]
            for entry in in_window:
                collected.setdefault(entry.bill_id, entry)

            logger.debug(
                "bill_page_fetched",
                inst_id=inst_id,
                page=page_number,
                size=len(parsed),
                in_window=len(in_window),
            )

            # Page reached past the window start -- nothing older is wanted
            if len(in_window) < len(parsed):
                return list(collected.values()), page_number

            next_after = parsed[-1].bill_id
            if next_after == after:
                raise FetchError(inst_id, f"cursor did not advance past billId {after}")
            after = next_after

            if self._settings.page_delay > 0:
                await asyncio.sleep(self._settings.page_delay)

        raise PaginationLimitExceeded(
            inst_id,
            f"window not exhausted after {self._settings.max_pages} pages",
        )


async def fetch_all_instruments(
    fetcher: BillFetcher,
    client: ExchangeClient,
    instruments: list[Instrument],
    window_start_ms: int,
    concurrent: bool = True,
) -> dict[Instrument, InstrumentBills]:
    """Fetch every tracked instrument; returns only after all have finished.

    Failures are captured per instrument, so one bad instrument never
    cancels the others.
    """
    if concurrent:
        results = await asyncio.gather(
            *(fetcher.fetch_instrument(client, i, window_start_ms) for i in instruments)
        )
    else:
        results = [
            await fetcher.fetch_instrument(client, i, window_start_ms) for i in instruments
        ]
    return {result.instrument: result for result in results}

