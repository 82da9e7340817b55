"""Abstract exchange client interface.

Defines the contract the billing pipeline depends on. One client instance
is bound to one account's credentials; request signing and transport are
entirely the implementation's concern.
"""

from abc import ABC, abstractmethod


class ExchangeClient(ABC):
    """Abstract base class for per-account exchange API clients."""

    @abstractmethod
    async def connect(self) -> None:
        """Initialize the underlying session."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Clean up resources (CRITICAL for ccxt async)."""
        ...

    @abstractmethod
    async def fetch_bills_page(
        self, inst_id: str, limit: int = 100, after: str | None = None
    ) -> list[dict]:
        """Fetch one page of ledger entries for an instrument, newest first.

        ``after`` is a billId cursor: only bills older than it are returned.
        OKX max limit: 100 records per call.

        Pagination is NOT handled here -- BillFetcher walks the cursor.

        Raises:
            ExchangeRequestError: On transport failure or non-zero code.
        """
        ...

    @abstractmethod
    async def fetch_balance_raw(self) -> dict:
        """Fetch the raw {code, data, msg} trading account balance response."""
        ...

    @abstractmethod
    async def fetch_positions_raw(self) -> dict:
        """Fetch the raw {code, data, msg} open positions response."""
        ...

    @abstractmethod
    async def fetch_account_config_raw(self) -> dict:
        """Fetch the raw {code, data, msg} account configuration response."""
        ...
