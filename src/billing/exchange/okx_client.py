"""OKX exchange client implementation via ccxt async.

Wraps ccxt.async_support.okx and calls the implicit private REST endpoints
directly, so responses keep the exchange-native {code, data, msg} shape that
the billing report archives verbatim. ccxt takes care of HMAC signing,
timestamps and rate limiting.
"""

from typing import Any

import ccxt.async_support as ccxt_async

from billing.config import ExchangeSettings
from billing.exceptions import ExchangeRequestError
from billing.exchange.client import ExchangeClient
from billing.logging import get_logger
from billing.models import Credentials

logger = get_logger(__name__)


class OkxClient(ExchangeClient):
    """Concrete OKX client bound to one account's credentials."""

    def __init__(self, credentials: Credentials, settings: ExchangeSettings) -> None:
        self._settings = settings
        self._api_key = credentials.masked_api_key

        config: dict = {
            "apiKey": credentials.api_key,
            "secret": credentials.secret_key,
            "password": credentials.passphrase,
            "enableRateLimit": True,
            "hostname": settings.hostname,
        }
        self._exchange = ccxt_async.okx(config)

        # Demo trading uses the x-simulated-trading header on the same host
        if settings.demo_trading:
            self._exchange.set_sandbox_mode(True)

    @property
    def exchange(self) -> ccxt_async.okx:
        """Access the underlying ccxt exchange instance."""
        return self._exchange

    async def connect(self) -> None:
        """Private raw endpoints need no market metadata; only log the session."""
        logger.info(
            "okx_session_opened",
            api_key=self._api_key,
            hostname=self._settings.hostname,
            demo=self._settings.demo_trading,
        )

    async def close(self) -> None:
        """Clean up ccxt async resources. CRITICAL: must be called to avoid resource leaks."""
        await self._exchange.close()
        logger.debug("okx_session_closed", api_key=self._api_key)

    async def fetch_bills_page(
        self, inst_id: str, limit: int = 100, after: str | None = None
    ) -> list[dict]:
        """GET /api/v5/account/bills for one instrument."""
        params: dict[str, Any] = {"instId": inst_id, "limit": str(limit)}
        if after:
            params["after"] = after
        response = await self._request("private_get_account_bills", params)
        return list(response.get("data") or [])

    async def fetch_balance_raw(self) -> dict:
        """GET /api/v5/account/balance."""
        return await self._request("private_get_account_balance")

    async def fetch_positions_raw(self) -> dict:
        """GET /api/v5/account/positions."""
        return await self._request("private_get_account_positions")

    async def fetch_account_config_raw(self) -> dict:
        """GET /api/v5/account/config."""
        return await self._request("private_get_account_config")

    async def _request(self, endpoint: str, params: dict | None = None) -> dict:
        """Call an implicit ccxt endpoint and enforce code == "0".

        ccxt already raises on most exchange errors; the explicit code check
        covers responses it passes through.
        """
        logger.debug("okx_request", endpoint=endpoint, params=params or {})
        try:
            response = await getattr(self._exchange, endpoint)(params or {})
        except ccxt_async.BaseError as e:
            raise ExchangeRequestError(f"{endpoint} failed: {e}") from e

        code = str(response.get("code", "0"))
        if code != "0":
            raise ExchangeRequestError(
                f"API Error: {response.get('msg') or 'Unknown error'} (Code: {code})",
                code=code,
            )
        return response
