"""Exchange client layer -- OKX API integration via ccxt."""

from billing.exchange.client import ExchangeClient
from billing.exchange.okx_client import OkxClient

__all__ = ["ExchangeClient", "OkxClient"]
