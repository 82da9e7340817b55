"""Configuration system using pydantic-settings with environment variable loading."""

from decimal import Decimal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from billing.models import Instrument, MarketClass


class ExchangeSettings(BaseSettings):
    """OKX connection settings.

    The key triple here is only used as fallback credentials when the
    credential store has no accounts.
    """

    model_config = SettingsConfigDict(env_prefix="OKX_")

    api_key: SecretStr = SecretStr("")
    secret_key: SecretStr = SecretStr("")
    passphrase: SecretStr = SecretStr("")
    hostname: str = "www.okx.com"
    demo_trading: bool = False


class CredentialStoreSettings(BaseSettings):
    """SQLite credential store location and lookup options."""

    model_config = SettingsConfigDict(env_prefix="CREDENTIALS_")

    db_path: str = "data/credentials.db"
    exchange_name: str = "OKX"
    env_fallback: bool = True


class BillingSettings(BaseSettings):
    """Bill retrieval window, pagination bounds and tracked instruments.

    All fields configurable via BILLING_ environment variable prefix.
    Instrument lists are JSON arrays, e.g.
    BILLING_SPOT_INSTRUMENTS='["BTC-USDT","ETH-USDT","SOL-USDT"]'.
    """

    model_config = SettingsConfigDict(env_prefix="BILLING_")

    lookback_days: int = 30
    page_limit: int = 100  # OKX max for /account/bills
    max_pages: int = 500  # safety net per instrument-window
    page_delay: float = 0.1  # seconds between paginated calls
    concurrent_fetch: bool = True
    timezone: str = "Europe/Dublin"

    spot_instruments: list[str] = ["BTC-USDT", "ETH-USDT"]
    linear_perp_instruments: list[str] = ["BTC-USDT-SWAP", "ETH-USDT-SWAP"]
    inverse_perp_instruments: list[str] = ["BTC-USD-SWAP", "ETH-USD-SWAP"]

    @field_validator("timezone")
    @classmethod
    def _known_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"unknown timezone: {value}") from e
        return value

    @field_validator("lookback_days", "page_limit", "max_pages")
    @classmethod
    def _positive(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("must be positive")
        return value

    def tracked_instruments(self) -> list[Instrument]:
        """Return every tracked instrument tagged with its market class.

        Raises:
            ValueError: If the same instrument id is listed under two classes.
        """
        instruments = (
            [Instrument(i, MarketClass.SPOT) for i in self.spot_instruments]
            + [Instrument(i, MarketClass.LINEAR_PERPETUAL) for i in self.linear_perp_instruments]
            + [Instrument(i, MarketClass.INVERSE_PERPETUAL) for i in self.inverse_perp_instruments]
        )
        ids = [i.inst_id for i in instruments]
        duplicates = sorted({i for i in ids if ids.count(i) > 1})
        if duplicates:
            raise ValueError(f"instruments tracked under more than one class: {duplicates}")
        return instruments


class FeeSettings(BaseSettings):
    """Profit-share fee applied to positive perpetual PnL."""

    model_config = SettingsConfigDict(env_prefix="FEES_")

    profit_share_rate: Decimal = Decimal("0.25")  # 25%

    @field_validator("profit_share_rate")
    @classmethod
    def _rate_in_range(cls, value: Decimal) -> Decimal:
        if not Decimal("0") <= value <= Decimal("1"):
            raise ValueError("profit_share_rate must be between 0 and 1")
        return value


class OutputSettings(BaseSettings):
    """Where and under which names report artifacts are written."""

    model_config = SettingsConfigDict(env_prefix="REPORT_")

    output_dir: str = "."
    report_name: str = "OKX Trading Report"
    json_prefix: str = "okx_trading_report"
    csv_prefix: str = "okx_pnl_report"
    folder_prefix: str = "reports_output"


class AppSettings(BaseSettings):
    """Root application settings, composing all sub-settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
    )

    log_level: str = "INFO"
    exchange: ExchangeSettings = ExchangeSettings()
    credentials: CredentialStoreSettings = CredentialStoreSettings()
    billing: BillingSettings = BillingSettings()
    fees: FeeSettings = FeeSettings()
    output: OutputSettings = OutputSettings()
