"""Billing pipeline -- wires all components and runs one billing pass.

For each account, strictly one after another:
  1. CREDENTIALS: skip accounts without a complete key triple
  2. ACCOUNT: fetch config, balance and positions (each optional)
  3. BILLS: fetch every tracked instrument concurrently, then join
  4. AGGREGATE: reduce bills into market-class PnL totals
  5. FEES: profit share on positive perpetual totals
  6. SNAPSHOT + FORMAT: merge everything and flatten into a billing row

Accounts never share state, and any failure scoped to one account or one
instrument is contained there. Only the absence of any usable credential
aborts the run.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from decimal import Decimal

import structlog

from billing.config import AppSettings
from billing.data.credentials import CredentialProvider
from billing.data.fetcher import BillFetcher, fetch_all_instruments
from billing.exceptions import (
    ConfigurationError,
    CredentialError,
    ExchangeRequestError,
    NoCredentialsError,
)
from billing.exchange.client import ExchangeClient
from billing.logging import get_logger
from billing.models import (
    AccountCredentials,
    AccountSnapshot,
    BillingReport,
    Credentials,
    Fees,
    Instrument,
    MarketClass,
    PnLTotals,
)
from billing.pnl.aggregator import PnLAggregator
from billing.pnl.fee_calculator import FeeCalculator
from billing.report.formatter import BillingRecordFormatter, localize
from billing.report.snapshot import AccountSnapshotBuilder

logger = get_logger(__name__)

ClientFactory = Callable[[Credentials], ExchangeClient]


class BillingPipeline:
    """Runs the fetch-aggregate-format pipeline over every account.

    Args:
        settings: Application-wide settings.
        credential_provider: Source of accounts to bill.
        client_factory: Builds an exchange client for one account's credentials.
        fetcher: Bill pagination.
        aggregator: PnL reduction.
        fee_calculator: Profit-share fees.
        snapshot_builder: Per-account merge.
        formatter: Billing row rendering.
    """

    def __init__(
        self,
        settings: AppSettings,
        credential_provider: CredentialProvider,
        client_factory: ClientFactory,
        fetcher: BillFetcher | None = None,
        aggregator: PnLAggregator | None = None,
        fee_calculator: FeeCalculator | None = None,
        snapshot_builder: AccountSnapshotBuilder | None = None,
        formatter: BillingRecordFormatter | None = None,
    ) -> None:
        self._settings = settings
        self._credential_provider = credential_provider
        self._client_factory = client_factory
        self._fetcher = fetcher or BillFetcher(settings.billing)
        self._aggregator = aggregator or PnLAggregator()
        self._fee_calculator = fee_calculator or FeeCalculator(settings.fees)
        self._snapshot_builder = snapshot_builder or AccountSnapshotBuilder()
        self._formatter = formatter or BillingRecordFormatter(settings.billing.timezone)

        try:
            self._instruments = settings.billing.tracked_instruments()
        except ValueError as e:
            raise ConfigurationError(str(e)) from e

    @property
    def instruments(self) -> list[Instrument]:
        return list(self._instruments)

    async def run(self, as_of: datetime | None = None) -> BillingReport:
        """Process every account and collect the report.

        Raises:
            NoCredentialsError: If no account has a usable key triple.
        """
        as_of = as_of or datetime.now(timezone.utc)
        if as_of.tzinfo is None:
            as_of = as_of.replace(tzinfo=timezone.utc)
        window_start_ms = self._fetcher.window_start_ms(int(as_of.timestamp() * 1000))

        accounts = await self._credential_provider.accounts()
        report = BillingReport(
            timestamp=as_of,
            report_name=self._settings.output.report_name,
        )

        usable: list[AccountCredentials] = []
        for account in accounts:
            try:
                self._check_credentials(account)
            except CredentialError as e:
                logger.warning(
                    "account_skipped",
                    user=account.identity.name,
                    user_id=account.identity.display_id,
                    reason=str(e),
                )
                report.skipped.append(account.identity)
                continue
            usable.append(account)

        if not usable:
            raise NoCredentialsError(
                f"no usable credentials ({len(accounts)} accounts found)"
            )

        logger.info(
            "billing_run_started",
            accounts=len(usable),
            skipped=len(report.skipped),
            instruments=[i.inst_id for i in self._instruments],
            lookback_days=self._settings.billing.lookback_days,
        )

        for index, account in enumerate(usable, 1):
            with structlog.contextvars.bound_contextvars(
                user_id=account.identity.display_id,
                account=f"{index}/{len(usable)}",
            ):
                try:
                    snapshot = await self.process_account(account, window_start_ms, as_of)
                except Exception as e:
                    logger.error("account_processing_failed", error=str(e), exc_info=True)
                    snapshot = self._failed_snapshot(account, as_of, str(e))
            report.accounts.append(snapshot)
            report.records.append(self._formatter.format(snapshot, as_of))

        logger.info(
            "billing_run_complete",
            total_accounts=report.total_accounts,
            skipped=len(report.skipped),
        )
        return report

    async def process_account(
        self,
        account: AccountCredentials,
        window_start_ms: int,
        as_of: datetime,
    ) -> AccountSnapshot:
        """Fetch, aggregate and snapshot one account. Never raises for
        exchange-side failures; they degrade the snapshot instead."""
        identity = account.identity
        credentials = account.credentials
        logger.info(
            "processing_account",
            name=identity.name,
            email=identity.email,
            label=identity.label,
            api_key=credentials.masked_api_key,
        )

        client = self._client_factory(credentials)
        try:
            await client.connect()

            account_info = await self._optional(client.fetch_account_config_raw, "account_config")
            balances = await self._optional(client.fetch_balance_raw, "balances")
            positions = await self._optional(client.fetch_positions_raw, "positions")

            results = await fetch_all_instruments(
                self._fetcher,
                client,
                self._instruments,
                window_start_ms,
                concurrent=self._settings.billing.concurrent_fetch,
            )
        finally:
            await client.close()

        totals = self._aggregator.aggregate_results(results.values())
        fees = self._fee_calculator.compute_fees(totals)
        report_date, _ = localize(as_of, self._formatter.timezone_name)

        return self._snapshot_builder.build(
            identity,
            balances,
            positions,
            totals,
            fees,
            fetched_at=as_of,
            report_date=report_date,
            api_key=credentials.masked_api_key,
            account_info=account_info,
            bills={i.inst_id: result for i, result in results.items()},
        )

    @staticmethod
    def _check_credentials(account: AccountCredentials) -> None:
        if not account.credentials.is_complete:
            raise CredentialError("missing api key, secret key or passphrase")

    @staticmethod
    async def _optional(fetch: Callable[[], Awaitable[dict]], what: str) -> dict | None:
        """Run a non-essential query; log and return None on failure.

        Balances and positions fall in this category: without them the
        billing row still carries PnL and fees, with balances defaulted.
        """
        try:
            return await fetch()
        except ExchangeRequestError as e:
            logger.warning(f"{what}_unavailable", error=str(e), code=e.code)
            return None

    def _failed_snapshot(
        self, account: AccountCredentials, as_of: datetime, error: str
    ) -> AccountSnapshot:
        """Snapshot for an account whose processing crashed.

        Every class is marked incomplete so the billing row shows the
        sentinel instead of zeros.
        """
        totals = PnLTotals(
            by_class={cls: Decimal("0") for cls in MarketClass},
            incomplete=frozenset(MarketClass),
            failures={i.inst_id: error for i in self._instruments},
        )
        report_date, _ = localize(as_of, self._formatter.timezone_name)
        return self._snapshot_builder.build(
            account.identity,
            None,
            None,
            totals,
            Fees(perps=None, invperps=None),
            fetched_at=as_of,
            report_date=report_date,
            api_key=account.credentials.masked_api_key,
        )
