"""Entry point for the OKX billing report.

Wires all components together, runs one billing pass and writes the JSON
and CSV artifacts.

Component wiring order (in _build_pipeline):
1. AppSettings (configuration)
2. Logging setup
3. CredentialDatabase + CredentialStore (SQLite)
4. CredentialProvider (store, with env fallback when enabled)
5. Exchange client factory (one OkxClient per account)
6. BillFetcher, PnLAggregator, FeeCalculator
7. AccountSnapshotBuilder, BillingRecordFormatter
8. BillingPipeline
9. ReportWriter
"""

import asyncio
import sys

from billing.config import AppSettings
from billing.data.credentials import (
    CredentialProvider,
    EnvCredentialProvider,
    FallbackCredentialProvider,
    SqliteCredentialProvider,
)
from billing.data.database import CredentialDatabase
from billing.data.fetcher import BillFetcher
from billing.data.store import CredentialStore
from billing.exceptions import ConfigurationError, NoCredentialsError
from billing.exchange.okx_client import OkxClient
from billing.logging import get_logger, setup_logging
from billing.models import BillingReport, Credentials
from billing.pipeline import BillingPipeline
from billing.pnl.aggregator import PnLAggregator
from billing.pnl.fee_calculator import FeeCalculator
from billing.report.formatter import BillingRecordFormatter
from billing.report.snapshot import AccountSnapshotBuilder
from billing.report.writer import ReportWriter


def _build_pipeline(
    settings: AppSettings, credential_provider: CredentialProvider
) -> BillingPipeline:
    """Build the pipeline and its collaborators from settings."""

    def client_factory(credentials: Credentials) -> OkxClient:
        return OkxClient(credentials, settings.exchange)

    return BillingPipeline(
        settings=settings,
        credential_provider=credential_provider,
        client_factory=client_factory,
        fetcher=BillFetcher(settings.billing),
        aggregator=PnLAggregator(),
        fee_calculator=FeeCalculator(settings.fees),
        snapshot_builder=AccountSnapshotBuilder(),
        formatter=BillingRecordFormatter(settings.billing.timezone),
    )


def _log_summary(report: BillingReport) -> None:
    """Per-account console digest of what went into the report."""
    logger = get_logger("billing.main")
    for snapshot, record in zip(report.accounts, report.records):
        summary = snapshot.summary
        logger.info(
            "account_summary",
            name=snapshot.identity.name,
            email=snapshot.identity.email,
            report_date=summary.get("reportDate"),
            balances=summary.get("balances"),
            spot_pnl=record.spot_pnl,
            perps_pnl=record.perps_pnl,
            invperps_pnl=record.invperps_pnl,
            perps_fee=record.perps_fee,
            invperps_fee=record.invperps_fee,
            positions=summary.get("positions"),
            degraded=list(snapshot.degraded),
        )


async def run() -> int:
    """Run one billing pass. Returns the process exit code."""
    # 1. Load settings
    settings = AppSettings()

    # 2. Setup logging
    setup_logging(settings.log_level)
    logger = get_logger("billing.main")
    logger.info("billing_starting", exchange=settings.credentials.exchange_name)

    # 3-4. Credential store and provider
    async with CredentialDatabase(settings.credentials.db_path) as database:
        store = CredentialStore(database, settings.credentials.exchange_name)
        provider: CredentialProvider = SqliteCredentialProvider(store)
        if settings.credentials.env_fallback:
            provider = FallbackCredentialProvider(
                provider, EnvCredentialProvider(settings.exchange, store)
            )

        # 5-8. Pipeline
        try:
            pipeline = _build_pipeline(settings, provider)
            report = await pipeline.run()
        except (NoCredentialsError, ConfigurationError) as e:
            logger.critical("billing_aborted", error=str(e))
            return 1

    # 9. Artifacts
    writer = ReportWriter(settings.output, settings.billing.timezone)
    paths = writer.write(report)

    _log_summary(report)
    logger.info(
        "billing_finished",
        total_accounts=report.total_accounts,
        skipped=len(report.skipped),
        json_path=str(paths.json_path),
        csv_path=str(paths.csv_path),
    )
    return 0


def main() -> None:
    """Synchronous entry point."""
    sys.exit(asyncio.run(run()))


if __name__ == "__main__":
    main()
