"""Tests for the entry point wiring: settings, credential store, artifacts."""

import json
from unittest.mock import patch

import pytest

from billing.config import AppSettings, CredentialStoreSettings
from billing.main import run


@pytest.fixture
def app_settings(mock_settings: AppSettings, tmp_path) -> AppSettings:
    """Settings with the credential database inside tmp_path."""
    return mock_settings.model_copy(
        update={"credentials": CredentialStoreSettings(db_path=str(tmp_path / "db" / "credentials.db"))}
    )


class TestRun:
    """Test one full run through main.run()."""

    @pytest.mark.asyncio
    async def test_env_fallback_account_writes_artifacts(
        self, app_settings: AppSettings, fake_exchange, tmp_path
    ) -> None:
        client = fake_exchange()

        with patch("billing.main.AppSettings", return_value=app_settings), patch(
            "billing.main.OkxClient", return_value=client
        ) as okx_cls:
            exit_code = await run()

        assert exit_code == 0
        credentials = okx_cls.call_args.args[0]
        assert credentials.api_key == "test-api-key"
        assert client.closed

        [json_path] = tmp_path.glob("reports_output_*/okx_trading_report_*.json")
        [csv_path] = tmp_path.glob("reports_output_*/okx_pnl_report_*.csv")
        data = json.loads(json_path.read_text(encoding="utf-8"))
        assert data["totalAccounts"] == 1
        assert data["accounts"][0]["user"]["name"] == "Unknown User"
        assert len(csv_path.read_text(encoding="utf-8").splitlines()) == 2

    @pytest.mark.asyncio
    async def test_no_credentials_exits_non_zero(self, app_settings: AppSettings, tmp_path) -> None:
        settings = app_settings.model_copy(
            update={
                "credentials": CredentialStoreSettings(
                    db_path=str(tmp_path / "db" / "credentials.db"), env_fallback=False
                )
            }
        )

        with patch("billing.main.AppSettings", return_value=settings):
            exit_code = await run()

        assert exit_code == 1
        assert list(tmp_path.glob("reports_output_*")) == []
