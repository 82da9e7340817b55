"""Credential providers injected into the billing pipeline.

The pipeline only sees CredentialProvider.accounts(); where the keys live
(SQLite store, environment, a test double) is decided at wiring time.
"""

from abc import ABC, abstractmethod

import aiosqlite

from billing.config import ExchangeSettings
from billing.data.store import CredentialStore
from billing.exceptions import BillingError
from billing.logging import get_logger
from billing.models import AccountCredentials, AccountIdentity, Credentials

logger = get_logger(__name__)


class CredentialProvider(ABC):
    """Source of accounts to bill."""

    @abstractmethod
    async def accounts(self) -> list[AccountCredentials]:
        """Return all accounts, including ones with incomplete credentials."""
        ...


class SqliteCredentialProvider(CredentialProvider):
    """Accounts registered in the SQLite credential store."""

    def __init__(self, store: CredentialStore) -> None:
        self._store = store

    async def accounts(self) -> list[AccountCredentials]:
        return await self._store.list_accounts()


_UNKNOWN_OWNER = AccountIdentity(
    id="unknown",
    name="Unknown User",
    email="unknown@example.com",
    label="Default API Key",
)


class EnvCredentialProvider(CredentialProvider):
    """Single fallback account built from OKX_* environment settings.

    Yields nothing when no API key is configured. When a store is given and
    knows the key, the account is labeled with its registered owner.
    """

    def __init__(self, settings: ExchangeSettings, store: CredentialStore | None = None) -> None:
        self._settings = settings
        self._store = store

    async def accounts(self) -> list[AccountCredentials]:
        api_key = self._settings.api_key.get_secret_value()
        if not api_key:
            return []
        return [
            AccountCredentials(
                identity=await self._owner(api_key),
                credentials=Credentials(
                    api_key=api_key,
                    secret_key=self._settings.secret_key.get_secret_value(),
                    passphrase=self._settings.passphrase.get_secret_value(),
                ),
            )
        ]

    async def _owner(self, api_key: str) -> AccountIdentity:
        if self._store is None:
            return _UNKNOWN_OWNER
        try:
            identity = await self._store.find_identity(api_key)
        except aiosqlite.Error as e:
            logger.warning("owner_lookup_failed", error=str(e))
            return _UNKNOWN_OWNER
        return identity or _UNKNOWN_OWNER


class FallbackCredentialProvider(CredentialProvider):
    """Use the primary provider; fall back when it is empty or fails."""

    def __init__(self, primary: CredentialProvider, fallback: CredentialProvider) -> None:
        self._primary = primary
        self._fallback = fallback

    async def accounts(self) -> list[AccountCredentials]:
        try:
            accounts = await self._primary.accounts()
        except (BillingError, aiosqlite.Error) as e:
            logger.error("primary_credentials_failed", error=str(e))
            accounts = []

        if accounts:
            return accounts

        logger.warning("using_fallback_credentials")
        return await self._fallback.accounts()
