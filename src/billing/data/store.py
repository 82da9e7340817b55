"""Typed SQLite read/write abstraction for users and their exchange API keys.

All SQL is isolated behind CredentialStore. Secrets are returned only inside
Credentials objects and never logged.
"""

from billing.data.database import CredentialDatabase
from billing.logging import get_logger
from billing.models import AccountCredentials, AccountIdentity, Credentials

logger = get_logger(__name__)


class CredentialStore:
    """Async SQLite store for users and API keys.

    Args:
        database: Connected CredentialDatabase.
        exchange_name: Only keys registered for this exchange are listed.
    """

    def __init__(self, database: CredentialDatabase, exchange_name: str = "OKX") -> None:
        self._database = database
        self._exchange_name = exchange_name

    # ──────────────────────────────────────────────
    # Write methods
    # ──────────────────────────────────────────────

    async def add_user(self, user_id: str, name: str, email: str) -> None:
        """Insert or update a user row."""
        await self._database.db.execute(
            "INSERT INTO users (id, name, email) VALUES (?, ?, ?) "
            "ON CONFLICT(id) DO UPDATE SET name = excluded.name, email = excluded.email",
            (user_id, name, email),
        )
        await self._database.db.commit()

    async def add_api_key(
        self,
        user_id: str,
        api_key: str,
        secret_key: str,
        passphrase: str,
        label: str | None = None,
        exchange: str | None = None,
    ) -> int:
        """Register an API key triple for a user. Returns the new row id."""
        cursor = await self._database.db.execute(
            "INSERT INTO api_keys (user_id, exchange, api_key, secret_key, passphrase, label) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            (
                user_id,
                exchange or self._exchange_name,
                api_key,
                secret_key,
                passphrase,
                label,
            ),
        )
        await self._database.db.commit()
        logger.info(
            "api_key_registered",
            user_id=user_id,
            exchange=exchange or self._exchange_name,
            label=label,
        )
        return cursor.lastrowid or 0

    # ──────────────────────────────────────────────
    # Read methods
    # ──────────────────────────────────────────────

    async def list_accounts(self) -> list[AccountCredentials]:
        """Return every user joined with each of their keys for the exchange.

        A user with two keys yields two accounts. Incomplete triples are
        returned as-is; deciding to skip them is the pipeline's job.
        """
        cursor = await self._database.db.execute(
            "SELECT u.id, u.name, u.email, a.api_key, a.secret_key, a.passphrase, a.label "
            "FROM users u JOIN api_keys a ON u.id = a.user_id "
            "WHERE a.exchange = ? ORDER BY a.id",
            (self._exchange_name,),
        )
        rows = await cursor.fetchall()

        accounts = [
            AccountCredentials(
                identity=AccountIdentity(
                    id=str(row["id"]),
                    name=row["name"],
                    email=row["email"],
                    label=row["label"] or "No Label",
                ),
                credentials=Credentials(
                    api_key=row["api_key"] or "",
                    secret_key=row["secret_key"] or "",
                    passphrase=row["passphrase"] or "",
                ),
            )
            for row in rows
        ]
        logger.info(
            "accounts_loaded",
            exchange=self._exchange_name,
            count=len(accounts),
        )
        return accounts

    async def find_identity(self, api_key: str) -> AccountIdentity | None:
        """Owner of an API key, whatever exchange it is registered for."""
        cursor = await self._database.db.execute(
            "SELECT u.id, u.name, u.email, a.label "
            "FROM users u JOIN api_keys a ON u.id = a.user_id "
            "WHERE a.api_key = ? ORDER BY a.id LIMIT 1",
            (api_key,),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return AccountIdentity(
            id=str(row["id"]),
            name=row["name"],
            email=row["email"],
            label=row["label"] or "No Label",
        )
