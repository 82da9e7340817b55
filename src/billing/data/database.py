"""Async SQLite database for the credential store.

One row per user and one row per registered API key. Keys for several
exchanges may live side by side; the store filters on the exchange name.
The schema is versioned and upgraded in place on connect.
"""

import os
from typing import Self

import aiosqlite

from billing.logging import get_logger

logger = get_logger(__name__)

# Ordered schema steps; the index + 1 is the version a step upgrades to.
_MIGRATIONS: tuple[str, ...] = (
    """
    CREATE TABLE IF NOT EXISTS users (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        email TEXT NOT NULL
    );

    CREATE TABLE IF NOT EXISTS api_keys (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        user_id TEXT NOT NULL REFERENCES users(id),
        exchange TEXT NOT NULL,
        api_key TEXT,
        secret_key TEXT,
        passphrase TEXT,
        label TEXT
    );
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_api_keys_exchange ON api_keys(exchange);
    CREATE INDEX IF NOT EXISTS idx_api_keys_api_key ON api_keys(api_key);
    """,
)

SCHEMA_VERSION = len(_MIGRATIONS)


class CredentialDatabase:
    """Owns the aiosqlite connection used by CredentialStore.

    Usage:
        async with CredentialDatabase("data/credentials.db") as db:
            store = CredentialStore(db)
            accounts = await store.list_accounts()
    """

    def __init__(self, db_path: str = "data/credentials.db") -> None:
        self._db_path = db_path
        self._connection: aiosqlite.Connection | None = None

    @property
    def db(self) -> aiosqlite.Connection:
        """The open connection.

        Raises RuntimeError if not connected.
        """
        if self._connection is None:
            raise RuntimeError("Credential database not connected. Call connect() first.")
        return self._connection

    async def connect(self) -> None:
        """Open the database file (creating its directory) and upgrade the schema."""
        directory = os.path.dirname(self._db_path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        connection = await aiosqlite.connect(self._db_path)
        connection.row_factory = aiosqlite.Row
        await connection.execute("PRAGMA journal_mode=WAL")
        await connection.execute("PRAGMA foreign_keys=ON")
        self._connection = connection

        version = await self._migrate()
        logger.info("credential_db_connected", db_path=self._db_path, schema_version=version)

    async def close(self) -> None:
        if self._connection is not None:
            await self._connection.close()
            self._connection = None
            logger.debug("credential_db_closed", db_path=self._db_path)

    async def schema_version(self) -> int:
        """Highest applied schema version, 0 for a fresh file."""
        await self.db.execute(
            "CREATE TABLE IF NOT EXISTS schema_version (version INTEGER PRIMARY KEY)"
        )
        cursor = await self.db.execute("SELECT MAX(version) FROM schema_version")
        row = await cursor.fetchone()
        return int(row[0] or 0) if row is not None else 0

    async def _migrate(self) -> int:
        current = await self.schema_version()
        for version, script in enumerate(_MIGRATIONS, start=1):
            if version <= current:
                continue
            await self.db.executescript(script)
            await self.db.execute("INSERT INTO schema_version (version) VALUES (?)", (version,))
            await self.db.commit()
            logger.info("schema_migrated", version=version)
        return max(current, SCHEMA_VERSION)

    async def __aenter__(self) -> Self:
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:  # type: ignore[no-untyped-def]
        await self.close()
