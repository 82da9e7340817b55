"""Bill retrieval and credential storage."""

from billing.data.credentials import (
    CredentialProvider,
    EnvCredentialProvider,
    FallbackCredentialProvider,
    SqliteCredentialProvider,
)
from billing.data.database import CredentialDatabase
from billing.data.fetcher import BillFetcher, fetch_all_instruments
from billing.data.store import CredentialStore

__all__ = [
    "BillFetcher",
    "CredentialDatabase",
    "CredentialProvider",
    "CredentialStore",
    "EnvCredentialProvider",
    "FallbackCredentialProvider",
    "SqliteCredentialProvider",
    "fetch_all_instruments",
]
