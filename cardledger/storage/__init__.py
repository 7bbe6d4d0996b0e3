"""Storage backends for cardledger."""

from .base import (
    CardRecord,
    LedgerEventRecord,
    LedgerSession,
    PersistenceProvider,
    ProgressionRecord,
    WalletRecord,
)
from .memory import InMemoryPersistence, InMemorySession
from .sqlalchemy import AsyncSQLAlchemyStorage

__all__ = [
    "CardRecord",
    "LedgerEventRecord",
    "LedgerSession",
    "PersistenceProvider",
    "ProgressionRecord",
    "WalletRecord",
    "InMemoryPersistence",
    "InMemorySession",
    "AsyncSQLAlchemyStorage",
]
