"""Configuration models for cardledger."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Literal


StorageBackend = Literal["memory", "sqlalchemy"]

_TRUTHY = {"1", "true", "yes"}


@dataclass(slots=True)
class StorageConfig:
    """Configure where the ledger is persisted."""

    backend: StorageBackend = "memory"
    dsn: str | None = None
    echo_sql: bool = False

    def resolve_dsn(self) -> str | None:
        if self.dsn:
            return self.dsn
        if self.backend == "sqlalchemy":
            return "sqlite+aiosqlite:///./cardledger.db"
        return None


@dataclass(slots=True)
class LedgerConfig:
    """Time budgets and read limits for ledger operations."""

    storage_timeout_seconds: float | None = 10.0
    lock_timeout_seconds: float | None = 30.0
    recent_events_limit: int = 15


@dataclass(slots=True)
class CardLedgerConfig:
    """Top-level configuration container."""

    bot_token: str = ""
    storage: StorageConfig = field(default_factory=StorageConfig)
    ledger: LedgerConfig = field(default_factory=LedgerConfig)
    load_default_packs: bool = True
    catalog_path: str | None = None
    rng_seed: int | None = None

    @classmethod
    def from_env(cls) -> "CardLedgerConfig":
        """Create config from environment variables prefixed with CARDLEDGER_."""
        prefix = "CARDLEDGER_"
        storage = StorageConfig(
            backend=os.getenv(f"{prefix}STORAGE_BACKEND", "memory"),  # type: ignore[arg-type]
            dsn=os.getenv(f"{prefix}STORAGE_DSN"),
            echo_sql=os.getenv(f"{prefix}STORAGE_ECHO_SQL", "false").lower() in _TRUTHY,
        )
        ledger = LedgerConfig(
            storage_timeout_seconds=_optional_float(os.getenv(f"{prefix}STORAGE_TIMEOUT"), 10.0),
            lock_timeout_seconds=_optional_float(os.getenv(f"{prefix}LOCK_TIMEOUT"), 30.0),
            recent_events_limit=int(os.getenv(f"{prefix}RECENT_EVENTS_LIMIT", "15")),
        )
        return cls(
            bot_token=os.getenv(f"{prefix}BOT_TOKEN", ""),
            storage=storage,
            ledger=ledger,
            load_default_packs=os.getenv(f"{prefix}LOAD_DEFAULT_PACKS", "true").lower() in _TRUTHY,
            catalog_path=os.getenv(f"{prefix}CATALOG_PATH") or None,
            rng_seed=(
                int(os.getenv(f"{prefix}RNG_SEED")) if os.getenv(f"{prefix}RNG_SEED") else None
            ),
        )


def _optional_float(raw: str | None, default: float | None) -> float | None:
    """Parse a timeout; ``0``, ``none`` or ``off`` disable it."""
    if raw is None or not raw.strip():
        return default
    if raw.strip().lower() in {"none", "off"}:
        return None
    try:
        value = float(raw)
    except ValueError as exc:
        raise ValueError(f"Invalid timeout value {raw!r}") from exc
    return value if value > 0 else None
