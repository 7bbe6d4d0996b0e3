"""Top level application object for cardledger."""

from __future__ import annotations

import logging
from random import Random
from typing import Any

from .config import CardLedgerConfig
from .domain.cards import CatalogProvider
from .domain.clock import Clock, SystemClock
from .domain.draw import RarityDrawEngine
from .domain.events import EventBus
from .domain.ledger import LedgerService
from .domain.locks import UserLockRegistry
from .domain.packs import DEFAULT_PACKS
from .domain.starter import StarterService
from .domain.store import StoreService
from .registry import CatalogRegistry
from .storage.base import PersistenceProvider
from .storage.memory import InMemoryPersistence
from .storage.sqlalchemy import AsyncSQLAlchemyStorage

logger = logging.getLogger(__name__)


class LedgerApp:
    """Central dependency container used by transports and tooling."""

    def __init__(
        self,
        config: CardLedgerConfig,
        *,
        persistence: PersistenceProvider | None = None,
        catalog_provider: CatalogProvider | None = None,
        clock: Clock | None = None,
        event_bus: EventBus | None = None,
        rng: Random | None = None,
    ) -> None:
        self.config = config
        self.event_bus = event_bus or EventBus()
        self.clock = clock or SystemClock()
        self.catalog = CatalogRegistry()
        if config.load_default_packs:
            self.catalog.extend(packs=DEFAULT_PACKS)

        self._rng = rng or (Random(config.rng_seed) if config.rng_seed is not None else Random())
        self._sqlalchemy_storage: AsyncSQLAlchemyStorage | None = None
        self.persistence = persistence or self._wire_storage()

        self.locks = UserLockRegistry()
        self.ledger = LedgerService(
            self.persistence,
            locks=self.locks,
            clock=self.clock,
            event_bus=self.event_bus,
            storage_timeout=config.ledger.storage_timeout_seconds,
            lock_timeout=config.ledger.lock_timeout_seconds,
            recent_events_limit=config.ledger.recent_events_limit,
        )
        self.draw_engine = RarityDrawEngine(self._rng)
        self.store = StoreService(
            self.ledger,
            self.catalog.packs,
            catalog_provider or self.catalog.cards,
            engine=self.draw_engine,
        )
        self.starter = StarterService(self.ledger, self.catalog.cards, rng=self._rng)

        if config.catalog_path:
            from .loaders.json_loader import load_catalog_from_json

            load_catalog_from_json(self, config.catalog_path)

    def _wire_storage(self) -> PersistenceProvider:
        backend = self.config.storage.backend
        if backend == "memory":
            return InMemoryPersistence()
        if backend == "sqlalchemy":
            dsn = self.config.storage.resolve_dsn()
            if not dsn:
                raise ValueError("SQLAlchemy backend requires a DSN")
            storage = AsyncSQLAlchemyStorage(dsn, echo=self.config.storage.echo_sql)
            self._sqlalchemy_storage = storage
            return storage
        raise ValueError(f"Unsupported storage backend {backend}")

    def snapshot(self) -> dict[str, Any]:
        """Export current configuration for debugging."""
        return {
            "storage": self.config.storage.backend,
            "cards": [
                f"{card.card_type.value}:{card.card_id}" for card in self.catalog.cards.iter_cards()
            ],
            "packs": [pack.pack_id for pack in self.catalog.packs.iter_packs()],
            "storage_timeout_seconds": self.config.ledger.storage_timeout_seconds,
            "lock_timeout_seconds": self.config.ledger.lock_timeout_seconds,
        }

    async def init_backend(self) -> None:
        """Initialize storage backend resources (e.g., database tables)."""
        if self._sqlalchemy_storage:
            await self._sqlalchemy_storage.init_models()
            logger.info("SQLAlchemy ledger tables ready")

    async def shutdown(self) -> None:
        if self._sqlalchemy_storage:
            await self._sqlalchemy_storage.dispose()
