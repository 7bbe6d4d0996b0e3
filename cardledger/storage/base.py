"""Storage abstractions used by the ledger services."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, AsyncContextManager, Protocol, Sequence


@dataclass(slots=True)
class WalletRecord:
    id: str
    user_id: str
    coins: int = 0
    diamonds: int = 0
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass(slots=True)
class ProgressionRecord:
    id: str
    user_id: str
    xp_total: int = 0
    level: int = 1
    xp_current_level: int = 0
    xp_next_level: int = 100
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass(slots=True)
class CardRecord:
    user_id: str
    card_type: str
    card_id: str
    rarity: str
    quantity: int
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def key(self) -> tuple[str, str, str]:
        return (self.user_id, self.card_type, self.card_id)


@dataclass(slots=True, frozen=True)
class LedgerEventRecord:
    id: str
    user_id: str
    source: str
    created_at: datetime
    xp_delta: int = 0
    coins_delta: int = 0
    diamonds_delta: int = 0
    card_type: str | None = None
    card_id: str | None = None
    card_rarity: str | None = None
    quantity: int = 1
    reference_id: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


class LedgerSession(Protocol):
    """Operations available inside one storage transaction."""

    async def get_or_create_wallet(self, user_id: str, now: datetime) -> WalletRecord:
        ...

    async def save_wallet(self, record: WalletRecord) -> None:
        ...

    async def get_or_create_progression(self, user_id: str, now: datetime) -> ProgressionRecord:
        ...

    async def save_progression(self, record: ProgressionRecord) -> None:
        ...

    async def get_card(self, user_id: str, card_type: str, card_id: str) -> CardRecord | None:
        ...

    async def list_cards(self, user_id: str) -> Sequence[CardRecord]:
        ...

    async def save_card(self, record: CardRecord) -> None:
        ...

    async def delete_card(self, user_id: str, card_type: str, card_id: str) -> None:
        ...

    async def append_event(self, event: LedgerEventRecord) -> None:
        ...

    async def find_events(
        self,
        user_id: str,
        *,
        source: str | None = None,
        reference_id: str | None = None,
        reference_prefix: str | None = None,
        since: datetime | None = None,
        until: datetime | None = None,
        limit: int | None = None,
    ) -> Sequence[LedgerEventRecord]:
        """Events newest first; ``since`` is inclusive, ``until`` exclusive."""
        ...


class PersistenceProvider(Protocol):
    def transaction(self) -> AsyncContextManager[LedgerSession]:
        """Commit on clean exit, roll back on exception."""
        ...
