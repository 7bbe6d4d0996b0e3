"""In-memory storage backend for cardledger."""

from __future__ import annotations

from contextlib import asynccontextmanager
from dataclasses import replace
from datetime import datetime
from typing import AsyncIterator, Sequence
from uuid import uuid4

from .base import (
    CardRecord,
    LedgerEventRecord,
    LedgerSession,
    PersistenceProvider,
    ProgressionRecord,
    WalletRecord,
)

_DELETED = object()


class InMemorySession(LedgerSession):
    """Stages every write and applies them together on commit."""

    def __init__(self, store: "InMemoryPersistence") -> None:
        self._store = store
        self._wallets: dict[str, WalletRecord] = {}
        self._progressions: dict[str, ProgressionRecord] = {}
        self._cards: dict[tuple[str, str, str], object] = {}
        self._events: list[LedgerEventRecord] = []

    async def get_or_create_wallet(self, user_id: str, now: datetime) -> WalletRecord:
        record = self._wallets.get(user_id) or self._store._wallets.get(user_id)
        if record is None:
            record = WalletRecord(id=str(uuid4()), user_id=user_id, created_at=now, updated_at=now)
            self._wallets[user_id] = record
        return replace(record)

    async def save_wallet(self, record: WalletRecord) -> None:
        self._wallets[record.user_id] = replace(record)

    async def get_or_create_progression(self, user_id: str, now: datetime) -> ProgressionRecord:
        record = self._progressions.get(user_id) or self._store._progressions.get(user_id)
        if record is None:
            record = ProgressionRecord(
                id=str(uuid4()), user_id=user_id, created_at=now, updated_at=now
            )
            self._progressions[user_id] = record
        return replace(record)

    async def save_progression(self, record: ProgressionRecord) -> None:
        self._progressions[record.user_id] = replace(record)

    async def get_card(self, user_id: str, card_type: str, card_id: str) -> CardRecord | None:
        key = (user_id, card_type, card_id)
        staged = self._cards.get(key)
        if staged is _DELETED:
            return None
        record = staged or self._store._cards.get(key)
        return replace(record) if record else None

    async def list_cards(self, user_id: str) -> Sequence[CardRecord]:
        merged: dict[tuple[str, str, str], object] = {
            key: record for key, record in self._store._cards.items() if key[0] == user_id
        }
        merged.update({key: record for key, record in self._cards.items() if key[0] == user_id})
        return [replace(record) for record in merged.values() if record is not _DELETED]

    async def save_card(self, record: CardRecord) -> None:
        self._cards[record.key] = replace(record)

    async def delete_card(self, user_id: str, card_type: str, card_id: str) -> None:
        self._cards[(user_id, card_type, card_id)] = _DELETED

    async def append_event(self, event: LedgerEventRecord) -> None:
        self._events.append(event)

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
        ordered = list(enumerate([*self._store._events, *self._events]))
        matches = [
            (position, event)
            for position, event in ordered
            if event.user_id == user_id
            and (source is None or event.source == source)
            and (reference_id is None or event.reference_id == reference_id)
            and (
                reference_prefix is None
                or (event.reference_id or "").startswith(reference_prefix)
            )
            and (since is None or event.created_at >= since)
            and (until is None or event.created_at < until)
        ]
        # Newest first; append order breaks timestamp ties.
        matches.sort(key=lambda item: (item[1].created_at, item[0]), reverse=True)
        events = [event for _, event in matches]
        return events[:limit] if limit is not None else events

    def commit(self) -> None:
        self._store._wallets.update(self._wallets)
        self._store._progressions.update(self._progressions)
        for key, record in self._cards.items():
            if record is _DELETED:
                self._store._cards.pop(key, None)
            else:
                self._store._cards[key] = record
        self._store._events.extend(self._events)


class InMemoryPersistence(PersistenceProvider):
    session_class: type[InMemorySession] = InMemorySession

    def __init__(self) -> None:
        self._wallets: dict[str, WalletRecord] = {}
        self._progressions: dict[str, ProgressionRecord] = {}
        self._cards: dict[tuple[str, str, str], CardRecord] = {}
        self._events: list[LedgerEventRecord] = []

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[InMemorySession]:
        session = self.session_class(self)
        yield session
        session.commit()

    def dump_events(self) -> list[LedgerEventRecord]:
        return list(self._events)
