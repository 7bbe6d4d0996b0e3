"""SQLAlchemy storage backend for cardledger."""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncIterator, Sequence
from uuid import uuid4

from sqlalchemy import JSON, DateTime, Index, Integer, String, UniqueConstraint, delete, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from ..domain.clock import ensure_utc
from .base import (
    CardRecord,
    LedgerEventRecord,
    LedgerSession,
    PersistenceProvider,
    ProgressionRecord,
    WalletRecord,
)


class Base(DeclarativeBase):
    pass


class WalletTable(Base):
    __tablename__ = "cardledger_wallets"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(64), unique=True)
    coins: Mapped[int] = mapped_column(Integer, default=0)
    diamonds: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))


class ProgressionTable(Base):
    __tablename__ = "cardledger_progression"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(64), unique=True)
    xp_total: Mapped[int] = mapped_column(Integer, default=0)
    level: Mapped[int] = mapped_column(Integer, default=1)
    xp_current_level: Mapped[int] = mapped_column(Integer, default=0)
    xp_next_level: Mapped[int] = mapped_column(Integer, default=100)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))


class UserCardTable(Base):
    __tablename__ = "cardledger_user_cards"
    __table_args__ = (UniqueConstraint("user_id", "card_type", "card_id"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(64), index=True)
    card_type: Mapped[str] = mapped_column(String(32))
    card_id: Mapped[str] = mapped_column(String(128))
    rarity: Mapped[str] = mapped_column(String(32))
    quantity: Mapped[int] = mapped_column(Integer, default=1)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))


class LedgerEventTable(Base):
    __tablename__ = "cardledger_events"
    __table_args__ = (
        Index("ix_cardledger_events_user_source", "user_id", "source"),
        Index("ix_cardledger_events_user_created", "user_id", "created_at"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(64))
    source: Mapped[str] = mapped_column(String(64))
    xp_delta: Mapped[int] = mapped_column(Integer, default=0)
    coins_delta: Mapped[int] = mapped_column(Integer, default=0)
    diamonds_delta: Mapped[int] = mapped_column(Integer, default=0)
    card_type: Mapped[str | None] = mapped_column(String(32), nullable=True)
    card_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    card_rarity: Mapped[str | None] = mapped_column(String(32), nullable=True)
    quantity: Mapped[int] = mapped_column(Integer, default=1)
    reference_id: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    payload: Mapped[dict] = mapped_column("metadata", JSON, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))


def _utc(value: datetime | None) -> datetime | None:
    return ensure_utc(value) if value is not None else None


def _event_from_row(row: LedgerEventTable) -> LedgerEventRecord:
    return LedgerEventRecord(
        id=row.id,
        user_id=row.user_id,
        source=row.source,
        created_at=ensure_utc(row.created_at),
        xp_delta=row.xp_delta,
        coins_delta=row.coins_delta,
        diamonds_delta=row.diamonds_delta,
        card_type=row.card_type,
        card_id=row.card_id,
        card_rarity=row.card_rarity,
        quantity=row.quantity,
        reference_id=row.reference_id,
        metadata=dict(row.payload or {}),
    )


class AsyncSQLAlchemySession(LedgerSession):
    """Ledger operations over one open ``AsyncSession`` transaction."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def _wallet_row(self, user_id: str) -> WalletTable | None:
        stmt = select(WalletTable).where(WalletTable.user_id == user_id).with_for_update()
        return (await self._session.execute(stmt)).scalar_one_or_none()

    async def _progression_row(self, user_id: str) -> ProgressionTable | None:
        stmt = (
            select(ProgressionTable)
            .where(ProgressionTable.user_id == user_id)
            .with_for_update()
        )
        return (await self._session.execute(stmt)).scalar_one_or_none()

    async def _card_row(self, user_id: str, card_type: str, card_id: str) -> UserCardTable | None:
        stmt = (
            select(UserCardTable)
            .where(
                UserCardTable.user_id == user_id,
                UserCardTable.card_type == card_type,
                UserCardTable.card_id == card_id,
            )
            .with_for_update()
        )
        return (await self._session.execute(stmt)).scalar_one_or_none()

    async def get_or_create_wallet(self, user_id: str, now: datetime) -> WalletRecord:
        row = await self._wallet_row(user_id)
        if row is None:
            row = WalletTable(
                id=str(uuid4()), user_id=user_id, coins=0, diamonds=0, created_at=now, updated_at=now
            )
            self._session.add(row)
            await self._session.flush()
        return WalletRecord(
            id=row.id,
            user_id=row.user_id,
            coins=row.coins,
            diamonds=row.diamonds,
            created_at=_utc(row.created_at),
            updated_at=_utc(row.updated_at),
        )

    async def save_wallet(self, record: WalletRecord) -> None:
        row = await self._wallet_row(record.user_id)
        if row is None:
            row = WalletTable(id=record.id, user_id=record.user_id, created_at=record.created_at)
            self._session.add(row)
        row.coins = record.coins
        row.diamonds = record.diamonds
        row.updated_at = record.updated_at
        await self._session.flush()

    async def get_or_create_progression(self, user_id: str, now: datetime) -> ProgressionRecord:
        row = await self._progression_row(user_id)
        if row is None:
            row = ProgressionTable(
                id=str(uuid4()),
                user_id=user_id,
                xp_total=0,
                level=1,
                xp_current_level=0,
                xp_next_level=100,
                created_at=now,
                updated_at=now,
            )
            self._session.add(row)
            await self._session.flush()
        return ProgressionRecord(
            id=row.id,
            user_id=row.user_id,
            xp_total=row.xp_total,
            level=row.level,
            xp_current_level=row.xp_current_level,
            xp_next_level=row.xp_next_level,
            created_at=_utc(row.created_at),
            updated_at=_utc(row.updated_at),
        )

    async def save_progression(self, record: ProgressionRecord) -> None:
        row = await self._progression_row(record.user_id)
        if row is None:
            row = ProgressionTable(id=record.id, user_id=record.user_id, created_at=record.created_at)
            self._session.add(row)
        row.xp_total = record.xp_total
        row.level = record.level
        row.xp_current_level = record.xp_current_level
        row.xp_next_level = record.xp_next_level
        row.updated_at = record.updated_at
        await self._session.flush()

    async def get_card(self, user_id: str, card_type: str, card_id: str) -> CardRecord | None:
        row = await self._card_row(user_id, card_type, card_id)
        if row is None:
            return None
        return CardRecord(
            user_id=row.user_id,
            card_type=row.card_type,
            card_id=row.card_id,
            rarity=row.rarity,
            quantity=row.quantity,
            created_at=_utc(row.created_at),
            updated_at=_utc(row.updated_at),
        )

    async def list_cards(self, user_id: str) -> Sequence[CardRecord]:
        stmt = (
            select(UserCardTable)
            .where(UserCardTable.user_id == user_id)
            .order_by(UserCardTable.card_type, UserCardTable.card_id)
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        return [
            CardRecord(
                user_id=row.user_id,
                card_type=row.card_type,
                card_id=row.card_id,
                rarity=row.rarity,
                quantity=row.quantity,
                created_at=_utc(row.created_at),
                updated_at=_utc(row.updated_at),
            )
            for row in rows
        ]

    async def save_card(self, record: CardRecord) -> None:
        row = await self._card_row(record.user_id, record.card_type, record.card_id)
        if row is None:
            row = UserCardTable(
                id=str(uuid4()),
                user_id=record.user_id,
                card_type=record.card_type,
                card_id=record.card_id,
                created_at=record.created_at or record.updated_at,
            )
            self._session.add(row)
        row.rarity = record.rarity
        row.quantity = record.quantity
        row.updated_at = record.updated_at or row.created_at
        await self._session.flush()

    async def delete_card(self, user_id: str, card_type: str, card_id: str) -> None:
        stmt = delete(UserCardTable).where(
            UserCardTable.user_id == user_id,
            UserCardTable.card_type == card_type,
            UserCardTable.card_id == card_id,
        )
        await self._session.execute(stmt)

    async def append_event(self, event: LedgerEventRecord) -> None:
        self._session.add(
            LedgerEventTable(
                id=event.id,
                user_id=event.user_id,
                source=event.source,
                xp_delta=event.xp_delta,
                coins_delta=event.coins_delta,
                diamonds_delta=event.diamonds_delta,
                card_type=event.card_type,
                card_id=event.card_id,
                card_rarity=event.card_rarity,
                quantity=event.quantity,
                reference_id=event.reference_id,
                payload=dict(event.metadata),
                created_at=event.created_at,
            )
        )
        await self._session.flush()

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
        stmt = select(LedgerEventTable).where(LedgerEventTable.user_id == user_id)
        if source is not None:
            stmt = stmt.where(LedgerEventTable.source == source)
        if reference_id is not None:
            stmt = stmt.where(LedgerEventTable.reference_id == reference_id)
        if reference_prefix is not None:
            stmt = stmt.where(LedgerEventTable.reference_id.startswith(reference_prefix, autoescape=True))
        if since is not None:
            stmt = stmt.where(LedgerEventTable.created_at >= since)
        if until is not None:
            stmt = stmt.where(LedgerEventTable.created_at < until)
        stmt = stmt.order_by(LedgerEventTable.created_at.desc())
        if limit is not None:
            stmt = stmt.limit(limit)
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_event_from_row(row) for row in rows]


class AsyncSQLAlchemyStorage(PersistenceProvider):
    """Ledger persistence backed by an async SQLAlchemy engine."""

    def __init__(self, dsn: str, *, echo: bool = False, **engine_options: Any) -> None:
        self._engine = create_async_engine(dsn, echo=echo, **engine_options)
        self._session_factory = async_sessionmaker(self._engine, expire_on_commit=False)

    async def init_models(self) -> None:
        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def dispose(self) -> None:
        await self._engine.dispose()

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[AsyncSQLAlchemySession]:
        async with self._session_factory() as session:
            async with session.begin():
                yield AsyncSQLAlchemySession(session)
