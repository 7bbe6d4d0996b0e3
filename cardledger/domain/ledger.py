"""Progression, wallet and inventory ledger."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, AsyncIterator, Awaitable, Callable, Iterable, Mapping, Sequence, TypeVar
from uuid import uuid4

from ..storage.base import (
    CardRecord,
    LedgerEventRecord,
    LedgerSession,
    PersistenceProvider,
    ProgressionRecord,
)
from .cards import CardKey, CardType, Rarity
from .clock import Clock, SystemClock, ensure_utc
from .economy import WalletBalance
from .events import DAILY_LOGIN_GRANTED, LEVEL_UP, EventBus
from .exceptions import CardNotFoundInInventoryError, InvalidQuantityError, StorageTimeoutError
from .limits import utc_day_window
from .locks import UserLockRegistry
from .progression import ProgressionState
from .rewards import (
    BATTLE_VICTORY_XP,
    DAILY_LOGIN_COINS,
    DAILY_LOGIN_XP,
    XP_BY_RARITY,
    SELL_VALUE_BY_RARITY,
    award_xp,
    sell_value,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class EventSource(str, Enum):
    BATTLE_VICTORY = "battle_victory"
    DAILY_LOGIN = "daily_login"
    CARD_AWARDED = "card_awarded"
    CARD_DISCARDED = "card_discarded"
    STARTER_PACK_OPENED = "starter_pack_opened"
    SHOP_PACK_PURCHASE = "shop_pack_purchase"
    SHOP_PURCHASE_REFUND = "shop_purchase_refund"
    OPERATOR_CREDIT = "operator_credit"


@dataclass(slots=True, frozen=True)
class ProgressionChange:
    source: EventSource
    xp_delta: int = 0
    coins_delta: int = 0
    diamonds_delta: int = 0
    card_type: CardType | None = None
    card_id: str | None = None
    card_rarity: Rarity | None = None
    quantity: int = 1
    reference_id: str | None = None
    metadata: Mapping[str, Any] = field(default_factory=dict)


@dataclass(slots=True, frozen=True)
class LedgerResult:
    progression: ProgressionState
    wallet: WalletBalance
    event: LedgerEventRecord
    previous_level: int = 1

    @property
    def leveled_up(self) -> bool:
        return self.progression.level > self.previous_level


@dataclass(slots=True, frozen=True)
class CardAward:
    card_type: CardType
    card_id: str
    rarity: Rarity
    quantity: int = 1

    @property
    def key(self) -> CardKey:
        return (self.card_type, self.card_id)


@dataclass(slots=True, frozen=True)
class AwardResult:
    progression: ProgressionState
    wallet: WalletBalance
    events: tuple[LedgerEventRecord, ...]
    previous_level: int = 1


@dataclass(slots=True, frozen=True)
class DiscardResult:
    sold_count: int
    coins_earned: int
    progression: ProgressionState
    wallet: WalletBalance
    events: tuple[LedgerEventRecord, ...] = ()


@dataclass(slots=True, frozen=True)
class DailyLoginResult:
    granted: bool
    progression: ProgressionState
    wallet: WalletBalance


@dataclass(slots=True, frozen=True)
class InventoryItem:
    card_type: CardType
    card_id: str
    rarity: Rarity
    quantity: int


@dataclass(slots=True, frozen=True)
class ProgressionOverview:
    progression: ProgressionState
    wallet: WalletBalance
    inventory: tuple[InventoryItem, ...]
    recent_events: tuple[LedgerEventRecord, ...]


def _state_from_record(record: ProgressionRecord) -> ProgressionState:
    return ProgressionState(
        user_id=record.user_id,
        xp_total=record.xp_total,
        level=record.level,
        xp_current_level=record.xp_current_level,
        xp_next_level=record.xp_next_level,
    )


async def load_state(
    session: LedgerSession, user_id: str, now: datetime
) -> tuple[ProgressionState, WalletBalance]:
    progression = await session.get_or_create_progression(user_id, now)
    wallet = await session.get_or_create_wallet(user_id, now)
    return _state_from_record(progression), WalletBalance(wallet.coins, wallet.diamonds)


async def apply_change(
    session: LedgerSession, user_id: str, change: ProgressionChange, now: datetime
) -> LedgerResult:
    """Fold one event onto progression and wallet and append it, in ``session``.

    Raises :class:`InsufficientFundsError` before writing anything when the
    wallet would go negative.
    """
    progression_row = await session.get_or_create_progression(user_id, now)
    wallet_row = await session.get_or_create_wallet(user_id, now)

    before = _state_from_record(progression_row)
    after = before.gain(change.xp_delta)
    balance = WalletBalance(wallet_row.coins, wallet_row.diamonds).apply(
        change.coins_delta, change.diamonds_delta
    )

    progression_row.xp_total = after.xp_total
    progression_row.level = after.level
    progression_row.xp_current_level = after.xp_current_level
    progression_row.xp_next_level = after.xp_next_level
    progression_row.updated_at = now
    wallet_row.coins = balance.coins
    wallet_row.diamonds = balance.diamonds
    wallet_row.updated_at = now

    event = LedgerEventRecord(
        id=str(uuid4()),
        user_id=user_id,
        source=change.source.value,
        created_at=now,
        xp_delta=max(0, change.xp_delta),
        coins_delta=change.coins_delta,
        diamonds_delta=change.diamonds_delta,
        card_type=change.card_type.value if change.card_type else None,
        card_id=change.card_id,
        card_rarity=change.card_rarity.value if change.card_rarity else None,
        quantity=max(1, change.quantity),
        reference_id=change.reference_id,
        metadata=dict(change.metadata),
    )

    await session.save_progression(progression_row)
    await session.save_wallet(wallet_row)
    await session.append_event(event)
    return LedgerResult(progression=after, wallet=balance, event=event, previous_level=before.level)


async def award_cards_in_session(
    session: LedgerSession,
    user_id: str,
    awards: Sequence[CardAward],
    reference_id: str | None,
    now: datetime,
) -> AwardResult:
    """Upsert each award and append its ``card_awarded`` event in ``session``."""
    progression, wallet = await load_state(session, user_id, now)
    previous_level = progression.level
    events: list[LedgerEventRecord] = []
    for award in awards:
        record = await session.get_card(user_id, award.card_type.value, award.card_id)
        if record is None:
            record = CardRecord(
                user_id=user_id,
                card_type=award.card_type.value,
                card_id=award.card_id,
                rarity=award.rarity.value,
                quantity=0,
                created_at=now,
            )
        record.quantity += award.quantity
        record.rarity = award.rarity.value
        record.updated_at = now
        await session.save_card(record)

        result = await apply_change(
            session,
            user_id,
            ProgressionChange(
                source=EventSource.CARD_AWARDED,
                xp_delta=award_xp(award.rarity, award.quantity),
                card_type=award.card_type,
                card_id=award.card_id,
                card_rarity=award.rarity,
                quantity=award.quantity,
                reference_id=reference_id,
                metadata={
                    "rule": EventSource.CARD_AWARDED.value,
                    "rarity_xp": XP_BY_RARITY[award.rarity],
                    "total_xp": award_xp(award.rarity, award.quantity),
                },
            ),
            now,
        )
        progression, wallet = result.progression, result.wallet
        events.append(result.event)
    return AwardResult(
        progression=progression,
        wallet=wallet,
        events=tuple(events),
        previous_level=previous_level,
    )


class UserLedger:
    """Ledger operations for one user whose lock is already held.

    Obtained from :meth:`LedgerService.exclusive`; each method runs in its own
    storage transaction.
    """

    def __init__(self, service: "LedgerService", user_id: str) -> None:
        self._service = service
        self.user_id = user_id

    def now(self) -> datetime:
        return ensure_utc(self._service.clock.now())

    async def transact(self, operation: Callable[[LedgerSession], Awaitable[T]]) -> T:
        return await self._service.transact(operation)

    async def wallet(self) -> WalletBalance:
        now = self.now()

        async def read(session: LedgerSession) -> WalletBalance:
            return (await load_state(session, self.user_id, now))[1]

        return await self.transact(read)

    async def progression(self) -> ProgressionState:
        now = self.now()

        async def read(session: LedgerSession) -> ProgressionState:
            return (await load_state(session, self.user_id, now))[0]

        return await self.transact(read)

    async def inventory(self) -> list[InventoryItem]:
        async def read(session: LedgerSession) -> list[InventoryItem]:
            records = await session.list_cards(self.user_id)
            return [
                InventoryItem(
                    card_type=CardType(record.card_type),
                    card_id=record.card_id,
                    rarity=Rarity(record.rarity),
                    quantity=record.quantity,
                )
                for record in sorted(records, key=lambda r: (r.card_type, r.card_id))
            ]

        return await self.transact(read)

    async def owned_card_keys(self) -> frozenset[CardKey]:
        return frozenset((item.card_type, item.card_id) for item in await self.inventory())

    async def events(self, limit: int | None = None) -> list[LedgerEventRecord]:
        async def read(session: LedgerSession) -> list[LedgerEventRecord]:
            return list(await session.find_events(self.user_id, limit=limit))

        return await self.transact(read)

    async def apply(self, change: ProgressionChange) -> LedgerResult:
        now = self.now()

        async def write(session: LedgerSession) -> LedgerResult:
            return await apply_change(session, self.user_id, change, now)

        result = await self.transact(write)
        await self.announce_level(result.previous_level, result.progression)
        return result

    async def award_cards(
        self,
        awards: Iterable[CardAward],
        reference_id: str | None = None,
        *,
        announce: bool = True,
    ) -> AwardResult:
        """Upsert every award and its ``card_awarded`` event in one transaction.

        With ``announce=False`` the caller publishes the level change itself
        through :meth:`announce_level`.
        """
        awards = list(awards)
        for award in awards:
            if award.quantity < 1:
                raise InvalidQuantityError(f"Quantity must be positive, got {award.quantity}")
        now = self.now()

        async def write(session: LedgerSession) -> AwardResult:
            return await award_cards_in_session(session, self.user_id, awards, reference_id, now)

        result = await self.transact(write)
        if announce:
            await self.announce_level(result.previous_level, result.progression)
        return result

    async def discard_cards(self, items: Sequence[tuple[CardType, str, int]]) -> DiscardResult:
        """Remove cards and credit their sell value, all or nothing."""
        for _, _, quantity in items:
            if quantity < 1:
                raise InvalidQuantityError(f"Quantity must be positive, got {quantity}")
        now = self.now()

        async def write(session: LedgerSession) -> DiscardResult:
            progression, wallet = await load_state(session, self.user_id, now)
            sold = 0
            coins = 0
            events: list[LedgerEventRecord] = []
            for card_type, card_id, quantity in items:
                record = await session.get_card(self.user_id, card_type.value, card_id)
                if record is None:
                    raise CardNotFoundInInventoryError(card_type.value, card_id)
                if record.quantity < quantity:
                    raise InvalidQuantityError(
                        f"Cannot discard {quantity} of {card_type.value}:{card_id}, "
                        f"only {record.quantity} owned"
                    )
                rarity = Rarity(record.rarity)
                remaining = record.quantity - quantity
                if remaining == 0:
                    await session.delete_card(self.user_id, card_type.value, card_id)
                else:
                    record.quantity = remaining
                    record.updated_at = now
                    await session.save_card(record)

                earned = sell_value(rarity, quantity)
                result = await apply_change(
                    session,
                    self.user_id,
                    ProgressionChange(
                        source=EventSource.CARD_DISCARDED,
                        coins_delta=earned,
                        card_type=card_type,
                        card_id=card_id,
                        card_rarity=rarity,
                        quantity=quantity,
                        metadata={
                            "rule": EventSource.CARD_DISCARDED.value,
                            "coins_by_rarity": SELL_VALUE_BY_RARITY[rarity],
                            "total_coins": earned,
                        },
                    ),
                    now,
                )
                sold += quantity
                coins += earned
                progression, wallet = result.progression, result.wallet
                events.append(result.event)
            return DiscardResult(
                sold_count=sold,
                coins_earned=coins,
                progression=progression,
                wallet=wallet,
                events=tuple(events),
            )

        return await self.transact(write)

    async def daily_login(self, now: datetime | None = None) -> DailyLoginResult:
        now = ensure_utc(now) if now is not None else self.now()
        day = utc_day_window(now)
        day_key = day.start.date().isoformat()

        async def write(session: LedgerSession) -> tuple[DailyLoginResult, int]:
            existing = await session.find_events(
                self.user_id,
                source=EventSource.DAILY_LOGIN.value,
                since=day.start,
                until=day.end,
                limit=1,
            )
            if existing:
                progression, wallet = await load_state(session, self.user_id, now)
                return DailyLoginResult(False, progression, wallet), progression.level
            result = await apply_change(
                session,
                self.user_id,
                ProgressionChange(
                    source=EventSource.DAILY_LOGIN,
                    xp_delta=DAILY_LOGIN_XP,
                    coins_delta=DAILY_LOGIN_COINS,
                    reference_id=f"daily-login-{day_key}",
                    metadata={
                        "rule": EventSource.DAILY_LOGIN.value,
                        "xp": DAILY_LOGIN_XP,
                        "coins": DAILY_LOGIN_COINS,
                        "day_key": day_key,
                    },
                ),
                now,
            )
            return DailyLoginResult(True, result.progression, result.wallet), result.previous_level

        outcome, previous_level = await self.transact(write)
        if outcome.granted:
            logger.info("Daily login reward granted to user %s for %s", self.user_id, day_key)
            await self._service.event_bus.publish(
                DAILY_LOGIN_GRANTED,
                {"user_id": self.user_id, "day_key": day_key, "wallet": outcome.wallet.as_dict()},
            )
            await self.announce_level(previous_level, outcome.progression)
        return outcome

    async def announce_level(self, previous_level: int, progression: ProgressionState) -> None:
        if progression.level <= previous_level:
            return
        logger.info(
            "User %s reached level %s (xp_total=%s)",
            self.user_id,
            progression.level,
            progression.xp_total,
        )
        await self._service.event_bus.publish(
            LEVEL_UP,
            {
                "user_id": self.user_id,
                "previous_level": previous_level,
                "level": progression.level,
                "xp_total": progression.xp_total,
            },
        )


class LedgerService:
    """Serialized, transactional access to each user's ledger."""

    def __init__(
        self,
        persistence: PersistenceProvider,
        *,
        locks: UserLockRegistry | None = None,
        clock: Clock | None = None,
        event_bus: EventBus | None = None,
        storage_timeout: float | None = None,
        lock_timeout: float | None = None,
        recent_events_limit: int = 15,
    ) -> None:
        self.persistence = persistence
        self.locks = locks or UserLockRegistry()
        self.clock = clock or SystemClock()
        self.event_bus = event_bus or EventBus()
        self.storage_timeout = storage_timeout
        self.lock_timeout = lock_timeout
        self.recent_events_limit = recent_events_limit

    @asynccontextmanager
    async def exclusive(self, user_id: str) -> AsyncIterator[UserLedger]:
        async with self.locks.hold(user_id, timeout=self.lock_timeout):
            yield UserLedger(self, user_id)

    async def transact(self, operation: Callable[[LedgerSession], Awaitable[T]]) -> T:
        async def run() -> T:
            async with self.persistence.transaction() as session:
                return await operation(session)

        try:
            return await asyncio.wait_for(run(), self.storage_timeout)
        except asyncio.TimeoutError as exc:
            raise StorageTimeoutError(
                f"Storage transaction exceeded {self.storage_timeout}s"
            ) from exc

    async def apply_progression_event(self, user_id: str, change: ProgressionChange) -> LedgerResult:
        async with self.exclusive(user_id) as ledger:
            return await ledger.apply(change)

    async def register_card_award(
        self,
        user_id: str,
        card_type: CardType,
        card_id: str,
        rarity: Rarity,
        quantity: int = 1,
        reference_id: str | None = None,
    ) -> AwardResult:
        async with self.exclusive(user_id) as ledger:
            return await ledger.award_cards(
                [CardAward(card_type, card_id, rarity, quantity)], reference_id=reference_id
            )

    async def discard_user_card(
        self, user_id: str, card_type: CardType, card_id: str, quantity: int = 1
    ) -> DiscardResult:
        async with self.exclusive(user_id) as ledger:
            return await ledger.discard_cards([(card_type, card_id, quantity)])

    async def register_daily_login_reward(
        self, user_id: str, now: datetime | None = None
    ) -> DailyLoginResult:
        async with self.exclusive(user_id) as ledger:
            return await ledger.daily_login(now)

    async def register_battle_victory(
        self, user_id: str, reference_id: str | None = None
    ) -> LedgerResult:
        change = ProgressionChange(
            source=EventSource.BATTLE_VICTORY,
            xp_delta=BATTLE_VICTORY_XP,
            reference_id=reference_id,
            metadata={"rule": EventSource.BATTLE_VICTORY.value, "xp": BATTLE_VICTORY_XP},
        )
        return await self.apply_progression_event(user_id, change)

    async def credit_wallet(
        self,
        user_id: str,
        coins: int = 0,
        diamonds: int = 0,
        *,
        reference_id: str | None = None,
        reason: str = "operator",
    ) -> WalletBalance:
        """Operator top-up, recorded as an ``operator_credit`` event."""
        coins, diamonds = max(0, int(coins)), max(0, int(diamonds))
        if not coins and not diamonds:
            raise InvalidQuantityError("Credit needs a positive amount of coins or diamonds")

        change = ProgressionChange(
            source=EventSource.OPERATOR_CREDIT,
            coins_delta=coins,
            diamonds_delta=diamonds,
            reference_id=reference_id,
            metadata={"rule": EventSource.OPERATOR_CREDIT.value, "reason": reason},
        )
        async with self.exclusive(user_id) as ledger:
            balance = (await ledger.apply(change)).wallet
        logger.info("Credited %s coins and %s diamonds to user %s", coins, diamonds, user_id)
        return balance

    async def wallet(self, user_id: str) -> WalletBalance:
        async with self.exclusive(user_id) as ledger:
            return await ledger.wallet()

    async def progression(self, user_id: str) -> ProgressionState:
        async with self.exclusive(user_id) as ledger:
            return await ledger.progression()

    async def inventory(self, user_id: str) -> list[InventoryItem]:
        async with self.exclusive(user_id) as ledger:
            return await ledger.inventory()

    async def recent_events(self, user_id: str, limit: int | None = None) -> list[LedgerEventRecord]:
        async with self.exclusive(user_id) as ledger:
            return await ledger.events(limit or self.recent_events_limit)

    async def overview(self, user_id: str) -> ProgressionOverview:
        async with self.exclusive(user_id) as ledger:
            progression = await ledger.progression()
            wallet = await ledger.wallet()
            inventory = await ledger.inventory()
            events = await ledger.events(self.recent_events_limit)
        return ProgressionOverview(
            progression=progression,
            wallet=wallet,
            inventory=tuple(inventory),
            recent_events=tuple(events),
        )
