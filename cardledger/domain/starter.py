"""One-time starter reward: three themed packs for a chosen tribe."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from random import Random
from typing import Sequence

from ..storage.base import LedgerSession
from .cards import CardCatalog, CardType, PoolCard, to_pool_card
from .economy import WalletBalance
from .events import STARTER_GRANTED
from .exceptions import EmptyPoolError, InvalidStarterTribeError, StarterAlreadyGrantedError
from .ledger import (
    CardAward,
    EventSource,
    LedgerService,
    ProgressionChange,
    apply_change,
    award_cards_in_session,
)
from .progression import ProgressionState
from .rewards import STARTER_PACK_OPEN_XP

logger = logging.getLogger(__name__)

STARTER_TRIBES: tuple[str, ...] = ("overworld", "underworld", "mipedian", "danian")

CREATURES_PACK = "starter_tribe_creatures"
SUPPORT_PACK = "starter_mugic_battlegear"
TACTICAL_PACK = "starter_locations_attacks"

CREATURES_COUNT = 10
SUPPORT_COUNT = 5
TACTICAL_COUNT = 10
MAX_STARTER_LOCATIONS = 3


@dataclass(slots=True, frozen=True)
class StarterPack:
    pack_id: str
    cards: tuple[PoolCard, ...]

    @property
    def reference_id(self) -> str:
        return f"starter-pack:{self.pack_id}"


@dataclass(slots=True, frozen=True)
class StarterStatus:
    requires_choice: bool
    selected_tribe: str | None
    allowed_tribes: tuple[str, ...] = STARTER_TRIBES


@dataclass(slots=True, frozen=True)
class StarterResult:
    tribe: str
    packs: tuple[StarterPack, ...]
    progression: ProgressionState
    wallet: WalletBalance


def draw_without_repeats(rng: Random, pool: Sequence[PoolCard], count: int) -> list[PoolCard]:
    """Pick ``count`` cards, repeating only once every card has been used."""
    if count <= 0:
        return []
    if not pool:
        raise EmptyPoolError("Not enough cards to assemble the starter packs")
    order = list(pool)
    rng.shuffle(order)
    picked = order[:count]
    while len(picked) < count:
        picked.append(rng.choice(order))
    return picked


def starter_awards(packs: Sequence[StarterPack]) -> list[CardAward]:
    quantities: dict[tuple[CardType, str], CardAward] = {}
    for pack in packs:
        for card in pack.cards:
            current = quantities.get(card.key)
            quantity = current.quantity + 1 if current else 1
            quantities[card.key] = CardAward(card.card_type, card.card_id, card.rarity, quantity)
    return list(quantities.values())


class StarterService:
    """Grant the starter packs once per user, in a single ledger transaction."""

    def __init__(
        self,
        ledger: LedgerService,
        catalog: CardCatalog,
        *,
        rng: Random | None = None,
        tribes: Sequence[str] = STARTER_TRIBES,
    ) -> None:
        self._ledger = ledger
        self._catalog = catalog
        self._rng = rng or Random()
        self.tribes = tuple(tribes)

    async def status(self, user_id: str) -> StarterStatus:
        async with self._ledger.exclusive(user_id) as ledger:
            granted_tribe, _, granted = await ledger.transact(
                lambda session: self._lookup(session, user_id)
            )
        return StarterStatus(
            requires_choice=not granted,
            selected_tribe=granted_tribe,
            allowed_tribes=self.tribes,
        )

    async def choose_tribe(self, user_id: str, tribe: str) -> StarterResult:
        tribe = tribe.strip().lower()
        if tribe not in self.tribes:
            raise InvalidStarterTribeError(tribe, self.tribes)
        packs = self.build_packs(tribe)
        awards = starter_awards(packs)

        async with self._ledger.exclusive(user_id) as ledger:
            now = ledger.now()

            async def write(session: LedgerSession) -> tuple[ProgressionState, WalletBalance, int]:
                granted_tribe, has_cards, granted = await self._lookup(session, user_id)
                if granted or has_cards:
                    raise StarterAlreadyGrantedError(user_id, granted_tribe)
                previous_level: int | None = None
                for pack in packs:
                    opened = await apply_change(
                        session,
                        user_id,
                        ProgressionChange(
                            source=EventSource.STARTER_PACK_OPENED,
                            xp_delta=STARTER_PACK_OPEN_XP,
                            reference_id=pack.reference_id,
                            metadata={
                                "rule": EventSource.STARTER_PACK_OPENED.value,
                                "pack_id": pack.pack_id,
                                "xp": STARTER_PACK_OPEN_XP,
                                "cards_count": len(pack.cards),
                                "tribe": tribe,
                            },
                        ),
                        now,
                    )
                    if previous_level is None:
                        previous_level = opened.previous_level
                awarded = await award_cards_in_session(
                    session, user_id, awards, f"starter-tribe:{tribe}", now
                )
                return awarded.progression, awarded.wallet, previous_level or 1

            progression, wallet, previous_level = await ledger.transact(write)

        logger.info("User %s chose starter tribe %s", user_id, tribe)
        await ledger.announce_level(previous_level, progression)
        await self._ledger.event_bus.publish(
            STARTER_GRANTED,
            {
                "user_id": user_id,
                "tribe": tribe,
                "packs": {pack.pack_id: len(pack.cards) for pack in packs},
            },
        )
        return StarterResult(tribe=tribe, packs=packs, progression=progression, wallet=wallet)

    def build_packs(self, tribe: str) -> tuple[StarterPack, ...]:
        creatures: list[PoolCard] = []
        support: list[PoolCard] = []
        locations: list[PoolCard] = []
        attacks: list[PoolCard] = []
        for card in self._catalog.iter_cards():
            if card.card_type is CardType.CREATURE and card.matches_tribe(tribe):
                creatures.append(to_pool_card(card))
            elif card.card_type in (CardType.MUGIC, CardType.BATTLEGEAR):
                support.append(to_pool_card(card))
            elif card.card_type is CardType.LOCATION and card.matches_tribe(tribe):
                locations.append(to_pool_card(card))
            elif card.card_type is CardType.ATTACK:
                attacks.append(to_pool_card(card))

        location_count = min(MAX_STARTER_LOCATIONS, len(locations))
        attack_count = TACTICAL_COUNT - location_count
        if attack_count > 0 and not attacks:
            raise EmptyPoolError("Not enough attacks to assemble the starter tactical pack")

        return (
            StarterPack(CREATURES_PACK, tuple(draw_without_repeats(self._rng, creatures, CREATURES_COUNT))),
            StarterPack(SUPPORT_PACK, tuple(draw_without_repeats(self._rng, support, SUPPORT_COUNT))),
            StarterPack(
                TACTICAL_PACK,
                (
                    *draw_without_repeats(self._rng, locations, location_count),
                    *draw_without_repeats(self._rng, attacks, attack_count),
                ),
            ),
        )

    async def _lookup(self, session: LedgerSession, user_id: str) -> tuple[str | None, bool, bool]:
        opened = await session.find_events(
            user_id, source=EventSource.STARTER_PACK_OPENED.value, limit=1
        )
        cards = await session.list_cards(user_id)
        tribe = str(opened[0].metadata.get("tribe")) if opened else None
        return tribe, bool(cards), bool(opened)
