"""Weighted rarity draws for store packs."""

from __future__ import annotations

from dataclasses import dataclass
from random import Random
from typing import AbstractSet, Mapping, Sequence, TypeVar

from .cards import CardKey, CardType, PoolCard, Rarity
from .exceptions import EmptyPoolError, UnsatisfiableGuaranteeError
from .packs import PackDefinition
from .rewards import sell_value

T = TypeVar("T")


@dataclass(slots=True, frozen=True)
class RevealedCard:
    card_type: CardType
    card_id: str
    rarity: Rarity
    display_name: str | None
    image_ref: str | None
    is_duplicate_in_collection: bool
    sell_value: int

    @property
    def key(self) -> CardKey:
        return (self.card_type, self.card_id)


class RarityDrawEngine:
    """Assemble a pack's cards from a pool.

    Each slot rolls a rarity from the pack weights. When the number of
    guaranteed cards still owed equals the slots left, the slot is forced up to
    the guaranteed minimum, so forced slots cluster at the end of the pack.
    Cards are not repeated within a draw unless the pool runs out.
    """

    def __init__(self, rng: Random | None = None) -> None:
        self._rng = rng or Random()

    def draw(
        self,
        pack: PackDefinition,
        pool: Sequence[PoolCard],
        owned_keys: AbstractSet[CardKey] = frozenset(),
    ) -> list[RevealedCard]:
        if not pool:
            raise EmptyPoolError(f"Pack {pack.pack_id} has no eligible cards")

        owned = frozenset(owned_keys)
        minimum = pack.guaranteed_min_rarity
        remaining = pack.guaranteed_count if minimum else 0
        tribes = pack.resolved_tribes()
        used: set[CardKey] = set()
        cards: list[RevealedCard] = []

        for index in range(pack.cards_count):
            forced = minimum is not None and remaining >= pack.cards_count - index
            rolled = self.roll_rarity(pack.rarity_weights)
            tribe = self.roll_tribe(pack.tribe_weights, tribes)
            floor = minimum if forced else None

            selected = self._pick(pack, pool, rolled, floor, tribe, used, allow_repeats=False)
            if selected is None:
                selected = self._pick(pack, pool, rolled, floor, tribe, used, allow_repeats=True)
            if selected is None:
                raise EmptyPoolError(f"Pack {pack.pack_id} could not fill slot {index + 1}")

            used.add(selected.key)
            if minimum is not None and selected.rarity.rank >= minimum.rank:
                remaining = max(0, remaining - 1)

            cards.append(
                RevealedCard(
                    card_type=selected.card_type,
                    card_id=selected.card_id,
                    rarity=selected.rarity,
                    display_name=selected.display_name,
                    image_ref=selected.image_ref,
                    is_duplicate_in_collection=selected.key in owned,
                    sell_value=sell_value(selected.rarity),
                )
            )

        if minimum is not None and remaining > 0:
            raise UnsatisfiableGuaranteeError(pack.pack_id, minimum.value, remaining)
        return cards

    def roll_rarity(self, weights: Mapping[Rarity, int]) -> Rarity:
        options = [(rarity, max(0, int(weights.get(rarity, 0)))) for rarity in Rarity.ordered()]
        choice = self._roulette(options)
        return choice if choice is not None else Rarity.lowest()

    def roll_tribe(self, weights: Mapping[str, int], tribes: Sequence[str]) -> str | None:
        if not tribes:
            return None
        options = [(tribe, max(0, int(weights.get(tribe, 0)))) for tribe in tribes]
        choice = self._roulette(options)
        return choice if choice is not None else tribes[0]

    def _roulette(self, options: Sequence[tuple[T, int]]) -> T | None:
        total = sum(weight for _, weight in options)
        if total <= 0:
            return None
        threshold = self._rng.random() * total
        cumulative = 0
        for value, weight in options:
            cumulative += weight
            if threshold < cumulative:
                return value
        return None

    def _pick(
        self,
        pack: PackDefinition,
        pool: Sequence[PoolCard],
        rolled: Rarity,
        floor: Rarity | None,
        tribe: str | None,
        used: AbstractSet[CardKey],
        *,
        allow_repeats: bool,
    ) -> PoolCard | None:
        target = max(rolled.rank, floor.rank if floor else 0)
        top = len(Rarity.ordered())
        ranks = [*range(target, top), *range(target - 1, -1, -1)]

        for rank in ranks:
            rarity = Rarity.from_rank(rank)
            candidates = [
                card
                for card in pool
                if card.rarity == rarity
                and card.card_type in pack.card_types
                and not (tribe and card.tribes and tribe not in card.tribes)
                and (allow_repeats or card.key not in used)
            ]
            if candidates:
                return self._rng.choice(candidates)
        return None
