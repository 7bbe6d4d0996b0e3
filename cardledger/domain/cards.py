"""Card domain models and the in-memory catalog provider."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import ClassVar, Iterable, Protocol, TYPE_CHECKING, Union

if TYPE_CHECKING:
    from .packs import PackDefinition


class Rarity(str, Enum):
    COMUM = "comum"
    INCOMUM = "incomum"
    RARA = "rara"
    SUPER_RARA = "super_rara"
    ULTRA_RARA = "ultra_rara"

    @property
    def rank(self) -> int:
        return _RARITY_ORDER.index(self)

    @classmethod
    def ordered(cls) -> tuple["Rarity", ...]:
        return _RARITY_ORDER

    @classmethod
    def from_rank(cls, rank: int) -> "Rarity":
        return _RARITY_ORDER[rank]

    @classmethod
    def lowest(cls) -> "Rarity":
        return _RARITY_ORDER[0]


_RARITY_ORDER: tuple[Rarity, ...] = (
    Rarity.COMUM,
    Rarity.INCOMUM,
    Rarity.RARA,
    Rarity.SUPER_RARA,
    Rarity.ULTRA_RARA,
)


class CardType(str, Enum):
    CREATURE = "creature"
    LOCATION = "location"
    MUGIC = "mugic"
    BATTLEGEAR = "battlegear"
    ATTACK = "attack"


CardKey = tuple[CardType, str]


@dataclass(slots=True, frozen=True)
class PoolCard:
    """Engine-facing projection of a catalog card."""

    card_type: CardType
    card_id: str
    rarity: Rarity
    display_name: str | None = None
    image_ref: str | None = None
    tribes: tuple[str, ...] = ()

    @property
    def key(self) -> CardKey:
        return (self.card_type, self.card_id)


@dataclass(slots=True, frozen=True)
class Creature:
    card_type: ClassVar[CardType] = CardType.CREATURE

    card_id: str
    name: str
    rarity: Rarity
    tribe: str | None = None
    image_ref: str | None = None

    @property
    def tribes(self) -> tuple[str, ...]:
        return (self.tribe,) if self.tribe else ()

    def matches_tribe(self, tribe: str) -> bool:
        return self.tribe == tribe


@dataclass(slots=True, frozen=True)
class Location:
    card_type: ClassVar[CardType] = CardType.LOCATION

    card_id: str
    name: str
    rarity: Rarity
    tribes: tuple[str, ...] = ()
    image_ref: str | None = None

    def matches_tribe(self, tribe: str) -> bool:
        return tribe in self.tribes


@dataclass(slots=True, frozen=True)
class Mugic:
    card_type: ClassVar[CardType] = CardType.MUGIC

    card_id: str
    name: str
    rarity: Rarity
    tribes: tuple[str, ...] = ()
    image_ref: str | None = None

    def matches_tribe(self, tribe: str) -> bool:
        return tribe in self.tribes


@dataclass(slots=True, frozen=True)
class Battlegear:
    card_type: ClassVar[CardType] = CardType.BATTLEGEAR

    card_id: str
    name: str
    rarity: Rarity
    allowed_tribes: tuple[str, ...] = ()
    image_ref: str | None = None

    @property
    def tribes(self) -> tuple[str, ...]:
        return self.allowed_tribes

    def matches_tribe(self, tribe: str) -> bool:
        return tribe in self.allowed_tribes


@dataclass(slots=True, frozen=True)
class Attack:
    card_type: ClassVar[CardType] = CardType.ATTACK

    card_id: str
    name: str
    rarity: Rarity
    image_ref: str | None = None

    @property
    def tribes(self) -> tuple[str, ...]:
        return ()

    def matches_tribe(self, tribe: str) -> bool:
        # Attacks are tribeless and never appear in tribe-filtered packs.
        return False


Card = Union[Creature, Location, Mugic, Battlegear, Attack]

CARD_CLASSES: dict[CardType, type] = {
    CardType.CREATURE: Creature,
    CardType.LOCATION: Location,
    CardType.MUGIC: Mugic,
    CardType.BATTLEGEAR: Battlegear,
    CardType.ATTACK: Attack,
}


def to_pool_card(card: Card) -> PoolCard:
    return PoolCard(
        card_type=card.card_type,
        card_id=card.card_id,
        rarity=card.rarity,
        display_name=card.name,
        image_ref=card.image_ref,
        tribes=tuple(card.tribes),
    )


class CatalogProvider(Protocol):
    async def card_pool(self, pack: "PackDefinition") -> list[PoolCard]:
        ...


class CardCatalog(CatalogProvider):
    """Registry of catalog cards keyed by ``(card_type, card_id)``."""

    def __init__(self) -> None:
        self._cards: dict[CardKey, Card] = {}

    def register_card(self, card: Card) -> None:
        key = (card.card_type, card.card_id)
        if key in self._cards:
            raise ValueError(f"Card {card.card_type.value}:{card.card_id} already registered")
        self._cards[key] = card

    def register_cards(self, cards: Iterable[Card]) -> None:
        for card in cards:
            self.register_card(card)

    def get_card(self, card_type: CardType, card_id: str) -> Card:
        try:
            return self._cards[(card_type, card_id)]
        except KeyError as exc:
            raise KeyError(f"Card {card_type.value}:{card_id} not found") from exc

    def iter_cards(self) -> Iterable[Card]:
        return self._cards.values()

    async def card_pool(self, pack: "PackDefinition") -> list[PoolCard]:
        return self.pool_for(pack)

    def pool_for(self, pack: "PackDefinition") -> list[PoolCard]:
        """Cards eligible for ``pack`` after type and tribe filtering."""
        allowed_tribes = pack.resolved_tribes()
        pool: list[PoolCard] = []
        for card in self._cards.values():
            if card.card_type not in pack.card_types:
                continue
            if pack.tribe_filter and not card.matches_tribe(pack.tribe_filter):
                continue
            if (
                allowed_tribes
                and card.card_type is not CardType.ATTACK
                and not any(tribe in allowed_tribes for tribe in card.tribes)
            ):
                continue
            pool.append(to_pool_card(card))
        return pool


@dataclass(slots=True)
class CatalogSummary:
    """Counts per rarity for a pool, used by diagnostics."""

    by_rarity: dict[Rarity, int] = field(default_factory=dict)

    @classmethod
    def of(cls, pool: Iterable[PoolCard]) -> "CatalogSummary":
        summary = cls()
        for card in pool:
            summary.by_rarity[card.rarity] = summary.by_rarity.get(card.rarity, 0) + 1
        return summary

    def at_least(self, rarity: Rarity) -> int:
        return sum(count for r, count in self.by_rarity.items() if r.rank >= rarity.rank)
