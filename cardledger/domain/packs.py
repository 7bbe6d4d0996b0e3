"""Store pack definitions."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Mapping

from .cards import CardType, Rarity
from .economy import Currency


@dataclass(slots=True, frozen=True)
class PriceOption:
    currency: Currency
    price: int


@dataclass(slots=True, frozen=True)
class PackDefinition:
    """Immutable configuration of a purchasable pack."""

    pack_id: str
    name: str
    currency: Currency
    price: int
    cards_count: int
    card_types: frozenset[CardType]
    rarity_weights: Mapping[Rarity, int]
    description: str = ""
    tribe_filter: str | None = None
    guaranteed_min_rarity: Rarity | None = None
    guaranteed_count: int = 0
    daily_limit: int | None = None
    weekly_limit: int | None = None
    price_options: tuple[PriceOption, ...] = ()
    allowed_tribes: tuple[str, ...] = ()
    tribe_weights: Mapping[str, int] = field(default_factory=dict)
    image_ref: str | None = None

    @property
    def reference_id(self) -> str:
        return f"store-pack:{self.pack_id}"

    @property
    def refund_reference_id(self) -> str:
        return f"store-pack-refund:{self.pack_id}"

    def prices(self) -> tuple[PriceOption, ...]:
        """Positive price options; the first one is the default."""
        options = self.price_options or (PriceOption(self.currency, self.price),)
        return tuple(option for option in options if option.price > 0)

    def price_for(self, currency: Currency | None = None) -> PriceOption | None:
        options = self.prices()
        if currency is None:
            return options[0] if options else None
        for option in options:
            if option.currency == currency:
                return option
        return None

    def resolved_tribes(self) -> tuple[str, ...]:
        if self.allowed_tribes:
            return tuple(dict.fromkeys(self.allowed_tribes))
        return (self.tribe_filter,) if self.tribe_filter else ()

    def weight_for(self, rarity: Rarity) -> int:
        return max(0, int(self.rarity_weights.get(rarity, 0)))


class PackCatalog:
    """Registry of pack definitions, loaded once per process."""

    def __init__(self) -> None:
        self._packs: dict[str, PackDefinition] = {}

    def register_pack(self, pack: PackDefinition) -> None:
        if pack.pack_id in self._packs:
            raise ValueError(f"Pack {pack.pack_id} already registered")
        self._packs[pack.pack_id] = pack

    def register_packs(self, packs: Iterable[PackDefinition]) -> None:
        for pack in packs:
            self.register_pack(pack)

    def get_pack(self, pack_id: str) -> PackDefinition:
        try:
            return self._packs[pack_id]
        except KeyError as exc:
            raise KeyError(f"Pack {pack_id} not found") from exc

    def find(self, pack_id: str) -> PackDefinition | None:
        return self._packs.get(pack_id)

    def iter_packs(self) -> Iterable[PackDefinition]:
        return self._packs.values()


def _weights(comum: int, incomum: int, rara: int, super_rara: int, ultra_rara: int) -> dict[Rarity, int]:
    return {
        Rarity.COMUM: comum,
        Rarity.INCOMUM: incomum,
        Rarity.RARA: rara,
        Rarity.SUPER_RARA: super_rara,
        Rarity.ULTRA_RARA: ultra_rara,
    }


_ALL_TYPES = frozenset(CardType)

DEFAULT_PACKS: tuple[PackDefinition, ...] = (
    PackDefinition(
        pack_id="starter_coins",
        name="Pacote Starter",
        description="Pacote misto básico para evolução inicial.",
        currency=Currency.COINS,
        price=200,
        cards_count=6,
        card_types=_ALL_TYPES,
        guaranteed_min_rarity=Rarity.RARA,
        guaranteed_count=1,
        rarity_weights=_weights(55, 28, 12, 4, 1),
        daily_limit=2,
    ),
    PackDefinition(
        pack_id="locations_weekly",
        name="Pacote de Locais",
        description="Apenas locais para montar arenas estratégicas.",
        currency=Currency.COINS,
        price=260,
        cards_count=5,
        card_types=frozenset({CardType.LOCATION}),
        guaranteed_min_rarity=Rarity.INCOMUM,
        guaranteed_count=2,
        rarity_weights=_weights(48, 34, 13, 4, 1),
        weekly_limit=3,
    ),
    PackDefinition(
        pack_id="combat_core",
        name="Pacote de Combate",
        description="Ataques e equipamentos para fortalecer o deck.",
        currency=Currency.COINS,
        price=280,
        cards_count=5,
        card_types=frozenset({CardType.ATTACK, CardType.BATTLEGEAR}),
        guaranteed_min_rarity=Rarity.RARA,
        guaranteed_count=1,
        rarity_weights=_weights(50, 30, 14, 5, 1),
        daily_limit=1,
    ),
    PackDefinition(
        pack_id="region_overworld",
        name="Misto Outro Mundo",
        description="Pacote regional com foco em OverWorld.",
        currency=Currency.DIAMONDS,
        price=25,
        cards_count=6,
        card_types=frozenset(
            {CardType.CREATURE, CardType.LOCATION, CardType.MUGIC, CardType.BATTLEGEAR}
        ),
        tribe_filter="overworld",
        guaranteed_min_rarity=Rarity.RARA,
        guaranteed_count=2,
        rarity_weights=_weights(35, 33, 20, 9, 3),
        weekly_limit=2,
    ),
    PackDefinition(
        pack_id="region_danian",
        name="Misto Danian",
        description="Pacote regional com foco em Danian.",
        currency=Currency.DIAMONDS,
        price=25,
        cards_count=6,
        card_types=frozenset(
            {CardType.CREATURE, CardType.LOCATION, CardType.MUGIC, CardType.BATTLEGEAR}
        ),
        tribe_filter="danian",
        guaranteed_min_rarity=Rarity.RARA,
        guaranteed_count=2,
        rarity_weights=_weights(35, 33, 20, 9, 3),
        weekly_limit=2,
    ),
    PackDefinition(
        pack_id="rare_guaranteed",
        name="Carta Rara Garantida",
        description="Pacote premium com chance elevada de alta raridade.",
        currency=Currency.DIAMONDS,
        price=40,
        cards_count=5,
        card_types=_ALL_TYPES,
        guaranteed_min_rarity=Rarity.SUPER_RARA,
        guaranteed_count=1,
        rarity_weights=_weights(20, 28, 28, 18, 6),
        weekly_limit=2,
    ),
)
