"""Factories for tests and prototyping."""

from __future__ import annotations

from dataclasses import dataclass, field
from random import Random
from typing import Iterable, Sequence

from faker import Faker

from ..domain.cards import (
    Attack,
    Battlegear,
    Card,
    CardType,
    Creature,
    Location,
    Mugic,
    Rarity,
)
from ..domain.economy import Currency
from ..domain.packs import PackDefinition

TRIBES = ("overworld", "underworld", "mipedian", "danian")


@dataclass(slots=True)
class CardFactory:
    faker: Faker = field(default_factory=Faker)
    rng: Random = field(default_factory=Random)

    def build(
        self,
        card_type: CardType | None = None,
        rarity: Rarity | None = None,
        *,
        tribes: Sequence[str] | None = None,
    ) -> Card:
        card_type = card_type or self.rng.choice(list(CardType))
        rarity = rarity or self.rng.choice(list(Rarity))
        card_id = f"{card_type.value}_{self.faker.unique.lexify(text='??????')}"
        name = self.faker.word().title()
        chosen = tuple(tribes) if tribes is not None else (self.rng.choice(TRIBES),)
        if card_type is CardType.CREATURE:
            return Creature(card_id, name, rarity, tribe=chosen[0] if chosen else None)
        if card_type is CardType.LOCATION:
            return Location(card_id, name, rarity, tribes=chosen)
        if card_type is CardType.MUGIC:
            return Mugic(card_id, name, rarity, tribes=chosen)
        if card_type is CardType.BATTLEGEAR:
            return Battlegear(card_id, name, rarity, allowed_tribes=chosen)
        return Attack(card_id, name, rarity)

    def batch(
        self,
        count: int,
        card_type: CardType | None = None,
        rarity: Rarity | None = None,
        *,
        tribes: Sequence[str] | None = None,
    ) -> Iterable[Card]:
        for _ in range(count):
            yield self.build(card_type, rarity, tribes=tribes)


@dataclass(slots=True)
class PackFactory:
    faker: Faker = field(default_factory=Faker)

    def build(
        self,
        *,
        pack_id: str | None = None,
        currency: Currency = Currency.COINS,
        price: int = 100,
        cards_count: int = 5,
        card_types: Iterable[CardType] = tuple(CardType),
        rarity_weights: dict[Rarity, int] | None = None,
        **overrides,
    ) -> PackDefinition:
        pack_id = pack_id or f"pack_{self.faker.unique.lexify(text='????')}"
        return PackDefinition(
            pack_id=pack_id,
            name=self.faker.catch_phrase(),
            currency=currency,
            price=price,
            cards_count=cards_count,
            card_types=frozenset(card_types),
            rarity_weights=rarity_weights or {rarity: 1 for rarity in Rarity},
            **overrides,
        )
