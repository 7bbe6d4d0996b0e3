from __future__ import annotations

import pytest

from cardledger.app import LedgerApp
from cardledger.domain.cards import CardType, Creature, Location, Rarity
from cardledger.domain.economy import Currency
from cardledger.domain.packs import PackDefinition, PriceOption
from cardledger.testing.fixtures import app_fixture, memory_app  # noqa: F401

BASIC_PACK = PackDefinition(
    pack_id="basic",
    name="Basic",
    currency=Currency.COINS,
    price=100,
    cards_count=3,
    card_types=frozenset({CardType.CREATURE, CardType.LOCATION}),
    rarity_weights={Rarity.COMUM: 1},
    daily_limit=2,
)

PREMIUM_PACK = PackDefinition(
    pack_id="premium",
    name="Premium",
    currency=Currency.DIAMONDS,
    price=10,
    cards_count=4,
    card_types=frozenset({CardType.CREATURE, CardType.LOCATION}),
    rarity_weights={Rarity.COMUM: 3, Rarity.INCOMUM: 1},
    guaranteed_min_rarity=Rarity.SUPER_RARA,
    guaranteed_count=1,
    weekly_limit=1,
    price_options=(PriceOption(Currency.DIAMONDS, 10), PriceOption(Currency.COINS, 500)),
)

ATTACK_PACK = PackDefinition(
    pack_id="attacks",
    name="Attacks",
    currency=Currency.COINS,
    price=50,
    cards_count=2,
    card_types=frozenset({CardType.ATTACK}),
    rarity_weights={Rarity.COMUM: 1},
)


def stock_catalog(app: LedgerApp) -> LedgerApp:
    """Two creatures and two locations per rarity, no attacks."""
    for rarity in Rarity.ordered():
        for n in range(2):
            app.catalog.card(
                Creature(f"creature_{rarity.value}_{n}", f"Creature {rarity.value} {n}", rarity, tribe="overworld")
            )
            app.catalog.card(
                Location(f"location_{rarity.value}_{n}", f"Location {rarity.value} {n}", rarity, tribes=("overworld",))
            )
    app.catalog.extend(packs=(BASIC_PACK, PREMIUM_PACK, ATTACK_PACK))
    return app


@pytest.fixture()
def store_app() -> LedgerApp:
    return stock_catalog(app_fixture(load_default_packs=False))
