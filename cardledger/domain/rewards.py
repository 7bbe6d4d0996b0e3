"""Fixed reward tables."""

from __future__ import annotations

from typing import Mapping

from .cards import Rarity

BATTLE_VICTORY_XP = 50
DAILY_LOGIN_XP = 5
DAILY_LOGIN_COINS = 5
STARTER_PACK_OPEN_XP = 10

XP_BY_RARITY: Mapping[Rarity, int] = {
    Rarity.COMUM: 8,
    Rarity.INCOMUM: 16,
    Rarity.RARA: 28,
    Rarity.SUPER_RARA: 45,
    Rarity.ULTRA_RARA: 70,
}

SELL_VALUE_BY_RARITY: Mapping[Rarity, int] = {
    Rarity.COMUM: 20,
    Rarity.INCOMUM: 45,
    Rarity.RARA: 90,
    Rarity.SUPER_RARA: 170,
    Rarity.ULTRA_RARA: 300,
}


def award_xp(rarity: Rarity, quantity: int = 1) -> int:
    return XP_BY_RARITY[rarity] * quantity


def sell_value(rarity: Rarity, quantity: int = 1) -> int:
    return SELL_VALUE_BY_RARITY[rarity] * quantity
