"""Economy simulation helpers."""

from __future__ import annotations

from dataclasses import dataclass, field
from random import Random
from typing import Dict

from ..app import LedgerApp
from ..domain.cards import CardKey, Rarity
from ..domain.draw import RarityDrawEngine, RevealedCard
from ..domain.exceptions import DrawError
from ..domain.rewards import award_xp


@dataclass(slots=True)
class SimulationResult:
    draws: int
    by_rarity: Dict[Rarity, int] = field(default_factory=dict)
    experience: int = 0
    sell_value: int = 0
    duplicates: int = 0
    uniques: int = 0
    failures: int = 0

    def merge(self, card: RevealedCard) -> None:
        if card.is_duplicate_in_collection:
            self.duplicates += 1
        else:
            self.uniques += 1
        self.by_rarity[card.rarity] = self.by_rarity.get(card.rarity, 0) + 1
        self.experience += award_xp(card.rarity)
        self.sell_value += card.sell_value


class DrawSimulator:
    """Monte-Carlo simulation of repeated purchases of one pack."""

    def __init__(self, app: LedgerApp, *, rng: Random | None = None) -> None:
        self._app = app
        self._engine = RarityDrawEngine(rng or Random())

    def simulate(self, pack_id: str, *, draws: int = 1000) -> SimulationResult:
        pack = self._app.catalog.packs.get_pack(pack_id)
        pool = self._app.catalog.cards.pool_for(pack)
        result = SimulationResult(draws=draws)
        owned: set[CardKey] = set()

        for _ in range(draws):
            try:
                cards = self._engine.draw(pack, pool, owned)
            except DrawError:
                result.failures += 1
                continue
            for card in cards:
                result.merge(card)
                owned.add(card.key)
        return result
