"""Runtime registries for catalog cards and store packs."""

from __future__ import annotations

from typing import Iterable

from .domain.cards import Card, CardCatalog
from .domain.packs import PackCatalog, PackDefinition


class CatalogRegistry:
    """Facade around the card and pack catalogs with a chainable API."""

    def __init__(self) -> None:
        self.cards = CardCatalog()
        self.packs = PackCatalog()

    def card(self, card: Card) -> "CatalogRegistry":
        self.cards.register_card(card)
        return self

    def pack(self, pack: PackDefinition) -> "CatalogRegistry":
        self.packs.register_pack(pack)
        return self

    def extend(
        self, *, cards: Iterable[Card] = (), packs: Iterable[PackDefinition] = ()
    ) -> "CatalogRegistry":
        self.cards.register_cards(cards)
        self.packs.register_packs(packs)
        return self


__all__ = ["CatalogRegistry"]
