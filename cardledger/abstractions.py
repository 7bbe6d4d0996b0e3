"""High-level helpers that simplify bootstrapping a cardledger store bot.

Use these when you want a running Telegram store without wiring the config,
storage and router by hand.
"""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Mapping

from aiogram import Bot, Dispatcher
from rich.console import Console

from .app import LedgerApp
from .config import CardLedgerConfig
from .diagnostics.economy_simulator import DrawSimulator
from .loaders import load_catalog_from_json, validate_catalog_dict
from .telegram import build_router
from .telegram.aiogram_router import ensure_catalog_ready

console = Console()


@dataclass(slots=True)
class SimpleBotConfig:
    """Minimal settings required to run a cardledger bot."""

    bot_token: str
    catalog_path: Path | None = None
    storage: str = "memory"  # "memory" or path to SQLite file
    load_default_packs: bool = True


async def run_simple_bot(config: SimpleBotConfig) -> None:
    """Spin up an aiogram bot serving the card store."""

    ledger_config = CardLedgerConfig.from_env()
    ledger_config.bot_token = config.bot_token
    ledger_config.load_default_packs = config.load_default_packs
    if config.storage != "memory":
        db_path = Path(config.storage).expanduser().resolve()
        db_path.parent.mkdir(parents=True, exist_ok=True)
        ledger_config.storage.backend = "sqlalchemy"
        ledger_config.storage.dsn = f"sqlite+aiosqlite:///{db_path.as_posix()}"

    app = LedgerApp(ledger_config)
    await app.init_backend()
    if config.catalog_path:
        load_catalog_from_json(app, config.catalog_path)
    ensure_catalog_ready(app)

    bot = Bot(app.config.bot_token)
    dp = Dispatcher()
    dp.include_router(build_router(app))

    simulator = DrawSimulator(app)
    for pack in app.catalog.packs.iter_packs():
        summary = simulator.simulate(pack.pack_id, draws=50)
        console.print(
            f"[cyan]{pack.pack_id}[/cyan]: novas {summary.uniques}, repetidas {summary.duplicates}, "
            f"falhas {summary.failures}"
        )
    console.print("[bold green]cardledger pronto![/bold green]")

    try:
        await dp.start_polling(bot)
    finally:
        await app.shutdown()


def run_simple_bot_sync(config: SimpleBotConfig) -> None:
    """Synchronous wrapper for run_simple_bot."""

    asyncio.run(run_simple_bot(config))


@dataclass(slots=True)
class CatalogBuilder:
    """Imperative builder that produces JSON catalogs."""

    cards: list[dict] = field(default_factory=list)
    packs: list[dict] = field(default_factory=list)

    def add_card(
        self,
        card_type: str,
        card_id: str,
        name: str,
        *,
        rarity: str = "comum",
        tribes: Iterable[str] = (),
        image_ref: str | None = None,
    ) -> "CatalogBuilder":
        card: dict = {"type": card_type, "id": card_id, "name": name, "rarity": rarity}
        tribes = list(tribes)
        if card_type == "creature" and tribes:
            card["tribe"] = tribes[0]
        elif card_type == "battlegear":
            card["allowedTribes"] = tribes
        elif card_type in {"location", "mugic"}:
            card["tribes"] = tribes
        if image_ref:
            card["imageRef"] = image_ref
        self.cards.append(card)
        return self

    def add_pack(
        self,
        pack_id: str,
        name: str,
        *,
        card_types: Iterable[str],
        rarity_weights: Mapping[str, int],
        cards_count: int = 5,
        currency: str = "coins",
        price: int = 100,
        price_options: Mapping[str, int] | None = None,
        guaranteed_min_rarity: str | None = None,
        guaranteed_count: int = 0,
        daily_limit: int | None = None,
        weekly_limit: int | None = None,
        tribe_filter: str | None = None,
        description: str = "",
    ) -> "CatalogBuilder":
        pack: dict = {
            "id": pack_id,
            "name": name,
            "description": description,
            "cardsCount": cards_count,
            "cardTypes": list(card_types),
            "rarityWeights": dict(rarity_weights),
            "guaranteedCount": guaranteed_count,
        }
        if price_options:
            pack["priceOptions"] = [
                {"currency": code, "price": amount} for code, amount in price_options.items()
            ]
        else:
            pack["currency"] = currency
            pack["price"] = price
        if guaranteed_min_rarity:
            pack["guaranteedMinRarity"] = guaranteed_min_rarity
        if daily_limit is not None:
            pack["dailyLimit"] = daily_limit
        if weekly_limit is not None:
            pack["weeklyLimit"] = weekly_limit
        if tribe_filter:
            pack["tribeFilter"] = tribe_filter
        self.packs.append(pack)
        return self

    def build(self) -> dict:
        catalog = {"cards": self.cards, "packs": self.packs}
        errors = validate_catalog_dict(catalog)
        if errors:
            raise ValueError("Catalog validation failed:\n" + "\n".join(f"- {err}" for err in errors))
        return catalog

    def save(self, path: Path) -> None:
        catalog = self.build()
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(catalog, ensure_ascii=False, indent=2), encoding="utf-8")


__all__ = [
    "SimpleBotConfig",
    "CatalogBuilder",
    "run_simple_bot",
    "run_simple_bot_sync",
]
