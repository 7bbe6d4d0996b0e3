"""Exemplo de loja de pacotes com catálogo JSON e eventos de progressão."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

from cardledger import CardLedgerConfig, LedgerApp
from cardledger.diagnostics.economy_simulator import DrawSimulator
from cardledger.domain.events import LEVEL_UP, PACK_REFUNDED
from cardledger.loaders import load_catalog_from_json

logger = logging.getLogger("store_bot")


async def announce_level(payload) -> None:
    logger.info("Usuário %s subiu para o nível %s", payload["user_id"], payload["level"])


async def report_refund(payload) -> None:
    logger.warning(
        "Compra %s do pacote %s estornada (%s)",
        payload["purchase_event_id"],
        payload["pack_id"],
        payload["reason"],
    )


def register(app: LedgerApp) -> None:
    """Registra as cartas, o pacote de evento e os ouvintes."""
    catalog_path = Path(__file__).with_name("catalog") / "cards.json"
    load_catalog_from_json(app, catalog_path)

    app.event_bus.subscribe(LEVEL_UP, announce_level)
    app.event_bus.subscribe(PACK_REFUNDED, report_refund)


def simulate() -> None:
    app = LedgerApp(CardLedgerConfig.from_env())
    register(app)
    result = DrawSimulator(app).simulate("festival_mix", draws=100)
    print(f"Cartas novas: {result.uniques}, repetidas: {result.duplicates}")


async def run_bot() -> None:
    from aiogram import Bot, Dispatcher
    from cardledger.telegram import build_router

    logging.basicConfig(level=logging.INFO)
    app = LedgerApp(CardLedgerConfig.from_env())
    register(app)
    await app.init_backend()

    bot = Bot(app.config.bot_token)
    dp = Dispatcher()
    dp.include_router(build_router(app))
    try:
        await dp.start_polling(bot)
    finally:
        await app.shutdown()


if __name__ == "__main__":
    asyncio.run(run_bot())
