from datetime import datetime, timezone

import pytest

from cardledger.domain.cards import CardCatalog, CardType, Creature, Rarity
from cardledger.domain.draw import RevealedCard
from cardledger.domain.economy import WalletBalance
from cardledger.domain.exceptions import (
    ChargedAndRefundedError,
    CompensationFailedError,
    InsufficientFundsError,
    InvalidStarterTribeError,
    PurchaseLimitExceededError,
    StarterAlreadyGrantedError,
)
from cardledger.domain.ledger import DailyLoginResult, InventoryItem, ProgressionOverview
from cardledger.domain.progression import ProgressionState
from cardledger.domain.starter import STARTER_TRIBES, StarterPack, StarterResult, StarterStatus
from cardledger.domain.store import SaleItem, SaleResult
from cardledger.storage.base import LedgerEventRecord
from cardledger.telegram.aiogram_router import (
    ensure_catalog_ready,
    format_collection_message,
    format_daily_login_message,
    format_profile_message,
    format_revealed_card,
    format_sale_message,
    format_starter_message,
    format_starter_status,
    format_store_error,
    format_store_listing,
    parse_sell_args,
)
from cardledger.telegram.keyboards import (
    buy_callback_data,
    parse_buy_callback,
    store_keyboard,
)
from cardledger.testing import app_fixture


def test_parse_sell_args():
    assert parse_sell_args("creature:maxxor mugic:song:3") == [
        SaleItem(CardType.CREATURE, "maxxor", 1),
        SaleItem(CardType.MUGIC, "song", 3),
    ]
    with pytest.raises(ValueError, match="Informe"):
        parse_sell_args(None)
    with pytest.raises(ValueError, match="Tipo de carta"):
        parse_sell_args("dragon:x")
    with pytest.raises(ValueError, match="Quantidade"):
        parse_sell_args("attack:x:0")
    with pytest.raises(ValueError, match="Carta inválida"):
        parse_sell_args("attack")


def test_buy_callback_round_trip():
    assert parse_buy_callback(buy_callback_data("starter_coins")) == ("starter_coins", None)
    assert parse_buy_callback(buy_callback_data("rare", "diamonds")) == ("rare", "diamonds")


def test_format_revealed_card_marks_duplicates():
    card = RevealedCard(CardType.CREATURE, "maxxor", Rarity.RARA, "Maxxor", None, True, 90)
    assert format_revealed_card(card) == "• Maxxor [rara] (repetida): venda: 90"


def test_format_sale_message():
    result = SaleResult(2, 40, ProgressionState("u1"), WalletBalance(140, 3))
    assert format_sale_message(result) == (
        "💰 2 carta(s) vendida(s) por 40 moedas.\n🪙 140 moedas · 💎 3 diamantes"
    )


def test_format_daily_login_message():
    denied = DailyLoginResult(False, ProgressionState("u1"), WalletBalance())
    assert format_daily_login_message(denied).startswith("Você já resgatou")
    granted = DailyLoginResult(True, ProgressionState.from_xp("u1", 5), WalletBalance(5, 0))
    assert "+5 XP e +5 moedas" in format_daily_login_message(granted)


def test_format_profile_message_lists_recent_events():
    event = LedgerEventRecord(
        id="e1",
        user_id="u1",
        source="shop_pack_purchase",
        created_at=datetime(2024, 5, 15, 9, 30, tzinfo=timezone.utc),
        coins_delta=-200,
    )
    overview = ProgressionOverview(
        progression=ProgressionState.from_xp("u1", 130),
        wallet=WalletBalance(10, 0),
        inventory=(InventoryItem(CardType.CREATURE, "maxxor", Rarity.RARA, 2),),
        recent_events=(event,),
    )
    text = format_profile_message(overview, "Ana")
    assert "📈 Nível 2 (30/125 XP, total 130)" in text
    assert "🗃️ Cartas: 2" in text
    assert "15/05 09:30 shop_pack_purchase (-200 moedas)" in text


def test_format_collection_message_uses_catalog_names():
    catalog = CardCatalog()
    catalog.register_card(Creature("maxxor", "Maxxor", Rarity.RARA))
    items = [
        InventoryItem(CardType.CREATURE, "maxxor", Rarity.RARA, 2),
        InventoryItem(CardType.ATTACK, "gone", Rarity.COMUM, 1),
    ]
    text = format_collection_message(items, catalog)
    assert "• Maxxor [rara] creature:maxxor: 2x" in text
    assert "• gone [comum] attack:gone: 1x" in text
    assert format_collection_message([], catalog).startswith("Coleção vazia")


def test_format_store_error_variants():
    assert "(hoje)" in format_store_error(PurchaseLimitExceededError("p", ("daily",)))
    assert "você tem 5, precisa de 10" in format_store_error(InsufficientFundsError("coins", 5, 10))
    assert "estornada" in format_store_error(ChargedAndRefundedError("p", RuntimeError(), "r1"))
    assert "evt-1" in format_store_error(CompensationFailedError("p", RuntimeError(), "evt-1"))


@pytest.mark.asyncio()
async def test_store_listing_and_keyboard(store_app):
    await store_app.ledger.credit_wallet("u1", coins=500)
    listing = await store_app.store.list_packs_for_user("u1")

    text = format_store_listing(listing)
    assert "🪙 500 moedas · 💎 0 diamantes" in text
    assert "• Premium (premium): 4 cartas, 10 diamantes ou 500 moedas" in text
    assert "Garantia: 1x super_rara ou melhor" in text

    keyboard = store_keyboard(listing)
    callbacks = [button.callback_data for row in keyboard.inline_keyboard for button in row]
    assert "cardledger:buy:basic" in callbacks
    assert "cardledger:buy:premium:coins" in callbacks
    assert callbacks[-1] == "cardledger:profile"


def test_ensure_catalog_ready():
    app = app_fixture()
    with pytest.raises(RuntimeError):
        ensure_catalog_ready(app)


def test_build_router_registers_handlers(store_app):
    from cardledger.telegram import build_router

    router = build_router(store_app)
    assert router.message.handlers
    assert router.callback_query.handlers


def test_starter_messages():
    pending = StarterStatus(requires_choice=True, selected_tribe=None)
    assert "/starter <tribo>" in format_starter_status(pending)
    assert all(tribe in format_starter_status(pending) for tribe in STARTER_TRIBES)
    chosen = StarterStatus(requires_choice=False, selected_tribe="danian")
    assert format_starter_status(chosen) == "Tribo inicial escolhida: danian."

    result = StarterResult(
        tribe="danian",
        packs=(StarterPack("starter_tribe_creatures", ()),),
        progression=ProgressionState(user_id="u1", xp_total=230, level=3),
        wallet=WalletBalance(0, 0),
    )
    text = format_starter_message(result)
    assert "tribo danian" in text
    assert "starter_tribe_creatures: 0 carta(s)" in text
    assert "Nível 3" in text


def test_starter_errors_are_rendered():
    assert "overworld" in format_store_error(InvalidStarterTribeError("x", ("overworld",)))
    assert "iniciais" in format_store_error(StarterAlreadyGrantedError("u1", "danian"))
