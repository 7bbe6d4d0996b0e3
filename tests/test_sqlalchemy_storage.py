from datetime import datetime, timezone
from random import Random

import pytest

from cardledger.app import LedgerApp
from cardledger.config import CardLedgerConfig, StorageConfig
from cardledger.domain.cards import CardType, Rarity
from cardledger.domain.clock import FixedClock
from cardledger.domain.exceptions import ChargedAndRefundedError, InsufficientFundsError
from cardledger.domain.store import SaleItem
from conftest import stock_catalog

NOW = datetime(2024, 5, 15, 12, 0, tzinfo=timezone.utc)


def sqlite_app(path) -> LedgerApp:
    config = CardLedgerConfig(
        storage=StorageConfig(backend="sqlalchemy", dsn=f"sqlite+aiosqlite:///{path}"),
        load_default_packs=False,
    )
    return stock_catalog(LedgerApp(config, clock=FixedClock(NOW), rng=Random(11)))


@pytest.mark.asyncio()
async def test_purchase_and_sale_persist_across_apps(tmp_path):
    db = tmp_path / "ledger.db"
    app = sqlite_app(db)
    await app.init_backend()
    try:
        await app.ledger.credit_wallet("u1", coins=250)
        purchase = await app.store.purchase_pack("u1", "basic")
        first = purchase.cards[0]
        sale = await app.store.sell_cards("u1", [SaleItem(first.card_type, first.card_id)])
        assert sale.coins_earned == 20
        daily = await app.ledger.register_daily_login_reward("u1")
        assert daily.granted
    finally:
        await app.shutdown()

    reopened = sqlite_app(db)
    await reopened.init_backend()
    try:
        wallet = await reopened.ledger.wallet("u1")
        assert wallet.coins == 250 - 100 + 20 + 5
        inventory = await reopened.ledger.inventory("u1")
        assert sum(item.quantity for item in inventory) == 2

        again = await reopened.ledger.register_daily_login_reward("u1")
        assert again.granted is False

        events = await reopened.ledger.recent_events("u1", limit=50)
        purchase_event = next(e for e in events if e.source == "shop_pack_purchase")
        assert purchase_event.metadata["pack_id"] == "basic"
        assert purchase_event.created_at == NOW
        assert purchase_event.id == purchase.purchase_event_id

        listing = await reopened.store.list_packs_for_user("u1")
        basic = next(entry for entry in listing.packs if entry.pack.pack_id == "basic")
        assert basic.limits[0].remaining_purchases == 1
    finally:
        await reopened.shutdown()


@pytest.mark.asyncio()
async def test_failed_debit_rolls_back(tmp_path):
    app = sqlite_app(tmp_path / "ledger.db")
    await app.init_backend()
    try:
        with pytest.raises(InsufficientFundsError):
            await app.store.purchase_pack("u1", "basic")
        assert await app.ledger.recent_events("u1") == []
    finally:
        await app.shutdown()


@pytest.mark.asyncio()
async def test_refund_written_to_database(tmp_path):
    app = sqlite_app(tmp_path / "ledger.db")
    await app.init_backend()
    try:
        await app.ledger.credit_wallet("u1", coins=50)
        with pytest.raises(ChargedAndRefundedError):
            await app.store.purchase_pack("u1", "attacks")
        assert (await app.ledger.wallet("u1")).coins == 50
        refund = await app.store.refund_purchase(
            "u1",
            next(
                e.id
                for e in await app.ledger.recent_events("u1")
                if e.source == "shop_pack_purchase"
            ),
        )
        assert refund.metadata["reason"] == "EmptyPoolError"
        assert (await app.ledger.wallet("u1")).coins == 50
    finally:
        await app.shutdown()


@pytest.mark.asyncio()
async def test_card_rows_are_deleted_at_zero(tmp_path):
    app = sqlite_app(tmp_path / "ledger.db")
    await app.init_backend()
    try:
        await app.ledger.register_card_award("u1", CardType.LOCATION, "location_rara_0", Rarity.RARA, 2)
        await app.ledger.discard_user_card("u1", CardType.LOCATION, "location_rara_0", 2)
        assert await app.ledger.inventory("u1") == []
        assert (await app.ledger.wallet("u1")).coins == 180
    finally:
        await app.shutdown()
