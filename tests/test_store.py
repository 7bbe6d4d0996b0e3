import asyncio

import pytest

from cardledger.app import LedgerApp
from cardledger.config import CardLedgerConfig
from cardledger.domain.cards import CardType, Rarity
from cardledger.domain.economy import Currency
from cardledger.domain.events import CARDS_SOLD, LEVEL_UP, PACK_PURCHASED, PACK_REFUNDED
from cardledger.domain.exceptions import (
    CardNotFoundInInventoryError,
    ChargedAndRefundedError,
    CompensationFailedError,
    InsufficientFundsError,
    InvalidQuantityError,
    PriceUnavailableError,
    UnknownPackError,
)
from cardledger.domain.rewards import award_xp
from cardledger.domain.ledger import EventSource, ProgressionChange
from cardledger.domain.store import SaleItem
from cardledger.storage.memory import InMemorySession
from conftest import stock_catalog


class FailingAwardSession(InMemorySession):
    async def save_card(self, record):
        raise RuntimeError("disk full")


class FailingAwardAndRefundSession(FailingAwardSession):
    async def append_event(self, event):
        if event.source == "shop_purchase_refund":
            raise RuntimeError("ledger unavailable")
        await super().append_event(event)


def store_events(app: LedgerApp) -> list:
    return [
        event for event in app.persistence.dump_events() if event.source != "operator_credit"
    ]


def sources(app: LedgerApp) -> list[str]:
    return [event.source for event in store_events(app)]


@pytest.mark.asyncio()
async def test_purchase_debits_and_awards(store_app):
    published = []

    async def listener(payload):
        published.append(payload)

    store_app.event_bus.subscribe(PACK_PURCHASED, listener)
    await store_app.ledger.credit_wallet("u1", coins=250)

    result = await store_app.store.purchase_pack("u1", "basic")

    assert result.wallet.coins == 150
    assert result.currency is Currency.COINS
    assert result.price == 100
    assert len(result.cards) == 3
    assert all(card.rarity is Rarity.COMUM for card in result.cards)
    assert result.progression.xp_total == award_xp(Rarity.COMUM, 3)

    inventory = await store_app.ledger.inventory("u1")
    assert sum(item.quantity for item in inventory) == 3

    recorded = sources(store_app)
    assert recorded[0] == "shop_pack_purchase"
    assert recorded.count("card_awarded") == len({card.key for card in result.cards})
    purchase = store_events(store_app)[0]
    assert purchase.id == result.purchase_event_id
    assert purchase.coins_delta == -100
    assert purchase.reference_id == "store-pack:basic"
    assert purchase.metadata["cards_count"] == 3
    assert published[0]["pack_id"] == "basic"


@pytest.mark.asyncio()
async def test_purchase_uses_requested_price_option(store_app):
    await store_app.ledger.credit_wallet("u1", coins=600)
    result = await store_app.store.purchase_pack("u1", "premium", "coins")
    assert result.wallet.coins == 100
    assert result.price == 500
    assert any(card.rarity.rank >= Rarity.SUPER_RARA.rank for card in result.cards)


@pytest.mark.asyncio()
async def test_insufficient_funds_changes_nothing(store_app):
    with pytest.raises(InsufficientFundsError) as excinfo:
        await store_app.store.purchase_pack("u1", "premium")
    assert excinfo.value.charged is False
    assert excinfo.value.currency == "diamonds"
    assert store_events(store_app) == []
    assert await store_app.ledger.inventory("u1") == []


@pytest.mark.asyncio()
async def test_unknown_pack_and_currency(store_app):
    with pytest.raises(UnknownPackError):
        await store_app.store.purchase_pack("u1", "missing")
    with pytest.raises(PriceUnavailableError):
        await store_app.store.purchase_pack("u1", "basic", "diamonds")
    with pytest.raises(PriceUnavailableError):
        await store_app.store.purchase_pack("u1", "basic", "gold")


@pytest.mark.asyncio()
async def test_draw_failure_after_debit_is_refunded(store_app):
    refunds = []

    async def listener(payload):
        refunds.append(payload)

    store_app.event_bus.subscribe(PACK_REFUNDED, listener)
    await store_app.ledger.credit_wallet("u1", coins=80)

    with pytest.raises(ChargedAndRefundedError) as excinfo:
        await store_app.store.purchase_pack("u1", "attacks")

    assert excinfo.value.charged and excinfo.value.refunded
    assert (await store_app.ledger.wallet("u1")).coins == 80
    purchase, refund = store_events(store_app)
    assert refund.source == "shop_purchase_refund"
    assert refund.coins_delta == -purchase.coins_delta == 50
    assert refund.metadata["purchase_event_id"] == purchase.id
    assert refund.metadata["reason"] == "EmptyPoolError"
    assert refunds[0]["refund_event_id"] == excinfo.value.refund_event_id == refund.id


@pytest.mark.asyncio()
async def test_award_failure_is_refunded_and_still_counts_toward_limit(store_app):
    await store_app.ledger.credit_wallet("u1", coins=300)
    store_app.persistence.session_class = FailingAwardSession

    with pytest.raises(ChargedAndRefundedError):
        await store_app.store.purchase_pack("u1", "basic")

    assert (await store_app.ledger.wallet("u1")).coins == 300
    assert await store_app.ledger.inventory("u1") == []
    assert sources(store_app) == ["shop_pack_purchase", "shop_purchase_refund"]

    listing = await store_app.store.list_packs_for_user("u1")
    basic = next(entry for entry in listing.packs if entry.pack.pack_id == "basic")
    assert basic.limits[0].remaining_purchases == 1


@pytest.mark.asyncio()
async def test_failed_refund_reports_compensation_failure(store_app, caplog):
    await store_app.ledger.credit_wallet("u1", coins=100)
    store_app.persistence.session_class = FailingAwardAndRefundSession

    with caplog.at_level("CRITICAL"):
        with pytest.raises(CompensationFailedError) as excinfo:
            await store_app.store.purchase_pack("u1", "basic")

    assert excinfo.value.charged is True
    assert excinfo.value.refunded is False
    assert (await store_app.ledger.wallet("u1")).coins == 0
    assert excinfo.value.purchase_event_id == store_events(store_app)[0].id
    assert any(record.levelname == "CRITICAL" for record in caplog.records)


@pytest.mark.asyncio()
async def test_refund_purchase_is_idempotent(store_app):
    await store_app.ledger.credit_wallet("u1", coins=100)
    result = await store_app.store.purchase_pack("u1", "basic")

    first = await store_app.store.refund_purchase("u1", result.purchase_event_id)
    second = await store_app.store.refund_purchase("u1", result.purchase_event_id)

    assert first.id == second.id
    assert first.metadata["reason"] == "manual"
    assert (await store_app.ledger.wallet("u1")).coins == 100
    assert sources(store_app).count("shop_purchase_refund") == 1

    with pytest.raises(KeyError):
        await store_app.store.refund_purchase("u1", "nope")


@pytest.mark.asyncio()
async def test_refund_after_automatic_compensation_returns_existing(store_app):
    await store_app.ledger.credit_wallet("u1", coins=50)
    with pytest.raises(ChargedAndRefundedError) as excinfo:
        await store_app.store.purchase_pack("u1", "attacks")

    purchase_id = store_events(store_app)[0].id
    refund = await store_app.store.refund_purchase("u1", purchase_id)
    assert refund.id == excinfo.value.refund_event_id
    assert (await store_app.ledger.wallet("u1")).coins == 50


@pytest.mark.asyncio()
async def test_concurrent_purchases_only_spend_available_funds(store_app):
    await store_app.ledger.credit_wallet("u1", coins=100)

    outcomes = await asyncio.gather(
        store_app.store.purchase_pack("u1", "basic"),
        store_app.store.purchase_pack("u1", "basic"),
        return_exceptions=True,
    )

    failures = [outcome for outcome in outcomes if isinstance(outcome, Exception)]
    assert len(failures) == 1
    assert isinstance(failures[0], InsufficientFundsError)
    assert (await store_app.ledger.wallet("u1")).coins == 0
    assert sources(store_app).count("shop_pack_purchase") == 1


class GatedCatalog:
    def __init__(self) -> None:
        self.cards = None
        self.entered = asyncio.Event()
        self.gate = asyncio.Event()

    async def card_pool(self, pack):
        self.entered.set()
        await self.gate.wait()
        return self.cards.pool_for(pack)


@pytest.mark.asyncio()
async def test_cancelled_purchase_still_settles():
    gated = GatedCatalog()
    app = LedgerApp(CardLedgerConfig(load_default_packs=False), catalog_provider=gated)
    gated.cards = app.catalog.cards
    stock_catalog(app)
    await app.ledger.credit_wallet("u1", coins=100)

    task = asyncio.ensure_future(app.store.purchase_pack("u1", "basic"))
    await gated.entered.wait()
    task.cancel()
    await asyncio.sleep(0)
    gated.gate.set()

    with pytest.raises(asyncio.CancelledError):
        await task

    assert (await app.ledger.wallet("u1")).coins == 0
    inventory = await app.ledger.inventory("u1")
    assert sum(item.quantity for item in inventory) == 3


@pytest.mark.asyncio()
async def test_sell_round_trip(store_app):
    sold = []

    async def listener(payload):
        sold.append(payload)

    store_app.event_bus.subscribe(CARDS_SOLD, listener)
    await store_app.ledger.register_card_award("u1", CardType.CREATURE, "creature_comum_0", Rarity.COMUM, 3)

    result = await store_app.store.sell_cards(
        "u1",
        [
            SaleItem(CardType.CREATURE, "creature_comum_0", 2),
            SaleItem(CardType.CREATURE, "creature_comum_0"),
        ],
    )

    assert result.sold_count == 3
    assert result.coins_earned == 60
    assert result.wallet.coins == 60
    assert await store_app.ledger.inventory("u1") == []
    assert sold == [{"user_id": "u1", "sold_count": 3, "coins_earned": 60}]


@pytest.mark.asyncio()
async def test_sell_is_all_or_nothing(store_app):
    await store_app.ledger.register_card_award("u1", CardType.CREATURE, "creature_rara_0", Rarity.RARA, 1)

    with pytest.raises(CardNotFoundInInventoryError):
        await store_app.store.sell_cards(
            "u1",
            [
                SaleItem(CardType.CREATURE, "creature_rara_0"),
                SaleItem(CardType.LOCATION, "location_rara_0"),
            ],
        )
    with pytest.raises(InvalidQuantityError):
        await store_app.store.sell_cards("u1", [SaleItem(CardType.CREATURE, "creature_rara_0", 2)])
    with pytest.raises(InvalidQuantityError):
        await store_app.store.sell_cards("u1", [])
    with pytest.raises(InvalidQuantityError):
        await store_app.store.sell_cards("u1", [SaleItem(CardType.CREATURE, "creature_rara_0", 0)])

    inventory = await store_app.ledger.inventory("u1")
    assert [(item.card_id, item.quantity) for item in inventory] == [("creature_rara_0", 1)]
    assert (await store_app.ledger.wallet("u1")).coins == 0


@pytest.mark.asyncio()
async def test_listing_reports_prices_and_wallet(store_app):
    await store_app.ledger.credit_wallet("u1", coins=10, diamonds=3)
    listing = await store_app.store.list_packs_for_user("u1")

    assert listing.wallet.as_dict() == {"coins": 10, "diamonds": 3}
    premium = next(entry for entry in listing.packs if entry.pack.pack_id == "premium")
    assert [option.currency for option in premium.prices] == [Currency.DIAMONDS, Currency.COINS]
    assert premium.limits[0].window.value == "weekly"
    assert premium.purchasable is True


async def broken_listener(payload):
    raise RuntimeError("listener down")


@pytest.mark.asyncio()
async def test_failing_level_up_listener_keeps_the_purchase(store_app, caplog):
    purchased = []

    async def listener(payload):
        purchased.append(payload)

    store_app.event_bus.subscribe(LEVEL_UP, broken_listener)
    store_app.event_bus.subscribe(PACK_PURCHASED, listener)
    await store_app.ledger.apply_progression_event(
        "u1", ProgressionChange(source=EventSource.BATTLE_VICTORY, xp_delta=90)
    )
    await store_app.ledger.credit_wallet("u1", coins=100)

    with caplog.at_level("ERROR"):
        result = await store_app.store.purchase_pack("u1", "basic")

    assert result.progression.level == 2
    assert result.wallet.coins == 0
    assert (await store_app.ledger.wallet("u1")).coins == 0
    assert "shop_purchase_refund" not in sources(store_app)
    assert purchased[0]["pack_id"] == "basic"
    assert any("listener" in record.getMessage().lower() for record in caplog.records)


@pytest.mark.asyncio()
async def test_failing_purchase_listener_does_not_fail_the_purchase(store_app):
    store_app.event_bus.subscribe(PACK_PURCHASED, broken_listener)
    await store_app.ledger.credit_wallet("u1", coins=100)

    result = await store_app.store.purchase_pack("u1", "basic")

    assert len(result.cards) == 3
    assert sources(store_app).count("shop_purchase_refund") == 0


@pytest.mark.asyncio()
async def test_failing_refund_listener_still_reports_typed_error(store_app):
    store_app.event_bus.subscribe(PACK_REFUNDED, broken_listener)
    await store_app.ledger.credit_wallet("u1", coins=50)

    with pytest.raises(ChargedAndRefundedError) as excinfo:
        await store_app.store.purchase_pack("u1", "attacks")

    assert excinfo.value.refunded is True
    assert (await store_app.ledger.wallet("u1")).coins == 50
