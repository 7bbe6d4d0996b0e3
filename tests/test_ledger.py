import asyncio

import pytest

from cardledger.domain.cards import CardType, Rarity
from cardledger.domain.events import DAILY_LOGIN_GRANTED, LEVEL_UP, EventBus
from cardledger.domain.exceptions import InvalidQuantityError, StorageTimeoutError
from cardledger.domain.ledger import EventSource, LedgerService, ProgressionChange
from cardledger.storage.memory import InMemoryPersistence, InMemorySession


@pytest.mark.asyncio()
async def test_daily_login_is_granted_once_per_utc_day(memory_app):
    granted = []

    async def listener(payload):
        granted.append(payload["day_key"])

    memory_app.event_bus.subscribe(DAILY_LOGIN_GRANTED, listener)

    first = await memory_app.ledger.register_daily_login_reward("u1")
    second = await memory_app.ledger.register_daily_login_reward("u1")

    assert first.granted is True
    assert first.wallet.coins == 5
    assert first.progression.xp_total == 5
    assert second.granted is False
    assert second.wallet.coins == 5

    memory_app.clock.advance(days=1)
    third = await memory_app.ledger.register_daily_login_reward("u1")
    assert third.granted is True
    assert third.wallet.coins == 10
    assert granted == ["2024-05-15", "2024-05-16"]

    events = memory_app.persistence.dump_events()
    assert [event.reference_id for event in events] == [
        "daily-login-2024-05-15",
        "daily-login-2024-05-16",
    ]


@pytest.mark.asyncio()
async def test_battle_victories_level_up(memory_app):
    levels = []

    async def listener(payload):
        levels.append((payload["previous_level"], payload["level"]))

    memory_app.event_bus.subscribe(LEVEL_UP, listener)

    first = await memory_app.ledger.register_battle_victory("u1")
    second = await memory_app.ledger.register_battle_victory("u1", reference_id="battle-2")

    assert first.progression.xp_total == 50
    assert first.leveled_up is False
    assert second.leveled_up is True
    assert second.progression.level == 2
    assert second.event.reference_id == "battle-2"
    assert second.event.metadata["xp"] == 50
    assert levels == [(1, 2)]


@pytest.mark.asyncio()
async def test_card_award_accumulates_quantity(memory_app):
    await memory_app.ledger.register_card_award("u1", CardType.MUGIC, "song", Rarity.RARA)
    result = await memory_app.ledger.register_card_award(
        "u1", CardType.MUGIC, "song", Rarity.RARA, quantity=2, reference_id="gift"
    )

    assert result.progression.xp_total == 28 * 3
    assert result.events[0].metadata == {"rule": "card_awarded", "rarity_xp": 28, "total_xp": 56}
    inventory = await memory_app.ledger.inventory("u1")
    assert [(item.card_id, item.quantity) for item in inventory] == [("song", 3)]

    with pytest.raises(InvalidQuantityError):
        await memory_app.ledger.register_card_award("u1", CardType.MUGIC, "song", Rarity.RARA, 0)


@pytest.mark.asyncio()
async def test_discard_removes_entry_at_zero(memory_app):
    await memory_app.ledger.register_card_award("u1", CardType.ATTACK, "slash", Rarity.INCOMUM, 2)

    partial = await memory_app.ledger.discard_user_card("u1", CardType.ATTACK, "slash")
    assert partial.coins_earned == 45
    assert [item.quantity for item in await memory_app.ledger.inventory("u1")] == [1]

    final = await memory_app.ledger.discard_user_card("u1", CardType.ATTACK, "slash")
    assert final.wallet.coins == 90
    assert await memory_app.ledger.inventory("u1") == []


@pytest.mark.asyncio()
async def test_negative_xp_is_clamped(memory_app):
    result = await memory_app.ledger.apply_progression_event(
        "u1", ProgressionChange(source=EventSource.BATTLE_VICTORY, xp_delta=-20)
    )
    assert result.progression.xp_total == 0
    assert result.event.xp_delta == 0


@pytest.mark.asyncio()
async def test_credit_wallet_is_recorded_in_the_ledger(memory_app):
    balance = await memory_app.ledger.credit_wallet(
        "u1", coins=30, diamonds=2, reference_id="support-42"
    )
    assert balance.as_dict() == {"coins": 30, "diamonds": 2}

    (event,) = memory_app.persistence.dump_events()
    assert event.source == "operator_credit"
    assert (event.coins_delta, event.diamonds_delta, event.xp_delta) == (30, 2, 0)
    assert event.reference_id == "support-42"
    assert event.metadata["reason"] == "operator"
    assert (await memory_app.ledger.progression("u1")).xp_total == 0

    with pytest.raises(InvalidQuantityError):
        await memory_app.ledger.credit_wallet("u1", coins=0, diamonds=-4)


@pytest.mark.asyncio()
async def test_overview_lists_recent_events_newest_first(memory_app):
    for _ in range(4):
        await memory_app.ledger.register_battle_victory("u1")
    await memory_app.ledger.register_daily_login_reward("u1")
    memory_app.ledger.recent_events_limit = 3

    overview = await memory_app.ledger.overview("u1")

    assert overview.progression.xp_total == 205
    assert overview.wallet.coins == 5
    assert len(overview.recent_events) == 3
    assert overview.recent_events[0].source == "daily_login"


class SlowSession(InMemorySession):
    async def get_or_create_wallet(self, user_id, now):
        await asyncio.sleep(1)
        return await super().get_or_create_wallet(user_id, now)


@pytest.mark.asyncio()
async def test_slow_storage_times_out():
    persistence = InMemoryPersistence()
    persistence.session_class = SlowSession
    ledger = LedgerService(persistence, storage_timeout=0.01)

    with pytest.raises(StorageTimeoutError):
        await ledger.wallet("u1")
    assert persistence.dump_events() == []
    assert not ledger.locks.is_locked("u1")


@pytest.mark.asyncio()
async def test_event_bus_keeps_going_after_a_failing_listener(caplog):
    bus = EventBus()
    seen = []

    async def broken(payload):
        raise RuntimeError("listener down")

    async def healthy(payload):
        seen.append(payload["user_id"])

    bus.subscribe(LEVEL_UP, broken)
    bus.subscribe(LEVEL_UP, healthy)

    with caplog.at_level("ERROR"):
        await bus.publish(LEVEL_UP, {"user_id": "u1"})

    assert seen == ["u1"]
    assert any(record.exc_info for record in caplog.records)


@pytest.mark.asyncio()
async def test_failing_level_up_listener_does_not_undo_the_event(memory_app):
    async def broken(payload):
        raise RuntimeError("listener down")

    memory_app.event_bus.subscribe(LEVEL_UP, broken)
    await memory_app.ledger.register_battle_victory("u1")
    result = await memory_app.ledger.register_battle_victory("u1")

    assert result.leveled_up
    assert len(memory_app.persistence.dump_events()) == 2
