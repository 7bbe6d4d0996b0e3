"""Pytest fixtures for cardledger."""

from __future__ import annotations

from datetime import datetime, timezone
from random import Random

import pytest

from ..app import LedgerApp
from ..config import CardLedgerConfig
from ..domain.clock import FixedClock

DEFAULT_NOW = datetime(2024, 5, 15, 12, 0, tzinfo=timezone.utc)


@pytest.fixture()
def memory_app() -> LedgerApp:
    return app_fixture()


def app_fixture(
    bot_token: str = "test",
    *,
    now: datetime = DEFAULT_NOW,
    seed: int = 7,
    **kwargs,
) -> LedgerApp:
    """Build an in-memory app on a fixed clock and seeded RNG."""
    config = CardLedgerConfig(bot_token=bot_token, **kwargs)
    return LedgerApp(config, clock=FixedClock(now), rng=Random(seed))
