"""Per-pack purchase limits over UTC day and week windows."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Iterable, Mapping, Sequence

from ..storage.base import LedgerSession
from .clock import ensure_utc
from .packs import PackDefinition

PURCHASE_SOURCE = "shop_pack_purchase"
PURCHASE_REFERENCE_PREFIX = "store-pack:"


class LimitWindow(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"


@dataclass(slots=True, frozen=True)
class TimeWindow:
    start: datetime
    end: datetime

    def __contains__(self, moment: datetime) -> bool:
        return self.start <= ensure_utc(moment) < self.end


@dataclass(slots=True, frozen=True)
class PackLimit:
    window: LimitWindow
    max_purchases: int
    remaining_purchases: int


def utc_day_window(now: datetime) -> TimeWindow:
    start = ensure_utc(now).replace(hour=0, minute=0, second=0, microsecond=0)
    return TimeWindow(start=start, end=start + timedelta(days=1))


def utc_week_window(now: datetime) -> TimeWindow:
    """Monday 00:00 UTC through the following Monday."""
    day = utc_day_window(now).start
    start = day - timedelta(days=day.weekday())
    return TimeWindow(start=start, end=start + timedelta(days=7))


def is_purchasable(limits: Iterable[PackLimit]) -> bool:
    return all(limit.remaining_purchases > 0 for limit in limits)


class PurchaseLimiter:
    """Count past purchases in the ledger and derive what is left per window."""

    async def limits_for(
        self, session: LedgerSession, user_id: str, pack: PackDefinition, now: datetime
    ) -> list[PackLimit]:
        evaluated = await self.evaluate(session, user_id, [pack], now)
        return evaluated[pack.pack_id]

    async def evaluate(
        self,
        session: LedgerSession,
        user_id: str,
        packs: Sequence[PackDefinition],
        now: datetime,
    ) -> dict[str, list[PackLimit]]:
        daily_counts: Mapping[str, int] = Counter()
        weekly_counts: Mapping[str, int] = Counter()
        if any(pack.daily_limit is not None for pack in packs):
            daily_counts = await self._count(session, user_id, utc_day_window(now))
        if any(pack.weekly_limit is not None for pack in packs):
            weekly_counts = await self._count(session, user_id, utc_week_window(now))

        result: dict[str, list[PackLimit]] = {}
        for pack in packs:
            limits: list[PackLimit] = []
            if pack.daily_limit is not None:
                limits.append(
                    _limit(LimitWindow.DAILY, pack.daily_limit, daily_counts.get(pack.reference_id, 0))
                )
            if pack.weekly_limit is not None:
                limits.append(
                    _limit(LimitWindow.WEEKLY, pack.weekly_limit, weekly_counts.get(pack.reference_id, 0))
                )
            result[pack.pack_id] = limits
        return result

    async def _count(self, session: LedgerSession, user_id: str, window: TimeWindow) -> Counter[str]:
        events = await session.find_events(
            user_id,
            source=PURCHASE_SOURCE,
            reference_prefix=PURCHASE_REFERENCE_PREFIX,
            since=window.start,
            until=window.end,
        )
        return Counter(event.reference_id for event in events if event.reference_id)


def _limit(window: LimitWindow, max_purchases: int, used: int) -> PackLimit:
    return PackLimit(
        window=window,
        max_purchases=max_purchases,
        remaining_purchases=max(0, max_purchases - used),
    )
