"""Domain event dispatch."""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Any, Awaitable, Callable, DefaultDict, Iterable, Mapping

logger = logging.getLogger(__name__)

EventPayload = Mapping[str, Any]
EventListener = Callable[[EventPayload], Awaitable[None]]

PACK_PURCHASED = "store.pack.purchased"
PACK_REFUNDED = "store.pack.refunded"
CARDS_SOLD = "store.cards.sold"
LEVEL_UP = "progression.level.up"
DAILY_LOGIN_GRANTED = "progression.daily_login.granted"
STARTER_GRANTED = "progression.starter.granted"


class EventBus:
    """Simple async pub-sub; publishing happens after the ledger commit.

    A failing listener is logged and the remaining listeners still run.
    """

    def __init__(self) -> None:
        self._listeners: DefaultDict[str, list[EventListener]] = defaultdict(list)

    def subscribe(self, event_name: str, listener: EventListener) -> None:
        self._listeners[event_name].append(listener)

    async def publish(self, event_name: str, payload: EventPayload) -> None:
        for listener in list(self._listeners.get(event_name, ())):
            try:
                await listener(payload)
            except Exception:
                logger.exception("Listener %r failed for event '%s'.", listener, event_name)

    def clear(self) -> None:
        self._listeners.clear()

    def listeners(self, event_name: str) -> Iterable[EventListener]:
        return tuple(self._listeners.get(event_name, ()))
