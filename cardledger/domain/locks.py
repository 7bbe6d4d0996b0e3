"""Per-user serialization of ledger mutations."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator

from .exceptions import StorageTimeoutError


class UserLockRegistry:
    """Keyed asyncio mutex: one in-flight mutation per user.

    Entries are dropped once nobody holds or waits on them, so the registry
    does not grow with the number of users ever seen.
    """

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, user_id: str, *, timeout: float | None = None) -> AsyncIterator[None]:
        lock = self._locks.setdefault(user_id, asyncio.Lock())
        self._users[user_id] = self._users.get(user_id, 0) + 1
        try:
            try:
                if timeout is None:
                    await lock.acquire()
                else:
                    await asyncio.wait_for(lock.acquire(), timeout)
            except asyncio.TimeoutError as exc:
                raise StorageTimeoutError(
                    f"Timed out after {timeout}s waiting for user {user_id}"
                ) from exc
            try:
                yield
            finally:
                lock.release()
        finally:
            self._users[user_id] -= 1
            if self._users[user_id] == 0:
                del self._users[user_id]
                self._locks.pop(user_id, None)

    def is_locked(self, user_id: str) -> bool:
        lock = self._locks.get(user_id)
        return bool(lock and lock.locked())

    def __len__(self) -> int:
        return len(self._locks)
