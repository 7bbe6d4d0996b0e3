import asyncio

import pytest

from cardledger.domain.exceptions import StorageTimeoutError
from cardledger.domain.locks import UserLockRegistry


@pytest.mark.asyncio()
async def test_hold_serializes_same_user():
    registry = UserLockRegistry()
    order = []

    async def worker(tag: str) -> None:
        async with registry.hold("u1"):
            order.append(f"{tag}-start")
            await asyncio.sleep(0.01)
            order.append(f"{tag}-end")

    await asyncio.gather(worker("a"), worker("b"))
    assert order == ["a-start", "a-end", "b-start", "b-end"]
    assert len(registry) == 0


@pytest.mark.asyncio()
async def test_hold_times_out_and_cleans_up():
    registry = UserLockRegistry()
    async with registry.hold("u1"):
        assert registry.is_locked("u1")
        with pytest.raises(StorageTimeoutError):
            async with registry.hold("u1", timeout=0.01):
                pass
    assert not registry.is_locked("u1")
    assert len(registry) == 0


@pytest.mark.asyncio()
async def test_different_users_do_not_block():
    registry = UserLockRegistry()
    async with registry.hold("u1"):
        async with registry.hold("u2", timeout=0.01):
            assert len(registry) == 2
