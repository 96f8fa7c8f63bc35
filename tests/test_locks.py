"""Keyed asyncio lock tests."""

import asyncio

import pytest

from diffit.errors.exceptions import PromotionConflict
from diffit.services.locks import KeyedLocks


@pytest.mark.asyncio
async def test_hold_serialises_same_key():
    locks = KeyedLocks()
    order = []

    async def worker(tag: str):
        async with locks.hold("build"):
            order.append(f"{tag}-in")
            await asyncio.sleep(0.01)
            order.append(f"{tag}-out")

    await asyncio.gather(worker("a"), worker("b"))
    assert order in (["a-in", "a-out", "b-in", "b-out"], ["b-in", "b-out", "a-in", "a-out"])
    assert len(locks) == 0


@pytest.mark.asyncio
async def test_hold_nowait_fails_fast_when_busy():
    locks = KeyedLocks()
    entered = asyncio.Event()
    release = asyncio.Event()

    async def holder():
        async with locks.hold_nowait("tuple", PromotionConflict):
            entered.set()
            await release.wait()

    task = asyncio.create_task(holder())
    await entered.wait()
    with pytest.raises(PromotionConflict):
        async with locks.hold_nowait("tuple", PromotionConflict):
            pass
    release.set()
    await task

    async with locks.hold_nowait("tuple", PromotionConflict):
        assert locks.locked("tuple")
    assert not locks.locked("tuple")


@pytest.mark.asyncio
async def test_independent_keys_do_not_block():
    locks = KeyedLocks()
    async with locks.hold("a"):
        async with locks.hold_nowait("b", PromotionConflict):
            assert locks.locked("a") and locks.locked("b")
