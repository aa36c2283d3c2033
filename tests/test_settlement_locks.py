import asyncio

import pytest


@pytest.mark.asyncio
async def test_same_pot_serializes_and_key_is_dropped_after(locks):
    order = []

    async def settle(name):
        async with locks.hold(1, 1):
            order.append(f"{name} start")
            await asyncio.sleep(0.01)
            order.append(f"{name} end")

    await asyncio.gather(settle('a'), settle('b'), settle('c'))

    assert order == ['a start', 'a end', 'b start', 'b end', 'c start', 'c end']
    assert locks._locks == {}
    assert locks._users == {}


@pytest.mark.asyncio
async def test_different_pots_do_not_block_each_other(locks):
    async with locks.hold(1, 1):
        await asyncio.wait_for(_enter_and_leave(locks, 1, 2), timeout=1)
        assert list(locks._locks) == [(1, 1)]

    assert locks._locks == {}


@pytest.mark.asyncio
async def test_key_released_when_body_raises(locks):
    with pytest.raises(RuntimeError):
        async with locks.hold(3, 1):
            raise RuntimeError("boom")

    assert locks._locks == {}
    async with locks.hold(3, 1):
        assert list(locks._locks) == [(3, 1)]


async def _enter_and_leave(locks, event_id, medal_id):
    async with locks.hold(event_id, medal_id):
        pass
