import asyncio

import pytest

from deployd.locks import ProjectLocks


@pytest.mark.asyncio
async def test_same_project_is_serialized():
    locks = ProjectLocks()
    events = []

    async def critical(name):
        async with locks.hold(1):
            events.append(f"{name}-in")
            await asyncio.sleep(0.01)
            events.append(f"{name}-out")

    await asyncio.gather(critical("a"), critical("b"))

    assert events == ["a-in", "a-out", "b-in", "b-out"]


@pytest.mark.asyncio
async def test_different_projects_do_not_block():
    locks = ProjectLocks()

    async with locks.hold(1):
        assert locks.is_locked(1)
        async with locks.hold(2):
            assert locks.is_locked(2)


@pytest.mark.asyncio
async def test_locks_released_when_unused():
    locks = ProjectLocks()

    async with locks.hold(1):
        assert len(locks) == 1

    assert len(locks) == 0
    assert not locks.is_locked(1)


@pytest.mark.asyncio
async def test_lock_released_on_error():
    locks = ProjectLocks()

    with pytest.raises(RuntimeError):
        async with locks.hold(1):
            raise RuntimeError("publish failed")

    assert not locks.is_locked(1)
    assert len(locks) == 0
