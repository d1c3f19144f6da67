"""Per-project advisory locks for the allocate + publish step."""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager


class ProjectLocks:
    """In-memory map of project id -> lock.

    Two workers holding deployments of the same project take turns through
    hostname allocation and publishing, so the later one to acquire wins
    cleanly instead of interleaving writes. Builds themselves still run in
    parallel. Locks are process-local.
    """

    def __init__(self) -> None:
        self._locks: dict[int, asyncio.Lock] = {}
        self._holders: dict[int, int] = {}

    @asynccontextmanager
    async def hold(self, project_id: int) -> AsyncIterator[None]:
        lock = self._locks.setdefault(project_id, asyncio.Lock())
        self._holders[project_id] = self._holders.get(project_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._holders[project_id] -= 1
            if self._holders[project_id] == 0:
                # Nobody holds or waits on it any more
                del self._holders[project_id]
                del self._locks[project_id]

    def is_locked(self, project_id: int) -> bool:
        lock = self._locks.get(project_id)
        return lock is not None and lock.locked()

    def __len__(self) -> int:
        return len(self._locks)
