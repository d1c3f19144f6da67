"""In-memory FIFO of deployment ids waiting for a build worker.

Queued ids live only in this process: a crash drops whatever has not been
picked up yet. Deployments left ``pending`` that way need a new push.
"""

import asyncio
from collections import deque

from .logging_config import get_logger

logger = get_logger(__name__)


class BuildQueue:
    """Strict FIFO guarded by one lock, waiters woken on every enqueue.

    ``dequeue`` is the only blocking call. Cancelling the task blocked in it
    (which is how :class:`~deployd.workers.WorkerPool` stops) raises
    :class:`asyncio.CancelledError` and consumes nothing.
    """

    def __init__(self) -> None:
        self._items: deque[int] = deque()
        self._not_empty = asyncio.Condition()

    async def enqueue(self, deployment_id: int) -> None:
        """Append a deployment id; never waits for a consumer."""
        async with self._not_empty:
            self._items.append(deployment_id)
            self._not_empty.notify()
        logger.debug("deployment_enqueued", deployment_id=deployment_id, size=len(self._items))

    async def dequeue(self) -> int:
        """Remove and return the oldest id, waiting until one is available."""
        async with self._not_empty:
            while not self._items:
                try:
                    await self._not_empty.wait()
                except asyncio.CancelledError:
                    # Hand a notification we may have absorbed to the next waiter
                    if self._items:
                        self._not_empty.notify()
                    raise
            return self._items.popleft()

    def size(self) -> int:
        """Current length; advisory only."""
        return len(self._items)

    def __len__(self) -> int:
        return len(self._items)
