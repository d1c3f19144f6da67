"""Fixed-size pool of build workers consuming the build queue.

Each worker is an asyncio task that takes one deployment id at a time and
runs it through the pipeline to completion. Blocking Docker, Kubernetes and
filesystem work happens in thread pools inside the clients, so N workers
build N images at once.
"""

import asyncio

from .build_queue import BuildQueue
from .logging_config import bind_job_context, clear_job_context, get_logger
from .models import DeploymentStatus
from .pipeline import BuildPipeline
from .store import InvalidTransitionError, RecordNotFoundError, RecordStore

logger = get_logger(__name__)


class WorkerPool:
    """Runs ``size`` workers until :meth:`stop`.

    A job interrupted by ``stop`` is abandoned where it is; its deployment
    keeps whatever status it had reached (typically ``building``).
    """

    def __init__(
        self,
        queue: BuildQueue,
        store: RecordStore,
        pipeline: BuildPipeline,
        size: int = 3,
    ):
        if size < 1:
            raise ValueError("worker pool size must be at least 1")
        self.queue = queue
        self.store = store
        self.pipeline = pipeline
        self.size = size
        self._tasks: list[asyncio.Task] = []
        self._in_flight: dict[str, int] = {}

    @property
    def running(self) -> bool:
        return any(not task.done() for task in self._tasks)

    @property
    def in_flight(self) -> dict[str, int]:
        """Worker name -> deployment id currently being processed."""
        return dict(self._in_flight)

    def start(self) -> None:
        if self.running:
            return
        self._tasks = [
            asyncio.create_task(self._run(f"worker-{i}"), name=f"worker-{i}")
            for i in range(self.size)
        ]
        logger.info("worker_pool_started", size=self.size)

    async def stop(self) -> None:
        """Cancel every worker and wait until all of them have exited."""
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        self._in_flight.clear()
        logger.info("worker_pool_stopped")

    async def _run(self, worker_id: str) -> None:
        logger.info("worker_started", worker_id=worker_id)
        while True:
            try:
                deployment_id = await self.queue.dequeue()
                await self.process(worker_id, deployment_id)
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.exception("worker_loop_error", worker_id=worker_id, error=str(e))
        logger.info("worker_stopped", worker_id=worker_id)

    async def process(self, worker_id: str, deployment_id: int) -> None:
        """Run one job. Errors are logged and recorded, never raised."""
        self._in_flight[worker_id] = deployment_id
        bind_job_context(worker_id=worker_id, deployment_id=deployment_id)
        try:
            try:
                await self.store.transition_deployment(deployment_id, DeploymentStatus.BUILDING)
            except (InvalidTransitionError, RecordNotFoundError) as e:
                # Stale or duplicate queue entry
                logger.warning("job_skipped", reason=str(e))
                return

            logger.info("job_started")
            deployment = await self.pipeline.run(deployment_id)
            logger.info("job_finished", status=deployment.status)
        except Exception as e:
            logger.error("job_failed", error=str(e), error_type=type(e).__name__)
            await self._mark_failed(deployment_id)
        finally:
            self._finish(worker_id)

    async def _mark_failed(self, deployment_id: int) -> None:
        try:
            await self.store.fail_deployment(deployment_id)
        except Exception as e:
            logger.error("job_fail_record_error", error=str(e))

    def _finish(self, worker_id: str) -> None:
        self._in_flight.pop(worker_id, None)
        clear_job_context("worker_id", "deployment_id")
