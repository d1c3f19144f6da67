"""Thread-pool wrapper around the blocking docker-py client."""

import asyncio
from concurrent.futures import ThreadPoolExecutor

import docker
import structlog

logger = structlog.get_logger(__name__)


class DockerClientWrapper:
    """
    Async facade over docker-py for image builds.
    Each daemon call runs on a dedicated pool so parallel builds never block the loop.
    """

    def __init__(self, base_url: str | None = None, max_workers: int = 5):
        # Connects (and raises DockerException) right away if the daemon is unreachable
        self._client = docker.DockerClient(base_url=base_url) if base_url else docker.from_env()
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="docker")
        logger.debug("docker_client_ready", base_url=base_url or "env")

    async def _run(self, func, *args, **kwargs):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, lambda: func(*args, **kwargs))

    async def build_image(self, path: str, tag: str, dockerfile: str = "Dockerfile") -> list[str]:
        """
        Build and tag an image from a local build context.

        Args:
            path: Build context directory
            tag: Image reference to apply, e.g. "deploy-12:1a2b3c4"
            dockerfile: Recipe path inside the context

        Returns:
            The builder's stream output, one chunk per entry

        Raises:
            docker.errors.BuildError: Build step failed (``build_log`` holds the output)
            docker.errors.APIError: Daemon rejected the request
        """

        def _build() -> list[str]:
            _image, chunks = self._client.images.build(
                path=path, tag=tag, dockerfile=dockerfile, rm=True
            )
            return [chunk["stream"] for chunk in chunks if "stream" in chunk]

        return await self._run(_build)

    async def close(self) -> None:
        self._executor.shutdown(wait=False)
        await asyncio.to_thread(self._client.close)
