"""Image builder: source directory + recipe file -> tagged image."""

from pathlib import Path
from typing import Protocol

import docker
import structlog

from .docker_ops import DockerClientWrapper

logger = structlog.get_logger(__name__)


class ImageBuildError(Exception):
    """Raised when the image build fails; carries the builder output."""

    def __init__(self, message: str, build_log: str = ""):
        self.build_log = build_log
        super().__init__(message)


class ImageBuilder(Protocol):
    async def build(self, source_dir: Path, image_tag: str, recipe_file: str) -> str:
        """Build ``image_tag`` from ``source_dir`` and return the build output."""
        ...


def image_tag_for(prefix: str, deployment_id: int, commit_sha: str) -> str:
    """Tag unique per deployment and commit, e.g. ``deploy-12:1a2b3c4``."""
    return f"{prefix}-{deployment_id}:{commit_sha[:7] or 'latest'}"


class DockerImageBuilder:
    """Builds images on a Docker daemon."""

    def __init__(self, docker_client: DockerClientWrapper):
        self.docker = docker_client

    async def build(self, source_dir: Path, image_tag: str, recipe_file: str) -> str:
        logger.info("image_build_started", image_tag=image_tag, recipe=recipe_file)
        try:
            lines = await self.docker.build_image(
                path=str(source_dir), tag=image_tag, dockerfile=recipe_file
            )
        except docker.errors.BuildError as e:
            output = "".join(
                chunk.get("stream", chunk.get("error", "")) for chunk in e.build_log or []
            )
            logger.error("image_build_failed", image_tag=image_tag, error=e.msg)
            raise ImageBuildError(f"Image build failed: {e.msg}", build_log=output) from e
        except docker.errors.APIError as e:
            logger.error("image_build_failed", image_tag=image_tag, error=str(e))
            raise ImageBuildError(f"Docker daemon error: {e}") from e

        logger.info("image_build_completed", image_tag=image_tag, lines=len(lines))
        return "".join(lines)


class UnavailableImageBuilder:
    """Stands in when no Docker daemon could be reached at startup.

    Every build fails with the startup error so deployments are marked
    failed instead of hanging.
    """

    def __init__(self, reason: str):
        self.reason = reason

    async def build(self, source_dir: Path, image_tag: str, recipe_file: str) -> str:
        raise ImageBuildError(f"Docker daemon unavailable: {self.reason}")
