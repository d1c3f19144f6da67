"""Build pipeline: one dequeued deployment from source to running workload.

Steps, strictly in order on the calling worker:

1. create the Build record
2. fetch the source at the deployment's branch
3. resolve a recipe (explicit Dockerfile or detected project type)
4. build the image
5. record the successful build and move the deployment to ``deploying``
6. allocate the hostname and publish, if publishing is configured

A failure in 2-4 fails the Build (error text as its log) and the
deployment. A failure in 6 fails the deployment. Both are re-raised.
"""

import asyncio
from pathlib import Path
import shutil

from .clients.image_builder import ImageBuildError, ImageBuilder, image_tag_for
from .clients.source import SourceFetcher
from .hostnames import HostnameAllocator
from .locks import ProjectLocks
from .logging_config import get_logger
from .models import BuildStatus, Deployment, DeploymentStatus
from .publisher import WorkloadPublisher
from .recipes import resolve_recipe
from .store import RecordStore

logger = get_logger(__name__)


class BuildFailedError(Exception):
    """Raised when fetching, recipe resolution or the image build fails."""

    def __init__(self, deployment_id: int, cause: Exception):
        self.deployment_id = deployment_id
        self.cause = cause
        super().__init__(f"build failed for deployment {deployment_id}: {cause}")


def failure_log(error: Exception) -> str:
    """Log text stored on a failed Build."""
    if isinstance(error, ImageBuildError) and error.build_log:
        return f"{error}\n\n{error.build_log}"
    return str(error)


class BuildPipeline:
    """Runs the build and publish steps for one deployment at a time.

    Expects the deployment to be ``building`` already; the worker pool makes
    that transition when it picks the job up.
    """

    def __init__(
        self,
        store: RecordStore,
        fetcher: SourceFetcher,
        image_builder: ImageBuilder,
        build_root: Path,
        image_prefix: str = "deploy",
        allocator: HostnameAllocator | None = None,
        publisher: WorkloadPublisher | None = None,
        locks: ProjectLocks | None = None,
        default_env: dict[str, str] | None = None,
        keep_build_dirs: bool = False,
    ):
        self.store = store
        self.fetcher = fetcher
        self.image_builder = image_builder
        self.build_root = build_root
        self.image_prefix = image_prefix
        self.allocator = allocator
        self.publisher = publisher
        self.locks = locks or ProjectLocks()
        self.default_env = default_env or {}
        self.keep_build_dirs = keep_build_dirs

    @property
    def publishing_enabled(self) -> bool:
        return self.allocator is not None and self.publisher is not None

    async def run(self, deployment_id: int) -> Deployment:
        """Build and (if configured) publish a deployment.

        Returns:
            The deployment in its final state for this run: ``deployed``, or
            ``deploying`` when publishing is not configured.

        Raises:
            BuildFailedError: steps 2-4 failed.
            Exception: whatever allocation or publishing raised.
        """
        deployment = await self.store.get_deployment(deployment_id)
        build = await self.store.create_build(deployment_id)
        image_tag = image_tag_for(self.image_prefix, deployment.id, deployment.commit_sha)

        try:
            build_log = await self._build_image(deployment, image_tag)
        except Exception as e:
            logger.error(
                "build_failed",
                deployment_id=deployment_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            await self.store.complete_build(build.id, BuildStatus.FAILED, logs=failure_log(e))
            await self.store.fail_deployment(deployment_id)
            raise BuildFailedError(deployment_id, e) from e

        await self.store.complete_build(build.id, BuildStatus.SUCCESS, logs=build_log)
        deployment = await self.store.transition_deployment(
            deployment_id, DeploymentStatus.DEPLOYING, image_tag=image_tag
        )
        logger.info("build_succeeded", deployment_id=deployment_id, image_tag=image_tag)

        if not self.publishing_enabled:
            logger.warning("publish_skipped", deployment_id=deployment_id, reason="no publisher")
            return deployment

        return await self._publish(deployment, image_tag)

    async def _build_image(self, deployment: Deployment, image_tag: str) -> str:
        project = deployment.project
        workdir = self.build_root / str(deployment.id)
        try:
            await self.fetcher.fetch(project.repo_url, workdir, deployment.branch or project.branch)
            recipe = resolve_recipe(workdir)
            return await self.image_builder.build(workdir, image_tag, recipe.recipe_file)
        finally:
            if not self.keep_build_dirs:
                await asyncio.to_thread(shutil.rmtree, workdir, ignore_errors=True)

    async def _publish(self, deployment: Deployment, image_tag: str) -> Deployment:
        project_id = deployment.project_id
        try:
            async with self.locks.hold(project_id):
                hostname = await self.allocator.allocate(project_id, deployment.id)
                env = {**self.default_env, **await self.store.get_env_vars(project_id)}
                workload = await self.publisher.publish(image_tag, hostname, deployment, env)
        except Exception as e:
            logger.error(
                "publish_failed",
                deployment_id=deployment.id,
                error=str(e),
                error_type=type(e).__name__,
            )
            await self.store.fail_deployment(deployment.id)
            raise

        deployment = await self.store.transition_deployment(
            deployment.id,
            DeploymentStatus.DEPLOYED,
            hostname=hostname,
            namespace=workload.namespace,
            workload_name=workload.name,
        )
        logger.info(
            "deployment_live",
            deployment_id=deployment.id,
            hostname=hostname,
            url=self.allocator.full_url(hostname),
        )
        return deployment
