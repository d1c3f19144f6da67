"""Controller assembly.

Everything is constructed here from :class:`~deployd.config.Settings` and
handed down explicitly; no component reaches for module-level state.
"""

import asyncio

import docker
from kubernetes.config import ConfigException
from sqlalchemy.ext.asyncio import AsyncEngine

from .build_queue import BuildQueue
from .clients.docker_ops import DockerClientWrapper
from .clients.image_builder import DockerImageBuilder, ImageBuilder, UnavailableImageBuilder
from .clients.kubernetes import KubernetesTarget, load_api_client
from .clients.source import GitSourceFetcher
from .config import Settings
from .database import create_engine, create_session_maker, init_models
from .hostnames import HostnameAllocator
from .ingestion import PushIngestion
from .locks import ProjectLocks
from .logging_config import get_logger
from .pipeline import BuildPipeline
from .projects import ProjectService
from .publisher import WorkloadPublisher
from .store import RecordStore
from .workers import WorkerPool

logger = get_logger(__name__)

_DRAIN_POLL_INTERVAL = 0.2


class Controller:
    """Owns the long-lived components and their start/stop order."""

    def __init__(
        self,
        settings: Settings,
        engine: AsyncEngine,
        store: RecordStore,
        queue: BuildQueue,
        pipeline: BuildPipeline,
        pool: WorkerPool,
        docker_client: DockerClientWrapper | None = None,
        kube_target: KubernetesTarget | None = None,
    ):
        self.settings = settings
        self.engine = engine
        self.store = store
        self.queue = queue
        self.pipeline = pipeline
        self.pool = pool
        self.ingestion = PushIngestion(store, queue, settings.webhook_secret)
        self.projects = ProjectService(store)
        self.allocator = pipeline.allocator or HostnameAllocator(
            store, settings.base_domain, settings.public_url, settings.max_hostname_probes
        )
        self._docker = docker_client
        self._kube = kube_target

    @classmethod
    async def create(cls, settings: Settings) -> "Controller":
        """Connect to the record store, Docker and the cluster, and wire it all up.

        Docker and the cluster are optional at startup: without Docker every
        build fails with the connection error; without a cluster images are
        built but deployments stop at ``deploying``.
        """
        engine = create_engine(settings.database_url)
        await init_models(engine)
        store = RecordStore(create_session_maker(engine))
        queue = BuildQueue()

        docker_client = None
        image_builder: ImageBuilder
        try:
            docker_client = DockerClientWrapper(base_url=settings.docker_host)
            image_builder = DockerImageBuilder(docker_client)
        except docker.errors.DockerException as e:
            logger.warning("docker_unavailable", error=str(e))
            image_builder = UnavailableImageBuilder(str(e))

        allocator = HostnameAllocator(
            store,
            base_domain=settings.base_domain,
            public_url=settings.public_url,
            max_probes=settings.max_hostname_probes,
        )

        kube_target = None
        publisher = None
        if settings.publish_enabled:
            try:
                kube_target = KubernetesTarget(load_api_client(settings.kubeconfig))
                publisher = WorkloadPublisher(
                    kube_target,
                    namespace=settings.kube_namespace,
                    container_port=settings.container_port,
                    service_port=settings.service_port,
                )
            except (ConfigException, OSError) as e:
                logger.warning("kubernetes_unavailable", error=str(e))

        pipeline = BuildPipeline(
            store,
            GitSourceFetcher(),
            image_builder,
            build_root=settings.build_root,
            image_prefix=settings.image_prefix,
            allocator=allocator if publisher is not None else None,
            publisher=publisher,
            locks=ProjectLocks(),
            default_env=settings.default_env,
            keep_build_dirs=settings.keep_build_dirs,
        )
        pool = WorkerPool(queue, store, pipeline, size=settings.worker_count)

        logger.info(
            "controller_created",
            database_url=engine.url.render_as_string(hide_password=True),
            workers=settings.worker_count,
            docker=docker_client is not None,
            publishing=pipeline.publishing_enabled,
        )
        return cls(
            settings,
            engine,
            store,
            queue,
            pipeline,
            pool,
            docker_client=docker_client,
            kube_target=kube_target,
        )

    def start(self) -> None:
        self.settings.build_root.mkdir(parents=True, exist_ok=True)
        self.pool.start()

    async def wait_until_idle(self) -> None:
        """Return once the queue is empty and no worker holds a job."""
        while self.queue.size() or self.pool.in_flight:
            await asyncio.sleep(_DRAIN_POLL_INTERVAL)

    async def stop(self) -> None:
        await self.pool.stop()
        if self._kube is not None:
            await self._kube.close()
        if self._docker is not None:
            await self._docker.close()
        await self.engine.dispose()
        logger.info("controller_stopped")
