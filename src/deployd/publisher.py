"""Workload publisher: make an image reachable at a project hostname.

Three resources are kept per project, all named ``project-<id>``:

* process group - runs the image (a Kubernetes Deployment)
* internal endpoint - stable in-cluster address (a Service)
* external route - binds the hostname to the endpoint (an Ingress)

The name depends on the project only, so each redeploy updates the same
resources in place. Creation is attempted first and an "already exists"
conflict falls back to an update. The three steps are not transactional:
if the route fails after the process group was updated, the new image runs
but the error is raised and nothing is rolled back.
"""

from dataclasses import dataclass, field
from typing import Protocol

from .logging_config import get_logger
from .models import Deployment

logger = get_logger(__name__)

DEFAULT_CONTAINER_PORT = 8080
DEFAULT_SERVICE_PORT = 80


class ResourceExistsError(Exception):
    """Raised by a publish target when a resource to create already exists."""


class PublishError(Exception):
    """Raised when a workload resource could not be created or updated."""

    def __init__(self, resource: str, name: str, cause: Exception):
        self.resource = resource
        self.name = name
        self.cause = cause
        super().__init__(f"failed to publish {resource} '{name}': {cause}")


@dataclass
class WorkloadSpec:
    """Everything a publish target needs to run and expose one project."""

    name: str
    namespace: str
    image: str
    hostname: str
    env: dict[str, str] = field(default_factory=dict)
    container_port: int = DEFAULT_CONTAINER_PORT
    service_port: int = DEFAULT_SERVICE_PORT
    replicas: int = 1
    labels: dict[str, str] = field(default_factory=dict)

    @property
    def selector(self) -> dict[str, str]:
        return {"app": self.name}


@dataclass
class PublishedWorkload:
    name: str
    namespace: str
    hostname: str
    image: str


class PublishTarget(Protocol):
    """Create/update operations for the three resource kinds.

    ``create_*`` raises :class:`ResourceExistsError` on a name conflict.
    """

    async def create_process_group(self, spec: WorkloadSpec) -> None: ...

    async def update_process_group(self, spec: WorkloadSpec) -> None: ...

    async def create_endpoint(self, spec: WorkloadSpec) -> None: ...

    async def update_endpoint(self, spec: WorkloadSpec) -> None: ...

    async def create_route(self, spec: WorkloadSpec) -> None: ...

    async def update_route(self, spec: WorkloadSpec) -> None: ...


def workload_name(project_id: int) -> str:
    """Resource name shared by every deployment of a project."""
    return f"project-{project_id}"


class WorkloadPublisher:
    """Creates or updates the process group, endpoint and route of a project."""

    def __init__(
        self,
        target: PublishTarget,
        namespace: str = "default",
        container_port: int = DEFAULT_CONTAINER_PORT,
        service_port: int = DEFAULT_SERVICE_PORT,
    ):
        self.target = target
        self.namespace = namespace
        self.container_port = container_port
        self.service_port = service_port

    def build_spec(
        self,
        image_ref: str,
        hostname: str,
        deployment: Deployment,
        env: dict[str, str] | None = None,
    ) -> WorkloadSpec:
        name = workload_name(deployment.project_id)
        return WorkloadSpec(
            name=name,
            namespace=self.namespace,
            image=image_ref,
            hostname=hostname,
            env={"PORT": str(self.container_port), **(env or {})},
            container_port=self.container_port,
            service_port=self.service_port,
            labels={
                "app": name,
                "deployd/project-id": str(deployment.project_id),
                "deployd/deployment-id": str(deployment.id),
            },
        )

    async def publish(
        self,
        image_ref: str,
        hostname: str,
        deployment: Deployment,
        env: dict[str, str] | None = None,
    ) -> PublishedWorkload:
        """Roll ``image_ref`` out for the deployment's project at ``hostname``.

        Raises:
            PublishError: a resource failed for a reason other than already existing.
        """
        spec = self.build_spec(image_ref, hostname, deployment, env)
        logger.info(
            "workload_publish_started",
            deployment_id=deployment.id,
            workload=spec.name,
            namespace=spec.namespace,
            image=image_ref,
            hostname=hostname,
        )

        await self._create_or_update(
            "process group", spec, self.target.create_process_group, self.target.update_process_group
        )
        await self._create_or_update(
            "endpoint", spec, self.target.create_endpoint, self.target.update_endpoint
        )
        await self._create_or_update(
            "route", spec, self.target.create_route, self.target.update_route
        )

        logger.info("workload_published", deployment_id=deployment.id, workload=spec.name)
        return PublishedWorkload(
            name=spec.name, namespace=spec.namespace, hostname=hostname, image=image_ref
        )

    async def _create_or_update(self, resource: str, spec: WorkloadSpec, create, update) -> None:
        try:
            await create(spec)
            logger.debug("workload_resource_created", resource=resource, workload=spec.name)
            return
        except ResourceExistsError:
            logger.debug("workload_resource_exists", resource=resource, workload=spec.name)
        except Exception as e:
            logger.error(
                "workload_resource_failed",
                resource=resource,
                workload=spec.name,
                action="create",
                error=str(e),
            )
            raise PublishError(resource, spec.name, e) from e

        try:
            await update(spec)
        except Exception as e:
            logger.error(
                "workload_resource_failed",
                resource=resource,
                workload=spec.name,
                action="update",
                error=str(e),
            )
            raise PublishError(resource, spec.name, e) from e
        logger.debug("workload_resource_updated", resource=resource, workload=spec.name)
