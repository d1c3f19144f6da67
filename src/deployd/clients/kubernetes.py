"""Kubernetes publish target: Deployment + Service + Ingress per project."""

import asyncio
from concurrent.futures import ThreadPoolExecutor
from http import HTTPStatus

from kubernetes import client, config
from kubernetes.client.rest import ApiException
import structlog

from ..publisher import ResourceExistsError, WorkloadSpec

logger = structlog.get_logger(__name__)

# Container sizing for every workload
RESOURCE_LIMITS = {"cpu": "500m", "memory": "512Mi"}
RESOURCE_REQUESTS = {"cpu": "100m", "memory": "128Mi"}


def load_api_client(kubeconfig: str = "") -> client.ApiClient:
    """API client from a kubeconfig file, or in-cluster config when empty."""
    configuration = client.Configuration()
    if kubeconfig:
        config.load_kube_config(config_file=kubeconfig, client_configuration=configuration)
    else:
        config.load_incluster_config(client_configuration=configuration)
    return client.ApiClient(configuration)


def deployment_manifest(spec: WorkloadSpec) -> client.V1Deployment:
    container = client.V1Container(
        name="app",
        image=spec.image,
        ports=[client.V1ContainerPort(container_port=spec.container_port)],
        env=[client.V1EnvVar(name=k, value=v) for k, v in sorted(spec.env.items())],
        resources=client.V1ResourceRequirements(
            limits=RESOURCE_LIMITS,
            requests=RESOURCE_REQUESTS,
        ),
    )
    return client.V1Deployment(
        metadata=client.V1ObjectMeta(name=spec.name, namespace=spec.namespace, labels=spec.selector),
        spec=client.V1DeploymentSpec(
            replicas=spec.replicas,
            selector=client.V1LabelSelector(match_labels=spec.selector),
            template=client.V1PodTemplateSpec(
                metadata=client.V1ObjectMeta(labels={**spec.labels, **spec.selector}),
                spec=client.V1PodSpec(containers=[container]),
            ),
        ),
    )


def service_manifest(spec: WorkloadSpec) -> client.V1Service:
    return client.V1Service(
        metadata=client.V1ObjectMeta(name=spec.name, namespace=spec.namespace, labels=spec.selector),
        spec=client.V1ServiceSpec(
            selector=spec.selector,
            ports=[client.V1ServicePort(port=spec.service_port, target_port=spec.container_port)],
        ),
    )


def ingress_manifest(spec: WorkloadSpec) -> client.V1Ingress:
    backend = client.V1IngressBackend(
        service=client.V1IngressServiceBackend(
            name=spec.name,
            port=client.V1ServiceBackendPort(number=spec.service_port),
        )
    )
    return client.V1Ingress(
        metadata=client.V1ObjectMeta(name=spec.name, namespace=spec.namespace, labels=spec.selector),
        spec=client.V1IngressSpec(
            rules=[
                client.V1IngressRule(
                    host=spec.hostname,
                    http=client.V1HTTPIngressRuleValue(
                        paths=[
                            client.V1HTTPIngressPath(path="/", path_type="Prefix", backend=backend)
                        ]
                    ),
                )
            ]
        ),
    )


class KubernetesTarget:
    """
    Async wrapper around the blocking kubernetes client.
    Create calls map HTTP 409 to ResourceExistsError; updates are merge patches.
    """

    def __init__(self, api_client: client.ApiClient, max_workers: int = 4):
        self._api_client = api_client
        self.apps = client.AppsV1Api(api_client)
        self.core = client.CoreV1Api(api_client)
        self.networking = client.NetworkingV1Api(api_client)
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="k8s")

    async def _run(self, func, *args, **kwargs):
        """Run blocking function in thread pool."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, lambda: func(*args, **kwargs))

    async def _create(self, kind: str, func, namespace: str, body) -> None:
        try:
            await self._run(func, namespace, body)
        except ApiException as e:
            if e.status == HTTPStatus.CONFLICT:
                raise ResourceExistsError(f"{kind} {body.metadata.name} already exists") from e
            raise
        logger.info("k8s_resource_created", kind=kind, name=body.metadata.name, namespace=namespace)

    async def _patch(self, kind: str, func, namespace: str, body) -> None:
        await self._run(func, body.metadata.name, namespace, body)
        logger.info("k8s_resource_updated", kind=kind, name=body.metadata.name, namespace=namespace)

    async def create_process_group(self, spec: WorkloadSpec) -> None:
        await self._create(
            "Deployment",
            self.apps.create_namespaced_deployment,
            spec.namespace,
            deployment_manifest(spec),
        )

    async def update_process_group(self, spec: WorkloadSpec) -> None:
        await self._patch(
            "Deployment",
            self.apps.patch_namespaced_deployment,
            spec.namespace,
            deployment_manifest(spec),
        )

    async def create_endpoint(self, spec: WorkloadSpec) -> None:
        await self._create(
            "Service", self.core.create_namespaced_service, spec.namespace, service_manifest(spec)
        )

    async def update_endpoint(self, spec: WorkloadSpec) -> None:
        await self._patch(
            "Service", self.core.patch_namespaced_service, spec.namespace, service_manifest(spec)
        )

    async def create_route(self, spec: WorkloadSpec) -> None:
        await self._create(
            "Ingress",
            self.networking.create_namespaced_ingress,
            spec.namespace,
            ingress_manifest(spec),
        )

    async def update_route(self, spec: WorkloadSpec) -> None:
        await self._patch(
            "Ingress",
            self.networking.patch_namespaced_ingress,
            spec.namespace,
            ingress_manifest(spec),
        )

    async def close(self) -> None:
        self._executor.shutdown(wait=False)
        await asyncio.to_thread(self._api_client.close)
