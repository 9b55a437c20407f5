"""Access to workload cluster APIs.

The management cluster stores an API client certificate per workload cluster
(``<cluster-id>-api`` in the certificates namespace). A provider turns that
certificate plus the cluster's control-plane endpoint into a resource store
for the workload cluster.
"""

import asyncio
import shutil
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path

import urllib3
from kubernetes import client as k8s_client
from kubernetes.client.exceptions import ApiException

from capi_migration.client.exceptions import (
    MissingInputError,
    WorkloadClusterUnavailableError,
)
from capi_migration.client.kubernetes_store import KubernetesResourceStore
from capi_migration.client.objects import Resource, get_path, name_of, secret_value
from capi_migration.client.registry import ResourceRegistry
from capi_migration.client.store import ResourceStore
from capi_migration.utils.logging import get_logger

logger = get_logger(__name__)

API_CERTS_FIELDS = ("ca", "crt", "key")


def api_certs_secret_name(cluster_id: str) -> str:
    return f"{cluster_id}-api"


def control_plane_endpoint(cluster: Resource) -> tuple[str, int]:
    """Return ``(host, port)`` from ``spec.controlPlaneEndpoint``.

    Raises:
        WorkloadClusterUnavailableError: If no endpoint is published yet
    """
    host = get_path(cluster, "spec.controlPlaneEndpoint.host") or ""
    port = get_path(cluster, "spec.controlPlaneEndpoint.port") or 443
    if not host:
        raise WorkloadClusterUnavailableError(
            f"cluster {name_of(cluster)} has no control plane endpoint yet"
        )
    return host, int(port)


class WorkloadClusterClientProvider(ABC):
    """Builds a resource store for a workload cluster."""

    @abstractmethod
    async def store_for(self, cluster: Resource) -> ResourceStore:
        """Return a store bound to the cluster's API.

        Raises:
            WorkloadClusterUnavailableError: If the API cannot be reached yet
        """


class _CertificateBackedStore(KubernetesResourceStore):
    """Kubernetes store owning the temporary directory holding its client certificates."""

    def __init__(self, api_client, registry: ResourceRegistry, cert_dir: Path):
        super().__init__(api_client, registry)
        self.cert_dir = cert_dir

    async def close(self) -> None:
        await super().close()
        shutil.rmtree(self.cert_dir, ignore_errors=True)


class CertificateWorkloadClientProvider(WorkloadClusterClientProvider):
    """Uses the per-cluster API certificate stored on the management cluster."""

    def __init__(
        self,
        management: ResourceStore,
        registry: ResourceRegistry,
        certs_namespace: str = "giantswarm",
    ):
        self.management = management
        self.registry = registry
        self.certs_namespace = certs_namespace

    async def _read_certificates(self, cluster_id: str) -> dict[str, bytes]:
        secret_name = api_certs_secret_name(cluster_id)
        secret = await self.management.get_optional("Secret", secret_name, self.certs_namespace)
        if secret is None:
            raise WorkloadClusterUnavailableError(
                f"API certificate secret {self.certs_namespace}/{secret_name} does not exist yet"
            )

        material = {}
        for field in API_CERTS_FIELDS:
            value = secret_value(secret, field)
            if not value:
                raise MissingInputError(
                    f"API certificate secret {secret_name} has no {field!r} entry"
                )
            material[field] = value
        return material

    async def store_for(self, cluster: Resource) -> ResourceStore:
        cluster_id = name_of(cluster)
        host, port = control_plane_endpoint(cluster)
        material = await self._read_certificates(cluster_id)

        cert_dir = Path(tempfile.mkdtemp(prefix=f"capi-migration-{cluster_id}-"))
        paths = {}
        for field, value in material.items():
            path = cert_dir / field
            path.write_bytes(value)
            path.chmod(0o600)
            paths[field] = str(path)

        configuration = k8s_client.Configuration()
        configuration.host = f"https://{host}:{port}"
        configuration.ssl_ca_cert = paths["ca"]
        configuration.cert_file = paths["crt"]
        configuration.key_file = paths["key"]
        api_client = k8s_client.ApiClient(configuration)

        try:
            version = await asyncio.to_thread(k8s_client.VersionApi(api_client).get_code)
        except (ApiException, urllib3.exceptions.HTTPError, OSError) as e:
            api_client.close()
            shutil.rmtree(cert_dir, ignore_errors=True)
            raise WorkloadClusterUnavailableError(
                f"workload cluster {cluster_id} API at {configuration.host} is not reachable: {e}"
            ) from e

        logger.info(
            "workload_cluster_connected",
            cluster_id=cluster_id,
            host=configuration.host,
            git_version=getattr(version, "git_version", None),
        )
        return _CertificateBackedStore(api_client, self.registry, cert_dir)


class StaticWorkloadClientProvider(WorkloadClusterClientProvider):
    """Returns a pre-built store regardless of the cluster."""

    def __init__(self, store: ResourceStore):
        self.store = store

    async def store_for(self, cluster: Resource) -> ResourceStore:
        control_plane_endpoint(cluster)
        return self.store
