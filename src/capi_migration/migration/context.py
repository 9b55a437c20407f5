"""Per-invocation migration context and resource cache."""

from dataclasses import dataclass, field, fields
from typing import Any

from capi_migration.client.exceptions import MissingInputError
from capi_migration.client.objects import Resource
from capi_migration.client.store import ResourceStore
from capi_migration.client.workload import WorkloadClusterClientProvider
from capi_migration.cloud.base import Provider
from capi_migration.config import MigrationSettings


@dataclass(frozen=True)
class LegacyNodePool:
    """Provider-neutral view of one legacy node pool.

    Attributes:
        pool_id: Node pool ID as used in cloud tags and scale set names
        min_size: Lower autoscaling bound
        max_size: Upper autoscaling bound
        instance_type: EC2 instance type or Azure VM size
        replicas: Desired size of the new worker pool
        source: The legacy resource the pool was read from
    """

    pool_id: str
    min_size: int
    max_size: int
    instance_type: str
    replicas: int
    source: Resource = field(repr=False, compare=False, default_factory=dict)


@dataclass(frozen=True)
class ReleaseVersions:
    """Component versions of a Giant Swarm release, "v"-prefixed."""

    release: str
    kubernetes: str
    etcd: str
    containerlinux: str


@dataclass
class ClusterResources:
    """Resources read during one ``prepare`` call.

    Every field starts out empty; :meth:`require` raises a fatal input error
    when a consumer reads a field no read step populated.
    """

    cluster: Resource | None = None
    infra_cluster: Resource | None = None
    azure_config: Resource | None = None
    encryption_secret: Resource | None = None
    release: Resource | None = None
    release_versions: ReleaseVersions | None = None
    node_pools: list[LegacyNodePool] | None = None
    control_plane: Resource | None = None

    def require(self, name: str) -> Any:
        if name not in {f.name for f in fields(self)}:
            raise AttributeError(name)
        value = getattr(self, name)
        if value is None:
            raise MissingInputError(f"{name} has not been read for this migration")
        return value


@dataclass
class ClusterMigrationContext:
    """State owned by one migrator for one reconciliation call.

    The workload cluster store is built on first use, since the workload API
    may not be reachable when the context is created.
    """

    cluster_id: str
    provider: Provider
    management: ResourceStore
    workload_clients: WorkloadClusterClientProvider
    settings: MigrationSettings = field(default_factory=MigrationSettings)
    resources: ClusterResources = field(default_factory=ClusterResources)
    _workload: ResourceStore | None = field(default=None, repr=False)

    @property
    def namespace(self) -> str:
        return self.settings.namespace

    async def workload(self) -> ResourceStore:
        """Return the workload cluster store, connecting on first call.

        Raises:
            WorkloadClusterUnavailableError: If the workload API cannot be reached
        """
        if self._workload is None:
            cluster = self.resources.cluster
            if cluster is None:
                cluster = await self.management.get("Cluster", self.cluster_id, self.namespace)
            self._workload = await self.workload_clients.store_for(cluster)
        return self._workload

    async def close(self) -> None:
        if self._workload is not None:
            await self._workload.close()
            self._workload = None
