"""Per-cluster migration state machine.

A :class:`Migrator` owns one :class:`ClusterMigrationContext` for the duration
of a single reconciliation call. Its phase is never stored; every call
derives it from live resources:

    NOT_STARTED -> PREPARING -> MIGRATING -> MIGRATED -> CLEANED_UP

Every operation is idempotent and may be called in any phase.
"""

from abc import ABC, abstractmethod
from dataclasses import replace
from enum import Enum

from capi_migration import keys
from capi_migration.client.ca_source import CertificateAuthoritySource
from capi_migration.client.exceptions import (
    MissingInputError,
    NotFoundError,
    NotMigratedError,
    NotPreparedError,
)
from capi_migration.client.objects import (
    Resource,
    finalizers_of,
    get_path,
    labels_of,
    metadata,
    name_of,
    namespace_of,
    object_reference,
)
from capi_migration.client.registry import ResourceRegistry
from capi_migration.cloud.base import InstanceGroupService, Provider
from capi_migration.migration.certificates import CertificateMigration
from capi_migration.migration.cleanup import CleanupResult, ReadinessGatedCleanup
from capi_migration.migration.context import ClusterMigrationContext, LegacyNodePool
from capi_migration.migration.legacy_masters import LegacyMasterStopper
from capi_migration.migration.rendering import TemplateRenderer
from capi_migration.migration.synthesis import (
    ResourceSynthesizer,
    release_name,
    release_versions,
)
from capi_migration.utils.logging import get_logger

logger = get_logger(__name__)

CONTROL_PLANE_KIND = "KubeadmControlPlane"
LEGACY_OPERATOR_LABELS = (keys.AWS_OPERATOR_VERSION_LABEL, keys.AZURE_OPERATOR_VERSION_LABEL)


class MigrationPhase(str, Enum):
    """Derived migration phase of a cluster."""

    NOT_STARTED = "NotStarted"
    PREPARING = "Preparing"
    MIGRATING = "Migrating"
    MIGRATED = "Migrated"
    CLEANED_UP = "CleanedUp"


def has_legacy_markers(obj: Resource) -> bool:
    """Whether legacy controllers still claim ``obj`` (version label or finalizer)."""
    labels = labels_of(obj)
    if any(label in labels for label in LEGACY_OPERATOR_LABELS):
        return True
    return any(keys.is_legacy_finalizer(f) for f in finalizers_of(obj))


def strip_legacy_markers(obj: Resource) -> bool:
    """Remove legacy operator labels and finalizers in place; returns True if changed."""
    meta = metadata(obj)
    changed = False

    labels = meta.get("labels") or {}
    for label in LEGACY_OPERATOR_LABELS:
        if label in labels:
            del labels[label]
            changed = True

    finalizers = meta.get("finalizers") or []
    kept = [f for f in finalizers if not keys.is_legacy_finalizer(f)]
    if len(kept) != len(finalizers):
        meta["finalizers"] = kept
        changed = True

    return changed


def is_control_plane_ready(control_plane: Resource) -> bool:
    if get_path(control_plane, "status.ready") is True:
        return True
    return (get_path(control_plane, "status.readyReplicas") or 0) >= 1


class Migrator(ABC):
    """Migration of one cluster; provider subclasses fill in resource shapes and cloud access.

    Args:
        ctx: Context for this invocation
        registry: Kinds known to the stores
        ca_source: CA material for clusters whose CA secret does not exist yet
        renderer: Template renderer
        instance_groups: Pre-built instance group service (tests); built lazily otherwise
    """

    provider: Provider
    infra_cluster_kind: str
    cloud_provider_name: str

    def __init__(
        self,
        ctx: ClusterMigrationContext,
        registry: ResourceRegistry,
        ca_source: CertificateAuthoritySource | None = None,
        renderer: TemplateRenderer | None = None,
        instance_groups: InstanceGroupService | None = None,
    ):
        self.ctx = ctx
        self.registry = registry
        self.ca_source = ca_source
        self.renderer = renderer or TemplateRenderer()
        self.synthesizer = ResourceSynthesizer(ctx, self.renderer, registry)
        self._instance_groups = instance_groups

    @property
    def cluster_id(self) -> str:
        return self.ctx.cluster_id

    @property
    def management(self):
        return self.ctx.management

    # Provider hooks

    @abstractmethod
    async def read_provider_resources(self) -> None:
        """Read provider-specific legacy resources into the cache."""

    @abstractmethod
    async def read_node_pools(self) -> list[LegacyNodePool]:
        """Read legacy node pools of the cluster."""

    @abstractmethod
    def network_cidr(self) -> str:
        """CIDR of the cluster's virtual network."""

    @abstractmethod
    def pods_cidr(self) -> str | None:
        """CIDR pods are addressed from, when the legacy cluster records one."""

    @abstractmethod
    def control_plane_machine_template(self) -> Resource:
        """Machine template for the new control-plane node."""

    @abstractmethod
    async def worker_machine_template(self, pool: LegacyNodePool) -> Resource:
        """Machine template for the workers replacing ``pool``."""

    @abstractmethod
    def worker_node_name(self) -> str:
        """Kubelet node name expression for new workers."""

    @abstractmethod
    async def build_instance_groups(self) -> InstanceGroupService:
        """Build the cloud service for legacy instance groups of this cluster."""

    def pre_kubeadm_commands(self) -> list[str]:
        """Commands the control-plane node runs before joining the legacy etcd."""
        return []

    def update_infra_cluster(self, infra_cluster: Resource) -> bool:
        """Adjust the infrastructure cluster for upstream controllers; True if changed."""
        return False

    async def instance_groups(self) -> InstanceGroupService:
        if self._instance_groups is None:
            self._instance_groups = await self.build_instance_groups()
        return self._instance_groups

    async def infra_cluster(self) -> Resource:
        """Cached infrastructure cluster, read through the Cluster when not cached yet."""
        resources = self.ctx.resources
        if resources.infra_cluster is None:
            if resources.cluster is None:
                resources.cluster = await self.read_cluster()
            resources.infra_cluster = await self.read_infra_cluster(resources.cluster)
        return resources.infra_cluster

    async def size_node_pools(self, pools: list[LegacyNodePool]) -> list[LegacyNodePool]:
        """Size new pools like the legacy groups they replace, or at their minimum when gone."""
        groups = await self.instance_groups()
        sized = []
        for pool in pools:
            group = await groups.get_node_pool_group(self.cluster_id, pool.pool_id)
            replicas = group.capacity if group is not None and not group.deleting else pool.min_size
            sized.append(replace(pool, replicas=replicas))
        return sized

    # Live state

    async def read_cluster(self) -> Resource:
        try:
            return await self.management.get("Cluster", self.cluster_id, self.ctx.namespace)
        except NotFoundError as e:
            raise MissingInputError(f"Cluster {self.cluster_id} not found") from e

    async def read_infra_cluster(self, cluster: Resource) -> Resource:
        ref = get_path(cluster, "spec.infrastructureRef") or {}
        if ref.get("kind") != self.infra_cluster_kind or not ref.get("name"):
            raise MissingInputError(
                f"Cluster {self.cluster_id} does not reference a {self.infra_cluster_kind}"
            )
        try:
            return await self.management.get(
                self.infra_cluster_kind, ref["name"], ref.get("namespace") or namespace_of(cluster)
            )
        except NotFoundError as e:
            raise MissingInputError(f"{self.infra_cluster_kind} {ref['name']} not found") from e

    def references_control_plane(self, cluster: Resource) -> bool:
        ref = get_path(cluster, "spec.controlPlaneRef") or {}
        return ref.get("kind") == CONTROL_PLANE_KIND and ref.get(
            "name"
        ) == keys.control_plane_name(self.cluster_id)

    async def _cutover_state(self) -> tuple[bool, bool]:
        """Return (control plane referenced, legacy markers gone)."""
        cluster = await self.read_cluster()
        if not self.references_control_plane(cluster):
            return False, not has_legacy_markers(cluster)
        infra = await self.read_infra_cluster(cluster)
        markers_gone = not has_legacy_markers(cluster) and not has_legacy_markers(infra)
        return True, markers_gone

    async def _control_plane_ready(self) -> bool:
        control_plane = await self.management.get_optional(
            CONTROL_PLANE_KIND, keys.control_plane_name(self.cluster_id), self.ctx.namespace
        )
        return control_plane is not None and is_control_plane_ready(control_plane)

    async def is_migrated(self) -> bool:
        """Upstream controllers own the cluster and its control plane is ready."""
        referenced, markers_gone = await self._cutover_state()
        if not (referenced and markers_gone):
            return False
        return await self._control_plane_ready()

    async def is_migrating(self) -> bool:
        """Cutover has been triggered but the new control plane is not ready yet."""
        referenced, markers_gone = await self._cutover_state()
        if not (referenced and markers_gone):
            return False
        return not await self._control_plane_ready()

    async def current_phase(self) -> MigrationPhase:
        referenced, markers_gone = await self._cutover_state()
        if not referenced:
            return MigrationPhase.NOT_STARTED
        if not markers_gone:
            return MigrationPhase.PREPARING
        if not await self._control_plane_ready():
            return MigrationPhase.MIGRATING
        if await self.legacy_groups_remaining():
            return MigrationPhase.MIGRATED
        return MigrationPhase.CLEANED_UP

    async def legacy_groups_remaining(self) -> bool:
        groups = await self.instance_groups()
        control_plane = await groups.get_control_plane_group(self.cluster_id)
        if control_plane is not None and not control_plane.deleting:
            return True
        for pool in await self.read_node_pools():
            group = await groups.get_node_pool_group(self.cluster_id, pool.pool_id)
            if group is not None and not group.deleting:
                return True
        return False

    # Operations

    async def prepare(self) -> None:
        """Run certificate re-keying, reads, synthesis, updates and legacy master shutdown."""
        logger.info("prepare_started", cluster_id=self.cluster_id, provider=self.provider.value)
        await self.migrate_certificates()
        await self.read_resources()
        await self.synthesize()
        await self.update_resources()
        await self.stop_legacy_masters()
        logger.info("prepare_finished", cluster_id=self.cluster_id)

    async def migrate_certificates(self) -> None:
        await CertificateMigration(
            self.management, self.registry, self.cluster_id, self.ctx.namespace, self.ca_source
        ).run()

    async def read_resources(self) -> None:
        resources = self.ctx.resources
        selector = keys.cluster_selector(self.cluster_id)

        resources.cluster = await self.management.list_one(
            "Cluster", self.ctx.namespace, labels=selector
        )
        resources.infra_cluster = await self.management.list_one(
            self.infra_cluster_kind, self.ctx.namespace, labels=selector
        )

        try:
            resources.encryption_secret = await self.management.get(
                "Secret", keys.encryption_secret_name(self.cluster_id), self.ctx.namespace
            )
        except NotFoundError as e:
            raise MissingInputError(
                f"encryption secret {keys.encryption_secret_name(self.cluster_id)} not found"
            ) from e

        version = labels_of(resources.cluster).get(keys.RELEASE_VERSION_LABEL)
        if not version:
            raise MissingInputError(
                f"Cluster {self.cluster_id} has no {keys.RELEASE_VERSION_LABEL} label"
            )
        try:
            resources.release = await self.management.get("Release", release_name(version))
        except NotFoundError as e:
            raise MissingInputError(f"Release {release_name(version)} not found") from e
        resources.release_versions = release_versions(resources.release)

        await self.read_provider_resources()
        resources.node_pools = await self.size_node_pools(await self.read_node_pools())
        logger.info(
            "legacy_resources_read",
            cluster_id=self.cluster_id,
            release=resources.release_versions.release,
            node_pools=[pool.pool_id for pool in resources.node_pools],
        )

    async def synthesize(self) -> None:
        """Create every missing target resource; existing ones are left untouched."""
        s = self.synthesizer
        upsert = self.management.create_or_get

        await upsert(s.encryption_config_secret())
        await upsert(s.proxy_config_secret(self.pods_cidr()))
        await upsert(s.custom_files_secret())

        machine_template = await upsert(self.control_plane_machine_template())
        control_plane = await upsert(
            s.control_plane(
                machine_template,
                self.cloud_provider_name,
                self.network_cidr(),
                self.pods_cidr(),
                self.pre_kubeadm_commands(),
            )
        )
        self.ctx.resources.control_plane = control_plane

        pools: list[LegacyNodePool] = self.ctx.resources.require("node_pools")
        for pool in pools:
            bootstrap = await upsert(
                s.worker_bootstrap_template(pool, self.cloud_provider_name, self.worker_node_name())
            )
            worker_template = await upsert(await self.worker_machine_template(pool))
            await upsert(s.machine_deployment(pool, bootstrap, worker_template))

    async def update_resources(self) -> None:
        """Point the Cluster at the control plane and adjust the infrastructure cluster."""
        resources = self.ctx.resources
        control_plane = resources.require("control_plane")
        cluster = resources.require("cluster")

        ref = object_reference(control_plane)
        if get_path(cluster, "spec.controlPlaneRef") != ref:
            cluster.setdefault("spec", {})["controlPlaneRef"] = ref
            resources.cluster = await self.management.update(cluster)
            logger.info(
                "cluster_control_plane_ref_set",
                cluster_id=self.cluster_id,
                control_plane=name_of(control_plane),
            )

        infra = resources.require("infra_cluster")
        if self.update_infra_cluster(infra):
            resources.infra_cluster = await self.management.update(infra)
            logger.info("infra_cluster_updated", cluster_id=self.cluster_id, kind=infra["kind"])

    async def stop_legacy_masters(self) -> None:
        workload = await self.ctx.workload()
        await LegacyMasterStopper(workload, self.ctx.settings).run()

    async def trigger_migration(self) -> None:
        """Drop legacy operator labels and finalizers so upstream controllers take over.

        Raises:
            NotPreparedError: If the Cluster does not reference the control plane yet
        """
        cluster = await self.read_cluster()
        if not self.references_control_plane(cluster):
            raise NotPreparedError(
                f"Cluster {self.cluster_id} does not reference its control plane; run prepare first"
            )
        infra = await self.read_infra_cluster(cluster)

        for obj in (cluster, infra):
            if strip_legacy_markers(obj):
                await self.management.update(obj)
                logger.info(
                    "legacy_markers_removed",
                    cluster_id=self.cluster_id,
                    kind=obj["kind"],
                    name=name_of(obj),
                )

    async def cleanup(self) -> CleanupResult:
        """Delete legacy instance groups once replacements are healthy.

        Raises:
            NotMigratedError: If the cluster has not finished migrating
        """
        if not await self.is_migrated():
            raise NotMigratedError(f"cluster {self.cluster_id} has not migrated yet")

        cleanup = ReadinessGatedCleanup(
            self.cluster_id,
            await self.instance_groups(),
            await self.ctx.workload(),
            await self.read_node_pools(),
            self.ctx.settings,
        )
        return await cleanup.run()

    async def close(self) -> None:
        await self.ctx.close()
