"""Readiness-gated removal of legacy instance groups.

Legacy infrastructure is deleted only once the new infrastructure replacing
it is observably healthy:

1. The legacy control-plane group goes once exactly one new control-plane
   node exists and is ready.
2. Legacy node pool groups go once the number of ready new workers is at
   least the sum of the capacities of the legacy groups still running.

Anything not ready yet raises a retryable error; the caller re-invokes
cleanup later.
"""

from dataclasses import dataclass, field

from capi_migration import keys
from capi_migration.client.exceptions import (
    NewMasterNotReadyError,
    TooManyMastersError,
    WorkersNotReadyError,
)
from capi_migration.client.objects import Resource, get_path, labels_of, name_of
from capi_migration.client.store import ResourceStore
from capi_migration.cloud.base import InstanceGroup, InstanceGroupService
from capi_migration.config import MigrationSettings
from capi_migration.migration.context import LegacyNodePool
from capi_migration.utils.logging import get_logger

logger = get_logger(__name__)

NODE_RUNNING_PHASE = "Running"


class NodeClassifier:
    """Splits workload cluster nodes into legacy, new control plane and new workers."""

    def __init__(self, settings: MigrationSettings):
        self.legacy_label = settings.legacy_node_label
        self.legacy_values = set(settings.legacy_node_label_values)

    def is_legacy(self, node: Resource) -> bool:
        return labels_of(node).get(self.legacy_label) in self.legacy_values

    def is_control_plane(self, node: Resource) -> bool:
        labels = labels_of(node)
        return (
            keys.NODE_ROLE_CONTROL_PLANE_LABEL in labels or keys.NODE_ROLE_MASTER_LABEL in labels
        )

    def new_control_plane(self, nodes: list[Resource]) -> list[Resource]:
        return [n for n in nodes if not self.is_legacy(n) and self.is_control_plane(n)]

    def new_workers(self, nodes: list[Resource]) -> list[Resource]:
        return [n for n in nodes if not self.is_legacy(n) and not self.is_control_plane(n)]


def is_node_ready(node: Resource) -> bool:
    """Ready condition is True, or the node reports the Running phase."""
    for condition in get_path(node, "status.conditions", []) or []:
        if condition.get("type") == "Ready":
            return condition.get("status") == "True"
    return get_path(node, "status.phase") == NODE_RUNNING_PHASE


@dataclass
class CleanupResult:
    """What one cleanup pass deleted."""

    deleted: list[str] = field(default_factory=list)
    control_plane_gone: bool = False
    workers_gone: bool = False

    @property
    def done(self) -> bool:
        return self.control_plane_gone and self.workers_gone


class ReadinessGatedCleanup:
    """Deletes legacy instance groups once their replacements are healthy."""

    def __init__(
        self,
        cluster_id: str,
        instance_groups: InstanceGroupService,
        workload: ResourceStore,
        node_pools: list[LegacyNodePool],
        settings: MigrationSettings,
    ):
        self.cluster_id = cluster_id
        self.instance_groups = instance_groups
        self.workload = workload
        self.node_pools = node_pools
        self.classifier = NodeClassifier(settings)
        self._nodes: list[Resource] | None = None

    async def nodes(self) -> list[Resource]:
        if self._nodes is None:
            self._nodes = await self.workload.list("Node")
        return self._nodes

    async def run(self) -> CleanupResult:
        result = CleanupResult()
        await self.cleanup_control_plane(result)
        await self.cleanup_workers(result)
        logger.info(
            "cleanup_pass_finished",
            cluster_id=self.cluster_id,
            deleted=result.deleted,
            done=result.done,
        )
        return result

    async def cleanup_control_plane(self, result: CleanupResult) -> None:
        group = await self.instance_groups.get_control_plane_group(self.cluster_id)
        if group is None or group.deleting:
            logger.debug("legacy_control_plane_gone", cluster_id=self.cluster_id)
            result.control_plane_gone = True
            return

        await self.require_new_master_ready()

        logger.info("deleting_legacy_control_plane", cluster_id=self.cluster_id, group=group.name)
        await self.instance_groups.delete_group(group)
        result.deleted.append(group.name)
        result.control_plane_gone = True

    async def require_new_master_ready(self) -> Resource:
        """Return the single new control-plane node if it is ready.

        Raises:
            NewMasterNotReadyError: If there is no new master or it is not ready
            TooManyMastersError: If more than one new master exists
        """
        masters = self.classifier.new_control_plane(await self.nodes())
        if not masters:
            raise NewMasterNotReadyError(
                f"no new control plane node found in cluster {self.cluster_id}"
            )
        if len(masters) > 1:
            raise TooManyMastersError(
                f"exactly one new control plane node expected in cluster {self.cluster_id}, "
                f"found {len(masters)}"
            )
        master = masters[0]
        if not is_node_ready(master):
            raise NewMasterNotReadyError(f"control plane node {name_of(master)} is not ready")
        return master

    async def remaining_legacy_groups(self) -> list[InstanceGroup]:
        groups = []
        for pool in self.node_pools:
            group = await self.instance_groups.get_node_pool_group(self.cluster_id, pool.pool_id)
            if group is not None and not group.deleting:
                groups.append(group)
        return groups

    async def cleanup_workers(self, result: CleanupResult) -> None:
        groups = await self.remaining_legacy_groups()
        if not groups:
            logger.debug("legacy_node_pools_gone", cluster_id=self.cluster_id)
            result.workers_gone = True
            return

        required = sum(group.capacity for group in groups)
        workers = self.classifier.new_workers(await self.nodes())
        ready = sum(1 for node in workers if is_node_ready(node))
        if ready < required:
            raise WorkersNotReadyError(
                f"{ready} new workers ready in cluster {self.cluster_id}, {required} required",
                ready=ready,
                required=required,
            )

        for group in groups:
            logger.info("deleting_legacy_node_pool", cluster_id=self.cluster_id, group=group.name)
            await self.instance_groups.delete_group(group)
            result.deleted.append(group.name)
        result.workers_gone = True
