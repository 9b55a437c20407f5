"""Fakes for the cloud and workload cluster seams."""

from dataclasses import replace

from capi_migration.client.inmemory import InMemoryResourceStore
from capi_migration.client.objects import Resource, clone
from capi_migration.client.registry import ResourceRegistry
from capi_migration.cloud.base import (
    InstanceGroup,
    InstanceGroupService,
    NetworkProbe,
    NodePoolPlacement,
    Provider,
)
from capi_migration.migration.base import Migrator
from capi_migration.migration.factory import MigratorFactory


class FakeInstanceGroupService(InstanceGroupService):
    """Instance groups held in memory; deletion marks a group as deleting."""

    provider = Provider.AZURE

    def __init__(
        self,
        control_plane: InstanceGroup | None = None,
        node_pools: dict[str, InstanceGroup] | None = None,
    ):
        self.control_plane = control_plane
        self.node_pools = dict(node_pools or {})
        self.deleted: list[str] = []

    async def get_control_plane_group(self, cluster_id: str) -> InstanceGroup | None:
        return self.control_plane

    async def get_node_pool_group(self, cluster_id: str, pool_id: str) -> InstanceGroup | None:
        return self.node_pools.get(pool_id)

    async def delete_group(self, group: InstanceGroup) -> None:
        self.deleted.append(group.name)
        if self.control_plane is not None and self.control_plane.name == group.name:
            self.control_plane = replace(self.control_plane, deleting=True)
        for pool_id, pool_group in self.node_pools.items():
            if pool_group.name == group.name:
                self.node_pools[pool_id] = replace(pool_group, deleting=True)


class FakeNetworkProbe(NetworkProbe):
    """Returns one security group and two subnets for every pool."""

    def __init__(self):
        self.calls: list[tuple[str, str]] = []

    async def node_pool_placement(self, cluster_id: str, pool_id: str) -> NodePoolPlacement:
        self.calls.append((cluster_id, pool_id))
        return NodePoolPlacement(
            security_group_id=f"sg-{pool_id}",
            subnet_ids=[f"subnet-{pool_id}-a", f"subnet-{pool_id}-b"],
            availability_zones=["eu-west-1a", "eu-west-1b"],
        )


class WorkloadStore(InMemoryResourceStore):
    """Workload cluster store whose pods reach ``pod_phase`` as soon as they are created."""

    def __init__(self, registry: ResourceRegistry, pod_phase: str | None = "Succeeded"):
        super().__init__(registry)
        self.pod_phase = pod_phase

    async def create(self, obj: Resource) -> Resource:
        if obj["kind"] == "Pod" and self.pod_phase is not None:
            obj = clone(obj)
            obj["status"] = {"phase": self.pod_phase}
        return await super().create(obj)


class FakeGroupsMigratorFactory(MigratorFactory):
    """Migrator factory whose migrators use the given instance group service."""

    def __init__(self, *args, instance_groups: InstanceGroupService, **kwargs):
        super().__init__(*args, **kwargs)
        self.instance_groups = instance_groups
        self.created: list[Migrator] = []

    async def new_migrator(self, cluster_id: str) -> Migrator:
        migrator = await super().new_migrator(cluster_id)
        migrator._instance_groups = self.instance_groups
        self.created.append(migrator)
        return migrator
