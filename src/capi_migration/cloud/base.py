"""Cloud-side lookups the migration needs.

Only two things are asked of a cloud: find the instance groups (auto scaling
groups, scale sets) that back legacy masters and node pools, and delete them.
AWS additionally resolves the network placement of legacy node pools.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum


class Provider(str, Enum):
    """Infrastructure provider of a cluster."""

    AWS = "aws"
    AZURE = "azure"


@dataclass(frozen=True)
class InstanceGroup:
    """A cloud-managed group of VMs backing one node role.

    Attributes:
        name: Provider-side name (ASG name, VMSS name)
        capacity: Desired number of instances
        deleting: Whether the provider is already tearing the group down
    """

    name: str
    capacity: int
    deleting: bool = False


class InstanceGroupService(ABC):
    """Lookup and deletion of legacy instance groups.

    Lookups return ``None`` when the group does not exist. Not-found is how
    cleanup learns that legacy infrastructure is already gone.
    """

    provider: Provider

    @abstractmethod
    async def get_control_plane_group(self, cluster_id: str) -> InstanceGroup | None:
        """Return the legacy control-plane group of the cluster, if any."""

    @abstractmethod
    async def get_node_pool_group(self, cluster_id: str, pool_id: str) -> InstanceGroup | None:
        """Return the legacy group backing node pool ``pool_id``, if any."""

    @abstractmethod
    async def delete_group(self, group: InstanceGroup) -> None:
        """Start deletion of ``group``. Deleting an absent group is not an error."""


@dataclass(frozen=True)
class NodePoolPlacement:
    """Network placement of a legacy node pool.

    Attributes:
        security_group_id: The pool's worker security group
        subnet_ids: Subnets the pool spans
        availability_zones: Zones of those subnets, same order
    """

    security_group_id: str
    subnet_ids: list[str] = field(default_factory=list)
    availability_zones: list[str] = field(default_factory=list)


class NetworkProbe(ABC):
    """Resolves network placement for node pool synthesis."""

    @abstractmethod
    async def node_pool_placement(self, cluster_id: str, pool_id: str) -> NodePoolPlacement:
        """Return placement for a pool.

        Raises:
            AmbiguousInputError: If more than one security group matches
            MissingInputError: If no security group or no subnet matches
        """
