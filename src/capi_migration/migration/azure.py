"""Migration of Giant Swarm Azure clusters to the upstream Azure provider.

Legacy node pools are ``MachinePool`` resources paired by name with an
``AzureMachinePool``. Network details come from the cluster's ``AzureConfig``.
"""

from typing import Any

from capi_migration import keys
from capi_migration.client.exceptions import MissingInputError
from capi_migration.client.objects import (
    Resource,
    get_path,
    name_of,
    namespace_of,
    secret_value,
)
from capi_migration.cloud.azure import AzureInstanceGroupService, compute_client
from capi_migration.cloud.base import InstanceGroupService, Provider
from capi_migration.migration.base import Migrator
from capi_migration.migration.context import LegacyNodePool
from capi_migration.utils.logging import get_logger

logger = get_logger(__name__)

MACHINE_TEMPLATE = "azure_machine_template.yaml.j2"
DEFAULT_OS_DISK_SIZE_GB = 50

AUTOSCALER_MIN_ANNOTATION = "cluster.k8s.io/cluster-api-autoscaler-node-group-min-size"
AUTOSCALER_MAX_ANNOTATION = "cluster.k8s.io/cluster-api-autoscaler-node-group-max-size"


def os_disk_size_gb(azure_machine_pool: Resource) -> int:
    return int(
        get_path(azure_machine_pool, "spec.template.osDisk.diskSizeGB") or DEFAULT_OS_DISK_SIZE_GB
    )


def node_pool_from_machine_pool(
    machine_pool: Resource, azure_machine_pool: Resource
) -> LegacyNodePool:
    """Combine a ``MachinePool`` and its ``AzureMachinePool`` into a node pool."""
    name = name_of(machine_pool)
    vm_size = get_path(azure_machine_pool, "spec.template.vmSize")
    if not vm_size:
        raise MissingInputError(f"AzureMachinePool {name} has no VM size")

    replicas = int(get_path(machine_pool, "spec.replicas", 0) or 0)
    annotations = get_path(machine_pool, "metadata.annotations", {}) or {}
    min_size = int(annotations.get(AUTOSCALER_MIN_ANNOTATION, replicas))
    max_size = int(annotations.get(AUTOSCALER_MAX_ANNOTATION, max(replicas, min_size)))
    return LegacyNodePool(
        pool_id=name,
        min_size=min_size,
        max_size=max_size,
        instance_type=vm_size,
        replicas=replicas,
        source=azure_machine_pool,
    )


class AzureMigrator(Migrator):
    """Migrator for clusters backed by an ``AzureCluster`` and a legacy ``AzureConfig``."""

    provider = Provider.AZURE
    infra_cluster_kind = "AzureCluster"
    cloud_provider_name = "azure"

    async def read_provider_resources(self) -> None:
        self.ctx.resources.azure_config = await self.management.list_one(
            "AzureConfig", self.ctx.namespace, labels=keys.cluster_selector(self.cluster_id)
        )

    async def read_node_pools(self) -> list[LegacyNodePool]:
        selector = keys.cluster_selector(self.cluster_id)
        machine_pools = await self.management.list(
            "MachinePool", self.ctx.namespace, labels=selector
        )
        azure_pools = {
            name_of(p): p
            for p in await self.management.list(
                "AzureMachinePool", self.ctx.namespace, labels=selector
            )
        }

        pools = []
        for machine_pool in machine_pools:
            name = name_of(machine_pool)
            if name not in azure_pools:
                raise MissingInputError(f"MachinePool {name} has no matching AzureMachinePool")
            pools.append(node_pool_from_machine_pool(machine_pool, azure_pools[name]))
        return pools

    def network_cidr(self) -> str:
        azure_config = self.ctx.resources.require("azure_config")
        cidr = get_path(azure_config, "spec.azure.virtualNetwork.cidr")
        if cidr:
            return cidr

        infra = self.ctx.resources.require("infra_cluster")
        blocks = get_path(infra, "spec.networkSpec.vnet.cidrBlocks") or []
        cidr = blocks[0] if blocks else get_path(infra, "spec.networkSpec.vnet.cidrBlock")
        if not cidr:
            raise MissingInputError(f"no virtual network CIDR known for cluster {self.cluster_id}")
        return cidr

    def pods_cidr(self) -> str | None:
        azure_config = self.ctx.resources.require("azure_config")
        return get_path(azure_config, "spec.azure.virtualNetwork.calicoSubnetCIDR") or None

    def location(self) -> str:
        infra = self.ctx.resources.require("infra_cluster")
        location = get_path(infra, "spec.location")
        if not location:
            raise MissingInputError(f"AzureCluster {name_of(infra)} has no location")
        return location

    def worker_node_name(self) -> str:
        return '{{ ds.meta_data["local_hostname"] }}'

    def control_plane_machine_template(self) -> Resource:
        azure_config = self.ctx.resources.require("azure_config")
        masters = get_path(azure_config, "spec.azure.masters") or []
        vm_size = masters[0].get("vmSize") if masters else None
        if not vm_size:
            raise MissingInputError(f"AzureConfig {name_of(azure_config)} has no master VM size")
        return self.synthesizer.machine_template(
            MACHINE_TEMPLATE,
            keys.control_plane_machine_template_name(self.cluster_id),
            vm_size=vm_size,
            location=self.location(),
            os_disk_size_gb=DEFAULT_OS_DISK_SIZE_GB,
        )

    async def worker_machine_template(self, pool: LegacyNodePool) -> Resource:
        return self.synthesizer.machine_template(
            MACHINE_TEMPLATE,
            keys.node_pool_resource_name(self.cluster_id, pool.pool_id),
            vm_size=pool.instance_type,
            location=self.location(),
            os_disk_size_gb=os_disk_size_gb(pool.source),
        )

    def update_infra_cluster(self, infra_cluster: Resource) -> bool:
        """Copy the Cluster's API endpoint onto the AzureCluster when it has none."""
        if get_path(infra_cluster, "spec.controlPlaneEndpoint.host"):
            return False
        endpoint = get_path(self.ctx.resources.require("cluster"), "spec.controlPlaneEndpoint")
        if not endpoint or not endpoint.get("host"):
            return False
        infra_cluster.setdefault("spec", {})["controlPlaneEndpoint"] = dict(endpoint)
        return True

    async def service_principal(self) -> dict[str, Any]:
        """Subscription and service principal credentials from the cluster identity.

        Raises:
            MissingInputError: If the identity or its secret is incomplete
        """
        infra = await self.infra_cluster()
        subscription_id = get_path(infra, "spec.subscriptionID")
        ref = get_path(infra, "spec.identityRef") or {}
        if not subscription_id or not ref.get("name"):
            raise MissingInputError(
                f"AzureCluster {name_of(infra)} lacks a subscription or identity reference"
            )

        identity = await self.management.get(
            "AzureClusterIdentity",
            ref["name"],
            ref.get("namespace") or namespace_of(infra) or self.ctx.namespace,
        )
        secret_ref = get_path(identity, "spec.clientSecret") or {}
        client_id = get_path(identity, "spec.clientID")
        tenant_id = get_path(identity, "spec.tenantID")
        if not (client_id and tenant_id and secret_ref.get("name")):
            raise MissingInputError(f"AzureClusterIdentity {ref['name']} is incomplete")

        secret = await self.management.get(
            "Secret",
            secret_ref["name"],
            secret_ref.get("namespace") or namespace_of(identity) or self.ctx.namespace,
        )
        client_secret = secret_value(secret, keys.AZURE_CLIENT_SECRET_KEY)
        if not client_secret:
            raise MissingInputError(
                f"secret {secret_ref['name']} has no {keys.AZURE_CLIENT_SECRET_KEY!r} entry"
            )
        return {
            "subscription_id": subscription_id,
            "tenant_id": tenant_id,
            "client_id": client_id,
            "client_secret": client_secret.decode(),
        }

    async def build_instance_groups(self) -> InstanceGroupService:
        credentials = await self.service_principal()
        logger.debug(
            "azure_compute_client_created",
            cluster_id=self.cluster_id,
            subscription_id=credentials["subscription_id"],
        )
        return AzureInstanceGroupService(compute_client(**credentials))
