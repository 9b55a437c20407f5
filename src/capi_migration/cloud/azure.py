"""Azure lookups: legacy virtual machine scale sets.

Legacy Azure clusters live in a resource group named after the cluster. The
masters run in ``<id>-master-<id>``, each node pool in ``nodepool-<pool>``.
"""

import asyncio
from typing import Any

from azure.core.exceptions import (
    HttpResponseError,
    ResourceNotFoundError,
    ServiceRequestError,
)
from azure.identity import ClientSecretCredential
from azure.mgmt.compute import ComputeManagementClient

from capi_migration import keys
from capi_migration.client.exceptions import CloudAPIError, TransientCloudError
from capi_migration.cloud.base import InstanceGroup, InstanceGroupService, Provider
from capi_migration.utils.logging import get_logger
from capi_migration.utils.retry import retry_cloud_call

logger = get_logger(__name__)

VMSS_DELETING_STATE = "Deleting"


def translate_azure_error(e: Exception, operation: str) -> CloudAPIError:
    """Map an azure-core error onto the cloud error hierarchy."""
    if isinstance(e, ServiceRequestError):
        return TransientCloudError(str(e), "azure", operation)
    if isinstance(e, HttpResponseError):
        status = e.status_code or 0
        if status == 429 or status >= 500:
            return TransientCloudError(e.message or str(e), "azure", operation)
        return CloudAPIError(e.message or str(e), "azure", operation)
    return CloudAPIError(str(e), "azure", operation)


def compute_client(
    subscription_id: str, tenant_id: str, client_id: str, client_secret: str
) -> ComputeManagementClient:
    """Build a compute client authenticated as the cluster's service principal."""
    credential = ClientSecretCredential(
        tenant_id=tenant_id, client_id=client_id, client_secret=client_secret
    )
    return ComputeManagementClient(credential, subscription_id)


class AzureInstanceGroupService(InstanceGroupService):
    """Legacy scale sets in the cluster's resource group."""

    provider = Provider.AZURE

    def __init__(self, compute: Any):
        self.compute = compute
        # Scale set name -> resource group, filled by lookups.
        self._resource_groups: dict[str, str] = {}

    async def _get(self, resource_group: str, name: str) -> InstanceGroup | None:
        try:
            vmss = await asyncio.to_thread(
                self.compute.virtual_machine_scale_sets.get, resource_group, name
            )
        except ResourceNotFoundError:
            logger.debug("vmss_not_found", name=name, resource_group=resource_group)
            return None
        except (HttpResponseError, ServiceRequestError) as e:
            raise translate_azure_error(e, "virtual_machine_scale_sets.get") from e

        self._resource_groups[name] = resource_group
        capacity = vmss.sku.capacity if vmss.sku is not None else 0
        return InstanceGroup(
            name=name,
            capacity=int(capacity or 0),
            deleting=vmss.provisioning_state == VMSS_DELETING_STATE,
        )

    async def get_control_plane_group(self, cluster_id: str) -> InstanceGroup | None:
        return await self._get(cluster_id, keys.azure_master_vmss_name(cluster_id))

    async def get_node_pool_group(self, cluster_id: str, pool_id: str) -> InstanceGroup | None:
        return await self._get(cluster_id, keys.azure_node_pool_vmss_name(pool_id))

    @retry_cloud_call
    async def delete_group(self, group: InstanceGroup) -> None:
        resource_group = self._resource_groups.get(group.name)
        if resource_group is None:
            raise CloudAPIError(
                f"scale set {group.name} was not looked up before deletion",
                "azure",
                "virtual_machine_scale_sets.begin_delete",
            )
        try:
            await asyncio.to_thread(
                self.compute.virtual_machine_scale_sets.begin_delete, resource_group, group.name
            )
        except ResourceNotFoundError:
            logger.debug("vmss_already_gone", name=group.name, resource_group=resource_group)
            return
        except (HttpResponseError, ServiceRequestError) as e:
            raise translate_azure_error(e, "virtual_machine_scale_sets.begin_delete") from e

        logger.info("vmss_deletion_started", name=group.name, resource_group=resource_group)
