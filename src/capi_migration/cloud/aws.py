"""AWS lookups: legacy auto scaling groups and node pool network placement.

Legacy Giant Swarm clusters run each master and node pool in an auto scaling
group tagged with the cluster ID. Node pool security groups and subnets are
tagged with the machine deployment (node pool) ID.
"""

import asyncio
from typing import Any

import boto3
from botocore.exceptions import BotoCoreError, ClientError, EndpointConnectionError

from capi_migration.client.exceptions import (
    AmbiguousInputError,
    CloudAPIError,
    MissingInputError,
    TransientCloudError,
)
from capi_migration.cloud.base import (
    InstanceGroup,
    InstanceGroupService,
    NetworkProbe,
    NodePoolPlacement,
    Provider,
)
from capi_migration.config import AWSCredentialsConfig
from capi_migration.utils.logging import get_logger
from capi_migration.utils.retry import retry_cloud_call

logger = get_logger(__name__)

TAG_CLUSTER = "giantswarm.io/cluster"
TAG_STACK = "giantswarm.io/stack"
TAG_MACHINE_DEPLOYMENT = "giantswarm.io/machine-deployment"
CONTROL_PLANE_STACK = "tccpn"
ASG_DELETING_STATUS = "Delete in progress"

_TRANSIENT_CODES = {
    "Throttling",
    "ThrottlingException",
    "RequestLimitExceeded",
    "RequestThrottled",
    "ServiceUnavailable",
    "InternalError",
    "InternalFailure",
}


def translate_client_error(e: Exception, operation: str) -> CloudAPIError:
    """Map a botocore error onto the cloud error hierarchy."""
    if isinstance(e, ClientError):
        code = e.response.get("Error", {}).get("Code", "")
        status = e.response.get("ResponseMetadata", {}).get("HTTPStatusCode", 0)
        message = e.response.get("Error", {}).get("Message", str(e))
        if code in _TRANSIENT_CODES or status >= 500:
            return TransientCloudError(f"{code}: {message}", "aws", operation)
        return CloudAPIError(f"{code}: {message}", "aws", operation)
    if isinstance(e, EndpointConnectionError):
        return TransientCloudError(str(e), "aws", operation)
    return CloudAPIError(str(e), "aws", operation)


async def _call(client: Any, operation: str, **kwargs: Any) -> dict[str, Any]:
    try:
        return await asyncio.to_thread(getattr(client, operation), **kwargs)
    except (ClientError, BotoCoreError) as e:
        raise translate_client_error(e, operation) from e


def _tag_filters(tags: dict[str, str]) -> list[dict[str, Any]]:
    return [{"Name": f"tag:{key}", "Values": [value]} for key, value in tags.items()]


def assume_role_session(
    credentials: AWSCredentialsConfig,
    role_arn: str,
    region: str,
    session_name: str = "capi-migration",
) -> boto3.session.Session:
    """Create a session in the cluster's account by assuming ``role_arn``.

    Args:
        credentials: Management account credentials
        role_arn: Role of the account the cluster runs in
        region: Region of the cluster
        session_name: STS role session name

    Returns:
        boto3 session holding temporary credentials
    """
    management = boto3.session.Session(
        aws_access_key_id=credentials.access_key_id,
        aws_secret_access_key=credentials.secret_access_key.get_secret_value(),
        region_name=credentials.region,
    )
    try:
        response = management.client("sts").assume_role(
            RoleArn=role_arn, RoleSessionName=session_name
        )
    except (ClientError, BotoCoreError) as e:
        raise translate_client_error(e, "assume_role") from e

    temporary = response["Credentials"]
    logger.info("aws_role_assumed", role_arn=role_arn, region=region)
    return boto3.session.Session(
        aws_access_key_id=temporary["AccessKeyId"],
        aws_secret_access_key=temporary["SecretAccessKey"],
        aws_session_token=temporary["SessionToken"],
        region_name=region,
    )


class AWSInstanceGroupService(InstanceGroupService):
    """Legacy auto scaling groups, located by their Giant Swarm tags."""

    provider = Provider.AWS

    def __init__(self, autoscaling_client: Any):
        self.autoscaling = autoscaling_client

    async def _find(self, tags: dict[str, str]) -> InstanceGroup | None:
        response = await _call(
            self.autoscaling, "describe_auto_scaling_groups", Filters=_tag_filters(tags)
        )
        groups = response.get("AutoScalingGroups", [])
        if not groups:
            return None
        if len(groups) > 1:
            names = ", ".join(group["AutoScalingGroupName"] for group in groups)
            raise AmbiguousInputError(f"expected one auto scaling group for {tags}, found {names}")
        group = groups[0]
        return InstanceGroup(
            name=group["AutoScalingGroupName"],
            capacity=int(group.get("DesiredCapacity", 0)),
            deleting=group.get("Status") == ASG_DELETING_STATUS,
        )

    async def get_control_plane_group(self, cluster_id: str) -> InstanceGroup | None:
        return await self._find({TAG_CLUSTER: cluster_id, TAG_STACK: CONTROL_PLANE_STACK})

    async def get_node_pool_group(self, cluster_id: str, pool_id: str) -> InstanceGroup | None:
        return await self._find({TAG_CLUSTER: cluster_id, TAG_MACHINE_DEPLOYMENT: pool_id})

    @retry_cloud_call
    async def delete_group(self, group: InstanceGroup) -> None:
        try:
            await _call(
                self.autoscaling,
                "delete_auto_scaling_group",
                AutoScalingGroupName=group.name,
                ForceDelete=True,
            )
        except CloudAPIError as e:
            if "not found" in str(e).lower():
                logger.debug("auto_scaling_group_already_gone", name=group.name)
                return
            raise
        logger.info("auto_scaling_group_deletion_started", name=group.name)


class AWSNetworkProbe(NetworkProbe):
    """Resolves node pool security group and subnets through EC2."""

    def __init__(self, ec2_client: Any):
        self.ec2 = ec2_client

    async def find_worker_security_group(self, cluster_id: str, pool_id: str) -> str:
        response = await _call(
            self.ec2,
            "describe_security_groups",
            Filters=_tag_filters({"Name": f"{cluster_id}-worker", TAG_MACHINE_DEPLOYMENT: pool_id}),
        )
        groups = response.get("SecurityGroups", [])
        if not groups:
            raise MissingInputError(f"no worker security group found for node pool {pool_id}")
        if len(groups) > 1:
            raise AmbiguousInputError(
                f"expected 1 worker security group for node pool {pool_id}, found {len(groups)}"
            )
        return groups[0]["GroupId"]

    async def find_node_pool_subnets(self, pool_id: str) -> list[dict[str, Any]]:
        response = await _call(
            self.ec2,
            "describe_subnets",
            Filters=_tag_filters({TAG_MACHINE_DEPLOYMENT: pool_id}),
        )
        subnets = response.get("Subnets", [])
        if not subnets:
            raise MissingInputError(f"no subnets found for node pool {pool_id}")
        return subnets

    async def node_pool_placement(self, cluster_id: str, pool_id: str) -> NodePoolPlacement:
        security_group_id = await self.find_worker_security_group(cluster_id, pool_id)
        subnets = await self.find_node_pool_subnets(pool_id)
        return NodePoolPlacement(
            security_group_id=security_group_id,
            subnet_ids=[subnet["SubnetId"] for subnet in subnets],
            availability_zones=[subnet.get("AvailabilityZone", "") for subnet in subnets],
        )
