"""Migration of Giant Swarm AWS clusters to the upstream AWS provider.

Legacy node pools are ``AWSMachineDeployment`` resources; the new workers
keep the pool's instance type, worker security group and subnets.
"""

import asyncio
from typing import Any

import boto3

from capi_migration import keys
from capi_migration.client.exceptions import ConfigurationError, MissingInputError
from capi_migration.client.objects import Resource, get_path, name_of, secret_value
from capi_migration.cloud.aws import AWSInstanceGroupService, AWSNetworkProbe, assume_role_session
from capi_migration.cloud.base import InstanceGroupService, NetworkProbe, Provider
from capi_migration.config import AWSCredentialsConfig
from capi_migration.migration.base import Migrator
from capi_migration.migration.context import LegacyNodePool
from capi_migration.utils.logging import get_logger

logger = get_logger(__name__)

CONTROL_PLANE_IAM_PROFILE = "control-plane.cluster-api-provider-aws.sigs.k8s.io"
NODES_IAM_PROFILE = "nodes.cluster-api-provider-aws.sigs.k8s.io"
MACHINE_TEMPLATE = "aws_machine_template.yaml.j2"


def node_pool_from_machine_deployment(deployment: Resource) -> LegacyNodePool:
    """Read scaling bounds and instance type of an ``AWSMachineDeployment``."""
    name = name_of(deployment)
    instance_type = get_path(deployment, "spec.provider.worker.instanceType")
    if not instance_type:
        raise MissingInputError(f"AWSMachineDeployment {name} has no worker instance type")
    min_size = int(get_path(deployment, "spec.nodePool.scaling.min", 0) or 0)
    max_size = int(get_path(deployment, "spec.nodePool.scaling.max", min_size) or min_size)
    return LegacyNodePool(
        pool_id=name,
        min_size=min_size,
        max_size=max_size,
        instance_type=instance_type,
        replicas=min_size,
        source=deployment,
    )


class AWSMigrator(Migrator):
    """Migrator for clusters backed by a Giant Swarm ``AWSCluster``.

    Args:
        aws_credentials: Management account credentials used to assume the
            cluster account's role
        session: Pre-built boto3 session for the cluster account
        network_probe: Pre-built network probe (tests)
    """

    provider = Provider.AWS
    infra_cluster_kind = "AWSCluster"
    cloud_provider_name = "aws"

    def __init__(
        self,
        *args: Any,
        aws_credentials: AWSCredentialsConfig | None = None,
        session: boto3.session.Session | None = None,
        network_probe: NetworkProbe | None = None,
        **kwargs: Any,
    ):
        super().__init__(*args, **kwargs)
        self.aws_credentials = aws_credentials
        self._session = session
        self._network_probe = network_probe

    async def session(self) -> boto3.session.Session:
        """Session in the cluster's account, assumed from the credential secret's role."""
        if self._session is not None:
            return self._session
        if self.aws_credentials is None:
            raise ConfigurationError("AWS management credentials are not configured")

        infra = await self.infra_cluster()
        ref = get_path(infra, "spec.provider.credentialSecret") or {}
        if not ref.get("name"):
            raise MissingInputError(f"AWSCluster {name_of(infra)} has no credential secret")
        secret = await self.management.get(
            "Secret", ref["name"], ref.get("namespace") or self.ctx.settings.certs_namespace
        )
        role_arn = secret_value(secret, keys.AWS_ROLE_ARN_KEY)
        if not role_arn:
            raise MissingInputError(
                f"secret {ref['name']} has no {keys.AWS_ROLE_ARN_KEY!r} entry"
            )
        region = get_path(infra, "spec.provider.region") or self.aws_credentials.region

        self._session = await asyncio.to_thread(
            assume_role_session, self.aws_credentials, role_arn.decode(), region
        )
        return self._session

    async def network_probe(self) -> NetworkProbe:
        if self._network_probe is None:
            session = await self.session()
            self._network_probe = AWSNetworkProbe(session.client("ec2"))
        return self._network_probe

    async def build_instance_groups(self) -> InstanceGroupService:
        session = await self.session()
        return AWSInstanceGroupService(session.client("autoscaling"))

    async def read_provider_resources(self) -> None:
        # Everything AWS-specific lives on the AWSCluster and the machine deployments.
        await self.infra_cluster()

    async def read_node_pools(self) -> list[LegacyNodePool]:
        deployments = await self.management.list(
            "AWSMachineDeployment",
            self.ctx.namespace,
            labels=keys.cluster_selector(self.cluster_id),
        )
        return [node_pool_from_machine_deployment(d) for d in deployments]

    def network_cidr(self) -> str:
        infra = self.ctx.resources.require("infra_cluster")
        cidr = get_path(infra, "status.provider.network.cidr")
        if not cidr:
            raise MissingInputError(f"AWSCluster {name_of(infra)} reports no VPC CIDR")
        return cidr

    def pods_cidr(self) -> str | None:
        infra = self.ctx.resources.require("infra_cluster")
        return get_path(infra, "spec.provider.pods.cidrBlock") or None

    def worker_node_name(self) -> str:
        return "{{ ds.meta_data.local_hostname }}"

    def pre_kubeadm_commands(self) -> list[str]:
        # kube-proxy detects the node name from the hostname; the legacy API listens on 443.
        return [
            "hostnamectl set-hostname "
            "$(curl -s http://169.254.169.254/latest/meta-data/local-hostname)",
            "iptables -A PREROUTING -t nat -p tcp --dport 6443 -j REDIRECT --to-port 443",
        ]

    def control_plane_machine_template(self) -> Resource:
        infra = self.ctx.resources.require("infra_cluster")
        instance_type = get_path(infra, "spec.provider.master.instanceType")
        if not instance_type:
            raise MissingInputError(f"AWSCluster {name_of(infra)} has no master instance type")
        return self.synthesizer.machine_template(
            MACHINE_TEMPLATE,
            keys.control_plane_machine_template_name(self.cluster_id),
            instance_type=instance_type,
            iam_instance_profile=CONTROL_PLANE_IAM_PROFILE,
            security_group_ids=[],
            subnet_ids=[],
        )

    async def worker_machine_template(self, pool: LegacyNodePool) -> Resource:
        probe = await self.network_probe()
        placement = await probe.node_pool_placement(self.cluster_id, pool.pool_id)
        logger.debug(
            "node_pool_placement_resolved",
            cluster_id=self.cluster_id,
            pool_id=pool.pool_id,
            security_group=placement.security_group_id,
            subnets=placement.subnet_ids,
        )
        return self.synthesizer.machine_template(
            MACHINE_TEMPLATE,
            keys.node_pool_resource_name(self.cluster_id, pool.pool_id),
            instance_type=pool.instance_type,
            iam_instance_profile=NODES_IAM_PROFILE,
            security_group_ids=[placement.security_group_id],
            subnet_ids=placement.subnet_ids,
        )
