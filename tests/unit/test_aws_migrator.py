"""Tests for the AWS migrator."""

from unittest.mock import MagicMock, patch

import pytest

from capi_migration.client.exceptions import ConfigurationError, MissingInputError
from capi_migration.client.objects import get_path
from capi_migration.cloud.base import Provider
from capi_migration.config import AWSCredentialsConfig
from capi_migration.migration.aws import (
    CONTROL_PLANE_IAM_PROFILE,
    NODES_IAM_PROFILE,
    AWSMigrator,
    node_pool_from_machine_deployment,
)
from capi_migration.migration.base import has_legacy_markers
from capi_migration.migration.synthesis import JOIN_ETCD_CLUSTER_COMMAND
from tests.factories import (
    API_HOST,
    CLUSTER_ID,
    NAMESPACE,
    ResourceFactory,
    seed_aws_cluster,
    seed_workload_nodes,
)

ROLE_ARN = "arn:aws:iam::123456789012:role/GiantSwarmAWSOperator"


@pytest.fixture
def seeded(management, workload):
    seed_aws_cluster(management)
    seed_workload_nodes(workload)
    return management


@pytest.fixture
def credentials():
    return AWSCredentialsConfig(access_key_id="AKIATEST", secret_access_key="secret")


class TestNodePoolFromMachineDeployment:
    """Tests for reading AWS node pools."""

    def test_reads_scaling_and_instance_type(self):
        pool = node_pool_from_machine_deployment(
            ResourceFactory.aws_machine_deployment("np001", min_size=2, max_size=5)
        )

        assert pool.pool_id == "np001"
        assert (pool.min_size, pool.max_size) == (2, 5)
        assert pool.instance_type == "m5.2xlarge"

    def test_missing_instance_type(self):
        deployment = ResourceFactory.aws_machine_deployment("np001")
        deployment["spec"]["provider"] = {}

        with pytest.raises(MissingInputError, match="instance type"):
            node_pool_from_machine_deployment(deployment)


class TestPrepare:
    """Tests for preparing an AWS cluster."""

    @pytest.mark.asyncio
    async def test_synthesizes_target_resources(self, seeded, network_probe, make_aws_migrator):
        migrator = make_aws_migrator()
        await migrator.prepare()
        await migrator.close()

        kcp = await seeded.get("KubeadmControlPlane", "abc12-control-plane", NAMESPACE)
        cp_template = await seeded.get("AWSMachineTemplate", "abc12-control-plane", NAMESPACE)
        worker_template = await seeded.get("AWSMachineTemplate", "abc12-np001", NAMESPACE)
        deployment = await seeded.get("MachineDeployment", "abc12-np001", NAMESPACE)

        cluster_config = kcp["spec"]["kubeadmConfigSpec"]["clusterConfiguration"]
        assert cluster_config["apiServer"]["certSANs"] == [API_HOST, "10.3.0.4"]
        assert cluster_config["networking"]["podSubnet"] == "10.2.0.0/16"
        assert cluster_config["apiServer"]["extraArgs"]["cloud-provider"] == "aws"

        cp_spec = cp_template["spec"]["template"]["spec"]
        assert cp_spec["instanceType"] == "m5.xlarge"
        assert cp_spec["iamInstanceProfile"] == CONTROL_PLANE_IAM_PROFILE
        assert "additionalSecurityGroups" not in cp_spec

        worker_spec = worker_template["spec"]["template"]["spec"]
        assert worker_spec["instanceType"] == "m5.2xlarge"
        assert worker_spec["iamInstanceProfile"] == NODES_IAM_PROFILE
        assert worker_spec["additionalSecurityGroups"] == [{"id": "sg-np001"}]
        assert worker_spec["subnet"]["filters"][0]["values"] == [
            "subnet-np001-a",
            "subnet-np001-b",
        ]
        assert deployment["spec"]["replicas"] == 3
        assert network_probe.calls == [(CLUSTER_ID, "np001")]

    @pytest.mark.asyncio
    async def test_aws_cluster_is_left_alone(self, seeded, make_aws_migrator):
        migrator = make_aws_migrator()
        await migrator.prepare()

        assert ("update", "AWSCluster", CLUSTER_ID) not in seeded.calls
        cluster = await seeded.get("Cluster", CLUSTER_ID, NAMESPACE)
        assert cluster["spec"]["controlPlaneRef"]["name"] == "abc12-control-plane"

    @pytest.mark.asyncio
    async def test_control_plane_joins_legacy_etcd(self, seeded, make_aws_migrator):
        await make_aws_migrator().prepare()

        custom_files = await seeded.get("Secret", "abc12-custom-files", NAMESPACE)
        assert "etcd.abc12.k8s.example.com" in custom_files["stringData"]["join-etcd-cluster"]
        kcp = await seeded.get("KubeadmControlPlane", "abc12-control-plane", NAMESPACE)
        commands = kcp["spec"]["kubeadmConfigSpec"]["preKubeadmCommands"]
        assert commands[0].startswith("hostnamectl set-hostname")
        assert "--dport 6443" in commands[1]
        assert commands[2] == JOIN_ETCD_CLUSTER_COMMAND

    @pytest.mark.asyncio
    async def test_missing_vpc_cidr(self, seeded, make_aws_migrator):
        aws_cluster = ResourceFactory.aws_cluster()
        del aws_cluster["status"]
        seeded.put(aws_cluster)

        with pytest.raises(MissingInputError, match="VPC CIDR"):
            await make_aws_migrator().prepare()

    @pytest.mark.asyncio
    async def test_trigger_strips_aws_markers(self, seeded, make_aws_migrator):
        await make_aws_migrator().prepare()

        await make_aws_migrator().trigger_migration()

        assert not has_legacy_markers(await seeded.get("Cluster", CLUSTER_ID, NAMESPACE))
        assert not has_legacy_markers(await seeded.get("AWSCluster", CLUSTER_ID, NAMESPACE))


class TestSession:
    """Tests for assuming the cluster account's role."""

    @pytest.mark.asyncio
    async def test_requires_management_credentials(self, seeded, make_context, registry):
        migrator = AWSMigrator(make_context(Provider.AWS), registry)

        with pytest.raises(ConfigurationError, match="AWS management credentials"):
            await migrator.session()

    @pytest.mark.asyncio
    async def test_assumes_role_from_credential_secret(
        self, seeded, make_context, registry, credentials
    ):
        migrator = AWSMigrator(make_context(Provider.AWS), registry, aws_credentials=credentials)
        session = MagicMock()

        with patch(
            "capi_migration.migration.aws.assume_role_session", return_value=session
        ) as assume:
            assert await migrator.session() is session
            assert await migrator.session() is session

        assume.assert_called_once_with(credentials, ROLE_ARN, "eu-west-1")

    @pytest.mark.asyncio
    async def test_builds_cloud_services_from_session(self, make_context, registry):
        session = MagicMock()
        migrator = AWSMigrator(make_context(Provider.AWS), registry, session=session)

        groups = await migrator.instance_groups()
        probe = await migrator.network_probe()

        assert groups.autoscaling is session.client.return_value
        assert probe.ec2 is session.client.return_value
        session.client.assert_any_call("autoscaling")
        session.client.assert_any_call("ec2")

    @pytest.mark.asyncio
    async def test_credential_secret_without_role(
        self, seeded, make_context, registry, credentials
    ):
        seeded.put(
            ResourceFactory.secret("credential-default", {"other": b"x"}, namespace="giantswarm")
        )
        migrator = AWSMigrator(make_context(Provider.AWS), registry, aws_credentials=credentials)

        with pytest.raises(MissingInputError, match="aws.awsoperator.arn"):
            await migrator.session()

    def test_worker_node_name_reads_instance_metadata(self, make_aws_migrator):
        assert make_aws_migrator().worker_node_name() == "{{ ds.meta_data.local_hostname }}"

    def test_machine_template_kind(self, make_aws_migrator, seeded):
        migrator = make_aws_migrator()
        migrator.ctx.resources.infra_cluster = ResourceFactory.aws_cluster()

        template = migrator.control_plane_machine_template()

        assert template["kind"] == "AWSMachineTemplate"
        assert get_path(template, "metadata.labels")["cluster.x-k8s.io/cluster-name"] == CLUSTER_ID
