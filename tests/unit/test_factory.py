"""Tests for provider selection and migrator construction."""

import pytest

from capi_migration.client.exceptions import InputError, MissingInputError
from capi_migration.cloud.base import Provider
from capi_migration.config import AWSCredentialsConfig
from capi_migration.migration.aws import AWSMigrator
from capi_migration.migration.azure import AzureMigrator
from capi_migration.migration.factory import MigratorFactory, provider_for
from tests.factories import CLUSTER_ID, ResourceFactory, seed_aws_cluster, seed_azure_cluster


class TestProviderFor:
    """Tests for detecting the provider of a Cluster."""

    def test_azure(self):
        assert provider_for(ResourceFactory.cluster(infra_kind="AzureCluster")) is Provider.AZURE

    def test_aws(self):
        assert provider_for(ResourceFactory.cluster(infra_kind="AWSCluster")) is Provider.AWS

    def test_unsupported_kind(self):
        with pytest.raises(InputError, match="KVMConfig"):
            provider_for(ResourceFactory.cluster(infra_kind="KVMConfig"))


class TestMigratorFactory:
    """Tests for building migrators."""

    @pytest.mark.asyncio
    async def test_azure_migrator(self, management, registry, workload_clients, settings):
        seed_azure_cluster(management)
        factory = MigratorFactory(management, registry, workload_clients, settings=settings)

        migrator = await factory.new_migrator(CLUSTER_ID)

        assert isinstance(migrator, AzureMigrator)
        assert migrator.ctx.cluster_id == CLUSTER_ID
        assert migrator.ctx.provider is Provider.AZURE
        assert migrator.ctx.settings is settings
        assert migrator.ctx.resources.cluster["metadata"]["name"] == CLUSTER_ID

    @pytest.mark.asyncio
    async def test_aws_migrator_gets_credentials(self, management, registry, workload_clients):
        seed_aws_cluster(management)
        credentials = AWSCredentialsConfig(access_key_id="AKIATEST", secret_access_key="x")
        factory = MigratorFactory(
            management, registry, workload_clients, aws_credentials=credentials
        )

        migrator = await factory.new_migrator(CLUSTER_ID)

        assert isinstance(migrator, AWSMigrator)
        assert migrator.aws_credentials is credentials

    @pytest.mark.asyncio
    async def test_each_call_gets_a_fresh_context(self, management, registry, workload_clients):
        seed_azure_cluster(management)
        factory = MigratorFactory(management, registry, workload_clients)

        first = await factory.new_migrator(CLUSTER_ID)
        second = await factory.new_migrator(CLUSTER_ID)

        assert first.ctx is not second.ctx
        assert first.renderer is second.renderer

    @pytest.mark.asyncio
    async def test_missing_cluster(self, management, registry, workload_clients):
        factory = MigratorFactory(management, registry, workload_clients)

        with pytest.raises(MissingInputError, match="zzz99"):
            await factory.new_migrator("zzz99")
