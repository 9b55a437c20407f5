"""Shared test fixtures for the capi-migration test suite."""

from collections.abc import Callable

import pytest

from capi_migration.client.ca_source import CAMaterial, StaticCertificateAuthoritySource
from capi_migration.client.inmemory import InMemoryResourceStore
from capi_migration.client.registry import ResourceRegistry, default_registry
from capi_migration.client.workload import StaticWorkloadClientProvider
from capi_migration.cloud.base import InstanceGroup, Provider
from capi_migration.config import MigrationSettings
from capi_migration.migration.aws import AWSMigrator
from capi_migration.migration.azure import AzureMigrator
from capi_migration.migration.context import ClusterMigrationContext
from tests.factories import (
    CA_CERT,
    CA_KEY,
    CLUSTER_ID,
    FakeGroupsMigratorFactory,
    FakeInstanceGroupService,
    FakeNetworkProbe,
    WorkloadStore,
)


@pytest.fixture
def registry() -> ResourceRegistry:
    return default_registry()


@pytest.fixture
def settings() -> MigrationSettings:
    """Settings with a zero poll interval so bounded waits finish immediately."""
    return MigrationSettings(pod_poll_interval=0, pod_wait_timeout=1)


@pytest.fixture
def management(registry: ResourceRegistry) -> InMemoryResourceStore:
    return InMemoryResourceStore(registry)


@pytest.fixture
def workload(registry: ResourceRegistry) -> WorkloadStore:
    return WorkloadStore(registry)


@pytest.fixture
def workload_clients(workload: WorkloadStore) -> StaticWorkloadClientProvider:
    return StaticWorkloadClientProvider(workload)


@pytest.fixture
def ca_source() -> StaticCertificateAuthoritySource:
    return StaticCertificateAuthoritySource(
        {CLUSTER_ID: CAMaterial(certificate=CA_CERT, private_key=CA_KEY)}
    )


@pytest.fixture
def instance_groups() -> FakeInstanceGroupService:
    """Legacy groups of a running cluster: one master and a three node pool."""
    return FakeInstanceGroupService(
        control_plane=InstanceGroup(name=f"{CLUSTER_ID}-master-{CLUSTER_ID}", capacity=1),
        node_pools={"np001": InstanceGroup(name="nodepool-np001", capacity=3)},
    )


@pytest.fixture
def network_probe() -> FakeNetworkProbe:
    return FakeNetworkProbe()


@pytest.fixture
def make_context(
    management: InMemoryResourceStore,
    workload_clients: StaticWorkloadClientProvider,
    settings: MigrationSettings,
) -> Callable[[Provider], ClusterMigrationContext]:
    """Factory fixture building a fresh migration context per call.

    Usage:
        def test_something(make_context):
            ctx = make_context(Provider.AZURE)
    """

    def _make(provider: Provider, cluster_id: str = CLUSTER_ID) -> ClusterMigrationContext:
        return ClusterMigrationContext(
            cluster_id=cluster_id,
            provider=provider,
            management=management,
            workload_clients=workload_clients,
            settings=settings,
        )

    return _make


@pytest.fixture
def make_azure_migrator(make_context, registry, ca_source, instance_groups):
    """Factory fixture; each call returns a migrator with a fresh context."""

    def _make() -> AzureMigrator:
        return AzureMigrator(
            make_context(Provider.AZURE),
            registry,
            ca_source=ca_source,
            instance_groups=instance_groups,
        )

    return _make


@pytest.fixture
def make_aws_migrator(make_context, registry, ca_source, instance_groups, network_probe):
    """Factory fixture; each call returns a migrator with a fresh context."""

    def _make() -> AWSMigrator:
        return AWSMigrator(
            make_context(Provider.AWS),
            registry,
            ca_source=ca_source,
            instance_groups=instance_groups,
            network_probe=network_probe,
        )

    return _make


@pytest.fixture
def migrator_factory(management, registry, workload_clients, settings, ca_source, instance_groups):
    """Migrator factory over the in-memory stores, with fake legacy instance groups."""
    return FakeGroupsMigratorFactory(
        management,
        registry,
        workload_clients,
        settings=settings,
        ca_source=ca_source,
        instance_groups=instance_groups,
    )
