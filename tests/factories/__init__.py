"""Test factories for creating test data."""

from tests.factories.fakes import (
    FakeGroupsMigratorFactory,
    FakeInstanceGroupService,
    FakeNetworkProbe,
    WorkloadStore,
)
from tests.factories.resources import (
    API_HOST,
    CA_CERT,
    CA_KEY,
    CLUSTER_ID,
    NAMESPACE,
    ResourceFactory,
    seed_aws_cluster,
    seed_azure_cluster,
    seed_common,
    seed_workload_nodes,
)

__all__ = [
    "API_HOST",
    "CA_CERT",
    "CA_KEY",
    "CLUSTER_ID",
    "NAMESPACE",
    "FakeGroupsMigratorFactory",
    "FakeInstanceGroupService",
    "FakeNetworkProbe",
    "ResourceFactory",
    "WorkloadStore",
    "seed_aws_cluster",
    "seed_azure_cluster",
    "seed_common",
    "seed_workload_nodes",
]
