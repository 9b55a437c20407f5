"""Resource kind registry.

Stores only understand kinds registered here. A registry is built explicitly
(``default_registry()``) and handed to each store, so tests can construct one
with exactly the kinds they need.
"""

from dataclasses import dataclass

from capi_migration.client.exceptions import ConfigurationError

CAPI_VERSION = "v1alpha3"


@dataclass(frozen=True)
class ResourceKind:
    """API coordinates of one resource kind.

    Attributes:
        kind: Kind name as it appears in ``kind:``
        group: API group ("" for the core group)
        version: API version within the group
        plural: Plural resource name used in URLs
        namespaced: Whether objects of this kind live in a namespace
    """

    kind: str
    group: str
    version: str
    plural: str
    namespaced: bool = True

    @property
    def api_version(self) -> str:
        """``apiVersion`` string for objects of this kind."""
        if self.is_core:
            return self.version
        return f"{self.group}/{self.version}"

    @property
    def is_core(self) -> bool:
        return self.group == ""


class ResourceRegistry:
    """Lookup table from kind name to :class:`ResourceKind`."""

    def __init__(self, kinds: list[ResourceKind] | None = None):
        self._kinds: dict[str, ResourceKind] = {}
        for kind in kinds or []:
            self.register(kind)

    def register(self, kind: ResourceKind) -> None:
        """Register a kind.

        Raises:
            ConfigurationError: If a different kind with the same name exists
        """
        existing = self._kinds.get(kind.kind)
        if existing is not None and existing != kind:
            raise ConfigurationError(
                f"Kind {kind.kind} already registered as {existing.api_version}"
            )
        self._kinds[kind.kind] = kind

    def get(self, kind: str) -> ResourceKind:
        """Return the registered kind.

        Raises:
            ConfigurationError: If the kind is unknown
        """
        try:
            return self._kinds[kind]
        except KeyError:
            raise ConfigurationError(f"Unknown resource kind: {kind}") from None

    def __contains__(self, kind: str) -> bool:
        return kind in self._kinds

    def kinds(self) -> list[str]:
        return sorted(self._kinds)


def default_registry() -> ResourceRegistry:
    """Build a registry with every kind the migration reads or writes."""
    return ResourceRegistry(
        [
            # Core
            ResourceKind("Secret", "", "v1", "secrets"),
            ResourceKind("Node", "", "v1", "nodes", namespaced=False),
            ResourceKind("Pod", "", "v1", "pods"),
            # Cluster API
            ResourceKind("Cluster", "cluster.x-k8s.io", CAPI_VERSION, "clusters"),
            ResourceKind(
                "MachineDeployment", "cluster.x-k8s.io", CAPI_VERSION, "machinedeployments"
            ),
            ResourceKind("MachinePool", "exp.cluster.x-k8s.io", CAPI_VERSION, "machinepools"),
            ResourceKind(
                "KubeadmControlPlane",
                "controlplane.cluster.x-k8s.io",
                CAPI_VERSION,
                "kubeadmcontrolplanes",
            ),
            ResourceKind(
                "KubeadmConfigTemplate",
                "bootstrap.cluster.x-k8s.io",
                CAPI_VERSION,
                "kubeadmconfigtemplates",
            ),
            # Infrastructure providers
            ResourceKind(
                "AWSMachineTemplate",
                "infrastructure.cluster.x-k8s.io",
                CAPI_VERSION,
                "awsmachinetemplates",
            ),
            ResourceKind(
                "AzureMachineTemplate",
                "infrastructure.cluster.x-k8s.io",
                CAPI_VERSION,
                "azuremachinetemplates",
            ),
            ResourceKind(
                "AzureCluster", "infrastructure.cluster.x-k8s.io", CAPI_VERSION, "azureclusters"
            ),
            ResourceKind(
                "AzureClusterIdentity",
                "infrastructure.cluster.x-k8s.io",
                CAPI_VERSION,
                "azureclusteridentities",
            ),
            ResourceKind(
                "AzureMachinePool",
                "exp.infrastructure.cluster.x-k8s.io",
                CAPI_VERSION,
                "azuremachinepools",
            ),
            # Giant Swarm legacy
            ResourceKind("AWSCluster", "infrastructure.giantswarm.io", "v1alpha2", "awsclusters"),
            ResourceKind(
                "AWSMachineDeployment",
                "infrastructure.giantswarm.io",
                "v1alpha2",
                "awsmachinedeployments",
            ),
            ResourceKind("AzureConfig", "provider.giantswarm.io", "v1alpha1", "azureconfigs"),
            ResourceKind(
                "Release", "release.giantswarm.io", "v1alpha1", "releases", namespaced=False
            ),
        ]
    )
