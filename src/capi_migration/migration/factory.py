"""Selection of the provider migrator for a cluster."""

from capi_migration.client.ca_source import CertificateAuthoritySource
from capi_migration.client.exceptions import InputError, MissingInputError, NotFoundError
from capi_migration.client.objects import get_path
from capi_migration.client.registry import ResourceRegistry
from capi_migration.client.store import ResourceStore
from capi_migration.client.workload import WorkloadClusterClientProvider
from capi_migration.cloud.base import Provider
from capi_migration.config import AWSCredentialsConfig, MigrationSettings
from capi_migration.migration.aws import AWSMigrator
from capi_migration.migration.azure import AzureMigrator
from capi_migration.migration.base import Migrator
from capi_migration.migration.context import ClusterMigrationContext
from capi_migration.migration.rendering import TemplateRenderer
from capi_migration.utils.logging import get_logger

logger = get_logger(__name__)

PROVIDERS_BY_INFRA_KIND = {
    "AWSCluster": Provider.AWS,
    "AzureCluster": Provider.AZURE,
}


def provider_for(cluster: dict) -> Provider:
    """Provider of a Cluster, from its infrastructure reference kind.

    Raises:
        InputError: If the infrastructure kind is not supported
    """
    kind = get_path(cluster, "spec.infrastructureRef.kind")
    try:
        return PROVIDERS_BY_INFRA_KIND[kind]
    except KeyError:
        raise InputError(f"unsupported infrastructure kind {kind!r}") from None


class MigratorFactory:
    """Builds a fresh :class:`Migrator` per cluster and reconciliation call."""

    def __init__(
        self,
        management: ResourceStore,
        registry: ResourceRegistry,
        workload_clients: WorkloadClusterClientProvider,
        settings: MigrationSettings | None = None,
        ca_source: CertificateAuthoritySource | None = None,
        aws_credentials: AWSCredentialsConfig | None = None,
        renderer: TemplateRenderer | None = None,
    ):
        self.management = management
        self.registry = registry
        self.workload_clients = workload_clients
        self.settings = settings or MigrationSettings()
        self.ca_source = ca_source
        self.aws_credentials = aws_credentials
        self.renderer = renderer or TemplateRenderer()

    async def new_migrator(self, cluster_id: str) -> Migrator:
        """Read the Cluster and return the migrator for its provider.

        Raises:
            MissingInputError: If the Cluster does not exist
            InputError: If its infrastructure kind is not supported
        """
        try:
            cluster = await self.management.get("Cluster", cluster_id, self.settings.namespace)
        except NotFoundError as e:
            raise MissingInputError(f"Cluster {cluster_id} not found") from e

        provider = provider_for(cluster)
        ctx = ClusterMigrationContext(
            cluster_id=cluster_id,
            provider=provider,
            management=self.management,
            workload_clients=self.workload_clients,
            settings=self.settings,
        )
        ctx.resources.cluster = cluster
        logger.debug("migrator_created", cluster_id=cluster_id, provider=provider.value)

        if provider is Provider.AWS:
            return AWSMigrator(
                ctx,
                self.registry,
                ca_source=self.ca_source,
                renderer=self.renderer,
                aws_credentials=self.aws_credentials,
            )
        return AzureMigrator(ctx, self.registry, ca_source=self.ca_source, renderer=self.renderer)
