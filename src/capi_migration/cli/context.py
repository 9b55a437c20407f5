"""
CLI context for capi-migration.

This module provides the context object that is passed to all CLI commands.
It loads configuration and builds the stores, CA source, migrator factory
and reconciler on first use.
"""

from dataclasses import dataclass, field
from pathlib import Path

from capi_migration.client.ca_source import CertificateAuthoritySource
from capi_migration.client.kubernetes_store import KubernetesResourceStore
from capi_migration.client.registry import ResourceRegistry, default_registry
from capi_migration.client.vault_client import VaultCertificateAuthoritySource, VaultClient
from capi_migration.client.workload import CertificateWorkloadClientProvider
from capi_migration.config import MigrationConfig, load_config_from_yaml
from capi_migration.controller.reconciler import ClusterReconciler
from capi_migration.migration.factory import MigratorFactory
from capi_migration.utils.logging import configure_logging, get_logger

logger = get_logger(__name__)


@dataclass
class CLIContext:
    """
    Context object for CLI commands.

    Without a configuration file, settings come from ``CAPI_MIGRATION_*``
    environment variables alone.

    Attributes:
        config_path: Path to configuration file
        log_level: Logging level
        log_file: Optional log file path
    """

    config_path: Path | None = None
    log_level: str = "INFO"
    log_file: Path | None = None

    # Lazy-loaded attributes
    _config: MigrationConfig | None = field(default=None, init=False, repr=False)
    _registry: ResourceRegistry | None = field(default=None, init=False, repr=False)
    _management: KubernetesResourceStore | None = field(default=None, init=False, repr=False)
    _factory: MigratorFactory | None = field(default=None, init=False, repr=False)

    @property
    def config(self) -> MigrationConfig:
        """Get or load migration configuration."""
        if self._config is None:
            if self.config_path is None:
                logger.debug("loading_configuration_from_environment")
                self._config = MigrationConfig()
            else:
                logger.debug("loading_configuration", config_path=str(self.config_path))
                self._config = load_config_from_yaml(self.config_path)
            self._apply_logging_config()
        return self._config

    def _apply_logging_config(self) -> None:
        """Add the file handler configured under ``logging`` unless --log-file was given."""
        logging_cfg = self._config.logging
        if logging_cfg.file is None or self.log_file is not None:
            return
        configure_logging(
            level=self.log_level,
            log_format=logging_cfg.format,
            log_file=logging_cfg.file,
            file_level=logging_cfg.file_level,
        )

    @property
    def registry(self) -> ResourceRegistry:
        if self._registry is None:
            self._registry = default_registry()
        return self._registry

    @property
    def management(self) -> KubernetesResourceStore:
        """Get or create the management cluster store."""
        if self._management is None:
            logger.debug(
                "creating_management_store",
                context=self.config.kubernetes.context,
                in_cluster=self.config.kubernetes.in_cluster,
            )
            self._management = KubernetesResourceStore.from_config(
                self.config.kubernetes,
                self.registry,
                default_namespace=self.config.migration.namespace,
            )
        return self._management

    @property
    def ca_source(self) -> CertificateAuthoritySource | None:
        if self.config.vault is None:
            return None
        return VaultCertificateAuthoritySource(VaultClient(self.config.vault))

    @property
    def factory(self) -> MigratorFactory:
        """Get or create the migrator factory."""
        if self._factory is None:
            settings = self.config.migration
            self._factory = MigratorFactory(
                self.management,
                self.registry,
                CertificateWorkloadClientProvider(
                    self.management, self.registry, certs_namespace=settings.certs_namespace
                ),
                settings=settings,
                ca_source=self.ca_source,
                aws_credentials=self.config.aws,
            )
        return self._factory

    def reconciler(self) -> ClusterReconciler:
        return ClusterReconciler(self.factory, self.management, self.config.migration)

    async def close(self) -> None:
        """Close the management store if it was created."""
        if self._management is not None:
            logger.debug("closing_management_store")
            await self._management.close()
            self._management = None
