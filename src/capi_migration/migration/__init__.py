"""
Migration module for capi-migration.

This module provides the per-cluster migration state machine, resource
synthesis, readiness-gated cleanup and the provider migrator factory.
"""

# State machine
from capi_migration.migration.aws import AWSMigrator
from capi_migration.migration.azure import AzureMigrator
from capi_migration.migration.base import MigrationPhase, Migrator

# Cleanup
from capi_migration.migration.cleanup import CleanupResult, ReadinessGatedCleanup

# Context
from capi_migration.migration.context import (
    ClusterMigrationContext,
    ClusterResources,
    LegacyNodePool,
    ReleaseVersions,
)

# Factory
from capi_migration.migration.factory import MigratorFactory, provider_for

__all__ = [
    # State machine
    "Migrator",
    "MigrationPhase",
    "AWSMigrator",
    "AzureMigrator",
    # Cleanup
    "CleanupResult",
    "ReadinessGatedCleanup",
    # Context
    "ClusterMigrationContext",
    "ClusterResources",
    "LegacyNodePool",
    "ReleaseVersions",
    # Factory
    "MigratorFactory",
    "provider_for",
]
