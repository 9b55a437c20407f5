"""Configuration management for capi-migration using Pydantic.

This module provides type-safe configuration models for the management cluster
connection, cloud credentials, Vault, migration tuning and logging.
"""

import os
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from capi_migration.utils.retry import RetryPolicy


class KubernetesConfig(BaseModel):
    """Connection to the management cluster."""

    kubeconfig: str | None = Field(default=None, description="Path to kubeconfig file")
    context: str | None = Field(default=None, description="Kubeconfig context to use")
    in_cluster: bool = Field(
        default=False, description="Use the in-cluster service account instead of kubeconfig"
    )


class AWSCredentialsConfig(BaseModel):
    """Management-account AWS credentials used to assume per-cluster roles."""

    access_key_id: str = Field(..., description="AWS access key ID")
    secret_access_key: SecretStr = Field(..., description="AWS secret access key")
    region: str = Field(default="eu-central-1", description="Region for the STS session")

    @field_validator("access_key_id")
    @classmethod
    def validate_access_key_id(cls, v: str) -> str:
        """Validate access key is not empty."""
        if not v or v.strip() == "":
            raise ValueError("AWS access key ID cannot be empty")
        return v.strip()


class VaultConfig(BaseModel):
    """Configuration for HashiCorp Vault holding cluster CA material."""

    url: str = Field(..., description="Vault server URL")
    role_id: str = Field(..., description="AppRole Role ID")
    secret_id: str = Field(..., description="AppRole Secret ID")
    namespace: str | None = Field(default=None, description="Vault namespace (optional)")
    path_prefix: str = Field(default="capi-migration", description="Base path for CA secrets")
    mount_point: str = Field(default="secret", description="KV v2 mount point")
    token_ttl: int = Field(
        default=3600, ge=300, le=14400, description="Token TTL in seconds (5min - 4hrs)"
    )

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Validate and normalize Vault URL."""
        if not v.startswith(("http://", "https://")):
            raise ValueError("Vault URL must start with http:// or https://")
        return v.rstrip("/")

    @field_validator("path_prefix")
    @classmethod
    def validate_path_prefix(cls, v: str) -> str:
        """Validate path prefix format."""
        return v.strip("/")


class MigrationSettings(BaseModel):
    """Tuning of the migration engine and the reconciliation host."""

    namespace: str = Field(
        default="default", description="Namespace holding cluster CRs and secrets"
    )
    certs_namespace: str = Field(
        default="giantswarm",
        description="Namespace holding per-cluster API certificates on the management cluster",
    )
    legacy_node_label: str = Field(
        default="role", description="Label key identifying nodes created by legacy operators"
    )
    legacy_node_label_values: list[str] = Field(
        default_factory=lambda: ["master", "worker"],
        description="Values of legacy_node_label that mark a node as legacy",
    )
    legacy_master_label_value: str = Field(
        default="master", description="Value of legacy_node_label for legacy masters"
    )
    helper_image: str = Field(
        default="alpine:latest",
        description="Image used by the pod disabling legacy control-plane components",
    )
    pod_wait_timeout: float = Field(
        default=180.0, ge=1.0, le=1800.0, description="Maximum wait for helper pods (seconds)"
    )
    pod_poll_interval: float = Field(
        default=10.0, ge=0.0, le=300.0, description="Interval between helper pod checks"
    )
    requeue_after: float = Field(
        default=30.0, ge=1.0, description="Delay before retrying a failed reconciliation"
    )
    fatal_requeue_after: float = Field(
        default=300.0,
        ge=1.0,
        description="Delay before retrying a reconciliation that needs operator attention",
    )
    reconcile_interval: float = Field(
        default=60.0, ge=1.0, description="Interval between reconciliation passes in run mode"
    )
    max_concurrent_clusters: int = Field(
        default=4, ge=1, le=64, description="Clusters reconciled concurrently in run mode"
    )

    @model_validator(mode="after")
    def validate_poll_interval(self) -> "MigrationSettings":
        """Ensure at least one poll fits into the helper pod wait."""
        if self.pod_poll_interval > self.pod_wait_timeout:
            raise ValueError("pod_poll_interval must not exceed pod_wait_timeout")
        if self.legacy_master_label_value not in self.legacy_node_label_values:
            raise ValueError("legacy_master_label_value must be one of legacy_node_label_values")
        return self

    def pod_wait_policy(self) -> RetryPolicy:
        """Bounded wait used for helper pod completion."""
        return RetryPolicy(interval=self.pod_poll_interval, max_elapsed=self.pod_wait_timeout)


LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
LOG_FORMATS = ("json", "console")


class LoggingConfig(BaseModel):
    """Terminal and file logging; the file handler is only installed when ``file`` is set."""

    level: str = Field(default="INFO", description="Terminal log level")
    file_level: str = Field(default="DEBUG", description="File log level")
    format: str = Field(default="json", description="File log format (json or console)")
    file: str | None = Field(default=None, description="Log file path")

    @field_validator("level", "file_level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        if v.upper() not in LOG_LEVELS:
            raise ValueError(f"Log level must be one of: {', '.join(LOG_LEVELS)}")
        return v.upper()

    @field_validator("format")
    @classmethod
    def validate_format(cls, v: str) -> str:
        if v.lower() not in LOG_FORMATS:
            raise ValueError(f"Log format must be one of: {', '.join(LOG_FORMATS)}")
        return v.lower()


class MigrationConfig(BaseSettings):
    """Main configuration."""

    model_config = SettingsConfigDict(
        env_prefix="CAPI_MIGRATION_",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    kubernetes: KubernetesConfig = Field(
        default_factory=KubernetesConfig, description="Management cluster connection"
    )
    aws: AWSCredentialsConfig | None = Field(
        default=None, description="AWS management credentials (required for AWS clusters)"
    )
    vault: VaultConfig | None = Field(
        default=None, description="Vault holding cluster CA material"
    )
    migration: MigrationSettings = Field(
        default_factory=MigrationSettings, description="Migration engine settings"
    )
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig, description="Logging configuration"
    )


_ENV_REFERENCE = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")


def load_config_from_yaml(config_path: str | Path) -> MigrationConfig:
    """Load a YAML configuration file, substituting ``${VAR}`` references first.

    Values in the file take precedence over ``CAPI_MIGRATION_*`` environment
    variables.

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If the file is empty or references an unset variable
    """
    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {path}")

    data = yaml.safe_load(path.read_text())
    if not data:
        raise ValueError(f"Empty configuration file: {path}")

    return MigrationConfig(**_expand_env_vars(data))


def _substitute(match: re.Match) -> str:
    name = match.group(1)
    value = os.environ.get(name)
    if value is None:
        raise ValueError(
            f"Environment variable '{name}' not found. "
            "Set it in your environment or .env file."
        )
    return value


def _expand_env_vars(data: Any) -> Any:
    """Replace ``${VAR}`` references in every string of a parsed YAML tree."""
    if isinstance(data, dict):
        return {key: _expand_env_vars(value) for key, value in data.items()}
    if isinstance(data, list):
        return [_expand_env_vars(item) for item in data]
    if isinstance(data, str):
        return _ENV_REFERENCE.sub(_substitute, data)
    return data
