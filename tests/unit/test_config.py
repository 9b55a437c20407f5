"""Tests for configuration models and YAML loading."""

import pytest
from pydantic import ValidationError

from capi_migration.config import (
    AWSCredentialsConfig,
    LoggingConfig,
    MigrationConfig,
    MigrationSettings,
    VaultConfig,
    load_config_from_yaml,
)


class TestMigrationSettings:
    """Tests for engine settings."""

    def test_defaults(self):
        settings = MigrationSettings()

        assert settings.namespace == "default"
        assert settings.certs_namespace == "giantswarm"
        assert settings.legacy_node_label == "role"
        assert settings.legacy_node_label_values == ["master", "worker"]
        assert settings.pod_wait_timeout == 180
        assert settings.pod_poll_interval == 10
        assert settings.requeue_after == 30

    def test_pod_wait_policy(self):
        policy = MigrationSettings(pod_poll_interval=5, pod_wait_timeout=60).pod_wait_policy()

        assert policy.interval == 5
        assert policy.max_elapsed == 60

    def test_poll_interval_longer_than_timeout(self):
        with pytest.raises(ValidationError, match="pod_poll_interval"):
            MigrationSettings(pod_poll_interval=30, pod_wait_timeout=10)

    def test_master_value_must_be_a_legacy_value(self):
        with pytest.raises(ValidationError, match="legacy_master_label_value"):
            MigrationSettings(legacy_node_label_values=["worker"])

    def test_timeout_lower_bound(self):
        with pytest.raises(ValidationError):
            MigrationSettings(pod_wait_timeout=0)


class TestLoggingConfig:
    def test_normalizes_level_and_format(self):
        config = LoggingConfig(level="debug", format="CONSOLE")

        assert config.level == "DEBUG"
        assert config.format == "console"

    def test_rejects_unknown_level(self):
        with pytest.raises(ValidationError, match="Log level"):
            LoggingConfig(level="verbose")

    def test_rejects_unknown_format(self):
        with pytest.raises(ValidationError, match="Log format"):
            LoggingConfig(format="xml")


class TestVaultConfig:
    """Tests for Vault settings."""

    def test_strips_trailing_slashes(self):
        config = VaultConfig(
            url="https://vault.example.com/", role_id="r", secret_id="s", path_prefix="/ca/"
        )

        assert config.url == "https://vault.example.com"
        assert config.path_prefix == "ca"
        assert config.mount_point == "secret"

    def test_rejects_url_without_scheme(self):
        with pytest.raises(ValidationError, match="http"):
            VaultConfig(url="vault.example.com", role_id="r", secret_id="s")

    def test_token_ttl_bounds(self):
        with pytest.raises(ValidationError):
            VaultConfig(url="https://vault", role_id="r", secret_id="s", token_ttl=60)


class TestAWSCredentialsConfig:
    def test_secret_is_hidden(self):
        config = AWSCredentialsConfig(access_key_id=" AKIATEST ", secret_access_key="hidden")

        assert config.access_key_id == "AKIATEST"
        assert config.region == "eu-central-1"
        assert "hidden" not in repr(config)
        assert config.secret_access_key.get_secret_value() == "hidden"

    def test_rejects_empty_key(self):
        with pytest.raises(ValidationError, match="cannot be empty"):
            AWSCredentialsConfig(access_key_id="  ", secret_access_key="x")


class TestLoadConfigFromYaml:
    """Tests for loading YAML configuration files."""

    def test_loads_sections(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(
            "kubernetes:\n"
            "  context: mgmt\n"
            "migration:\n"
            "  namespace: org-acme\n"
            "  requeue_after: 45\n"
            "logging:\n"
            "  level: debug\n"
        )

        config = load_config_from_yaml(path)

        assert config.kubernetes.context == "mgmt"
        assert config.migration.namespace == "org-acme"
        assert config.migration.requeue_after == 45
        assert config.logging.level == "DEBUG"
        assert config.aws is None
        assert config.vault is None

    def test_expands_environment_variables(self, tmp_path, monkeypatch):
        monkeypatch.setenv("TEST_AWS_SECRET", "from-env")
        path = tmp_path / "config.yaml"
        path.write_text(
            "aws:\n  access_key_id: AKIATEST\n  secret_access_key: ${TEST_AWS_SECRET}\n"
        )

        config = load_config_from_yaml(path)

        assert config.aws.secret_access_key.get_secret_value() == "from-env"

    def test_expands_references_inside_strings(self, tmp_path, monkeypatch):
        monkeypatch.setenv("TEST_VAULT_HOST", "vault.internal")
        path = tmp_path / "config.yaml"
        path.write_text(
            "vault:\n"
            "  url: https://${TEST_VAULT_HOST}:8200\n"
            "  role_id: role\n"
            "  secret_id: secret\n"
        )

        config = load_config_from_yaml(path)

        assert config.vault.url == "https://vault.internal:8200"

    def test_missing_environment_variable(self, tmp_path, monkeypatch):
        monkeypatch.delenv("TEST_UNSET_VARIABLE", raising=False)
        path = tmp_path / "config.yaml"
        path.write_text("vault:\n  url: ${TEST_UNSET_VARIABLE}\n")

        with pytest.raises(ValueError, match="TEST_UNSET_VARIABLE"):
            load_config_from_yaml(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config_from_yaml(tmp_path / "absent.yaml")

    def test_empty_file(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("")

        with pytest.raises(ValueError, match="Empty configuration file"):
            load_config_from_yaml(path)


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("CAPI_MIGRATION_MIGRATION__NAMESPACE", "org-env")
    monkeypatch.setenv("CAPI_MIGRATION_LOGGING__FORMAT", "console")

    config = MigrationConfig()

    assert config.migration.namespace == "org-env"
    assert config.logging.format == "console"
