"""HashiCorp Vault client for cluster CA material.

Legacy clusters keep their CA in Vault. This module authenticates with
AppRole and reads the CA key pair of a cluster from a KV v2 engine.
"""

import asyncio
import threading
import time
from typing import Any

import hvac
import requests
from hvac.exceptions import InvalidPath
from hvac.exceptions import VaultError as HvacVaultError

from capi_migration.client.ca_source import CAMaterial, CertificateAuthoritySource
from capi_migration.client.exceptions import (
    MissingInputError,
    VaultAuthenticationError,
    VaultError,
)
from capi_migration.config import VaultConfig
from capi_migration.utils.logging import get_logger

logger = get_logger(__name__)

CA_CERT_FIELD = "certificate"
CA_KEY_FIELD = "private_key"


class VaultClient:
    """Client for HashiCorp Vault using AppRole authentication.

    This client manages:
    - AppRole authentication with automatic token renewal
    - KV2 secret reads below a configured path prefix
    """

    def __init__(self, config: VaultConfig, client: hvac.Client | None = None):
        """Initialize Vault client.

        Args:
            config: Vault configuration with AppRole credentials
            client: Pre-built hvac client (tests)
        """
        self.config = config
        self.path_prefix = config.path_prefix
        self.mount_point = config.mount_point

        self.client = client or hvac.Client(url=config.url, namespace=config.namespace)

        self._token_expires_at: float = 0
        # Reads run on worker threads; one of them logs in or renews at a time.
        self._auth_lock = threading.Lock()

        logger.info(
            "vault_client_initialized",
            url=config.url,
            namespace=config.namespace,
            path_prefix=self.path_prefix,
        )

    def _authenticate(self) -> None:
        """Authenticate using AppRole and obtain a token."""
        try:
            auth_response = self.client.auth.approle.login(
                role_id=self.config.role_id,
                secret_id=self.config.secret_id,
            )
        except (HvacVaultError, requests.RequestException) as e:
            logger.error("vault_authentication_failed", error=str(e))
            raise VaultAuthenticationError(f"Vault authentication failed: {e}") from e

        self.client.token = auth_response["auth"]["client_token"]
        lease_duration = auth_response["auth"]["lease_duration"]
        self._token_expires_at = time.time() + lease_duration

        logger.info("vault_authentication_successful", lease_duration=lease_duration)

    def _ensure_authenticated(self) -> None:
        """Ensure we have a valid token, renewing if necessary."""
        with self._auth_lock:
            # Renew within 5 minutes of expiry
            if time.time() < (self._token_expires_at - 300):
                return
            if not self._token_expires_at:
                self._authenticate()
                return
            try:
                renew_response = self.client.auth.token.renew_self()
                self._token_expires_at = time.time() + renew_response["auth"]["lease_duration"]
                logger.info("vault_token_renewed")
            except (HvacVaultError, requests.RequestException) as e:
                logger.warning(
                    "vault_token_renewal_failed", error=str(e), re_authenticating=True
                )
                self._authenticate()

    def _build_secret_path(self, path: str) -> str:
        return f"{self.path_prefix}/{path.strip('/')}"

    def read_secret(self, path: str) -> dict[str, Any]:
        """Read a secret from the KV2 engine.

        Args:
            path: Secret path (will be prefixed with path_prefix)

        Returns:
            Secret data dictionary

        Raises:
            MissingInputError: If no secret exists at the path
            VaultError: If the read fails
        """
        self._ensure_authenticated()
        full_path = self._build_secret_path(path)

        try:
            response = self.client.secrets.kv.v2.read_secret_version(
                path=full_path,
                mount_point=self.mount_point,
                raise_on_deleted_version=True,
            )
        except InvalidPath as e:
            raise MissingInputError(f"Vault secret {full_path} not found") from e
        except (HvacVaultError, requests.RequestException) as e:
            logger.error("vault_read_failed", path=full_path, error=str(e))
            raise VaultError(f"Failed to read secret: {e}") from e

        logger.debug("vault_secret_read", path=full_path)
        return response["data"]["data"]


class VaultCertificateAuthoritySource(CertificateAuthoritySource):
    """Reads ``<path_prefix>/<cluster_id>/ca`` with certificate and private_key fields."""

    def __init__(self, vault: VaultClient):
        self.vault = vault

    async def fetch_ca(self, cluster_id: str) -> CAMaterial:
        data = await asyncio.to_thread(self.vault.read_secret, f"{cluster_id}/ca")
        missing = [field for field in (CA_CERT_FIELD, CA_KEY_FIELD) if not data.get(field)]
        if missing:
            raise MissingInputError(
                f"CA secret for cluster {cluster_id} lacks fields: {', '.join(missing)}"
            )
        return CAMaterial(
            certificate=data[CA_CERT_FIELD].encode(),
            private_key=data[CA_KEY_FIELD].encode(),
        )
