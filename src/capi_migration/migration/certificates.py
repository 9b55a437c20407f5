"""Certificate secrets in the layout kubeadm-based control planes expect.

Legacy secrets store certificate material under ``cert``/``key``; the
upstream bootstrap provider reads ``tls.crt``/``tls.key``. Values are copied,
the legacy keys stay in place for the legacy controllers.
"""

from capi_migration import keys
from capi_migration.client.ca_source import CAMaterial, CertificateAuthoritySource
from capi_migration.client.exceptions import ConfigurationError, MissingInputError
from capi_migration.client.objects import (
    Resource,
    encode_secret_value,
    name_of,
    new_secret,
    secret_value,
)
from capi_migration.client.registry import ResourceRegistry
from capi_migration.client.store import ResourceStore
from capi_migration.utils.logging import get_logger

logger = get_logger(__name__)

LEGACY_CERT_KEY = "cert"
LEGACY_KEY_KEY = "key"
TLS_CERT_KEY = "tls.crt"
TLS_KEY_KEY = "tls.key"


def rekey_certificate_secret(secret: Resource) -> bool:
    """Copy ``cert``/``key`` to ``tls.crt``/``tls.key`` in place.

    Returns:
        True if the secret changed and needs to be written back

    Raises:
        MissingInputError: If the legacy keys are absent
    """
    data = secret.setdefault("data", {})
    missing = [k for k in (LEGACY_CERT_KEY, LEGACY_KEY_KEY) if not data.get(k)]
    if missing:
        raise MissingInputError(f"secret {name_of(secret)} lacks keys: {', '.join(missing)}")

    changed = False
    for source, target in ((LEGACY_CERT_KEY, TLS_CERT_KEY), (LEGACY_KEY_KEY, TLS_KEY_KEY)):
        if data.get(target) != data[source]:
            data[target] = data[source]
            changed = True
    return changed


def set_tls_material(secret: Resource, material: CAMaterial) -> bool:
    """Store CA material under ``tls.crt``/``tls.key``; returns True if anything changed."""
    if (
        secret_value(secret, TLS_CERT_KEY) == material.certificate
        and secret_value(secret, TLS_KEY_KEY) == material.private_key
    ):
        return False
    data = secret.setdefault("data", {})
    data[TLS_CERT_KEY] = encode_secret_value(material.certificate)
    data[TLS_KEY_KEY] = encode_secret_value(material.private_key)
    return True


class CertificateMigration:
    """Prepares the CA, etcd and service account secrets of one cluster."""

    def __init__(
        self,
        store: ResourceStore,
        registry: ResourceRegistry,
        cluster_id: str,
        namespace: str,
        ca_source: CertificateAuthoritySource | None,
    ):
        self.store = store
        self.registry = registry
        self.cluster_id = cluster_id
        self.namespace = namespace
        self.ca_source = ca_source

    async def run(self) -> None:
        material = await self.ensure_ca_secret()
        await self.ensure_etcd_secret(material)
        await self.rekey(keys.service_account_secret_name(self.cluster_id))

    async def ensure_ca_secret(self) -> CAMaterial:
        """Create ``<id>-ca`` from the CA source unless it already exists.

        Raises:
            ConfigurationError: If the secret is missing and no CA source is configured
        """
        name = keys.ca_secret_name(self.cluster_id)
        existing = await self.store.get_optional("Secret", name, self.namespace)
        if existing is not None:
            certificate = secret_value(existing, TLS_CERT_KEY)
            private_key = secret_value(existing, TLS_KEY_KEY)
            if certificate and private_key:
                return CAMaterial(certificate=certificate, private_key=private_key)

        if self.ca_source is None:
            raise ConfigurationError(
                f"secret {name} does not exist and no CA source is configured"
            )
        material = await self.ca_source.fetch_ca(self.cluster_id)

        if existing is not None:
            set_tls_material(existing, material)
            await self.store.update(existing)
            logger.info("ca_secret_completed", name=name)
            return material

        secret = new_secret(
            self.registry.get("Secret"),
            name,
            self.namespace,
            data={TLS_CERT_KEY: material.certificate, TLS_KEY_KEY: material.private_key},
            labels=keys.cluster_selector(self.cluster_id),
        )
        await self.store.create_or_get(secret)
        return material

    async def ensure_etcd_secret(self, material: CAMaterial) -> None:
        """Write the cluster CA into the etcd secret's ``tls.*`` keys."""
        name = keys.etcd_certs_secret_name(self.cluster_id)
        secret = await self.store.get_optional("Secret", name, self.namespace)
        if secret is None:
            secret = new_secret(
                self.registry.get("Secret"),
                name,
                self.namespace,
                data={TLS_CERT_KEY: material.certificate, TLS_KEY_KEY: material.private_key},
                labels=keys.cluster_selector(self.cluster_id),
            )
            await self.store.create_or_get(secret)
            return

        if set_tls_material(secret, material):
            await self.store.update(secret)
            logger.info("etcd_secret_updated", name=name)

    async def rekey(self, name: str) -> None:
        """Re-key a legacy certificate secret; no write when already done.

        Raises:
            MissingInputError: If the secret does not exist
        """
        secret = await self.store.get_optional("Secret", name, self.namespace)
        if secret is None:
            raise MissingInputError(f"certificate secret {name} not found")
        if rekey_certificate_secret(secret):
            await self.store.update(secret)
            logger.info("certificate_secret_rekeyed", name=name)
