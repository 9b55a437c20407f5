"""Tests for certificate secret preparation."""

import pytest

from capi_migration import keys
from capi_migration.client.ca_source import CAMaterial, StaticCertificateAuthoritySource
from capi_migration.client.exceptions import ConfigurationError, MissingInputError
from capi_migration.client.objects import secret_value
from capi_migration.migration.certificates import (
    CertificateMigration,
    rekey_certificate_secret,
)
from tests.factories import CA_CERT, CA_KEY, CLUSTER_ID, NAMESPACE, ResourceFactory, seed_common


def certificate_migration(store, registry, ca_source=None):
    return CertificateMigration(store, registry, CLUSTER_ID, NAMESPACE, ca_source)


class TestRekeyCertificateSecret:
    """Tests for copying legacy keys to the kubeadm layout."""

    def test_copies_legacy_keys(self):
        secret = ResourceFactory.legacy_cert_secret("abc12-sa", cert=b"c", key=b"k")

        assert rekey_certificate_secret(secret) is True
        assert secret_value(secret, "tls.crt") == b"c"
        assert secret_value(secret, "tls.key") == b"k"
        assert secret_value(secret, "cert") == b"c"

    def test_second_call_reports_no_change(self):
        secret = ResourceFactory.legacy_cert_secret("abc12-sa")
        rekey_certificate_secret(secret)

        assert rekey_certificate_secret(secret) is False

    def test_missing_legacy_key_raises(self):
        secret = ResourceFactory.secret("abc12-sa", {"cert": b"c"})

        with pytest.raises(MissingInputError, match="key"):
            rekey_certificate_secret(secret)


class TestCertificateMigration:
    """Tests for the CA, etcd and service account secrets of a cluster."""

    @pytest.mark.asyncio
    async def test_run_reuses_existing_ca(self, management, registry):
        seed_common(management)
        source = StaticCertificateAuthoritySource({})

        await certificate_migration(management, registry, source).run()

        etcd = await management.get("Secret", keys.etcd_certs_secret_name(CLUSTER_ID))
        sa = await management.get("Secret", keys.service_account_secret_name(CLUSTER_ID))
        assert secret_value(etcd, "tls.crt") == CA_CERT
        assert secret_value(etcd, "tls.key") == CA_KEY
        assert secret_value(sa, "tls.crt") == b"cert-pem"

    @pytest.mark.asyncio
    async def test_run_twice_writes_nothing_the_second_time(self, management, registry):
        seed_common(management)
        migration = certificate_migration(management, registry)
        await migration.run()
        writes_after_first = len(management.writes())

        await migration.run()

        assert len(management.writes()) == writes_after_first

    @pytest.mark.asyncio
    async def test_creates_ca_secret_from_source(self, management, registry, ca_source):
        management.put(ResourceFactory.legacy_cert_secret(keys.etcd_certs_secret_name(CLUSTER_ID)))

        material = await certificate_migration(management, registry, ca_source).ensure_ca_secret()

        ca = await management.get("Secret", keys.ca_secret_name(CLUSTER_ID))
        assert material.certificate == CA_CERT
        assert secret_value(ca, "tls.key") == CA_KEY
        assert ca["metadata"]["labels"] == {keys.CLUSTER_NAME_LABEL: CLUSTER_ID}

    @pytest.mark.asyncio
    async def test_completes_ca_secret_without_tls_keys(self, management, registry, ca_source):
        management.put(ResourceFactory.secret(keys.ca_secret_name(CLUSTER_ID), {"other": b"x"}))

        await certificate_migration(management, registry, ca_source).ensure_ca_secret()

        ca = await management.get("Secret", keys.ca_secret_name(CLUSTER_ID))
        assert secret_value(ca, "tls.crt") == CA_CERT
        assert secret_value(ca, "other") == b"x"

    @pytest.mark.asyncio
    async def test_missing_ca_without_source_raises(self, management, registry):
        with pytest.raises(ConfigurationError, match="no CA source"):
            await certificate_migration(management, registry).ensure_ca_secret()

    @pytest.mark.asyncio
    async def test_unknown_cluster_in_source_raises(self, management, registry):
        source = StaticCertificateAuthoritySource({"other": CAMaterial(b"c", b"k")})

        with pytest.raises(MissingInputError):
            await certificate_migration(management, registry, source).ensure_ca_secret()

    @pytest.mark.asyncio
    async def test_creates_missing_etcd_secret(self, management, registry):
        material = CAMaterial(certificate=CA_CERT, private_key=CA_KEY)

        await certificate_migration(management, registry).ensure_etcd_secret(material)

        etcd = await management.get("Secret", keys.etcd_certs_secret_name(CLUSTER_ID))
        assert secret_value(etcd, "tls.crt") == CA_CERT

    @pytest.mark.asyncio
    async def test_rekey_missing_secret_raises(self, management, registry):
        with pytest.raises(MissingInputError, match="not found"):
            await certificate_migration(management, registry).rekey("abc12-sa")

    def test_ca_material_repr_hides_key(self):
        assert "MIIkey" not in repr(CAMaterial(certificate=CA_CERT, private_key=CA_KEY))
