"""Sources of cluster CA material."""

from abc import ABC, abstractmethod
from dataclasses import dataclass

from capi_migration.client.exceptions import MissingInputError


@dataclass(frozen=True)
class CAMaterial:
    """PEM encoded CA certificate and private key of a workload cluster."""

    certificate: bytes
    private_key: bytes

    def __repr__(self) -> str:
        return f"CAMaterial(certificate=<{len(self.certificate)} bytes>, private_key=<redacted>)"


class CertificateAuthoritySource(ABC):
    """Supplies the CA key pair a cluster's certificates were issued from."""

    @abstractmethod
    async def fetch_ca(self, cluster_id: str) -> CAMaterial:
        """Return CA material for ``cluster_id``.

        Raises:
            MissingInputError: If no CA is known for the cluster
        """


class StaticCertificateAuthoritySource(CertificateAuthoritySource):
    """Serves CA material from a fixed mapping, e.g. in tests."""

    def __init__(self, material: dict[str, CAMaterial]):
        self.material = dict(material)

    async def fetch_ca(self, cluster_id: str) -> CAMaterial:
        try:
            return self.material[cluster_id]
        except KeyError:
            raise MissingInputError(f"no CA material for cluster {cluster_id}") from None
