"""Resource store interface.

A store offers typed get/list/create/update/delete over resources of kinds
known to its :class:`ResourceRegistry`. Two implementations exist: one backed
by the Kubernetes API (management or workload cluster) and an in-memory one.

On top of the primitives the base class provides the idempotency helpers the
migration relies on:

- ``get_optional``: not-found becomes ``None``
- ``list_one``: exactly one match or a fatal input error
- ``create_or_get``: create, or read back the existing object on AlreadyExists
"""

from abc import ABC, abstractmethod

from capi_migration.client.exceptions import (
    AlreadyExistsError,
    AmbiguousInputError,
    MissingInputError,
    NotFoundError,
)
from capi_migration.client.objects import Resource, name_of, namespace_of
from capi_migration.client.registry import ResourceRegistry
from capi_migration.utils.logging import get_logger

logger = get_logger(__name__)


class ResourceStore(ABC):
    """Abstract async resource store."""

    def __init__(self, registry: ResourceRegistry):
        self.registry = registry

    @abstractmethod
    async def get(self, kind: str, name: str, namespace: str | None = None) -> Resource:
        """Read one object.

        Raises:
            NotFoundError: If the object does not exist
        """

    @abstractmethod
    async def list(
        self,
        kind: str,
        namespace: str | None = None,
        labels: dict[str, str] | None = None,
    ) -> list[Resource]:
        """List objects, optionally filtered by namespace and equality labels."""

    @abstractmethod
    async def create(self, obj: Resource) -> Resource:
        """Create an object and return the stored version.

        Raises:
            AlreadyExistsError: If an object with the same name exists
        """

    @abstractmethod
    async def update(self, obj: Resource) -> Resource:
        """Replace an object; ``metadata.resourceVersion`` is checked when set.

        Raises:
            NotFoundError: If the object does not exist
            ConflictError: If the resourceVersion is stale
        """

    @abstractmethod
    async def delete(self, kind: str, name: str, namespace: str | None = None) -> None:
        """Delete an object.

        Raises:
            NotFoundError: If the object does not exist
        """

    async def close(self) -> None:
        """Release underlying connections."""
        return None

    async def get_optional(
        self, kind: str, name: str, namespace: str | None = None
    ) -> Resource | None:
        """Like :meth:`get` but returns None when the object does not exist."""
        try:
            return await self.get(kind, name, namespace)
        except NotFoundError:
            return None

    async def list_one(
        self,
        kind: str,
        namespace: str | None = None,
        labels: dict[str, str] | None = None,
    ) -> Resource:
        """List and require exactly one match.

        Raises:
            MissingInputError: If nothing matches
            AmbiguousInputError: If more than one object matches
        """
        items = await self.list(kind, namespace=namespace, labels=labels)
        if not items:
            raise MissingInputError(f"{kind} not found for selector {labels or {}}")
        if len(items) > 1:
            raise AmbiguousInputError(
                f"expected exactly one {kind} for selector {labels or {}}, found {len(items)}"
            )
        return items[0]

    async def create_or_get(self, obj: Resource) -> Resource:
        """Create ``obj``; if it already exists return the stored object instead.

        The existing object is never modified. Any other error propagates.
        """
        kind = obj.get("kind", "")
        name = name_of(obj)
        namespace = namespace_of(obj)
        try:
            created = await self.create(obj)
            logger.info("resource_created", kind=kind, name=name, namespace=namespace)
            return created
        except AlreadyExistsError:
            logger.debug("resource_already_exists", kind=kind, name=name, namespace=namespace)
            return await self.get(kind, name, namespace)
