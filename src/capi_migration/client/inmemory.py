"""In-memory resource store.

Behaves like the API server for the operations the migration uses: create
refuses duplicates, update checks ``resourceVersion``, list honours equality
label selectors. Used by tests and dry runs.
"""

import asyncio
import itertools

from capi_migration.client.exceptions import (
    AlreadyExistsError,
    ConflictError,
    NotFoundError,
)
from capi_migration.client.objects import (
    Resource,
    clone,
    matches_labels,
    metadata,
    name_of,
    namespace_of,
    resource_version_of,
)
from capi_migration.client.registry import ResourceRegistry
from capi_migration.client.store import ResourceStore

_Key = tuple[str, str | None, str]


class InMemoryResourceStore(ResourceStore):
    """Dict-backed store keyed by (kind, namespace, name)."""

    def __init__(self, registry: ResourceRegistry, default_namespace: str = "default"):
        super().__init__(registry)
        self.default_namespace = default_namespace
        self._objects: dict[_Key, Resource] = {}
        self._versions = itertools.count(1)
        self._lock = asyncio.Lock()
        # Operation log, e.g. ("create", "Secret", "abc-ca").
        self.calls: list[tuple[str, str, str]] = []

    def _key(self, kind: str, name: str, namespace: str | None) -> _Key:
        k = self.registry.get(kind)
        ns = (namespace or self.default_namespace) if k.namespaced else None
        return (kind, ns, name)

    def _stamp(self, obj: Resource) -> None:
        metadata(obj)["resourceVersion"] = str(next(self._versions))

    def put(self, obj: Resource) -> Resource:
        """Seed an object without going through create semantics."""
        key = self._key(obj["kind"], name_of(obj), namespace_of(obj))
        stored = clone(obj)
        if key[1] is not None:
            metadata(stored)["namespace"] = key[1]
        self._stamp(stored)
        self._objects[key] = stored
        return clone(stored)

    def count(self, kind: str) -> int:
        return sum(1 for key in self._objects if key[0] == kind)

    def writes(self) -> list[tuple[str, str, str]]:
        """Recorded create/update/delete calls."""
        return [call for call in self.calls if call[0] in ("create", "update", "delete")]

    async def get(self, kind: str, name: str, namespace: str | None = None) -> Resource:
        key = self._key(kind, name, namespace)
        self.calls.append(("get", kind, name))
        try:
            return clone(self._objects[key])
        except KeyError:
            raise NotFoundError(f"{kind} {name} not found", status_code=404) from None

    async def list(
        self,
        kind: str,
        namespace: str | None = None,
        labels: dict[str, str] | None = None,
    ) -> list[Resource]:
        self.registry.get(kind)
        self.calls.append(("list", kind, ""))
        return [
            clone(obj)
            for (obj_kind, obj_ns, _), obj in sorted(
                self._objects.items(), key=lambda item: (item[0][1] or "", item[0][2])
            )
            if obj_kind == kind
            and (namespace is None or obj_ns == namespace)
            and matches_labels(obj, labels)
        ]

    async def create(self, obj: Resource) -> Resource:
        kind = obj["kind"]
        name = name_of(obj)
        key = self._key(kind, name, namespace_of(obj))
        async with self._lock:
            self.calls.append(("create", kind, name))
            if key in self._objects:
                raise AlreadyExistsError(
                    f"{kind} {name} already exists", status_code=409, reason="AlreadyExists"
                )
            stored = clone(obj)
            if key[1] is not None:
                metadata(stored)["namespace"] = key[1]
            stored.setdefault("apiVersion", self.registry.get(kind).api_version)
            self._stamp(stored)
            self._objects[key] = stored
            return clone(stored)

    async def update(self, obj: Resource) -> Resource:
        kind = obj["kind"]
        name = name_of(obj)
        key = self._key(kind, name, namespace_of(obj))
        async with self._lock:
            self.calls.append(("update", kind, name))
            current = self._objects.get(key)
            if current is None:
                raise NotFoundError(f"{kind} {name} not found", status_code=404)
            expected = resource_version_of(obj)
            if expected is not None and expected != resource_version_of(current):
                raise ConflictError(
                    f"{kind} {name} was modified concurrently",
                    status_code=409,
                    reason="Conflict",
                )
            stored = clone(obj)
            if key[1] is not None:
                metadata(stored)["namespace"] = key[1]
            self._stamp(stored)
            self._objects[key] = stored
            return clone(stored)

    async def delete(self, kind: str, name: str, namespace: str | None = None) -> None:
        key = self._key(kind, name, namespace)
        async with self._lock:
            self.calls.append(("delete", kind, name))
            if self._objects.pop(key, None) is None:
                raise NotFoundError(f"{kind} {name} not found", status_code=404)

