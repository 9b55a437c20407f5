"""Helpers for working with unstructured resource bodies.

Resources travel through the engine as plain dicts shaped like the JSON the
API server returns (``apiVersion``, ``kind``, ``metadata``, ``spec`` ...).
"""

import base64
import copy
from typing import Any

from capi_migration.client.registry import ResourceKind

Resource = dict[str, Any]

_MISSING = object()


def new_object(
    kind: ResourceKind,
    name: str,
    namespace: str | None = None,
    labels: dict[str, str] | None = None,
    **body: Any,
) -> Resource:
    """Build a resource body with ``apiVersion``, ``kind`` and metadata filled in."""
    metadata: dict[str, Any] = {"name": name}
    if namespace and kind.namespaced:
        metadata["namespace"] = namespace
    if labels:
        metadata["labels"] = dict(labels)
    obj: Resource = {"apiVersion": kind.api_version, "kind": kind.kind, "metadata": metadata}
    obj.update(body)
    return obj


def metadata(obj: Resource) -> dict[str, Any]:
    return obj.setdefault("metadata", {})


def name_of(obj: Resource) -> str:
    return obj.get("metadata", {}).get("name", "")


def namespace_of(obj: Resource) -> str | None:
    return obj.get("metadata", {}).get("namespace")


def labels_of(obj: Resource) -> dict[str, str]:
    return obj.get("metadata", {}).get("labels") or {}


def finalizers_of(obj: Resource) -> list[str]:
    return list(obj.get("metadata", {}).get("finalizers") or [])


def resource_version_of(obj: Resource) -> str | None:
    return obj.get("metadata", {}).get("resourceVersion")


def get_path(obj: Resource, path: str, default: Any = None) -> Any:
    """Read a dotted path such as ``spec.controlPlaneRef.name``.

    Returns ``default`` when any segment is missing or not a mapping.
    """
    current: Any = obj
    for part in path.split("."):
        if not isinstance(current, dict):
            return default
        current = current.get(part, _MISSING)
        if current is _MISSING:
            return default
    return current


def set_path(obj: Resource, path: str, value: Any) -> None:
    """Write a dotted path, creating intermediate mappings."""
    parts = path.split(".")
    current = obj
    for part in parts[:-1]:
        current = current.setdefault(part, {})
    current[parts[-1]] = value


def object_reference(obj: Resource) -> dict[str, str]:
    """Reference (apiVersion/kind/name/namespace) pointing at ``obj``."""
    ref = {
        "apiVersion": obj.get("apiVersion", ""),
        "kind": obj.get("kind", ""),
        "name": name_of(obj),
    }
    namespace = namespace_of(obj)
    if namespace:
        ref["namespace"] = namespace
    return ref


def clone(obj: Resource) -> Resource:
    return copy.deepcopy(obj)


def matches_labels(obj: Resource, selector: dict[str, str] | None) -> bool:
    """Return True if every selector label is present with the same value."""
    if not selector:
        return True
    labels = labels_of(obj)
    return all(labels.get(key) == value for key, value in selector.items())


def format_label_selector(selector: dict[str, str] | None) -> str | None:
    """Render an equality label selector (``a=b,c=d``) for the API server."""
    if not selector:
        return None
    return ",".join(f"{key}={value}" for key, value in sorted(selector.items()))


# Secrets


def encode_secret_value(value: bytes | str) -> str:
    if isinstance(value, str):
        value = value.encode()
    return base64.b64encode(value).decode("ascii")


def decode_secret_value(value: str) -> bytes:
    return base64.b64decode(value)


def secret_value(secret: Resource, key: str) -> bytes | None:
    """Return the decoded value stored under ``key`` in ``data`` or ``stringData``."""
    data = secret.get("data") or {}
    if key in data:
        return decode_secret_value(data[key])
    string_data = secret.get("stringData") or {}
    if key in string_data:
        return string_data[key].encode()
    return None


def new_secret(
    kind: ResourceKind,
    name: str,
    namespace: str,
    data: dict[str, bytes | str] | None = None,
    string_data: dict[str, str] | None = None,
    labels: dict[str, str] | None = None,
) -> Resource:
    """Build an Opaque secret; ``data`` values are base64-encoded here."""
    body: dict[str, Any] = {"type": "Opaque"}
    if data:
        body["data"] = {key: encode_secret_value(value) for key, value in data.items()}
    if string_data:
        body["stringData"] = dict(string_data)
    return new_object(kind, name, namespace, labels=labels, **body)
