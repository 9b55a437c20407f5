"""Resource store backed by the Kubernetes API.

Custom resources go through ``CustomObjectsApi``; core kinds (Secret, Node,
Pod) through ``CoreV1Api``. The kubernetes client is synchronous, so every
call runs in a worker thread. Results are returned as plain dicts.
"""

import asyncio
import json
import re
from typing import Any

import urllib3
from kubernetes import client as k8s_client
from kubernetes import config as k8s_config
from kubernetes.client.exceptions import ApiException

from capi_migration.client.exceptions import (
    AlreadyExistsError,
    APIError,
    AuthorizationError,
    ConfigurationError,
    ConflictError,
    NetworkError,
    NotFoundError,
    ServerError,
)
from capi_migration.client.objects import (
    Resource,
    format_label_selector,
    name_of,
    namespace_of,
)
from capi_migration.client.registry import ResourceKind, ResourceRegistry
from capi_migration.client.store import ResourceStore
from capi_migration.config import KubernetesConfig
from capi_migration.utils.logging import get_logger, sanitize_payload
from capi_migration.utils.retry import retry_api_call

logger = get_logger(__name__)

_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")


def _core_method_suffix(kind: ResourceKind) -> str:
    # Secret -> secret, ConfigMap -> config_map
    return _CAMEL_BOUNDARY.sub("_", kind.kind).lower()


def translate_api_exception(e: ApiException, kind: str, name: str | None) -> APIError:
    """Map a kubernetes ``ApiException`` onto the store error hierarchy."""
    body: dict[str, Any] | None = None
    if e.body:
        try:
            body = json.loads(e.body)
        except (TypeError, ValueError):
            body = {"message": str(e.body)}

    status = e.status or 0
    reason = (body or {}).get("reason") or e.reason
    message = (body or {}).get("message") or f"{kind} {name or ''}".strip()

    if status == 404:
        return NotFoundError(message, status_code=status, reason=reason, response=body)
    if status == 409:
        if reason == "AlreadyExists":
            return AlreadyExistsError(message, status_code=status, reason=reason, response=body)
        return ConflictError(message, status_code=status, reason=reason, response=body)
    if status in (401, 403):
        return AuthorizationError(message, status_code=status, reason=reason, response=body)
    if status >= 500:
        return ServerError(message, status_code=status, reason=reason, response=body)
    return APIError(message, status_code=status, reason=reason, response=body)


class KubernetesResourceStore(ResourceStore):
    """Store talking to one Kubernetes API server."""

    def __init__(
        self,
        api_client: k8s_client.ApiClient,
        registry: ResourceRegistry,
        default_namespace: str = "default",
    ):
        """Initialize the store.

        Args:
            api_client: Configured kubernetes ``ApiClient``
            registry: Kinds this store may operate on
            default_namespace: Namespace used when a namespaced call omits one
        """
        super().__init__(registry)
        self.api_client = api_client
        self.default_namespace = default_namespace
        self._custom = k8s_client.CustomObjectsApi(api_client)
        self._core = k8s_client.CoreV1Api(api_client)

    @classmethod
    def from_config(
        cls,
        kube: KubernetesConfig,
        registry: ResourceRegistry,
        default_namespace: str = "default",
    ) -> "KubernetesResourceStore":
        """Build a store for the management cluster from kubeconfig or in-cluster config."""
        configuration = k8s_client.Configuration()
        try:
            if kube.in_cluster:
                k8s_config.load_incluster_config(client_configuration=configuration)
            else:
                k8s_config.load_kube_config(
                    config_file=kube.kubeconfig,
                    context=kube.context,
                    client_configuration=configuration,
                )
        except k8s_config.ConfigException as e:
            raise ConfigurationError(f"Cannot load Kubernetes configuration: {e}") from e

        logger.info(
            "kubernetes_store_initialized",
            host=configuration.host,
            in_cluster=kube.in_cluster,
        )
        return cls(k8s_client.ApiClient(configuration), registry, default_namespace)

    async def close(self) -> None:
        await asyncio.to_thread(self.api_client.close)

    def _namespace(self, kind: ResourceKind, namespace: str | None) -> str | None:
        if not kind.namespaced:
            return None
        return namespace or self.default_namespace

    def _to_dict(self, result: Any, kind: ResourceKind) -> Resource:
        obj = self.api_client.sanitize_for_serialization(result)
        # Core API models omit apiVersion/kind on list items.
        obj.setdefault("apiVersion", kind.api_version)
        obj.setdefault("kind", kind.kind)
        return obj

    async def _call(self, kind: ResourceKind, name: str | None, func, *args, **kwargs) -> Any:
        try:
            return await asyncio.to_thread(func, *args, **kwargs)
        except ApiException as e:
            raise translate_api_exception(e, kind.kind, name) from e
        except urllib3.exceptions.HTTPError as e:
            raise NetworkError(f"{kind.kind} {name or ''}: {e}") from e

    def _log_write(self, action: str, obj: Resource) -> None:
        logger.debug(
            "api_write",
            action=action,
            kind=obj["kind"],
            name=name_of(obj),
            namespace=namespace_of(obj),
            body=sanitize_payload(obj),
        )

    def _core_method(self, action: str, kind: ResourceKind, namespaced: bool):
        scope = "namespaced_" if namespaced else ""
        return getattr(self._core, f"{action}_{scope}{_core_method_suffix(kind)}")

    @retry_api_call
    async def get(self, kind: str, name: str, namespace: str | None = None) -> Resource:
        k = self.registry.get(kind)
        ns = self._namespace(k, namespace)
        if k.is_core:
            method = self._core_method("read", k, ns is not None)
            args = (name, ns) if ns is not None else (name,)
            result = await self._call(k, name, method, *args)
            return self._to_dict(result, k)
        if ns is None:
            return await self._call(
                k, name, self._custom.get_cluster_custom_object, k.group, k.version, k.plural, name
            )
        return await self._call(
            k,
            name,
            self._custom.get_namespaced_custom_object,
            k.group,
            k.version,
            ns,
            k.plural,
            name,
        )

    @retry_api_call
    async def list(
        self,
        kind: str,
        namespace: str | None = None,
        labels: dict[str, str] | None = None,
    ) -> list[Resource]:
        k = self.registry.get(kind)
        ns = namespace if k.namespaced else None
        kwargs: dict[str, Any] = {}
        selector = format_label_selector(labels)
        if selector:
            kwargs["label_selector"] = selector

        if k.is_core:
            if ns is not None:
                method = self._core_method("list", k, True)
                result = await self._call(k, None, method, ns, **kwargs)
            elif k.namespaced:
                method = getattr(
                    self._core, f"list_{_core_method_suffix(k)}_for_all_namespaces"
                )
                result = await self._call(k, None, method, **kwargs)
            else:
                method = self._core_method("list", k, False)
                result = await self._call(k, None, method, **kwargs)
            return [self._to_dict(item, k) for item in result.items]

        if ns is None:
            result = await self._call(
                k,
                None,
                self._custom.list_cluster_custom_object,
                k.group,
                k.version,
                k.plural,
                **kwargs,
            )
        else:
            result = await self._call(
                k,
                None,
                self._custom.list_namespaced_custom_object,
                k.group,
                k.version,
                ns,
                k.plural,
                **kwargs,
            )
        items = result.get("items", [])
        for item in items:
            item.setdefault("apiVersion", k.api_version)
            item.setdefault("kind", k.kind)
        return items

    @retry_api_call
    async def create(self, obj: Resource) -> Resource:
        k = self.registry.get(obj["kind"])
        name = name_of(obj)
        ns = self._namespace(k, namespace_of(obj))
        self._log_write("create", obj)
        if k.is_core:
            method = self._core_method("create", k, ns is not None)
            args = (ns, obj) if ns is not None else (obj,)
            result = await self._call(k, name, method, *args)
            return self._to_dict(result, k)
        if ns is None:
            return await self._call(
                k,
                name,
                self._custom.create_cluster_custom_object,
                k.group,
                k.version,
                k.plural,
                obj,
            )
        return await self._call(
            k,
            name,
            self._custom.create_namespaced_custom_object,
            k.group,
            k.version,
            ns,
            k.plural,
            obj,
        )

    @retry_api_call
    async def update(self, obj: Resource) -> Resource:
        k = self.registry.get(obj["kind"])
        name = name_of(obj)
        ns = self._namespace(k, namespace_of(obj))
        self._log_write("update", obj)
        if k.is_core:
            method = self._core_method("replace", k, ns is not None)
            args = (name, ns, obj) if ns is not None else (name, obj)
            result = await self._call(k, name, method, *args)
            return self._to_dict(result, k)
        if ns is None:
            return await self._call(
                k,
                name,
                self._custom.replace_cluster_custom_object,
                k.group,
                k.version,
                k.plural,
                name,
                obj,
            )
        return await self._call(
            k,
            name,
            self._custom.replace_namespaced_custom_object,
            k.group,
            k.version,
            ns,
            k.plural,
            name,
            obj,
        )

    @retry_api_call
    async def delete(self, kind: str, name: str, namespace: str | None = None) -> None:
        k = self.registry.get(kind)
        ns = self._namespace(k, namespace)
        if k.is_core:
            method = self._core_method("delete", k, ns is not None)
            args = (name, ns) if ns is not None else (name,)
            await self._call(k, name, method, *args)
            return
        if ns is None:
            await self._call(
                k,
                name,
                self._custom.delete_cluster_custom_object,
                k.group,
                k.version,
                k.plural,
                name,
            )
            return
        await self._call(
            k,
            name,
            self._custom.delete_namespaced_custom_object,
            k.group,
            k.version,
            ns,
            k.plural,
            name,
        )
