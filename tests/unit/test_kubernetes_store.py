"""Tests for the Kubernetes API backed store.

The kubernetes API classes are replaced with mocks; only the call mapping and
error translation are checked here.
"""

import json
from unittest.mock import MagicMock

import pytest
from kubernetes.client.exceptions import ApiException

from capi_migration.client.exceptions import (
    AlreadyExistsError,
    APIError,
    AuthorizationError,
    ConflictError,
    NotFoundError,
    ServerError,
)
from capi_migration.client.kubernetes_store import (
    KubernetesResourceStore,
    translate_api_exception,
)


def api_exception(status: int, reason: str | None = None, body: dict | None = None):
    e = ApiException(status=status, reason=reason)
    e.body = json.dumps(body) if body is not None else None
    return e


@pytest.fixture
def store(registry):
    api_client = MagicMock()
    api_client.sanitize_for_serialization.side_effect = lambda obj: obj
    store = KubernetesResourceStore(api_client, registry)
    store._custom = MagicMock()
    store._core = MagicMock()
    return store


class TestTranslateApiException:
    """Tests for mapping API status codes onto store errors."""

    def test_not_found(self):
        error = translate_api_exception(api_exception(404, "Not Found"), "Cluster", "abc12")

        assert isinstance(error, NotFoundError)
        assert error.status_code == 404

    def test_already_exists_uses_body_reason(self):
        e = api_exception(409, "Conflict", {"reason": "AlreadyExists", "message": "exists"})

        error = translate_api_exception(e, "Secret", "abc12-ca")

        assert isinstance(error, AlreadyExistsError)
        assert error.message == "exists"

    def test_resource_version_conflict(self):
        e = api_exception(409, "Conflict", {"reason": "Conflict"})

        assert isinstance(translate_api_exception(e, "Cluster", "abc12"), ConflictError)

    @pytest.mark.parametrize(
        "status,expected",
        [(401, AuthorizationError), (403, AuthorizationError), (500, ServerError)],
    )
    def test_status_classes(self, status, expected):
        assert isinstance(translate_api_exception(api_exception(status), "Node", None), expected)

    def test_unparsable_body_is_kept_as_message(self):
        e = ApiException(status=422, reason="Invalid")
        e.body = "not json"

        error = translate_api_exception(e, "Cluster", "abc12")

        assert type(error) is APIError
        assert error.message == "not json"


class TestCustomObjects:
    """Tests for custom resource calls."""

    @pytest.mark.asyncio
    async def test_get_namespaced(self, store):
        store._custom.get_namespaced_custom_object.return_value = {"metadata": {"name": "abc12"}}

        result = await store.get("Cluster", "abc12", "org-acme")

        assert result == {"metadata": {"name": "abc12"}}
        store._custom.get_namespaced_custom_object.assert_called_once_with(
            "cluster.x-k8s.io", "v1alpha3", "org-acme", "clusters", "abc12"
        )

    @pytest.mark.asyncio
    async def test_get_cluster_scoped(self, store):
        store._custom.get_cluster_custom_object.return_value = {"metadata": {"name": "v14.1.0"}}

        await store.get("Release", "v14.1.0")

        store._custom.get_cluster_custom_object.assert_called_once_with(
            "release.giantswarm.io", "v1alpha1", "releases", "v14.1.0"
        )

    @pytest.mark.asyncio
    async def test_list_fills_kind_and_selector(self, store):
        store._custom.list_namespaced_custom_object.return_value = {
            "items": [{"metadata": {"name": "np001"}}]
        }

        items = await store.list("MachinePool", "default", labels={"cluster": "abc12"})

        assert items[0]["kind"] == "MachinePool"
        assert items[0]["apiVersion"] == "exp.cluster.x-k8s.io/v1alpha3"
        store._custom.list_namespaced_custom_object.assert_called_once_with(
            "exp.cluster.x-k8s.io",
            "v1alpha3",
            "default",
            "machinepools",
            label_selector="cluster=abc12",
        )

    @pytest.mark.asyncio
    async def test_create_already_exists(self, store):
        store._custom.create_namespaced_custom_object.side_effect = api_exception(
            409, "Conflict", {"reason": "AlreadyExists"}
        )

        with pytest.raises(AlreadyExistsError):
            await store.create(
                {"kind": "KubeadmControlPlane", "metadata": {"name": "abc12-control-plane"}}
            )
        assert store._custom.create_namespaced_custom_object.call_count == 1

    @pytest.mark.asyncio
    async def test_update_uses_replace(self, store):
        obj = {"kind": "Cluster", "metadata": {"name": "abc12", "namespace": "default"}}
        store._custom.replace_namespaced_custom_object.return_value = obj

        await store.update(obj)

        store._custom.replace_namespaced_custom_object.assert_called_once_with(
            "cluster.x-k8s.io", "v1alpha3", "default", "clusters", "abc12", obj
        )


class TestCoreObjects:
    """Tests for core API calls."""

    @pytest.mark.asyncio
    async def test_get_secret(self, store):
        store._core.read_namespaced_secret.return_value = {"metadata": {"name": "abc12-ca"}}

        result = await store.get("Secret", "abc12-ca", "default")

        assert result["kind"] == "Secret"
        assert result["apiVersion"] == "v1"
        store._core.read_namespaced_secret.assert_called_once_with("abc12-ca", "default")

    @pytest.mark.asyncio
    async def test_get_secret_not_found(self, store):
        store._core.read_namespaced_secret.side_effect = api_exception(404, "Not Found")

        with pytest.raises(NotFoundError):
            await store.get("Secret", "absent", "default")

    @pytest.mark.asyncio
    async def test_list_nodes(self, store):
        store._core.list_node.return_value = MagicMock(items=[{"metadata": {"name": "n0"}}])

        nodes = await store.list("Node", labels={"role": "master"})

        assert [n["metadata"]["name"] for n in nodes] == ["n0"]
        store._core.list_node.assert_called_once_with(label_selector="role=master")

    @pytest.mark.asyncio
    async def test_list_pods_across_namespaces(self, store):
        store._core.list_pod_for_all_namespaces.return_value = MagicMock(items=[])

        assert await store.list("Pod") == []
        store._core.list_pod_for_all_namespaces.assert_called_once_with()

    @pytest.mark.asyncio
    async def test_delete_pod(self, store):
        await store.delete("Pod", "stop-masters", "kube-system")

        store._core.delete_namespaced_pod.assert_called_once_with("stop-masters", "kube-system")
