"""Disable control-plane components on legacy master nodes.

Legacy masters run the API server and controller manager as static pods. A
helper pod pinned to each legacy master moves their manifests out of the
kubelet's manifest directory so the new control plane can take over.
"""

from capi_migration import keys
from capi_migration.client.exceptions import (
    AlreadyExistsError,
    PodFailedError,
    PodNotSucceededError,
)
from capi_migration.client.objects import Resource, get_path, name_of, new_object
from capi_migration.client.store import ResourceStore
from capi_migration.config import MigrationSettings
from capi_migration.utils.logging import get_logger
from capi_migration.utils.retry import RetryPolicy, wait_until

logger = get_logger(__name__)

HELPER_POD_NAMESPACE = "default"
HELPER_CONTAINER_NAME = "disable-master-node-components"
LEGACY_MANIFESTS = ("k8s-controller-manager.yaml", "k8s-api-server.yaml")

POD_SUCCEEDED = "Succeeded"
POD_FAILED = "Failed"


def _disable_command() -> str:
    moves = [
        f"([ -f /host/etc/kubernetes/manifests/{manifest} ] && "
        f"mv /host/etc/kubernetes/manifests/{manifest} /host/root/) || true"
        for manifest in LEGACY_MANIFESTS
    ]
    return " ; ".join(moves)


def helper_pod(store: ResourceStore, node_name: str, image: str) -> Resource:
    """Pod that moves the legacy static pod manifests away on ``node_name``."""
    return new_object(
        store.registry.get("Pod"),
        keys.disable_master_components_pod_name(node_name),
        HELPER_POD_NAMESPACE,
        spec={
            "nodeName": node_name,
            "restartPolicy": "Never",
            "tolerations": [{"operator": "Exists"}],
            "volumes": [{"name": "host", "hostPath": {"path": "/"}}],
            "containers": [
                {
                    "name": HELPER_CONTAINER_NAME,
                    "image": image,
                    "command": ["ash", "-c", _disable_command()],
                    "volumeMounts": [
                        {"name": "host", "mountPath": "/host", "readOnly": False}
                    ],
                }
            ],
        },
    )


class LegacyMasterStopper:
    """Runs the helper pod on every legacy master and waits for it to finish."""

    def __init__(self, workload: ResourceStore, settings: MigrationSettings):
        self.workload = workload
        self.settings = settings

    @property
    def policy(self) -> RetryPolicy:
        return self.settings.pod_wait_policy()

    async def legacy_master_nodes(self) -> list[str]:
        nodes = await self.workload.list(
            "Node",
            labels={self.settings.legacy_node_label: self.settings.legacy_master_label_value},
        )
        return [name_of(node) for node in nodes]

    async def run(self) -> None:
        node_names = await self.legacy_master_nodes()
        logger.info("legacy_master_nodes_found", count=len(node_names))
        for node_name in node_names:
            await self.stop_on_node(node_name)

    async def stop_on_node(self, node_name: str) -> Resource:
        """Create the helper pod for ``node_name`` (or reuse it) and wait for success.

        Raises:
            PodFailedError: If the pod ends in the Failed phase
            PodNotSucceededError: If the pod has not finished within the wait policy
        """
        pod = helper_pod(self.workload, node_name, self.settings.helper_image)
        pod_name = name_of(pod)
        try:
            await self.workload.create(pod)
            logger.info("helper_pod_created", pod=pod_name, node=node_name)
        except AlreadyExistsError:
            logger.info("helper_pod_exists", pod=pod_name, node=node_name)

        async def check() -> Resource:
            current = await self.workload.get("Pod", pod_name, HELPER_POD_NAMESPACE)
            phase = get_path(current, "status.phase") or "Pending"
            if phase == POD_SUCCEEDED:
                return current
            if phase == POD_FAILED:
                raise PodFailedError(f"helper pod {pod_name} on node {node_name} failed")
            raise PodNotSucceededError(f"helper pod {pod_name} is {phase}, waiting")

        result = await wait_until(check, self.policy, description=f"pod {pod_name}")
        logger.info("legacy_master_components_disabled", node=node_name)
        return result
