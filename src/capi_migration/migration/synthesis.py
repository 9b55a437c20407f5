"""Synthesis of Cluster API resources from legacy resources.

Builders here are provider neutral: they take values already extracted from
legacy resources and produce resource bodies from templates. Provider
migrators supply the provider-specific parts (machine templates, network
CIDRs) and run the upserts.
"""

import ipaddress
from typing import Any

from capi_migration import keys
from capi_migration.client.exceptions import InputError, MissingInputError
from capi_migration.client.objects import (
    Resource,
    get_path,
    name_of,
    new_secret,
    secret_value,
)
from capi_migration.client.registry import ResourceRegistry
from capi_migration.migration.context import (
    ClusterMigrationContext,
    LegacyNodePool,
    ReleaseVersions,
)
from capi_migration.migration.rendering import TemplateRenderer

RELEASE_COMPONENTS = ("kubernetes", "etcd", "containerlinux")
CONTROL_PLANE_REPLICAS = 1
CONTROL_PLANE_IP_OFFSET = 4
JOIN_ETCD_CLUSTER_COMMAND = "/bin/sh /migration/join-existing-cluster.sh"


def control_plane_ip(network_cidr: str) -> str:
    """Internal IP of the control plane: network base address + 4.

    Raises:
        InputError: If ``network_cidr`` is not a valid network or is too small
    """
    try:
        network = ipaddress.ip_network(network_cidr, strict=False)
    except ValueError as e:
        raise InputError(f"invalid network CIDR {network_cidr!r}: {e}") from e
    if network.num_addresses <= CONTROL_PLANE_IP_OFFSET:
        raise InputError(f"network {network_cidr} is too small for a control plane address")
    return str(network.network_address + CONTROL_PLANE_IP_OFFSET)


def etcd_endpoint(api_host: str) -> str:
    """Host of the legacy etcd cluster, a sibling of the API host (``api.<id>...``).

    Raises:
        InputError: If ``api_host`` does not start with an ``api.`` label
    """
    label, _, domain = api_host.partition(".")
    if label != "api" or not domain:
        raise InputError(f"cannot derive etcd endpoint from API host {api_host!r}")
    return f"etcd.{domain}"


def release_name(version: str) -> str:
    """Name of the Release object for a cluster's release version label.

    Release objects on the management cluster are named ``v<semver>`` while
    the cluster label usually omits the prefix, so the prefix is normalized
    rather than stripped: ``14.1.0`` and ``v14.1.0`` both name ``v14.1.0``.
    """
    return f"v{version.lstrip('v')}"


def _prefixed(version: str) -> str:
    return version if version.startswith("v") else f"v{version}"


def release_versions(release: Resource) -> ReleaseVersions:
    """Extract component versions from a Release.

    Raises:
        MissingInputError: If a required component is not listed
    """
    components = {
        component.get("name"): component.get("version")
        for component in get_path(release, "spec.components", []) or []
    }
    missing = [name for name in RELEASE_COMPONENTS if not components.get(name)]
    if missing:
        raise MissingInputError(
            f"release {name_of(release)} lacks components: {', '.join(missing)}"
        )
    return ReleaseVersions(
        release=name_of(release),
        kubernetes=_prefixed(components["kubernetes"]),
        etcd=_prefixed(components["etcd"]),
        containerlinux=components["containerlinux"],
    )


def template_ref(obj: Resource) -> dict[str, str]:
    """Template parameters describing a reference to ``obj``."""
    return {"api_version": obj["apiVersion"], "kind": obj["kind"], "name": name_of(obj)}


class ResourceSynthesizer:
    """Builds the synthesized resource set for one cluster."""

    def __init__(
        self,
        ctx: ClusterMigrationContext,
        renderer: TemplateRenderer,
        registry: ResourceRegistry,
    ):
        self.ctx = ctx
        self.renderer = renderer
        self.registry = registry

    @property
    def cluster_id(self) -> str:
        return self.ctx.cluster_id

    def labels(self) -> dict[str, str]:
        labels = keys.cluster_selector(self.cluster_id)
        release = self.ctx.resources.release_versions
        if release is not None:
            labels[keys.RELEASE_VERSION_LABEL] = release.release.lstrip("v")
        return labels

    def encryption_config_secret(self) -> Resource:
        source = self.ctx.resources.require("encryption_secret")
        encryption_key = secret_value(source, keys.ENCRYPTION_KEY)
        if not encryption_key:
            raise MissingInputError(
                f"secret {name_of(source)} has no {keys.ENCRYPTION_KEY!r} entry"
            )
        config = self.renderer.render_text(
            "encryption_config.yaml.j2", encryption_key=encryption_key.decode()
        )
        return new_secret(
            self.registry.get("Secret"),
            keys.encryption_config_secret_name(self.cluster_id),
            self.ctx.namespace,
            string_data={keys.ENCRYPTION_KEY: config},
            labels=self.labels(),
        )

    def proxy_config_secret(self, pods_cidr: str | None) -> Resource:
        config = self.renderer.render_text("kube_proxy_config.yaml.j2", pods_cidr=pods_cidr)
        return new_secret(
            self.registry.get("Secret"),
            keys.proxy_config_secret_name(self.cluster_id),
            self.ctx.namespace,
            string_data={keys.PROXY_CONFIG_KEY: config},
            labels=self.labels(),
        )

    def api_endpoint_host(self) -> str:
        cluster = self.ctx.resources.require("cluster")
        host = get_path(cluster, "spec.controlPlaneEndpoint.host")
        if not host:
            raise MissingInputError(f"cluster {self.cluster_id} has no control plane endpoint")
        return host

    def custom_files_secret(self) -> Resource:
        """Secret with the script that joins the new control plane to the legacy etcd."""
        versions: ReleaseVersions = self.ctx.resources.require("release_versions")
        script = self.renderer.render_text(
            "join_etcd_cluster.sh.j2",
            etcd_endpoint=etcd_endpoint(self.api_endpoint_host()),
            etcd_version=versions.etcd,
        )
        return new_secret(
            self.registry.get("Secret"),
            keys.custom_files_secret_name(self.cluster_id),
            self.ctx.namespace,
            string_data={keys.JOIN_ETCD_CLUSTER_KEY: script},
            labels=self.labels(),
        )

    def control_plane(
        self,
        machine_template: Resource,
        cloud_provider: str,
        network_cidr: str,
        pods_cidr: str | None,
        pre_kubeadm_commands: list[str] | None = None,
    ) -> Resource:
        """KubeadmControlPlane whose node joins the legacy etcd before kubeadm runs.

        ``pre_kubeadm_commands`` run ahead of the etcd join script.
        """
        versions: ReleaseVersions = self.ctx.resources.require("release_versions")
        api_endpoint_host = self.api_endpoint_host()

        return self.renderer.render(
            "kubeadm_control_plane.yaml.j2",
            name=keys.control_plane_name(self.cluster_id),
            namespace=self.ctx.namespace,
            labels=self.labels(),
            cluster_id=self.cluster_id,
            replicas=CONTROL_PLANE_REPLICAS,
            kubernetes_version=versions.kubernetes,
            etcd_version=versions.etcd,
            machine_template=template_ref(machine_template),
            cloud_provider=cloud_provider,
            api_endpoint_host=api_endpoint_host,
            master_ip=control_plane_ip(network_cidr),
            pods_cidr=pods_cidr,
            pre_kubeadm_commands=[*(pre_kubeadm_commands or []), JOIN_ETCD_CLUSTER_COMMAND],
            secrets={
                "custom_files": keys.custom_files_secret_name(self.cluster_id),
                "encryption_config": keys.encryption_config_secret_name(self.cluster_id),
                "proxy_config": keys.proxy_config_secret_name(self.cluster_id),
                "ca": keys.ca_secret_name(self.cluster_id),
                "service_account": keys.service_account_secret_name(self.cluster_id),
                "etcd": keys.etcd_certs_secret_name(self.cluster_id),
            },
            secret_keys={
                "encryption": keys.ENCRYPTION_KEY,
                "proxy": keys.PROXY_CONFIG_KEY,
                "join_etcd_cluster": keys.JOIN_ETCD_CLUSTER_KEY,
            },
        )

    def worker_bootstrap_template(
        self, pool: LegacyNodePool, cloud_provider: str, node_name: str
    ) -> Resource:
        return self.renderer.render(
            "kubeadm_config_template.yaml.j2",
            name=keys.node_pool_resource_name(self.cluster_id, pool.pool_id),
            namespace=self.ctx.namespace,
            labels=self.labels(),
            pool_id=pool.pool_id,
            cloud_provider=cloud_provider,
            node_name=node_name,
            proxy_config_secret=keys.proxy_config_secret_name(self.cluster_id),
            proxy_config_key=keys.PROXY_CONFIG_KEY,
        )

    def machine_deployment(
        self, pool: LegacyNodePool, bootstrap_template: Resource, machine_template: Resource
    ) -> Resource:
        versions: ReleaseVersions = self.ctx.resources.require("release_versions")
        return self.renderer.render(
            "machine_deployment.yaml.j2",
            name=keys.node_pool_resource_name(self.cluster_id, pool.pool_id),
            namespace=self.ctx.namespace,
            labels=self.labels(),
            cluster_id=self.cluster_id,
            replicas=pool.replicas,
            kubernetes_version=versions.kubernetes,
            bootstrap_template=name_of(bootstrap_template),
            machine_template=template_ref(machine_template),
        )

    def machine_template(self, template_name: str, name: str, **params: Any) -> Resource:
        """Render a provider machine template named ``name``."""
        return self.renderer.render(
            template_name,
            name=name,
            namespace=self.ctx.namespace,
            labels=self.labels(),
            **params,
        )
