"""Deterministic names, labels and secret keys shared across the migration."""

# Labels
CLUSTER_NAME_LABEL = "cluster.x-k8s.io/cluster-name"
RELEASE_VERSION_LABEL = "release.giantswarm.io/version"
AWS_OPERATOR_VERSION_LABEL = "aws-operator.giantswarm.io/version"
AZURE_OPERATOR_VERSION_LABEL = "azure-operator.giantswarm.io/version"
MIGRATION_VERSION_LABEL = "capi-migration.giantswarm.io/version"

NODE_ROLE_CONTROL_PLANE_LABEL = "node-role.kubernetes.io/control-plane"
NODE_ROLE_MASTER_LABEL = "node-role.kubernetes.io/master"

LEGACY_FINALIZER_DOMAIN = "giantswarm.io"

# Secret keys
ENCRYPTION_KEY = "encryption"
PROXY_CONFIG_KEY = "proxy"
JOIN_ETCD_CLUSTER_KEY = "join-etcd-cluster"
AWS_ROLE_ARN_KEY = "aws.awsoperator.arn"
AZURE_CLIENT_SECRET_KEY = "clientSecret"


def is_legacy_finalizer(finalizer: str) -> bool:
    return LEGACY_FINALIZER_DOMAIN in finalizer


def cluster_selector(cluster_id: str) -> dict[str, str]:
    return {CLUSTER_NAME_LABEL: cluster_id}


# Secrets


def encryption_secret_name(cluster_id: str) -> str:
    """Legacy secret holding the raw etcd encryption key."""
    return f"{cluster_id}-encryption"


def encryption_config_secret_name(cluster_id: str) -> str:
    return f"{cluster_id}-k8s-encryption-config"


def proxy_config_secret_name(cluster_id: str) -> str:
    return f"{cluster_id}-proxy-config"


def custom_files_secret_name(cluster_id: str) -> str:
    """Secret holding node-side scripts for the new control plane."""
    return f"{cluster_id}-custom-files"


def ca_secret_name(cluster_id: str) -> str:
    return f"{cluster_id}-ca"


def etcd_certs_secret_name(cluster_id: str) -> str:
    return f"{cluster_id}-etcd"


def service_account_secret_name(cluster_id: str) -> str:
    return f"{cluster_id}-sa"


# Synthesized resources


def control_plane_name(cluster_id: str) -> str:
    return f"{cluster_id}-control-plane"


def control_plane_machine_template_name(cluster_id: str) -> str:
    return f"{cluster_id}-control-plane"


def node_pool_resource_name(cluster_id: str, pool_id: str) -> str:
    return f"{cluster_id}-{pool_id}"


# Cloud


def azure_master_vmss_name(cluster_id: str) -> str:
    return f"{cluster_id}-master-{cluster_id}"


def azure_node_pool_vmss_name(pool_id: str) -> str:
    return f"nodepool-{pool_id}"


# Workload cluster


def disable_master_components_pod_name(node_name: str) -> str:
    return f"disable-master-node-components-{node_name}"
