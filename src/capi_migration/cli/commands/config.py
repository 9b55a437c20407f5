"""
Configuration commands.
"""

import click

from capi_migration.cli.context import CLIContext
from capi_migration.cli.decorators import handle_errors, pass_context
from capi_migration.cli.utils import echo_success, echo_warning, print_table


@click.group(name="config")
def config() -> None:
    """Configuration commands."""
    pass


@config.command(name="validate")
@pass_context
@handle_errors
def validate_config(ctx: CLIContext) -> None:
    """Validate the configuration and show the effective settings.

    Secrets are never printed.
    """
    cfg = ctx.config
    settings = cfg.migration
    rows = [
        ["Kubernetes context", cfg.kubernetes.context or "(current)"],
        ["In cluster", cfg.kubernetes.in_cluster],
        ["Namespace", settings.namespace],
        ["Certificates namespace", settings.certs_namespace],
        ["AWS credentials", "configured" if cfg.aws else "not configured"],
        ["Vault", cfg.vault.url if cfg.vault else "not configured"],
        ["Pod wait", f"{settings.pod_poll_interval}s / {settings.pod_wait_timeout}s"],
        ["Requeue", f"{settings.requeue_after}s (fatal {settings.fatal_requeue_after}s)"],
        ["Max concurrent clusters", settings.max_concurrent_clusters],
    ]
    print_table("Configuration", ["Setting", "Value"], rows)

    if cfg.aws is None:
        echo_warning("AWS clusters cannot be cleaned up without AWS credentials")
    if cfg.vault is None:
        echo_warning("Clusters without a CA secret cannot be prepared without Vault")
    echo_success("Configuration is valid")
