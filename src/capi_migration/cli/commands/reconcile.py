"""
Reconciliation commands.

This module provides the one-shot ``reconcile`` pass for a single cluster
and the long-running ``run`` loop over every labelled cluster.
"""

import asyncio
import signal

import click

from capi_migration.cli.context import CLIContext
from capi_migration.cli.decorators import handle_errors, pass_context
from capi_migration.cli.utils import (
    echo_error,
    echo_info,
    echo_success,
    echo_warning,
    run_with_context,
)
from capi_migration.controller.reconciler import ReconcileResult
from capi_migration.utils.logging import get_logger

logger = get_logger(__name__)


def _report(result: ReconcileResult) -> None:
    phase = result.phase.value if result.phase else "unknown"
    if result.error is not None:
        echo_error(f"{result.cluster_id}: {type(result.error).__name__}: {result.error}")
    elif result.cleanup is not None and result.cleanup.deleted:
        echo_success(f"{result.cluster_id}: deleted {', '.join(result.cleanup.deleted)}")
    else:
        echo_success(f"{result.cluster_id}: {phase}")

    if result.requeue_after is not None:
        echo_info(f"Reconcile again in {result.requeue_after:g}s")


@click.command(name="reconcile")
@click.argument("cluster_id")
@pass_context
@handle_errors
def reconcile(ctx: CLIContext, cluster_id: str) -> None:
    """Run one reconciliation pass for CLUSTER_ID.

    Prepares and triggers the migration of a cluster that has not started,
    waits on one that is migrating, and cleans up legacy infrastructure of
    one that has migrated.

    Examples:

        capi-migration reconcile abc12 --config config.yaml
    """
    echo_info(f"Reconciling cluster {cluster_id}...")
    result = run_with_context(ctx, lambda: ctx.reconciler().reconcile(cluster_id))
    _report(result)
    if not result.success:
        raise click.exceptions.Exit(1)


@click.command(name="run")
@pass_context
@handle_errors
def run(ctx: CLIContext) -> None:
    """Reconcile every cluster labelled for this release until interrupted.

    Clusters are selected by the capi-migration.giantswarm.io/version label.
    At most migration.max_concurrent_clusters clusters are reconciled at a
    time and never two passes for the same cluster.
    """
    reconciler = ctx.reconciler()

    async def work() -> None:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, reconciler.shutdown)
        await reconciler.run()

    echo_info("Starting reconciliation loop (Ctrl+C to stop)")
    run_with_context(ctx, work)
    echo_warning("Reconciliation loop stopped")
