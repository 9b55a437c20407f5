"""
Status command.

Shows the derived migration phase of a cluster without changing anything.
"""

import click

from capi_migration.cli.context import CLIContext
from capi_migration.cli.decorators import handle_errors, pass_context
from capi_migration.cli.utils import print_table, run_with_context
from capi_migration.migration.base import MigrationPhase


@click.command(name="status")
@click.argument("cluster_id")
@pass_context
@handle_errors
def status(ctx: CLIContext, cluster_id: str) -> None:
    """Show the migration phase of CLUSTER_ID.

    Examples:

        capi-migration status abc12
    """

    async def work() -> tuple[str, MigrationPhase]:
        migrator = await ctx.factory.new_migrator(cluster_id)
        try:
            return migrator.provider.value, await migrator.current_phase()
        finally:
            await migrator.close()

    provider, phase = run_with_context(ctx, work)
    print_table(
        f"Cluster {cluster_id}",
        ["Field", "Value"],
        [["Provider", provider], ["Phase", phase.value]],
    )
