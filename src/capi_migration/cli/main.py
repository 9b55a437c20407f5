"""
Main CLI entry point for capi-migration.

This module provides the command-line interface for migrating Giant Swarm
workload clusters to upstream Cluster API.
"""

import sys
from pathlib import Path

import click
from dotenv import load_dotenv

from capi_migration import PROJECT_NAME, __version__
from capi_migration.cli.commands import config as config_commands
from capi_migration.cli.commands import reconcile as reconcile_commands
from capi_migration.cli.commands import status as status_commands
from capi_migration.cli.context import CLIContext
from capi_migration.utils.logging import configure_logging, get_logger

# Load environment variables from .env file
load_dotenv()

logger = get_logger(__name__)


@click.group()
@click.version_option(version=__version__, prog_name=PROJECT_NAME)
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True, path_type=Path),
    help="Path to configuration file",
    envvar="CAPI_MIGRATION_CONFIG",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default="INFO",
    help="Set console logging level (file logging stays at DEBUG)",
    envvar="CAPI_MIGRATION_LOG_LEVEL",
)
@click.option(
    "--log-file",
    type=click.Path(path_type=Path),
    help="Also write JSON logs to this file",
    envvar="CAPI_MIGRATION_LOG_FILE",
)
@click.pass_context
def cli(
    ctx: click.Context,
    config: Path | None,
    log_level: str,
    log_file: Path | None,
) -> None:
    """capi-migration - Migrate Giant Swarm clusters to Cluster API.

    Examples:

        # Show the migration phase of a cluster
        capi-migration status abc12

        # Run one reconciliation pass
        capi-migration reconcile abc12 --config config.yaml

        # Reconcile all labelled clusters continuously
        capi-migration run --config config.yaml
    """
    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)

    configure_logging(level=log_level, log_file=str(log_file) if log_file else None)

    ctx.obj = CLIContext(
        config_path=config,
        log_level=log_level,
        log_file=log_file,
    )

    logger.debug("cli_initialized", config=str(config) if config else None, log_level=log_level)


cli.add_command(config_commands.config)
cli.add_command(reconcile_commands.reconcile)
cli.add_command(reconcile_commands.run)
cli.add_command(status_commands.status)


def main() -> int:
    """Main entry point for CLI."""
    try:
        cli(standalone_mode=False)
        return 0
    except click.exceptions.Exit as e:
        return e.exit_code
    except click.ClickException as e:
        e.show()
        return e.exit_code
    except click.exceptions.Abort:
        click.echo("Aborted!", err=True)
        return 1
    except Exception as e:
        logger.error("unexpected_error", error=str(e), exc_info=True)
        click.echo(f"Error: {e}", err=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
