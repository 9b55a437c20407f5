"""
Decorators for CLI commands.

This module provides decorators for error handling and context passing.
"""

import functools
from collections.abc import Callable

import click
from pydantic import ValidationError

from capi_migration.cli.context import CLIContext
from capi_migration.client.exceptions import (
    APIError,
    ConfigurationError,
    InputError,
    MigrationStateError,
    RetryableError,
)
from capi_migration.utils.logging import get_logger

logger = get_logger(__name__)


def pass_context(f: Callable) -> Callable:
    """Call the command with the group's :class:`CLIContext` as first argument.

    Usage:
        @click.command()
        @pass_context
        def status(ctx: CLIContext, cluster_id: str):
            ...
    """

    @click.pass_context
    @functools.wraps(f)
    def wrapper(click_ctx: click.Context, *args, **kwargs):
        cli_ctx: CLIContext = click_ctx.obj
        return f(cli_ctx, *args, **kwargs)

    return wrapper


def handle_errors(f: Callable) -> Callable:
    """
    Decorator to handle common errors in CLI commands.

    Exit codes:
        0: Success
        1: General error
        2: Configuration error
        3: Input error (legacy resources missing or ambiguous)
        4: API error
        5: Migration state error
        6: Not ready yet, retry later
    """

    @functools.wraps(f)
    def wrapper(*args, **kwargs):
        try:
            return f(*args, **kwargs)

        except click.exceptions.Exit:
            raise

        except (ConfigurationError, ValidationError, FileNotFoundError) as e:
            logger.error("configuration_error", error=str(e))
            click.echo(f"Configuration Error: {e}", err=True)
            raise click.exceptions.Exit(2) from e

        except InputError as e:
            logger.error("input_error", error=str(e))
            click.echo(f"Input Error: {e}", err=True)
            click.echo(
                "\nThe cluster's legacy resources are incomplete or ambiguous. "
                "This needs manual intervention.",
                err=True,
            )
            raise click.exceptions.Exit(3) from e

        except RetryableError as e:
            logger.info("not_ready", reason=str(e))
            click.echo(f"Not Ready: {e}", err=True)
            raise click.exceptions.Exit(6) from e

        except APIError as e:
            logger.error("api_error", error=str(e), status_code=e.status_code)
            click.echo(f"API Error: {e}", err=True)
            if e.status_code:
                click.echo(f"\nResponse status: {e.status_code}", err=True)
            raise click.exceptions.Exit(4) from e

        except MigrationStateError as e:
            logger.error("state_error", error=str(e))
            click.echo(f"State Error: {e}", err=True)
            raise click.exceptions.Exit(5) from e

        except Exception as e:
            logger.error("unexpected_error", error=str(e), exc_info=True)
            click.echo(f"Unexpected Error: {e}", err=True)
            click.echo(
                "\nAn unexpected error occurred. Please check the logs for details.",
                err=True,
            )
            raise click.exceptions.Exit(1) from e

    return wrapper
