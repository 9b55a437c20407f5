"""
Output and event-loop helpers shared by the CLI commands.
"""

import asyncio
from collections.abc import Awaitable, Callable, Iterable
from typing import Any, TypeVar

import click
from rich.console import Console
from rich.table import Table

from capi_migration.cli.context import CLIContext

console = Console()

T = TypeVar("T")


def _echo(symbol: str, message: str, color: str, err: bool = False) -> None:
    click.secho(f"{symbol} {message}", fg=color, err=err)


def echo_success(message: str) -> None:
    _echo("✓", message, "green")


def echo_error(message: str) -> None:
    _echo("✗", message, "red", err=True)


def echo_warning(message: str) -> None:
    _echo("⚠", message, "yellow")


def echo_info(message: str) -> None:
    _echo("ℹ", message, "blue")


def print_table(title: str, columns: list[str], rows: Iterable[Iterable[Any]]) -> None:
    """Render ``rows`` as a Rich table; cells are converted with ``str``."""
    table = Table(*columns, title=title)
    for row in rows:
        table.add_row(*(str(cell) for cell in row))
    console.print(table)


def run_with_context(ctx: CLIContext, work: Callable[[], Awaitable[T]]) -> T:
    """Run ``work`` on a fresh event loop and close the context's stores afterwards."""

    async def runner() -> T:
        try:
            return await work()
        finally:
            await ctx.close()

    return asyncio.run(runner())
