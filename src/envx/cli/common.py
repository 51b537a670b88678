"""Helpers shared by the envx command modules."""

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager

import typer
from rich.console import Console
from rich.table import Table

from envx.backends import PlatformBackend, default_backend
from envx.config import ConfigError, Settings, load_settings
from envx.constants import EXIT_FAILURE
from envx.errors import EnvxError
from envx.models import EnvVar
from envx.store import EnvStore

console = Console()

# Swapped out by tests for an in-memory backend.
BACKEND_FACTORY = default_backend


def settings() -> Settings:
    try:
        return load_settings()
    except ConfigError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(EXIT_FAILURE) from exc


def configure_logging(verbose: int, default_level: str = "WARNING") -> None:
    if verbose >= 2:
        level = logging.DEBUG
    elif verbose == 1:
        level = logging.INFO
    else:
        level = logging.getLevelName(default_level.upper())
        if not isinstance(level, int):
            level = logging.WARNING
    logging.basicConfig(level=level, format="%(levelname)s: %(message)s", stream=sys.stderr, force=True)


def backend() -> PlatformBackend:
    return BACKEND_FACTORY()


def load_store() -> EnvStore:
    """A store populated from every source, as each command starts."""
    store = EnvStore(backend=backend(), history_limit=settings().history_limit)
    store.load_all()
    return store


@contextmanager
def cli_errors() -> Iterator[None]:
    """Turn envx failures into a one-line message on stderr and exit code 1."""
    try:
        yield
    except (EnvxError, ConfigError, OSError) as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(EXIT_FAILURE) from exc


def truncate(value: str, width: int = 60) -> str:
    value = value.replace("\n", "\\n")
    return value if len(value) <= width else value[: width - 3] + "..."


def vars_table(variables: list[EnvVar], title: str | None = None, full: bool = False) -> Table:
    table = Table(title=title)
    table.add_column("Name", style="cyan", no_wrap=True)
    table.add_column("Value")
    table.add_column("Source", style="magenta")
    for var in variables:
        table.add_row(var.name, var.value if full else truncate(var.value), var.source_label)
    return table
