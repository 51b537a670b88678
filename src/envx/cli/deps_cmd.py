"""`envx deps` commands: where is each variable used in code."""

from pathlib import Path

import typer
from rich.table import Table

from envx.cli.common import cli_errors, console, load_store, settings
from envx.scanner import DependencyScanner

app = typer.Typer(help="Find environment variable references in source code", no_args_is_help=True)

_PATHS_HELP = "Directories or files to scan (defaults to the current directory)"


def _scan(paths: list[Path] | None, ignore: list[str] | None) -> DependencyScanner:
    scanner = DependencyScanner(
        roots=list(paths or []),
        extra_ignore=[*settings().scan_ignore, *(ignore or [])],
    )
    scanner.scan()
    return scanner


@app.command()
def show(
    name: str = typer.Argument(...),
    paths: list[Path] = typer.Option(None, "--path", help=_PATHS_HELP),  # noqa: B008
    ignore: list[str] = typer.Option(None, "--ignore", help="Skip path components containing this"),  # noqa: B008
) -> None:
    """List every place a variable is referenced."""
    with cli_errors():
        usages = _scan(paths, ignore).usages(name)
    if not usages:
        typer.echo(f"{name} is not referenced")
        raise typer.Exit(1)
    for usage in usages:
        typer.echo(f"{usage.file}:{usage.line}: {usage.context}")


@app.command()
def scan(
    paths: list[Path] = typer.Option(None, "--path", help=_PATHS_HELP),  # noqa: B008
    ignore: list[str] = typer.Option(None, "--ignore", help="Skip path components containing this"),  # noqa: B008
    unused: bool = typer.Option(False, "--unused", help="List set variables that no code references"),
) -> None:
    """Scan a tree and report referenced (or unused) variables."""
    with cli_errors():
        scanner = _scan(paths, ignore)
        if unused:
            names = sorted(scanner.find_unused(load_store().names()))
            for name in names:
                typer.echo(name)
            typer.echo(f"{len(names)} unused variable(s)", err=True)
            return
    counts = scanner.usage_counts()
    for name in sorted(counts):
        typer.echo(f"{name}: {counts[name]}")


@app.command()
def stats(
    paths: list[Path] = typer.Option(None, "--path", help=_PATHS_HELP),  # noqa: B008
    ignore: list[str] = typer.Option(None, "--ignore", help="Skip path components containing this"),  # noqa: B008
    top: int = typer.Option(20, "--top", help="How many variables to show"),
) -> None:
    """Most referenced variables."""
    with cli_errors():
        counts = _scan(paths, ignore).usage_counts()
    table = Table(title=f"{len(counts)} variables referenced")
    table.add_column("Name", style="cyan")
    table.add_column("Uses", justify="right")
    for name, count in sorted(counts.items(), key=lambda item: (-item[1], item[0]))[:top]:
        table.add_row(name, str(count))
    console.print(table)
