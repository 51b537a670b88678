"""`envx path` commands: edit PATH-like variables entry by entry."""

import typer
from rich.table import Table

from envx.cli.common import cli_errors, console, load_store
from envx.pathlist import PathList
from envx.store import EnvStore

app = typer.Typer(help="Inspect and edit PATH-like variables", no_args_is_help=True)

_VAR_HELP = "Variable holding the list"


def _resolve_name(store: EnvStore, name: str) -> str:
    """Exact name if present, else a case-insensitive match (``Path`` on Windows)."""
    if name in store:
        return name
    for candidate in store.names():
        if candidate.upper() == name.upper():
            return candidate
    return name


def _load(store: EnvStore, var: str) -> tuple[str, PathList]:
    name = _resolve_name(store, var)
    record = store.get(name)
    return name, PathList(record.value if record else "")


def _save(store: EnvStore, name: str, paths: PathList, temporary: bool) -> None:
    store.set(name, paths.to_string(), persistent=not temporary)


@app.command("list")
def list_entries(
    var: str = typer.Option("PATH", "--var", help=_VAR_HELP),
) -> None:
    """Show entries with their index and whether they exist."""
    with cli_errors():
        _, paths = _load(load_store(), var)
        problems = {issue.index: issue.problem for issue in paths.check()}
    table = Table()
    table.add_column("#", justify="right")
    table.add_column("Entry")
    table.add_column("Status")
    for index, entry in enumerate(paths):
        status = problems.get(index, "ok")
        table.add_row(str(index), entry, f"[red]{status}[/red]" if status != "ok" else "[green]ok[/green]")
    console.print(table)


@app.command()
def add(
    directory: str = typer.Argument(...),
    first: bool = typer.Option(False, "--first", help="Prepend instead of append"),
    var: str = typer.Option("PATH", "--var", help=_VAR_HELP),
    temporary: bool = typer.Option(False, "--temporary", "-t"),
) -> None:
    """Add an entry (skipped if already present)."""
    with cli_errors():
        store = load_store()
        name, paths = _load(store, var)
        if paths.contains(directory):
            typer.echo(f"{directory} is already in {name}", err=True)
            return
        if first:
            paths.add_first(directory)
        else:
            paths.add_last(directory)
        _save(store, name, paths, temporary)
    typer.echo(f"Added {directory} to {name}", err=True)


@app.command()
def remove(
    directory: str = typer.Argument(...),
    all_: bool = typer.Option(False, "--all", help="Remove every occurrence"),
    var: str = typer.Option("PATH", "--var", help=_VAR_HELP),
    temporary: bool = typer.Option(False, "--temporary", "-t"),
) -> None:
    """Remove an entry."""
    with cli_errors():
        store = load_store()
        name, paths = _load(store, var)
        removed = paths.remove_all(directory) if all_ else paths.remove_first(directory)
        if removed:
            _save(store, name, paths, temporary)
    typer.echo(f"Removed {removed} entr{'y' if removed == 1 else 'ies'} from {name}", err=True)


@app.command()
def clean(
    var: str = typer.Option("PATH", "--var", help=_VAR_HELP),
    dry_run: bool = typer.Option(False, "--dry-run"),
    temporary: bool = typer.Option(False, "--temporary", "-t"),
) -> None:
    """Remove entries that do not exist."""
    with cli_errors():
        store = load_store()
        name, paths = _load(store, var)
        missing = paths.invalid()
        for entry in missing:
            typer.echo(entry)
        if missing and not dry_run:
            paths.remove_invalid()
            _save(store, name, paths, temporary)
    typer.echo(f"{'Would remove' if dry_run else 'Removed'} {len(missing)} missing entries", err=True)


@app.command()
def dedupe(
    keep_last: bool = typer.Option(False, "--keep-last", help="Keep the last occurrence instead of the first"),
    var: str = typer.Option("PATH", "--var", help=_VAR_HELP),
    dry_run: bool = typer.Option(False, "--dry-run"),
    temporary: bool = typer.Option(False, "--temporary", "-t"),
) -> None:
    """Remove duplicate entries."""
    with cli_errors():
        store = load_store()
        name, paths = _load(store, var)
        removed = paths.dedupe(keep_first=not keep_last)
        if removed and not dry_run:
            _save(store, name, paths, temporary)
    typer.echo(f"{'Would remove' if dry_run else 'Removed'} {removed} duplicate(s)", err=True)


@app.command()
def check(
    var: str = typer.Option("PATH", "--var", help=_VAR_HELP),
    strict: bool = typer.Option(False, "--strict", help="Also flag '..' and foreign separators"),
) -> None:
    """Report problems; exits 1 when any error is found."""
    with cli_errors():
        _, paths = _load(load_store(), var)
        issues = paths.check(strict=strict)
        dupes = paths.duplicates()
    for issue in issues:
        typer.echo(f"[{issue.index}] {issue.severity}: {issue.problem}: {issue.entry}")
    for entry in dupes:
        typer.echo(f"warning: duplicate: {entry}")
    if any(issue.severity == "error" for issue in issues):
        raise typer.Exit(1)


@app.command()
def move(
    src: int = typer.Argument(..., help="Index to move"),
    dst: int = typer.Argument(..., help="Index to move it to"),
    var: str = typer.Option("PATH", "--var", help=_VAR_HELP),
    temporary: bool = typer.Option(False, "--temporary", "-t"),
) -> None:
    """Move an entry to another position."""
    with cli_errors():
        store = load_store()
        name, paths = _load(store, var)
        entry = paths[src] if 0 <= src < len(paths) else None
        paths.move(src, dst)
        _save(store, name, paths, temporary)
    typer.echo(f"Moved {entry} to position {dst}", err=True)
