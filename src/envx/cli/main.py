"""envx command line entry point."""

import json
from pathlib import Path

import typer

from envx.analysis import Analyzer
from envx.cli import deps_cmd, path_cmd, profile_cmd, project_cmd, snapshot_cmd, watch_cmd
from envx.cli.common import cli_errors, configure_logging, console, load_store, settings, vars_table
from envx.errors import NotFoundError
from envx.exporter import Exporter
from envx.formats import parse_format
from envx.importer import Importer
from envx.models import VarSource

app = typer.Typer(
    help="Inspect, edit, snapshot and sync environment variables",
    no_args_is_help=True,
)
app.add_typer(path_cmd.app, name="path")
app.add_typer(profile_cmd.app, name="profile")
app.add_typer(snapshot_cmd.app, name="snapshot")
app.add_typer(project_cmd.app, name="project")
app.add_typer(deps_cmd.app, name="deps")
app.command("watch")(watch_cmd.watch)

_FORMAT_HELP = "Output format: table or json"


@app.callback()
def root(
    verbose: int = typer.Option(0, "--verbose", "-v", count=True, help="Log more (-vv for debug)"),
) -> None:
    configure_logging(verbose, settings().log_level)


@app.command("list")
def list_vars(
    source: str = typer.Option(None, "--source", "-s", help="Only show one source (system, user, process, shell)"),
    query: str = typer.Option(None, "--query", "-q", help="Case-insensitive search in names and values"),
    pattern: str = typer.Option(None, "--pattern", "-p", help="Wildcard, /regex/ or exact name"),
    output: str = typer.Option("table", "--format", "-f", help=_FORMAT_HELP),
) -> None:
    """List environment variables."""
    with cli_errors():
        store = load_store()
        if pattern:
            variables = store.get_pattern(pattern)
        elif query:
            variables = store.search(query)
        else:
            variables = store.list_vars()
        if source:
            try:
                wanted = VarSource(source.capitalize())
            except ValueError:
                typer.echo(f"Error: unknown source '{source}'", err=True)
                raise typer.Exit(1) from None
            variables = [var for var in variables if var.source is wanted]
        variables.sort(key=lambda var: var.name)

    if output == "json":
        typer.echo(json.dumps({var.name: var.value for var in variables}, indent=2))
        return
    console.print(vars_table(variables, title=f"{len(variables)} variables"))


@app.command()
def get(pattern: str = typer.Argument(..., help="Name, wildcard or /regex/")) -> None:
    """Print matching variables (a single exact match prints just its value)."""
    with cli_errors():
        store = load_store()
        matches = store.get_pattern(pattern)
        if not matches:
            raise NotFoundError("variable", pattern)
    if len(matches) == 1 and matches[0].name == pattern:
        typer.echo(matches[0].value)
        return
    console.print(vars_table(matches, full=True))


@app.command("set")
def set_var(
    name: str = typer.Argument(...),
    value: str = typer.Argument(...),
    temporary: bool = typer.Option(False, "--temporary", "-t", help="Only set for this process"),
) -> None:
    """Set a variable (persistently unless --temporary)."""
    with cli_errors():
        store = load_store()
        store.set(name, value, persistent=not temporary)
    typer.echo(f"Set {name}", err=True)


@app.command()
def delete(name: str = typer.Argument(...)) -> None:
    """Delete a variable."""
    with cli_errors():
        store = load_store()
        store.delete(name)
    typer.echo(f"Deleted {name}", err=True)


@app.command()
def rename(
    pattern: str = typer.Argument(..., help="Name, or pattern with one '*' (e.g. API_*)"),
    replacement: str = typer.Argument(..., help="New name, or pattern with one '*'"),
) -> None:
    """Rename variables, e.g. `envx rename 'APP_*' 'MYAPP_*'`."""
    with cli_errors():
        store = load_store()
        pairs = store.rename(pattern, replacement)
    for old, new in pairs:
        typer.echo(f"{old} -> {new}")
    typer.echo(f"Renamed {len(pairs)} variable(s)", err=True)


@app.command()
def replace(
    pattern: str = typer.Argument(..., help="Name or wildcard"),
    value: str = typer.Argument(...),
) -> None:
    """Set the same value on every matching variable."""
    with cli_errors():
        store = load_store()
        changes = store.replace(pattern, value)
    typer.echo(f"Updated {len(changes)} variable(s)", err=True)


@app.command("find-replace")
def find_replace(
    search: str = typer.Argument(...),
    replacement: str = typer.Argument(...),
    pattern: str = typer.Option(None, "--pattern", "-p", help="Only touch matching names"),
) -> None:
    """Replace text inside variable values."""
    with cli_errors():
        store = load_store()
        changes = store.find_replace(search, replacement, pattern)
    for name, old, new in changes:
        typer.echo(f"{name}: {old} -> {new}")
    typer.echo(f"Updated {len(changes)} variable(s)", err=True)


@app.command()
def analyze(
    kind: str = typer.Option("all", "--kind", "-k", help="duplicates, invalid, stale, deps or all"),
) -> None:
    """Report duplicates, invalid names, leftovers and references between variables."""
    with cli_errors():
        analyzer = Analyzer(load_store())
        if kind in ("duplicates", "all"):
            duplicates = analyzer.find_duplicates()
            typer.echo(f"Duplicates ({len(duplicates)}):")
            for names in duplicates.values():
                typer.echo("  " + ", ".join(names))
        if kind in ("invalid", "all"):
            invalid = {n: r for n, r in analyzer.validate_all().items() if not r.valid or r.warnings}
            typer.echo(f"Problems ({len(invalid)}):")
            for name, result in invalid.items():
                for error in result.errors:
                    typer.echo(f"  {name}: error: {error}")
                for warning in result.warnings:
                    typer.echo(f"  {name}: warning: {warning}")
        if kind in ("stale", "all"):
            stale = analyzer.find_stale()
            typer.echo(f"Possibly stale ({len(stale)}):")
            for var in stale:
                typer.echo(f"  {var.name}")
        if kind in ("deps", "all"):
            graph = analyzer.dependencies()
            typer.echo(f"References ({len(graph)}):")
            for name, refs in graph.items():
                typer.echo(f"  {name} -> {', '.join(refs)}")


@app.command("export")
def export_vars(
    file: Path = typer.Argument(..., help="Destination file"),  # noqa: B008
    fmt: str = typer.Option(None, "--format", "-f", help="dotenv, json, yaml, text, powershell or shell"),
    patterns: list[str] = typer.Option(None, "--vars", help="Only export matching names (repeatable)"),  # noqa: B008
    metadata: bool = typer.Option(False, "--metadata", help="Add a header and provenance comments"),
) -> None:
    """Export variables to a file."""
    with cli_errors():
        store = load_store()
        exporter = Exporter(store.list_vars(), include_metadata=metadata)
        if patterns:
            exporter.filter_by_patterns(patterns)
        written = exporter.export_to_file(file, parse_format(fmt) if fmt else None)
    typer.echo(f"Exported {exporter.count()} variable(s) to {file} ({written.value})", err=True)


@app.command("import")
def import_vars(
    files: list[Path] = typer.Argument(..., help="Files to import"),  # noqa: B008
    fmt: str = typer.Option(None, "--format", "-f", help="dotenv, json, yaml or text"),
    patterns: list[str] = typer.Option(None, "--vars", help="Only import matching names (repeatable)"),  # noqa: B008
    prefix: str = typer.Option(None, "--prefix", help="Prepend to every imported name"),
    temporary: bool = typer.Option(False, "--temporary", "-t", help="Only set for this process"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Show what would be imported"),
) -> None:
    """Import variables from one or more files."""
    with cli_errors():
        importer = Importer()
        failures = importer.import_files(list(files), parse_format(fmt) if fmt else None)
        if patterns:
            importer.filter_by_patterns(patterns)
        if prefix:
            importer.add_prefix(prefix)
        if dry_run:
            for name, value in importer.variables.items():
                typer.echo(f"{name}={value}")
        else:
            importer.commit(load_store(), persistent=not temporary)
    typer.echo(f"{'Would import' if dry_run else 'Imported'} {importer.count()} variable(s)", err=True)
    if failures:
        raise typer.Exit(1)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
