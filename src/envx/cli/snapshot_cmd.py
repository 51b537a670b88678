"""`envx snapshot` commands."""

import typer
from rich.table import Table

from envx.cli.common import cli_errors, console, load_store, truncate
from envx.snapshots import SnapshotStore

app = typer.Typer(help="Capture, compare and restore the whole environment", no_args_is_help=True)


@app.command()
def create(
    name: str = typer.Argument(...),
    description: str = typer.Option(None, "--description", "-d"),
) -> None:
    """Save the current environment."""
    with cli_errors():
        snapshot = SnapshotStore().create(name, load_store(), description)
    typer.echo(snapshot.id)
    typer.echo(f"Created snapshot {name} with {len(snapshot.variables)} variables", err=True)


@app.command("list")
def list_snapshots() -> None:
    """List snapshots, newest first."""
    with cli_errors():
        snapshots = SnapshotStore().list_snapshots()
    table = Table()
    table.add_column("ID", style="dim")
    table.add_column("Name", style="cyan")
    table.add_column("Created")
    table.add_column("Variables", justify="right")
    for snapshot in snapshots:
        table.add_row(
            snapshot.id[:8],
            snapshot.name,
            snapshot.created_at.strftime("%Y-%m-%d %H:%M:%S"),
            str(len(snapshot.variables)),
        )
    console.print(table)


@app.command()
def show(snapshot: str = typer.Argument(..., help="ID or name")) -> None:
    """Show the variables captured in a snapshot."""
    with cli_errors():
        found = SnapshotStore().get(snapshot)
    typer.echo(f"{found.name} ({found.id}) {found.created_at.isoformat()}")
    if found.description:
        typer.echo(found.description)
    for name, var in found.variables.items():
        typer.echo(f"  {name}={truncate(var.value)}")


@app.command()
def restore(
    snapshot: str = typer.Argument(..., help="ID or name"),
    force: bool = typer.Option(False, "--force", "-f", help="Do not ask for confirmation"),
) -> None:
    """Replace the environment with a snapshot."""
    if not force:
        typer.confirm(f"Restore snapshot {snapshot}? This overwrites current values", abort=True)
    with cli_errors():
        store = load_store()
        snapshots = SnapshotStore()
        found = snapshots.get(snapshot)
        snapshots.restore(found.id, store)
    typer.echo(f"Restored {len(found.variables)} variables from {found.name}", err=True)


@app.command()
def delete(snapshot: str = typer.Argument(..., help="ID or name")) -> None:
    """Delete a snapshot."""
    with cli_errors():
        found = SnapshotStore().delete(snapshot)
    typer.echo(f"Deleted snapshot {found.name}", err=True)


@app.command()
def diff(
    first: str = typer.Argument(..., help="ID or name of the older snapshot"),
    second: str = typer.Argument(..., help="ID or name of the newer snapshot"),
) -> None:
    """Compare two snapshots."""
    with cli_errors():
        result = SnapshotStore().diff(first, second)
    if result.is_empty:
        typer.echo("No differences")
        return
    for name, value in result.added.items():
        typer.echo(f"+ {name}={value}")
    for name, value in result.removed.items():
        typer.echo(f"- {name}={value}")
    for name, (old, new) in result.modified.items():
        typer.echo(f"~ {name}: {old} -> {new}")
