"""`envx profile` commands."""

from pathlib import Path

import typer
from rich.table import Table

from envx.cli.common import cli_errors, console, load_store
from envx.profiles import ProfileStore

app = typer.Typer(help="Manage named sets of variables", no_args_is_help=True)


@app.command()
def create(
    name: str = typer.Argument(...),
    description: str = typer.Option(None, "--description", "-d"),
    parent: str = typer.Option(None, "--parent", help="Inherit variables from this profile"),
) -> None:
    """Create an empty profile."""
    with cli_errors():
        ProfileStore().create(name, description, parent)
    typer.echo(f"Created profile {name}", err=True)


@app.command("list")
def list_profiles() -> None:
    """List profiles; the active one is marked with '*'."""
    with cli_errors():
        profiles = ProfileStore()
    table = Table()
    table.add_column("")
    table.add_column("Name", style="cyan")
    table.add_column("Variables", justify="right")
    table.add_column("Parent")
    table.add_column("Description")
    for profile in profiles.list_profiles():
        marker = "*" if profile.name == profiles.active_name else ""
        table.add_row(marker, profile.name, str(len(profile.variables)), profile.parent or "", profile.description or "")
    console.print(table)


@app.command()
def show(name: str = typer.Argument(None, help="Defaults to the active profile")) -> None:
    """Show a profile's variables."""
    with cli_errors():
        profiles = ProfileStore()
        profile = profiles.get(name) if name else profiles.active()
    if profile is None:
        typer.echo("No active profile", err=True)
        raise typer.Exit(1)
    typer.echo(f"{profile.name}" + (f" (parent: {profile.parent})" if profile.parent else ""))
    for var_name, var in profile.variables.items():
        state = "" if var.enabled else " [disabled]"
        typer.echo(f"  {var_name}={var.value}{state}")


@app.command()
def switch(
    name: str = typer.Argument(...),
    apply: bool = typer.Option(False, "--apply", help="Also apply the profile"),
) -> None:
    """Make a profile the active one."""
    with cli_errors():
        profiles = ProfileStore()
        profiles.switch(name)
        if apply:
            profiles.apply(name, load_store())
    typer.echo(f"Switched to profile {name}", err=True)


@app.command()
def add(
    profile: str = typer.Argument(...),
    name: str = typer.Argument(...),
    value: str = typer.Argument(...),
    override: bool = typer.Option(False, "--override", help="Mark as overriding system values"),
) -> None:
    """Add or update a variable in a profile."""
    with cli_errors():
        ProfileStore().add_var(profile, name, value, override_system=override)
    typer.echo(f"Added {name} to {profile}", err=True)


@app.command()
def remove(profile: str = typer.Argument(...), name: str = typer.Argument(...)) -> None:
    """Remove a variable from a profile."""
    with cli_errors():
        ProfileStore().remove_var(profile, name)
    typer.echo(f"Removed {name} from {profile}", err=True)


@app.command()
def delete(name: str = typer.Argument(...)) -> None:
    """Delete a profile."""
    with cli_errors():
        ProfileStore().delete(name)
    typer.echo(f"Deleted profile {name}", err=True)


@app.command("export")
def export_profile(
    name: str = typer.Argument(...),
    output: Path = typer.Option(None, "--output", "-o", help="Write to a file instead of stdout"),  # noqa: B008
) -> None:
    """Export a profile as JSON."""
    with cli_errors():
        document = ProfileStore().export(name)
        if output is None:
            typer.echo(document)
        else:
            output.write_text(document, encoding="utf-8")


@app.command("import")
def import_profile(
    file: Path = typer.Argument(...),  # noqa: B008
    name: str = typer.Option(..., "--name", "-n", help="Name to store the profile under"),
    overwrite: bool = typer.Option(False, "--overwrite"),
) -> None:
    """Import a profile exported with `envx profile export`."""
    with cli_errors():
        ProfileStore().import_profile(file.read_text(encoding="utf-8"), name, overwrite)
    typer.echo(f"Imported profile {name}", err=True)


@app.command()
def apply(name: str = typer.Argument(None, help="Defaults to the active profile")) -> None:
    """Apply a profile (and its parents) to the environment."""
    with cli_errors():
        profiles = ProfileStore()
        target = name or profiles.active_name
        if target is None:
            typer.echo("No active profile", err=True)
            raise typer.Exit(1)
        count = profiles.apply(target, load_store())
    typer.echo(f"Applied {count} variable(s) from {target}", err=True)
