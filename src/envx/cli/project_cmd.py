"""`envx project` commands for `.envx/config.yaml`."""

from pathlib import Path

import typer

from envx.cli.common import cli_errors, load_store
from envx.constants import EXIT_VALIDATION_FAILED
from envx.errors import ValidationFailedError
from envx.project import ProjectManager, ValidationReport

app = typer.Typer(help="Work with the project's .envx/config.yaml", no_args_is_help=True)


@app.command()
def init(
    name: str = typer.Option(None, "--name", "-n", help="Project name (defaults to the directory name)"),
) -> None:
    """Create .envx/config.yaml in the current directory."""
    with cli_errors():
        path = ProjectManager(load_store()).init(Path.cwd(), name)
    typer.echo(f"Created {path}", err=True)


def _print_report(report: ValidationReport) -> None:
    for name in report.found:
        typer.echo(f"ok       {name}")
    for required in report.missing:
        hint = f" (e.g. {required.example})" if required.example else ""
        desc = f" - {required.description}" if required.description else ""
        typer.echo(f"missing  {required.name}{desc}{hint}")
    for error in report.errors:
        typer.echo(f"error    {error}")
    for warning in report.warnings:
        typer.echo(f"warning  {warning}")


@app.command()
def check() -> None:
    """Validate required variables; exits 3 when any is missing or malformed."""
    with cli_errors():
        manager = ProjectManager(load_store())
        manager.load()
        try:
            report = manager.validate(strict=True)
        except ValidationFailedError as exc:
            _print_report(exc.report)
            raise typer.Exit(EXIT_VALIDATION_FAILED) from exc
    _print_report(report)


@app.command()
def apply() -> None:
    """Activate the profile, load auto_load files and fill in defaults."""
    with cli_errors():
        manager = ProjectManager(load_store())
        manager.load()
        count = manager.apply()
    typer.echo(f"Applied {count} variable(s)", err=True)


@app.command()
def run(script: str = typer.Argument(...)) -> None:
    """Run a script defined in the project config."""
    with cli_errors():
        manager = ProjectManager(load_store())
        manager.load()
        code = manager.run_script(script)
    raise typer.Exit(code)


@app.command()
def require(
    name: str = typer.Argument(...),
    description: str = typer.Option(None, "--description", "-d"),
    pattern: str = typer.Option(None, "--pattern", "-p", help="Regular expression the value must match"),
    example: str = typer.Option(None, "--example", "-e"),
) -> None:
    """Add a required variable to the project config."""
    with cli_errors():
        manager = ProjectManager(load_store())
        manager.load()
        manager.add_required(name, description, pattern, example)
        manager.save()
    typer.echo(f"{name} is now required", err=True)
