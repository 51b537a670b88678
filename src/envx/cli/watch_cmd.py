"""`envx watch`: keep files and the environment in sync until interrupted."""

import time
from pathlib import Path

import typer

from envx.cli.common import cli_errors, load_store, settings
from envx.watcher import ConflictStrategy, EnvWatcher, SyncMode, WatchConfig


def _ask(name: str, system_value: str, file_value: str) -> str:
    typer.echo(f"Conflict on {name}: system={system_value!r} file={file_value!r}")
    if typer.confirm("Use the file value?", default=True):
        return file_value
    return system_value


def watch(
    paths: list[Path] = typer.Argument(None, help="Files or directories to watch (default: .)"),  # noqa: B008
    mode: SyncMode = typer.Option(SyncMode.FILE_TO_SYSTEM, "--mode", "-m"),  # noqa: B008
    output: Path = typer.Option(None, "--output", "-o", help="File written in system-to-file and bidirectional modes"),  # noqa: B008
    patterns: list[str] = typer.Option(None, "--pattern", help="File name globs to react to (repeatable)"),  # noqa: B008
    variables: list[str] = typer.Option(None, "--var", help="Only sync names containing/matching this (repeatable)"),  # noqa: B008
    conflict: ConflictStrategy = typer.Option(ConflictStrategy.USE_LATEST, "--conflict"),  # noqa: B008
    debounce: int = typer.Option(None, "--debounce", help="Debounce window in milliseconds"),
    reload: bool = typer.Option(True, "--reload/--no-reload", help="Load changed files into the environment"),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Do not log each change"),
    log_file: Path = typer.Option(None, "--log", help="Write the change log here as JSON on exit"),  # noqa: B008
    duration: float = typer.Option(None, "--duration", help="Stop after this many seconds"),
) -> None:
    """Watch files and sync them with the environment."""
    if mode in (SyncMode.SYSTEM_TO_FILE, SyncMode.BIDIRECTIONAL) and output is None:
        typer.echo(f"Error: --output is required in {mode.value} mode", err=True)
        raise typer.Exit(1)

    user = settings()
    watched = list(paths or [Path(".")])
    if mode is SyncMode.BIDIRECTIONAL and output is not None:
        output.touch(exist_ok=True)
        if output not in watched:
            watched.append(output)
    config = WatchConfig(
        paths=watched,
        mode=mode,
        debounce_ms=user.debounce_ms if debounce is None else debounce,
        patterns=list(patterns or user.watch_patterns),
        output=output,
        variable_filter=list(variables or []),
        conflict=conflict,
        log_changes=not quiet,
        auto_reload=reload,
    )

    with cli_errors():
        watcher = EnvWatcher(load_store(), config, resolver=_ask)
        watcher.start()
        typer.echo(f"Watching {', '.join(str(p) for p in watched)} ({mode.value}); Ctrl+C to stop", err=True)
        started = time.monotonic()
        try:
            while duration is None or time.monotonic() - started < duration:
                time.sleep(0.2)
        except KeyboardInterrupt:
            pass
        finally:
            watcher.stop()
            if log_file is not None:
                watcher.export_change_log(log_file)
    typer.echo(f"Recorded {len(watcher.change_log)} change(s)", err=True)
