"""Keep files and the live environment in sync while envx runs.

Threads, once started:

- the watchdog observer, which pushes changed paths into the debouncer;
- the debouncer, which releases a path once it has been quiet for the
  debounce window;
- the event worker, which drains released paths and calls ``handle_path``;
- the system monitor (file-writing modes only), which calls
  ``poll_system`` about once a second.

``handle_path`` and ``poll_system`` are plain methods, so a single step can
be driven synchronously as well.
"""

import json
import logging
import queue
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, Field
from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer
from watchdog.observers.api import BaseObserver

from envx.constants import (
    CHANGE_LOG_EVICT_RATIO,
    CHANGE_LOG_LIMIT,
    DEBOUNCE_MS,
    EVENT_POLL_SECONDS,
    MONITOR_INTERVAL_SECONDS,
    SETTLE_SECONDS,
    WATCH_PATTERNS,
)
from envx.domain.patterns import compile_wildcard, is_wildcard
from envx.errors import EnvxError, NotFoundError
from envx.exporter import Exporter
from envx.formats import Format
from envx.importer import parse
from envx.models import utcnow
from envx.store import EnvStore

logger = logging.getLogger(__name__)

# (name, system_value, file_value) -> value to keep
Resolver = Callable[[str, str, str], str]


class SyncMode(str, Enum):
    WATCH_ONLY = "watch-only"
    FILE_TO_SYSTEM = "file-to-system"
    SYSTEM_TO_FILE = "system-to-file"
    BIDIRECTIONAL = "bidirectional"


class ConflictStrategy(str, Enum):
    USE_LATEST = "use-latest"
    PREFER_FILE = "prefer-file"
    PREFER_SYSTEM = "prefer-system"
    ASK_USER = "ask-user"


class ChangeKind(str, Enum):
    FILE_CREATED = "file_created"
    FILE_MODIFIED = "file_modified"
    FILE_DELETED = "file_deleted"
    VAR_ADDED = "var_added"
    VAR_MODIFIED = "var_modified"
    VAR_DELETED = "var_deleted"


class ChangeEvent(BaseModel):
    timestamp: datetime = Field(default_factory=utcnow)
    kind: ChangeKind
    path: str | None = None
    variable: str | None = None
    details: str = ""


class ChangeLog:
    """Thread-safe, bounded list of change events.

    When the bound is exceeded the oldest tenth is dropped in one go.
    """

    def __init__(self, limit: int = CHANGE_LOG_LIMIT) -> None:
        self.limit = limit
        self._events: list[ChangeEvent] = []
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)

    def append(self, event: ChangeEvent) -> None:
        with self._lock:
            self._events.append(event)
            if len(self._events) > self.limit:
                del self._events[: max(1, int(self.limit * CHANGE_LOG_EVICT_RATIO))]

    def events(self) -> list[ChangeEvent]:
        with self._lock:
            return list(self._events)

    def export(self, path: Path) -> None:
        payload = [event.model_dump(mode="json") for event in self.events()]
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(payload, indent=2), encoding="utf-8")


@dataclass
class WatchConfig:
    paths: list[Path] = field(default_factory=lambda: [Path(".")])
    mode: SyncMode = SyncMode.FILE_TO_SYSTEM
    debounce_ms: int = DEBOUNCE_MS
    patterns: list[str] = field(default_factory=lambda: list(WATCH_PATTERNS))
    output: Path | None = None
    variable_filter: list[str] = field(default_factory=list)
    conflict: ConflictStrategy = ConflictStrategy.USE_LATEST
    log_changes: bool = True
    # When off, file events are logged but never loaded.
    auto_reload: bool = True


class Debouncer:
    """Coalesce bursts of events per path into one delivery.

    A path is released into ``sink`` once no new event for it has arrived
    for ``window`` seconds.
    """

    def __init__(self, window: float, sink: "queue.Queue[Path]") -> None:
        self.window = window
        self.sink = sink
        self._due: dict[Path, float] = {}
        self._lock = threading.Lock()

    def push(self, path: Path) -> None:
        with self._lock:
            self._due[path] = time.monotonic() + self.window

    def flush(self, now: float | None = None) -> list[Path]:
        """Release every path whose window has elapsed."""
        now = time.monotonic() if now is None else now
        with self._lock:
            ready = [path for path, due in self._due.items() if due <= now]
            for path in ready:
                del self._due[path]
        for path in ready:
            self.sink.put(path)
        return ready

    def run(self, stop: threading.Event) -> None:
        tick = min(max(self.window / 4, 0.01), EVENT_POLL_SECONDS)
        while not stop.wait(tick):
            self.flush()


class _WatchHandler(FileSystemEventHandler):
    def __init__(self, debouncer: Debouncer) -> None:
        self.debouncer = debouncer

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.is_directory or event.event_type not in ("created", "modified", "deleted", "moved"):
            return
        self.debouncer.push(Path(str(event.src_path)))
        dest = getattr(event, "dest_path", "")
        if dest:
            self.debouncer.push(Path(str(dest)))


def _name_filters(entries: list[str]) -> list[Callable[[str], bool]]:
    """Wildcards match the whole name; plain entries match as substrings."""
    checks = []
    for entry in entries:
        if is_wildcard(entry):
            regex = compile_wildcard(entry)
            checks.append(lambda name, regex=regex: regex.match(name) is not None)
        else:
            checks.append(lambda name, entry=entry: entry in name)
    return checks


class EnvWatcher:
    def __init__(
        self, store: EnvStore, config: WatchConfig | None = None, resolver: Resolver | None = None
    ) -> None:
        self.store = store
        self.config = config or WatchConfig()
        self.resolver = resolver
        self.change_log = ChangeLog()
        self._filters = _name_filters(self.config.variable_filter)
        self._patterns = [compile_wildcard(p) for p in self.config.patterns]
        self._queue: queue.Queue[Path] = queue.Queue()
        self._debouncer = Debouncer(self.config.debounce_ms / 1000, self._queue)
        self._stop = threading.Event()
        self._threads: list[threading.Thread] = []
        self._observer: BaseObserver | None = None
        self._last_system: dict[str, str] | None = None

    # -- configuration ----------------------------------------------------

    def set_variable_filter(self, entries: list[str]) -> None:
        self.config.variable_filter = list(entries)
        self._filters = _name_filters(self.config.variable_filter)

    def set_output_file(self, path: Path | None) -> None:
        self.config.output = path

    def export_change_log(self, path: Path) -> None:
        self.change_log.export(path)

    @property
    def running(self) -> bool:
        return bool(self._threads) and not self._stop.is_set()

    def _log(self, kind: ChangeKind, details: str, path: Path | None = None, variable: str | None = None) -> None:
        self.change_log.append(
            ChangeEvent(kind=kind, path=str(path) if path else None, variable=variable, details=details)
        )
        level = logging.INFO if self.config.log_changes else logging.DEBUG
        logger.log(level, "%s: %s", kind.value, details)

    def passes_filter(self, name: str) -> bool:
        return not self._filters or any(check(name) for check in self._filters)

    def matches_patterns(self, path: Path) -> bool:
        return any(regex.match(path.name) for regex in self._patterns)

    def _filtered_values(self) -> dict[str, str]:
        return {name: value for name, value in self.store.as_dict().items() if self.passes_filter(name)}

    # -- lifecycle --------------------------------------------------------

    def start(self) -> None:
        """Begin watching; returns immediately, work happens on background threads."""
        if self.running:
            return
        self._stop.clear()
        observer = Observer()
        handler = _WatchHandler(self._debouncer)
        for path in self.config.paths:
            if path.is_file():
                observer.schedule(handler, str(path.resolve().parent), recursive=False)
            elif path.is_dir():
                observer.schedule(handler, str(path.resolve()), recursive=True)
            else:
                raise NotFoundError("file", str(path))
        observer.start()
        self._observer = observer

        workers = [self._debouncer.run, self._event_loop]
        if self.config.mode in (SyncMode.SYSTEM_TO_FILE, SyncMode.BIDIRECTIONAL):
            self._last_system = self._filtered_values()
            workers.append(self._monitor_loop)
        for target in workers:
            thread = threading.Thread(target=target, args=(self._stop,), daemon=True)
            thread.start()
            self._threads.append(thread)
        logger.info("watching %s (%s)", ", ".join(str(p) for p in self.config.paths), self.config.mode.value)

    def stop(self) -> None:
        self._stop.set()
        if self._observer is not None:
            self._observer.stop()
            self._observer.join(timeout=5.0)
            self._observer = None
        for thread in self._threads:
            thread.join(timeout=MONITOR_INTERVAL_SECONDS * 2)
        self._threads.clear()
        logger.info("watcher stopped")

    def _event_loop(self, stop: threading.Event) -> None:
        while not stop.is_set():
            try:
                path = self._queue.get(timeout=EVENT_POLL_SECONDS)
            except queue.Empty:
                continue
            try:
                self.handle_path(path)
            except (EnvxError, OSError, UnicodeDecodeError) as exc:
                logger.warning("failed to process %s: %s", path, exc)

    def _monitor_loop(self, stop: threading.Event) -> None:
        while not stop.wait(MONITOR_INTERVAL_SECONDS):
            try:
                self.poll_system()
            except (EnvxError, OSError) as exc:
                logger.warning("system monitor failed: %s", exc)

    # -- event handling ---------------------------------------------------

    def _is_output(self, path: Path) -> bool:
        output = self.config.output
        return output is not None and path.resolve() == output.resolve()

    def handle_path(self, path: Path) -> bool:
        """Process one debounced file event; returns False if it was ignored."""
        mode = self.config.mode
        if mode is SyncMode.BIDIRECTIONAL and self._is_output(path):
            return False
        if not self.matches_patterns(path):
            return False

        exists = path.exists()
        kind = ChangeKind.FILE_MODIFIED if exists else ChangeKind.FILE_DELETED
        self._log(kind, f"{path.name} {'modified' if exists else 'deleted'}", path=path)

        if mode in (SyncMode.WATCH_ONLY, SyncMode.SYSTEM_TO_FILE) or not exists:
            return True
        if not self.config.auto_reload:
            return True
        time.sleep(SETTLE_SECONDS)
        self.sync_file(path)
        return True

    def sync_file(self, path: Path) -> None:
        """Load a file into the store and log what changed among filtered names."""
        before = self._filtered_values()
        parsed = parse(path.read_text(encoding="utf-8"), _file_format(path))
        file_mtime = datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc)

        for name, value in parsed.items():
            if not self.passes_filter(name):
                continue
            current = self.store.get(name)
            if current is None:
                self.store.set(name, value, persistent=True)
            elif current.value != value:
                chosen = self._resolve(name, current.value, value, current.modified > file_mtime)
                if chosen != current.value:
                    self.store.set(name, chosen, persistent=True)

        after = self._filtered_values()
        self._log_differences(before, after, path)

    def _resolve(self, name: str, system_value: str, file_value: str, system_is_newer: bool) -> str:
        strategy = self.config.conflict
        if strategy is ConflictStrategy.PREFER_FILE:
            return file_value
        if strategy is ConflictStrategy.PREFER_SYSTEM:
            return system_value
        if strategy is ConflictStrategy.USE_LATEST:
            return system_value if system_is_newer else file_value
        if self.resolver is None:
            logger.warning("conflict on %s left unresolved: keeping the system value", name)
            return system_value
        return self.resolver(name, system_value, file_value)

    def _log_differences(self, before: dict[str, str], after: dict[str, str], path: Path | None) -> None:
        for name, value in after.items():
            if name not in before:
                self._log(ChangeKind.VAR_ADDED, f"{name} = {value}", path=path, variable=name)
            elif before[name] != value:
                self._log(
                    ChangeKind.VAR_MODIFIED, f"{name}: {before[name]} -> {value}", path=path, variable=name
                )
        for name in before:
            if name not in after:
                self._log(ChangeKind.VAR_DELETED, f"{name} removed", path=path, variable=name)

    # -- system monitor ---------------------------------------------------

    def poll_system(self) -> bool:
        """Reload the environment and rewrite the output file if filtered names changed."""
        self.store.load_all()
        current = self._filtered_values()
        previous, self._last_system = self._last_system, current
        if previous is None or previous == current:
            return False
        self._log_differences(previous, current, self.config.output)
        self.write_output()
        return True

    def write_output(self) -> None:
        output = self.config.output
        if output is None:
            return
        variables = [var for var in self.store.list_vars() if self.passes_filter(var.name)]
        Exporter(variables).export_to_file(output, Format.DOTENV)
        logger.debug("wrote %d variables to %s", len(variables), output)


def _file_format(path: Path) -> Format:
    """dotenv unless the file is clearly YAML or JSON."""
    suffix = path.suffix.lower()
    if suffix in (".yaml", ".yml"):
        return Format.YAML
    if suffix == ".json":
        return Format.JSON
    return Format.DOTENV
