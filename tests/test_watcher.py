"""Unit tests for the file/environment watcher.

Most tests drive ``handle_path`` and ``poll_system`` directly instead of
waiting on filesystem notifications.
"""

import json
import os
import queue
import time
from pathlib import Path

import pytest

from envx.errors import NotFoundError
from envx.watcher import (
    ChangeEvent,
    ChangeKind,
    ChangeLog,
    ConflictStrategy,
    Debouncer,
    EnvWatcher,
    SyncMode,
    WatchConfig,
)


def _watcher(store, tmp_path: Path, **kwargs) -> EnvWatcher:
    return EnvWatcher(store, WatchConfig(paths=[tmp_path], **kwargs))


def _kinds(watcher: EnvWatcher) -> list[ChangeKind]:
    return [event.kind for event in watcher.change_log.events()]


class TestChangeLog:
    def test_evicts_oldest_tenth(self):
        """
        Given a log bounded at 20 events
        When 21 events are appended
        Then the two oldest are dropped
        """
        log = ChangeLog(limit=20)
        for i in range(21):
            log.append(ChangeEvent(kind=ChangeKind.VAR_ADDED, details=str(i)))

        assert len(log) == 19
        assert log.events()[0].details == "2"

    def test_export(self, tmp_path: Path):
        """
        Given one event
        When exported
        Then the file holds a JSON list with its kind
        """
        log = ChangeLog()
        log.append(ChangeEvent(kind=ChangeKind.FILE_DELETED, path="/x/.env"))
        target = tmp_path / "logs" / "changes.json"

        log.export(target)

        [entry] = json.loads(target.read_text())
        assert entry["kind"] == "file_deleted"
        assert entry["path"] == "/x/.env"


class TestDebouncer:
    def test_burst_is_released_once_after_window(self):
        """
        Given three pushes for the same path
        When flushed before and after the window
        Then nothing is released early and the path is released once
        """
        sink: queue.Queue[Path] = queue.Queue()
        debouncer = Debouncer(0.5, sink)
        path = Path("a.env")
        for _ in range(3):
            debouncer.push(path)

        assert debouncer.flush(time.monotonic()) == []
        assert debouncer.flush(time.monotonic() + 1.0) == [path]
        assert sink.qsize() == 1
        assert debouncer.flush(time.monotonic() + 2.0) == []


class TestHandlePath:
    def test_file_to_system_imports_variables(self, store, backend, tmp_path: Path):
        """
        Given a .env file
        When its change is handled in file-to-system mode
        Then its variables are set persistently and the change is logged
        """
        env_file = tmp_path / ".env"
        env_file.write_text("A=1\nB=2\n")
        watcher = _watcher(store, tmp_path)

        assert watcher.handle_path(env_file)

        assert backend.user == {"A": "1", "B": "2"}
        assert _kinds(watcher) == [ChangeKind.FILE_MODIFIED, ChangeKind.VAR_ADDED, ChangeKind.VAR_ADDED]

    def test_non_matching_file_is_ignored(self, store, tmp_path: Path):
        """
        Given a file that matches no watch pattern
        When handled
        Then it is ignored
        """
        other = tmp_path / "notes.txt"
        other.write_text("A=1\n")

        assert not _watcher(store, tmp_path).handle_path(other)
        assert len(store) == 0

    def test_watch_only_logs_without_syncing(self, store, tmp_path: Path):
        """
        Given watch-only mode
        When a .env file changes
        Then the event is logged but the store is untouched
        """
        env_file = tmp_path / "app.env"
        env_file.write_text("A=1\n")
        watcher = _watcher(store, tmp_path, mode=SyncMode.WATCH_ONLY)

        assert watcher.handle_path(env_file)

        assert len(store) == 0
        assert _kinds(watcher) == [ChangeKind.FILE_MODIFIED]

    def test_auto_reload_off_logs_without_syncing(self, store, tmp_path: Path):
        """
        Given file-to-system mode with auto reload disabled
        When a .env file changes
        Then the event is logged but nothing is loaded
        """
        env_file = tmp_path / "test.env"
        env_file.write_text("TEST=value\n")
        watcher = _watcher(store, tmp_path, auto_reload=False)

        assert watcher.handle_path(env_file)

        assert store.get("TEST") is None
        assert _kinds(watcher) == [ChangeKind.FILE_MODIFIED]

    def test_deleted_file_is_logged(self, store, tmp_path: Path):
        """
        Given a path that no longer exists
        When handled
        Then a deletion is logged
        """
        watcher = _watcher(store, tmp_path)

        assert watcher.handle_path(tmp_path / ".env")
        assert _kinds(watcher) == [ChangeKind.FILE_DELETED]

    def test_bidirectional_skips_own_output(self, store, tmp_path: Path):
        """
        Given bidirectional mode whose output file is watched
        When the output file changes
        Then the event is ignored
        """
        output = tmp_path / "out.env"
        output.write_text("A=1\n")
        watcher = _watcher(store, tmp_path, mode=SyncMode.BIDIRECTIONAL, output=output)

        assert not watcher.handle_path(output)
        assert len(store) == 0

    def test_variable_filter(self, store, tmp_path: Path):
        """
        Given a filter of APP_* and DB
        When a file with several names is synced
        Then only matching names are imported
        """
        env_file = tmp_path / ".env"
        env_file.write_text("APP_NAME=x\nMY_DB_URL=y\nOTHER=z\n")
        watcher = _watcher(store, tmp_path)
        watcher.set_variable_filter(["APP_*", "DB"])

        watcher.handle_path(env_file)

        assert store.as_dict() == {"APP_NAME": "x", "MY_DB_URL": "y"}

    def test_json_files_are_parsed_as_json(self, store, tmp_path: Path):
        """
        Given a watched JSON file
        When synced
        Then its object is imported
        """
        path = tmp_path / "vars.json"
        path.write_text('{"FROM_JSON": "1"}')

        _watcher(store, tmp_path).handle_path(path)

        assert store.get("FROM_JSON").value == "1"


class TestConflicts:
    def _conflict(self, store, tmp_path: Path, mtime_offset: float = 0.0, **kwargs) -> EnvWatcher:
        store.set("A", "system")
        env_file = tmp_path / ".env"
        env_file.write_text("A=file\n")
        stamp = time.time() + mtime_offset
        os.utime(env_file, (stamp, stamp))
        watcher = _watcher(store, tmp_path, **kwargs)
        watcher.sync_file(env_file)
        return watcher

    @pytest.mark.parametrize(
        ("strategy", "expected"),
        [(ConflictStrategy.PREFER_FILE, "file"), (ConflictStrategy.PREFER_SYSTEM, "system")],
    )
    def test_fixed_preferences(self, store, tmp_path: Path, strategy, expected):
        """
        Given A differs between the store and the file
        When synced with a fixed preference
        Then the preferred side wins
        """
        self._conflict(store, tmp_path, conflict=strategy)
        assert store.get("A").value == expected

    def test_use_latest_older_file_loses(self, store, tmp_path: Path):
        """
        Given a file last modified an hour ago
        When synced with use-latest
        Then the newer store value is kept
        """
        watcher = self._conflict(store, tmp_path, mtime_offset=-3600)

        assert store.get("A").value == "system"
        assert ChangeKind.VAR_MODIFIED not in _kinds(watcher)

    def test_use_latest_newer_file_wins(self, store, tmp_path: Path):
        """
        Given a file modified after the store value
        When synced with use-latest
        Then the file value wins and the modification is logged
        """
        watcher = self._conflict(store, tmp_path, mtime_offset=3600)

        assert store.get("A").value == "file"
        assert ChangeKind.VAR_MODIFIED in _kinds(watcher)

    def test_ask_user_uses_resolver(self, store, tmp_path: Path):
        """
        Given ask-user with a resolver that merges both values
        When synced
        Then the resolver's answer is stored
        """
        store.set("A", "system")
        env_file = tmp_path / ".env"
        env_file.write_text("A=file\n")
        seen = []

        def resolver(name: str, system: str, file: str) -> str:
            seen.append(name)
            return f"{system}+{file}"

        watcher = EnvWatcher(
            store, WatchConfig(paths=[tmp_path], conflict=ConflictStrategy.ASK_USER), resolver
        )
        watcher.sync_file(env_file)

        assert seen == ["A"]
        assert store.get("A").value == "system+file"

    def test_ask_user_without_resolver_keeps_system(self, store, tmp_path: Path):
        """
        Given ask-user and no resolver
        When synced
        Then the store value stays
        """
        self._conflict(store, tmp_path, conflict=ConflictStrategy.ASK_USER)
        assert store.get("A").value == "system"


class TestSystemMonitor:
    def test_first_poll_is_baseline_then_changes_write_output(self, store, tmp_path: Path):
        """
        Given system-to-file mode with an output file
        When the environment changes between polls
        Then the first poll writes nothing and the second writes the output
        """
        output = tmp_path / "out" / "sync.env"
        store.environ["KEEP"] = "1"
        watcher = _watcher(store, tmp_path, mode=SyncMode.SYSTEM_TO_FILE, output=output)

        assert not watcher.poll_system()
        assert not output.exists()

        store.environ["ADDED"] = "two words"
        assert watcher.poll_system()

        assert output.read_text() == 'KEEP=1\nADDED="two words"\n'
        assert ChangeKind.VAR_ADDED in _kinds(watcher)

    def test_unchanged_environment_is_quiet(self, store, tmp_path: Path):
        """
        Given two polls with no change in between
        When polled
        Then neither reports a change
        """
        watcher = _watcher(store, tmp_path, mode=SyncMode.SYSTEM_TO_FILE, output=tmp_path / "o.env")

        assert not watcher.poll_system()
        assert not watcher.poll_system()


class TestLifecycle:
    def test_missing_path_raises(self, store, tmp_path: Path):
        """
        Given a watch path that does not exist
        When the watcher starts
        Then NotFoundError is raised
        """
        with pytest.raises(NotFoundError):
            _watcher(store, tmp_path / "absent").start()

    def test_start_and_stop(self, store, tmp_path: Path):
        """
        Given a watch on an existing directory
        When started and stopped
        Then running reflects each state
        """
        watcher = _watcher(store, tmp_path, debounce_ms=10)

        watcher.start()
        try:
            assert watcher.running
        finally:
            watcher.stop()

        assert not watcher.running

    def test_file_change_reaches_store_through_observer(self, store, tmp_path: Path):
        """
        Given a running watcher on a directory holding an empty .env
        When the file is rewritten on disk
        Then the observer, debouncer and event loop load the new values into the store
        """
        env_file = tmp_path / ".env"
        env_file.write_text("")
        watcher = _watcher(store, tmp_path, debounce_ms=50)

        watcher.start()
        try:
            env_file.write_text("A=1\nB=2\n")
            deadline = time.monotonic() + 10.0
            while time.monotonic() < deadline and store.as_dict() != {"A": "1", "B": "2"}:
                time.sleep(0.05)
        finally:
            watcher.stop()

        assert store.as_dict() == {"A": "1", "B": "2"}
        assert ChangeKind.VAR_ADDED in _kinds(watcher)
