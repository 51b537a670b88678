"""The variable store: one ordered view over every environment source.

Records are keyed by name in insertion order. Every mutation appends a
HistoryEntry so the last change can be undone. Undo only touches the
in-memory record and the process environment; values already written to a
persistent platform scope are left as they are.
"""

import logging
import os
import sys
import threading
from collections.abc import Iterator, MutableMapping

from envx.backends import PlatformBackend, default_backend
from envx.constants import HISTORY_LIMIT
from envx.domain.patterns import (
    compile_regex,
    compile_wildcard,
    is_regex,
    is_wildcard,
    split_wildcard,
)
from envx.errors import (
    AlreadyExistsError,
    InvalidNameError,
    InvalidPatternError,
    NotFoundError,
    PersistenceError,
)
from envx.models import ActionKind, EnvVar, HistoryEntry, Scope, VarSource

logger = logging.getLogger(__name__)

_SHELL_PREFIXES = ("BASH_", "ZSH_")


class EnvStore:
    """Ordered name -> EnvVar mapping with history and undo.

    All public methods take the store lock; callers that need several
    operations to appear atomic (e.g. snapshotting) can hold ``store.lock``
    themselves since it is re-entrant.
    """

    def __init__(
        self,
        backend: PlatformBackend | None = None,
        environ: MutableMapping[str, str] | None = None,
        history_limit: int = HISTORY_LIMIT,
    ) -> None:
        self.backend: PlatformBackend = backend if backend is not None else default_backend()
        self.environ: MutableMapping[str, str] = environ if environ is not None else os.environ
        self.history_limit = history_limit
        self._vars: dict[str, EnvVar] = {}
        self._history: list[HistoryEntry] = []
        self._lock = threading.RLock()

    @property
    def lock(self) -> threading.RLock:
        return self._lock

    @property
    def history(self) -> tuple[HistoryEntry, ...]:
        with self._lock:
            return tuple(self._history)

    def __len__(self) -> int:
        return len(self._vars)

    def __contains__(self, name: object) -> bool:
        return name in self._vars

    def __iter__(self) -> Iterator[EnvVar]:
        return iter(self.list_vars())

    # -- loading ----------------------------------------------------------

    def load_all(self) -> None:
        """Rebuild the store from the process env, then system, then user scope.

        The last source a name is read from wins. A record whose value did
        not change keeps its ``modified`` time and ``original_value``.
        """
        fresh: dict[str, tuple[str, VarSource]] = {}
        for name, value in self.environ.items():
            source = VarSource.PROCESS
            if sys.platform != "win32" and name.startswith(_SHELL_PREFIXES):
                source = VarSource.SHELL
            fresh[name] = (value, source)
        for name, value in self.backend.load_system().items():
            fresh[name] = (value, VarSource.SYSTEM)
        for name, value in self.backend.load_user().items():
            fresh[name] = (value, VarSource.USER)

        with self._lock:
            previous = self._vars
            self._vars = {}
            for name, (value, source) in fresh.items():
                old = previous.get(name)
                if old is not None and old.value == value:
                    old.source = source
                    self._vars[name] = old
                else:
                    self._vars[name] = EnvVar(name=name, value=value, source=source)
        logger.debug("loaded %d variables", len(fresh))

    def insert(self, var: EnvVar) -> None:
        """Place a record directly, without history or side effects."""
        with self._lock:
            self._vars[var.name] = var

    def clear(self) -> None:
        """Drop every in-memory record; history and process env are untouched."""
        with self._lock:
            self._vars.clear()

    # -- queries ----------------------------------------------------------

    def get(self, name: str) -> EnvVar | None:
        with self._lock:
            return self._vars.get(name)

    def list_vars(self) -> list[EnvVar]:
        with self._lock:
            return list(self._vars.values())

    def names(self) -> list[str]:
        with self._lock:
            return list(self._vars)

    def as_dict(self) -> dict[str, str]:
        with self._lock:
            return {name: var.value for name, var in self._vars.items()}

    def filter_by_source(self, source: VarSource) -> list[EnvVar]:
        return [var for var in self.list_vars() if var.source is source]

    def search(self, query: str) -> list[EnvVar]:
        """Case-insensitive substring match over names and values."""
        return [var for var in self.list_vars() if var.matches(query)]

    def get_prefix(self, prefix: str) -> list[EnvVar]:
        return [var for var in self.list_vars() if var.name.startswith(prefix)]

    def get_suffix(self, suffix: str) -> list[EnvVar]:
        return [var for var in self.list_vars() if var.name.endswith(suffix)]

    def get_containing(self, text: str) -> list[EnvVar]:
        needle = text.lower()
        return [var for var in self.list_vars() if needle in var.name.lower()]

    def get_regex(self, source: str) -> list[EnvVar]:
        regex = compile_regex(source)
        return [var for var in self.list_vars() if regex.search(var.name)]

    def get_wildcard(self, pattern: str) -> list[EnvVar]:
        regex = compile_wildcard(pattern)
        return [var for var in self.list_vars() if regex.match(var.name)]

    def get_pattern(self, pattern: str) -> list[EnvVar]:
        """Look up names by ``/regex/``, wildcard, or exact name."""
        if is_regex(pattern):
            return self.get_regex(pattern[1:-1])
        if is_wildcard(pattern):
            return self.get_wildcard(pattern)
        var = self.get(pattern)
        return [var] if var is not None else []

    # -- mutations --------------------------------------------------------

    def _record(self, entry: HistoryEntry) -> None:
        self._history.append(entry)
        overflow = len(self._history) - self.history_limit
        if overflow > 0:
            del self._history[:overflow]

    @staticmethod
    def _check_name(name: str) -> None:
        if not name:
            raise InvalidNameError("variable name cannot be empty")
        if "=" in name:
            raise InvalidNameError(f"variable name '{name}' cannot contain '='")
        if "\0" in name:
            raise InvalidNameError("variable name cannot contain a NUL character")

    def set(self, name: str, value: str, persistent: bool = False) -> EnvVar:
        """Create or overwrite a variable.

        The in-memory record and the process env are always updated first.
        With ``persistent`` the platform backend is called afterwards; if it
        fails, PersistenceError is raised and the in-memory change (and its
        history entry) stays in place.
        """
        self._check_name(name)
        with self._lock:
            existing = self._vars.get(name)
            old_value = existing.value if existing is not None else None
            self._record(HistoryEntry(ActionKind.SET, name, old_value=old_value, new_value=value))
            var = EnvVar(
                name=name,
                value=value,
                source=VarSource.USER if persistent else VarSource.PROCESS,
                original_value=old_value,
            )
            self._vars[name] = var
            self.environ[name] = value

        if persistent:
            self._persist(name, value)
        return var

    def _persist(self, name: str, value: str) -> None:
        try:
            self.backend.set_persistent(name, value, Scope.USER)
        except OSError as exc:
            raise PersistenceError(f"cannot persist {name}: {exc}") from exc

    def delete(self, name: str) -> EnvVar:
        """Remove a variable; persistent copies go too for System/User records."""
        with self._lock:
            var = self._vars.pop(name, None)
            if var is None:
                raise NotFoundError("variable", name)
            self._record(HistoryEntry(ActionKind.DELETE, name, old_value=var.value))
            self.environ.pop(name, None)

        if var.source in (VarSource.SYSTEM, VarSource.USER):
            scope = Scope.SYSTEM if var.source is VarSource.SYSTEM else Scope.USER
            try:
                self.backend.delete_persistent(name, scope)
            except OSError as exc:
                raise PersistenceError(f"cannot remove persistent {name}: {exc}") from exc
        return var

    def undo(self) -> HistoryEntry | None:
        """Revert the most recent mutation; returns it, or None if history is empty.

        Nothing is appended to the history.
        """
        with self._lock:
            if not self._history:
                return None
            entry = self._history.pop()
            if entry.kind is ActionKind.SET:
                current = self._vars.get(entry.name)
                if entry.old_value is None:
                    self._vars.pop(entry.name, None)
                    self.environ.pop(entry.name, None)
                else:
                    self._vars[entry.name] = EnvVar(
                        name=entry.name,
                        value=entry.old_value,
                        source=VarSource.PROCESS,
                        original_value=current.value if current is not None else None,
                    )
                    self.environ[entry.name] = entry.old_value
            else:
                value = entry.old_value or ""
                self._vars[entry.name] = EnvVar(name=entry.name, value=value, source=VarSource.PROCESS)
                self.environ[entry.name] = value
            logger.debug("undid %s of %s", entry.kind.name, entry.name)
            return entry

    def rename(self, pattern: str, replacement: str) -> list[tuple[str, str]]:
        """Rename one variable, or every variable matched by a single-``*`` pattern.

        ``API_*`` -> ``SERVICE_*`` renames API_KEY to SERVICE_KEY. Each rename
        is a persistent set of the new name followed by a delete of the old.
        Returns the (old, new) pairs in store order.
        """
        if "*" in pattern:
            prefix, suffix = split_wildcard(pattern)
            if "*" not in replacement:
                raise InvalidPatternError(
                    f"replacement '{replacement}' must contain '*' to match '{pattern}'"
                )
            new_prefix, new_suffix = split_wildcard(replacement)
            pairs = []
            for name in self.names():
                if (
                    len(name) >= len(prefix) + len(suffix)
                    and name.startswith(prefix)
                    and name.endswith(suffix)
                ):
                    middle = name[len(prefix) : len(name) - len(suffix)]
                    pairs.append((name, new_prefix + middle + new_suffix))
        else:
            if "*" in replacement:
                raise InvalidPatternError(
                    f"replacement '{replacement}' has a '*' but '{pattern}' does not"
                )
            if pattern not in self:
                raise NotFoundError("variable", pattern)
            pairs = [(pattern, replacement)]

        pairs = [(old, new) for old, new in pairs if old != new]
        for _, new in pairs:
            if new in self:
                raise AlreadyExistsError("variable", new)

        for old, new in pairs:
            var = self.get(old)
            if var is None:
                continue
            self.set(new, var.value, persistent=True)
            self.delete(old)
        return pairs

    def replace(self, pattern: str, value: str) -> list[tuple[str, str, str]]:
        """Set ``value`` on every name matched by ``pattern``.

        An exact pattern naming an absent variable raises NotFoundError.
        Returns (name, old_value, new_value) triples.
        """
        if not is_wildcard(pattern) and not is_regex(pattern) and pattern not in self:
            raise NotFoundError("variable", pattern)
        changes = []
        for var in self.get_pattern(pattern):
            changes.append((var.name, var.value, value))
            self.set(var.name, value, persistent=True)
        return changes

    def find_replace(
        self, search: str, replacement: str, pattern: str | None = None
    ) -> list[tuple[str, str, str]]:
        """Substitute ``search`` with ``replacement`` inside values.

        Only names matched by ``pattern`` (all names when None) whose value
        contains ``search`` are touched. Returns (name, old, new) triples.
        """
        if not search:
            raise InvalidPatternError("search text cannot be empty")
        candidates = self.get_pattern(pattern) if pattern else self.list_vars()
        changes = []
        for var in candidates:
            if search not in var.value:
                continue
            updated = var.value.replace(search, replacement)
            changes.append((var.name, var.value, updated))
            self.set(var.name, updated, persistent=True)
        return changes

