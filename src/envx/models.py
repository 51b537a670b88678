"""Domain models."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum, auto


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class VarSource(str, Enum):
    SYSTEM = "System"
    USER = "User"
    PROCESS = "Process"
    SHELL = "Shell"
    APPLICATION = "Application"


class Scope(str, Enum):
    """Persistent scope targeted by a platform write."""

    USER = "user"
    SYSTEM = "system"


@dataclass
class EnvVar:
    """One variable as tracked by the store.

    ``original_value`` is the value replaced by the most recent mutation, or
    None when the variable was created fresh. ``source_tag`` names the
    producer for APPLICATION sources.
    """

    name: str
    value: str
    source: VarSource = VarSource.PROCESS
    modified: datetime = field(default_factory=utcnow)
    original_value: str | None = None
    source_tag: str | None = None

    def matches(self, query: str) -> bool:
        """Return True if name or value contains the query (case-insensitive)."""
        q = query.lower()
        return q in self.name.lower() or q in self.value.lower()

    @property
    def source_label(self) -> str:
        if self.source is VarSource.APPLICATION and self.source_tag:
            return f"Application({self.source_tag})"
        return self.source.value


class ActionKind(Enum):
    SET = auto()
    DELETE = auto()


@dataclass
class HistoryEntry:
    """A reversible mutation applied to the store.

    - SET: reverse by restoring old_value, or removing the variable when
      old_value is None (it was created by the set).
    - DELETE: reverse by re-inserting name with old_value.
    """

    kind: ActionKind
    name: str
    old_value: str | None = None
    new_value: str | None = None
