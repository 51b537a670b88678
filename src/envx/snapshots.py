"""Immutable captures of the whole store, one JSON file each."""

import json
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError

from envx.config import snapshots_dir
from envx.errors import NotFoundError
from envx.models import EnvVar, VarSource, utcnow
from envx.store import EnvStore

logger = logging.getLogger(__name__)


class SnapshotVar(BaseModel):
    name: str
    value: str
    source: VarSource = VarSource.PROCESS
    source_tag: str | None = None
    modified: datetime = Field(default_factory=utcnow)
    original_value: str | None = None

    @classmethod
    def from_var(cls, var: EnvVar) -> "SnapshotVar":
        return cls(
            name=var.name,
            value=var.value,
            source=var.source,
            source_tag=var.source_tag,
            modified=var.modified,
            original_value=var.original_value,
        )


class Snapshot(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    name: str
    description: str | None = None
    created_at: datetime = Field(default_factory=utcnow)
    variables: dict[str, SnapshotVar] = Field(default_factory=dict)
    metadata: dict[str, str] = Field(default_factory=dict)

    def values(self) -> dict[str, str]:
        return {name: var.value for name, var in self.variables.items()}


@dataclass
class SnapshotDiff:
    added: dict[str, str] = field(default_factory=dict)
    removed: dict[str, str] = field(default_factory=dict)
    modified: dict[str, tuple[str, str]] = field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return not (self.added or self.removed or self.modified)


def diff(a: Snapshot, b: Snapshot) -> SnapshotDiff:
    """What changed going from ``a`` to ``b``."""
    before, after = a.values(), b.values()
    result = SnapshotDiff()
    for name, value in after.items():
        if name not in before:
            result.added[name] = value
        elif before[name] != value:
            result.modified[name] = (before[name], value)
    for name, value in before.items():
        if name not in after:
            result.removed[name] = value
    return result


class SnapshotStore:
    def __init__(self, directory: Path | None = None) -> None:
        self.directory = directory or snapshots_dir()

    def _path(self, snapshot_id: str) -> Path:
        return self.directory / f"{snapshot_id}.json"

    def create(self, name: str, store: EnvStore, description: str | None = None) -> Snapshot:
        """Capture every record of the store under its lock and write it out."""
        with store.lock:
            records = store.list_vars()
            variables = {var.name: SnapshotVar.from_var(var) for var in records}
        snapshot = Snapshot(name=name, description=description, variables=variables)
        self.save(snapshot)
        logger.info("created snapshot %s (%s) with %d variables", name, snapshot.id, len(variables))
        return snapshot

    def save(self, snapshot: Snapshot) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        payload = snapshot.model_dump(mode="json")
        self._path(snapshot.id).write_text(json.dumps(payload, indent=2), encoding="utf-8")

    def list_snapshots(self) -> list[Snapshot]:
        """All readable snapshots, newest first; unreadable files are skipped."""
        if not self.directory.is_dir():
            return []
        snapshots = []
        for path in self.directory.glob("*.json"):
            try:
                snapshots.append(Snapshot.model_validate_json(path.read_text(encoding="utf-8")))
            except (ValidationError, OSError, UnicodeDecodeError) as exc:
                logger.warning("skipping unreadable snapshot %s: %s", path.name, exc)
        snapshots.sort(key=lambda s: s.created_at, reverse=True)
        return snapshots

    def get(self, id_or_name: str) -> Snapshot:
        """Find a snapshot by exact id first, then by name (newest match wins)."""
        path = self._path(id_or_name)
        if path.is_file():
            try:
                return Snapshot.model_validate_json(path.read_text(encoding="utf-8"))
            except ValidationError as exc:
                logger.warning("snapshot file %s is unreadable: %s", path.name, exc)
        for snapshot in self.list_snapshots():
            if snapshot.name == id_or_name:
                return snapshot
        raise NotFoundError("snapshot", id_or_name)

    def delete(self, id_or_name: str) -> Snapshot:
        snapshot = self.get(id_or_name)
        self._path(snapshot.id).unlink()
        return snapshot

    def restore(self, id_or_name: str, store: EnvStore) -> Snapshot:
        """Replace the store's contents with the snapshot's variables.

        Every captured variable is written with a persistent set, so restored
        records carry the User source.
        """
        snapshot = self.get(id_or_name)
        store.clear()
        for name, var in snapshot.variables.items():
            store.set(name, var.value, persistent=True)
        logger.info("restored snapshot %s", snapshot.name)
        return snapshot

    def diff(self, a: str, b: str) -> SnapshotDiff:
        return diff(self.get(a), self.get(b))
