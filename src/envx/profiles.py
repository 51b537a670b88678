"""Named variable overlays persisted in profiles.json.

Schema on disk:

    {
        "active": "dev",
        "profiles": {
            "dev": {
                "name": "dev",
                "description": "local development",
                "created_at": "2024-01-01T00:00:00Z",
                "updated_at": "2024-01-01T00:00:00Z",
                "parent": null,
                "variables": {
                    "DEBUG": {"value": "1", "enabled": true, "override_system": false}
                },
                "metadata": {}
            }
        }
    }
"""

import json
import logging
from datetime import datetime
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError

from envx.config import profiles_path
from envx.errors import AlreadyExistsError, CyclicProfileError, NotFoundError, ParseError
from envx.models import utcnow
from envx.store import EnvStore

logger = logging.getLogger(__name__)


class ProfileVar(BaseModel):
    value: str
    enabled: bool = True
    override_system: bool = False


class Profile(BaseModel):
    """A named set of variables, optionally inheriting from a parent profile."""

    name: str
    description: str | None = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    parent: str | None = None
    variables: dict[str, ProfileVar] = Field(default_factory=dict)
    metadata: dict[str, str] = Field(default_factory=dict)

    def add_var(self, name: str, value: str, override_system: bool = False) -> None:
        self.variables[name] = ProfileVar(value=value, override_system=override_system)
        self.updated_at = utcnow()

    def remove_var(self, name: str) -> bool:
        """Remove a variable; returns False if the profile did not hold it."""
        if self.variables.pop(name, None) is None:
            return False
        self.updated_at = utcnow()
        return True

    def active_vars(self) -> dict[str, str]:
        """Enabled variables only, in declaration order."""
        return {name: var.value for name, var in self.variables.items() if var.enabled}


class ProfileDocument(BaseModel):
    active: str | None = None
    profiles: dict[str, Profile] = Field(default_factory=dict)


class ProfileStore:
    """Load, edit and save the profile document.

    Every mutating call writes the document back immediately.
    """

    def __init__(self, path: Path | None = None) -> None:
        self.path = path or profiles_path()
        self.document = self._load()

    def _load(self) -> ProfileDocument:
        if not self.path.exists():
            return ProfileDocument()
        try:
            return ProfileDocument.model_validate_json(self.path.read_text(encoding="utf-8"))
        except ValidationError as exc:
            raise ParseError(f"{self.path.name} is malformed: {exc}") from exc

    def save(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = self.document.model_dump(mode="json")
        self.path.write_text(json.dumps(payload, indent=2), encoding="utf-8")

    @property
    def active_name(self) -> str | None:
        return self.document.active

    def active(self) -> Profile | None:
        if self.document.active is None:
            return None
        return self.document.profiles.get(self.document.active)

    def list_profiles(self) -> list[Profile]:
        return list(self.document.profiles.values())

    def get(self, name: str) -> Profile:
        try:
            return self.document.profiles[name]
        except KeyError:
            raise NotFoundError("profile", name) from None

    def create(self, name: str, description: str | None = None, parent: str | None = None) -> Profile:
        if name in self.document.profiles:
            raise AlreadyExistsError("profile", name)
        if parent is not None:
            self.get(parent)
        profile = Profile(name=name, description=description, parent=parent)
        self.document.profiles[name] = profile
        self.save()
        logger.info("created profile %s", name)
        return profile

    def delete(self, name: str) -> None:
        self.get(name)
        del self.document.profiles[name]
        if self.document.active == name:
            self.document.active = None
        self.save()

    def switch(self, name: str) -> Profile:
        profile = self.get(name)
        self.document.active = name
        self.save()
        return profile

    def add_var(self, profile: str, name: str, value: str, override_system: bool = False) -> None:
        self.get(profile).add_var(name, value, override_system)
        self.save()

    def remove_var(self, profile: str, name: str) -> None:
        if not self.get(profile).remove_var(name):
            raise NotFoundError("variable", name)
        self.save()

    def set_enabled(self, profile: str, name: str, enabled: bool) -> None:
        target = self.get(profile)
        if name not in target.variables:
            raise NotFoundError("variable", name)
        target.variables[name].enabled = enabled
        target.updated_at = utcnow()
        self.save()

    def set_parent(self, profile: str, parent: str | None) -> None:
        """Point a profile at a new parent; refuses links that would form a cycle."""
        target = self.get(profile)
        if parent is not None:
            chain = [profile]
            cursor: str | None = parent
            while cursor is not None:
                chain.append(cursor)
                if cursor == profile:
                    raise CyclicProfileError(chain)
                cursor = self.get(cursor).parent
        target.parent = parent
        target.updated_at = utcnow()
        self.save()

    def export(self, name: str) -> str:
        """Pretty JSON of a single profile."""
        return json.dumps(self.get(name).model_dump(mode="json"), indent=2)

    def import_profile(self, text: str, name: str, overwrite: bool = False) -> Profile:
        """Add a profile from exported JSON under ``name``, replacing its own name field."""
        if name in self.document.profiles and not overwrite:
            raise AlreadyExistsError("profile", name)
        try:
            profile = Profile.model_validate_json(text)
        except ValidationError as exc:
            raise ParseError(f"invalid profile document: {exc}") from exc
        profile.name = name
        self.document.profiles[name] = profile
        self.save()
        return profile

    def resolve_chain(self, name: str) -> list[Profile]:
        """Return the profile and its ancestors, root first.

        Raises CyclicProfileError if a parent repeats along the way.
        """
        chain: list[Profile] = []
        visited: list[str] = []
        cursor: str | None = name
        while cursor is not None:
            if cursor in visited:
                raise CyclicProfileError([*visited, cursor])
            visited.append(cursor)
            profile = self.get(cursor)
            chain.append(profile)
            cursor = profile.parent
        chain.reverse()
        return chain

    def apply(self, name: str, store: EnvStore) -> int:
        """Set every enabled variable of the profile and its ancestors persistently.

        Ancestors are applied first so the profile's own values win on
        collisions. Returns the number of set calls made.
        """
        count = 0
        for profile in self.resolve_chain(name):
            for var_name, value in profile.active_vars().items():
                store.set(var_name, value, persistent=True)
                count += 1
        logger.info("applied profile %s (%d variables)", name, count)
        return count
