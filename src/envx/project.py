"""Per-project configuration in ``.envx/config.yaml``.

Example:

    name: web
    required:
      - name: DATABASE_URL
        description: Primary database
        pattern: "^(postgresql|mysql)://.*"
        example: postgresql://localhost/app
    defaults:
      PORT: 8080
    auto_load: [.env, .env.local]
    profile: dev
    scripts:
      serve:
        description: Run the dev server
        run: python -m http.server $PORT
        env: {DEBUG: "1"}
    validation:
      warn_unused: false
      strict_names: true
      patterns:
        "*_URL": "^https?://"
    inherit: true
"""

import logging
import re
import subprocess
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from envx.constants import PROJECT_CONFIG_FILE, PROJECT_DIR, PROJECT_GITIGNORE, STRICT_NAME_PATTERN
from envx.domain.dotenv import parse_dotenv
from envx.domain.patterns import compile_regex, compile_wildcard
from envx.errors import (
    AlreadyExistsError,
    InvalidPatternError,
    NotFoundError,
    ParseError,
    ValidationFailedError,
)
from envx.profiles import ProfileStore
from envx.scanner import DependencyScanner
from envx.store import EnvStore

logger = logging.getLogger(__name__)


def _stringify(value: Any) -> Any:
    """YAML scalars such as ``8080`` or ``true`` become the strings a user typed."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return ""
    if isinstance(value, (int, float)):
        return str(value)
    return value


class RequiredVar(BaseModel):
    name: str
    description: str | None = None
    pattern: str | None = None
    example: str | None = None


class Script(BaseModel):
    description: str | None = None
    run: str
    env: dict[str, str] = Field(default_factory=dict)

    @field_validator("env", mode="before")
    @classmethod
    def _stringify_env(cls, value: Any) -> Any:
        if isinstance(value, dict):
            return {k: _stringify(v) for k, v in value.items()}
        return value


class ValidationRules(BaseModel):
    warn_unused: bool = False
    strict_names: bool = False
    patterns: dict[str, str] = Field(default_factory=dict)


class ProjectConfig(BaseModel):
    name: str | None = None
    description: str | None = None
    required: list[RequiredVar] = Field(default_factory=list)
    defaults: dict[str, str] = Field(default_factory=dict)
    auto_load: list[str] = Field(default_factory=lambda: [".env"])
    profile: str | None = None
    scripts: dict[str, Script] = Field(default_factory=dict)
    validation: ValidationRules = Field(default_factory=ValidationRules)
    inherit: bool = True

    @field_validator("defaults", mode="before")
    @classmethod
    def _stringify_defaults(cls, value: Any) -> Any:
        if isinstance(value, dict):
            return {k: _stringify(v) for k, v in value.items()}
        return value


@dataclass
class ValidationReport:
    success: bool = True
    missing: list[RequiredVar] = field(default_factory=list)
    found: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


def find_config(start: Path) -> Path | None:
    """Walk upward from ``start`` to the nearest ``.envx/config.yaml``."""
    current = start.resolve()
    for directory in (current, *current.parents):
        candidate = directory / PROJECT_DIR / PROJECT_CONFIG_FILE
        if candidate.is_file():
            return candidate
    return None


def read_config(path: Path) -> ProjectConfig:
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise ParseError(f"{path} is not valid YAML: {exc}") from exc
    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ParseError(f"{path} must contain a mapping at the top level")
    try:
        return ProjectConfig.model_validate(raw)
    except ValidationError as exc:
        raise ParseError(f"invalid project config {path}: {exc}") from exc


def write_config(config: ProjectConfig, path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    payload = config.model_dump(exclude_none=True)
    path.write_text(yaml.safe_dump(payload, sort_keys=False, allow_unicode=True), encoding="utf-8")


class ProjectManager:
    """Discover, validate and apply a project's configuration against a store."""

    def __init__(self, store: EnvStore, profiles: ProfileStore | None = None) -> None:
        self.store = store
        self._profiles = profiles
        self.root: Path | None = None
        self.config: ProjectConfig | None = None

    @property
    def profiles(self) -> ProfileStore:
        if self._profiles is None:
            self._profiles = ProfileStore()
        return self._profiles

    @property
    def config_path(self) -> Path:
        if self.root is None:
            raise NotFoundError("file", f"{PROJECT_DIR}/{PROJECT_CONFIG_FILE}")
        return self.root / PROJECT_DIR / PROJECT_CONFIG_FILE

    def _loaded(self) -> ProjectConfig:
        if self.config is None:
            raise NotFoundError("file", f"{PROJECT_DIR}/{PROJECT_CONFIG_FILE}")
        return self.config

    def init(self, directory: Path, name: str | None = None) -> Path:
        """Create ``.envx/config.yaml`` and ``.envx/.gitignore`` in directory."""
        path = directory / PROJECT_DIR / PROJECT_CONFIG_FILE
        if path.exists():
            raise AlreadyExistsError("file", str(path))
        self.root = directory
        self.config = ProjectConfig(name=name or directory.resolve().name)
        write_config(self.config, path)
        (path.parent / ".gitignore").write_text(PROJECT_GITIGNORE, encoding="utf-8")
        logger.info("initialised project config at %s", path)
        return path

    def load(self, start: Path | None = None) -> ProjectConfig:
        path = find_config(start or Path.cwd())
        if path is None:
            raise NotFoundError("file", f"{PROJECT_DIR}/{PROJECT_CONFIG_FILE}")
        self.root = path.parent.parent
        self.config = read_config(path)
        logger.debug("loaded project config %s", path)
        return self.config

    def save(self) -> None:
        write_config(self._loaded(), self.config_path)

    def add_required(
        self,
        name: str,
        description: str | None = None,
        pattern: str | None = None,
        example: str | None = None,
    ) -> None:
        config = self._loaded()
        if pattern is not None:
            compile_regex(pattern)
        config.required = [r for r in config.required if r.name != name]
        config.required.append(
            RequiredVar(name=name, description=description, pattern=pattern, example=example)
        )

    def apply(self) -> int:
        """Activate the profile, load auto_load files, then fill in defaults.

        Returns the number of variables written.
        """
        config = self._loaded()
        root = self.root or Path.cwd()
        written = 0
        if config.profile:
            self.profiles.switch(config.profile)
            written += self.profiles.apply(config.profile, self.store)

        for entry in config.auto_load:
            path = root / entry
            if not path.is_file():
                logger.debug("auto_load file %s does not exist", path)
                continue
            for name, value in parse_dotenv(path.read_text(encoding="utf-8")).items():
                self.store.set(name, value, persistent=True)
                written += 1

        for name, value in config.defaults.items():
            if name not in self.store:
                self.store.set(name, value, persistent=True)
                written += 1
        return written

    def validate(self, strict: bool = False) -> ValidationReport:
        """Check required variables, naming rules, and value patterns.

        ``success`` is False only when a required variable is missing or does
        not match its pattern; everything else is reported as a warning. With
        ``strict`` a failed report raises ValidationFailedError instead.
        """
        config = self._loaded()
        report = ValidationReport()

        for required in config.required:
            var = self.store.get(required.name)
            if var is None:
                report.missing.append(required)
                continue
            report.found.append(required.name)
            if required.pattern is None:
                continue
            try:
                regex = compile_regex(required.pattern)
            except InvalidPatternError as exc:
                report.errors.append(f"{required.name}: {exc}")
                continue
            if regex.match(var.value) is None:
                report.errors.append(
                    f"{required.name}: value does not match pattern '{required.pattern}'"
                )

        if config.validation.strict_names:
            name_rule = re.compile(STRICT_NAME_PATTERN)
            for name in self.store.names():
                if name_rule.match(name) is None:
                    report.warnings.append(f"{name}: name does not follow naming rules")

        for glob, source in config.validation.patterns.items():
            names = compile_wildcard(glob)
            try:
                values = compile_regex(source)
            except InvalidPatternError as exc:
                report.warnings.append(f"{glob}: {exc}")
                continue
            for var in self.store.list_vars():
                if names.match(var.name) and values.match(var.value) is None:
                    report.warnings.append(f"{var.name}: value does not match pattern '{source}'")

        if config.validation.warn_unused and self.root is not None:
            scanner = DependencyScanner(roots=[self.root])
            scanner.scan()
            for name in sorted(scanner.find_unused(r.name for r in config.required)):
                report.warnings.append(f"{name}: required but never referenced in code")

        report.success = not report.missing and not report.errors
        if strict and not report.success:
            raise ValidationFailedError(report)
        return report

    def run_script(self, name: str) -> int:
        """Run a configured script through the platform shell; returns its exit code."""
        config = self._loaded()
        script = config.scripts.get(name)
        if script is None:
            raise NotFoundError("script", name)
        for var_name, value in script.env.items():
            self.store.set(var_name, value, persistent=False)
        if sys.platform == "win32":
            command = ["cmd", "/C", script.run]
        else:
            command = ["/bin/sh", "-c", script.run]
        logger.info("running script %s: %s", name, script.run)
        result = subprocess.run(command, cwd=self.root, env=dict(self.store.environ), check=False)
        return result.returncode
