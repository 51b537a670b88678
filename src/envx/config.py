"""Application home directory and settings file handling.

Layout on disk (``~/.config/envx`` on POSIX, ``%APPDATA%\\envx`` on Windows,
or ``$ENVX_HOME`` when set):

    profiles.json       profile document
    snapshots/<id>.json one file per snapshot
    settings.json       optional user settings

Schema of settings.json:

    {
        "log_level": "INFO",
        "debounce_ms": 300,
        "watch_patterns": ["*.env", ".env.*"],
        "scan_ignore": ["fixtures"],
        "history_limit": 1000
    }

Keys prefixed with "_" are reserved (e.g. "_comment") and are stripped on load.
"""

import json
import os
import sys
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError

from envx.constants import (
    APP_NAME,
    DEBOUNCE_MS,
    HISTORY_LIMIT,
    HOME_ENV_VAR,
    PROFILES_FILE,
    SETTINGS_FILE,
    SNAPSHOTS_DIR,
    WATCH_PATTERNS,
)


class Settings(BaseModel):
    """User-tunable defaults."""

    log_level: str = "WARNING"
    debounce_ms: int = Field(default=DEBOUNCE_MS, ge=0)
    watch_patterns: list[str] = Field(default_factory=lambda: list(WATCH_PATTERNS))
    scan_ignore: list[str] = Field(default_factory=list)
    history_limit: int = Field(default=HISTORY_LIMIT, ge=1)


class ConfigError(Exception):
    """Raised when settings.json exists but cannot be parsed or validated."""


def app_dir() -> Path:
    """Return the application home directory (not created)."""
    override = os.environ.get(HOME_ENV_VAR)
    if override:
        return Path(override).expanduser()
    if sys.platform == "win32":
        base = os.environ.get("APPDATA")
        if base:
            return Path(base) / APP_NAME
    return Path(f"~/.config/{APP_NAME}").expanduser()


def profiles_path() -> Path:
    return app_dir() / PROFILES_FILE


def snapshots_dir() -> Path:
    return app_dir() / SNAPSHOTS_DIR


def settings_path() -> Path:
    return app_dir() / SETTINGS_FILE


def load_settings(path: Path | None = None) -> Settings:
    """Load and validate the settings file.

    Returns defaults if the file does not exist or is empty. Raises
    ConfigError if the file exists but is malformed.
    """
    path = path or settings_path()
    if not path.exists():
        return Settings()

    text = path.read_text(encoding="utf-8")
    if not text.strip():
        return Settings()

    try:
        raw: object = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ConfigError(f"{path.name} is not valid JSON: {exc}") from exc

    if not isinstance(raw, dict):
        raise ConfigError(f"{path.name} must be a JSON object at the top level")

    # Strip reserved/comment keys.
    data = {k: v for k, v in raw.items() if not k.startswith("_")}
    try:
        return Settings.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(f"Invalid settings in {path.name}: {exc}") from exc


def save_settings(settings: Settings, path: Path | None = None) -> None:
    """Persist settings to disk, creating directories as needed."""
    path = path or settings_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(settings.model_dump(), indent=2), encoding="utf-8")
