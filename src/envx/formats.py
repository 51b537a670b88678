"""File formats understood by the importer and exporter."""

from enum import Enum
from pathlib import Path

from envx.errors import ParseError


class Format(str, Enum):
    DOTENV = "dotenv"
    JSON = "json"
    YAML = "yaml"
    TEXT = "text"
    POWERSHELL = "powershell"
    SHELL = "shell"

    @property
    def importable(self) -> bool:
        return self not in (Format.POWERSHELL, Format.SHELL)


_BY_SUFFIX = {
    ".env": Format.DOTENV,
    ".json": Format.JSON,
    ".yaml": Format.YAML,
    ".yml": Format.YAML,
    ".txt": Format.TEXT,
    ".text": Format.TEXT,
    ".ps1": Format.POWERSHELL,
    ".sh": Format.SHELL,
    ".bash": Format.SHELL,
}

_ALIASES = {"env": Format.DOTENV, ".env": Format.DOTENV, "yml": Format.YAML, "txt": Format.TEXT,
            "ps1": Format.POWERSHELL, "pwsh": Format.POWERSHELL, "sh": Format.SHELL,
            "bash": Format.SHELL}  # fmt: skip


def detect_format(path: str | Path) -> Format:
    """Pick a format from the file name.

    Known suffixes win; otherwise dot-files with ``env`` in their name
    (``.env``, ``.env.local``, ``.envrc``) are dotenv, and anything else is
    plain text.
    """
    path = Path(path)
    fmt = _BY_SUFFIX.get(path.suffix.lower())
    if fmt is not None:
        return fmt
    if path.name.startswith(".") and "env" in path.name.lower():
        return Format.DOTENV
    return Format.TEXT


def parse_format(tag: str) -> Format:
    """Resolve an explicit format tag such as ``json`` or ``env``."""
    key = tag.strip().lower()
    if key in _ALIASES:
        return _ALIASES[key]
    try:
        return Format(key)
    except ValueError as exc:
        choices = ", ".join(f.value for f in Format)
        raise ParseError(f"unknown format '{tag}' (expected one of: {choices})") from exc
