"""Read variables from files into a staging area, transform them, commit them.

    importer = Importer()
    importer.import_file(Path(".env"))
    importer.filter_by_patterns(["API_*"])
    importer.add_prefix("APP_")
    importer.commit(store)
"""

import json
import logging
from pathlib import Path

import yaml

from envx.domain.dotenv import parse_dotenv
from envx.domain.patterns import matches_pattern
from envx.errors import EnvxError, NotFoundError, ParseError
from envx.formats import Format, detect_format
from envx.store import EnvStore

logger = logging.getLogger(__name__)


def parse_json(text: str) -> dict[str, str]:
    """Accept ``{name: value}`` or ``{"variables": [{"name", "value"}, ...]}``.

    Non-string values are ignored.
    """
    try:
        raw: object = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ParseError(f"invalid JSON: {exc}") from exc
    if not isinstance(raw, dict):
        raise ParseError("JSON document must be an object")

    result: dict[str, str] = {}
    records = raw.get("variables")
    if isinstance(records, list):
        for record in records:
            if not isinstance(record, dict):
                continue
            name, value = record.get("name"), record.get("value")
            if isinstance(name, str) and name and isinstance(value, str):
                result[name] = value
        return result

    for name, value in raw.items():
        if isinstance(value, str):
            result[name] = value
        else:
            logger.debug("ignoring non-string JSON value for %s", name)
    return result


def parse_yaml(text: str) -> dict[str, str]:
    """Read the first YAML document as a flat mapping of strings.

    Scalars are read verbatim (``PORT: 8080`` gives ``"8080"``); nested
    mappings and lists are ignored. Anything after a ``---`` that starts a
    second document is not read.
    """
    try:
        for document in yaml.load_all(text, Loader=yaml.BaseLoader):
            if document is None:
                continue
            if not isinstance(document, dict):
                raise ParseError("YAML document must be a mapping")
            result: dict[str, str] = {}
            for name, value in document.items():
                if isinstance(value, str):
                    result[str(name)] = value
                else:
                    logger.debug("ignoring non-scalar YAML value for %s", name)
            return result
    except yaml.YAMLError as exc:
        raise ParseError(f"invalid YAML: {exc}") from exc
    return {}


def parse_text(text: str) -> dict[str, str]:
    """``NAME=VALUE`` per line, values taken verbatim; ``#`` lines are comments."""
    result: dict[str, str] = {}
    for line in text.splitlines():
        if not line.strip() or line.lstrip().startswith("#") or "=" not in line:
            continue
        name, _, value = line.partition("=")
        name = name.strip()
        if name:
            result[name] = value
    return result


def parse(text: str, fmt: Format) -> dict[str, str]:
    if fmt is Format.DOTENV:
        return parse_dotenv(text)
    if fmt is Format.JSON:
        return parse_json(text)
    if fmt is Format.YAML:
        return parse_yaml(text)
    if fmt is Format.TEXT:
        return parse_text(text)
    raise ParseError(f"{fmt.value} files can be exported but not imported")


class Importer:
    def __init__(self) -> None:
        self.variables: dict[str, str] = {}

    def count(self) -> int:
        return len(self.variables)

    def import_text(self, text: str, fmt: Format) -> int:
        """Stage the variables of a document; returns how many it held."""
        parsed = parse(text, fmt)
        self.variables.update(parsed)
        return len(parsed)

    def import_file(self, path: Path, fmt: Format | None = None) -> int:
        if not path.is_file():
            raise NotFoundError("file", str(path))
        fmt = fmt or detect_format(path)
        count = self.import_text(path.read_text(encoding="utf-8"), fmt)
        logger.info("staged %d variables from %s (%s)", count, path, fmt.value)
        return count

    def import_files(self, paths: list[Path], fmt: Format | None = None) -> list[tuple[Path, str]]:
        """Stage several files, continuing past any that fail.

        Returns (path, reason) for each file that could not be read.
        """
        failures = []
        for path in paths:
            try:
                self.import_file(path, fmt)
            except (EnvxError, OSError, UnicodeDecodeError) as exc:
                logger.warning("skipping %s: %s", path, exc)
                failures.append((path, str(exc)))
        return failures

    def filter_by_patterns(self, patterns: list[str]) -> None:
        """Keep only names matching at least one wildcard or exact pattern."""
        self.variables = {
            name: value
            for name, value in self.variables.items()
            if any(matches_pattern(name, p) for p in patterns)
        }

    def add_prefix(self, prefix: str) -> None:
        self.variables = {prefix + name: value for name, value in self.variables.items()}

    def commit(self, store: EnvStore, persistent: bool = True) -> int:
        """Write every staged variable to the store; returns how many were written."""
        for name, value in self.variables.items():
            store.set(name, value, persistent=persistent)
        return len(self.variables)
