"""Read-only reports over the variable store."""

import re
from dataclasses import dataclass, field

from envx.models import EnvVar
from envx.pathlist import PathList
from envx.store import EnvStore

_REFERENCE_PATTERNS = (
    re.compile(r"%(\w+)%"),
    re.compile(r"\$\{(\w+)\}"),
    re.compile(r"\$(\w+)"),
)
_STALE_PREFIXES = ("OLD_", "BACKUP_")
_STALE_SUFFIXES = ("_OLD", "_BACKUP")


@dataclass
class ValidationResult:
    valid: bool = True
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


def validate_name(name: str) -> list[str]:
    """Return the problems with a variable name; empty when it is usable."""
    if not name:
        return ["name is empty"]
    problems = []
    if any(ch.isspace() for ch in name):
        problems.append("name contains whitespace")
    if name[0].isdigit():
        problems.append("name starts with a digit")
    return problems


def references(value: str) -> list[str]:
    """Names referenced by a value as ``$NAME``, ``${NAME}`` or ``%NAME%``, in order."""
    found: list[str] = []
    for regex in _REFERENCE_PATTERNS:
        for match in regex.finditer(value):
            if match.group(1) not in found:
                found.append(match.group(1))
    return found


class Analyzer:
    def __init__(self, store: EnvStore, windows: bool | None = None) -> None:
        self.store = store
        self.windows = windows

    def find_duplicates(self) -> dict[str, list[str]]:
        """Group names that differ only by case, keyed by the upper-cased name."""
        groups: dict[str, list[str]] = {}
        for var in self.store.list_vars():
            groups.setdefault(var.name.upper(), []).append(var.name)
        return {key: names for key, names in groups.items() if len(names) > 1}

    def validate(self, var: EnvVar) -> ValidationResult:
        result = ValidationResult(errors=validate_name(var.name))
        if var.name.upper().endswith("PATH"):
            errors, warnings = self.analyze_path(var.value)
            result.errors.extend(errors)
            result.warnings.extend(warnings)
        result.valid = not result.errors
        return result

    def validate_all(self) -> dict[str, ValidationResult]:
        return {var.name: self.validate(var) for var in self.store.list_vars()}

    def analyze_path(self, value: str) -> tuple[list[str], list[str]]:
        """Check a PATH-like value; returns (errors, warnings)."""
        paths = PathList(value, windows=self.windows)
        errors: list[str] = []
        warnings: list[str] = []
        if any(not part for part in value.split(paths.separator)) and value:
            warnings.append("contains empty entries")
        for dupe in paths.duplicates():
            warnings.append(f"duplicate entry: {dupe}")
        for issue in paths.check(strict=True):
            if issue.problem == "missing":
                errors.append(f"path does not exist: {issue.entry}")
            elif issue.problem == "not_a_directory":
                errors.append(f"path is not a directory: {issue.entry}")
            elif issue.problem == "parent_reference":
                warnings.append(f"path contains '..': {issue.entry}")
            else:
                warnings.append(f"path uses the wrong separator: {issue.entry}")
        return errors, warnings

    def find_stale(self) -> list[EnvVar]:
        """Variables whose names mark them as leftovers (OLD_*, *_BACKUP, ...)."""
        return [
            var
            for var in self.store.list_vars()
            if var.name.upper().startswith(_STALE_PREFIXES)
            or var.name.upper().endswith(_STALE_SUFFIXES)
        ]

    def dependencies(self) -> dict[str, list[str]]:
        """Map each variable to the known variables its value references."""
        known = set(self.store.names())
        graph: dict[str, list[str]] = {}
        for var in self.store.list_vars():
            refs = [name for name in references(var.value) if name in known]
            if refs:
                graph[var.name] = refs
        return graph

    def dependents(self) -> dict[str, list[str]]:
        """Inverse of ``dependencies``: who references each variable."""
        inverse: dict[str, list[str]] = {}
        for name, refs in self.dependencies().items():
            for ref in refs:
                inverse.setdefault(ref, []).append(name)
        return inverse
