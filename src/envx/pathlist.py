"""Ordered, platform-aware editing of PATH-like values.

Entries keep the exact text they were given; comparisons go through
``normalize`` so ``C:\\Tools\\`` and ``c:/tools`` are the same entry on
Windows, and ``/usr/bin/`` equals ``/usr/bin`` everywhere.
"""

import sys
from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path

from envx.errors import OutOfBoundsError


@dataclass
class PathIssue:
    index: int
    entry: str
    problem: str
    severity: str = "error"


class PathList:
    """A PATH value split on the platform separator.

    ``windows`` selects the separator and comparison rules; it defaults to the
    running platform. Empty segments are dropped on construction.
    """

    def __init__(self, value: str = "", windows: bool | None = None) -> None:
        self.windows = sys.platform == "win32" if windows is None else windows
        self.entries: list[str] = [part for part in value.split(self.separator) if part]

    @property
    def separator(self) -> str:
        return ";" if self.windows else ":"

    def __str__(self) -> str:
        return self.to_string()

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self) -> Iterator[str]:
        return iter(self.entries)

    def __getitem__(self, index: int) -> str:
        return self.entries[index]

    def to_string(self) -> str:
        return self.separator.join(self.entries)

    def normalize(self, entry: str) -> str:
        """Comparison form: no trailing slashes, native separators, folded case on Windows."""
        norm = entry.rstrip("/\\")
        if self.windows:
            return norm.lower().replace("/", "\\")
        return norm.replace("\\", "/")

    def find_index(self, path: str) -> int | None:
        target = self.normalize(path)
        for index, entry in enumerate(self.entries):
            if self.normalize(entry) == target:
                return index
        return None

    def contains(self, path: str) -> bool:
        return self.find_index(path) is not None

    def add_first(self, path: str) -> None:
        self.entries.insert(0, path)

    def add_last(self, path: str) -> None:
        self.entries.append(path)

    def remove_first(self, path: str) -> int:
        """Remove the first entry equal to path; returns 1 if one was removed, else 0."""
        index = self.find_index(path)
        if index is None:
            return 0
        del self.entries[index]
        return 1

    def remove_all(self, path: str) -> int:
        """Remove every entry equal to path; returns how many were removed."""
        target = self.normalize(path)
        before = len(self.entries)
        self.entries = [e for e in self.entries if self.normalize(e) != target]
        return before - len(self.entries)

    def dedupe(self, keep_first: bool = True) -> int:
        """Drop repeated entries, keeping the first (or last) of each.

        Returns the number of entries removed.
        """
        seen: set[str] = set()
        ordered = self.entries if keep_first else list(reversed(self.entries))
        kept = []
        for entry in ordered:
            norm = self.normalize(entry)
            if norm in seen:
                continue
            seen.add(norm)
            kept.append(entry)
        if not keep_first:
            kept.reverse()
        removed = len(self.entries) - len(kept)
        self.entries = kept
        return removed

    def duplicates(self) -> list[str]:
        """Entries that repeat an earlier entry, in list order."""
        seen: set[str] = set()
        dupes = []
        for entry in self.entries:
            norm = self.normalize(entry)
            if norm in seen:
                dupes.append(entry)
            seen.add(norm)
        return dupes

    def move(self, src: int, dst: int) -> None:
        """Remove the entry at src and insert it at dst."""
        size = len(self.entries)
        if not 0 <= src < size:
            raise OutOfBoundsError(f"index {src} is out of range (0..{size - 1})")
        if not 0 <= dst < size:
            raise OutOfBoundsError(f"index {dst} is out of range (0..{size - 1})")
        if src == dst:
            return
        entry = self.entries.pop(src)
        self.entries.insert(dst, entry)

    def invalid(self) -> list[str]:
        """Entries that do not exist on disk."""
        return [entry for entry in self.entries if not Path(entry).expanduser().exists()]

    def remove_invalid(self) -> int:
        missing = set(self.invalid())
        before = len(self.entries)
        self.entries = [entry for entry in self.entries if entry not in missing]
        return before - len(self.entries)

    def check(self, strict: bool = False) -> list[PathIssue]:
        """Report problems per entry.

        Missing paths and files masquerading as directories are errors. With
        ``strict``, ``..`` segments and foreign separators are flagged as
        warnings.
        """
        foreign = "/" if self.windows else "\\"
        issues = []
        for index, entry in enumerate(self.entries):
            path = Path(entry).expanduser()
            if not path.exists():
                issues.append(PathIssue(index, entry, "missing"))
            elif not path.is_dir():
                issues.append(PathIssue(index, entry, "not_a_directory"))
            if not strict:
                continue
            if ".." in entry.replace("\\", "/").split("/"):
                issues.append(PathIssue(index, entry, "parent_reference", "warning"))
            if foreign in entry:
                issues.append(PathIssue(index, entry, "foreign_separator", "warning"))
        return issues
