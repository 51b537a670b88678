"""Find environment variable references in source trees.

Each file is matched to a language pack by extension, file name, or a
``#!`` first line. A pack is a list of regular expressions whose first
group captures the variable name, plus an optional rule for comment lines
to skip and a deny-list of names that are language builtins rather than
real environment variables. This is a heuristic, not a parser: references
inside string literals or dead code are reported too.
"""

import logging
import os
import re
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from pathlib import Path

from envx.constants import BATCH_DENY, MAKE_DENY, MAX_SCAN_FILE_SIZE, SCAN_IGNORE, SHELL_DENY

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VariableUsage:
    file: Path
    line: int
    context: str


@dataclass(frozen=True)
class LanguagePack:
    name: str
    patterns: tuple[re.Pattern[str], ...]
    skip_line: Callable[[str], bool] | None = None
    denied: Callable[[str], bool] | None = None

    def names_in(self, line: str) -> list[str]:
        stripped = line.strip()
        if self.skip_line is not None and self.skip_line(stripped):
            return []
        found = []
        for regex in self.patterns:
            for match in regex.finditer(line):
                name = match.group(1)
                if self.denied is not None and self.denied(name):
                    continue
                found.append(name)
        return found


def _compile(*sources: str, flags: int = 0) -> tuple[re.Pattern[str], ...]:
    return tuple(re.compile(source, flags) for source in sources)


def _c_comment(line: str) -> bool:
    return line.startswith("//") or (line.startswith("/*") and line.endswith("*/"))


def _hash_comment(line: str) -> bool:
    return line.startswith("#")


def _batch_comment(line: str) -> bool:
    upper = line.upper()
    return upper == "REM" or upper.startswith("REM ") or line.startswith("::")


def _shell_denied(name: str) -> bool:
    return name in SHELL_DENY or name.isdigit() or name.startswith("BASH")


def _batch_denied(name: str) -> bool:
    return name.upper() in BATCH_DENY


def _make_denied(name: str) -> bool:
    return name in MAKE_DENY or name.startswith(".")


_C_PATTERNS = (
    r'getenv\s*\(\s*"(\w+)"\s*\)',
    r'setenv\s*\(\s*"(\w+)"\s*,',
    r'GetEnvironmentVariable[AW]?\s*\(\s*"(\w+)"\s*,',
    r'SetEnvironmentVariable[AW]?\s*\(\s*"(\w+)"\s*,',
)

JAVASCRIPT = LanguagePack(
    "javascript",
    _compile(
        r"process\.env\.(\w+)",
        r"""process\.env\[["'](\w+)["']\]""",
        r"""Deno\.env\.get\(["'](\w+)["']\)""",
        r"import\.meta\.env\.(\w+)",
    ),
)
PYTHON = LanguagePack(
    "python",
    _compile(
        r"""os\.environ\[["'](\w+)["']\]""",
        r"""os\.environ\.get\(["'](\w+)["']""",
        r"""os\.getenv\(["'](\w+)["']""",
        r"""environ\[["'](\w+)["']\]""",
    ),
)
RUST = LanguagePack(
    "rust",
    _compile(
        r'env!\s*\(\s*"(\w+)"\s*\)',
        r'(?:std::)?env::var\s*\(\s*"(\w+)"\s*\)',
        r'(?:std::)?env::var_os\s*\(\s*"(\w+)"\s*\)',
    ),
)
GO = LanguagePack(
    "go",
    _compile(
        r'os\.Getenv\s*\(\s*"(\w+)"\s*\)',
        r'os\.LookupEnv\s*\(\s*"(\w+)"\s*\)',
        r'os\.Setenv\s*\(\s*"(\w+)"\s*,',
    ),
)
JVM = LanguagePack(
    "jvm",
    _compile(
        r'System\.getenv\s*\(\s*"(\w+)"\s*\)',
        r'getenv\s*\(\s*\)\.get\s*\(\s*"(\w+)"\s*\)',
    ),
)
DOTNET = LanguagePack(
    "dotnet",
    _compile(
        r'Environment\.GetEnvironmentVariable\s*\(\s*"(\w+)"\s*\)',
        r'Environment\.SetEnvironmentVariable\s*\(\s*"(\w+)"\s*,',
    ),
)
RUBY = LanguagePack(
    "ruby",
    _compile(r"""ENV\[["'](\w+)["']\]""", r"""ENV\.fetch\s*\(\s*["'](\w+)["']"""),
)
PHP = LanguagePack(
    "php",
    _compile(
        r"""\$_ENV\[["'](\w+)["']\]""",
        r"""getenv\s*\(\s*["'](\w+)["']""",
        r"""\$_SERVER\[["'](\w+)["']\]""",
    ),
)
C = LanguagePack("c", _compile(*_C_PATTERNS), skip_line=_c_comment)
CPP = LanguagePack(
    "cpp",
    _compile(
        *_C_PATTERNS,
        r'std::getenv\s*\(\s*"(\w+)"\s*\)',
        r'boost::this_process::environment\s*\[\s*"(\w+)"\s*\]',
    ),
    skip_line=_c_comment,
)
SHELL = LanguagePack(
    "shell",
    _compile(
        r"\$(\w+)",
        r"\$\{(\w+)\}",
        r"^\s*export\s+(\w+)",
        r"\$\{(\w+)[:?+=\-]",
    ),
    skip_line=_hash_comment,
    denied=_shell_denied,
)
POWERSHELL = LanguagePack(
    "powershell",
    _compile(
        r"\$env:(\w+)",
        r"""\[Environment\]::GetEnvironmentVariable\s*\(\s*["'](\w+)["']""",
        r"""\[Environment\]::SetEnvironmentVariable\s*\(\s*["'](\w+)["']""",
        flags=re.IGNORECASE,
    ),
    skip_line=_hash_comment,
)
BATCH = LanguagePack(
    "batch",
    _compile(r"%(\w+)%", r"^\s*set\s+(\w+)=", flags=re.IGNORECASE),
    skip_line=_batch_comment,
    denied=_batch_denied,
)
MAKE = LanguagePack(
    "make",
    _compile(r"\$\((\w+)\)", r"\$\{(\w+)\}", r"\$\$(\w+)", r"\$\$\{(\w+)\}"),
    skip_line=_hash_comment,
    denied=_make_denied,
)

PACKS_BY_SUFFIX: dict[str, LanguagePack] = {
    **dict.fromkeys(("js", "jsx", "ts", "tsx", "mjs", "cjs"), JAVASCRIPT),
    **dict.fromkeys(("py", "pyw"), PYTHON),
    "rs": RUST,
    "go": GO,
    **dict.fromkeys(("java", "kt", "kts", "scala", "groovy"), JVM),
    **dict.fromkeys(("cs", "fs", "vb"), DOTNET),
    "rb": RUBY,
    "php": PHP,
    **dict.fromkeys(("c", "h"), C),
    **dict.fromkeys(("cpp", "cc", "cxx", "hpp", "hxx", "h++"), CPP),
    **dict.fromkeys(("sh", "bash", "zsh", "fish", "ksh"), SHELL),
    **dict.fromkeys(("ps1", "psm1"), POWERSHELL),
    **dict.fromkeys(("bat", "cmd"), BATCH),
    "mk": MAKE,
}
_MAKEFILE_NAMES = {"makefile", "gnumakefile"}


def pack_for(path: Path, text: str | None = None) -> LanguagePack | None:
    """Choose the language pack for a file, or None to skip it."""
    suffix = path.suffix.lower().lstrip(".")
    if suffix in PACKS_BY_SUFFIX:
        return PACKS_BY_SUFFIX[suffix]
    name = path.name.lower()
    if name in _MAKEFILE_NAMES or name.startswith("makefile."):
        return MAKE
    if text is not None and text.startswith("#!"):
        return SHELL
    return None


@dataclass
class DependencyScanner:
    """Walk scan roots and record where each variable name is referenced.

    Directories named in the default ignore list are pruned by exact name;
    ``extra_ignore`` patterns prune any path component containing them.
    """

    roots: list[Path] = field(default_factory=list)
    extra_ignore: list[str] = field(default_factory=list)
    ignore: list[str] = field(default_factory=lambda: list(SCAN_IGNORE))
    _usages: dict[str, list[VariableUsage]] = field(default_factory=dict, init=False, repr=False)
    _seen: set[tuple[str, Path, int, str]] = field(default_factory=set, init=False, repr=False)

    def add_path(self, path: Path) -> None:
        self.roots.append(path)

    def add_ignore(self, pattern: str) -> None:
        self.extra_ignore.append(pattern)

    def is_ignored(self, component: str) -> bool:
        return component in self.ignore or any(p in component for p in self.extra_ignore)

    def record_usage(self, name: str, file: Path, line: int, context: str) -> bool:
        """Store one reference; returns False if the exact same one was already known."""
        key = (name, file, line, context)
        if key in self._seen:
            return False
        self._seen.add(key)
        self._usages.setdefault(name, []).append(VariableUsage(file, line, context))
        return True

    def scan_text(self, text: str, pack: LanguagePack, file: Path) -> int:
        found = 0
        for number, line in enumerate(text.splitlines(), start=1):
            for name in pack.names_in(line):
                if self.record_usage(name, file, number, line.strip()):
                    found += 1
        return found

    def scan_file(self, path: Path) -> int:
        """Scan one file; unreadable, oversized and binary files count as zero."""
        try:
            if path.stat().st_size > MAX_SCAN_FILE_SIZE:
                logger.debug("skipping %s: larger than %d bytes", path, MAX_SCAN_FILE_SIZE)
                return 0
            text = path.read_bytes().decode("utf-8")
        except UnicodeDecodeError:
            logger.debug("skipping %s: not UTF-8 text", path)
            return 0
        except OSError as exc:
            logger.debug("skipping %s: %s", path, exc)
            return 0
        pack = pack_for(path, text)
        if pack is None:
            return 0
        return self.scan_text(text, pack, path)

    def iter_files(self, root: Path) -> Iterable[Path]:
        if root.is_file():
            yield root
            return
        for dirpath, dirnames, filenames in os.walk(root, followlinks=False):
            dirnames[:] = sorted(d for d in dirnames if not self.is_ignored(d))
            for filename in sorted(filenames):
                if self.is_ignored(filename):
                    continue
                path = Path(dirpath) / filename
                if path.is_symlink():
                    continue
                yield path

    def scan(self) -> int:
        """Scan every root (``.`` when none were added); returns files scanned."""
        self._usages.clear()
        self._seen.clear()
        roots = self.roots or [Path(".")]
        scanned = 0
        for root in roots:
            for path in self.iter_files(root):
                self.scan_file(path)
                scanned += 1
        logger.info("scanned %d files, found %d variables", scanned, len(self._usages))
        return scanned

    def usages(self, name: str) -> list[VariableUsage]:
        return list(self._usages.get(name, []))

    def used_variables(self) -> set[str]:
        return set(self._usages)

    def usage_counts(self) -> dict[str, int]:
        return {name: len(usages) for name, usages in self._usages.items()}

    def find_unused(self, names: Iterable[str]) -> set[str]:
        return set(names) - self.used_variables()
