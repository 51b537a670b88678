"""Pure helpers for the three pattern syntaxes accepted by envx.

- ``/regex/`` is a regular expression (the slashes are stripped).
- anything containing ``*`` or ``?`` is a wildcard: ``*`` matches any run
  of characters, ``?`` exactly one, everything else is literal.
- anything else is an exact name.
"""

import re

from envx.errors import InvalidPatternError


def is_regex(pattern: str) -> bool:
    return len(pattern) > 2 and pattern.startswith("/") and pattern.endswith("/")


def is_wildcard(pattern: str) -> bool:
    return "*" in pattern or "?" in pattern


def wildcard_to_regex(pattern: str) -> str:
    """Translate a wildcard into an anchored regular expression source."""
    parts = ["^"]
    for ch in pattern:
        if ch == "*":
            parts.append(".*")
        elif ch == "?":
            parts.append(".")
        else:
            parts.append(re.escape(ch))
    parts.append("$")
    return "".join(parts)


def compile_regex(source: str, flags: int = 0) -> re.Pattern[str]:
    """Compile a regex, turning syntax errors into InvalidPatternError."""
    try:
        return re.compile(source, flags)
    except re.error as exc:
        raise InvalidPatternError(f"invalid regular expression '{source}': {exc}") from exc


def compile_wildcard(pattern: str, ignore_case: bool = False) -> re.Pattern[str]:
    return compile_regex(wildcard_to_regex(pattern), re.IGNORECASE if ignore_case else 0)


def matches_pattern(name: str, pattern: str) -> bool:
    """Return True if name matches a wildcard pattern, or equals it exactly."""
    if is_wildcard(pattern):
        return compile_wildcard(pattern).match(name) is not None
    return name == pattern


def split_wildcard(pattern: str) -> tuple[str, str]:
    """Split a rename pattern at its single ``*`` into (prefix, suffix).

    Raises InvalidPatternError when the pattern holds more than one ``*``.
    A pattern without ``*`` is returned whole as the prefix.
    """
    count = pattern.count("*")
    if count > 1:
        raise InvalidPatternError(f"pattern '{pattern}' may contain at most one '*'")
    if count == 0:
        return pattern, ""
    prefix, _, suffix = pattern.partition("*")
    return prefix, suffix
