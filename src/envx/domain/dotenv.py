"""Pure functions for reading and writing dotenv documents.

Parsing rules:
- Blank lines and lines whose first non-blank character is ``#`` are skipped.
- Each remaining line is split on the first ``=`` only, so values may
  themselves contain ``=`` (e.g. base64 tokens).
- Keys that are empty or contain whitespace are rejected (the line is
  skipped).
- A value wrapped in a matching pair of ``"`` or ``'`` loses the quotes.
  Inside double quotes ``\\n \\r \\t \\" \\'`` and ``\\\\`` are unescaped;
  any other backslash is kept so Windows paths survive.
- An unquoted value is cut at the first `` #`` (space then hash) and
  trimmed, so ``#`` without a leading space stays part of the value.
"""

import logging

logger = logging.getLogger(__name__)

_ESCAPES = {"n": "\n", "r": "\r", "t": "\t", '"': '"', "'": "'", "\\": "\\"}
_QUOTE_TRIGGERS = frozenset("=#\"'")


def unescape(value: str) -> str:
    """Resolve the dotenv escape sequences, keeping unknown ones verbatim."""
    out: list[str] = []
    i = 0
    while i < len(value):
        ch = value[i]
        if ch == "\\" and i + 1 < len(value) and value[i + 1] in _ESCAPES:
            out.append(_ESCAPES[value[i + 1]])
            i += 2
            continue
        out.append(ch)
        i += 1
    return "".join(out)


def parse_value(raw: str) -> str:
    value = raw.strip()
    if len(value) >= 2 and value[0] == value[-1] and value[0] in "\"'":
        inner = value[1:-1]
        return unescape(inner) if value[0] == '"' else inner
    comment = value.find(" #")
    if comment != -1:
        value = value[:comment]
    return value.strip()


def parse_line(line: str) -> tuple[str, str] | None:
    """Parse one dotenv line into (key, value), or None if it holds no entry."""
    stripped = line.strip()
    if not stripped or stripped.startswith("#"):
        return None
    if "=" not in stripped:
        return None
    key, _, raw = stripped.partition("=")
    key = key.strip()
    if not key or any(ch.isspace() for ch in key):
        logger.debug("skipping dotenv line with invalid key %r", key)
        return None
    return key, parse_value(raw)


def parse_dotenv(text: str) -> dict[str, str]:
    """Parse a dotenv document into an ordered name -> value mapping.

    Later assignments to the same key win.
    """
    result: dict[str, str] = {}
    for line in text.splitlines():
        entry = parse_line(line)
        if entry is not None:
            result[entry[0]] = entry[1]
    return result


def needs_quotes(value: str) -> bool:
    return any(ch.isspace() or ch in _QUOTE_TRIGGERS or ord(ch) < 0x20 for ch in value)


def quote_value(value: str) -> str:
    """Quote a value for a dotenv line when it would not survive bare.

    Only ``"``, newline, carriage return and tab are escaped; backslashes are
    written as-is.
    """
    if not needs_quotes(value):
        return value
    escaped = (
        value.replace('"', '\\"').replace("\n", "\\n").replace("\r", "\\r").replace("\t", "\\t")
    )
    return f'"{escaped}"'


def format_line(name: str, value: str) -> str:
    return f"{name}={quote_value(value)}"


def encode_dotenv(variables: dict[str, str]) -> str:
    """Encode a mapping as a dotenv document; an empty mapping yields ''."""
    return "".join(format_line(name, value) + "\n" for name, value in variables.items())
