"""Exception hierarchy shared by every envx component.

Storage failures are not wrapped: ``OSError`` and its subclasses reach the
caller unchanged.
"""

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from envx.project import ValidationReport


class EnvxError(Exception):
    """Base class for all envx failures."""


class NotFoundError(EnvxError):
    """Raised when a variable, profile, snapshot, file, or script is absent."""

    def __init__(self, kind: str, name: str) -> None:
        super().__init__(f"{kind} '{name}' not found")
        self.kind = kind
        self.name = name


class AlreadyExistsError(EnvxError):
    """Raised when creating something whose name is already taken."""

    def __init__(self, kind: str, name: str) -> None:
        super().__init__(f"{kind} '{name}' already exists")
        self.kind = kind
        self.name = name


class InvalidPatternError(EnvxError):
    """Raised for malformed globs, bad regexes, or mismatched rename wildcards."""


class InvalidNameError(EnvxError):
    """Raised when a variable name cannot be stored at all."""


class ParseError(EnvxError):
    """Raised when a JSON, YAML, or dotenv document cannot be read."""


class PersistenceError(EnvxError):
    """Raised when the platform write failed after the in-memory change was applied."""


class CyclicProfileError(EnvxError):
    """Raised when a profile's parent chain loops back on itself."""

    def __init__(self, chain: list[str]) -> None:
        super().__init__("profile inheritance cycle: " + " -> ".join(chain))
        self.chain = chain


class OutOfBoundsError(EnvxError):
    """Raised when a PATH index is outside the list."""


class ValidationFailedError(EnvxError):
    """Raised by a strict project check when required variables are missing or malformed.

    ``report`` is the full validation report, warnings included.
    """

    def __init__(self, report: "ValidationReport") -> None:
        super().__init__(
            f"project validation failed: {len(report.missing)} missing, {len(report.errors)} invalid"
        )
        self.report = report
