from __future__ import annotations

from .error_codes import ErrorCode


class ScraperError(Exception):
    def __init__(self, error_code: str, message: str, *, http_status: int | None = None) -> None:
        super().__init__(message)
        self.error_code = error_code
        self.http_status = http_status

    def __str__(self) -> str:  # pragma: no cover - inherited behaviour
        return str(self.args[0]) if self.args else ""


class InvalidInput(ScraperError):
    """Malformed id, URL or filter value. Raised before any navigation."""

    def __init__(self, message: str) -> None:
        super().__init__(ErrorCode.INVALID_INPUT, message)


class InvalidFilter(InvalidInput):
    def __init__(self, field: str, value: str, allowed: list[str]) -> None:
        preview = ", ".join(allowed[:10])
        super().__init__(f"Invalid {field} filter {value!r}; expected one of: {preview}")
        self.field = field
        self.value = value
        self.allowed = allowed


class AccessBlocked(ScraperError):
    """The session was rate limited, forbidden or bounced to a challenge.

    Fatal for the current run: callers must let it propagate.
    """


class MissingPrecondition(ScraperError):
    def __init__(self, message: str) -> None:
        super().__init__(ErrorCode.MISSING_PRECONDITION, message)


class ParseFailure(ScraperError):
    def __init__(self, message: str) -> None:
        super().__init__(ErrorCode.PARSE_FAILURE, message)


class NavigationError(ScraperError):
    def __init__(self, message: str, *, http_status: int | None = None) -> None:
        super().__init__(ErrorCode.NAVIGATION, message, http_status=http_status)


__all__ = [
    "ScraperError",
    "InvalidInput",
    "InvalidFilter",
    "AccessBlocked",
    "MissingPrecondition",
    "ParseFailure",
    "NavigationError",
]
