from __future__ import annotations

"""Centralised error code taxonomy for harvester failures.

These codes travel on ``ScraperError`` instances and in structured logs so
that a failed lookup or skipped page can be explained after the fact.
"""


class ErrorCode:
    INVALID_INPUT = "invalid_input"
    NOT_FOUND = "http_404_not_found"
    ACCESS_BLOCKED = "access_blocked"
    SUSPICIOUS_REDIRECT = "suspicious_redirect"
    MISSING_PRECONDITION = "missing_precondition"
    PARSE_FAILURE = "parse_failure"
    NAVIGATION = "navigation_error"


__all__ = ["ErrorCode"]
