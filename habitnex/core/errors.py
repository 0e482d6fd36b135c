"""
Error taxonomy for orchestrated requests.

Every failure surfaced to a client carries an ErrorKind, which fixes its
HTTP status.
"""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorKind(Enum):
    """Failure categories and their HTTP statuses."""
    SERVICE_UNAVAILABLE = "service_unavailable"
    AUTHENTICATION_REQUIRED = "authentication_required"
    INVALID_INPUT = "invalid_input"
    RATE_LIMITED = "rate_limited"
    BUDGET_EXCEEDED = "budget_exceeded"
    NOT_FOUND = "not_found"
    UPSTREAM_PARSE_ERROR = "upstream_parse_error"
    INTERNAL_ERROR = "internal_error"

    @property
    def status_code(self) -> int:
        return _STATUS_CODES[self]


_STATUS_CODES = {
    ErrorKind.SERVICE_UNAVAILABLE: 503,
    ErrorKind.AUTHENTICATION_REQUIRED: 401,
    ErrorKind.INVALID_INPUT: 400,
    ErrorKind.RATE_LIMITED: 429,
    ErrorKind.BUDGET_EXCEEDED: 429,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.UPSTREAM_PARSE_ERROR: 500,
    ErrorKind.INTERNAL_ERROR: 500,
}


class HabitNexError(Exception):
    """Raised when a request must fail with a specific ErrorKind.

    Args:
        message: Client-facing error message
        kind: Failure category
        extra: Additional fields merged into the error body
    """
    def __init__(self, message: str, kind: ErrorKind, extra: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.kind = kind
        self.extra = extra or {}

    @property
    def status_code(self) -> int:
        return self.kind.status_code

    def to_body(self) -> Dict[str, Any]:
        body = {"success": False, "error": str(self)}
        body.update(self.extra)
        return body


class UpstreamParseError(HabitNexError):
    """The AI response did not contain a parseable JSON object."""
    def __init__(self, message: str = "Failed to parse AI response"):
        super().__init__(message, ErrorKind.UPSTREAM_PARSE_ERROR)


class NoMoodDataError(HabitNexError):
    def __init__(self, message: str = "No mood data found for the specified date range"):
        super().__init__(message, ErrorKind.NOT_FOUND)
