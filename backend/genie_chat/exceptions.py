from __future__ import annotations

import enum

from fastapi import HTTPException, status


class AppError(HTTPException):
    """Base application error."""

    def __init__(self, detail: str, status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR) -> None:
        super().__init__(status_code=status_code, detail=detail)


class ValidationError(AppError):
    def __init__(self, detail: str = "Validation error") -> None:
        super().__init__(detail=detail, status_code=status.HTTP_400_BAD_REQUEST)


class ConfigurationError(AppError):
    def __init__(self, detail: str = "Service is not configured") -> None:
        super().__init__(detail=detail, status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)


class ErrorKind(str, enum.Enum):
    """Classified failure of a submitted question."""

    AUTH = "auth"
    RATE_LIMITED = "rate-limited"
    SERVER_ERROR = "server-error"
    TIMEOUT = "timeout"
    NETWORK = "network"
    QUERY_FAILED = "query-failed"
    INVALID_INPUT = "invalid-input"
    UNKNOWN = "unknown"


_USER_MESSAGES: dict[ErrorKind, str] = {
    ErrorKind.AUTH: "Authentication failed. Please check your Databricks credentials.",
    ErrorKind.RATE_LIMITED: "Too many requests. Please wait a moment and try again.",
    ErrorKind.SERVER_ERROR: "The query service reported an error. Please try again in a moment.",
    ErrorKind.TIMEOUT: "Query took too long to complete. Try a simpler question.",
    ErrorKind.NETWORK: "Could not connect to Genie. Check your internet connection.",
    ErrorKind.QUERY_FAILED: "Genie could not answer this question.",
    ErrorKind.INVALID_INPUT: "Please enter a question between 5 and 1000 characters.",
    ErrorKind.UNKNOWN: "Something went wrong. Please try again.",
}


class RelayCallError(Exception):
    """A relay call or a remote message ended in a classified failure.

    Attributes:
        kind: The classified ErrorKind.
        detail: Raw detail text (upstream error body, FAILED status detail).
        status_code: HTTP status returned by the relay, if any.
    """

    def __init__(self, kind: ErrorKind, detail: str = "", status_code: int | None = None) -> None:
        super().__init__(detail or kind.value)
        self.kind = kind
        self.detail = detail
        self.status_code = status_code


class SessionStoreError(Exception):
    """The session store could not be read or written."""


def classify_status_code(status_code: int) -> ErrorKind:
    """Map a non-2xx HTTP status from the relay to an ErrorKind."""
    if status_code in (401, 403):
        return ErrorKind.AUTH
    if status_code == 429:
        return ErrorKind.RATE_LIMITED
    if 500 <= status_code < 600:
        return ErrorKind.SERVER_ERROR
    return ErrorKind.UNKNOWN


def is_retryable(kind: ErrorKind) -> bool:
    """Every failure except local validation offers a retry."""
    return kind is not ErrorKind.INVALID_INPUT


def user_message(kind: ErrorKind, detail: str = "") -> str:
    """Human-readable message for an error notice.

    Query failures keep the upstream detail since it is the most specific
    explanation available; a couple of well-known Databricks failures get a
    friendlier rewrite.
    """
    if kind is ErrorKind.QUERY_FAILED and detail:
        if "SQL_EXECUTION_EXCEPTION" in detail:
            return (
                "SQL execution error: The query failed to run. This may be due to data access "
                "permissions or missing tables in your workspace."
            )
        if "Azure storage" in detail or "not authorized" in detail:
            return (
                "Data access error: The Genie Space may not have proper access to your data tables. "
                "Check your Databricks workspace permissions and storage configuration."
            )
        return f"{_USER_MESSAGES[kind]} {detail}"
    return _USER_MESSAGES[kind]
