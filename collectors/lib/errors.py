"""Structured exception hierarchy for collectors.

Provides specific exception types for the ways a collection run can fail,
with enough context (scope, request URL, raw body) to diagnose the failure
from a log line.

Two lightweight signals live here too. They are raised by response hooks
and pagination callbacks to steer the engine, and never escape a run.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

__all__ = [
    "CollectorError",
    "ConfigurationError",
    "RequestError",
    "AuthenticationError",
    "DecodeError",
    "CollectionCancelled",
    "IgnoreAndContinue",
    "FinishCollect",
]

# Raw bodies can be large; messages only carry the head of them
BODY_PREVIEW_CHARS = 500


class CollectorError(Exception):
    """Base exception for all collector errors.

    Provides structured error information for debugging.
    """

    def __init__(
        self,
        message: str,
        *,
        connection_id: Optional[int] = None,
        full_name: Optional[str] = None,
        table: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        suggestion: Optional[str] = None,
    ) -> None:
        self.connection_id = connection_id
        self.full_name = full_name
        self.table = table
        self.details = details or {}
        self.suggestion = suggestion

        parts = [message]

        if connection_id is not None or full_name or table:
            context = f"{connection_id if connection_id is not None else '?'}:{full_name or '?'}"
            if table:
                context = f"{context}:{table}"
            parts.insert(0, f"[{context}]")

        if self.details:
            parts.append("\nDetails:")
            parts.extend(f"  {k}: {v}" for k, v in self.details.items())

        if suggestion:
            parts.append(f"\nSuggestion: {suggestion}")

        super().__init__("\n".join(parts) if len(parts) > 1 else message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for structured logging."""
        return {
            "error_type": self.__class__.__name__,
            "message": str(self.args[0]) if self.args else "",
            "connection_id": self.connection_id,
            "full_name": self.full_name,
            "table": self.table,
            "details": self.details,
            "suggestion": self.suggestion,
        }


class ConfigurationError(CollectorError):
    """Error in collector configuration.

    Raised when a config file, collector arguments or a URL template are
    invalid or incomplete.
    """

    def __init__(
        self,
        message: str,
        *,
        field: Optional[str] = None,
        value: Any = None,
        issues: Optional[List[str]] = None,
        **kwargs: Any,
    ) -> None:
        self.field = field
        self.value = value
        self.issues = issues or []

        details = kwargs.pop("details", None) or {}
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = str(value)

        if self.issues:
            issue_lines = "\n".join(f"  - {issue}" for issue in self.issues)
            message = f"{message}\n\nIssues found:\n{issue_lines}"

        super().__init__(message, details=details, **kwargs)


class RequestError(CollectorError):
    """An API request failed.

    Raised for transport failures and for response statuses that no
    response hook claimed. Retry policy belongs to the API client, so by
    the time this reaches the engine it is fatal for the run.
    """

    def __init__(
        self,
        message: str,
        *,
        url: Optional[str] = None,
        status_code: Optional[int] = None,
        cause: Optional[BaseException] = None,
        **kwargs: Any,
    ) -> None:
        self.url = url
        self.status_code = status_code
        self.cause = cause

        details = kwargs.pop("details", None) or {}
        if url:
            details["url"] = url
        if status_code is not None:
            details["status_code"] = status_code
        if cause:
            details["cause"] = str(cause)
            details["cause_type"] = type(cause).__name__

        super().__init__(message, details=details, **kwargs)


class AuthenticationError(RequestError):
    """The API rejected our credentials (HTTP 401)."""

    def __init__(self, message: str, **kwargs: Any) -> None:
        suggestion = kwargs.pop("suggestion", None)
        if not suggestion:
            suggestion = (
                "Check your access token. Make sure it has not expired and "
                "has read access to the repository."
            )
        kwargs.setdefault("status_code", 401)
        super().__init__(message, suggestion=suggestion, **kwargs)


class DecodeError(CollectorError):
    """A response body could not be read or decoded.

    The full raw body is kept on ``body``; the message carries a preview.
    """

    def __init__(
        self,
        message: str,
        *,
        url: Optional[str] = None,
        body: Optional[str] = None,
        cause: Optional[BaseException] = None,
        **kwargs: Any,
    ) -> None:
        self.url = url
        self.body = body
        self.cause = cause

        details = kwargs.pop("details", None) or {}
        if url:
            details["url"] = url
        if body is not None:
            preview = body[:BODY_PREVIEW_CHARS]
            if len(body) > BODY_PREVIEW_CHARS:
                preview += f"... ({len(body)} chars)"
            details["raw_response"] = preview
        if cause:
            details["cause"] = str(cause)
            details["cause_type"] = type(cause).__name__

        super().__init__(message, details=details, **kwargs)


class CollectionCancelled(CollectorError):
    """The run was cancelled or hit its deadline between page fetches."""


class IgnoreAndContinue(Exception):
    """Signal: skip the rest of the current seed and move to the next one."""


class FinishCollect(Exception):
    """Signal: there are no more pages for the current seed."""
