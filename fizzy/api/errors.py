"""
Fizzy API error taxonomy.

Every failure the API client surfaces is one of the types below. Each
carries the HTTP status (None when no response was received), a
human-readable message and the raw response body for diagnostics.

Error Classification Strategy:
    HTTP 400 → ApiError ("invalid parameters") → fail immediately
    HTTP 401 → AuthenticationError → fail immediately
    HTTP 403 → ApiError → fail immediately
    HTTP 404 → NotFoundError → fail immediately
    HTTP 422 → ValidationError → fail immediately
    HTTP 429 → RateLimitError → retried, raised once the budget is spent
    HTTP 5xx → ApiError → retried, raised once the budget is spent
    Network  → ApiError (status=None) → retried, raised once the budget is spent
    Bad JSON → ApiError (2xx status) → never retried

Callers that need to branch on the failure type match on ``error.kind``
(a closed ``ErrorKind`` enum); the subclasses exist so ``except`` clauses
can target a single kind.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Mapping

import httpx

_LEADING_INT = re.compile(r"-?\d+")


class ErrorKind(str, Enum):
    GENERIC = "generic"
    RATE_LIMIT = "rate_limit"
    AUTHENTICATION = "authentication"
    NOT_FOUND = "not_found"
    VALIDATION = "validation"


@dataclass(frozen=True, eq=False)
class ApiError(Exception):
    """
    Base exception for all Fizzy API errors.

    Attributes:
        message: Human-readable error description.
        status: HTTP status code (None when the request never got a response).
        response_body: Parsed JSON body, raw text, or None.
    """
    message: str
    status: int | None = None
    response_body: Any | None = None

    kind: ClassVar[ErrorKind] = ErrorKind.GENERIC

    def __str__(self) -> str:
        if self.status is None:
            return self.message
        return f"{self.message} (status={self.status})"

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": type(self).__name__,
            "kind": self.kind.value,
            "message": self.message,
            "status": self.status,
            "response_body": self.response_body,
        }


@dataclass(frozen=True, eq=False)
class RateLimitError(ApiError):
    """
    HTTP 429 - Rate limit exceeded.

    ``retry_after`` holds the server's Retry-After value in seconds when
    the header was present and numeric.
    """
    status: int | None = field(default=429, init=False)
    retry_after: int | None = None

    kind: ClassVar[ErrorKind] = ErrorKind.RATE_LIMIT

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        payload["retry_after"] = self.retry_after
        return payload


@dataclass(frozen=True, eq=False)
class AuthenticationError(ApiError):
    """HTTP 401 - Token missing, revoked, or session expired."""
    message: str = "Authentication failed"
    status: int | None = field(default=401, init=False)

    kind: ClassVar[ErrorKind] = ErrorKind.AUTHENTICATION


@dataclass(frozen=True, eq=False)
class NotFoundError(ApiError):
    """HTTP 404 - The requested resource does not exist."""
    message: str = "Resource not found"
    status: int | None = field(default=404, init=False)

    kind: ClassVar[ErrorKind] = ErrorKind.NOT_FOUND


@dataclass(frozen=True, eq=False)
class ValidationError(ApiError):
    """
    HTTP 422 - The server rejected the request payload.

    ``validation_details`` is the response body when it was a JSON object,
    typically a mapping of field name to error messages.
    """
    status: int | None = field(default=422, init=False)
    validation_details: dict[str, Any] | None = None

    kind: ClassVar[ErrorKind] = ErrorKind.VALIDATION

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        payload["validation_details"] = self.validation_details
        return payload


def parse_retry_after(headers: Mapping[str, str] | None) -> int | None:
    """Return Retry-After seconds from response headers, or None."""
    if not headers:
        return None
    value = headers.get("Retry-After")
    if value is None:
        return None
    # Fractional values keep their integer part ("1.5" waits 1 s).
    match = _LEADING_INT.match(str(value).strip())
    if match is None:
        return None
    return max(0, int(match.group(0)))


def read_error_body(response: httpx.Response) -> Any | None:
    """Decode an error body: JSON if possible, then raw text, then None."""
    try:
        return response.json()
    except ValueError:
        pass
    try:
        return response.text
    except (UnicodeDecodeError, LookupError, httpx.ResponseNotRead):
        return None


def _message_from_body(body: Any, reason: str) -> str:
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, str) and error:
            return error
    return reason


def error_from_response(
    status: int,
    reason: str,
    body: Any | None,
    headers: Mapping[str, str] | None = None,
) -> ApiError:
    """Map a terminal non-2xx response to the error taxonomy."""
    raw_message = _message_from_body(body, reason)

    if status == 400:
        return ApiError("Bad Request: invalid parameters.", status=400, response_body=body)
    if status == 401:
        return AuthenticationError(
            "Unauthorized: authentication failed or session expired", response_body=body
        )
    if status == 404:
        return NotFoundError("Not Found: the requested resource does not exist", response_body=body)
    if status == 422:
        return ValidationError(
            f"Validation failed: {raw_message}",
            response_body=body,
            validation_details=body if isinstance(body, dict) else None,
        )
    if status == 429:
        return RateLimitError(
            "Rate limit exceeded. Please wait before making more requests.",
            response_body=body,
            retry_after=parse_retry_after(headers),
        )
    return ApiError(f"Request failed ({status}): {raw_message}", status=status, response_body=body)


def network_error(exc: Exception) -> ApiError:
    return ApiError(f"Network error: {exc}", status=None, response_body=None)


def decode_error(status: int, text: str, exc: Exception) -> ApiError:
    return ApiError(
        f"Failed to parse JSON response: {exc}. Response body: {text[:200]}",
        status=status,
        response_body=text,
    )


def invalid_url_error(url: str, exc: Exception) -> ApiError:
    return ApiError(f"Invalid request URL {url!r}: {exc}", status=None, response_body=None)
