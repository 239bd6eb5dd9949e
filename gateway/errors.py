"""
Error types and helpers.

Two shapes are served:

- management endpoints (/api/...) raise HTTPException built by `http_error`
  with the `ErrorResponse` payload;
- the OpenAI-compatible /v1 surface raises `ProxyError` subclasses, which the
  app converts into `{"error": {"message", "type"}}` with a sanitized message.
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Any, Dict, Optional

from fastapi import HTTPException, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    error: str = Field(..., description="Machine-readable error type")
    message: str = Field(..., description="Human-readable error message")
    code: int = Field(..., description="HTTP status code for this error")
    details: Optional[Dict[str, Any]] = Field(
        default=None, description="Optional structured error details"
    )


def http_error(
    status_code: int,
    *,
    error: str,
    message: str,
    details: Optional[Dict[str, Any]] = None,
) -> HTTPException:
    payload = ErrorResponse(error=error, message=message, code=status_code, details=details)
    return HTTPException(status_code=status_code, detail=payload.model_dump())


def bad_request(message: str, *, details: Optional[Dict[str, Any]] = None) -> HTTPException:
    return http_error(
        status.HTTP_400_BAD_REQUEST, error="bad_request", message=message, details=details
    )


def not_found(message: str, *, details: Optional[Dict[str, Any]] = None) -> HTTPException:
    return http_error(
        status.HTTP_404_NOT_FOUND, error="not_found", message=message, details=details
    )


# ---------------------------------------------------------------------------
# /v1 proxy errors
# ---------------------------------------------------------------------------


class ProxyErrorType(str, Enum):
    INVALID_REQUEST = "invalid_request_error"
    AUTHENTICATION = "authentication_error"
    RATE_LIMIT = "rate_limit_error"
    API_ERROR = "api_error"


_ROTATE_STATUS_CODES = frozenset({401, 402, 403, 408, 429})


def should_rotate_to_next_account(status_code: int) -> bool:
    """Retryable upstream statuses: auth/billing/timeout/rate-limit and every 5xx."""
    return status_code >= 500 or status_code in _ROTATE_STATUS_CODES


def sanitize_upstream_status(status_code: int) -> tuple[int, ProxyErrorType, str]:
    """
    Map an upstream status to (client status, error type, generic message).
    Raw upstream text is never part of the result.
    """
    if status_code in (400, 422):
        return 400, ProxyErrorType.INVALID_REQUEST, "Invalid request parameters."
    if status_code in (401, 403):
        return (
            401,
            ProxyErrorType.AUTHENTICATION,
            "Provider authentication failed. Please re-authenticate your account.",
        )
    if status_code == 408:
        return 408, ProxyErrorType.API_ERROR, "Provider request timed out. Please retry."
    if status_code == 429:
        return (
            429,
            ProxyErrorType.RATE_LIMIT,
            "Provider rate limit reached. Please retry shortly.",
        )
    if status_code >= 500:
        return 502, ProxyErrorType.API_ERROR, "Provider service temporarily unavailable."
    client_status = status_code if 400 <= status_code < 500 else 502
    return client_status, ProxyErrorType.API_ERROR, f"Provider request failed (HTTP {status_code})."


_STATUS_IN_MESSAGE = re.compile(r"\b(?:HTTP\s*)?([45]\d{2})\b", re.IGNORECASE)


def status_code_from_error(exc: BaseException) -> int:
    """Best-effort HTTP status of an arbitrary upstream exception; 500 when unknown."""
    for attr in ("status_code", "status", "code"):
        value = getattr(exc, attr, None)
        if isinstance(value, int) and 400 <= value <= 599:
            return value
    response = getattr(exc, "response", None)
    value = getattr(response, "status_code", None)
    if isinstance(value, int) and 400 <= value <= 599:
        return value
    match = _STATUS_IN_MESSAGE.search(str(exc))
    if match:
        return int(match.group(1))
    return 500


class ProxyError(Exception):
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    error_type: ProxyErrorType = ProxyErrorType.API_ERROR

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_payload(self) -> dict[str, Any]:
        return {"error": {"message": self.message, "type": self.error_type.value}}

    def to_response(self) -> JSONResponse:
        return JSONResponse(status_code=self.status_code, content=self.to_payload())


class AuthErrorReason(str, Enum):
    MISSING = "missing"
    INVALID = "invalid"
    REVOKED = "revoked"
    EXPIRED = "expired"


_AUTH_MESSAGES = {
    AuthErrorReason.MISSING: "Missing API key. Provide it via the Authorization header.",
    AuthErrorReason.INVALID: "Invalid API key",
    AuthErrorReason.REVOKED: "API key has been revoked",
    AuthErrorReason.EXPIRED: "API key has expired",
}


class AuthError(ProxyError):
    status_code = status.HTTP_401_UNAUTHORIZED
    error_type = ProxyErrorType.AUTHENTICATION

    def __init__(self, reason: AuthErrorReason, message: str | None = None) -> None:
        super().__init__(message or _AUTH_MESSAGES[reason])
        self.reason = reason


class InvalidRequestError(ProxyError):
    status_code = status.HTTP_400_BAD_REQUEST
    error_type = ProxyErrorType.INVALID_REQUEST


class VisibilityError(InvalidRequestError):
    """Unknown model or model filtered out for this caller; both read the same."""

    def __init__(self, model: str) -> None:
        super().__init__(f"The model `{model}` does not exist or you do not have access to it.")
        self.model = model


class NoCandidateError(ProxyError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    error_type = ProxyErrorType.API_ERROR

    def __init__(self, model: str) -> None:
        super().__init__(
            "No active accounts available for this model. Please add an account in the dashboard."
        )
        self.model = model


class UpstreamError(ProxyError):
    """Terminal upstream failure, surfaced with a status-appropriate generic message."""

    def __init__(self, upstream_status: int) -> None:
        client_status, error_type, message = sanitize_upstream_status(upstream_status)
        super().__init__(message)
        self.upstream_status = upstream_status
        self.status_code = client_status
        self.error_type = error_type


class ExhaustedError(UpstreamError):
    def __init__(self, last_status: int, attempts: int) -> None:
        super().__init__(last_status)
        self.attempts = attempts
        noun = "account" if attempts == 1 else "accounts"
        self.message = f"{self.message} ({attempts} {noun} attempted)"
        self.args = (self.message,)


class UnknownEndpointError(ProxyError):
    status_code = status.HTTP_404_NOT_FOUND
    error_type = ProxyErrorType.INVALID_REQUEST

    def __init__(self, message: str = "Unknown API endpoint") -> None:
        super().__init__(message)


__all__ = [
    "AuthError",
    "AuthErrorReason",
    "ErrorResponse",
    "ExhaustedError",
    "InvalidRequestError",
    "NoCandidateError",
    "ProxyError",
    "ProxyErrorType",
    "UnknownEndpointError",
    "UpstreamError",
    "VisibilityError",
    "bad_request",
    "http_error",
    "not_found",
    "sanitize_upstream_status",
    "should_rotate_to_next_account",
    "status_code_from_error",
]
