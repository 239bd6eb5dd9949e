import httpx
import pytest

from gateway.errors import (
    AuthError,
    AuthErrorReason,
    ExhaustedError,
    NoCandidateError,
    ProxyErrorType,
    UpstreamError,
    VisibilityError,
    sanitize_upstream_status,
    should_rotate_to_next_account,
    status_code_from_error,
)
from gateway.provider.transport import TransportError


@pytest.mark.parametrize("status_code", [401, 402, 403, 408, 429, 500, 502, 503, 529])
def test_retryable_statuses_rotate(status_code):
    assert should_rotate_to_next_account(status_code) is True


@pytest.mark.parametrize("status_code", [400, 404, 409, 413, 422])
def test_client_errors_do_not_rotate(status_code):
    assert should_rotate_to_next_account(status_code) is False


def test_sanitized_messages_never_include_upstream_text():
    assert sanitize_upstream_status(422) == (
        400,
        ProxyErrorType.INVALID_REQUEST,
        "Invalid request parameters.",
    )
    client_status, error_type, message = sanitize_upstream_status(403)
    assert (client_status, error_type) == (401, ProxyErrorType.AUTHENTICATION)
    assert "re-authenticate" in message
    assert sanitize_upstream_status(429)[1] is ProxyErrorType.RATE_LIMIT
    assert sanitize_upstream_status(503)[:2] == (502, ProxyErrorType.API_ERROR)
    assert sanitize_upstream_status(404) == (
        404,
        ProxyErrorType.API_ERROR,
        "Provider request failed (HTTP 404).",
    )


def test_status_code_from_error_prefers_attributes_then_message():
    assert status_code_from_error(TransportError(429, "slow down")) == 429

    request = httpx.Request("POST", "https://upstream.local")
    response = httpx.Response(503, request=request)
    exc = httpx.HTTPStatusError("boom", request=request, response=response)
    assert status_code_from_error(exc) == 503

    assert status_code_from_error(RuntimeError("upstream said HTTP 401 nope")) == 401
    assert status_code_from_error(RuntimeError("no status here")) == 500


def test_exhausted_error_reports_attempt_count():
    err = ExhaustedError(429, 3)
    assert err.status_code == 429
    assert err.attempts == 3
    assert err.message.endswith("(3 accounts attempted)")
    assert ExhaustedError(500, 1).message.endswith("(1 account attempted)")
    assert ExhaustedError(500, 1).status_code == 502


def test_error_envelopes():
    assert AuthError(AuthErrorReason.REVOKED).to_payload() == {
        "error": {"message": "API key has been revoked", "type": "authentication_error"}
    }
    visibility = VisibilityError("secret-model")
    assert visibility.status_code == 400
    assert visibility.to_payload()["error"]["type"] == "invalid_request_error"
    assert "`secret-model` does not exist" in visibility.message
    assert NoCandidateError("glm-4.7").status_code == 503
    assert UpstreamError(400).status_code == 400
