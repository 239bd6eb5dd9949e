from gateway.log_sanitizer import REDACTED, sanitize_headers_for_log, sanitize_text_for_log


def test_sensitive_headers_are_masked():
    sanitized = sanitize_headers_for_log(
        {
            "Authorization": "Bearer sk-live",
            "X-API-Key": "sk-live",
            "Cookie": "gateway_session=abc",
            "X-Upstream-Token": "t",
            "Content-Type": "application/json",
        }
    )

    assert sanitized["Authorization"] == REDACTED
    assert sanitized["X-API-Key"] == REDACTED
    assert sanitized["Cookie"] == REDACTED
    assert sanitized["X-Upstream-Token"] == REDACTED
    assert sanitized["Content-Type"] == "application/json"


def test_upstream_text_is_scrubbed_and_truncated():
    text = "invalid key sk-abcdefghijklmnop for Bearer eyJhbGciOi.x.y"
    cleaned = sanitize_text_for_log(text)
    assert "sk-abcdefghijklmnop" not in cleaned
    assert "eyJhbGciOi" not in cleaned

    long_text = sanitize_text_for_log("x" * 2000)
    assert long_text.endswith("...(truncated)")
    assert len(long_text) < 600
    assert sanitize_text_for_log(None) == ""
