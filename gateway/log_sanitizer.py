from __future__ import annotations

import re
from collections.abc import Mapping

REDACTED = "***REDACTED***"

_SENSITIVE_HEADER_NAMES = {
    "authorization",
    "proxy-authorization",
    "x-api-key",
    "api-key",
    "x-auth-token",
    "x-access-token",
    "cookie",
    "set-cookie",
}

_SECRET_PATTERNS = (
    re.compile(r"sk-[A-Za-z0-9_\-]{8,}"),
    re.compile(r"(?i)bearer\s+[A-Za-z0-9._\-]+"),
    re.compile(r"gAAAAA[A-Za-z0-9_\-=]+"),
)

_MAX_LOGGED_TEXT = 500


def sanitize_headers_for_log(
    headers: Mapping[str, str], *, mask_token: str = REDACTED
) -> dict[str, str]:
    """
    将请求头做安全脱敏后用于日志输出。

    - 明确敏感的 header 名（authorization / x-api-key / cookie 等）直接打码；
    - 名字里带 key/token/secret/auth/cookie/session 的 header 也打码；
    - 其它 header 原样保留，便于排障。
    """
    sanitized: dict[str, str] = {}
    for name, value in headers.items():
        lower_name = name.lower()
        if lower_name in _SENSITIVE_HEADER_NAMES or any(
            token in lower_name
            for token in ("key", "token", "secret", "auth", "cookie", "session")
        ):
            sanitized[name] = mask_token
            continue
        sanitized[name] = value
    return sanitized


def sanitize_text_for_log(text: str | None, *, mask_token: str = REDACTED) -> str:
    """
    上游错误正文只进日志不回给调用方；写日志前把疑似密钥替换掉并截断。
    """
    if not text:
        return ""
    cleaned = str(text)
    for pattern in _SECRET_PATTERNS:
        cleaned = pattern.sub(mask_token, cleaned)
    if len(cleaned) > _MAX_LOGGED_TEXT:
        cleaned = cleaned[:_MAX_LOGGED_TEXT] + "...(truncated)"
    return cleaned


__all__ = ["REDACTED", "sanitize_headers_for_log", "sanitize_text_for_log"]
