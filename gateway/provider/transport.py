"""
Provider transports.

The dispatch engine only sees the `Transport` protocol: a call either returns
a response or raises `TransportError(status_code, message)`. Payload shapes
beyond that stay inside the transport.
"""

from __future__ import annotations

import json
from contextlib import AsyncExitStack
from dataclasses import dataclass, field
from typing import Any, Mapping, Protocol

import httpx

from gateway.log_sanitizer import sanitize_text_for_log
from gateway.logging_config import logger

from .kinds import PROVIDER_CAPABILITIES, ProviderCapability, ProviderKind, get_capability
from .streaming import TokenUsage, UpstreamStream


class TransportError(Exception):
    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(f"HTTP {status_code}: {message}")
        self.status_code = status_code
        self.message = message


@dataclass(frozen=True)
class AccountCredential:
    """Decrypted material for one attempt; never persisted or logged."""

    account_id: str
    provider: ProviderKind
    secret: str


@dataclass
class ChatRequest:
    payload: dict[str, Any]
    upstream_model: str
    stream: bool = False

    def upstream_payload(self) -> dict[str, Any]:
        body = dict(self.payload)
        body["model"] = self.upstream_model
        if self.stream:
            body["stream"] = True
            body.setdefault("stream_options", {"include_usage": True})
        return body


@dataclass
class TransportResponse:
    status_code: int
    body: dict[str, Any]
    usage: TokenUsage = field(default_factory=TokenUsage)


class Transport(Protocol):
    async def send(self, account: AccountCredential, request: ChatRequest) -> TransportResponse:
        ...

    async def open_stream(self, account: AccountCredential, request: ChatRequest) -> UpstreamStream:
        ...


def extract_error_message(error_text: str | None) -> str:
    """Pull `error.message` / `message` / `detail` out of an upstream error body."""
    if not error_text:
        return ""
    try:
        parsed = json.loads(error_text)
    except (json.JSONDecodeError, TypeError):
        return error_text
    if isinstance(parsed, dict):
        err = parsed.get("error")
        if isinstance(err, dict) and isinstance(err.get("message"), str):
            return err["message"].strip()
        for key in ("message", "detail"):
            value = parsed.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
    return error_text


class HttpTransport:
    """OpenAI-compatible chat completions over httpx."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        capability: ProviderCapability,
        *,
        timeout: float,
    ) -> None:
        self._client = client
        self.capability = capability
        self._timeout = timeout

    def _headers(self, account: AccountCredential) -> dict[str, str]:
        cap = self.capability
        token = f"{cap.auth_scheme} {account.secret}" if cap.auth_scheme else account.secret
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
            cap.auth_header: token,
        }
        headers.update(cap.extra_headers)
        return headers

    def _rejected(self, status_code: int, text: str) -> TransportError:
        message = extract_error_message(text)
        logger.warning(
            "upstream %s rejected request: status=%s body=%s",
            self.capability.kind.value,
            status_code,
            sanitize_text_for_log(message),
        )
        return TransportError(status_code, message or f"Upstream HTTP error {status_code}")

    async def send(self, account: AccountCredential, request: ChatRequest) -> TransportResponse:
        try:
            resp = await self._client.post(
                self.capability.chat_url,
                headers=self._headers(account),
                json=request.upstream_payload(),
                timeout=self._timeout,
            )
        except httpx.TimeoutException as exc:
            raise TransportError(408, "Upstream request timed out") from exc
        except httpx.HTTPError as exc:
            raise TransportError(502, f"Upstream connection error: {exc}") from exc

        if resp.status_code >= 400:
            raise self._rejected(resp.status_code, resp.text)

        try:
            body = resp.json()
        except ValueError as exc:
            raise TransportError(502, "Upstream returned a non-JSON body") from exc
        if not isinstance(body, dict):
            raise TransportError(502, "Upstream returned an unexpected body")
        return TransportResponse(
            status_code=resp.status_code, body=body, usage=TokenUsage.from_payload(body)
        )

    async def open_stream(self, account: AccountCredential, request: ChatRequest) -> UpstreamStream:
        """
        Open the stream and check the status before returning, so a rejected
        stream raises here and the caller can still rotate.
        """
        if not self.capability.supports_streaming:
            raise TransportError(400, f"{self.capability.display_name} does not support streaming")

        stack = AsyncExitStack()
        try:
            resp = await stack.enter_async_context(
                self._client.stream(
                    "POST",
                    self.capability.chat_url,
                    headers=self._headers(account),
                    json=request.upstream_payload(),
                    timeout=self._timeout,
                )
            )
        except httpx.TimeoutException as exc:
            await stack.aclose()
            raise TransportError(408, "Upstream request timed out") from exc
        except httpx.HTTPError as exc:
            await stack.aclose()
            raise TransportError(502, f"Upstream connection error: {exc}") from exc

        if resp.status_code >= 400:
            text = (await resp.aread()).decode("utf-8", errors="ignore")
            await stack.aclose()
            raise self._rejected(resp.status_code, text)

        return UpstreamStream(resp.aiter_bytes(), status_code=resp.status_code, on_close=stack.aclose)


class TransportRegistry:
    """Provider kind → transport. Tests swap entries for fakes."""

    def __init__(self, transports: Mapping[ProviderKind, Transport]) -> None:
        self._transports = dict(transports)

    @classmethod
    def http(
        cls,
        client: httpx.AsyncClient,
        *,
        timeout: float,
        base_url_overrides: Mapping[str, str] | None = None,
    ) -> "TransportRegistry":
        return cls(
            {
                kind: HttpTransport(
                    client,
                    get_capability(kind, base_url_overrides=base_url_overrides),
                    timeout=timeout,
                )
                for kind in PROVIDER_CAPABILITIES
            }
        )

    def for_kind(self, kind: ProviderKind) -> Transport:
        try:
            return self._transports[kind]
        except KeyError:
            raise TransportError(503, f"No transport configured for provider {kind.value}") from None


__all__ = [
    "AccountCredential",
    "ChatRequest",
    "HttpTransport",
    "Transport",
    "TransportError",
    "TransportRegistry",
    "TransportResponse",
    "extract_error_message",
]
