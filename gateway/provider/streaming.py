from __future__ import annotations

import json
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass
from typing import Any


@dataclass
class TokenUsage:
    input_tokens: int = 0
    output_tokens: int = 0

    @classmethod
    def from_payload(cls, payload: Any) -> "TokenUsage":
        """Read OpenAI-style `usage` from a response body or SSE event."""
        if not isinstance(payload, dict):
            return cls()
        usage = payload.get("usage")
        if not isinstance(usage, dict):
            return cls()
        return cls(
            input_tokens=_as_int(usage.get("prompt_tokens", usage.get("input_tokens"))),
            output_tokens=_as_int(usage.get("completion_tokens", usage.get("output_tokens"))),
        )

    @property
    def is_empty(self) -> bool:
        return not self.input_tokens and not self.output_tokens


def _as_int(value: Any) -> int:
    try:
        return max(int(value), 0)
    except (TypeError, ValueError):
        return 0


class SseUsageTracker:
    """
    Watches relayed SSE bytes for `data:` events carrying usage.

    Chunks may split lines arbitrarily, so a partial trailing line is kept
    until the next chunk arrives. The last non-empty usage seen wins.
    """

    def __init__(self) -> None:
        self._pending = b""
        self.usage = TokenUsage()

    def feed(self, chunk: bytes) -> None:
        data = self._pending + chunk
        lines = data.split(b"\n")
        self._pending = lines.pop()
        for line in lines:
            self._consume_line(line)

    def finish(self) -> TokenUsage:
        if self._pending:
            self._consume_line(self._pending)
            self._pending = b""
        return self.usage

    def _consume_line(self, raw_line: bytes) -> None:
        line = raw_line.strip()
        if not line.startswith(b"data:"):
            return
        body = line[len(b"data:"):].strip()
        if not body or body == b"[DONE]":
            return
        try:
            event = json.loads(body)
        except (json.JSONDecodeError, UnicodeDecodeError):
            return
        usage = TokenUsage.from_payload(event)
        if not usage.is_empty:
            self.usage = usage


class UpstreamStream:
    """
    An upstream stream that has already been accepted (status < 400).

    Iterating relays raw bytes and tracks usage; `aclose()` releases the
    underlying connection and is safe to call more than once.
    """

    def __init__(
        self,
        chunks: AsyncIterator[bytes],
        *,
        status_code: int = 200,
        on_close: Callable[[], Awaitable[Any]] | None = None,
    ) -> None:
        self._chunks = chunks
        self._on_close = on_close
        self._closed = False
        self.status_code = status_code
        self.tracker = SseUsageTracker()

    async def __aiter__(self) -> AsyncIterator[bytes]:
        async for chunk in self._chunks:
            if not chunk:
                continue
            self.tracker.feed(chunk)
            yield chunk

    @property
    def usage(self) -> TokenUsage:
        return self.tracker.finish()

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._on_close is not None:
            await self._on_close()


__all__ = ["SseUsageTracker", "TokenUsage", "UpstreamStream"]
