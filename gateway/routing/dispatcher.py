"""
Dispatch engine: one chat completion request → one or more upstream attempts.

RESOLVING → AUTHORIZING → SELECTING → ATTEMPTING → SUCCEEDED / ROTATING / EXHAUSTED.

Attempts are strictly sequential. Every attempt sequence that reaches the
upstream leaves exactly one usage record behind; requests rejected before
selection (unknown model, hidden model, no account) leave none.
"""

from __future__ import annotations

import time
from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Any
from uuid import UUID

import httpx

from gateway.catalog import ModelCatalog
from gateway.errors import (
    ExhaustedError,
    InvalidRequestError,
    NoCandidateError,
    UpstreamError,
    VisibilityError,
    should_rotate_to_next_account,
    status_code_from_error,
)
from gateway.log_sanitizer import sanitize_text_for_log
from gateway.logging_config import logger
from gateway.provider.kinds import ProviderKind
from gateway.provider.streaming import TokenUsage, UpstreamStream
from gateway.provider.transport import (
    AccountCredential,
    ChatRequest,
    TransportError,
    TransportRegistry,
)
from gateway.services.usage_recorder import UsageEntry, UsageRecorder
from gateway.services.vault import CredentialVault

from .access_control import ModelVisibility, Principal
from .account_pool import AccountPool, Candidate

# An accepted stream that breaks mid-relay is reported as a bad gateway.
STREAM_INTERRUPTED_STATUS = 502


@dataclass
class DispatchResult:
    canonical_id: str
    account_id: UUID
    provider: str
    status_code: int = 200
    body: dict[str, Any] | None = None
    stream: AsyncIterator[bytes] | None = None


@dataclass
class _Attempted:
    candidate: Candidate
    status_code: int


class DispatchEngine:
    def __init__(
        self,
        catalog: ModelCatalog,
        pool: AccountPool,
        transports: TransportRegistry,
        vault: CredentialVault,
        recorder: UsageRecorder,
    ) -> None:
        self.catalog = catalog
        self.pool = pool
        self.transports = transports
        self.vault = vault
        self.recorder = recorder

    def _authorize(
        self, principal: Principal, visibility: ModelVisibility, raw_model: str
    ) -> tuple[str, tuple[ProviderKind, ...]]:
        pinned, canonical_id = self.catalog.parse_model_param(raw_model)
        model = self.catalog.get(canonical_id)
        if model is None or not visibility.allows(model.id):
            logger.info(
                "dispatch: model %r denied for user %s (key=%s)",
                raw_model,
                principal.user_id,
                principal.api_key_id,
            )
            raise VisibilityError(raw_model)
        if pinned is not None:
            if pinned not in model.providers:
                logger.info(
                    "dispatch: provider %s not eligible for %s", pinned.value, model.id
                )
                raise VisibilityError(raw_model)
            return model.id, (pinned,)
        return model.id, model.providers

    async def dispatch(
        self,
        principal: Principal,
        visibility: ModelVisibility,
        payload: dict[str, Any],
    ) -> DispatchResult:
        raw_model = payload.get("model")
        if not isinstance(raw_model, str) or not raw_model.strip():
            raise InvalidRequestError("`model` is required")
        stream = bool(payload.get("stream"))

        canonical_id, providers = self._authorize(principal, visibility, raw_model)

        candidates = self.pool.ordered_candidates(principal.user_id, canonical_id, providers)
        if not candidates:
            logger.info(
                "dispatch: no active account for %s (user=%s)", canonical_id, principal.user_id
            )
            raise NoCandidateError(canonical_id)

        started = time.monotonic()
        attempted: list[_Attempted] = []
        for index, candidate in enumerate(candidates, start=1):
            request = ChatRequest(
                payload=payload,
                upstream_model=self.catalog.upstream_model(canonical_id, candidate.provider),
                stream=stream,
            )
            try:
                result = await self._attempt(candidate, request)
            except TransportError as exc:
                status_code = exc.status_code
            except httpx.HTTPError as exc:
                status_code = status_code_from_error(exc)
                logger.warning(
                    "dispatch: upstream client error on account %s: %s",
                    candidate.account_id,
                    sanitize_text_for_log(str(exc)),
                )
            except Exception:
                status_code = 500
                logger.exception(
                    "dispatch: unexpected transport failure on account %s", candidate.account_id
                )
            else:
                if not isinstance(result, UpstreamStream):
                    self.pool.mark_success(candidate.account_id)
                return self._succeeded(principal, canonical_id, candidate, result, started)

            self.pool.mark_failure(candidate.account_id)
            attempted.append(_Attempted(candidate, status_code))
            if not should_rotate_to_next_account(status_code):
                logger.warning(
                    "dispatch: terminal status %s from %s account %s for %s",
                    status_code,
                    candidate.provider.value,
                    candidate.account_id,
                    canonical_id,
                )
                self._record(principal, canonical_id, candidate, status_code, started)
                raise UpstreamError(status_code)
            logger.info(
                "dispatch: rotating after status %s (%d/%d) for %s",
                status_code,
                index,
                len(candidates),
                canonical_id,
            )

        last = attempted[-1]
        self._record(principal, canonical_id, last.candidate, last.status_code, started)
        raise ExhaustedError(last.status_code, len(candidates))

    async def _attempt(
        self, candidate: Candidate, request: ChatRequest
    ) -> UpstreamStream | tuple[dict[str, Any], TokenUsage]:
        try:
            secret = self.vault.decrypt(candidate.encrypted_credential)
        except ValueError:
            logger.warning(
                "dispatch: credential of account %s cannot be decrypted", candidate.account_id
            )
            raise TransportError(401, "Stored credential cannot be decrypted") from None

        self.pool.mark_attempt(candidate.account_id)
        transport = self.transports.for_kind(candidate.provider)
        account = AccountCredential(
            account_id=str(candidate.account_id), provider=candidate.provider, secret=secret
        )
        if request.stream:
            return await transport.open_stream(account, request)
        response = await transport.send(account, request)
        return response.body, response.usage

    def _succeeded(
        self,
        principal: Principal,
        canonical_id: str,
        candidate: Candidate,
        result: UpstreamStream | tuple[dict[str, Any], TokenUsage],
        started: float,
    ) -> DispatchResult:
        dispatch_result = DispatchResult(
            canonical_id=canonical_id,
            account_id=candidate.account_id,
            provider=candidate.provider.value,
        )
        if isinstance(result, UpstreamStream):
            dispatch_result.stream = self._relay(
                result, principal, canonical_id, candidate, started
            )
            return dispatch_result

        body, usage = result
        self._record(principal, canonical_id, candidate, 200, started, usage)
        dispatch_result.body = body
        return dispatch_result

    async def _relay(
        self,
        upstream: UpstreamStream,
        principal: Principal,
        canonical_id: str,
        candidate: Candidate,
        started: float,
    ) -> AsyncIterator[bytes]:
        """
        Relay an accepted stream. Health and usage are settled when the relay
        ends: a clean finish or a client disconnect counts as success, an
        upstream failure mid-stream marks the account and is re-raised.
        """
        status_code = upstream.status_code
        try:
            async for chunk in upstream:
                yield chunk
        except Exception as exc:
            status_code = (
                exc.status_code if isinstance(exc, TransportError) else STREAM_INTERRUPTED_STATUS
            )
            logger.warning(
                "dispatch: stream from %s account %s broke after it was accepted: %s",
                candidate.provider.value,
                candidate.account_id,
                sanitize_text_for_log(str(exc)),
            )
            raise
        finally:
            await upstream.aclose()
            if status_code < 400:
                self.pool.mark_success(candidate.account_id)
            else:
                self.pool.mark_failure(candidate.account_id)
            self._record(principal, canonical_id, candidate, status_code, started, upstream.usage)

    def _record(
        self,
        principal: Principal,
        canonical_id: str,
        candidate: Candidate,
        status_code: int,
        started: float,
        usage: TokenUsage | None = None,
    ) -> None:
        usage = usage or TokenUsage()
        self.recorder.append(
            UsageEntry(
                user_id=principal.user_id,
                api_key_id=principal.api_key_id,
                provider_account_id=candidate.account_id,
                provider=candidate.provider.value,
                model=canonical_id,
                status_code=status_code,
                duration_ms=int((time.monotonic() - started) * 1000),
                input_tokens=usage.input_tokens,
                output_tokens=usage.output_tokens,
            )
        )


__all__ = ["DispatchEngine", "DispatchResult"]
