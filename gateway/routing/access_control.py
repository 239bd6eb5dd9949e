"""
Caller authentication and model visibility.

A request carries either an API key (Authorization: Bearer / x-api-key) or
a dashboard session cookie. Both resolve to a `Principal`; everything past
this module is credential-agnostic.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Protocol
from uuid import UUID

from jose import ExpiredSignatureError, JWTError, jwt
from redis.exceptions import RedisError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from gateway.catalog import ModelCatalog
from gateway.errors import AuthError, AuthErrorReason
from gateway.logging_config import logger
from gateway.models import User, as_utc, utcnow
from gateway.schemas.api_key import ModelAccessMode
from gateway.services.api_key_cache import (
    CachedAPIKey,
    build_cache_entry,
    cache_api_key,
    get_cached_api_key,
)
from gateway.services.api_key_service import find_api_key_by_hash, touch_api_key_last_used
from gateway.services.disabled_model_service import disabled_canonical_ids
from gateway.services.vault import CredentialVault


@dataclass(frozen=True)
class ApiKeyCredential:
    token: str


@dataclass(frozen=True)
class SessionCredential:
    token: str


Credential = ApiKeyCredential | SessionCredential


def resolve_credential(
    authorization: str | None,
    x_api_key: str | None,
    session_token: str | None,
) -> Credential | None:
    """API-key headers take precedence over the session cookie."""
    if authorization:
        scheme, _, token = authorization.strip().partition(" ")
        token = token.strip()
        if scheme.lower() != "bearer" or not token:
            raise AuthError(AuthErrorReason.INVALID, "Invalid Authorization header format")
        return ApiKeyCredential(token)
    if x_api_key and x_api_key.strip():
        return ApiKeyCredential(x_api_key.strip())
    if session_token and session_token.strip():
        return SessionCredential(session_token.strip())
    return None


@dataclass(frozen=True)
class Principal:
    user_id: UUID
    api_key_id: UUID | None = None
    model_access_mode: ModelAccessMode = ModelAccessMode.ALL
    model_access_list: tuple[str, ...] = ()


@dataclass(frozen=True)
class ModelVisibility:
    """Key-level access mode AND the user's disabled set."""

    mode: ModelAccessMode = ModelAccessMode.ALL
    models: frozenset[str] = field(default_factory=frozenset)
    disabled: frozenset[str] = field(default_factory=frozenset)

    def allows(self, canonical_id: str) -> bool:
        if canonical_id in self.disabled:
            return False
        if self.mode is ModelAccessMode.WHITELIST:
            return canonical_id in self.models
        if self.mode is ModelAccessMode.BLACKLIST:
            return canonical_id not in self.models
        return True


class SessionVerifier(Protocol):
    def verify(self, token: str) -> UUID:
        """Return the user id carried by a valid session token or raise AuthError."""
        ...


class JwtSessionVerifier:
    """Verifies HS256 session tokens issued by the sign-in service (`sub` = user id)."""

    def __init__(self, secret_key: str, algorithm: str = "HS256") -> None:
        self._secret_key = secret_key
        self._algorithm = algorithm

    def verify(self, token: str) -> UUID:
        try:
            payload = jwt.decode(token, self._secret_key, algorithms=[self._algorithm])
        except ExpiredSignatureError:
            raise AuthError(AuthErrorReason.EXPIRED, "Session has expired") from None
        except JWTError:
            raise AuthError(AuthErrorReason.INVALID, "Invalid session token") from None
        try:
            return UUID(str(payload.get("sub")))
        except ValueError:
            raise AuthError(AuthErrorReason.INVALID, "Invalid session token") from None

    def issue(self, user_id: UUID, *, expires_in: timedelta = timedelta(days=7)) -> str:
        claims = {"sub": str(user_id), "exp": utcnow() + expires_in}
        return jwt.encode(claims, self._secret_key, algorithm=self._algorithm)


class AccessControl:
    def __init__(
        self,
        db: Session,
        redis,
        vault: CredentialVault,
        catalog: ModelCatalog,
        session_verifier: SessionVerifier,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.db = db
        self.redis = redis
        self.vault = vault
        self.catalog = catalog
        self.session_verifier = session_verifier
        self.clock = clock

    async def authenticate(self, credential: Credential | None) -> Principal:
        if credential is None:
            raise AuthError(AuthErrorReason.MISSING)
        if isinstance(credential, SessionCredential):
            return self._authenticate_session(credential)
        return await self._authenticate_api_key(credential)

    def _authenticate_session(self, credential: SessionCredential) -> Principal:
        user_id = self.session_verifier.verify(credential.token)
        user = self.db.get(User, user_id)
        if user is None:
            raise AuthError(AuthErrorReason.INVALID, "Invalid session token")
        if not user.is_active:
            raise AuthError(AuthErrorReason.REVOKED, "User account is disabled")
        return Principal(user_id=user.id)

    async def _authenticate_api_key(self, credential: ApiKeyCredential) -> Principal:
        key_hash = self.vault.hash(credential.token)
        entry = await self._load_cached(key_hash)
        if entry is None:
            api_key = find_api_key_by_hash(self.db, key_hash)
            if api_key is None:
                raise AuthError(AuthErrorReason.INVALID)
            entry = build_cache_entry(api_key)
            self._check_entry(entry)
            await self._store_cached(key_hash, entry)
        else:
            self._check_entry(entry)

        principal = Principal(
            user_id=UUID(entry.user_id),
            api_key_id=UUID(entry.id),
            model_access_mode=ModelAccessMode(entry.model_access_mode),
            model_access_list=tuple(entry.model_access_list),
        )
        self._touch_last_used(principal.api_key_id)
        return principal

    def _check_entry(self, entry: CachedAPIKey) -> None:
        if not entry.is_active:
            raise AuthError(AuthErrorReason.REVOKED)
        expires_at = as_utc(entry.expires_at)
        if expires_at is not None and expires_at <= self.clock():
            raise AuthError(AuthErrorReason.EXPIRED)
        if not entry.user_is_active:
            raise AuthError(AuthErrorReason.REVOKED)

    async def _load_cached(self, key_hash: str) -> CachedAPIKey | None:
        try:
            return await get_cached_api_key(self.redis, key_hash)
        except (RedisError, OSError):
            logger.warning("API key cache read failed; falling back to database", exc_info=True)
            return None

    async def _store_cached(self, key_hash: str, entry: CachedAPIKey) -> None:
        try:
            await cache_api_key(self.redis, key_hash, entry)
        except (RedisError, OSError):
            logger.warning("API key cache write failed", exc_info=True)

    def _touch_last_used(self, api_key_id: UUID) -> None:
        try:
            touch_api_key_last_used(self.db, api_key_id, self.clock())
        except SQLAlchemyError:
            self.db.rollback()
            logger.warning("Failed to update last_used_at for API key %s", api_key_id, exc_info=True)

    def model_visibility(self, principal: Principal) -> ModelVisibility:
        return ModelVisibility(
            mode=principal.model_access_mode,
            models=frozenset(self.catalog.resolve_alias(m) for m in principal.model_access_list),
            disabled=frozenset(disabled_canonical_ids(self.db, self.catalog, principal.user_id)),
        )


def visible_models(catalog: ModelCatalog, visibility: ModelVisibility) -> list[str]:
    return [model.id for model in catalog.list_all() if visibility.allows(model.id)]


__all__ = [
    "AccessControl",
    "ApiKeyCredential",
    "Credential",
    "JwtSessionVerifier",
    "ModelVisibility",
    "Principal",
    "SessionCredential",
    "SessionVerifier",
    "resolve_credential",
    "visible_models",
]
