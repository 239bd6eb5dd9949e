from __future__ import annotations

import secrets
from collections.abc import Iterable
from datetime import datetime, timedelta
from uuid import UUID

from sqlalchemy import Select, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from gateway.catalog import ModelCatalog
from gateway.models import APIKey, utcnow
from gateway.schemas.api_key import (
    APIKeyCreateRequest,
    APIKeyExpiry,
    APIKeyUpdateRequest,
    ModelAccessMode,
)
from gateway.services.vault import CredentialVault

API_KEY_TOKEN_PREFIX = "sk-"
API_KEY_PREVIEW_LENGTH = 12


class APIKeyServiceError(Exception):
    """Base error for API key operations."""


def generate_api_key_token() -> str:
    return API_KEY_TOKEN_PREFIX + secrets.token_urlsafe(24)


def build_api_key_prefix(token: str) -> str:
    return f"{token[:API_KEY_PREVIEW_LENGTH]}..."


def _expires_at_for(expiry: APIKeyExpiry) -> datetime | None:
    delta_map = {
        APIKeyExpiry.WEEK: timedelta(days=7),
        APIKeyExpiry.MONTH: timedelta(days=30),
        APIKeyExpiry.YEAR: timedelta(days=365),
    }
    delta = delta_map.get(expiry)
    if delta is None:
        return None
    return utcnow() + delta


def normalize_model_list(catalog: ModelCatalog, models: Iterable[str]) -> list[str]:
    """Resolve aliases to canonical ids, drop blanks and duplicates, sort."""
    normalized = {catalog.resolve_alias(m.strip()) for m in models if m and m.strip()}
    return sorted(normalized)


def list_api_keys_for_user(session: Session, user_id: UUID) -> list[APIKey]:
    stmt: Select[tuple[APIKey]] = (
        select(APIKey).where(APIKey.user_id == user_id).order_by(APIKey.created_at.asc())
    )
    return list(session.execute(stmt).scalars().all())


def get_api_key_by_id(
    session: Session, key_id: UUID | str, *, user_id: UUID | None = None
) -> APIKey | None:
    try:
        key_uuid = UUID(str(key_id))
    except ValueError:
        return None
    stmt: Select[tuple[APIKey]] = select(APIKey).where(APIKey.id == key_uuid)
    if user_id is not None:
        stmt = stmt.where(APIKey.user_id == user_id)
    return session.execute(stmt).scalars().first()


def find_api_key_by_hash(session: Session, key_hash: str) -> APIKey | None:
    stmt: Select[tuple[APIKey]] = (
        select(APIKey).where(APIKey.key_hash == key_hash).options(selectinload(APIKey.user))
    )
    return session.execute(stmt).scalars().first()


def create_api_key(
    session: Session,
    vault: CredentialVault,
    catalog: ModelCatalog,
    *,
    user_id: UUID,
    payload: APIKeyCreateRequest,
) -> tuple[APIKey, str]:
    token = generate_api_key_token()
    api_key = APIKey(
        user_id=user_id,
        name=payload.name,
        key_hash=vault.hash(token),
        key_prefix=build_api_key_prefix(token),
        encrypted_key=vault.encrypt(token),
        expiry_type=payload.expiry.value,
        expires_at=_expires_at_for(payload.expiry),
        model_access_mode=payload.model_access_mode.value,
        model_access_list=normalize_model_list(catalog, payload.model_access_list),
    )
    session.add(api_key)
    try:
        session.commit()
    except IntegrityError as exc:  # pragma: no cover - 摘要碰撞概率极低
        session.rollback()
        raise APIKeyServiceError("无法创建密钥") from exc
    session.refresh(api_key)
    return api_key, token


def update_api_key(session: Session, *, api_key: APIKey, payload: APIKeyUpdateRequest) -> APIKey:
    if payload.name is not None:
        api_key.name = payload.name
    if payload.expiry is not None:
        api_key.expiry_type = payload.expiry.value
        api_key.expires_at = _expires_at_for(payload.expiry)
    if payload.is_active is not None:
        api_key.is_active = payload.is_active
    session.add(api_key)
    session.commit()
    session.refresh(api_key)
    return api_key


def set_model_access(
    session: Session,
    catalog: ModelCatalog,
    *,
    api_key: APIKey,
    mode: ModelAccessMode,
    models: Iterable[str],
) -> APIKey:
    api_key.model_access_mode = mode.value
    api_key.model_access_list = (
        [] if mode is ModelAccessMode.ALL else normalize_model_list(catalog, models)
    )
    session.add(api_key)
    session.commit()
    session.refresh(api_key)
    return api_key


def reveal_api_key(vault: CredentialVault, api_key: APIKey) -> str:
    if not api_key.encrypted_key:
        raise APIKeyServiceError("该密钥创建时未保存密文，无法再次查看")
    return vault.decrypt(api_key.encrypted_key)


def touch_api_key_last_used(session: Session, key_id: UUID, when: datetime) -> None:
    session.execute(
        update(APIKey)
        .where(APIKey.id == key_id)
        .values(last_used_at=when)
        .execution_options(synchronize_session=False)
    )
    session.commit()


def delete_api_key(session: Session, api_key: APIKey) -> None:
    session.delete(api_key)
    session.commit()


__all__ = [
    "API_KEY_PREVIEW_LENGTH",
    "API_KEY_TOKEN_PREFIX",
    "APIKeyServiceError",
    "build_api_key_prefix",
    "create_api_key",
    "delete_api_key",
    "find_api_key_by_hash",
    "generate_api_key_token",
    "get_api_key_by_id",
    "list_api_keys_for_user",
    "normalize_model_list",
    "reveal_api_key",
    "set_model_access",
    "touch_api_key_last_used",
    "update_api_key",
]
