"""
API 密钥管理路由（控制台会话认证，始终限定在当前用户范围内）
"""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, status
from redis.asyncio import Redis
from sqlalchemy.orm import Session

from gateway.auth import SessionUser, require_session_user
from gateway.catalog import ModelCatalog
from gateway.deps import get_catalog, get_db, get_redis, get_vault
from gateway.errors import bad_request, not_found
from gateway.models import APIKey
from gateway.schemas import (
    APIKeyCreateRequest,
    APIKeyCreateResponse,
    APIKeyModelAccessRequest,
    APIKeyResponse,
    APIKeyRevealResponse,
    APIKeyUpdateRequest,
)
from gateway.services.api_key_cache import drop_cached_api_key
from gateway.services.api_key_service import (
    APIKeyServiceError,
    create_api_key,
    delete_api_key,
    get_api_key_by_id,
    list_api_keys_for_user,
    reveal_api_key,
    set_model_access,
    update_api_key,
)
from gateway.services.vault import CredentialVault

router = APIRouter(
    prefix="/api/api-keys",
    tags=["api-keys"],
    dependencies=[Depends(require_session_user)],
)


def _get_api_key_or_404(session: Session, key_id: UUID, *, user_id: UUID) -> APIKey:
    api_key = get_api_key_by_id(session, key_id, user_id=user_id)
    if api_key is None:
        raise not_found(f"API key {key_id} not found")
    return api_key


@router.get("", response_model=list[APIKeyResponse])
def list_api_keys_endpoint(
    db: Session = Depends(get_db),
    current_user: SessionUser = Depends(require_session_user),
) -> list[APIKeyResponse]:
    keys = list_api_keys_for_user(db, current_user.id)
    return [APIKeyResponse.model_validate(item) for item in keys]


@router.post("", response_model=APIKeyCreateResponse, status_code=status.HTTP_201_CREATED)
def create_api_key_endpoint(
    payload: APIKeyCreateRequest,
    db: Session = Depends(get_db),
    vault: CredentialVault = Depends(get_vault),
    catalog: ModelCatalog = Depends(get_catalog),
    current_user: SessionUser = Depends(require_session_user),
) -> APIKeyCreateResponse:
    try:
        api_key, token = create_api_key(
            db, vault, catalog, user_id=current_user.id, payload=payload
        )
    except APIKeyServiceError as exc:
        raise bad_request(str(exc))
    return APIKeyCreateResponse(
        **APIKeyResponse.model_validate(api_key).model_dump(),
        token=token,
    )


@router.patch("/{key_id}", response_model=APIKeyResponse)
async def update_api_key_endpoint(
    key_id: UUID,
    payload: APIKeyUpdateRequest,
    db: Session = Depends(get_db),
    redis: Redis = Depends(get_redis),
    current_user: SessionUser = Depends(require_session_user),
) -> APIKeyResponse:
    api_key = _get_api_key_or_404(db, key_id, user_id=current_user.id)
    updated = update_api_key(db, api_key=api_key, payload=payload)
    await drop_cached_api_key(redis, updated.key_hash)
    return APIKeyResponse.model_validate(updated)


@router.put("/{key_id}/model-access", response_model=APIKeyResponse)
async def set_model_access_endpoint(
    key_id: UUID,
    payload: APIKeyModelAccessRequest,
    db: Session = Depends(get_db),
    redis: Redis = Depends(get_redis),
    catalog: ModelCatalog = Depends(get_catalog),
    current_user: SessionUser = Depends(require_session_user),
) -> APIKeyResponse:
    api_key = _get_api_key_or_404(db, key_id, user_id=current_user.id)
    updated = set_model_access(
        db, catalog, api_key=api_key, mode=payload.mode, models=payload.models
    )
    await drop_cached_api_key(redis, updated.key_hash)
    return APIKeyResponse.model_validate(updated)


@router.get("/{key_id}/reveal", response_model=APIKeyRevealResponse)
def reveal_api_key_endpoint(
    key_id: UUID,
    db: Session = Depends(get_db),
    vault: CredentialVault = Depends(get_vault),
    current_user: SessionUser = Depends(require_session_user),
) -> APIKeyRevealResponse:
    api_key = _get_api_key_or_404(db, key_id, user_id=current_user.id)
    try:
        token = reveal_api_key(vault, api_key)
    except (APIKeyServiceError, ValueError) as exc:
        raise bad_request(str(exc))
    return APIKeyRevealResponse(id=api_key.id, token=token)


@router.delete("/{key_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_api_key_endpoint(
    key_id: UUID,
    db: Session = Depends(get_db),
    redis: Redis = Depends(get_redis),
    current_user: SessionUser = Depends(require_session_user),
) -> None:
    api_key = _get_api_key_or_404(db, key_id, user_id=current_user.id)
    key_hash = api_key.key_hash
    delete_api_key(db, api_key)
    await drop_cached_api_key(redis, key_hash)


__all__ = ["router"]
