"""
Provider 账号管理路由
"""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from gateway.auth import SessionUser, require_session_user
from gateway.deps import get_db, get_vault
from gateway.errors import not_found
from gateway.models import ProviderAccount, utcnow
from gateway.routing.account_pool import health_indicator
from gateway.schemas import (
    ProviderAccountCreateRequest,
    ProviderAccountResponse,
    ProviderAccountUpdateRequest,
)
from gateway.services.account_service import (
    create_account,
    delete_account,
    get_account_by_id,
    list_accounts_for_user,
    update_account,
)
from gateway.services.vault import CredentialVault

router = APIRouter(
    prefix="/api/accounts",
    tags=["accounts"],
    dependencies=[Depends(require_session_user)],
)


def _to_response(account: ProviderAccount) -> ProviderAccountResponse:
    response = ProviderAccountResponse.model_validate(account)
    response.health = health_indicator(account.last_error_at, account.last_success_at, utcnow())
    return response


def _get_account_or_404(session: Session, account_id: UUID, *, user_id: UUID) -> ProviderAccount:
    account = get_account_by_id(session, account_id, user_id=user_id)
    if account is None:
        raise not_found(f"Account {account_id} not found")
    return account


@router.get("", response_model=list[ProviderAccountResponse])
def list_accounts_endpoint(
    db: Session = Depends(get_db),
    current_user: SessionUser = Depends(require_session_user),
) -> list[ProviderAccountResponse]:
    return [_to_response(item) for item in list_accounts_for_user(db, current_user.id)]


@router.post("", response_model=ProviderAccountResponse, status_code=status.HTTP_201_CREATED)
def create_account_endpoint(
    payload: ProviderAccountCreateRequest,
    db: Session = Depends(get_db),
    vault: CredentialVault = Depends(get_vault),
    current_user: SessionUser = Depends(require_session_user),
) -> ProviderAccountResponse:
    account = create_account(db, vault, user_id=current_user.id, payload=payload)
    return _to_response(account)


@router.patch("/{account_id}", response_model=ProviderAccountResponse)
def update_account_endpoint(
    account_id: UUID,
    payload: ProviderAccountUpdateRequest,
    db: Session = Depends(get_db),
    current_user: SessionUser = Depends(require_session_user),
) -> ProviderAccountResponse:
    account = _get_account_or_404(db, account_id, user_id=current_user.id)
    return _to_response(update_account(db, account=account, payload=payload))


@router.delete("/{account_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_account_endpoint(
    account_id: UUID,
    db: Session = Depends(get_db),
    current_user: SessionUser = Depends(require_session_user),
) -> None:
    account = _get_account_or_404(db, account_id, user_id=current_user.id)
    delete_account(db, account)


__all__ = ["router"]
