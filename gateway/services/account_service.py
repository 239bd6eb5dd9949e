from __future__ import annotations

from uuid import UUID

from sqlalchemy import Select, select
from sqlalchemy.orm import Session

from gateway.models import ProviderAccount
from gateway.schemas.provider_account import (
    ProviderAccountCreateRequest,
    ProviderAccountUpdateRequest,
)
from gateway.services.vault import CredentialVault


def list_accounts_for_user(session: Session, user_id: UUID) -> list[ProviderAccount]:
    stmt: Select[tuple[ProviderAccount]] = (
        select(ProviderAccount)
        .where(ProviderAccount.user_id == user_id)
        .order_by(ProviderAccount.provider.asc(), ProviderAccount.created_at.asc())
    )
    return list(session.execute(stmt).scalars().all())


def get_account_by_id(
    session: Session, account_id: UUID | str, *, user_id: UUID
) -> ProviderAccount | None:
    try:
        account_uuid = UUID(str(account_id))
    except ValueError:
        return None
    stmt: Select[tuple[ProviderAccount]] = select(ProviderAccount).where(
        ProviderAccount.id == account_uuid,
        ProviderAccount.user_id == user_id,
    )
    return session.execute(stmt).scalars().first()


def create_account(
    session: Session,
    vault: CredentialVault,
    *,
    user_id: UUID,
    payload: ProviderAccountCreateRequest,
) -> ProviderAccount:
    account = ProviderAccount(
        user_id=user_id,
        provider=payload.provider.value,
        label=payload.label,
        email=payload.email,
        encrypted_credential=vault.encrypt(payload.credential),
    )
    session.add(account)
    session.commit()
    session.refresh(account)
    return account


def update_account(
    session: Session, *, account: ProviderAccount, payload: ProviderAccountUpdateRequest
) -> ProviderAccount:
    if payload.is_active is not None:
        account.is_active = payload.is_active
    if payload.label is not None:
        account.label = payload.label
    session.add(account)
    session.commit()
    session.refresh(account)
    return account


def delete_account(session: Session, account: ProviderAccount) -> None:
    session.delete(account)
    session.commit()


def active_provider_kinds(session: Session, user_id: UUID) -> set[str]:
    """Provider values for which the user has at least one active account."""
    stmt = (
        select(ProviderAccount.provider)
        .where(ProviderAccount.user_id == user_id, ProviderAccount.is_active.is_(True))
        .distinct()
    )
    return set(session.execute(stmt).scalars().all())


__all__ = [
    "active_provider_kinds",
    "create_account",
    "delete_account",
    "get_account_by_id",
    "list_accounts_for_user",
    "update_account",
]
