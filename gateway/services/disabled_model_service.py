"""Per-user model enable/disable rows."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from gateway.catalog import ModelCatalog
from gateway.models import DisabledModel


def list_disabled_models(session: Session, user_id: UUID) -> set[str]:
    stmt = select(DisabledModel.model).where(DisabledModel.user_id == user_id)
    return set(session.execute(stmt).scalars().all())


def disabled_canonical_ids(session: Session, catalog: ModelCatalog, user_id: UUID) -> set[str]:
    """Stored rows may name an alias; fold them onto canonical ids."""
    return {catalog.resolve_alias(model) for model in list_disabled_models(session, user_id)}


def set_model_enabled(
    session: Session,
    catalog: ModelCatalog,
    *,
    user_id: UUID,
    model: str,
    enabled: bool,
) -> str:
    """
    Enable or disable a model for one user and return its canonical id.

    Enabling removes every row keyed by the canonical id or any alias;
    disabling keeps exactly one row keyed by the canonical id.
    """
    canonical_id = catalog.resolve_alias(model.strip())
    if enabled:
        session.execute(
            delete(DisabledModel).where(
                DisabledModel.user_id == user_id,
                DisabledModel.model.in_(catalog.lookup_keys(canonical_id)),
            )
        )
        session.commit()
        return canonical_id

    existing = session.execute(
        select(DisabledModel).where(
            DisabledModel.user_id == user_id, DisabledModel.model == canonical_id
        )
    ).scalars().first()
    if existing is not None:
        return canonical_id

    session.add(DisabledModel(user_id=user_id, model=canonical_id))
    try:
        session.commit()
    except IntegrityError:
        # 并发请求已写入同一行
        session.rollback()
    return canonical_id


__all__ = ["disabled_canonical_ids", "list_disabled_models", "set_model_enabled"]
