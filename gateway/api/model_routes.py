"""
模型目录与按用户启用/禁用
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from gateway.auth import SessionUser, require_session_user
from gateway.catalog import ModelCatalog
from gateway.deps import get_catalog, get_db
from gateway.errors import not_found
from gateway.schemas import ModelEnabledRequest, ModelStatusResponse
from gateway.services.account_service import active_provider_kinds
from gateway.services.disabled_model_service import disabled_canonical_ids, set_model_enabled

router = APIRouter(
    prefix="/api/models",
    tags=["models"],
    dependencies=[Depends(require_session_user)],
)


def _status_for(
    catalog: ModelCatalog, model_id: str, disabled: set[str], active_providers: set[str]
) -> ModelStatusResponse:
    model = catalog.get(model_id)
    if model is None:
        raise not_found(f"Model {model_id} not found")
    providers = [p.value for p in model.providers]
    return ModelStatusResponse(
        id=model.id,
        providers=providers,
        aliases=list(model.aliases),
        description=model.description,
        meta=model.meta,
        enabled=model.id not in disabled,
        has_account=any(p in active_providers for p in providers),
    )


@router.get("", response_model=list[ModelStatusResponse])
def list_models_endpoint(
    db: Session = Depends(get_db),
    catalog: ModelCatalog = Depends(get_catalog),
    current_user: SessionUser = Depends(require_session_user),
) -> list[ModelStatusResponse]:
    disabled = disabled_canonical_ids(db, catalog, current_user.id)
    active_providers = active_provider_kinds(db, current_user.id)
    return [
        _status_for(catalog, model_id, disabled, active_providers)
        for model_id in catalog.sorted_ids()
    ]


@router.put("/enabled", response_model=ModelStatusResponse)
def set_model_enabled_endpoint(
    payload: ModelEnabledRequest,
    db: Session = Depends(get_db),
    catalog: ModelCatalog = Depends(get_catalog),
    current_user: SessionUser = Depends(require_session_user),
) -> ModelStatusResponse:
    if not catalog.is_known(payload.model):
        raise not_found(f"Model {payload.model} not found")
    canonical_id = set_model_enabled(
        db, catalog, user_id=current_user.id, model=payload.model, enabled=payload.enabled
    )
    return _status_for(
        catalog,
        canonical_id,
        disabled_canonical_ids(db, catalog, current_user.id),
        active_provider_kinds(db, current_user.id),
    )


__all__ = ["router"]
