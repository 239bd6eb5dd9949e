from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from gateway.auth import SessionUser, require_session_user
from gateway.deps import get_db
from gateway.models import utcnow
from gateway.schemas import UsageBucket, UsageGroupBy, UsagePeriod, UsageSummary
from gateway.services.usage_recorder import UsageRecorder

router = APIRouter(
    prefix="/api/usage",
    tags=["usage"],
    dependencies=[Depends(require_session_user)],
)


@router.get("/summary", response_model=UsageSummary)
def usage_summary_endpoint(
    period: UsagePeriod = Query(default=UsagePeriod.HOUR_24),
    db: Session = Depends(get_db),
    current_user: SessionUser = Depends(require_session_user),
) -> UsageSummary:
    return UsageRecorder(db).summarize(current_user.id, period)


@router.get("/aggregate", response_model=list[UsageBucket])
def usage_aggregate_endpoint(
    group_by: UsageGroupBy = Query(default=UsageGroupBy.MODEL),
    period: UsagePeriod = Query(default=UsagePeriod.HOUR_24),
    db: Session = Depends(get_db),
    current_user: SessionUser = Depends(require_session_user),
) -> list[UsageBucket]:
    since = utcnow() - period.duration
    return UsageRecorder(db).aggregate(current_user.id, group_by, since)


__all__ = ["router"]
