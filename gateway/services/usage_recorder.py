"""
Usage records: one row per dispatched request, plus dashboard read models.

`append` is called on the request path and must never fail the request, so
database errors are logged and rolled back instead of raised.
"""

from __future__ import annotations

import math
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date, datetime
from uuid import UUID

from sqlalchemy import case, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from gateway.logging_config import logger
from gateway.models import UsageRecord, utcnow
from gateway.schemas.usage import (
    DurationPercentiles,
    UsageBucket,
    UsageGroupBy,
    UsagePeriod,
    UsageSummary,
)


@dataclass
class UsageEntry:
    user_id: UUID
    model: str
    status_code: int
    duration_ms: int
    provider: str | None = None
    provider_account_id: UUID | None = None
    api_key_id: UUID | None = None
    input_tokens: int = 0
    output_tokens: int = 0


def _percentile(sorted_values: Sequence[int], pct: int) -> int:
    """Nearest-rank percentile; 0 for an empty sample."""
    if not sorted_values:
        return 0
    rank = max(math.ceil(pct / 100 * len(sorted_values)), 1)
    return int(sorted_values[rank - 1])


_ERROR_FLAG = case((UsageRecord.status_code >= 400, 1), else_=0)
_SUCCESS_FLAG = case((UsageRecord.status_code < 400, 1), else_=0)


class UsageRecorder:
    def __init__(self, db: Session) -> None:
        self.db = db

    def append(self, entry: UsageEntry) -> UsageRecord | None:
        record = UsageRecord(
            user_id=entry.user_id,
            provider_account_id=entry.provider_account_id,
            api_key_id=entry.api_key_id,
            model=entry.model,
            provider=entry.provider,
            input_tokens=max(entry.input_tokens, 0),
            output_tokens=max(entry.output_tokens, 0),
            status_code=entry.status_code,
            duration_ms=max(entry.duration_ms, 0),
        )
        try:
            self.db.add(record)
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            logger.exception(
                "Failed to record usage (user=%s model=%s status=%s)",
                entry.user_id,
                entry.model,
                entry.status_code,
            )
            return None
        return record

    def _window(self, stmt, user_id: UUID, since: datetime):
        return stmt.where(UsageRecord.user_id == user_id, UsageRecord.created_at >= since)

    def aggregate(
        self, user_id: UUID, group_by: UsageGroupBy, since: datetime
    ) -> list[UsageBucket]:
        key_col = _bucket_column(group_by)
        stmt = self._window(
            select(
                key_col,
                func.count(UsageRecord.id).label("requests"),
                func.coalesce(func.sum(_ERROR_FLAG), 0).label("errors"),
                func.coalesce(func.sum(UsageRecord.input_tokens), 0).label("input_tokens"),
                func.coalesce(func.sum(UsageRecord.output_tokens), 0).label("output_tokens"),
            ),
            user_id,
            since,
        ).group_by(key_col)

        buckets = [
            UsageBucket(
                key=_bucket_key(row.key, group_by),
                requests=int(row.requests),
                errors=int(row.errors),
                input_tokens=int(row.input_tokens),
                output_tokens=int(row.output_tokens),
            )
            for row in self.db.execute(stmt)
        ]
        return sorted(buckets, key=lambda bucket: bucket.key)

    def summarize(
        self, user_id: UUID, period: UsagePeriod, *, now: datetime | None = None
    ) -> UsageSummary:
        now = now or utcnow()
        since = now - period.duration
        totals = self.db.execute(
            self._window(
                select(
                    func.count(UsageRecord.id).label("requests"),
                    func.coalesce(func.sum(_SUCCESS_FLAG), 0).label("successes"),
                    func.coalesce(func.sum(UsageRecord.input_tokens), 0).label("input_tokens"),
                    func.coalesce(func.sum(UsageRecord.output_tokens), 0).label("output_tokens"),
                    func.coalesce(func.sum(UsageRecord.duration_ms), 0).label("duration_sum"),
                ),
                user_id,
                since,
            )
        ).one()

        summary = UsageSummary(period=period)
        requests = int(totals.requests or 0)
        if not requests:
            return summary

        # 分位数需要有序样本，只取 duration 一列
        durations = list(
            self.db.execute(
                self._window(select(UsageRecord.duration_ms), user_id, since).order_by(
                    UsageRecord.duration_ms.asc()
                )
            ).scalars()
        )
        summary.total_requests = requests
        summary.total_input_tokens = int(totals.input_tokens)
        summary.total_output_tokens = int(totals.output_tokens)
        summary.success_rate = round(int(totals.successes) * 100 / requests, 2)
        summary.avg_duration_ms = round(int(totals.duration_sum) / requests)
        summary.duration_percentiles = DurationPercentiles(
            p50=_percentile(durations, 50),
            p90=_percentile(durations, 90),
            p95=_percentile(durations, 95),
            p99=_percentile(durations, 99),
        )
        return summary


def _bucket_column(group_by: UsageGroupBy):
    if group_by is UsageGroupBy.MODEL:
        return UsageRecord.model.label("key")
    if group_by is UsageGroupBy.ACCOUNT:
        return UsageRecord.provider_account_id.label("key")
    if group_by is UsageGroupBy.STATUS:
        return UsageRecord.status_code.label("key")
    return func.date(UsageRecord.created_at).label("key")


def _bucket_key(value, group_by: UsageGroupBy) -> str:
    if value is None:
        return "none" if group_by is UsageGroupBy.ACCOUNT else "unknown"
    if isinstance(value, date):
        # PostgreSQL 返回 date，SQLite 返回 'YYYY-MM-DD' 字符串
        return value.isoformat()
    return str(value)


__all__ = ["UsageEntry", "UsageRecorder"]
