from __future__ import annotations

from datetime import timedelta
from enum import Enum

from pydantic import BaseModel, Field


class UsagePeriod(str, Enum):
    MIN_5 = "5m"
    MIN_15 = "15m"
    MIN_30 = "30m"
    HOUR_1 = "1h"
    HOUR_6 = "6h"
    HOUR_24 = "24h"
    DAY_7 = "7d"
    DAY_30 = "30d"
    DAY_90 = "90d"

    @property
    def duration(self) -> timedelta:
        amount, unit = int(self.value[:-1]), self.value[-1]
        if unit == "m":
            return timedelta(minutes=amount)
        if unit == "h":
            return timedelta(hours=amount)
        return timedelta(days=amount)


class UsageGroupBy(str, Enum):
    MODEL = "model"
    ACCOUNT = "account"
    STATUS = "status"
    DAY = "day"


class UsageBucket(BaseModel):
    key: str
    requests: int = 0
    errors: int = 0
    input_tokens: int = 0
    output_tokens: int = 0


class DurationPercentiles(BaseModel):
    p50: int = 0
    p90: int = 0
    p95: int = 0
    p99: int = 0


class UsageSummary(BaseModel):
    period: UsagePeriod
    total_requests: int = 0
    total_input_tokens: int = 0
    total_output_tokens: int = 0
    success_rate: float = Field(default=0.0, description="0-100，两位小数")
    avg_duration_ms: int = 0
    duration_percentiles: DurationPercentiles = Field(default_factory=DurationPercentiles)


__all__ = [
    "DurationPercentiles",
    "UsageBucket",
    "UsageGroupBy",
    "UsagePeriod",
    "UsageSummary",
]
