from __future__ import annotations

from datetime import datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator

from gateway.provider.kinds import ProviderKind


class HealthIndicator(str, Enum):
    NORMAL = "normal"
    WARNING = "warning"
    ERROR = "error"


class ProviderAccountCreateRequest(BaseModel):
    provider: ProviderKind
    credential: str = Field(..., min_length=1, description="OAuth access token 或 API key，入库前加密")
    label: str | None = Field(default=None, max_length=255)
    email: str | None = Field(default=None, max_length=255)


class ProviderAccountUpdateRequest(BaseModel):
    is_active: bool | None = None
    label: str | None = Field(default=None, max_length=255)

    @model_validator(mode="after")
    def ensure_any_field(self) -> "ProviderAccountUpdateRequest":
        if self.is_active is None and self.label is None:
            raise ValueError("至少需要提供一个可更新字段")
        return self


class ProviderAccountResponse(BaseModel):
    id: UUID
    provider: ProviderKind
    label: str | None = None
    email: str | None = None
    is_active: bool
    last_success_at: datetime | None = None
    last_error_at: datetime | None = None
    last_used_at: datetime | None = None
    request_count: int = 0
    health: HealthIndicator = HealthIndicator.NORMAL
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


__all__ = [
    "HealthIndicator",
    "ProviderAccountCreateRequest",
    "ProviderAccountResponse",
    "ProviderAccountUpdateRequest",
]
