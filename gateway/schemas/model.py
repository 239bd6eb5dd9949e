from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

from gateway.catalog import ModelMeta


class OpenAIModel(BaseModel):
    id: str
    object: Literal["model"] = "model"
    created: int
    owned_by: str


class OpenAIModelList(BaseModel):
    object: Literal["list"] = "list"
    data: list[OpenAIModel] = Field(default_factory=list)


class ModelStatusResponse(BaseModel):
    """Dashboard view of one canonical model for the current user."""

    id: str
    providers: list[str]
    aliases: list[str] = Field(default_factory=list)
    description: str | None = None
    meta: ModelMeta | None = None
    enabled: bool = True
    has_account: bool = False


class ModelEnabledRequest(BaseModel):
    model: str = Field(..., min_length=1)
    enabled: bool


__all__ = ["ModelEnabledRequest", "ModelStatusResponse", "OpenAIModel", "OpenAIModelList"]
