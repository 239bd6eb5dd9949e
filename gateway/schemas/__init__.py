from .api_key import (
    APIKeyCreateRequest,
    APIKeyCreateResponse,
    APIKeyExpiry,
    APIKeyModelAccessRequest,
    APIKeyResponse,
    APIKeyRevealResponse,
    APIKeyUpdateRequest,
    ModelAccessMode,
)
from .chat import ChatCompletionRequest
from .model import ModelEnabledRequest, ModelStatusResponse, OpenAIModel, OpenAIModelList
from .provider_account import (
    HealthIndicator,
    ProviderAccountCreateRequest,
    ProviderAccountResponse,
    ProviderAccountUpdateRequest,
)
from .usage import DurationPercentiles, UsageBucket, UsageGroupBy, UsagePeriod, UsageSummary

__all__ = [
    "APIKeyCreateRequest",
    "APIKeyCreateResponse",
    "APIKeyExpiry",
    "APIKeyModelAccessRequest",
    "APIKeyResponse",
    "APIKeyRevealResponse",
    "APIKeyUpdateRequest",
    "ChatCompletionRequest",
    "DurationPercentiles",
    "HealthIndicator",
    "ModelAccessMode",
    "ModelEnabledRequest",
    "ModelStatusResponse",
    "OpenAIModel",
    "OpenAIModelList",
    "ProviderAccountCreateRequest",
    "ProviderAccountResponse",
    "ProviderAccountUpdateRequest",
    "UsageBucket",
    "UsageGroupBy",
    "UsagePeriod",
    "UsageSummary",
]
