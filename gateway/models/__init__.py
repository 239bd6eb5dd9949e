from .api_key import APIKey
from .base import Base, TimestampMixin, UUIDPrimaryKeyMixin, as_utc, utcnow
from .disabled_model import DisabledModel
from .provider_account import ProviderAccount
from .usage_record import UsageRecord
from .user import User

__all__ = [
    "APIKey",
    "Base",
    "DisabledModel",
    "ProviderAccount",
    "TimestampMixin",
    "UUIDPrimaryKeyMixin",
    "UsageRecord",
    "User",
    "as_utc",
    "utcnow",
]
