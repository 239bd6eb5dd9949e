from __future__ import annotations

from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String, text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped

from .base import Base, UUIDPrimaryKeyMixin, utcnow


class UsageRecord(UUIDPrimaryKeyMixin, Base):
    """Immutable outcome of one dispatched request. Never updated after insert."""

    __tablename__ = "usage_records"
    __table_args__ = (
        Index("ix_usage_records_user_created", "user_id", "created_at"),
    )

    user_id = Column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    provider_account_id = Column(
        UUID(as_uuid=True),
        ForeignKey("provider_accounts.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    api_key_id = Column(
        UUID(as_uuid=True),
        ForeignKey("api_keys.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    model: Mapped[str] = Column(String(255), nullable=False)
    provider: Mapped[str | None] = Column(String(32), nullable=True)
    input_tokens: Mapped[int] = Column(Integer, nullable=False, default=0, server_default=text("0"))
    output_tokens: Mapped[int] = Column(Integer, nullable=False, default=0, server_default=text("0"))
    status_code: Mapped[int] = Column(Integer, nullable=False)
    duration_ms: Mapped[int] = Column(Integer, nullable=False, default=0, server_default=text("0"))
    created_at: Mapped[datetime] = Column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
    )


__all__ = ["UsageRecord"]
