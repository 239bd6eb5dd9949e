from __future__ import annotations

from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, String, Text, UniqueConstraint, text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, relationship

from .base import Base, TimestampMixin, UUIDPrimaryKeyMixin


class APIKey(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """User-owned API key used to call the /v1 surface."""

    __tablename__ = "api_keys"
    __table_args__ = (UniqueConstraint("key_hash", name="uq_api_keys_key_hash"),)

    user_id = Column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = Column(String(255), nullable=False)
    key_hash: Mapped[str] = Column(String(128), nullable=False)
    key_prefix: Mapped[str] = Column(String(32), nullable=False)
    encrypted_key: Mapped[str | None] = Column(Text, nullable=True)
    is_active: Mapped[bool] = Column(
        Boolean, nullable=False, default=True, server_default=text("TRUE")
    )
    expiry_type: Mapped[str] = Column(
        String(16), nullable=False, default="never", server_default=text("'never'")
    )
    expires_at = Column(DateTime(timezone=True), nullable=True)
    last_used_at = Column(DateTime(timezone=True), nullable=True)
    model_access_mode: Mapped[str] = Column(
        String(16), nullable=False, default="all", server_default=text("'all'")
    )
    model_access_list: Mapped[list[str]] = Column(JSON, nullable=False, default=list)

    user: Mapped["User"] = relationship("User", back_populates="api_keys")


__all__ = ["APIKey"]
