from __future__ import annotations

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text, text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, relationship

from .base import Base, TimestampMixin, UUIDPrimaryKeyMixin


class ProviderAccount(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """One user's credentialed link to an upstream provider."""

    __tablename__ = "provider_accounts"

    user_id = Column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    # ProviderKind value; kept as a plain string column so new kinds need no enum migration.
    provider: Mapped[str] = Column(String(32), nullable=False, index=True)
    label: Mapped[str | None] = Column(String(255), nullable=True)
    email: Mapped[str | None] = Column(String(255), nullable=True)
    encrypted_credential: Mapped[str] = Column(Text, nullable=False)
    is_active: Mapped[bool] = Column(
        Boolean, nullable=False, default=True, server_default=text("TRUE")
    )
    last_success_at = Column(DateTime(timezone=True), nullable=True)
    last_error_at = Column(DateTime(timezone=True), nullable=True)
    last_used_at = Column(DateTime(timezone=True), nullable=True)
    request_count: Mapped[int] = Column(
        Integer, nullable=False, default=0, server_default=text("0")
    )

    user: Mapped["User"] = relationship("User", back_populates="provider_accounts")


__all__ = ["ProviderAccount"]
