from __future__ import annotations

from sqlalchemy import Column, ForeignKey, String, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped

from .base import Base, TimestampMixin, UUIDPrimaryKeyMixin


class DisabledModel(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """Per-user suppression of a canonical model, independent of API key access modes."""

    __tablename__ = "disabled_models"
    __table_args__ = (
        UniqueConstraint("user_id", "model", name="uq_disabled_models_user_model"),
    )

    user_id = Column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    model: Mapped[str] = Column(String(255), nullable=False)


__all__ = ["DisabledModel"]
