from __future__ import annotations

from sqlalchemy import Boolean, Column, String, text
from sqlalchemy.orm import Mapped, relationship

from .base import Base, TimestampMixin, UUIDPrimaryKeyMixin


class User(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """Dashboard user. Rows are created by the sign-in service; the gateway only reads them."""

    __tablename__ = "users"

    email: Mapped[str] = Column(String(255), nullable=False, unique=True, index=True)
    display_name: Mapped[str | None] = Column(String(255), nullable=True)
    is_active: Mapped[bool] = Column(
        Boolean, nullable=False, default=True, server_default=text("TRUE")
    )

    provider_accounts: Mapped[list["ProviderAccount"]] = relationship(
        "ProviderAccount",
        back_populates="user",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    api_keys: Mapped[list["APIKey"]] = relationship(
        "APIKey",
        back_populates="user",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


__all__ = ["User"]
