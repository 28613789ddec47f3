"""Designer accounts and their bearer API keys."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from database import Base


def new_key() -> str:
    return str(uuid.uuid4())


class UserProfile(Base):
    __tablename__ = "user_profiles"

    id: Mapped[int] = mapped_column(primary_key=True)
    username: Mapped[str] = mapped_column(String(150), unique=True)
    password_hash: Mapped[str] = mapped_column(String(255), default="")
    display_name: Mapped[str] = mapped_column(String(150), default="")
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())

    api_key: Mapped[APIKey | None] = relationship(
        "APIKey", back_populates="user", uselist=False, passive_deletes=True
    )

    @property
    def name(self) -> str:
        return self.display_name or self.username

    def __repr__(self):
        return f"<UserProfile {self.username}>"


class APIKey(Base):
    """One key per designer; logging in again rotates it."""

    __tablename__ = "api_keys"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(
        ForeignKey("user_profiles.id", ondelete="CASCADE"),
        unique=True,
    )
    key: Mapped[str] = mapped_column(String(36), default=new_key, unique=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    last_used_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    user: Mapped[UserProfile] = relationship("UserProfile", back_populates="api_key")

    def rotate(self) -> str:
        self.key = new_key()
        self.last_used_at = None
        return self.key

    def __repr__(self):
        return f"<APIKey for user_id={self.user_id}>"
