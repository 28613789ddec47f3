"""Case, Field and View models."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from database import Base


def _empty_model() -> dict:
    return {"stages": []}


def _empty_view_model() -> dict:
    return {"fields": [], "layout": {"type": "form", "columns": 1}}


class Case(Base):
    __tablename__ = "cases"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(Text)
    description: Mapped[str] = mapped_column(String(500))
    model: Mapped[dict] = mapped_column(JSON, default=_empty_model)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), onupdate=func.now()
    )

    fields: Mapped[list] = relationship(
        "Field", back_populates="case", cascade="all, delete-orphan", passive_deletes=True
    )
    views: Mapped[list] = relationship(
        "View", back_populates="case", cascade="all, delete-orphan", passive_deletes=True
    )
    checkpoints: Mapped[list] = relationship(
        "CaseCheckpoint", back_populates="case", cascade="all, delete-orphan", passive_deletes=True
    )

    def __repr__(self):
        return f"<Case {self.id} {self.name!r}>"


class Field(Base):
    __tablename__ = "fields"
    __table_args__ = (UniqueConstraint("name", "case_id", name="fields_name_caseid_unique"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    case_id: Mapped[int] = mapped_column(ForeignKey("cases.id", ondelete="CASCADE"), index=True)
    name: Mapped[str] = mapped_column(Text)
    type: Mapped[str] = mapped_column(String(50))
    primary: Mapped[bool] = mapped_column(Boolean, default=False)
    label: Mapped[str] = mapped_column(Text)
    description: Mapped[str] = mapped_column(Text, default="")
    order: Mapped[int] = mapped_column(Integer, default=0)
    options: Mapped[list] = mapped_column(JSON, default=list)
    required: Mapped[bool] = mapped_column(Boolean, default=False)
    default_value: Mapped[object | None] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), onupdate=func.now()
    )

    case: Mapped[Case] = relationship("Case", back_populates="fields")

    def __repr__(self):
        return f"<Field {self.name} ({self.type}) case={self.case_id}>"


class View(Base):
    __tablename__ = "views"

    id: Mapped[int] = mapped_column(primary_key=True)
    case_id: Mapped[int] = mapped_column(ForeignKey("cases.id", ondelete="CASCADE"), index=True)
    name: Mapped[str] = mapped_column(Text)
    model: Mapped[dict] = mapped_column(JSON, default=_empty_view_model)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), onupdate=func.now()
    )

    case: Mapped[Case] = relationship("Case", back_populates="views")

    def __repr__(self):
        return f"<View {self.id} {self.name!r} case={self.case_id}>"
