"""Field schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class FieldIn(BaseModel):
    case_id: int
    label: str = Field(min_length=1)
    type: str
    name: str | None = None
    description: str | None = None
    order: int = 0
    options: list[str] = []
    required: bool = False
    primary: bool = False
    default_value: Any = None


class FieldUpdate(BaseModel):
    name: str | None = None
    label: str | None = Field(None, min_length=1)
    type: str | None = None
    description: str | None = None
    order: int | None = None
    options: list[str] | None = None
    required: bool | None = None
    primary: bool | None = None
    default_value: Any = None


class FieldOut(BaseModel):
    id: int
    case_id: int
    name: str
    type: str
    label: str
    description: str = ""
    order: int = 0
    options: list = []
    required: bool = False
    primary: bool = False
    default_value: Any = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = {"from_attributes": True}


class FieldReorderIn(BaseModel):
    case_id: int
    start: int = Field(ge=0)
    end: int = Field(ge=0)
