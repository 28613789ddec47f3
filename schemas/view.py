"""View schemas."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class ViewIn(BaseModel):
    case_id: int
    name: str = Field(min_length=1)
    model: dict | None = None


class ViewUpdate(BaseModel):
    name: str | None = Field(None, min_length=1)
    model: dict | None = None


class ViewOut(BaseModel):
    id: int
    case_id: int
    name: str
    model: dict
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = {"from_attributes": True}


class ViewFieldsIn(BaseModel):
    field_names: list[str]


class ViewFieldOrderIn(BaseModel):
    field_ids: list[int]


class ViewFieldRequiredIn(BaseModel):
    required: bool
