"""Case, stage/process/step and checkpoint schemas."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class CaseIn(BaseModel):
    name: str = Field(min_length=1)
    description: str = Field("", max_length=500)
    model: dict | None = None


class CaseUpdate(BaseModel):
    name: str | None = Field(None, min_length=1)
    description: str | None = Field(None, max_length=500)
    model: dict | None = None


class CaseOut(BaseModel):
    id: int
    name: str
    description: str
    model: dict
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = {"from_attributes": True}


# ── Workflow structure ─────────────────────────────────────────────────────────


class StageIn(BaseModel):
    name: str = Field(min_length=1)


class ProcessIn(BaseModel):
    name: str = Field(min_length=1)


class StepIn(BaseModel):
    name: str = Field(min_length=1)
    type: str


class StepUpdate(BaseModel):
    name: str | None = Field(None, min_length=1)
    type: str | None = None


class ReorderIn(BaseModel):
    start: int = Field(ge=0)
    end: int = Field(ge=0)


class StepMoveIn(BaseModel):
    source_stage_id: int | str
    source_process_id: int | str
    target_stage_id: int | str
    target_process_id: int | str
    source_index: int = Field(ge=0)
    target_index: int = Field(ge=0)


class StepFieldsIn(BaseModel):
    field_names: list[str]


class StepFieldOrderIn(BaseModel):
    field_ids: list[int]


# ── Checkpoints ────────────────────────────────────────────────────────────────


class CheckpointOut(BaseModel):
    id: int
    case_id: int
    description: str
    model: dict
    created_at: datetime | None = None

    model_config = {"from_attributes": True}
