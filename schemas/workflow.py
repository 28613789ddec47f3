"""Workflow model schemas — the JSON document stored on a case."""

from __future__ import annotations

import uuid
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


def new_node_id() -> str:
    return uuid.uuid4().hex[:12]


class Step(BaseModel):
    id: int | str = Field(default_factory=new_node_id)
    name: str
    type: str
    order: int | None = None
    viewId: int | None = None

    # Unknown keys survive a round trip; validate_for_save rejects step-level "fields".
    model_config = ConfigDict(extra="allow")


class Process(BaseModel):
    id: int | str = Field(default_factory=new_node_id)
    name: str
    order: int | None = None
    steps: list[Step] = []

    model_config = ConfigDict(extra="allow")


class Stage(BaseModel):
    id: int | str = Field(default_factory=new_node_id)
    name: str
    order: int | None = None
    processes: list[Process] = []

    model_config = ConfigDict(extra="allow")


class WorkflowModel(BaseModel):
    stages: list[Stage] = []

    model_config = ConfigDict(extra="allow")


class FieldReference(BaseModel):
    fieldId: int
    required: bool = False
    order: int | None = None

    model_config = ConfigDict(extra="allow")


class ViewLayout(BaseModel):
    type: Literal["form", "table", "card"] = "form"
    columns: int = 1


class ViewModel(BaseModel):
    fields: list[FieldReference] = []
    layout: ViewLayout = Field(default_factory=ViewLayout)

    model_config = ConfigDict(extra="allow")
