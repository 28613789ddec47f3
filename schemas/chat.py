"""Chat schemas."""

from __future__ import annotations

from pydantic import BaseModel, Field


class ChatRequest(BaseModel):
    prompt: str = Field(min_length=1)
    system_context: str | None = None


class ChatMessageOut(BaseModel):
    role: str
    content: str | list
    name: str | None = None
    tool_calls: list[dict] | None = None
