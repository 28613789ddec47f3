"""Auth and first-run setup schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field


class TokenRequest(BaseModel):
    username: str
    password: str


class TokenResponse(BaseModel):
    key: str


class SetupRequest(BaseModel):
    """First designer account plus optional runtime choices for conf.json."""

    username: str = Field(min_length=1)
    password: str = Field(min_length=4)
    display_name: str = Field("", max_length=150)
    database_url: str | None = Field(None, min_length=1)
    redis_url: str | None = Field(None, min_length=1)
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] | None = None
    llm_provider: Literal["openai", "anthropic", "openai_compatible"] | None = None
    llm_model: str | None = Field(None, min_length=1)
    llm_base_url: str | None = Field(None, min_length=1)
    llm_tool_mode: Literal["native", "text"] | None = None


class SetupStatusResponse(BaseModel):
    needs_setup: bool


class MeResponse(BaseModel):
    username: str
    display_name: str = ""
    key_last_used_at: datetime | None = None
