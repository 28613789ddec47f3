"""Pydantic settings loaded from .env, with conf.json overlay."""

from __future__ import annotations

import logging
import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict
from pydantic_settings import BaseSettings

BASE_DIR = Path(__file__).resolve().parent

# ---------------------------------------------------------------------------
# conf.json: designer runtime config (separate from .env secrets)
# ---------------------------------------------------------------------------


def get_designer_dir() -> Path:
    """Resolve the designer data directory. DESIGNER_DIR env var or ~/.config/case-designer."""
    d = os.environ.get("DESIGNER_DIR", "")
    return Path(d).expanduser() if d else Path.home() / ".config" / "case-designer"


class DesignerConfig(BaseModel):
    database_url: str = ""
    redis_url: str = ""
    log_level: str = ""
    log_file: str = ""
    cors_allow_all_origins: bool | None = None  # None = use Settings default
    llm_provider: str = ""
    llm_model: str = ""
    llm_base_url: str = ""
    llm_tool_mode: str = ""
    max_checkpoints: int | None = None


_logger = logging.getLogger(__name__)


def load_conf() -> DesignerConfig:
    """Load conf.json from the designer data directory."""
    conf_path = get_designer_dir() / "conf.json"
    if conf_path.exists():
        try:
            return DesignerConfig.model_validate_json(conf_path.read_text())
        except Exception:
            _logger.warning("Failed to parse %s, using defaults", conf_path, exc_info=True)
    return DesignerConfig()


def save_conf(config: DesignerConfig) -> None:
    """Save conf.json to the designer data directory."""
    designer_dir = get_designer_dir()
    designer_dir.mkdir(parents=True, exist_ok=True)
    (designer_dir / "conf.json").write_text(config.model_dump_json(indent=2))


# ---------------------------------------------------------------------------
# Bootstrap: load .env, load conf.json
# ---------------------------------------------------------------------------

_env_file = BASE_DIR / ".env"
load_dotenv(_env_file)
_conf = load_conf()

# ---------------------------------------------------------------------------
# Settings (pydantic-settings): .env / env vars override conf.json defaults
# ---------------------------------------------------------------------------


class Settings(BaseSettings):
    DEBUG: bool = False

    DATABASE_URL: str = _conf.database_url or f"sqlite:///{BASE_DIR / 'db.sqlite3'}"
    REDIS_URL: str = _conf.redis_url or "redis://localhost:6379/0"

    CORS_ALLOW_ALL_ORIGINS: bool = (
        _conf.cors_allow_all_origins if _conf.cors_allow_all_origins is not None else True
    )

    LOG_LEVEL: str = _conf.log_level or "INFO"
    LOG_FILE: str = _conf.log_file or ""
    LOG_MAX_BYTES: int = 10_485_760
    LOG_BACKUP_COUNT: int = 5

    LLM_PROVIDER: str = _conf.llm_provider or "openai"  # openai | anthropic | openai_compatible
    LLM_MODEL: str = _conf.llm_model or "gpt-4o"
    LLM_API_KEY: str = ""
    LLM_BASE_URL: str = _conf.llm_base_url or ""
    LLM_TEMPERATURE: float = 0.7
    LLM_MAX_TOKENS: int = 4000
    LLM_TOOL_MODE: str = _conf.llm_tool_mode or "native"  # native | text

    CHECKPOINT_DB_PATH: str = ""  # default: <DESIGNER_DIR>/chat_checkpoints.db
    MAX_CHECKPOINTS: int = _conf.max_checkpoints if _conf.max_checkpoints is not None else 10

    model_config = ConfigDict(
        env_file=str(BASE_DIR / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )


settings = Settings()
