"""Logging setup for the designer server and the stdio MCP bridge.

Every record gets a ``[Role][Case N][Tool name][LEVEL]`` prefix. The case and
tool parts come from context variables, so plain
``logging.getLogger(__name__)`` calls pick them up without extra arguments::

    from logging_config import log_context, setup_logging

    setup_logging("Server")        # or "MCP"

    with log_context(case_id=42, tool_name="saveCase"):
        logger.info("Saving")      # ... [Server][Case 42][Tool saveCase][INFO] ...
"""

from __future__ import annotations

import logging
import logging.handlers
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from pathlib import Path

case_id_var: ContextVar[str] = ContextVar("case_id_var", default="")
tool_name_var: ContextVar[str] = ContextVar("tool_name_var", default="")

# (record attribute, context var, prefix label)
CONTEXT_FIELDS = (
    ("case_id", case_id_var, "Case"),
    ("tool_name", tool_name_var, "Tool"),
)

STREAM_HANDLER_NAME = "_designer_stream"
FILE_HANDLER_NAME = "_designer_file"

NOISY_LOGGERS = ("httpx", "httpcore", "urllib3", "openai", "anthropic", "websockets")


@contextmanager
def log_context(case_id: int | str | None = None, tool_name: str | None = None):
    """Set the case/tool context for the enclosed block, restoring it afterwards.

    ``None`` leaves the current value untouched.
    """
    tokens = []
    if case_id is not None:
        tokens.append((case_id_var, case_id_var.set(str(case_id))))
    if tool_name is not None:
        tokens.append((tool_name_var, tool_name_var.set(tool_name)))
    try:
        yield
    finally:
        for var, token in reversed(tokens):
            var.reset(token)


class ContextFilter(logging.Filter):
    """Injects ``role`` plus the case/tool context onto each record."""

    def __init__(self, role: str) -> None:
        super().__init__()
        self.role = role

    def filter(self, record: logging.LogRecord) -> bool:
        record.role = self.role  # type: ignore[attr-defined]
        for attr, var, _ in CONTEXT_FIELDS:
            setattr(record, attr, var.get(""))
        return True


class ContextFormatter(logging.Formatter):
    """Produces lines like:

    2026-02-17 14:30:00 [Server][INFO] services.designer:88 - Added stage Intake to case 3
    2026-02-17 14:30:01 [Server][Case 3][Tool saveView][INFO] services.tools:210 - saveView created view 7
    """

    def format(self, record: logging.LogRecord) -> str:
        role = getattr(record, "role", "")
        parts = [f"[{role}]"] if role else []
        for attr, _, label in CONTEXT_FIELDS:
            value = getattr(record, attr, "")
            if value:
                parts.append(f"[{label} {value}]")
        parts.append(f"[{record.levelname}]")

        formatted = (
            f"{self.formatTime(record, self.datefmt)} {''.join(parts)} "
            f"{record.name}:{record.lineno} - {record.getMessage()}"
        )
        if record.exc_info and not record.exc_text:
            record.exc_text = self.formatException(record.exc_info)
        if record.exc_text:
            formatted += "\n" + record.exc_text
        if record.stack_info:
            formatted += "\n" + record.stack_info
        return formatted


def _attach(root: logging.Logger, handler: logging.Handler, name: str, role: str) -> None:
    handler.name = name
    handler.addFilter(ContextFilter(role))
    handler.setFormatter(ContextFormatter(datefmt="%Y-%m-%d %H:%M:%S"))
    root.addHandler(handler)


def setup_logging(role: str) -> None:
    """Configure the root logger for *role* (``"Server"`` or ``"MCP"``).

    Logs go to stderr, and additionally to a rotating file when
    ``settings.LOG_FILE`` is set. The MCP bridge talks JSON-RPC over stdout,
    so nothing here may write to stdout. Calling it twice is a no-op.
    """
    from config import settings

    root = logging.getLogger()
    if any(getattr(h, "name", None) == STREAM_HANDLER_NAME for h in root.handlers):
        return

    root.setLevel(getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))
    _attach(root, logging.StreamHandler(sys.stderr), STREAM_HANDLER_NAME, role)

    if settings.LOG_FILE:
        log_path = Path(settings.LOG_FILE)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            str(log_path),
            maxBytes=settings.LOG_MAX_BYTES,
            backupCount=settings.LOG_BACKUP_COUNT,
            encoding="utf-8",
        )
        _attach(root, file_handler, FILE_HANDLER_NAME, role)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    if role == "Server":
        # uvicorn installs its own handlers; route them through root instead
        for name in ("uvicorn", "uvicorn.access", "uvicorn.error"):
            uv_logger = logging.getLogger(name)
            uv_logger.handlers.clear()
            uv_logger.propagate = True
