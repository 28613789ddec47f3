"""LLM-assisted designer chat, streamed as server-sent events.

Two modes, picked by ``LLM_TOOL_MODE``:

- ``native``: a LangGraph ReAct agent over the registered tools. Conversation
  memory lives in a SQLite checkpointer, one thread per case
  (``case:{id}``) or per user for the "new case" chat (``user:{id}:new``).
- ``text``: the raw model is streamed and ``TOOL:/PARAMS:`` blocks in its
  output are executed by ``TextToolStreamProcessor``. Text mode keeps no
  conversation memory.

Every stream starts with ``{"init": true}`` and ends with ``{"done": true}``.
"""

from __future__ import annotations

import json
import logging
import threading
from collections.abc import Iterator
from typing import Any

from langchain_core.messages import AIMessage, HumanMessage, SystemMessage, ToolMessage
from langchain_core.tools import StructuredTool, ToolException
from langgraph.prebuilt import create_react_agent
from sqlalchemy.orm import Session

from config import get_designer_dir, settings
from database import SessionLocal
from logging_config import log_context
from models.case import Case
from services.llm import create_llm
from services.prompts import build_system_prompt
from services.tool_calls import TextToolStreamProcessor, get_tools_context
from services.tools import ToolError, execute_tool, get_tools

logger = logging.getLogger(__name__)

# Lazy singleton for SqliteSaver checkpointer (conversation memory)
_checkpointer = None
_checkpointer_lock = threading.Lock()


def _get_checkpointer():
    global _checkpointer
    if _checkpointer is None:
        with _checkpointer_lock:
            if _checkpointer is None:
                import sqlite3
                from langgraph.checkpoint.sqlite import SqliteSaver

                db_path = settings.CHECKPOINT_DB_PATH
                if not db_path:
                    get_designer_dir().mkdir(parents=True, exist_ok=True)
                    db_path = str(get_designer_dir() / "chat_checkpoints.db")
                conn = sqlite3.connect(db_path, check_same_thread=False)
                saver = SqliteSaver(conn)
                saver.setup()
                _checkpointer = saver
                logger.info("Initialized SqliteSaver checkpointer at %s", db_path)
    return _checkpointer


def thread_id_for(user_id: int, case_id: int | None = None) -> str:
    if case_id is not None:
        return f"case:{case_id}"
    return f"user:{user_id}:new"


def sse(event: dict) -> str:
    return f"data: {json.dumps(event, default=str)}\n\n"


def _loads(content: Any) -> Any:
    if not isinstance(content, str):
        return content
    try:
        return json.loads(content)
    except json.JSONDecodeError:
        return content


def _message_text(message: AIMessage) -> str:
    content = message.content
    if isinstance(content, str):
        return content
    # Anthropic-style content blocks
    return "".join(
        block.get("text", "") for block in content if isinstance(block, dict) and block.get("type") == "text"
    )


# ---------------------------------------------------------------------------
# Tools
# ---------------------------------------------------------------------------


def build_langchain_tools(db: Session) -> list[StructuredTool]:
    """Wrap each registered designer tool as a LangChain tool bound to *db*."""

    def make(designer_tool):
        def run(**kwargs) -> str:
            try:
                result = designer_tool.execute(db, kwargs)
            except ToolError as exc:
                raise ToolException(str(exc)) from exc
            return json.dumps(result, default=str)

        return StructuredTool.from_function(
            func=run,
            name=designer_tool.name,
            description=designer_tool.description,
            args_schema=designer_tool.parameters,
            handle_tool_error=True,
        )

    return [make(t) for t in get_tools()]


# ---------------------------------------------------------------------------
# Event producers
# ---------------------------------------------------------------------------


def _update_events(update: dict) -> Iterator[dict]:
    """Translate one ``stream_mode="updates"`` chunk into chat events."""
    for node_output in update.values():
        if not isinstance(node_output, dict):
            continue
        for message in node_output.get("messages", []):
            if isinstance(message, AIMessage):
                text = _message_text(message)
                if text:
                    yield {"text": text}
                for call in message.tool_calls or []:
                    yield {"text": f"\nExecuting {call['name']}...\n"}
            elif isinstance(message, ToolMessage):
                name = message.name or "tool"
                if getattr(message, "status", "success") == "error":
                    error = str(message.content)
                    yield {"text": f"\nError executing {name}: {error}\n", "error": error}
                else:
                    yield {
                        "text": f"\nSuccessfully executed {name}.\n",
                        "toolResult": _loads(message.content),
                    }


def _agent_events(db: Session, prompt: str, system_prompt: str, thread_id: str) -> Iterator[dict]:
    try:
        agent = create_react_agent(
            model=create_llm(),
            tools=build_langchain_tools(db),
            prompt=SystemMessage(content=system_prompt),
            checkpointer=_get_checkpointer(),
        )
        config = {"configurable": {"thread_id": thread_id}}
        logger.info("Chat turn on thread %s", thread_id)
        for update in agent.stream(
            {"messages": [HumanMessage(content=prompt)]},
            config=config,
            stream_mode="updates",
        ):
            yield from _update_events(update)
    except Exception as exc:
        logger.exception("Chat stream failed on thread %s", thread_id)
        yield {"error": str(exc) or "Stream processing error"}
    yield {"done": True}


def _text_events(db: Session, prompt: str, system_prompt: str) -> Iterator[dict]:
    tools = get_tools()
    processor = TextToolStreamProcessor(lambda name, params: execute_tool(db, name, params))

    def chunks() -> Iterator[str]:
        llm = create_llm()
        messages = [
            SystemMessage(content=f"{system_prompt}\n\n{get_tools_context(tools)}"),
            HumanMessage(content=prompt),
        ]
        for chunk in llm.stream(messages):
            text = _message_text(chunk)
            if text:
                yield text

    yield from processor.process(chunks())


def _in_case_context(case_id: int | None, events: Iterator[dict]) -> Iterator[dict]:
    """Advance *events* with the case set in the log context.

    The context is entered and left around each step: the response body is
    iterated in a fresh copy of the context for every chunk.
    """
    iterator = iter(events)
    while True:
        with log_context(case_id=case_id):
            try:
                event = next(iterator)
            except StopIteration:
                return
        yield event


def stream_chat(
    prompt: str,
    *,
    user_id: int,
    case_id: int | None = None,
    system_context: str | None = None,
) -> Iterator[str]:
    """Yield SSE frames for one chat turn.

    Opens its own session: the stream outlives the request's dependencies.
    """
    db = SessionLocal()
    try:
        yield sse({"init": True})
        with log_context(case_id=case_id):
            case = db.get(Case, case_id) if case_id is not None else None
            system_prompt = build_system_prompt(db, case, system_context)
        if settings.LLM_TOOL_MODE == "text":
            events = _text_events(db, prompt, system_prompt)
        else:
            events = _agent_events(db, prompt, system_prompt, thread_id_for(user_id, case_id))
        for event in _in_case_context(case_id, events):
            yield sse(event)
    finally:
        db.close()


# ---------------------------------------------------------------------------
# History
# ---------------------------------------------------------------------------


def serialize_message(message) -> dict:
    data = {"role": message.type, "content": message.content}
    if isinstance(message, AIMessage) and message.tool_calls:
        data["tool_calls"] = [{"name": c["name"], "args": c["args"]} for c in message.tool_calls]
    if isinstance(message, ToolMessage):
        data["name"] = message.name
    return data


def get_history(thread_id: str) -> list[dict]:
    saved = _get_checkpointer().get_tuple({"configurable": {"thread_id": thread_id}})
    if saved is None:
        return []
    messages = saved.checkpoint.get("channel_values", {}).get("messages", [])
    return [serialize_message(m) for m in messages]


def clear_history(thread_id: str) -> None:
    _get_checkpointer().delete_thread(thread_id)
    logger.info("Cleared chat history for thread %s", thread_id)
