"""Plain-text tool-call protocol for models without native function calling.

The model is told to answer with::

    TOOL: saveField
    PARAMS: {"name": "email", ...}

optionally wrapped in a fenced block (```tool_code). ``TextToolStreamProcessor``
watches the streamed text, runs each complete call, and turns everything else
into ``{"text": ...}`` events.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)

MARKER = "TOOL:"

_TOOL_RE = re.compile(r"TOOL:\s*(\w+)\s+PARAMS:\s*(?=\{)")
_CODE_BLOCK_RE = re.compile(r"```(?:tool_code)?[ \t]*\n(.*?)\n?[ \t]*```", re.DOTALL)
_FENCE_OPEN_RE = re.compile(r"`{1,3}\w*[ \t]*\n?[ \t]*$")
_FENCE_CLOSE_RE = re.compile(r"^\s*```[ \t]*\n?")


@dataclass
class ToolCall:
    name: str
    params: dict
    start: int
    end: int


def _scan_object(text: str, start: int) -> tuple[int, int]:
    """Scan a JSON object starting at *start*.

    Returns ``(end, 0)`` when the object closes, else ``(-1, depth)`` with the
    number of braces still open. Braces inside strings are ignored.
    """
    depth = 0
    in_string = False
    escape = False
    for index in range(start, len(text)):
        char = text[index]
        if escape:
            escape = False
            continue
        if char == "\\":
            escape = True
            continue
        if char == '"':
            in_string = not in_string
            continue
        if in_string:
            continue
        if char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return index + 1, 0
    return -1, depth


def _parse_call(text: str, *, complete: bool) -> ToolCall | None:
    match = _TOOL_RE.search(text)
    if match is None:
        return None
    params_start = match.end()
    end, _ = _scan_object(text, params_start)
    if end != -1:
        raw = text[params_start:end]
        try:
            params = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Failed to parse tool call params: %s", raw)
            return None
        return ToolCall(match.group(1), params, match.start(), end)
    if not complete:
        return None

    raw = text[params_start:].rstrip()
    if raw.endswith("```"):
        raw = raw[:-3].rstrip()
    _, depth = _scan_object(raw, 0)
    completed = raw + "}" * depth
    try:
        params = json.loads(completed)
    except json.JSONDecodeError:
        logger.warning("Failed to parse completed tool call params: %s", completed)
        return None
    logger.info("Completed truncated tool call params for %s", match.group(1))
    return ToolCall(match.group(1), params, match.start(), len(text))


def find_tool_call(text: str, *, complete: bool = True) -> ToolCall | None:
    """Locate the first tool call in *text*, fenced blocks first.

    With ``complete`` set, an unterminated params object is closed with the
    missing braces before parsing.
    """
    for block in _CODE_BLOCK_RE.finditer(text):
        call = _parse_call(block.group(1), complete=False)
        if call is not None:
            return ToolCall(call.name, call.params, block.start(), block.end())
    return _parse_call(text, complete=complete)


def extract_tool_call(text: str) -> tuple[str, dict] | None:
    """Return ``(tool_name, params)`` for the first call in *text*, or None."""
    call = find_tool_call(text)
    if call is None:
        return None
    return call.name, call.params


def strip_tool_call(text: str) -> str:
    """Remove the first tool call from *text*."""
    call = find_tool_call(text)
    if call is None:
        return text
    return text[: call.start] + text[call.end :].lstrip("\n")


def get_tools_context(tools: Iterable[Any]) -> str:
    lines = "\n".join(f"- {t.name}: {t.description}" for t in tools)
    return f"""Available tools:
{lines}

You can use these tools to interact with the database. When you want to use a tool, include a special format in your response:

TOOL: toolName
PARAMS: {{"param1": "value1", "param2": "value2"}}

This will be detected and the tool will be executed automatically.

IMPORTANT:
1. Always explain your reasoning before using tools
2. Use exactly one tool call per TOOL/PARAMS block
3. Break down complex operations into steps
4. Wait for each tool result and use the IDs it returns in later calls
5. Handle errors gracefully and explain what went wrong"""


def _held_prefix(text: str) -> int:
    """Length of a trailing fragment of *text* that could start the marker."""
    for size in range(min(len(MARKER) - 1, len(text)), 0, -1):
        if MARKER.startswith(text[-size:]):
            return size
    return 0


class TextToolStreamProcessor:
    """Turn streamed model text into chat events, executing tool calls inline.

    ``run_tool(name, params)`` returns the tool result or raises; failures are
    reported as events and the stream carries on.
    """

    def __init__(self, run_tool: Callable[[str, dict], Any]):
        self.run_tool = run_tool
        self.buffer = ""
        self._close_fence = False

    def tool_events(self, name: str, params: dict) -> list[dict]:
        events = [{"text": f"\nExecuting {name}...\n"}]
        try:
            result = self.run_tool(name, params)
        except Exception as exc:
            logger.exception("Error executing tool %s", name)
            message = str(exc)
            events.append({"text": f"\nError executing {name}: {message}\n", "error": message})
        else:
            events.append({"text": f"\nSuccessfully executed {name}.\n", "toolResult": result})
        return events

    def _drop_fence_close(self) -> bool:
        """Swallow the closing fence of a fenced call; False while it may still arrive."""
        if not self._close_fence:
            return True
        stripped = self.buffer.lstrip()
        if not stripped or "```".startswith(stripped):
            return False
        match = _FENCE_CLOSE_RE.match(self.buffer)
        if match:
            self.buffer = self.buffer[match.end():]
        self._close_fence = False
        return True

    def _drain(self) -> list[dict]:
        events: list[dict] = []
        while True:
            if not self._drop_fence_close():
                return events
            index = self.buffer.find(MARKER)
            if index == -1:
                keep = _held_prefix(self.buffer)
                emit, self.buffer = self.buffer[: len(self.buffer) - keep], self.buffer[len(self.buffer) - keep :]
                fence = _FENCE_OPEN_RE.search(emit)
                if fence:
                    # Might be the opener of a fenced call; wait for more text
                    self.buffer = emit[fence.start():] + self.buffer
                    emit = emit[: fence.start()]
                if emit:
                    events.append({"text": emit})
                return events

            before = self.buffer[:index]
            fence = _FENCE_OPEN_RE.search(before)
            head = before[: fence.start()] if fence else before
            if head:
                events.append({"text": head})
            call = _parse_call(self.buffer[index:], complete=False)
            if call is None:
                # Call still streaming in
                self.buffer = self.buffer[len(head):]
                return events
            if call.start:
                # Stray marker in prose; the real call starts further on
                skipped = before[len(head) :] + self.buffer[index : index + call.start]
                fence = _FENCE_OPEN_RE.search(skipped)
                text = skipped[: fence.start()] if fence else skipped
                if text:
                    events.append({"text": text})
            logger.info("Tool call detected: %s", call.name)
            events.extend(self.tool_events(call.name, call.params))
            self.buffer = self.buffer[index + call.end :]
            self._close_fence = bool(fence)

    def feed(self, chunk: str) -> list[dict]:
        if not chunk:
            return []
        self.buffer += chunk
        return self._drain()

    def finish(self) -> list[dict]:
        """Flush what is left, completing a truncated trailing call if possible."""
        events: list[dict] = []
        self._close_fence = False
        text = self.buffer
        self.buffer = ""
        call = find_tool_call(text)
        if call is not None:
            before = _FENCE_OPEN_RE.sub("", text[: call.start], count=1)
            if before.strip():
                events.append({"text": before})
            events.extend(self.tool_events(call.name, call.params))
            after = _FENCE_CLOSE_RE.sub("", text[call.end :], count=1)
            if after.strip():
                events.append({"text": after})
        elif text:
            events.append({"text": text})
        return events

    def process(self, chunks: Iterable[str]) -> Iterator[dict]:
        """Consume a chunk iterator, yielding events and a final ``done``."""
        try:
            for chunk in chunks:
                yield from self.feed(chunk)
            yield from self.finish()
        except Exception as exc:
            logger.exception("Stream processing error")
            yield {"error": str(exc) or "Stream processing error"}
        yield {"done": True}
