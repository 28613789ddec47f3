"""Stdio MCP server bridging the case designer tools to MCP clients.

Every tool forwards to the designer's JSON-RPC endpoint (``/api/v1/mcp/``),
so validation and persistence stay in the API process.

Run: python mcp_server.py
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

import httpx
from mcp.server.fastmcp import FastMCP

from config import get_designer_dir

CONFIG_PATH = get_designer_dir() / "mcp.json"
BASE_URL = os.environ.get("DESIGNER_BASE_URL", "http://localhost:8000")

mcp = FastMCP("workflow-tools-server")


# ── Designer HTTP client ─────────────────────────────────────────────────────


def _load_api_key() -> str:
    key = os.environ.get("DESIGNER_API_KEY", "")
    if key:
        return key
    if CONFIG_PATH.exists():
        data = json.loads(CONFIG_PATH.read_text())
        return data.get("api_key", "")
    return ""


def _save_api_key(key: str, path: Path = CONFIG_PATH) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    data = {}
    if path.exists():
        data = json.loads(path.read_text())
    data["api_key"] = key
    path.write_text(json.dumps(data, indent=2))


def _headers() -> dict[str, str]:
    key = _load_api_key()
    h: dict[str, str] = {"Content-Type": "application/json"}
    if key:
        h["Authorization"] = f"Bearer {key}"
    return h


def _url(path: str) -> str:
    return f"{BASE_URL}/api/v1{path}"


async def _post(path: str, body: dict) -> Any:
    async with httpx.AsyncClient(timeout=30) as client:
        resp = await client.post(_url(path), headers=_headers(), json=body)
        if resp.status_code >= 400:
            return {"error": resp.text, "status_code": resp.status_code}
        return resp.json()


async def _call_tool(name: str, arguments: dict) -> str:
    """Invoke a designer tool over JSON-RPC; returns its JSON text or an error object."""
    arguments = {k: v for k, v in arguments.items() if v is not None}
    reply = await _post("/mcp/", {
        "jsonrpc": "2.0",
        "id": 1,
        "method": "tools/call",
        "params": {"name": name, "arguments": arguments},
    })
    if "error" in reply:
        error = reply["error"]
        message = error.get("message", error) if isinstance(error, dict) else error
        return json.dumps({"error": message})
    return reply["result"]["content"][0]["text"]


# ── Auth ─────────────────────────────────────────────────────────────────────


@mcp.tool()
async def designer_login(username: str, password: str) -> str:
    """Log in to the case designer and save the API key.

    Args:
        username: Designer username
        password: Designer password
    """
    result = await _post("/auth/token/", {"username": username, "password": password})
    if "key" in result:
        _save_api_key(result["key"])
        return json.dumps({"ok": True, "message": "Logged in and API key saved."})
    return json.dumps(result)


# ── Cases ────────────────────────────────────────────────────────────────────


@mcp.tool()
async def saveCase(name: str, description: str, model: dict, id: int | None = None) -> str:
    """Create a case, or update it when id is given.

    Create fields and views first; "Collect information" steps link their view via viewId.

    Args:
        name: Case name
        description: Case description
        model: Workflow model {"stages": [...]}
        id: Existing case id to update
    """
    return await _call_tool("saveCase", {"id": id, "name": name, "description": description, "model": model})


@mcp.tool()
async def getCase(id: int) -> str:
    """Get a case with its workflow model and a flat list of steps."""
    return await _call_tool("getCase", {"id": id})


@mcp.tool()
async def deleteCase(id: int) -> str:
    """Delete a case with all of its fields, views and history."""
    return await _call_tool("deleteCase", {"id": id})


# ── Fields ───────────────────────────────────────────────────────────────────


@mcp.tool()
async def saveField(
    name: str,
    type: str,
    caseID: int,
    label: str,
    description: str | None = None,
    order: int | None = None,
    options: list[str] | None = None,
    required: bool | None = None,
    primary: bool | None = None,
    id: int | None = None,
) -> str:
    """Create a field, or update it when id is given.

    Args:
        name: Field name, starting with a lowercase letter
        type: Field type, e.g. Text, Email, Date, Dropdown
        caseID: Case the field belongs to
        label: Display label
        description: Field description
        order: Display order
        options: Choices for Dropdown, RadioButtons and Checkbox fields
        required: Whether the field is required
        primary: Whether this is a primary field
        id: Existing field id to update
    """
    return await _call_tool("saveField", {
        "id": id,
        "name": name,
        "type": type,
        "caseID": caseID,
        "label": label,
        "description": description,
        "order": order,
        "options": options,
        "required": required,
        "primary": primary,
    })


@mcp.tool()
async def listFields(caseID: int) -> str:
    """List the fields of a case."""
    return await _call_tool("listFields", {"caseID": caseID})


@mcp.tool()
async def deleteField(id: int) -> str:
    """Delete a field and remove it from every view."""
    return await _call_tool("deleteField", {"id": id})


# ── Views ────────────────────────────────────────────────────────────────────


@mcp.tool()
async def saveView(name: str, caseID: int, model: dict, id: int | None = None) -> str:
    """Create a view, or update it when id is given.

    Args:
        name: View name (same as the step it belongs to)
        caseID: Case the view belongs to
        model: {"fields": [{"fieldId", "required", "order"}], "layout": {"type": "form", "columns": 1}}
        id: Existing view id to update
    """
    return await _call_tool("saveView", {"id": id, "name": name, "caseID": caseID, "model": model})


@mcp.tool()
async def listViews(caseID: int) -> str:
    """List the views of a case."""
    return await _call_tool("listViews", {"caseID": caseID})


@mcp.tool()
async def deleteView(id: int) -> str:
    """Delete a view and unlink it from its step."""
    return await _call_tool("deleteView", {"id": id})


if __name__ == "__main__":
    from logging_config import setup_logging
    setup_logging("MCP")
    mcp.run()
