"""JSON-RPC endpoint exposing the designer tools to MCP clients."""

from __future__ import annotations

import asyncio
import json
import logging

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from auth import get_current_user
from database import get_db
from models.user import UserProfile
from services.tools import TOOL_REGISTRY, ToolError

logger = logging.getLogger(__name__)

router = APIRouter()

PROTOCOL_VERSION = "2024-11-05"
SERVER_INFO = {"name": "workflow-tools-server", "version": "1.0.0"}

METHOD_NOT_FOUND = -32601
INTERNAL_ERROR = -32603
PARSE_ERROR = -32700


def _result(request_id, result: dict) -> dict:
    return {"jsonrpc": "2.0", "id": request_id, "result": result}


def _error(request_id, code: int, message: str) -> dict:
    return {"jsonrpc": "2.0", "id": request_id, "error": {"code": code, "message": message}}


def handle_rpc(db: Session, body: dict) -> dict:
    """Dispatch one JSON-RPC request to the matching MCP method."""
    method = body.get("method")
    request_id = body.get("id")
    logger.info("MCP request: %s (id=%s)", method, request_id)

    if method == "initialize":
        return _result(request_id, {
            "protocolVersion": PROTOCOL_VERSION,
            "capabilities": {"tools": {}, "resources": {}, "prompts": {}},
            "serverInfo": SERVER_INFO,
        })

    if method == "tools/list":
        return _result(request_id, {
            "tools": [
                {"name": t.name, "description": t.description, "inputSchema": t.parameters}
                for t in TOOL_REGISTRY.values()
            ],
        })

    if method == "tools/call":
        params = body.get("params") or {}
        name = params.get("name")
        tool = TOOL_REGISTRY.get(name)
        if tool is None:
            return _error(request_id, METHOD_NOT_FOUND, f"Tool {name} not found")
        try:
            result = tool.execute(db, params.get("arguments") or {})
        except ToolError as exc:
            logger.warning("MCP tool %s rejected: %s", name, exc)
            return _error(request_id, INTERNAL_ERROR, f"Tool execution failed: {exc}")
        except Exception as exc:
            db.rollback()
            logger.exception("MCP tool %s failed", name)
            return _error(request_id, INTERNAL_ERROR, f"Tool execution failed: {exc}")
        return _result(request_id, {
            "content": [{"type": "text", "text": json.dumps(result, indent=2, default=str)}],
        })

    if method == "resources/list":
        return _result(request_id, {"resources": []})

    return _error(request_id, METHOD_NOT_FOUND, "Method not found")


@router.post("/")
async def mcp_rpc(
    request: Request,
    db: Session = Depends(get_db),
    profile: UserProfile = Depends(get_current_user),
):
    try:
        body = json.loads(await request.body())
    except (json.JSONDecodeError, UnicodeDecodeError):
        logger.warning("MCP request with unparseable body")
        return _error(None, PARSE_ERROR, "Parse error")
    if not isinstance(body, dict):
        return _error(None, PARSE_ERROR, "Parse error")
    # Tool calls run synchronous ORM work; keep it off the event loop
    return await asyncio.to_thread(handle_rpc, db, body)


@router.get("/")
def mcp_discovery(profile: UserProfile = Depends(get_current_user)):
    return {
        "server": SERVER_INFO,
        "tools": [
            {"name": t.name, "description": t.description, "parameters": t.parameters}
            for t in TOOL_REGISTRY.values()
        ],
    }
