"""Tests for the JSON-RPC endpoint (api/mcp.py) and the stdio bridge (mcp_server.py)."""

from __future__ import annotations

import asyncio
import json
import os
from unittest.mock import AsyncMock, patch

import pytest
from fastapi.testclient import TestClient

from api.mcp import INTERNAL_ERROR, METHOD_NOT_FOUND, handle_rpc


def _run(coro):
    """Run an async coroutine synchronously."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


# ── handle_rpc ────────────────────────────────────────────────────────────────

class TestHandleRpc:
    def test_initialize(self, db):
        reply = handle_rpc(db, {"jsonrpc": "2.0", "id": 1, "method": "initialize"})
        assert reply["id"] == 1
        assert reply["result"]["serverInfo"]["name"] == "workflow-tools-server"
        assert reply["result"]["protocolVersion"] == "2024-11-05"

    def test_tools_list(self, db):
        reply = handle_rpc(db, {"jsonrpc": "2.0", "id": 2, "method": "tools/list"})
        tools = {t["name"]: t for t in reply["result"]["tools"]}
        assert "saveView" in tools
        assert tools["getCase"]["inputSchema"]["required"] == ["id"]

    def test_tools_call(self, db, case):
        reply = handle_rpc(db, {
            "jsonrpc": "2.0", "id": 3, "method": "tools/call",
            "params": {"name": "getCase", "arguments": {"id": case.id}},
        })
        content = reply["result"]["content"][0]
        assert content["type"] == "text"
        assert json.loads(content["text"])["name"] == "Loan Application"

    def test_unknown_tool(self, db):
        reply = handle_rpc(db, {
            "jsonrpc": "2.0", "id": 4, "method": "tools/call", "params": {"name": "dropAll"},
        })
        assert reply["error"] == {"code": METHOD_NOT_FOUND, "message": "Tool dropAll not found"}

    def test_tool_rejection(self, db):
        reply = handle_rpc(db, {
            "jsonrpc": "2.0", "id": 5, "method": "tools/call",
            "params": {"name": "getCase", "arguments": {"id": 404}},
        })
        assert reply["error"]["code"] == INTERNAL_ERROR
        assert reply["error"]["message"] == "Tool execution failed: No case found with id 404"

    def test_resources_and_unknown_method(self, db):
        assert handle_rpc(db, {"id": 6, "method": "resources/list"})["result"] == {"resources": []}
        assert handle_rpc(db, {"id": 7, "method": "prompts/get"})["error"]["message"] == "Method not found"


class TestMcpEndpoint:
    @pytest.fixture
    def auth_client(self, db, api_key):
        from database import get_db
        from main import app

        def _override_get_db():
            yield db

        app.dependency_overrides[get_db] = _override_get_db
        client = TestClient(app)
        client.headers["Authorization"] = f"Bearer {api_key.key}"
        yield client
        app.dependency_overrides.clear()

    def test_parse_error(self, auth_client):
        resp = auth_client.post("/api/v1/mcp/", content=b"{not json", headers={"Content-Type": "application/json"})
        assert resp.json()["error"]["code"] == -32700

    def test_rpc_over_http(self, auth_client):
        resp = auth_client.post("/api/v1/mcp/", json={"jsonrpc": "2.0", "id": 9, "method": "tools/list"})
        assert len(resp.json()["result"]["tools"]) == 9

    def test_tool_calls_run_off_the_event_loop(self, auth_client):
        seen = {}

        def fake_handle(db, body):
            try:
                asyncio.get_running_loop()
                seen["on_loop"] = True
            except RuntimeError:
                seen["on_loop"] = False
            return {"jsonrpc": "2.0", "id": body["id"], "result": {}}

        with patch("api.mcp.handle_rpc", side_effect=fake_handle):
            resp = auth_client.post("/api/v1/mcp/", json={"jsonrpc": "2.0", "id": 4, "method": "tools/list"})
        assert resp.json()["id"] == 4
        assert seen == {"on_loop": False}

    def test_discovery(self, auth_client):
        data = auth_client.get("/api/v1/mcp/").json()
        assert data["server"]["version"] == "1.0.0"
        assert all("parameters" in t for t in data["tools"])


# ── mcp_server.py ─────────────────────────────────────────────────────────────

class TestLoadApiKey:
    def test_from_env(self):
        from mcp_server import _load_api_key
        with patch.dict(os.environ, {"DESIGNER_API_KEY": "env-key"}):
            assert _load_api_key() == "env-key"

    def test_from_config_file(self, tmp_path):
        from mcp_server import _load_api_key
        config_file = tmp_path / "mcp.json"
        config_file.write_text(json.dumps({"api_key": "file-key"}))

        with patch.dict(os.environ, {}, clear=False):
            os.environ.pop("DESIGNER_API_KEY", None)
            with patch("mcp_server.CONFIG_PATH", config_file):
                assert _load_api_key() == "file-key"

    def test_save_preserves_other_keys(self, tmp_path):
        from mcp_server import _save_api_key
        config_file = tmp_path / "sub" / "mcp.json"
        config_file.parent.mkdir()
        config_file.write_text(json.dumps({"other": "data"}))

        _save_api_key("new-key", config_file)

        data = json.loads(config_file.read_text())
        assert data == {"other": "data", "api_key": "new-key"}


class TestCallTool:
    def test_drops_none_arguments(self):
        import mcp_server

        reply = {"jsonrpc": "2.0", "id": 1, "result": {"content": [{"type": "text", "text": '{"id": 3}'}]}}
        with patch("mcp_server._post", AsyncMock(return_value=reply)) as post:
            text = _run(mcp_server.getCase(3))
        assert text == '{"id": 3}'
        path, body = post.call_args.args
        assert path == "/mcp/"
        assert body["params"] == {"name": "getCase", "arguments": {"id": 3}}

    def test_save_field_forwards_only_given_values(self):
        import mcp_server

        reply = {"result": {"content": [{"type": "text", "text": "{}"}]}}
        with patch("mcp_server._post", AsyncMock(return_value=reply)) as post:
            _run(mcp_server.saveField("email", "Email", 1, "Email"))
        arguments = post.call_args.args[1]["params"]["arguments"]
        assert arguments == {"name": "email", "type": "Email", "caseID": 1, "label": "Email"}

    def test_rpc_error_becomes_error_object(self):
        import mcp_server

        reply = {"error": {"code": -32603, "message": "Tool execution failed: nope"}}
        with patch("mcp_server._post", AsyncMock(return_value=reply)):
            text = _run(mcp_server.deleteView(1))
        assert json.loads(text) == {"error": "Tool execution failed: nope"}

    def test_http_error_passthrough(self):
        import mcp_server

        reply = {"error": "Unauthorized", "status_code": 401}
        with patch("mcp_server._post", AsyncMock(return_value=reply)):
            text = _run(mcp_server.listViews(1))
        assert json.loads(text) == {"error": "Unauthorized"}

    def test_login_saves_key(self, tmp_path):
        import mcp_server

        with patch("mcp_server._post", AsyncMock(return_value={"key": "k-1"})), \
                patch("mcp_server._save_api_key") as save:
            result = json.loads(_run(mcp_server.designer_login("admin", "pw")))
        assert result["ok"] is True
        save.assert_called_once_with("k-1")
