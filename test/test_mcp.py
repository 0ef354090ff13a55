import sys
import textwrap
from unittest import mock

import pytest

from tagforge.errors import SchemaValidationError
from tagforge.mcp.bridge import MCPTool, register_mcp_servers
from tagforge.mcp.client import MCPClient, MCPError, content_to_text
from tagforge.mcp.models import MCPServerConfig
from tagforge.tools.dispatch import ActiveTool
from tagforge.tools.permissions import PermissionConfig, PermissionGate
from tagforge.tools.registry import ToolRegistry

from conftest import TagRecorder

FAKE_SERVER = textwrap.dedent(
    """
    import json, sys
    for line in sys.stdin:
        req = json.loads(line)
        if "id" not in req:
            continue
        method = req["method"]
        if method == "initialize":
            res = {"protocolVersion": req["params"]["protocolVersion"], "capabilities": {"tools": {}},
                   "serverInfo": {"name": "fake", "version": "1"}}
        elif method == "tools/list" and not req["params"].get("cursor"):
            res = {"tools": [{"name": "shout", "description": "Upper-case text",
                              "inputSchema": {"type": "object", "properties": {"text": {"type": "string"}},
                                              "required": ["text"]}}],
                   "nextCursor": "page2"}
        elif method == "tools/list":
            res = {"tools": [{"name": "echo", "description": "Echo text", "inputSchema": {"type": "object"}}]}
        elif method == "tools/call":
            text = req["params"]["arguments"].get("text", "")
            if text == "fail":
                res = {"content": [{"type": "text", "text": "bad input"}], "isError": True}
            else:
                res = {"content": [{"type": "text", "text": text.upper()}]}
        else:
            print(json.dumps({"jsonrpc": "2.0", "id": req["id"], "error": {"code": -32601, "message": "unknown"}}), flush=True)
            continue
        print("log noise", flush=True)
        print(json.dumps({"jsonrpc": "2.0", "id": req["id"], "result": res}), flush=True)
    """
)

SCHEMA = {"type": "object", "properties": {"q": {"type": "string"}}, "required": ["q"]}


@pytest.fixture
def server_script(tmp_path):
    p = tmp_path / "fake_mcp.py"
    p.write_text(FAKE_SERVER, encoding="utf-8")
    return p


def _tool(client):
    return MCPTool("docs", "search", "Search docs", SCHEMA, client, "mcp.docs")


class TestMCPTool:
    def test_exposes_raw_schema(self):
        spec = _tool(mock.Mock()).spec
        assert spec.name == "mcp.docs.search"
        assert spec.permission_key == "mcp"
        assert spec.parameters == SCHEMA
        assert spec.description == "[MCP:docs] Search docs"

    def test_requires_consent_and_is_state_modifying(self):
        tool = _tool(mock.Mock())
        assert PermissionConfig().decide(tool) == "ask"
        reg = ToolRegistry()
        reg.register(tool)
        assert reg.build_active_tool_set(mock.Mock(), PermissionGate(), read_only=True) == {}

    def test_validate_required(self):
        with pytest.raises(SchemaValidationError, match="missing required field"):
            _tool(mock.Mock()).validate({})

    def test_validate_top_level_types(self):
        schema = {
            "type": "object",
            "properties": {
                "q": {"type": "string"},
                "limit": {"type": "integer"},
                "score": {"type": "number"},
                "tag": {"type": ["string", "null"]},
                "opts": {"description": "untyped"},
            },
        }
        tool = MCPTool("docs", "search", "", schema, mock.Mock(), "mcp.docs")
        ok = {"q": "x", "limit": 3, "score": 0.5, "tag": None, "opts": [1], "extra": {}}
        assert tool.validate(ok) == ok
        assert tool.validate({"limit": 2.0, "score": 1})
        for bad in ({"q": 3}, {"limit": True}, {"limit": 1.5}, {"score": "1"}, {"tag": 1}):
            with pytest.raises(SchemaValidationError, match="must be of type"):
                tool.validate(bad)

    def test_wrong_type_never_reaches_server(self, ctx):
        client = mock.Mock()
        active = ActiveTool(_tool(client), ctx, PermissionGate(auto_approve=True), TagRecorder())
        with pytest.raises(SchemaValidationError):
            active.invoke({"q": ["auth"]})
        client.call_tool.assert_not_called()

    def test_invoke_emits_call_preview_then_result(self, ctx):
        client = mock.Mock()
        client.call_tool.return_value = "3 hits"
        rec = TagRecorder()
        active = ActiveTool(_tool(client), ctx, PermissionGate(auto_approve=True), rec)
        assert active.invoke({"q": "auth"}) == "3 hits"
        client.call_tool.assert_called_once_with("search", {"q": "auth"})
        assert rec.streamed[0][1].startswith('<forge-mcp-tool-call server="docs" tool="search">\n{')
        assert rec.completed[0][1] == (
            '<forge-mcp-tool-result server="docs" tool="search">\n3 hits\n</forge-mcp-tool-result>'
        )

    def test_remote_error(self, ctx):
        client = mock.Mock()
        client.call_tool.side_effect = MCPError("boom")
        active = ActiveTool(_tool(client), ctx, PermissionGate(auto_approve=True), TagRecorder())
        with pytest.raises(MCPError):
            active.invoke({"q": "x"})


def test_content_to_text():
    assert content_to_text("plain") == "plain"
    assert content_to_text({"content": [{"type": "text", "text": "a"}, {"type": "image", "data": "x"}]}) == (
        'a\n{"type": "image", "data": "x"}'
    )
    assert content_to_text({"value": 1}) == '{\n  "value": 1\n}'


class TestMCPClient:
    def test_round_trip_with_server(self, server_script):
        client = MCPClient([sys.executable, str(server_script)])
        try:
            assert client.initialize()["serverInfo"]["name"] == "fake"
            tools = client.list_tools()
            assert [t.name for t in tools] == ["shout", "echo"]
            assert tools[0].input_schema["required"] == ["text"]
            assert client.call_tool("shout", {"text": "hi"}) == "HI"
            with pytest.raises(MCPError, match="bad input"):
                client.call_tool("shout", {"text": "fail"})
            with pytest.raises(MCPError, match="unknown"):
                client.request("resources/list")
        finally:
            client.close()

    def test_register_servers(self, server_script):
        reg = ToolRegistry()
        servers = [
            MCPServerConfig(name="fake", command=[sys.executable, str(server_script)]),
            MCPServerConfig(name="off", command=["does-not-matter"], enabled=False),
            MCPServerConfig(name="missing", command=["/nonexistent/mcp-server-binary"]),
        ]
        clients = register_mcp_servers(reg, servers)
        try:
            assert len(clients) == 1
            assert reg.names() == ["mcp.fake.shout", "mcp.fake.echo"]
        finally:
            for c in clients:
                c.close()
