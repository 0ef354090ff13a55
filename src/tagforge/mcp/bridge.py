from __future__ import annotations

import json
import logging
from typing import Any

from ..errors import SchemaValidationError
from ..protocol.tags import Tag
from ..tools.base import ToolContext, ToolDefinition, ToolOutput, ToolSpec
from ..tools.registry import ToolRegistry
from .client import MCPClient
from .models import MCPServerConfig

logger = logging.getLogger(__name__)

_JSON_TYPES: dict[str, tuple[type, ...]] = {
    "string": (str,),
    "integer": (int,),
    "number": (int, float),
    "boolean": (bool,),
    "array": (list,),
    "object": (dict,),
    "null": (type(None),),
}


def _matches_type(value: Any, declared: Any) -> bool:
    names = declared if isinstance(declared, list) else [declared]
    known = [n for n in names if n in _JSON_TYPES]
    if not known:
        return True
    for n in known:
        if isinstance(value, bool) and n in ("integer", "number"):
            continue
        if n == "integer" and isinstance(value, float) and value.is_integer():
            return True
        if isinstance(value, _JSON_TYPES[n]):
            return True
    return False


class MCPTool(ToolDefinition):
    """A remote MCP tool exposed under ``<prefix>.<tool>``.

    MCP tools cannot say whether they change anything, so they always ask
    and are left out in read-only mode.
    """

    default_consent = "ask"
    modifies_state = True

    def __init__(self, server: str, info_name: str, description: str, schema: dict[str, Any], client: MCPClient, prefix: str):
        self.name = f"{prefix}.{info_name}"
        self.description = f"[MCP:{server}] {description}".strip()
        self.server = server
        self.remote_name = info_name
        self.schema = schema
        self.client = client

    @property
    def spec(self) -> ToolSpec:
        return ToolSpec(
            name=self.name,
            description=self.description,
            parameters=self.schema or {"type": "object", "properties": {}},
            permission_key="mcp",
        )

    def validate(self, raw: dict[str, Any]) -> dict[str, Any]:
        if not isinstance(raw, dict):
            raise SchemaValidationError(self.name, "arguments must be a JSON object")
        missing = [k for k in self.schema.get("required", []) if k not in raw]
        if missing:
            raise SchemaValidationError(self.name, f"missing required field(s): {', '.join(missing)}")
        props = self.schema.get("properties")
        if isinstance(props, dict):
            for key, value in raw.items():
                prop = props.get(key)
                if isinstance(prop, dict) and "type" in prop and not _matches_type(value, prop["type"]):
                    raise SchemaValidationError(self.name, f"field {key!r} must be of type {prop['type']}")
        return raw

    def get_consent_preview(self, args: dict[str, Any]) -> str:
        return json.dumps(args, ensure_ascii=False)[:200]

    def build_tag(self, args: dict[str, Any], is_complete: bool) -> Tag | None:
        if is_complete:
            return None
        return self._call_tag(args)

    def _call_tag(self, args: dict[str, Any]) -> Tag:
        return Tag(
            name="mcp-tool-call",
            attrs={"server": self.server, "tool": self.remote_name},
            body=json.dumps(args, ensure_ascii=False, indent=2),
            block=True,
        )

    def execute(self, args: dict[str, Any], ctx: ToolContext) -> ToolOutput:
        ctx.preview(self._call_tag(args))
        text = self.client.call_tool(self.remote_name, args)
        result = Tag(
            name="mcp-tool-result",
            attrs={"server": self.server, "tool": self.remote_name},
            body=text,
            complete=True,
            block=True,
        )
        return ToolOutput(text, result)


def register_mcp_servers(registry: ToolRegistry, servers: list[MCPServerConfig]) -> list[MCPClient]:
    clients: list[MCPClient] = []
    for s in servers:
        if not s.enabled:
            continue
        try:
            client = MCPClient(s.command, cwd=s.cwd, env=s.env)
        except OSError as e:
            logger.warning("Failed to start MCP server %s: %s", s.name, e)
            continue
        try:
            client.initialize()
            tools = client.list_tools()
        except RuntimeError as e:
            logger.warning("MCP server %s failed the handshake or tool listing: %s", s.name, e)
            client.close()
            continue
        clients.append(client)
        for t in tools:
            registry.register(MCPTool(s.name, t.name, t.description, t.input_schema, client, s.tool_prefix))
        logger.info("MCP server %s: %d tool(s)", s.name, len(tools))
    return clients
