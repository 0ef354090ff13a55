from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from .config.loader import load_behavior_config
from .config.models import BehaviorConfig
from .events.store import EventStore
from .llm.factory import resolve_provider
from .llm.openai_compat import OpenAICompatProvider
from .mcp.bridge import register_mcp_servers
from .mcp.client import MCPClient
from .protocol.tags import TagSink
from .tools.base import ToolContext
from .tools.builtin import register_builtin_tools
from .tools.dispatch import ActiveTool
from .tools.engine import EngineClient
from .tools.permissions import PermissionConfig, PermissionGate
from .tools.registry import ToolRegistry

logger = logging.getLogger(__name__)


@dataclass
class AppContext:
    cwd: Path
    behavior: BehaviorConfig
    tools: ToolRegistry
    permissions: PermissionGate
    tool_ctx: ToolContext
    conversation_id: str
    read_only: bool = False
    provider: OpenAICompatProvider | None = None
    mcp_clients: list[MCPClient] = field(default_factory=list)
    events: EventStore | None = None

    def close(self) -> None:
        """Stop background MCP server processes."""
        for c in self.mcp_clients:
            c.close()
        self.mcp_clients = []

    def active_tools(self, sink: TagSink | None = None) -> dict[str, ActiveTool]:
        return self.tools.build_active_tool_set(self.tool_ctx, self.permissions, read_only=self.read_only, sink=sink)

    @staticmethod
    def from_env(
        cwd: Path,
        *,
        config_path: Optional[Path] = None,
        behavior_config: Optional[Path] = None,
        read_only: Optional[bool] = None,
        auto_approve: bool = False,
        database_id: Optional[str] = None,
        conversation_id: Optional[str] = None,
        with_provider: bool = True,
        record_events: bool = True,
    ) -> "AppContext":
        behavior = load_behavior_config(cwd=cwd, explicit_path=behavior_config)

        provider = resolve_provider(yaml_path=config_path) if with_provider else None

        tools = ToolRegistry()
        register_builtin_tools(tools)

        mcp_clients: list[MCPClient] = []
        if behavior.mcp_servers:
            mcp_clients = register_mcp_servers(tools, list(behavior.mcp_servers.values()))

        perm_cfg = PermissionConfig()
        perm_cfg.apply_behavior(behavior.permissions)
        permissions = PermissionGate(config=perm_cfg, auto_approve=auto_approve)

        conversation_id = conversation_id or uuid.uuid4().hex[:12]
        engine = EngineClient.from_env(base_url=behavior.engine_url, api_key_env=behavior.engine_api_key_env)
        if engine is None:
            logger.info("No engine key in $%s; engine-backed tools are disabled", behavior.engine_api_key_env)

        tool_ctx = ToolContext(
            project_root=str(cwd),
            project_id=cwd.name,
            conversation_id=conversation_id,
            database_id=database_id or behavior.database_id,
            engine=engine,
            settings=behavior.tool_settings(),
        )

        return AppContext(
            cwd=cwd,
            behavior=behavior,
            tools=tools,
            permissions=permissions,
            tool_ctx=tool_ctx,
            conversation_id=conversation_id,
            read_only=behavior.read_only if read_only is None else read_only,
            provider=provider,
            mcp_clients=mcp_clients,
            events=EventStore.open(conversation_id) if record_events else None,
        )

