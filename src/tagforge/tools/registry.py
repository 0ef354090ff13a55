from __future__ import annotations
from dataclasses import dataclass
from typing import Dict, Iterator, Optional

from ..errors import ToolRegistrationError
from ..protocol.tags import TagSink
from .base import ToolContext, ToolDefinition
from .dispatch import ActiveTool
from .permissions import PermissionGate, is_tool_enabled


@dataclass
class ToolRegistry:
    _tools: Dict[str, ToolDefinition] = None  # type: ignore

    def __post_init__(self):
        if self._tools is None:
            self._tools = {}

    def register(self, tool: ToolDefinition) -> None:
        name = tool.name
        if name in self._tools:
            raise ToolRegistrationError(f"Tool already registered: {name}")
        self._tools[name] = tool

    def get(self, name: str) -> ToolDefinition:
        if name not in self._tools:
            raise KeyError(f"Unknown tool: {name}")
        return self._tools[name]

    def get_optional(self, name: str) -> Optional[ToolDefinition]:
        """Return a tool if registered, otherwise None.

        Use this in agent loops to avoid crashing when the model hallucinates
        an unknown tool name.
        """
        return self._tools.get(name)

    def __iter__(self) -> Iterator[ToolDefinition]:
        return iter(self._tools.values())

    def names(self) -> list[str]:
        return list(self._tools.keys())

    def list_specs(self):
        return [t.spec for t in self._tools.values()]

    def build_active_tool_set(
        self,
        ctx: ToolContext,
        gate: PermissionGate,
        *,
        read_only: bool = False,
        sink: TagSink | None = None,
    ) -> dict[str, ActiveTool]:
        """Tools the model may call this turn.

        Read-only mode drops every state-modifying tool regardless of its
        enablement hook; then tools whose ``is_enabled`` says no are dropped.
        """
        active: dict[str, ActiveTool] = {}
        for tool in self._tools.values():
            if read_only and tool.modifies_state:
                continue
            if not is_tool_enabled(tool, ctx):
                continue
            active[tool.name] = ActiveTool(tool=tool, ctx=ctx, gate=gate, sink=sink)
        return active
