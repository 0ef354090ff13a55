from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


def _opt_str(value: Any) -> str | None:
    return value if isinstance(value, str) else None


def _command_line(obj: dict[str, Any]) -> list[str] | None:
    """Accept ``command: [argv...]`` or the ``command`` + ``args`` form used by mcpServers files."""
    cmd = obj.get("command")
    if isinstance(cmd, str):
        extra = obj.get("args") or []
        return [cmd, *(str(a) for a in extra if isinstance(a, (str, int, float)))]
    if isinstance(cmd, list) and cmd and all(isinstance(x, str) for x in cmd):
        return list(cmd)
    return None


@dataclass
class MCPServerConfig:
    """One stdio MCP server entry from the ``mcpServers`` config block."""

    name: str
    command: list[str]
    env: dict[str, str] = field(default_factory=dict)
    cwd: str | None = None
    prefix: str | None = None
    enabled: bool = True

    @property
    def tool_prefix(self) -> str:
        return self.prefix or f"mcp.{self.name}"

    @classmethod
    def from_obj(cls, name: str, obj: Any) -> "MCPServerConfig | None":
        if not isinstance(obj, dict):
            return None
        argv = _command_line(obj)
        if argv is None:
            return None
        raw_env = obj.get("env")
        return cls(
            name=name,
            command=argv,
            env={str(k): str(v) for k, v in raw_env.items()} if isinstance(raw_env, dict) else {},
            cwd=_opt_str(obj.get("cwd")),
            prefix=_opt_str(obj.get("prefix")),
            enabled=obj.get("enabled", True) is not False,
        )
