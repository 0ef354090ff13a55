from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from ..mcp.models import MCPServerConfig
from ..tools.base import DEFAULT_EXCLUDED_GLOBS, ToolSettings
from ..tools.permissions import PermissionRule
from ..util.fs import DEFAULT_SHARED_MODULE_GLOBS


@dataclass
class SearchConfig:
    rg_path: str = "rg"
    max_filesize: str = "1M"
    excluded_globs: list[str] = field(default_factory=lambda: list(DEFAULT_EXCLUDED_GLOBS))


@dataclass
class BehaviorConfig:
    """Behavior config loaded from JSON."""

    permissions: list[PermissionRule] = field(default_factory=list)
    read_only: bool = False
    engine_url: str | None = None
    engine_api_key_env: str = "TAGFORGE_API_KEY"
    database_id: str | None = None
    search: SearchConfig = field(default_factory=SearchConfig)
    shared_module_globs: list[str] = field(default_factory=lambda: list(DEFAULT_SHARED_MODULE_GLOBS))
    mcp_servers: dict[str, MCPServerConfig] = field(default_factory=dict)
    max_steps: int = 25
    log_level: str = "WARNING"

    loaded_from: Path | None = None

    def tool_settings(self) -> ToolSettings:
        return ToolSettings(
            rg_path=self.search.rg_path,
            max_filesize=self.search.max_filesize,
            excluded_globs=list(self.search.excluded_globs),
            shared_module_globs=list(self.shared_module_globs),
        )
