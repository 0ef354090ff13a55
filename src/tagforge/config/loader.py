from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from platformdirs import user_config_dir

from .models import BehaviorConfig, SearchConfig
from ..mcp.models import MCPServerConfig
from ..tools.permissions import PermissionRule

APP_NAME = "tagforge"

logger = logging.getLogger(__name__)


PROJECT_FILES = (".tagforge.json", "tagforge.json")


def _global_candidate_paths() -> list[Path]:
    return [Path(user_config_dir(APP_NAME)) / "tagforge.json"]


def _load_json(p: Path) -> dict[str, Any] | None:
    try:
        obj = json.loads(p.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        logger.warning("Ignoring unreadable config %s: %s", p, e)
        return None
    if isinstance(obj, dict):
        return obj
    logger.warning("Ignoring config %s: top level is not an object", p)
    return None


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Nested objects merge key by key; anything else in ``override`` replaces."""
    out = dict(base)
    for k, v in override.items():
        prev = out.get(k)
        out[k] = _deep_merge(prev, v) if isinstance(prev, dict) and isinstance(v, dict) else v
    return out


def _str_list(v: Any) -> list[str] | None:
    if isinstance(v, list) and all(isinstance(x, str) for x in v):
        return list(v)
    return None


def _layers(cwd: Path, explicit_path: Path | None) -> list[tuple[Path, dict[str, Any]]]:
    """Readable config objects, lowest priority first.

    Of the project files only the first readable one counts.
    """
    def readable(paths: list[Path]) -> list[tuple[Path, dict[str, Any]]]:
        loaded = [(p, _load_json(p)) for p in paths if p.is_file()]
        return [(p, obj) for p, obj in loaded if obj is not None]

    layers = readable(_global_candidate_paths())
    layers += readable([cwd / n for n in PROJECT_FILES])[:1]
    if explicit_path is not None:
        p = explicit_path.expanduser().resolve()
        if not p.is_file():
            logger.warning("Config file not found: %s", p)
        layers += readable([p])
    return layers


def load_behavior_config(*, cwd: Path, explicit_path: Path | None = None) -> BehaviorConfig:
    """Load behavior config.

    Merge order: global < project < explicit_path.
    """
    merged: dict[str, Any] = {}
    loaded_from: Path | None = None
    for loaded_from, obj in _layers(cwd, explicit_path):
        merged = _deep_merge(merged, obj)
    return behavior_from_dict(merged, loaded_from=loaded_from)


def behavior_from_dict(merged: dict[str, Any], *, loaded_from: Path | None = None) -> BehaviorConfig:
    cfg = BehaviorConfig()
    cfg.loaded_from = loaded_from

    # permissions
    perms = merged.get("permissions", [])
    if isinstance(perms, list):
        for it in perms:
            r = PermissionRule.from_obj(it)
            if r is not None:
                cfg.permissions.append(r)
            else:
                logger.warning("Ignoring invalid permission rule: %r", it)

    if isinstance(merged.get("read_only"), bool):
        cfg.read_only = merged["read_only"]

    for key in ("engine_url", "database_id", "engine_api_key_env"):
        v = merged.get(key)
        if isinstance(v, str) and v.strip():
            setattr(cfg, key, v.strip())

    search = merged.get("search", {})
    if isinstance(search, dict):
        sc = SearchConfig()
        if isinstance(search.get("rg_path"), str):
            sc.rg_path = search["rg_path"]
        if isinstance(search.get("max_filesize"), (str, int)):
            sc.max_filesize = str(search["max_filesize"])
        globs = _str_list(search.get("excluded_globs"))
        if globs is not None:
            sc.excluded_globs = globs
        cfg.search = sc

    shared = _str_list(merged.get("shared_module_globs"))
    if shared is not None:
        cfg.shared_module_globs = shared

    ms = merged.get("max_steps")
    if isinstance(ms, int) and not isinstance(ms, bool) and ms > 0:
        cfg.max_steps = ms

    lvl = merged.get("log_level")
    if isinstance(lvl, str) and lvl.strip():
        cfg.log_level = lvl.strip().upper()

    # mcp servers
    mcp = merged.get("mcp_servers", {}) or merged.get("mcpServers", {})
    if isinstance(mcp, dict):
        for name, obj in mcp.items():
            if not isinstance(name, str):
                continue
            sc = MCPServerConfig.from_obj(name, obj)
            if sc is not None:
                cfg.mcp_servers[name] = sc
            else:
                logger.warning("Ignoring invalid MCP server config: %s", name)

    return cfg
