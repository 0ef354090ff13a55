import json

import pytest

from tagforge.config import loader
from tagforge.config.loader import behavior_from_dict, load_behavior_config
from tagforge.mcp.models import MCPServerConfig
from tagforge.tools.permissions import PermissionRule


@pytest.fixture
def no_global(monkeypatch):
    monkeypatch.setattr(loader, "_global_candidate_paths", lambda: [])


def _write(path, obj):
    path.write_text(json.dumps(obj), encoding="utf-8")
    return path


def test_defaults_without_files(tmp_path, no_global):
    cfg = load_behavior_config(cwd=tmp_path)
    assert cfg.loaded_from is None
    assert cfg.read_only is False
    assert cfg.max_steps == 25
    assert cfg.permissions == []
    assert cfg.tool_settings().rg_path == "rg"


def test_merge_order(tmp_path, monkeypatch):
    global_cfg = _write(tmp_path / "global.json", {"max_steps": 5, "search": {"rg_path": "/g/rg", "max_filesize": "2M"}})
    monkeypatch.setattr(loader, "_global_candidate_paths", lambda: [global_cfg])
    project = tmp_path / "proj"
    project.mkdir()
    _write(project / ".tagforge.json", {"max_steps": 7, "search": {"rg_path": "/p/rg"}})
    _write(project / "tagforge.json", {"max_steps": 99})
    explicit = _write(tmp_path / "explicit.json", {"read_only": True})

    cfg = load_behavior_config(cwd=project, explicit_path=explicit)
    assert cfg.max_steps == 7
    assert cfg.search.rg_path == "/p/rg"
    assert cfg.search.max_filesize == "2M"
    assert cfg.read_only is True
    assert cfg.loaded_from == explicit.resolve()


def test_bad_json_is_ignored(tmp_path, no_global, caplog):
    (tmp_path / ".tagforge.json").write_text("{not json", encoding="utf-8")
    _write(tmp_path / "tagforge.json", {"max_steps": 3})
    cfg = load_behavior_config(cwd=tmp_path)
    assert cfg.max_steps == 3
    assert "Ignoring unreadable config" in caplog.text


def test_behavior_from_dict_validates_fields():
    cfg = behavior_from_dict({
        "permissions": [
            {"match": "edit", "decision": "ask"},
            {"match": "tool:grep", "decision": "nope"},
        ],
        "read_only": "yes",
        "engine_url": " http://engine ",
        "database_id": "db1",
        "max_steps": 0,
        "log_level": "debug",
        "shared_module_globs": ["lib/*"],
        "search": {"excluded_globs": ["!vendor/**"]},
    })
    assert cfg.permissions == [PermissionRule("edit", "ask")]
    assert cfg.read_only is False
    assert cfg.engine_url == "http://engine"
    assert cfg.database_id == "db1"
    assert cfg.max_steps == 25
    assert cfg.log_level == "DEBUG"
    settings = cfg.tool_settings()
    assert settings.shared_module_globs == ["lib/*"]
    assert settings.excluded_globs == ["!vendor/**"]


def test_mcp_servers():
    cfg = behavior_from_dict({
        "mcpServers": {
            "files": {"command": "npx", "args": ["-y", "server-files"], "env": {"DEBUG": 1}},
            "off": {"command": ["srv"], "enabled": False, "prefix": "x"},
            "broken": {"command": 3},
        }
    })
    assert set(cfg.mcp_servers) == {"files", "off"}
    files = cfg.mcp_servers["files"]
    assert files.command == ["npx", "-y", "server-files"]
    assert files.env == {"DEBUG": "1"}
    assert files.tool_prefix == "mcp.files"
    assert cfg.mcp_servers["off"].enabled is False
    assert cfg.mcp_servers["off"].tool_prefix == "x"


def test_mcp_server_from_obj_rejects_non_dict():
    assert MCPServerConfig.from_obj("x", ["cmd"]) is None
