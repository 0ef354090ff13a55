import json

import pytest
from typer.testing import CliRunner

from tagforge.app_context import AppContext
from tagforge.config import loader
from tagforge.events.store import EventStore
from tagforge.main import app


@pytest.fixture(autouse=True)
def isolated(monkeypatch):
    monkeypatch.setattr(loader, "_global_candidate_paths", lambda: [])
    monkeypatch.delenv("TAGFORGE_API_KEY", raising=False)


def test_app_context_wires_config(tmp_path, monkeypatch):
    (tmp_path / "tagforge.json").write_text(json.dumps({
        "read_only": True,
        "database_id": "db9",
        "permissions": [{"match": "tool:grep", "decision": "deny"}],
        "search": {"rg_path": "/opt/rg"},
    }))
    monkeypatch.setenv("TAGFORGE_API_KEY", "k")
    ctx = AppContext.from_env(tmp_path, with_provider=False, record_events=False)
    try:
        assert ctx.read_only is True
        assert ctx.tool_ctx.database_id == "db9"
        assert ctx.tool_ctx.engine is not None
        assert ctx.tool_ctx.settings.rg_path == "/opt/rg"
        active = ctx.active_tools()
        assert "write_file" not in active
        assert "get_database_schema" in active
        assert ctx.permissions.decide(active["grep"].tool) == "deny"
    finally:
        ctx.close()


def test_read_only_flag_overrides_config(tmp_path):
    ctx = AppContext.from_env(tmp_path, read_only=False, with_provider=False, record_events=False)
    assert "write_file" in ctx.active_tools()
    assert ctx.tool_ctx.engine is None
    assert "edit_file" not in ctx.active_tools()


def test_tools_command(tmp_path):
    result = CliRunner().invoke(app, ["tools", "--cwd", str(tmp_path), "--read-only"])
    assert result.exit_code == 0, result.output
    assert "read_file" in result.output
    assert "hidden:" in result.output
    assert "write_file" in result.output.split("hidden:")[1]


def test_events_command(tmp_path, monkeypatch):
    store = EventStore.open("conv1", tmp_path)
    store.append("tool.call", {"tool": "grep"})
    monkeypatch.setattr("tagforge.events.store._events_dir", lambda: tmp_path)
    result = CliRunner().invoke(app, ["events", "--conversation", "conv1"])
    assert result.exit_code == 0, result.output
    assert "tool.call" in result.output
    assert "events: 1" in result.output


def test_event_store_skips_corrupt_lines(tmp_path):
    store = EventStore.open("c", tmp_path)
    store.append("a", {"x": 1})
    with store.path.open("a", encoding="utf-8") as f:
        f.write("{broken\n\n")
    store.append("b", {})
    assert [e.type for e in store.iter_events()] == ["a", "b"]
    assert list(EventStore.open("missing", tmp_path).iter_events()) == []
