import pytest

from tagforge.errors import SchemaValidationError, TodoValidationError
from tagforge.tools.todos import Todo


def test_update_todos_replace_then_merge(active, ctx):
    seen = []
    ctx.state.todos.observer = seen.append
    out = active["update_todos"].invoke({
        "merge": False,
        "todos": [
            {"id": "1", "content": "parse", "status": "in_progress"},
            {"id": "2", "content": "test", "status": "pending"},
        ],
    })
    assert out.startswith("Updated todos: 0 completed, 1 in progress, 1 pending")

    out = active["update_todos"].invoke({"merge": True, "todos": [{"id": "1", "status": "completed"}]})
    assert out.startswith("Updated todos: 1 completed, 0 in progress, 1 pending")
    assert ctx.todos == [Todo("1", "parse", "completed"), Todo("2", "test", "pending")]
    assert len(seen) == 2


def test_update_todos_rejects_partial_replace(active, ctx):
    with pytest.raises(TodoValidationError):
        active["update_todos"].invoke({"merge": False, "todos": [{"id": "1"}]})
    assert ctx.todos == []


def test_update_todos_rejects_unknown_status(active):
    with pytest.raises(SchemaValidationError):
        active["update_todos"].invoke({"merge": True, "todos": [{"id": "1", "status": "done"}]})


def test_update_todos_consent_preview(registry):
    tool = registry.get("update_todos")
    args = tool.validate({"merge": True, "todos": [{"id": "1", "status": "completed"}, {"id": "2"}]})
    assert tool.get_consent_preview(args) == "1/2 todos completed"


def test_set_chat_summary(active, ctx):
    assert active["set_chat_summary"].invoke({"summary": "Add login"}) == "Chat summary set to: Add login"
    assert ctx.chat_summary == "Add login"
