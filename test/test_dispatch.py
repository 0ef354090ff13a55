import pytest
from pydantic import BaseModel

from tagforge.errors import (
    ConsentDeniedError,
    ExecutionFailure,
    PathTraversalError,
    SchemaValidationError,
    ToolError,
    ToolRegistrationError,
)
from tagforge.protocol.tags import Tag
from tagforge.tools.base import ToolDefinition, ToolOutput
from tagforge.tools.dispatch import ActiveTool, args_to_dict
from tagforge.tools.permissions import PermissionConfig, PermissionGate, PermissionRule
from tagforge.tools.registry import ToolRegistry

from conftest import FakeEngine, TagRecorder

STATE_MODIFYING = {"write_file", "edit_file", "search_replace", "delete_file", "rename_file", "execute_sql"}


class EchoArgs(BaseModel):
    text: str


class EchoTool(ToolDefinition):
    name = "echo"
    description = "Echo text back"
    input_schema = EchoArgs

    def build_tag(self, args, is_complete):
        if "text" not in args:
            return None
        return Tag("echo", {}, body=str(args["text"]), complete=is_complete)

    def execute(self, args, ctx):
        return args.text.upper()


class AskingTool(EchoTool):
    name = "asking"
    default_consent = "ask"


class BoomTool(EchoTool):
    name = "boom"

    def execute(self, args, ctx):
        raise ValueError("kaput")


class OutputTool(EchoTool):
    name = "output"

    def execute(self, args, ctx):
        return ToolOutput(text="model text", tag=Tag("custom", {"n": 1}, complete=True))


def _active(tool, ctx, gate=None, sink=None):
    return ActiveTool(tool=tool, ctx=ctx, gate=gate or PermissionGate(), sink=sink or TagRecorder())


class TestRegistry:
    def test_register_and_lookup(self):
        reg = ToolRegistry()
        reg.register(EchoTool())
        assert reg.names() == ["echo"]
        assert reg.get("echo").name == "echo"
        assert reg.get_optional("nope") is None
        with pytest.raises(KeyError):
            reg.get("nope")

    def test_duplicate_registration_rejected(self):
        reg = ToolRegistry()
        reg.register(EchoTool())
        with pytest.raises(ToolRegistrationError):
            reg.register(EchoTool())

    def test_builtin_specs(self, registry):
        specs = {s.name: s for s in registry.list_specs()}
        assert len(specs) == 15
        assert specs["write_file"].permission_key == "edit"
        assert specs["read_file"].permission_key == "read"
        assert specs["write_file"].parameters["required"] == ["path", "content"]
        assert set(specs["rename_file"].parameters["properties"]) == {"from", "to"}

    def test_read_only_excludes_state_modifying_tools(self, registry, ctx):
        ctx.engine = FakeEngine()
        ctx.database_id = "db1"
        full = registry.build_active_tool_set(ctx, PermissionGate())
        ro = registry.build_active_tool_set(ctx, PermissionGate(), read_only=True)
        assert STATE_MODIFYING <= set(full)
        assert not (STATE_MODIFYING & set(ro))
        assert {"read_file", "list_files", "grep", "code_search", "get_database_schema"} <= set(ro)
        assert all(not a.tool.modifies_state for a in ro.values())

    def test_enablement_hooks(self, registry, ctx):
        names = set(registry.build_active_tool_set(ctx, PermissionGate()))
        assert not {"edit_file", "code_search", "web_crawl", "execute_sql", "get_database_schema"} & names
        assert {"write_file", "grep", "update_todos"} <= names

        ctx.engine = FakeEngine()
        names = set(registry.build_active_tool_set(ctx, PermissionGate()))
        assert {"edit_file", "code_search", "web_crawl"} <= names
        assert "execute_sql" not in names


class TestPermissions:
    def test_default_consent(self):
        cfg = PermissionConfig()
        assert cfg.decide(EchoTool()) == "allow"
        assert cfg.decide(AskingTool()) == "ask"

    def test_later_rules_win(self):
        cfg = PermissionConfig([PermissionRule("edit", "deny")])
        cfg.apply_behavior([PermissionRule("tool:echo", "ask"), PermissionRule("read", "deny")])
        assert cfg.decide(EchoTool()) == "deny"

    def test_tool_prefix_matches_name_only(self):
        cfg = PermissionConfig([PermissionRule("tool:read", "deny")])
        assert cfg.decide(EchoTool()) == "allow"

    def test_rule_from_obj(self):
        assert PermissionRule.from_obj({"match": "edit", "decision": "deny"}) == PermissionRule("edit", "deny")
        assert PermissionRule.from_obj({"match": "edit", "decision": "maybe"}) is None
        assert PermissionRule.from_obj("edit") is None

    def test_consent_callback(self, ctx):
        asked = []

        def consent(req):
            asked.append(req)
            return True

        ctx.request_consent = consent
        out = _active(AskingTool(), ctx).invoke({"text": "hi"})
        assert out == "HI"
        assert asked[0].tool_name == "asking"

    def test_consent_denied(self, ctx):
        ctx.request_consent = lambda req: False
        rec = TagRecorder()
        with pytest.raises(ConsentDeniedError):
            _active(AskingTool(), ctx, sink=rec).invoke({"text": "hi"})
        assert 'type="error"' in rec.completed[0][1]

    def test_deny_rule(self, ctx):
        gate = PermissionGate(PermissionConfig([PermissionRule("tool:echo", "deny")]))
        with pytest.raises(ConsentDeniedError):
            _active(EchoTool(), ctx, gate=gate).invoke({"text": "x"})

    def test_auto_approve_skips_prompt(self, ctx):
        ctx.request_consent = lambda req: pytest.fail("should not ask")
        assert _active(AskingTool(), ctx, gate=PermissionGate(auto_approve=True)).invoke({"text": "a"}) == "A"


class TestInvoke:
    def test_final_tag_from_args(self, ctx):
        rec = TagRecorder()
        a = _active(EchoTool(), ctx, sink=rec)
        tags = a.new_tag_stream("call-1")
        assert a.invoke({"text": "hi"}, tags) == "HI"
        assert rec.completed == [("call-1", "<forge-echo>hi</forge-echo>")]

    def test_tool_output_tag_wins(self, ctx):
        rec = TagRecorder()
        assert _active(OutputTool(), ctx, sink=rec).invoke({"text": "x"}) == "model text"
        assert rec.completed[0][1] == '<forge-custom n="1"></forge-custom>'

    def test_schema_error(self, ctx):
        rec = TagRecorder()
        with pytest.raises(SchemaValidationError) as ei:
            _active(EchoTool(), ctx, sink=rec).invoke({"txt": "x"})
        assert "text" in str(ei.value)
        assert len(rec.completed) == 1

    def test_unexpected_exception_becomes_execution_failure(self, ctx):
        rec = TagRecorder()
        with pytest.raises(ExecutionFailure, match="kaput"):
            _active(BoomTool(), ctx, sink=rec).invoke({"text": "x"})
        assert "kaput" in rec.completed[0][1]

    def test_streamed_previews(self, ctx):
        rec = TagRecorder()
        a = _active(EchoTool(), ctx, sink=rec)
        s = a.stream("c9")
        s.feed('{"te')
        s.feed('xt": "he')
        s.feed('llo"}')
        assert [t for _, t in rec.streamed] == ["<forge-echo>he", "<forge-echo>hello"]
        assert s.final_arguments() == {"text": "hello"}
        a.invoke(s.final_arguments(), s.tags)
        assert rec.completed == [("c9", "<forge-echo>hello</forge-echo>")]

    def test_final_arguments_of_truncated_stream(self, ctx):
        s = _active(EchoTool(), ctx).stream()
        s.feed('{"text": "partial')
        assert s.final_arguments() == {"text": "partial"}

    def test_args_to_dict_uses_aliases(self):
        from tagforge.tools.builtin_tools.rename_file import RenameFileArgs

        args = RenameFileArgs.model_validate({"from": "a", "to": "b"})
        assert args_to_dict(args) == {"from": "a", "to": "b"}
        assert args_to_dict({"x": 1}) == {"x": 1}
        assert args_to_dict(None) == {}


def test_deleting_outside_project_fails_without_recording(active, ctx, tmp_path):
    with pytest.raises(PathTraversalError):
        active["delete_file"].invoke({"path": "../../etc/passwd"})
    assert ctx.vfs.get_deleted_files() == []


def test_errors_share_a_base():
    for cls in (PathTraversalError, SchemaValidationError, ConsentDeniedError, ExecutionFailure):
        assert issubclass(cls, ToolError)
