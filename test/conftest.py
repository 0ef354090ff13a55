import pytest

from tagforge.tools.base import ToolContext
from tagforge.tools.permissions import PermissionGate
from tagforge.tools.registry import ToolRegistry
from tagforge.tools.builtin import register_builtin_tools


class FakeEngine:
    """Stands in for EngineClient: canned responses keyed by endpoint."""

    def __init__(self, responses=None):
        self.responses = dict(responses or {})
        self.calls = []

    def fetch(self, endpoint, payload, *, request_id):
        self.calls.append((endpoint, payload, request_id))
        resp = self.responses[endpoint]
        if isinstance(resp, Exception):
            raise resp
        return resp


class TagRecorder:
    def __init__(self):
        self.streamed = []
        self.completed = []

    def stream(self, call_id, text):
        self.streamed.append((call_id, text))

    def complete(self, call_id, text):
        self.completed.append((call_id, text))


@pytest.fixture
def ctx(tmp_path):
    return ToolContext(project_root=str(tmp_path), project_id="p1", conversation_id="c1", request_id="req-1")


@pytest.fixture
def engine():
    return FakeEngine()


@pytest.fixture
def registry():
    reg = ToolRegistry()
    register_builtin_tools(reg)
    return reg


@pytest.fixture
def recorder():
    return TagRecorder()


@pytest.fixture
def active(registry, ctx, recorder):
    """Active builtin tools that never prompt."""
    return registry.build_active_tool_set(ctx, PermissionGate(auto_approve=True), sink=recorder)
