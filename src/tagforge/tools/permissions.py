from __future__ import annotations

from dataclasses import dataclass, field
from fnmatch import fnmatch
from typing import Any, Literal

from rich.console import Console

from ..errors import ConsentDeniedError
from .base import ConsentRequest, ToolContext, ToolDefinition

Decision = Literal["allow", "ask", "deny"]

console = Console()


@dataclass
class PermissionRule:
    """A single permission rule.

    match supports:
    - "tool:<name_or_pattern>"  -> matches tool name only
    - otherwise: fnmatch against both permission_key and tool_name
    """

    match: str
    decision: Decision

    @staticmethod
    def from_obj(obj: Any) -> "PermissionRule | None":
        if not isinstance(obj, dict):
            return None
        m = obj.get("match")
        d = obj.get("decision")
        if not isinstance(m, str) or d not in {"allow", "ask", "deny"}:
            return None
        return PermissionRule(match=m, decision=d)


@dataclass
class PermissionConfig:
    """Rules from behavior config layered over each tool's default consent."""

    rules: list[PermissionRule] = field(default_factory=list)

    def apply_behavior(self, rules: list[PermissionRule]) -> None:
        # later rules win
        self.rules.extend(rules)

    def _match_rules(self, permission_key: str, tool_name: str) -> Decision | None:
        decision: Decision | None = None
        for rule in self.rules:
            m = rule.match
            if m.startswith("tool:"):
                pat = m[len("tool:") :]
                if fnmatch(tool_name, pat):
                    decision = rule.decision
            else:
                if fnmatch(permission_key, m) or fnmatch(tool_name, m):
                    decision = rule.decision
        return decision

    def decide(self, tool: ToolDefinition) -> Decision:
        spec = tool.spec
        r = self._match_rules(spec.permission_key, spec.name)
        if r is not None:
            return r
        return "allow" if tool.default_consent == "always" else "ask"


def is_tool_enabled(tool: ToolDefinition, ctx: ToolContext) -> bool:
    return bool(tool.is_enabled(ctx))


class PermissionGate:
    def __init__(self, config: PermissionConfig | None = None, auto_approve: bool = False):
        self.config = config or PermissionConfig()
        self.auto_approve = auto_approve

    def decide(self, tool: ToolDefinition) -> Decision:
        return self.config.decide(tool)

    def check(self, tool: ToolDefinition, preview: str | None, ctx: ToolContext) -> None:
        """Raise ConsentDeniedError unless the call may run."""
        decision = self.decide(tool)
        if decision == "allow":
            return
        if decision == "deny":
            console.print(f"[red]Denied[/red] tool {tool.name}")
            raise ConsentDeniedError(tool.name)

        # ask
        if self.auto_approve:
            return

        req = ConsentRequest(tool_name=tool.name, tool_description=tool.description, input_preview=preview)
        if ctx.request_consent is not None:
            ok = ctx.request_consent(req)
        else:
            ok = _prompt(req)
        if not ok:
            raise ConsentDeniedError(tool.name)


def _prompt(req: ConsentRequest) -> bool:
    console.print(f"\n[yellow]Tool requires approval[/yellow]: [bold]{req.tool_name}[/bold]\n{req.input_preview or ''}")
    resp = console.input("Approve? [y/N] ").strip().lower()
    return resp in {"y", "yes"}
