from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

from pydantic import BaseModel, Field

from ...errors import ExecutionFailure, ExternalServiceError
from ...protocol.tags import Tag
from ...util.subprocess import CmdFailed, run_json_lines
from ..base import ToolContext, ToolDefinition, ToolOutput

logger = logging.getLogger(__name__)

DESCRIPTION = """\
Search for a regex pattern in the codebase using ripgrep.

- Returns matching lines with file paths and line numbers
- By default, the search is case-insensitive
- Use include_pattern to filter by file type (e.g. '*.tsx')
- Use exclude_pattern to skip certain files (e.g. '*.test.ts')"""


class GrepArgs(BaseModel):
    query: str = Field(description="The regex pattern to search for")
    include_pattern: Optional[str] = Field(default=None, description="Glob pattern for files to include (e.g. '*.ts' for TypeScript files)")
    exclude_pattern: Optional[str] = Field(default=None, description="Glob pattern for files to exclude")
    case_sensitive: Optional[bool] = Field(default=None, description="Whether the search should be case sensitive (default: false)")


@dataclass
class GrepMatch:
    path: str
    line_number: int
    line_text: str


def _attrs(args: dict[str, Any], count: int | None = None) -> dict[str, Any]:
    return {
        "query": args.get("query") or None,
        "include": args.get("include_pattern") or None,
        "exclude": args.get("exclude_pattern") or None,
        "case-sensitive": True if args.get("case_sensitive") else None,
        "count": str(count) if count is not None else None,
    }


def build_rg_command(args: GrepArgs, ctx: ToolContext) -> list[str]:
    s = ctx.settings
    cmd = [s.rg_path, "--json", "--no-config", "--max-filesize", s.max_filesize]
    for g in s.excluded_globs:
        cmd += ["--glob", g]
    if not args.case_sensitive:
        cmd.append("--ignore-case")
    if args.include_pattern:
        cmd += ["--glob", args.include_pattern]
    if args.exclude_pattern:
        cmd += ["--glob", f"!{args.exclude_pattern}"]
    cmd += ["--", args.query, "."]
    return cmd


def match_from_event(ev: dict[str, Any]) -> GrepMatch | None:
    if ev.get("type") != "match" or not isinstance(ev.get("data"), dict):
        return None
    data = ev["data"]
    path = (data.get("path") or {}).get("text")
    text = (data.get("lines") or {}).get("text")
    line_number = data.get("line_number")
    if not path or not isinstance(text, str) or not isinstance(line_number, int):
        return None
    if path.startswith("./"):
        path = path[2:]
    return GrepMatch(path=path, line_number=line_number, line_text=text.rstrip("\r\n"))


class GrepTool(ToolDefinition):
    name = "grep"
    description = DESCRIPTION
    input_schema = GrepArgs

    def get_consent_preview(self, args: GrepArgs) -> str:
        preview = f'Search for "{args.query}"'
        if args.include_pattern:
            preview += f" in {args.include_pattern}"
        return preview

    def build_tag(self, args: dict[str, Any], is_complete: bool) -> Tag | None:
        if is_complete or not args.get("query"):
            return None
        return Tag(name="grep", attrs=_attrs(args), body="Searching...")

    def execute(self, args: GrepArgs, ctx: ToolContext) -> ToolOutput:
        cmd = build_rg_command(args, ctx)
        try:
            result = run_json_lines(cmd, ctx.project_root, ok_codes=(0, 1))
        except FileNotFoundError as e:
            raise ExecutionFailure(f"ripgrep not found: {ctx.settings.rg_path}") from e
        except CmdFailed as e:
            raise ExternalServiceError("ripgrep", e.returncode, e.stderr.strip()) from e

        matches = [m for m in (match_from_event(ev) for ev in result.events) if m is not None]
        attrs = _attrs(args.model_dump(), len(matches))

        if not matches:
            return ToolOutput("No matches found.", Tag(name="grep", attrs=attrs, body="No matches found.", complete=True))

        text = "\n".join(f"{m.path}:{m.line_number}: {m.line_text}" for m in matches)
        return ToolOutput(text, Tag(name="grep", attrs=attrs, body=text, complete=True, block=True))
