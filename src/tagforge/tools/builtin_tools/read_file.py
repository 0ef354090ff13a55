from __future__ import annotations

from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

from ...errors import ExecutionFailure
from ...protocol.tags import Tag
from ...util.fs import safe_join
from ..base import ToolContext, ToolDefinition


class ReadFileArgs(BaseModel):
    path: str = Field(description="The file path to read")


class ReadFileTool(ToolDefinition):
    name = "read_file"
    description = "Read the content of a file from the codebase"
    input_schema = ReadFileArgs

    def get_consent_preview(self, args: ReadFileArgs) -> str:
        return f"Read {args.path}"

    def build_tag(self, args: dict[str, Any], is_complete: bool) -> Tag | None:
        if not args.get("path"):
            return None
        return Tag(name="read", attrs={"path": args["path"]}, complete=is_complete)

    def execute(self, args: ReadFileArgs, ctx: ToolContext) -> str:
        full = Path(safe_join(ctx.project_root, args.path))
        content = ctx.vfs.read_file(str(full))
        if content is None or full.is_dir():
            raise ExecutionFailure(f"File does not exist: {args.path}")
        return content
