from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, Field

from ...protocol.tags import Tag
from ...util.fs import safe_join
from ..base import ToolContext, ToolDefinition

logger = logging.getLogger(__name__)


class WriteFileArgs(BaseModel):
    path: str = Field(description="The file path relative to the project root")
    content: str = Field(description="The content to write to the file")
    description: Optional[str] = Field(default=None, description="Brief description of the change")


class WriteFileTool(ToolDefinition):
    name = "write_file"
    description = "Create or completely overwrite a file in the codebase"
    input_schema = WriteFileArgs
    modifies_state = True

    def get_consent_preview(self, args: WriteFileArgs) -> str:
        return f"Write to {args.path}"

    def build_tag(self, args: dict[str, Any], is_complete: bool) -> Tag | None:
        if not args.get("path"):
            return None
        return Tag(
            name="write",
            attrs={"path": args["path"], "description": args.get("description") or ""},
            body=str(args.get("content") or ""),
            complete=is_complete,
            block=True,
        )

    def execute(self, args: WriteFileArgs, ctx: ToolContext) -> str:
        full = Path(safe_join(ctx.project_root, args.path))
        ctx.note_path_touched(args.path)

        full.parent.mkdir(parents=True, exist_ok=True)
        full.write_text(args.content, encoding="utf-8")
        ctx.vfs.write_file(str(full), args.content)
        logger.info("Successfully wrote file: %s", full)
        return f"Successfully wrote {args.path}"
