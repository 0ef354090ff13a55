from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, Field, ValidationError

from ...errors import ExecutionFailure, ExternalServiceError
from ...protocol.tags import Tag
from ...util.fs import safe_join
from ..base import ToolContext, ToolDefinition

logger = logging.getLogger(__name__)

DESCRIPTION = """\
Edit an existing file by sending a sketch of the change. A merge model applies the sketch to the
current file content.

Write each change in sequence and mark unchanged spans with a comment such as
`// ... existing code ...` (or `# ... existing code ...`). Repeat as few original lines as you
can while keeping the edit unambiguous. Use one edit_file call per file.

Do not use this tool to create new files or to rewrite most of a file; write the whole file
instead.
"""


class EditFileArgs(BaseModel):
    path: str = Field(description="The file path relative to the project root")
    content: str = Field(description="The updated code snippet to apply")
    description: Optional[str] = Field(default=None, description="Brief description of the edit")


class _TurboEditResponse(BaseModel):
    result: str


class EditFileTool(ToolDefinition):
    name = "edit_file"
    description = DESCRIPTION
    input_schema = EditFileArgs
    modifies_state = True

    def is_enabled(self, ctx: ToolContext) -> bool:
        return ctx.engine is not None

    def get_consent_preview(self, args: EditFileArgs) -> str:
        return f"Edit {args.path}"

    def build_tag(self, args: dict[str, Any], is_complete: bool) -> Tag | None:
        if not args.get("path"):
            return None
        return Tag(
            name="edit",
            attrs={"path": args["path"], "description": args.get("description") or ""},
            body=str(args.get("content") or ""),
            complete=is_complete,
            block=True,
        )

    def execute(self, args: EditFileArgs, ctx: ToolContext) -> str:
        full = Path(safe_join(ctx.project_root, args.path))
        ctx.note_path_touched(args.path)

        if not ctx.vfs.file_exists(str(full)):
            raise ExecutionFailure(f"File does not exist: {args.path}")
        if ctx.engine is None:
            raise ExecutionFailure("No engine configured for file edits")
        original = ctx.vfs.read_file(str(full)) or ""

        raw = ctx.engine.fetch(
            "/tools/turbo-file-edit",
            {
                "path": args.path,
                "content": args.content,
                "originalContent": original,
                "description": args.description or "",
            },
            request_id=ctx.request_id,
        )
        try:
            new_content = _TurboEditResponse.model_validate(raw).result
        except ValidationError as e:
            raise ExternalServiceError("/tools/turbo-file-edit", None, f"unexpected response: {e}") from e
        if not new_content:
            raise ExecutionFailure("Failed to extract content from turbo-file-edit response")

        full.parent.mkdir(parents=True, exist_ok=True)
        full.write_text(new_content, encoding="utf-8")
        ctx.vfs.write_file(str(full), new_content)
        logger.info("Successfully edited file: %s", full)
        return f"Successfully edited {args.path}"
