from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

from ...protocol.tags import Tag
from ...util.fs import safe_join
from ..base import ToolContext, ToolDefinition

logger = logging.getLogger(__name__)


class RenameFileArgs(BaseModel):
    from_: str = Field(alias="from", description="The current file path")
    to: str = Field(description="The new file path")

    model_config = {"populate_by_name": True}


class RenameFileTool(ToolDefinition):
    name = "rename_file"
    description = "Rename or move a file in the codebase"
    input_schema = RenameFileArgs
    modifies_state = True

    def get_consent_preview(self, args: RenameFileArgs) -> str:
        return f"Rename {args.from_} to {args.to}"

    def build_tag(self, args: dict[str, Any], is_complete: bool) -> Tag | None:
        src = args.get("from")
        if not src:
            return None
        return Tag(name="rename", attrs={"from": src, "to": args.get("to") or ""}, complete=is_complete)

    def execute(self, args: RenameFileArgs, ctx: ToolContext) -> str:
        src = Path(safe_join(ctx.project_root, args.from_))
        dst = Path(safe_join(ctx.project_root, args.to))
        ctx.note_path_touched(args.from_)
        ctx.note_path_touched(args.to)

        # overlay is updated only after the disk move succeeds
        content = ctx.vfs.read_file(str(src))

        dst.parent.mkdir(parents=True, exist_ok=True)
        if src.exists():
            os.replace(src, dst)
        else:
            logger.warning("Source file for rename does not exist: %s", src)

        ctx.vfs.delete_file(str(src))
        if content is not None:
            ctx.vfs.write_file(str(dst), content)

        logger.info("Successfully renamed %s to %s", src, dst)
        return f"Successfully renamed {args.from_} to {args.to}"
