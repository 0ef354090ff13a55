from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

from ...protocol.tags import Tag
from ...util.fs import safe_join
from ..base import ToolContext, ToolDefinition

logger = logging.getLogger(__name__)


class DeleteFileArgs(BaseModel):
    path: str = Field(description="The file path to delete")


class DeleteFileTool(ToolDefinition):
    name = "delete_file"
    description = "Delete a file or directory from the codebase"
    input_schema = DeleteFileArgs
    modifies_state = True

    def get_consent_preview(self, args: DeleteFileArgs) -> str:
        return f"Delete {args.path}"

    def build_tag(self, args: dict[str, Any], is_complete: bool) -> Tag | None:
        if not args.get("path"):
            return None
        return Tag(name="delete", attrs={"path": args["path"]}, complete=is_complete)

    def execute(self, args: DeleteFileArgs, ctx: ToolContext) -> str:
        # validate before anything touches disk or the overlay
        full = Path(safe_join(ctx.project_root, args.path))
        ctx.note_path_touched(args.path)

        if full.is_dir():
            shutil.rmtree(full)
        elif full.exists():
            full.unlink()
        else:
            logger.warning("File to delete does not exist: %s", full)

        ctx.vfs.delete_file(str(full))
        logger.info("Successfully deleted: %s", full)
        return f"Successfully deleted {args.path}"
