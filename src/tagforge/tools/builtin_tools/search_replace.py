from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, Field

from ...errors import ExecutionFailure
from ...protocol.tags import Tag
from ...util.fs import safe_join
from ..base import ToolContext, ToolDefinition

logger = logging.getLogger(__name__)


class SearchReplaceArgs(BaseModel):
    path: str = Field(description="The file path to edit")
    search: str = Field(description="Content to search for in the file. Must match the existing code that will be replaced")
    replace: str = Field(description="New content to replace the search content with")
    description: Optional[str] = Field(default=None, description="Brief description of the changes")


def apply_search_replace(original: str, search: str, replace: str) -> str:
    """Replace exactly one occurrence of ``search``.

    Falls back to a line-wise match that ignores leading/trailing whitespace
    when there is no exact hit. Zero or multiple matches are errors.
    """
    if not search:
        raise ExecutionFailure("Search block is empty")

    hits = original.count(search)
    if hits == 1:
        return original.replace(search, replace, 1)
    if hits > 1:
        raise ExecutionFailure(f"Search block matched {hits} times; include more surrounding lines")

    lines = original.splitlines(keepends=True)
    wanted = [s.strip() for s in search.strip("\n").splitlines()]
    n = len(wanted)
    starts = [
        i for i in range(len(lines) - n + 1)
        if [ln.strip() for ln in lines[i : i + n]] == wanted
    ]
    if not starts:
        raise ExecutionFailure("Search block not found in file")
    if len(starts) > 1:
        raise ExecutionFailure(f"Search block matched {len(starts)} times; include more surrounding lines")

    i = starts[0]
    block = replace
    last = lines[i + n - 1]
    if last.endswith("\n") and not block.endswith("\n"):
        block += "\n"
    return "".join(lines[:i]) + block + "".join(lines[i + n :])


class SearchReplaceTool(ToolDefinition):
    name = "search_replace"
    description = "Apply a targeted search/replace edit to a file. This is the preferred tool for editing a file."
    input_schema = SearchReplaceArgs
    modifies_state = True

    def get_consent_preview(self, args: SearchReplaceArgs) -> str:
        return f"Edit {args.path}"

    def build_tag(self, args: dict[str, Any], is_complete: bool) -> Tag | None:
        if not args.get("path"):
            return None
        body = "<<<<<<< SEARCH\n" + str(args.get("search") or "")
        if args.get("replace") is not None:
            body += "\n=======\n" + str(args["replace"])
        if is_complete:
            if args.get("replace") is None:
                body += "\n=======\n"
            body += "\n>>>>>>> REPLACE"
        return Tag(
            name="search-replace",
            attrs={"path": args["path"], "description": args.get("description") or ""},
            body=body,
            complete=is_complete,
            block=True,
        )

    def execute(self, args: SearchReplaceArgs, ctx: ToolContext) -> str:
        full = Path(safe_join(ctx.project_root, args.path))
        ctx.note_path_touched(args.path)

        original = ctx.vfs.read_file(str(full))
        if original is None:
            raise ExecutionFailure(f"File does not exist: {args.path}")

        updated = apply_search_replace(original, args.search, args.replace)
        full.write_text(updated, encoding="utf-8")
        ctx.vfs.write_file(str(full), updated)
        logger.info("Successfully applied search-replace to: %s", full)
        return f"Successfully applied edits to {args.path}"
