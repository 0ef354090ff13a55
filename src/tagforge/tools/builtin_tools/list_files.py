from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, Field

from ...errors import ExecutionFailure
from ...protocol.tags import Tag
from ...util.fs import resolve_within_root
from ..base import ToolContext, ToolDefinition, ToolOutput
from .codebase import list_project_files


class ListFilesArgs(BaseModel):
    directory: Optional[str] = Field(default=None, description="Optional subdirectory to list")
    recursive: Optional[bool] = Field(default=None, description="Whether to list files recursively (default: false)")


def _attrs(args: dict[str, Any]) -> dict[str, Any]:
    return {"directory": args.get("directory") or None, "recursive": args.get("recursive")}


class ListFilesTool(ToolDefinition):
    name = "list_files"
    description = (
        "List files in the project directory. By default, lists only the immediate directory contents. "
        "Use recursive=true to list all files recursively. If you are not sure, list all files by "
        "omitting the directory parameter."
    )
    input_schema = ListFilesArgs

    def get_consent_preview(self, args: ListFilesArgs) -> str:
        suffix = " (recursive)" if args.recursive else ""
        return f"List {args.directory}{suffix}" if args.directory else f"List all files{suffix}"

    def build_tag(self, args: dict[str, Any], is_complete: bool) -> Tag | None:
        if is_complete:
            return None
        return Tag(name="list-files", attrs=_attrs(args))

    def execute(self, args: ListFilesArgs, ctx: ToolContext) -> ToolOutput:
        directory = ""
        if args.directory:
            directory = resolve_within_root(ctx.project_root, args.directory).replace("\\", "/")
        if directory and not ctx.vfs.file_exists(directory) and not _has_virtual_under(ctx, directory):
            raise ExecutionFailure(f"Directory does not exist: {args.directory}")

        files = list_project_files(ctx, directory, recursive=bool(args.recursive))

        limit = ctx.settings.list_files_ui_limit
        shown = "\n".join(f" - {p}" for p in files[:limit])
        total = len(files)
        if total > limit:
            count_info = f"\n... and {total - limit} more files ({total} total)"
        else:
            count_info = f"\n({total} files total)"

        tag = Tag(name="list-files", attrs=_attrs(args.model_dump()), body=shown + count_info, complete=True)
        return ToolOutput("\n".join(f" - {p}" for p in files), tag)


def _has_virtual_under(ctx: ToolContext, directory: str) -> bool:
    prefix = directory.rstrip("/") + "/"
    return any(vf.path.replace("\\", "/").startswith(prefix) for vf in ctx.vfs.get_virtual_files())
