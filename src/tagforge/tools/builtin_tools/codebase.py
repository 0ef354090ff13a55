from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from ..base import ToolContext

IGNORED_DIRS = {".git", "node_modules", "__pycache__", ".venv", "venv", "dist", "build", ".next", ".mypy_cache", ".pytest_cache"}
MAX_CONTEXT_FILE_BYTES = 200_000


@dataclass
class CodebaseFile:
    path: str      # relative, forward slashes
    content: str


def list_project_files(ctx: ToolContext, directory: str = "", recursive: bool = True) -> list[str]:
    """Relative paths of files under ``directory`` as the current turn sees them.

    Files deleted this turn are hidden; files written this turn show up even if
    they were created outside the walked tree.
    """
    root = Path(ctx.project_root)
    start = root / directory if directory else root
    found: set[str] = set()

    if start.is_dir():
        if recursive:
            for dirpath, dirnames, filenames in os.walk(start):
                dirnames[:] = sorted(d for d in dirnames if d not in IGNORED_DIRS)
                for fn in filenames:
                    found.add(Path(dirpath, fn).relative_to(root).as_posix())
        else:
            for p in start.iterdir():
                if p.is_file():
                    found.add(p.relative_to(root).as_posix())

    prefix = (Path(directory).as_posix().rstrip("/") + "/") if directory else ""
    for vf in ctx.vfs.get_virtual_files():
        rel = Path(vf.path).as_posix()
        if not rel.startswith(prefix):
            continue
        if not recursive and "/" in rel[len(prefix):]:
            continue
        found.add(rel)

    return sorted(p for p in found if not ctx.vfs.is_deleted(p))


def read_codebase(ctx: ToolContext) -> list[CodebaseFile]:
    out: list[CodebaseFile] = []
    root = Path(ctx.project_root)
    for rel in list_project_files(ctx):
        full = root / rel
        try:
            if full.exists() and full.stat().st_size > MAX_CONTEXT_FILE_BYTES:
                continue
        except OSError:
            continue
        content = ctx.vfs.read_file(str(full))
        if content is None or "\x00" in content:
            continue
        out.append(CodebaseFile(path=rel, content=content))
    return out
