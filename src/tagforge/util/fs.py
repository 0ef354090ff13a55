from __future__ import annotations

import ntpath
import os
import posixpath
import re
from fnmatch import fnmatch
from pathlib import Path
from typing import Iterable

from ..errors import PathTraversalError

_PARENT_SEGMENT = re.compile(r"(^|[\\/])\.\.([\\/]|$)")
_WIN_DRIVE = re.compile(r"^[a-zA-Z]:[\\/]")

DEFAULT_SHARED_MODULE_GLOBS = ("_shared/*", "*/_shared/*")


def normalize_path(p: str) -> str:
    return p.replace("\\", "/")


def _looks_like_win32(root: str) -> bool:
    # Windows roots are sometimes stored with forward slashes ("C:/...").
    return bool(_WIN_DRIVE.match(root)) or root.startswith("\\\\") or "\\" in root


def _absolute(impl, p: str) -> str:
    if impl.isabs(p):
        return impl.normpath(p)
    return impl.normpath(impl.join(os.getcwd(), p))


def resolve_within_root(root: str | Path, candidate: str) -> str:
    """Validate that ``candidate`` stays inside ``root``.

    Returns the path relative to the root ("" for the root itself). Any literal
    ``..`` segment is rejected even if the resolved path would stay inside.
    Windows-looking roots are compared case-insensitively. Nothing on disk is
    touched.
    """
    if _PARENT_SEGMENT.search(candidate):
        raise PathTraversalError(candidate, 'contains ".." path traversal segment')

    root_str = str(root)
    win32 = _looks_like_win32(root_str)
    impl = ntpath if win32 else posixpath

    resolved_root = _absolute(impl, root_str)
    resolved = _absolute(impl, impl.join(resolved_root, candidate))

    root_cmp = resolved_root.lower() if win32 else resolved_root
    target_cmp = resolved.lower() if win32 else resolved
    try:
        rel = impl.relpath(target_cmp, root_cmp)
    except ValueError:
        # different drives
        raise PathTraversalError(candidate)

    inside = rel == "." or (
        rel != ".." and not rel.startswith(".." + impl.sep) and not impl.isabs(rel)
    )
    if not inside:
        raise PathTraversalError(candidate)

    out = impl.relpath(resolved, resolved_root)
    return "" if out == "." else out


def safe_join(root: str | Path, *paths: str) -> str:
    """Join ``paths`` onto ``root`` refusing anything that would leave it."""
    root_str = str(root)
    normalized = [normalize_path(p) for p in paths]

    for original, seg in zip(paths, normalized):
        if (
            posixpath.isabs(seg)
            or seg.startswith("~/")
            or _WIN_DRIVE.match(seg)
            or original.startswith("\\\\")
        ):
            raise PathTraversalError(", ".join(paths), "would escape the base directory")
        resolve_within_root(root_str, seg)

    joined = os.path.join(root_str, *normalized)
    rel = os.path.relpath(os.path.abspath(joined), os.path.abspath(root_str))
    if rel == ".." or rel.startswith(".." + os.sep) or os.path.isabs(rel):
        raise PathTraversalError(", ".join(paths), "would escape the base directory")
    return joined


def is_shared_module(rel_path: str, globs: Iterable[str] = DEFAULT_SHARED_MODULE_GLOBS) -> bool:
    p = normalize_path(rel_path)
    while p.startswith("./"):
        p = p[2:]
    return any(fnmatch(p, g) for g in globs)


def read_text(path: Path) -> str:
    return path.read_text(encoding="utf-8", errors="replace")
