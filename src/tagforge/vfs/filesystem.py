"""Overlay of pending writes, deletes and renames on top of a project directory.

Tools write through to disk as they go; the overlay lets the rest of the turn
(other tool calls, type checking, the final "what changed" report) see one
consistent view without rereading disk, and remembers deletions so a file
that is gone in this turn stays gone even if something recreates it behind
our back.
"""
from __future__ import annotations

import asyncio
import logging
import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Awaitable, Protocol

from ..util.fs import normalize_path

logger = logging.getLogger(__name__)

CASE_INSENSITIVE = sys.platform == "win32"


@dataclass(frozen=True)
class VirtualFile:
    path: str
    content: str


@dataclass(frozen=True)
class VirtualRename:
    from_path: str
    to_path: str


@dataclass
class VirtualChanges:
    deletes: list[str] = field(default_factory=list)
    renames: list[VirtualRename] = field(default_factory=list)
    writes: list[VirtualFile] = field(default_factory=list)


class SyncFileSystemDelegate(Protocol):
    def file_exists(self, path: str) -> bool: ...
    def read_file(self, path: str) -> str | None: ...


class AsyncFileSystemDelegate(Protocol):
    def file_exists(self, path: str) -> Awaitable[bool]: ...
    def read_file(self, path: str) -> Awaitable[str | None]: ...


class BaseVirtualFileSystem:
    def __init__(self, base_dir: str | Path):
        self.base_dir = os.path.abspath(str(base_dir))
        # key -> content; key -> original absolute spelling
        self._files: dict[str, str] = {}
        self._deleted: set[str] = set()
        self._spelling: dict[str, str] = {}

    def _absolute(self, file_path: str) -> str:
        if os.path.isabs(file_path):
            return os.path.normpath(file_path)
        return os.path.normpath(os.path.join(self.base_dir, file_path))

    def _key(self, file_path: str) -> str:
        key = normalize_path(self._absolute(file_path))
        return key.lower() if CASE_INSENSITIVE else key

    def _remember(self, key: str, file_path: str) -> None:
        self._spelling[key] = self._absolute(file_path)

    def _relative(self, key: str) -> str:
        return os.path.relpath(self._spelling.get(key, key), self.base_dir)

    def apply_changes(self, changes: VirtualChanges) -> None:
        """Apply a batch in a fixed order: deletes, then renames, then writes."""
        for p in changes.deletes:
            self.delete_file(p)
        for r in changes.renames:
            self.rename_file(r.from_path, r.to_path)
        for w in changes.writes:
            self.write_file(w.path, w.content)

    def write_file(self, file_path: str, content: str) -> None:
        key = self._key(file_path)
        self._files[key] = content
        self._deleted.discard(key)
        self._remember(key, file_path)

    def delete_file(self, file_path: str) -> None:
        key = self._key(file_path)
        self._deleted.add(key)
        self._files.pop(key, None)
        self._remember(key, file_path)

    def rename_file(self, from_path: str, to_path: str) -> None:
        src = self._key(from_path)
        dst = self._key(to_path)

        self._deleted.add(src)
        self._remember(src, from_path)

        if src in self._files:
            self._files[dst] = self._files.pop(src)
            self._remember(dst, to_path)
        else:
            try:
                with open(self._absolute(from_path), encoding="utf-8") as f:
                    self._files[dst] = f.read()
                self._remember(dst, to_path)
            except OSError as e:
                logger.warning("Could not read source file for rename: %s (%s)", from_path, e)

        self._deleted.discard(dst)

    def get_virtual_files(self) -> list[VirtualFile]:
        return [VirtualFile(path=self._relative(k), content=v) for k, v in self._files.items()]

    def get_deleted_files(self) -> list[str]:
        return [self._relative(k) for k in self._deleted]

    def is_deleted(self, file_path: str) -> bool:
        return self._key(file_path) in self._deleted

    def has_virtual_file(self, file_path: str) -> bool:
        return self._key(file_path) in self._files

    def get_virtual_content(self, file_path: str) -> str | None:
        return self._files.get(self._key(file_path))


class SyncVirtualFileSystem(BaseVirtualFileSystem):
    def __init__(self, base_dir: str | Path, delegate: SyncFileSystemDelegate | None = None):
        super().__init__(base_dir)
        self.delegate = delegate

    def file_exists(self, file_path: str) -> bool:
        if self.is_deleted(file_path):
            return False
        if self.has_virtual_file(file_path):
            return True
        if self.delegate is not None:
            return self.delegate.file_exists(file_path)
        return os.path.exists(self._absolute(file_path))

    def read_file(self, file_path: str) -> str | None:
        if self.is_deleted(file_path):
            return None
        content = self.get_virtual_content(file_path)
        if content is not None:
            return content
        if self.delegate is not None:
            return self.delegate.read_file(file_path)
        try:
            with open(self._absolute(file_path), encoding="utf-8", errors="replace") as f:
                return f.read()
        except OSError:
            return None


class AsyncVirtualFileSystem(BaseVirtualFileSystem):
    """Same lookup order as the sync variant; disk access runs in a worker thread."""

    def __init__(self, base_dir: str | Path, delegate: AsyncFileSystemDelegate | None = None):
        super().__init__(base_dir)
        self.delegate = delegate

    async def file_exists(self, file_path: str) -> bool:
        if self.is_deleted(file_path):
            return False
        if self.has_virtual_file(file_path):
            return True
        if self.delegate is not None:
            return await self.delegate.file_exists(file_path)
        return await asyncio.to_thread(os.path.exists, self._absolute(file_path))

    async def read_file(self, file_path: str) -> str | None:
        if self.is_deleted(file_path):
            return None
        content = self.get_virtual_content(file_path)
        if content is not None:
            return content
        if self.delegate is not None:
            return await self.delegate.read_file(file_path)
        try:
            return await asyncio.to_thread(_read_disk, self._absolute(file_path))
        except OSError:
            return None


def _read_disk(path: str) -> str:
    with open(path, encoding="utf-8", errors="replace") as f:
        return f.read()


