from __future__ import annotations

import threading
from dataclasses import dataclass, replace
from typing import Any, Callable, Iterable, Literal, Optional

from ..errors import TodoValidationError

Status = Literal["pending", "in_progress", "completed"]
STATUSES: tuple[str, ...] = ("pending", "in_progress", "completed")


@dataclass(frozen=True)
class Todo:
    id: str
    content: str
    status: Status = "pending"

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "content": self.content, "status": self.status}


@dataclass(frozen=True)
class TodoPatch:
    """Incoming record from an update call; omitted fields stay untouched on merge."""

    id: str
    content: Optional[str] = None
    status: Optional[Status] = None

    @staticmethod
    def from_obj(obj: Any) -> "TodoPatch":
        if isinstance(obj, TodoPatch):
            return obj
        if isinstance(obj, Todo):
            return TodoPatch(id=obj.id, content=obj.content, status=obj.status)
        if hasattr(obj, "model_dump"):
            obj = obj.model_dump()
        if not isinstance(obj, dict) or not isinstance(obj.get("id"), str):
            raise TodoValidationError(f"Invalid todo record: {obj!r}")
        status = obj.get("status")
        if status is not None and status not in STATUSES:
            raise TodoValidationError(f"Invalid todo status: {status}")
        content = obj.get("content")
        return TodoPatch(id=obj["id"], content=None if content is None else str(content), status=status)


def merge_update(existing: list[Todo], incoming: Iterable[Any], merge: bool) -> list[Todo]:
    """Return the todo list after applying ``incoming``.

    Replace mode (merge=False) needs every record fully specified. Merge mode
    matches by id and only overwrites supplied fields; new ids still need both
    content and status. On any violation nothing is applied.
    """
    patches = [TodoPatch.from_obj(x) for x in incoming]

    if not merge:
        out: list[Todo] = []
        for p in patches:
            if p.content is None or p.status is None:
                raise TodoValidationError(
                    f'Todo with id "{p.id}" must have content and status defined when merge is false'
                )
            out.append(Todo(id=p.id, content=p.content, status=p.status))
        return out

    by_id: dict[str, Todo] = {t.id: t for t in existing}
    for p in patches:
        cur = by_id.get(p.id)
        if cur is not None:
            changes: dict[str, Any] = {}
            if p.content is not None:
                changes["content"] = p.content
            if p.status is not None:
                changes["status"] = p.status
            by_id[p.id] = replace(cur, **changes)
        else:
            if p.content is None or p.status is None:
                raise TodoValidationError(
                    f'New todo with id "{p.id}" must have content and status defined'
                )
            by_id[p.id] = Todo(id=p.id, content=p.content, status=p.status)
    return list(by_id.values())


def summarize(todos: list[Todo]) -> str:
    completed = [t for t in todos if t.status == "completed"]
    in_progress = [t for t in todos if t.status == "in_progress"]
    pending = [t for t in todos if t.status == "pending"]

    text = (
        f"Updated todos: {len(completed)} completed, "
        f"{len(in_progress)} in progress, {len(pending)} pending"
    )
    outstanding = in_progress + pending
    if outstanding:
        text += "\n\nOutstanding todos:\n" + "\n".join(f"- [{t.status}] {t.content}" for t in outstanding)
    return text


class TodoTracker:
    """Turn-scoped todo list mirrored out to an observer (the UI)."""

    def __init__(self, todos: Iterable[Todo] = (), observer: Callable[[list[Todo]], None] | None = None):
        self._todos: list[Todo] = list(todos)
        self._lock = threading.Lock()
        self.observer = observer

    @property
    def todos(self) -> list[Todo]:
        return list(self._todos)

    def update(self, incoming: Iterable[Any], merge: bool) -> str:
        with self._lock:
            self._todos = merge_update(self._todos, incoming, merge)
            snapshot = list(self._todos)
        if self.observer is not None:
            self.observer(snapshot)
        return summarize(snapshot)
