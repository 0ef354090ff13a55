"""The streamed response as the client sees it.

Model text is kept in arrival order. A tool call gets a slot the first time
anything arrives for it and previews overwrite that slot; when the call
completes, the slot moves to the end, so the persisted ``full_response``
lists calls in the order their final tags completed.
"""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Protocol

from rich.console import Console

from .protocol.tags import parse_tags
from .tools.todos import Todo

logger = logging.getLogger(__name__)


class UiSink(Protocol):
    def on_text(self, text: str) -> None: ...
    def on_tag_stream(self, call_id: str, text: str) -> None: ...
    def on_tag_complete(self, call_id: str, text: str) -> None: ...
    def on_todos(self, todos: list[Todo]) -> None: ...


class ConsoleUi:
    """Rich console renderer: text as it streams, tags once they complete."""

    _STATUS_STYLE = {"completed": "green", "in_progress": "yellow", "pending": "dim"}

    def __init__(self, console: Console | None = None):
        self.console = console or Console()

    def on_text(self, text: str) -> None:
        self.console.print(text, end="", markup=False, highlight=False)

    def on_tag_stream(self, call_id: str, text: str) -> None:
        pass

    def on_tag_complete(self, call_id: str, text: str) -> None:
        for tag in parse_tags(text):
            attrs = " ".join(f"{k}={v}" for k, v in tag.attrs.items() if v)
            self.console.print(f"\n[cyan]{tag.name}[/cyan] [dim]{attrs}[/dim]")
            if tag.body.strip():
                self.console.print(tag.body.strip(), markup=False, highlight=False)

    def on_todos(self, todos: list[Todo]) -> None:
        for t in todos:
            style = self._STATUS_STYLE.get(t.status, "")
            self.console.print(f"  [{style}]\\[{t.status}][/{style}] {t.content}")


@dataclass
class _Slot:
    call_id: str | None
    text: str
    done: bool = True


class Transcript:
    def __init__(self, ui: UiSink | None = None):
        self.ui = ui
        self._slots: list[_Slot] = []
        self._by_call: dict[str, _Slot] = {}
        self._lock = threading.Lock()
        self.aborted = False
        self.todos: list[Todo] = []

    def _slot_for(self, call_id: str) -> _Slot:
        slot = self._by_call.get(call_id)
        if slot is None:
            slot = _Slot(call_id=call_id, text="", done=False)
            self._slots.append(slot)
            self._by_call[call_id] = slot
        return slot

    def add_text(self, text: str) -> None:
        with self._lock:
            if self.aborted:
                return
            if self._slots and self._slots[-1].call_id is None:
                self._slots[-1].text += text
            else:
                self._slots.append(_Slot(call_id=None, text=text))
        if self.ui is not None:
            self.ui.on_text(text)

    # TagSink

    def stream(self, call_id: str, text: str) -> None:
        with self._lock:
            if self.aborted:
                return
            slot = self._slot_for(call_id)
            if slot.done:
                return
            slot.text = text
        if self.ui is not None:
            self.ui.on_tag_stream(call_id, text)

    def complete(self, call_id: str, text: str) -> None:
        with self._lock:
            if self.aborted:
                return
            slot = self._slot_for(call_id)
            if slot.done:
                return
            slot.text = text
            slot.done = True
            self._slots.remove(slot)
            self._slots.append(slot)
        if self.ui is not None:
            self.ui.on_tag_complete(call_id, text)

    def update_todos(self, todos: list[Todo]) -> None:
        with self._lock:
            if self.aborted:
                return
            self.todos = list(todos)
        if self.ui is not None:
            self.ui.on_todos(list(todos))

    def abort(self) -> None:
        """Close whatever is still streaming and ignore everything after."""
        with self._lock:
            if self.aborted:
                return
            self.aborted = True
            for slot in self._slots:
                if slot.call_id is not None and not slot.done:
                    closed = [t.closed().render() for t in parse_tags(slot.text)]
                    slot.text = "".join(closed)
                    slot.done = True
        logger.info("transcript aborted")

    @property
    def pending_calls(self) -> list[str]:
        with self._lock:
            return [s.call_id for s in self._slots if s.call_id is not None and not s.done]

    @property
    def full_response(self) -> str:
        with self._lock:
            parts = []
            for s in self._slots:
                if s.call_id is None:
                    parts.append(s.text)
                elif s.text:
                    parts.append(s.text if s.text.startswith("\n") else "\n" + s.text)
                    parts.append("\n")
            return "".join(parts)
