from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Any, Iterator, Optional, Protocol

from .errors import ToolError
from .events.store import EventStore
from .llm.models import (
    AssistantTurn,
    Message,
    StreamFinish,
    StreamPart,
    TextDelta,
    ToolCall,
    ToolInputDelta,
    ToolInputStart,
)
from .protocol.tags import TagStream, error_tag
from .tools.base import ContentPart, ToolContext, ToolResult
from .tools.dispatch import ActiveTool, ToolCallStream
from .tools.todos import Todo
from .transcript import Transcript

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """You are tagforge, a coding agent working inside a single project directory.
Rules:
- Use the provided tools to inspect and change files; never invent file contents.
- Prefer list_files/grep/code_search/read_file before editing.
- Prefer search_replace for small edits and write_file for new files or full rewrites.
- All paths are relative to the project root.
- Use update_todos for multi-step work and call set_chat_summary once at the end of the turn.
"""

MAX_TOOL_RESULT_CHARS = 50_000
MAX_PARALLEL_TOOLS = 4
# tools that share mutable turn state and therefore run in call order
SEQUENTIAL_TOOLS = {"update_todos"}


class ChatProvider(Protocol):
    def stream(
        self,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
        *,
        abort: threading.Event | None = None,
    ) -> Iterator[StreamPart]: ...


@dataclass
class TurnResult:
    text: str
    full_response: str
    steps: int
    aborted: bool = False
    chat_summary: str | None = None
    todos: list[Todo] = field(default_factory=list)
    written: list[str] = field(default_factory=list)
    deleted: list[str] = field(default_factory=list)


def tool_specs_to_openai(active: dict[str, ActiveTool]) -> list[dict]:
    out = []
    for a in active.values():
        spec = a.tool.spec
        out.append({
            "type": "function",
            "function": {
                "name": spec.name,
                "description": spec.description,
                "parameters": spec.parameters,
            },
        })
    return out


def _truncate(content: str, limit: int = MAX_TOOL_RESULT_CHARS) -> str:
    if len(content) <= limit:
        return content
    head = content[: limit // 2]
    tail = content[-limit // 2 :]
    return head + "\n\n... (truncated) ...\n\n" + tail


class _RecordingSink:
    """Forwards tags to the transcript and records completed ones."""

    def __init__(self, transcript: Transcript, events: EventStore | None):
        self.transcript = transcript
        self.events = events

    def stream(self, call_id: str, text: str) -> None:
        self.transcript.stream(call_id, text)

    def complete(self, call_id: str, text: str) -> None:
        self.transcript.complete(call_id, text)
        if self.events:
            self.events.append("tag.complete", {"call_id": call_id, "tag": text[:4000]})


class TurnRunner:
    """Drives one agent turn: model step, tool calls, repeat until a plain answer."""

    def __init__(
        self,
        provider: ChatProvider,
        active_tools: dict[str, ActiveTool],
        ctx: ToolContext,
        transcript: Transcript,
        *,
        events: EventStore | None = None,
        max_steps: int = 25,
        abort: threading.Event | None = None,
        system_prompt: str = SYSTEM_PROMPT,
    ):
        self.provider = provider
        self.ctx = ctx
        self.transcript = transcript
        self.events = events
        self.max_steps = max_steps
        self.abort = abort or threading.Event()
        self.system_prompt = system_prompt

        self.sink = _RecordingSink(transcript, events)
        self.active_tools = active_tools
        for a in active_tools.values():
            a.sink = self.sink

        self._followups: list[ContentPart] = []
        self._external_todos = ctx.on_update_todos
        ctx.state.todos.observer = self._on_todos
        ctx.append_followup_content = self._followups.extend
        self._open_streams: dict[str, ToolCallStream] = {}

    def _event(self, event_type: str, data: dict[str, Any]) -> None:
        if self.events:
            self.events.append(event_type, data)

    def _on_todos(self, todos: list[Todo]) -> None:
        self.transcript.update_todos(todos)
        self._event("todos.update", {"todos": [t.to_dict() for t in todos]})
        if self._external_todos is not None:
            self._external_todos(todos)

    # ---- model step ----

    def _stream_step(self, messages: list[Message], step: int) -> Optional[AssistantTurn]:
        payload = [{"role": "system", "content": self.system_prompt}] + [m.to_openai() for m in messages]
        self._event("llm.request", {"step": step, "messages_count": len(payload), "tools_count": len(self.active_tools)})

        turn: AssistantTurn | None = None
        t0 = time.perf_counter()
        for part in self.provider.stream(payload, tool_specs_to_openai(self.active_tools) or None, abort=self.abort):
            if self.abort.is_set():
                return None
            if isinstance(part, TextDelta):
                self.transcript.add_text(part.text)
            elif isinstance(part, ToolInputStart):
                active = self.active_tools.get(part.name)
                if active is not None:
                    self._open_streams[part.id] = active.stream(part.id)
            elif isinstance(part, ToolInputDelta):
                s = self._open_streams.get(part.id)
                if s is not None:
                    s.feed(part.delta)
            elif isinstance(part, StreamFinish):
                turn = part.turn
        if self.abort.is_set():
            return None

        turn = turn or AssistantTurn()
        self._event(
            "llm.response",
            {
                "step": step,
                "elapsed_ms": int((time.perf_counter() - t0) * 1000),
                "text": turn.text[:4000],
                "finish_reason": turn.finish_reason,
                "tool_calls": [{"id": tc.id, "name": tc.name, "arguments": tc.arguments} for tc in turn.tool_calls],
            },
        )
        return turn

    # ---- tool calls ----

    def _tag_stream_for(self, tc: ToolCall, active: ActiveTool | None) -> TagStream:
        s = self._open_streams.get(tc.id)
        if s is not None:
            return s.tags
        if active is not None:
            return active.new_tag_stream(tc.id)
        return TagStream(tc.id, tc.name, on_stream=self.sink.stream, on_complete=self.sink.complete)

    def _run_call(self, tc: ToolCall) -> ToolResult:
        active = self.active_tools.get(tc.name)
        tags = self._tag_stream_for(tc, active)

        if active is None:
            msg = f"Tool {tc.name} not found."
            self._event("tool.error", {"tool": tc.name, "tool_call_id": tc.id, "error": msg})
            tags.complete(error_tag(tc.name, msg))
            return ToolResult(content=msg, is_error=True)

        self._event("tool.call", {"tool": tc.name, "tool_call_id": tc.id, "args": tc.arguments})
        t0 = time.perf_counter()
        try:
            text = active.invoke(tc.arguments, tags)
        except ToolError as e:
            self._event("tool.error", {"tool": tc.name, "tool_call_id": tc.id, "error": str(e)[:2000]})
            return ToolResult(content=f"Error: {e}", is_error=True)

        self._event(
            "tool.result",
            {
                "tool": tc.name,
                "tool_call_id": tc.id,
                "elapsed_ms": int((time.perf_counter() - t0) * 1000),
                "content_len": len(text),
                "content_preview": text[:4000],
            },
        )
        return ToolResult(content=text)

    def _parallel_safe(self, tc: ToolCall) -> bool:
        active = self.active_tools.get(tc.name)
        return active is not None and not active.tool.modifies_state and tc.name not in SEQUENTIAL_TOOLS

    def _batches(self, calls: list[ToolCall]) -> list[list[ToolCall]]:
        """Group consecutive parallel-safe calls; everything else runs alone."""
        batches: list[list[ToolCall]] = []
        for tc in calls:
            if self._parallel_safe(tc) and batches and all(self._parallel_safe(x) for x in batches[-1]):
                batches[-1].append(tc)
            else:
                batches.append([tc])
        return batches

    def _run_batch(self, batch: list[ToolCall]) -> Optional[list[ToolResult]]:
        if len(batch) == 1:
            return [self._run_call(batch[0])]

        executor = ThreadPoolExecutor(max_workers=min(len(batch), MAX_PARALLEL_TOOLS))
        futures: dict[Future, int] = {executor.submit(self._run_call, tc): i for i, tc in enumerate(batch)}
        results: dict[int, ToolResult] = {}
        pending = set(futures)
        try:
            while pending:
                if self.abort.is_set():
                    return None
                done, pending = wait(pending, timeout=0.1, return_when=FIRST_COMPLETED)
                for f in done:
                    results[futures[f]] = f.result()
        finally:
            executor.shutdown(wait=not self.abort.is_set(), cancel_futures=self.abort.is_set())
        return [results[i] for i in range(len(batch))]

    def _abort_turn(self) -> None:
        pending = self.transcript.pending_calls
        for s in self._open_streams.values():
            s.tags.abort()
        self.transcript.abort()
        self._event("turn.aborted", {"pending_calls": pending})

    # ---- turn ----

    def run(self, messages: list[Message]) -> TurnResult:
        """Run until the model answers without tool calls, max_steps is hit, or abort is set.

        ``messages`` is extended in place with assistant and tool messages.
        """
        final_text = ""
        step = 0
        aborted = False

        while step < self.max_steps:
            self._open_streams = {}
            turn = self._stream_step(messages, step)
            if turn is None:
                aborted = True
                break
            step += 1
            if turn.text:
                final_text = turn.text

            if not turn.tool_calls:
                messages.append(Message(role="assistant", content=turn.text or ""))
                break

            messages.append(Message(
                role="assistant",
                content=turn.text or None,
                tool_calls=[tc.to_openai() for tc in turn.tool_calls],
            ))

            results: list[ToolResult] = []
            for batch in self._batches(turn.tool_calls):
                if self.abort.is_set():
                    break
                batch_results = self._run_batch(batch)
                if batch_results is None:
                    break
                results.extend(batch_results)
            if self.abort.is_set():
                aborted = True
                break

            for tc, res in zip(turn.tool_calls, results):
                messages.append(Message(role="tool", content=_truncate(res.content), tool_call_id=tc.id))

            if self._followups:
                messages.append(Message(role="user", content=list(self._followups)))
                self._followups.clear()
        else:
            logger.warning("Reached max steps (%d) without final answer", self.max_steps)
            final_text = final_text or "Reached max steps without final answer"

        if aborted:
            self._abort_turn()

        vfs = self.ctx.vfs
        return TurnResult(
            text=final_text,
            full_response=self.transcript.full_response,
            steps=step,
            aborted=aborted,
            chat_summary=self.ctx.chat_summary,
            todos=self.ctx.todos,
            written=sorted(vf.path for vf in vfs.get_virtual_files()),
            deleted=sorted(vfs.get_deleted_files()),
        )

