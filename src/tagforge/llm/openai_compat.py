from __future__ import annotations

import json
import logging
import threading
import urllib.error
import urllib.request
from dataclasses import dataclass
from typing import Any, Iterable, Iterator

from ..errors import ExternalServiceError
from ..util.partial_json import parse_partial
from .models import (
    AssistantTurn,
    StreamFinish,
    StreamPart,
    TextDelta,
    ToolCall,
    ToolInputDelta,
    ToolInputEnd,
    ToolInputStart,
)

logger = logging.getLogger(__name__)


def _parse_arguments(arg_str: str) -> dict[str, Any]:
    if not arg_str.strip():
        return {}
    try:
        obj = json.loads(arg_str)
    except json.JSONDecodeError:
        # truncated or sloppy arguments; salvage what we can
        return parse_partial(arg_str)
    return obj if isinstance(obj, dict) else {}


def iter_sse_data(lines: Iterable[bytes]) -> Iterator[dict[str, Any]]:
    """Decode ``data: {...}`` lines of an SSE body until ``[DONE]``."""
    for raw_line in lines:
        line = raw_line.decode("utf-8", errors="replace").strip()
        if not line or not line.startswith("data:"):
            continue
        data_str = line[len("data:"):].strip()
        if data_str == "[DONE]":
            break
        try:
            ev = json.loads(data_str)
        except json.JSONDecodeError:
            logger.debug("skipping malformed SSE chunk: %s", data_str[:200])
            continue
        if isinstance(ev, dict):
            yield ev


class _ToolCallAccumulator:
    """Tool calls are streamed as deltas by index; accumulate into strings."""

    def __init__(self) -> None:
        self.tc_by_index: dict[int, dict[str, Any]] = {}

    def feed(self, tool_calls: list[dict[str, Any]]) -> Iterator[StreamPart]:
        for tc in tool_calls:
            idx = int(tc.get("index", 0))
            cur = self.tc_by_index.setdefault(idx, {"id": "", "name": "", "arguments": "", "started": False})
            if tc.get("id") and not cur["id"]:
                cur["id"] = str(tc["id"])
            fn = tc.get("function") or {}
            if fn.get("name"):
                cur["name"] = str(fn["name"])
            if not cur["id"]:
                cur["id"] = f"call_{idx}"
            if not cur["started"] and cur["name"]:
                cur["started"] = True
                yield ToolInputStart(id=cur["id"], name=cur["name"])
                # arguments that arrived before the name
                if cur["arguments"]:
                    yield ToolInputDelta(id=cur["id"], delta=cur["arguments"])
            if fn.get("arguments"):
                chunk = str(fn["arguments"])
                cur["arguments"] += chunk
                if cur["started"]:
                    yield ToolInputDelta(id=cur["id"], delta=chunk)

    def finish(self) -> tuple[list[StreamPart], list[ToolCall]]:
        ends: list[StreamPart] = []
        calls: list[ToolCall] = []
        for idx in sorted(self.tc_by_index):
            tc = self.tc_by_index[idx]
            if tc["started"]:
                ends.append(ToolInputEnd(id=tc["id"]))
            calls.append(ToolCall(
                id=tc["id"],
                name=tc["name"],
                arguments=_parse_arguments(tc["arguments"]),
                arguments_text=tc["arguments"],
            ))
        return ends, calls


def stream_parts(events: Iterable[dict[str, Any]], abort: threading.Event | None = None) -> Iterator[StreamPart]:
    """Turn decoded chat-completion chunks into stream parts."""
    text_parts: list[str] = []
    acc = _ToolCallAccumulator()
    finish_reason: str | None = None

    for ev in events:
        if abort is not None and abort.is_set():
            break
        choices = ev.get("choices") or []
        if not choices:
            continue
        choice = choices[0]
        delta = choice.get("delta") or {}
        if delta.get("content"):
            chunk = str(delta["content"])
            text_parts.append(chunk)
            yield TextDelta(chunk)
        if delta.get("tool_calls"):
            yield from acc.feed(delta["tool_calls"])
        if choice.get("finish_reason"):
            finish_reason = str(choice["finish_reason"])

    ends, calls = acc.finish()
    yield from ends
    yield StreamFinish(AssistantTurn(text="".join(text_parts), tool_calls=calls, finish_reason=finish_reason))


@dataclass
class OpenAICompatProvider:
    """
    Minimal OpenAI-compatible Chat Completions client.
    Works with OpenAI and many compatible gateways (OpenRouter, vLLM, LM Studio, etc.)
    """
    model: str
    base_url: str
    api_key: str
    provider_name: str = "openai"
    temperature: float = 0.2
    timeout: float = 120

    def stream(
        self,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
        *,
        abort: threading.Event | None = None,
    ) -> Iterator[StreamPart]:
        if not self.api_key:
            raise RuntimeError("Missing API key. Set it in the provider YAML (e.g. api_key: ${OPENAI_API_KEY}).")

        url = self.base_url.rstrip("/") + "/chat/completions"
        payload: dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "temperature": self.temperature,
            "stream": True,
        }
        if tools:
            payload["tools"] = tools
            payload["tool_choice"] = "auto"

        data = json.dumps(payload).encode("utf-8")
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}",
        }
        req = urllib.request.Request(url, data=data, headers=headers, method="POST")
        try:
            with urllib.request.urlopen(req, timeout=self.timeout) as resp:
                yield from stream_parts(iter_sse_data(resp), abort)
        except urllib.error.HTTPError as e:
            body = e.read().decode("utf-8", errors="replace") if hasattr(e, "read") else ""
            raise ExternalServiceError("/chat/completions", e.code, body) from e
        except urllib.error.URLError as e:
            raise ExternalServiceError("/chat/completions", None, str(e.reason)) from e
