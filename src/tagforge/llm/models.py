from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Literal, Union

Role = Literal["system", "user", "assistant", "tool"]


def _part_to_openai(part: dict[str, str]) -> dict[str, Any]:
    if part.get("type") == "image-url":
        return {"type": "image_url", "image_url": {"url": part.get("url", "")}}
    return {"type": "text", "text": part.get("text", "")}


@dataclass
class Message:
    role: Role
    # content can be null in some OpenAI-compatible APIs when tool_calls are present;
    # a list holds text/image parts for follow-up user content
    content: str | list[dict[str, str]] | None
    tool_call_id: str | None = None
    # Assistant-only: OpenAI-compatible tool call representation
    tool_calls: list[dict[str, Any]] | None = None

    def to_openai(self) -> dict[str, Any]:
        content: Any = self.content
        if isinstance(content, list):
            content = [_part_to_openai(p) for p in content]
        d: dict[str, Any] = {"role": self.role, "content": content}
        if self.tool_call_id:
            d["tool_call_id"] = self.tool_call_id
        if self.role == "assistant" and self.tool_calls is not None:
            d["tool_calls"] = self.tool_calls
        return d


@dataclass
class ToolCall:
    id: str
    name: str
    arguments: dict[str, Any]  # parsed json
    arguments_text: str = ""

    def to_openai(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": "function",
            "function": {"name": self.name, "arguments": self.arguments_text or "{}"},
        }


@dataclass
class AssistantTurn:
    text: str = ""
    tool_calls: list[ToolCall] = field(default_factory=list)
    finish_reason: str | None = None


# Stream parts yielded by a provider while a response is generated.

@dataclass
class TextDelta:
    text: str


@dataclass
class ToolInputStart:
    id: str
    name: str


@dataclass
class ToolInputDelta:
    id: str
    delta: str


@dataclass
class ToolInputEnd:
    id: str


@dataclass
class StreamFinish:
    turn: AssistantTurn


StreamPart = Union[TextDelta, ToolInputStart, ToolInputDelta, ToolInputEnd, StreamFinish]
