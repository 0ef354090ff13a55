from __future__ import annotations

import json
import logging
import uuid
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel

from ..errors import ExecutionFailure, ToolError
from ..protocol.tags import TagSink, TagStream, error_tag
from ..util.partial_json import parse_partial
from .base import ToolContext, ToolDefinition, ToolOutput
from .permissions import PermissionGate

logger = logging.getLogger(__name__)


def args_to_dict(args: Any) -> dict[str, Any]:
    if isinstance(args, BaseModel):
        return args.model_dump(by_alias=True, exclude_none=True)
    if isinstance(args, dict):
        return args
    return {}


class ToolCallStream:
    """Accumulates streamed argument text for one call and previews its tag."""

    def __init__(self, tool: ToolDefinition, tags: TagStream):
        self.tool = tool
        self.tags = tags
        self.args_text = ""

    @property
    def call_id(self) -> str:
        return self.tags.call_id

    def feed(self, delta: str) -> dict[str, Any]:
        self.args_text += delta
        partial = parse_partial(self.args_text)
        self.tags.preview(self.tool.build_tag(partial, False))
        return partial

    def final_arguments(self) -> dict[str, Any]:
        if not self.args_text.strip():
            return {}
        try:
            obj = json.loads(self.args_text)
        except json.JSONDecodeError:
            return parse_partial(self.args_text)
        return obj if isinstance(obj, dict) else {}


@dataclass
class ActiveTool:
    """A registered tool bound to this turn's context, consent gate and tag sink."""

    tool: ToolDefinition
    ctx: ToolContext
    gate: PermissionGate
    sink: TagSink | None = None

    @property
    def name(self) -> str:
        return self.tool.name

    def new_tag_stream(self, call_id: str | None = None) -> TagStream:
        return TagStream(
            call_id=call_id or f"call_{uuid.uuid4().hex[:12]}",
            tool_name=self.tool.name,
            on_stream=self.sink.stream if self.sink is not None else None,
            on_complete=self.sink.complete if self.sink is not None else None,
        )

    def stream(self, call_id: str | None = None) -> ToolCallStream:
        return ToolCallStream(self.tool, self.new_tag_stream(call_id))

    def invoke(self, raw_args: dict[str, Any], tags: TagStream | None = None) -> str:
        """Validate, ask for consent, execute and emit the final tag.

        Every failure completes the call's tag stream with an error tag and is
        re-raised as a ToolError.
        """
        tags = tags or self.new_tag_stream()
        call_ctx = self.ctx.bind_call(tags)
        try:
            args = self.tool.validate(raw_args)
            preview = self.tool.get_consent_preview(args)
            self.gate.check(self.tool, preview, call_ctx)

            out = self.tool.execute(args, call_ctx)
            if isinstance(out, ToolOutput):
                text, final = out.text, out.tag
            else:
                text, final = str(out), None
            if final is None:
                final = self.tool.build_tag(args_to_dict(args), True)
            tags.complete(final)
            return text
        except ToolError as e:
            logger.info("tool %s failed: %s", self.tool.name, e)
            tags.complete(error_tag(self.tool.name, str(e)))
            raise
        except Exception as e:
            logger.exception("tool %s raised", self.tool.name)
            tags.complete(error_tag(self.tool.name, str(e)))
            raise ExecutionFailure(str(e)) from e
