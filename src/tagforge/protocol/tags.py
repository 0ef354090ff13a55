"""Transcript tags.

Every tool call is rendered into the transcript as one XML-like tag, e.g.::

    <forge-write path="src/app.py" description="add entry point">
    print("hi")
    </forge-write>

While arguments are still streaming the tag is emitted as a *preview* without
its closing delimiter; consumers replace the previous preview of the same
call each time. Once the call has finished, exactly one *complete* tag is
emitted. Tags are built as :class:`Tag` records and only turned into text by
:meth:`Tag.render`, which is the single place where escaping happens.
"""
from __future__ import annotations

import logging
import re
import threading
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Protocol

from .escape import escape_xml_attr, escape_xml_content, unescape_xml_attr, unescape_xml_content

logger = logging.getLogger(__name__)

TAG_PREFIX = "forge-"

_TAG_RE = re.compile(
    r"<" + re.escape(TAG_PREFIX) + r"([\w-]+)((?:\s+[\w-]+=\"[^\"]*\")*)\s*>(.*?)(</"
    + re.escape(TAG_PREFIX) + r"\1>|$)",
    re.DOTALL,
)
_ATTR_RE = re.compile(r"([\w-]+)=\"([^\"]*)\"")


@dataclass
class Tag:
    name: str
    attrs: dict[str, Any] = field(default_factory=dict)
    body: str = ""
    complete: bool = False
    # block tags put the body on its own lines
    block: bool = False

    @property
    def wire_name(self) -> str:
        return TAG_PREFIX + self.name

    def closed(self) -> "Tag":
        return replace(self, complete=True)

    def render(self) -> str:
        parts = [f"<{self.wire_name}"]
        for k, v in self.attrs.items():
            if v is None:
                continue
            if isinstance(v, bool):
                v = "true" if v else "false"
            parts.append(f' {k}="{escape_xml_attr(str(v))}"')
        parts.append(">")
        body = escape_xml_content(self.body)
        if self.block:
            body = "\n" + body
        parts.append(body)
        if self.complete:
            if self.block:
                parts.append("\n")
            parts.append(f"</{self.wire_name}>")
        return "".join(parts)


def error_tag(tool_name: str, message: str) -> Tag:
    return Tag(
        name="output",
        attrs={"type": "error", "message": f"Tool '{tool_name}' failed: {message}"},
        body=message,
        complete=True,
    )


def parse_tags(text: str) -> list[Tag]:
    """Read tags back out of a transcript. A trailing unclosed tag is returned as a preview."""
    out: list[Tag] = []
    for m in _TAG_RE.finditer(text):
        name, raw_attrs, raw_body, closing = m.group(1), m.group(2), m.group(3), m.group(4)
        attrs = {k: unescape_xml_attr(v) for k, v in _ATTR_RE.findall(raw_attrs)}
        complete = bool(closing)
        block = raw_body.startswith("\n") and (not complete or (len(raw_body) >= 2 and raw_body.endswith("\n")))
        if block:
            raw_body = raw_body[1:-1] if complete else raw_body[1:]
        out.append(Tag(name=name, attrs=attrs, body=unescape_xml_content(raw_body), complete=complete, block=block))
    return out


StreamCallback = Callable[[str, str], None]


class TagSink(Protocol):
    """Where rendered tags go: ``stream`` previews are transient, ``complete`` tags persist."""

    def stream(self, call_id: str, text: str) -> None: ...
    def complete(self, call_id: str, text: str) -> None: ...


class TagStream:
    """Ordered tag channel for a single tool call.

    Previews may be sent any number of times until the call completes.
    Completion happens once; anything arriving afterwards (or after the
    stream was aborted) is dropped.
    """

    def __init__(
        self,
        call_id: str,
        tool_name: str,
        on_stream: StreamCallback | None = None,
        on_complete: StreamCallback | None = None,
    ):
        self.call_id = call_id
        self.tool_name = tool_name
        self._on_stream = on_stream
        self._on_complete = on_complete
        self._lock = threading.Lock()
        self._last_preview: Tag | None = None
        self.completed = False
        self.aborted = False

    @property
    def last_preview(self) -> Tag | None:
        return self._last_preview

    def preview(self, tag: Tag | None) -> bool:
        if tag is None:
            return False
        with self._lock:
            if self.completed or self.aborted:
                logger.debug("dropping late preview for %s (%s)", self.call_id, self.tool_name)
                return False
            tag = replace(tag, complete=False)
            self._last_preview = tag
            if self._on_stream is not None:
                self._on_stream(self.call_id, tag.render())
            return True

    def complete(self, tag: Tag | None) -> bool:
        """Emit the final tag. With no tag, the last preview (if any) is closed instead."""
        with self._lock:
            if self.completed or self.aborted:
                logger.debug("dropping late completion for %s (%s)", self.call_id, self.tool_name)
                return False
            self.completed = True
            if tag is None:
                if self._last_preview is None:
                    return False
                tag = self._last_preview
            if self._on_complete is not None:
                self._on_complete(self.call_id, tag.closed().render())
            return True

    def abort(self) -> None:
        with self._lock:
            self.aborted = True
