"""Best-effort parsing of tool-call arguments that are still streaming in.

The model sends arguments as a JSON document in small deltas. While it is
incomplete we still want to render a preview, so :func:`parse_partial`
closes dangling strings, drops half-written keys, fills in obviously missing
commas and colons and balances brackets before handing the text to ``json``.
It never raises: anything it cannot make sense of becomes ``{}`` and the
caller simply tries again with more text.
"""
from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any

_NUMBER = re.compile(r"-?(0|[1-9]\d*)(\.\d+)?([eE][+-]?\d+)?$")
_PARTIAL_UNICODE = re.compile(r"(\\+)u[0-9a-fA-F]{0,3}$")
_LITERALS = {
    "true": "true",
    "false": "false",
    "null": "null",
    "True": "true",
    "False": "false",
    "None": "null",
}
_WORD_CHARS = set("abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789_$")
_NUMBER_CHARS = set("0123456789+-.eE")


def parse_partial(fragment: str) -> dict[str, Any]:
    if not fragment or not fragment.strip():
        return {}
    try:
        obj = json.loads(fragment, strict=False)
    except (ValueError, RecursionError):
        try:
            obj = json.loads(repair_json(fragment), strict=False)
        except (ValueError, RecursionError):
            return {}
    return obj if isinstance(obj, dict) else {}


@dataclass
class _Frame:
    kind: str  # "{" or "["
    state: str  # object: key/colon/value/comma, array: value/comma
    count: int = 0
    member_start: int = 0


class _Repairer:
    def __init__(self, text: str):
        self.text = text
        self.n = len(text)
        self.i = 0
        self.out: list[str] = []
        self.stack: list[_Frame] = []
        self.done = False

    # -- member bookkeeping ------------------------------------------------

    def _begin_member(self, frame: _Frame) -> None:
        frame.member_start = len(self.out)
        if frame.count:
            self.out.append(",")

    def _drop_member(self, frame: _Frame) -> None:
        del self.out[frame.member_start:]
        frame.state = "key" if frame.kind == "{" else "value"

    def _value_done(self) -> None:
        if not self.stack:
            self.done = True
            return
        frame = self.stack[-1]
        frame.count += 1
        frame.state = "comma"

    def _close(self) -> None:
        frame = self.stack.pop()
        self.out.append("}" if frame.kind == "{" else "]")
        self._value_done()

    # -- scalars -----------------------------------------------------------

    def _read_string(self) -> tuple[str, bool]:
        """Return (json string literal, complete) for a string starting at i."""
        text = self.text
        j = self.i + 1
        while j < self.n:
            c = text[j]
            if c == "\\":
                j += 2
                continue
            if c == '"':
                lit = text[self.i : j + 1]
                self.i = j + 1
                return lit, True
            j += 1
        body = text[self.i + 1 :]
        self.i = self.n
        m = _PARTIAL_UNICODE.search(body)
        if m and len(m.group(1)) % 2 == 1:
            body = body[: m.start()] + m.group(1)[:-1]
        trailing = len(body) - len(body.rstrip("\\"))
        if trailing % 2 == 1:
            body = body[:-1]
        return '"' + body + '"', False

    def _read_word(self) -> str:
        j = self.i
        while j < self.n and self.text[j] in _WORD_CHARS:
            j += 1
        word = self.text[self.i : j]
        self.i = j
        return word

    def _word_value(self, word: str) -> str:
        if word in _LITERALS:
            return _LITERALS[word]
        if self.i >= self.n:
            for lit in ("true", "false", "null"):
                if lit.startswith(word):
                    return lit
        return json.dumps(word)

    def _read_number(self) -> str | None:
        j = self.i
        while j < self.n and self.text[j] in _NUMBER_CHARS:
            j += 1
        num = self.text[self.i : j]
        self.i = j
        if _NUMBER.match(num):
            return num
        trimmed = num.rstrip("+-.eE")
        if _NUMBER.match(trimmed):
            return trimmed
        if trimmed in ("", "-"):
            return None
        return json.dumps(num)

    # -- driver ------------------------------------------------------------

    def _value(self, frame: _Frame | None) -> None:
        c = self.text[self.i]
        if c == "{" or c == "[":
            self.out.append(c)
            self.i += 1
            self.stack.append(_Frame(kind=c, state="key" if c == "{" else "value", member_start=len(self.out)))
            return
        if c == '"':
            lit, _ = self._read_string()
            self.out.append(lit)
            self._value_done()
            return
        if c == "-" or c.isdigit():
            num = self._read_number()
            if num is None:
                if frame is not None:
                    self._drop_member(frame)
                return
            self.out.append(num)
            self._value_done()
            return
        if c in _WORD_CHARS:
            self.out.append(self._word_value(self._read_word()))
            self._value_done()
            return
        # nothing usable where a value belongs
        if frame is None:
            self.i += 1
            return
        if c in ",}]":
            self._drop_member(frame)
            if c == ",":
                self.i += 1
            return
        self.i += 1

    def _object_step(self, frame: _Frame, c: str) -> None:
        if frame.state == "key":
            if c == "}":
                self.i += 1
                self._close()
            elif c == '"' or c in _WORD_CHARS:
                self._begin_member(frame)
                if c == '"':
                    lit, complete = self._read_string()
                    if not complete:
                        self._drop_member(frame)
                        return
                else:
                    lit = json.dumps(self._read_word())
                self.out.append(lit)
                frame.state = "colon"
            else:
                self.i += 1
        elif frame.state == "colon":
            if c == ":":
                self.i += 1
            self.out.append(":")
            frame.state = "value"
        elif frame.state == "value":
            if c == "}":
                self._drop_member(frame)
                self.i += 1
                self._close()
                return
            self._value(frame)
        else:  # comma
            if c == ",":
                self.i += 1
                frame.state = "key"
            elif c == "}":
                self.i += 1
                self._close()
            elif c == '"' or c in _WORD_CHARS:
                frame.state = "key"
            else:
                self.i += 1

    def _array_step(self, frame: _Frame, c: str) -> None:
        if frame.state == "value":
            if c == "]":
                self.i += 1
                self._close()
            elif c == ",":
                self.i += 1
            else:
                self._begin_member(frame)
                self._value(frame)
        else:  # comma
            if c == ",":
                self.i += 1
                frame.state = "value"
            elif c == "]":
                self.i += 1
                self._close()
            elif c in ":}":
                self.i += 1
            else:
                frame.state = "value"

    def _finish(self) -> None:
        while self.stack:
            frame = self.stack[-1]
            if frame.kind == "{" and frame.state in ("colon", "value"):
                self._drop_member(frame)
            self._close()
        self.done = True

    def run(self) -> str:
        text = self.text
        while self.i < self.n and not self.done:
            c = text[self.i]
            if c.isspace():
                self.i += 1
                continue
            if not self.stack:
                self._value(None)
                continue
            frame = self.stack[-1]
            if frame.kind == "{":
                self._object_step(frame, c)
            else:
                self._array_step(frame, c)
        if not self.done:
            self._finish()
        return "".join(self.out)


def repair_json(text: str) -> str:
    """Turn a truncated or slightly malformed JSON document into a parseable one."""
    return _Repairer(text).run()
