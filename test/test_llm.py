import io
import threading
import urllib.error

import pytest

from tagforge.errors import ExternalServiceError
from tagforge.llm.factory import load_provider_config, resolve_provider
from tagforge.llm.models import (
    Message,
    StreamFinish,
    TextDelta,
    ToolCall,
    ToolInputDelta,
    ToolInputEnd,
    ToolInputStart,
)
from tagforge.llm.openai_compat import OpenAICompatProvider, iter_sse_data, stream_parts


def _chunk(content=None, tool_calls=None, finish=None):
    delta = {}
    if content is not None:
        delta["content"] = content
    if tool_calls is not None:
        delta["tool_calls"] = tool_calls
    return {"choices": [{"delta": delta, "finish_reason": finish}]}


def _tc(index, id=None, name=None, args=None):
    fn = {}
    if name:
        fn["name"] = name
    if args is not None:
        fn["arguments"] = args
    d = {"index": index, "function": fn}
    if id:
        d["id"] = id
    return d


def test_iter_sse_data():
    body = [
        b": keep-alive\n",
        b"\n",
        b'data: {"a": 1}\n',
        b"data: not-json\n",
        b'data: {"b": 2}\n',
        b"data: [DONE]\n",
        b'data: {"c": 3}\n',
    ]
    assert list(iter_sse_data(body)) == [{"a": 1}, {"b": 2}]


def test_stream_parts_text_and_tool_calls():
    events = [
        _chunk(content="Hel"),
        _chunk(content="lo"),
        _chunk(tool_calls=[_tc(0, id="c1", name="write_file", args='{"path": "a.t')]),
        _chunk(tool_calls=[_tc(0, args='xt", "content": "hi"}')]),
        _chunk(tool_calls=[_tc(1, id="c2", name="read_file", args='{"path": "b"}')]),
        _chunk(finish="tool_calls"),
    ]
    parts = list(stream_parts(events))
    assert parts[:2] == [TextDelta("Hel"), TextDelta("lo")]
    assert parts[2:5] == [
        ToolInputStart("c1", "write_file"),
        ToolInputDelta("c1", '{"path": "a.t'),
        ToolInputDelta("c1", 'xt", "content": "hi"}'),
    ]
    assert ToolInputEnd("c1") in parts and ToolInputEnd("c2") in parts
    finish = parts[-1]
    assert isinstance(finish, StreamFinish)
    turn = finish.turn
    assert turn.text == "Hello"
    assert turn.finish_reason == "tool_calls"
    assert [(c.id, c.name, c.arguments) for c in turn.tool_calls] == [
        ("c1", "write_file", {"path": "a.txt", "content": "hi"}),
        ("c2", "read_file", {"path": "b"}),
    ]


def test_arguments_before_name_are_replayed():
    events = [
        _chunk(tool_calls=[{"index": 0, "id": "c1", "function": {"arguments": '{"q"'}}]),
        _chunk(tool_calls=[_tc(0, name="grep", args=': "x"}')]),
    ]
    parts = list(stream_parts(events))
    assert parts[:3] == [
        ToolInputStart("c1", "grep"),
        ToolInputDelta("c1", '{"q"'),
        ToolInputDelta("c1", ': "x"}'),
    ]


def test_truncated_arguments_are_salvaged():
    parts = list(stream_parts([_chunk(tool_calls=[_tc(0, id="c", name="t", args='{"a": "b')])]))
    assert parts[-1].turn.tool_calls[0].arguments == {"a": "b"}


def test_abort_stops_stream():
    abort = threading.Event()
    abort.set()
    parts = list(stream_parts([_chunk(content="ignored")], abort))
    assert parts == [StreamFinish(parts[0].turn)]
    assert parts[0].turn.text == ""


def test_message_to_openai():
    m = Message(role="user", content=[{"type": "text", "text": "hi"}, {"type": "image-url", "url": "u"}])
    assert m.to_openai() == {
        "role": "user",
        "content": [{"type": "text", "text": "hi"}, {"type": "image_url", "image_url": {"url": "u"}}],
    }
    tool = Message(role="tool", content="ok", tool_call_id="c1")
    assert tool.to_openai() == {"role": "tool", "content": "ok", "tool_call_id": "c1"}
    tc = ToolCall("c1", "grep", {"q": 1})
    assert tc.to_openai()["function"] == {"name": "grep", "arguments": "{}"}


class _Resp(io.BytesIO):
    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()


def test_provider_streams_over_http(monkeypatch):
    seen = {}

    def fake_urlopen(req, timeout):
        seen["url"] = req.full_url
        return _Resp(b'data: {"choices": [{"delta": {"content": "ok"}, "finish_reason": "stop"}]}\n\ndata: [DONE]\n')

    monkeypatch.setattr("urllib.request.urlopen", fake_urlopen)
    provider = OpenAICompatProvider(model="m", base_url="http://llm/v1/", api_key="k")
    parts = list(provider.stream([{"role": "user", "content": "hi"}]))
    assert seen["url"] == "http://llm/v1/chat/completions"
    assert parts[0] == TextDelta("ok")
    assert parts[-1].turn.finish_reason == "stop"


def test_provider_http_error(monkeypatch):
    def fake_urlopen(req, timeout):
        raise urllib.error.HTTPError(req.full_url, 429, "slow down", {}, io.BytesIO(b"rate limited"))

    monkeypatch.setattr("urllib.request.urlopen", fake_urlopen)
    provider = OpenAICompatProvider(model="m", base_url="http://llm", api_key="k")
    with pytest.raises(ExternalServiceError, match="429 - rate limited"):
        list(provider.stream([]))


class TestProviderConfig:
    def test_env_expansion(self, tmp_path, monkeypatch):
        monkeypatch.setenv("MY_KEY", "sk-123")
        p = tmp_path / "tagforge.yaml"
        p.write_text("provider:\n  base_url: http://llm\n  model: gpt\n  api_key: ${MY_KEY}\n", encoding="utf-8")
        cfg = load_provider_config(p)
        assert (cfg.base_url, cfg.model, cfg.api_key, cfg.name) == ("http://llm", "gpt", "sk-123", "openai")

    def test_missing_env(self, tmp_path, monkeypatch):
        monkeypatch.delenv("NOPE_KEY", raising=False)
        p = tmp_path / "tagforge.yaml"
        p.write_text("provider:\n  base_url: http://llm\n  model: gpt\n  api_key: ${NOPE_KEY}\n", encoding="utf-8")
        with pytest.raises(ValueError, match="NOPE_KEY"):
            load_provider_config(p)

    def test_missing_fields(self, tmp_path):
        p = tmp_path / "tagforge.yaml"
        p.write_text("provider:\n  model: gpt\n", encoding="utf-8")
        with pytest.raises(ValueError, match="base_url, api_key"):
            load_provider_config(p)

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_provider_config(tmp_path / "none.yaml")

    def test_cli_overrides(self, tmp_path):
        p = tmp_path / "tagforge.yaml"
        p.write_text("provider:\n  base_url: http://llm\n  model: gpt\n  api_key: k\n  name: local\n", encoding="utf-8")
        provider = resolve_provider(model="other", yaml_path=p)
        assert (provider.model, provider.base_url, provider.provider_name) == ("other", "http://llm", "local")
