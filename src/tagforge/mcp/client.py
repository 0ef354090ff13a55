from __future__ import annotations

import itertools
import json
import logging
import os
import subprocess
import threading
from dataclasses import dataclass
from typing import Any

from ..errors import ExecutionFailure

logger = logging.getLogger(__name__)


PROTOCOL_VERSION = "2024-11-05"


class MCPError(ExecutionFailure):
    pass


@dataclass
class MCPToolInfo:
    name: str
    description: str
    input_schema: dict[str, Any]


class MCPClient:
    """A minimal JSON-RPC client for MCP servers over stdio.

    Call :meth:`initialize` once before anything else. Used methods:
      - initialize -> { protocolVersion, capabilities, serverInfo }
      - tools/list -> { tools: [{name, description, inputSchema}], nextCursor? }
      - tools/call -> { content: [...], isError?: bool } or arbitrary json
    """

    def __init__(self, command: list[str], *, cwd: str | None = None, env: dict[str, str] | None = None):
        self._proc = subprocess.Popen(
            command,
            stdin=subprocess.PIPE,
            stdout=subprocess.PIPE,
            stderr=subprocess.DEVNULL,
            text=True,
            bufsize=1,
            cwd=cwd,
            env={**os.environ, **env} if env else None,
        )
        if self._proc.stdin is None or self._proc.stdout is None:
            raise MCPError("Failed to start MCP server process with pipes.")
        self._stdin = self._proc.stdin
        self._stdout = self._proc.stdout
        self._id_iter = itertools.count(1)
        self._lock = threading.Lock()
        self._pending: dict[int, tuple[threading.Event, dict[str, Any]]] = {}
        self._reader = threading.Thread(target=self._read_loop, daemon=True)
        self._reader.start()

    def close(self) -> None:
        if self._proc.poll() is None:
            try:
                self._proc.terminate()
            except OSError as e:
                logger.warning("Failed to stop MCP server: %s", e)

    def _read_loop(self) -> None:
        for line in self._stdout:
            line = line.strip()
            if not line:
                continue
            try:
                msg = json.loads(line)
            except json.JSONDecodeError:
                logger.debug("MCP: skipping non-JSON line: %s", line[:200])
                continue
            if not isinstance(msg, dict) or "id" not in msg:
                continue
            try:
                mid = int(msg["id"])
            except (TypeError, ValueError):
                continue
            with self._lock:
                if mid in self._pending:
                    ev, holder = self._pending[mid]
                    holder["msg"] = msg
                    ev.set()

    def _send(self, msg: dict[str, Any]) -> None:
        # caller holds the lock
        try:
            self._stdin.write(json.dumps(msg, ensure_ascii=False) + "\n")
            self._stdin.flush()
        except OSError as e:
            raise MCPError(f"MCP server is not accepting requests: {e}") from e

    def notify(self, method: str, params: dict[str, Any] | None = None) -> None:
        with self._lock:
            self._send({"jsonrpc": "2.0", "method": method, "params": params or {}})

    def request(self, method: str, params: dict[str, Any] | None = None, timeout: float = 30.0) -> Any:
        rid = next(self._id_iter)
        ev = threading.Event()
        holder: dict[str, Any] = {}
        with self._lock:
            self._pending[rid] = (ev, holder)
            try:
                self._send({"jsonrpc": "2.0", "id": rid, "method": method, "params": params or {}})
            except MCPError:
                self._pending.pop(rid, None)
                raise
        ok = ev.wait(timeout)
        with self._lock:
            self._pending.pop(rid, None)
        if not ok:
            raise MCPError(f"MCP request timeout: {method}")
        msg = holder.get("msg", {})
        if "error" in msg:
            raise MCPError(str(msg["error"]))
        return msg.get("result")

    def initialize(self, client_name: str = "tagforge", client_version: str = "0.1.0") -> dict[str, Any]:
        res = self.request("initialize", {
            "protocolVersion": PROTOCOL_VERSION,
            "capabilities": {},
            "clientInfo": {"name": client_name, "version": client_version},
        })
        self.notify("notifications/initialized")
        info = res.get("serverInfo") if isinstance(res, dict) else None
        logger.debug("MCP server ready: %s", info)
        return res if isinstance(res, dict) else {}

    def list_tools(self) -> list[MCPToolInfo]:
        """All tools the server offers, following ``nextCursor`` pages."""
        tools: list[MCPToolInfo] = []
        cursor: str | None = None
        while True:
            res = self.request("tools/list", {"cursor": cursor} if cursor else {})
            page = res.get("tools", []) if isinstance(res, dict) else res
            infos = [_tool_info(t) for t in (page if isinstance(page, list) else [])]
            tools.extend(i for i in infos if i is not None)
            cursor = res.get("nextCursor") if isinstance(res, dict) else None
            if not isinstance(cursor, str) or not cursor:
                return tools

    def call_tool(self, name: str, arguments: dict[str, Any]) -> str:
        res = self.request("tools/call", {"name": name, "arguments": arguments or {}})
        text = content_to_text(res)
        if isinstance(res, dict) and res.get("isError"):
            raise MCPError(text)
        return text


def content_to_text(res: Any) -> str:
    if isinstance(res, str):
        return res
    if isinstance(res, dict) and "content" in res:
        c = res["content"]
        if isinstance(c, str):
            return c
        if isinstance(c, list):
            texts = []
            for part in c:
                if isinstance(part, dict) and part.get("type") == "text":
                    texts.append(str(part.get("text", "")))
                elif isinstance(part, dict):
                    texts.append(json.dumps(part, ensure_ascii=False))
                else:
                    texts.append(str(part))
            return "\n".join(texts)
    return json.dumps(res, ensure_ascii=False, indent=2)


def _tool_info(t: Any) -> MCPToolInfo | None:
    if not isinstance(t, dict) or not isinstance(t.get("name"), str):
        return None
    schema = t.get("inputSchema") or t.get("input_schema") or {}
    return MCPToolInfo(
        name=t["name"],
        description=str(t.get("description") or ""),
        input_schema=schema if isinstance(schema, dict) else {},
    )
