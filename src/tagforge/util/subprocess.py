from __future__ import annotations
import json
import logging
import subprocess
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Optional, Sequence

logger = logging.getLogger(__name__)


@dataclass
class CmdResult:
    returncode: int
    stdout: str
    stderr: str


def run_cmd(cmd: Sequence[str], cwd: str, timeout: Optional[int]=120) -> CmdResult:
    p = subprocess.run(
        list(cmd),
        cwd=cwd,
        text=True,
        capture_output=True,
        timeout=timeout,
        shell=False,
    )
    return CmdResult(p.returncode, p.stdout, p.stderr)


class CmdFailed(RuntimeError):
    def __init__(self, cmd: Sequence[str], returncode: int, stderr: str = ""):
        self.cmd = list(cmd)
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(f"{self.cmd[0]} exited with code {returncode}")


@dataclass
class JsonLinesResult:
    returncode: int
    events: list[dict[str, Any]] = field(default_factory=list)
    stderr: str = ""


def iter_json_lines(lines: Iterable[str]) -> Iterable[dict[str, Any]]:
    """Decode newline-delimited JSON, skipping blank and malformed lines."""
    for line in lines:
        line = line.strip()
        if not line:
            continue
        try:
            obj = json.loads(line)
        except json.JSONDecodeError:
            continue
        if isinstance(obj, dict):
            yield obj


def run_json_lines(
    cmd: Sequence[str],
    cwd: str,
    *,
    ok_codes: Iterable[int] = (0,),
    on_event: Callable[[dict[str, Any]], None] | None = None,
    timeout: Optional[float] = 120,
) -> JsonLinesResult:
    """Run ``cmd`` and consume its stdout as JSON lines while it runs.

    Exit codes outside ``ok_codes`` raise CmdFailed.
    """
    proc = subprocess.Popen(
        list(cmd),
        cwd=cwd,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        text=True,
        encoding="utf-8",
        errors="replace",
        shell=False,
    )
    assert proc.stdout is not None and proc.stderr is not None

    err_chunks: list[str] = []

    def _drain_stderr() -> None:
        for chunk in proc.stderr:
            err_chunks.append(chunk)

    t = threading.Thread(target=_drain_stderr, daemon=True)
    t.start()

    result = JsonLinesResult(returncode=0)
    try:
        for ev in iter_json_lines(proc.stdout):
            result.events.append(ev)
            if on_event is not None:
                on_event(ev)
        proc.wait(timeout=timeout)
    except subprocess.TimeoutExpired:
        proc.kill()
        proc.wait()
        raise
    finally:
        t.join(timeout=1)

    result.returncode = proc.returncode
    result.stderr = "".join(err_chunks)
    if result.stderr.strip():
        logger.warning("%s stderr: %s", cmd[0], result.stderr.strip()[:2000])
    if proc.returncode not in set(ok_codes):
        raise CmdFailed(cmd, proc.returncode, result.stderr)
    return result
