from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import jedi
from pydantic import BaseModel, Field

from ...errors import ExecutionFailure
from ...protocol.tags import Tag
from ...util.fs import normalize_path
from ...util.subprocess import run_cmd
from ..base import ToolContext, ToolDefinition, ToolOutput
from .codebase import list_project_files

logger = logging.getLogger(__name__)

# src/a.ts(3,7): error TS2322: Type 'string' is not assignable to type 'number'.
_TSC_LINE = re.compile(r"^(?P<file>.+?)\((?P<line>\d+),(?P<col>\d+)\): error (?P<code>TS\d+): (?P<msg>.*)$")


class RunTypeChecksArgs(BaseModel):
    paths: Optional[list[str]] = Field(
        default=None,
        description=(
            "Optional. An array of paths to files or directories to read type errors for. If provided, "
            "returns diagnostics for the specified files/directories only. If not provided, returns "
            "diagnostics for all files in the workspace."
        ),
    )


@dataclass
class Problem:
    file: str
    line: int
    column: int
    message: str


def _strip_target(p: str) -> str:
    p = normalize_path(p)
    while p.startswith("./"):
        p = p[2:]
    return p


def matches_paths(problem_file: str, paths: list[str]) -> bool:
    """True if ``problem_file`` is one of ``paths`` or sits inside one of them."""
    f = _strip_target(problem_file)
    for target in paths:
        t = _strip_target(target).rstrip("/")
        if f == t or f.startswith(t + "/"):
            return True
    return False


def format_problems(problems: list[Problem]) -> str:
    if not problems:
        return "No type errors found."
    lines = "\n".join(f"{p.file}:{p.line}:{p.column}: {p.message}" for p in problems)
    return f"Found {len(problems)} type error(s):\n\n{lines}"


def python_problems(ctx: ToolContext) -> list[Problem]:
    problems: list[Problem] = []
    root = Path(ctx.project_root)
    for rel in list_project_files(ctx):
        if not rel.endswith(".py"):
            continue
        code = ctx.vfs.read_file(rel)
        if code is None:
            continue
        script = jedi.Script(code=code, path=str(root / rel))
        for err in script.get_syntax_errors():
            problems.append(Problem(file=rel, line=err.line, column=err.column + 1, message=err.get_message()))
    return problems


def typescript_problems(ctx: ToolContext) -> list[Problem]:
    if not (Path(ctx.project_root) / "tsconfig.json").exists():
        return []
    cmd = ctx.settings.tsc_command
    try:
        res = run_cmd(cmd, cwd=ctx.project_root, timeout=300)
    except FileNotFoundError as e:
        raise ExecutionFailure(f"TypeScript compiler not found: {cmd[0]}") from e

    problems = []
    for line in res.stdout.splitlines():
        m = _TSC_LINE.match(line.strip())
        if m:
            problems.append(Problem(
                file=_strip_target(m.group("file")),
                line=int(m.group("line")),
                column=int(m.group("col")),
                message=f"{m.group('msg')} ({m.group('code')})",
            ))
    if res.returncode != 0 and not problems:
        raise ExecutionFailure(f"tsc exited with code {res.returncode}: {(res.stderr or res.stdout).strip()[:2000]}")
    return problems


class RunTypeChecksTool(ToolDefinition):
    name = "run_type_checks"
    description = """\
Run type checks on the current workspace. Python files get syntax diagnostics; TypeScript projects
(with a tsconfig.json) are checked with tsc. You can provide paths to specific files or directories,
or omit the argument to get diagnostics for all files.

- If a file path is provided, returns diagnostics for that file only
- If a directory path is provided, returns diagnostics for all files within that directory
- If no path is provided, returns diagnostics for all files in the workspace
- This tool can return errors that were already present before your edits, so avoid calling it with a very wide scope of files
- NEVER call this tool on a file unless you've edited it or are about to edit it"""
    input_schema = RunTypeChecksArgs

    def get_consent_preview(self, args: RunTypeChecksArgs) -> str:
        if args.paths:
            return f"Check types for: {', '.join(args.paths)}"
        return "Check types for all files"

    def execute(self, args: RunTypeChecksArgs, ctx: ToolContext) -> ToolOutput:
        title = f"Type checking: {', '.join(args.paths)}" if args.paths else "Type checking all files"
        ctx.preview(Tag(name="status", attrs={"title": title}))

        problems = python_problems(ctx) + typescript_problems(ctx)
        if args.paths:
            problems = [p for p in problems if matches_paths(p.file, args.paths)]

        result = format_problems(problems)
        logger.info("%s: %d problem(s)", title, len(problems))
        return ToolOutput(result, Tag(name="status", attrs={"title": title}, body=result, complete=True, block=True))
