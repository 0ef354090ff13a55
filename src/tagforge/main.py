from __future__ import annotations

import json
import threading
from datetime import datetime
from pathlib import Path
from typing import Optional

import typer
from rich.align import Align
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .app_context import AppContext
from .events.store import EventStore
from .llm.factory import DEFAULT_PROVIDER_YAML
from .llm.models import Message
from .logging_utils import configure_logging, default_log_path
from .runner import TurnRunner
from .transcript import ConsoleUi, Transcript

app = typer.Typer(add_completion=False, help="tagforge: streaming coding-agent tool runtime.")
console = Console()


def _resolve_cwd(cwd: Path | None) -> Path:
    cwd = Path(str(cwd or Path.cwd())).expanduser()
    if not cwd.is_absolute():
        cwd = Path.cwd() / cwd
    cwd = cwd.resolve()
    if cwd.exists() and not cwd.is_dir():
        raise typer.BadParameter(f"--cwd must be a directory, got file: {cwd}")
    if not cwd.exists():
        cwd.mkdir(parents=True, exist_ok=True)
    return cwd


@app.command()
def run(
    prompt: str = typer.Option(..., "--prompt", "-p", help="User prompt to run once."),
    cwd: Path = typer.Option(None, "--cwd", help="Project root. Defaults to current directory."),
    config: Path = typer.Option(Path(DEFAULT_PROVIDER_YAML), "--config", help="Provider YAML path."),
    behavior_config: Path = typer.Option(None, "--behavior-config", help="Optional behavior JSON (tagforge.json) path."),
    read_only: Optional[bool] = typer.Option(None, "--read-only/--read-write", help="Hide tools that modify state."),
    yes: bool = typer.Option(False, "--yes", help="Auto-approve tools that ask for consent."),
    max_steps: Optional[int] = typer.Option(None, "--max-steps", help="Max model/tool iterations."),
):
    """Run one agent turn against the project."""
    cwd = _resolve_cwd(cwd)
    ctx = AppContext.from_env(
        cwd,
        config_path=config,
        behavior_config=behavior_config,
        read_only=read_only,
        auto_approve=yes,
    )
    log_file = configure_logging(ctx.behavior.log_level, default_log_path())

    table = Table.grid(padding=(0, 2))
    table.add_row("[bold green]cwd[/bold green]", f"[bright_cyan]{ctx.cwd}[/bright_cyan]")
    table.add_row("[bold green]conversation[/bold green]", f"[bright_cyan]{ctx.conversation_id}[/bright_cyan]")
    table.add_row("[bold green]model[/bold green]", f"[bright_cyan]{ctx.provider.model}[/bright_cyan]")
    table.add_row("[bold green]read_only[/bold green]", f"[bright_cyan]{ctx.read_only}[/bright_cyan]")
    table.add_row("[bold green]behavior_config[/bold green]", f"[bright_cyan]{ctx.behavior.loaded_from or '(none)'}[/bright_cyan]")
    table.add_row("[bold green]log[/bold green]", f"[bright_cyan]{log_file or '(console only)'}[/bright_cyan]")
    console.print(Align.center(Panel(table, title="[bold magenta]tagforge[/bold magenta]", border_style="bright_blue")))

    transcript = Transcript(ui=ConsoleUi(console))
    abort = threading.Event()
    runner = TurnRunner(
        ctx.provider,
        ctx.active_tools(),
        ctx.tool_ctx,
        transcript,
        events=ctx.events,
        max_steps=max_steps or ctx.behavior.max_steps,
        abort=abort,
    )
    try:
        console.print(f"\n[bold]You:[/bold] {prompt}\n")
        try:
            result = runner.run([Message(role="user", content=prompt)])
        except KeyboardInterrupt:
            abort.set()
            transcript.abort()
            console.print("\n[yellow]Aborted.[/yellow]")
            raise typer.Exit(code=130)

        console.print()
        summary = Table.grid(padding=(0, 2))
        summary.add_row("steps", str(result.steps))
        summary.add_row("written", ", ".join(result.written) or "-")
        summary.add_row("deleted", ", ".join(result.deleted) or "-")
        if result.chat_summary:
            summary.add_row("summary", result.chat_summary)
        if ctx.tool_ctx.is_shared_modules_changed:
            summary.add_row("shared modules", "changed")
        console.print(Panel.fit(summary, title="Turn", border_style="green"))
    finally:
        ctx.close()


@app.command()
def tools(
    cwd: Path = typer.Option(None, "--cwd", help="Project root. Defaults to current directory."),
    behavior_config: Path = typer.Option(None, "--behavior-config", help="Optional behavior JSON (tagforge.json) path."),
    read_only: Optional[bool] = typer.Option(None, "--read-only/--read-write", help="Hide tools that modify state."),
    database_id: Optional[str] = typer.Option(None, "--database-id", help="Pretend a database is connected."),
):
    """Show the tools the model would get for this project."""
    cwd = _resolve_cwd(cwd)
    ctx = AppContext.from_env(
        cwd,
        behavior_config=behavior_config,
        read_only=read_only,
        database_id=database_id,
        with_provider=False,
        record_events=False,
    )
    try:
        active = ctx.active_tools()
        table = Table(title=f"Active tools ({'read-only' if ctx.read_only else 'read-write'})")
        table.add_column("name", style="bold")
        table.add_column("consent")
        table.add_column("modifies")
        table.add_column("description")
        for name, a in sorted(active.items()):
            desc = a.tool.description.strip().splitlines()[0] if a.tool.description.strip() else ""
            table.add_row(name, ctx.permissions.decide(a.tool), "yes" if a.tool.modifies_state else "no", desc[:80])
        console.print(table)
        hidden = sorted(set(ctx.tools.names()) - set(active))
        if hidden:
            console.print(f"[dim]hidden: {', '.join(hidden)}[/dim]")
    finally:
        ctx.close()


@app.command()
def events(
    conversation: str = typer.Option(..., "--conversation", help="Conversation id to inspect."),
    tail: int = typer.Option(200, "--tail", help="Show last N events."),
):
    """Show recent structured events (LLM calls, tool calls, tags) for a conversation."""
    es = EventStore.open(conversation)
    evs = list(es.iter_events())
    evs = evs[-tail:] if tail and tail > 0 else evs
    console.print(Panel.fit(f"conversation: {conversation}\nfile: {es.path}\nevents: {len(evs)}", title="Events"))
    for e in evs:
        ts = datetime.fromtimestamp(e.ts).strftime("%Y-%m-%d %H:%M:%S")
        console.print(Panel.fit(json.dumps(e.data, ensure_ascii=False, indent=2)[:4000], title=f"{ts}  {e.type}"))


if __name__ == "__main__":
    app()
