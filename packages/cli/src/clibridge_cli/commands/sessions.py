"""sessions command group — inspect and manage stored sessions."""

from __future__ import annotations

import time

import click
from rich.console import Console
from rich.table import Table

from clibridge_store.models import BrainstormSession, ReviewSession

console = Console()

_TOOL_CHOICE = click.Choice(["ask", "brainstorm", "review-code"])

_SEVERITY_STYLE = {"critical": "red", "important": "yellow", "suggestion": "blue", "question": "dim"}


def _stamp(ts: float) -> str:
    return time.strftime("%Y-%m-%d %H:%M", time.localtime(ts)) if ts else "-"


def _require_store(ctx: click.Context, tool: str):
    from clibridge_store.noop import NoOpSessionStore

    store = ctx.obj.get("stores", {}).get(tool) if ctx.obj else None
    if store is None or isinstance(store, NoOpSessionStore):
        raise click.UsageError("Sessions are disabled. Set 'store: file' in .clibridge.yml to keep them.")
    return store


@click.group("sessions")
def sessions_group():
    """List, show and delete stored sessions."""


@sessions_group.command("list")
@click.option("--tool", type=_TOOL_CHOICE, default="ask", show_default=True)
@click.pass_context
def list_cmd(ctx, tool: str):
    """List live sessions for a tool, most recently used first."""
    store = _require_store(ctx, tool)
    records = sorted(store.list_sessions(), key=lambda r: r.last_accessed_at, reverse=True)
    if not records:
        console.print(f"[yellow]No {tool} sessions found.[/yellow]")
        return

    table = Table(title=f"Sessions — {tool}", show_header=True, header_style="bold cyan")
    table.add_column("Session", style="bold")
    table.add_column("Rounds", justify="right", width=8)
    table.add_column("Backend", width=8)
    table.add_column("Created", width=16)
    table.add_column("Last Used", width=16)
    for r in records:
        table.add_row(
            r.session_id,
            str(len(r.rounds)),
            r.last_provider or "-",
            _stamp(r.created_at),
            _stamp(r.last_accessed_at),
        )
    console.print(table)


@sessions_group.command("show")
@click.argument("session_id")
@click.option("--tool", type=_TOOL_CHOICE, default="ask", show_default=True)
@click.pass_context
def show_cmd(ctx, session_id: str, tool: str):
    """Show the rounds of one session."""
    store = _require_store(ctx, tool)
    record = store.load(session_id)
    if record is None:
        raise click.ClickException(f"Session '{session_id}' not found or expired.")

    console.print(f"\n[bold]{record.session_id}[/bold]  created {_stamp(record.created_at)}")
    if record.thread_id:
        console.print(f"  Codex thread: {record.thread_id}")

    rounds = Table(title="Rounds", show_header=True)
    rounds.add_column("#", justify="right", width=4)
    rounds.add_column("When", width=16)
    rounds.add_column("Backend")
    rounds.add_column("Prompt", max_width=60)
    for r in record.rounds:
        rounds.add_row(str(r.round_number), _stamp(r.timestamp), f"{r.provider}/{r.model}", r.prompt[:60])
    console.print(rounds)

    if isinstance(record, ReviewSession) and record.all_comments:
        comments = Table(title="Comments", show_header=True)
        comments.add_column("ID")
        comments.add_column("File")
        comments.add_column("Severity")
        comments.add_column("Status")
        for c in record.all_comments:
            style = _SEVERITY_STYLE.get(c.severity, "white")
            comments.add_row(c.id, c.file_pattern, f"[{style}]{c.severity}[/{style}]", c.status)
        console.print(comments)

    if isinstance(record, BrainstormSession) and record.rounds:
        ideas = Table(title=f"Ideas ({record.active_ideas} active of {record.total_ideas})", show_header=True)
        ideas.add_column("ID")
        ideas.add_column("Name", max_width=40)
        ideas.add_column("Status")
        for idea in record.all_ideas():
            ideas.add_row(idea.idea_id, idea.name, idea.status)
        console.print(ideas)


@sessions_group.command("delete")
@click.argument("session_id")
@click.option("--tool", type=_TOOL_CHOICE, default="ask", show_default=True)
@click.pass_context
def delete_cmd(ctx, session_id: str, tool: str):
    """Delete one session."""
    store = _require_store(ctx, tool)
    if not store.delete(session_id):
        raise click.ClickException(f"Session '{session_id}' not found.")
    console.print(f"[green]✓[/green] Deleted {tool} session '{session_id}'")


@sessions_group.command("clean")
@click.option("--tool", type=_TOOL_CHOICE, default=None, help="Only clean this tool's sessions.")
@click.pass_context
def clean_cmd(ctx, tool: str | None):
    """Remove expired and unreadable session files."""
    tools = [tool] if tool else list(ctx.obj["stores"])
    for name in tools:
        removed = _require_store(ctx, name).clean_expired()
        console.print(f"{name}: removed {removed} session file(s)")


@sessions_group.command("stats")
@click.pass_context
def stats_cmd(ctx):
    """Show session counts and retention settings per tool."""
    table = Table(title="Session Stores", show_header=True, header_style="bold cyan")
    table.add_column("Tool", style="bold")
    table.add_column("Sessions", justify="right")
    table.add_column("Max", justify="right")
    table.add_column("TTL (h)", justify="right")
    table.add_column("Eviction")
    table.add_column("Directory")
    for name in ctx.obj["stores"]:
        stats = _require_store(ctx, name).stats()
        table.add_row(
            name,
            str(stats["session_count"]),
            str(stats["max_sessions"]),
            f"{stats['ttl_seconds'] / 3600:g}",
            stats["eviction_policy"],
            stats["cache_dir"],
        )
    console.print(table)


@sessions_group.command("refine")
@click.argument("session_id")
@click.option(
    "--action",
    type=click.Choice(["refined", "merged", "discarded"]),
    required=True,
    help="New status for the ideas.",
)
@click.option("--idea", "idea_ids", multiple=True, required=True, help="Idea id. Repeatable.")
@click.option("--reason", default=None)
@click.pass_context
def refine_cmd(ctx, session_id: str, action: str, idea_ids: tuple[str, ...], reason: str | None):
    """Mark ideas of a brainstorm session as refined, merged or discarded."""
    store = _require_store(ctx, "brainstorm")
    record = store.load(session_id)
    if record is None:
        raise click.ClickException(f"Brainstorm session '{session_id}' not found or expired.")

    changed = record.refine_ideas(action, list(idea_ids), reason)
    store.save(session_id, record)
    console.print(f"{changed} idea(s) marked {action}; {record.active_ideas} active")
