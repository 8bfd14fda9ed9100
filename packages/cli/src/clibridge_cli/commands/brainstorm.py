"""brainstorm command — structured idea generation with per-session idea tracking."""

from __future__ import annotations

from typing import Optional

import click
from rich.console import Console

from clibridge_cli.execution import backend_options, resolve_provider, run_backend
from clibridge_core.brainstorm import DEFAULT_IDEA_COUNT, METHODOLOGIES, build_brainstorm_prompt, parse_ideas
from clibridge_core.models import BackendConfig, Provider
from clibridge_store.models import BrainstormSession

console = Console(stderr=True)


@click.command("brainstorm")
@click.argument("prompt")
@click.option("--session", "session_id", default=None, help="Session id for tracking ideas across rounds.")
@click.option("--methodology", type=click.Choice(METHODOLOGIES), default="auto", show_default=True)
@click.option("--domain", default=None, help="Domain to specialise in (software, product, research...).")
@click.option("--constraints", default=None, help="Known limits: budget, time, technical, legal.")
@click.option("--context", "existing_context", default=None, help="Background to build on.")
@click.option("--idea-count", type=click.IntRange(min=1), default=DEFAULT_IDEA_COUNT, show_default=True)
@click.option("--no-analysis", is_flag=True, help="Skip feasibility/impact/innovation scoring.")
@click.option("--no-history", is_flag=True, help="Do not feed earlier ideas of the session back in.")
@backend_options
@click.pass_context
def brainstorm_cmd(
    ctx,
    prompt: str,
    session_id: Optional[str],
    methodology: str,
    domain: Optional[str],
    constraints: Optional[str],
    existing_context: Optional[str],
    idea_count: int,
    no_analysis: bool,
    no_history: bool,
    backend: Optional[str],
    model: Optional[str],
    reasoning_effort: Optional[str],
    allowed_tools: tuple[str, ...],
    cwd: Optional[str],
    stream: bool,
):
    """Generate ideas for a challenge using a brainstorming methodology."""
    if not prompt.strip():
        raise click.UsageError("Provide a challenge or question to brainstorm.")

    config = ctx.obj["config"]
    store = ctx.obj["stores"]["brainstorm"]

    session: Optional[BrainstormSession] = None
    if session_id:
        session = store.load(session_id) or BrainstormSession(
            session_id=session_id,
            challenge=prompt.strip(),
            methodology=methodology,
            domain=domain,
            constraints=constraints,
        )
        if session.rounds and not no_history:
            previous = session.build_ideas_context(active_only=True)
            if previous:
                existing_context = f"{existing_context}\n\n{previous}" if existing_context else previous
        console.print(f"[dim]Session '{session_id}' (round {len(session.rounds) + 1})[/dim]")

    full_prompt = build_brainstorm_prompt(
        prompt.strip(),
        methodology=methodology,
        domain=domain,
        constraints=constraints,
        existing_context=existing_context,
        idea_count=idea_count,
        include_analysis=not no_analysis,
    )

    provider = resolve_provider(backend, session.last_provider if session else None, config)
    backend_config = BackendConfig(
        provider=provider,
        model=model or config.get("model"),
        cwd=cwd,
        allowed_tools=allowed_tools,
        reasoning_effort=reasoning_effort,
        thread_id=session.thread_id if session and provider is Provider.CODEX else None,
    )
    result = run_backend(ctx, full_prompt, backend_config, stream)

    if session is not None:
        session.add_round(
            prompt,
            result.response,
            parse_ideas(result.response),
            result.model,
            result.provider.value,
            thread_id=result.thread_id,
        )
        store.save(session_id, session)
        console.print(
            f"[dim]Saved session '{session_id}' ({session.total_ideas} total ideas, {session.active_ideas} active)[/dim]"
        )

    click.echo(f"{result.provider.value.capitalize()} response ({result.model}):\n{result.response}")
