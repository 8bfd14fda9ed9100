"""ask command — send one prompt to a backend, optionally inside a named conversation."""

from __future__ import annotations

from typing import Optional

import click
from rich.console import Console

from clibridge_cli.execution import backend_options, resolve_provider, run_backend
from clibridge_core.changemode import process_change_mode_output
from clibridge_core.models import BackendConfig, Provider
from clibridge_core.review import extract_file_refs
from clibridge_store.models import AskSession

console = Console(stderr=True)


@click.command("ask")
@click.argument("prompt")
@click.option("--session", "session_id", default=None, help="Conversation id; earlier rounds are sent as context.")
@click.option("--no-history", is_flag=True, help="Do not prepend earlier rounds of the session.")
@click.option("--sandbox", is_flag=True, help="Run the backend in its sandbox.")
@click.option("--change-mode", is_flag=True, help="Ask for exact OLD/NEW edit blocks instead of prose.")
@backend_options
@click.pass_context
def ask_cmd(
    ctx,
    prompt: str,
    session_id: Optional[str],
    no_history: bool,
    sandbox: bool,
    change_mode: bool,
    backend: Optional[str],
    model: Optional[str],
    reasoning_effort: Optional[str],
    allowed_tools: tuple[str, ...],
    cwd: Optional[str],
    stream: bool,
):
    """Ask a backend a question.

    File contents can be pulled in with @path references. With --session the
    exchange is recorded, and the next call with the same id continues the
    conversation.
    """
    if not prompt.strip():
        raise click.UsageError("Prompt must not be empty.")

    config = ctx.obj["config"]
    store = ctx.obj["stores"]["ask"]

    session: Optional[AskSession] = None
    full_prompt = prompt
    if session_id:
        session = store.load(session_id) or AskSession(session_id=session_id)
        if session.rounds and not no_history:
            full_prompt = f"{session.build_conversation_context()}\n\n# Current Question\n{prompt}"
        console.print(f"[dim]Session '{session_id}' (round {session.total_rounds + 1})[/dim]")

    provider = resolve_provider(backend, session.last_provider if session else None, config)
    backend_config = BackendConfig(
        provider=provider,
        model=model or config.get("model"),
        sandbox=sandbox,
        change_mode=change_mode,
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
            result.model,
            result.provider.value,
            context_files=extract_file_refs(prompt),
            thread_id=result.thread_id,
        )
        store.save(session_id, session)

    if change_mode:
        click.echo(process_change_mode_output(result.response))
    else:
        click.echo(f"{result.provider.value.capitalize()} response ({result.model}):\n{result.response}")
