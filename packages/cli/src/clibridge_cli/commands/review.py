"""review command — iterative code review tied to the current git branch and commit."""

from __future__ import annotations

import logging
from typing import Optional

import click
from rich.console import Console

from clibridge_cli.execution import backend_options, resolve_provider, run_backend
from clibridge_cli.formatting import format_git_state_warning, format_review_response, format_session_not_found
from clibridge_core.config import session_settings
from clibridge_core.errors import GitStateError
from clibridge_core.git.state import (
    GitState,
    check_continuation,
    generate_session_id,
    get_current_git_state,
    scoped_session_id,
)
from clibridge_core.models import BackendConfig, Provider
from clibridge_core.review import (
    REVIEW_TYPES,
    SEVERITY_FILTERS,
    build_review_prompt,
    filter_by_severity,
    parse_review_response,
    validate_comments,
)
from clibridge_store.models import GitSnapshot, ReviewComment, ReviewSession

logger = logging.getLogger(__name__)

console = Console(stderr=True)


def parse_decision(value: str) -> dict:
    """Parse ``ID=STATUS[:NOTES]`` into a decision dict."""
    comment_id, sep, rest = value.partition("=")
    if not sep or not comment_id.strip() or not rest.strip():
        raise click.BadParameter(f"expected ID=STATUS[:NOTES], got '{value}'", param_hint="--decision")
    decision, _, notes = rest.partition(":")
    entry = {"comment_id": comment_id.strip(), "decision": decision.strip()}
    if notes.strip():
        entry["notes"] = notes.strip()
    return entry


def _snapshot(state: GitState) -> GitSnapshot:
    return GitSnapshot(
        branch=state.branch,
        commit_hash=state.commit_hash,
        working_tree_clean=state.working_tree_clean,
        timestamp=state.timestamp,
    )


def _new_session(session_id: str, state: GitState, files: list[str]) -> ReviewSession:
    snapshot = _snapshot(state)
    return ReviewSession(
        session_id=session_id,
        git_state=snapshot,
        current_git_state=snapshot,
        focus_files=files or None,
        review_scope="specific-files" if files else "full",
    )


@click.command("review")
@click.argument("prompt")
@click.option("--file", "files", multiple=True, help="File to focus the review on. Repeatable.")
@click.option("--session-id", default=None, help="Custom session name; scoped to the current branch and commit.")
@click.option("--force-new-session", is_flag=True, help="Start fresh even if a session exists.")
@click.option(
    "--continue-anyway",
    is_flag=True,
    help="Keep the existing session even though the branch changed since its last round.",
)
@click.option("--review-type", type=click.Choice(REVIEW_TYPES), default="general", show_default=True)
@click.option("--severity", "severity_filter", type=click.Choice(SEVERITY_FILTERS), default="all", show_default=True)
@click.option(
    "--decision",
    "decisions",
    multiple=True,
    help="Record a decision on an earlier comment: ID=STATUS[:NOTES]. Repeatable.",
)
@click.option("--no-history", is_flag=True, help="Do not include earlier rounds in the prompt.")
@backend_options
@click.pass_context
def review_cmd(
    ctx,
    prompt: str,
    files: tuple[str, ...],
    session_id: Optional[str],
    force_new_session: bool,
    continue_anyway: bool,
    review_type: str,
    severity_filter: str,
    decisions: tuple[str, ...],
    no_history: bool,
    backend: Optional[str],
    model: Optional[str],
    reasoning_effort: Optional[str],
    allowed_tools: tuple[str, ...],
    cwd: Optional[str],
    stream: bool,
):
    """Review code with a backend, keeping comments across rounds.

    Sessions are keyed by branch and commit. Re-running on the same state
    continues the session, feeding a summary of earlier rounds and your
    --decision entries back to the reviewer. A branch change starts a new
    session unless --continue-anyway is given.
    """
    if not prompt.strip():
        raise click.UsageError("Describe what should be reviewed.")

    config = ctx.obj["config"]
    store = ctx.obj["stores"]["review-code"]
    ttl_seconds = float(session_settings(config, "review-code")["ttl_hours"]) * 3600
    parsed_decisions = [parse_decision(d) for d in decisions]

    try:
        state = get_current_git_state(cwd)
    except GitStateError as e:
        raise click.ClickException(str(e)) from e

    sid = scoped_session_id(session_id, state) if session_id else generate_session_id(state)
    file_list = list(files)

    session: Optional[ReviewSession] = None
    if not force_new_session:
        session = store.load(sid)
        if session is None and session_id:
            click.echo(format_session_not_found(sid, state.branch, state.commit_hash, ttl_seconds))
            ctx.exit(1)

    if session is not None and session.current_git_state is not None:
        stored = session.current_git_state
        check = check_continuation(state, stored.branch, stored.commit_hash)
        continuing = check.can_continue or continue_anyway
        if check.warning:
            console.print(format_git_state_warning(check.warning, continuing), markup=False)
        if not continuing:
            logger.info("Discarding review session %s after branch change", sid)
            session = None

    if session is None:
        session = _new_session(sid, state, file_list)
        console.print(f"[dim]Started review session '{sid}'[/dim]")
    else:
        console.print(f"[dim]Continuing review session '{sid}' (round {session.total_rounds + 1})[/dim]")

    if parsed_decisions:
        applied = session.apply_comment_decisions(parsed_decisions)
        if applied < len(parsed_decisions):
            console.print(f"[yellow]{len(parsed_decisions) - applied} decision(s) did not match a comment.[/yellow]")

    session.track_files(file_list)
    round_number = session.total_rounds + 1
    full_prompt = build_review_prompt(
        prompt,
        session_id=sid,
        round_number=round_number,
        git_state=state,
        review_type=review_type,
        files=file_list,
        history="" if no_history else session.format_previous_rounds(),
    )

    provider = resolve_provider(backend, session.last_provider, config)
    backend_config = BackendConfig(
        provider=provider,
        model=model or config.get("model"),
        cwd=cwd,
        allowed_tools=allowed_tools,
        reasoning_effort=reasoning_effort,
        thread_id=session.thread_id if provider is Provider.CODEX else None,
    )
    result = run_backend(ctx, full_prompt, backend_config, stream)

    parsed = validate_comments(parse_review_response(result.response, round_number))
    comments = [ReviewComment.from_dict(c) for c in filter_by_severity(parsed, severity_filter)]

    current_round = session.add_round(
        prompt,
        result.response,
        result.model,
        result.provider.value,
        _snapshot(state),
        file_list,
        comments,
        thread_id=result.thread_id,
    )
    store.save(sid, session)

    click.echo(format_review_response(session, current_round, comments, ttl_seconds, show_history=not no_history))
