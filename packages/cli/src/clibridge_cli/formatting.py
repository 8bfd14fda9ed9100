"""Markdown rendering of review rounds."""

from __future__ import annotations

import time

from clibridge_store.models import ReviewComment, ReviewRound, ReviewSession

_SEVERITY_ORDER = {"critical": 0, "important": 1, "suggestion": 2, "question": 3}
_SEVERITY_LABEL = {
    "critical": "Critical",
    "important": "Important",
    "suggestion": "Suggestions",
    "question": "Questions",
}


def format_review_response(
    session: ReviewSession,
    current_round: ReviewRound,
    new_comments: list[ReviewComment],
    ttl_seconds: float,
    show_history: bool = True,
) -> str:
    state = session.current_git_state or session.git_state
    out = f"# Code Review - Round {current_round.round_number}\n\n"
    out += f"**Session:** `{session.session_id}`\n"
    if state:
        out += f"**Branch:** {state.branch} @ {state.commit_hash[:8]}\n"
    out += f"**Files Reviewed:** {len(current_round.files_reviewed)}\n\n"

    out += _format_summary(new_comments)
    if new_comments:
        out += "## Issues Found\n\n" + _format_by_file(new_comments)
    else:
        out += "## Result\n\nNo new issues found in this round.\n\n"

    out += _format_continuation(session, ttl_seconds)
    if show_history and len(session.rounds) > 1:
        out += _format_history(session)
    return out


def format_session_not_found(session_id: str, branch: str, commit_hash: str, ttl_seconds: float) -> str:
    hours = round(ttl_seconds / 3600, 1)
    return (
        "**Session Not Found or Expired**\n\n"
        f"The review session `{session_id}` was not found or has expired.\n\n"
        "**Current Git State:**\n"
        f"- Branch: {branch}\n"
        f"- Commit: {commit_hash[:8]}\n\n"
        "**Options:**\n"
        "1. Start a new session with `--force-new-session`\n"
        "2. Omit `--session-id` to use the session derived from the current branch and commit\n\n"
        f"Review sessions expire after {hours} hour(s) of inactivity.\n"
    )


def format_git_state_warning(reason: str, continuing: bool) -> str:
    warning = f"**Git State Changed**\n\n{reason}\n\n"
    if continuing:
        warning += "Continuing with the existing session. Use `--force-new-session` to start fresh.\n"
    else:
        warning += "Starting a new session for the current git state.\n"
    return warning


def group_by_file(comments: list[ReviewComment]) -> dict[str, list[ReviewComment]]:
    """Group comments by file, each group sorted most severe first."""
    groups: dict[str, list[ReviewComment]] = {}
    for c in sorted(comments, key=lambda c: _SEVERITY_ORDER.get(c.severity, len(_SEVERITY_ORDER))):
        groups.setdefault(c.file_pattern, []).append(c)
    return groups


def _format_summary(comments: list[ReviewComment]) -> str:
    out = "## Summary\n"
    for severity, label in _SEVERITY_LABEL.items():
        out += f"- {label}: {sum(1 for c in comments if c.severity == severity)}\n"
    return out + f"- **Total:** {len(comments)} issues\n\n"


def _format_by_file(comments: list[ReviewComment]) -> str:
    out = ""
    for file_pattern, file_comments in group_by_file(comments).items():
        out += f"### {file_pattern}\n\n"
        for i, c in enumerate(file_comments, start=1):
            out += f"#### [{c.severity.upper()}] Issue {i}\n"
            out += f"**Comment ID:** `{c.id}`\n"
            if c.line_range:
                start, end = c.line_range
                out += f"**Line:** {start}\n" if start == end else f"**Lines:** {start}-{end}\n"
            out += f"\n{c.comment}\n\n---\n\n"
    return out


def _format_continuation(session: ReviewSession, ttl_seconds: float) -> str:
    state = session.current_git_state or session.git_state
    expires = time.strftime("%Y-%m-%d %H:%M", time.localtime(session.last_accessed_at + ttl_seconds))
    out = "## Continue Review\n\n"
    out += "1. Make your changes based on the feedback above\n"
    out += "2. Run `clibridge review` again; the session is picked up from the git state\n"
    out += "3. Record what you did with each comment using `--decision`\n\n"
    out += "**Example:**\n```\n"
    out += 'clibridge review "Fixed the security issues, please re-check" --decision cmt-xxx=accepted:Fixed\n'
    out += "```\n\n"
    out += "**Session Details:**\n"
    out += f"- Session ID: `{session.session_id}`\n"
    out += f"- Expires: {expires}\n"
    if state:
        out += f"- Git State: {state.branch} @ {state.commit_hash[:8]}\n"
    return out + "\n"


def _format_history(session: ReviewSession) -> str:
    previous = session.rounds[:-1]
    out = "## Review History\n\n"
    out += "| Round | Files | Issues | Resolved | Pending |\n"
    out += "|-------|-------|--------|----------|---------|\n"
    for r in previous:
        comments = session.round_comments(r)
        resolved = sum(1 for c in comments if c.status != "pending")
        out += f"| {r.round_number} | {len(r.files_reviewed)} | {len(comments)} | {resolved} | {len(comments) - resolved} |\n"

    total_resolved = sum(1 for c in session.all_comments if c.status != "pending")
    out += "\n**Overall Progress:**\n"
    out += f"- Total Issues: {len(session.all_comments)}\n"
    out += f"- Resolved: {total_resolved}\n"
    out += f"- Pending: {len(session.all_comments) - total_resolved}\n"
    out += f"- Files Tracked: {len(session.files_tracked)}\n\n"
    return out
