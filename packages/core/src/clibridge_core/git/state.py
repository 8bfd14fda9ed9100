"""Git state detection for review sessions.

A review session is tied to the branch and commit it started on. The default
session id is derived from both, so moving to another branch or commit
naturally starts a fresh session unless the caller names one explicitly.
"""

from __future__ import annotations

import logging
import re
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Optional

from clibridge_core.errors import BackendError, GitStateError
from clibridge_core.utils.process import run_command

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_-]")
_MAX_CUSTOM_ID = 100


@dataclass(frozen=True)
class GitState:
    branch: str
    commit_hash: str
    working_tree_clean: bool
    timestamp: float

    @property
    def short_hash(self) -> str:
        return self.commit_hash[:8]


@dataclass(frozen=True)
class ContinuationCheck:
    can_continue: bool
    warning: Optional[str] = None


def get_current_git_state(cwd: Optional[str] = None) -> GitState:
    """Query branch, commit and working-tree status concurrently.

    Any failing query fails the whole lookup with GitStateError.
    """
    queries = (
        ["rev-parse", "--abbrev-ref", "HEAD"],
        ["rev-parse", "HEAD"],
        ["status", "--porcelain"],
    )
    try:
        with ThreadPoolExecutor(max_workers=len(queries)) as pool:
            futures = [pool.submit(run_command, "git", args, cwd=cwd) for args in queries]
            branch, commit_hash, status = (f.result() for f in futures)
    except BackendError as e:
        logger.error("Failed to get git state: %s", e)
        raise GitStateError(f"Git state detection failed. Ensure you're in a git repository: {e}") from e

    return GitState(
        branch=branch.strip(),
        commit_hash=commit_hash.strip(),
        working_tree_clean=status.strip() == "",
        timestamp=time.time(),
    )


def safe_branch(branch: str) -> str:
    return _UNSAFE_CHARS.sub("-", branch)


def generate_session_id(state: GitState, prefix: str = "review") -> str:
    """``<prefix>-<branch>-<hash8>``, e.g. ``review-feature-login-1a2b3c4d``."""
    return f"{prefix}-{safe_branch(state.branch)}-{state.short_hash}"


def scoped_session_id(session_id: str, state: GitState) -> str:
    """Bind a caller-chosen id to the current branch and commit."""
    base = _UNSAFE_CHARS.sub("-", session_id)[:_MAX_CUSTOM_ID]
    return f"{base}-{safe_branch(state.branch)}-{state.short_hash}"


def check_continuation(current: GitState, stored_branch: str, stored_commit: str) -> ContinuationCheck:
    """Decide whether a stored session may continue under the current git state.

    Same branch and commit continues silently. A new commit on the same branch
    continues with a warning. A different branch is refused with a warning;
    the caller may still force continuation.
    """
    if current.branch == stored_branch and current.commit_hash == stored_commit:
        return ContinuationCheck(can_continue=True)
    if current.branch == stored_branch:
        return ContinuationCheck(
            can_continue=True,
            warning=f"Git state changed: commit {stored_commit[:8]} → {current.short_hash}",
        )
    return ContinuationCheck(
        can_continue=False,
        warning=f"Branch changed: {stored_branch} → {current.branch}",
    )
