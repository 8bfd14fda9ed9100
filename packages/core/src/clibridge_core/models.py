"""Invocation settings and normalized results shared by all backends."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional


class Provider(str, Enum):
    GEMINI = "gemini"
    CODEX = "codex"


# Receives each newly-arrived piece of output text, in order.
ProgressCallback = Callable[[str], None]

SANDBOX_MODES = ("read-only", "workspace-write", "danger-full-access")
APPROVAL_MODES = ("untrusted", "on-failure", "on-request", "never")
REASONING_EFFORTS = ("low", "medium", "high", "xhigh")


@dataclass(frozen=True)
class BackendConfig:
    """Settings for one backend invocation.

    Options that a provider does not understand are ignored by that provider's
    adapter (e.g. ``approval_mode`` means nothing to Gemini).
    """

    provider: Provider = Provider.GEMINI
    model: Optional[str] = None
    sandbox: bool = False
    sandbox_mode: Optional[str] = None  # codex: one of SANDBOX_MODES
    approval_mode: Optional[str] = None  # codex: one of APPROVAL_MODES
    full_auto: bool = False
    change_mode: bool = False
    cwd: Optional[str] = None
    allowed_tools: tuple[str, ...] = field(default_factory=tuple)
    reasoning_effort: Optional[str] = None  # codex: one of REASONING_EFFORTS
    thread_id: Optional[str] = None  # codex: resume an existing thread


@dataclass(frozen=True)
class BackendResult:
    """Normalized outcome of a backend invocation.

    ``model`` is the model that actually produced the response, which differs
    from the requested one after a quota fallback.
    """

    response: str
    provider: Provider
    model: str
    thread_id: Optional[str] = None
