"""Exceptions raised by backend execution.

Every backend failure derives from BackendError so callers can catch one
type and still present which provider and model were in use.
"""

from __future__ import annotations


class BackendError(Exception):
    """Base class for failures while invoking an AI CLI backend."""

    def __init__(self, message: str, provider: str | None = None, model: str | None = None):
        super().__init__(message)
        self.provider = provider
        self.model = model


class SpawnError(BackendError):
    """The CLI binary could not be started (missing from PATH, not executable)."""


class ExitError(BackendError):
    """The CLI exited with a non-zero status."""

    def __init__(self, code: int, stderr_tail: str, provider: str | None = None, model: str | None = None):
        detail = stderr_tail.strip() or "no error output"
        super().__init__(f"Command failed with exit code {code}: {detail}", provider, model)
        self.code = code
        self.stderr_tail = stderr_tail


class QuotaExceeded(ExitError):
    """The CLI reported that the requested model's quota is exhausted."""


class FallbackFailed(BackendError):
    """The primary model hit its quota and the fallback model failed too."""

    def __init__(self, primary: str, fallback: str, error: Exception, provider: str | None = None):
        super().__init__(
            f"{primary} quota exceeded, {fallback} fallback also failed: {error}",
            provider,
            fallback,
        )
        self.primary = primary
        self.fallback = fallback
        self.error = error


class OutputTooLarge(BackendError):
    """Accumulated stdout passed the configured ceiling; the child was killed."""

    def __init__(self, limit: int, provider: str | None = None, model: str | None = None):
        super().__init__(f"Output exceeded {limit} bytes; process terminated", provider, model)
        self.limit = limit


class CommandCancelled(BackendError):
    """The caller cancelled the invocation; the child was killed."""


class UnknownBackend(BackendError):
    """No adapter is registered under the requested provider name."""


class BackendUnavailable(BackendError):
    """The adapter is registered but its CLI binary is not installed."""


class InvalidModel(BackendError, ValueError):
    """A model name that could be mistaken for a command-line flag."""


class GitStateError(Exception):
    """One of the git queries failed (not a repository, git missing)."""
