"""Session store exceptions."""

from __future__ import annotations


class SessionStoreError(Exception):
    """Base class for session store failures."""


class SessionDirectoryInitFailure(SessionStoreError):
    """The tool's session directory could not be created."""


class SessionCorrupt(SessionStoreError):
    """A stored session could not be decoded. Never escapes the store."""
