"""Abstract session store interface.

The CLI depends on BaseSessionStore, not on a concrete backend, so the
file store can be swapped for the no-op store (or anything else) without
touching command code.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Generic, Optional, TypeVar

from clibridge_store.models import SessionRecord

RecordT = TypeVar("RecordT", bound=SessionRecord)


class BaseSessionStore(ABC, Generic[RecordT]):
    """Keyed persistence for one tool's session records."""

    @abstractmethod
    def save(self, session_id: str, record: RecordT) -> None:
        """Persist ``record`` under ``session_id``, replacing any earlier version."""

    @abstractmethod
    def load(self, session_id: str) -> Optional[RecordT]:
        """Return the stored record, or None if absent, expired or unreadable."""

    @abstractmethod
    def list_sessions(self) -> list[RecordT]:
        """Return every live record. Never raises for individual bad entries."""

    @abstractmethod
    def delete(self, session_id: str) -> bool:
        """Remove a record. Returns False if there was nothing to remove."""

    def clean_expired(self) -> int:
        """Delete expired records and return how many were removed."""
        return 0

    def stats(self) -> dict:
        return {}

    def close(self) -> None:
        """Release any resources held by the store.

        Default is a no-op so callers can always call close() safely.
        """
