"""No-op session store, used when ``store: none`` is configured.

Every command can still call save()/load() unconditionally; nothing is kept
between invocations.
"""

from __future__ import annotations

from typing import Optional

from clibridge_store.base import BaseSessionStore, RecordT


class NoOpSessionStore(BaseSessionStore[RecordT]):
    def __init__(self, tool_name: str = ""):
        self.tool_name = tool_name

    def save(self, session_id: str, record: RecordT) -> None:
        pass  # intentional no-op

    def load(self, session_id: str) -> Optional[RecordT]:
        return None

    def list_sessions(self) -> list[RecordT]:
        return []

    def delete(self, session_id: str) -> bool:
        return False
