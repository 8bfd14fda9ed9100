"""FileSessionStore — one JSON file per session, per tool.

Layout: ``<base_dir>/<tool_name>/<sanitized id>.json`` holding a CacheEntry
envelope ``{"data": {...}, "timestamp": t, "expiry_time": t + ttl}``.

Retention is enforced opportunistically rather than by a background job:
  - expired records are swept when a save finds the store at 80% capacity,
    and deleted on sight when load() meets one
  - when a save pushes the count past ``max_sessions``, the oldest records by
    the eviction policy's timestamp are removed (``last_accessed_at`` for lru,
    ``created_at`` for fifo); ties fall back to directory enumeration order
  - unreadable files are deleted and reported as absent

Concurrency: there is no cross-process locking. Two concurrent saves of the
same id race and the last writer wins. Each write goes to a temporary file
that is renamed into place, so readers never observe a half-written record.
"""

from __future__ import annotations

import json
import logging
import os
import re
import tempfile
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from clibridge_store.base import BaseSessionStore, RecordT
from clibridge_store.errors import SessionCorrupt, SessionDirectoryInitFailure
from clibridge_store.models import CacheEntry

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 24 * 60 * 60
DEFAULT_MAX_SESSIONS = 20
SWEEP_THRESHOLD = 0.8
MAX_ID_LENGTH = 100

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_-]")
_HYPHEN_RUNS = re.compile(r"-+")


def _now() -> float:
    return time.time()


def sanitize_session_id(session_id: str) -> str:
    """Filesystem-safe form of a session id.

    Keeps ``[A-Za-z0-9_-]``, collapses hyphen runs, strips edge hyphens and
    caps the length; an id with nothing left becomes ``session``.
    """
    safe = _HYPHEN_RUNS.sub("-", _UNSAFE_CHARS.sub("-", session_id)).strip("-")
    safe = safe[:MAX_ID_LENGTH].rstrip("-")
    return safe or "session"


@dataclass(frozen=True)
class SessionStoreConfig:
    tool_name: str
    base_dir: Path
    ttl_seconds: float = DEFAULT_TTL_SECONDS
    max_sessions: int = DEFAULT_MAX_SESSIONS
    eviction_policy: str = "lru"  # "lru" | "fifo"
    legacy_base_dir: Optional[Path] = None

    def __post_init__(self):
        if self.eviction_policy not in ("lru", "fifo"):
            raise ValueError(f"Unknown eviction policy: {self.eviction_policy}")
        if self.max_sessions < 1:
            raise ValueError("max_sessions must be at least 1")


class FileSessionStore(BaseSessionStore[RecordT]):
    """Persists one tool's records as JSON files with TTL and size-bounded eviction."""

    def __init__(self, config: SessionStoreConfig, record_type: type[RecordT]):
        self.config = config
        self.record_type = record_type
        self.cache_dir = Path(config.base_dir).expanduser() / config.tool_name
        self.legacy_dir = (
            Path(config.legacy_base_dir).expanduser() / config.tool_name if config.legacy_base_dir else None
        )
        self._init_lock = threading.Lock()
        self._initialized = False

    # ------------------------------------------------------------------ #
    # Public interface                                                     #
    # ------------------------------------------------------------------ #

    def save(self, session_id: str, record: RecordT) -> None:
        self._ensure_dir()

        if self._count() >= self.config.max_sessions * SWEEP_THRESHOLD:
            self.clean_expired()

        now = _now()
        record.session_id = session_id
        if not record.created_at:
            record.created_at = now
        record.last_accessed_at = now

        entry = CacheEntry(data=record.to_dict(), timestamp=now, expiry_time=now + self.config.ttl_seconds)
        self._write_entry(self._path(session_id), entry)
        logger.debug("[%s] Saved session: %s", self.config.tool_name, session_id)

        if self._count() > self.config.max_sessions:
            self._enforce_limit()

    def load(self, session_id: str) -> Optional[RecordT]:
        self._ensure_dir()
        path = self._path(session_id)
        legacy_path = self.legacy_dir / path.name if self.legacy_dir else None

        if path.exists():
            active = path
        elif legacy_path is not None and legacy_path.exists():
            active = legacy_path
        else:
            logger.debug("[%s] Session not found: %s", self.config.tool_name, session_id)
            return None

        try:
            entry = self._read_entry(active)
            record = self._decode(active, entry)
        except SessionCorrupt as e:
            logger.warning("[%s] Removing corrupt session %s: %s", self.config.tool_name, session_id, e)
            active.unlink(missing_ok=True)
            return None
        except OSError as e:
            logger.warning("[%s] Failed to read session %s: %s", self.config.tool_name, session_id, e)
            return None

        now = _now()
        if entry.is_expired(now):
            active.unlink(missing_ok=True)
            logger.debug("[%s] Session expired and deleted: %s", self.config.tool_name, session_id)
            self.clean_expired()
            return None

        record.last_accessed_at = now
        if self.config.eviction_policy == "lru" or active != path:
            entry.data = record.to_dict()
            entry.timestamp = now
            self._write_entry(path, entry)
        if active != path:
            active.unlink(missing_ok=True)
            logger.debug("[%s] Migrated legacy session: %s", self.config.tool_name, session_id)

        logger.debug("[%s] Loaded session: %s", self.config.tool_name, session_id)
        return record

    def list_sessions(self) -> list[RecordT]:
        self._ensure_dir()
        now = _now()
        records = []
        for path in self._files():
            try:
                entry = self._read_entry(path)
                if entry.is_expired(now):
                    continue
                records.append(self._decode(path, entry))
            except (SessionCorrupt, OSError) as e:
                logger.debug("[%s] Skipping unreadable session file %s: %s", self.config.tool_name, path.name, e)
        return records

    def delete(self, session_id: str) -> bool:
        path = self._path(session_id)
        try:
            path.unlink()
        except FileNotFoundError:
            logger.debug("[%s] Session not found for deletion: %s", self.config.tool_name, session_id)
            return False
        logger.debug("[%s] Deleted session: %s", self.config.tool_name, session_id)
        return True

    def clean_expired(self) -> int:
        """Delete expired and unreadable records. Returns how many were removed."""
        now = _now()
        removed = 0
        for path in self._files():
            try:
                expired = self._read_entry(path).is_expired(now)
            except (SessionCorrupt, OSError):
                expired = True
            if expired:
                path.unlink(missing_ok=True)
                removed += 1
        if removed:
            logger.debug("[%s] Cleaned %d expired session(s)", self.config.tool_name, removed)
        return removed

    def stats(self) -> dict:
        self._ensure_dir()
        return {
            "tool_name": self.config.tool_name,
            "session_count": self._count(),
            "ttl_seconds": self.config.ttl_seconds,
            "max_sessions": self.config.max_sessions,
            "eviction_policy": self.config.eviction_policy,
            "cache_dir": str(self.cache_dir),
        }

    # ------------------------------------------------------------------ #
    # Internals                                                            #
    # ------------------------------------------------------------------ #

    def _ensure_dir(self) -> None:
        if self._initialized:
            return
        with self._init_lock:
            if self._initialized:
                return
            try:
                self.cache_dir.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                logger.error("[%s] Failed to create session directory %s: %s", self.config.tool_name, self.cache_dir, e)
                raise SessionDirectoryInitFailure(f"Session directory initialization failed: {e}") from e
            self._initialized = True

    def _path(self, session_id: str) -> Path:
        return self.cache_dir / f"{sanitize_session_id(session_id)}.json"

    def _files(self) -> list[Path]:
        try:
            return [self.cache_dir / name for name in os.listdir(self.cache_dir) if name.endswith(".json")]
        except FileNotFoundError:
            return []

    def _count(self) -> int:
        return len(self._files())

    @staticmethod
    def _read_entry(path: Path) -> CacheEntry:
        raw = path.read_bytes()
        try:
            return CacheEntry.from_dict(json.loads(raw.decode("utf-8")))
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            # ValueError covers both JSONDecodeError and UnicodeDecodeError.
            raise SessionCorrupt(f"{path.name}: {e}") from e

    def _decode(self, path: Path, entry: CacheEntry) -> RecordT:
        try:
            return self.record_type.from_dict(entry.data)
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise SessionCorrupt(f"{path.name}: {e}") from e

    @staticmethod
    def _write_entry(path: Path, entry: CacheEntry) -> None:
        fd, tmp_name = tempfile.mkstemp(dir=str(path.parent), prefix=".tmp-", suffix=".part")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as tmp:
                json.dump(entry.to_dict(), tmp, indent=2)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def _enforce_limit(self) -> None:
        key = "last_accessed_at" if self.config.eviction_policy == "lru" else "created_at"
        candidates = []
        for path in self._files():
            try:
                stamp = float(self._read_entry(path).data.get(key, 0.0))
            except (SessionCorrupt, OSError, TypeError, ValueError):
                stamp = float("-inf")  # unreadable records go first
            candidates.append((stamp, path))

        excess = len(candidates) - self.config.max_sessions
        if excess <= 0:
            return
        # sort() is stable, so equal timestamps keep enumeration order.
        candidates.sort(key=lambda c: c[0])
        for _, path in candidates[:excess]:
            path.unlink(missing_ok=True)
        logger.debug("[%s] Evicted %d session(s) (%s policy)", self.config.tool_name, excess, self.config.eviction_policy)
