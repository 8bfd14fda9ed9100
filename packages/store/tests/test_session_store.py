"""Tests for clibridge-store implementations."""

from __future__ import annotations

import dataclasses
import itertools
import json

import pytest

from clibridge_store.errors import SessionDirectoryInitFailure
from clibridge_store.file import FileSessionStore, SessionStoreConfig, sanitize_session_id
from clibridge_store.models import AskSession, BrainstormSession, CacheEntry, ReviewComment, ReviewSession
from clibridge_store.noop import NoOpSessionStore

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_store(tmp_path, record_type=AskSession, **kwargs) -> FileSessionStore:
    config = SessionStoreConfig(tool_name=kwargs.pop("tool_name", "ask"), base_dir=tmp_path / "sessions", **kwargs)
    return FileSessionStore(config, record_type)


def _make_session(session_id="s1", rounds=1) -> AskSession:
    session = AskSession(session_id=session_id)
    for i in range(rounds):
        session.add_round(f"question {i}", f"answer {i}", "gemini-2.5-pro", "gemini", context_files=["a.py"])
    return session


def _fake_clock(mocker, start=1000.0):
    clock = [start]
    mocker.patch("clibridge_store.file._now", side_effect=lambda: clock[0])
    return clock


# ---------------------------------------------------------------------------
# NoOpSessionStore
# ---------------------------------------------------------------------------


class TestNoOpSessionStore:
    def test_save_does_not_raise(self):
        NoOpSessionStore("ask").save("s1", _make_session())  # must not raise

    def test_load_returns_none(self):
        store = NoOpSessionStore("ask")
        store.save("s1", _make_session())
        assert store.load("s1") is None

    def test_list_and_delete(self):
        store = NoOpSessionStore()
        assert store.list_sessions() == []
        assert store.delete("s1") is False
        assert store.clean_expired() == 0
        assert store.stats() == {}
        store.close()


# ---------------------------------------------------------------------------
# FileSessionStore
# ---------------------------------------------------------------------------


class TestFileSessionStoreBasics:
    def test_save_and_load_round_trip(self, tmp_path, mocker):
        clock = _fake_clock(mocker)
        store = _make_store(tmp_path)
        session = _make_session()
        store.save("s1", session)

        clock[0] = 1050.0
        loaded = store.load("s1")
        assert loaded == dataclasses.replace(session, last_accessed_at=1050.0)

    def test_file_layout_and_envelope(self, tmp_path, mocker):
        _fake_clock(mocker, 1000.0)
        store = _make_store(tmp_path, ttl_seconds=60)
        store.save("s1", _make_session())

        path = tmp_path / "sessions" / "ask" / "s1.json"
        raw = json.loads(path.read_text())
        assert raw["timestamp"] == 1000.0
        assert raw["expiry_time"] == 1060.0
        assert raw["data"]["session_id"] == "s1"
        assert not list(path.parent.glob(".tmp-*"))

    def test_created_at_preserved_across_saves(self, tmp_path, mocker):
        clock = _fake_clock(mocker, 100.0)
        store = _make_store(tmp_path)
        store.save("s1", _make_session())

        clock[0] = 150.0
        session = store.load("s1")
        session.add_round("again", "ok", "gemini-2.5-pro", "gemini")
        clock[0] = 200.0
        store.save("s1", session)

        clock[0] = 210.0
        reloaded = store.load("s1")
        assert reloaded.created_at == 100.0
        assert reloaded.last_accessed_at == 210.0
        assert reloaded.total_rounds == 2

    def test_missing_session(self, tmp_path):
        assert _make_store(tmp_path).load("nope") is None

    def test_review_records_round_trip(self, tmp_path):
        store = _make_store(tmp_path, record_type=ReviewSession, tool_name="review-code")
        session = ReviewSession(session_id="review-main-abc")
        session.all_comments.append(
            ReviewComment(id="cmt-1", file_pattern="a.py", severity="critical", comment="x", round_generated=1, line_range=(3, 5))
        )
        store.save("review-main-abc", session)
        loaded = store.load("review-main-abc")
        assert loaded.all_comments[0].line_range == (3, 5)

    def test_delete(self, tmp_path):
        store = _make_store(tmp_path)
        store.save("s1", _make_session())
        assert store.delete("s1") is True
        assert store.delete("s1") is False
        assert store.load("s1") is None

    def test_list_sessions(self, tmp_path):
        store = _make_store(tmp_path)
        store.save("s1", _make_session("s1"))
        store.save("s2", _make_session("s2"))
        assert sorted(s.session_id for s in store.list_sessions()) == ["s1", "s2"]

    def test_list_sessions_skips_expired_and_corrupt(self, tmp_path, mocker):
        clock = _fake_clock(mocker)
        store = _make_store(tmp_path, ttl_seconds=10)
        store.save("old", _make_session("old"))
        clock[0] += 100
        store.save("new", _make_session("new"))
        (store.cache_dir / "broken.json").write_text("{not json")
        assert [s.session_id for s in store.list_sessions()] == ["new"]

    def test_stats(self, tmp_path):
        store = _make_store(tmp_path, max_sessions=7, eviction_policy="fifo")
        store.save("s1", _make_session())
        stats = store.stats()
        assert stats["tool_name"] == "ask"
        assert stats["session_count"] == 1
        assert stats["max_sessions"] == 7
        assert stats["eviction_policy"] == "fifo"
        assert stats["cache_dir"] == str(tmp_path / "sessions" / "ask")


class TestFileSessionStoreExpiry:
    def test_expired_session_is_deleted_on_load(self, tmp_path, mocker):
        clock = _fake_clock(mocker)
        store = _make_store(tmp_path, ttl_seconds=10)
        store.save("s1", _make_session())

        clock[0] += 11
        assert store.load("s1") is None
        assert not (store.cache_dir / "s1.json").exists()

    def test_not_yet_expired(self, tmp_path, mocker):
        clock = _fake_clock(mocker)
        store = _make_store(tmp_path, ttl_seconds=10)
        store.save("s1", _make_session())
        clock[0] += 10
        assert store.load("s1") is not None

    def test_clean_expired_counts_removed(self, tmp_path, mocker):
        clock = _fake_clock(mocker)
        store = _make_store(tmp_path, ttl_seconds=10)
        store.save("a", _make_session("a"))
        store.save("b", _make_session("b"))
        clock[0] += 5
        store.save("c", _make_session("c"))
        clock[0] += 7
        assert store.clean_expired() == 2
        assert [s.session_id for s in store.list_sessions()] == ["c"]

    def test_save_sweeps_expired_near_capacity(self, tmp_path, mocker):
        clock = _fake_clock(mocker)
        store = _make_store(tmp_path, ttl_seconds=10, max_sessions=5)
        for sid in ("a", "b", "c", "d"):
            store.save(sid, _make_session(sid))
        clock[0] += 60
        store.save("e", _make_session("e"))
        assert sorted(p.name for p in store.cache_dir.glob("*.json")) == ["e.json"]


class TestFileSessionStoreEviction:
    def test_lru_keeps_most_recently_used(self, tmp_path, mocker):
        mocker.patch("clibridge_store.file._now", side_effect=itertools.count(1000))
        store = _make_store(tmp_path, max_sessions=3, eviction_policy="lru")
        for sid in ("a", "b", "c"):
            store.save(sid, _make_session(sid))
        assert store.load("a") is not None

        store.save("d", _make_session("d"))
        assert store.load("b") is None
        assert all(store.load(sid) is not None for sid in ("a", "c", "d"))

    def test_fifo_evicts_oldest_created(self, tmp_path, mocker):
        mocker.patch("clibridge_store.file._now", side_effect=itertools.count(1000))
        store = _make_store(tmp_path, max_sessions=3, eviction_policy="fifo")
        for sid in ("a", "b", "c"):
            store.save(sid, _make_session(sid))
        assert store.load("a") is not None

        store.save("d", _make_session("d"))
        assert store.load("a") is None
        assert all(store.load(sid) is not None for sid in ("b", "c", "d"))

    def test_count_never_exceeds_max(self, tmp_path, mocker):
        mocker.patch("clibridge_store.file._now", side_effect=itertools.count(1000))
        store = _make_store(tmp_path, max_sessions=2)
        for i in range(6):
            store.save(f"s{i}", _make_session(f"s{i}"))
        assert store.stats()["session_count"] == 2
        assert sorted(s.session_id for s in store.list_sessions()) == ["s4", "s5"]

    def test_invalid_policy(self, tmp_path):
        with pytest.raises(ValueError):
            SessionStoreConfig(tool_name="ask", base_dir=tmp_path, eviction_policy="random")

    def test_invalid_max_sessions(self, tmp_path):
        with pytest.raises(ValueError):
            SessionStoreConfig(tool_name="ask", base_dir=tmp_path, max_sessions=0)


class TestFileSessionStoreFailures:
    def test_corrupt_file_is_removed(self, tmp_path):
        store = _make_store(tmp_path)
        store.cache_dir.mkdir(parents=True)
        (store.cache_dir / "s1.json").write_text("definitely not json")
        assert store.load("s1") is None
        assert not (store.cache_dir / "s1.json").exists()

    def test_wrong_shape_is_removed(self, tmp_path):
        store = _make_store(tmp_path)
        store.cache_dir.mkdir(parents=True)
        entry = CacheEntry(data={"no_session_id": True}, timestamp=0.0, expiry_time=9e18)
        (store.cache_dir / "s1.json").write_text(json.dumps(entry.to_dict()))
        assert store.load("s1") is None
        assert not (store.cache_dir / "s1.json").exists()

    @pytest.mark.parametrize(
        "record_type, tool_name, data",
        [
            (AskSession, "ask", {"session_id": "s1", "rounds": ["oops"]}),
            (BrainstormSession, "brainstorm", {"session_id": "s1", "refinement_history": ["oops"]}),
            (ReviewSession, "review-code", {"session_id": "s1", "all_comments": ["oops"]}),
        ],
    )
    def test_nested_item_of_wrong_type_is_removed(self, tmp_path, record_type, tool_name, data):
        store = _make_store(tmp_path, record_type=record_type, tool_name=tool_name)
        store.cache_dir.mkdir(parents=True)
        entry = CacheEntry(data=data, timestamp=0.0, expiry_time=9e18)
        (store.cache_dir / "s1.json").write_text(json.dumps(entry.to_dict()))

        assert store.list_sessions() == []
        assert store.load("s1") is None
        assert not (store.cache_dir / "s1.json").exists()

    @pytest.mark.parametrize(
        "record_type, tool_name",
        [(AskSession, "ask"), (BrainstormSession, "brainstorm"), (ReviewSession, "review-code")],
    )
    def test_invalid_utf8_is_removed(self, tmp_path, record_type, tool_name):
        store = _make_store(tmp_path, record_type=record_type, tool_name=tool_name)
        store.cache_dir.mkdir(parents=True)
        (store.cache_dir / "s1.json").write_bytes(b"\xff\xfe\x00garbage")

        assert store.list_sessions() == []
        assert store.load("s1") is None
        assert not (store.cache_dir / "s1.json").exists()

    @pytest.mark.parametrize(
        "record_type, tool_name",
        [(AskSession, "ask"), (BrainstormSession, "brainstorm"), (ReviewSession, "review-code")],
    )
    def test_save_sweeps_unreadable_files(self, tmp_path, record_type, tool_name):
        store = _make_store(tmp_path, record_type=record_type, tool_name=tool_name, max_sessions=1)
        store.cache_dir.mkdir(parents=True)
        (store.cache_dir / "bad.json").write_bytes(b"\xff\xfe\x00garbage")

        store.save("good", record_type(session_id="good"))

        assert not (store.cache_dir / "bad.json").exists()
        assert store.load("good") is not None

    def test_clean_expired_removes_unreadable_files(self, tmp_path):
        store = _make_store(tmp_path)
        store.save("s1", _make_session())
        (store.cache_dir / "binary.json").write_bytes(b"\xff\xfe\x00garbage")
        (store.cache_dir / "text.json").write_text("{not json")

        assert store.clean_expired() == 2
        assert sorted(p.name for p in store.cache_dir.glob("*.json")) == ["s1.json"]

    def test_directory_init_failure(self, tmp_path):
        blocker = tmp_path / "sessions"
        blocker.write_text("a file where a directory should be")
        store = _make_store(tmp_path)
        with pytest.raises(SessionDirectoryInitFailure):
            store.save("s1", _make_session())


class TestLegacyMigration:
    def test_record_moves_from_legacy_directory(self, tmp_path):
        legacy_dir = tmp_path / "legacy" / "ask"
        legacy_dir.mkdir(parents=True)
        session = _make_session("old-one")
        entry = CacheEntry(data=session.to_dict(), timestamp=1.0, expiry_time=9e18)
        (legacy_dir / "old-one.json").write_text(json.dumps(entry.to_dict()))

        store = _make_store(tmp_path, legacy_base_dir=tmp_path / "legacy")
        loaded = store.load("old-one")

        assert loaded is not None
        assert loaded.rounds == session.rounds
        assert (store.cache_dir / "old-one.json").exists()
        assert not (legacy_dir / "old-one.json").exists()

    def test_primary_wins_over_legacy(self, tmp_path):
        legacy_dir = tmp_path / "legacy" / "ask"
        legacy_dir.mkdir(parents=True)
        stale = CacheEntry(data=_make_session("s1", rounds=3).to_dict(), timestamp=1.0, expiry_time=9e18)
        (legacy_dir / "s1.json").write_text(json.dumps(stale.to_dict()))

        store = _make_store(tmp_path, legacy_base_dir=tmp_path / "legacy")
        store.save("s1", _make_session("s1", rounds=1))
        assert store.load("s1").total_rounds == 1


class TestSanitizeSessionId:
    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("review-main-1a2b3c4d", "review-main-1a2b3c4d"),
            ("../../etc/passwd", "etc-passwd"),
            ("a  b//c", "a-b-c"),
            ("---", "session"),
            ("", "session"),
        ],
    )
    def test_sanitize(self, raw, expected):
        assert sanitize_session_id(raw) == expected

    def test_length_capped(self):
        assert len(sanitize_session_id("x" * 500)) == 100

    def test_traversal_ids_stay_inside_cache_dir(self, tmp_path):
        store = _make_store(tmp_path)
        store.save("../../escape", _make_session())
        assert (store.cache_dir / "escape.json").exists()
