"""Tests for the local conversation cache."""

import sqlite3
from pathlib import Path

import pytest

from chat_siphon.models import CachedCapture
from chat_siphon.sync.cache import ConversationCache

KEY_A = "https://chatgpt.com/c/a"
KEY_B = "https://claude.ai/chat/b"


@pytest.fixture
def temp_db_path(tmp_path: Path) -> Path:
    return tmp_path / "state" / "capture.db"


@pytest.fixture
def cache(temp_db_path: Path) -> ConversationCache:
    c = ConversationCache(temp_db_path)
    yield c
    c.close()


def make_capture(capture_id: str, url: str = KEY_A, **data: object) -> CachedCapture:
    return CachedCapture(
        id=capture_id,
        platform="chatgpt",
        url=url,
        method="DOM",
        captured_at="2026-01-01T00:00:00+00:00",
        source_channel="dom",
        data=data or {"n": capture_id},
    )


class TestConversationCacheInit:
    """Tests for ConversationCache initialization."""

    def test_creates_parent_directories(self, tmp_path: Path) -> None:
        db_path = tmp_path / "nested" / "dirs" / "capture.db"
        with ConversationCache(db_path):
            assert db_path.exists()

    def test_creates_tables(self, cache: ConversationCache, temp_db_path: Path) -> None:
        conn = sqlite3.connect(temp_db_path)
        try:
            names = {
                row[0]
                for row in conn.execute("SELECT name FROM sqlite_master WHERE type='table'")
            }
        finally:
            conn.close()
        assert {"cached_captures", "conversations"} <= names


class TestAppendAndGet:
    """Tests for append and get."""

    def test_get_unknown_key(self, cache: ConversationCache) -> None:
        assert cache.get(KEY_A) is None

    def test_append_assigns_sequence(self, cache: ConversationCache) -> None:
        stored = cache.append(KEY_A, [make_capture("1"), make_capture("2")])
        assert [c.id for c in stored] == ["1", "2"]
        assert stored[0].seq < stored[1].seq

    def test_append_empty_batch(self, cache: ConversationCache) -> None:
        assert cache.append(KEY_A, []) == []
        assert cache.get(KEY_A) is None

    def test_get_preserves_order_and_data(self, cache: ConversationCache) -> None:
        cache.append(KEY_A, [make_capture("1", text="first")])
        cache.append(KEY_A, [make_capture("2", text="second")])

        entry = cache.get(KEY_A)
        assert entry.key == KEY_A
        assert [c.id for c in entry.captures] == ["1", "2"]
        assert entry.captures[0].data == {"text": "first"}
        assert entry.captures[0].source_channel == "dom"
        assert entry.last_update_at is not None

    def test_keys_are_separate(self, cache: ConversationCache) -> None:
        cache.append(KEY_A, [make_capture("1")])
        cache.append(KEY_B, [make_capture("2", url=KEY_B)])
        assert [c.id for c in cache.get(KEY_A).captures] == ["1"]
        assert [c.id for c in cache.get(KEY_B).captures] == ["2"]

    def test_persists_across_instances(self, temp_db_path: Path) -> None:
        with ConversationCache(temp_db_path) as first:
            first.append(KEY_A, [make_capture("1")])
        with ConversationCache(temp_db_path) as second:
            assert [c.id for c in second.get(KEY_A).captures] == ["1"]


class TestRemoveAndClear:
    """Tests for removal."""

    def test_remove_only_given_batches(self, cache: ConversationCache) -> None:
        stored = cache.append(KEY_A, [make_capture("1"), make_capture("2")])
        cache.append(KEY_A, [make_capture("3")])

        removed = cache.remove(KEY_A, [c.seq for c in stored])

        assert removed == 2
        assert [c.id for c in cache.get(KEY_A).captures] == ["3"]

    def test_remove_ignores_other_keys(self, cache: ConversationCache) -> None:
        stored = cache.append(KEY_A, [make_capture("1")])
        assert cache.remove(KEY_B, [stored[0].seq]) == 0
        assert len(cache.get(KEY_A).captures) == 1

    def test_remove_nothing(self, cache: ConversationCache) -> None:
        assert cache.remove(KEY_A, []) == 0

    def test_clear_empties_entry(self, cache: ConversationCache) -> None:
        cache.append(KEY_A, [make_capture("1"), make_capture("2")])
        assert cache.clear(KEY_A) == 2

        entry = cache.get(KEY_A)
        assert entry is not None
        assert entry.is_empty

    def test_clear_all(self, cache: ConversationCache) -> None:
        cache.append(KEY_A, [make_capture("1")])
        cache.append(KEY_B, [make_capture("2", url=KEY_B)])
        assert cache.clear_all() == 2
        assert cache.pending_count() == 0
        assert cache.get(KEY_A).is_empty


class TestPending:
    """Tests for pending queries and snapshot."""

    def test_pending_keys_in_first_capture_order(self, cache: ConversationCache) -> None:
        cache.append(KEY_B, [make_capture("1", url=KEY_B)])
        cache.append(KEY_A, [make_capture("2")])
        cache.append(KEY_B, [make_capture("3", url=KEY_B)])
        assert cache.pending_keys() == [KEY_B, KEY_A]

    def test_empty_entries_not_pending(self, cache: ConversationCache) -> None:
        cache.append(KEY_A, [make_capture("1")])
        cache.clear(KEY_A)
        assert cache.pending_keys() == []

    def test_pending_count(self, cache: ConversationCache) -> None:
        cache.append(KEY_A, [make_capture("1"), make_capture("2")])
        cache.append(KEY_B, [make_capture("3", url=KEY_B)])
        assert cache.pending_count() == 3

    def test_snapshot(self, cache: ConversationCache) -> None:
        cache.append(KEY_A, [make_capture("1")])
        cache.append(KEY_B, [make_capture("2", url=KEY_B)])
        cache.clear(KEY_B)

        snapshot = cache.snapshot()
        assert set(snapshot) == {KEY_A, KEY_B}
        assert len(snapshot[KEY_A].captures) == 1
        assert snapshot[KEY_B].is_empty
