"""Local conversation cache with SQLite persistence."""

import json
import sqlite3
import time
from pathlib import Path
from typing import Self

from chat_siphon.logging import get_logger
from chat_siphon.models import CachedCapture, ConversationCacheEntry

logger = get_logger("cache")


class ConversationCache:
    """Append-only store of capture batches keyed by conversation.

    Every mutation commits before returning, so the database never lags
    behind what callers have been told. Appends run in one transaction:
    a batch is stored completely or not at all.
    """

    def __init__(self, db_path: Path) -> None:
        """Initialize the cache with its database path.

        Args:
            db_path: Path to SQLite database file. Parent directories
                     will be created if they don't exist.
        """
        self._db_path = db_path
        db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(db_path)
        self._conn.row_factory = sqlite3.Row
        self.ensure_schema()

    def ensure_schema(self) -> None:
        """Create the cache tables if they don't exist."""
        with self._conn:
            self._conn.execute("""
                CREATE TABLE IF NOT EXISTS cached_captures (
                    seq INTEGER PRIMARY KEY AUTOINCREMENT,
                    conversation_key TEXT NOT NULL,
                    capture_id TEXT NOT NULL,
                    platform TEXT NOT NULL,
                    url TEXT NOT NULL,
                    method TEXT NOT NULL,
                    source_channel TEXT NOT NULL,
                    captured_at TEXT NOT NULL,
                    data TEXT NOT NULL
                )
            """)
            self._conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_cached_captures_key
                ON cached_captures (conversation_key, seq)
            """)
            self._conn.execute("""
                CREATE TABLE IF NOT EXISTS conversations (
                    conversation_key TEXT PRIMARY KEY,
                    last_update_at INTEGER
                )
            """)

    def append(self, key: str, captures: list[CachedCapture]) -> list[CachedCapture]:
        """Append a batch to a conversation.

        Args:
            key: Conversation key
            captures: Batches in capture order

        Returns:
            The stored captures with their cache sequence numbers set
        """
        if not captures:
            return []

        now = int(time.time())
        stored = []
        with self._conn:
            for capture in captures:
                cursor = self._conn.execute(
                    """
                    INSERT INTO cached_captures (
                        conversation_key, capture_id, platform, url, method,
                        source_channel, captured_at, data
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        key,
                        capture.id,
                        capture.platform,
                        capture.url,
                        capture.method,
                        capture.source_channel,
                        capture.captured_at,
                        json.dumps(capture.data),
                    ),
                )
                stored.append(
                    CachedCapture(
                        id=capture.id,
                        platform=capture.platform,
                        url=capture.url,
                        method=capture.method,
                        captured_at=capture.captured_at,
                        source_channel=capture.source_channel,
                        data=capture.data,
                        seq=cursor.lastrowid,
                    )
                )
            self._touch(key, now)

        logger.debug("Cached captures: key=%s count=%d", key, len(stored))
        return stored

    def get(self, key: str) -> ConversationCacheEntry | None:
        """Get a conversation's entry, or None if it was never cached."""
        row = self._conn.execute(
            "SELECT conversation_key, last_update_at FROM conversations WHERE conversation_key = ?",
            (key,),
        ).fetchone()
        if row is None:
            return None
        return ConversationCacheEntry(
            key=key,
            captures=self._captures_for(key),
            last_update_at=row["last_update_at"],
        )

    def remove(self, key: str, seqs: list[int]) -> int:
        """Remove specific batches from a conversation.

        Args:
            key: Conversation key
            seqs: Cache sequence numbers to drop

        Returns:
            Number of batches removed
        """
        if not seqs:
            return 0
        placeholders = ", ".join("?" for _ in seqs)
        with self._conn:
            cursor = self._conn.execute(
                f"""
                DELETE FROM cached_captures
                WHERE conversation_key = ? AND seq IN ({placeholders})
                """,
                [key, *seqs],
            )
            self._touch(key, int(time.time()))
        return cursor.rowcount

    def clear(self, key: str) -> int:
        """Empty a conversation's entry.

        Returns:
            Number of batches removed
        """
        with self._conn:
            cursor = self._conn.execute(
                "DELETE FROM cached_captures WHERE conversation_key = ?",
                (key,),
            )
            self._touch(key, int(time.time()))
        logger.debug("Cleared cache entry: key=%s removed=%d", key, cursor.rowcount)
        return cursor.rowcount

    def clear_all(self) -> int:
        """Empty every entry."""
        with self._conn:
            cursor = self._conn.execute("DELETE FROM cached_captures")
            self._conn.execute("UPDATE conversations SET last_update_at = ?", (int(time.time()),))
        return cursor.rowcount

    def snapshot(self) -> dict[str, ConversationCacheEntry]:
        """All entries keyed by conversation key."""
        rows = self._conn.execute(
            "SELECT conversation_key, last_update_at FROM conversations ORDER BY conversation_key"
        ).fetchall()
        return {
            row["conversation_key"]: ConversationCacheEntry(
                key=row["conversation_key"],
                captures=self._captures_for(row["conversation_key"]),
                last_update_at=row["last_update_at"],
            )
            for row in rows
        }

    def pending_keys(self) -> list[str]:
        """Keys whose entries hold at least one batch, in first-capture order."""
        rows = self._conn.execute(
            """
            SELECT conversation_key, MIN(seq) AS first_seq
            FROM cached_captures
            GROUP BY conversation_key
            ORDER BY first_seq
            """
        ).fetchall()
        return [row["conversation_key"] for row in rows]

    def pending_count(self) -> int:
        """Total batches awaiting upload."""
        return self._conn.execute("SELECT COUNT(*) FROM cached_captures").fetchone()[0]

    def _captures_for(self, key: str) -> list[CachedCapture]:
        cursor = self._conn.execute(
            """
            SELECT seq, capture_id, platform, url, method, source_channel, captured_at, data
            FROM cached_captures
            WHERE conversation_key = ?
            ORDER BY seq
            """,
            (key,),
        )
        return [
            CachedCapture(
                id=row["capture_id"],
                platform=row["platform"],
                url=row["url"],
                method=row["method"],
                captured_at=row["captured_at"],
                source_channel=row["source_channel"],
                data=json.loads(row["data"]),
                seq=row["seq"],
            )
            for row in cursor
        ]

    def _touch(self, key: str, now: int) -> None:
        self._conn.execute(
            """
            INSERT INTO conversations (conversation_key, last_update_at) VALUES (?, ?)
            ON CONFLICT (conversation_key) DO UPDATE SET last_update_at = excluded.last_update_at
            """,
            (key, now),
        )

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()

    def __enter__(self) -> Self:
        """Enter context manager."""
        return self

    def __exit__(self, exc_type: type | None, exc_val: Exception | None, exc_tb: object) -> None:
        """Exit context manager, closing database connection."""
        self.close()
