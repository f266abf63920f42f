"""Persisted capture state: the global enable flag, user identity and open conversations."""

import sqlite3
import time
from pathlib import Path
from typing import Self

from chat_siphon.models import GlobalCaptureState


class CaptureStateStore:
    """Manages GlobalCaptureState and the active conversation set in SQLite.

    Writes are committed immediately so a restart sees the last user action.
    """

    VALID_SETTINGS = {"enabled", "user_identity"}

    def __init__(self, db_path: Path) -> None:
        """Initialize the state store with database path.

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
        """Create the settings and active conversation tables if they don't exist."""
        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS settings (
                name TEXT PRIMARY KEY,
                value TEXT
            )
        """)
        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS active_conversations (
                conversation_key TEXT PRIMARY KEY,
                opened_at INTEGER NOT NULL
            )
        """)
        self._conn.commit()

    def load(self) -> GlobalCaptureState:
        """Read the global capture state (disabled, no identity by default)."""
        rows = self._conn.execute("SELECT name, value FROM settings").fetchall()
        values = {row["name"]: row["value"] for row in rows}
        return GlobalCaptureState(
            enabled=values.get("enabled") == "1",
            user_identity=values.get("user_identity") or None,
        )

    def update(self, **attrs: bool | str | None) -> GlobalCaptureState:
        """Persist one or more global state fields.

        Args:
            **attrs: Fields to update (enabled, user_identity)

        Returns:
            The state after the update
        """
        invalid = set(attrs.keys()) - self.VALID_SETTINGS
        if invalid:
            raise ValueError(f"Invalid attributes: {invalid}")

        for name, value in attrs.items():
            if name == "enabled":
                value = "1" if value else "0"
            self._conn.execute(
                """
                INSERT INTO settings (name, value) VALUES (?, ?)
                ON CONFLICT (name) DO UPDATE SET value = excluded.value
                """,
                (name, value),
            )
        self._conn.commit()
        return self.load()

    def add_active(self, key: str) -> bool:
        """Mark a conversation as open.

        Returns:
            True if it was not already open
        """
        cursor = self._conn.execute(
            "INSERT OR IGNORE INTO active_conversations (conversation_key, opened_at) VALUES (?, ?)",
            (key, int(time.time())),
        )
        self._conn.commit()
        return cursor.rowcount > 0

    def remove_active(self, key: str) -> bool:
        """Mark a conversation as closed.

        Returns:
            True if it was open
        """
        cursor = self._conn.execute(
            "DELETE FROM active_conversations WHERE conversation_key = ?",
            (key,),
        )
        self._conn.commit()
        return cursor.rowcount > 0

    def active_keys(self) -> list[str]:
        """Open conversations, oldest first."""
        cursor = self._conn.execute(
            "SELECT conversation_key FROM active_conversations ORDER BY opened_at, conversation_key"
        )
        return [row["conversation_key"] for row in cursor]

    def clear_active(self) -> None:
        """Forget all open conversations (fresh browser session)."""
        self._conn.execute("DELETE FROM active_conversations")
        self._conn.commit()

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()

    def __enter__(self) -> Self:
        """Enter context manager."""
        return self

    def __exit__(self, exc_type: type | None, exc_val: Exception | None, exc_tb: object) -> None:
        """Exit context manager, closing database connection."""
        self.close()
