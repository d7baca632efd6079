"""
Device-scoped key-value storage.

A string-to-string store backed by a single SQLite table, playing the role
browser local storage plays for the public form: submissions are parked
here before delivery, and admin sessions live here. Keys are namespaced by
prefix (``voter_submission_``, ``voters_backup_``, ``adminSession_``).

Every sqlite3 failure surfaces as ``StorageError`` so callers can treat the
store as a best-effort safety net.
"""

from __future__ import annotations

import sqlite3
import threading
from datetime import datetime, timezone
from pathlib import Path

from utils.errors import StorageError

_SCHEMA = """
CREATE TABLE IF NOT EXISTS kv (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    updated_at TEXT NOT NULL
)
"""


class LocalStorage:
    """Thread-safe key-value string storage in one SQLite file."""

    def __init__(self, path: Path | str = ":memory:") -> None:
        self.path = str(path)
        self._lock = threading.Lock()
        try:
            self._conn = self._make_conn()
        except sqlite3.Error as exc:
            raise StorageError(f"Cannot open local storage at {self.path}: {exc}") from exc

    def _make_conn(self) -> sqlite3.Connection:
        if self.path != ":memory:":
            Path(self.path).parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(self.path, check_same_thread=False, timeout=10)
        conn.row_factory = sqlite3.Row
        if self.path != ":memory:":
            conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA synchronous=NORMAL")
        conn.execute(_SCHEMA)
        conn.commit()
        return conn

    def _run(self, sql: str, params: tuple = ()) -> list[sqlite3.Row]:
        with self._lock:
            try:
                cur = self._conn.execute(sql, params)
                rows = cur.fetchall()
                self._conn.commit()
                return rows
            except (sqlite3.Error, AttributeError) as exc:
                raise StorageError(f"Local storage failure: {exc}") from exc

    def get_item(self, key: str) -> str | None:
        rows = self._run("SELECT value FROM kv WHERE key = ?", (key,))
        return rows[0]["value"] if rows else None

    def set_item(self, key: str, value: str) -> None:
        now = datetime.now(timezone.utc).isoformat()
        self._run(
            "INSERT INTO kv (key, value, updated_at) VALUES (?, ?, ?) "
            "ON CONFLICT(key) DO UPDATE SET value = excluded.value, "
            "updated_at = excluded.updated_at",
            (key, value, now),
        )

    def remove_item(self, key: str) -> None:
        self._run("DELETE FROM kv WHERE key = ?", (key,))

    def keys(self, prefix: str | None = None) -> list[str]:
        """Return keys in insertion-independent sorted order."""
        if prefix is None:
            rows = self._run("SELECT key FROM kv ORDER BY key")
        else:
            escaped = prefix.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
            rows = self._run(
                "SELECT key FROM kv WHERE key LIKE ? ESCAPE '\\' ORDER BY key",
                (escaped + "%",),
            )
        return [r["key"] for r in rows]

    def __len__(self) -> int:
        return self._run("SELECT COUNT(*) AS n FROM kv")[0]["n"]

    def close(self) -> None:
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None
