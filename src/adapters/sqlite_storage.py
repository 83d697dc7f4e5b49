"""SQLite storage adapter.

Implements the core DedupeStorePort using a simple SQLite database. The file
is the only durability boundary against duplicate notifications across
restarts, so every write is committed before the call returns.
"""

from __future__ import annotations

import sqlite3
from datetime import datetime, timezone
from typing import Tuple

from core.errors import PersistenceError
from core.models import DedupeEntry


class SQLiteDedupeStore:
    """Thin SQLite wrapper that satisfies the DedupeStorePort contract."""

    def __init__(self, db_path: str, timeout_seconds: float = 10.0) -> None:
        self._db_path = db_path
        self._timeout = timeout_seconds

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path, timeout=self._timeout)
        conn.row_factory = sqlite3.Row
        return conn

    def init_db(self) -> None:
        """Create tables if they do not exist.

        Tables:
        - projects: one row per ever-qualified project id
        """

        try:
            with self._connect() as conn:
                # Fields:
                # - project_id: feed project id (PRIMARY KEY, so at most one row)
                # - notified: 0 until a send is confirmed, then 1 forever
                # - first_seen: when the project first qualified, for debugging
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS projects (
                        project_id INTEGER PRIMARY KEY,
                        notified INTEGER NOT NULL DEFAULT 0,
                        first_seen TIMESTAMP NOT NULL
                    )
                    """
                )
        except sqlite3.Error as exc:
            raise PersistenceError(f"Cannot initialise dedupe store at {self._db_path}: {exc}") from exc

    def find_or_create(self, candidate_id: int) -> Tuple[DedupeEntry, bool]:
        """Return the entry for a project id, inserting it if missing.

        The insert and the read share one transaction, so concurrent callers
        never see two rows or a half-created one.
        """

        now = datetime.now(timezone.utc)
        try:
            with self._connect() as conn:
                cur = conn.execute(
                    """
                    INSERT OR IGNORE INTO projects (project_id, notified, first_seen)
                    VALUES (?, 0, ?)
                    """,
                    (candidate_id, now.isoformat()),
                )
                created = cur.rowcount == 1
                row = conn.execute(
                    "SELECT notified FROM projects WHERE project_id = ?",
                    (candidate_id,),
                ).fetchone()
        except sqlite3.Error as exc:
            raise PersistenceError(f"find_or_create({candidate_id}) failed: {exc}") from exc
        return DedupeEntry(candidate_id=candidate_id, notified=bool(row["notified"])), created

    def mark_notified(self, candidate_id: int) -> None:
        """Set notified=1 for a project id; safe to call more than once."""

        now = datetime.now(timezone.utc)
        try:
            with self._connect() as conn:
                conn.execute(
                    """
                    INSERT INTO projects (project_id, notified, first_seen)
                    VALUES (?, 1, ?)
                    ON CONFLICT(project_id) DO UPDATE SET notified = 1
                    """,
                    (candidate_id, now.isoformat()),
                )
        except sqlite3.Error as exc:
            raise PersistenceError(f"mark_notified({candidate_id}) failed: {exc}") from exc

    def count_notified(self) -> int:
        """Return how many projects have been reported so far."""

        try:
            with self._connect() as conn:
                row = conn.execute("SELECT COUNT(*) AS total FROM projects WHERE notified = 1").fetchone()
        except sqlite3.Error as exc:
            raise PersistenceError(f"count_notified failed: {exc}") from exc
        return int(row["total"])
