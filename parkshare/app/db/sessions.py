from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator, Optional

from ..core.security import decrypt_text, encrypt_text, encryption_enabled


SESSION_KEY = "auth.session"


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class SQLiteSessionStore:
    """Small key/value store for client state that must survive restarts.

    Values are Fernet-encrypted when SESSION_ENCRYPTION_KEY is configured.
    """

    def __init__(self, db_path: Path):
        self.db_path = db_path
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init()

    @contextmanager
    def _conn(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(str(self.db_path))
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        finally:
            conn.close()

    def _init(self) -> None:
        with self._conn() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS kv (
                  key TEXT PRIMARY KEY,
                  value TEXT NOT NULL,
                  encrypted INTEGER NOT NULL DEFAULT 0,
                  updated_at TEXT NOT NULL
                )
                """
            )
            conn.commit()

    def set_item(self, key: str, value: str) -> None:
        encrypted = encryption_enabled()
        stored = encrypt_text(value) if encrypted else value
        with self._conn() as conn:
            conn.execute(
                """
                INSERT INTO kv(key, value, encrypted, updated_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET value=excluded.value, encrypted=excluded.encrypted,
                  updated_at=excluded.updated_at
                """,
                (key, stored, int(encrypted), _now_iso()),
            )
            conn.commit()

    def get_item(self, key: str) -> Optional[str]:
        with self._conn() as conn:
            row = conn.execute("SELECT value, encrypted FROM kv WHERE key = ?", (key,)).fetchone()
            if row is None:
                return None
            value = str(row["value"])
            return decrypt_text(value) if row["encrypted"] else value

    def remove_item(self, key: str) -> None:
        with self._conn() as conn:
            conn.execute("DELETE FROM kv WHERE key = ?", (key,))
            conn.commit()
