"""
Durable key/value storage backed by SQLite.

Values are JSON-serialized and every write replaces the whole value for
its key in a single transaction, so a failed write leaves the previous
value intact.
"""

import asyncio
import json
import sqlite3
from pathlib import Path
from typing import Any, Optional

from docsync.config.user_config import get_db_path


KV_TABLE = "kv_store"

# Well-known keys
DOCUMENTS_KEY = "documents"
HISTORY_KEY = "history"
RETRY_QUEUE_KEY = "retry_queue"
TOKEN_KEY = "github_token"
REPO_KEY = "github_repo"


class LocalStore:
    """
    Async key/value store over a local SQLite database.

    get() returns None for keys that were never written, which callers
    must treat differently from an empty collection.
    """

    def __init__(self, db_path: Optional[Path] = None):
        """
        Initialize store.

        Args:
            db_path: Path to database (default: docsync.db in app data dir)
        """
        self.db_path = db_path or get_db_path()
        self._initialized = False

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, timeout=30.0)
        if not self._initialized:
            conn.execute(f"""
                CREATE TABLE IF NOT EXISTS {KV_TABLE} (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at TEXT DEFAULT (datetime('now'))
                )
            """)
            conn.commit()
            self._initialized = True
        return conn

    def _get(self, key: str) -> Any:
        conn = self._connect()
        try:
            cursor = conn.cursor()
            cursor.execute(f"SELECT value FROM {KV_TABLE} WHERE key = ?", (key,))
            row = cursor.fetchone()
            return json.loads(row[0]) if row else None
        finally:
            conn.close()

    def _set(self, key: str, value: Any) -> None:
        payload = json.dumps(value, ensure_ascii=False)
        conn = self._connect()
        try:
            with conn:
                conn.execute(f"""
                    INSERT OR REPLACE INTO {KV_TABLE} (key, value, updated_at)
                    VALUES (?, ?, datetime('now'))
                """, (key, payload))
        finally:
            conn.close()

    def _remove(self, key: str) -> None:
        conn = self._connect()
        try:
            with conn:
                conn.execute(f"DELETE FROM {KV_TABLE} WHERE key = ?", (key,))
        finally:
            conn.close()

    async def get(self, key: str) -> Any:
        """
        Read a value.

        Args:
            key: Storage key

        Returns:
            Deserialized value, or None if the key is absent
        """
        return await asyncio.to_thread(self._get, key)

    async def set(self, key: str, value: Any) -> None:
        """
        Replace the value stored under key.

        Args:
            key: Storage key
            value: JSON-serializable value

        Raises:
            TypeError: If value is not JSON-serializable
            sqlite3.Error: If the write fails
        """
        await asyncio.to_thread(self._set, key, value)

    async def remove(self, key: str) -> None:
        """Delete a key (no-op if absent)."""
        await asyncio.to_thread(self._remove, key)
