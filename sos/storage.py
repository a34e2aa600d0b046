"""
Local Storage - SQLite-backed key-value text store that survives restarts.

Each value is written whole in a single transaction, so a crash mid-write
leaves the previous value intact.
"""

import sqlite3
import threading
import time
import logging
from typing import Optional

from errors import StorageError

log = logging.getLogger(__name__)


class LocalStorage:
    """
    Minimal persistent string store (get/set/remove by key).

    Usage:
        storage = LocalStorage("offline_queue.db")
        storage.set_item("key", "[]")
        storage.get_item("key")
    """

    DEFAULT_DB_PATH = "offline_queue.db"

    def __init__(self, db_path: str = None):
        self.db_path = db_path or self.DEFAULT_DB_PATH
        self._lock = threading.RLock()
        self._init_db()

    def _get_connection(self) -> sqlite3.Connection:
        return sqlite3.connect(self.db_path, timeout=5.0, check_same_thread=False)

    def _init_db(self):
        try:
            conn = self._get_connection()
            try:
                conn.execute("""
                    CREATE TABLE IF NOT EXISTS kv_store (
                        key TEXT PRIMARY KEY,
                        value TEXT NOT NULL,
                        updated_at REAL
                    )
                """)
                conn.commit()
            finally:
                conn.close()
        except sqlite3.Error as e:
            # The store may become usable later; reads/writes report it then
            log.error(f"Failed to initialize local storage at {self.db_path}: {e}")

    def get_item(self, key: str) -> Optional[str]:
        """
        Read a value.

        Raises:
            StorageError: if the database cannot be read
        """
        with self._lock:
            try:
                conn = self._get_connection()
                try:
                    row = conn.execute(
                        "SELECT value FROM kv_store WHERE key = ?", (key,)
                    ).fetchone()
                finally:
                    conn.close()
            except sqlite3.Error as e:
                raise StorageError(f"Local storage read failed: {e}") from e
        return row[0] if row else None

    def set_item(self, key: str, value: str):
        """Replace the whole value for `key` atomically."""
        with self._lock:
            try:
                conn = self._get_connection()
                try:
                    with conn:
                        conn.execute(
                            """INSERT OR REPLACE INTO kv_store (key, value, updated_at)
                               VALUES (?, ?, ?)""",
                            (key, value, time.time())
                        )
                finally:
                    conn.close()
            except sqlite3.Error as e:
                raise StorageError(f"Local storage write failed: {e}") from e

    def remove_item(self, key: str):
        with self._lock:
            try:
                conn = self._get_connection()
                try:
                    with conn:
                        conn.execute("DELETE FROM kv_store WHERE key = ?", (key,))
                finally:
                    conn.close()
            except sqlite3.Error as e:
                raise StorageError(f"Local storage delete failed: {e}") from e
