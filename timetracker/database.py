"""Durable key/value storage backed by SQLite"""

import json
import logging
import sqlite3
import time
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from .errors import PersistenceError

logger = logging.getLogger(__name__)

# Stored keys
ENTRIES_KEY = 'timeEntries'
CURRENT_SESSION_KEY = 'currentSession'
METADATA_KEY = 'metadata'


class Database:
    """SQLite key/value store with retry logic for a locked database

    Values are whole JSON documents: a get reads the full value and a set
    replaces it. Setting a key to None removes it.
    """

    def __init__(self, db_path: Path, max_retries: int = 3):
        self.db_path = Path(db_path)
        self.max_retries = max_retries
        self._ensure_initialized()

    def _ensure_initialized(self):
        """Ensure database directory exists and schema is created"""
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise PersistenceError(f"Cannot create data directory {self.db_path.parent}: {e}") from e
        self._run(lambda conn: conn.execute("""
            CREATE TABLE IF NOT EXISTS store (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """))

    @contextmanager
    def get_connection(self):
        """
        Get a database connection in autocommit mode

        Yields:
            sqlite3.Connection: Database connection
        """
        conn = sqlite3.connect(
            self.db_path,
            timeout=10.0,
            isolation_level=None  # Autocommit mode
        )
        try:
            yield conn
        finally:
            conn.close()

    def _run(self, operation: Callable[[sqlite3.Connection], Any], key: Optional[str] = None) -> Any:
        """Run an operation on a fresh connection, retrying while the database is locked"""
        last_error = None

        for attempt in range(self.max_retries):
            try:
                with self.get_connection() as conn:
                    return operation(conn)
            except sqlite3.OperationalError as e:
                last_error = e
                if "locked" in str(e).lower() and attempt < self.max_retries - 1:
                    # Exponential backoff
                    wait_time = (2 ** attempt) * 0.1
                    logger.debug(f"Database locked, retrying in {wait_time:.1f}s")
                    time.sleep(wait_time)
                    continue
                break
            except sqlite3.Error as e:
                last_error = e
                break

        logger.error(f"Storage operation failed on {self.db_path}: {last_error}")
        raise PersistenceError(f"Storage operation failed: {last_error}", key=key) from last_error

    def get(self, key: str, default: Any = None) -> Any:
        """Read the full value stored under key"""
        value = self._run(lambda conn: self._read(conn, key), key=key)
        return default if value is None else value

    def set(self, key: str, value: Any):
        """Replace the value stored under key (None deletes it)"""
        self.set_many({key: value})

    def delete(self, key: str):
        """Remove key if present"""
        self.set_many({key: None})

    def set_many(self, values: Dict[str, Any]):
        """Write several keys as a single transaction"""
        self._transaction([], lambda current: values, ", ".join(values))

    def update(
        self,
        keys: List[str],
        compute: Callable[[Dict[str, Any]], Dict[str, Any]]
    ) -> Dict[str, Any]:
        """
        Read, recompute and write keys inside one write transaction

        The transaction takes the write lock before reading, so a writer in
        another process cannot slip in between the read and the write.

        Args:
            keys: Keys to read; missing keys are passed as None
            compute: Receives {key: current value} and returns the values
                to write (None deletes). It may run again on a locked retry.

        Returns:
            The values that were written
        """
        return self._transaction(keys, compute, ", ".join(keys))

    def _transaction(
        self,
        keys: List[str],
        compute: Callable[[Dict[str, Any]], Dict[str, Any]],
        label: str
    ) -> Dict[str, Any]:
        def transact(conn: sqlite3.Connection) -> Dict[str, Any]:
            conn.execute("BEGIN IMMEDIATE")
            try:
                current = {key: self._read(conn, key) for key in keys}
                values = compute(current)
                self._write(conn, values)
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")
            return values

        return self._run(transact, key=label)

    def _read(self, conn: sqlite3.Connection, key: str) -> Any:
        row = conn.execute("SELECT value FROM store WHERE key = ?", (key,)).fetchone()
        if row is None:
            return None
        try:
            return json.loads(row[0])
        except json.JSONDecodeError as e:
            raise PersistenceError(f"Corrupt value stored under {key!r}: {e}", key=key) from e

    def _write(self, conn: sqlite3.Connection, values: Dict[str, Any]):
        now = datetime.now().isoformat()
        try:
            encoded = {
                key: json.dumps(value) if value is not None else None
                for key, value in values.items()
            }
        except (TypeError, ValueError) as e:
            raise PersistenceError(f"Value is not serializable: {e}") from e

        for key, value in encoded.items():
            if value is None:
                conn.execute("DELETE FROM store WHERE key = ?", (key,))
            else:
                conn.execute("""
                    INSERT INTO store (key, value, updated_at) VALUES (?, ?, ?)
                    ON CONFLICT(key) DO UPDATE SET value = excluded.value,
                                                   updated_at = excluded.updated_at
                """, (key, value, now))
