# engine/storage.py
"""
Flat string-keyed local storage.

The SQLite store opens a connection per call, so one instance can be
shared by the detail-fetch worker threads.
"""
import os
import sqlite3
import datetime
from typing import Dict, List, Optional

import pytz
from tenacity import (
    RetryError,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from .errors import StorageError
from .logger import get_logger

logger = get_logger(__name__)

DB_PATH = os.getenv("DB_PATH", "/data/shopcrawl.sqlite3")
DB_TIMEOUT = float(os.getenv("DB_TIMEOUT", "5"))


def now_utc_iso() -> str:
    return datetime.datetime.now(tz=pytz.UTC).isoformat()


class MemoryStore:
    """Dict-backed store with the same interface as SqliteStore."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self, prefix: str = "") -> List[str]:
        return sorted(k for k in self._data if k.startswith(prefix))


_retry_locked = retry(
    retry=retry_if_exception_type(sqlite3.OperationalError),
    wait=wait_exponential_jitter(initial=0.05, max=1),
    stop=stop_after_attempt(5),
)


class SqliteStore:
    """Key/value table in a SQLite file."""

    def __init__(self, db_path: str = DB_PATH):
        self.db_path = db_path

    def _connect(self):
        directory = os.path.dirname(self.db_path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        return sqlite3.connect(self.db_path, timeout=DB_TIMEOUT)

    def _run(self, fn, *args):
        try:
            return fn(*args)
        except RetryError as e:
            cause = e.last_attempt.exception()
            logger.error("SQLite store %s still locked after retries: %s", self.db_path, cause)
            raise StorageError(str(cause)) from cause
        except sqlite3.Error as e:
            logger.error("SQLite store %s failed: %s", self.db_path, e)
            raise StorageError(str(e)) from e

    def ensure_db(self) -> None:
        self._run(self._ensure_db)

    @_retry_locked
    def _ensure_db(self) -> None:
        with self._connect() as con:
            con.execute(
                """
                CREATE TABLE IF NOT EXISTS kv (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at TEXT
                )
            """
            )
            con.commit()

    def get(self, key: str) -> Optional[str]:
        return self._run(self._get, key)

    @_retry_locked
    def _get(self, key: str) -> Optional[str]:
        with self._connect() as con:
            row = con.execute("SELECT value FROM kv WHERE key=?", (key,)).fetchone()
        return row[0] if row else None

    def set(self, key: str, value: str) -> None:
        self._run(self._set, key, value)

    @_retry_locked
    def _set(self, key: str, value: str) -> None:
        with self._connect() as con:
            con.execute(
                """
                INSERT INTO kv (key, value, updated_at) VALUES (?,?,?)
                ON CONFLICT(key) DO UPDATE SET
                    value=excluded.value,
                    updated_at=excluded.updated_at
            """,
                (key, value, now_utc_iso()),
            )
            con.commit()

    def delete(self, key: str) -> None:
        self._run(self._delete, key)

    @_retry_locked
    def _delete(self, key: str) -> None:
        with self._connect() as con:
            con.execute("DELETE FROM kv WHERE key=?", (key,))
            con.commit()

    def keys(self, prefix: str = "") -> List[str]:
        return self._run(self._keys, prefix)

    @_retry_locked
    def _keys(self, prefix: str) -> List[str]:
        with self._connect() as con:
            rows = con.execute(
                "SELECT key FROM kv WHERE substr(key, 1, ?) = ? ORDER BY key",
                (len(prefix), prefix),
            ).fetchall()
        return [r[0] for r in rows]
