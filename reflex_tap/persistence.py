from __future__ import annotations

import json
import logging
import sqlite3
import time
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Protocol

SCHEMA_VERSION = 1

logger = logging.getLogger(__name__)


class PersistenceUnavailable(RuntimeError):
    """Raised by a key-value backend that cannot read or write."""


class KeyValueStore(Protocol):
    """Minimal key-value contract used by ScoreStore.

    Values are JSON-compatible (numbers, lists of numbers).
    """

    def get(self, key: str, default: Any) -> Any: ...

    def set_many(self, values: Mapping[str, Any]) -> None:
        """Write all values together; either all land or none do."""


class MemoryKeyValueStore:
    """In-process store. Used in tests and when persistence is disabled."""

    def __init__(self, initial: Mapping[str, Any] | None = None) -> None:
        self._data: dict[str, Any] = dict(initial or {})

    def get(self, key: str, default: Any) -> Any:
        return self._data.get(key, default)

    def set_many(self, values: Mapping[str, Any]) -> None:
        self._data.update(values)

    def as_dict(self) -> dict[str, Any]:
        return dict(self._data)


def open_db(path: Path) -> sqlite3.Connection:
    conn = sqlite3.connect(path)
    conn.execute("PRAGMA journal_mode=WAL;")
    conn.execute("PRAGMA synchronous=NORMAL;")
    _migrate(conn)
    return conn


def _utc_now_iso() -> str:
    return time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime(time.time()))


def _migrate(conn: sqlite3.Connection) -> None:
    row = conn.execute("PRAGMA user_version;").fetchone()
    ver = int(row[0]) if row else 0
    if ver >= SCHEMA_VERSION:
        return

    with conn:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS kv (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                updated_at_utc TEXT NOT NULL
            );
            """
        )
        conn.execute(f"PRAGMA user_version={SCHEMA_VERSION};")


class SqliteKeyValueStore:
    """Durable key-value store in a single sqlite file.

    A connection is opened per call so the file is never held open between
    rounds. set_many() runs in one transaction.
    """

    def __init__(self, path: Path) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def _connect(self) -> sqlite3.Connection:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            return open_db(self._path)
        except (sqlite3.Error, OSError) as exc:
            raise PersistenceUnavailable(f"cannot open {self._path}: {exc}") from exc

    def get(self, key: str, default: Any) -> Any:
        conn = self._connect()
        try:
            row = conn.execute("SELECT value FROM kv WHERE key = ?", (str(key),)).fetchone()
        except sqlite3.Error as exc:
            raise PersistenceUnavailable(f"cannot read {key!r}: {exc}") from exc
        finally:
            conn.close()

        if row is None:
            return default
        try:
            return json.loads(row[0])
        except ValueError as exc:
            raise PersistenceUnavailable(f"corrupt value for {key!r}") from exc

    def set_many(self, values: Mapping[str, Any]) -> None:
        now = _utc_now_iso()
        rows = [(str(k), json.dumps(v), now) for k, v in values.items()]
        conn = self._connect()
        try:
            with conn:
                conn.executemany(
                    """
                    INSERT INTO kv(key, value, updated_at_utc) VALUES (?, ?, ?)
                    ON CONFLICT(key) DO UPDATE SET
                        value = excluded.value,
                        updated_at_utc = excluded.updated_at_utc
                    """,
                    rows,
                )
        except sqlite3.Error as exc:
            raise PersistenceUnavailable(f"cannot write {self._path}: {exc}") from exc
        finally:
            conn.close()
        logger.debug("saved %d key(s) to %s", len(rows), self._path)
