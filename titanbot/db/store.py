from __future__ import annotations

import json
import sqlite3
from typing import Any, Callable, Protocol

from titanbot.core.errors import DatabaseError
from titanbot.db.database import get_connection


class KeyValueStore(Protocol):
    def get(self, key: str, default: Any = None) -> Any: ...

    def set(self, key: str, value: Any) -> None: ...

    def delete(self, key: str) -> bool: ...


class SqliteKeyValueStore:
    """JSON values in the ``app_state`` table, one row per key."""

    def __init__(self, connection_factory: Callable[[], sqlite3.Connection] = get_connection) -> None:
        self._connection_factory = connection_factory

    def get(self, key: str, default: Any = None) -> Any:
        try:
            with self._connection_factory() as conn:
                row = conn.execute(
                    "SELECT value FROM app_state WHERE key = ?",
                    (key,),
                ).fetchone()
        except sqlite3.Error as exc:
            raise DatabaseError(
                f"read failed: {exc}",
                context={"key": key, "operation": "get"},
            ) from exc
        if row is None:
            return default
        try:
            return json.loads(row[0])
        except (TypeError, ValueError) as exc:
            raise DatabaseError(
                f"stored value is not valid JSON: {exc}",
                context={"key": key, "operation": "get"},
            ) from exc

    def set(self, key: str, value: Any) -> None:
        try:
            payload = json.dumps(value, separators=(",", ":"))
        except (TypeError, ValueError) as exc:
            raise DatabaseError(
                f"value is not JSON serialisable: {exc}",
                context={"key": key, "operation": "set"},
            ) from exc
        try:
            with self._connection_factory() as conn:
                conn.execute(
                    """
                    INSERT INTO app_state (key, value)
                    VALUES (?, ?)
                    ON CONFLICT(key) DO UPDATE SET value = excluded.value
                    """,
                    (key, payload),
                )
        except sqlite3.Error as exc:
            raise DatabaseError(
                f"write failed: {exc}",
                context={"key": key, "operation": "set"},
            ) from exc

    def delete(self, key: str) -> bool:
        try:
            with self._connection_factory() as conn:
                cur = conn.execute("DELETE FROM app_state WHERE key = ?", (key,))
                return int(cur.rowcount) > 0
        except sqlite3.Error as exc:
            raise DatabaseError(
                f"delete failed: {exc}",
                context={"key": key, "operation": "delete"},
            ) from exc
