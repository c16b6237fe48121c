# durable key/value persistence, the leaf both the session and the commerce state write to
from __future__ import annotations

import json
import sqlite3
from typing import Any, Dict, Optional, Protocol

from db import database
from utils.errors import StorageFailure
from utils.logger import get_logger

_logger = get_logger(__name__)

# persisted key layout; cart/wishlist keys get a ".<scope>" suffix
ACCESS_TOKEN_KEY = "auth.access_token"
REFRESH_TOKEN_KEY = "auth.refresh_token"
USER_KEY = "auth.user"
CART_KEY = "cart"
WISHLIST_KEY = "wishlist"


def scoped_key(base: str, scope: str) -> str:
    return f"{base}.{scope}"


class Store(Protocol):
    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> bool: ...

    def remove(self, key: str) -> None: ...

    def get_json(self, key: str, default: Any = None) -> Any: ...

    def set_json(self, key: str, value: Any) -> bool: ...


class _JsonMixin:
    def get_json(self, key: str, default: Any = None) -> Any:
        """Decode the JSON value under key; absent or malformed data yields default."""
        raw = self.get(key)
        if raw is None:
            return default
        try:
            return json.loads(raw)
        except (TypeError, ValueError):
            _logger.warning(f"Discarding malformed JSON stored under '{key}'.")
            return default

    def set_json(self, key: str, value: Any) -> bool:
        try:
            encoded = json.dumps(value)
        except (TypeError, ValueError) as e:
            _logger.warning(f"Could not encode value for '{key}': {e}")
            return False
        return self.set(key, encoded)


class KeyValueStore(_JsonMixin):
    """
    SQLite-backed store. Never raises: read failures look like an absent key,
    write failures are logged and reported as False.
    """

    def __init__(self, path: Optional[str] = None):
        self.path = path or database.DB_PATH

    def _execute(self, sql: str, params: tuple = ()) -> list:
        try:
            with database.connect(self.path) as conn:
                cur = conn.execute(sql, params)
                rows = cur.fetchall()
                cur.close()
                conn.commit()
                return rows
        except (sqlite3.Error, OSError) as e:
            raise StorageFailure(f"{type(e).__name__}: {e}") from e

    def get(self, key: str) -> Optional[str]:
        try:
            rows = self._execute("SELECT value FROM kv WHERE key = ?;", (key,))
        except StorageFailure as e:
            _logger.warning(f"Store read of '{key}' failed: {e}")
            return None
        return rows[0][0] if rows else None

    def set(self, key: str, value: str) -> bool:
        try:
            self._execute(
                """
                INSERT INTO kv(key, value) VALUES (?, ?)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value;
                """,
                (key, value),
            )
        except StorageFailure as e:
            _logger.warning(f"Store write of '{key}' failed, continuing unpersisted: {e}")
            return False
        return True

    def remove(self, key: str) -> None:
        try:
            self._execute("DELETE FROM kv WHERE key = ?;", (key,))
        except StorageFailure as e:
            _logger.warning(f"Store delete of '{key}' failed: {e}")

    def keys(self) -> list[str]:
        try:
            return [r[0] for r in self._execute("SELECT key FROM kv ORDER BY key;")]
        except StorageFailure as e:
            _logger.warning(f"Store listing failed: {e}")
            return []

    def clear(self) -> None:
        try:
            self._execute("DELETE FROM kv;")
        except StorageFailure as e:
            _logger.warning(f"Store clear failed: {e}")


class InMemoryStore(_JsonMixin):
    """Same contract as KeyValueStore, kept in a dict. Used for tests and `:memory:`."""

    def __init__(self, data: Optional[Dict[str, str]] = None):
        self.data: Dict[str, str] = dict(data or {})

    def get(self, key: str) -> Optional[str]:
        return self.data.get(key)

    def set(self, key: str, value: str) -> bool:
        self.data[key] = value
        return True

    def remove(self, key: str) -> None:
        self.data.pop(key, None)

    def keys(self) -> list[str]:
        return sorted(self.data)

    def clear(self) -> None:
        self.data.clear()


def open_store(path: Optional[str] = None) -> KeyValueStore | InMemoryStore:
    path = path or database.DB_PATH
    if path == ":memory:":
        return InMemoryStore()
    return KeyValueStore(path)
