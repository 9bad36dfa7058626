"""Version-tagged TTL cache for normalized weather results."""
import json
import logging
import sqlite3
import threading
import time
from datetime import date
from typing import Any, Callable, Dict, List, Optional, Protocol, Union

CACHE_VERSION = "v2"
CACHE_PREFIX = "weather_cache:"

CURRENT_TTL = 15 * 60
HISTORY_TTL = 30 * 60


class CacheStoreError(Exception):
    """The backing key-value store failed (I/O, locked database, ...)."""


class KeyValueStore(Protocol):
    def get(self, key: str) -> Optional[str]: ...
    def set(self, key: str, value: str) -> None: ...
    def delete(self, key: str) -> None: ...
    def keys(self) -> List[str]: ...


class MemoryStore:
    """Process-local dict store. Used by tests and with WEATHER_CACHE_PATH=:memory:."""

    def __init__(self):
        self._data: Dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> List[str]:
        return list(self._data)

    def close(self) -> None:
        self._data.clear()


class SqliteStore:
    """
    Single-table SQLite store (key TEXT PRIMARY KEY, value TEXT).

    The connection is shared between the event loop and worker threads, so
    every statement runs under one lock.
    """

    def __init__(self, path: str):
        self.path = path
        self._lock = threading.Lock()
        try:
            self._conn = sqlite3.connect(path, check_same_thread=False)
            with self._conn:
                self._conn.execute(
                    "CREATE TABLE IF NOT EXISTS weather_cache (key TEXT PRIMARY KEY, value TEXT NOT NULL)"
                )
        except sqlite3.Error as e:
            raise CacheStoreError(f"Cannot open cache database {path}: {e}") from e
        logging.info(f"Opened cache database {path}")

    def _execute(self, sql: str, params: tuple = ()) -> List[tuple]:
        with self._lock:
            try:
                with self._conn:
                    return self._conn.execute(sql, params).fetchall()
            except sqlite3.Error as e:
                raise CacheStoreError(str(e)) from e

    def get(self, key: str) -> Optional[str]:
        rows = self._execute("SELECT value FROM weather_cache WHERE key = ?", (key,))
        return rows[0][0] if rows else None

    def set(self, key: str, value: str) -> None:
        self._execute("INSERT OR REPLACE INTO weather_cache (key, value) VALUES (?, ?)", (key, value))

    def delete(self, key: str) -> None:
        self._execute("DELETE FROM weather_cache WHERE key = ?", (key,))

    def keys(self) -> List[str]:
        return [row[0] for row in self._execute("SELECT key FROM weather_cache")]

    def close(self) -> None:
        with self._lock:
            self._conn.close()


def ttl_for(kind: str, end_date: Optional[str] = None,
            today: Optional[Union[date, str]] = None) -> Optional[int]:
    """
    Seconds to keep a result of the given kind.

    Completed history (end date before today) never changes, so it is kept
    until the next version bump (None). Ranges touching today can still be
    revised by the providers.
    """
    if kind == "current":
        return CURRENT_TTL
    today = today or date.today()
    if isinstance(today, date):
        today = today.isoformat()
    if end_date and end_date < today:
        return None
    return HISTORY_TTL


class WeatherCache:
    """
    JSON entries ``{"data", "cached_at", "expires_at"}`` under
    ``prefix + key``, where every key starts with the active version tag.

    Store failures are logged and reported as misses: a broken cache slows
    requests down but never fails them.
    """

    def __init__(
        self,
        store: KeyValueStore,
        version: str = CACHE_VERSION,
        default_ttl: Optional[int] = HISTORY_TTL,
        time_func: Callable[[], float] = time.time,
        prefix: str = CACHE_PREFIX,
    ):
        self.store = store
        self.version = version
        self.default_ttl = default_ttl
        self.time_func = time_func
        self.prefix = prefix

    def generate_key(self, kind: str, start: str, end: str, lat: float, lon: float) -> str:
        return f"{self.version}:{kind}:{start}:{end}:{lat:.4f}:{lon:.4f}"

    def _entry_version(self, storage_key: str) -> str:
        return storage_key[len(self.prefix):].split(":", 1)[0]

    def _load(self, storage_key: str) -> Optional[Dict[str, Any]]:
        raw = self.store.get(storage_key)
        if raw is None:
            return None
        try:
            entry = json.loads(raw)
        except ValueError:
            entry = None
        if not isinstance(entry, dict) or "data" not in entry:
            logging.warning(f"Evicting corrupt cache entry {storage_key}")
            self.store.delete(storage_key)
            return None
        return entry

    def _is_expired(self, entry: Dict[str, Any], now: float) -> bool:
        expires_at = entry.get("expires_at")
        return expires_at is not None and now >= expires_at

    def get(self, key: str) -> Any:
        storage_key = self.prefix + key
        try:
            entry = self._load(storage_key)
            if entry is None:
                logging.debug(f"Cache miss: {key}")
                return None
            if self._is_expired(entry, self.time_func()):
                logging.debug(f"Cache entry expired: {key}")
                self.store.delete(storage_key)
                return None
        except CacheStoreError as e:
            logging.warning(f"Cache read failed for {key}: {e}")
            return None
        logging.debug(f"Cache hit: {key}")
        return entry["data"]

    def set(self, key: str, value: Any, ttl: Optional[int] = -1) -> None:
        """Store value; ttl=None keeps it until the version changes, -1 means default_ttl."""
        if ttl == -1:
            ttl = self.default_ttl
        now = self.time_func()
        entry = {
            "data": value,
            "cached_at": now,
            "expires_at": now + ttl if ttl is not None else None,
        }
        try:
            self.store.set(self.prefix + key, json.dumps(entry))
        except CacheStoreError as e:
            logging.warning(f"Cache write failed for {key}: {e}")
            return
        logging.debug(f"Cached {key} (ttl={ttl})")

    def delete(self, key: str) -> None:
        try:
            self.store.delete(self.prefix + key)
        except CacheStoreError as e:
            logging.warning(f"Cache delete failed for {key}: {e}")

    def _own_keys(self) -> List[str]:
        return [k for k in self.store.keys() if k.startswith(self.prefix)]

    def clear_all(self) -> int:
        """Delete every weather entry regardless of version."""
        try:
            keys = self._own_keys()
            for storage_key in keys:
                self.store.delete(storage_key)
        except CacheStoreError as e:
            logging.warning(f"Cache clear failed: {e}")
            return 0
        logging.info(f"Cleared {len(keys)} cache entries")
        return len(keys)

    def clear_expired(self) -> int:
        return self._purge(stale_versions=False)

    def sweep(self) -> int:
        """Remove entries written under another version tag, plus expired ones."""
        removed = self._purge(stale_versions=True)
        if removed:
            logging.info(f"Cache sweep removed {removed} entries (active version {self.version})")
        return removed

    def _purge(self, stale_versions: bool) -> int:
        now = self.time_func()
        removed = 0
        try:
            for storage_key in self._own_keys():
                if stale_versions and self._entry_version(storage_key) != self.version:
                    self.store.delete(storage_key)
                    removed += 1
                    continue
                entry = self._load(storage_key)
                if entry is None:
                    removed += 1
                elif self._is_expired(entry, now):
                    self.store.delete(storage_key)
                    removed += 1
        except CacheStoreError as e:
            logging.warning(f"Cache purge failed: {e}")
        return removed

    def stats(self) -> Dict[str, Any]:
        now = self.time_func()
        stats = {"version": self.version, "entries": 0, "expired": 0, "stale_version": 0}
        try:
            for storage_key in self._own_keys():
                stats["entries"] += 1
                if self._entry_version(storage_key) != self.version:
                    stats["stale_version"] += 1
                    continue
                raw = self.store.get(storage_key)
                try:
                    entry = json.loads(raw) if raw is not None else None
                except ValueError:
                    entry = None
                if isinstance(entry, dict) and self._is_expired(entry, now):
                    stats["expired"] += 1
        except CacheStoreError as e:
            logging.warning(f"Cache stats unavailable: {e}")
        return stats

    def close(self) -> None:
        close = getattr(self.store, "close", None)
        if close is not None:
            close()
