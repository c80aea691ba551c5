"""Local key-value store with namespaced helpers.

Provides LocalStorage, a small typed facade over a pluggable backend
(in-memory dict or a JSON file on disk) used to persist preferences and
cache timestamps across process restarts.
"""
from __future__ import annotations

import datetime
import json
import logging
import os
import tempfile
from pathlib import Path

logger = logging.getLogger(__name__)

_CACHE_TIMESTAMP_PREFIX = "cache_timestamp_"


# ---------------------------------------------------------------------------
# Backends
# ---------------------------------------------------------------------------


class StorageBackend:
    """Protocol-like base for raw key/value persistence.

    Subclass this and implement the five primitive operations. Values
    handed to a backend are always JSON-serialisable.
    """

    def get(self, key: str) -> object | None:
        raise NotImplementedError

    def set(self, key: str, value: object) -> None:
        raise NotImplementedError

    def remove(self, key: str) -> bool:
        raise NotImplementedError

    def clear(self) -> None:
        raise NotImplementedError

    def keys(self) -> set[str]:
        raise NotImplementedError


class MemoryBackend(StorageBackend):
    """Process-local backend. Contents are lost when the process exits."""

    def __init__(self, initial: dict[str, object] | None = None) -> None:
        self._data: dict[str, object] = dict(initial or {})

    def get(self, key: str) -> object | None:
        return self._data.get(key)

    def set(self, key: str, value: object) -> None:
        self._data[key] = value

    def remove(self, key: str) -> bool:
        return self._data.pop(key, None) is not None

    def clear(self) -> None:
        self._data.clear()

    def keys(self) -> set[str]:
        return set(self._data)


class JsonFileBackend(StorageBackend):
    """Backend persisting every key into a single JSON object on disk.

    The whole document is rewritten on each mutation through a temporary
    file followed by ``os.replace`` so a crash never leaves a truncated file.
    A write that fails leaves both the file and the in-memory state as they
    were.

    Parameters
    ----------
    path:
        Location of the JSON document. Parent directories are created on
        first write.

    Raises
    ------
    ValueError
        If *path* exists but does not contain a JSON object.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._data: dict[str, object] = self._load()

    @property
    def path(self) -> Path:
        """Return the backing file path."""
        return self._path

    def _load(self) -> dict[str, object]:
        if not self._path.exists():
            return {}
        text = self._path.read_text(encoding="utf-8")
        if not text.strip():
            return {}
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            raise ValueError(f"Storage file {self._path} is not valid JSON: {exc}") from exc
        if not isinstance(data, dict):
            raise ValueError(f"Storage file {self._path} must contain a JSON object.")
        return data

    def _flush(self, data: dict[str, object]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=self._path.parent, prefix=".", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(data, handle, sort_keys=True)
            os.replace(tmp_name, self._path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def _commit(self, data: dict[str, object]) -> None:
        # Memory only follows once the file write has succeeded.
        self._flush(data)
        self._data = data

    def get(self, key: str) -> object | None:
        return self._data.get(key)

    def set(self, key: str, value: object) -> None:
        data = dict(self._data)
        data[key] = value
        self._commit(data)

    def remove(self, key: str) -> bool:
        if key not in self._data:
            return False
        data = dict(self._data)
        del data[key]
        self._commit(data)
        return True

    def clear(self) -> None:
        self._commit({})

    def keys(self) -> set[str]:
        return set(self._data)


# ---------------------------------------------------------------------------
# Typed facade
# ---------------------------------------------------------------------------


class LocalStorage:
    """Typed key/value store with an optional global key prefix.

    Getters return None when the key is missing or holds a value of a
    different type.

    Parameters
    ----------
    backend:
        The :class:`StorageBackend` to persist into. Defaults to a fresh
        :class:`MemoryBackend`.
    prefix:
        Optional namespace prepended to every key as ``"<prefix>_<key>"``.

    Example
    -------
    ::

        storage = LocalStorage(JsonFileBackend("~/.travel/prefs.json"))
        storage.set_bool("app_offline_mode", True)
        storage.set_cache_timestamp("places", datetime.datetime.now(datetime.timezone.utc))
    """

    def __init__(
        self,
        backend: StorageBackend | None = None,
        prefix: str | None = None,
    ) -> None:
        self._backend = backend if backend is not None else MemoryBackend()
        self._prefix = prefix or None

    @property
    def backend(self) -> StorageBackend:
        """Return the underlying backend."""
        return self._backend

    @property
    def prefix(self) -> str | None:
        """Return the global key prefix, or None."""
        return self._prefix

    def _k(self, key: str) -> str:
        if self._prefix is None:
            return key
        return f"{self._prefix}_{key}"

    def _get_typed(self, key: str, *expected: type) -> object | None:
        value = self._backend.get(self._k(key))
        if value is None:
            return None
        # bool is an int subclass; keep the two apart.
        if isinstance(value, bool) and bool not in expected:
            return None
        if not isinstance(value, expected):
            logger.debug("Key %r holds %s, expected %s", key, type(value).__name__, expected)
            return None
        return value

    # ------------------------------------------------------------------
    # Primitive operations
    # ------------------------------------------------------------------

    def set_string(self, key: str, value: str) -> bool:
        self._backend.set(self._k(key), str(value))
        return True

    def get_string(self, key: str) -> str | None:
        return self._get_typed(key, str)  # type: ignore[return-value]

    def set_int(self, key: str, value: int) -> bool:
        self._backend.set(self._k(key), int(value))
        return True

    def get_int(self, key: str) -> int | None:
        return self._get_typed(key, int)  # type: ignore[return-value]

    def set_bool(self, key: str, value: bool) -> bool:
        self._backend.set(self._k(key), bool(value))
        return True

    def get_bool(self, key: str) -> bool | None:
        return self._get_typed(key, bool)  # type: ignore[return-value]

    def set_float(self, key: str, value: float) -> bool:
        self._backend.set(self._k(key), float(value))
        return True

    def get_float(self, key: str) -> float | None:
        value = self._get_typed(key, float, int)
        return None if value is None else float(value)  # type: ignore[arg-type]

    def set_string_list(self, key: str, value: list[str]) -> bool:
        self._backend.set(self._k(key), [str(item) for item in value])
        return True

    def get_string_list(self, key: str) -> list[str] | None:
        value = self._get_typed(key, list)
        if value is None:
            return None
        if not all(isinstance(item, str) for item in value):  # type: ignore[union-attr]
            return None
        return list(value)  # type: ignore[arg-type]

    # ------------------------------------------------------------------
    # JSON helpers
    # ------------------------------------------------------------------

    def set_json(self, key: str, value: dict[str, object]) -> bool:
        """Store a mapping serialised as a JSON string."""
        return self.set_string(key, json.dumps(value))

    def get_json(self, key: str) -> dict[str, object] | None:
        """Return the decoded mapping stored under *key*.

        Non-object JSON values are wrapped as ``{"data": value}``;
        undecodable content yields None.
        """
        raw = self.get_string(key)
        if raw is None:
            return None
        try:
            decoded = json.loads(raw)
        except json.JSONDecodeError:
            logger.debug("Key %r does not hold valid JSON", key)
            return None
        if isinstance(decoded, dict):
            return decoded
        return {"data": decoded}

    def set_json_list(self, key: str, value: list[dict[str, object]]) -> bool:
        return self.set_string(key, json.dumps(value))

    def get_json_list(self, key: str) -> list[dict[str, object]] | None:
        raw = self.get_string(key)
        if raw is None:
            return None
        try:
            decoded = json.loads(raw)
        except json.JSONDecodeError:
            logger.debug("Key %r does not hold valid JSON", key)
            return None
        if not isinstance(decoded, list):
            return None
        return [item if isinstance(item, dict) else {"data": item} for item in decoded]

    # ------------------------------------------------------------------
    # Key utilities
    # ------------------------------------------------------------------

    def remove(self, key: str) -> bool:
        return self._backend.remove(self._k(key))

    def clear(self) -> bool:
        """Remove every key from the backend, including unprefixed ones."""
        self._backend.clear()
        return True

    def contains_key(self, key: str) -> bool:
        return self._k(key) in self._backend.keys()

    def keys(self) -> set[str]:
        """Return stored keys with the global prefix stripped.

        When a prefix is configured, keys outside that namespace are not
        reported.
        """
        all_keys = self._backend.keys()
        if self._prefix is None:
            return all_keys
        marker = f"{self._prefix}_"
        return {k[len(marker):] for k in all_keys if k.startswith(marker)}

    def keys_with_prefix(self, prefix: str) -> set[str]:
        return {key for key in self.keys() if key.startswith(prefix)}

    def remove_keys_with_prefix(self, prefix: str) -> int:
        """Remove every key starting with *prefix* and return how many went."""
        removed = 0
        for key in self.keys_with_prefix(prefix):
            if self.remove(key):
                removed += 1
        return removed

    def get_all_data(self) -> dict[str, object]:
        """Return a snapshot of every (de-prefixed) key and its raw value."""
        return {key: self._backend.get(self._k(key)) for key in self.keys()}

    def storage_size(self) -> int:
        """Return the number of keys visible through this store."""
        return len(self.keys())

    # ------------------------------------------------------------------
    # Cache timestamps
    # ------------------------------------------------------------------

    def set_cache_timestamp(self, key: str, timestamp: datetime.datetime) -> bool:
        """Persist *timestamp* as ISO-8601 under ``cache_timestamp_<key>``.

        Naive datetimes are assumed to be UTC.
        """
        if timestamp.tzinfo is None:
            timestamp = timestamp.replace(tzinfo=datetime.timezone.utc)
        return self.set_string(f"{_CACHE_TIMESTAMP_PREFIX}{key}", timestamp.isoformat())

    def get_cache_timestamp(self, key: str) -> datetime.datetime | None:
        """Return the timestamp stored for *key*, or None if absent or unparsable."""
        raw = self.get_string(f"{_CACHE_TIMESTAMP_PREFIX}{key}")
        if raw is None:
            return None
        try:
            parsed = datetime.datetime.fromisoformat(raw)
        except ValueError:
            logger.debug("Unparsable cache timestamp for %r: %r", key, raw)
            return None
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=datetime.timezone.utc)
        return parsed

    def is_cache_expired(self, key: str, max_age: datetime.timedelta) -> bool:
        """Return True if no timestamp exists for *key* or it is older than *max_age*."""
        timestamp = self.get_cache_timestamp(key)
        if timestamp is None:
            return True
        now = datetime.datetime.now(datetime.timezone.utc)
        return now - timestamp > max_age


__all__ = [
    "JsonFileBackend",
    "LocalStorage",
    "MemoryBackend",
    "StorageBackend",
]
