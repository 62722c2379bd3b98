"""
Durable key-value storage for the on-device auth backend.

The mock backend persists its user directory, session slot and OTP records
as JSON documents under string keys, the same way the browser client keeps
them in localStorage. Any object with get_json/set_json/delete satisfies
the contract; JsonFileStore is the single-device default and ValkeyClient
is the shared-cache alternative.
"""

import json
import logging
import os
import tempfile
import threading
from datetime import timedelta
from pathlib import Path
from typing import Protocol

from utils.timezone import now_utc, parse_iso

logger = logging.getLogger(__name__)


class StorageError(Exception):
    """Raised when the backing file cannot be read or written."""


class KeyValueStore(Protocol):
    """Minimal JSON key-value contract used by the auth stores."""

    def get_json(self, key: str) -> dict | list | None: ...

    def set_json(self, key: str, value: dict | list, expire_seconds: int | None = None) -> None: ...

    def delete(self, key: str) -> bool: ...


class JsonFileStore:
    """
    Single-file JSON store with optional per-key expiry.

    Usage:
        store = JsonFileStore(Path("~/.agrisathi/auth.json").expanduser())
        store.set_json("agrisathi_mock_users", [])
        users = store.get_json("agrisathi_mock_users")

    Writes are atomic (temp file + rename). Expired keys read as missing
    and are dropped on the next write.
    """

    def __init__(self, path: Path):
        self._path = Path(path)
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def _read_all(self) -> dict:
        if not self._path.exists():
            return {}
        try:
            with open(self._path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise StorageError(f"Invalid JSON in store '{self._path}': {e}")
        except OSError as e:
            raise StorageError(f"Cannot read store '{self._path}': {e}")
        if not isinstance(data, dict):
            raise StorageError(f"Store '{self._path}' is not a JSON object")
        return data

    def _write_all(self, data: dict) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=self._path.parent, prefix=".store-")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f)
            os.replace(tmp_name, self._path)
        except OSError as e:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise StorageError(f"Cannot write store '{self._path}': {e}")

    @staticmethod
    def _is_expired(entry: dict) -> bool:
        expires_at = entry.get("expires_at")
        return expires_at is not None and now_utc() >= parse_iso(expires_at)

    def get_json(self, key: str) -> dict | list | None:
        """
        Get a JSON value by key.

        Returns None if the key doesn't exist or has expired.
        """
        with self._lock:
            entry = self._read_all().get(key)
        if entry is None or self._is_expired(entry):
            return None
        return entry["value"]

    def set_json(self, key: str, value: dict | list, expire_seconds: int | None = None) -> None:
        """
        Set key to a JSON-serializable value.

        Args:
            key: Key to set
            value: Dict or list to store
            expire_seconds: TTL in seconds (None for no expiration)
        """
        entry = {"value": value, "expires_at": None}
        if expire_seconds is not None:
            entry["expires_at"] = (now_utc() + timedelta(seconds=expire_seconds)).isoformat()

        with self._lock:
            data = {
                k: v for k, v in self._read_all().items() if not self._is_expired(v)
            }
            data[key] = entry
            self._write_all(data)

    def delete(self, key: str) -> bool:
        """
        Delete key.

        Returns True if key existed and was deleted, False if key didn't exist.
        """
        with self._lock:
            data = self._read_all()
            if key not in data:
                return False
            del data[key]
            self._write_all(data)
        return True

    def clear(self) -> None:
        """Remove every key (used on device reset and in tests)."""
        with self._lock:
            self._write_all({})
        logger.info("Local store cleared: %s", self._path)
