"""
Durable key-value store backed by a single JSON file.

Values survive agent restarts. Every write replaces the file atomically so
a crash mid-write leaves the previous snapshot intact.
"""

import json
import os
from pathlib import Path
from typing import Any, Iterable

# Keys describing the running session.
INTERVAL_MODE = "intervalMode"
CURRENT_QUERIES = "currentQueries"
CURRENT_INDEX = "currentIndex"
INTERVAL_COUNT = "intervalCount"
INTERVAL_SEARCH_ACTIVE = "intervalSearchActive"
INTERVAL_ALARM_NAME = "intervalAlarmName"
INTERVAL_START_TIME = "intervalStartTime"
INTERVAL_DELAY_MINUTES = "intervalDelayMinutes"
ACTIVE_TAB_ID = "activeTabId"
PENDING_QUERIES = "pendingQueries"

# Keys that outlive a session.
APP_LOG = "app.log"
DOWNLOAD_READY = "downloadReady"

INTERVAL_KEYS = [INTERVAL_ALARM_NAME, INTERVAL_START_TIME, INTERVAL_DELAY_MINUTES]

OPERATIONAL_KEYS = [
    INTERVAL_MODE,
    CURRENT_QUERIES,
    CURRENT_INDEX,
    INTERVAL_COUNT,
    INTERVAL_SEARCH_ACTIVE,
    PENDING_QUERIES,
    *INTERVAL_KEYS,
]


class StoreError(Exception):
    """Raised when persisted state cannot be read or written."""


def read_json(path: Path) -> dict[str, Any]:
    """
    Load a JSON object from disk.

    Args:
        path: File to read.

    Returns:
        The decoded object, or an empty dict when the file does not exist.

    Raises:
        StoreError: If the file exists but cannot be read or decoded.
    """
    try:
        data = json.loads(path.read_text())
    except FileNotFoundError:
        return {}
    except (OSError, ValueError) as e:
        raise StoreError(f"Cannot read {path}: {e}") from e
    if not isinstance(data, dict):
        raise StoreError(f"{path} does not hold a JSON object")
    return data


def write_json(path: Path, data: dict[str, Any]) -> None:
    """
    Atomically replace a JSON file.

    Args:
        path: Destination file. Parent directories are created as needed.
        data: JSON-serialisable mapping.

    Raises:
        StoreError: If the data cannot be serialised or written.
    """
    tmp = path.with_name(f".{path.name}.tmp")
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp.write_text(json.dumps(data, indent=2))
        os.replace(tmp, path)
    except (OSError, TypeError, ValueError) as e:
        raise StoreError(f"Cannot write {path}: {e}") from e


class DurableStore:
    """
    String-keyed, JSON-valued persistence layer.

    The file is read lazily on first access and cached; writes go through
    to disk immediately. A fresh instance on the same path sees everything
    a previous instance wrote, which is how state crosses a restart.
    """

    def __init__(self, path: Path) -> None:
        self.path = path
        self._data: dict[str, Any] | None = None

    def _load(self) -> dict[str, Any]:
        if self._data is None:
            self._data = read_json(self.path)
        return self._data

    def get(self, keys: Iterable[str]) -> dict[str, Any]:
        """
        Read a subset of keys.

        Args:
            keys: Keys to look up.

        Returns:
            A dict containing only the keys that are present.
        """
        data = self._load()
        return {key: data[key] for key in keys if key in data}

    def set(self, values: dict[str, Any]) -> None:
        """Merge ``values`` into the store and flush to disk."""
        data = dict(self._load())
        data.update(values)
        write_json(self.path, data)
        self._data = data

    def remove(self, keys: Iterable[str]) -> None:
        """Delete ``keys`` if present and flush to disk."""
        data = dict(self._load())
        for key in keys:
            data.pop(key, None)
        write_json(self.path, data)
        self._data = data

    def clear(self) -> None:
        """Delete every key, including logs."""
        write_json(self.path, {})
        self._data = {}
