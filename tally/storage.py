"""Origin-scoped local key-value store with string values.

All keys live in one JSON object on disk. Writes go through a temporary file
that replaces the store, so a failed write leaves the previous contents intact.
"""

from __future__ import annotations

import json
from pathlib import Path

import tally.runtime_logging as runtime_logging
from tally.config import expand_storage_root
from tally.errors import StorageWriteError


STORE_FILE_NAME = "local_storage.json"


class LocalStore:
    """Persisted string-valued map, read and written whole on every access."""

    def __init__(self, root: str | Path | None = None, quota_bytes: int | None = None) -> None:
        self.root = expand_storage_root(root)
        self.path = self.root / STORE_FILE_NAME
        self.quota_bytes = quota_bytes

    def _load(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError):
            return {}
        if not isinstance(data, dict):
            return {}
        return {str(k): v for k, v in data.items() if isinstance(v, str)}

    def _save(self, data: dict[str, str]) -> None:
        text = json.dumps(data, indent=2, sort_keys=True)
        if self.quota_bytes is not None and len(text.encode("utf-8")) > self.quota_bytes:
            raise StorageWriteError(f"Local store quota of {self.quota_bytes} bytes exceeded.")
        tmp = self.path.with_suffix(f"{self.path.suffix}.tmp")
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            tmp.write_text(text, encoding="utf-8")
            tmp.replace(self.path)
        except OSError as exc:
            raise StorageWriteError(f"Failed to write local store: {exc}") from exc

    def get_item(self, key: str) -> str | None:
        return self._load().get(key)

    def set_item(self, key: str, value: str) -> None:
        if not isinstance(value, str):
            raise TypeError("Local store values must be strings.")
        data = self._load()
        data[key] = value
        self._save(data)

    def remove_item(self, key: str) -> bool:
        data = self._load()
        if key not in data:
            return False
        del data[key]
        self._save(data)
        return True

    def keys(self) -> list[str]:
        return sorted(self._load().keys())


def configure_storage_root(path_value: str | Path | None, quota_bytes: int | None = None) -> LocalStore:
    """Return a store rooted at ``path_value`` and point the runtime log beside it."""
    store = LocalStore(path_value, quota_bytes=quota_bytes)
    runtime_logging.configure_log_root(store.root)
    return store
