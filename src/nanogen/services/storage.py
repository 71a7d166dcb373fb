"""Quota-bounded key-value storage persisted as a single JSON document."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Mapping, Protocol

logger = logging.getLogger(__name__)


class StorageQuotaExceeded(Exception):
    """Raised when a write would push the store past its byte quota."""


class KeyValueStorage(Protocol):
    def get(self, key: str) -> str | None:
        ...

    def set(self, key: str, value: str) -> None:
        ...

    def remove(self, key: str) -> None:
        ...

    def update(self, changes: Mapping[str, str | None]) -> None:
        ...


class JsonFileStorage:
    """String key-value pairs kept in one JSON file with a total byte quota."""

    def __init__(self, path: Path, *, quota_bytes: int) -> None:
        self._path = path
        self._quota_bytes = quota_bytes
        self._entries: dict[str, str] = {}
        self._load_from_disk()

    @property
    def quota_bytes(self) -> int:
        return self._quota_bytes

    def _load_from_disk(self) -> None:
        if not self._path.exists():
            self._entries = {}
            return
        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("Failed to read storage file %s: %s", self._path, exc)
            self._entries = {}
            return
        if not isinstance(raw, dict):
            self._entries = {}
            return
        self._entries = {
            str(key): value for key, value in raw.items() if isinstance(value, str)
        }

    def _serialize(self, entries: dict[str, str]) -> str:
        return json.dumps(entries, ensure_ascii=False, indent=2, sort_keys=True)

    def _save_to_disk(self, serialized: str) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(serialized, encoding="utf-8")

    def get(self, key: str) -> str | None:
        return self._entries.get(key)

    def set(self, key: str, value: str) -> None:
        self.update({key: value})

    def update(self, changes: Mapping[str, str | None]) -> None:
        """Apply several writes at once. ``None`` removes a key.

        Either every change is persisted or, on a quota error, none is.
        """

        candidate = dict(self._entries)
        for key, value in changes.items():
            if value is None:
                candidate.pop(key, None)
            else:
                candidate[key] = value
        serialized = self._serialize(candidate)
        if len(serialized.encode("utf-8")) > self._quota_bytes:
            keys = ", ".join(repr(key) for key in changes)
            raise StorageQuotaExceeded(
                f"Writing {keys} would exceed the storage quota of {self._quota_bytes} bytes"
            )
        self._save_to_disk(serialized)
        self._entries = candidate

    def remove(self, key: str) -> None:
        if key not in self._entries:
            return
        candidate = dict(self._entries)
        del candidate[key]
        self._save_to_disk(self._serialize(candidate))
        self._entries = candidate


__all__ = ["JsonFileStorage", "KeyValueStorage", "StorageQuotaExceeded"]
