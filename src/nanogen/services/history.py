"""Bounded, most-recent-first log of completed generations."""

from __future__ import annotations

import asyncio
import json
import logging
import math

from pydantic import ValidationError

from ..schemas.generation import HistoryItem
from .storage import KeyValueStorage, StorageQuotaExceeded

logger = logging.getLogger(__name__)

HISTORY_KEY = "nano_image_history"
SHRINK_FACTOR = 0.7


class HistoryStore:
    """Persist generation history in key-value storage.

    New entries go to the front and the log is truncated to ``max_items``.
    When the storage quota is exhausted the stored set is shrunk repeatedly
    (keeping the newest entries) until it fits, so a save degrades instead of
    being lost.
    """

    def __init__(self, storage: KeyValueStorage, *, max_items: int = 30) -> None:
        self._storage = storage
        self._max_items = max_items
        self._lock = asyncio.Lock()

    @property
    def max_items(self) -> int:
        return self._max_items

    def _load(self) -> list[HistoryItem]:
        raw = self._storage.get(HISTORY_KEY)
        if raw is None:
            return []
        try:
            entries = json.loads(raw)
        except json.JSONDecodeError as exc:
            logger.warning("History log is unreadable, starting fresh: %s", exc)
            return []
        if not isinstance(entries, list):
            return []

        items: list[HistoryItem] = []
        for entry in entries:
            try:
                items.append(HistoryItem.model_validate(entry))
            except ValidationError as exc:
                logger.warning("Skipping invalid history entry: %s", exc)
        return items

    @staticmethod
    def _serialize(items: list[HistoryItem]) -> str:
        return json.dumps([item.to_storage() for item in items], ensure_ascii=False)

    def _save(self, items: list[HistoryItem]) -> list[HistoryItem]:
        """Write ``items``, shrinking on quota errors. Returns what was stored."""

        to_save = list(items)
        while to_save:
            try:
                self._storage.set(HISTORY_KEY, self._serialize(to_save))
                return to_save
            except StorageQuotaExceeded:
                keep = max(1, math.floor(len(to_save) * SHRINK_FACTOR))
                logger.info(
                    "History storage full; shrinking from %d to %d entries",
                    len(to_save),
                    keep,
                )
                to_save = to_save[:keep]
                if len(to_save) <= 1:
                    try:
                        self._storage.remove(HISTORY_KEY)
                        self._storage.set(HISTORY_KEY, self._serialize(to_save))
                        return to_save
                    except StorageQuotaExceeded:
                        logger.error("Not enough storage space to save history")
                        return []
            except OSError as exc:
                logger.error("Failed to save history: %s", exc)
                return []
        self._storage.remove(HISTORY_KEY)
        return []

    async def list_items(self) -> list[HistoryItem]:
        async with self._lock:
            return self._load()

    async def get(self, item_id: str) -> HistoryItem | None:
        async with self._lock:
            for item in self._load():
                if item.id == item_id:
                    return item
            return None

    async def add(self, item: HistoryItem) -> HistoryItem:
        async with self._lock:
            items = self._load()
            items.insert(0, item)
            del items[self._max_items :]
            self._save(items)
            return item

    async def remove(self, item_id: str) -> list[HistoryItem]:
        async with self._lock:
            remaining = [item for item in self._load() if item.id != item_id]
            return self._save(remaining)

    async def clear(self) -> None:
        async with self._lock:
            self._storage.remove(HISTORY_KEY)


__all__ = ["HISTORY_KEY", "HistoryStore"]
