"""Persisted UI preferences and the stored API token."""

from __future__ import annotations

import asyncio
import logging

from pydantic import SecretStr

from ..generation.models import build_image_model
from ..schemas.preferences import Preferences, PreferencesUpdate
from .storage import KeyValueStorage

logger = logging.getLogger(__name__)

API_KEY_KEY = "nano_api_key"
_FIELD_KEYS: dict[str, str] = {
    "ratio": "nano_ratio",
    "model_version": "nano_model_version",
    "theme": "nano_theme",
    "video_ratio": "nano_video_ratio",
}


class PreferencesService:
    """Read and write preferences as individual key-value entries."""

    def __init__(self, storage: KeyValueStorage) -> None:
        self._storage = storage
        self._lock = asyncio.Lock()

    def _read(self) -> Preferences:
        defaults = Preferences()
        values = {
            field: self._storage.get(key) or getattr(defaults, field)
            for field, key in _FIELD_KEYS.items()
        }
        prefs = Preferences(
            **values,
            has_api_key=bool(self._storage.get(API_KEY_KEY)),
        )
        prefs.model = build_image_model(prefs.model_version, prefs.ratio)
        return prefs

    async def get_preferences(self) -> Preferences:
        async with self._lock:
            return self._read()

    async def get_api_key(self) -> SecretStr | None:
        async with self._lock:
            value = self._storage.get(API_KEY_KEY)
        return SecretStr(value) if value else None

    async def update(self, update: PreferencesUpdate) -> Preferences:
        """Apply ``update`` in one storage write.

        Raises ``StorageQuotaExceeded`` with nothing changed when the write
        does not fit.
        """

        changes: dict[str, str | None] = {
            _FIELD_KEYS[field]: value
            for field, value in update.model_dump(
                exclude_none=True, exclude={"api_key"}
            ).items()
        }
        token = update.api_key.strip() if update.api_key is not None else None
        if token is not None:
            changes[API_KEY_KEY] = token or None

        async with self._lock:
            self._storage.update(changes)
            if token is not None:
                logger.info("Stored API key %s", "updated" if token else "cleared")
            return self._read()


__all__ = ["PreferencesService"]
