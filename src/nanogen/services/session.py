"""Application-scoped context tying the driver to tasks, history and storage."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from pydantic import SecretStr

from ..config import Settings
from ..generation.client import GenerationClient
from ..generation.errors import GenerationError
from ..generation.types import Progress, ProgressCallback
from ..schemas.generation import GenerationRequest, GenerationResult, HistoryItem
from .history import HistoryStore
from .preferences import PreferencesService
from .relay import DirectMediaFetcher, MediaRelay
from .storage import JsonFileStorage
from .tasks import TaskRegistry

logger = logging.getLogger(__name__)


class MissingApiKey(Exception):
    """Raised when neither the request, preferences nor server carry a token."""


class GenerationSession:
    """Own the shared collaborators for every in-flight generation.

    The driver itself is stateless; this object registers each request as a
    task, forwards progress into it and records completed results in the
    history log once the request has fully resolved.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        client: GenerationClient,
        relay: MediaRelay,
        history: HistoryStore,
        preferences: PreferencesService,
        tasks: TaskRegistry,
    ) -> None:
        self.settings = settings
        self.client = client
        self.relay = relay
        self.history = history
        self.preferences = preferences
        self.tasks = tasks

    @classmethod
    def from_settings(
        cls, settings: Settings, *, storage_path: Optional[Path] = None
    ) -> "GenerationSession":
        storage = JsonFileStorage(
            storage_path or settings.storage_path,
            quota_bytes=settings.storage_quota_bytes,
        )
        relay = MediaRelay(settings)
        client = GenerationClient(settings, media_fetcher=DirectMediaFetcher(relay))
        return cls(
            settings,
            client=client,
            relay=relay,
            history=HistoryStore(storage, max_items=settings.history_max_items),
            preferences=PreferencesService(storage),
            tasks=TaskRegistry(
                max_running=settings.max_running_tasks,
                max_finished=settings.max_finished_tasks,
            ),
        )

    async def resolve_api_key(self, provided: Optional[str]) -> SecretStr:
        if provided and provided.strip():
            return SecretStr(provided.strip())
        stored = await self.preferences.get_api_key()
        if stored is not None:
            return stored
        if self.settings.server_api_key is not None:
            return self.settings.server_api_key
        raise MissingApiKey("Please configure an API key")

    async def run(
        self,
        request: GenerationRequest,
        on_progress: Optional[ProgressCallback] = None,
    ) -> GenerationResult:
        """Run ``request`` as a tracked task and record it on success."""

        task = self.tasks.add(request.mode, request.prompt)

        def _forward(progress: Progress) -> None:
            self.tasks.update_progress(task.id, progress.percent, progress.stage)
            if on_progress is not None:
                on_progress(progress)

        try:
            result = await self.client.run(request, _forward)
        except GenerationError as exc:
            logger.warning(
                "Task %s (%s) failed: %s", task.id, request.mode.value, exc.detail
            )
            self.tasks.fail(task.id, str(exc.detail))
            raise
        except BaseException:
            self.tasks.fail(task.id, "Generation was interrupted")
            raise

        self.tasks.complete(task.id, result)
        await self.history.add(HistoryItem.from_result(result))
        logger.info("Task %s (%s) completed", task.id, request.mode.value)
        return result

    async def aclose(self) -> None:
        await self.client.aclose()
        await self.relay.aclose()


__all__ = ["GenerationSession", "MissingApiKey"]
