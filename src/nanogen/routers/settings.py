"""Preference and server configuration endpoints."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from ..schemas.preferences import Preferences, PreferencesUpdate
from ..services.session import GenerationSession
from ..services.storage import StorageQuotaExceeded
from .generation import failure_response, get_session

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["settings"])


@router.get("/config/status")
async def config_status(
    session: GenerationSession = Depends(get_session),
) -> dict[str, Any]:
    """Report whether the server holds a fallback API key."""

    settings = session.settings
    return {
        "hasServerKey": settings.server_api_key is not None,
        "defaultModel": settings.default_model,
        "maxRunningTasks": settings.max_running_tasks,
    }


@router.get("/preferences", response_model=Preferences, response_model_by_alias=True)
async def read_preferences(
    session: GenerationSession = Depends(get_session),
) -> Preferences:
    return await session.preferences.get_preferences()


@router.put("/preferences", response_model=Preferences, response_model_by_alias=True)
async def update_preferences(
    payload: PreferencesUpdate,
    session: GenerationSession = Depends(get_session),
) -> Preferences | JSONResponse:
    try:
        return await session.preferences.update(payload)
    except StorageQuotaExceeded as exc:
        logger.warning("Preferences not saved: %s", exc)
        return failure_response(
            507, "Storage is full, preferences were not saved", "storage_quota"
        )


__all__ = ["router"]
