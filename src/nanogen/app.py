"""Application factory for the FastAPI service."""

from __future__ import annotations

import asyncio
import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from . import __version__
from .config import PROJECT_ROOT, get_settings
from .logging_handlers import DateStampedFileHandler, cleanup_old_logs, resolve_timezone
from .routers.generation import router as generation_router
from .routers.history import router as history_router
from .routers.relay import router as relay_router
from .routers.settings import router as settings_router
from .routers.tasks import router as tasks_router
from .services.session import GenerationSession

_LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
_LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"

logger = logging.getLogger(__name__)


def _configure_logging() -> None:
    """Configure logging from LOG_LEVEL, LOG_FILE and LOG_DIR."""
    # Load .env first so LOG_* variables are visible
    load_dotenv()

    log_level_str = os.getenv("LOG_LEVEL", "INFO").upper()
    log_level = getattr(logging, log_level_str, logging.INFO)
    formatter = logging.Formatter(_LOG_FORMAT, datefmt=_LOG_DATEFMT)
    handlers: list[logging.Handler] = []

    log_file = os.getenv("LOG_FILE")
    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    log_dir = os.getenv("LOG_DIR")
    if log_dir:
        dated_handler = DateStampedFileHandler(
            directory=log_dir,
            tz=resolve_timezone(os.getenv("LOG_TIMEZONE")),
        )
        dated_handler.setFormatter(formatter)
        handlers.append(dated_handler)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    handlers.append(console_handler)

    logging.basicConfig(level=log_level, handlers=handlers, force=True)

    logging.getLogger("nanogen").setLevel(log_level)
    for name in ("uvicorn", "uvicorn.access", "uvicorn.error"):
        logging.getLogger(name).setLevel(log_level)

    # httpx logs every request line at INFO
    noisy_level = log_level if log_level <= logging.DEBUG else logging.WARNING
    logging.getLogger("httpx").setLevel(noisy_level)
    logging.getLogger("httpcore").setLevel(noisy_level)

    if log_dir:
        try:
            retention_hours = int(os.getenv("LOG_RETENTION_HOURS", "0"))
        except ValueError:
            logger.warning("Ignoring invalid LOG_RETENTION_HOURS")
            retention_hours = 0
        cleanup_old_logs([log_dir], retention_hours)


def _resolve_under(base: Path, p: Path) -> Path:
    # Absolute paths are used as-is (tests, external mounts)
    if p.is_absolute():
        return p.resolve()
    resolved = (base / p).resolve()
    if not resolved.is_relative_to(base):
        raise ValueError(f"Configured path {resolved} escapes project root {base}")
    return resolved


def create_app() -> FastAPI:
    _configure_logging()

    settings = get_settings()
    storage_path = _resolve_under(PROJECT_ROOT, settings.storage_path)
    session = GenerationSession.from_settings(settings, storage_path=storage_path)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(
            "Generation endpoint %s, storage %s",
            settings.generation_api_url,
            storage_path,
        )
        try:
            yield
        finally:
            try:
                await asyncio.wait_for(session.aclose(), timeout=10.0)
            except asyncio.TimeoutError:
                logger.warning("Session shutdown timed out after 10s")

    app = FastAPI(
        title="Nano Image Generator",
        version=__version__,
        description="Streaming image and video generation backend.",
        lifespan=lifespan,
    )

    app.state.session = session

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(generation_router)
    app.include_router(tasks_router)
    app.include_router(history_router)
    app.include_router(settings_router)
    app.include_router(relay_router)

    @app.get("/api/health", tags=["health"])
    async def healthcheck() -> dict[str, str | int]:
        return {
            "status": "ok",
            "version": __version__,
            "runningTasks": session.tasks.running_count(),
        }

    return app


__all__ = ["create_app"]
