"""File logging helpers: date-stamped log files and retention cleanup."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone, tzinfo
from pathlib import Path
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

_DEFAULT_PREFIX = "nanogen"

logger = logging.getLogger(__name__)


def resolve_timezone(name: str | None) -> tzinfo:
    """Return the zone called ``name``, or UTC when unset or unknown."""

    if not name:
        return timezone.utc
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Unknown log timezone %r; using UTC", name)
        return timezone.utc


def dated_log_path(
    directory: str | Path,
    prefix: str,
    *,
    when: datetime,
    tz: tzinfo = timezone.utc,
) -> Path:
    """Build ``<directory>/<YYYY-MM-DD>/<prefix>_<YYYY-MM-DD_HH-MM-SS>_<TZ>.log``."""

    local_time = when.astimezone(tz)
    zone_label = local_time.tzname() or "UTC"
    date_folder = local_time.strftime("%Y-%m-%d")
    stamp = local_time.strftime("%Y-%m-%d_%H-%M-%S")
    return (Path(directory) / date_folder / f"{prefix}_{stamp}_{zone_label}.log").resolve()


class DateStampedFileHandler(logging.FileHandler):
    """File handler that writes one log file per process start, grouped by day.

    ``filename`` with a suffix names the directory and prefix at once
    (``logs/server.log`` writes under ``logs/`` with prefix ``server``); a
    suffix-less ``filename`` or ``directory`` names the directory only.
    """

    def __init__(
        self,
        filename: str | Path | None = None,
        *,
        directory: str | Path | None = None,
        prefix: str | None = None,
        tz: tzinfo | None = None,
        encoding: str | None = "utf-8",
        mode: str = "a",
        delay: bool = False,
        errors: Optional[str] = None,
        current_time: datetime | None = None,
    ) -> None:
        timestamp = current_time or datetime.now(timezone.utc)

        if filename:
            filename_path = Path(filename)
            if filename_path.suffix:
                base_dir = filename_path.parent
                base_prefix = prefix or filename_path.stem or _DEFAULT_PREFIX
            else:
                base_dir = filename_path
                base_prefix = prefix or _DEFAULT_PREFIX
        else:
            base_dir = Path(directory) if directory else Path("logs")
            base_prefix = prefix or _DEFAULT_PREFIX

        log_path = dated_log_path(
            base_dir, base_prefix, when=timestamp, tz=tz or timezone.utc
        )
        log_path.parent.mkdir(parents=True, exist_ok=True)
        super().__init__(
            log_path,
            mode=mode,
            encoding=encoding,
            delay=delay,
            errors=errors,
        )


def cleanup_old_logs(
    log_directories: list[str | Path],
    retention_hours: int,
    log: logging.Logger | None = None,
) -> tuple[int, int]:
    """Delete ``*.log`` files older than ``retention_hours``.

    A retention of zero or less disables cleanup. Day folders left empty are
    removed as well.

    Returns:
        Tuple of (files_deleted, errors_encountered)
    """
    if retention_hours <= 0:
        return (0, 0)

    log = log or logger
    cutoff_time = datetime.now(timezone.utc) - timedelta(hours=retention_hours)
    files_deleted = 0
    errors = 0

    for directory in log_directories:
        dir_path = Path(directory).resolve()
        if not dir_path.is_dir():
            continue

        for log_file in dir_path.rglob("*.log"):
            try:
                mtime = datetime.fromtimestamp(log_file.stat().st_mtime, tz=timezone.utc)
                if mtime < cutoff_time:
                    log_file.unlink()
                    files_deleted += 1
                    log.debug("Deleted old log file: %s", log_file)
            except OSError as exc:
                errors += 1
                log.warning("Failed to delete %s: %s", log_file, exc)

        for day_dir in dir_path.iterdir():
            if day_dir.is_dir() and not any(day_dir.iterdir()):
                try:
                    day_dir.rmdir()
                except OSError as exc:
                    log.debug("Could not remove %s: %s", day_dir, exc)

    if files_deleted:
        log.info(
            "Log cleanup complete: %d file(s) deleted, %d error(s) encountered",
            files_deleted,
            errors,
        )

    return (files_deleted, errors)


__all__ = [
    "DateStampedFileHandler",
    "cleanup_old_logs",
    "dated_log_path",
    "resolve_timezone",
]
