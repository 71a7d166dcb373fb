"""Type definitions shared across the generation pipeline."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Callable


class MediaKind(str, Enum):
    IMAGE = "image"
    VIDEO = "video"


class GenerationMode(str, Enum):
    TEXT_TO_IMAGE = "text-to-image"
    IMAGE_EDIT = "image-edit"
    TEXT_TO_VIDEO = "text-to-video"
    FRAME_TO_VIDEO = "frame-to-video"

    @property
    def kind(self) -> MediaKind:
        if self in (GenerationMode.TEXT_TO_VIDEO, GenerationMode.FRAME_TO_VIDEO):
            return MediaKind.VIDEO
        return MediaKind.IMAGE


@dataclass(frozen=True)
class Progress:
    """A progress report: a human-readable stage and a percent in 0..100."""

    stage: str
    percent: float

    def asdict(self) -> dict[str, object]:
        return {"stage": self.stage, "percent": self.percent}


ProgressCallback = Callable[[Progress], None]


@dataclass(frozen=True)
class ExtractedMediaReference:
    url: str
    kind: MediaKind


@dataclass(frozen=True)
class StreamedMedia:
    """Outcome of one driven request before it becomes a `GenerationResult`."""

    source_url: str
    kind: MediaKind
    # data-URI for images, the remote URL for videos
    payload: str


__all__ = [
    "ExtractedMediaReference",
    "GenerationMode",
    "MediaKind",
    "Progress",
    "ProgressCallback",
    "StreamedMedia",
]
