"""Pydantic models for generation requests, results and history entries."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Annotated, Any, List, Literal, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    SecretStr,
    field_validator,
    model_validator,
)

from ..generation.media import decode_data_uri, is_data_uri
from ..generation.types import GenerationMode, MediaKind

MAX_REFERENCE_IMAGES = 5


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return uuid.uuid4().hex


class ImageUrl(BaseModel):
    url: str


class TextPart(BaseModel):
    """A text fragment of a user message."""

    type: Literal["text"] = "text"
    text: str


class ImageUrlPart(BaseModel):
    """An image reference (data-URI) attached to a user message."""

    type: Literal["image_url"] = "image_url"
    image_url: ImageUrl

    @classmethod
    def from_url(cls, url: str) -> "ImageUrlPart":
        return cls(image_url=ImageUrl(url=url))


ContentPart = Annotated[Union[TextPart, ImageUrlPart], Field(discriminator="type")]


def build_messages(parts: List[ContentPart]) -> list[dict[str, Any]]:
    """Serialize content parts into the upstream single-user-message shape."""

    content: list[dict[str, Any]] = []
    for part in parts:
        if isinstance(part, TextPart):
            content.append({"type": "text", "text": part.text})
        elif isinstance(part, ImageUrlPart):
            content.append({"type": "image_url", "image_url": {"url": part.image_url.url}})
        else:  # pragma: no cover - guarded by the discriminated union
            raise TypeError(f"Unsupported content part: {type(part).__name__}")
    return [{"role": "user", "content": content}]


class GenerationRequest(BaseModel):
    """One user action, fixed once dispatched."""

    model_config = ConfigDict(frozen=True)

    mode: GenerationMode
    prompt: str
    api_key: SecretStr
    model: Optional[str] = None
    ratio: Optional[str] = None
    main_image: Optional[str] = None
    reference_images: List[str] = Field(default_factory=list)
    start_frame: Optional[str] = None
    end_frame: Optional[str] = None

    @field_validator("prompt")
    @classmethod
    def _prompt_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("prompt must not be empty")
        return value

    @field_validator("reference_images")
    @classmethod
    def _limit_references(cls, value: List[str]) -> List[str]:
        if len(value) > MAX_REFERENCE_IMAGES:
            raise ValueError(
                f"at most {MAX_REFERENCE_IMAGES} reference images are allowed"
            )
        return value

    @model_validator(mode="after")
    def _check_images(self) -> "GenerationRequest":
        if self.mode is GenerationMode.IMAGE_EDIT and not self.main_image:
            raise ValueError("image-edit requires main_image")
        if self.mode is GenerationMode.FRAME_TO_VIDEO and not self.start_frame:
            raise ValueError("frame-to-video requires start_frame")
        for image in self.images():
            data, _ = decode_data_uri(image)
            if not data:
                raise ValueError("images must be non-empty base64 data-URIs")
        return self

    @property
    def kind(self) -> MediaKind:
        return self.mode.kind

    def images(self) -> list[str]:
        """Images in the order they are sent upstream."""

        if self.mode is GenerationMode.IMAGE_EDIT:
            ordered = [self.main_image, *self.reference_images]
        elif self.mode is GenerationMode.FRAME_TO_VIDEO:
            ordered = [self.start_frame, self.end_frame]
        else:
            ordered = []
        return [image for image in ordered if image]

    def to_content_parts(self) -> list[ContentPart]:
        parts: list[ContentPart] = [TextPart(text=self.prompt)]
        parts.extend(ImageUrlPart.from_url(image) for image in self.images())
        return parts


class GenerationResult(BaseModel):
    """A completed generation, ready for display and history."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=_new_id)
    prompt: str
    kind: MediaKind
    mode: GenerationMode
    media_payload: str
    source_url: str
    created_at: datetime = Field(default_factory=_utcnow)

    @model_validator(mode="after")
    def _images_are_inline(self) -> "GenerationResult":
        if self.kind is MediaKind.IMAGE and not is_data_uri(self.media_payload):
            raise ValueError("image results must carry a data-URI payload")
        return self

    def to_api_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "success": True,
            "id": self.id,
            "prompt": self.prompt,
            "mode": self.mode.value,
            "createdAt": self.created_at.isoformat(),
        }
        if self.kind is MediaKind.IMAGE:
            payload["imageBase64"] = self.media_payload
            payload["imageUrl"] = self.source_url
        else:
            payload["videoUrl"] = self.media_payload
        return payload


_HISTORY_TYPES = {
    GenerationMode.TEXT_TO_IMAGE: "generate",
    GenerationMode.IMAGE_EDIT: "edit",
    GenerationMode.TEXT_TO_VIDEO: "video",
    GenerationMode.FRAME_TO_VIDEO: "frame-video",
}


class HistoryItem(BaseModel):
    """One persisted history entry, stored with camelCase keys."""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(default_factory=_new_id)
    prompt: str
    image_base64: Optional[str] = Field(default=None, alias="imageBase64")
    video_url: Optional[str] = Field(default=None, alias="videoUrl")
    type: str = "generate"
    media_type: MediaKind = Field(default=MediaKind.IMAGE, alias="mediaType")
    created_at: datetime = Field(default_factory=_utcnow, alias="createdAt")

    @classmethod
    def from_result(cls, result: GenerationResult) -> "HistoryItem":
        is_image = result.kind is MediaKind.IMAGE
        return cls(
            id=result.id,
            prompt=result.prompt,
            image_base64=result.media_payload if is_image else None,
            video_url=None if is_image else result.media_payload,
            type=_HISTORY_TYPES[result.mode],
            media_type=result.kind,
            created_at=result.created_at,
        )

    def to_storage(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class GenerateImageBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    prompt: str = ""
    api_key: Optional[str] = Field(default=None, alias="apiKey")
    model: Optional[str] = None


class GenerateVideoBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    prompt: str = ""
    api_key: Optional[str] = Field(default=None, alias="apiKey")
    ratio: Optional[str] = None


class FrameVideoBody(GenerateVideoBody):
    start_frame: Optional[str] = Field(default=None, alias="startFrame")
    end_frame: Optional[str] = Field(default=None, alias="endFrame")


class StreamGenerationBody(BaseModel):
    """Request body for the progress-streaming endpoint."""

    model_config = ConfigDict(populate_by_name=True)

    mode: GenerationMode
    prompt: str = ""
    api_key: Optional[str] = Field(default=None, alias="apiKey")
    model: Optional[str] = None
    ratio: Optional[str] = None
    main_image: Optional[str] = Field(default=None, alias="mainImage")
    reference_images: List[str] = Field(default_factory=list, alias="referenceImages")
    start_frame: Optional[str] = Field(default=None, alias="startFrame")
    end_frame: Optional[str] = Field(default=None, alias="endFrame")


__all__ = [
    "ContentPart",
    "FrameVideoBody",
    "GenerateImageBody",
    "GenerateVideoBody",
    "GenerationRequest",
    "GenerationResult",
    "HistoryItem",
    "ImageUrl",
    "ImageUrlPart",
    "MAX_REFERENCE_IMAGES",
    "StreamGenerationBody",
    "TextPart",
    "build_messages",
]
