"""Schemas for persisted user preferences."""

from __future__ import annotations

from typing import Container, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..generation.models import IMAGE_RATIOS, IMAGE_VERSIONS, VIDEO_MODELS

Theme = Literal["dark", "light"]


def _check_choice(value: Optional[str], choices: Container[str], label: str) -> Optional[str]:
    if value is not None and value not in choices:
        raise ValueError(f"Unknown {label}: {value}")
    return value


class Preferences(BaseModel):
    """Preferences as returned to the client. The stored token is never echoed."""

    model_config = ConfigDict(populate_by_name=True)

    ratio: str = "landscape"
    model_version: str = Field(default="gemini-3.0-pro", alias="modelVersion")
    theme: Theme = "dark"
    video_ratio: str = Field(default="landscape", alias="videoRatio")
    has_api_key: bool = Field(default=False, alias="hasApiKey")
    model: str = ""


class PreferencesUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    api_key: Optional[str] = Field(default=None, alias="apiKey")
    ratio: Optional[str] = None
    model_version: Optional[str] = Field(default=None, alias="modelVersion")
    theme: Optional[Theme] = None
    video_ratio: Optional[str] = Field(default=None, alias="videoRatio")

    @field_validator("ratio")
    @classmethod
    def _known_ratio(cls, value: Optional[str]) -> Optional[str]:
        return _check_choice(value, IMAGE_RATIOS, "ratio")

    @field_validator("model_version")
    @classmethod
    def _known_version(cls, value: Optional[str]) -> Optional[str]:
        return _check_choice(value, IMAGE_VERSIONS, "model version")

    @field_validator("video_ratio")
    @classmethod
    def _known_video_ratio(cls, value: Optional[str]) -> Optional[str]:
        return _check_choice(value, VIDEO_MODELS["text2video"], "video ratio")


__all__ = ["Preferences", "PreferencesUpdate", "Theme"]
