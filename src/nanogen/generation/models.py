"""Model identifier construction from aspect ratio and quality tier choices."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Literal

logger = logging.getLogger(__name__)

FALLBACK_IMAGE_MODEL = "gemini-3.0-pro-image-landscape"
DEFAULT_IMAGE_VERSION = "gemini-3.0-pro"
DEFAULT_VIDEO_RATIO = "landscape"


@dataclass(frozen=True)
class RatioConfig:
    suffix: str
    flash: bool
    pro: bool


@dataclass(frozen=True)
class VersionConfig:
    prefix: str
    suffix: str
    tier: Literal["flash", "pro"]


IMAGE_RATIOS: dict[str, RatioConfig] = {
    "portrait": RatioConfig(suffix="portrait", flash=True, pro=True),
    "landscape": RatioConfig(suffix="landscape", flash=True, pro=True),
    "square": RatioConfig(suffix="square", flash=False, pro=True),
    "four-three": RatioConfig(suffix="four-three", flash=False, pro=True),
    "three-four": RatioConfig(suffix="three-four", flash=False, pro=True),
}

IMAGE_VERSIONS: dict[str, VersionConfig] = {
    "gemini-2.5-flash": VersionConfig(
        prefix="gemini-2.5-flash-image", suffix="", tier="flash"
    ),
    "gemini-3.0-pro": VersionConfig(prefix="gemini-3.0-pro-image", suffix="", tier="pro"),
    "gemini-3.0-pro-2k": VersionConfig(
        prefix="gemini-3.0-pro-image", suffix="-2k", tier="pro"
    ),
    "gemini-3.0-pro-4k": VersionConfig(
        prefix="gemini-3.0-pro-image", suffix="-4k", tier="pro"
    ),
}

VIDEO_MODELS: dict[str, dict[str, str]] = {
    "text2video": {
        "landscape": "veo_3_1_t2v_landscape",
        "portrait": "veo_3_1_t2v_portrait",
    },
    "frame2video": {
        "landscape": "veo_3_1_i2v_s_landscape",
        "portrait": "veo_3_1_i2v_s_portrait",
    },
}


def supports_ratio(version: str, ratio: str) -> bool:
    version_config = IMAGE_VERSIONS.get(version)
    ratio_config = IMAGE_RATIOS.get(ratio)
    if version_config is None or ratio_config is None:
        return False
    if version_config.tier == "flash":
        return ratio_config.flash
    return ratio_config.pro


def resolve_image_version(version: str, ratio: str) -> str:
    """Return ``version`` or the default tier when it cannot render ``ratio``."""

    if version in IMAGE_VERSIONS and not supports_ratio(version, ratio):
        logger.debug(
            "Model version %s does not support ratio %s; using %s",
            version,
            ratio,
            DEFAULT_IMAGE_VERSION,
        )
        return DEFAULT_IMAGE_VERSION
    return version


def build_image_model(version: str, ratio: str) -> str:
    version_config = IMAGE_VERSIONS.get(resolve_image_version(version, ratio))
    ratio_config = IMAGE_RATIOS.get(ratio)
    if version_config is None or ratio_config is None:
        return FALLBACK_IMAGE_MODEL
    return f"{version_config.prefix}-{ratio_config.suffix}{version_config.suffix}"


def build_video_model(ratio: str | None, *, from_frames: bool = False) -> str:
    models = VIDEO_MODELS["frame2video" if from_frames else "text2video"]
    return models.get(ratio or DEFAULT_VIDEO_RATIO, models[DEFAULT_VIDEO_RATIO])


__all__ = [
    "IMAGE_RATIOS",
    "IMAGE_VERSIONS",
    "VIDEO_MODELS",
    "build_image_model",
    "build_video_model",
    "resolve_image_version",
    "supports_ratio",
]
