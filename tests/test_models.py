from __future__ import annotations

import pytest

from nanogen.generation.models import (
    FALLBACK_IMAGE_MODEL,
    build_image_model,
    build_video_model,
    resolve_image_version,
    supports_ratio,
)


@pytest.mark.parametrize(
    ("version", "ratio", "expected"),
    [
        ("gemini-3.0-pro", "portrait", "gemini-3.0-pro-image-portrait"),
        ("gemini-3.0-pro-2k", "square", "gemini-3.0-pro-image-square-2k"),
        ("gemini-3.0-pro-4k", "three-four", "gemini-3.0-pro-image-three-four-4k"),
        ("gemini-2.5-flash", "landscape", "gemini-2.5-flash-image-landscape"),
    ],
)
def test_build_image_model(version: str, ratio: str, expected: str) -> None:
    assert build_image_model(version, ratio) == expected


def test_flash_falls_back_to_pro_for_unsupported_ratio() -> None:
    assert not supports_ratio("gemini-2.5-flash", "square")
    assert resolve_image_version("gemini-2.5-flash", "square") == "gemini-3.0-pro"
    assert build_image_model("gemini-2.5-flash", "square") == "gemini-3.0-pro-image-square"


def test_unknown_choices_use_fallback_model() -> None:
    assert build_image_model("gemini-3.0-pro", "panorama") == FALLBACK_IMAGE_MODEL
    assert build_image_model("unknown", "portrait") == FALLBACK_IMAGE_MODEL


def test_build_video_model() -> None:
    assert build_video_model("portrait") == "veo_3_1_t2v_portrait"
    assert build_video_model(None) == "veo_3_1_t2v_landscape"
    assert build_video_model("square") == "veo_3_1_t2v_landscape"
    assert build_video_model("portrait", from_frames=True) == "veo_3_1_i2v_s_portrait"
