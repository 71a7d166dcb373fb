"""Heuristic media URL extraction from free-form model output.

Model output is prose, so the media URL is never reliably delimited. Each
candidate is scored by file extension and keywords; if nothing scores, the
first URL in the text is returned so that a fetch is still attempted.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional

from .types import ExtractedMediaReference, MediaKind


@dataclass(frozen=True)
class _KindRule:
    pattern: re.Pattern[str]
    extensions: tuple[str, ...]
    keywords: tuple[str, ...]


_RULES: dict[MediaKind, _KindRule] = {
    MediaKind.IMAGE: _KindRule(
        pattern=re.compile(r"https?://[^\s\"\\)\]>]+"),
        extensions=(".png", ".jpg", ".jpeg", ".webp", ".gif"),
        keywords=("image", "cdn", "storage"),
    ),
    MediaKind.VIDEO: _KindRule(
        pattern=re.compile(r"https?://[^\s\"\\)\]>']+"),
        extensions=(".mp4", ".webm"),
        keywords=("video", "videofx"),
    ),
}

_TRAILING_NOISE = re.compile(r"[\"'\\>]+$")


def strip_trailing_noise(url: str) -> str:
    return _TRAILING_NOISE.sub("", url)


def find_candidates(text: str, kind: MediaKind) -> list[str]:
    """Return every URL-looking substring in order of appearance."""

    return _RULES[kind].pattern.findall(text)


def is_strong_match(url: str, kind: MediaKind) -> bool:
    rule = _RULES[kind]
    if url.lower().endswith(rule.extensions):
        return True
    return any(keyword in url for keyword in rule.keywords)


def extract_media_url(text: str, kind: MediaKind) -> Optional[str]:
    """Return the URL most likely to be the generated asset, or ``None``."""

    candidates = [strip_trailing_noise(url) for url in find_candidates(text, kind)]
    if not candidates:
        return None
    for url in candidates:
        if is_strong_match(url, kind):
            return url
    return candidates[0]


def find_media_reference(
    text: str, kind: MediaKind
) -> Optional[ExtractedMediaReference]:
    url = extract_media_url(text, kind)
    if url is None:
        return None
    return ExtractedMediaReference(url=url, kind=kind)


__all__ = [
    "extract_media_url",
    "find_candidates",
    "find_media_reference",
    "is_strong_match",
    "strip_trailing_noise",
]
