"""Fetch extracted media through the relay and convert it to data-URIs."""

from __future__ import annotations

import base64
import binascii
import logging
from dataclasses import dataclass
from typing import Optional, Protocol
from urllib.parse import unquote_to_bytes, urlparse, urlunparse

import httpx

from .errors import RelayFetchFailure

logger = logging.getLogger(__name__)

DEFAULT_IMAGE_MIME = "image/png"


@dataclass(frozen=True)
class FetchedMedia:
    data: bytes
    content_type: Optional[str] = None


class MediaFetcher(Protocol):
    async def fetch(self, url: str) -> FetchedMedia:
        ...


class RelayMediaFetcher:
    """Retrieve remote media through the same-origin image relay endpoint."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        relay_base_url: str,
        *,
        path: str = "/api/proxy-image",
    ) -> None:
        self._client = http_client
        self._endpoint = f"{relay_base_url.rstrip('/')}{path}"

    async def fetch(self, url: str) -> FetchedMedia:
        logger.debug("Fetching media via relay: %s", redact_url(url))
        try:
            response = await self._client.get(self._endpoint, params={"url": url})
        except httpx.HTTPError as exc:
            raise RelayFetchFailure(
                f"Image download failed: {redact_url(url)} ({exc})"
            ) from exc

        if response.status_code >= 400:
            raise RelayFetchFailure(
                f"Image download failed: {redact_url(url)}",
                status_code=response.status_code,
            )

        content_type = response.headers.get("Content-Type", "").split(";")[0].strip()
        return FetchedMedia(data=response.content, content_type=content_type or None)


def to_data_uri(data: bytes, mime_type: Optional[str] = None) -> str:
    """Encode bytes as a base64 data-URI, sniffing the type when unknown."""

    mime = mime_type or sniff_mime_from_bytes(data) or DEFAULT_IMAGE_MIME
    encoded = base64.b64encode(data).decode("ascii")
    return f"data:{mime};base64,{encoded}"


def media_to_data_uri(media: FetchedMedia) -> str:
    mime = media.content_type
    # Relays commonly answer with a generic type for signed storage URLs
    if not mime or mime == "application/octet-stream":
        mime = None
    return to_data_uri(media.data, mime)


def decode_data_uri(value: str) -> tuple[bytes | None, str | None]:
    if not isinstance(value, str) or not value.startswith("data:"):
        return None, None

    header, _, data_part = value.partition(",")
    if not data_part:
        return None, None

    meta = header[5:]
    if ";" in meta:
        mime, *params = meta.split(";")
    else:
        mime, params = meta, []

    mime_type = mime or "application/octet-stream"
    if "base64" in {param.lower() for param in params}:
        data_bytes = safe_b64decode(data_part)
    else:
        data_bytes = unquote_to_bytes(data_part)

    return data_bytes, mime_type


def safe_b64decode(value: str) -> bytes | None:
    cleaned = value.strip().replace("\n", "").replace("\r", "")
    padding = len(cleaned) % 4
    if padding:
        cleaned += "=" * (4 - padding)
    try:
        return base64.b64decode(cleaned, validate=True)
    except (binascii.Error, ValueError):
        return None


def is_data_uri(value: str) -> bool:
    return isinstance(value, str) and value.startswith("data:")


def sniff_mime_from_bytes(data: bytes) -> str | None:
    """Guess a media type from magic bytes for common formats."""

    if not data or len(data) < 12:
        return None
    if data.startswith(b"\x89PNG\r\n\x1a\n"):
        return "image/png"
    if data[:3] == b"\xff\xd8\xff":
        return "image/jpeg"
    if data.startswith(b"GIF87a") or data.startswith(b"GIF89a"):
        return "image/gif"
    if data.startswith(b"RIFF") and data[8:12] == b"WEBP":
        return "image/webp"
    if data[4:8] == b"ftyp":
        return "video/mp4"
    if data.startswith(b"\x1a\x45\xdf\xa3"):
        return "video/webm"
    return None


def redact_url(url: str) -> str:
    """Drop query and fragment, which often carry signatures."""

    try:
        parsed = urlparse(url)
    except ValueError:
        return url
    return urlunparse(parsed._replace(query="", fragment=""))


__all__ = [
    "FetchedMedia",
    "MediaFetcher",
    "RelayMediaFetcher",
    "decode_data_uri",
    "is_data_uri",
    "media_to_data_uri",
    "redact_url",
    "sniff_mime_from_bytes",
    "to_data_uri",
]
