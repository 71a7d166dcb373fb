"""Server-side fetching of third-party media for the proxy endpoints."""

from __future__ import annotations

import asyncio
import logging
from urllib.parse import urlparse

import httpx

from ..config import Settings
from ..generation.errors import RelayFetchFailure
from ..generation.media import FetchedMedia, redact_url

logger = logging.getLogger(__name__)

MAX_REDIRECTS = 5


class RelayError(Exception):
    """Raised when a relay target cannot be retrieved."""

    def __init__(self, status_code: int, detail: str):
        super().__init__(detail)
        self.status_code = status_code
        self.detail = detail


def is_http_url(value: str) -> bool:
    parsed = urlparse(value)
    return parsed.scheme in {"http", "https"} and bool(parsed.netloc)


def is_allowed_host(url: str, allowlist: list[str] | None) -> bool:
    """Return True if URL hostname matches the allowlist. Empty allowlist allows all."""

    host = (urlparse(url).hostname or "").lower()
    if not allowlist:
        return True
    for allowed in allowlist:
        candidate = allowed.strip().lower()
        if not candidate:
            continue
        if host == candidate or host.endswith("." + candidate):
            return True
    return False


class MediaRelay:
    """Fetch remote media on behalf of the browser."""

    def __init__(
        self,
        settings: Settings,
        *,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._settings = settings
        self._http_client = http_client
        self._owns_client = http_client is None
        self._client_lock = asyncio.Lock()

    async def _get_http_client(self) -> httpx.AsyncClient:
        if self._http_client is not None:
            return self._http_client
        async with self._client_lock:
            if self._http_client is None:
                self._http_client = httpx.AsyncClient(
                    timeout=httpx.Timeout(
                        self._settings.relay_timeout_seconds,
                        connect=self._settings.connect_timeout_seconds,
                    ),
                    follow_redirects=False,
                )
        return self._http_client

    async def aclose(self) -> None:
        if self._owns_client and self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    def _validate_target(self, url: str) -> None:
        if not url:
            raise RelayError(400, "Missing media URL")
        if not is_http_url(url):
            raise RelayError(400, "Only http(s) URLs can be relayed")
        if not is_allowed_host(url, self._settings.relay_allowed_hosts):
            raise RelayError(403, "Host is not allowed for relaying")

    async def open(self, url: str) -> httpx.Response:
        """Start streaming ``url``; the caller must close the response.

        Redirects are followed by hand so every hop passes the same scheme and
        host checks as the original target.
        """

        self._validate_target(url)
        client = await self._get_http_client()
        logger.info("Relaying %s", redact_url(url))
        target = url
        for _ in range(MAX_REDIRECTS + 1):
            request = client.build_request("GET", target)
            try:
                response = await client.send(request, stream=True, follow_redirects=False)
            except httpx.HTTPError as exc:
                logger.warning("Relay fetch failed for %s: %s", redact_url(target), exc)
                raise RelayError(502, f"Relay fetch failed: {exc}") from exc

            if not response.is_redirect:
                break
            location = str(response.url.join(response.headers["Location"]))
            await response.aclose()
            logger.debug("Relay redirected to %s", redact_url(location))
            self._validate_target(location)
            target = location
        else:
            raise RelayError(502, f"Too many redirects (limit {MAX_REDIRECTS})")

        if response.status_code >= 400:
            body = await response.aread()
            await response.aclose()
            logger.warning(
                "Relay target %s answered %d: %s",
                redact_url(target),
                response.status_code,
                body[:200].decode("utf-8", errors="replace"),
            )
            raise RelayError(response.status_code, "Media download failed")
        return response

    async def fetch(self, url: str) -> FetchedMedia:
        """Fetch ``url`` fully, enforcing the configured size cap."""

        response = await self.open(url)
        try:
            chunks: list[bytes] = []
            total = 0
            async for chunk in response.aiter_bytes():
                total += len(chunk)
                if total > self._settings.relay_max_bytes:
                    raise RelayError(
                        413,
                        f"Media exceeds maximum size of {self._settings.relay_max_bytes} bytes",
                    )
                chunks.append(chunk)
        except httpx.HTTPError as exc:
            raise RelayError(502, f"Relay fetch failed: {exc}") from exc
        finally:
            await response.aclose()

        content_type = response.headers.get("Content-Type", "").split(";")[0].strip()
        return FetchedMedia(data=b"".join(chunks), content_type=content_type or None)


class DirectMediaFetcher:
    """Media fetcher that uses the in-process relay instead of an HTTP hop."""

    def __init__(self, relay: MediaRelay) -> None:
        self._relay = relay

    async def fetch(self, url: str) -> FetchedMedia:
        try:
            return await self._relay.fetch(url)
        except RelayError as exc:
            raise RelayFetchFailure(
                f"Image download failed: {redact_url(url)} ({exc.detail})"
            ) from exc


__all__ = [
    "DirectMediaFetcher",
    "MediaRelay",
    "RelayError",
    "is_allowed_host",
    "is_http_url",
]
