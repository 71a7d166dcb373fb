"""Streaming client that drives one generation request end to end."""

from __future__ import annotations

import asyncio
import logging
from typing import Iterable, Optional, Sequence

import httpx

from ..config import Settings
from ..schemas.generation import (
    ContentPart,
    GenerationRequest,
    GenerationResult,
    build_messages,
)
from .errors import (
    ExtractionFailure,
    GenerationTimeout,
    InBandGenerationError,
    NetworkFailure,
    UpstreamRejection,
)
from .media import MediaFetcher, RelayMediaFetcher, media_to_data_uri, redact_url
from .models import build_video_model
from .sse import StreamTranscript, parse_transcript
from .types import (
    GenerationMode,
    MediaKind,
    Progress,
    ProgressCallback,
    StreamedMedia,
)
from .urls import find_media_reference

logger = logging.getLogger(__name__)

STAGE_CONNECTING = "Connecting to server..."
STAGE_STREAMING = {
    MediaKind.IMAGE: "Creating image...",
    MediaKind.VIDEO: "Creating video...",
}
STAGE_PARSING = "Parsing response..."
STAGE_DOWNLOADING = "Downloading image..."
STAGE_CONVERTING = "Processing image..."
STAGE_DONE = "Done!"

PERCENT_CONNECTING = 5.0
PERCENT_STREAM_START = 15.0
PERCENT_STREAM_CAP = 70.0
PERCENT_PARSING = 75.0
PERCENT_DOWNLOADING = 80.0
PERCENT_CONVERTING = 90.0
PERCENT_DONE = 100.0


class _ProgressTracker:
    """Forward progress to the observer, keeping percents strictly increasing."""

    def __init__(self, callback: Optional[ProgressCallback]) -> None:
        self._callback = callback
        self._last = -1.0

    def report(self, stage: str, percent: float) -> None:
        if percent <= self._last:
            return
        self._last = percent
        if self._callback is not None:
            self._callback(Progress(stage=stage, percent=percent))


class GenerationClient:
    """Drive requests against the chat-completions generation endpoint.

    One call to :meth:`stream_media` posts the prompt, reads the SSE body
    incrementally while reporting progress, parses the transcript, extracts
    the media URL and, for images, fetches and inlines the bytes. The client
    holds no per-request state, so concurrent calls are independent.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        http_client: httpx.AsyncClient | None = None,
        media_fetcher: MediaFetcher | None = None,
        error_markers: Iterable[str] | None = None,
    ) -> None:
        self._settings = settings
        self._http_client = http_client
        self._owns_client = http_client is None
        self._media_fetcher = media_fetcher
        self._error_markers = tuple(
            settings.error_markers if error_markers is None else error_markers
        )
        self._client_lock = asyncio.Lock()

    @property
    def error_markers(self) -> tuple[str, ...]:
        return self._error_markers

    async def _get_http_client(self) -> httpx.AsyncClient:
        if self._http_client is not None:
            return self._http_client
        async with self._client_lock:
            if self._http_client is None:
                timeout = httpx.Timeout(
                    self._settings.request_timeout_seconds,
                    connect=self._settings.connect_timeout_seconds,
                )
                limits = httpx.Limits(max_connections=50, max_keepalive_connections=20)
                self._http_client = httpx.AsyncClient(
                    timeout=timeout,
                    limits=limits,
                    http2=True,
                )
        return self._http_client

    async def _get_media_fetcher(self) -> MediaFetcher:
        if self._media_fetcher is None:
            client = await self._get_http_client()
            self._media_fetcher = RelayMediaFetcher(
                client, str(self._settings.relay_base_url)
            )
        return self._media_fetcher

    async def aclose(self) -> None:
        if self._owns_client and self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    @property
    def _endpoint(self) -> str:
        return str(self._settings.generation_api_url)

    @staticmethod
    def _headers(api_key: str) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
            "Accept": "text/event-stream",
        }

    def _stream_percent(self, received_bytes: int) -> float:
        estimated = self._settings.estimated_stream_bytes
        span = PERCENT_STREAM_CAP - PERCENT_STREAM_START
        return min(
            PERCENT_STREAM_START + (received_bytes / estimated) * span,
            PERCENT_STREAM_CAP,
        )

    async def stream_media(
        self,
        parts: Sequence[ContentPart],
        api_key: str,
        model: str | None,
        kind: MediaKind,
        on_progress: Optional[ProgressCallback] = None,
    ) -> StreamedMedia:
        """Run one request/response cycle under the total deadline."""

        tracker = _ProgressTracker(on_progress)
        timeout = self._settings.request_timeout_seconds
        try:
            return await asyncio.wait_for(
                self._drive(list(parts), api_key, model, kind, tracker),
                timeout=timeout,
            )
        except asyncio.TimeoutError as exc:
            logger.warning("Generation request aborted after %.0fs", timeout)
            raise GenerationTimeout(timeout) from exc

    async def _drive(
        self,
        parts: list[ContentPart],
        api_key: str,
        model: str | None,
        kind: MediaKind,
        tracker: _ProgressTracker,
    ) -> StreamedMedia:
        tracker.report(STAGE_CONNECTING, PERCENT_CONNECTING)

        payload = {
            "model": model or self._settings.default_model,
            "stream": True,
            "messages": build_messages(parts),
        }
        transcript = await self._read_stream(payload, api_key, kind, tracker)

        tracker.report(STAGE_PARSING, PERCENT_PARSING)
        parsed = parse_transcript(transcript, self._error_markers)
        if parsed.error_detected:
            logger.info("Upstream reported a failed generation: %s", parsed.error_text)
            raise InBandGenerationError(parsed.error_text or "Generation failed")

        reference = find_media_reference(parsed.combined_text, kind)
        if reference is None:
            logger.debug("No %s URL in transcript: %s", kind.value, transcript)
            raise ExtractionFailure(
                f"Could not extract a {kind.value} URL from the response, please retry"
            )
        logger.info("Extracted %s URL %s", kind.value, redact_url(reference.url))

        if kind is MediaKind.VIDEO:
            tracker.report(STAGE_DONE, PERCENT_DONE)
            return StreamedMedia(
                source_url=reference.url, kind=kind, payload=reference.url
            )

        tracker.report(STAGE_DOWNLOADING, PERCENT_DOWNLOADING)
        fetcher = await self._get_media_fetcher()
        fetched = await fetcher.fetch(reference.url)

        tracker.report(STAGE_CONVERTING, PERCENT_CONVERTING)
        data_uri = media_to_data_uri(fetched)

        tracker.report(STAGE_DONE, PERCENT_DONE)
        return StreamedMedia(source_url=reference.url, kind=kind, payload=data_uri)

    async def _read_stream(
        self,
        payload: dict,
        api_key: str,
        kind: MediaKind,
        tracker: _ProgressTracker,
    ) -> str:
        client = await self._get_http_client()
        transcript = StreamTranscript()
        stage = STAGE_STREAMING[kind]
        try:
            async with client.stream(
                "POST",
                self._endpoint,
                headers=self._headers(api_key),
                json=payload,
            ) as response:
                if response.status_code >= 400:
                    body = await response.aread()
                    raise UpstreamRejection(
                        response.status_code, body.decode("utf-8", errors="replace")
                    )

                tracker.report(stage, PERCENT_STREAM_START)
                async for chunk in response.aiter_bytes():
                    if not chunk:
                        continue
                    transcript.feed(chunk)
                    tracker.report(stage, self._stream_percent(transcript.received_bytes))
                    if transcript.done:
                        break
        except httpx.ConnectTimeout as exc:
            raise NetworkFailure(f"Could not connect to the generation API: {exc}") from exc
        except httpx.TimeoutException as exc:
            raise NetworkFailure(
                f"Generation request timed out ({type(exc).__name__}): {exc}"
            ) from exc
        except httpx.HTTPError as exc:
            raise NetworkFailure(f"Generation request failed: {exc}") from exc

        logger.debug("Stream finished after %d bytes", transcript.received_bytes)
        return transcript.close()

    async def run(
        self,
        request: GenerationRequest,
        on_progress: Optional[ProgressCallback] = None,
    ) -> GenerationResult:
        """Dispatch a request by mode and wrap the outcome as a result."""

        model = request.model
        if request.kind is MediaKind.VIDEO and not model:
            model = build_video_model(
                request.ratio,
                from_frames=request.mode is GenerationMode.FRAME_TO_VIDEO,
            )

        media = await self.stream_media(
            request.to_content_parts(),
            request.api_key.get_secret_value(),
            model,
            request.kind,
            on_progress,
        )
        return GenerationResult(
            prompt=request.prompt,
            kind=media.kind,
            mode=request.mode,
            media_payload=media.payload,
            source_url=media.source_url,
        )

    async def generate_image(
        self,
        prompt: str,
        api_key: str,
        model: str | None = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> GenerationResult:
        request = GenerationRequest(
            mode=GenerationMode.TEXT_TO_IMAGE,
            prompt=prompt,
            api_key=api_key,
            model=model,
        )
        return await self.run(request, on_progress)

    async def edit_image(
        self,
        prompt: str,
        api_key: str,
        main_image: str,
        reference_images: Sequence[str] = (),
        model: str | None = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> GenerationResult:
        request = GenerationRequest(
            mode=GenerationMode.IMAGE_EDIT,
            prompt=prompt,
            api_key=api_key,
            model=model,
            main_image=main_image,
            reference_images=list(reference_images),
        )
        return await self.run(request, on_progress)

    async def generate_video(
        self,
        prompt: str,
        api_key: str,
        ratio: str | None = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> GenerationResult:
        request = GenerationRequest(
            mode=GenerationMode.TEXT_TO_VIDEO,
            prompt=prompt,
            api_key=api_key,
            ratio=ratio,
        )
        return await self.run(request, on_progress)

    async def generate_video_from_frames(
        self,
        prompt: str,
        api_key: str,
        start_frame: str,
        end_frame: str | None = None,
        ratio: str | None = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> GenerationResult:
        request = GenerationRequest(
            mode=GenerationMode.FRAME_TO_VIDEO,
            prompt=prompt,
            api_key=api_key,
            ratio=ratio,
            start_frame=start_frame,
            end_frame=end_frame,
        )
        return await self.run(request, on_progress)


__all__ = ["GenerationClient"]
