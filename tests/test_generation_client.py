"""End-to-end tests for the streaming request driver against fake transports."""

from __future__ import annotations

import asyncio
import base64
import json
from typing import Any, AsyncIterator, Callable

import httpx
import pytest

from nanogen.config import Settings
from nanogen.generation import (
    ExtractionFailure,
    GenerationTimeout,
    InBandGenerationError,
    NetworkFailure,
    RelayFetchFailure,
    UpstreamRejection,
)
from nanogen.generation.client import GenerationClient
from nanogen.generation.media import FetchedMedia, RelayMediaFetcher
from nanogen.generation.types import MediaKind, Progress

UPSTREAM_URL = "https://upstream.test/v1/chat/completions"
IMAGE_URL = "https://cdn.example.com/out/result.png"
VIDEO_URL = "https://storage.example.com/videofx/clip.mp4"

PNG_BYTES = (
    b"\x89PNG\r\n\x1a\n\x00\x00\x00\rIHDR\x00\x00\x00\x01\x00\x00\x00\x01"
    b"\x08\x06\x00\x00\x00\x1f\x15\xc4\x89\x00\x00\x00\rIDATx\x9cc\xf8\x0f\x00\x00\x01\x00\x01\x00\x18\xdd\x8d\xb4\x00\x00\x00\x00IEND\xaeB`\x82"
)
PNG_DATA_URI = "data:image/png;base64," + base64.b64encode(PNG_BYTES).decode("ascii")


def _event(delta: dict[str, Any] | None = None, **record: Any) -> bytes:
    if delta is not None:
        record["choices"] = [{"index": 0, "delta": delta}]
    return f"data: {json.dumps(record, ensure_ascii=False)}\n\n".encode("utf-8")


DONE = b"data: [DONE]\n\n"


async def _chunks(parts: list[bytes]) -> AsyncIterator[bytes]:
    for part in parts:
        yield part


class FakeFetcher:
    def __init__(
        self,
        media: FetchedMedia | None = None,
        error: Exception | None = None,
    ) -> None:
        self.media = media or FetchedMedia(data=PNG_BYTES, content_type="image/png")
        self.error = error
        self.urls: list[str] = []

    async def fetch(self, url: str) -> FetchedMedia:
        self.urls.append(url)
        if self.error is not None:
            raise self.error
        return self.media


def make_client(
    handler: Callable[[httpx.Request], Any],
    *,
    fetcher: FakeFetcher | None = None,
    **overrides: Any,
) -> GenerationClient:
    settings = Settings(generation_api_url=UPSTREAM_URL, **overrides)
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return GenerationClient(
        settings,
        http_client=http_client,
        media_fetcher=fetcher or FakeFetcher(),
    )


def sse_handler(
    parts: list[bytes], captured: list[httpx.Request] | None = None
) -> Callable[[httpx.Request], httpx.Response]:
    def handler(request: httpx.Request) -> httpx.Response:
        if captured is not None:
            captured.append(request)
        return httpx.Response(
            200,
            headers={"Content-Type": "text/event-stream"},
            content=_chunks(parts),
        )

    return handler


@pytest.mark.anyio
async def test_generate_image_end_to_end() -> None:
    captured: list[httpx.Request] = []
    fetcher = FakeFetcher()
    client = make_client(
        sse_handler(
            [
                _event({"role": "assistant"}),
                _event({"reasoning_content": "drawing a cat"}),
                _event({"content": f"![image]({IMAGE_URL})"}),
                DONE,
            ],
            captured,
        ),
        fetcher=fetcher,
    )
    updates: list[Progress] = []

    result = await client.generate_image(
        "a cat", "secret-token", model="gemini-3.0-pro-image-square", on_progress=updates.append
    )

    assert result.kind is MediaKind.IMAGE
    assert result.media_payload == PNG_DATA_URI
    assert result.source_url == IMAGE_URL
    assert fetcher.urls == [IMAGE_URL]

    percents = [update.percent for update in updates]
    assert percents[0] == 5.0
    assert percents[-1] == 100.0
    assert all(later > earlier for earlier, later in zip(percents, percents[1:]))
    assert updates[-1].stage == "Done!"
    assert "Downloading image..." in [update.stage for update in updates]

    request = captured[0]
    assert request.headers["Authorization"] == "Bearer secret-token"
    body = json.loads(request.content)
    assert body["model"] == "gemini-3.0-pro-image-square"
    assert body["stream"] is True
    assert body["messages"] == [
        {"role": "user", "content": [{"type": "text", "text": "a cat"}]}
    ]


@pytest.mark.anyio
async def test_edit_image_sends_images_in_order() -> None:
    captured: list[httpx.Request] = []
    client = make_client(
        sse_handler([_event({"content": IMAGE_URL}), DONE], captured)
    )
    reference = "data:image/jpeg;base64," + base64.b64encode(b"ref-bytes").decode()

    await client.edit_image("make it blue", "token", PNG_DATA_URI, [reference])

    content = json.loads(captured[0].content)["messages"][0]["content"]
    assert [part["type"] for part in content] == ["text", "image_url", "image_url"]
    assert content[1]["image_url"]["url"] == PNG_DATA_URI
    assert content[2]["image_url"]["url"] == reference


@pytest.mark.anyio
async def test_default_model_used_when_none_given() -> None:
    captured: list[httpx.Request] = []
    client = make_client(
        sse_handler([_event({"content": IMAGE_URL}), DONE], captured),
        default_model="custom-default",
    )

    await client.generate_image("prompt", "token")

    assert json.loads(captured[0].content)["model"] == "custom-default"


@pytest.mark.anyio
async def test_generate_video_returns_url_without_fetching() -> None:
    captured: list[httpx.Request] = []
    fetcher = FakeFetcher()
    client = make_client(
        sse_handler(
            [
                _event({"content": "Preview https://example.com/thumb.jpg "}),
                _event({"content": f"video: {VIDEO_URL}"}),
                DONE,
            ],
            captured,
        ),
        fetcher=fetcher,
    )
    updates: list[Progress] = []

    result = await client.generate_video("waves", "token", ratio="portrait", on_progress=updates.append)

    assert result.kind is MediaKind.VIDEO
    assert result.media_payload == VIDEO_URL
    assert fetcher.urls == []
    assert updates[-1].percent == 100.0
    assert json.loads(captured[0].content)["model"] == "veo_3_1_t2v_portrait"


@pytest.mark.anyio
async def test_frame_video_uses_frame_model() -> None:
    captured: list[httpx.Request] = []
    client = make_client(sse_handler([_event({"content": VIDEO_URL}), DONE], captured))

    await client.generate_video_from_frames("animate", "token", PNG_DATA_URI)

    body = json.loads(captured[0].content)
    assert body["model"] == "veo_3_1_i2v_s_landscape"
    assert len(body["messages"][0]["content"]) == 2


@pytest.mark.anyio
async def test_upstream_rejection_carries_status_and_body() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(401, text="invalid token " + "x" * 500)

    client = make_client(handler)
    updates: list[Progress] = []

    with pytest.raises(UpstreamRejection) as exc_info:
        await client.generate_image("prompt", "bad", on_progress=updates.append)

    assert exc_info.value.status_code == 401
    assert "API request failed (401): invalid token" in str(exc_info.value)
    assert len(exc_info.value.body) == 200
    assert [update.percent for update in updates] == [5.0]


@pytest.mark.anyio
async def test_in_band_error_aborts_before_extraction() -> None:
    fetcher = FakeFetcher()
    client = make_client(
        sse_handler(
            [
                _event({"reasoning_content": "❌ 生成失败"}),
                _event({"content": IMAGE_URL}),
                DONE,
            ]
        ),
        fetcher=fetcher,
    )

    with pytest.raises(InBandGenerationError) as exc_info:
        await client.generate_image("prompt", "token")

    assert exc_info.value.status_code == 422
    assert "生成失败" in str(exc_info.value)
    assert fetcher.urls == []


@pytest.mark.anyio
async def test_error_record_aborts() -> None:
    client = make_client(
        sse_handler([_event(error={"message": "quota exceeded"}), DONE])
    )

    with pytest.raises(InBandGenerationError, match="quota exceeded"):
        await client.generate_image("prompt", "token")


@pytest.mark.anyio
async def test_missing_url_is_extraction_failure() -> None:
    client = make_client(
        sse_handler([_event({"content": "I could not draw that."}), DONE])
    )

    with pytest.raises(ExtractionFailure):
        await client.generate_image("prompt", "token")


@pytest.mark.anyio
async def test_relay_failure_propagates() -> None:
    fetcher = FakeFetcher(error=RelayFetchFailure("Image download failed"))
    client = make_client(
        sse_handler([_event({"content": IMAGE_URL}), DONE]), fetcher=fetcher
    )
    updates: list[Progress] = []

    with pytest.raises(RelayFetchFailure):
        await client.generate_image("prompt", "token", on_progress=updates.append)

    assert updates[-1].percent == 80.0


@pytest.mark.anyio
async def test_octet_stream_payload_is_sniffed() -> None:
    fetcher = FakeFetcher(
        media=FetchedMedia(data=PNG_BYTES, content_type="application/octet-stream")
    )
    client = make_client(
        sse_handler([_event({"content": IMAGE_URL}), DONE]), fetcher=fetcher
    )

    result = await client.generate_image("prompt", "token")

    assert result.media_payload.startswith("data:image/png;base64,")


@pytest.mark.anyio
async def test_connect_error_is_network_failure() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    client = make_client(handler)

    with pytest.raises(NetworkFailure) as exc_info:
        await client.generate_image("prompt", "token")

    assert not isinstance(exc_info.value, GenerationTimeout)
    assert exc_info.value.status_code == 502


@pytest.mark.anyio
async def test_deadline_aborts_stalled_stream() -> None:
    async def stalled() -> AsyncIterator[bytes]:
        yield _event({"content": "still working"})
        await asyncio.sleep(30)
        yield DONE

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=stalled())

    client = make_client(handler, request_timeout_seconds=1)

    with pytest.raises(GenerationTimeout) as exc_info:
        await client.generate_image("prompt", "token")

    assert exc_info.value.status_code == 504


@pytest.mark.anyio
async def test_stream_without_done_still_parses() -> None:
    client = make_client(sse_handler([_event({"content": IMAGE_URL})]))

    result = await client.generate_image("prompt", "token")

    assert result.source_url == IMAGE_URL


@pytest.mark.anyio
async def test_relay_media_fetcher_calls_proxy_endpoint() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        if request.url.params["url"].endswith("missing.png"):
            return httpx.Response(404)
        return httpx.Response(
            200, content=PNG_BYTES, headers={"Content-Type": "image/png; charset=binary"}
        )

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http_client:
        fetcher = RelayMediaFetcher(http_client, "http://relay.test/")

        media = await fetcher.fetch(IMAGE_URL)
        with pytest.raises(RelayFetchFailure) as exc_info:
            await fetcher.fetch("https://cdn.example.com/missing.png")

    assert seen[0].url.path == "/api/proxy-image"
    assert seen[0].url.params["url"] == IMAGE_URL
    assert media.content_type == "image/png"
    assert media.data == PNG_BYTES
    assert exc_info.value.status_code == 404


@pytest.mark.anyio
async def test_transport_read_timeout_is_network_failure() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("read timed out", request=request)

    client = make_client(handler)

    with pytest.raises(NetworkFailure) as exc_info:
        await client.generate_image("prompt", "token")

    assert not isinstance(exc_info.value, GenerationTimeout)
    assert exc_info.value.status_code == 502
    assert "300 seconds" not in str(exc_info.value)


def test_unprocessable_errors_use_422() -> None:
    assert InBandGenerationError.status_code == 422
    assert ExtractionFailure.status_code == 422
    assert GenerationTimeout.status_code == 504
