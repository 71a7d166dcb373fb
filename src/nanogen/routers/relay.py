"""Same-origin relay endpoints that stream third-party media back to the browser."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel
from starlette.background import BackgroundTask

from ..services.relay import MediaRelay, RelayError
from .generation import failure_response

router = APIRouter(prefix="/api", tags=["relay"])

_CACHE_CONTROL = "public, max-age=86400"
_VIDEO_FILENAME = "nano-video.mp4"


class ProxyVideoBody(BaseModel):
    url: str = ""


def get_relay(request: Request) -> MediaRelay:
    session = getattr(request.app.state, "session", None)
    if session is None:
        raise HTTPException(status_code=500, detail="Relay unavailable")
    return session.relay


async def _relay_response(
    relay: MediaRelay,
    url: str,
    *,
    default_type: str,
    extra_headers: dict[str, str] | None = None,
) -> StreamingResponse | JSONResponse:
    try:
        upstream = await relay.open(url)
    except RelayError as exc:
        return failure_response(exc.status_code, exc.detail)

    media_type = upstream.headers.get("Content-Type") or default_type
    headers = {"Cache-Control": _CACHE_CONTROL}
    if extra_headers:
        headers.update(extra_headers)
    return StreamingResponse(
        upstream.aiter_bytes(),
        media_type=media_type,
        headers=headers,
        background=BackgroundTask(upstream.aclose),
    )


@router.get("/proxy-image", response_model=None)
async def proxy_image(
    url: str = Query(default=""),
    relay: MediaRelay = Depends(get_relay),
) -> StreamingResponse | JSONResponse:
    """Stream an image from a third-party URL."""

    return await _relay_response(relay, url, default_type="image/png")


def _video_headers() -> dict[str, str]:
    return {"Content-Disposition": f'attachment; filename="{_VIDEO_FILENAME}"'}


@router.get("/proxy-video", response_model=None)
async def proxy_video(
    url: str = Query(default=""),
    relay: MediaRelay = Depends(get_relay),
) -> StreamingResponse | JSONResponse:
    return await _relay_response(
        relay, url, default_type="video/mp4", extra_headers=_video_headers()
    )


@router.post("/proxy-video", response_model=None)
async def proxy_video_post(
    body: ProxyVideoBody,
    relay: MediaRelay = Depends(get_relay),
) -> StreamingResponse | JSONResponse:
    """Variant accepting the target in a JSON body, for long signed URLs."""

    return await _relay_response(
        relay, body.url, default_type="video/mp4", extra_headers=_video_headers()
    )


__all__ = ["get_relay", "router"]
