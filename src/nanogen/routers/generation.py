"""Generation API routes."""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, AsyncIterator, List, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Request, UploadFile
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sse_starlette.sse import EventSourceResponse

from ..generation.errors import GenerationError
from ..generation.media import to_data_uri
from ..generation.types import GenerationMode, MediaKind, Progress
from ..schemas.generation import (
    FrameVideoBody,
    GenerateImageBody,
    GenerateVideoBody,
    GenerationRequest,
    StreamGenerationBody,
)
from ..services.session import GenerationSession, MissingApiKey
from ..services.tasks import TaskLimitReached

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["generation"])

_UPLOAD_MIME_TYPES = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".webp": "image/webp",
    ".gif": "image/gif",
}


def get_session(request: Request) -> GenerationSession:
    session = getattr(request.app.state, "session", None)
    if session is None:
        raise HTTPException(status_code=500, detail="Generation session unavailable")
    return session


def failure_response(status_code: int, message: str, code: str | None = None) -> JSONResponse:
    content: dict[str, Any] = {"success": False, "error": message}
    if code:
        content["code"] = code
    return JSONResponse(status_code=status_code, content=content)


def _validation_message(exc: ValidationError) -> str:
    return "; ".join(str(error.get("msg", "")) for error in exc.errors()) or str(exc)


async def _build_request(
    session: GenerationSession,
    *,
    mode: GenerationMode,
    prompt: str,
    api_key: Optional[str],
    **fields: Any,
) -> GenerationRequest | JSONResponse:
    if not prompt or not prompt.strip():
        return failure_response(400, "Please enter a prompt")
    try:
        token = await session.resolve_api_key(api_key)
    except MissingApiKey as exc:
        return failure_response(400, str(exc))

    prefs = await session.preferences.get_preferences()
    if mode.kind is MediaKind.IMAGE:
        fields["model"] = fields.get("model") or prefs.model
    else:
        fields["ratio"] = fields.get("ratio") or prefs.video_ratio

    try:
        return GenerationRequest(mode=mode, prompt=prompt, api_key=token, **fields)
    except ValidationError as exc:
        return failure_response(400, _validation_message(exc))


async def _execute(
    session: GenerationSession, request: GenerationRequest | JSONResponse
) -> JSONResponse:
    if isinstance(request, JSONResponse):
        return request
    try:
        result = await session.run(request)
    except TaskLimitReached as exc:
        return failure_response(409, str(exc), "task_limit")
    except GenerationError as exc:
        return failure_response(exc.status_code, str(exc.detail), exc.error_code)
    return JSONResponse(content=result.to_api_payload())


@router.post("/generate")
async def generate_image(
    body: GenerateImageBody,
    session: GenerationSession = Depends(get_session),
) -> JSONResponse:
    """Text-to-image generation."""

    request = await _build_request(
        session,
        mode=GenerationMode.TEXT_TO_IMAGE,
        prompt=body.prompt,
        api_key=body.api_key,
        model=body.model,
    )
    return await _execute(session, request)


class UploadRejected(Exception):
    """An uploaded image or image list that cannot be used."""

    def __init__(self, status_code: int, message: str):
        super().__init__(message)
        self.status_code = status_code


async def _upload_to_data_uri(upload: UploadFile, max_bytes: int) -> str:
    data = await upload.read(max_bytes + 1)
    if len(data) > max_bytes:
        raise UploadRejected(413, f"Image exceeds maximum size of {max_bytes} bytes")
    mime = upload.content_type
    if not mime or not mime.startswith("image/"):
        suffix = Path(upload.filename or "").suffix.lower()
        mime = _UPLOAD_MIME_TYPES.get(suffix, "image/jpeg")
    return to_data_uri(data, mime)


def _parse_base64_list(raw: Optional[str]) -> list[str]:
    if not raw:
        return []
    try:
        values = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise UploadRejected(400, "referenceImagesBase64 must be a JSON array") from exc
    if not isinstance(values, list) or not all(isinstance(v, str) for v in values):
        raise UploadRejected(400, "referenceImagesBase64 must be a JSON array")
    return values


@router.post("/edit")
async def edit_image(
    prompt: str = Form(default=""),
    apiKey: Optional[str] = Form(default=None),
    model: Optional[str] = Form(default=None),
    mainImageBase64: Optional[str] = Form(default=None),
    referenceImagesBase64: Optional[str] = Form(default=None),
    mainImage: Optional[UploadFile] = File(default=None),
    referenceImages: Optional[List[UploadFile]] = File(default=None),
    session: GenerationSession = Depends(get_session),
) -> JSONResponse:
    """Image edit from a main image plus up to five references."""

    max_bytes = session.settings.upload_max_size_bytes
    references: list[str] = []
    try:
        if mainImageBase64:
            main_image = mainImageBase64
        elif mainImage is not None:
            main_image = await _upload_to_data_uri(mainImage, max_bytes)
        else:
            return failure_response(400, "Please upload an image to edit")

        for upload in referenceImages or []:
            references.append(await _upload_to_data_uri(upload, max_bytes))
        references.extend(_parse_base64_list(referenceImagesBase64))
    except UploadRejected as exc:
        return failure_response(exc.status_code, str(exc))

    request = await _build_request(
        session,
        mode=GenerationMode.IMAGE_EDIT,
        prompt=prompt,
        api_key=apiKey,
        model=model,
        main_image=main_image,
        reference_images=references,
    )
    return await _execute(session, request)


@router.post("/video")
async def generate_video(
    body: GenerateVideoBody,
    session: GenerationSession = Depends(get_session),
) -> JSONResponse:
    request = await _build_request(
        session,
        mode=GenerationMode.TEXT_TO_VIDEO,
        prompt=body.prompt,
        api_key=body.api_key,
        ratio=body.ratio,
    )
    return await _execute(session, request)


@router.post("/frame-video")
async def generate_frame_video(
    body: FrameVideoBody,
    session: GenerationSession = Depends(get_session),
) -> JSONResponse:
    """Video generation from a start frame and optional end frame."""

    if not body.start_frame:
        return failure_response(400, "Please upload a start frame")
    request = await _build_request(
        session,
        mode=GenerationMode.FRAME_TO_VIDEO,
        prompt=body.prompt,
        api_key=body.api_key,
        ratio=body.ratio,
        start_frame=body.start_frame,
        end_frame=body.end_frame,
    )
    return await _execute(session, request)


@router.post("/generations/stream", response_model=None)
async def stream_generation(
    body: StreamGenerationBody,
    session: GenerationSession = Depends(get_session),
) -> EventSourceResponse | JSONResponse:
    """Run a generation and stream its progress as Server-Sent Events."""

    request = await _build_request(
        session,
        mode=body.mode,
        prompt=body.prompt,
        api_key=body.api_key,
        model=body.model,
        ratio=body.ratio,
        main_image=body.main_image,
        reference_images=body.reference_images,
        start_frame=body.start_frame,
        end_frame=body.end_frame,
    )
    if isinstance(request, JSONResponse):
        return request
    if not session.tasks.can_add():
        return failure_response(409, str(TaskLimitReached(session.tasks.max_running)), "task_limit")

    async def event_publisher() -> AsyncIterator[dict[str, str]]:
        queue: asyncio.Queue[Progress | None] = asyncio.Queue()
        job = asyncio.create_task(session.run(request, queue.put_nowait))
        job.add_done_callback(lambda _: queue.put_nowait(None))
        try:
            while (progress := await queue.get()) is not None:
                yield {"event": "progress", "data": json.dumps(progress.asdict())}

            try:
                result = job.result()
            except TaskLimitReached as exc:
                error = {"success": False, "error": str(exc), "code": "task_limit"}
                yield {"event": "error", "data": json.dumps(error)}
            except GenerationError as exc:
                error = {
                    "success": False,
                    "error": str(exc.detail),
                    "code": exc.error_code,
                }
                yield {"event": "error", "data": json.dumps(error, ensure_ascii=False)}
            else:
                yield {
                    "event": "result",
                    "data": json.dumps(result.to_api_payload(), ensure_ascii=False),
                }
        finally:
            if not job.done():
                logger.info("Client disconnected; cancelling generation")
                job.cancel()

    return EventSourceResponse(event_publisher())


__all__ = ["failure_response", "get_session", "router"]
