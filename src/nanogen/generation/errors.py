"""Failure taxonomy for the generation pipeline."""

from __future__ import annotations

from typing import Any

from fastapi import status

_BODY_PREVIEW_CHARS = 200


class GenerationError(Exception):
    """Base class for every failure a generation request can end with."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    error_code: str = "generation_failed"

    def __init__(self, detail: Any, *, status_code: int | None = None):
        super().__init__(str(detail))
        self.detail = detail
        if status_code is not None:
            self.status_code = status_code


class NetworkFailure(GenerationError):
    """The upstream request could not complete (DNS, connection, reset)."""

    status_code = status.HTTP_502_BAD_GATEWAY
    error_code = "network"


class GenerationTimeout(NetworkFailure):
    """The request exceeded the total deadline and was aborted."""

    status_code = status.HTTP_504_GATEWAY_TIMEOUT
    error_code = "timeout"

    def __init__(self, timeout_seconds: float):
        super().__init__(f"Generation timed out after {timeout_seconds:g} seconds")
        self.timeout_seconds = timeout_seconds


class UpstreamRejection(GenerationError):
    """The generation API answered with a non-success status."""

    error_code = "upstream_rejected"

    def __init__(self, upstream_status: int, body: str):
        preview = body[:_BODY_PREVIEW_CHARS]
        super().__init__(
            f"API request failed ({upstream_status}): {preview}",
            status_code=upstream_status,
        )
        self.upstream_status = upstream_status
        self.body = preview


class InBandGenerationError(GenerationError):
    """The stream itself reported a failed generation."""

    status_code = 422
    error_code = "generation_error"


class ExtractionFailure(GenerationError):
    """The stream finished cleanly but carried no usable media URL."""

    status_code = 422
    error_code = "extraction_failed"


class RelayFetchFailure(GenerationError):
    """The extracted media URL could not be retrieved through the relay."""

    status_code = status.HTTP_502_BAD_GATEWAY
    error_code = "relay_failed"


__all__ = [
    "ExtractionFailure",
    "GenerationError",
    "GenerationTimeout",
    "InBandGenerationError",
    "NetworkFailure",
    "RelayFetchFailure",
    "UpstreamRejection",
]
