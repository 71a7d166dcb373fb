"""Generation pipeline: SSE parsing, URL extraction and the failure taxonomy.

The streaming driver lives in :mod:`nanogen.generation.client`.
"""

from .errors import (
    ExtractionFailure,
    GenerationError,
    GenerationTimeout,
    InBandGenerationError,
    NetworkFailure,
    RelayFetchFailure,
    UpstreamRejection,
)
from .sse import ParsedStreamResult, StreamTranscript, parse_transcript
from .types import GenerationMode, MediaKind, Progress, ProgressCallback
from .urls import extract_media_url, find_media_reference

__all__ = [
    "ExtractionFailure",
    "GenerationError",
    "GenerationMode",
    "GenerationTimeout",
    "InBandGenerationError",
    "MediaKind",
    "NetworkFailure",
    "ParsedStreamResult",
    "Progress",
    "ProgressCallback",
    "RelayFetchFailure",
    "StreamTranscript",
    "UpstreamRejection",
    "extract_media_url",
    "find_media_reference",
    "parse_transcript",
]
