"""Reconstruct content and reasoning text from a chat-completions SSE transcript."""

from __future__ import annotations

import codecs
import json
import re
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Optional, Sequence

from ..config import DEFAULT_ERROR_MARKERS

DATA_PREFIX = "data:"
DONE_SENTINEL = "[DONE]"

# SSE allows CRLF, LF or a bare CR as the line terminator
_LINE_BREAK = re.compile(r"\r\n|\r|\n")


@dataclass(frozen=True)
class ParsedStreamResult:
    """Text channels and in-band error state recovered from one transcript."""

    content: str = ""
    reasoning: str = ""
    error_detected: bool = False
    error_text: Optional[str] = None

    @property
    def combined_text(self) -> str:
        return f"{self.content} {self.reasoning}"


class StreamTranscript:
    """Accumulate raw body chunks of a streaming response.

    Chunks are decoded incrementally so that a multi-byte character split
    across two network reads is still decoded correctly. The transcript only
    grows; `done` turns true once a complete `data: [DONE]` line arrived.
    """

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._parts: list[str] = []
        self._pending_line = ""
        self.received_bytes = 0
        self.done = False

    def feed(self, chunk: bytes) -> str:
        """Append a raw chunk and return its decoded text."""

        self.received_bytes += len(chunk)
        text = self._decoder.decode(chunk)
        if text:
            self._parts.append(text)
            self._scan_for_sentinel(text)
        return text

    def close(self) -> str:
        """Flush the decoder and return the full transcript."""

        tail = self._decoder.decode(b"", final=True)
        if tail:
            self._parts.append(tail)
        return self.text

    @property
    def text(self) -> str:
        return "".join(self._parts)

    def _scan_for_sentinel(self, text: str) -> None:
        if self.done:
            return
        lines = _LINE_BREAK.split(self._pending_line + text)
        # The last element is an unfinished line; keep it for the next chunk
        self._pending_line = lines.pop()
        for line in lines:
            if _data_payload(line) == DONE_SENTINEL:
                self.done = True
                return


def _data_payload(line: str) -> Optional[str]:
    stripped = line.strip()
    if not stripped.startswith(DATA_PREFIX):
        return None
    return stripped[len(DATA_PREFIX) :].strip()


def _stringify_error(value: Any) -> str:
    if isinstance(value, str):
        return value
    try:
        return json.dumps(value, ensure_ascii=False)
    except TypeError:
        return str(value)


def _text_fragments(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, Sequence):
        fragments: list[str] = []
        for item in value:
            if not isinstance(item, Mapping):
                continue
            if item.get("type") == "text" and isinstance(item.get("text"), str):
                fragments.append(item["text"])
        return "".join(fragments)
    return ""


def parse_transcript(
    transcript: str,
    error_markers: Iterable[str] = DEFAULT_ERROR_MARKERS,
) -> ParsedStreamResult:
    """Parse a complete (or partial) SSE transcript.

    Only `data:` lines are considered. Undecodable payloads are skipped since
    partial JSON is expected mid-stream. A record with an `error` field is
    terminal; a reasoning fragment containing any of ``error_markers`` flags
    the stream as failed but does not stop accumulation.
    """

    markers = tuple(marker for marker in error_markers if marker)
    content: list[str] = []
    reasoning: list[str] = []
    error_detected = False
    error_text: Optional[str] = None

    for line in _LINE_BREAK.split(transcript):
        payload = _data_payload(line)
        if payload is None:
            continue
        if payload == DONE_SENTINEL:
            break
        try:
            record = json.loads(payload)
        except json.JSONDecodeError:
            continue
        if not isinstance(record, Mapping):
            continue

        if record.get("error") is not None:
            error_detected = True
            error_text = _stringify_error(record["error"])
            break

        choices = record.get("choices")
        if not isinstance(choices, Sequence) or not choices:
            continue
        first = choices[0]
        if not isinstance(first, Mapping):
            continue
        delta = first.get("delta")
        if not isinstance(delta, Mapping):
            continue

        if "content" in delta:
            content.append(_text_fragments(delta["content"]))

        fragment = delta.get("reasoning_content")
        if isinstance(fragment, str):
            reasoning.append(fragment)
            if not error_detected and any(marker in fragment for marker in markers):
                error_detected = True
                error_text = fragment

    return ParsedStreamResult(
        content="".join(content),
        reasoning="".join(reasoning),
        error_detected=error_detected,
        error_text=error_text,
    )


__all__ = [
    "DONE_SENTINEL",
    "ParsedStreamResult",
    "StreamTranscript",
    "parse_transcript",
]
