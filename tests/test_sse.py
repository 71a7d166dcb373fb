"""Tests for SSE transcript accumulation and parsing."""

from __future__ import annotations

import json
from typing import Any

from nanogen.generation.sse import StreamTranscript, parse_transcript


def _event(delta: dict[str, Any] | None = None, **record: Any) -> str:
    if delta is not None:
        record["choices"] = [{"index": 0, "delta": delta}]
    return f"data: {json.dumps(record, ensure_ascii=False)}\n\n"


DONE = "data: [DONE]\n\n"


class TestParseTranscript:
    def test_concatenates_content_in_order(self):
        transcript = (
            _event({"role": "assistant"})
            + _event({"content": "Here is "})
            + _event({"content": "your image"})
            + DONE
        )
        result = parse_transcript(transcript)

        assert result.content == "Here is your image"
        assert result.reasoning == ""
        assert result.error_detected is False
        assert result.error_text is None

    def test_keeps_reasoning_separate(self):
        transcript = (
            _event({"reasoning_content": "thinking "})
            + _event({"reasoning_content": "more"})
            + _event({"content": "answer"})
        )
        result = parse_transcript(transcript)

        assert result.content == "answer"
        assert result.reasoning == "thinking more"
        assert result.combined_text == "answer thinking more"

    def test_stops_at_done_sentinel(self):
        transcript = _event({"content": "kept"}) + DONE + _event({"content": "dropped"})

        assert parse_transcript(transcript).content == "kept"

    def test_skips_non_data_lines_and_malformed_json(self):
        transcript = (
            ": keep-alive\n"
            "event: message\n"
            "data: {not json\n\n"
            "data: [1, 2, 3]\n\n"
            + _event({"content": "ok"})
        )
        result = parse_transcript(transcript)

        assert result.content == "ok"
        assert result.error_detected is False

    def test_partial_transcript_parses_complete_records_only(self):
        transcript = _event({"content": "first"}) + 'data: {"choices": [{"delta": {"con'

        assert parse_transcript(transcript).content == "first"

    def test_flattens_list_content(self):
        transcript = _event(
            {
                "content": [
                    {"type": "text", "text": "a "},
                    {"type": "image_url", "image_url": {"url": "ignored"}},
                    {"type": "text", "text": "b"},
                ]
            }
        )

        assert parse_transcript(transcript).content == "a b"

    def test_error_record_is_terminal(self):
        transcript = (
            _event({"content": "before "})
            + _event(error={"message": "quota exceeded", "code": 429})
            + _event({"content": "after"})
        )
        result = parse_transcript(transcript)

        assert result.error_detected is True
        assert json.loads(result.error_text) == {"message": "quota exceeded", "code": 429}
        assert result.content == "before "

    def test_string_error_kept_verbatim(self):
        result = parse_transcript(_event(error="model overloaded"))

        assert result.error_detected is True
        assert result.error_text == "model overloaded"

    def test_null_error_is_not_an_error(self):
        transcript = _event({"content": "fine"}, error=None)
        result = parse_transcript(transcript)

        assert result.error_detected is False
        assert result.content == "fine"

    def test_reasoning_marker_flags_error_without_stopping(self):
        transcript = (
            _event({"reasoning_content": "❌ 生成失败: 内容违规"})
            + _event({"content": "https://cdn.example.com/a.png"})
        )
        result = parse_transcript(transcript)

        assert result.error_detected is True
        assert result.error_text == "❌ 生成失败: 内容违规"
        assert result.content == "https://cdn.example.com/a.png"

    def test_first_marker_hit_wins(self):
        transcript = _event({"reasoning_content": "违规 one"}) + _event(
            {"reasoning_content": "❌ two"}
        )

        assert parse_transcript(transcript).error_text == "违规 one"

    def test_explicit_error_overrides_marker_text(self):
        transcript = _event({"reasoning_content": "❌ soft failure"}) + _event(
            error="hard failure"
        )

        assert parse_transcript(transcript).error_text == "hard failure"

    def test_custom_markers(self):
        transcript = _event({"reasoning_content": "REJECTED by filter"})

        assert parse_transcript(transcript).error_detected is False
        assert parse_transcript(transcript, ("REJECTED",)).error_detected is True

    def test_markers_are_not_checked_in_content(self):
        result = parse_transcript(_event({"content": "❌ just an emoji"}))

        assert result.error_detected is False


class TestStreamTranscript:
    def test_decodes_characters_split_across_chunks(self):
        encoded = "图片".encode("utf-8")
        transcript = StreamTranscript()

        transcript.feed(encoded[:2])
        transcript.feed(encoded[2:4])
        transcript.feed(encoded[4:])

        assert transcript.close() == "图片"
        assert transcript.received_bytes == len(encoded)

    def test_detects_done_across_chunks(self):
        transcript = StreamTranscript()

        transcript.feed(b'data: {"choices": []}\n\ndata: [DO')
        assert transcript.done is False

        transcript.feed(b"NE]\n\n")
        assert transcript.done is True

    def test_done_requires_complete_line(self):
        transcript = StreamTranscript()
        transcript.feed(b"data: [DONE]")

        assert transcript.done is False

    def test_close_flushes_truncated_bytes(self):
        transcript = StreamTranscript()
        transcript.feed(b"ok\xe5")

        assert transcript.close() == "ok\ufffd"

    def test_feeds_parse_like_whole_transcript(self):
        body = (_event({"content": "第一"}) + _event({"content": "部分"}) + DONE).encode(
            "utf-8"
        )
        transcript = StreamTranscript()
        for start in range(0, len(body), 7):
            transcript.feed(body[start : start + 7])

        assert parse_transcript(transcript.close()).content == "第一部分"


class TestParserProperties:
    def test_done_only_transcript_is_empty(self):
        result = parse_transcript("data: [DONE]\n")

        assert result.content == ""
        assert result.reasoning == ""
        assert result.error_detected is False

    def test_error_field_halts_accumulation(self):
        transcript = 'data: {"error":"bad key"}\n' + _event({"content": "ignored"})
        result = parse_transcript(transcript)

        assert result.error_detected is True
        assert result.error_text == "bad key"
        assert result.content == ""

    def test_reasoning_keyword_without_error_field(self):
        result = parse_transcript(_event({"reasoning_content": "生成失败：内容违规"}))

        assert result.error_detected is True
        assert result.error_text == "生成失败：内容违规"

    def test_parsing_is_idempotent(self):
        transcript = (
            _event({"reasoning_content": "❌ nope"})
            + _event({"content": "https://cdn.example.com/a.png"})
            + DONE
        )

        assert parse_transcript(transcript) == parse_transcript(transcript)

    def test_empty_transcript(self):
        assert parse_transcript("") == parse_transcript("data:   \n\n")


class TestLineTerminators:
    def test_bare_carriage_returns_separate_lines(self):
        transcript = (
            _event({"content": "one "}).replace("\n", "\r")
            + _event({"content": "two"}).replace("\n", "\r\n")
            + "data: [DONE]\r"
        )

        assert parse_transcript(transcript).content == "one two"

    def test_unicode_line_separator_stays_inside_payload(self):
        transcript = _event({"content": "a\u2028b"}) + DONE

        assert parse_transcript(transcript).content == "a\u2028b"

    def test_done_detected_with_carriage_return_terminators(self):
        transcript = StreamTranscript()
        transcript.feed(_event({"content": "x"}).replace("\n", "\r").encode("utf-8"))
        assert transcript.done is False

        transcript.feed(b"data: [DONE]\r")

        assert transcript.done is True
