"""Tests for response_engine.detector — envelope classification."""

import pytest

from response_engine.contracts import DetectedFormat
from response_engine.detector import (
    detect,
    find_json_envelope,
    has_marker_token,
    match_brace,
    strip_bom,
)

MARKER_TEXT = "<!-- FILE:src/a.ts -->\nexport const a = 1;\n<!-- /FILE:src/a.ts -->\n"
JSON_TEXT = '{"files": {"src/a.ts": "export const a = 1;"}}'
BOTH_TEXT = JSON_TEXT + "\n" + MARKER_TEXT


# ---------------------------------------------------------------------------
# detect
# ---------------------------------------------------------------------------


class TestDetect:
    def test_marker(self):
        assert detect(MARKER_TEXT) is DetectedFormat.MARKER

    def test_json(self):
        assert detect(JSON_TEXT) is DetectedFormat.JSON

    @pytest.mark.parametrize("text", ["", "   \n", "Here is some prose with no code."])
    def test_unknown(self, text):
        assert detect(text) is DetectedFormat.UNKNOWN

    def test_braces_without_files_key_are_unknown(self):
        assert detect("function f() { return {a: 1}; }") is DetectedFormat.UNKNOWN

    def test_marker_wins_without_hint(self):
        assert detect(BOTH_TEXT) is DetectedFormat.MARKER

    def test_json_hint_breaks_tie(self):
        assert detect(BOTH_TEXT, hint="json") is DetectedFormat.JSON

    def test_hint_never_forces_absent_format(self):
        assert detect(MARKER_TEXT, hint="json") is DetectedFormat.MARKER
        assert detect(JSON_TEXT, hint="marker") is DetectedFormat.JSON

    def test_leading_bom(self):
        assert detect("\ufeff" + JSON_TEXT) is DetectedFormat.JSON

    def test_fenced_json_with_prose(self):
        text = "Sure, here you go:\n```json\n" + JSON_TEXT + "\n```\nDone."
        assert detect(text) is DetectedFormat.JSON

    def test_plan_and_delete_tokens(self):
        assert detect("<!-- PLAN -->\nstuff\n<!-- /PLAN -->") is DetectedFormat.MARKER
        assert detect("<!--DELETE:old.ts -->") is DetectedFormat.MARKER

    def test_ordinary_comment_is_not_marker(self):
        assert not has_marker_token("<!-- just a comment -->")


# ---------------------------------------------------------------------------
# Brace scanning
# ---------------------------------------------------------------------------


class TestBraceScanning:
    def test_match_brace_ignores_braces_in_strings(self):
        text = '{"a": "}"}'
        assert match_brace(text, 0) == len(text)

    def test_match_brace_escaped_quote(self):
        text = '{"a": "\\"}"} tail'
        assert match_brace(text, 0) == text.index(" tail")

    def test_match_brace_unclosed(self):
        assert match_brace('{"a": {"b": 1}', 0) is None

    def test_skips_non_envelope_object(self):
        text = 'PLAN: {"steps": 2}\n' + JSON_TEXT
        span = find_json_envelope(text)
        assert span is not None
        assert span.start == text.index('{"files"')
        assert span.is_closed

    def test_truncated_envelope(self):
        text = '{"files": {"a.ts": "abc'
        span = find_json_envelope(text)
        assert span is not None
        assert not span.is_closed
        assert span.slice(text) == text

    def test_no_object(self):
        assert find_json_envelope("no braces here") is None

    def test_strip_bom(self):
        assert strip_bom("\ufeff\u200bhello") == "hello"
