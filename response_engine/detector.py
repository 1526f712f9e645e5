"""Format detector — classify a response as JSON envelope, marker envelope, or unknown.

Checks are cheap and order-sensitive; the first match wins:

1. A marker token (``<!-- FILE:``, ``<!-- PLAN``, ``<!-- DELETE:``) → marker.
2. A top-level ``{...}`` object (located by brace-depth counting, not a
   full parse) whose slice carries a ``"files"``-shaped key → JSON.
3. Otherwise → unknown (routes to the fallback parser).

Every scan here is a single forward pass over the input — no regex is
run against unbounded text with nested quantifiers.
"""

from __future__ import annotations

import logging
import re
from typing import NamedTuple, Optional

from response_engine.contracts import DetectedFormat

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_BOM_CHARS = "\ufeff\u200b\u200c\u200d\u00a0"

_MARKER_KEYWORDS: tuple[str, ...] = ("FILE:", "PLAN", "DELETE:")

_FILES_KEY_RE = re.compile(r'"(?:files|fileChanges|changes|diffs|deletedFiles)"\s*:')

# Detector gives up looking for an envelope object after this many
# top-level objects (prose with stray braces, a ``// PLAN: {...}`` prefix).
_MAX_OBJECTS_SCANNED = 8


# ---------------------------------------------------------------------------
# Brace scanning
# ---------------------------------------------------------------------------


class JsonSpan(NamedTuple):
    """Location of a top-level JSON object in a larger text.

    ``end`` is the index one past the closing ``}``, or ``None`` when the
    input ended before the object was balanced (truncation).
    """

    start: int
    end: Optional[int]

    @property
    def is_closed(self) -> bool:
        return self.end is not None

    def slice(self, text: str) -> str:
        return text[self.start:self.end] if self.end is not None else text[self.start:]


def match_brace(text: str, start: int) -> int | None:
    """Return the index one past the ``}`` balancing ``text[start]``.

    ``text[start]`` must be ``{``.  Brackets inside JSON strings are
    ignored; escapes inside strings are honoured.  Returns ``None`` if the
    text ends first.
    """
    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch in "{[":
            depth += 1
        elif ch in "}]":
            depth -= 1
            if depth == 0:
                return i + 1
    return None


def _json_search_start(text: str) -> int:
    """Skip prose up to a fenced ``json`` block, when one is present."""
    fence = text.find("```json")
    if fence == -1:
        return 0
    newline = text.find("\n", fence)
    return fence + 7 if newline == -1 else newline + 1


def find_json_envelope(text: str) -> JsonSpan | None:
    """Locate the JSON envelope object inside *text*.

    Walks successive top-level ``{...}`` objects and returns the first whose
    slice carries a files-shaped key.  If no object qualifies, returns the
    first object found (so callers can still attempt a parse), or ``None``
    when *text* has no ``{`` at all.
    """
    pos = _json_search_start(text)
    first: JsonSpan | None = None
    for _ in range(_MAX_OBJECTS_SCANNED):
        start = text.find("{", pos)
        if start == -1:
            break
        end = match_brace(text, start)
        span = JsonSpan(start, end)
        if first is None:
            first = span
        if _FILES_KEY_RE.search(span.slice(text)):
            return span
        if end is None:
            break
        pos = end
    return first


# ---------------------------------------------------------------------------
# Marker scanning
# ---------------------------------------------------------------------------


def has_marker_token(text: str) -> bool:
    """True when *text* contains a ``FILE``/``PLAN``/``DELETE`` marker tag opener."""
    pos = text.find("<!--")
    while pos != -1:
        i = pos + 4
        n = len(text)
        while i < n and text[i] in " \t":
            i += 1
        if text.startswith(_MARKER_KEYWORDS, i):
            return True
        pos = text.find("<!--", pos + 4)
    return False


def has_json_envelope(text: str) -> bool:
    span = find_json_envelope(text)
    return span is not None and bool(_FILES_KEY_RE.search(span.slice(text)))


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def strip_bom(text: str) -> str:
    """Remove leading BOM / zero-width characters."""
    return text.lstrip(_BOM_CHARS)


def detect(text: str, *, hint: str | None = None) -> DetectedFormat:
    """Classify *text* as a JSON envelope, marker envelope, or unknown.

    *hint* (``"json"`` or ``"marker"``) only breaks ties — when both a
    marker token and a JSON envelope are present.  It never forces a
    format the content does not show.
    """
    if not text or not text.strip():
        return DetectedFormat.UNKNOWN

    body = strip_bom(text)
    marker = has_marker_token(body)

    if marker and hint == "json" and has_json_envelope(body):
        logger.debug("[detector] marker+json signals, hint=json → json")
        return DetectedFormat.JSON
    if marker:
        return DetectedFormat.MARKER
    if has_json_envelope(body):
        return DetectedFormat.JSON
    return DetectedFormat.UNKNOWN


__all__ = [
    "JsonSpan",
    "detect",
    "find_json_envelope",
    "has_json_envelope",
    "has_marker_token",
    "match_brace",
    "strip_bom",
]
