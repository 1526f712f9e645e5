"""Fallback parser — recover files from fenced code blocks.

Used only when the detector finds neither envelope.  Each fenced block
(```` ``` ````) becomes a full-content operation when a path can be
inferred for it, in this order:

1. A path on the fence info string (```` ```tsx src/App.tsx ````).
2. A ``File: path`` / ``// File: path`` first line inside the block
   (removed from the content).
3. A path-like line immediately before the fence, optionally decorated
   (``### src/App.tsx``, ``**src/App.tsx**``, ```` `src/App.tsx`: ````).

Blocks with no inferable path are appended to ``plan_summary``.  This
parser never raises — the worst case is zero operations with the whole
text as ``plan_summary``.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable

from response_engine.contracts import (
    FileOperation,
    ParseResult,
    ResponseFormat,
    full_content_operation,
    last_wins,
)
from response_engine.paths import is_ignored_path, looks_like_path, normalise_path

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_FENCE = "```"

# ``File: src/App.tsx``, ``// File: src/App.tsx``, ``# filename: app.py``,
# ``<!-- File: index.html -->``, ``/* File: a.css */``
_FILE_COMMENT_RE = re.compile(
    r"^\s*(?://|#|<!--|/\*)?\s*(?:file|filename|path)\s*:\s*(\S+?)\s*(?:-->|\*/)?\s*$",
    re.IGNORECASE,
)

# Markdown decoration around a path on the line before a fence.
_DECORATION_RE = re.compile(r"^[#>*\-\s`]*(?:(?:file|filename|path)\s*:\s*)?", re.IGNORECASE)


# ---------------------------------------------------------------------------
# Path inference
# ---------------------------------------------------------------------------


def path_from_info(info: str) -> str | None:
    """Path carried on the fence info string, e.g. ``tsx src/App.tsx`` or ``tsx:src/App.tsx``."""
    for token in info.replace(":", " ").split():
        if looks_like_path(token):
            return normalise_path(token)
    return None


def path_from_first_line(line: str) -> str | None:
    m = _FILE_COMMENT_RE.match(line)
    if m and looks_like_path(m.group(1)):
        return normalise_path(m.group(1))
    return None


def path_from_heading(line: str) -> str | None:
    """Path on a (decorated) line preceding a fence."""
    candidate = _DECORATION_RE.sub("", line.strip())
    candidate = candidate.rstrip(":*` ").strip()
    if looks_like_path(candidate):
        return normalise_path(candidate)
    return None


def _preceding_line(lines: list[str], index: int) -> str:
    """Nearest non-blank line above *index*, skipping at most one blank line."""
    for back in (1, 2):
        j = index - back
        if j < 0:
            break
        if lines[j].strip():
            return lines[j]
    return ""


# ---------------------------------------------------------------------------
# Block scanning
# ---------------------------------------------------------------------------


def _closing_fence(lines: list[str], start: int) -> int | None:
    for j in range(start, len(lines)):
        if lines[j].strip() == _FENCE:
            return j
    return None


def parse_fallback(
    text: str,
    *,
    existing_paths: Iterable[str] | None = None,
    ignored_paths: Iterable[str] = (),
) -> ParseResult:
    """Extract file operations from fenced code blocks in free-form text."""
    existing = None if existing_paths is None else set(existing_paths)
    ignored = tuple(ignored_paths)
    lines = text.split("\n")

    operations: list[FileOperation] = []
    addenda: list[str] = []
    warnings: list[str] = []
    truncated = False

    i = 0
    while i < len(lines):
        stripped = lines[i].strip()
        if not stripped.startswith(_FENCE):
            i += 1
            continue

        info = stripped[len(_FENCE):].strip()
        close = _closing_fence(lines, i + 1)
        body = lines[i + 1:close] if close is not None else lines[i + 1:]
        partial = close is None

        path = path_from_info(info)
        if path is None and body:
            path = path_from_first_line(body[0])
            if path is not None:
                body = body[1:]
        if path is None:
            path = path_from_heading(_preceding_line(lines, i))

        content = "\n".join(body)
        if path is None:
            if content.strip():
                addenda.append(content)
        elif is_ignored_path(path, ignored):
            warnings.append(f"Skipped ignored path '{path}'")
        else:
            operations.append(
                full_content_operation(path, content, existing_paths=existing, partial=partial)
            )
            if partial:
                truncated = True
                warnings.append(f"File '{path}' is incomplete (unterminated code fence)")

        i = len(lines) if close is None else close + 1

    operations = last_wins(operations)
    if operations:
        plan_summary = "\n\n".join(addenda) or None
    else:
        plan_summary = text if text.strip() else None

    logger.debug(
        "[fallback_parser] %d operations, %d unnamed blocks", len(operations), len(addenda)
    )
    return ParseResult(
        operations=operations,
        plan_summary=plan_summary,
        used_format=ResponseFormat.FALLBACK,
        is_truncated=truncated,
        raw_text=text,
        warnings=warnings,
    )


__all__ = [
    "parse_fallback",
    "path_from_first_line",
    "path_from_heading",
    "path_from_info",
]
