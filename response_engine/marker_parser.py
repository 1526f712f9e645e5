"""Marker envelope parser — ``<!-- FILE:path -->`` ... ``<!-- /FILE:path -->`` blocks.

Grammar (case-sensitive tags, HTML-comment delimited):

- ``<!-- PLAN -->`` ... ``<!-- /PLAN -->`` — free-text plan (``plan_summary``).
- ``<!-- FILE:<path> -->`` ... ``<!-- /FILE:<path> -->`` — verbatim file content.
- ``<!-- DELETE:<path> -->`` — self-closing delete.
- ``<!-- META -->``, ``<!-- BATCH -->``, ``<!-- MANIFEST -->``,
  ``<!-- EXPLANATION -->`` — metadata sections, each closed by ``<!-- /NAME -->``.

The parser is a small state machine (``IDLE``, ``IN_PLAN``, ``IN_FILE``,
``IN_SECTION``) driven by :func:`feed`, one call per chunk, with the state
held in an explicit :class:`StreamCursor`.  A tag split across chunks is
handled by holding back the unconfirmed tail of each chunk.  Closed blocks
are returned immediately and never retained by the cursor.

:func:`parse_marker` is the streaming form run to completion.
"""

from __future__ import annotations

import enum
import logging
from collections.abc import Iterable
from typing import NamedTuple

from response_engine.contracts import (
    DeleteOperation,
    FileOperation,
    OperationError,
    ParseResult,
    ResponseFormat,
    full_content_operation,
    last_wins,
)
from response_engine.envelope import (
    batch_from_mapping,
    key_values,
    manifest_from_table,
    meta_from_mapping,
    missing_manifest_paths,
    plan_from_lines,
)
from response_engine.errors import UnbalancedBlock
from response_engine.paths import is_ignored_path, normalise_path

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

TAG_OPEN = "<!--"
TAG_CLOSE = "-->"

# Longest directive body accepted between ``<!--`` and ``-->``.  A comment
# that does not close within this window is content, not a tag.
MAX_TAG_BODY = 512

_SECTIONS: frozenset[str] = frozenset({"META", "BATCH", "MANIFEST", "EXPLANATION"})


class CursorState(str, enum.Enum):
    IDLE = "idle"
    IN_PLAN = "in_plan"
    IN_FILE = "in_file"
    IN_SECTION = "in_section"


class Directive(NamedTuple):
    """A recognised marker tag: ``kind`` is ``FILE``, ``/FILE``, ``PLAN``..."""

    kind: str
    path: str = ""


def parse_directive(body: str) -> Directive | None:
    """Interpret the text between ``<!--`` and ``-->``; ``None`` if not a marker."""
    text = body.strip()
    for kind in ("FILE:", "/FILE:", "DELETE:"):
        if text.startswith(kind):
            path = normalise_path(text[len(kind):].rstrip("/").strip())
            if not path or any(ch.isspace() for ch in path):
                return None
            return Directive(kind.rstrip(":"), path)
    name = text.lstrip("/")
    if name == "PLAN" or name in _SECTIONS:
        return Directive(text)
    return None


# ---------------------------------------------------------------------------
# Cursor
# ---------------------------------------------------------------------------


class StreamCursor:
    """Parser state for one generation request.

    Mutable — :func:`feed` advances it chunk by chunk.  Holds only the
    currently-open block plus a bounded holdback tail, never closed blocks.
    """

    __slots__ = (
        "existing_paths", "ignored_paths", "bytes_consumed", "state", "path",
        "section", "holdback", "parts", "strip_leading_newline", "crlf",
        "plan_summary", "plan_text", "sections", "errors", "warnings",
        "truncated", "finished",
    )

    def __init__(
        self,
        *,
        existing_paths: Iterable[str] | None = None,
        ignored_paths: Iterable[str] = (),
    ) -> None:
        self.existing_paths = None if existing_paths is None else frozenset(existing_paths)
        self.ignored_paths = tuple(ignored_paths)
        self.bytes_consumed = 0
        self.state = CursorState.IDLE
        self.path: str | None = None
        self.section: str | None = None
        self.holdback = ""
        self.parts: list[str] = []
        self.strip_leading_newline = False
        self.crlf = False
        self.plan_summary: str | None = None
        self.plan_text: str | None = None
        self.sections: dict[str, str] = {}
        self.errors: list[OperationError] = []
        self.warnings: list[str] = []
        self.truncated = False
        self.finished = False

    def __repr__(self) -> str:
        return (
            f"StreamCursor(state={self.state.value!r}, path={self.path!r}, "
            f"bytes_consumed={self.bytes_consumed})"
        )

    # -- block lifecycle -----------------------------------------------------

    def _open(self, state: CursorState, *, path: str | None = None, section: str | None = None) -> None:
        self.state = state
        self.path = path
        self.section = section
        self.parts = []
        self.strip_leading_newline = state is CursorState.IN_FILE
        self.crlf = False

    def _reset(self) -> None:
        self.state = CursorState.IDLE
        self.path = None
        self.section = None
        self.parts = []
        self.strip_leading_newline = False

    def _block_text(self) -> str:
        text = "".join(self.parts)
        if self.crlf and text.endswith("\r\n"):
            return text[:-2]
        if text.endswith("\n"):
            return text[:-1]
        return text

    def _append(self, text: str) -> None:
        if text and self.state is not CursorState.IDLE:
            self.parts.append(text)

    def _close_file(self, *, partial: bool = False) -> FileOperation | None:
        path = self.path or ""
        content = self._block_text()
        self._reset()
        if is_ignored_path(path, self.ignored_paths):
            self.warnings.append(f"Skipped ignored path '{path}'")
            return None
        return full_content_operation(
            path, content, existing_paths=self.existing_paths, partial=partial
        )

    def _close_plan(self) -> None:
        text = self._block_text().strip()
        self._reset()
        if self.plan_text is not None:
            self.warnings.append("Ignored duplicate PLAN block")
            return
        self.plan_text = text
        self.plan_summary = text or None

    def _close_section(self) -> None:
        name = self.section or ""
        text = self._block_text().strip()
        self._reset()
        self.sections[name] = text

    def _close_current(self, *, partial: bool) -> FileOperation | None:
        if self.state is CursorState.IN_FILE:
            return self._close_file(partial=partial)
        if self.state is CursorState.IN_PLAN:
            self._close_plan()
        elif self.state is CursorState.IN_SECTION:
            self._close_section()
        return None

    # -- directives ----------------------------------------------------------

    def _apply(self, directive: Directive, tag_text: str) -> list[FileOperation]:
        """Advance the state machine by one recognised tag."""
        emitted: list[FileOperation] = []
        kind, state = directive.kind, self.state

        if state is CursorState.IN_FILE:
            if kind == "/FILE" and directive.path == self.path:
                op = self._close_file()
                if op is not None:
                    emitted.append(op)
            elif kind == "/FILE":
                err = UnbalancedBlock(self.path or "", directive.path)
                logger.warning("[marker_parser] %s", err)
                self.errors.append(OperationError.from_exception(err))
                self._reset()
            elif kind == "FILE":
                self.warnings.append(
                    f"File '{self.path}' had missing closing marker - recovered"
                )
                op = self._close_file()
                if op is not None:
                    emitted.append(op)
                self._open(CursorState.IN_FILE, path=directive.path)
            else:
                self._append(tag_text)
            return emitted

        if state in (CursorState.IN_PLAN, CursorState.IN_SECTION):
            closing = "/PLAN" if state is CursorState.IN_PLAN else f"/{self.section}"
            if kind == closing:
                self._close_current(partial=False)
            elif kind == "FILE":
                self.warnings.append(
                    f"{'PLAN' if state is CursorState.IN_PLAN else self.section} "
                    "block had missing closing marker - recovered"
                )
                self._close_current(partial=False)
                self._open(CursorState.IN_FILE, path=directive.path)
            else:
                self._append(tag_text)
            return emitted

        # IDLE
        if kind == "FILE":
            self._open(CursorState.IN_FILE, path=directive.path)
        elif kind == "DELETE":
            if is_ignored_path(directive.path, self.ignored_paths):
                self.warnings.append(f"Skipped ignored path '{directive.path}'")
            else:
                emitted.append(DeleteOperation(path=directive.path))
        elif kind == "PLAN":
            self._open(CursorState.IN_PLAN)
        elif kind in _SECTIONS:
            self._open(CursorState.IN_SECTION, section=kind)
        else:
            self.warnings.append(f"Ignored stray closing tag {tag_text.strip()!r}")
        return emitted


# ---------------------------------------------------------------------------
# Scanning
# ---------------------------------------------------------------------------


def _partial_open_len(buf: str, start: int) -> int:
    """Length of the longest suffix of ``buf[start:]`` that is a proper prefix of ``<!--``."""
    for size in range(min(len(TAG_OPEN) - 1, len(buf) - start), 0, -1):
        if TAG_OPEN.startswith(buf[len(buf) - size:]):
            return size
    return 0


def _drain(cursor: StreamCursor, buf: str, *, final: bool) -> list[FileOperation]:
    """Consume as much of *buf* as can be decided; stash the rest in the cursor."""
    emitted: list[FileOperation] = []
    pos = 0
    n = len(buf)
    window = len(TAG_OPEN) + MAX_TAG_BODY + len(TAG_CLOSE)

    while True:
        if cursor.strip_leading_newline:
            if pos >= n:
                break
            if buf.startswith("\r\n", pos):
                pos += 2
                cursor.crlf = True
            elif buf[pos] == "\n":
                pos += 1
            elif buf[pos] == "\r" and pos + 1 == n and not final:
                break
            cursor.strip_leading_newline = False

        idx = buf.find(TAG_OPEN, pos)
        if idx == -1:
            keep = 0 if final else _partial_open_len(buf, pos)
            cursor._append(buf[pos:n - keep])
            pos = n - keep
            break

        cursor._append(buf[pos:idx])
        end = buf.find(TAG_CLOSE, idx + len(TAG_OPEN), idx + window)
        if end == -1:
            if not final and n < idx + window:
                pos = idx
                break
            # Not a tag after all: the opener is literal text.
            cursor._append(TAG_OPEN)
            pos = idx + len(TAG_OPEN)
            continue

        tag_text = buf[idx:end + len(TAG_CLOSE)]
        pos = end + len(TAG_CLOSE)
        directive = parse_directive(buf[idx + len(TAG_OPEN):end])
        if directive is None:
            # An ordinary comment: keep the opener, rescan what follows it.
            cursor._append(TAG_OPEN)
            pos = idx + len(TAG_OPEN)
            continue
        emitted.extend(cursor._apply(directive, tag_text))

    cursor.holdback = buf[pos:]
    return emitted


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def feed(cursor: StreamCursor, chunk: str) -> list[FileOperation]:
    """Advance *cursor* by one chunk; return operations completed by it.

    Chunks must be fed in arrival order.  Feeding a finished cursor raises
    ``ValueError``.
    """
    if cursor.finished:
        raise ValueError("cannot feed a finished StreamCursor")
    cursor.bytes_consumed += len(chunk.encode("utf-8"))
    return _drain(cursor, cursor.holdback + chunk, final=False)


def finish(cursor: StreamCursor) -> list[FileOperation]:
    """Signal end-of-stream; flush the holdback and emit any open block as partial."""
    if cursor.finished:
        return []
    emitted = _drain(cursor, cursor.holdback, final=True)
    cursor.holdback = ""
    if cursor.state is not CursorState.IDLE:
        cursor.truncated = True
        if cursor.state is CursorState.IN_FILE:
            logger.info("[marker_parser] stream ended inside '%s' — emitting partial", cursor.path)
            cursor.warnings.append(f"File '{cursor.path}' is incomplete (stream ended)")
        op = cursor._close_current(partial=True)
        if op is not None:
            emitted.append(op)
    cursor.finished = True
    return emitted


def build_result(
    cursor: StreamCursor,
    operations: Iterable[FileOperation],
    *,
    raw_text: str = "",
) -> ParseResult:
    """Assemble the ``ParseResult`` for a finished stream.

    *operations* are everything :func:`feed` / :func:`finish` returned,
    in order; the caller is the one that retained them.
    """
    ops = last_wins(operations)
    warnings = list(cursor.warnings)
    sections = cursor.sections

    meta = (
        meta_from_mapping(key_values(sections["META"]), default_format="marker")
        if "META" in sections
        else None
    )
    batch = batch_from_mapping(key_values(sections["BATCH"])) if "BATCH" in sections else None
    manifest = manifest_from_table(sections["MANIFEST"]) if "MANIFEST" in sections else None
    if manifest:
        missing = missing_manifest_paths(manifest, ops)
        if missing:
            warnings.append(f"Manifest validation: missing files: {', '.join(missing)}")

    summary_parts = [p for p in (cursor.plan_summary, sections.get("EXPLANATION")) if p]
    truncated = cursor.truncated or (batch is not None and not batch.is_complete)

    return ParseResult(
        operations=ops,
        plan_summary="\n\n".join(summary_parts) or None,
        used_format=ResponseFormat.MARKER,
        is_truncated=truncated,
        raw_text=raw_text,
        errors=list(cursor.errors),
        warnings=warnings,
        plan=plan_from_lines(cursor.plan_text) if cursor.plan_text else None,
        batch=batch,
        meta=meta,
        manifest=manifest,
    )


def parse_marker(
    text: str,
    *,
    existing_paths: Iterable[str] | None = None,
    ignored_paths: Iterable[str] = (),
) -> ParseResult:
    """One-shot parse: the streaming parser fed a single chunk, then finished."""
    cursor = StreamCursor(existing_paths=existing_paths, ignored_paths=ignored_paths)
    operations = feed(cursor, text)
    operations.extend(finish(cursor))
    return build_result(cursor, operations, raw_text=text)


def emit_marker_block(path: str, content: str) -> str:
    """Render *content* as a ``FILE`` block that :func:`parse_marker` reads back verbatim.

    *path* is normalised the way the parser normalises it.  Raises
    ``ValueError`` for a path that is empty or contains whitespace, which
    no ``FILE`` tag can carry.
    """
    path = normalise_path(path.rstrip("/").strip())
    if not path or any(ch.isspace() for ch in path):
        raise ValueError(f"path cannot be written as a FILE tag: {path!r}")
    return f"<!-- FILE:{path} -->\n{content}\n<!-- /FILE:{path} -->\n"


__all__ = [
    "CursorState",
    "Directive",
    "MAX_TAG_BODY",
    "StreamCursor",
    "build_result",
    "emit_marker_block",
    "feed",
    "finish",
    "parse_directive",
    "parse_marker",
]
