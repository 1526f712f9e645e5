"""Response engine orchestration — detect, parse, repair, reconcile.

Pipeline for one response::

    text ─► detect ─► {parse_json | parse_marker | parse_fallback}
         ─► repair (full-content creates/updates)
         ─► reconcile (patch updates, when current contents are known)
         ─► ParseResult

:func:`parse_response` runs it over a complete string;
:class:`ResponseStream` runs it over chunks as they arrive, handing back
completed marker blocks for live preview.

Per-file failures are collected on ``ParseResult.errors``.  Only an
oversized input (``ResponseTooLarge``) or a response with nothing
parseable at all (``NoOperationsFound``) is raised.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Mapping

from response_engine import config
from response_engine.config import Settings
from response_engine.contracts import (
    DeleteOperation,
    DetectedFormat,
    FileKind,
    FileOperation,
    OperationError,
    ParseResult,
    RepairTrace,
    ResponseFormat,
)
from response_engine.detector import detect, has_marker_token, strip_bom
from response_engine.envelope import plan_from_lines
from response_engine.errors import (
    MalformedJson,
    NoOperationsFound,
    RepairImpossible,
    ResponseTooLarge,
)
from response_engine.fallback_parser import parse_fallback
from response_engine.json_parser import parse_json
from response_engine.marker_parser import StreamCursor, build_result, feed, finish, parse_marker
from response_engine.paths import is_ignored_path, is_path_key, looks_like_path, normalise_path
from response_engine.reconciler import reconcile
from response_engine.repair import repair

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Pipeline stages
# ---------------------------------------------------------------------------


def _settings(settings: Settings | None) -> Settings:
    return settings if settings is not None else config.settings


def _check_size(size: int, cfg: Settings) -> None:
    if size > cfg.MAX_RESPONSE_SIZE:
        raise ResponseTooLarge(size, cfg.MAX_RESPONSE_SIZE)


def _existing_paths(
    existing_files: Mapping[str, str] | None,
    existing_paths: Iterable[str] | None,
) -> frozenset[str] | None:
    if existing_paths is not None:
        return frozenset(existing_paths)
    if existing_files is not None:
        return frozenset(existing_files)
    return None


def _repair_operations(
    operations: list[FileOperation], cfg: Settings
) -> tuple[list[FileOperation], list[RepairTrace], list[OperationError]]:
    """Run the repair pipeline over every full-content create/update."""
    passes = cfg.enabled_repair_passes()
    repaired: list[FileOperation] = []
    traces: list[RepairTrace] = []
    errors: list[OperationError] = []

    for op in operations:
        if isinstance(op, DeleteOperation) or not isinstance(op.content, str):
            repaired.append(op)
            continue
        content, trace = repair(op.content, FileKind.from_path(op.path), passes=passes, path=op.path)
        if trace.records:
            traces.append(trace)
        for record in trace.records:
            if record.error is not None:
                exc = RepairImpossible(record.pass_name, record.error, path=op.path)
                errors.append(OperationError.from_exception(exc, path=op.path))
        repaired.append(op if content == op.content else op.model_copy(update={"content": content}))

    return repaired, traces, errors


def _finalise(
    raw: ParseResult,
    *,
    existing_files: Mapping[str, str] | None,
    cfg: Settings,
) -> ParseResult:
    """Repair, reconcile and flag truncation on a parser's raw result."""
    operations, traces, repair_errors = _repair_operations(list(raw.operations), cfg)
    reconciled = reconcile(operations, existing_files)

    truncated = raw.is_truncated or any(
        not isinstance(op, DeleteOperation) and op.partial for op in reconciled.operations
    )
    return raw.model_copy(
        update={
            "operations": reconciled.operations,
            "needed_repair": any(t.changed for t in traces),
            "is_truncated": truncated,
            "errors": [*raw.errors, *repair_errors, *reconciled.errors],
            "repair_traces": traces,
            "regenerate_paths": [*raw.regenerate_paths, *reconciled.regenerate_paths],
        }
    )


def _complete(
    raw: ParseResult,
    text: str,
    *,
    existing_files: Mapping[str, str] | None,
    cfg: Settings,
) -> ParseResult:
    result = _finalise(raw, existing_files=existing_files, cfg=cfg)

    if not result.operations and text.strip():
        if result.used_format is ResponseFormat.FALLBACK:
            logger.info("[engine] nothing parseable in %d chars", len(text))
            raise NoOperationsFound(len(text), result)
        no_ops = OperationError.from_exception(NoOperationsFound(len(text)))
        result = result.model_copy(update={"errors": [*result.errors, no_ops]})

    logger.info(
        "[engine] format=%s operations=%d truncated=%s repaired=%s errors=%d",
        result.used_format.value,
        len(result.operations),
        result.is_truncated,
        result.needed_repair,
        len(result.errors),
    )
    return result


# ---------------------------------------------------------------------------
# One-shot
# ---------------------------------------------------------------------------


def parse_response(
    text: str,
    *,
    existing_files: Mapping[str, str] | None = None,
    existing_paths: Iterable[str] | None = None,
    settings: Settings | None = None,
) -> ParseResult:
    """Parse a complete model response into file operations.

    *existing_files* maps project paths to their current content; it
    decides Create vs Update and lets patch updates be applied.
    *existing_paths* decides Create vs Update alone when contents are not
    at hand.  With neither, every full-content file is an Update.

    Raises ``ResponseTooLarge`` when *text* exceeds ``MAX_RESPONSE_SIZE``,
    and ``NoOperationsFound`` (carrying the fallback result) when neither
    envelope is present and no fenced block yields a file.
    """
    cfg = _settings(settings)
    _check_size(len(text), cfg)
    paths = _existing_paths(existing_files, existing_paths)
    ignored = cfg.IGNORED_PATHS

    detected = detect(text, hint=cfg.RESPONSE_FORMAT)
    logger.debug("[engine] detected %s (%d chars)", detected.value, len(text))

    if detected is DetectedFormat.JSON:
        try:
            raw = parse_json(
                text,
                existing_paths=paths,
                diff_mode_enabled=cfg.DIFF_MODE_ENABLED,
                ignored_paths=ignored,
            )
        except MalformedJson as exc:
            logger.warning("[engine] %s — falling back to code blocks", exc)
            raw = parse_fallback(text, existing_paths=paths, ignored_paths=ignored)
            raw = raw.model_copy(
                update={"errors": [OperationError.from_exception(exc), *raw.errors]}
            )
    elif detected is DetectedFormat.MARKER:
        raw = parse_marker(text, existing_paths=paths, ignored_paths=ignored)
    else:
        raw = parse_fallback(text, existing_paths=paths, ignored_paths=ignored)

    return _complete(raw, text, existing_files=existing_files, cfg=cfg)


# ---------------------------------------------------------------------------
# Streaming
# ---------------------------------------------------------------------------

# Enough overlap to catch ``<!-- DELETE:`` split across two chunks.
_MARKER_PROBE_OVERLAP = 32


class ResponseStream:
    """Incremental parse of one streamed response.

    Marker envelopes are parsed as chunks arrive and :meth:`feed` returns
    each completed block (raw, before repair) for live preview.  JSON or
    unrecognised streams are buffered and parsed by :meth:`done`.
    Cancelling is dropping the object; there is no background work.
    """

    def __init__(
        self,
        *,
        existing_files: Mapping[str, str] | None = None,
        existing_paths: Iterable[str] | None = None,
        settings: Settings | None = None,
    ) -> None:
        self._settings = _settings(settings)
        self._existing_files = existing_files
        self._existing_paths = _existing_paths(existing_files, existing_paths)
        self._chunks: list[str] = []
        self._size = 0
        self._probed = 0
        self._cursor: StreamCursor | None = None
        self._operations: list[FileOperation] = []
        self._finished = False

    @property
    def cursor(self) -> StreamCursor | None:
        """The marker cursor, once the stream has been recognised as markers."""
        return self._cursor

    @property
    def operations(self) -> list[FileOperation]:
        """Raw operations completed so far."""
        return list(self._operations)

    def _start_marker(self) -> list[FileOperation]:
        if self._settings.RESPONSE_FORMAT == "json":
            # A JSON hint can still win a tie, which needs the whole text.
            return []
        text = "".join(self._chunks)
        probe_from = max(0, self._probed - _MARKER_PROBE_OVERLAP)
        self._probed = len(text)
        if not has_marker_token(strip_bom(text[probe_from:])):
            return []
        self._cursor = StreamCursor(
            existing_paths=self._existing_paths,
            ignored_paths=self._settings.IGNORED_PATHS,
        )
        logger.debug("[engine] stream recognised as marker envelope")
        return feed(self._cursor, text)

    def feed(self, chunk: str) -> list[FileOperation]:
        """Consume the next chunk; return operations it completed."""
        if self._finished:
            raise ValueError("cannot feed a finished ResponseStream")
        if not chunk:
            return []
        self._size += len(chunk)
        _check_size(self._size, self._settings)
        self._chunks.append(chunk)

        if self._cursor is None:
            completed = self._start_marker()
        else:
            completed = feed(self._cursor, chunk)
        self._operations.extend(completed)
        return completed

    def done(self, final_chunk: str = "") -> ParseResult:
        """Signal end-of-stream and return the finished ``ParseResult``."""
        if final_chunk:
            self.feed(final_chunk)
        if self._finished:
            raise ValueError("ResponseStream already finished")
        self._finished = True
        text = "".join(self._chunks)

        if self._cursor is None:
            return parse_response(
                text,
                existing_files=self._existing_files,
                existing_paths=self._existing_paths,
                settings=self._settings,
            )

        self._operations.extend(finish(self._cursor))
        raw = build_result(self._cursor, self._operations, raw_text=text)
        return _complete(raw, text, existing_files=self._existing_files, cfg=self._settings)


# ---------------------------------------------------------------------------
# Progress helpers
# ---------------------------------------------------------------------------

_PLAN_BLOCK_RE = re.compile(r"<!--\s*PLAN\s*-->(.*?)(?:<!--\s*/PLAN\s*-->|$)", re.DOTALL)
_FILE_TAG_RE = re.compile(r"<!--\s*FILE:\s*([^\s>]+)\s*-->")
_JSON_KEY_RE = re.compile(r'"([^"\\\n]{1,260})"\s*:')


def extract_file_list(text: str, *, ignored_paths: Iterable[str] | None = None) -> list[str]:
    """Paths a (possibly partial) response announces, sorted and de-duplicated.

    Reads ``create:`` / ``update:`` lines of a PLAN block, ``FILE`` tags,
    and path-shaped keys of a JSON envelope.
    """
    ignored = tuple(config.settings.IGNORED_PATHS if ignored_paths is None else ignored_paths)
    found: set[str] = set()

    plan = _PLAN_BLOCK_RE.search(text)
    if plan:
        info = plan_from_lines(plan.group(1))
        if info is not None:
            found.update(info.all_paths)
    found.update(m.group(1) for m in _FILE_TAG_RE.finditer(text))
    if not found:
        found.update(
            key for key in (m.group(1) for m in _JSON_KEY_RE.finditer(text))
            if is_path_key(key) and looks_like_path(key)
        )

    return sorted(
        {normalise_path(p) for p in found if p and not is_ignored_path(p, ignored)}
    )


def has_files(text: str) -> bool:
    """True when *text* announces at least one file."""
    return bool(extract_file_list(text))


__all__ = [
    "ResponseStream",
    "extract_file_list",
    "has_files",
    "parse_response",
]
