"""Diff/patch reconciler — apply search/replace hunks to existing content.

Hunks are applied strictly in order against a running buffer.  Each
hunk's ``search`` text must occur exactly once in the buffer at that
point; otherwise the whole patch is rejected (all-or-nothing per file)
and the caller is told to request full content for the path instead.

Pure functions — the caller supplies current file contents.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from typing import NamedTuple

from response_engine.contracts import (
    FileOperation,
    OperationError,
    Patch,
    SearchReplaceHunk,
    UpdateOperation,
)
from response_engine.errors import PatchAmbiguous, PatchError, PatchNotFound

logger = logging.getLogger(__name__)


def count_occurrences(text: str, search: str) -> int:
    """Count (possibly overlapping) occurrences of *search* in *text*."""
    if not search:
        return 0
    count = 0
    pos = text.find(search)
    while pos != -1:
        count += 1
        pos = text.find(search, pos + 1)
    return count


def _apply_exact(current: str, hunks: list[SearchReplaceHunk], path: str) -> str:
    buffer = current
    for index, hunk in enumerate(hunks):
        count = count_occurrences(buffer, hunk.search)
        if count == 0:
            raise PatchNotFound(index, path=path, search=hunk.search)
        if count > 1:
            raise PatchAmbiguous(index, count, path=path, search=hunk.search)
        buffer = buffer.replace(hunk.search, hunk.replace, 1)
    return buffer


def apply_patch(
    current: str,
    hunks: Iterable[SearchReplaceHunk] | Patch,
    *,
    path: str = "",
    normalise_newlines: bool = True,
) -> str:
    """Apply *hunks* to *current* and return the patched text.

    Raises ``PatchNotFound`` / ``PatchAmbiguous`` (both ``PatchError``)
    naming the first hunk that does not match exactly once; *current* is
    never partially patched.  When *current* uses CRLF line endings and the
    hunks do not, one retry is made against the LF-normalised text and the
    result is converted back to CRLF.
    """
    hunk_list = list(hunks.hunks if isinstance(hunks, Patch) else hunks)
    try:
        return _apply_exact(current, hunk_list, path)
    except PatchNotFound as exc:
        crlf_retry = (
            normalise_newlines
            and "\r\n" in current
            and not any("\r\n" in h.search for h in hunk_list)
        )
        if not crlf_retry:
            raise
        first = exc

    try:
        patched = _apply_exact(current.replace("\r\n", "\n"), hunk_list, path)
    except PatchError:
        raise first from None
    logger.debug("[reconciler] %s patched after CRLF normalisation", path or "<buffer>")
    return patched.replace("\r\n", "\n").replace("\n", "\r\n")


class Reconciled(NamedTuple):
    """Operations after patch application, plus the paths that were downgraded."""

    operations: list[FileOperation]
    errors: list[OperationError]
    regenerate_paths: list[str]


def reconcile(
    operations: Iterable[FileOperation],
    existing_files: Mapping[str, str] | None,
) -> Reconciled:
    """Turn patch updates into full-content updates using *existing_files*.

    A patch that does not apply cleanly drops its operation, records an
    ``OperationError`` with ``needs_full_content`` and lists the path in
    ``regenerate_paths``.  With no *existing_files* patches pass through
    untouched for the caller to apply.
    """
    result: list[FileOperation] = []
    errors: list[OperationError] = []
    regenerate: list[str] = []

    for op in operations:
        patch = op.content if isinstance(op, UpdateOperation) else None
        if not isinstance(patch, Patch) or existing_files is None:
            result.append(op)
            continue

        try:
            if op.path not in existing_files:
                raise PatchNotFound(0, path=op.path, search=patch.hunks[0].search)
            patched = apply_patch(existing_files[op.path], patch, path=op.path)
        except PatchError as exc:
            logger.warning("[reconciler] %s — requesting full content", exc)
            errors.append(OperationError.from_exception(exc, path=op.path))
            regenerate.append(op.path)
            continue

        result.append(UpdateOperation(path=op.path, content=patched, partial=op.partial))

    return Reconciled(result, errors, regenerate)


__all__ = [
    "Reconciled",
    "apply_patch",
    "count_occurrences",
    "reconcile",
]
