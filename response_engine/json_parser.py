"""JSON envelope parser — map a ``{"plan", "files", "diffs"}`` object to operations.

Pipeline:

1. Locate the envelope with brace-depth scanning (tolerates code fences
   and prose before/after the object).
2. ``json.loads``; on failure strip trailing commas before ``}``/``]`` and
   retry once.  A second failure raises ``MalformedJson`` with the offset
   of the first error.
3. Map the generic JSON value to ``FileOperation`` models.  Explicit
   ``create`` / ``delete`` lists beat inference from ``files``; ``diffs``
   beats ``files`` for the same path (when diff mode is enabled).
4. If the envelope never closes, the response was truncated: keep every
   complete ``"path": "content"`` pair before the cut and drop the one
   that was cut off.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Iterator, Mapping
from typing import Any

from response_engine.contracts import (
    CreateOperation,
    DeleteOperation,
    FileOperation,
    Patch,
    ParseResult,
    ResponseFormat,
    SearchReplaceHunk,
    UpdateOperation,
    full_content_operation,
)
from response_engine.detector import find_json_envelope, match_brace, strip_bom
from response_engine.envelope import (
    batch_from_mapping,
    manifest_from_list,
    meta_from_mapping,
    missing_manifest_paths,
    plan_from_mapping,
    str_list,
)
from response_engine.errors import MalformedJson
from response_engine.paths import is_ignored_path, is_path_key, looks_like_path, normalise_path

logger = logging.getLogger(__name__)

_FILES_KEYS: tuple[str, ...] = ("files", "fileChanges", "changes")


# ---------------------------------------------------------------------------
# Light-touch repair
# ---------------------------------------------------------------------------


def strip_trailing_commas(text: str) -> str:
    """Remove commas that directly precede ``}`` or ``]`` (outside strings)."""
    out: list[str] = []
    pending_comma: list[str] = []  # comma plus any whitespace after it
    in_string = False
    escaped = False
    for ch in text:
        if in_string:
            out.append(ch)
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if pending_comma:
            if ch in " \t\r\n":
                pending_comma.append(ch)
                continue
            if ch in "}]":
                out.extend(pending_comma[1:])
            else:
                out.extend(pending_comma)
            pending_comma = []
        if ch == ",":
            pending_comma = [ch]
            continue
        if ch == '"':
            in_string = True
        out.append(ch)
    out.extend(pending_comma)
    return "".join(out)


def _loads(fragment: str, base_offset: int) -> Any:
    try:
        return json.loads(fragment, strict=False)
    except json.JSONDecodeError as first:
        repaired = strip_trailing_commas(fragment)
        try:
            return json.loads(repaired, strict=False)
        except json.JSONDecodeError:
            raise MalformedJson(base_offset + first.pos, first.msg) from first


# ---------------------------------------------------------------------------
# Truncated-object scanning
# ---------------------------------------------------------------------------


def _skip_ws(text: str, i: int) -> int:
    n = len(text)
    while i < n and text[i] in " \t\r\n":
        i += 1
    return i


def _string_end(text: str, i: int) -> int | None:
    """Index one past the closing quote of the string opening at ``text[i]``."""
    escaped = False
    for j in range(i + 1, len(text)):
        ch = text[j]
        if escaped:
            escaped = False
        elif ch == "\\":
            escaped = True
        elif ch == '"':
            return j + 1
    return None


def _value_end(text: str, i: int) -> int | None:
    """Index one past the JSON value starting at ``text[i]``, if complete."""
    if i >= len(text):
        return None
    ch = text[i]
    if ch == '"':
        return _string_end(text, i)
    if ch in "{[":
        return match_brace(text, i)
    j = i
    while j < len(text) and text[j] not in ",}] \t\r\n":
        j += 1
    # a scalar running into end-of-input may itself be cut short
    return j if j < len(text) else None


def iter_complete_members(text: str, start: int) -> Iterator[tuple[str, str | None, int]]:
    """Yield ``(key, raw_value, value_start)`` for members of the object at *start*.

    ``raw_value`` is the complete JSON text of the value, or ``None`` when
    the value was cut off by end-of-input — iteration stops after that.
    """
    i = start + 1
    while True:
        i = _skip_ws(text, i)
        if i < len(text) and text[i] == ",":
            i += 1
            continue
        if i >= len(text) or text[i] != '"':
            return
        key_end = _string_end(text, i)
        if key_end is None:
            return
        try:
            key = json.loads(text[i:key_end], strict=False)
        except json.JSONDecodeError:
            return
        i = _skip_ws(text, key_end)
        if i >= len(text) or text[i] != ":":
            return
        i = _skip_ws(text, i + 1)
        value_end = _value_end(text, i)
        if value_end is None:
            yield key, None, i
            return
        yield key, text[i:value_end], i
        i = value_end


def _salvage_truncated(fragment: str) -> tuple[dict[str, Any], list[str]]:
    """Rebuild the complete parts of a truncated envelope as a dict.

    Returns the partial envelope plus the paths whose value was cut off.
    """
    envelope: dict[str, Any] = {}
    dropped: list[str] = []
    for key, raw, value_start in iter_complete_members(fragment, 0):
        if raw is not None:
            try:
                envelope[key] = json.loads(raw, strict=False)
            except json.JSONDecodeError:
                continue
            continue
        if key in _FILES_KEYS and fragment.startswith("{", value_start):
            files: dict[str, Any] = {}
            for path, file_raw, _ in iter_complete_members(fragment, value_start):
                if file_raw is None:
                    dropped.append(path)
                    break
                try:
                    files[path] = json.loads(file_raw, strict=False)
                except json.JSONDecodeError:
                    dropped.append(path)
            envelope[key] = files
    return envelope, dropped


# ---------------------------------------------------------------------------
# Schema mapping
# ---------------------------------------------------------------------------


def _map_hunks(raw: Any, path: str, warnings: list[str]) -> list[SearchReplaceHunk]:
    hunks: list[SearchReplaceHunk] = []
    if not isinstance(raw, list):
        warnings.append(f"Ignored malformed diff for '{path}' (expected a list of hunks)")
        return hunks
    for item in raw:
        if not isinstance(item, dict):
            continue
        search = item.get("search")
        replace = item.get("replace", "")
        if not isinstance(search, str) or not search:
            warnings.append(f"Dropped hunk with empty search text for '{path}'")
            continue
        hunks.append(SearchReplaceHunk(search=search, replace=replace if isinstance(replace, str) else ""))
    return hunks


def _files_object(data: Mapping[str, Any]) -> dict[str, Any]:
    for key in _FILES_KEYS:
        value = data.get(key)
        if isinstance(value, dict):
            return value
    # Some models put file paths straight on the root object.
    return {
        key: value
        for key, value in data.items()
        if isinstance(value, str) and looks_like_path(key)
    }


def map_envelope(
    data: Mapping[str, Any],
    *,
    existing_paths: Iterable[str] | None = None,
    diff_mode_enabled: bool = True,
    ignored_paths: Iterable[str] = (),
) -> tuple[list[FileOperation], list[str]]:
    """Map a parsed JSON envelope to ordered file operations.

    Returns ``(operations, warnings)``.  Repeated paths resolve last-wins,
    keeping the position of the first occurrence.
    """
    warnings: list[str] = []
    ignored = list(ignored_paths)
    existing = None if existing_paths is None else set(existing_paths)

    plan = data.get("plan")
    plan_lists = plan if isinstance(plan, dict) else {}
    explicit_create = set(str_list(data.get("create")) + str_list(plan_lists.get("create")))
    explicit_delete = set(
        str_list(data.get("delete"))
        + str_list(data.get("deletedFiles"))
        + str_list(plan_lists.get("delete"))
    )
    explicit_create = {normalise_path(p) for p in explicit_create}
    explicit_delete = {normalise_path(p) for p in explicit_delete}

    ops: dict[str, FileOperation] = {}

    def accept(path: str) -> bool:
        if is_ignored_path(path, ignored):
            warnings.append(f"Skipped ignored path '{path}'")
            return False
        return True

    for raw_path, value in _files_object(data).items():
        if not is_path_key(raw_path):
            continue
        path = normalise_path(raw_path)
        if not accept(path):
            continue

        if isinstance(value, str):
            ops[path] = _full(path, value, explicit_create, existing)
            continue
        if not isinstance(value, dict):
            warnings.append(f"Ignored unsupported value for '{path}'")
            continue

        if value.get("isDeleted"):
            ops[path] = DeleteOperation(path=path)
            continue
        replacements = value.get("replacements")
        if diff_mode_enabled and replacements is not None and not value.get("isNew"):
            hunks = _map_hunks(replacements, path, warnings)
            if hunks:
                ops[path] = UpdateOperation(path=path, content=Patch(hunks=hunks))
                continue
        content = value.get("content", value.get("code"))
        if not isinstance(content, str):
            warnings.append(f"Ignored entry without content for '{path}'")
            continue
        if value.get("isNew"):
            ops[path] = CreateOperation(path=path, content=content)
        else:
            ops[path] = _full(path, content, explicit_create, existing)

    diffs = data.get("diffs")
    if diff_mode_enabled and isinstance(diffs, dict):
        for raw_path, raw_hunks in diffs.items():
            path = normalise_path(raw_path)
            if not accept(path):
                continue
            if path in explicit_create:
                warnings.append(f"Ignored diff for '{path}': path is listed for creation")
                continue
            hunks = _map_hunks(raw_hunks, path, warnings)
            if hunks:
                ops[path] = UpdateOperation(path=path, content=Patch(hunks=hunks))

    for path in sorted(explicit_delete):
        if accept(path):
            ops[path] = DeleteOperation(path=path)

    return list(ops.values()), warnings


def _full(
    path: str,
    content: str,
    explicit_create: set[str],
    existing: set[str] | None,
) -> CreateOperation | UpdateOperation:
    if path in explicit_create:
        return CreateOperation(path=path, content=content)
    return full_content_operation(path, content, existing_paths=existing)


def _plan_summary(data: Mapping[str, Any]) -> str | None:
    parts: list[str] = []
    for key in ("plan", "explanation"):
        value = data.get(key)
        if isinstance(value, str) and value.strip():
            parts.append(value.strip())
    return "\n\n".join(parts) or None


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def parse_json(
    text: str,
    *,
    existing_paths: Iterable[str] | None = None,
    diff_mode_enabled: bool = True,
    ignored_paths: Iterable[str] = (),
) -> ParseResult:
    """Parse a JSON-envelope response into a ``ParseResult``.

    Raises ``MalformedJson`` when no object is found or the balanced object
    still fails to parse after trailing-comma repair.  Operations carry raw
    (unrepaired) content.
    """
    body = strip_bom(text)
    offset = len(text) - len(body)
    span = find_json_envelope(body)
    if span is None:
        raise MalformedJson(offset, "no JSON object found")

    dropped: list[str] = []
    if span.is_closed:
        data = _loads(span.slice(body), offset + span.start)
        if not isinstance(data, dict):
            raise MalformedJson(offset + span.start, "envelope is not an object")
        truncated = False
    else:
        data, dropped = _salvage_truncated(span.slice(body))
        truncated = True
        logger.info(
            "[json_parser] envelope truncated — salvaged %d top-level keys, dropped %s",
            len(data), dropped or "nothing",
        )

    operations, warnings = map_envelope(
        data,
        existing_paths=existing_paths,
        diff_mode_enabled=diff_mode_enabled,
        ignored_paths=ignored_paths,
    )
    for path in dropped:
        warnings.append(f"Dropped '{path}': content was cut off mid-string")

    plan = data.get("plan")
    batch = batch_from_mapping(data["batch"]) if isinstance(data.get("batch"), dict) else None
    meta = (
        meta_from_mapping(data["meta"], default_format="json")
        if isinstance(data.get("meta"), dict)
        else None
    )
    manifest = manifest_from_list(data.get("manifest"))
    if manifest:
        missing = missing_manifest_paths(manifest, operations)
        if missing:
            warnings.append(f"Manifest validation: missing files: {', '.join(missing)}")
    if batch is not None and not batch.is_complete:
        truncated = True

    return ParseResult(
        operations=operations,
        plan_summary=_plan_summary(data),
        used_format=ResponseFormat.JSON,
        is_truncated=truncated,
        raw_text=text,
        warnings=warnings,
        plan=plan_from_mapping(plan) if isinstance(plan, dict) else None,
        batch=batch,
        meta=meta,
        manifest=manifest,
    )


__all__ = [
    "iter_complete_members",
    "map_envelope",
    "parse_json",
    "strip_trailing_commas",
]
