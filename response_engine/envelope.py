"""Envelope metadata mapping shared by the JSON and marker parsers.

Turns loosely-shaped plan / batch / meta / manifest data (JSON values or
``key: value`` lines from marker blocks) into validated contract models.
Pure functions — no I/O.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

from response_engine.contracts import (
    BatchInfo,
    DeleteOperation,
    FileOperation,
    ManifestEntry,
    MetaInfo,
    PlanInfo,
)

_ACTIONS = ("create", "update", "delete")
_STATUSES = ("included", "pending", "marked", "skipped")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def split_list(value: str) -> list[str]:
    """Split a comma-separated path list, dropping blanks."""
    return [item.strip() for item in value.split(",") if item.strip()]


def str_list(value: Any) -> list[str]:
    """Coerce a JSON value into a list of strings (non-strings dropped)."""
    if isinstance(value, str):
        return split_list(value)
    if isinstance(value, list):
        return [item.strip() for item in value if isinstance(item, str) and item.strip()]
    return []


def _to_int(value: Any, default: int) -> int:
    try:
        number = int(str(value).replace(",", "").replace("~", "").strip())
    except (TypeError, ValueError):
        return default
    return number if number >= 0 else default


def key_values(block: str) -> dict[str, str]:
    """Parse ``key: value`` lines; keys are lower-cased."""
    pairs: dict[str, str] = {}
    for line in block.splitlines():
        key, sep, value = line.partition(":")
        if not sep:
            continue
        pairs[key.strip().lower()] = value.strip()
    return pairs


# ---------------------------------------------------------------------------
# Plan
# ---------------------------------------------------------------------------


def plan_from_lines(block: str) -> PlanInfo | None:
    """Read ``create:`` / ``update:`` / ``delete:`` lines from a plan block."""
    lists: dict[str, list[str]] = {}
    for line in block.splitlines():
        stripped = line.strip().lstrip("-* ").strip()
        for action in _ACTIONS:
            prefix = f"{action}:"
            if stripped.lower().startswith(prefix):
                lists[action] = split_list(stripped[len(prefix):])
    if not lists:
        return None
    return PlanInfo(**lists)


def plan_from_mapping(data: Mapping[str, Any]) -> PlanInfo:
    return PlanInfo(
        create=str_list(data.get("create")),
        update=str_list(data.get("update")),
        delete=str_list(data.get("delete")),
    )


# ---------------------------------------------------------------------------
# Batch / meta
# ---------------------------------------------------------------------------


def batch_from_mapping(data: Mapping[str, Any]) -> BatchInfo:
    """Map a ``batch`` object (JSON keys or lower-cased marker keys)."""

    def pick(*names: str) -> Any:
        for name in names:
            if name in data:
                return data[name]
        return None

    complete = pick("isComplete", "iscomplete", "is_complete")
    if isinstance(complete, str):
        is_complete = complete.strip().lower() != "false"
    else:
        is_complete = complete is not False

    hint = pick("nextBatchHint", "nextbatchhint", "next_batch_hint")
    return BatchInfo(
        current=_to_int(pick("current"), 1) or 1,
        total=_to_int(pick("total"), 1) or 1,
        is_complete=is_complete,
        completed=str_list(pick("completed")),
        remaining=str_list(pick("remaining")),
        next_batch_hint=str(hint) if hint else None,
    )


def meta_from_mapping(data: Mapping[str, Any], *, default_format: str) -> MetaInfo:
    timestamp = data.get("timestamp")
    return MetaInfo(
        format=str(data.get("format") or default_format),
        version=str(data.get("version") or ("2.0" if default_format == "json" else "1.0")),
        timestamp=str(timestamp) if timestamp else None,
    )


# ---------------------------------------------------------------------------
# Manifest
# ---------------------------------------------------------------------------


def _manifest_entry(
    path: str, action: Any, lines: Any, tokens: Any, status: Any
) -> ManifestEntry:
    action_s = str(action or "").strip().lower()
    status_s = str(status or "").strip().lower()
    return ManifestEntry(
        path=path,
        action=action_s if action_s in _ACTIONS else "create",
        lines=_to_int(lines, 0),
        tokens=_to_int(tokens, 0),
        status=status_s if status_s in _STATUSES else "included",
    )


def manifest_from_table(block: str) -> list[ManifestEntry] | None:
    """Parse a markdown pipe table ``| File | Action | Lines | Tokens | Status |``."""
    entries: list[ManifestEntry] = []
    for line in block.splitlines():
        row = line.strip()
        if not row.startswith("|") or row.startswith("|--") or row.startswith("| File"):
            continue
        cells = [c.strip() for c in row.split("|") if c.strip()]
        if len(cells) < 4:
            continue
        status = cells[4] if len(cells) > 4 else ""
        entries.append(_manifest_entry(cells[0], cells[1], cells[2], cells[3], status))
    return entries or None


def manifest_from_list(items: Any) -> list[ManifestEntry] | None:
    if not isinstance(items, list):
        return None
    entries = [
        _manifest_entry(
            str(item.get("path") or ""),
            item.get("action"),
            item.get("lines"),
            item.get("tokens"),
            item.get("status"),
        )
        for item in items
        if isinstance(item, dict) and item.get("path")
    ]
    return entries or None


def missing_manifest_paths(
    manifest: Iterable[ManifestEntry], operations: Iterable[FileOperation]
) -> list[str]:
    """Manifest entries marked ``included`` that produced no operation."""
    received = {op.path for op in operations if not isinstance(op, DeleteOperation)}
    return [
        entry.path
        for entry in manifest
        if entry.status == "included" and entry.action != "delete" and entry.path not in received
    ]
