"""Truncation analysis — what to do with a response that may be cut short.

:func:`analyze` classifies a finished ``ParseResult`` into a recovery
action and lists the files that should be requested again.  Pure
functions over the result; nothing here touches the transport.
"""

from __future__ import annotations

import enum

from pydantic import BaseModel, ConfigDict, Field

from response_engine.contracts import DeleteOperation, FileKind, ParseResult, PlanInfo


class RecoveryAction(str, enum.Enum):
    """What the caller should do next."""

    NONE = "none"  # nothing usable
    SUCCESS = "success"  # every expected file arrived intact
    PARTIAL = "partial"  # some files are partial or failed; keep the rest
    CONTINUATION = "continuation"  # ask the model for the remaining files


class RecoveryPlan(BaseModel):
    """Recovery decision for one ``ParseResult``."""

    model_config = ConfigDict(frozen=True)

    action: RecoveryAction
    received: list[str] = Field(default_factory=list, description="Paths with usable content")
    files_to_regenerate: list[str] = Field(default_factory=list)
    message: str = ""


# ---------------------------------------------------------------------------
# Heuristics
# ---------------------------------------------------------------------------


def looks_truncated(path: str, content: str) -> bool:
    """Cheap content check for a file that was probably cut off.

    Flags more than one unclosed ``{``, more than two unclosed ``(``, a
    trailing backslash, or a JSX file whose last character is not
    ``}``, ``;`` or ``)``.
    """
    body = content.strip()
    if not body:
        return False
    if body.count("{") - body.count("}") > 1:
        return True
    if body.count("(") - body.count(")") > 2:
        return True
    if body.endswith("\\"):
        return True
    return FileKind.from_path(path).is_jsx and body[-1] not in "};)"


def _unique(paths: list[str]) -> list[str]:
    return list(dict.fromkeys(p for p in paths if p))


def _plural(count: int, noun: str = "file") -> str:
    return f"{count} {noun}{'' if count == 1 else 's'}"


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def remaining_paths(result: ParseResult, plan: PlanInfo | None = None) -> list[str]:
    """Planned or batch-announced paths that produced no operation."""
    plan = plan or result.plan
    received = set(result.paths())
    expected: list[str] = []
    if plan is not None:
        expected.extend(plan.all_paths)
    if result.batch is not None:
        expected.extend(result.batch.remaining)
    return _unique([p for p in expected if p not in received])


def analyze(result: ParseResult, plan: PlanInfo | None = None) -> RecoveryPlan:
    """Decide the recovery action for *result*.

    *plan* overrides ``result.plan`` when the caller kept the plan from an
    earlier batch.
    """
    remaining = remaining_paths(result, plan)
    partial = result.partial_paths
    suspicious = [
        op.path
        for op in result.operations
        if not isinstance(op, DeleteOperation)
        and isinstance(op.content, str)
        and not op.partial
        and looks_truncated(op.path, op.content)
    ]
    failed = _unique([*result.regenerate_paths, *(e.path for e in result.errors)])
    regenerate = _unique([*failed, *partial, *suspicious, *remaining])
    received = [p for p in result.paths() if p not in regenerate]

    if not result.operations and not regenerate:
        return RecoveryPlan(action=RecoveryAction.NONE, message="No file operations found")

    batch_open = result.batch is not None and not result.batch.is_complete
    if remaining or batch_open:
        total = len(received) + len(regenerate)
        if result.batch is not None and not remaining:
            total = max(total, result.batch.total)
        return RecoveryPlan(
            action=RecoveryAction.CONTINUATION,
            received=received,
            files_to_regenerate=regenerate,
            message=f"Generating... {len(received)}/{_plural(total)}",
        )

    if regenerate:
        return RecoveryPlan(
            action=RecoveryAction.PARTIAL,
            received=received,
            files_to_regenerate=regenerate,
            message=(
                f"{_plural(len(received))} updated, "
                f"{len(regenerate)} could not be parsed - please retry"
            ),
        )

    return RecoveryPlan(
        action=RecoveryAction.SUCCESS,
        received=received,
        message=f"Generated {_plural(len(received))}!",
    )


def continuation_prompt(result: ParseResult, plan: PlanInfo | None = None) -> str | None:
    """Request text for the files still owed, or ``None`` when complete."""
    remaining = remaining_paths(result, plan)
    regenerate = _unique([*result.regenerate_paths, *result.partial_paths, *remaining])
    if not regenerate:
        return None

    completed = [p for p in result.paths() if p not in regenerate]
    if result.batch is not None:
        completed = _unique([*result.batch.completed, *completed])

    lines = [
        f"Continue generating the remaining {_plural(len(regenerate))}.",
        "",
        f"ALREADY COMPLETED ({_plural(len(completed))}):",
        *(f"- {p}" for p in completed),
        "",
        "REMAINING FILES TO GENERATE:",
        *(f"- {p}" for p in regenerate),
        "",
    ]
    if result.batch is not None:
        lines.append(
            "Use the same format and structure. "
            f"This is batch {result.batch.current + 1} of {result.batch.total}."
        )
    else:
        lines.append("Use the same format and structure.")
    return "\n".join(lines)


__all__ = [
    "RecoveryAction",
    "RecoveryPlan",
    "analyze",
    "continuation_prompt",
    "looks_truncated",
    "remaining_paths",
]
