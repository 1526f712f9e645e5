"""Response engine contracts — Pydantic models for parse results.

Every parser in the engine produces these models.  File operations are a
closed tagged union (discriminated on ``action``) built by explicit mapping
functions from the parsed envelope — raw JSON values never leave the
parser that read them.  All models are frozen (immutable after creation);
pipeline stages derive new results with ``model_copy(update=...)``.
"""

from __future__ import annotations

import enum
from collections.abc import Iterable
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field

from response_engine.errors import EngineError, PatchError, error_detail


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class DetectedFormat(str, enum.Enum):
    """Envelope convention recognised by the format detector."""

    JSON = "json"
    MARKER = "marker"
    UNKNOWN = "unknown"


class ResponseFormat(str, enum.Enum):
    """Parser that actually produced a ``ParseResult``."""

    JSON = "json"
    MARKER = "marker"
    FALLBACK = "fallback"


class FileKind(str, enum.Enum):
    """Coarse file kind used to select repair passes."""

    TSX = "tsx"
    JSX = "jsx"
    TS = "ts"
    JS = "js"
    CSS = "css"
    JSON = "json"
    HTML = "html"
    MARKDOWN = "markdown"
    TEXT = "text"
    OTHER = "other"

    @classmethod
    def from_path(cls, path: str) -> FileKind:
        """Infer the kind from the file extension of *path*."""
        name = path.replace("\\", "/").rsplit("/", 1)[-1].lower()
        ext = name.rsplit(".", 1)[-1] if "." in name else ""
        return _EXTENSION_KINDS.get(ext, cls.OTHER)

    @property
    def is_jsx(self) -> bool:
        return self in (FileKind.TSX, FileKind.JSX)

    @property
    def is_script(self) -> bool:
        return self in (FileKind.TSX, FileKind.JSX, FileKind.TS, FileKind.JS)


_EXTENSION_KINDS: dict[str, FileKind] = {
    "tsx": FileKind.TSX,
    "jsx": FileKind.JSX,
    "ts": FileKind.TS,
    "mts": FileKind.TS,
    "cts": FileKind.TS,
    "js": FileKind.JS,
    "mjs": FileKind.JS,
    "cjs": FileKind.JS,
    "css": FileKind.CSS,
    "scss": FileKind.CSS,
    "json": FileKind.JSON,
    "html": FileKind.HTML,
    "htm": FileKind.HTML,
    "md": FileKind.MARKDOWN,
    "mdx": FileKind.MARKDOWN,
    "txt": FileKind.TEXT,
}


# ---------------------------------------------------------------------------
# File operations
# ---------------------------------------------------------------------------


class SearchReplaceHunk(BaseModel):
    """One search/replace pair within a patch."""

    model_config = ConfigDict(frozen=True)

    search: str = Field(..., description="Exact text to locate (must match once)")
    replace: str = Field(default="", description="Replacement text")


class Patch(BaseModel):
    """Ordered hunks applied against the current content of a file."""

    model_config = ConfigDict(frozen=True)

    hunks: list[SearchReplaceHunk] = Field(..., min_length=1)


class CreateOperation(BaseModel):
    """Create a new file with full content."""

    model_config = ConfigDict(frozen=True)

    action: Literal["create"] = "create"
    path: str = Field(..., min_length=1)
    content: str
    partial: bool = Field(default=False, description="Recovered from a truncated block")


class UpdateOperation(BaseModel):
    """Replace an existing file's content, or patch it."""

    model_config = ConfigDict(frozen=True)

    action: Literal["update"] = "update"
    path: str = Field(..., min_length=1)
    content: Union[str, Patch]
    partial: bool = Field(default=False, description="Recovered from a truncated block")

    @property
    def is_patch(self) -> bool:
        return isinstance(self.content, Patch)


class DeleteOperation(BaseModel):
    """Delete a file."""

    model_config = ConfigDict(frozen=True)

    action: Literal["delete"] = "delete"
    path: str = Field(..., min_length=1)


FileOperation = Annotated[
    Union[CreateOperation, UpdateOperation, DeleteOperation],
    Field(discriminator="action"),
]


def full_content_operation(
    path: str,
    content: str,
    *,
    existing_paths: Iterable[str] | None = None,
    partial: bool = False,
) -> CreateOperation | UpdateOperation:
    """Build a Create or Update for *path*.

    When *existing_paths* is unknown (``None``) the operation defaults to
    an update; otherwise paths absent from the project become creates.
    """
    if existing_paths is not None and path not in set(existing_paths):
        return CreateOperation(path=path, content=content, partial=partial)
    return UpdateOperation(path=path, content=content, partial=partial)


def last_wins(operations: Iterable[FileOperation]) -> list[FileOperation]:
    """Collapse repeated paths: the later operation replaces the earlier.

    The surviving operation keeps the position of the first occurrence.
    """
    by_path: dict[str, FileOperation] = {}
    for op in operations:
        by_path[op.path] = op
    return list(by_path.values())


# ---------------------------------------------------------------------------
# Diagnostics
# ---------------------------------------------------------------------------


class RepairRecord(BaseModel):
    """Outcome of one repair pass over one file."""

    model_config = ConfigDict(frozen=True)

    pass_name: str
    changed: bool
    error: str | None = Field(default=None, description="Set when the pass raised")


class RepairTrace(BaseModel):
    """Ordered record of every repair pass applied to a file."""

    model_config = ConfigDict(frozen=True)

    path: str = ""
    records: list[RepairRecord] = Field(default_factory=list)

    @property
    def changed(self) -> bool:
        return any(r.changed for r in self.records)

    @property
    def failed(self) -> bool:
        return any(r.error is not None for r in self.records)


class OperationError(BaseModel):
    """A contained, per-file failure surfaced alongside the operations."""

    model_config = ConfigDict(frozen=True)

    kind: str = Field(..., description="Error class name, e.g. 'PatchAmbiguous'")
    path: str = ""
    message: str
    detail: dict[str, Any] = Field(default_factory=dict)
    needs_full_content: bool = Field(
        default=False,
        description="Caller should request full-content regeneration for path",
    )

    @classmethod
    def from_exception(cls, exc: EngineError, *, path: str = "") -> OperationError:
        detail = error_detail(exc)
        return cls(
            kind=type(exc).__name__,
            path=path or str(detail.get("path") or ""),
            message=exc.message,
            detail=detail,
            needs_full_content=isinstance(exc, PatchError),
        )


# ---------------------------------------------------------------------------
# Envelope metadata
# ---------------------------------------------------------------------------


class PlanInfo(BaseModel):
    """Paths the model announced it would touch (informational only)."""

    model_config = ConfigDict(frozen=True)

    create: list[str] = Field(default_factory=list)
    update: list[str] = Field(default_factory=list)
    delete: list[str] = Field(default_factory=list)

    @property
    def all_paths(self) -> list[str]:
        return [*self.create, *self.update]


class BatchInfo(BaseModel):
    """Multi-batch generation progress."""

    model_config = ConfigDict(frozen=True)

    current: int = Field(default=1, ge=0)
    total: int = Field(default=1, ge=0)
    is_complete: bool = True
    completed: list[str] = Field(default_factory=list)
    remaining: list[str] = Field(default_factory=list)
    next_batch_hint: str | None = None


class MetaInfo(BaseModel):
    """Envelope self-description."""

    model_config = ConfigDict(frozen=True)

    format: str
    version: str
    timestamp: str | None = None


class ManifestEntry(BaseModel):
    """One row of the envelope's file manifest."""

    model_config = ConfigDict(frozen=True)

    path: str
    action: Literal["create", "update", "delete"] = "create"
    lines: int = Field(default=0, ge=0)
    tokens: int = Field(default=0, ge=0)
    status: Literal["included", "pending", "marked", "skipped"] = "included"


# ---------------------------------------------------------------------------
# Parse result
# ---------------------------------------------------------------------------


class ParseResult(BaseModel):
    """Terminal output of a full parse pass."""

    model_config = ConfigDict(frozen=True)

    operations: list[FileOperation] = Field(default_factory=list)
    plan_summary: str | None = None
    used_format: ResponseFormat
    needed_repair: bool = False
    is_truncated: bool = False
    raw_text: str = Field(default="", description="Original input, for diagnostics")

    errors: list[OperationError] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    repair_traces: list[RepairTrace] = Field(default_factory=list)
    regenerate_paths: list[str] = Field(
        default_factory=list,
        description="Paths whose patch was rejected; request full content",
    )

    plan: PlanInfo | None = None
    batch: BatchInfo | None = None
    meta: MetaInfo | None = None
    manifest: list[ManifestEntry] | None = None

    def paths(self) -> list[str]:
        return [op.path for op in self.operations]

    def get(self, path: str) -> FileOperation | None:
        for op in self.operations:
            if op.path == path:
                return op
        return None

    @property
    def partial_paths(self) -> list[str]:
        return [
            op.path for op in self.operations
            if not isinstance(op, DeleteOperation) and op.partial
        ]
