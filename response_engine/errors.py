"""Response engine error hierarchy.

Every error carries typed fields (not just a message string),
supports ``to_dict()`` for serialisation into ``OperationError`` values,
and has a readable ``__str__`` for logging.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from response_engine.contracts import ParseResult


class EngineError(Exception):
    """Base error for all response-engine failures."""

    def __init__(self, message: str, *, detail: dict | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.detail = detail or {}

    def to_dict(self) -> dict:
        return {"error": type(self).__name__, "message": self.message, **self.detail}

    def __str__(self) -> str:
        return self.message


class MalformedJson(EngineError):
    """The JSON envelope could not be parsed, even after light repair."""

    def __init__(self, offset: int, reason: str = "") -> None:
        self.offset = offset
        self.reason = reason
        msg = f"Malformed JSON envelope at offset {offset}"
        if reason:
            msg = f"{msg}: {reason}"
        super().__init__(msg, detail={"offset": offset, "reason": reason})


class UnbalancedBlock(EngineError):
    """A marker block was closed with a tag naming a different path."""

    def __init__(self, path: str, closing_path: str = "") -> None:
        self.path = path
        self.closing_path = closing_path
        if closing_path:
            msg = f"Block '{path}' closed by mismatched tag for '{closing_path}'"
        else:
            msg = f"Block '{path}' was never closed"
        super().__init__(msg, detail={"path": path, "closing_path": closing_path})


class PatchError(EngineError):
    """A search/replace hunk could not be applied unambiguously.

    Patches are all-or-nothing per file: any ``PatchError`` means the
    caller should request full content for ``path`` instead.
    """

    def __init__(
        self,
        message: str,
        *,
        hunk_index: int,
        path: str = "",
        detail: dict | None = None,
    ) -> None:
        self.hunk_index = hunk_index
        self.path = path
        super().__init__(
            message,
            detail={"path": path, "hunk_index": hunk_index, **(detail or {})},
        )


class PatchNotFound(PatchError):
    """The hunk's search text does not occur in the working content."""

    def __init__(self, hunk_index: int, *, path: str = "", search: str = "") -> None:
        self.search = search
        preview = search[:80] + ("..." if len(search) > 80 else "")
        where = f" in '{path}'" if path else ""
        super().__init__(
            f"Hunk {hunk_index}{where}: search text not found",
            hunk_index=hunk_index,
            path=path,
            detail={"search": preview},
        )


class PatchAmbiguous(PatchError):
    """The hunk's search text occurs more than once."""

    def __init__(
        self, hunk_index: int, count: int, *, path: str = "", search: str = ""
    ) -> None:
        self.count = count
        self.search = search
        preview = search[:80] + ("..." if len(search) > 80 else "")
        where = f" in '{path}'" if path else ""
        super().__init__(
            f"Hunk {hunk_index}{where}: search text matches {count} times",
            hunk_index=hunk_index,
            path=path,
            detail={"count": count, "search": preview},
        )


class RepairImpossible(EngineError):
    """A repair pass raised; the original content is kept."""

    def __init__(self, pass_name: str, cause: str, *, path: str = "") -> None:
        self.pass_name = pass_name
        self.cause = cause
        self.path = path
        super().__init__(
            f"Repair pass '{pass_name}' failed: {cause}",
            detail={"pass_name": pass_name, "cause": cause, "path": path},
        )


class NoOperationsFound(EngineError):
    """A non-empty response produced zero file operations.

    ``result`` holds the best-effort ``ParseResult`` (usually the
    fallback parser's, with the raw text as ``plan_summary``).
    """

    def __init__(self, raw_length: int, result: ParseResult | None = None) -> None:
        self.raw_length = raw_length
        self.result = result
        super().__init__(
            f"No file operations found in response ({raw_length} chars)",
            detail={"raw_length": raw_length},
        )


class ResponseTooLarge(EngineError):
    """The response exceeds the configured maximum size."""

    def __init__(self, size: int, limit: int) -> None:
        self.size = size
        self.limit = limit
        super().__init__(
            f"Response too large ({size // 1000}KB > {limit // 1000}KB limit)",
            detail={"size": size, "limit": limit},
        )


def error_detail(exc: EngineError) -> dict[str, Any]:
    """Return ``exc.to_dict()`` without the ``error``/``message`` keys."""
    return {k: v for k, v in exc.to_dict().items() if k not in ("error", "message")}
