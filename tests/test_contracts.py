"""Tests for response_engine.contracts — operation and result models."""

import pytest
from pydantic import ValidationError

from response_engine.contracts import (
    CreateOperation,
    DeleteOperation,
    FileKind,
    OperationError,
    ParseResult,
    Patch,
    PlanInfo,
    RepairRecord,
    RepairTrace,
    ResponseFormat,
    SearchReplaceHunk,
    UpdateOperation,
    full_content_operation,
    last_wins,
)
from response_engine.errors import PatchAmbiguous, UnbalancedBlock


# ---------------------------------------------------------------------------
# FileKind
# ---------------------------------------------------------------------------


class TestFileKind:
    @pytest.mark.parametrize(
        "path, kind",
        [
            ("src/App.tsx", FileKind.TSX),
            ("src/widget.JSX", FileKind.JSX),
            ("lib/util.ts", FileKind.TS),
            ("index.mjs", FileKind.JS),
            ("styles/main.css", FileKind.CSS),
            ("package.json", FileKind.JSON),
            ("README.md", FileKind.MARKDOWN),
            ("notes.txt", FileKind.TEXT),
            ("Makefile", FileKind.OTHER),
            ("src\\App.tsx", FileKind.TSX),
        ],
    )
    def test_from_path(self, path, kind):
        assert FileKind.from_path(path) is kind

    def test_flags(self):
        assert FileKind.TSX.is_jsx and FileKind.TSX.is_script
        assert FileKind.TS.is_script and not FileKind.TS.is_jsx
        assert not FileKind.MARKDOWN.is_script
        assert not FileKind.CSS.is_script


# ---------------------------------------------------------------------------
# File operations
# ---------------------------------------------------------------------------


class TestOperations:
    def test_update_with_patch(self):
        op = UpdateOperation(
            path="a.ts",
            content=Patch(hunks=[SearchReplaceHunk(search="a", replace="b")]),
        )
        assert op.is_patch
        assert op.action == "update"

    def test_update_with_full_content(self):
        op = UpdateOperation(path="a.ts", content="x")
        assert not op.is_patch

    def test_patch_requires_a_hunk(self):
        with pytest.raises(ValidationError):
            Patch(hunks=[])

    def test_empty_path_rejected(self):
        with pytest.raises(ValidationError):
            CreateOperation(path="", content="x")

    def test_operations_are_frozen(self):
        op = DeleteOperation(path="a.ts")
        with pytest.raises(ValidationError):
            op.path = "b.ts"

    def test_unknown_existing_defaults_to_update(self):
        op = full_content_operation("a.ts", "x")
        assert isinstance(op, UpdateOperation)

    def test_missing_path_becomes_create(self):
        op = full_content_operation("new.ts", "x", existing_paths={"old.ts"})
        assert isinstance(op, CreateOperation)

    def test_existing_path_stays_update(self):
        op = full_content_operation("old.ts", "x", existing_paths={"old.ts"}, partial=True)
        assert isinstance(op, UpdateOperation)
        assert op.partial


class TestLastWins:
    def test_later_operation_replaces_earlier(self):
        ops = [
            UpdateOperation(path="a.ts", content="1"),
            UpdateOperation(path="b.ts", content="2"),
            UpdateOperation(path="a.ts", content="3"),
        ]
        result = last_wins(ops)
        assert [op.path for op in result] == ["a.ts", "b.ts"]
        assert result[0].content == "3"

    def test_delete_can_win(self):
        ops = [UpdateOperation(path="a.ts", content="1"), DeleteOperation(path="a.ts")]
        assert last_wins(ops) == [DeleteOperation(path="a.ts")]


# ---------------------------------------------------------------------------
# Diagnostics
# ---------------------------------------------------------------------------


class TestDiagnostics:
    def test_trace_flags(self):
        trace = RepairTrace(
            path="a.ts",
            records=[
                RepairRecord(pass_name="bracket_balance", changed=True),
                RepairRecord(pass_name="import_fixer", changed=False),
            ],
        )
        assert trace.changed
        assert not trace.failed

    def test_operation_error_from_patch_error(self):
        err = OperationError.from_exception(PatchAmbiguous(0, 2, path="a.ts", search="x"))
        assert err.kind == "PatchAmbiguous"
        assert err.path == "a.ts"
        assert err.needs_full_content
        assert err.detail["count"] == 2

    def test_operation_error_from_block_error(self):
        err = OperationError.from_exception(UnbalancedBlock("a.ts", "b.ts"))
        assert err.kind == "UnbalancedBlock"
        assert err.path == "a.ts"
        assert not err.needs_full_content


# ---------------------------------------------------------------------------
# ParseResult
# ---------------------------------------------------------------------------


class TestParseResult:
    def test_discriminated_operations(self):
        result = ParseResult.model_validate(
            {
                "used_format": "marker",
                "operations": [
                    {"action": "delete", "path": "old.ts"},
                    {"action": "create", "path": "new.ts", "content": "x"},
                ],
            }
        )
        assert isinstance(result.operations[0], DeleteOperation)
        assert isinstance(result.operations[1], CreateOperation)
        assert result.used_format is ResponseFormat.MARKER

    def test_lookup_helpers(self):
        result = ParseResult(
            used_format=ResponseFormat.JSON,
            operations=[
                UpdateOperation(path="a.ts", content="1", partial=True),
                DeleteOperation(path="b.ts"),
            ],
        )
        assert result.paths() == ["a.ts", "b.ts"]
        assert result.get("b.ts") == DeleteOperation(path="b.ts")
        assert result.get("missing.ts") is None
        assert result.partial_paths == ["a.ts"]

    def test_frozen(self):
        result = ParseResult(used_format=ResponseFormat.FALLBACK)
        with pytest.raises(ValidationError):
            result.is_truncated = True

    def test_plan_all_paths(self):
        plan = PlanInfo(create=["a.ts"], update=["b.ts"], delete=["c.ts"])
        assert plan.all_paths == ["a.ts", "b.ts"]
