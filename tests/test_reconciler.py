"""Tests for response_engine.reconciler — search/replace patch application."""

import pytest

from response_engine.contracts import (
    CreateOperation,
    DeleteOperation,
    Patch,
    SearchReplaceHunk,
    UpdateOperation,
)
from response_engine.errors import PatchAmbiguous, PatchNotFound
from response_engine.reconciler import apply_patch, count_occurrences, reconcile


def _hunk(search, replace=""):
    return SearchReplaceHunk(search=search, replace=replace)


def _patch_op(path, *pairs):
    return UpdateOperation(path=path, content=Patch(hunks=[_hunk(s, r) for s, r in pairs]))


# ---------------------------------------------------------------------------
# apply_patch
# ---------------------------------------------------------------------------


class TestApplyPatch:
    def test_single_hunk(self):
        assert apply_patch("a b c", [_hunk("b", "B")]) == "a B c"

    def test_hunks_apply_to_running_buffer(self):
        hunks = [_hunk("x = 1", "x = 2"), _hunk("x = 2", "x = 3")]
        assert apply_patch("let x = 1;", hunks) == "let x = 3;"

    def test_accepts_patch_model(self):
        assert apply_patch("abc", Patch(hunks=[_hunk("b", "")])) == "ac"

    def test_not_found_names_hunk(self):
        with pytest.raises(PatchNotFound) as exc_info:
            apply_patch("a b", [_hunk("a", "A"), _hunk("zzz", "")], path="f.ts")
        assert exc_info.value.hunk_index == 1
        assert exc_info.value.path == "f.ts"

    def test_ambiguous(self):
        with pytest.raises(PatchAmbiguous) as exc_info:
            apply_patch("a;\na;\n", [_hunk("a;", "b;")])
        assert exc_info.value.count == 2
        assert exc_info.value.hunk_index == 0

    def test_crlf_retry(self):
        assert apply_patch("a\r\nb\r\n", [_hunk("a\nb", "x\ny")]) == "x\r\ny\r\n"

    def test_crlf_retry_disabled(self):
        with pytest.raises(PatchNotFound):
            apply_patch("a\r\nb\r\n", [_hunk("a\nb", "x")], normalise_newlines=False)

    def test_crlf_retry_failure_reports_original_error(self):
        with pytest.raises(PatchNotFound) as exc_info:
            apply_patch("a\r\nb\r\n", [_hunk("nope\n", "x")])
        assert exc_info.value.hunk_index == 0


class TestCountOccurrences:
    def test_overlapping(self):
        assert count_occurrences("aaa", "aa") == 2

    def test_empty_search(self):
        assert count_occurrences("abc", "") == 0


# ---------------------------------------------------------------------------
# reconcile
# ---------------------------------------------------------------------------


class TestReconcile:
    def test_patch_becomes_full_content(self):
        out = reconcile([_patch_op("a.ts", ("1", "2"))], {"a.ts": "const x = 1;"})
        assert out.operations == [UpdateOperation(path="a.ts", content="const x = 2;")]
        assert out.errors == []
        assert out.regenerate_paths == []

    def test_rejected_patch_is_dropped(self):
        ops = [_patch_op("a.ts", ("a;", "b;")), CreateOperation(path="b.ts", content="b")]
        out = reconcile(ops, {"a.ts": "a;\na;\n"})
        assert out.operations == [CreateOperation(path="b.ts", content="b")]
        assert out.regenerate_paths == ["a.ts"]
        err = out.errors[0]
        assert err.kind == "PatchAmbiguous"
        assert err.path == "a.ts"
        assert err.needs_full_content

    def test_patch_for_unknown_file(self):
        out = reconcile([_patch_op("missing.ts", ("x", "y"))], {})
        assert out.operations == []
        assert out.errors[0].kind == "PatchNotFound"
        assert out.regenerate_paths == ["missing.ts"]

    def test_without_existing_files_patches_pass_through(self):
        op = _patch_op("a.ts", ("x", "y"))
        assert reconcile([op], None).operations == [op]

    def test_other_operations_untouched(self):
        ops = [
            DeleteOperation(path="a.ts"),
            UpdateOperation(path="b.ts", content="b"),
            CreateOperation(path="c.ts", content="c"),
        ]
        out = reconcile(ops, {"a.ts": "", "b.ts": ""})
        assert out.operations == ops
        assert out.errors == []
