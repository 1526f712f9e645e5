"""Tests for response_engine.fallback_parser — fenced code block recovery."""

import pytest

from response_engine.contracts import CreateOperation, ResponseFormat, UpdateOperation
from response_engine.fallback_parser import (
    parse_fallback,
    path_from_first_line,
    path_from_heading,
    path_from_info,
)


def result_paths(text):
    return parse_fallback(text).paths()


class TestPathInference:
    @pytest.mark.parametrize(
        "info, expected",
        [
            ("tsx src/App.tsx", "src/App.tsx"),
            ("tsx:src/App.tsx", "src/App.tsx"),
            ("typescript", None),
            ("", None),
        ],
    )
    def test_info_string(self, info, expected):
        assert path_from_info(info) == expected

    @pytest.mark.parametrize(
        "line, expected",
        [
            ("// File: src/util.ts", "src/util.ts"),
            ("# filename: app.py", "app.py"),
            ("<!-- File: index.html -->", "index.html"),
            ("/* path: styles/a.css */", "styles/a.css"),
            ("const x = 1;", None),
        ],
    )
    def test_first_line(self, line, expected):
        assert path_from_first_line(line) == expected

    @pytest.mark.parametrize(
        "line",
        ["### src/App.tsx", "**src/App.tsx**", "`src/App.tsx`:", "File: src/App.tsx", "- src/App.tsx"],
    )
    def test_heading(self, line):
        assert path_from_heading(line) == "src/App.tsx"

    def test_heading_prose(self):
        assert path_from_heading("Here is the updated component:") is None


class TestParseFallback:
    def test_path_on_fence(self):
        result = parse_fallback("```tsx src/App.tsx\nexport default 1;\n```")
        assert result.used_format is ResponseFormat.FALLBACK
        assert result.get("src/App.tsx") == UpdateOperation(
            path="src/App.tsx", content="export default 1;"
        )

    def test_path_comment_removed_from_content(self):
        result = parse_fallback("```ts\n// File: src/util.ts\nexport const x = 1;\n```")
        assert result.get("src/util.ts").content == "export const x = 1;"

    def test_heading_before_fence(self):
        text = "### src/App.tsx\n\n```tsx\nconst a = 1;\n```\n"
        assert result_paths(text) == ["src/App.tsx"]

    def test_unnamed_blocks_go_to_summary(self):
        text = "Run this first:\n```\nnpm install\n```\nThen:\n```ts a.ts\nx\n```"
        result = parse_fallback(text)
        assert result.paths() == ["a.ts"]
        assert result.plan_summary == "npm install"

    def test_no_blocks(self):
        result = parse_fallback("Just prose, no code.")
        assert result.operations == []
        assert result.plan_summary == "Just prose, no code."

    def test_blank_text(self):
        assert parse_fallback("  \n").plan_summary is None

    def test_unterminated_fence(self):
        result = parse_fallback("```ts a.ts\nconst x = 1")
        op = result.get("a.ts")
        assert op.partial
        assert op.content == "const x = 1"
        assert result.is_truncated
        assert "File 'a.ts' is incomplete (unterminated code fence)" in result.warnings

    def test_create_vs_update(self):
        text = "```ts new.ts\nn\n```\n```ts old.ts\no\n```"
        result = parse_fallback(text, existing_paths=["old.ts"])
        assert isinstance(result.get("new.ts"), CreateOperation)
        assert isinstance(result.get("old.ts"), UpdateOperation)

    def test_ignored_path(self):
        result = parse_fallback("```js dist/bundle.js\nx\n```", ignored_paths=["dist"])
        assert result.operations == []
        assert "Skipped ignored path 'dist/bundle.js'" in result.warnings

    def test_repeated_path_last_wins(self):
        text = "```ts a.ts\n1\n```\n```ts a.ts\n2\n```"
        result = parse_fallback(text)
        assert len(result.operations) == 1
        assert result.get("a.ts").content == "2"

