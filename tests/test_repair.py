"""Tests for response_engine.repair — syntax repair passes and pipeline."""

import random
import time

import pytest

import importlib

repair_mod = importlib.import_module("response_engine.repair")
from response_engine.contracts import FileKind
from response_engine.repair import (
    BRACKET_BALANCE,
    CLEAN_CONTENT,
    IMPORT_FIXER,
    JSX_BALANCE,
    RETURN_FIXER,
    RepairPass,
    balance_brackets,
    balance_jsx,
    clean_content,
    fix_imports,
    fix_returns,
    repair,
    unclosed_brackets,
)


def _balanced(text):
    pairs = {")": "(", "]": "[", "}": "{"}
    stack = []
    for ch in text:
        if ch in "([{":
            stack.append(ch)
        elif ch in pairs:
            if not stack or stack.pop() != pairs[ch]:
                return False
    return not stack


def _strip_brackets(text):
    return "".join(c for c in text if c not in "(){}[]")


# ===========================================================================
# Content cleaning
# ===========================================================================


class TestCleanContent:
    @pytest.mark.parametrize(
        "content, expected",
        [
            ("```tsx\nconst a = 1;\n```", "const a = 1;"),
            ("```\nconst a = 1;\n```\n", "const a = 1;\n"),
            ("typescript\nconst a = 1;", "const a = 1;"),
            ("```ts\r\nconst a = 1;\r\n```\r\n", "const a = 1;\r\n"),
            ("a();\n  ```  \nb();", "a();\nb();"),
        ],
    )
    def test_strips(self, content, expected):
        assert clean_content(content) == expected

    @pytest.mark.parametrize(
        "content",
        [
            "const s = `a`;\n",
            "const fence = '```';",
            "tsx",
            "const ts = 1;\ntsx\n",
        ],
    )
    def test_untouched(self, content):
        assert clean_content(content) == content


# ===========================================================================
# Bracket balance
# ===========================================================================


class TestBalanceBrackets:
    @pytest.mark.parametrize(
        "content, expected",
        [
            ("export default function App(){", "export default function App(){}"),
            ("f(a[1)", "f(a[1])"),
            ("a())", "a()"),
            ("const o = { a: [1, 2", "const o = { a: [1, 2]}"),
            ("const s = `a ${b", "const s = `a ${b}`"),
            ("const a = 'abc", "const a = 'abc'"),
            ('foo("a', 'foo("a")'),
            ("f( // note", "f( // note\n)"),
            ("f(/* x", "f(/* x*/)"),
        ],
    )
    def test_repairs(self, content, expected):
        assert balance_brackets(content) == expected

    @pytest.mark.parametrize(
        "content",
        [
            "const s = '(';",
            'const s = "{[";',
            "// unclosed ( in a comment\nf();",
            "/* { */ g();",
            "const t = `${a}(`;",
        ],
    )
    def test_literals_ignored(self, content):
        assert balance_brackets(content) == content

    def test_apostrophe_in_jsx_text(self):
        content = "const A = () => <p>Don't panic</p>;"
        assert balance_brackets(content, FileKind.TSX) == content

    def test_url_in_jsx_text(self):
        content = "const A = () => <p>see http://a.b (c)</p>;"
        assert balance_brackets(content, FileKind.TSX) == content

    def test_css(self):
        assert balance_brackets(".a { color: red;", FileKind.CSS) == ".a { color: red;}"

    def test_json(self):
        assert balance_brackets('{"a": [1, "]"', FileKind.JSON) == '{"a": [1, "]"]}'

    @pytest.mark.parametrize(
        "content, expected",
        [
            ('b}"', 'b"'),
            ("a /)/ b(", "a // b(\n"),
            ("x = 1 /]* c", "x = 1 /* c*/"),
        ],
    )
    def test_dropped_closer_reads_like_its_output(self, content, expected):
        fixed = balance_brackets(content)
        assert fixed == expected
        assert balance_brackets(fixed) == fixed

    def test_unclosed_brackets(self):
        assert unclosed_brackets("f({[") == [")", "}", "]"]
        assert unclosed_brackets("f()") == []

    def test_random_inputs_balance_and_settle(self):
        rng = random.Random(1234)
        alphabet = "(){}[]ab ;\n"
        for _ in range(500):
            text = "".join(rng.choice(alphabet) for _ in range(rng.randint(0, 30)))
            fixed = balance_brackets(text)
            assert _balanced(fixed), text
            assert balance_brackets(fixed) == fixed, text
            assert _strip_brackets(fixed) == _strip_brackets(text), text


# ===========================================================================
# JSX balance
# ===========================================================================


class TestBalanceJsx:
    @pytest.mark.parametrize(
        "content, expected",
        [
            ("<div><span>a</sp", "<div><span>a</span></div>"),
            ("<>\n<Item />", "<>\n<Item /></>"),
            ('<div className="x"', '<div className="x"/>'),
            ("<ul>{items.map(i => <li>{i}</li>)}", "<ul>{items.map(i => <li>{i}</li>)}</ul>"),
            ("return (<div>hi)", "return (<div>hi</div>)"),
            ("<div className={x}", "<div className={x}/>"),
            ("<a/", "<a/>"),
            ("<a><b></a", "<a><b></a>"),
            ("<ul>{items.map(i => <li>{i})}", "<ul>{items.map(i => <li>{i}</li>)}</ul>"),
        ],
    )
    def test_repairs(self, content, expected):
        assert balance_jsx(content) == expected

    @pytest.mark.parametrize(
        "content",
        [
            "if (a < b) { x(); }",
            "const m = new Map<string, number>();",
            "return <div>Hello</div>;",
            "const A = () => <p>a > b</p>;",
            '<a b="x',
        ],
    )
    def test_untouched(self, content):
        assert balance_jsx(content) == content


# ===========================================================================
# Import fixer
# ===========================================================================


class TestFixImports:
    def test_closes_specifier_and_adds_semicolon(self):
        content = "import React from 'react';\nimport App from './App"
        assert fix_imports(content) == "import React from 'react';\nimport App from './App';"

    def test_no_semicolon_when_others_have_none(self):
        content = 'import React from "react"\nimport App from "./App'
        assert fix_imports(content) == 'import React from "react"\nimport App from "./App"'

    def test_missing_brace(self):
        content = "import { a, b from './x';\n\nconst y = 1;"
        assert fix_imports(content) == "import { a, b } from './x';\n\nconst y = 1;"

    def test_complete_imports_untouched(self):
        content = "import { a } from './x';\nconst b = { c: 1 };\n"
        assert fix_imports(content) == content

    def test_no_imports(self):
        assert fix_imports("const a = 1;") == "const a = 1;"

    def test_multi_line_statement(self):
        content = "import {\n  a,\n  b\n} from './x';\nimport c from './c"
        assert fix_imports(content) == "import {\n  a,\n  b\n} from './x';\nimport c from './c';"

    def test_long_statement_is_linear(self):
        names = "".join(f"  n{i},\n" for i in range(20000))
        content = "import {\n" + names + "} from './x"
        start = time.perf_counter()
        fixed = fix_imports(content)
        assert time.perf_counter() - start < 5
        assert fixed == content + "'"


# ===========================================================================
# Return fixer
# ===========================================================================


class TestFixReturns:
    def test_wraps_bare_return(self):
        content = "function A() {\n  return\n    <div>hi</div>;\n}"
        assert fix_returns(content) == "function A() {\n  return (\n    <div>hi</div>\n  );\n}"

    def test_closes_trailing_return_paren(self):
        assert fix_returns("return (<div>x</div>\n}") == "return (<div>x</div>)\n}"

    def test_bare_return_before_code_untouched(self):
        content = "function f() {\n  return\n  doThing();\n}"
        assert fix_returns(content) == content

    def test_parenthesised_return_untouched(self):
        content = "function A() {\n  return (\n    <div />\n  );\n}"
        assert fix_returns(content) == content

    def test_wraps_nested_returns(self):
        content = (
            "function A() {\n  return\n    <ul>{items.map(i => {\n      return\n"
            "        <li>{i}</li>;\n    })}</ul>;\n}"
        )
        assert fix_returns(content) == (
            "function A() {\n  return (\n    <ul>{items.map(i => {\n      return (\n"
            "        <li>{i}</li>\n      );\n    })}</ul>\n  );\n}"
        )

    def test_open_paren_inside_string_not_closed(self):
        content = "const s = 'return (';"
        assert fix_returns(content) == content


# ===========================================================================
# Pipeline
# ===========================================================================


IDEMPOTENT_SAMPLES = [
    ("export default function App(){", FileKind.TSX),
    ("const A = () => (<div>hi", FileKind.TSX),
    ("import App from './App", FileKind.TSX),
    ("<div><span>a</sp", FileKind.JSX),
    ("import React from 'react';\nimport App from './App", FileKind.TS),
    (".a { color: red;", FileKind.CSS),
    ("return <div className={styles.a", FileKind.TSX),
    ('b}"', FileKind.TS),
    ("```tsx\nconst A = () => <p>hi", FileKind.TSX),
]

# Quotes, template and comment starters, tag characters and escapes, so
# generated inputs reach every literal and markup state.
GENERATED_ALPHABET = "(){}[]<>/'\"`\\$*:;ab \n"
GENERATED_KINDS = [FileKind.TSX, FileKind.JSX, FileKind.TS, FileKind.JS, FileKind.CSS, FileKind.JSON]


class TestRepair:
    def test_pipeline_order_and_trace(self):
        content, trace = repair("const A = () => (<div>hi", FileKind.TSX, path="A.tsx")
        assert content == "const A = () => (<div>hi</div>)"
        assert [r.pass_name for r in trace.records] == [
            CLEAN_CONTENT, BRACKET_BALANCE, JSX_BALANCE, IMPORT_FIXER, RETURN_FIXER,
        ]
        assert [r.changed for r in trace.records] == [False, True, True, False, False]
        assert trace.path == "A.tsx"
        assert trace.changed

    @pytest.mark.parametrize("content, kind", IDEMPOTENT_SAMPLES)
    def test_idempotent(self, content, kind):
        once, _ = repair(content, kind)
        twice, trace = repair(once, kind)
        assert twice == once
        assert not trace.changed

    @pytest.mark.parametrize("kind", GENERATED_KINDS, ids=lambda k: k.value)
    def test_generated_inputs_settle(self, kind):
        rng = random.Random(f"settle-{kind.value}")
        for _ in range(400):
            text = "".join(rng.choice(GENERATED_ALPHABET) for _ in range(rng.randint(0, 40)))
            once, _ = repair(text, kind)
            twice, trace = repair(once, kind)
            assert twice == once, text
            assert not trace.changed, text

    def test_tag_cut_inside_attribute_expression(self):
        fixed, _ = repair("return <div className={styles.a", FileKind.TSX)
        assert fixed == "return <div className={styles.a}/>"

    def test_many_open_tags_is_linear(self):
        content = "const A = () => (" + "<div>" * 10000
        start = time.perf_counter()
        fixed, _ = repair(content, FileKind.TSX)
        assert time.perf_counter() - start < 5
        assert fixed == content + "</div>" * 10000 + ")"

    def test_clean_content_unchanged(self):
        content = "export default function App() {\n  return <div>Hello</div>;\n}\n"
        fixed, trace = repair(content, FileKind.TSX)
        assert fixed == content
        assert not trace.changed

    def test_kind_gating(self):
        assert repair("(", FileKind.MARKDOWN)[1].records == []
        _, trace = repair("f(", FileKind.TS)
        assert JSX_BALANCE not in [r.pass_name for r in trace.records]

    def test_disabled_passes(self):
        content, trace = repair("f(", FileKind.TS, passes=[])
        assert content == "f("
        assert trace.records == []

    def test_failing_pass_keeps_original(self, monkeypatch):
        def explode(content, kind):
            raise ValueError("boom")

        monkeypatch.setattr(
            repair_mod,
            "PIPELINE",
            (
                next(p for p in repair_mod.PIPELINE if p.name == BRACKET_BALANCE),
                RepairPass("exploding", explode, lambda k: True),
            ),
        )
        content, trace = repair("f(", FileKind.TS, passes=[BRACKET_BALANCE, "exploding"])
        assert content == "f("
        assert trace.failed
        assert trace.records[-1].pass_name == "exploding"
        assert trace.records[-1].error == "boom"
