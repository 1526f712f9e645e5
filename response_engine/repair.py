"""Syntax repair pipeline — conservative fixes for truncated generated code.

Five passes run in a fixed order, each a pure ``str -> str`` transform:

1. ``clean_content`` — drop markdown fence lines and a leading bare
   language-name line the model wrapped around the file.
2. ``bracket_balance`` — drop closers with no opener, insert closers a
   deeper closer skipped over, append the closers still open at the end.
3. ``jsx_balance`` (``.tsx`` / ``.jsx`` only) — close JSX elements left
   open at the end, innermost first.
4. ``import_fixer`` — complete the last statement of the leading import
   block (closing quote, ``}``, ``;``).
5. ``return_fixer`` — wrap a bare ``return`` followed by JSX on the next
   line in parens; close a trailing ``return (`` left open.

The pipeline repeats until a round changes nothing, so repairing repaired
content is a no-op.  Repair never deletes code other than unmatched
closers and fence lines.  A pass that raises leaves the original content
in place and is recorded in the ``RepairTrace``.  Every pass is a single
forward scan with bounded lookahead.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Iterable
from typing import NamedTuple

from response_engine.contracts import FileKind, RepairRecord, RepairTrace
from response_engine.errors import RepairImpossible

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

CLEAN_CONTENT = "clean_content"
BRACKET_BALANCE = "bracket_balance"
JSX_BALANCE = "jsx_balance"
IMPORT_FIXER = "import_fixer"
RETURN_FIXER = "return_fixer"

PASS_NAMES: tuple[str, ...] = (
    CLEAN_CONTENT, BRACKET_BALANCE, JSX_BALANCE, IMPORT_FIXER, RETURN_FIXER,
)

# Rounds of the whole pipeline before giving up on a fixed point.
MAX_ROUNDS = 8

_PAIRS = {"(": ")", "[": "]", "{": "}"}
_CLOSERS = frozenset(")]}")

# Stack frames that are not plain brackets: template text and ``${ }``.
_TEMPLATE = "`"
_TEMPLATE_EXPR = "}$"

# Closers and whitespace that generated code tends to end with; inserted
# closers go before this run.
_TRAILING_RUN = frozenset(")]};") | frozenset(" \t\r\n")
_TRAILING_CHARS = "".join(sorted(_TRAILING_RUN))


class _Syntax(NamedTuple):
    line_comments: bool
    block_comments: bool
    single_quotes: bool
    templates: bool


_SCRIPT_SYNTAX = _Syntax(True, True, True, True)
_CSS_SYNTAX = _Syntax(False, True, True, False)
_JSON_SYNTAX = _Syntax(False, False, False, False)


def _syntax_for(kind: FileKind) -> _Syntax:
    if kind.is_script:
        return _SCRIPT_SYNTAX
    if kind is FileKind.CSS:
        return _CSS_SYNTAX
    return _JSON_SYNTAX


def _after(text: str, i: int, chars: str) -> bool:
    return i > 0 and text[i - 1] in chars


def _after_word(text: str, i: int) -> bool:
    # ``Don't`` in JSX text is not a string; code never puts a quote there.
    return i > 0 and text[i - 1].isalnum()


def _last_char(out: list[str]) -> str:
    return out[-1][-1] if out else ""


def _trailing_run_start(text: str, limit: int) -> int:
    j = len(text)
    while j > limit and text[j - 1] in _TRAILING_RUN:
        j -= 1
    return j


def _apply_edits(text: str, edits: list[tuple[int, int, str]]) -> str:
    """Replace each ``text[start:end]`` with its piece; equal starts keep list order."""
    if not edits:
        return text
    parts: list[str] = []
    last = 0
    for start, end, piece in sorted(edits, key=lambda e: e[0]):
        parts.append(text[last:start])
        parts.append(piece)
        last = end
    parts.append(text[last:])
    return "".join(parts)


# ---------------------------------------------------------------------------
# Pass 1: content cleaning
# ---------------------------------------------------------------------------

_FENCE_LINE_RE = re.compile(r"^[ \t]*```[ \t]*[\w+-]*[ \t]*\r?$")
_LANGUAGE_LINE_RE = re.compile(
    r"^[ \t]*(?:javascript|typescript|tsx|jsx|ts|js|react)[ \t]*\r?$", re.IGNORECASE
)


def clean_content(content: str, kind: FileKind = FileKind.TS) -> str:
    """Drop lines that are only a code fence, then leading bare language names."""
    lines = content.split("\n")
    kept = [line for line in lines if not _FENCE_LINE_RE.match(line)]
    start = 0
    while start < len(kept) - 1 and _LANGUAGE_LINE_RE.match(kept[start]):
        start += 1
    if start == 0 and len(kept) == len(lines):
        return content
    return "\n".join(kept[start:])


# ---------------------------------------------------------------------------
# Pass 2: bracket balance
# ---------------------------------------------------------------------------


class _BracketScan(NamedTuple):
    text: str
    stack: list[str]
    literal: str | None
    dangling_escape: bool


def _find_frame(stack: list[str], closer: str) -> int | None:
    """Index of the nearest plain frame expecting *closer*, not crossing a template."""
    for idx in range(len(stack) - 1, -1, -1):
        frame = stack[idx]
        if frame in (_TEMPLATE, _TEMPLATE_EXPR):
            return None
        if frame == closer:
            return idx
    return None


def _scan_brackets(content: str, syntax: _Syntax) -> _BracketScan:
    """Single pass: rewrite mismatched closers, report what is still open.

    Whether a quote opens a string or a slash opens a comment depends on
    the characters already written, not the input, so a dropped closer
    reads the same way when the output is scanned again.
    """
    out: list[str] = []
    stack: list[str] = []
    literal: str | None = None  # "'", '"', "//" or "/*"
    dangling = False
    # Character before the lone code ``/`` just written, else None.
    slash: str | None = None
    i, n = 0, len(content)

    while i < n:
        ch = content[i]
        nxt = content[i + 1] if i + 1 < n else ""

        if literal in ("'", '"'):
            out.append(ch)
            if ch == "\\":
                if nxt:
                    out.append(nxt)
                    i += 2
                    continue
                dangling = True
            elif ch == literal or ch == "\n":
                literal = None
            i += 1
            continue

        if literal == "//":
            out.append(ch)
            if ch == "\n":
                literal = None
            i += 1
            continue

        if literal == "/*":
            out.append(ch)
            if ch == "*" and nxt == "/":
                out.append(nxt)
                literal = None
                i += 2
                continue
            i += 1
            continue

        top = stack[-1] if stack else None

        if top == _TEMPLATE:
            out.append(ch)
            if ch == "\\":
                if nxt:
                    out.append(nxt)
                    i += 2
                    continue
                dangling = True
            elif ch == "`":
                stack.pop()
            elif ch == "$" and nxt == "{":
                out.append(nxt)
                stack.append(_TEMPLATE_EXPR)
                i += 2
                continue
            i += 1
            continue

        before_slash, slash = slash, None
        if before_slash is not None:
            if ch == "/" and syntax.line_comments and before_slash != ":":
                literal = "//"
                out.append(ch)
                i += 1
                continue
            if ch == "*" and syntax.block_comments:
                literal = "/*"
                out.append(ch)
                i += 1
                continue

        if ch == "/":
            slash = _last_char(out)
            out.append(ch)
        elif (ch == '"' or (ch == "'" and syntax.single_quotes)) and not _last_char(out).isalnum():
            literal = ch
            out.append(ch)
        elif ch == "`" and syntax.templates:
            stack.append(_TEMPLATE)
            out.append(ch)
        elif ch in _PAIRS:
            stack.append(_PAIRS[ch])
            out.append(ch)
        elif ch in _CLOSERS:
            if top is not None and top[0] == ch:
                stack.pop()
                out.append(ch)
            else:
                depth = _find_frame(stack, ch)
                if depth is not None:
                    while len(stack) > depth + 1:
                        out.append(stack.pop())
                    stack.pop()
                    out.append(ch)
                else:
                    # Dropped: the output still ends where it did.
                    slash = before_slash
        else:
            out.append(ch)
        i += 1

    return _BracketScan("".join(out), stack, literal, dangling)


def balance_brackets(content: str, kind: FileKind = FileKind.TS) -> str:
    """Balance ``(){}[]`` outside string and comment literals.

    An unterminated string, comment or template at the end is closed
    first so the appended closers are real code.
    """
    scan = _scan_brackets(content, _syntax_for(kind))
    tail: list[str] = []
    if scan.dangling_escape:
        tail.append("\\")
    if scan.literal in ("'", '"'):
        tail.append(scan.literal)
    elif scan.literal == "//":
        tail.append("\n")
    elif scan.literal == "/*":
        tail.append("*/")
    for frame in reversed(scan.stack):
        tail.append(frame[0])
    return scan.text + "".join(tail)


def unclosed_brackets(content: str, kind: FileKind = FileKind.TS) -> list[str]:
    """Closers still owed at the end of *content*, innermost last."""
    return [f[0] for f in _scan_brackets(content, _syntax_for(kind)).stack]


# ---------------------------------------------------------------------------
# Pass 3: JSX balance
# ---------------------------------------------------------------------------

_TAG_KEYWORDS = frozenset({"return", "yield", "await", "else", "case", "default", "do"})
_TAG_NAME_CHARS = frozenset("_.:-$")

# How far down the open elements a closing tag looks for its opener.
_MAX_CLOSE_DEPTH = 64


class _JsxState(NamedTuple):
    """Where a JSX scan stopped.

    ``kind`` is ``done`` (end of input; ``frames`` is what is still open),
    ``root`` (root element ended at ``pos``), ``head`` (end of input inside
    an opening tag whose last complete attribute ends at ``pos``), ``close``
    (end of input inside ``</...``; ``partial`` is the name so far, ending
    at ``pos``) or ``stuck`` (end of input inside an attribute string or
    expression).
    """

    kind: str
    pos: int = 0
    partial: str = ""
    frames: tuple = ()


class _Head(NamedTuple):
    end: int
    name: str
    self_closing: bool = False
    complete: bool = True
    stuck: bool = False


def _word_before(text: str, end: int) -> str:
    start = end
    while start > 0 and (text[start - 1].isalnum() or text[start - 1] in "_$"):
        start -= 1
    return text[start:end]


def _tag_can_start(text: str, i: int) -> bool:
    """``<`` at *i* opens a tag unless it follows an operand (``a < b``, ``f<T>()``)."""
    j = i - 1
    while j >= 0 and text[j] in " \t\r\n":
        j -= 1
    if j < 0:
        return True
    c = text[j]
    if c in ")]":
        return False
    if c.isalnum() or c in "_$":
        return _word_before(text, j + 1) in _TAG_KEYWORDS
    return True


def _skip_js_literal(text: str, i: int) -> int | None:
    """If a string/comment/template starts at *i*, return the index after it."""
    ch = text[i]
    nxt = text[i + 1] if i + 1 < len(text) else ""
    if ch in "'\"" and not _after_word(text, i):
        j = i + 1
        while j < len(text) and text[j] not in (ch, "\n"):
            j += 2 if text[j] == "\\" else 1
        return min(j + 1, len(text))
    if ch == "`":
        j = i + 1
        while j < len(text) and text[j] != "`":
            j += 2 if text[j] == "\\" else 1
        return min(j + 1, len(text))
    if ch == "/" and nxt == "/" and not _after(text, i, ":"):
        j = text.find("\n", i)
        return len(text) if j == -1 else j + 1
    if ch == "/" and nxt == "*":
        j = text.find("*/", i + 2)
        return len(text) if j == -1 else j + 2
    return None


def _match_expr(text: str, i: int) -> int | None:
    """Index after the ``}`` closing the ``{`` at *i*, or ``None`` at EOF."""
    depth = 0
    j = i
    while j < len(text):
        skipped = _skip_js_literal(text, j)
        if skipped is not None:
            j = skipped
            continue
        if text[j] == "{":
            depth += 1
        elif text[j] == "}":
            depth -= 1
            if depth == 0:
                return j + 1
        j += 1
    return None


def _read_head(text: str, i: int) -> _Head:
    """Read the tag opened at *i*.

    When the input ends inside the tag, ``end`` is where its last complete
    attribute ends (or its name, if none is complete).
    """
    n = len(text)
    j = i + 1
    if j < n and text[j] == ">":
        return _Head(j + 1, "")
    while j < n and (text[j].isalnum() or text[j] in _TAG_NAME_CHARS):
        j += 1
    name = text[i + 1:j]
    safe = j
    while j < n:
        c = text[j]
        if c in "'\"":
            k = text.find(c, j + 1)
            if k == -1:
                return _Head(n, name, complete=False, stuck=True)
            j = safe = k + 1
        elif c == "{":
            k = _match_expr(text, j)
            if k is None:
                return _Head(n, name, complete=False, stuck=True)
            j = safe = k
        elif c == "/" and j + 1 < n and text[j + 1] == ">":
            return _Head(j + 2, name, self_closing=True)
        elif c == ">":
            return _Head(j + 1, name)
        else:
            j += 1
    return _Head(safe, name, complete=False)


def _opens_tag(text: str, i: int) -> bool:
    nxt = text[i + 1] if i + 1 < len(text) else ""
    return nxt.isalpha() or nxt == ">"


def _close_element(frames: list[list], name: str) -> None:
    """Pop the nearest open element called *name* above the enclosing expression."""
    idx = len(frames) - 1
    lowest = max(1, idx - _MAX_CLOSE_DEPTH)
    while idx >= lowest and frames[idx][0] == "el":
        if frames[idx][1] == name:
            del frames[idx:]
            return
        idx -= 1


def _head_state(head: _Head, frames: list[list]) -> _JsxState:
    return _JsxState("stuck" if head.stuck else "head", head.end, frames=tuple(frames))


def _scan_jsx(text: str, start: int = 0, *, root_only: bool = False) -> _JsxState:
    """Tag-boundary scan (not a parser) tracking open elements.

    Frames are ``["js", brace_depth]`` or ``["el", name, text_start]``,
    where ``text_start`` is where the element's trailing children text
    begins.
    """
    frames: list[list] = [["js", 0]]
    i, n = start, len(text)

    while i < n:
        top = frames[-1]
        ch = text[i]

        if top[0] == "js":
            skipped = _skip_js_literal(text, i)
            if skipped is not None:
                i = skipped
                continue
            if ch == "{":
                top[1] += 1
            elif ch == "}":
                if top[1] == 0 and len(frames) > 1:
                    frames.pop()
                    frames[-1][2] = i + 1
                else:
                    top[1] = max(0, top[1] - 1)
            elif ch == "<" and _opens_tag(text, i) and _tag_can_start(text, i):
                head = _read_head(text, i)
                if not head.complete:
                    return _head_state(head, frames)
                if not head.self_closing:
                    frames.append(["el", head.name, head.end])
                elif root_only and len(frames) == 1:
                    return _JsxState("root", head.end)
                i = head.end
                continue
            i += 1
            continue

        # Element children.
        if ch == "{":
            frames.append(["js", 0])
        elif ch == "<" and text.startswith("</", i):
            k = text.find(">", i)
            if k == -1:
                partial = text[i + 2:].rstrip(_TRAILING_CHARS)
                return _JsxState(
                    "close", i + 2 + len(partial), partial.strip(), tuple(frames)
                )
            _close_element(frames, text[i + 2:k].strip())
            if root_only and len(frames) == 1:
                return _JsxState("root", k + 1)
            if frames[-1][0] == "el":
                frames[-1][2] = k + 1
            i = k + 1
            continue
        elif ch == "<" and _opens_tag(text, i):
            head = _read_head(text, i)
            if not head.complete:
                return _head_state(head, frames)
            if head.self_closing:
                top[2] = head.end
            else:
                frames.append(["el", head.name, head.end])
            i = head.end
            continue
        i += 1

    return _JsxState("done", n, frames=tuple(frames))


def _expression_end(text: str, start: int, depth: int) -> int | None:
    """Index after the ``}`` closing an expression *depth* braces deep."""
    for j in range(start, len(text)):
        if text[j] == "}":
            if depth == 0:
                return j + 1
            depth -= 1
    return None


def balance_jsx(content: str) -> str:
    """Close JSX elements left open at the end of *content*, innermost first.

    One scan collects the open elements; each closing tag then goes before
    the trailing run of ``)]};`` or whitespace in its element's children
    text, so closers appended by the bracket pass stay outside the markup.
    An opening tag cut off after a complete ``{...}`` attribute is closed
    after that expression.
    """
    state = _scan_jsx(content)
    if state.kind == "stuck":
        return content

    frames = list(state.frames)
    run = _trailing_run_start(content, 0)
    edits: list[tuple[int, int, str]] = []
    at = 0
    if state.kind == "head":
        at = max(run, state.pos)
        edits.append((at, at, ">" if content[at - 1:at] == "/" else "/>"))
    elif state.kind == "close":
        at = state.pos
        name = frames[-1][1]
        if name.startswith(state.partial):
            edits.append((at, at, name[len(state.partial):] + ">"))
            frames.pop()
        else:
            edits.append((at, at, ">"))
            _close_element(frames, state.partial)

    for frame in reversed(frames[1:]):
        if frame[0] == "el":
            at = max(at, run, frame[2])
            edits.append((at, at, f"</{frame[1]}>"))
            continue
        # An expression inside children: its ``}`` sits in the trailing run.
        end = _expression_end(content, at, frame[1]) if edits else None
        if end is None:
            break
        at = end
    return _apply_edits(content, edits)


# ---------------------------------------------------------------------------
# Pass 4: import fixer
# ---------------------------------------------------------------------------

_SPECIFIER_RE = re.compile(r"""(?:\bfrom|^\s*import)\s*(['"])[^'"\n]*\1""")
_OPEN_SPECIFIER_RE = re.compile(r"""(?:\bfrom|^\s*import)\s*(['"])[^'"]*$""")
_FROM_RE = re.compile(r"\bfrom\b")
_STATEMENT_START_RE = re.compile(
    r"^(?:import|export|const|let|var|function|class|interface|enum|async|@|//|/\*)\b"
    r"|^type\s+\w+\s*="
)


def _import_complete(stmt: str) -> bool:
    return bool(_SPECIFIER_RE.search(stmt))


def _brace_depth(line: str) -> int:
    return line.count("{") - line.count("}")


def _import_continues(depth: int, line: str) -> bool:
    s = line.strip()
    if not s:
        return False
    if s.startswith(("}", "from")):
        return True
    if _STATEMENT_START_RE.match(s):
        return False
    return depth > 0


def _leading_imports(lines: list[str]) -> list[tuple[int, int]]:
    """``(first_line, last_line)`` of each statement in the leading import block."""
    statements: list[tuple[int, int]] = []
    i = 0
    while i < len(lines):
        s = lines[i].strip()
        if not s or s.startswith(("//", "/*", "*", "'use ", '"use ')):
            i += 1
            continue
        if not s.startswith("import") or s.startswith("import("):
            break
        j = i
        depth = _brace_depth(lines[i])
        complete = _import_complete(lines[i])
        while not complete and j + 1 < len(lines) and _import_continues(depth, lines[j + 1]):
            j += 1
            depth += _brace_depth(lines[j])
            # A specifier spans at most the line break after ``from``.
            complete = _import_complete(lines[j - 1] + "\n" + lines[j])
        statements.append((i, j))
        i = j + 1
    return statements


def _split_cr(line: str) -> tuple[str, str]:
    body = line.rstrip("\r")
    return body, line[len(body):]


def fix_imports(content: str, kind: FileKind = FileKind.TS) -> str:
    """Complete the last statement of the leading import block.

    Adds a missing closing quote to the module specifier, a missing ``}``
    before ``from`` (only while the file's braces are still unbalanced),
    and a missing ``;`` when the other imports use semicolons.
    """
    lines = content.split("\n")
    statements = _leading_imports(lines)
    if not statements:
        return content

    first, last = statements[-1]
    body, cr = _split_cr(lines[last])

    m = _OPEN_SPECIFIER_RE.search(body.rstrip())
    if m:
        body = body.rstrip() + m.group(1)

    stmt = "\n".join([*lines[first:last], body])
    if stmt.count("{") > stmt.count("}") and "}" in unclosed_brackets(content, kind):
        for idx in range(first, last + 1):
            line = body if idx == last else lines[idx]
            fm = _FROM_RE.search(line)
            if fm is None:
                continue
            prefix = line[:fm.start()]
            fixed = (prefix.rstrip() + " } " if prefix.strip() else prefix + "} ") + line[fm.start():]
            if idx == last:
                body = fixed
            else:
                lines[idx] = fixed
            break

    others = [_split_cr(lines[e])[0].rstrip() for _, e in statements[:-1]]
    if (
        _import_complete(body)
        and not body.rstrip().endswith(";")
        and any(o.endswith(";") for o in others)
    ):
        body = body.rstrip() + ";"

    lines[last] = body + cr
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# Pass 5: return fixer
# ---------------------------------------------------------------------------

# ``return`` alone on its line with JSX starting the next non-blank line.
_BARE_RETURN_RE = re.compile(r"\breturn[ \t]*(?=\r?\n[ \t\r\n]*<[A-Za-z>])")
_RETURN_PAREN_RE = re.compile(r"\breturn\s*\(")

# Root scans may cover this many times the input; nested roots rescan
# their parent's markup.
_ROOT_SCAN_FACTOR = 4


def _line_indent(text: str, pos: int) -> str:
    line_start = text.rfind("\n", 0, pos) + 1
    j = line_start
    while j < len(text) and text[j] in " \t":
        j += 1
    return text[line_start:j]


def fix_returns(content: str, kind: FileKind = FileKind.TSX) -> str:
    """Parenthesise multi-line JSX returns; close a trailing ``return (``.

    A ``return`` with no value followed by ordinary code is left alone,
    and wrapping stops at the first JSX root that runs to the end of input.
    The trailing ``(`` is closed only while the file as a whole still owes
    a ``)``.
    """
    edits: list[tuple[int, int, str]] = []
    budget = _ROOT_SCAN_FACTOR * len(content)
    pos = 0
    while True:
        m = _BARE_RETURN_RE.search(content, pos)
        if m is None:
            break
        lt = content.find("<", m.end())
        state = _scan_jsx(content, lt, root_only=True)
        budget -= state.pos - lt
        if state.kind != "root" or budget < 0:
            break
        indent = _line_indent(content, m.start())
        edits.append((m.start(), m.end(), "return ("))
        edits.append((state.pos, state.pos, "\n" + indent + ")"))
        pos = m.end()
    text = _apply_edits(content, edits)

    last = None
    for last in _RETURN_PAREN_RE.finditer(text):
        pass
    if last is not None:
        owed = min(
            unclosed_brackets(text[last.end() - 1:], kind).count(")"),
            unclosed_brackets(text, kind).count(")"),
        )
        if owed:
            at = _trailing_run_start(text, last.end())
            text = text[:at] + ")" * owed + text[at:]
    return text


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------


class RepairPass(NamedTuple):
    name: str
    run: Callable[[str, FileKind], str]
    applies: Callable[[FileKind], bool]


PIPELINE: tuple[RepairPass, ...] = (
    RepairPass(CLEAN_CONTENT, clean_content, lambda k: k is not FileKind.MARKDOWN),
    RepairPass(
        BRACKET_BALANCE,
        balance_brackets,
        lambda k: k.is_script or k in (FileKind.CSS, FileKind.JSON),
    ),
    RepairPass(JSX_BALANCE, lambda c, k: balance_jsx(c), lambda k: k.is_jsx),
    RepairPass(IMPORT_FIXER, fix_imports, lambda k: k.is_script),
    RepairPass(RETURN_FIXER, fix_returns, lambda k: k.is_script),
)


def _records(changed: dict[str, bool]) -> list[RepairRecord]:
    return [RepairRecord(pass_name=name, changed=c) for name, c in changed.items()]


def repair(
    content: str,
    kind: FileKind,
    *,
    passes: Iterable[str] | None = None,
    path: str = "",
) -> tuple[str, RepairTrace]:
    """Run the enabled passes that apply to *kind*, in pipeline order.

    *passes* names the enabled passes (default: all).  The pipeline repeats
    until a round leaves the content unchanged (at most ``MAX_ROUNDS``).
    Returns the repaired content and one record per pass that ran.  If a
    pass raises, the original *content* is returned and the failure ends
    the trace.
    """
    enabled = frozenset(PASS_NAMES if passes is None else passes)
    steps = [s for s in PIPELINE if s.name in enabled and s.applies(kind)]
    changed: dict[str, bool] = {}
    current = content

    for rounds in range(1, MAX_ROUNDS + 1):
        start = current
        for step in steps:
            try:
                result = step.run(current, kind)
            except Exception as exc:  # noqa: BLE001
                err = RepairImpossible(step.name, str(exc) or type(exc).__name__, path=path)
                logger.warning("[repair] %s", err)
                changed.pop(step.name, None)
                records = _records(changed)
                records.append(RepairRecord(pass_name=step.name, changed=False, error=err.cause))
                return content, RepairTrace(path=path, records=records)
            changed[step.name] = changed.get(step.name, False) or result != current
            current = result
        if current == start:
            break
    else:
        logger.warning("[repair] %s still changing after %d rounds", path or kind.value, MAX_ROUNDS)

    if rounds > 2:
        logger.debug("[repair] %s settled after %d rounds", path or kind.value, rounds)
    return current, RepairTrace(path=path, records=_records(changed))


__all__ = [
    "BRACKET_BALANCE",
    "CLEAN_CONTENT",
    "IMPORT_FIXER",
    "JSX_BALANCE",
    "MAX_ROUNDS",
    "PASS_NAMES",
    "PIPELINE",
    "RETURN_FIXER",
    "RepairPass",
    "balance_brackets",
    "balance_jsx",
    "clean_content",
    "fix_imports",
    "fix_returns",
    "repair",
    "unclosed_brackets",
]
