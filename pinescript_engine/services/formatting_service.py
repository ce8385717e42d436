"""
PineScript formatter.

Produces a canonical rendering of a script without changing what it means.
Stages, in order:

1. Version-comment sync (insert or canonicalize ``//@version=N``)
2. Optional brace move, then indentation from one forward pass over an
   indent stack (bracket levels plus keyword blocks)
3. Token spacing around operators, commas and brackets
4. Blank-line collapsing
5. Alignment of contiguous line-comment runs
6. Line-length warnings

Only code is touched: string literals and comments are carried over verbatim
(they are single tokens to the spacing stage). Lines that continue a block
comment, and operator continuation lines, keep their original indentation.

Formatting is idempotent: ``format(format(s)) == format(s)``. Every decision
depends either on the token sequence (which formatting never changes) or on
whitespace that the formatter itself emits deterministically.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from ..models.diagnostics import Diagnostic, DiagnosticCategory, DiagnosticSeverity
from ..models.formatting import FormatOptions, FormatResult
from ..models.script import ScriptVersion
from .patterns import KEYWORDS
from .scanner import (
    BRACKET_PAIRS,
    CLOSING_BRACKETS,
    COMMENT_STATES,
    STRING_STATES,
    ScanResult,
    ScanState,
    mask_code,
    scan,
)
from .version_detector import DEFAULT_VERSION, detect_version, version_marker

logger = logging.getLogger(__name__)

_MARKER_LINE_RE = re.compile(r"^[ \t]*//[ \t]*@version[ \t]*=[ \t]*(\d+)[ \t]*$")
_ANY_MARKER_RE = re.compile(r"^[ \t]*//[ \t]*@version[ \t]*=", re.MULTILINE)

_INDENT_KEYWORD_RE = re.compile(r"^(?:if|else|for|while|switch|type)\b")
_DEFINITION_KEYWORD_RE = re.compile(r"^(?:method|function)\b")
_EXPRESSION_BLOCK_RE = re.compile(r"(?:(?<![=!<>:])=|:=|=>)[ \t]*(?:if|switch|for|while)\b")
_CONTINUATION_END_RE = re.compile(r"(?:[-+*/%?:,<>=]|\band|\bor|\bnot)$")

_NUMBER_RE = re.compile(r"\d+(?:\.\d*)?(?:[eE][+-]?\d+)?|\.\d+")
_COLOR_RE = re.compile(r"#[0-9A-Fa-f]+")
_NAME_RE = re.compile(r"[A-Za-z_]\w*(?:\.[A-Za-z_]\w*)*")
_OPERATOR_RE = re.compile(r":=|==|!=|<=|>=|=>|\+=|-=|\*=|/=|%=|[-+*/%<>=?:]")

_GENERIC_TYPES = frozenset({"array", "matrix", "map"})


@dataclass
class _Token:
    kind: str  # name, number, string, comment, op, open, close, comma, dot, other
    text: str
    ws: str = ""  # whitespace that preceded the token in the input
    role: str = ""  # for operators: binary, unary, named, generic_open, generic_close


@dataclass
class _StackEntry:
    kind: str  # "bracket" or "block"
    width: int = 0  # original indentation of the keyword line (blocks)
    openers: List[str] = field(default_factory=list)  # unmatched openers of one line (brackets)

    @property
    def is_group(self) -> bool:
        """An open ( or [ level, whose lines continue one expression. A brace level holds statements."""
        return self.kind == "bracket" and self.openers[-1] != "{"


def _is_generic_name(name: str) -> bool:
    head = name.split(".", 1)[0]
    return name in _GENERIC_TYPES or (head in _GENERIC_TYPES and name.endswith(".new"))


class FormattingService:
    """Canonical PineScript formatter."""

    def __init__(self, default_version: ScriptVersion = DEFAULT_VERSION):
        self.default_version = default_version

    def format(self, script: str, options: Optional[FormatOptions] = None) -> FormatResult:
        """
        Format a script.

        Args:
            script: PineScript source text
            options: Formatting options (defaults when omitted)

        Returns:
            FormatResult with the formatted text, a change log and line-length warnings
        """
        options = options or FormatOptions()
        changes: List[str] = []

        text = script or ""
        if "\r" in text:
            text = text.replace("\r\n", "\n").replace("\r", "\n")
            changes.append("Normalized line endings")

        if options.update_version_comment:
            text, change = self._sync_version_comment(text)
            if change:
                changes.append(change)

        if options.braces_on_new_line:
            text, moved = self._move_braces(text)
            if moved:
                changes.append(f"Moved {moved} opening brace(s) to their own line")

        text, reindented, respaced = self._indent_and_space(text, options)
        if reindented:
            changes.append(f"Re-indented {reindented} line(s)")
        if respaced:
            changes.append(f"Normalized spacing on {respaced} line(s)")

        if options.collapse_blank_lines:
            text, removed = self._collapse_blank_lines(text)
            if removed:
                changes.append(f"Removed {removed} redundant blank line(s)")

        if options.align_comments:
            text, aligned = self._align_comments(text)
            if aligned:
                changes.append(f"Aligned {aligned} comment line(s)")

        warnings = self._line_length_warnings(text, options.max_line_length)
        return FormatResult(formatted=text, changes=changes, warnings=warnings)

    # ------------------------------------------------------------------
    # Stage 1: version comment
    # ------------------------------------------------------------------

    def _sync_version_comment(self, text: str) -> Tuple[str, Optional[str]]:
        lines = text.split("\n")
        for idx, line in enumerate(lines):
            match = _MARKER_LINE_RE.match(line)
            if match:
                canonical = f"//@version={match.group(1)}"
                if line == canonical:
                    return text, None
                lines[idx] = canonical
                return "\n".join(lines), f"Canonicalized version annotation to {canonical}"

        if _ANY_MARKER_RE.search(text):
            # A marker with trailing content is left alone
            return text, None

        marker = version_marker(detect_version(text, self.default_version))
        return f"{marker}\n{text}", f"Inserted version annotation {marker}"

    # ------------------------------------------------------------------
    # Stage 2a: braces
    # ------------------------------------------------------------------

    @staticmethod
    def _move_braces(text: str) -> Tuple[str, int]:
        result = scan(text)
        masked = mask_code(text, result)
        out: List[str] = []
        moved = 0
        for number, (line, masked_line) in enumerate(zip(text.split("\n"), masked.split("\n")), start=1):
            code = masked_line.rstrip()
            starts_in_comment = result.state_at_line_start(number) is ScanState.BLOCK_COMMENT
            if not starts_in_comment and code.endswith("{") and code[:-1].strip():
                pos = len(code) - 1
                leading = line[: len(line) - len(line.lstrip(" \t"))]
                out.append(line[:pos].rstrip())
                # The brace keeps the indentation of its statement
                out.append(leading + line[pos:])
                moved += 1
            else:
                out.append(line)
        return "\n".join(out), moved

    # ------------------------------------------------------------------
    # Stage 2b + 3: indentation and spacing
    # ------------------------------------------------------------------

    def _indent_and_space(self, text: str, options: FormatOptions) -> Tuple[str, int, int]:
        result = scan(text)
        masked = mask_code(text, result)
        unit = " " * options.indent_size if options.use_spaces else "\t"

        stack: List[_StackEntry] = []
        open_chars: List[str] = []
        out: List[str] = []
        reindented = 0
        respaced = 0
        continuation = False
        statement_width = 0
        last_block: Optional[_StackEntry] = None
        offset = 0

        for number, (line, masked_line) in enumerate(zip(text.split("\n"), masked.split("\n")), start=1):
            line_start = offset
            offset += len(line) + 1

            code = masked_line.strip()
            if not line.strip():
                out.append("")
                if line:
                    reindented += 1
                continue

            if result.state_at_line_start(number) is ScanState.BLOCK_COMMENT:
                # Lines continuing a block comment are carried over verbatim
                out.append(line.rstrip())
                if code:
                    self._track_brackets(code, stack, open_chars)
                continue
            if not code:
                # Comment-only lines keep their indentation
                out.append(line.rstrip())
                continue

            leading = line[: len(line) - len(line.lstrip(" \t"))]
            width = len(leading.expandtabs(options.indent_size))

            group = stack[-1] if stack and stack[-1].is_group else None
            is_continuation = continuation
            if not is_continuation:
                if code.startswith("{") and stack and stack[-1] is last_block:
                    # A brace on its own line takes over the block of the line above
                    stack.pop()
                last_block = None
                if group is None:
                    while stack and stack[-1].kind == "block" and width <= stack[-1].width:
                        stack.pop()
                    statement_width = width

            # Spacing needs the bracket context in effect at the line start
            context = list(open_chars)
            leading_closers = len(code) - len(code.lstrip(")]}"))
            for _ in range(leading_closers):
                self._close_bracket(stack, open_chars)

            content = line[len(leading):]
            spaced = self._space_line(content, result, line_start + len(leading), context, options)
            if is_continuation:
                new_line = (leading + spaced).rstrip()
            else:
                new_line = (unit * len(stack) + spaced).rstrip()

            openers = self._track_brackets(code[leading_closers:], stack, open_chars)
            # Keywords inside an open ( or [ group are part of an expression
            inside_group = group is not None and any(entry is group for entry in stack)
            if self._opens_block(code) and not inside_group and not (openers and openers[-1] == "{"):
                block = _StackEntry(kind="block", width=statement_width)
                if openers:
                    # The block body starts once the open brackets close
                    stack.insert(len(stack) - 1, block)
                else:
                    stack.append(block)
                    last_block = block

            continuation = (
                not (stack and stack[-1].is_group)
                and not code.endswith("=>")
                and bool(_CONTINUATION_END_RE.search(code))
            )

            if new_line.lstrip(" \t") != line.strip():
                respaced += 1
            if new_line[: len(new_line) - len(new_line.lstrip(" \t"))] != leading:
                reindented += 1
            out.append(new_line)

        return "\n".join(out), reindented, respaced

    @staticmethod
    def _opens_block(code: str) -> bool:
        if code.endswith("=>"):
            return True
        if _DEFINITION_KEYWORD_RE.match(code):
            return False
        if _INDENT_KEYWORD_RE.match(code):
            return True
        return bool(_EXPRESSION_BLOCK_RE.search(code))

    @staticmethod
    def _close_bracket(stack: List[_StackEntry], open_chars: List[str]) -> None:
        if open_chars:
            open_chars.pop()
        if not any(entry.kind == "bracket" for entry in stack):
            return
        # Blocks opened inside the bracket level end with it
        while stack[-1].kind == "block":
            stack.pop()
        stack[-1].openers.pop()
        if not stack[-1].openers:
            stack.pop()

    def _track_brackets(self, code: str, stack: List[_StackEntry], open_chars: List[str]) -> List[str]:
        """Apply the bracket effect of a line; openers left unmatched push one level."""
        openers: List[str] = []
        for char in code:
            if char in BRACKET_PAIRS:
                openers.append(char)
                open_chars.append(char)
            elif char in CLOSING_BRACKETS:
                if openers:
                    openers.pop()
                    if open_chars:
                        open_chars.pop()
                else:
                    self._close_bracket(stack, open_chars)
        if openers:
            stack.append(_StackEntry(kind="bracket", openers=list(openers)))
        return openers

    # ------------------------------------------------------------------
    # Token spacing
    # ------------------------------------------------------------------

    @staticmethod
    def _tokenize(content: str, result: ScanResult, start: int) -> List[_Token]:
        tokens: List[_Token] = []
        states = result.states
        delimiters = result.string_delimiters
        n = len(content)
        ws = ""
        i = 0

        while i < n:
            state = states[start + i]
            ch = content[i]

            if state in COMMENT_STATES:
                j = i
                while j < n and states[start + j] is state:
                    j += 1
                    # Two adjacent block comments stay separate tokens
                    if state is ScanState.BLOCK_COMMENT and content[j - 2:j] == "*/" and j - i > 2:
                        break
                tokens.append(_Token("comment", content[i:j], ws))
                ws, i = "", j
                continue

            if state in STRING_STATES:
                j = i + 1
                while j < n and states[start + j] in STRING_STATES and (start + j) not in delimiters:
                    j += 1
                if j < n and (start + j) in delimiters and states[start + j] in STRING_STATES:
                    j += 1
                tokens.append(_Token("string", content[i:j], ws))
                ws, i = "", j
                continue

            if ch in " \t":
                ws += ch
                i += 1
                continue

            kind = "other"
            size = 1
            for candidate, pattern in (("number", _NUMBER_RE), ("name", _NAME_RE), ("other", _COLOR_RE)):
                match = pattern.match(content, i)
                if match:
                    kind, size = candidate, len(match.group(0))
                    break
            else:
                if ch in BRACKET_PAIRS:
                    kind = "open"
                elif ch in CLOSING_BRACKETS:
                    kind = "close"
                elif ch == ",":
                    kind = "comma"
                elif ch == ".":
                    kind = "dot"
                else:
                    match = _OPERATOR_RE.match(content, i)
                    if match:
                        kind, size = "op", len(match.group(0))

            # Never let a token run into a comment or string
            while size > 1 and states[start + i + size - 1] is not ScanState.NORMAL:
                size -= 1
            tokens.append(_Token(kind, content[i:i + size], ws))
            ws, i = "", i + size

        return tokens

    @staticmethod
    def _classify(tokens: List[_Token], open_chars: List[str]) -> None:
        """Assign operator roles, tracking the enclosing brackets."""
        stack = open_chars
        code_tokens = [t for t in tokens if t.kind != "comment"]

        for idx, tok in enumerate(code_tokens):
            prev = code_tokens[idx - 1] if idx > 0 else None
            before_prev = code_tokens[idx - 2] if idx > 1 else None

            if tok.kind == "open":
                stack.append(tok.text)
                continue
            if tok.kind == "close":
                if stack:
                    stack.pop()
                continue
            if tok.kind != "op" or tok.role:
                continue

            if tok.text in ("+", "-") and (
                prev is None
                or prev.kind in ("op", "open", "comma")
                or (prev.kind == "name" and prev.text in KEYWORDS)
            ):
                tok.role = "unary"
            elif (
                tok.text == "="
                and stack
                and stack[-1] == "("
                and prev is not None
                and prev.kind == "name"
                and (before_prev is None or before_prev.kind in ("open", "comma"))
            ):
                tok.role = "named"
            elif tok.text == "<" and prev is not None and prev.kind == "name" and _is_generic_name(prev.text):
                depth = 0
                closed = False
                inner: List[_Token] = []
                for follower in code_tokens[idx + 1:]:
                    if follower.kind == "op" and follower.text == "<":
                        depth += 1
                    elif follower.kind == "op" and follower.text == ">":
                        if depth == 0:
                            closed = True
                            inner.append(follower)
                            break
                        depth -= 1
                    elif follower.kind not in ("name", "comma"):
                        break
                    if follower.kind == "op":
                        inner.append(follower)
                if closed:
                    tok.role = "generic_open"
                    for follower in inner:
                        follower.role = "generic_open" if follower.text == "<" else "generic_close"
                else:
                    tok.role = "binary"
            else:
                tok.role = "binary"

    @staticmethod
    def _separator(prev: _Token, tok: _Token, options: FormatOptions) -> str:
        around = " " if options.spaces_around_operators else ""

        if tok.kind == "comment" or prev.kind == "comment":
            return tok.ws
        if tok.kind == "comma":
            return ""
        if tok.kind == "close":
            return ""
        if prev.kind == "comma":
            return " " if options.space_after_commas else ""
        if prev.kind == "open":
            return ""
        if tok.kind == "dot" or prev.kind == "dot":
            return ""
        if tok.role in ("generic_open", "generic_close") or prev.role == "generic_open":
            return ""
        if tok.role == "named" or prev.role == "named":
            return ""
        if prev.role == "unary":
            return ""
        if tok.role == "binary" or prev.role == "binary":
            return around
        if tok.role == "unary":
            return " "
        if tok.kind == "open":
            if tok.text == "{" or (prev.kind == "name" and prev.text in KEYWORDS):
                return " " if tok.ws else ""
            # Calls and history references: sma(...), close[1], array<float>(...)
            if prev.kind in ("name", "close") or prev.role == "generic_close":
                return ""
        return " " if tok.ws else ""

    def _space_line(
        self,
        content: str,
        result: ScanResult,
        start: int,
        open_chars: List[str],
        options: FormatOptions,
    ) -> str:
        tokens = self._tokenize(content, result, start)
        if not tokens:
            return content
        self._classify(tokens, open_chars)

        pieces = [tokens[0].text]
        for prev, tok in zip(tokens, tokens[1:]):
            pieces.append(self._separator(prev, tok, options))
            pieces.append(tok.text)
        return "".join(pieces)

    # ------------------------------------------------------------------
    # Stages 4-6
    # ------------------------------------------------------------------

    @staticmethod
    def _collapse_blank_lines(text: str) -> Tuple[str, int]:
        out: List[str] = []
        removed = 0
        lines = text.split("\n")
        for idx, line in enumerate(lines):
            is_last = idx == len(lines) - 1
            if not line.strip() and out and not out[-1].strip() and not is_last:
                removed += 1
                continue
            out.append(line)
        return "\n".join(out), removed

    @staticmethod
    def _align_comments(text: str) -> Tuple[str, int]:
        result = scan(text)
        lines = text.split("\n")
        aligned = 0

        def is_comment_line(number: int, line: str) -> bool:
            return line.lstrip().startswith("//") and result.state_at_line_start(number) is not ScanState.BLOCK_COMMENT

        idx = 0
        while idx < len(lines):
            if not is_comment_line(idx + 1, lines[idx]):
                idx += 1
                continue
            end = idx
            while end < len(lines) and is_comment_line(end + 1, lines[end]):
                end += 1
            run = lines[idx:end]
            indents = [line[: len(line) - len(line.lstrip(" \t"))] for line in run]
            target = min(indents, key=len)
            for pos, line in enumerate(run, start=idx):
                new_line = target + line.lstrip(" \t")
                if new_line != line:
                    lines[pos] = new_line
                    aligned += 1
            idx = end
        return "\n".join(lines), aligned

    @staticmethod
    def _line_length_warnings(text: str, limit: int) -> List[Diagnostic]:
        warnings: List[Diagnostic] = []
        for number, line in enumerate(text.split("\n"), start=1):
            if len(line) > limit:
                warnings.append(
                    Diagnostic(
                        severity=DiagnosticSeverity.WARNING,
                        category=DiagnosticCategory.LINE_LENGTH,
                        rule_id="PS4001",
                        message=f"Line is {len(line)} characters long (limit {limit})",
                        line=number,
                    )
                )
        return warnings
