"""
Shared PineScript surface patterns.

All patterns here are meant to be evaluated on masked text (see
``scanner.mask_code``), where comments are blanked and string interiors are
filler characters. Offsets stay aligned with the original script.

The missing-comma heuristic is deliberately narrow: it only fires on a call
whose whole argument list is bare tokens separated by whitespace. Widening it
(nested calls, operators, keywords) risks rewriting legitimate code.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterator, List, Optional

from .scanner import ScanResult, find_code, mask_code

KEYWORDS = frozenset({
    "and", "or", "not", "if", "else", "for", "to", "by", "in", "while", "switch",
    "var", "varip", "let", "const", "method", "function", "return", "import",
    "export", "type", "true", "false",
})

TYPE_KEYWORDS = frozenset({
    "int", "float", "bool", "string", "color", "void", "line", "label", "box", "table",
    "linefill", "polyline", "series", "simple", "const", "input", "array", "matrix", "map",
})

TYPE_NAME = (
    r"(?:(?:series|simple|const|input)[ \t]+)?"
    r"(?:int|float|bool|string|color|void|line|label|box|table|linefill|polyline"
    r"|(?:array|matrix|map)<[\w \t,.]+>)"
)

# Top-level declaration calls (study is the deprecated spelling of indicator)
DECLARATION_RE = re.compile(r"^(indicator|study|strategy|library)[ \t]*\(", re.MULTILINE)
DECLARATION_KINDS = {"indicator": "indicator", "study": "indicator", "strategy": "strategy", "library": "library"}

STUDY_CALL_RE = re.compile(r"(?<![\w.])study(?=[ \t]*\()")

EXPORT_VAR_RE = re.compile(
    r"^(?P<indent>[ \t]*)export[ \t]+(?P<kind>varip|var|const)[ \t]+(?P<name>[A-Za-z_]\w*)"
    r"[ \t]*=(?!=)[ \t]*(?P<value>[^;\n]*?)[ \t]*;?[ \t]*$",
    re.MULTILINE,
)
EXPORT_VAR_PREFIX_RE = re.compile(r"^[ \t]*export[ \t]+(?:varip|var|const)\b")

IMPORT_RE = re.compile(r"^[ \t]*import[ \t]+\S+", re.MULTILINE)

FUNCTION_DEF_RE = re.compile(
    r"^(?P<indent>[ \t]*)(?P<method>method[ \t]+)?"
    rf"(?:(?P<rtype>{TYPE_NAME})[ \t]+)?"
    r"(?!(?:if|for|while|switch|and|or|not)\b)(?P<name>[A-Za-z_]\w*)"
    r"[ \t]*\((?P<params>[^()\n]*)\)[ \t]*=>"
)

VAR_DECL_RE = re.compile(
    r"^(?P<indent>[ \t]*)(?P<kw>var)[ \t]+"
    rf"(?:(?P<type>{TYPE_NAME})[ \t]+)?"
    r"(?P<name>[A-Za-z_]\w*)[ \t]*=(?!=)"
)
VARIP_RE = re.compile(r"(?<![\w.])varip\b")

CALL_RE = re.compile(r"(?<![\w.])(?P<name>[A-Za-z_][\w.]*)[ \t]*\((?P<args>[^()\n]*)\)")
INPUT_MISSING_COMMA_RE = re.compile(
    r"(?<![\w.])input[ \t]*\([ \t]*(?P<number>-?\d+(?:\.\d+)?)[ \t]+(?P<title>\"[^\"\n]*\"|'[^'\n]*')"
)

# Unsigned numbers only: "close -1" is a subtraction, not two arguments
_BARE_TOKEN = r"(?:[A-Za-z_][\w.]*|\d+(?:\.\d+)?|\"[^\"\n]*\"|'[^'\n]*')"
_BARE_TOKEN_RE = re.compile(_BARE_TOKEN)
_SPACE_SEPARATED_ARGS_RE = re.compile(rf"[ \t]*{_BARE_TOKEN}(?:[ \t]+{_BARE_TOKEN})+[ \t]*")
_ADJACENT_TOKENS_RE = re.compile(r"[\w\"'][ \t]+(?=[\w\"'])")
_DEFINITION_TAIL_RE = re.compile(r"[ \t]*=>")

NAMED_ARGUMENT_RE = re.compile(r"^[ \t]*[A-Za-z_]\w*[ \t]*=(?!=)")

# Built-ins whose positional-only multi-argument calls are discouraged in v6
NAMED_ARGUMENT_BUILTINS = frozenset({
    "plot", "plotshape", "plotchar", "plotarrow", "plotcandle", "plotbar",
    "hline", "fill", "bgcolor", "barcolor", "alertcondition",
    "label.new", "line.new", "box.new", "table.new", "table.cell",
    "strategy.entry", "strategy.exit", "strategy.order", "strategy.close",
    "request.security",
    "input", "input.int", "input.float", "input.bool", "input.string",
    "input.color", "input.source", "input.timeframe",
})


@dataclass(frozen=True)
class MissingCommaCall:
    """A call whose argument list looks like it lost its commas."""

    name: str
    line: int
    start: int
    end: int
    args_start: int
    args_end: int


def is_space_separated_args(masked_args: str) -> bool:
    """True when an argument list is two or more bare tokens with no comma between them."""
    if "," in masked_args or not _SPACE_SEPARATED_ARGS_RE.fullmatch(masked_args):
        return False
    tokens = _BARE_TOKEN_RE.findall(masked_args)
    return not any(tok in KEYWORDS or tok in TYPE_KEYWORDS for tok in tokens)


def find_missing_comma_calls(text: str, result: Optional[ScanResult] = None) -> List[MissingCommaCall]:
    """Calls whose argument list is bare tokens separated by whitespace only."""
    masked = mask_code(text, result)
    found: List[MissingCommaCall] = []
    for match in CALL_RE.finditer(masked):
        name = match.group("name")
        if name in KEYWORDS:
            continue
        if _DEFINITION_TAIL_RE.match(masked, match.end()):
            continue
        if not is_space_separated_args(match.group("args")):
            continue
        found.append(
            MissingCommaCall(
                name=name,
                line=masked.count("\n", 0, match.start()) + 1,
                start=match.start(),
                end=match.end(),
                args_start=match.start("args"),
                args_end=match.end("args"),
            )
        )
    return found


def insert_commas(args: str, masked_args: str) -> str:
    """
    Insert ``", "`` between adjacent bare tokens of an argument list.

    Gaps are located on the masked arguments so whitespace inside string
    literals is never touched.
    """
    pieces: List[str] = []
    last = 0
    for match in _ADJACENT_TOKENS_RE.finditer(masked_args):
        token_end = match.start() + 1
        pieces.append(args[last:token_end])
        pieces.append(", ")
        last = match.end()
    pieces.append(args[last:])
    return "".join(pieces).strip()


def split_top_level_args(masked_args: str) -> List[str]:
    """Split a masked argument list on commas that are not nested in brackets."""
    args: List[str] = []
    depth = 0
    current: List[str] = []
    for ch in masked_args:
        if ch in "([{":
            depth += 1
        elif ch in ")]}":
            depth -= 1
        if ch == "," and depth == 0:
            args.append("".join(current))
            current = []
            continue
        current.append(ch)
    if current or args:
        args.append("".join(current))
    return [a for a in args if a.strip()]


def call_arguments(masked_line: str, open_paren: int) -> Optional[str]:
    """Masked argument text of the call whose ``(`` is at ``open_paren``, if it closes on the line."""
    depth = 0
    for idx in range(open_paren, len(masked_line)):
        ch = masked_line[idx]
        if ch in "([{":
            depth += 1
        elif ch in ")]}":
            depth -= 1
            if depth == 0:
                return masked_line[open_paren + 1:idx]
    return None


def iter_declarations(text: str, result: Optional[ScanResult] = None) -> Iterator[tuple]:
    """Yield ``(kind, call_name, line)`` for every top-level declaration call."""
    for match in find_code(DECLARATION_RE, text, result):
        call_name = match.group(1)
        line = text.count("\n", 0, match.start()) + 1
        yield DECLARATION_KINDS[call_name], call_name, line


def reassignment_re(name: str) -> "re.Pattern[str]":
    """Pattern matching a reassignment (``:=`` or compound assignment) of ``name``."""
    return re.compile(rf"(?<![\w.]){re.escape(name)}[ \t]*(?::=|\+=|-=|\*=|/=|%=)")


def bare_call_re(name: str) -> "re.Pattern[str]":
    """Pattern matching a call of ``name`` that is not already namespaced."""
    return re.compile(rf"(?<![\w.]){re.escape(name)}(?=[ \t]*\()")


def namespaced_call_re(qualified: str) -> "re.Pattern[str]":
    """Pattern matching a call of a dotted name such as ``ta.sma``."""
    return re.compile(rf"(?<![\w.]){re.escape(qualified)}(?=[ \t]*\()")


def defines_function(masked: str, name: str) -> bool:
    """True when the script defines a function called ``name`` itself."""
    for line in masked.split("\n"):
        match = FUNCTION_DEF_RE.match(line)
        if match and match.group("name") == name:
            return True
    return False
