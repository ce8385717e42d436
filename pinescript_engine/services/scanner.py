"""
Lexical scanner shared by every analysis and rewrite in the engine.

Design intent:
- Classify each character of a script as code, comment or string literal.
- Every bracket, operator and keyword match elsewhere in the engine goes
  through this module so that text inside strings and comments is never
  mistaken for code. A wrong string/comment boundary here mis-balances every
  downstream check, so this is the one place where that logic lives.

Rules:
- ``//`` starts a line comment that ends at the newline.
- ``/*`` ... ``*/`` is a block comment (may span lines).
- An unescaped ``'`` or ``"`` opens a string that ends at the matching quote.
  A backslash immediately before a quote suppresses it.
- Strings never span lines: a string still open at a newline is recorded as
  unclosed for that line and the scanner returns to normal state.
"""

from __future__ import annotations

import bisect
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Iterator, List, Optional, Pattern, Set, Tuple, Union


class ScanState(str, Enum):
    """Lexical classification of a character position."""

    NORMAL = "normal"
    LINE_COMMENT = "line_comment"
    BLOCK_COMMENT = "block_comment"
    SINGLE_QUOTE_STRING = "single_quote_string"
    DOUBLE_QUOTE_STRING = "double_quote_string"


STRING_STATES = frozenset({ScanState.SINGLE_QUOTE_STRING, ScanState.DOUBLE_QUOTE_STRING})
COMMENT_STATES = frozenset({ScanState.LINE_COMMENT, ScanState.BLOCK_COMMENT})

BRACKET_PAIRS = {"(": ")", "[": "]", "{": "}"}
CLOSING_BRACKETS = {closer: opener for opener, closer in BRACKET_PAIRS.items()}
BRACKET_NAMES = {
    "(": "parenthesis",
    ")": "parenthesis",
    "[": "bracket",
    "]": "bracket",
    "{": "brace",
    "}": "brace",
}

# Filler used by mask_code() for string interiors: a word character, so a
# masked string still reads as one bare token to the comma heuristics.
STRING_FILLER = "x"


@dataclass(frozen=True)
class UnclosedString:
    """A string literal that was still open when its line (or the script) ended."""

    line: int  # 1-based
    quote: str
    at_end_of_script: bool


@dataclass
class ScanResult:
    """Per-character classification of a script plus the anomalies found on the way."""

    text: str
    states: List[ScanState]
    string_delimiters: Set[int] = field(default_factory=set)
    unclosed_strings: List[UnclosedString] = field(default_factory=list)
    unterminated_block_comment_line: Optional[int] = None
    _line_starts: List[int] = field(default_factory=list, repr=False)

    def __post_init__(self) -> None:
        starts = [0]
        for idx, ch in enumerate(self.text):
            if ch == "\n":
                starts.append(idx + 1)
        self._line_starts = starts

    def is_code(self, index: int) -> bool:
        return self.states[index] is ScanState.NORMAL

    def line_of(self, index: int) -> int:
        """1-based line number of a character offset."""
        return bisect.bisect_right(self._line_starts, index)

    def state_at_line_start(self, line: int) -> ScanState:
        """
        State carried into the given 1-based line from the previous one.

        Only a block comment crosses a newline, so this is either NORMAL or
        BLOCK_COMMENT; a comment that opens on the line itself does not count.
        """
        start = self._line_starts[line - 1]
        if start == 0:
            return ScanState.NORMAL
        return self.states[start - 1]


def scan(text: str) -> ScanResult:
    """Classify every character of ``text``."""
    states: List[ScanState] = []
    delimiters: Set[int] = set()
    unclosed: List[UnclosedString] = []

    state = ScanState.NORMAL
    quote = ""
    block_start_line: Optional[int] = None
    line = 1
    i = 0
    n = len(text)

    while i < n:
        ch = text[i]
        nxt = text[i + 1] if i + 1 < n else ""

        if state is ScanState.NORMAL:
            if ch == "/" and nxt == "/":
                state = ScanState.LINE_COMMENT
                states.extend((state, state))
                i += 2
                continue
            if ch == "/" and nxt == "*":
                state = ScanState.BLOCK_COMMENT
                block_start_line = line
                states.extend((state, state))
                i += 2
                continue
            if ch in ("'", '"') and not (i > 0 and text[i - 1] == "\\"):
                state = ScanState.DOUBLE_QUOTE_STRING if ch == '"' else ScanState.SINGLE_QUOTE_STRING
                quote = ch
                delimiters.add(i)
                states.append(state)
                i += 1
                continue
            if ch == "\n":
                line += 1
            states.append(ScanState.NORMAL)
            i += 1
            continue

        if state is ScanState.LINE_COMMENT:
            if ch == "\n":
                state = ScanState.NORMAL
                line += 1
                states.append(ScanState.NORMAL)
            else:
                states.append(ScanState.LINE_COMMENT)
            i += 1
            continue

        if state is ScanState.BLOCK_COMMENT:
            if ch == "*" and nxt == "/":
                states.extend((state, state))
                state = ScanState.NORMAL
                block_start_line = None
                i += 2
                continue
            if ch == "\n":
                line += 1
            states.append(state)
            i += 1
            continue

        # Inside a string literal
        if ch == "\\" and nxt and nxt != "\n":
            states.extend((state, state))
            i += 2
            continue
        if ch == "\n":
            unclosed.append(UnclosedString(line=line, quote=quote, at_end_of_script=False))
            state = ScanState.NORMAL
            line += 1
            states.append(ScanState.NORMAL)
            i += 1
            continue
        states.append(state)
        if ch == quote:
            delimiters.add(i)
            state = ScanState.NORMAL
        i += 1

    if state in STRING_STATES:
        unclosed.append(UnclosedString(line=line, quote=quote, at_end_of_script=True))

    return ScanResult(
        text=text,
        states=states,
        string_delimiters=delimiters,
        unclosed_strings=unclosed,
        unterminated_block_comment_line=block_start_line if state is ScanState.BLOCK_COMMENT else None,
    )


def classify(text: str) -> List[Tuple[int, ScanState]]:
    """Return ``(index, state)`` for every character of ``text``."""
    return list(enumerate(scan(text).states))


def mask_code(text: str, result: Optional[ScanResult] = None) -> str:
    """
    Same-length copy of ``text`` in which only code is left readable.

    Comment characters become spaces, string interiors become STRING_FILLER and
    string delimiters are kept. Newlines are always preserved, so offsets and
    line numbers in the mask match the original text.
    """
    result = result or scan(text)
    out = []
    for idx, ch in enumerate(text):
        state = result.states[idx]
        if ch == "\n" or state is ScanState.NORMAL:
            out.append(ch)
        elif state in COMMENT_STATES:
            out.append(" ")
        elif idx in result.string_delimiters:
            out.append(ch)
        else:
            out.append(STRING_FILLER)
    return "".join(out)


class CodeMatch:
    """A regex match found on the masked text, read back from the original."""

    def __init__(self, match: "re.Match[str]", text: str):
        self._match = match
        self._text = text

    def group(self, index: Union[int, str] = 0) -> Optional[str]:
        start, end = self._match.span(index)
        if start < 0:
            return None
        return self._text[start:end]

    def masked(self, index: Union[int, str] = 0) -> Optional[str]:
        return self._match.group(index)

    def start(self, index: Union[int, str] = 0) -> int:
        return self._match.start(index)

    def end(self, index: Union[int, str] = 0) -> int:
        return self._match.end(index)


def find_code(pattern: Pattern[str], text: str, result: Optional[ScanResult] = None) -> Iterator[CodeMatch]:
    """Yield matches of ``pattern`` that lie in code (never inside strings or comments)."""
    masked = mask_code(text, result)
    for match in pattern.finditer(masked):
        yield CodeMatch(match, text)


def sub_code(
    pattern: Pattern[str],
    text: str,
    repl: Callable[[CodeMatch], str],
    count: int = 0,
) -> Tuple[str, int]:
    """
    Replace code matches of ``pattern`` using ``repl``.

    Matching happens on the masked text; replacements are spliced into the
    original text, so string and comment contents are never rewritten.

    Returns:
        (new_text, number_of_replacements)
    """
    pieces: List[str] = []
    last = 0
    replaced = 0
    for match in find_code(pattern, text):
        pieces.append(text[last:match.start()])
        pieces.append(repl(match))
        last = match.end()
        replaced += 1
        if count and replaced >= count:
            break
    if not replaced:
        return text, 0
    pieces.append(text[last:])
    return "".join(pieces), replaced


@dataclass(frozen=True)
class BracketIssue:
    """A closing bracket that did not fit the bracket stack."""

    char: str
    line: int
    # Set when the closer met a different opener (mismatch) instead of an empty stack
    expected: Optional[str] = None
    opener_line: Optional[int] = None


@dataclass
class BracketReport:
    """Outcome of running the bracket stack over the code positions of a script."""

    issues: List[BracketIssue] = field(default_factory=list)
    # Openers left on the stack at end-of-scan, in opening order: (char, line)
    unclosed: List[Tuple[str, int]] = field(default_factory=list)

    @property
    def balanced(self) -> bool:
        return not self.issues and not self.unclosed


def match_brackets(text: str, result: Optional[ScanResult] = None) -> BracketReport:
    """
    Run the bracket stack over code positions only.

    A closer on an empty stack is reported as unexpected. A closer that does
    not match the top opener is reported as a mismatch and consumes that
    opener, so a single typo yields a single issue.
    """
    result = result or scan(text)
    report = BracketReport()
    stack: List[Tuple[str, int]] = []

    for idx, ch in enumerate(text):
        if ch not in BRACKET_PAIRS and ch not in CLOSING_BRACKETS:
            continue
        if not result.is_code(idx):
            continue
        line = result.line_of(idx)
        if ch in BRACKET_PAIRS:
            stack.append((ch, line))
            continue
        if not stack:
            report.issues.append(BracketIssue(char=ch, line=line))
            continue
        opener, opener_line = stack.pop()
        if BRACKET_PAIRS[opener] != ch:
            report.issues.append(
                BracketIssue(char=ch, line=line, expected=BRACKET_PAIRS[opener], opener_line=opener_line)
            )

    report.unclosed = stack
    return report
