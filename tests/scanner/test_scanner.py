"""
Tests for the lexical scanner.

Everything else in the engine relies on the scanner to tell code from
strings and comments, so these cover the boundaries explicitly.
"""

from __future__ import annotations

from pinescript_engine.services.patterns import bare_call_re
from pinescript_engine.services.scanner import (
    BracketIssue,
    ScanState,
    UnclosedString,
    classify,
    mask_code,
    match_brackets,
    scan,
    sub_code,
)


def test_classify_marks_line_comment_until_newline():
    states = dict(classify("a // b\nc"))

    assert states[0] is ScanState.NORMAL
    assert states[2] is ScanState.LINE_COMMENT
    assert states[5] is ScanState.LINE_COMMENT
    assert states[7] is ScanState.NORMAL


def test_classify_distinguishes_quote_kinds():
    states = dict(classify("x = 'a' + \"b\""))

    assert states[5] is ScanState.SINGLE_QUOTE_STRING
    assert states[11] is ScanState.DOUBLE_QUOTE_STRING


def test_mask_keeps_length_and_hides_strings_and_comments():
    text = 'plot("(", title="x") // )'
    masked = mask_code(text)

    assert len(masked) == len(text)
    assert masked.count("(") == 1
    assert masked.count(")") == 1
    assert masked.startswith('plot("x", title="x")')


def test_escaped_quote_does_not_close_string():
    result = scan('s = "a\\"b"\nplot(s)')

    assert result.unclosed_strings == []
    assert result.is_code(result.text.index("plot"))


def test_string_open_at_newline_is_recorded_and_state_resets():
    text = 'a = "abc\nb = 1'
    result = scan(text)

    assert result.unclosed_strings == [UnclosedString(line=1, quote='"', at_end_of_script=False)]
    assert result.is_code(text.index("b = 1"))


def test_string_open_at_end_of_script():
    result = scan("a = 'abc")

    assert result.unclosed_strings == [UnclosedString(line=1, quote="'", at_end_of_script=True)]


def test_block_comment_spans_lines_and_hides_brackets():
    report = match_brackets("/* (\n [ */ x = (1)")

    assert report.balanced


def test_unterminated_block_comment_reports_start_line():
    result = scan("x = 1\n/* open\nstill open")

    assert result.unterminated_block_comment_line == 2


def test_mismatched_closer_consumes_opener():
    report = match_brackets("f(a[1)")

    assert report.issues == [BracketIssue(char=")", line=1, expected="]", opener_line=1)]
    assert report.unclosed == [("(", 1)]


def test_unexpected_closer_on_empty_stack():
    report = match_brackets("a)\nb")

    assert report.issues == [BracketIssue(char=")", line=1)]
    assert report.unclosed == []


def test_leftover_openers_keep_opening_order():
    report = match_brackets("f(\ng([1")

    assert report.unclosed == [("(", 1), ("(", 2), ("[", 2)]


def test_line_of_is_one_based():
    result = scan("a\nbb\nccc")

    assert result.line_of(0) == 1
    assert result.line_of(2) == 2
    assert result.line_of(5) == 3


def test_state_at_line_start_is_carried_from_previous_line():
    result = scan("// note\n/* open\nstill */ x\n/* c */ y\nlabel = \"a")

    assert result.state_at_line_start(1) is ScanState.NORMAL
    assert result.state_at_line_start(2) is ScanState.NORMAL
    assert result.state_at_line_start(3) is ScanState.BLOCK_COMMENT
    assert result.state_at_line_start(4) is ScanState.NORMAL
    assert result.state_at_line_start(5) is ScanState.NORMAL


def test_sub_code_never_rewrites_strings_or_comments():
    text = 'sma(close, 14) // sma(x)\nlabel = "sma("'

    new_text, count = sub_code(bare_call_re("sma"), text, lambda m: "ta.sma")

    assert count == 1
    assert new_text == 'ta.sma(close, 14) // sma(x)\nlabel = "sma("'
