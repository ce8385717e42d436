"""Tests for the shared code patterns (missing-comma heuristic and helpers)."""

from __future__ import annotations

from pinescript_engine.services.patterns import (
    defines_function,
    find_missing_comma_calls,
    insert_commas,
    is_space_separated_args,
    split_top_level_args,
)


def test_space_separated_arguments_are_detected():
    calls = find_missing_comma_calls("indicator(\"X\")\nplot(close open)")

    assert [(c.name, c.line) for c in calls] == [("plot", 2)]


def test_subtraction_is_not_mistaken_for_two_arguments():
    assert find_missing_comma_calls("plot(close -1)") == []
    assert find_missing_comma_calls("plot(a - b)") == []


def test_keywords_and_types_disable_the_heuristic():
    assert not is_space_separated_args("a and b")
    assert not is_space_separated_args("float x")
    assert find_missing_comma_calls("if (a or b)") == []


def test_definitions_are_not_calls():
    assert find_missing_comma_calls("f(a b) => a") == []


def test_strings_count_as_single_tokens():
    calls = find_missing_comma_calls('label.new(x "txt y")')

    assert [c.name for c in calls] == ["label.new"]


def test_insert_commas_leaves_string_contents_alone():
    assert insert_commas('x "txt y"', 'x "xxxxx"') == 'x, "txt y"'
    assert insert_commas("a  b c", "a  b c") == "a, b, c"


def test_split_top_level_args_ignores_nested_commas():
    assert split_top_level_args("a, f(b, c), d") == ["a", " f(b, c)", " d"]


def test_defines_function_sees_method_and_plain_definitions():
    masked = "sma(x, n) => x\nmethod float ema(x) => x"

    assert defines_function(masked, "sma")
    assert defines_function(masked, "ema")
    assert not defines_function(masked, "rsi")
