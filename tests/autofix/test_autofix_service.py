"""
Tests for the deterministic autofix engine.

Autofix must be transparent (every rewrite listed, diff attached),
idempotent, and must never touch strings or comments.
"""

from __future__ import annotations

import pytest

from pinescript_engine.models import DiagnosticCategory, ScriptVersion
from pinescript_engine.services.autofix_service import AutofixService, structural_imbalance
from pinescript_engine.services.validation_service import ValidationService


@pytest.fixture
def fixer():
    return AutofixService()


def test_study_after_indicator_gets_marker_and_rename(fixer):
    result = fixer.fix('indicator("X")\nstudy("Y")')

    assert result.fixed
    assert result.script.startswith("//@version=5\n")
    assert 'indicator("Y")' in result.script
    assert len(result.changes) == 2
    assert result.diff and "+//@version=5" in result.diff


def test_unclosed_call_gets_one_closer(fixer):
    result = fixer.fix('indicator("X", overlay=true')

    assert result.script == '//@version=5\nindicator("X", overlay=true)'
    revalidated = ValidationService().validate(result.script)
    assert revalidated.errors_in(DiagnosticCategory.STRUCTURAL) == []


def test_leftover_openers_are_closed_in_lifo_order(fixer):
    result = fixer.fix('indicator("X")\nx = f(g([1, 2')

    assert result.script.endswith("x = f(g([1, 2]))")
    assert any("3 missing closing brackets" in change for change in result.changes)


def test_closers_go_before_trailing_comment(fixer):
    result = fixer.fix('//@version=5\nindicator("X")\nplot(close // note')

    assert result.script.endswith("plot(close) // note")


def test_export_var_is_split_into_declaration_and_export(fixer):
    result = fixer.fix("export var total = 0")

    assert result.script == "//@version=5\nvar total = 0\nexport total"
    assert not ValidationService().validate(result.script).has_rule("PS3002")


def test_export_const_keeps_trailing_comment(fixer):
    result = fixer.fix("//@version=6\nexport const limit = 10 // cap")

    assert result.script == "//@version=6\nvar limit = 10  // cap\nexport limit"


def test_export_varip_keeps_keyword_before_v6(fixer):
    result = fixer.fix("//@version=5\nindicator(\"X\")\nexport varip ticks = 0")

    assert result.script.endswith("\nvarip ticks = 0\nexport ticks")


def test_export_varip_becomes_var_in_v6(fixer):
    result = fixer.fix("//@version=6\nimport ta\nindicator(\"X\")\nexport varip ticks = 0")

    assert result.script.endswith("\nvar ticks = 0\nexport ticks")
    assert not ValidationService().validate(result.script).has_rule("PS3102")


def test_unclosed_strings_are_closed(fixer):
    result = fixer.fix("//@version=5\nindicator(\"X\")\nlabel = \"abc\nnote = 'x")

    assert result.script.splitlines()[2:] == ['label = "abc"', "note = 'x'"]
    assert structural_imbalance(result.script) == 0


def test_narrow_input_comma_fix(fixer):
    result = fixer.fix('//@version=5\nindicator("X")\nlength = input(14 "Length")')

    assert 'length = input(14, "Length")' in result.script
    assert result.changes == ["Inserted missing comma in input() call in line 3"]


def test_general_comma_fix(fixer):
    result = fixer.fix('//@version=5\nindicator("X")\nplot(close open)')

    assert "plot(close, open)" in result.script


def test_subtraction_is_left_alone(fixer):
    script = '//@version=5\nindicator("X")\nplot(close -1)'

    result = fixer.fix(script)

    assert not result.fixed
    assert result.script == script


def test_builtins_are_namespaced_once(fixer):
    script = '//@version=5\nindicator("X")\nfast = sma(close, 10)\nslow = ta.sma(close, 20)'

    result = fixer.fix(script)

    assert "fast = ta.sma(close, 10)" in result.script
    assert "ta.ta.sma" not in result.script
    assert result.changes == ["Replaced deprecated sma() with ta.sma()"]


def test_user_defined_functions_are_not_namespaced(fixer):
    script = '//@version=5\nindicator("X")\nsma(x, n) => x\ny = sma(close, 3)'

    assert fixer.fix(script).changes == []


def test_v4_scripts_keep_study_and_bare_builtins(fixer):
    script = '//@version=4\nstudy("X")\ny = sma(close, 3)'

    result = fixer.fix(script)

    assert result.changes == []
    assert result.script == script


def test_strings_and_comments_are_never_rewritten(fixer):
    script = '//@version=5\nindicator("study(")\n// sma(close, 1)\nplot(close)'

    result = fixer.fix(script)

    assert result.changes == []
    assert result.diff is None
    assert result.script == script


def test_custom_default_version_marker():
    result = AutofixService(default_version=ScriptVersion.V6).fix('indicator("X")')

    assert result.script.startswith("//@version=6\n")


@pytest.mark.parametrize(
    "script",
    [
        'indicator("X")\nstudy("Y")',
        'indicator("X", overlay=true',
        "export var total = 0",
        'indicator("X")\nx = f(g([1, 2',
        'indicator("X")\nlength = input(14 "Length")\nplot(sma(close length))',
        "//@version=5\nindicator(\"X\")\nlabel = \"abc\\",
    ],
)
def test_fix_is_idempotent(fixer, script):
    once = fixer.fix(script)
    twice = fixer.fix(once.script)

    assert twice.changes == []
    assert twice.script == once.script


def test_fix_never_increases_structural_imbalance(fixer):
    script = 'indicator("X"))\nplot(close]'

    result = fixer.fix(script)

    assert structural_imbalance(result.script) <= structural_imbalance(script)
