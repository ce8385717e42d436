"""
Version-specific rule table.

Each entry is a ``(predicate, severity, message)`` rule keyed by the versions
it applies to. Line rules are evaluated once per scanned line on masked code
(comments blanked, strings filled), script rules once per script. Rules do not
see each other's results, so adding or removing one never changes another.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Callable, FrozenSet, List, Optional

from ..models.diagnostics import DiagnosticCategory, DiagnosticSeverity
from ..models.script import ScriptVersion
from .patterns import (
    EXPORT_VAR_PREFIX_RE,
    FUNCTION_DEF_RE,
    IMPORT_RE,
    NAMED_ARGUMENT_BUILTINS,
    NAMED_ARGUMENT_RE,
    STUDY_CALL_RE,
    VAR_DECL_RE,
    VARIP_RE,
    call_arguments,
    reassignment_re,
    split_top_level_args,
)

_CALL_START_RE = re.compile(r"(?<![\w.])([A-Za-z_][\w.]*)[ \t]*\(")


class RuleScope(str, Enum):
    LINE = "line"
    SCRIPT = "script"


@dataclass(frozen=True)
class LineContext:
    """One scanned line handed to line rules."""

    number: int  # 1-based
    code: str    # masked line
    text: str    # original line
    script: str = ""  # whole masked script


# A predicate returns None when the rule does not fire, otherwise the subject
# (possibly empty) that is substituted into the message as {subject}.
LinePredicate = Callable[[LineContext], Optional[str]]
ScriptPredicate = Callable[[str], Optional[str]]


@dataclass(frozen=True)
class VersionRule:
    rule_id: str
    versions: FrozenSet[ScriptVersion]
    severity: DiagnosticSeverity
    category: DiagnosticCategory
    message: str
    scope: RuleScope
    predicate: Callable

    def applies_to(self, version: ScriptVersion) -> bool:
        return version in self.versions

    def render(self, subject: str) -> str:
        return self.message.format(subject=subject)


def _deprecated_study(ctx: LineContext) -> Optional[str]:
    return "study" if STUDY_CALL_RE.search(ctx.code) else None


def _export_var(ctx: LineContext) -> Optional[str]:
    match = EXPORT_VAR_PREFIX_RE.match(ctx.code)
    return match.group(0).strip() if match else None


def _arrow_definition(ctx: LineContext) -> Optional[str]:
    match = FUNCTION_DEF_RE.match(ctx.code)
    if match and not match.group("method"):
        return match.group("name")
    return None


def _varip(ctx: LineContext) -> Optional[str]:
    return "varip" if VARIP_RE.search(ctx.code) else None


def _never_reassigned_var(ctx: LineContext) -> Optional[str]:
    match = VAR_DECL_RE.match(ctx.code)
    if not match:
        return None
    name = match.group("name")
    return None if reassignment_re(name).search(ctx.script) else name


def _missing_return_type(ctx: LineContext) -> Optional[str]:
    match = FUNCTION_DEF_RE.match(ctx.code)
    if match and not match.group("rtype"):
        return match.group("name")
    return None


def _positional_builtin_call(ctx: LineContext) -> Optional[str]:
    for match in _CALL_START_RE.finditer(ctx.code):
        name = match.group(1)
        if name not in NAMED_ARGUMENT_BUILTINS:
            continue
        args = call_arguments(ctx.code, match.end() - 1)
        if args is None:
            continue
        parts = split_top_level_args(args)
        if len(parts) >= 2 and not any(NAMED_ARGUMENT_RE.match(p) for p in parts):
            return name
    return None


def _no_import(masked_script: str) -> Optional[str]:
    return None if IMPORT_RE.search(masked_script) else ""


V5_AND_V6 = frozenset({ScriptVersion.V5, ScriptVersion.V6})
V6_ONLY = frozenset({ScriptVersion.V6})

VERSION_RULES: List[VersionRule] = [
    VersionRule(
        rule_id="PS3001",
        versions=V5_AND_V6,
        severity=DiagnosticSeverity.WARNING,
        category=DiagnosticCategory.DEPRECATED,
        message="study() is deprecated; use indicator() instead",
        scope=RuleScope.LINE,
        predicate=_deprecated_study,
    ),
    VersionRule(
        rule_id="PS3002",
        versions=V5_AND_V6,
        severity=DiagnosticSeverity.ERROR,
        category=DiagnosticCategory.DECLARATION,
        message="Incorrect export syntax '{subject}': declare the variable first, then export it by name",
        scope=RuleScope.LINE,
        predicate=_export_var,
    ),
    VersionRule(
        rule_id="PS3101",
        versions=V6_ONLY,
        severity=DiagnosticSeverity.ERROR,
        category=DiagnosticCategory.VERSION_SYNTAX,
        message="Arrow-style function definition '{subject}' is not allowed in v6; use 'method {subject}(...) =>'",
        scope=RuleScope.LINE,
        predicate=_arrow_definition,
    ),
    VersionRule(
        rule_id="PS3102",
        versions=V6_ONLY,
        severity=DiagnosticSeverity.ERROR,
        category=DiagnosticCategory.VERSION_SYNTAX,
        message="'{subject}' is not supported in v6; use 'var' instead",
        scope=RuleScope.LINE,
        predicate=_varip,
    ),
    VersionRule(
        rule_id="PS3103",
        versions=V6_ONLY,
        severity=DiagnosticSeverity.WARNING,
        category=DiagnosticCategory.VERSION_SYNTAX,
        message="Function '{subject}' has no return type annotation (e.g. 'method float {subject}(...) =>')",
        scope=RuleScope.LINE,
        predicate=_missing_return_type,
    ),
    VersionRule(
        rule_id="PS3104",
        versions=V6_ONLY,
        severity=DiagnosticSeverity.WARNING,
        category=DiagnosticCategory.VERSION_SYNTAX,
        message="Call to {subject}() passes several arguments without naming any of them",
        scope=RuleScope.LINE,
        predicate=_positional_builtin_call,
    ),
    VersionRule(
        rule_id="PS3106",
        versions=V6_ONLY,
        severity=DiagnosticSeverity.WARNING,
        category=DiagnosticCategory.VERSION_SYNTAX,
        message="'{subject}' is declared with 'var' but never reassigned; consider 'let'",
        scope=RuleScope.LINE,
        predicate=_never_reassigned_var,
    ),
    VersionRule(
        rule_id="PS3105",
        versions=V6_ONLY,
        severity=DiagnosticSeverity.WARNING,
        category=DiagnosticCategory.VERSION_SYNTAX,
        message="No import statement found; v6 scripts are expected to import the libraries they use",
        scope=RuleScope.SCRIPT,
        predicate=_no_import,
    ),
]


def rules_for(version: ScriptVersion, scope: Optional[RuleScope] = None) -> List[VersionRule]:
    """Rules applying to ``version`` (optionally restricted to one scope), in table order."""
    return [
        rule for rule in VERSION_RULES
        if rule.applies_to(version) and (scope is None or rule.scope == scope)
    ]
