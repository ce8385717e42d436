"""
Validation Service for PineScript

Runs the static checks over a script and aggregates them into a
ValidationResult. Checks run in a fixed order:

1. Empty script (stops here)
2. Version marker (absent / unsupported / mismatch with declared version)
3. Bracket balance and unterminated block comments (structural)
4. Quote balance (structural)
5. Top-level declaration count, plus the missing-comma heuristic
6. Version-specific rule table
7. Line length
8. Script size

Design intent:
- Every check reads the same ScanResult, so text inside strings and comments
  never produces a diagnostic.
- The wall-clock budget is checked between lines; exceeding it raises
  ValidationTimeoutError and no partial result is returned.
- Warnings never affect validity unless ``warnings_as_errors`` is set.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, List, Optional, Union

from ..errors import ValidationTimeoutError
from ..models.diagnostics import (
    Diagnostic,
    DiagnosticCategory,
    DiagnosticSeverity,
    ValidationResult,
)
from ..models.script import ScriptVersion
from ..models.settings import ValidationSettings
from .patterns import find_missing_comma_calls, iter_declarations
from .scanner import BRACKET_NAMES, ScanResult, mask_code, match_brackets, scan
from .version_detector import DEFAULT_VERSION, find_version_marker, version_marker
from .version_rules import LineContext, RuleScope, rules_for

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]
Clock = Callable[[], float]


class _BudgetTracker:
    """Wall-clock ceiling plus throttled progress reporting."""

    def __init__(
        self,
        limit: float,
        interval: float,
        total_steps: int,
        clock: Clock,
        progress: Optional[ProgressCallback] = None,
    ):
        self.limit = limit
        self.interval = interval
        self.total_steps = total_steps
        self.steps_done = 0
        self._clock = clock
        self._progress = progress
        self._started = clock()
        self._last_report = self._started

    def check(self) -> None:
        now = self._clock()
        elapsed = now - self._started
        if elapsed > self.limit:
            raise ValidationTimeoutError(elapsed, self.limit, self.steps_done, self.total_steps)
        if self._progress is not None and now - self._last_report >= self.interval:
            self._last_report = now
            self._progress(self.steps_done, self.total_steps)

    def step_done(self) -> None:
        self.steps_done += 1
        self.check()

    def finish(self) -> None:
        if self._progress is not None:
            self._progress(self.total_steps, self.total_steps)


def _diagnostic(
    severity: DiagnosticSeverity,
    category: DiagnosticCategory,
    rule_id: str,
    message: str,
    line: Optional[int] = None,
) -> Diagnostic:
    return Diagnostic(severity=severity, category=category, rule_id=rule_id, message=message, line=line)


def _error(category: DiagnosticCategory, rule_id: str, message: str, line: Optional[int] = None) -> Diagnostic:
    return _diagnostic(DiagnosticSeverity.ERROR, category, rule_id, message, line)


def _warning(category: DiagnosticCategory, rule_id: str, message: str, line: Optional[int] = None) -> Diagnostic:
    return _diagnostic(DiagnosticSeverity.WARNING, category, rule_id, message, line)


class ValidationService:
    """
    Static validator for PineScript.

    The service is stateless apart from its settings; one instance can
    validate any number of scripts.
    """

    # Number of check stages reported through the progress callback
    TOTAL_STEPS = 8

    def __init__(
        self,
        settings: Optional[ValidationSettings] = None,
        default_version: ScriptVersion = DEFAULT_VERSION,
        clock: Clock = time.monotonic,
    ):
        self.settings = settings or ValidationSettings()
        self.default_version = default_version
        self._clock = clock

    def validate(
        self,
        script: str,
        declared_version: Optional[Union[str, int, ScriptVersion]] = None,
        budget: Optional[float] = None,
        progress: Optional[ProgressCallback] = None,
    ) -> ValidationResult:
        """
        Validate a script.

        Args:
            script: PineScript source text
            declared_version: Version the caller expects the script to be in.
                When given, its rule table is applied even if the marker differs.
            budget: Wall-clock ceiling in seconds (defaults to settings)
            progress: Called with (steps_done, total_steps) at the configured interval

        Returns:
            ValidationResult with errors and warnings

        Raises:
            ValidationTimeoutError: the budget was exceeded
            ValueError: declared_version is not a supported version
        """
        declared = ScriptVersion.parse(declared_version) if declared_version is not None else None
        tracker = _BudgetTracker(
            limit=budget if budget is not None else self.settings.max_validation_time,
            interval=self.settings.progress_interval,
            total_steps=self.TOTAL_STEPS,
            clock=self._clock,
            progress=progress,
        )

        errors: List[Diagnostic] = []
        warnings: List[Diagnostic] = []

        # 1. Empty script
        if not script or not script.strip():
            errors.append(_error(DiagnosticCategory.EMPTY, "PS0001", "Script is empty"))
            tracker.finish()
            return self._finalize(errors, warnings)
        tracker.step_done()

        # 2. Version marker
        version = self._check_version_marker(script, declared, warnings)
        tracker.step_done()

        result = scan(script)
        masked = mask_code(script, result)
        masked_lines = masked.split("\n")
        tracker.check()

        # 3. Brackets and block comments
        errors.extend(self._check_brackets(script, result))
        tracker.step_done()

        # 4. Quotes
        errors.extend(self._check_quotes(result))
        tracker.step_done()

        # 5. Declarations and missing commas
        errors.extend(self._check_declarations(script, result))
        for call in find_missing_comma_calls(script, result):
            warnings.append(
                _warning(
                    DiagnosticCategory.HEURISTIC,
                    "PS1201",
                    f"Possible missing comma between arguments of '{call.name}()'",
                    call.line,
                )
            )
        tracker.step_done()

        # 6. Version-specific rules
        self._check_version_rules(version, script, masked, masked_lines, tracker, errors, warnings)
        tracker.step_done()

        # 7. Line length
        limit = self.settings.max_line_length
        for number, line in enumerate(script.split("\n"), start=1):
            if len(line) > limit:
                warnings.append(
                    _warning(
                        DiagnosticCategory.LINE_LENGTH,
                        "PS1301",
                        f"Line is {len(line)} characters long (limit {limit})",
                        number,
                    )
                )
        tracker.step_done()

        # 8. Size
        threshold = self.settings.size_warning_threshold
        if len(script) > threshold:
            warnings.append(
                _warning(
                    DiagnosticCategory.SIZE,
                    "PS1302",
                    f"Script is large ({len(script)} characters, threshold {threshold}); "
                    f"consider splitting it into libraries",
                )
            )
        tracker.step_done()
        tracker.finish()

        validation = self._finalize(errors, warnings)
        logger.debug(
            f"Validated {version.value} script: {len(validation.errors)} errors, "
            f"{len(validation.warnings)} warnings"
        )
        return validation

    def _check_version_marker(
        self,
        script: str,
        declared: Optional[ScriptVersion],
        warnings: List[Diagnostic],
    ) -> ScriptVersion:
        """Report marker problems and return the version whose rules apply."""
        marker = find_version_marker(script)
        detected: Optional[ScriptVersion] = None

        if marker is None:
            fallback = declared or self.default_version
            warnings.append(
                _warning(
                    DiagnosticCategory.VERSION_MARKER,
                    "PS1001",
                    f"Missing version annotation. Consider adding {version_marker(fallback)} "
                    f"at the beginning of your script",
                    1,
                )
            )
        else:
            line_index, number = marker
            try:
                detected = ScriptVersion.from_number(number)
            except ValueError:
                warnings.append(
                    _warning(
                        DiagnosticCategory.VERSION_MARKER,
                        "PS1002",
                        f"Unsupported version annotation //@version={number}; "
                        f"supported versions are 4, 5 and 6",
                        line_index + 1,
                    )
                )
            if declared is not None and detected is not None and detected != declared:
                warnings.append(
                    _warning(
                        DiagnosticCategory.VERSION_MARKER,
                        "PS1003",
                        f"Script declares {detected.value} but is being validated as {declared.value}",
                        line_index + 1,
                    )
                )

        return declared or detected or self.default_version

    @staticmethod
    def _check_brackets(script: str, result: ScanResult) -> List[Diagnostic]:
        errors: List[Diagnostic] = []
        report = match_brackets(script, result)

        for issue in report.issues:
            name = BRACKET_NAMES[issue.char]
            if issue.expected is None:
                errors.append(
                    _error(
                        DiagnosticCategory.STRUCTURAL,
                        "PS2001",
                        f"Unexpected closing {name} '{issue.char}' in line {issue.line}",
                        issue.line,
                    )
                )
            else:
                errors.append(
                    _error(
                        DiagnosticCategory.STRUCTURAL,
                        "PS2002",
                        f"Mismatched brackets: found '{issue.char}' in line {issue.line}, "
                        f"but expected '{issue.expected}' to close the opener from line {issue.opener_line}",
                        issue.line,
                    )
                )

        if report.unclosed:
            count = len(report.unclosed)
            openers = ", ".join(f"'{char}' from line {line}" for char, line in report.unclosed)
            plural = "s" if count != 1 else ""
            errors.append(
                _error(
                    DiagnosticCategory.STRUCTURAL,
                    "PS2003",
                    f"Missing {count} closing bracket{plural}: unclosed {openers}",
                    report.unclosed[0][1],
                )
            )

        if result.unterminated_block_comment_line is not None:
            line = result.unterminated_block_comment_line
            errors.append(
                _error(
                    DiagnosticCategory.STRUCTURAL,
                    "PS2005",
                    f"Unterminated block comment starting in line {line}",
                    line,
                )
            )
        return errors

    @staticmethod
    def _check_quotes(result: ScanResult) -> List[Diagnostic]:
        errors: List[Diagnostic] = []
        for unclosed in result.unclosed_strings:
            if unclosed.at_end_of_script:
                message = f"Unclosed string literal ({unclosed.quote}) at end of script"
            else:
                message = f"Unclosed string literal ({unclosed.quote}) in line {unclosed.line}"
            errors.append(_error(DiagnosticCategory.STRUCTURAL, "PS2004", message, unclosed.line))
        return errors

    @staticmethod
    def _check_declarations(script: str, result: ScanResult) -> List[Diagnostic]:
        declarations = list(iter_declarations(script, result))
        if not declarations:
            return [
                _error(
                    DiagnosticCategory.DECLARATION,
                    "PS1101",
                    "Missing declaration: a script needs exactly one of indicator(), strategy() or library()",
                )
            ]
        if len(declarations) > 1:
            found = ", ".join(f"{call}() in line {line}" for _, call, line in declarations)
            return [
                _error(
                    DiagnosticCategory.DECLARATION,
                    "PS1102",
                    f"Multiple declarations found ({found}); only one is allowed",
                    declarations[1][2],
                )
            ]
        return []

    @staticmethod
    def _check_version_rules(
        version: ScriptVersion,
        script: str,
        masked: str,
        masked_lines: List[str],
        tracker: _BudgetTracker,
        errors: List[Diagnostic],
        warnings: List[Diagnostic],
    ) -> None:
        line_rules = rules_for(version, RuleScope.LINE)
        script_rules = rules_for(version, RuleScope.SCRIPT)
        original_lines = script.split("\n")

        def emit(rule, subject: str, line: Optional[int]) -> None:
            diagnostic = _diagnostic(rule.severity, rule.category, rule.rule_id, rule.render(subject), line)
            if rule.severity is DiagnosticSeverity.ERROR:
                errors.append(diagnostic)
            else:
                warnings.append(diagnostic)

        if line_rules:
            for number, code in enumerate(masked_lines, start=1):
                tracker.check()
                if not code.strip():
                    continue
                ctx = LineContext(number=number, code=code, text=original_lines[number - 1], script=masked)
                for rule in line_rules:
                    subject = rule.predicate(ctx)
                    if subject is not None:
                        emit(rule, subject, number)

        for rule in script_rules:
            subject = rule.predicate(masked)
            if subject is not None:
                emit(rule, subject, None)

    def _finalize(self, errors: List[Diagnostic], warnings: List[Diagnostic]) -> ValidationResult:
        """Apply ignored_rules / warnings_as_errors and build the result."""
        ignored = set(self.settings.ignored_rules)
        if ignored:
            errors = [d for d in errors if d.rule_id not in ignored]
            warnings = [d for d in warnings if d.rule_id not in ignored]

        if self.settings.warnings_as_errors and warnings:
            errors = errors + [
                d.model_copy(update={"severity": DiagnosticSeverity.ERROR}) for d in warnings
            ]
            warnings = []

        return ValidationResult(errors=errors, warnings=warnings)
