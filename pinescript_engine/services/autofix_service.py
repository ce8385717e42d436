"""
Safe autofix engine for PineScript (deterministic, offline).

This is intentionally conservative:
- Only allowlisted repairs are applied, in a fixed confidence order.
- Each repair re-derives its trigger from the current text (never from
  validator diagnostics), so the engine is idempotent.
- Matching happens on masked code; string and comment contents are never
  rewritten.
- Every rewrite produces an explicit change list and a unified diff.
- The result never carries more structural imbalance than the input.
"""

from __future__ import annotations

import difflib
import logging
from typing import Callable, List, Optional, Tuple

from ..models.autofix import FixResult
from ..models.script import ScriptVersion
from .patterns import (
    EXPORT_VAR_RE,
    INPUT_MISSING_COMMA_RE,
    STUDY_CALL_RE,
    bare_call_re,
    defines_function,
    find_missing_comma_calls,
    insert_commas,
)
from .rule_tables import RewriteTables, default_rewrite_tables
from .scanner import (
    BRACKET_PAIRS,
    COMMENT_STATES,
    find_code,
    mask_code,
    match_brackets,
    scan,
    sub_code,
)
from .version_detector import DEFAULT_VERSION, detect_version, find_version_marker, version_marker

logger = logging.getLogger(__name__)

# (start, end, replacement) on the current text
_Edit = Tuple[int, int, str]


def _apply_edits(text: str, edits: List[_Edit]) -> str:
    """Apply non-overlapping edits, given in any order."""
    for start, end, replacement in sorted(edits, key=lambda e: e[0], reverse=True):
        text = text[:start] + replacement + text[end:]
    return text


def _line_at(text: str, index: int) -> int:
    return text.count("\n", 0, index) + 1


def structural_imbalance(text: str) -> int:
    """Count of structural defects: bracket issues, unclosed openers, open strings and comments."""
    result = scan(text)
    report = match_brackets(text, result)
    unterminated = 1 if result.unterminated_block_comment_line is not None else 0
    return len(report.issues) + len(report.unclosed) + len(result.unclosed_strings) + unterminated


class AutofixService:
    """Apply a strictly limited, ordered set of safe PineScript repairs."""

    def __init__(
        self,
        default_version: ScriptVersion = DEFAULT_VERSION,
        tables: Optional[RewriteTables] = None,
    ):
        self.default_version = default_version
        self.tables = tables or default_rewrite_tables()

    def fix(self, script: str) -> FixResult:
        """
        Run every repair in confidence order.

        Never raises: a repair that fails is logged and skipped.
        """
        repairs: List[Tuple[str, Callable[[str], Tuple[str, List[str]]]]] = [
            ("version marker", self._add_version_marker),
            ("unclosed strings", self._close_strings),
            ("unclosed brackets", self._close_brackets),
            ("missing commas", self._insert_missing_commas),
            ("deprecated study", self._replace_study),
            ("namespaced built-ins", self._namespace_builtins),
            ("export syntax", self._fix_export_vars),
        ]

        current = script or ""
        changes: List[str] = []
        for label, repair in repairs:
            try:
                current, applied = repair(current)
            except Exception as e:
                logger.warning(f"Autofix step '{label}' failed and was skipped: {e}")
                continue
            changes.extend(applied)

        if changes and structural_imbalance(current) > structural_imbalance(script or ""):
            logger.warning("Autofix result was less balanced than its input; discarding all repairs")
            return FixResult(script=script, changes=[])

        if not changes:
            return FixResult(script=script, changes=[])

        diff = "".join(
            difflib.unified_diff(
                (script or "").splitlines(keepends=True),
                current.splitlines(keepends=True),
                fromfile="original",
                tofile="fixed",
            )
        )
        logger.info(f"Autofix applied {len(changes)} change(s)")
        return FixResult(script=current, changes=changes, diff=diff)

    # ------------------------------------------------------------------
    # Repairs (each returns the new text and its change entries)
    # ------------------------------------------------------------------

    def _add_version_marker(self, text: str) -> Tuple[str, List[str]]:
        if find_version_marker(text) is not None:
            return text, []
        marker = version_marker(self.default_version)
        return f"{marker}\n{text}", [f"Added version annotation {marker}"]

    @staticmethod
    def _close_strings(text: str) -> Tuple[str, List[str]]:
        result = scan(text)
        if not result.unclosed_strings:
            return text, []

        lines = text.split("\n")
        changes: List[str] = []
        for unclosed in result.unclosed_strings:
            line = lines[unclosed.line - 1]
            trailing = len(line) - len(line.rstrip("\\"))
            # An odd trailing backslash would escape the closing quote
            suffix = ("\\" if trailing % 2 else "") + unclosed.quote
            lines[unclosed.line - 1] = line + suffix
            changes.append(f"Closed unclosed string literal in line {unclosed.line}")
        return "\n".join(lines), changes

    @staticmethod
    def _close_brackets(text: str) -> Tuple[str, List[str]]:
        result = scan(text)
        report = match_brackets(text, result)
        if not report.unclosed:
            return text, []

        closers = "".join(BRACKET_PAIRS[char] for char, _ in reversed(report.unclosed))

        insert_at = len(text)
        for idx in range(len(text) - 1, -1, -1):
            if result.states[idx] in COMMENT_STATES or text[idx].isspace():
                continue
            insert_at = idx + 1
            break

        count = len(closers)
        plural = "s" if count != 1 else ""
        change = (
            f"Added {count} missing closing bracket{plural} '{closers}' "
            f"in line {_line_at(text, insert_at)}"
        )
        return text[:insert_at] + closers + text[insert_at:], [change]

    @staticmethod
    def _insert_missing_commas(text: str) -> Tuple[str, List[str]]:
        changes: List[str] = []

        # Narrow pattern first: input(<number> "<title>"
        edits: List[_Edit] = []
        for match in find_code(INPUT_MISSING_COMMA_RE, text):
            start, end = match.start("number"), match.start("title")
            edits.append((match.end("number"), end, ", "))
            changes.append(f"Inserted missing comma in input() call in line {_line_at(text, start)}")
        text = _apply_edits(text, edits)

        # General pattern: call arguments made of bare tokens separated by whitespace
        masked = mask_code(text)
        edits = []
        for call in find_missing_comma_calls(text):
            args = text[call.args_start:call.args_end]
            masked_args = masked[call.args_start:call.args_end]
            edits.append((call.args_start, call.args_end, insert_commas(args, masked_args)))
            changes.append(f"Inserted missing commas between arguments of '{call.name}()' in line {call.line}")
        return _apply_edits(text, edits), changes

    def _replace_study(self, text: str) -> Tuple[str, List[str]]:
        if detect_version(text, self.default_version) is ScriptVersion.V4:
            return text, []
        target = self.tables.declaration_renames.get("study", "indicator")
        text, count = sub_code(STUDY_CALL_RE, text, lambda m: target)
        if not count:
            return text, []
        return text, [f"Replaced deprecated study() with {target}()"]

    def _namespace_builtins(self, text: str) -> Tuple[str, List[str]]:
        if detect_version(text, self.default_version) is ScriptVersion.V4:
            return text, []

        changes: List[str] = []
        masked = mask_code(text)
        for name, qualified in sorted(self.tables.namespaced_functions.items()):
            if defines_function(masked, name):
                continue
            text, count = sub_code(bare_call_re(name), text, lambda m, q=qualified: q)
            if count:
                changes.append(f"Replaced deprecated {name}() with {qualified}()")
                masked = mask_code(text)
        return text, changes

    def _fix_export_vars(self, text: str) -> Tuple[str, List[str]]:
        is_v6 = detect_version(text, self.default_version) is ScriptVersion.V6

        edits: List[_Edit] = []
        changes: List[str] = []
        for match in find_code(EXPORT_VAR_RE, text):
            indent = match.group("indent")
            name = match.group("name")
            value = match.group("value")
            # varip is not available in v6
            keyword = "varip" if match.group("kind") == "varip" and not is_v6 else "var"

            # Keep a trailing comment, drop the statement's own semicolon
            tail = text[match.end("value"):match.end()]
            masked_tail = match.masked(0)[match.end("value") - match.start():]
            semicolon = masked_tail.find(";")
            if semicolon >= 0:
                tail = tail[:semicolon] + tail[semicolon + 1:]
            comment = tail.strip()
            suffix = f"  {comment}" if comment else ""

            replacement = f"{indent}{keyword} {name} = {value}{suffix}\n{indent}export {name}"
            edits.append((match.start(), match.end(), replacement))
            changes.append(
                f"Rewrote 'export {match.group('kind')} {name}' as '{keyword} {name} = ...' "
                f"followed by 'export {name}' in line {_line_at(text, match.start())}"
            )
        return _apply_edits(text, edits), changes
