"""
PineScript version converter.

Rewrites surface syntax between adjacent language versions and chains the
adjacent steps for non-adjacent pairs (v4 -> v6 runs v4 -> v5 -> v6).

Per-pair rewrites:
- v4 -> v5: declaration and remote-data renames, namespaced built-ins
- v5 -> v6: default import line, ``var`` -> ``let`` when never reassigned,
  ``varip`` -> ``var``, ``method`` arrow definitions
- inverse directions apply the textually inverse rewrites

All matching happens on masked code, so strings and comments are never
rewritten. The output is not validated here; callers re-validate.
"""

from __future__ import annotations

import logging
import re
from typing import Callable, Dict, List, Optional, Tuple, Union

from ..models.script import ScriptVersion
from .patterns import (
    FUNCTION_DEF_RE,
    IMPORT_RE,
    VAR_DECL_RE,
    bare_call_re,
    defines_function,
    namespaced_call_re,
    reassignment_re,
)
from .rule_tables import RewriteTables, default_rewrite_tables
from .scanner import find_code, mask_code, sub_code
from .version_detector import DEFAULT_VERSION, VERSION_MARKER_RE, detect_version, version_marker

logger = logging.getLogger(__name__)

_VAR_DECL_LINES_RE = re.compile(VAR_DECL_RE.pattern, re.MULTILINE)
_FUNCTION_DEF_LINES_RE = re.compile(FUNCTION_DEF_RE.pattern, re.MULTILINE)
_LET_DECL_RE = re.compile(r"^(?P<indent>[ \t]*)(?P<kw>let)(?=[ \t]+)", re.MULTILINE)
_VARIP_DECL_RE = re.compile(r"^(?P<indent>[ \t]*)(?P<kw>varip)(?=[ \t]+)", re.MULTILINE)
_MARKER_LINE_RE = re.compile(r"^[ \t]*//[ \t]*@version[ \t]*=[ \t]*\d+[^\n]*", re.MULTILINE)

_ORDER = [ScriptVersion.V4, ScriptVersion.V5, ScriptVersion.V6]

Step = Callable[[str], str]


def _replace_keyword(match, keyword: str) -> str:
    """Rebuild a declaration match with a different leading keyword."""
    whole = match.group(0)
    kw_end = match.end("kw") - match.start()
    return f"{match.group('indent')}{keyword}{whole[kw_end:]}"


class VersionConverter:
    """Convert scripts between PineScript versions."""

    def __init__(
        self,
        default_version: ScriptVersion = DEFAULT_VERSION,
        tables: Optional[RewriteTables] = None,
    ):
        self.default_version = default_version
        self.tables = tables or default_rewrite_tables()
        self._steps: Dict[Tuple[ScriptVersion, ScriptVersion], Step] = {
            (ScriptVersion.V4, ScriptVersion.V5): self._v4_to_v5,
            (ScriptVersion.V5, ScriptVersion.V4): self._v5_to_v4,
            (ScriptVersion.V5, ScriptVersion.V6): self._v5_to_v6,
            (ScriptVersion.V6, ScriptVersion.V5): self._v6_to_v5,
        }

    def convert(self, script: str, target: Union[str, int, ScriptVersion]) -> str:
        """
        Convert ``script`` to ``target``.

        Raises:
            ValueError: target is not a supported version
        """
        target_version = ScriptVersion.parse(target)
        current = detect_version(script, self.default_version)
        if current == target_version:
            return script

        text = script
        for source, destination in self.path(current, target_version):
            text = self._set_marker(text, destination)
            text = self._steps[(source, destination)](text)
            logger.debug(f"Converted script {source.value} -> {destination.value}")
        return text

    @staticmethod
    def path(source: ScriptVersion, target: ScriptVersion) -> List[Tuple[ScriptVersion, ScriptVersion]]:
        """Adjacent conversion steps from ``source`` to ``target``."""
        start, end = _ORDER.index(source), _ORDER.index(target)
        direction = 1 if end > start else -1
        return [(_ORDER[i], _ORDER[i + direction]) for i in range(start, end, direction)]

    @staticmethod
    def _set_marker(text: str, version: ScriptVersion) -> str:
        marker = version_marker(version)
        if VERSION_MARKER_RE.search(text):
            return _MARKER_LINE_RE.sub(marker, text, count=1)
        return f"{marker}\n{text}"

    # ------------------------------------------------------------------
    # v4 <-> v5
    # ------------------------------------------------------------------

    def _renames(self) -> Dict[str, str]:
        return {**self.tables.declaration_renames, **self.tables.remote_data_renames}

    def _v4_to_v5(self, text: str) -> str:
        for old, new in self._renames().items():
            text, _ = sub_code(bare_call_re(old), text, lambda m, n=new: n)

        masked = mask_code(text)
        for name, qualified in self.tables.namespaced_functions.items():
            if defines_function(masked, name):
                continue
            text, _ = sub_code(bare_call_re(name), text, lambda m, q=qualified: q)
        return text

    def _v5_to_v4(self, text: str) -> str:
        for old, new in self._renames().items():
            text, _ = sub_code(namespaced_call_re(new), text, lambda m, o=old: o)
        for name, qualified in self.tables.namespaced_functions.items():
            text, _ = sub_code(namespaced_call_re(qualified), text, lambda m, n=name: n)
        return text

    # ------------------------------------------------------------------
    # v5 <-> v6
    # ------------------------------------------------------------------

    def _v5_to_v6(self, text: str) -> str:
        masked = mask_code(text)

        def declaration(match) -> str:
            if reassignment_re(match.group("name")).search(masked):
                return match.group(0)
            return _replace_keyword(match, "let")

        text, _ = sub_code(_VAR_DECL_LINES_RE, text, declaration)
        text, _ = sub_code(_VARIP_DECL_RE, text, lambda m: _replace_keyword(m, "var"))

        def definition(match) -> str:
            if match.group("method"):
                return match.group(0)
            indent = match.group("indent")
            return f"{indent}method {match.group(0)[len(indent):]}"

        text, _ = sub_code(_FUNCTION_DEF_LINES_RE, text, definition)

        if not IMPORT_RE.search(mask_code(text)):
            text = self._insert_import(text)
        return text

    def _v6_to_v5(self, text: str) -> str:
        text, _ = sub_code(_LET_DECL_RE, text, lambda m: _replace_keyword(m, "var"))

        def definition(match) -> str:
            method = match.group("method")
            if not method:
                return match.group(0)
            start = match.start("method") - match.start()
            return match.group(0)[:start] + match.group(0)[start + len(method):]

        text, _ = sub_code(_FUNCTION_DEF_LINES_RE, text, definition)
        return self._remove_import(text)

    def _insert_import(self, text: str) -> str:
        lines = text.split("\n")
        marker_index = next((i for i, line in enumerate(lines) if VERSION_MARKER_RE.match(line)), -1)
        lines.insert(marker_index + 1, self.tables.default_import)
        return "\n".join(lines)

    def _remove_import(self, text: str) -> str:
        """Drop the default import line added by the forward conversion."""
        target = self.tables.default_import.strip()
        matches = [m for m in find_code(IMPORT_RE, text) if m.group(0).strip() == target]
        if not matches:
            return text
        lines = text.split("\n")
        line_index = text.count("\n", 0, matches[0].start())
        if lines[line_index].strip() == target:
            del lines[line_index]
        return "\n".join(lines)
