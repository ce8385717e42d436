"""
PineScript version detection.

A script declares its version with a ``//@version=N`` comment. When the marker
is absent (or names an unsupported version) the configured default applies.
"""

from __future__ import annotations

import re
from typing import Optional, Tuple

from ..models.script import ScriptVersion

DEFAULT_VERSION = ScriptVersion.V5

VERSION_MARKER_RE = re.compile(r"^[ \t]*//[ \t]*@version[ \t]*=[ \t]*(\d+)", re.MULTILINE)


def version_marker(version: ScriptVersion) -> str:
    """Canonical marker line for a version."""
    return f"//@version={version.number}"


def find_version_marker(script: str) -> Optional[Tuple[int, int]]:
    """
    Locate the first version marker.

    Returns:
        (0-based line index, declared number) or None when no marker exists
    """
    match = VERSION_MARKER_RE.search(script)
    if not match:
        return None
    line_index = script.count("\n", 0, match.start())
    return line_index, int(match.group(1))


def detect_version(script: str, default: ScriptVersion = DEFAULT_VERSION) -> ScriptVersion:
    """Detect the script version from its marker, falling back to ``default``."""
    marker = find_version_marker(script)
    if marker is None:
        return default
    try:
        return ScriptVersion.from_number(marker[1])
    except ValueError:
        return default
