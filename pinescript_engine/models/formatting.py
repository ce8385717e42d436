"""
Formatter options and result models.
"""

from __future__ import annotations

from typing import List

from pydantic import BaseModel, Field

from .diagnostics import Diagnostic


class FormatOptions(BaseModel):
    """Formatting options for PineScript code."""

    # Indentation
    indent_size: int = Field(default=4, ge=1, le=16)
    use_spaces: bool = True

    # Spacing
    spaces_around_operators: bool = True
    space_after_commas: bool = True

    # Line layout
    max_line_length: int = Field(default=80, ge=1)
    collapse_blank_lines: bool = False
    braces_on_new_line: bool = False

    # Comments
    align_comments: bool = True

    # Versioning
    update_version_comment: bool = True


class FormatResult(BaseModel):
    """Result of formatting a script."""

    formatted: str
    changes: List[str] = Field(default_factory=list)
    warnings: List[Diagnostic] = Field(default_factory=list)
