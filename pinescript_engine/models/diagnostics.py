"""
Diagnostic models (static validation feedback).

These models are intentionally small and stable: they are the API surface
between the validator and whatever consumes it (HTTP layer, LLM loop, CLI).
Diagnostics report problems only; they never carry fix suggestions. The
autofix engine re-derives what it can repair from the script itself.
"""

from __future__ import annotations

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, model_validator


class DiagnosticSeverity(str, Enum):
    """Severity level for diagnostics."""

    ERROR = "error"
    WARNING = "warning"


class DiagnosticCategory(str, Enum):
    """Error taxonomy used to group diagnostics."""

    STRUCTURAL = "structural"          # Unbalanced brackets / quotes / comments
    DECLARATION = "declaration"        # Missing or conflicting top-level declaration
    VERSION_SYNTAX = "version_syntax"  # Construct not allowed in the script's version
    DEPRECATED = "deprecated"          # Works, but has a modern replacement
    HEURISTIC = "heuristic"            # Pattern-based suspicion (e.g. missing comma)
    LINE_LENGTH = "line_length"
    VERSION_MARKER = "version_marker"
    SIZE = "size"
    TIMEOUT = "timeout"
    EMPTY = "empty"


class Diagnostic(BaseModel):
    """A single issue detected in a script."""

    severity: DiagnosticSeverity
    message: str
    category: DiagnosticCategory

    # Stable machine-readable identity (e.g. PS1001)
    rule_id: Optional[str] = None

    # 1-based line number
    line: Optional[int] = None


class ValidationResult(BaseModel):
    """Structured outcome of validating a script."""

    valid: bool = True
    errors: List[Diagnostic] = Field(default_factory=list)
    warnings: List[Diagnostic] = Field(default_factory=list)

    @model_validator(mode="after")
    def _valid_matches_errors(self) -> "ValidationResult":
        # valid is derived from errors; callers may not set it independently
        self.valid = not self.errors
        return self

    @property
    def diagnostics(self) -> List[Diagnostic]:
        return [*self.errors, *self.warnings]

    def has_rule(self, rule_id: str) -> bool:
        return any(d.rule_id == rule_id for d in self.diagnostics)

    def errors_in(self, category: DiagnosticCategory) -> List[Diagnostic]:
        return [d for d in self.errors if d.category == category]
