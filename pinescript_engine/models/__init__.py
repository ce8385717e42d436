"""Data models for the PineScript engine."""

from .script import ScriptVersion
from .diagnostics import Diagnostic, DiagnosticCategory, DiagnosticSeverity, ValidationResult
from .autofix import FixResult
from .formatting import FormatOptions, FormatResult
from .history import ScriptVersionRecord
from .settings import EngineSettings, HistorySettings, ValidationSettings

__all__ = [
    "ScriptVersion",
    "Diagnostic",
    "DiagnosticCategory",
    "DiagnosticSeverity",
    "ValidationResult",
    "FixResult",
    "FormatOptions",
    "FormatResult",
    "ScriptVersionRecord",
    "EngineSettings",
    "HistorySettings",
    "ValidationSettings",
]
