"""
Engine settings schema.

Settings are plain pydantic models so they can be loaded from JSON, overridden
from the environment (see ``pinescript_engine.config``) and passed explicitly
to the engine. There is no process-wide settings instance.
"""

from __future__ import annotations

from typing import List

from pydantic import BaseModel, Field

from .formatting import FormatOptions
from .script import ScriptVersion

DEFAULT_HISTORY_DIR = ".pinescript_history"


class ValidationSettings(BaseModel):
    """Validation behaviour and time budget."""

    max_line_length: int = Field(default=120, ge=1)

    # Time budget (seconds); exceeding it aborts validation
    max_validation_time: float = Field(default=180.0, gt=0)
    # Interval between progress callbacks (seconds)
    progress_interval: float = Field(default=0.5, gt=0)
    # Scripts larger than this (characters) get a size warning
    size_warning_threshold: int = Field(default=10000, ge=1)

    warnings_as_errors: bool = False
    ignored_rules: List[str] = Field(default_factory=list)


class HistorySettings(BaseModel):
    """On-disk version history."""

    storage_directory: str = DEFAULT_HISTORY_DIR
    cache_enabled: bool = True


class EngineSettings(BaseModel):
    """Complete engine settings."""

    default_version: ScriptVersion = ScriptVersion.V5
    validation: ValidationSettings = Field(default_factory=ValidationSettings)
    formatting: FormatOptions = Field(default_factory=FormatOptions)
    history: HistorySettings = Field(default_factory=HistorySettings)
