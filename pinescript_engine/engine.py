"""
PineScript engine facade.

Design intent:
- One explicitly constructed context object owns the settings and the
  services built from them. There is no module-level instance; callers (the
  FastAPI app, tests, scripts) create and hold their own engine.
- Every operation except the history ones is a pure function of its input
  plus the engine settings.

Typical pipeline:

    engine = PineScriptEngine()
    result = engine.validate(script)
    if not result.valid:
        script = engine.fix(script).script
    script = engine.format(script).formatted
"""

from __future__ import annotations

import logging
import time
from datetime import datetime
from typing import Callable, List, Optional, Union

from .models.autofix import FixResult
from .models.diagnostics import ValidationResult
from .models.formatting import FormatOptions, FormatResult
from .models.history import ScriptVersionRecord
from .models.script import ScriptVersion
from .models.settings import EngineSettings
from .services.autofix_service import AutofixService
from .services.formatting_service import FormattingService
from .services.history_service import VersionHistoryService, compare_versions
from .services.rule_tables import RewriteTables, default_rewrite_tables
from .services.validation_service import ProgressCallback, ValidationService
from .services.version_converter import VersionConverter
from .services.version_detector import detect_version

logger = logging.getLogger(__name__)

VersionLike = Union[str, int, ScriptVersion]


class PineScriptEngine:
    """Validate, fix, format, convert and version PineScript scripts."""

    def __init__(
        self,
        settings: Optional[EngineSettings] = None,
        tables: Optional[RewriteTables] = None,
        clock: Callable[[], float] = time.monotonic,
        history_clock: Optional[Callable[[], datetime]] = None,
    ):
        self.settings = settings or EngineSettings()
        tables = tables or default_rewrite_tables()
        default_version = self.settings.default_version

        self.validator = ValidationService(self.settings.validation, default_version, clock=clock)
        self.fixer = AutofixService(default_version, tables)
        self.formatter = FormattingService(default_version)
        self.converter = VersionConverter(default_version, tables)

        history_kwargs = {"clock": history_clock} if history_clock else {}
        self.history = VersionHistoryService(
            self.settings.history.storage_directory,
            cache_enabled=self.settings.history.cache_enabled,
            **history_kwargs,
        )
        logger.info(f"PineScript engine initialized (default version {default_version.value})")

    def detect_version(self, script: str) -> ScriptVersion:
        return detect_version(script, self.settings.default_version)

    def validate(
        self,
        script: str,
        version: Optional[VersionLike] = None,
        budget: Optional[float] = None,
        progress: Optional[ProgressCallback] = None,
    ) -> ValidationResult:
        """Validate a script; raises ValidationTimeoutError when the budget runs out."""
        return self.validator.validate(script, version, budget=budget, progress=progress)

    def fix(self, script: str) -> FixResult:
        return self.fixer.fix(script)

    def format(self, script: str, options: Optional[FormatOptions] = None) -> FormatResult:
        return self.formatter.format(script, options or self.settings.formatting)

    def convert_version(self, script: str, target_version: VersionLike) -> str:
        return self.converter.convert(script, target_version)

    def save_version(self, script: str, notes: Optional[str] = None) -> str:
        """
        Persist a snapshot of ``script`` and return its content id.

        The record stores the detected version and whether the script was
        valid at save time.
        """
        version = self.detect_version(script)
        valid = self.validate(script).valid
        return self.history.save_version(script, version, valid, notes)

    def get_history(self, script_id: str) -> List[ScriptVersionRecord]:
        return self.history.get_history(script_id)

    def get_version(self, script_id: str, index: Optional[int] = None) -> Optional[ScriptVersionRecord]:
        return self.history.get_version(script_id, index)

    @staticmethod
    def compare_versions(old: str, new: str) -> List[str]:
        return compare_versions(old, new)
