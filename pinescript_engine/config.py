"""
Configuration management for the PineScript engine.

Configuration priority (highest to lowest):
1. Environment variables (for container deployments)
2. JSON config file (for local development)
3. Built-in defaults

Nothing is loaded at import time: build a Config and call ``settings()``,
then hand the result to ``PineScriptEngine`` explicitly.
"""

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional, Union

from pydantic import ValidationError

from .models.script import ScriptVersion
from .models.settings import EngineSettings

logger = logging.getLogger(__name__)

CONFIG_FILE_ENV = "PINESCRIPT_CONFIG_FILE"
HISTORY_DIR_ENV = "PINESCRIPT_HISTORY_DIR"
DEFAULT_VERSION_ENV = "PINESCRIPT_DEFAULT_VERSION"
MAX_VALIDATION_TIME_ENV = "PINESCRIPT_MAX_VALIDATION_TIME"

DEFAULT_CONFIG_FILE = "pinescript.json"


class Config:
    """
    Engine configuration loader.

    Priority: ENV > config file > defaults

    Environment variables:
      - PINESCRIPT_CONFIG_FILE: path of the JSON config file
      - PINESCRIPT_HISTORY_DIR: version history directory
      - PINESCRIPT_DEFAULT_VERSION: version assumed when a script has no marker (4, 5, 6 or v5...)
      - PINESCRIPT_MAX_VALIDATION_TIME: validation time budget in seconds
    """

    def __init__(self, config_file: Optional[Union[str, Path]] = None, environ: Optional[Dict[str, str]] = None):
        self.environ = environ if environ is not None else os.environ
        self.config_file = Path(config_file or self.environ.get(CONFIG_FILE_ENV) or DEFAULT_CONFIG_FILE)
        self.data = self.load()

    def load(self) -> Dict[str, Any]:
        """Load configuration from file."""
        if not self.config_file.exists():
            return {}
        try:
            with open(self.config_file, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Failed to load config from {self.config_file}: {e}")
            return {}
        if not isinstance(data, dict):
            logger.error(f"Ignoring config file {self.config_file}: top level must be an object")
            return {}
        return data

    def save(self, settings: EngineSettings) -> None:
        """Write settings to the config file."""
        try:
            with open(self.config_file, "w", encoding="utf-8") as f:
                json.dump(settings.model_dump(mode="json"), f, indent=2)
            logger.info(f"Configuration saved to {self.config_file}")
        except OSError as e:
            logger.error(f"Failed to save config: {e}")

    def settings(self) -> EngineSettings:
        """
        Resolve the effective engine settings.

        An invalid config file falls back to defaults; an invalid environment
        value is ignored with a warning.
        """
        try:
            settings = EngineSettings.model_validate(self.data)
        except ValidationError as e:
            logger.error(f"Invalid configuration in {self.config_file}, using defaults: {e}")
            settings = EngineSettings()

        # Environment variables take precedence
        history_dir = self.environ.get(HISTORY_DIR_ENV)
        if history_dir:
            settings.history.storage_directory = history_dir

        default_version = self.environ.get(DEFAULT_VERSION_ENV)
        if default_version:
            try:
                settings.default_version = ScriptVersion.parse(default_version)
            except ValueError as e:
                logger.warning(f"Ignoring {DEFAULT_VERSION_ENV}: {e}")

        max_time = self.environ.get(MAX_VALIDATION_TIME_ENV)
        if max_time:
            try:
                seconds = float(max_time)
                if seconds <= 0:
                    raise ValueError("must be positive")
                settings.validation.max_validation_time = seconds
            except ValueError as e:
                logger.warning(f"Ignoring {MAX_VALIDATION_TIME_ENV}={max_time!r}: {e}")

        return settings
