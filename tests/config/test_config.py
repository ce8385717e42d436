"""
Tests for configuration loading (ENV > JSON file > defaults) and the
rewrite-table loader.
"""

import json

import pytest

from pinescript_engine.config import Config
from pinescript_engine.models import EngineSettings, ScriptVersion
from pinescript_engine.models.settings import DEFAULT_HISTORY_DIR
from pinescript_engine.services.rule_tables import default_rewrite_tables, load_rewrite_tables


@pytest.fixture
def config_file(tmp_path):
    return tmp_path / "pinescript.json"


def test_defaults_without_file_or_env(config_file):
    settings = Config(config_file, environ={}).settings()

    assert settings.default_version is ScriptVersion.V5
    assert settings.history.storage_directory == DEFAULT_HISTORY_DIR
    assert settings.validation.max_validation_time == 180.0
    assert settings.formatting.indent_size == 4


def test_json_file_overrides_defaults(config_file):
    config_file.write_text(
        json.dumps({
            "default_version": "v6",
            "validation": {"ignored_rules": ["PS1301"], "max_line_length": 100},
            "formatting": {"use_spaces": False},
        }),
        encoding="utf-8",
    )

    settings = Config(config_file, environ={}).settings()

    assert settings.default_version is ScriptVersion.V6
    assert settings.validation.ignored_rules == ["PS1301"]
    assert settings.validation.max_line_length == 100
    assert settings.formatting.use_spaces is False


def test_environment_overrides_file(config_file, tmp_path):
    config_file.write_text(json.dumps({"default_version": "v4"}), encoding="utf-8")
    environ = {
        "PINESCRIPT_DEFAULT_VERSION": "6",
        "PINESCRIPT_HISTORY_DIR": str(tmp_path / "hist"),
        "PINESCRIPT_MAX_VALIDATION_TIME": "2.5",
    }

    settings = Config(config_file, environ=environ).settings()

    assert settings.default_version is ScriptVersion.V6
    assert settings.history.storage_directory == str(tmp_path / "hist")
    assert settings.validation.max_validation_time == 2.5


@pytest.mark.parametrize(
    "name, value",
    [
        ("PINESCRIPT_DEFAULT_VERSION", "v9"),
        ("PINESCRIPT_MAX_VALIDATION_TIME", "soon"),
        ("PINESCRIPT_MAX_VALIDATION_TIME", "-1"),
    ],
)
def test_invalid_environment_values_are_ignored(config_file, name, value):
    settings = Config(config_file, environ={name: value}).settings()

    assert settings == EngineSettings()


def test_malformed_json_falls_back_to_defaults(config_file):
    config_file.write_text("{not json", encoding="utf-8")

    assert Config(config_file, environ={}).settings() == EngineSettings()


def test_invalid_values_in_file_fall_back_to_defaults(config_file):
    config_file.write_text(json.dumps({"formatting": {"indent_size": 0}}), encoding="utf-8")

    assert Config(config_file, environ={}).settings() == EngineSettings()


def test_config_file_from_environment(tmp_path):
    custom = tmp_path / "custom.json"
    custom.write_text(json.dumps({"default_version": "v4"}), encoding="utf-8")

    config = Config(environ={"PINESCRIPT_CONFIG_FILE": str(custom)})

    assert config.config_file == custom
    assert config.settings().default_version is ScriptVersion.V4


def test_save_then_load(config_file):
    settings = EngineSettings(default_version=ScriptVersion.V6)
    settings.validation.warnings_as_errors = True

    Config(config_file, environ={}).save(settings)

    assert Config(config_file, environ={}).settings() == settings


def test_shipped_rewrite_tables():
    tables = default_rewrite_tables()

    assert tables.namespaced_functions["sma"] == "ta.sma"
    assert tables.declaration_renames == {"study": "indicator"}
    assert tables.remote_data_renames == {"security": "request.security"}
    assert tables.default_import == "import ta"


def test_missing_rewrite_file_gives_empty_tables(tmp_path):
    tables = load_rewrite_tables(tmp_path / "absent.yaml")

    assert tables.namespaced_functions == {}
    assert tables.default_import == "import ta"


def test_malformed_rewrite_file_gives_empty_tables(tmp_path):
    path = tmp_path / "rules.yaml"
    path.write_text("namespaced_functions: [unclosed\n", encoding="utf-8")

    assert load_rewrite_tables(path).namespaced_functions == {}
