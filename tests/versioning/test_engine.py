"""
End-to-end tests through the PineScriptEngine facade.
"""

from pinescript_engine import PineScriptEngine
from pinescript_engine.models import EngineSettings, FormatOptions, ScriptVersion

BROKEN = """study("Demo")
length = input(14 "Length")
plot(sma(close, length)"""


def test_validate_fix_format_pipeline(engine):
    assert not engine.validate(BROKEN).valid

    fixed = engine.fix(BROKEN)
    assert fixed.fixed
    assert engine.validate(fixed.script).valid

    formatted = engine.format(fixed.script).formatted
    assert formatted == engine.format(formatted).formatted
    assert engine.validate(formatted).valid


def test_detect_version_uses_engine_default(tmp_path):
    settings = EngineSettings(default_version=ScriptVersion.V6)
    settings.history.storage_directory = str(tmp_path)
    engine = PineScriptEngine(settings)

    assert engine.detect_version('indicator("X")') is ScriptVersion.V6
    assert engine.detect_version('//@version=4\nstudy("X")') is ScriptVersion.V4


def test_format_uses_configured_options(tmp_path):
    settings = EngineSettings(formatting=FormatOptions(indent_size=2))
    settings.history.storage_directory = str(tmp_path)
    engine = PineScriptEngine(settings)

    formatted = engine.format('//@version=5\nindicator("X")\nif close > open\n    x := 1').formatted

    assert formatted.endswith("\n  x := 1")


def test_save_version_records_detected_version_and_validity(engine):
    valid_id = engine.save_version('//@version=6\nimport ta\nindicator("X")\nplot(close)', notes="v6")
    broken_id = engine.save_version('//@version=5\nindicator("X"', notes="broken")

    valid_record = engine.get_version(valid_id)
    broken_record = engine.get_version(broken_id)

    assert valid_record.version is ScriptVersion.V6
    assert valid_record.valid is True
    assert broken_record.valid is False
    assert len(engine.get_history(valid_id)) == 1


def test_convert_then_compare(engine):
    script = '//@version=5\nindicator("X")\nplot(close)'

    converted = engine.convert_version(script, "v6")

    assert PineScriptEngine.compare_versions(script, converted) == [
        "- //@version=5",
        "+ //@version=6",
        '- indicator("X")',
        "+ import ta",
        "- plot(close)",
        '+ indicator("X")',
        "+ plot(close)",
    ]
