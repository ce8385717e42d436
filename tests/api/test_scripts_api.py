"""
HTTP tests for the script endpoints.

Each test builds its own app around an explicitly constructed engine, so
history files land in the test's temporary directory.
"""

import pytest
from fastapi.testclient import TestClient

from pinescript_engine import PineScriptEngine, __version__
from pinescript_engine.main import create_app
from pinescript_engine.models import EngineSettings, HistorySettings

VALID = '//@version=5\nindicator("X")\nplot(close)'


def _settings(tmp_path) -> EngineSettings:
    return EngineSettings(history=HistorySettings(storage_directory=str(tmp_path / "history")))


@pytest.fixture
def client(engine):
    return TestClient(create_app(engine=engine))


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "healthy", "version": __version__}


def test_validate_reports_diagnostics(client):
    response = client.post("/api/scripts/validate", json={"script": '//@version=5\nindicator("X"'})

    assert response.status_code == 200
    body = response.json()
    assert body["valid"] is False
    assert any(e["rule_id"] == "PS2003" for e in body["errors"])


def test_validate_accepts_declared_version(client):
    response = client.post(
        "/api/scripts/validate",
        json={"script": 'indicator("X")\nvarip x = 1', "version": "6"},
    )

    assert response.status_code == 200
    assert any(e["rule_id"] == "PS3102" for e in response.json()["errors"])


def test_validate_rejects_unknown_version(client):
    response = client.post("/api/scripts/validate", json={"script": VALID, "version": "v9"})

    assert response.status_code == 400


def test_validate_timeout_maps_to_504(tmp_path, make_clock):
    engine = PineScriptEngine(_settings(tmp_path), clock=make_clock(step=100))
    client = TestClient(create_app(engine=engine))

    response = client.post("/api/scripts/validate", json={"script": VALID})

    assert response.status_code == 504
    detail = response.json()["detail"]
    assert detail["rule_id"] == "PS9001"
    assert detail["message"].startswith("Timeout")


def test_fix_returns_changes_and_diff(client):
    response = client.post("/api/scripts/fix", json={"script": 'indicator("X")\nplot(close'})

    assert response.status_code == 200
    body = response.json()
    assert body["fixed"] is True
    assert body["script"] == '//@version=5\nindicator("X")\nplot(close)'
    assert body["diff"].startswith("--- original")


def test_format_with_options(client):
    response = client.post(
        "/api/scripts/format",
        json={"script": '//@version=5\nindicator("X")\nif a\n x:=1', "options": {"indent_size": 2}},
    )

    assert response.status_code == 200
    assert response.json()["formatted"].endswith("if a\n  x := 1")


def test_convert(client):
    response = client.post(
        "/api/scripts/convert",
        json={"script": '//@version=4\nstudy("X")', "target_version": "v5"},
    )

    assert response.status_code == 200
    assert response.json() == {
        "script": '//@version=5\nindicator("X")',
        "source_version": "v4",
        "target_version": "v5",
    }


def test_convert_rejects_unknown_target(client):
    response = client.post("/api/scripts/convert", json={"script": VALID, "target_version": "7"})

    assert response.status_code == 400


def test_compare(client):
    response = client.post("/api/scripts/compare", json={"old": "a\nb", "new": "a\nc"})

    assert response.status_code == 200
    assert response.json() == {"diff": ["- b", "+ c"]}


def test_version_history_round_trip(client):
    created = client.post("/api/scripts/versions", json={"script": VALID, "notes": "first"})
    assert created.status_code == 201
    script_id = created.json()["id"]

    client.post("/api/scripts/versions", json={"script": VALID, "notes": "second"})

    history = client.get(f"/api/scripts/versions/{script_id}")
    assert history.status_code == 200
    assert [r["notes"] for r in history.json()] == ["first", "second"]

    latest = client.get(f"/api/scripts/versions/{script_id}/latest")
    assert latest.json()["notes"] == "second"
    assert latest.json()["valid"] is True
    assert latest.json()["version"] == "v5"

    first = client.get(f"/api/scripts/versions/{script_id}/0")
    assert first.json()["content"] == VALID

    missing = client.get(f"/api/scripts/versions/{script_id}/9")
    assert missing.status_code == 404


def test_unknown_history_is_404(client):
    assert client.get("/api/scripts/versions/0123456789abcdef").status_code == 404
    assert client.get("/api/scripts/versions/0123456789abcdef/latest").status_code == 404


def test_malformed_history_id_is_400(client):
    assert client.get("/api/scripts/versions/NOT-HEX").status_code == 400
