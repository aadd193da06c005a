"""Smoke tests for the application factory."""

from fastapi.testclient import TestClient

from speechbridge.app import create_app
from speechbridge.config import Settings


def _settings(tmp_path, **overrides) -> Settings:
    values = {
        "gemini_api_key": None,
        "supabase_url": None,
        "supabase_key": None,
        "autoconnect": False,
        "speech_settings_path": tmp_path / "speech.json",
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


def test_health_and_routes(tmp_path):
    app = create_app(_settings(tmp_path))

    with TestClient(app) as client:
        health = client.get("/health")
        settings = client.get("/api/settings/speech")
        status = client.get("/api/pipeline/status")

    assert health.status_code == 200
    assert health.json()["status"] == "ok"
    assert health.json()["connection"] == "disconnected"
    assert settings.status_code == 200
    assert status.json()["queue_length"] == 0
    assert app.state.transcript_poller is None


def test_text_waits_in_queue_until_connected(tmp_path):
    app = create_app(_settings(tmp_path))

    with TestClient(app) as client:
        queued = client.post("/api/pipeline/text", json={"text": "one\ntwo", "voice_style": "natural"})
        status = client.get("/api/pipeline/status").json()

    assert queued.json()["queued"] == 2
    assert status["connection"] == "disconnected"
    assert status["queue_length"] == 2


def test_autoconnect_and_poller_wiring(tmp_path):
    app = create_app(
        _settings(
            tmp_path,
            autoconnect=True,
            supabase_url="https://example.supabase.co",
            supabase_key="anon",
            poll_interval_seconds=60.0,
        )
    )

    assert app.state.transcript_poller is not None
    # Only the lifespan (not the factory) connects the pipeline
    assert app.state.pipeline_controller.run_state.is_connected is False
