import time

import pytest
from fastapi.testclient import TestClient

from app.main import create_app
from engine.config import EngineConfig

from .conftest import FakeNoteStore, FakeStructurer, FakeTranscriber

PAYLOAD = {
    "note": "Report draft is done.",
    "note_category": "Work",
    "tasks": [{"title": "Call mom", "due_natural": "tomorrow at 6pm", "due_iso": None, "priority": "high"}],
    "reminder": None,
    "summary": "Call mom.",
}


@pytest.fixture
def fakes():
    return FakeTranscriber(), FakeStructurer(PAYLOAD), FakeNoteStore()


@pytest.fixture
def client(config, fakes):
    transcriber, structurer, store = fakes
    app = create_app(config=config, transcriber=transcriber, structurer=structurer, note_store=store)
    with TestClient(app) as c:
        yield c


def _post(client, data=None, files=None):
    if files is None:
        files = {"file": ("voice-note.webm", b"\x1a\x45\xdf\xa3" * 64, "audio/webm")}
    return client.post("/api/voice/capture", data=data if data is not None else {"userId": "u1"}, files=files)


def test_success_shape(client):
    response = _post(client, data={"userId": "u1", "timezone": "America/New_York"})
    assert response.status_code == 200
    body = response.json()
    assert body["ok"] is True
    assert body["rawText"] == "Call the dentist tomorrow at 6pm"
    assert body["noteId"] is None
    assert body["mode"] == "review"
    assert body["timezone"] == "America/New_York"
    assert body["nowUtcIso"].endswith("Z")
    assert body["structured"]["tasks"][0] == {
        "title": "Call mom",
        "due_natural": "tomorrow at 6pm",
        "due_iso": None,
        "priority": "high",
    }


def test_autosave_returns_note_id(client, fakes):
    response = _post(client, data={"userId": "u1", "mode": "autosave"})
    assert response.json()["noteId"] == "note-1"
    assert fakes[2].rows[0]["user_id"] == "u1"


def test_audio_field_alias(client):
    files = {"audio": ("clip.wav", b"RIFF" * 64, "audio/wav")}
    assert _post(client, files=files).json()["ok"] is True


def test_non_multipart_is_rejected(client, fakes):
    response = client.post("/api/voice/capture", json={"userId": "u1"})
    assert response.status_code == 400
    assert response.json() == {
        "ok": False,
        "error": "UnsupportedContentType",
        "detail": "Expected multipart/form-data",
    }
    assert fakes[0].calls == 0


def test_missing_user_id(client, fakes):
    response = _post(client, data={"mode": "review"})
    assert response.status_code == 400
    assert response.json()["error"] == "InvalidUpload"
    assert fakes[0].calls == 0


def test_missing_file(client, fakes):
    response = client.post(
        "/api/voice/capture",
        data={"userId": "u1"},
        files={"other": ("x.txt", b"hello", "text/plain")},
    )
    assert response.status_code == 400
    assert response.json()["error"] == "InvalidUpload"
    assert fakes[0].calls == 0


def test_non_audio_upload_is_rejected(client):
    files = {"file": ("notes.txt", b"hello", "text/plain")}
    response = _post(client, files=files)
    assert response.status_code == 400
    assert response.json()["error"] == "UnsupportedContentType"


def test_invalid_timezone(client):
    response = _post(client, data={"userId": "u1", "timezone": "Nowhere/Land"})
    assert response.status_code == 400
    assert response.json()["error"] == "InvalidTimezone"


def test_empty_transcript_is_500_and_skips_structuring(client, fakes):
    transcriber, structurer, _ = fakes
    transcriber.text = ""
    response = _post(client)
    assert response.status_code == 500
    assert response.json()["error"] == "TranscriptionEmpty"
    assert structurer.calls == 0


def test_unparseable_model_output(client, fakes):
    fakes[1].raw = "```json\n{}\n```"
    response = _post(client)
    assert response.status_code == 500
    assert response.json()["error"] == "StructuringInvalidJSON"


def test_upload_limit():
    config = EngineConfig(openai_api_key="test", max_upload_mb=0)
    app = create_app(config=config, transcriber=FakeTranscriber(), structurer=FakeStructurer(PAYLOAD), note_store=FakeNoteStore())
    with TestClient(app) as c:
        response = _post(c)
    assert response.status_code == 400
    assert response.json()["error"] == "AudioTooLarge"


def test_pipeline_timeout():
    class SlowTranscriber(FakeTranscriber):
        def transcribe_bytes(self, audio, mimetype):
            time.sleep(0.5)
            return super().transcribe_bytes(audio, mimetype)

    config = EngineConfig(openai_api_key="test", request_timeout_seconds=0.05)
    app = create_app(config=config, transcriber=SlowTranscriber(), structurer=FakeStructurer(PAYLOAD), note_store=FakeNoteStore())
    with TestClient(app) as c:
        response = _post(c)
    assert response.status_code == 500
    assert response.json()["error"] == "PipelineTimeout"


def test_health(client):
    body = client.get("/api/health").json()
    assert body["status"] == "ok"
    assert body["transcription_engine"] == "whisper-1"


def test_timed_out_autosave_stores_nothing():
    class SlowTranscriber(FakeTranscriber):
        def transcribe_bytes(self, audio, mimetype):
            time.sleep(0.3)
            return super().transcribe_bytes(audio, mimetype)

    store = FakeNoteStore()
    config = EngineConfig(openai_api_key="test", request_timeout_seconds=0.05)
    app = create_app(config=config, transcriber=SlowTranscriber(), structurer=FakeStructurer(PAYLOAD), note_store=store)
    with TestClient(app) as c:
        response = _post(c, data={"userId": "u1", "mode": "autosave"})
        time.sleep(0.5)  # let the abandoned worker finish

    assert response.json()["error"] == "PipelineTimeout"
    assert store.rows == []
