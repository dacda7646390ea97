import importlib
import sys

import pytest
import requests

from client.backend import AudioBlob
from client.errors import CaptureRejected, TransportError
from client.transport import CaptureTransport, resolve_host_timezone


class FakeResponse:
    def __init__(self, status_code=200, body=None, text=None):
        self.status_code = status_code
        self._body = body
        self._text = text

    def json(self):
        if self._text is not None:
            raise ValueError("not json")
        return self._body


class FakeSession:
    def __init__(self, response=None, error=None):
        self.response = response or FakeResponse(body={"ok": True})
        self.error = error
        self.calls = []

    def post(self, url, **kwargs):
        self.calls.append((url, kwargs))
        if self.error:
            raise self.error
        return self.response


BLOB = AudioBlob(data=b"x" * 2048, mime_type="audio/webm")


def _transport(session):
    return CaptureTransport("http://test/api/voice/capture", timezone="America/New_York", session=session)


async def test_sends_multipart_fields():
    session = FakeSession()
    body = await _transport(session).send(BLOB, "u1", "psych")

    assert body == {"ok": True}
    url, kwargs = session.calls[0]
    assert url == "http://test/api/voice/capture"
    assert kwargs["files"]["file"] == ("voice-note.webm", BLOB.data, "audio/webm")
    assert kwargs["data"] == {"userId": "u1", "mode": "psych", "timezone": "America/New_York"}


async def test_missing_fields_never_reach_the_network():
    session = FakeSession()
    transport = _transport(session)
    with pytest.raises(CaptureRejected):
        await transport.send(BLOB, "")
    with pytest.raises(CaptureRejected):
        await transport.send(AudioBlob(b"", "audio/webm"), "u1")
    with pytest.raises(CaptureRejected):
        await transport.send(None, "u1")
    assert session.calls == []


async def test_network_failure_becomes_transport_error():
    session = FakeSession(error=requests.ConnectionError("refused"))
    with pytest.raises(TransportError) as exc:
        await _transport(session).send(BLOB, "u1")
    assert "refused" in exc.value.message


async def test_error_bodies_are_returned_verbatim():
    body = {"ok": False, "error": "TranscriptionEmpty", "detail": "Transcription is empty"}
    session = FakeSession(response=FakeResponse(500, body))
    assert await _transport(session).send(BLOB, "u1") == body


async def test_non_json_body():
    session = FakeSession(response=FakeResponse(502, text="<html>Bad gateway</html>"))
    with pytest.raises(TransportError):
        await _transport(session).send(BLOB, "u1")


def test_host_timezone_from_env(monkeypatch):
    monkeypatch.setenv("TZ", "Asia/Tokyo")
    assert resolve_host_timezone() == "Asia/Tokyo"


def test_host_timezone_ignores_invalid_env(monkeypatch):
    monkeypatch.setenv("TZ", "Not/AZone")
    assert resolve_host_timezone() != "Not/AZone"


def test_transport_imports_without_the_server_engine(monkeypatch):
    for name in ("engine", "engine.config"):
        monkeypatch.setitem(sys.modules, name, None)
    monkeypatch.delitem(sys.modules, "client.transport", raising=False)

    transport = importlib.import_module("client.transport")
    assert transport.DEFAULT_TIMEZONE == "Europe/Athens"
