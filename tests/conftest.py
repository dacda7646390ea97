"""Shared fakes for the capture pipeline and the recording controller."""

import json
from typing import Optional

import pytest

from client.backend import (
    AudioBackend,
    AudioBlob,
    AudioDevice,
    CaptureConstraints,
    MediaStream,
    MediaTrack,
    PlatformMediaError,
    Recorder,
)
from engine.config import EngineConfig


# ── Server-side fakes ──────────────────────────────────────────────────

class FakeTranscriber:
    def __init__(self, text: str = "Call the dentist tomorrow at 6pm", error: Optional[Exception] = None):
        self.text = text
        self.error = error
        self.calls = 0

    def transcribe_bytes(self, audio: bytes, mimetype: str) -> str:
        self.calls += 1
        if self.error:
            raise self.error
        return self.text


class FakeStructurer:
    def __init__(self, payload=None, raw: Optional[str] = None, error: Optional[Exception] = None):
        self.raw = raw if raw is not None else json.dumps(payload if payload is not None else {})
        self.error = error
        self.calls = 0
        self.prompts: list[str] = []

    def structure_json(self, system_prompt: str, transcript: str) -> Optional[str]:
        self.calls += 1
        self.prompts.append(system_prompt)
        if self.error:
            raise self.error
        return self.raw


class FakeNoteStore:
    def __init__(self, error: Optional[Exception] = None):
        self.rows: list[dict] = []
        self.error = error

    def insert_note(self, row: dict) -> str:
        if self.error:
            raise self.error
        self.rows.append(row)
        return f"note-{len(self.rows)}"


@pytest.fixture
def config():
    return EngineConfig(openai_api_key="test", default_timezone="Europe/Athens")


# ── Client-side fakes ──────────────────────────────────────────────────

class FakeTrack(MediaTrack):
    def __init__(self):
        self.stop_calls = 0

    def stop(self) -> None:
        self.stop_calls += 1


class FakeRecorder(Recorder):
    def __init__(self, mime_type: str, payload: bytes):
        self.mime_type = mime_type
        self.payload = payload
        self.start_calls = 0
        self.stop_calls = 0
        self._active = False
        self._callback = None

    @property
    def active(self) -> bool:
        return self._active

    def on_chunk(self, callback) -> None:
        self._callback = callback

    def start(self) -> None:
        self.start_calls += 1
        self._active = True

    def stop(self) -> None:
        self.stop_calls += 1
        self._active = False
        if self._callback and self.payload:
            self._callback(self.payload)


class FakeBackend(AudioBackend):
    """Scriptable microphone: grant, deny, or hold the permission prompt open."""

    def __init__(
        self,
        devices=None,
        supported=("audio/webm", "audio/mp4"),
        payload: bytes = b"x" * 4096,
        open_error: Optional[Exception] = None,
    ):
        self.devices = devices if devices is not None else [AudioDevice("default", "Default")]
        self.supported = set(supported)
        self.payload = payload
        self.open_error = open_error
        self.gate = None
        self.open_calls = 0
        self.tracks: list[FakeTrack] = []
        self.recorders: list[FakeRecorder] = []
        self.constraints: list[CaptureConstraints] = []

    async def open_stream(self, constraints: CaptureConstraints) -> MediaStream:
        self.open_calls += 1
        self.constraints.append(constraints)
        if self.gate is not None:
            await self.gate.wait()
        if self.open_error is not None:
            raise self.open_error
        track = FakeTrack()
        self.tracks.append(track)
        return MediaStream([track])

    async def list_input_devices(self):
        return list(self.devices)

    def supports_mime_type(self, mime_type: str) -> bool:
        return mime_type in self.supported

    def create_recorder(self, stream: MediaStream, mime_type: str = "") -> Recorder:
        recorder = FakeRecorder(mime_type or "audio/wav", self.payload)
        self.recorders.append(recorder)
        return recorder


class FakeTransport:
    def __init__(self, response=None, error: Optional[Exception] = None):
        self.response = response if response is not None else {"ok": True, "rawText": "hi", "structured": {}}
        self.error = error
        self.sent: list[tuple[AudioBlob, str, str]] = []

    async def send(self, audio: AudioBlob, user_id: str, mode: str = "review") -> dict:
        self.sent.append((audio, user_id, mode))
        if self.error:
            raise self.error
        return self.response


def media_error(name: str) -> PlatformMediaError:
    return PlatformMediaError(name, f"{name} raised by test backend")
