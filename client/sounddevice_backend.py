"""
PortAudio microphone backend (desktop hosts) via sounddevice.

PortAudio has no webm/mp4 encoder, so this backend supports no preferred
codec and records its platform default: 16 kHz mono 16-bit WAV. The
processing constraints (echo cancellation, noise suppression, gain control)
are not available through PortAudio and are ignored.
"""

import io
import logging
import wave
from typing import Callable, Optional

import numpy as np
import sounddevice as sd

from .backend import (
    DEVICE_BUSY,
    DEVICE_NOT_FOUND,
    AudioBackend,
    AudioDevice,
    CaptureConstraints,
    MediaStream,
    MediaTrack,
    PlatformMediaError,
    Recorder,
)

logger = logging.getLogger(__name__)

SAMPLE_RATE = 16000  # 16kHz is ideal for Whisper
WAV_MIME_TYPE = "audio/wav"


def _platform_error(e: Exception) -> PlatformMediaError:
    text = str(e).lower()
    if "invalid device" in text or "no default input" in text or "device not found" in text:
        return PlatformMediaError(DEVICE_NOT_FOUND, str(e))
    if "unavailable" in text or "busy" in text:
        return PlatformMediaError(DEVICE_BUSY, str(e))
    return PlatformMediaError(type(e).__name__, str(e))


class SoundDeviceTrack(MediaTrack):
    """An open PortAudio input stream. Frames go to `sink` while one is attached."""

    def __init__(self, device: Optional[int], channels: int):
        self.sink: Optional[Callable[[np.ndarray], None]] = None
        self.channels = channels
        self._stream = sd.InputStream(
            samplerate=SAMPLE_RATE,
            channels=channels,
            dtype="int16",
            device=device,
            callback=self._callback,
        )
        self._stream.start()
        self._closed = False

    def _callback(self, indata, frame_count, time_info, status):
        if status:
            logger.debug(f"PortAudio status: {status}")
        sink = self.sink
        if sink is not None:
            sink(indata.copy())

    def stop(self) -> None:
        if self._closed:
            return
        self._closed = True
        self.sink = None
        self._stream.stop()
        self._stream.close()


class SoundDeviceRecorder(Recorder):
    """Buffers PCM while active; stop() emits one complete WAV file as the final chunk."""

    mime_type = WAV_MIME_TYPE

    def __init__(self, track: SoundDeviceTrack):
        self._track = track
        self._frames: list[np.ndarray] = []
        self._callback: Optional[Callable[[bytes], None]] = None
        self._active = False

    @property
    def active(self) -> bool:
        return self._active

    def on_chunk(self, callback: Callable[[bytes], None]) -> None:
        self._callback = callback

    def start(self) -> None:
        self._frames = []
        self._track.sink = self._frames.append
        self._active = True

    def stop(self) -> None:
        if not self._active:
            return
        self._active = False
        self._track.sink = None
        data = self._encode_wav()
        self._frames = []
        if data and self._callback is not None:
            self._callback(data)

    def _encode_wav(self) -> bytes:
        if not self._frames:
            return b""
        audio = np.concatenate(self._frames, axis=0)
        buf = io.BytesIO()
        with wave.open(buf, "wb") as wf:
            wf.setnchannels(self._track.channels)
            wf.setsampwidth(2)  # 16-bit
            wf.setframerate(SAMPLE_RATE)
            wf.writeframes(audio.tobytes())
        return buf.getvalue()


class SoundDeviceBackend(AudioBackend):
    """Desktop microphone access through PortAudio."""

    async def open_stream(self, constraints: CaptureConstraints) -> MediaStream:
        try:
            device = int(constraints.device_id) if constraints.device_id else None
        except ValueError as e:
            raise PlatformMediaError(DEVICE_NOT_FOUND, f"Invalid device id: {constraints.device_id}") from e
        try:
            track = SoundDeviceTrack(device, constraints.channel_count)
        except (sd.PortAudioError, ValueError) as e:
            raise _platform_error(e) from e
        logger.debug(f"Opened input stream | device={device if device is not None else 'default'}")
        return MediaStream([track])

    async def list_input_devices(self) -> list[AudioDevice]:
        try:
            devices = sd.query_devices()
        except sd.PortAudioError as e:
            raise _platform_error(e) from e
        return [
            AudioDevice(device_id=str(idx), label=str(info.get("name") or ""))
            for idx, info in enumerate(devices)
            if int(info.get("max_input_channels", 0)) > 0
        ]

    def supports_mime_type(self, mime_type: str) -> bool:
        return mime_type == WAV_MIME_TYPE

    def create_recorder(self, stream: MediaStream, mime_type: str = "") -> Recorder:
        if mime_type and mime_type != WAV_MIME_TYPE:
            raise PlatformMediaError("NotSupportedError", f"Unsupported recorder type: {mime_type}")
        return SoundDeviceRecorder(stream.tracks[0])
