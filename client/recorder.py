"""
Press-and-hold recording controller.

State machine:

    Idle ──start──▶ RequestingAccess ──granted──▶ Recording
    Recording ──stop | timeout | hidden | cancel key──▶ Processing
    Processing ──ok──▶ Completed      Processing ──failure──▶ Error ──reset──▶ Idle

Every exit from Recording stops the recorder, releases every acquired
track and clears the safety timer, synchronously, before anything else
happens. Teardown is idempotent, so racing triggers are harmless.

All methods must be called from the event loop that ran start().
"""

import asyncio
import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Protocol

from .backend import (
    AudioBackend,
    AudioBlob,
    AudioDevice,
    CaptureConstraints,
    MediaStream,
    PlatformMediaError,
    Recorder,
)
from .errors import (
    CaptureClientError,
    MicInUse,
    NoMicFound,
    PermissionBlocked,
    RecordingTooShort,
    ServerRejected,
    TransportError,
    UnknownMicError,
)

logger = logging.getLogger(__name__)

MAX_RECORDING_SECONDS = 120.0
MIN_AUDIO_BYTES = 1024
PREFERRED_MIME_TYPES = ("audio/webm", "audio/mp4")

_MIC_LABEL_PATTERN = re.compile(r"built-?in|microphone|\bmic\b|phone", re.IGNORECASE)

_PERMISSION_ERRORS = {"NotAllowedError", "PermissionDeniedError", "SecurityError"}
_NOT_FOUND_ERRORS = {"NotFoundError", "DevicesNotFoundError", "OverconstrainedError"}
_BUSY_ERRORS = {"NotReadableError", "TrackStartError"}


class CaptureState(str, Enum):
    IDLE = "idle"
    REQUESTING_ACCESS = "requesting_access"
    RECORDING = "recording"
    PROCESSING = "processing"
    ERROR = "error"
    COMPLETED = "completed"


class StopReason(str, Enum):
    MANUAL = "stop"
    TIMEOUT = "timeout"
    HIDDEN = "hidden"
    CANCEL_KEY = "cancel_key"


_BUSY_STATES = (CaptureState.REQUESTING_ACCESS, CaptureState.RECORDING, CaptureState.PROCESSING)


@dataclass
class CaptureConfig:
    device_id: str = "auto"
    mime_type: str = ""


class CaptureSender(Protocol):
    async def send(self, audio: AudioBlob, user_id: str, mode: str = "review") -> dict: ...


class CancellationSignal:
    """Host-driven stop events (page hidden, cancel key).

    The host adapter calls fire("hidden") or fire("cancel_key"); the
    controller subscribes only while a session is recording.
    """

    def __init__(self):
        self._listeners: list[Callable[[str], None]] = []

    def subscribe(self, listener: Callable[[str], None]) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def fire(self, reason: str = StopReason.CANCEL_KEY.value) -> None:
        for listener in list(self._listeners):
            listener(reason)

    @property
    def listener_count(self) -> int:
        return len(self._listeners)


def map_media_error(error: Exception) -> CaptureClientError:
    """Translate a platform failure into the client error taxonomy."""
    name = getattr(error, "name", None) or type(error).__name__
    if name in _PERMISSION_ERRORS:
        return PermissionBlocked()
    if name in _NOT_FOUND_ERRORS:
        return NoMicFound()
    if name in _BUSY_ERRORS:
        return MicInUse()
    return UnknownMicError(name)


def choose_default_device(devices: list[AudioDevice]) -> Optional[AudioDevice]:
    """Prefer a built-in / microphone / phone labelled input, else the first one."""
    for device in devices:
        if _MIC_LABEL_PATTERN.search(device.label or ""):
            return device
    return devices[0] if devices else None


class RecordingController:
    """Owns one capture session at a time: microphone, recorder, timer, upload."""

    def __init__(
        self,
        backend: AudioBackend,
        transport: CaptureSender,
        user_id: str,
        mode: str = "review",
        cancel_signal: Optional[CancellationSignal] = None,
        max_duration_seconds: float = MAX_RECORDING_SECONDS,
        min_audio_bytes: int = MIN_AUDIO_BYTES,
        on_state_change: Optional[Callable[[CaptureState], None]] = None,
        on_result: Optional[Callable[[dict], None]] = None,
    ):
        self._backend = backend
        self._transport = transport
        self.user_id = user_id
        self.mode = mode
        self._cancel_signal = cancel_signal
        self._max_duration = max_duration_seconds
        self._min_audio_bytes = min_audio_bytes
        self._on_state_change = on_state_change
        self._on_result = on_result

        self.state = CaptureState.IDLE
        self.config = CaptureConfig()
        self.error: Optional[CaptureClientError] = None
        self.result: Optional[dict] = None
        self.stop_reason: Optional[StopReason] = None
        self.devices: list[AudioDevice] = []

        self._device_chosen_by_user = False
        self._devices_enumerated = False
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._stream: Optional[MediaStream] = None
        self._recorder: Optional[Recorder] = None
        self._chunks: list[bytes] = []
        self._timer: Optional[asyncio.TimerHandle] = None
        self._unsubscribe: Optional[Callable[[], None]] = None
        self._release_requested = False
        self._session = 0
        self._processing_task: Optional[asyncio.Task] = None

    # ── Devices & codecs ────────────────────────────────────────────────

    async def list_devices(self) -> list[AudioDevice]:
        self.devices = await self._backend.list_input_devices()
        return self.devices

    def select_device(self, device_id: str) -> bool:
        """Choose an input explicitly. Only allowed while no session is live."""
        if self.state in _BUSY_STATES:
            logger.warning(f"Ignoring device selection while {self.state.value}")
            return False
        self.config.device_id = device_id or "auto"
        self._device_chosen_by_user = self.config.device_id != "auto"
        logger.info(f"Input device set to {self.config.device_id}")
        return True

    def negotiate_mime_type(self) -> str:
        """audio/webm, else audio/mp4, else "" (platform default)."""
        for mime in PREFERRED_MIME_TYPES:
            if self._backend.supports_mime_type(mime):
                return mime
        return ""

    async def _select_device_after_grant(self):
        if self._devices_enumerated:
            return
        self._devices_enumerated = True
        try:
            devices = await self.list_devices()
        except Exception as e:
            logger.warning(f"Device enumeration failed: {e}")
            return
        if self._device_chosen_by_user:
            return
        chosen = choose_default_device(devices)
        if chosen:
            self.config.device_id = chosen.device_id
            logger.info(f"Auto-selected input device: {chosen.label or chosen.device_id}")

    def _constraints(self) -> CaptureConstraints:
        device_id = None if self.config.device_id == "auto" else self.config.device_id
        return CaptureConstraints(device_id=device_id)

    # ── Lifecycle ───────────────────────────────────────────────────────

    async def start(self) -> None:
        """Acquire the microphone and begin recording. No-op while busy."""
        if self.state in _BUSY_STATES:
            logger.debug(f"start() ignored: already {self.state.value}")
            return

        self._loop = asyncio.get_running_loop()
        self.error = None
        self.result = None
        self.stop_reason = None
        self._chunks = []
        self._release_requested = False
        self._session += 1
        session = self._session
        self._set_state(CaptureState.REQUESTING_ACCESS)

        try:
            stream = await self._backend.open_stream(self._constraints())
        except Exception as e:
            logger.warning(f"Microphone access failed: {e}")
            if session == self._session and self.state is CaptureState.REQUESTING_ACCESS:
                self._fail(map_media_error(e))
            return

        if session != self._session:
            # A newer session (or dispose) superseded this one during the prompt
            logger.info("Discarding microphone grant from a superseded session")
            self._stop_tracks(stream)
            return

        self._stream = stream
        await self._select_device_after_grant()

        if session != self._session:
            # dispose() already released this stream
            return

        if self._release_requested or self.state is not CaptureState.REQUESTING_ACCESS:
            # Released while the permission prompt was open
            logger.info("Capture released before recording started")
            self._teardown()
            if self.state is CaptureState.REQUESTING_ACCESS:
                self._set_state(CaptureState.IDLE)
            return

        self.config.mime_type = self.negotiate_mime_type()
        try:
            recorder = self._backend.create_recorder(stream, self.config.mime_type)
            recorder.on_chunk(self._on_chunk)
            self._recorder = recorder
            recorder.start()
        except Exception as e:
            logger.warning(f"Recorder failed to start: {e}")
            self._teardown()
            self._fail(map_media_error(e) if isinstance(e, PlatformMediaError) else UnknownMicError(type(e).__name__))
            return

        self._timer = self._loop.call_later(self._max_duration, self._on_safety_timeout)
        if self._cancel_signal is not None:
            self._unsubscribe = self._cancel_signal.subscribe(self._on_cancel_signal)

        logger.info(f"🎙️  Recording | device={self.config.device_id} | mime={self.config.mime_type or 'default'}")
        self._set_state(CaptureState.RECORDING)

    def stop(self) -> None:
        """Release of the press-and-hold button."""
        self._finish(StopReason.MANUAL)

    def reset(self) -> None:
        """Error or Completed back to Idle."""
        if self.state in (CaptureState.ERROR, CaptureState.COMPLETED):
            self.error = None
            self._set_state(CaptureState.IDLE)

    def dispose(self) -> None:
        """Unmount: tear everything down without uploading."""
        if self.state is CaptureState.REQUESTING_ACCESS:
            self._release_requested = True
        self._session += 1
        self._teardown()
        self._chunks = []
        if self.state in (CaptureState.REQUESTING_ACCESS, CaptureState.RECORDING):
            self._set_state(CaptureState.IDLE)
        self._on_state_change = None
        self._on_result = None

    async def wait_processed(self) -> Optional[dict]:
        """Wait for the in-flight upload (if any) and return the server response."""
        if self._processing_task is not None:
            await self._processing_task
        return self.result

    # ── Stop triggers ───────────────────────────────────────────────────

    def _on_safety_timeout(self):
        self._timer = None
        logger.info(f"⏱️  Safety timeout after {self._max_duration:g}s")
        self._finish(StopReason.TIMEOUT)

    def _on_cancel_signal(self, reason: str):
        if reason == StopReason.HIDDEN.value:
            self._finish(StopReason.HIDDEN)
        else:
            self._finish(StopReason.CANCEL_KEY)

    def _on_chunk(self, data: bytes):
        if data:
            self._chunks.append(data)

    def _finish(self, reason: StopReason):
        if self.state is CaptureState.REQUESTING_ACCESS:
            self._release_requested = True
            return
        if self.state is not CaptureState.RECORDING:
            return

        self.stop_reason = reason
        mime_type = self.config.mime_type or (self._recorder.mime_type if self._recorder else "")
        self._teardown()

        blob = AudioBlob(data=b"".join(self._chunks), mime_type=mime_type)
        self._chunks = []
        logger.info(f"⏹️  Recording stopped ({reason.value}) | {blob.size} bytes")

        self._set_state(CaptureState.PROCESSING)
        self._processing_task = self._loop.create_task(self._process(blob))

    def _teardown(self):
        """Stop recorder, release tracks, clear timer and cancel listener. Idempotent."""
        recorder, self._recorder = self._recorder, None
        try:
            if recorder is not None and recorder.active:
                recorder.stop()
        except Exception as e:
            logger.warning(f"Recorder stop failed: {e}")
        finally:
            self._release_tracks()
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            if self._unsubscribe is not None:
                self._unsubscribe()
                self._unsubscribe = None

    def _release_tracks(self):
        stream, self._stream = self._stream, None
        if stream is not None:
            self._stop_tracks(stream)

    @staticmethod
    def _stop_tracks(stream: MediaStream):
        for track in stream.tracks:
            try:
                track.stop()
            except Exception as e:
                logger.warning(f"Track release failed: {e}")

    # ── Processing ──────────────────────────────────────────────────────

    async def _process(self, blob: AudioBlob):
        if blob.size < self._min_audio_bytes:
            logger.info(f"Recording too short: {blob.size} < {self._min_audio_bytes} bytes")
            self._fail(RecordingTooShort())
            return

        try:
            response = await self._transport.send(blob, self.user_id, self.mode)
        except CaptureClientError as e:
            self._fail(e)
            return
        except Exception as e:
            logger.error(f"Upload crashed: {e}", exc_info=True)
            self._fail(TransportError(str(e)))
            return

        if not response.get("ok"):
            self._fail(ServerRejected(response.get("error"), response.get("detail")))
            return

        self.result = response
        self._set_state(CaptureState.COMPLETED)
        if self._on_result is not None:
            self._on_result(response)

    def _fail(self, error: CaptureClientError):
        self.error = error
        logger.warning(f"Capture error: {error.code} — {error.message}")
        self._set_state(CaptureState.ERROR)

    def _set_state(self, state: CaptureState):
        if state is self.state:
            return
        self.state = state
        if self._on_state_change is not None:
            try:
                self._on_state_change(state)
            except Exception as e:
                logger.error(f"State observer failed: {e}", exc_info=True)
