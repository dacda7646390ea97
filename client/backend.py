"""
Platform capability interface for microphone capture.

The recording controller only talks to these abstractions, so a desktop
(PortAudio), mobile or test host can supply its own implementation.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Optional


# Platform error names, as raised by PlatformMediaError.name
PERMISSION_DENIED = "NotAllowedError"
DEVICE_NOT_FOUND = "NotFoundError"
DEVICE_BUSY = "NotReadableError"


class PlatformMediaError(Exception):
    """A media failure reported by the platform, tagged with a raw error name."""

    def __init__(self, name: str, message: str = ""):
        self.name = name
        super().__init__(message or name)


@dataclass(frozen=True)
class AudioDevice:
    device_id: str
    label: str


@dataclass(frozen=True)
class CaptureConstraints:
    """What we ask the platform for. Backends honour what they can."""
    device_id: Optional[str] = None
    echo_cancellation: bool = True
    noise_suppression: bool = True
    auto_gain_control: bool = True
    channel_count: int = 1


@dataclass(frozen=True)
class AudioBlob:
    data: bytes
    mime_type: str

    @property
    def size(self) -> int:
        return len(self.data)


class MediaTrack(ABC):
    """One acquired input track. stop() releases the hardware."""

    @abstractmethod
    def stop(self) -> None: ...


class MediaStream:
    """A set of tracks acquired together."""

    def __init__(self, tracks: list[MediaTrack]):
        self.tracks = list(tracks)


class Recorder(ABC):
    """Encodes a stream into chunks.

    Chunks are delivered to the on_chunk callback on the controller's event
    loop. stop() flushes the final chunk before returning.
    """

    mime_type: str = ""

    @abstractmethod
    def start(self) -> None: ...

    @abstractmethod
    def stop(self) -> None: ...

    @property
    @abstractmethod
    def active(self) -> bool: ...

    @abstractmethod
    def on_chunk(self, callback: Callable[[bytes], None]) -> None: ...


class AudioBackend(ABC):
    """Host platform: permissions, devices, codecs, recorders."""

    @abstractmethod
    async def open_stream(self, constraints: CaptureConstraints) -> MediaStream:
        """Acquire the microphone. Raises PlatformMediaError on failure."""

    @abstractmethod
    async def list_input_devices(self) -> list[AudioDevice]: ...

    @abstractmethod
    def supports_mime_type(self, mime_type: str) -> bool: ...

    @abstractmethod
    def create_recorder(self, stream: MediaStream, mime_type: str = "") -> Recorder:
        """Create a recorder; an empty mime_type means the platform default."""
