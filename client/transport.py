"""
Upload of one recorded utterance to the capture endpoint.

One multipart request per capture: the audio file plus userId, mode and the
host's IANA timezone. The server's JSON answer is handed back verbatim.
"""

import asyncio
import logging
import os
from pathlib import Path
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import requests

from .backend import AudioBlob
from .errors import CaptureRejected, TransportError

logger = logging.getLogger(__name__)

DEFAULT_ENDPOINT = "http://localhost:8000/api/voice/capture"
DEFAULT_TIMEOUT_SECONDS = 60
DEFAULT_TIMEZONE = "Europe/Athens"

_EXTENSIONS = {"audio/webm": "webm", "audio/mp4": "m4a", "audio/wav": "wav", "audio/ogg": "ogg"}


def _valid_zone(name: Optional[str]) -> Optional[str]:
    if not name:
        return None
    name = name.strip().lstrip(":")
    try:
        ZoneInfo(name)
        return name
    except (ZoneInfoNotFoundError, ValueError, OSError):
        return None


def resolve_host_timezone(default: str = DEFAULT_TIMEZONE) -> str:
    """Best-effort IANA name of the host's timezone, else `default`.

    Checks $TZ, /etc/timezone, then the /etc/localtime symlink target.
    """
    zone = _valid_zone(os.environ.get("TZ"))
    if zone:
        return zone

    etc_timezone = Path("/etc/timezone")
    if etc_timezone.is_file():
        zone = _valid_zone(etc_timezone.read_text(encoding="utf-8").strip())
        if zone:
            return zone

    localtime = Path("/etc/localtime")
    if localtime.is_symlink():
        target = str(localtime.resolve())
        if "zoneinfo/" in target:
            zone = _valid_zone(target.split("zoneinfo/", 1)[1])
            if zone:
                return zone

    return default


def _filename_for(mime_type: str) -> str:
    base = (mime_type or "").split(";", 1)[0].strip().lower()
    return f"voice-note.{_EXTENSIONS.get(base, 'webm')}"


class CaptureTransport:
    """Posts captures to the server from a worker thread, keeping the event loop free."""

    def __init__(
        self,
        endpoint: str = DEFAULT_ENDPOINT,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        timezone: Optional[str] = None,
        session: Optional[requests.Session] = None,
    ):
        self.endpoint = endpoint
        self.timeout = timeout
        self.timezone = timezone or resolve_host_timezone()
        self._session = session or requests.Session()

    async def send(self, audio: Optional[AudioBlob], user_id: str, mode: str = "review") -> dict:
        """Upload one capture and return the server's JSON body.

        Raises:
            CaptureRejected: userId or audio missing (nothing is sent).
            TransportError: network failure or a non-JSON answer.
        """
        if not user_id:
            raise CaptureRejected("Missing userId")
        if audio is None or not audio.data:
            raise CaptureRejected("Missing audio")
        return await asyncio.to_thread(self._post, audio, user_id, mode or "review")

    def _post(self, audio: AudioBlob, user_id: str, mode: str) -> dict:
        mime_type = audio.mime_type or "application/octet-stream"
        logger.info(f"📤 Uploading {audio.size} bytes ({mime_type}) | mode={mode} | tz={self.timezone}")
        try:
            response = self._session.post(
                self.endpoint,
                files={"file": (_filename_for(audio.mime_type), audio.data, mime_type)},
                data={"userId": user_id, "mode": mode, "timezone": self.timezone},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.error(f"Upload failed: {e}")
            raise TransportError(f"Failed to send audio to server: {e}") from e

        try:
            body = response.json()
        except ValueError as e:
            raise TransportError(
                f"Server returned a non-JSON response (HTTP {response.status_code})"
            ) from e
        if not isinstance(body, dict):
            raise TransportError(f"Unexpected response body (HTTP {response.status_code})")

        logger.info(f"Server answered HTTP {response.status_code} | ok={body.get('ok')}")
        return body
