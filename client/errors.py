"""
Client-side capture failures.

Permission, device and too-short errors are resolved locally: none of them
ever causes a network call.
"""

from typing import Optional


class CaptureClientError(Exception):
    """Base class for client-side capture failures."""
    code = "CaptureClientError"
    message = "Capture failed"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.message
        super().__init__(self.message)


class PermissionBlocked(CaptureClientError):
    code = "PermissionBlocked"
    message = "Microphone permission was denied."


class NoMicFound(CaptureClientError):
    code = "NoMicFound"
    message = "No microphone was found."


class MicInUse(CaptureClientError):
    code = "MicInUse"
    message = "The microphone is already in use by another application."


class UnknownMicError(CaptureClientError):
    code = "UnknownMicError"

    def __init__(self, raw_name: str):
        self.raw_name = raw_name
        super().__init__(f"Could not access microphone ({raw_name}).")


class RecordingTooShort(CaptureClientError):
    code = "RecordingTooShort"
    message = "Recording was too short. Hold the button while you speak."


class CaptureRejected(CaptureClientError):
    """The transport refused to send an incomplete request."""
    code = "CaptureRejected"
    message = "Missing userId or audio."


class TransportError(CaptureClientError):
    code = "TransportError"
    message = "Failed to send audio to server."


class ServerRejected(CaptureClientError):
    """The server answered with `{ok: false}`; code and detail are its own."""

    def __init__(self, code: str, detail: Optional[str] = None):
        self.code = code or "ServerError"
        self.detail = detail
        super().__init__(detail or self.code)
