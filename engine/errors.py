"""
Typed failures of the capture pipeline.

Every stage raises a CaptureError subclass; the request handler converts it
into the `{ok: false, error, detail}` body. `code` is the stable name the
client renders, `detail` is diagnostic text.
"""

from typing import Optional


class CaptureError(Exception):
    """Base class for all server-side capture failures."""
    code = "UnexpectedError"
    status_code = 500
    default_detail = "Unexpected server error"

    def __init__(self, detail: Optional[str] = None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)

    def to_response(self) -> dict:
        return {"ok": False, "error": self.code, "detail": self.detail}


# ── 400: the upload itself is unusable ─────────────────────────────────

class InvalidUpload(CaptureError):
    code = "InvalidUpload"
    status_code = 400
    default_detail = "Missing or invalid upload field"


class UnsupportedContentType(CaptureError):
    code = "UnsupportedContentType"
    status_code = 400
    default_detail = "Expected multipart/form-data"


class AudioTooLarge(CaptureError):
    code = "AudioTooLarge"
    status_code = 400
    default_detail = "Audio payload exceeds the upload limit"


class InvalidTimezone(CaptureError):
    code = "InvalidTimezone"
    status_code = 400
    default_detail = "Unknown IANA timezone"


# ── 500: a stage failed ────────────────────────────────────────────────

class TranscriptionEmpty(CaptureError):
    code = "TranscriptionEmpty"
    default_detail = "Transcription is empty"


class TranscriptionFailed(CaptureError):
    code = "TranscriptionFailed"
    default_detail = "Speech-to-text provider failed"


class StructuringFailed(CaptureError):
    code = "StructuringFailed"
    default_detail = "Language model provider failed"


class StructuringInvalidJSON(CaptureError):
    code = "StructuringInvalidJSON"
    default_detail = "Failed to parse AI JSON"


class PipelineTimeout(CaptureError):
    code = "PipelineTimeout"
    default_detail = "Capture processing timed out"


class PersistenceFailure(CaptureError):
    """Raised by note stores. Never surfaced: the pipeline logs it and moves on."""
    code = "PersistenceFailure"
    default_detail = "Failed to insert note"
