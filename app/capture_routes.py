"""
Voice capture API endpoint.

POST /api/voice/capture  (multipart/form-data)
    file | audio  — recorded audio (required)
    userId        — owner of the capture (required)
    mode          — review | autosave | psych (default review)
    timezone      — caller's IANA zone (default DEFAULT_TIMEZONE)

Every failure leaves here as `{ok: false, error, detail}`; no stage error
escapes the handler.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

import engine
from engine import analyze_capture, persist_capture
from engine.config import EngineConfig
from engine.core import NoteStore, Structurer, Transcriber
from engine.errors import (
    AudioTooLarge,
    CaptureError,
    InvalidUpload,
    PipelineTimeout,
    UnsupportedContentType,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["capture"])

_NON_AUDIO_TYPES_ACCEPTED = {"video/webm", "video/mp4", "application/octet-stream", ""}


@dataclass
class CaptureServices:
    """Everything the capture route needs, built once at startup."""
    config: EngineConfig
    transcriber: Transcriber
    structurer: Structurer
    note_store: Optional[NoteStore] = None


@dataclass
class CaptureUpload:
    audio: bytes
    mimetype: str
    user_id: str
    mode: str
    timezone: Optional[str]


def _error_response(error: CaptureError) -> JSONResponse:
    return JSONResponse(error.to_response(), status_code=error.status_code)


def _form_text(form, key: str) -> Optional[str]:
    value = form.get(key)
    if isinstance(value, str):
        return value.strip() or None
    return None


async def _read_upload(request: Request, config: EngineConfig) -> CaptureUpload:
    """Validate the multipart upload and pull out its fields."""
    content_type = request.headers.get("content-type", "")
    if "multipart/form-data" not in content_type:
        raise UnsupportedContentType()

    try:
        form = await request.form()
    except Exception as e:
        raise InvalidUpload(f"Malformed multipart body: {e}") from e

    upload = form.get("file") or form.get("audio")
    if upload is None or isinstance(upload, str):
        raise InvalidUpload("Missing audio file")

    user_id = _form_text(form, "userId")
    if not user_id:
        raise InvalidUpload("Missing userId")

    mimetype = (upload.content_type or "").strip().lower()
    base_type = mimetype.split(";", 1)[0].strip()
    if not base_type.startswith("audio/") and base_type not in _NON_AUDIO_TYPES_ACCEPTED:
        raise UnsupportedContentType(f"Unsupported audio type: {mimetype}")

    audio = await upload.read()
    if not audio:
        raise InvalidUpload("Missing audio file")
    if len(audio) > config.max_upload_bytes:
        raise AudioTooLarge(
            f"Audio is {len(audio) / (1024 * 1024):.1f}MB, limit is {config.max_upload_mb}MB"
        )

    logger.info(f"📤 Capture upload | user={user_id} | {getattr(upload, 'filename', '?')} "
                f"| {mimetype or 'unknown type'} | {len(audio)} bytes")

    return CaptureUpload(
        audio=audio,
        mimetype=mimetype,
        user_id=user_id,
        mode=_form_text(form, "mode") or "review",
        timezone=_form_text(form, "timezone"),
    )


@router.post("/voice/capture")
async def capture_voice(request: Request):
    """Transcribe, structure and (in autosave mode) save one spoken utterance."""
    services: CaptureServices = request.app.state.capture
    config = services.config

    try:
        upload = await _read_upload(request, config)
        result = await asyncio.wait_for(
            asyncio.to_thread(
                analyze_capture,
                upload.audio,
                upload.mimetype,
                upload.user_id,
                upload.mode,
                upload.timezone,
                transcriber=services.transcriber,
                structurer=services.structurer,
                config=config,
            ),
            timeout=config.request_timeout_seconds,
        )
        # Only a capture that met the deadline is saved
        result = await asyncio.to_thread(
            persist_capture, result, upload.user_id, services.note_store, config,
        )
    except asyncio.TimeoutError:
        logger.error(f"❌ Capture timed out after {config.request_timeout_seconds}s")
        return _error_response(PipelineTimeout(
            f"Capture processing exceeded {config.request_timeout_seconds:g}s"
        ))
    except CaptureError as e:
        level = logging.WARNING if e.status_code < 500 else logging.ERROR
        logger.log(level, f"❌ Capture failed | {e.code}: {e.detail}")
        return _error_response(e)
    except Exception as e:
        logger.error(f"❌ Unexpected capture error: {e}", exc_info=True)
        return _error_response(CaptureError(str(e) or None))

    return JSONResponse(result.to_response())


class HealthResponse(BaseModel):
    status: str
    service: str
    version: str
    transcription_engine: str
    structuring_engine: str


@router.get("/health", response_model=HealthResponse)
async def health(request: Request):
    """Health check endpoint."""
    config: EngineConfig = request.app.state.capture.config
    return HealthResponse(
        status="ok",
        service="voice-capture",
        version=engine.__version__,
        transcription_engine=config.transcription_engine,
        structuring_engine=config.structuring_engine,
    )
