"""
Core capture pipeline orchestrator.

Pure function interface — no FastAPI, no ORM. Providers and the note store
are injected, so tests drive the whole pipeline with fakes.

Pipeline (strictly sequential, one request at a time):
    1. Transcribe audio (OpenAI or Gemini)
    2. Build the caller's temporal context
    3. Structure the transcript into JSON (mode-specific prompt)
    4. Normalize the JSON into the mode's schema
    5. Persist a note (autosave mode only, never fatal)

Usage:
    from engine import process_capture, build_transcriber, build_structurer

    result = process_capture(
        audio_bytes, "audio/webm", user_id="u1", mode="review",
        tz_name="America/New_York",
        transcriber=build_transcriber(config),
        structurer=build_structurer(config),
    )
    print(result.to_response())
"""

import logging
import time
from datetime import datetime
from typing import Optional, Protocol

from .config import EngineConfig, load_config
from .errors import (
    CaptureError,
    InvalidUpload,
    StructuringFailed,
    TranscriptionEmpty,
    TranscriptionFailed,
)
from .models import CaptureMode, CaptureResult, ProductivityResult, StructuredResult
from .normalize import normalize_model_output
from .prompts import get_structuring_prompt
from .temporal import build_temporal_context, resolve_zone

logger = logging.getLogger(__name__)


# ============================================================================
# COLLABORATOR INTERFACES
# ============================================================================

class Transcriber(Protocol):
    def transcribe_bytes(self, audio: bytes, mimetype: str) -> str: ...


class Structurer(Protocol):
    def structure_json(self, system_prompt: str, transcript: str) -> Optional[str]: ...


class NoteStore(Protocol):
    def insert_note(self, row: dict) -> str: ...


def build_transcriber(config: EngineConfig) -> Transcriber:
    """Create the configured speech-to-text provider."""
    if config.transcription_engine == "gemini":
        from .ai import GeminiClient
        return GeminiClient(config.gemini_api_keys, config.gemini_model)

    from .whisper import OpenAITranscriber
    return OpenAITranscriber(
        config.openai_api_key,
        model=config.transcription_engine,
        language=config.transcription_language,
    )


def build_structurer(config: EngineConfig) -> Structurer:
    """Create the configured JSON-mode language model provider."""
    if config.structuring_engine == "gemini":
        from .ai import GeminiClient
        client = GeminiClient(config.gemini_api_keys, config.gemini_model)
        return _GeminiStructurer(client, config.structuring_max_tokens)

    from .chat import OpenAIStructurer
    return OpenAIStructurer(
        config.openai_api_key,
        model=config.structuring_model,
        max_tokens=config.structuring_max_tokens,
    )


class _GeminiStructurer:
    """Binds the configured token budget onto GeminiClient.structure_json."""

    def __init__(self, client, max_tokens: int):
        self._client = client
        self._max_tokens = max_tokens

    def structure_json(self, system_prompt: str, transcript: str) -> Optional[str]:
        return self._client.structure_json(system_prompt, transcript, max_tokens=self._max_tokens)


# ============================================================================
# PERSISTENCE
# ============================================================================

def maybe_persist_note(
    structured: StructuredResult,
    mode: CaptureMode,
    user_id: str,
    note_store: Optional[NoteStore],
    default_title: str,
) -> Optional[str]:
    """Store the note when mode is autosave and the note is non-empty.

    Returns the new note id, or None. Persistence failures are logged and
    swallowed: the transcript and structured result stay the deliverable.
    """
    if not mode.persists_note or not isinstance(structured, ProductivityResult):
        return None
    if not structured.note:
        logger.info("  Autosave skipped — structured note is empty")
        return None
    if note_store is None:
        logger.warning("  Autosave requested but no note store is configured")
        return None

    row = {
        "user_id": user_id,
        "title": structured.summary or default_title,
        "content": structured.note,
        "category": structured.note_category,
    }
    try:
        note_id = note_store.insert_note(row)
        logger.info(f"  Note saved: {note_id}")
        return note_id
    except Exception as e:
        logger.error(f"  PersistenceFailure (non-fatal): {e}", exc_info=True)
        return None


# ============================================================================
# PIPELINE
# ============================================================================

def analyze_capture(
    audio: bytes,
    mimetype: str,
    user_id: str,
    mode: CaptureMode | str = CaptureMode.REVIEW,
    tz_name: Optional[str] = None,
    *,
    transcriber: Transcriber,
    structurer: Structurer,
    config: Optional[EngineConfig] = None,
    now: Optional[datetime] = None,
) -> CaptureResult:
    """Steps 1-4: transcribe, ground, structure and normalize. Writes nothing.

    Args:
        audio: Encoded audio bytes as uploaded.
        mimetype: Content type of the audio upload.
        user_id: Owner of the capture.
        mode: review | autosave | psych. Unknown strings fall back to review.
        tz_name: Caller's IANA timezone; defaults to config.default_timezone.
        transcriber: Speech-to-text provider.
        structurer: JSON-mode language model provider.
        config: Engine configuration. If None, loads from environment.
        now: Override for the current instant (tests).

    Returns:
        CaptureResult with transcript and normalized result; note_id is None.

    Raises:
        CaptureError: Typed failure of any stage.
    """
    config = config or load_config()
    capture_mode = mode if isinstance(mode, CaptureMode) else CaptureMode.parse(mode)
    tz_name = (tz_name or "").strip() or config.default_timezone

    if not user_id:
        raise InvalidUpload("Missing userId")
    if not audio:
        raise InvalidUpload("Missing audio file")

    zone = resolve_zone(tz_name)
    timings: dict[str, float] = {}

    logger.info(f"{'=' * 60}")
    logger.info(f"Capture | user={user_id} | mode={capture_mode.value} | tz={tz_name} | {len(audio)} bytes")
    logger.info(f"{'=' * 60}")

    # ── Step 1: Transcribe ──────────────────────────────────────────
    logger.info("Step 1/5 — Transcribing audio")
    started = time.monotonic()
    try:
        raw_text = (transcriber.transcribe_bytes(audio, mimetype) or "").strip()
    except CaptureError:
        raise
    except Exception as e:
        raise TranscriptionFailed(str(e)) from e
    timings["transcribe"] = time.monotonic() - started

    if not raw_text:
        logger.warning("  Transcript is empty — skipping structuring")
        raise TranscriptionEmpty()
    logger.info(f"  Transcript ({len(raw_text)} chars): {raw_text[:80]!r}")

    # ── Step 2: Temporal context ────────────────────────────────────
    logger.info("Step 2/5 — Building temporal context")
    temporal = build_temporal_context(tz_name, now=now)
    logger.info(f"  Local day: {temporal.today_local_ymd} | UTC now: {temporal.now_utc_iso}")

    # ── Step 3: Structure ───────────────────────────────────────────
    logger.info(f"Step 3/5 — Structuring ({capture_mode.value} template)")
    started = time.monotonic()
    system_prompt = get_structuring_prompt(capture_mode, temporal)
    try:
        raw_json = structurer.structure_json(system_prompt, raw_text)
    except CaptureError:
        raise
    except Exception as e:
        raise StructuringFailed(str(e)) from e
    timings["structure"] = time.monotonic() - started

    # ── Step 4: Normalize ───────────────────────────────────────────
    logger.info("Step 4/5 — Normalizing structured output")
    structured = normalize_model_output(raw_json, capture_mode, zone)
    logger.info(f"  Tasks: {len(structured.tasks)} | Note: {'yes' if structured.note else 'no'}")

    return CaptureResult(
        raw_text=raw_text,
        structured=structured,
        mode=capture_mode,
        temporal=temporal,
        timings=timings,
    )


def persist_capture(
    result: CaptureResult,
    user_id: str,
    note_store: Optional[NoteStore],
    config: EngineConfig,
) -> CaptureResult:
    """Step 5: autosave the note of an analyzed capture and record its id."""
    if result.mode.persists_note:
        logger.info("Step 5/5 — Persisting note")
    else:
        logger.info("Step 5/5 — No persistence for this mode")
    result.note_id = maybe_persist_note(
        result.structured, result.mode, user_id, note_store, config.default_note_title,
    )
    logger.info(f"✅ Capture done | mode={result.mode.value} | noteId={result.note_id}")
    return result


def process_capture(
    audio: bytes,
    mimetype: str,
    user_id: str,
    mode: CaptureMode | str = CaptureMode.REVIEW,
    tz_name: Optional[str] = None,
    *,
    transcriber: Transcriber,
    structurer: Structurer,
    note_store: Optional[NoteStore] = None,
    config: Optional[EngineConfig] = None,
    now: Optional[datetime] = None,
) -> CaptureResult:
    """Run one capture through the complete pipeline (analyze, then persist).

    Callers that enforce a deadline should run analyze_capture under it and
    call persist_capture only once the deadline has been met.
    """
    config = config or load_config()
    result = analyze_capture(
        audio, mimetype, user_id, mode, tz_name,
        transcriber=transcriber, structurer=structurer, config=config, now=now,
    )
    return persist_capture(result, user_id, note_store, config)
