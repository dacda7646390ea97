"""
Voice Capture Engine

Server-side pipeline: uploaded utterance → transcript → structured
productivity data (note, tasks, reminder) or a reflection record.

No FastAPI or database dependency.
Pure function interface: process_capture(audio, mimetype, user_id, mode, tz) -> CaptureResult
"""

__version__ = "1.0.0"

from .core import (
    analyze_capture,
    build_structurer,
    build_transcriber,
    maybe_persist_note,
    persist_capture,
    process_capture,
)
from .config import EngineConfig, load_config
from .errors import CaptureError
from .models import (
    CaptureMode,
    CaptureResult,
    TemporalContext,
    TaskDraft,
    ReminderDraft,
    ProductivityResult,
    ReflectionResult,
)
from .temporal import build_temporal_context
from .normalize import normalize_model_output
