"""
Environment-driven configuration for the voice capture pipeline.
All credentials and limits are set via environment variables (or a .env file).
"""

import os
import logging
from dataclasses import dataclass, field
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

DEFAULT_TIMEZONE = "Europe/Athens"
DEFAULT_NOTE_TITLE = "Voice capture"

OPENAI_TRANSCRIPTION_ENGINES = ("whisper-1", "gpt-4o-transcribe")
TRANSCRIPTION_ENGINES = OPENAI_TRANSCRIPTION_ENGINES + ("gemini",)
STRUCTURING_ENGINES = ("openai", "gemini")


@dataclass
class EngineConfig:
    """Fully environment-driven pipeline configuration."""

    # Credentials
    openai_api_key: str = ""
    gemini_api_keys: list[str] = field(default_factory=list)

    # Transcription: "whisper-1", "gpt-4o-transcribe", or "gemini"
    transcription_engine: str = "whisper-1"
    transcription_language: Optional[str] = None  # None = auto-detect

    # Structuring: "openai" or "gemini"
    structuring_engine: str = "openai"
    structuring_model: str = "gpt-4.1-mini"
    gemini_model: str = "gemini-2.0-flash"
    structuring_max_tokens: int = 1200

    # Request handling
    default_timezone: str = DEFAULT_TIMEZONE
    default_note_title: str = DEFAULT_NOTE_TITLE
    request_timeout_seconds: float = 30.0
    max_upload_mb: int = 25

    @property
    def max_upload_bytes(self) -> int:
        return self.max_upload_mb * 1024 * 1024

    @property
    def uses_openai(self) -> bool:
        return (
            self.transcription_engine in OPENAI_TRANSCRIPTION_ENGINES
            or self.structuring_engine == "openai"
        )

    @property
    def uses_gemini(self) -> bool:
        return self.transcription_engine == "gemini" or self.structuring_engine == "gemini"

    def validate(self):
        """Validate the configuration at startup."""
        if self.transcription_engine not in TRANSCRIPTION_ENGINES:
            raise ValueError(
                f"Unknown TRANSCRIPTION_ENGINE {self.transcription_engine!r}. "
                f"Use one of: {', '.join(TRANSCRIPTION_ENGINES)}"
            )
        if self.structuring_engine not in STRUCTURING_ENGINES:
            raise ValueError(
                f"Unknown STRUCTURING_ENGINE {self.structuring_engine!r}. "
                f"Use one of: {', '.join(STRUCTURING_ENGINES)}"
            )
        if self.uses_openai and not self.openai_api_key:
            logger.error("OpenAI API key required by the configured engines")
            raise ValueError("OPENAI_API_KEY is required for the OpenAI engines")
        if self.uses_gemini and not self.gemini_api_keys:
            logger.error("No Gemini API keys configured")
            raise ValueError("At least one Gemini API key is required")
        try:
            ZoneInfo(self.default_timezone)
        except (ZoneInfoNotFoundError, ValueError, OSError) as e:
            raise ValueError(f"DEFAULT_TIMEZONE is not a valid IANA zone: {self.default_timezone}") from e
        if self.request_timeout_seconds <= 0:
            raise ValueError("REQUEST_TIMEOUT_SECONDS must be positive")


def _gemini_keys_from_env() -> list[str]:
    keys_str = os.environ.get("GEMINI_API_KEYS", "")
    keys = [k.strip() for k in keys_str.split(",") if k.strip()]
    if not keys:
        single = os.environ.get("GEMINI_API_KEY", "").strip()
        if single:
            keys = [single]
    return keys


def load_config(env_file: str = ".env") -> EngineConfig:
    """Load configuration from environment variables.

    Env vars:
        OPENAI_API_KEY           — required for whisper-1 / gpt-4o-transcribe / openai structuring
        GEMINI_API_KEYS          — comma-separated Gemini keys (or GEMINI_API_KEY)
        TRANSCRIPTION_ENGINE     — whisper-1 | gpt-4o-transcribe | gemini
        STRUCTURING_ENGINE       — openai | gemini
        DEFAULT_TIMEZONE         — IANA zone used when the client sends none
        REQUEST_TIMEOUT_SECONDS  — end-to-end budget for one capture
    """
    load_dotenv(env_file)

    language = os.environ.get("TRANSCRIPTION_LANGUAGE", "").strip() or None

    config = EngineConfig(
        openai_api_key=os.environ.get("OPENAI_API_KEY", "").strip(),
        gemini_api_keys=_gemini_keys_from_env(),
        transcription_engine=os.environ.get("TRANSCRIPTION_ENGINE", "whisper-1"),
        transcription_language=language,
        structuring_engine=os.environ.get("STRUCTURING_ENGINE", "openai"),
        structuring_model=os.environ.get("STRUCTURING_MODEL", "gpt-4.1-mini"),
        gemini_model=os.environ.get("GEMINI_MODEL", "gemini-2.0-flash"),
        structuring_max_tokens=int(os.environ.get("STRUCTURING_MAX_TOKENS", "1200")),
        default_timezone=os.environ.get("DEFAULT_TIMEZONE", DEFAULT_TIMEZONE),
        default_note_title=os.environ.get("DEFAULT_NOTE_TITLE", DEFAULT_NOTE_TITLE),
        request_timeout_seconds=float(os.environ.get("REQUEST_TIMEOUT_SECONDS", "30")),
        max_upload_mb=int(os.environ.get("MAX_UPLOAD_MB", "25")),
    )

    logger.info(
        f"Config loaded | Transcription: {config.transcription_engine} "
        f"| Structuring: {config.structuring_engine} | Default TZ: {config.default_timezone}"
    )
    return config
