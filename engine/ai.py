"""
Gemini AI client with automatic key rotation and retry logic.
No database dependency — manages keys in-memory with round-robin rotation.

Serves both pipeline stages when configured:
- transcribe_bytes(): inline audio bytes → plain transcript
- structure_json():   system prompt + transcript → one JSON object
                      (response_mime_type="application/json")

Rate limit handling:
- On 429, puts the key in a short cooldown instead of marking it exhausted
- Only marks a key "exhausted" after repeated 429s or a daily-quota error
"""

import time
import logging
from datetime import datetime, timedelta
from typing import Callable, Optional

from google import genai
from google.genai import types

from .prompts import TRANSCRIPTION_PROMPT

logger = logging.getLogger(__name__)

# Error message markers for classification
_QUOTA_MARKERS = ["429", "quota", "rate limit", "resource exhausted", "too many requests"]
_NETWORK_MARKERS = ["broken pipe", "errno 32", "connection", "reset", "timeout"]
_DAILY_QUOTA_MARKERS = ["per_day", "perday", "daily", "quotaexceeded", "limit: 0"]

# Rate limit configuration
RATE_LIMIT_WAIT_SECONDS = 15  # Cooldown after a 429 before reusing the same key
MAX_429_BEFORE_EXHAUST = 3     # Consecutive 429s before a key is marked exhausted

_OK_FINISH_REASONS = ("STOP", "FinishReason.STOP", "UNSPECIFIED", "FinishReason.UNSPECIFIED", "0", "1")


class GeminiClient:
    """Gemini API client with automatic key rotation on quota exhaustion.

    Supports multiple API keys with round-robin selection.
    On quota errors (429), cools the key down and rotates to the next one.
    On network errors, retries with exponential backoff.
    """

    def __init__(self, api_keys: list[str], model_name: str = "gemini-2.0-flash"):
        if not api_keys:
            raise ValueError("At least one API key is required")
        self._keys = api_keys
        self._model_name = model_name
        self._key_index = 0
        self._exhausted: set[int] = set()
        self._key_cooldowns: dict[int, datetime] = {}  # key_idx -> cooldown_until
        self._key_429_counts: dict[int, int] = {}      # key_idx -> consecutive 429 count
        self._current_client: Optional[genai.Client] = None
        self._current_key_idx: Optional[int] = None

    # ── Key rotation ────────────────────────────────────────────────────

    def _get_available_key(self) -> tuple[int, str]:
        """Get the next available API key via round-robin.

        Respects cooldown periods; raises when every key is exhausted or
        cooling down. A capture request is interactive, so we never sleep
        through a cooldown here.
        """
        now = datetime.utcnow()

        expired = [idx for idx, until in self._key_cooldowns.items() if until <= now]
        for idx in expired:
            del self._key_cooldowns[idx]
            self._key_429_counts.pop(idx, None)

        available = [
            (i, k) for i, k in enumerate(self._keys)
            if i not in self._exhausted and i not in self._key_cooldowns
        ]
        if available:
            idx = self._key_index % len(available)
            self._key_index += 1
            return available[idx]

        if any(i not in self._exhausted for i in range(len(self._keys))):
            raise RuntimeError("All Gemini API keys are rate-limited. Retry shortly.")
        raise RuntimeError("All Gemini API keys exhausted. Wait for quota reset or add more keys.")

    def _handle_rate_limit(self, key_idx: int, error: Exception):
        """Cool down or exhaust a key after a 429."""
        if self._is_daily_quota_error(error):
            logger.warning(f"🚫 Key {key_idx + 1} hit DAILY quota limit — marking exhausted. Error: {str(error)[:120]}")
            self._exhausted.add(key_idx)
            self._key_cooldowns.pop(key_idx, None)
            self._key_429_counts.pop(key_idx, None)
            return

        self._key_429_counts[key_idx] = self._key_429_counts.get(key_idx, 0) + 1
        consecutive_429s = self._key_429_counts[key_idx]

        if consecutive_429s >= MAX_429_BEFORE_EXHAUST:
            logger.warning(f"🚫 Key {key_idx + 1} hit {consecutive_429s} consecutive 429s - marking as exhausted")
            self._exhausted.add(key_idx)
            self._key_cooldowns.pop(key_idx, None)
        else:
            cooldown_until = datetime.utcnow() + timedelta(seconds=RATE_LIMIT_WAIT_SECONDS)
            self._key_cooldowns[key_idx] = cooldown_until
            logger.warning(f"⏸️ Key {key_idx + 1} rate-limited ({consecutive_429s}/{MAX_429_BEFORE_EXHAUST}), "
                           f"cooldown until {cooldown_until.strftime('%H:%M:%S')}")

    def _get_client(self, key_idx: int, key: str) -> genai.Client:
        """Get or create a genai.Client for the given key."""
        if self._current_key_idx != key_idx:
            self._current_client = genai.Client(api_key=key)
            self._current_key_idx = key_idx
        return self._current_client

    @staticmethod
    def _is_quota_error(e: Exception) -> bool:
        s = str(e).lower()
        return any(m in s for m in _QUOTA_MARKERS)

    @staticmethod
    def _is_daily_quota_error(e: Exception) -> bool:
        s = str(e).lower().replace(" ", "").replace("_", "")
        return any(m in s for m in _DAILY_QUOTA_MARKERS)

    @staticmethod
    def _is_network_error(e: Exception) -> bool:
        s = str(e).lower()
        return any(m in s for m in _NETWORK_MARKERS)

    def _call_with_rotation(self, label: str, call: Callable[[genai.Client], str], max_retries: int) -> str:
        """Run `call` with key rotation, 429 cooldowns and network backoff."""
        last_error = None

        for attempt in range(max_retries):
            key_idx, key = self._get_available_key()
            client = self._get_client(key_idx, key)
            try:
                logger.info(f"{label} (attempt {attempt + 1}/{max_retries}, key {key_idx + 1}/{len(self._keys)})")
                text = call(client)
                self._key_429_counts.pop(key_idx, None)
                return text

            except Exception as e:
                last_error = e
                if self._is_quota_error(e):
                    self._handle_rate_limit(key_idx, e)
                    continue
                if self._is_network_error(e):
                    wait = min(2 * (2 ** attempt), 8)
                    logger.warning(f"Network error, retrying in {wait}s: {e}")
                    time.sleep(wait)
                    continue
                raise

        raise RuntimeError(f"{label} failed after {max_retries} attempts: {last_error}")

    # ── Stages ──────────────────────────────────────────────────────────

    def transcribe_bytes(self, audio: bytes, mimetype: str, prompt: str = TRANSCRIPTION_PROMPT,
                         max_retries: int = 3) -> str:
        """Transcribe inline audio bytes. Returns trimmed text, possibly empty."""
        mime = (mimetype or "audio/webm").split(";", 1)[0].strip()

        def _call(client: genai.Client) -> str:
            response = client.models.generate_content(
                model=self._model_name,
                contents=[prompt, types.Part.from_bytes(data=audio, mime_type=mime)],
                config=types.GenerateContentConfig(temperature=0.0),
            )
            self._validate_response(response, allow_empty=True)
            return (response.text or "").strip()

        text = self._call_with_rotation(f"Transcribing {len(audio) / 1024:.1f}KB {mime}", _call, max_retries)
        logger.info(f"Transcription complete: {len(text)} chars")
        return text

    def structure_json(self, system_prompt: str, transcript: str, max_tokens: int = 1200,
                       max_retries: int = 3) -> Optional[str]:
        """Ask for a single JSON object describing the transcript.

        An empty completion comes back as None so the parse gate classifies it.
        """

        def _call(client: genai.Client) -> Optional[str]:
            response = client.models.generate_content(
                model=self._model_name,
                contents=transcript,
                config=types.GenerateContentConfig(
                    system_instruction=system_prompt,
                    response_mime_type="application/json",
                    temperature=0.2,
                    max_output_tokens=max_tokens,
                ),
            )
            self._validate_response(response, allow_empty=True)
            return response.text or None

        text = self._call_with_rotation("Structuring transcript", _call, max_retries)
        logger.info(f"Structuring complete: {len(text or '')} chars")
        return text

    @staticmethod
    def _validate_response(response, allow_empty: bool = False):
        """Validate a Gemini API response before accessing .text."""
        if not response:
            raise RuntimeError("Empty response from Gemini API")

        if not getattr(response, "candidates", None):
            if allow_empty:
                return
            raise RuntimeError("No candidates in Gemini response")

        finish = getattr(response.candidates[0], "finish_reason", None)
        if finish and str(finish) not in _OK_FINISH_REASONS:
            # A truncated JSON object is useless; no partial acceptance.
            raise RuntimeError(f"Abnormal finish reason: {finish}")

        if not allow_empty and (not response.text or not response.text.strip()):
            raise RuntimeError("Empty text in Gemini response")
