"""
OpenAI transcription client — supports whisper-1 and gpt-4o-transcribe models.

Takes the uploaded audio bytes as-is (no temp files): the browser/OS decides
the container, we forward its mimetype to the provider.

Models:
    whisper-1          — $0.006/min, 25MB limit, fast and affordable
    gpt-4o-transcribe  — $0.06/min, 25MB limit, ChatGPT-quality transcription
"""

import time
import logging
from typing import Optional

from openai import OpenAI, APIError, RateLimitError, APIConnectionError

logger = logging.getLogger(__name__)

# OpenAI audio API has a 25MB file size limit
MAX_FILE_SIZE_MB = 25
MAX_FILE_SIZE_BYTES = MAX_FILE_SIZE_MB * 1024 * 1024

# Retry configuration
MAX_RETRIES = 3
INITIAL_BACKOFF_SECONDS = 2

_EXTENSIONS = {
    "audio/webm": "webm",
    "video/webm": "webm",
    "audio/mp4": "m4a",
    "video/mp4": "mp4",
    "audio/x-m4a": "m4a",
    "audio/mpeg": "mp3",
    "audio/ogg": "ogg",
    "audio/wav": "wav",
    "audio/x-wav": "wav",
    "audio/flac": "flac",
}


def filename_for_mimetype(mimetype: str) -> str:
    """Provider-friendly filename; OpenAI sniffs the format from the extension."""
    base = (mimetype or "").split(";", 1)[0].strip().lower()
    return f"voice-note.{_EXTENSIONS.get(base, 'webm')}"


class OpenAITranscriber:
    """OpenAI audio transcription client with retry logic.

    Supports whisper-1 and gpt-4o-transcribe models.
    Handles rate limits with exponential backoff.
    """

    def __init__(
        self,
        api_key: str,
        model: str = "whisper-1",
        language: Optional[str] = None,
        client: Optional[OpenAI] = None,
    ):
        if not api_key and client is None:
            raise ValueError("OpenAI API key is required")
        if model not in ("whisper-1", "gpt-4o-transcribe"):
            raise ValueError(f"Unsupported OpenAI transcription model: {model}. "
                             f"Use 'whisper-1' or 'gpt-4o-transcribe'.")
        self._client = client or OpenAI(api_key=api_key)
        self._model = model
        self._language = language
        logger.info(f"OpenAI transcriber initialized | model={model} | language={language or 'auto'}")

    def transcribe_bytes(self, audio: bytes, mimetype: str, max_retries: int = MAX_RETRIES) -> str:
        """Transcribe raw audio bytes.

        Args:
            audio: Encoded audio as uploaded by the client.
            mimetype: The upload's content type, e.g. "audio/webm;codecs=opus".
            max_retries: Maximum number of attempts on transient errors.

        Returns:
            Trimmed transcript text (possibly empty).

        Raises:
            ValueError: If the payload exceeds the 25MB size limit.
            RuntimeError: If all retries are exhausted.
        """
        if len(audio) > MAX_FILE_SIZE_BYTES:
            size_mb = len(audio) / (1024 * 1024)
            raise ValueError(
                f"Audio is {size_mb:.1f}MB — exceeds OpenAI's {MAX_FILE_SIZE_MB}MB limit."
            )

        filename = filename_for_mimetype(mimetype)
        logger.info(f"Transcribing with OpenAI {self._model}: {filename} "
                    f"({len(audio) / 1024:.1f}KB, {mimetype or 'unknown type'})")

        extra = {"language": self._language} if self._language else {}

        last_error = None
        for attempt in range(1, max_retries + 1):
            try:
                response = self._client.audio.transcriptions.create(
                    file=(filename, audio, mimetype or "application/octet-stream"),
                    model=self._model,
                    temperature=0,
                    response_format="text",
                    **extra,
                )

                # response is a string when response_format="text"
                transcript = response.strip() if isinstance(response, str) else (response.text or "").strip()
                logger.info(f"Transcription complete | {len(transcript)} chars | model={self._model}")
                return transcript

            except RateLimitError as e:
                last_error = e
                wait = INITIAL_BACKOFF_SECONDS * (2 ** (attempt - 1))
                logger.warning(f"Rate limited (attempt {attempt}/{max_retries}), "
                               f"waiting {wait}s: {e}")
                time.sleep(wait)

            except APIConnectionError as e:
                last_error = e
                wait = INITIAL_BACKOFF_SECONDS * (2 ** (attempt - 1))
                logger.warning(f"Connection error (attempt {attempt}/{max_retries}), "
                               f"retrying in {wait}s: {e}")
                time.sleep(wait)

            except APIError as e:
                last_error = e
                # Don't retry on 4xx errors (except 429 which is RateLimitError)
                status = getattr(e, "status_code", None)
                if status and 400 <= status < 500:
                    logger.error(f"OpenAI API error (non-retryable): {e}")
                    raise
                wait = INITIAL_BACKOFF_SECONDS * (2 ** (attempt - 1))
                logger.warning(f"API error (attempt {attempt}/{max_retries}), "
                               f"retrying in {wait}s: {e}")
                time.sleep(wait)

        # All retries exhausted
        raise RuntimeError(
            f"OpenAI transcription failed after {max_retries} attempts. "
            f"Last error: {last_error}"
        )
