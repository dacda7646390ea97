"""
OpenAI chat-completion structurer in JSON mode.

Same retry shape as the OpenAI transcriber: exponential backoff on rate
limits, connection and 5xx errors; 4xx errors are raised immediately.
"""

import time
import logging
from typing import Optional

from openai import OpenAI, APIError, RateLimitError, APIConnectionError

logger = logging.getLogger(__name__)

MAX_RETRIES = 3
INITIAL_BACKOFF_SECONDS = 2


class OpenAIStructurer:
    """Turns a transcript into one JSON object via `response_format=json_object`."""

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4.1-mini",
        max_tokens: int = 1200,
        client: Optional[OpenAI] = None,
    ):
        if not api_key and client is None:
            raise ValueError("OpenAI API key is required")
        self._client = client or OpenAI(api_key=api_key)
        self._model = model
        self._max_tokens = max_tokens
        logger.info(f"OpenAI structurer initialized | model={model}")

    def structure_json(self, system_prompt: str, transcript: str, max_retries: int = MAX_RETRIES) -> Optional[str]:
        """Return the raw JSON text of the completion (None when the model sent nothing)."""
        last_error = None
        for attempt in range(1, max_retries + 1):
            try:
                completion = self._client.chat.completions.create(
                    model=self._model,
                    messages=[
                        {"role": "system", "content": system_prompt},
                        {"role": "user", "content": transcript},
                    ],
                    response_format={"type": "json_object"},
                    max_tokens=self._max_tokens,
                )
                content = completion.choices[0].message.content if completion.choices else None
                logger.info(f"Structuring complete | {len(content or '')} chars | model={self._model}")
                return content

            except (RateLimitError, APIConnectionError) as e:
                last_error = e
                wait = INITIAL_BACKOFF_SECONDS * (2 ** (attempt - 1))
                logger.warning(f"{type(e).__name__} (attempt {attempt}/{max_retries}), retrying in {wait}s: {e}")
                time.sleep(wait)

            except APIError as e:
                last_error = e
                status = getattr(e, "status_code", None)
                if status and 400 <= status < 500:
                    logger.error(f"OpenAI API error (non-retryable): {e}")
                    raise
                wait = INITIAL_BACKOFF_SECONDS * (2 ** (attempt - 1))
                logger.warning(f"API error (attempt {attempt}/{max_retries}), retrying in {wait}s: {e}")
                time.sleep(wait)

        raise RuntimeError(
            f"OpenAI structuring failed after {max_retries} attempts. Last error: {last_error}"
        )
