from __future__ import annotations

from typing import Any, Dict, List, Optional

from openai import APIConnectionError, APITimeoutError, InternalServerError, OpenAI, RateLimitError

from telemetry.logging_utils import get_logger
from telemetry.metrics import extract_usage_tokens, start_timer
from telemetry.retry import retry_with_backoff

logger = get_logger(__name__)

DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com/v1beta/openai/"
DEFAULT_MODEL = "gemini-2.5-flash-lite"
DEFAULT_TIMEOUT = 30.0
DEFAULT_MAX_RETRIES = 2
RETRYABLE_ERRORS = (APIConnectionError, APITimeoutError, RateLimitError, InternalServerError)


class GeminiClient:
    """Chat completions against Gemini through its OpenAI-compatible endpoint."""

    def __init__(
        self,
        api_key: str,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = DEFAULT_TIMEOUT,
        max_retries: int = DEFAULT_MAX_RETRIES,
    ) -> None:
        self._client = OpenAI(api_key=api_key, base_url=base_url, timeout=timeout, max_retries=0)
        self.max_retries = max_retries

    def complete(
        self,
        model: str,
        messages: List[Dict[str, Any]],
        *,
        component: str,
        subject_id: Optional[str] = None,
        json_mode: bool = False,
        temperature: float = 0.3,
    ) -> str:
        kwargs: Dict[str, Any] = {"model": model, "messages": messages, "temperature": temperature}
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}

        timer = start_timer(component, model, subject_id)
        tokens_in = tokens_out = None
        try:
            response = retry_with_backoff(
                lambda: self._client.chat.completions.create(**kwargs),
                retries=self.max_retries,
                retry_exceptions=RETRYABLE_ERRORS,
                operation=component,
            )
            tokens_in, tokens_out = extract_usage_tokens(response)
        finally:
            timer.done(tokens_in=tokens_in, tokens_out=tokens_out)

        text = (response.choices[0].message.content or "").strip() if response.choices else ""
        logger.info(
            "ai_completion",
            extra={"component": component, "model": model, "tokens_in": tokens_in, "tokens_out": tokens_out},
        )
        return text


def build_ai_client(
    api_key: Optional[str],
    base_url: Optional[str] = None,
    *,
    timeout: float = DEFAULT_TIMEOUT,
    max_retries: int = DEFAULT_MAX_RETRIES,
) -> Optional[GeminiClient]:
    if not api_key:
        logger.warning("ai_client_disabled", extra={"reason": "GEMINI_API_KEY not set"})
        return None
    return GeminiClient(api_key, base_url or DEFAULT_BASE_URL, timeout=timeout, max_retries=max_retries)
