"""Anthropic (Claude) LLM provider over the Messages API.

The provider makes exactly one HTTP request per ``generate`` call and
classifies the outcome:

- 429/500/502/503/529, timeouts, connection drops -> TransientServiceError
- any other non-success status                    -> ServiceError
- a success body without text blocks              -> ValidationError

Retrying is the caller's job (see ``mfa.shared.retry.RetryPolicy``).
"""

from __future__ import annotations

import json
import logging
import time
from typing import Any

import httpx

from ..errors import ServiceError, TransientServiceError, ValidationError
from .base import LLMConfig, LLMProvider

logger = logging.getLogger("mfa.shared.llm.anthropic")

RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 529}

# ---------------------------------------------------------------------------
# Model aliases
# ---------------------------------------------------------------------------

MODEL_MAP: dict[str, str] = {
    "claude-haiku": "claude-3-5-haiku-latest",
    "claude-haiku-4-5": "claude-haiku-4-5-20251001",
    "haiku": "claude-haiku-4-5-20251001",
    "claude-sonnet": "claude-sonnet-4-5-20250929",
    "claude-sonnet-4-5": "claude-sonnet-4-5-20250929",
    "sonnet": "claude-sonnet-4-5-20250929",
}


class AnthropicProvider(LLMProvider):
    """Anthropic Claude provider configured through an explicit ``LLMConfig``."""

    API_ENDPOINT = "https://api.anthropic.com/v1/messages"
    API_VERSION = "2023-06-01"

    def __init__(self, config: LLMConfig, client: httpx.Client | None = None) -> None:
        if not config.api_key:
            raise ValueError("AnthropicProvider requires an api_key (set ANTHROPIC_API_KEY)")
        self.config = config
        self._client = client or httpx.Client()

    @property
    def name(self) -> str:
        return "anthropic"

    @staticmethod
    def _resolve_model(model: str) -> str:
        resolved = MODEL_MAP.get(model, model)
        if resolved != model:
            logger.debug("Model alias: %s -> %s", model, resolved)
        return resolved

    def _headers(self) -> dict[str, str]:
        return {
            "x-api-key": self.config.api_key,
            "anthropic-version": self.API_VERSION,
            "Content-Type": "application/json",
        }

    def generate(
        self,
        prompt: str,
        model: str | None = None,
        timeout: int | None = None,
        max_tokens: int | None = None,
        temperature: float = 0.0,
    ) -> str:
        """Generate text for ``prompt``.

        Args:
            prompt: User prompt text.
            model: Claude model name or alias (defaults to the configured one).
            timeout: Request timeout in seconds.
            max_tokens: Maximum output tokens.
            temperature: Sampling temperature.

        Returns:
            The concatenated text blocks of the response.
        """
        resolved_model = self._resolve_model(model or self.config.model)
        timeout = timeout or self.config.timeout

        request_body: dict[str, Any] = {
            "model": resolved_model,
            "max_tokens": max_tokens or self.config.max_tokens,
            "temperature": temperature,
            "messages": [{"role": "user", "content": prompt}],
        }

        logger.debug(
            "[anthropic] model=%s prompt_len=%d timeout=%ds",
            resolved_model,
            len(prompt),
            timeout,
        )
        start_time = time.time()

        try:
            response = self._client.post(
                self.API_ENDPOINT,
                json=request_body,
                headers=self._headers(),
                timeout=timeout,
            )
        except httpx.TimeoutException as e:
            raise TransientServiceError(f"anthropic request timed out after {timeout}s") from e
        except (httpx.ConnectError, httpx.RemoteProtocolError, ConnectionError) as e:
            raise TransientServiceError(f"anthropic connection error: {type(e).__name__}: {e}") from e

        elapsed = time.time() - start_time

        if response.status_code in RETRYABLE_STATUS_CODES:
            raise TransientServiceError(
                f"anthropic returned {response.status_code}", status_code=response.status_code
            )

        if not response.is_success:
            error_text = response.text[:300]
            logger.error(
                "[anthropic] FAILED %d | model=%s | elapsed=%.1fs | %s",
                response.status_code,
                resolved_model,
                elapsed,
                error_text,
            )
            raise ServiceError(
                f"anthropic returned {response.status_code}: {error_text}",
                status_code=response.status_code,
            )

        data = response.json()

        usage = data.get("usage", {})
        logger.debug(
            "[anthropic] OK | model=%s | in=%d out=%d | %.1fs",
            resolved_model,
            usage.get("input_tokens", 0),
            usage.get("output_tokens", 0),
            elapsed,
        )

        text_parts = [
            block.get("text", "")
            for block in data.get("content", [])
            if block.get("type") == "text"
        ]
        if not text_parts:
            raise ValidationError("anthropic response has no text content", raw=json.dumps(data)[:500])
        return "\n".join(text_parts).strip()

    def close(self) -> None:
        self._client.close()
