"""Anthropic provider exposing the single-prompt inference interface."""

from __future__ import annotations

import tiktoken
from anthropic import (
    APIConnectionError,
    APIStatusError,
    APITimeoutError,
    AsyncAnthropic,
    AuthenticationError,
    PermissionDeniedError,
)

from caput.config import InferenceConfig
from caput.core.inference.base import InferenceProvider, InferenceResult, parse_response_text
from caput.errors import AgentError, ConnectivityError, CriticalError
from caput.utils.logging import get_logger

log = get_logger(__name__)


class AnthropicProvider(InferenceProvider):
    def __init__(self, config: InferenceConfig) -> None:
        self._config = config
        self._client = AsyncAnthropic(
            api_key=config.api_key, timeout=config.timeout, max_retries=0,
        )
        self._tokenizer = tiktoken.get_encoding("cl100k_base")

    async def call(
        self, prompt: str, call_type: str = "general", model: str | None = None,
    ) -> InferenceResult:
        # Efficiency modes may name Gemini models; those fall back to the configured one
        if not model or not model.startswith("claude"):
            model = self._config.model
        log.debug("inference_request", call_type=call_type, model=model)
        try:
            response = await self._client.messages.create(
                model=model,
                max_tokens=self._config.max_tokens,
                temperature=self._config.temperature,
                messages=[{"role": "user", "content": prompt}],
            )
        except (APITimeoutError, APIConnectionError) as e:
            # APITimeoutError subclasses APIConnectionError; both are network-level
            raise ConnectivityError(f"Inference request failed: {e}") from e
        except (AuthenticationError, PermissionDeniedError) as e:
            raise CriticalError(f"Inference API rejected credentials: {e.status_code}") from e
        except APIStatusError as e:
            raise AgentError(f"Inference API error: {e.status_code}") from e

        text = "".join(
            block.text for block in response.content if block.type == "text"
        )
        if not text:
            raise AgentError("Invalid response structure from inference API")
        return parse_response_text(text)

    def count_tokens(self, text: str) -> int:
        return len(self._tokenizer.encode(text or ""))

    async def close(self) -> None:
        await self._client.close()
