"""Gemini REST provider over httpx."""

from __future__ import annotations

import math
from typing import Any

import httpx

from caput.config import InferenceConfig
from caput.core.inference.base import InferenceProvider, InferenceResult, parse_response_text
from caput.errors import AgentError, ConnectivityError, CriticalError
from caput.utils.logging import get_logger

log = get_logger(__name__)


class GeminiProvider(InferenceProvider):
    def __init__(
        self,
        config: InferenceConfig,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._config = config
        self._client = client or httpx.AsyncClient(timeout=config.timeout)

    async def call(
        self, prompt: str, call_type: str = "general", model: str | None = None,
    ) -> InferenceResult:
        if not self._config.api_key:
            raise CriticalError("API key not configured")

        model = model or self._config.model
        url = f"{self._config.endpoint}{model}:generateContent"
        body: dict[str, Any] = {
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": {
                "temperature": self._config.temperature,
                "maxOutputTokens": self._config.max_tokens,
            },
        }
        log.debug("inference_request", call_type=call_type, model=model)

        try:
            resp = await self._client.post(
                url,
                params={"key": self._config.api_key},
                json=body,
                timeout=self._config.timeout,
            )
        except httpx.TimeoutException as e:
            raise ConnectivityError(
                f"Inference request timed out after {self._config.timeout}s"
            ) from e
        except httpx.TransportError as e:
            raise ConnectivityError(f"Inference request failed: {e}") from e

        if resp.status_code in (401, 403):
            raise CriticalError(f"Inference API rejected credentials: {resp.status_code}")
        if resp.status_code >= 400:
            raise AgentError(f"Inference API error: {resp.status_code} {resp.reason_phrase}")

        try:
            data = resp.json()
            text = data["candidates"][0]["content"]["parts"][0]["text"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            log.error("inference_invalid_payload", call_type=call_type)
            raise AgentError("Invalid response structure from inference API") from e
        if not text:
            raise AgentError("Invalid response structure from inference API")

        return parse_response_text(text)

    def count_tokens(self, text: str) -> int:
        return math.ceil(len(text or "") / 1.5)

    async def close(self) -> None:
        await self._client.aclose()
