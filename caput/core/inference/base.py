"""Inference provider abstract base class."""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from typing import Any

from caput.utils.logging import get_logger

log = get_logger(__name__)

InferenceResult = dict[str, Any] | list[Any] | str


def response_text(result: InferenceResult) -> str:
    """The text form of a result, as counted for token usage."""
    return result if isinstance(result, str) else json.dumps(result, ensure_ascii=False)


def parse_response_text(text: str) -> InferenceResult:
    """Best-effort JSON parse; anything that does not parse stays raw text."""
    stripped = text.strip()
    if stripped.startswith("```"):
        body = stripped[3:]
        if body.startswith("json"):
            body = body[4:]
        end = body.rfind("```")
        if end != -1:
            stripped = body[:end].strip()
    if stripped.startswith(("{", "[")):
        try:
            return json.loads(stripped)
        except json.JSONDecodeError:
            log.warning("response_json_parse_failed", content=stripped[:200])
    return text


class InferenceProvider(ABC):
    @abstractmethod
    async def call(
        self, prompt: str, call_type: str = "general", model: str | None = None,
    ) -> InferenceResult:
        """Send a prompt to ``model`` (the configured model when None).

        Raises ConnectivityError on network/timeout failure.
        """
        ...

    @abstractmethod
    def count_tokens(self, text: str) -> int: ...

    async def close(self) -> None:
        """Clean up resources. Override if needed."""
