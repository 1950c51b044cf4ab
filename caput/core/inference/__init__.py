"""Inference provider subpackage."""

from caput.config import InferenceConfig
from caput.core.inference.anthropic import AnthropicProvider
from caput.core.inference.base import (
    InferenceProvider,
    InferenceResult,
    parse_response_text,
    response_text,
)
from caput.core.inference.gemini import GeminiProvider

__all__ = [
    "InferenceProvider",
    "InferenceResult",
    "GeminiProvider",
    "AnthropicProvider",
    "parse_response_text",
    "response_text",
    "create_provider",
]


def create_provider(config: InferenceConfig) -> InferenceProvider:
    """Factory to create the configured inference provider."""
    if config.provider == "anthropic":
        return AnthropicProvider(config)
    return GeminiProvider(config)
