"""Direct inference tool: hands a step straight to the model."""

from __future__ import annotations

import json
from typing import Any

from caput.core.inference import InferenceProvider, response_text
from caput.models import DIRECT_INFERENCE_TOOL
from caput.tools.base import BaseTool, ToolContext


class DirectInferenceTool(BaseTool):
    def __init__(self, provider: InferenceProvider) -> None:
        self._provider = provider

    @property
    def name(self) -> str:
        return DIRECT_INFERENCE_TOOL

    @property
    def description(self) -> str:
        return "Answer or transform content with the language model directly."

    @property
    def category(self) -> str:
        return "analysis"

    @property
    def requires_connectivity(self) -> bool:
        return True

    async def execute(self, parameters: dict[str, Any], context: ToolContext) -> Any:
        prompt = parameters.get("prompt")
        if not prompt:
            prompt = json.dumps(parameters, ensure_ascii=False, default=str)
        prompt = str(prompt)

        usage = context.usage
        model = usage.resolve_model() if usage is not None else None
        response = await self._provider.call(prompt, "tool", model=model)
        if usage is not None:
            tokens = self._provider.count_tokens(prompt + response_text(response))
            await usage.record_tokens(tokens)
        return response


class InferenceTools:
    def __init__(self, provider: InferenceProvider) -> None:
        self._provider = provider

    def get_tools(self) -> list[BaseTool]:
        return [DirectInferenceTool(self._provider)]
