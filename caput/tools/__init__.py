"""Caput tools."""

from __future__ import annotations

from typing import Callable

from caput.core.inference import InferenceProvider
from caput.tools.base import BaseTool, FunctionTool, ToolContext, ToolModule, ToolOutcome
from caput.tools.inference import InferenceTools
from caput.tools.integration import IntegrationTools
from caput.tools.registry import ToolRegistry
from caput.tools.search import SearchTools

__all__ = [
    "BaseTool",
    "FunctionTool",
    "ToolContext",
    "ToolModule",
    "ToolOutcome",
    "ToolRegistry",
    "TOOL_MODULES",
    "load_builtin_tools",
]

# Static registration table: module id -> factory taking the inference provider
TOOL_MODULES: dict[str, Callable[[InferenceProvider], ToolModule]] = {
    "search": lambda provider: SearchTools(),
    "inference": InferenceTools,
    "integration": lambda provider: IntegrationTools(),
}


def load_builtin_tools(registry: ToolRegistry, provider: InferenceProvider) -> int:
    return sum(
        registry.load_module(name, factory(provider))
        for name, factory in TOOL_MODULES.items()
    )
