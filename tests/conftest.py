"""Shared fixtures and fakes."""

from __future__ import annotations

import math
from typing import Any

import pytest

from caput.config import EfficiencyMode, PricingConfig, SafetyConfig, ToolsConfig
from caput.core.cache import CacheStore
from caput.core.connectivity import ConnectivityMonitor
from caput.core.executor import PlanExecutor
from caput.core.inference import InferenceProvider
from caput.core.queue import OfflineQueue
from caput.core.usage import UsageAccountant
from caput.models import TraceEvent
from caput.tools.registry import ToolRegistry


class FakeProvider(InferenceProvider):
    """Returns canned responses per call type; an Exception value is raised."""

    def __init__(self, responses: dict[str, Any] | None = None) -> None:
        self.responses: dict[str, Any] = dict(responses or {})
        self.calls: list[str] = []
        self.models: list[str | None] = []

    async def call(
        self, prompt: str, call_type: str = "general", model: str | None = None,
    ) -> Any:
        self.calls.append(call_type)
        self.models.append(model)
        response = self.responses[call_type]
        if isinstance(response, BaseException):
            raise response
        return response

    def count_tokens(self, text: str) -> int:
        return math.ceil(len(text) / 1.5)


class RecordingSink:
    def __init__(self) -> None:
        self.traces: list[TraceEvent] = []
        self.usages: list[tuple[int, float, int]] = []
        self.notifications: list[tuple[str, str]] = []

    async def trace(self, event: TraceEvent) -> None:
        self.traces.append(event)

    async def usage(self, tokens: int, cost: float, tool_calls: int) -> None:
        self.usages.append((tokens, cost, tool_calls))

    async def notify(self, message: str, level: str = "info") -> None:
        self.notifications.append((message, level))


def make_mode(max_tool_calls: int = 10, preferred_model: str = "auto") -> EfficiencyMode:
    return EfficiencyMode(
        name="Test",
        max_plan_steps=10,
        preferred_model=preferred_model,
        verification_count=1,
        max_tool_calls=max_tool_calls,
    )


async def succeed(parameters: dict[str, Any], context: Any) -> Any:
    return {"echo": parameters}


async def fail(parameters: dict[str, Any], context: Any) -> Any:
    raise RuntimeError("tool exploded")


@pytest.fixture
async def cache(tmp_path):
    store = CacheStore(tmp_path / "cache.db")
    await store.start()
    yield store
    await store.stop()


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def connectivity():
    return ConnectivityMonitor()


@pytest.fixture
def usage():
    return UsageAccountant(PricingConfig(), mode=make_mode())


@pytest.fixture
def registry():
    return ToolRegistry()


@pytest.fixture
def queue(cache, sink):
    return OfflineQueue(cache, max_retries=5, notifier=sink)


@pytest.fixture
def make_executor(registry, cache, connectivity, usage, sink):
    def _make(
        max_tool_calls: int = 10,
        alternatives: dict[str, list[str]] | None = None,
        cacheable: list[str] | None = None,
        max_fails: int = 3,
        high_risk_enabled: bool = False,
    ) -> PlanExecutor:
        tools_config = ToolsConfig()
        if alternatives is not None:
            tools_config.tool_alternatives = alternatives
        if cacheable is not None:
            tools_config.cacheable_tools = cacheable
        return PlanExecutor(
            registry,
            cache,
            connectivity,
            usage,
            mode=make_mode(max_tool_calls),
            tools_config=tools_config,
            safety=SafetyConfig(
                max_consecutive_fails=max_fails,
                high_risk_tools_enabled=high_risk_enabled,
            ),
            step_delay=0,
            trace=sink,
        )
    return _make
