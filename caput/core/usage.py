"""Token, tool-call and cost accounting per session."""

from __future__ import annotations

from dataclasses import replace
from typing import Any

from caput.config import EfficiencyMode, PricingConfig
from caput.core.sinks import UsageSink, emit
from caput.models import SessionStats
from caput.utils.logging import get_logger

log = get_logger(__name__)


class UsageAccountant:
    def __init__(
        self,
        pricing: PricingConfig,
        mode: EfficiencyMode | None = None,
        sink: UsageSink | None = None,
    ) -> None:
        self._pricing = pricing
        self.mode = mode
        self._sink = sink
        self._stats = SessionStats()

    def resolve_model(self) -> str:
        """Concrete model id for the active mode; "auto" maps to its alias."""
        if self.mode is None:
            return self._pricing.default_model
        model = self.mode.preferred_model
        if model == "auto":
            return self._pricing.auto_model
        return model

    def rate_for(self, model: str) -> float:
        rates = self._pricing.rates
        if model in rates:
            return rates[model]
        return rates.get(self._pricing.default_model, self._pricing.fallback_rate)

    async def record_tokens(self, n: int) -> None:
        if n <= 0:
            return
        self._stats.tokens_used += n
        self._stats.total_cost += (n / 1000) * self.rate_for(self.resolve_model())
        await self._publish()

    async def record_tool_call(self) -> None:
        self._stats.tool_calls_count += 1
        await self._publish()

    def snapshot(self) -> SessionStats:
        return replace(self._stats, total_cost=round(self._stats.total_cost, 2))

    def cost_breakdown(self) -> dict[str, Any]:
        model = self.resolve_model()
        return {
            "model_used": model,
            "tokens_used": self._stats.tokens_used,
            "cost_per_1k_tokens_jpy": self.rate_for(model),
            "total_cost_jpy": round(self._stats.total_cost, 2),
            "tool_calls_count": self._stats.tool_calls_count,
        }

    def reset(self) -> SessionStats:
        """Start a new session. The only way counters ever go down."""
        self._stats = SessionStats(sessions_count=self._stats.sessions_count + 1)
        log.info("session_reset", session=self._stats.sessions_count)
        return self.snapshot()

    async def _publish(self) -> None:
        if self._sink is None:
            return
        sink = self._sink
        stats = self.snapshot()
        await emit("usage", lambda: sink.usage(
            stats.tokens_used, stats.total_cost, stats.tool_calls_count,
        ))
