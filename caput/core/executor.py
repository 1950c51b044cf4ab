"""Sequential plan execution with dependency checks, offline cache and fallback."""

from __future__ import annotations

import asyncio
import hashlib
import json
from dataclasses import dataclass, field
from typing import Any

from caput.config import EfficiencyMode, SafetyConfig, ToolsConfig
from caput.core.cache import CacheStore
from caput.core.connectivity import ConnectivityMonitor
from caput.core.sinks import NotificationSink, TraceSink, emit
from caput.core.usage import UsageAccountant
from caput.errors import (
    AgentError,
    ConnectivityError,
    CriticalError,
    DependenciesNotMetError,
    ErrorKind,
)
from caput.models import Plan, Step, StepResult, TraceEvent
from caput.tools.base import ToolContext
from caput.tools.registry import ToolRegistry
from caput.utils.logging import get_logger

log = get_logger(__name__)

TOOL_CACHE_PREFIX = "tool_cache:"


def cache_key(tool: str, parameters: dict[str, Any]) -> str:
    canonical = json.dumps(parameters, sort_keys=True, separators=(",", ":"), default=str)
    digest = hashlib.sha256(canonical.encode()).hexdigest()
    return f"{TOOL_CACHE_PREFIX}{tool}:{digest}"


@dataclass
class _RetryState:
    """Fallback bookkeeping for one step. The Step itself stays untouched."""
    original_tool: str
    current_tool: str
    attempted: list[str] = field(default_factory=list)


class PlanExecutor:
    def __init__(
        self,
        registry: ToolRegistry,
        cache: CacheStore,
        connectivity: ConnectivityMonitor,
        usage: UsageAccountant,
        mode: EfficiencyMode,
        tools_config: ToolsConfig | None = None,
        safety: SafetyConfig | None = None,
        step_delay: float = 0.5,
        trace: TraceSink | None = None,
        notifier: NotificationSink | None = None,
    ) -> None:
        tools_config = tools_config or ToolsConfig()
        safety = safety or SafetyConfig()
        self._registry = registry
        self._cache = cache
        self._connectivity = connectivity
        self._usage = usage
        self.mode = mode
        self._cacheable = set(tools_config.cacheable_tools)
        self._alternatives = tools_config.tool_alternatives
        self._cache_ttl = tools_config.cache_ttl_minutes
        self._max_fails = safety.max_consecutive_fails
        self.high_risk_enabled = safety.high_risk_tools_enabled
        self._step_delay = step_delay
        self._trace_sink = trace
        self._notifier = notifier

    async def run(self, plan: Plan) -> list[StepResult]:
        """Execute steps in order. Returns one terminal result per attempted step.

        Raises CriticalError (carrying the partial results) when a step
        fails critically.
        """
        results: list[StepResult] = []
        limit = min(len(plan.steps), self.mode.max_tool_calls)
        if limit < len(plan.steps):
            log.info(
                "plan_truncated",
                goal_id=plan.goal_id,
                steps=len(plan.steps),
                max_tool_calls=self.mode.max_tool_calls,
            )

        for step in plan.steps[:limit]:
            if await self._run_step(step, results):
                log.warning(
                    "plan_aborted",
                    goal_id=plan.goal_id,
                    step=step.step_number,
                    failures=self._failure_count(results),
                )
                break
        return results

    async def _run_step(self, step: Step, results: list[StepResult]) -> bool:
        """Attempt a step, falling back through alternatives. True means stop."""
        state = _RetryState(original_tool=step.tool, current_tool=step.tool)

        while True:
            tool = state.current_tool
            state.attempted.append(tool)
            await self._trace(
                f"Step {step.step_number}: {step.action}", tool, "active",
                {"parameters": step.parameters},
            )

            result = await self._attempt(step, tool, results)
            result.attempted_tools = list(state.attempted)

            if result.success:
                results.append(result)
                await self._trace(
                    f"Completed: {step.action}", tool, "completed",
                    {"from_cache": result.from_cache},
                )
                if self._step_delay > 0:
                    await asyncio.sleep(self._step_delay)
                return False

            await self._trace(
                f"Error: {step.action}", tool, "error", {"error": result.error},
            )
            log.info(
                "step_attempt_failed",
                step=step.step_number,
                tool=tool,
                error=result.error,
                kind=result.error_kind,
            )

            if result.error_kind == ErrorKind.CRITICAL.value:
                results.append(self._terminal(step, state, result))
                raise CriticalError(result.error or "Critical failure", results=results)

            # Checked before falling back so no alternative is spent on a doomed plan
            doomed = self._failure_count(results) + 1 >= self._max_fails
            alternative = None if doomed else self._next_alternative(state)
            if alternative is None:
                results.append(self._terminal(step, state, result))
                return doomed

            log.info(
                "step_fallback",
                step=step.step_number,
                failed_tool=tool,
                alternative=alternative,
            )
            state.current_tool = alternative

    async def _attempt(
        self, step: Step, tool: str, results: list[StepResult]
    ) -> StepResult:
        missing = [
            dep for dep in step.dependencies
            if not any(r.step_number == dep and r.success for r in results)
        ]
        if missing:
            return self._failure(step, tool, DependenciesNotMetError(step.step_number, missing))

        if self._connectivity.is_offline:
            if tool in self._cacheable:
                cached = await self._cache.get(cache_key(tool, step.parameters))
                if cached is not None:
                    log.info("step_served_from_cache", step=step.step_number, tool=tool)
                    return StepResult(
                        step_number=step.step_number,
                        action=step.action,
                        tool=tool,
                        success=True,
                        output=cached,
                        from_cache=True,
                    )
                return self._failure(step, tool, ConnectivityError(
                    f"Offline and no cached result for {tool}"
                ))
            if self._registry.requires_connectivity(tool):
                return self._failure(step, tool, ConnectivityError(
                    f"Tool {tool} requires connectivity"
                ))

        outcome = await self._registry.execute(tool, step.parameters, self._context())
        await self._usage.record_tool_call()
        execution_time = outcome.metadata.get("execution_time")

        if not outcome.success:
            return StepResult(
                step_number=step.step_number,
                action=step.action,
                tool=tool,
                success=False,
                error=outcome.error,
                error_kind=outcome.error_kind,
                execution_time=execution_time,
            )

        if tool in self._cacheable:
            try:
                await self._cache.set(
                    cache_key(tool, step.parameters), outcome.data, ttl_minutes=self._cache_ttl,
                )
            except Exception:
                log.exception("tool_result_cache_failed", tool=tool)

        return StepResult(
            step_number=step.step_number,
            action=step.action,
            tool=tool,
            success=True,
            output=outcome.data,
            execution_time=execution_time,
        )

    def _next_alternative(self, state: _RetryState) -> str | None:
        for candidate in self._alternatives.get(state.original_tool, []):
            if candidate not in state.attempted:
                return candidate
        return None

    @staticmethod
    def _failure(step: Step, tool: str, error: AgentError) -> StepResult:
        return StepResult(
            step_number=step.step_number,
            action=step.action,
            tool=tool,
            success=False,
            error=str(error),
            error_kind=error.kind.value,
        )

    @staticmethod
    def _terminal(step: Step, state: _RetryState, last: StepResult) -> StepResult:
        return StepResult(
            step_number=step.step_number,
            action=step.action,
            tool=state.original_tool,
            success=False,
            error=last.error,
            error_kind=last.error_kind,
            execution_time=last.execution_time,
            attempted_tools=list(state.attempted),
        )

    @staticmethod
    def _failure_count(results: list[StepResult]) -> int:
        return sum(1 for r in results if not r.success)

    def _context(self) -> ToolContext:
        return ToolContext(
            high_risk_enabled=self.high_risk_enabled,
            trace=self._trace_sink,
            notifier=self._notifier,
            usage=self._usage,
        )

    async def _trace(
        self, event: str, tool: str, status: str, metadata: dict[str, Any]
    ) -> None:
        if self._trace_sink is None:
            return
        sink = self._trace_sink
        trace_event = TraceEvent(event=event, tool=tool, status=status, metadata=metadata)  # type: ignore[arg-type]
        await emit("trace", lambda: sink.trace(trace_event))
