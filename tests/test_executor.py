"""Tests for plan execution: dependencies, fallback, abort and offline cache."""

import pytest
from unittest.mock import AsyncMock

from caput.core.executor import cache_key
from caput.errors import CriticalError
from caput.models import Plan, Step
from caput.tools.inference import DirectInferenceTool
from tests.conftest import FakeProvider, fail, succeed


def _plan(*steps: Step) -> Plan:
    return Plan(goal_id="g1", steps=tuple(steps))


def _step(n: int, tool: str, deps: tuple[int, ...] = (), **params) -> Step:
    return Step(
        step_number=n,
        action=f"step {n}",
        tool=tool,
        parameters=params or {"query": f"q{n}"},
        dependencies=deps,
    )


class TestPlanExecutor:
    async def test_single_success(self, registry, make_executor, usage):
        registry.register_function("searchWeb", succeed)
        executor = make_executor()

        results = await executor.run(_plan(_step(1, "searchWeb")))

        assert len(results) == 1
        assert results[0].success
        assert results[0].tool == "searchWeb"
        assert results[0].attempted_tools == ["searchWeb"]
        assert usage.snapshot().tool_calls_count == 1

    async def test_empty_plan(self, make_executor):
        assert await make_executor().run(_plan()) == []

    async def test_dependency_not_met_continues(self, registry, make_executor):
        registry.register_function("bad", fail)
        registry.register_function("good", succeed)
        executor = make_executor(alternatives={})

        results = await executor.run(_plan(
            _step(1, "bad"),
            _step(2, "good", deps=(1,)),
            _step(3, "good"),
        ))

        assert [r.success for r in results] == [False, False, True]
        assert "Dependencies not met" in results[1].error

    async def test_aborts_after_consecutive_failures(self, registry, make_executor):
        registry.register_function("bad", fail)
        executor = make_executor(alternatives={})

        results = await executor.run(_plan(*[_step(n, "bad") for n in range(1, 6)]))

        assert len(results) == 3
        assert not any(r.success for r in results)

    async def test_truncated_to_max_tool_calls(self, registry, make_executor):
        registry.register_function("good", succeed)
        executor = make_executor(max_tool_calls=2)

        results = await executor.run(_plan(*[_step(n, "good") for n in range(1, 6)]))

        assert [r.step_number for r in results] == [1, 2]

    async def test_fallback_to_alternative(self, registry, make_executor, usage):
        registry.register_function("searchWeb", fail)
        registry.register_function("quickLookup", succeed)
        executor = make_executor(alternatives={"searchWeb": ["quickLookup"]})

        step = _step(1, "searchWeb")
        results = await executor.run(_plan(step))

        assert len(results) == 1
        assert results[0].success
        assert results[0].tool == "quickLookup"
        assert results[0].attempted_tools == ["searchWeb", "quickLookup"]
        # The plan's step is left untouched
        assert step.tool == "searchWeb"
        assert usage.snapshot().tool_calls_count == 2

    async def test_exhausted_alternatives_record_one_failure(self, registry, make_executor):
        registry.register_function("searchWeb", fail)
        registry.register_function("quickLookup", fail)
        executor = make_executor(alternatives={"searchWeb": ["quickLookup"]})

        results = await executor.run(_plan(_step(1, "searchWeb")))

        assert len(results) == 1
        assert not results[0].success
        assert results[0].tool == "searchWeb"
        assert results[0].attempted_tools == ["searchWeb", "quickLookup"]

    async def test_critical_failure_raises_with_results(self, registry, make_executor):
        registry.register_function("good", succeed)
        registry.register_function(
            "locked", AsyncMock(side_effect=CriticalError("API key not configured")),
        )
        executor = make_executor()

        with pytest.raises(CriticalError) as exc_info:
            await executor.run(_plan(_step(1, "good"), _step(2, "locked"), _step(3, "good")))

        assert "API key" in str(exc_info.value)
        assert [r.step_number for r in exc_info.value.results] == [1, 2]

    async def test_doomed_plan_spends_no_alternative(self, registry, make_executor):
        registry.register_function("bad", fail)
        registry.register_function("primary", fail)
        alternative = AsyncMock(return_value="rescued")
        registry.register_function("backup", alternative)
        executor = make_executor(alternatives={"primary": ["backup"]})

        results = await executor.run(_plan(
            _step(1, "bad"),
            _step(2, "bad"),
            _step(3, "primary"),
            _step(4, "bad"),
        ))

        assert len(results) == 3
        assert results[2].tool == "primary"
        assert results[2].attempted_tools == ["primary"]
        alternative.assert_not_awaited()

    async def test_direct_inference_tokens_are_counted(self, registry, make_executor, usage):
        provider = FakeProvider({"tool": "A short answer."})
        registry.register(DirectInferenceTool(provider))
        executor = make_executor()

        results = await executor.run(_plan(_step(1, "directInference", prompt="Explain tea")))

        assert results[0].success
        assert provider.calls == ["tool"]
        assert provider.models == ["gemini-1.5-flash"]
        stats = usage.snapshot()
        assert stats.tokens_used > 0
        assert stats.tool_calls_count == 1

    async def test_permission_denied_is_a_step_failure(self, registry, make_executor):
        registry.register_function("danger", succeed, risk_level="high")
        registry.register_function("good", succeed)
        executor = make_executor(alternatives={})

        results = await executor.run(_plan(_step(1, "danger"), _step(2, "good")))

        assert results[0].error_kind == "permission"
        assert results[1].success

    async def test_high_risk_enabled(self, registry, make_executor):
        registry.register_function("danger", succeed, risk_level="high")
        executor = make_executor(high_risk_enabled=True)

        results = await executor.run(_plan(_step(1, "danger")))
        assert results[0].success


class TestOfflineExecution:
    async def test_cached_result_reused_offline(
        self, registry, make_executor, connectivity, usage, cache,
    ):
        body = AsyncMock(return_value={"hits": 3})
        registry.register_function("searchWeb", body, requires_connectivity=True)
        executor = make_executor(cacheable=["searchWeb"])
        plan = _plan(_step(1, "searchWeb", query="cats"))

        online = await executor.run(plan)
        assert await cache.get(cache_key("searchWeb", {"query": "cats"})) == {"hits": 3}

        await connectivity.handle_offline()
        first = await executor.run(plan)
        second = await executor.run(plan)

        for offline in (first, second):
            assert offline[0].success
            assert offline[0].from_cache
        assert first[0].output == second[0].output == online[0].output
        body.assert_awaited_once()
        assert usage.snapshot().tool_calls_count == 1

    async def test_cache_miss_offline_fails(self, registry, make_executor, connectivity):
        body = AsyncMock(return_value="x")
        registry.register_function("searchWeb", body)
        executor = make_executor(cacheable=["searchWeb"], alternatives={})
        await connectivity.handle_offline()

        results = await executor.run(_plan(_step(1, "searchWeb")))

        assert not results[0].success
        assert results[0].error_kind == "connectivity"
        body.assert_not_awaited()

    async def test_connected_tool_fails_offline(self, registry, make_executor, connectivity):
        body = AsyncMock(return_value="x")
        registry.register_function("directInference", body, requires_connectivity=True)
        executor = make_executor(cacheable=[])
        await connectivity.handle_offline()

        results = await executor.run(_plan(_step(1, "directInference")))

        assert results[0].error_kind == "connectivity"
        body.assert_not_awaited()

    async def test_local_tool_runs_offline(self, registry, make_executor, connectivity):
        registry.register_function("localTool", succeed)
        executor = make_executor(cacheable=[])
        await connectivity.handle_offline()

        results = await executor.run(_plan(_step(1, "localTool")))
        assert results[0].success
        assert not results[0].from_cache

    def test_cache_key_is_order_independent(self):
        assert cache_key("t", {"a": 1, "b": 2}) == cache_key("t", {"b": 2, "a": 1})
        assert cache_key("t", {"a": 1}) != cache_key("u", {"a": 1})
