"""Goal pipeline: analyze -> plan -> execute -> verify -> deliver."""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Literal
from uuid import uuid4

from caput.config import EfficiencyMode
from caput.core.delivery import build_metrics, extract_artifacts, extract_sources
from caput.core.connectivity import ConnectivityMonitor
from caput.core.executor import PlanExecutor
from caput.core.inference import InferenceProvider, InferenceResult, response_text
from caput.core.prompts import (
    build_analyze_prompt,
    build_plan_prompt,
    build_summary_prompt,
    build_verify_prompt,
)
from caput.core.queue import OfflineQueue, new_request_id
from caput.core.sinks import TraceSink, emit
from caput.core.usage import UsageAccountant
from caput.errors import ConnectivityError, ValidationError
from caput.models import (
    Analysis,
    Delivery,
    GoalResult,
    Plan,
    QueuedRequest,
    StepResult,
    TraceEvent,
    Verification,
)
from caput.tools.registry import ToolRegistry
from caput.utils.logging import bind_goal, get_logger

log = get_logger(__name__)

Stage = Literal["analyze", "plan", "verify"]

_REPLAY_STAGE: dict[str, Stage] = {
    "analyzeGoal": "analyze",
    "generatePlan": "plan",
    "verifyResults": "verify",
}

_REQUIRED_REGISTRY_METHODS = ("execute", "get_tool_list", "requires_connectivity")


class _StageDeferred(Exception):
    def __init__(self, request: QueuedRequest) -> None:
        super().__init__(request.original_action)
        self.request = request


class _SummaryOffline(Exception):
    pass


class GoalPipeline:
    """Runs one goal through the five stages.

    Connectivity failures in analyze, plan or verify are queued and reported
    as ``status="queued"``; a connectivity failure while summarizing returns
    ``status="offline"`` with the results gathered so far. Anything else
    propagates with its original message.
    """

    def __init__(
        self,
        provider: InferenceProvider,
        registry: ToolRegistry,
        executor: PlanExecutor,
        queue: OfflineQueue,
        usage: UsageAccountant,
        modes: dict[str, EfficiencyMode],
        mode_name: str = "middle",
        inference_timeout: float = 30.0,
        trace: TraceSink | None = None,
        connectivity: ConnectivityMonitor | None = None,
    ) -> None:
        missing = [
            m for m in _REQUIRED_REGISTRY_METHODS
            if not callable(getattr(registry, m, None))
        ]
        if missing:
            raise ValidationError(f"Tool registry is missing required methods: {missing}")
        if mode_name not in modes:
            raise ValidationError(f"Unknown efficiency mode: {mode_name}")

        self._provider = provider
        self._registry = registry
        self._executor = executor
        self._queue = queue
        self._usage = usage
        self._modes = modes
        self._mode_name = mode_name
        self._timeout = inference_timeout
        self._trace_sink = trace
        self._connectivity = connectivity
        self._apply_mode()

    # --- Mode and session ---

    @property
    def mode_name(self) -> str:
        return self._mode_name

    @property
    def mode(self) -> EfficiencyMode:
        return self._modes[self._mode_name]

    def set_efficiency_mode(self, name: str) -> bool:
        if name not in self._modes:
            log.warning("unknown_efficiency_mode", mode=name)
            return False
        self._mode_name = name
        self._apply_mode()
        log.info("efficiency_mode_changed", mode=name)
        return True

    def _apply_mode(self) -> None:
        self._executor.mode = self.mode
        self._usage.mode = self.mode

    def reset(self) -> None:
        self._usage.reset()

    # --- Entry points ---

    async def process(self, goal: str) -> GoalResult:
        goal_id = uuid4().hex[:12]
        with bind_goal(goal_id):
            log.info("goal_received", mode=self._mode_name)
            return await self._run(goal_id, "analyze", goal=goal)

    async def replay(self, request: QueuedRequest) -> GoalResult:
        """Resume a deferred goal from its queued stage.

        A connectivity failure in that stage raises instead of queueing
        again, so the queue can count the retry.
        """
        stage = _REPLAY_STAGE.get(request.original_action)
        if stage is None:
            raise ValidationError(f"Unknown queued action: {request.original_action}")

        analysis = None
        if request.analysis is not None:
            analysis = Analysis.from_dict(request.analysis, request.goal_id)
        if stage == "plan" and analysis is None:
            raise ValidationError(f"Queued request {request.id} has no analysis to plan from")

        with bind_goal(request.goal_id):
            log.info("goal_replay", request_id=request.id, stage=stage)
            return await self._run(
                request.goal_id,
                stage,
                goal=request.user_goal,
                analysis=analysis,
                results=[StepResult.from_dict(r) for r in request.results or []],
                criteria=request.success_criteria,
                replaying=request.id,
            )

    # --- State machine ---

    async def _run(
        self,
        goal_id: str,
        start: Stage,
        goal: str = "",
        analysis: Analysis | None = None,
        results: list[StepResult] | None = None,
        criteria: list[str] | None = None,
        replaying: str | None = None,
    ) -> GoalResult:
        plan: Plan | None = None
        results = results or []
        verification: Verification | None = None

        def defer(stage: Stage) -> bool:
            return replaying is None or stage != start

        try:
            if start == "analyze":
                await self._trace("Analysis started", "analyzer", "active", {"goal": goal})
                analysis = await self._analyze(goal_id, goal, defer("analyze"))

            if start in ("analyze", "plan"):
                assert analysis is not None
                await self._trace("Planning", "planner", "active", analysis.to_dict())
                plan = await self._plan(analysis, defer("plan"))

                await self._trace("Execution started", "executor", "active", {"steps": len(plan.steps)})
                results = await self._executor.run(plan)
                criteria = analysis.success_criteria

            await self._trace("Verifying", "verifier", "active", {"results": len(results)})
            verification = await self._verify(
                goal_id, goal, results, criteria or [], defer("verify"),
            )

            await self._trace("Delivering", "deliverer", "completed", verification.to_dict())
            delivery = await self._deliver(results, verification)

        except _StageDeferred as deferred:
            request = deferred.request
            log.warning("goal_queued", action=request.original_action, request_id=request.id)
            await self._trace(
                "Queued until back online", "offline_queue", "active",
                {"action": request.original_action, "request_id": request.id},
            )
            return GoalResult(
                status="queued",
                success=False,
                goal_id=goal_id,
                analysis=analysis,
                plan=plan,
                results=results,
                stats=self._usage.snapshot(),
                queued_request=request,
                message=f"Accepted; {request.original_action} deferred until connectivity returns",
            )
        except _SummaryOffline:
            log.warning("summary_skipped_offline")
            return GoalResult(
                status="offline",
                success=False,
                goal_id=goal_id,
                analysis=analysis,
                plan=plan,
                results=results,
                verification=verification,
                stats=self._usage.snapshot(),
                message="Offline: results are complete but no summary was generated",
            )
        except Exception as e:
            log.error("goal_failed", error=str(e))
            await self._trace("Error", "error_handler", "error", {"error": str(e)})
            raise

        partial = await self._queue.has_goal(goal_id, exclude=replaying)
        if partial:
            log.info("goal_partial_due_to_queue")
        else:
            log.info("goal_completed", steps=len(results))
        return GoalResult(
            status="partial" if partial else "completed",
            success=not partial,
            partial_due_to_queue=partial,
            goal_id=goal_id,
            analysis=analysis,
            plan=plan,
            results=results,
            verification=verification,
            delivery=delivery,
            stats=self._usage.snapshot(),
        )

    # --- Stages ---

    async def _analyze(self, goal_id: str, goal: str, defer: bool) -> Analysis:
        response = await self._infer(
            build_analyze_prompt(goal),
            "analysis",
            defer,
            lambda: QueuedRequest(
                id=new_request_id(),
                goal_id=goal_id,
                original_action="analyzeGoal",
                call_type="analysis",
                user_goal=goal,
            ),
        )
        return Analysis.from_dict(response, goal_id, user_input=goal)

    async def _plan(self, analysis: Analysis, defer: bool) -> Plan:
        prompt = build_plan_prompt(analysis.to_dict(), self.mode, self._registry.get_tool_list())
        response = await self._infer(
            prompt,
            "planning",
            defer,
            lambda: QueuedRequest(
                id=new_request_id(),
                goal_id=analysis.goal_id,
                original_action="generatePlan",
                call_type="planning",
                user_goal=analysis.user_input,
                analysis=analysis.to_dict(),
            ),
        )
        plan = Plan.from_dict(response, analysis.goal_id)
        log.info("plan_generated", steps=len(plan.steps))
        return plan

    async def _verify(
        self,
        goal_id: str,
        goal: str,
        results: list[StepResult],
        criteria: list[str],
        defer: bool,
    ) -> Verification:
        if not criteria:
            log.info("verification_skipped_no_criteria")
            return Verification.no_criteria(goal_id)

        serialized = [r.to_dict() for r in results]
        response = await self._infer(
            build_verify_prompt(serialized, criteria),
            "verification",
            defer,
            lambda: QueuedRequest(
                id=new_request_id(),
                goal_id=goal_id,
                original_action="verifyResults",
                call_type="verification",
                user_goal=goal,
                results=serialized,
                success_criteria=list(criteria),
            ),
        )
        return Verification.from_dict(response, goal_id)

    async def _deliver(self, results: list[StepResult], verification: Verification) -> Delivery:
        successful = [r for r in results if r.success]
        prompt = build_summary_prompt(
            [r.to_dict() for r in results], verification.to_dict(),
        )
        try:
            response = await self._infer(prompt, "summary", defer=False)
        except ConnectivityError as e:
            raise _SummaryOffline() from e
        summary = response_text(response)

        return Delivery(
            summary=summary,
            artifacts=extract_artifacts(successful),
            metrics=build_metrics(results, verification.quality_score),
            sources=extract_sources(successful),
            cost_breakdown=self._usage.cost_breakdown(),
        )

    # --- Helpers ---

    async def _infer(
        self,
        prompt: str,
        call_type: str,
        defer: bool,
        queued: Callable[[], QueuedRequest] | None = None,
    ) -> InferenceResult:
        try:
            if self._connectivity is not None and self._connectivity.is_offline:
                raise ConnectivityError("Offline; inference unavailable")
            try:
                response = await asyncio.wait_for(
                    self._provider.call(prompt, call_type, model=self._usage.resolve_model()),
                    timeout=self._timeout,
                )
            except asyncio.TimeoutError as e:
                raise ConnectivityError(
                    f"Inference request timed out after {self._timeout}s"
                ) from e
        except ConnectivityError as e:
            log.warning("inference_offline", call_type=call_type, error=str(e))
            if not defer or queued is None:
                raise
            request = await self._queue.enqueue(queued())
            raise _StageDeferred(request) from e

        await self._usage.record_tokens(
            self._provider.count_tokens(prompt + response_text(response))
        )
        return response

    async def _trace(
        self, event: str, tool: str, status: str, metadata: dict[str, Any]
    ) -> None:
        if self._trace_sink is None:
            return
        sink = self._trace_sink
        trace_event = TraceEvent(event=event, tool=tool, status=status, metadata=metadata)  # type: ignore[arg-type]
        await emit("trace", lambda: sink.trace(trace_event))
