"""Typed records passed between pipeline stages."""

from __future__ import annotations

import re
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal

from caput.errors import ValidationError

DIRECT_INFERENCE_TOOL = "directInference"

_INT_RE = re.compile(r"\d+")


def utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _as_list(value: Any) -> list[Any]:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


def _as_int(value: Any) -> int | None:
    """Coerce 1, "1" or "step 1" to 1. Returns None for anything else."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        m = _INT_RE.search(value)
        if m:
            return int(m.group(0))
    return None


@dataclass(frozen=True)
class Analysis:
    goal_id: str
    goal_type: str = ""
    complexity: str = ""
    required_tools: list[str] = field(default_factory=list)
    success_criteria: list[str] = field(default_factory=list)
    estimated_steps: Any = None
    risks: list[str] = field(default_factory=list)
    context_needed: list[str] = field(default_factory=list)
    user_input: str = ""

    @classmethod
    def from_dict(cls, data: Any, goal_id: str, user_input: str = "") -> Analysis:
        if not isinstance(data, dict):
            raise ValidationError("Analysis response is not a JSON object")
        return cls(
            goal_id=goal_id,
            goal_type=str(data.get("goal_type", "")),
            complexity=str(data.get("complexity", "")),
            required_tools=[str(t) for t in _as_list(data.get("required_tools"))],
            success_criteria=[str(c) for c in _as_list(data.get("success_criteria"))],
            estimated_steps=data.get("estimated_steps"),
            risks=[str(r) for r in _as_list(data.get("risks"))],
            context_needed=[str(c) for c in _as_list(data.get("context_needed"))],
            user_input=user_input or str(data.get("user_input", "")),
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class Step:
    step_number: int
    action: str
    tool: str
    parameters: dict[str, Any] = field(default_factory=dict)
    expected_output: str = ""
    dependencies: tuple[int, ...] = ()

    @classmethod
    def from_dict(cls, data: dict[str, Any], position: int) -> Step:
        number = _as_int(data.get("step_number"))
        deps: list[int] = []
        for raw in _as_list(data.get("dependencies")):
            dep = _as_int(raw)
            if dep is None:
                raise ValidationError(
                    f"Step {number or position} has a malformed dependency: {raw!r}"
                )
            deps.append(dep)
        params = data.get("parameters") or {}
        if not isinstance(params, dict):
            raise ValidationError(f"Step {number or position} parameters must be an object")
        return cls(
            step_number=number if number is not None else position,
            action=str(data.get("action", "")),
            tool=str(data.get("tool") or DIRECT_INFERENCE_TOOL),
            parameters=params,
            expected_output=str(data.get("expected_output", "")),
            dependencies=tuple(deps),
        )

    def to_dict(self) -> dict[str, Any]:
        d = asdict(self)
        d["dependencies"] = list(self.dependencies)
        return d


@dataclass(frozen=True)
class Plan:
    goal_id: str
    steps: tuple[Step, ...]
    parallel_execution: tuple[int, ...] = ()
    verification_points: tuple[str, ...] = ()
    estimated_time: Any = None
    resource_requirements: tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, data: Any, goal_id: str) -> Plan:
        if not isinstance(data, dict):
            raise ValidationError("Plan response is not a JSON object")
        raw_steps = _as_list(data.get("steps"))
        steps = []
        for i, raw in enumerate(raw_steps, start=1):
            if not isinstance(raw, dict):
                raise ValidationError(f"Plan step {i} is not an object")
            steps.append(Step.from_dict(raw, i))
        parallel = [n for n in (_as_int(v) for v in _as_list(data.get("parallel_execution"))) if n is not None]
        plan = cls(
            goal_id=goal_id,
            steps=tuple(steps),
            parallel_execution=tuple(parallel),
            verification_points=tuple(str(v) for v in _as_list(data.get("verification_points"))),
            estimated_time=data.get("estimated_time"),
            resource_requirements=tuple(str(r) for r in _as_list(data.get("resource_requirements"))),
        )
        plan.validate()
        return plan

    def validate(self) -> None:
        """Reject duplicate step numbers and forward or dangling dependencies."""
        seen: set[int] = set()
        for step in self.steps:
            if step.step_number < 1:
                raise ValidationError(f"Step number must be positive, got {step.step_number}")
            if step.step_number in seen:
                raise ValidationError(f"Duplicate step number {step.step_number}")
            for dep in step.dependencies:
                if dep >= step.step_number or dep not in seen:
                    raise ValidationError(
                        f"Step {step.step_number} depends on step {dep}, "
                        "which does not precede it"
                    )
            seen.add(step.step_number)

    def to_dict(self) -> dict[str, Any]:
        return {
            "goal_id": self.goal_id,
            "steps": [s.to_dict() for s in self.steps],
            "parallel_execution": list(self.parallel_execution),
            "verification_points": list(self.verification_points),
            "estimated_time": self.estimated_time,
            "resource_requirements": list(self.resource_requirements),
        }


@dataclass
class StepResult:
    step_number: int
    action: str
    tool: str
    success: bool
    output: Any = None
    error: str | None = None
    error_kind: str | None = None
    execution_time: float | None = None
    timestamp: str = field(default_factory=utcnow_iso)
    from_cache: bool = False
    attempted_tools: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> StepResult:
        return cls(
            step_number=int(data["step_number"]),
            action=data.get("action", ""),
            tool=data.get("tool", ""),
            success=bool(data.get("success")),
            output=data.get("output"),
            error=data.get("error"),
            error_kind=data.get("error_kind"),
            execution_time=data.get("execution_time"),
            timestamp=data.get("timestamp") or utcnow_iso(),
            from_cache=bool(data.get("from_cache", False)),
            attempted_tools=list(data.get("attempted_tools", [])),
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class Verification:
    goal_id: str
    overall_success: bool
    criteria_met: list[str] = field(default_factory=list)
    criteria_failed: list[str] = field(default_factory=list)
    quality_score: int = 0
    recommendations: list[str] = field(default_factory=list)
    next_actions: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Any, goal_id: str) -> Verification:
        if not isinstance(data, dict):
            raise ValidationError("Verification response is not a JSON object")
        try:
            score = int(float(data.get("quality_score", 0)))
        except (TypeError, ValueError):
            score = 0
        return cls(
            goal_id=goal_id,
            overall_success=bool(data.get("overall_success", False)),
            criteria_met=[str(c) for c in _as_list(data.get("criteria_met"))],
            criteria_failed=[str(c) for c in _as_list(data.get("criteria_failed"))],
            quality_score=max(0, min(100, score)),
            recommendations=[str(r) for r in _as_list(data.get("recommendations"))],
            next_actions=[str(a) for a in _as_list(data.get("next_actions"))],
        )

    @classmethod
    def no_criteria(cls, goal_id: str) -> Verification:
        return cls(goal_id=goal_id, overall_success=True, quality_score=0)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class Artifact:
    type: Literal["text", "html", "svg", "markdown", "link", "list"]
    title: str
    content: str | None = None
    url: str | None = None
    items: list[Any] | None = None
    preview_url: str | None = None
    full_content_ref: int | None = None


@dataclass
class Delivery:
    summary: str
    artifacts: list[Artifact]
    metrics: dict[str, Any]
    sources: list[str]
    cost_breakdown: dict[str, Any]


@dataclass
class QueuedRequest:
    id: str
    goal_id: str
    original_action: Literal["analyzeGoal", "generatePlan", "verifyResults"]
    call_type: str
    type: str = "inference"
    timestamp: str = field(default_factory=utcnow_iso)
    user_goal: str = ""
    analysis: dict[str, Any] | None = None
    results: list[dict[str, Any]] | None = None
    success_criteria: list[str] | None = None
    retries: int = 0

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> QueuedRequest:
        return cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class SessionStats:
    tokens_used: int = 0
    tool_calls_count: int = 0
    total_cost: float = 0.0
    sessions_count: int = 0


@dataclass(frozen=True)
class TraceEvent:
    event: str
    tool: str
    status: Literal["active", "completed", "error"]
    metadata: dict[str, Any] = field(default_factory=dict)
    timestamp: str = field(default_factory=utcnow_iso)


GoalStatus = Literal["completed", "partial", "queued", "offline"]


@dataclass
class GoalResult:
    """Outcome of one goal invocation. Hard failures raise instead."""

    status: GoalStatus
    success: bool
    goal_id: str
    partial_due_to_queue: bool = False
    analysis: Analysis | None = None
    plan: Plan | None = None
    results: list[StepResult] = field(default_factory=list)
    verification: Verification | None = None
    delivery: Delivery | None = None
    stats: SessionStats | None = None
    queued_request: QueuedRequest | None = None
    message: str = ""
