"""Tests for plan parsing and validation."""

import pytest

from caput.errors import ValidationError
from caput.models import Analysis, Plan, QueuedRequest, Step, StepResult, Verification


class TestPlanParsing:
    def test_parses_steps(self):
        plan = Plan.from_dict({
            "steps": [
                {"step_number": 1, "action": "search", "tool": "searchWeb",
                 "parameters": {"query": "tea"}},
                {"step_number": "2", "action": "summarize", "dependencies": ["step 1"]},
            ],
            "parallel_execution": [1],
            "estimated_time": "5m",
        }, "g1")

        assert len(plan.steps) == 2
        assert plan.steps[1].step_number == 2
        assert plan.steps[1].dependencies == (1,)
        assert plan.steps[1].tool == "directInference"
        assert plan.parallel_execution == (1,)

    def test_missing_step_numbers_use_position(self):
        plan = Plan.from_dict({"steps": [{"action": "a"}, {"action": "b"}]}, "g1")
        assert [s.step_number for s in plan.steps] == [1, 2]

    def test_no_steps(self):
        assert Plan.from_dict({}, "g1").steps == ()

    @pytest.mark.parametrize("steps", [
        [{"step_number": 1, "dependencies": [2]}, {"step_number": 2}],
        [{"step_number": 1, "dependencies": [1]}],
        [{"step_number": 2, "dependencies": [1]}],
        [{"step_number": 1}, {"step_number": 1}],
        [{"step_number": 1, "dependencies": ["soon"]}],
        [{"step_number": 1, "parameters": "query=tea"}],
        ["not an object"],
    ])
    def test_invalid_plans(self, steps):
        with pytest.raises(ValidationError):
            Plan.from_dict({"steps": steps}, "g1")

    def test_not_an_object(self):
        with pytest.raises(ValidationError):
            Plan.from_dict(["step"], "g1")

    def test_steps_are_immutable(self):
        step = Step(step_number=1, action="a", tool="t")
        with pytest.raises(AttributeError):
            step.tool = "other"


class TestRecords:
    def test_analysis_coerces_lists(self):
        analysis = Analysis.from_dict(
            {"success_criteria": "one criterion", "required_tools": None}, "g1", "goal",
        )
        assert analysis.success_criteria == ["one criterion"]
        assert analysis.required_tools == []
        assert analysis.user_input == "goal"

    def test_verification_score_clamped(self):
        assert Verification.from_dict({"quality_score": 150}, "g").quality_score == 100
        assert Verification.from_dict({"quality_score": "bad"}, "g").quality_score == 0

    def test_no_criteria_passes(self):
        v = Verification.no_criteria("g")
        assert v.overall_success
        assert v.quality_score == 0

    def test_step_result_from_dict(self):
        result = StepResult.from_dict({"step_number": "3", "success": 1, "output": "x"})
        assert result.step_number == 3
        assert result.success is True
        assert result.timestamp

    def test_queued_request_ignores_unknown_keys(self):
        request = QueuedRequest.from_dict({
            "id": "a", "goal_id": "g", "original_action": "analyzeGoal",
            "call_type": "analysis", "legacy_field": True,
        })
        assert request.retries == 0
        assert request.type == "inference"
