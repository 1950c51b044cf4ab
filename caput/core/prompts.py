"""Prompt construction for each inference-backed pipeline stage."""

from __future__ import annotations

import json
from typing import Any

from caput.config import EfficiencyMode


_ANALYZE_PROMPT = """\
You are the analysis engine of Caput, an autonomous task agent.
Analyze the user's goal and extract what is needed to build an executable plan.

User goal: "{goal}"

Respond with ONLY a JSON object:
{{
  "goal_type": "information gathering | content generation | analysis | automation | other",
  "complexity": "simple | medium | complex",
  "required_tools": ["tool names"],
  "success_criteria": ["criteria"],
  "estimated_steps": "expected number of steps",
  "risks": ["risks or caveats"],
  "context_needed": ["additional information needed"]
}}
"""

_PLAN_PROMPT = """\
Task efficiency mode: {mode_name}
Maximum steps: {max_steps}
Verification passes: {verification_count}

Goal analysis:
{analysis}

Available tools:
{tools}

Within these limits, produce an efficient execution plan. A step may only
depend on steps with a smaller step_number.
Respond with ONLY a JSON object:
{{
  "steps": [
    {{
      "step_number": 1,
      "action": "what to do",
      "tool": "tool name",
      "parameters": {{"key": "value"}},
      "expected_output": "expected result",
      "dependencies": []
    }}
  ],
  "parallel_execution": [],
  "verification_points": ["what to check"],
  "estimated_time": "minutes",
  "resource_requirements": ["resources"]
}}
"""

_VERIFY_PROMPT = """\
Verify the execution results.

Success criteria:
{criteria}

Execution results:
{results}

Respond with ONLY a JSON object:
{{
  "overall_success": true,
  "criteria_met": ["criteria that were met"],
  "criteria_failed": ["criteria that were not met"],
  "quality_score": 0,
  "recommendations": ["improvements"],
  "next_actions": ["further actions"]
}}
"""

_SUMMARY_PROMPT = """\
Write a clear summary for the user based on these execution and verification results.

Execution results: {results}
Verification: {verification}

Cover what was done, the main deliverables, the quality assessment and
suggested next actions. Answer in natural, readable prose.
"""


def _dump(value: Any) -> str:
    return json.dumps(value, indent=2, ensure_ascii=False, default=str)


def build_analyze_prompt(goal: str) -> str:
    return _ANALYZE_PROMPT.format(goal=goal)


def build_plan_prompt(
    analysis: dict[str, Any], mode: EfficiencyMode, tools: list[dict[str, Any]]
) -> str:
    tool_lines = "\n".join(f"- {t['name']}: {t['description']}" for t in tools) or "- none"
    return _PLAN_PROMPT.format(
        mode_name=mode.name,
        max_steps=mode.max_plan_steps,
        verification_count=mode.verification_count,
        analysis=_dump(analysis),
        tools=tool_lines,
    )


def build_verify_prompt(results: list[dict[str, Any]], criteria: list[str]) -> str:
    return _VERIFY_PROMPT.format(
        criteria="\n".join(f"- {c}" for c in criteria),
        results=_dump(results),
    )


def build_summary_prompt(results: list[dict[str, Any]], verification: dict[str, Any]) -> str:
    return _SUMMARY_PROMPT.format(results=_dump(results), verification=_dump(verification))
