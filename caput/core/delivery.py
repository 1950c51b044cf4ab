"""Artifact and source extraction for the delivery stage."""

from __future__ import annotations

from typing import Any

from caput.models import Artifact, StepResult

TEXT_ARTIFACT_MIN = 100
TEXT_ARTIFACT_MAX = 500
LIST_ARTIFACT_MAX = 10


def _is_http(value: Any) -> bool:
    return isinstance(value, str) and value.startswith("http")


def extract_artifacts(results: list[StepResult]) -> list[Artifact]:
    artifacts: list[Artifact] = []
    for result in results:
        if not result.success or not result.output:
            continue
        output = result.output

        if isinstance(output, str):
            if len(output) > TEXT_ARTIFACT_MIN:
                content = output[:TEXT_ARTIFACT_MAX]
                if len(output) > TEXT_ARTIFACT_MAX:
                    content += "..."
                artifacts.append(Artifact(
                    type="text",
                    title=f"Text Output ({result.tool or 'Unknown Tool'})",
                    content=content,
                    full_content_ref=result.step_number,
                ))
            continue

        if not isinstance(output, dict):
            continue
        for key, value in output.items():
            if "html" in key and isinstance(value, str):
                artifacts.append(Artifact(
                    type="html", title=f"HTML Content ({key})", content=value,
                    preview_url=output.get("preview_url"),
                ))
            elif "svg" in key and isinstance(value, str):
                artifacts.append(Artifact(type="svg", title=f"SVG Image ({key})", content=value))
            elif ("markdown" in key or "article" in key) and isinstance(value, str):
                artifacts.append(Artifact(
                    type="markdown", title=f"Markdown Document ({key})", content=value,
                ))
            elif "url" in key and _is_http(value):
                artifacts.append(Artifact(type="link", title=f"Link ({key})", url=value))
            elif isinstance(value, list) and value:
                artifacts.append(Artifact(
                    type="list", title=f"List Data ({key})", items=value[:LIST_ARTIFACT_MAX],
                ))
    return artifacts


def extract_sources(results: list[StepResult]) -> list[str]:
    """Unique http(s) sources, in first-seen order."""
    sources: dict[str, None] = {}
    for result in results:
        if not result.success or not isinstance(result.output, dict):
            continue
        output = result.output
        listed = output.get("sources")
        if isinstance(listed, list):
            for source in listed:
                if _is_http(source):
                    sources[source] = None
                elif isinstance(source, dict) and _is_http(source.get("url")):
                    sources[source["url"]] = None
        elif _is_http(output.get("source_url")):
            sources[output["source_url"]] = None
    return list(sources)


def build_metrics(results: list[StepResult], quality_score: int) -> dict[str, Any]:
    completed = sum(1 for r in results if r.success)
    return {
        "steps_completed": completed,
        "total_steps": len(results),
        "success_rate": completed / len(results) if results else 0.0,
        "quality_score": quality_score,
        "execution_time": sum(r.execution_time or 0 for r in results),
    }
