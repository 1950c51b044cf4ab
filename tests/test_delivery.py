"""Tests for artifact, source and metric extraction."""

from caput.core.delivery import build_metrics, extract_artifacts, extract_sources
from caput.models import StepResult


def _result(n, output, success=True, tool="searchWeb"):
    return StepResult(step_number=n, action="a", tool=tool, success=success, output=output)


class TestArtifacts:
    def test_long_text_truncated(self):
        artifacts = extract_artifacts([_result(1, "x" * 600)])
        assert len(artifacts) == 1
        assert artifacts[0].type == "text"
        assert artifacts[0].content == "x" * 500 + "..."
        assert artifacts[0].full_content_ref == 1

    def test_short_text_skipped(self):
        assert extract_artifacts([_result(1, "short")]) == []

    def test_keyed_outputs(self):
        artifacts = extract_artifacts([_result(1, {
            "page_html": "<p>hi</p>",
            "chart_svg": "<svg/>",
            "article": "# Title",
            "source_url": "https://example.com",
            "items": list(range(20)),
        })])
        by_type = {a.type: a for a in artifacts}
        assert set(by_type) == {"html", "svg", "markdown", "link", "list"}
        assert by_type["link"].url == "https://example.com"
        assert len(by_type["list"].items) == 10

    def test_failed_results_ignored(self):
        assert extract_artifacts([_result(1, "x" * 200, success=False)]) == []


class TestSources:
    def test_unique_in_order(self):
        sources = extract_sources([
            _result(1, {"sources": ["https://a.example", "internal", {"url": "https://b.example"}]}),
            _result(2, {"source_url": "https://a.example"}),
            _result(3, {"sources": ["https://c.example"]}),
        ])
        assert sources == ["https://a.example", "https://b.example", "https://c.example"]


class TestMetrics:
    def test_empty(self):
        metrics = build_metrics([], 0)
        assert metrics["success_rate"] == 0.0
        assert metrics["total_steps"] == 0

    def test_counts(self):
        results = [_result(1, "a"), _result(2, None, success=False)]
        metrics = build_metrics(results, 70)
        assert metrics["steps_completed"] == 1
        assert metrics["success_rate"] == 0.5
        assert metrics["quality_score"] == 70
