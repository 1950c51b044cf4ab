"""Tests for the click command-line interface."""

import logging

import pytest
import yaml
from click.testing import CliRunner

from caput.main import cli


@pytest.fixture(autouse=True)
def restore_logging():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def config_file(tmp_path, monkeypatch):
    monkeypatch.delenv("CAPUT_INFERENCE__API_KEY", raising=False)
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump({
        "data_dir": str(tmp_path / "data"),
        "agent": {"step_delay": 0},
        "log_level": "WARNING",
    }))
    return str(path)


def _invoke(config_file, *args):
    return CliRunner().invoke(cli, ["--config", config_file, *args])


class TestCli:
    def test_tools(self, config_file):
        result = _invoke(config_file, "tools")
        assert result.exit_code == 0
        assert "searchWeb (search)" in result.output
        assert "apiConnector (integration) [high risk]" in result.output

    def test_empty_queue(self, config_file):
        result = _invoke(config_file, "queue")
        assert result.exit_code == 0
        assert "Offline queue is empty." in result.output

    def test_offline_run_is_deferred_then_listed(self, config_file):
        result = _invoke(config_file, "run", "--offline", "Summarize the news")
        assert result.exit_code == 0
        assert "Accepted, deferred" in result.output
        assert '"status": "queued"' in result.output

        listed = _invoke(config_file, "queue")
        assert "analyzeGoal" in listed.output

    def test_drain_counts_failures(self, config_file):
        _invoke(config_file, "run", "--offline", "Summarize the news")

        # No API key configured, so the replay fails and is retried later
        result = _invoke(config_file, "drain")
        assert result.exit_code == 0
        assert "Replayed 0, failed 1, dropped 0" in result.output

    def test_run_without_key_reports_error(self, config_file):
        result = _invoke(config_file, "run", "Summarize the news")
        assert result.exit_code == 1
        assert "API key not configured" in result.output

    def test_mode_switch_is_remembered(self, config_file):
        assert _invoke(config_file, "mode").output.strip() == "middle"

        switched = _invoke(config_file, "mode", "efficiency_first")
        assert switched.exit_code == 0
        assert switched.output.strip() == "efficiency_first"

        assert _invoke(config_file, "mode").output.strip() == "efficiency_first"

    def test_unknown_mode_rejected(self, config_file):
        result = _invoke(config_file, "mode", "warp_speed")
        assert result.exit_code == 1
        assert "Unknown mode warp_speed" in result.output
