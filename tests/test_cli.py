"""Tests for the command line interface."""

import json
import time

import pytest
from click.testing import CliRunner

from opencode_usage.cli import cli
from opencode_usage.config import config_manager

from conftest import build_message, write_json_tree, write_sqlite_db

HOUR_MS = 60 * 60 * 1000
WIDE_TERMINAL = {"COLUMNS": "200"}


@pytest.fixture(autouse=True)
def default_config(monkeypatch):
    """Ignore any configuration file on the machine running the tests."""
    monkeypatch.setattr(config_manager, "config_path", None)
    config_manager.reload()
    yield
    config_manager.reload()


def recent_sessions():
    now_ms = int(time.time() * 1000)
    return {
        "ses_recent": {
            "title": "Recent work",
            "directory": "/home/dev/api",
            "messages": [
                build_message(
                    "msg_1",
                    "ses_recent",
                    model="claude-sonnet-4",
                    input_tokens=1000,
                    output_tokens=500,
                    cost=0.25,
                    created=now_ms - 2 * HOUR_MS,
                    completed=now_ms - 2 * HOUR_MS + 1000,
                    root="/home/dev/api",
                ),
                build_message(
                    "msg_2",
                    "ses_recent",
                    model="gpt-4",
                    input_tokens=300,
                    cost=0.5,
                    created=now_ms - HOUR_MS,
                    completed=now_ms - HOUR_MS + 1000,
                    root="/home/dev/api",
                ),
            ],
        },
        "ses_other": {
            "title": "Other project",
            "directory": "/home/dev/web",
            "messages": [
                build_message(
                    "msg_3",
                    "ses_other",
                    model="gpt-4",
                    input_tokens=20,
                    output_tokens=20,
                    cost=0.1,
                    created=now_ms - 3 * HOUR_MS,
                    root="/home/dev/web",
                ),
            ],
        },
    }


@pytest.fixture(params=["sqlite", "json"])
def data_dir(request, tmp_path):
    root = tmp_path / "opencode"
    if request.param == "sqlite":
        write_sqlite_db(root / "opencode.db", recent_sessions())
    else:
        write_json_tree(root / "storage", recent_sessions())
    return str(root)


def invoke(*args):
    runner = CliRunner()
    return runner.invoke(cli, list(args), env=WIDE_TERMINAL)


class TestAnalyze:
    """Tests for the analyze command."""

    def test_json(self, data_dir):
        result = invoke("--data-dir", data_dir, "analyze", "--json")

        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert data["totalSessions"] == 2
        assert data["totalMessages"] == 3
        assert data["tokens"]["input"] == 1320
        assert data["cost"]["total"] == pytest.approx(0.85)
        assert [m["name"] for m in data["models"]] == ["gpt-4", "claude-sonnet-4"]
        assert data["sessions"][0]["id"] == "ses_recent"

    def test_model_filter(self, data_dir):
        result = invoke("--data-dir", data_dir, "analyze", "-m", "sonnet", "--json")

        data = json.loads(result.output)
        assert data["totalSessions"] == 1
        assert data["tokens"]["input"] == 1000

    def test_exact_project(self, data_dir):
        result = invoke(
            "--data-dir", data_dir, "analyze", "-p", "/home/dev/web", "--exact-path", "--json"
        )

        data = json.loads(result.output)
        assert [s["id"] for s in data["sessions"]] == ["ses_other"]

    def test_current_directory_scope(self, data_dir):
        result = invoke(
            "--data-dir", data_dir, "analyze", "--current", "--path", "/home/dev/api/src", "--json"
        )

        data = json.loads(result.output)
        assert [s["id"] for s in data["sessions"]] == ["ses_recent"]

    def test_csv(self, data_dir):
        result = invoke("--data-dir", data_dir, "analyze", "--csv")

        lines = result.output.splitlines()
        assert lines[0] == "Category,Metric,Value"
        assert "Summary,Total Sessions,2" in lines
        assert "Tokens,Input,1320" in lines
        assert any(line.startswith("Model,gpt-4,") for line in lines)

    def test_table(self, data_dir):
        result = invoke("--data-dir", data_dir, "analyze", "-s", "-i")

        assert result.exit_code == 0, result.output
        assert "OpenCode Usage Analysis" in result.output
        assert "Top Sessions" in result.output
        assert "Recent work" in result.output
        assert "By Path" in result.output
        assert "/home/dev/web" in result.output

    def test_no_data_found(self, data_dir):
        result = invoke("--data-dir", data_dir, "analyze", "-m", "no-such-model")

        assert result.exit_code == 0
        assert "No usage data found." in result.output


class TestPeriodCommands:
    """Tests for the daily and monthly commands."""

    def test_daily_json(self, data_dir):
        result = invoke("--data-dir", data_dir, "daily", "--json")

        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert set(data) == {"daily", "totals"}
        assert sum(day["inputTokens"] for day in data["daily"]) == 1320
        assert data["totals"]["inputTokens"] == 1320

    def test_daily_json_by_project(self, data_dir):
        result = invoke("--data-dir", data_dir, "daily", "-i", "--json")

        data = json.loads(result.output)
        assert set(data) == {"projects", "totals"}
        assert set(data["projects"]) == {"/home/dev/api", "/home/dev/web"}

    def test_monthly_breakdown_table(self, data_dir):
        result = invoke("--data-dir", data_dir, "monthly", "--breakdown")

        assert result.exit_code == 0, result.output
        assert "OpenCode Usage Report - Monthly" in result.output
        assert "↳ claude-sonnet-4" in result.output
        assert "Total" in result.output

    def test_daily_by_project_table(self, data_dir):
        result = invoke("--data-dir", data_dir, "daily", "-i")

        assert "Project: /home/dev/api" in result.output
        assert "Project: /home/dev/web" in result.output

    def test_empty(self, data_dir):
        result = invoke("--data-dir", data_dir, "monthly", "-p", "nowhere")

        assert result.exit_code == 0
        assert "No usage data found." in result.output


class TestSummaryAndHeatmap:
    """Tests for the summary and heatmap commands."""

    def test_summary_json(self, data_dir):
        result = invoke("--data-dir", data_dir, "summary", "--json")

        data = json.loads(result.output)
        assert data["totalSessions"] == 2
        assert "sessions" not in data

    def test_heatmap_json(self, data_dir):
        result = invoke("--data-dir", data_dir, "heatmap", "-d", "7", "--metric", "messages", "--json")

        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert data["metric"] == "messages"
        assert data["total"] == 3
        assert len(data["days"]) in (8, 9)
        assert data["maxValue"] >= 1

    def test_heatmap_terminal(self, data_dir):
        result = invoke("--data-dir", data_dir, "heatmap", "-d", "30")

        assert result.exit_code == 0, result.output
        assert "OpenCode Usage Heatmap" in result.output
        assert "Less" in result.output and "More" in result.output
        assert "Active Days:" in result.output

    def test_invalid_metric_is_a_usage_error(self, data_dir):
        result = invoke("--data-dir", data_dir, "heatmap", "--metric", "minutes")
        assert result.exit_code == 2


class TestErrors:
    """Tests for fatal errors."""

    def test_missing_data(self, tmp_path):
        result = invoke("--data-dir", str(tmp_path / "empty"), "analyze")

        assert result.exit_code == 1
        assert "No OpenCode data found" in result.output

    def test_invalid_config(self, tmp_path):
        config_file = tmp_path / "bad.toml"
        config_file.write_text("[ui\n")

        result = invoke("--config", str(config_file), "analyze")

        assert result.exit_code == 1
        assert "Invalid configuration file" in result.output

    def test_version(self):
        result = invoke("--version")
        assert result.exit_code == 0
        assert "1.0.0" in result.output
