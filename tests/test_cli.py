"""
Tests for the CLI interface.
"""
import os
import shutil
import sqlite3
import tempfile
from datetime import datetime
from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from habitnex.cli.main import EXIT_CODE_FAIL, EXIT_CODE_PASS, app
from habitnex.config.settings import get_settings
from habitnex.storage.models import UsageAlert, UsageRecord
from habitnex.storage.repository import (
    HabitRepository,
    initialize_schema,
    insert_usage_alert,
    insert_usage_record,
)

runner = CliRunner()


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch):
    """Clear cached settings and environment overrides around each test."""
    for name in (
        "HABITNEX_ENVIRONMENT", "ENVIRONMENT", "HABITNEX_AI_API_KEY", "OPENAI_API_KEY",
        "HABITNEX_DB_PATH", "HABITNEX_CONFIG_PATH",
    ):
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


class TestCLI:
    """Test CLI commands."""

    def setup_method(self):
        self.temp_dir = tempfile.mkdtemp()
        self.db_path = os.path.join(self.temp_dir, "test.db")

    def teardown_method(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def record(self, endpoint="enhance-habit", cost=0.0025, cached=False):
        insert_usage_record(UsageRecord(
            timestamp=datetime.now(),
            user_id="user-1",
            endpoint=endpoint,
            input_tokens=400,
            output_tokens=300,
            cost=cost,
            latency_ms=850,
            success=True,
            cached=cached,
        ), self.db_path)

    def test_no_subcommand(self):
        result = runner.invoke(app, [])

        assert result.exit_code == EXIT_CODE_PASS
        assert "Use --help" in result.output

    def test_init_creates_schema(self):
        result = runner.invoke(app, ["init", "--db", self.db_path])

        assert result.exit_code == EXIT_CODE_PASS
        assert "Database initialized successfully" in result.output
        conn = sqlite3.connect(self.db_path)
        tables = {row[0] for row in conn.execute("SELECT name FROM sqlite_master WHERE type='table'")}
        conn.close()
        assert "usage_record" in tables

    def test_init_failure(self):
        with patch("habitnex.cli.main.initialize_schema", side_effect=OSError("read-only")):
            result = runner.invoke(app, ["init", "--db", self.db_path])

        assert result.exit_code == EXIT_CODE_FAIL
        assert "read-only" in result.output

    def test_init_uses_settings_db_path(self, monkeypatch):
        monkeypatch.setenv("HABITNEX_DB_PATH", self.db_path)

        result = runner.invoke(app, ["init"])

        assert result.exit_code == EXIT_CODE_PASS
        assert os.path.exists(self.db_path)

    def test_status_ai_disabled(self):
        result = runner.invoke(app, ["status"])

        assert result.exit_code == EXIT_CODE_PASS
        assert "AI disabled" in result.output
        assert "$5.00 USD/day" in result.output
        assert "enhance-habit: 10 requests/day" in result.output

    def test_status_ai_enabled(self, monkeypatch):
        monkeypatch.setenv("HABITNEX_AI_API_KEY", "sk-test")

        result = runner.invoke(app, ["status"])

        assert "AI enabled" in result.output

    def test_status_invalid_config(self, monkeypatch):
        config_path = os.path.join(self.temp_dir, "limits.yaml")
        with open(config_path, "w", encoding="utf-8") as f:
            f.write("unknown: 1\n")
        monkeypatch.setenv("HABITNEX_CONFIG_PATH", config_path)

        result = runner.invoke(app, ["status"])

        assert result.exit_code == EXIT_CODE_FAIL
        assert "Invalid configuration" in result.output

    def test_usage_without_database(self):
        result = runner.invoke(app, ["usage", "--db", self.db_path])

        assert result.exit_code == EXIT_CODE_PASS
        assert "No usage data found" in result.output

    def test_usage_empty_ledger(self):
        initialize_schema(self.db_path)

        result = runner.invoke(app, ["usage", "--db", self.db_path])

        assert result.exit_code == EXIT_CODE_PASS
        assert "No usage data found" in result.output

    def test_usage_table(self):
        initialize_schema(self.db_path)
        self.record()
        self.record(cached=True, cost=0.0)
        self.record(endpoint="quick-insight", cost=0.0002)

        result = runner.invoke(app, ["usage", "--db", self.db_path, "--days", "7"])

        assert result.exit_code == EXIT_CODE_PASS
        assert "enhance-habit" in result.output
        assert "quick-insight" in result.output
        assert "850 ms" in result.output

    def test_alerts_none(self):
        initialize_schema(self.db_path)

        result = runner.invoke(app, ["alerts", "--db", self.db_path])

        assert result.exit_code == EXIT_CODE_PASS
        assert "No budget alerts" in result.output

    def test_alerts_listed(self):
        initialize_schema(self.db_path)
        insert_usage_alert(UsageAlert(
            created_at=datetime(2024, 3, 13, 10, 0),
            alert_type="budget_critical",
            severity="critical",
            threshold_percent=90.0,
            current_percent=92.0,
            amount=4.6,
            budget=5.0,
            message="CRITICAL: Daily budget at 92.0% usage",
        ), self.db_path)

        result = runner.invoke(app, ["alerts", "--db", self.db_path])

        assert result.exit_code == EXIT_CODE_PASS
        assert "CRITICAL: Daily budget at 92.0% usage" in result.output
        assert "2024-03-13 10:00" in result.output

    def test_seed_demo(self):
        result = runner.invoke(app, ["seed-demo", "--db", self.db_path, "--user", "demo-1", "--days", "10"])

        assert result.exit_code == EXIT_CODE_PASS
        assert "Seeded 4 habits" in result.output
        assert len(HabitRepository(self.db_path).get_user_habits("demo-1")) == 4

    def test_serve_runs_app_factory(self):
        with patch("uvicorn.run") as mock_run:
            result = runner.invoke(app, ["serve", "--port", "9000"])

        assert result.exit_code == EXIT_CODE_PASS
        mock_run.assert_called_once_with(
            "habitnex.api.main:create_app", factory=True, host="127.0.0.1", port=9000, reload=False
        )
