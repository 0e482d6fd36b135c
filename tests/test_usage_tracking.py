"""
Tests for usage tracking and alert persistence.
"""

import os
import tempfile
from datetime import datetime
from unittest.mock import patch

import pytest

from habitnex.config.loader import AppConfig, BudgetConfig
from habitnex.core.usage_tracking import UsageTracker
from habitnex.storage.repository import fetch_recent_usage_records, fetch_usage_alerts, initialize_schema

NOW = datetime(2024, 3, 10, 15, 0)


class TestUsageTracker:

    def setup_method(self):
        self.temp_dir = tempfile.mkdtemp()
        self.db_path = os.path.join(self.temp_dir, "test.db")
        initialize_schema(self.db_path)
        self.config = AppConfig(
            budget=BudgetConfig(daily=1.0),
            limits={"enhance-habit": 5, "mood-analysis": 10, "quick-insight": 25},
        )
        self.tracker = UsageTracker(self.config, self.db_path, clock=lambda: NOW)

    def teardown_method(self):
        import shutil
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_track_writes_record(self):
        record_id = self.tracker.track(
            "user-1", "enhance-habit", 400, 300, 850, True, request_id="enhance-habit-user-1-1"
        )

        assert record_id == "1"
        records = fetch_recent_usage_records(db_path=self.db_path)
        assert len(records) == 1
        record = records[0]
        assert record.timestamp == NOW
        assert record.cost == pytest.approx(0.000475)
        assert record.total_tokens == 700
        assert record.latency_ms == 850
        assert record.request_id == "enhance-habit-user-1-1"

    def test_track_failure_record(self):
        self.tracker.track("user-1", "enhance-habit", 0, 0, 12, False, error_code="Invalid response format from AI")

        record = fetch_recent_usage_records(db_path=self.db_path)[0]
        assert record.success is False
        assert record.cost == 0.0
        assert record.error_code == "Invalid response format from AI"

    def test_track_cached_record(self):
        self.tracker.track("user-1", "enhance-habit", 0, 0, 1, True, cached=True)

        record = fetch_recent_usage_records(db_path=self.db_path)[0]
        assert record.cached is True
        assert record.cost == 0.0

    def test_track_never_raises(self):
        with patch("habitnex.core.usage_tracking.insert_usage_record", side_effect=RuntimeError("disk full")):
            record_id = self.tracker.track("user-1", "enhance-habit", 10, 10, 5, True)

        assert record_id == f"tracking-failed-{int(NOW.timestamp() * 1000)}"

    def test_alert_check_failure_is_swallowed(self):
        with patch("habitnex.core.usage_tracking.detect_budget_alerts", side_effect=RuntimeError("boom")):
            record_id = self.tracker.track("user-1", "enhance-habit", 0, 1_000_000, 5, True)

        assert record_id == "1"

    def test_budget_alerts_raised_on_crossing(self):
        # 1M output tokens cost $1.25, 125% of the $1 daily budget
        self.tracker.track("user-1", "mood-analysis", 0, 1_000_000, 5, True)

        alerts = fetch_usage_alerts(db_path=self.db_path)
        assert {a.alert_type for a in alerts} == {"budget_warning", "budget_critical"}

        self.tracker.track("user-1", "mood-analysis", 0, 10, 5, True)
        assert len(fetch_usage_alerts(db_path=self.db_path)) == 2

    def test_user_limit_alert(self):
        for _ in range(4):
            self.tracker.track("user-1", "enhance-habit", 0, 0, 5, True)

        alerts = fetch_usage_alerts(db_path=self.db_path)
        assert len(alerts) == 1
        assert alerts[0].alert_type == "user_limit"
        assert alerts[0].message == "User approaching daily limit: 4/5 requests"

    def test_user_summary(self):
        self.tracker.track("user-1", "enhance-habit", 100, 100, 5, True)
        self.tracker.track("user-1", "quick-insight", 0, 0, 5, True, cached=True)
        self.tracker.track("user-2", "quick-insight", 0, 0, 5, True)

        summary = self.tracker.user_summary("user-1")

        assert summary["total"]["total_requests"] == 2
        assert summary["enhance-habit"]["total_requests"] == 1
        assert summary["quick-insight"]["cached_requests"] == 1
        assert summary["mood-analysis"]["total_requests"] == 0
