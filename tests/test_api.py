"""
Tests for the HTTP routes.

The orchestrator is built against a temporary ledger with a mocked model
client, then injected into the app.
"""

import json
import os
import shutil
import tempfile
from datetime import date, datetime
from unittest.mock import AsyncMock, Mock

from fastapi.testclient import TestClient

from habitnex.api.auth import LOCAL_DEV_USER
from habitnex.api.main import create_app
from habitnex.config.loader import AppConfig
from habitnex.config.settings import AppSettings
from habitnex.core.guardrails import QuotaGuard
from habitnex.core.orchestrator import Orchestrator
from habitnex.core.prompts import COMMON_HABITS
from habitnex.core.usage_tracking import UsageTracker
from habitnex.sdk.openai_client import AICompletion
from habitnex.storage.models import UsageAlert, UsageRecord
from habitnex.storage.repository import (
    HabitRepository,
    UsageRepository,
    fetch_recent_usage_records,
    fetch_usage_alerts,
    initialize_schema,
    insert_usage_alert,
    insert_usage_record,
)

ENHANCEMENT = {
    "description": "Toss and catch three balls",
    "healthBenefits": "Improves coordination.",
    "mentalBenefits": "Builds focus.",
    "longTermBenefits": "Keeps the mind sharp.",
    "difficulty": "medium",
    "tip": "Start with two balls.",
    "complementary": ["Stretching"],
}


class APITestCase:
    """Temporary ledger plus an app factory per environment."""

    def setup_method(self):
        self.temp_dir = tempfile.mkdtemp()
        self.db_path = os.path.join(self.temp_dir, "test.db")
        initialize_schema(self.db_path)
        self.ai = Mock()
        self.ai.complete = AsyncMock(return_value=AICompletion(
            text=json.dumps(ENHANCEMENT), input_tokens=400, output_tokens=300, latency_ms=850,
        ))

    def teardown_method(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def client(self, environment="development", ai_client="default", admin_user_ids=(), settings=None):
        config = AppConfig()
        settings = settings or AppSettings(
            _env_file=None,
            environment=environment,
            db_path=self.db_path,
            log_level="WARNING",
            log_format="text",
            admin_user_ids=list(admin_user_ids),
        )
        orchestrator = Orchestrator(
            config=config,
            ai_client=self.ai if ai_client == "default" else ai_client,
            tracker=UsageTracker(config, self.db_path),
            quota=QuotaGuard(config, UsageRepository(self.db_path)),
            habit_repository=HabitRepository(self.db_path),
            rng=lambda: 0.99,
        )
        return TestClient(create_app(settings=settings, orchestrator=orchestrator))


class TestHealthAndErrors(APITestCase):

    def test_health(self):
        response = self.client().get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "ok"}

    def test_invalid_json_body(self):
        response = self.client().post(
            "/api/ai/enhance-habit",
            content=b"{not json",
            headers={"content-type": "application/json", "x-user-id": "user-1"},
        )

        assert response.status_code == 400
        assert response.json() == {"success": False, "error": "Invalid JSON body"}

    def test_empty_body_is_invalid_input(self):
        response = self.client().post("/api/ai/enhance-habit", headers={"x-user-id": "user-1"})

        assert response.status_code == 400
        assert response.json() == {"success": False, "error": "Habit name is required"}

    def test_ai_disabled(self):
        response = self.client(ai_client=None).post(
            "/api/ai/enhance-habit", json={"habitName": "Juggling"}, headers={"x-user-id": "user-1"}
        )

        assert response.status_code == 503
        assert response.json()["success"] is False


class TestAuthentication(APITestCase):

    def test_header_identifies_caller(self):
        response = self.client(environment="production").post(
            "/api/ai/enhance-habit", json={"habitName": "Meditation"}, headers={"x-user-id": "user-1"}
        )

        assert response.status_code == 200
        body = response.json()
        assert body["cached"] is True
        assert body["data"] == COMMON_HABITS["meditation"]
        assert fetch_recent_usage_records(db_path=self.db_path)[0].user_id == "user-1"
        self.ai.complete.assert_not_awaited()

    def test_development_falls_back_to_local_user(self):
        response = self.client().post("/api/ai/enhance-habit", json={"habitName": "Meditation"})

        assert response.status_code == 200
        assert fetch_recent_usage_records(db_path=self.db_path)[0].user_id == LOCAL_DEV_USER

    def test_production_requires_user(self):
        client = self.client(environment="production")

        for path, body in [
            ("/api/ai/enhance-habit", {"habitName": "Meditation"}),
            ("/api/ai/mood-analysis", {"startDate": "2024-03-01", "endDate": "2024-03-10"}),
            ("/api/ai/quick-insight", {"habitName": "Reading", "streak": 0, "completionRate": 0}),
            ("/api/ai/recommend-habits", {"existingHabits": ["Reading"]}),
        ]:
            response = client.post(path, json=body)
            assert response.status_code == 401
            assert response.json() == {"success": False, "error": "Authentication required"}

        assert fetch_recent_usage_records(db_path=self.db_path) == []

    def test_unset_environment_requires_user(self, monkeypatch):
        for name in ("HABITNEX_ENVIRONMENT", "ENVIRONMENT"):
            monkeypatch.delenv(name, raising=False)
        settings = AppSettings(_env_file=None, db_path=self.db_path, log_level="WARNING", log_format="text")

        response = self.client(settings=settings).post("/api/ai/enhance-habit", json={"habitName": "Meditation"})

        assert settings.environment == "production"
        assert response.status_code == 401
        assert fetch_recent_usage_records(db_path=self.db_path) == []


class TestAIRoutes(APITestCase):

    def test_enhance_novel_habit(self):
        response = self.client().post(
            "/api/ai/enhance-habit", json={"habitName": "Juggling"}, headers={"x-user-id": "user-1"}
        )

        assert response.status_code == 200
        body = response.json()
        assert body["cached"] is False
        assert body["data"] == ENHANCEMENT
        assert body["usage"]["totalTokens"] == 700
        assert body["usage"]["remainingRequests"] == 9

    def test_quick_insight_template(self):
        response = self.client().post(
            "/api/ai/quick-insight",
            json={"habitName": "Reading", "streak": 0, "completionRate": 0},
            headers={"x-user-id": "user-1"},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["method"] == "template"
        assert "Reading" in body["insight"]
        self.ai.complete.assert_not_awaited()

    def test_mood_analysis_without_data(self):
        response = self.client().post(
            "/api/ai/mood-analysis",
            json={"startDate": "2024-03-01", "endDate": "2024-03-10"},
            headers={"x-user-id": "user-1"},
        )

        assert response.status_code == 404
        assert "No mood data found" in response.json()["error"]

    def test_mood_analysis_bad_range(self):
        response = self.client().post(
            "/api/ai/mood-analysis",
            json={"startDate": "2024-03-01", "endDate": "2024-03-03"},
            headers={"x-user-id": "user-1"},
        )

        assert response.status_code == 400
        assert response.json()["error"] == "Minimum 7 days of data required for meaningful analysis"

    def test_recommend_habits(self):
        self.ai.complete.return_value = AICompletion(
            text='["Stretching", "Walking", "Journaling"]', input_tokens=60, output_tokens=20, latency_ms=300,
        )

        response = self.client().post(
            "/api/ai/recommend-habits",
            json={"existingHabits": ["Reading"], "userGoals": "Sleep better"},
            headers={"x-user-id": "user-1"},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["recommendations"] == ["Stretching", "Walking", "Journaling"]
        assert body["count"] == 3
        assert body["usage"]["remainingRequests"] == 9

    def test_recommend_habits_requires_list(self):
        response = self.client().post(
            "/api/ai/recommend-habits", json={"existingHabits": "Reading"}, headers={"x-user-id": "user-1"}
        )

        assert response.status_code == 400
        assert response.json() == {"success": False, "error": "existingHabits must be an array"}


class TestInfoRoutes(APITestCase):

    def test_enhance_habit_info(self):
        body = self.client().get("/api/ai/enhance-habit").json()

        assert body["api"] == "Habit Enhancement"
        assert body["enabled"] is True
        assert body["rateLimit"]["dailyLimit"] == 10

    def test_mood_analysis_info(self):
        body = self.client(ai_client=None).get("/api/ai/mood-analysis").json()

        assert body["enabled"] is True
        assert body["aiInsights"] is False
        assert body["requirements"]["minimumDays"] == 7
        assert body["requirements"]["maximumDays"] == 90

    def test_cache_stats(self):
        client = self.client()
        client.post("/api/ai/enhance-habit", json={"habitName": "Meditation"})

        body = client.get("/api/ai/cache-stats").json()

        assert body["success"] is True
        assert body["cache"]["staticEntries"] == len(COMMON_HABITS)
        assert body["cache"]["stats"]["cacheHits"] == 1
        assert set(body["rateLimits"]) == {"enhance-habit", "mood-analysis", "quick-insight", "recommend-habits"}

    def test_usage_me(self):
        client = self.client()
        client.post("/api/ai/enhance-habit", json={"habitName": "Meditation"}, headers={"x-user-id": "user-1"})

        body = client.get("/api/usage/me", headers={"x-user-id": "user-1"}).json()

        assert body["success"] is True
        assert body["userId"] == "user-1"
        assert body["today"]["total_requests"] == 1
        assert body["endpoints"]["enhance-habit"]["remainingRequests"] == 9

    def test_usage_me_requires_user(self):
        response = self.client(environment="production").get("/api/usage/me")

        assert response.status_code == 401


class TestUsageAlerts(APITestCase):

    def add_alert(self, user_id=None, alert_type="budget_warning", severity="warning"):
        return insert_usage_alert(UsageAlert(
            created_at=datetime(2024, 3, 13, 9),
            alert_type=alert_type,
            severity=severity,
            threshold_percent=75.0,
            current_percent=80.0,
            amount=4.0,
            budget=5.0,
            message=f"{alert_type} alert",
            user_id=user_id,
        ), self.db_path)

    def user(self, user_id="user-1"):
        return {"x-user-id": user_id}

    def test_requires_user(self):
        client = self.client(environment="production")

        assert client.get("/api/usage/alerts").status_code == 401
        assert client.post("/api/usage/alerts", json={}).status_code == 401
        assert client.get("/api/usage/alerts/1").status_code == 401

    def test_list_own_alerts(self):
        self.add_alert(user_id="user-1", alert_type="user_limit")
        self.add_alert(user_id="user-2", alert_type="user_limit")
        self.add_alert()

        body = self.client(environment="production").get("/api/usage/alerts", headers=self.user()).json()

        assert body["success"] is True
        assert [a["userId"] for a in body["data"]["alerts"]] == ["user-1"]
        assert body["data"]["summary"] == {"total": 1, "critical": 0, "warning": 1, "info": 0, "unresolved": 1}

    def test_system_alerts_admin_only(self):
        self.add_alert(user_id="user-1", alert_type="user_limit")
        self.add_alert(alert_type="system_limit", severity="emergency")
        self.add_alert(alert_type="unusual_usage")
        client = self.client(environment="production", admin_user_ids=["ops-admin"])

        denied = client.get("/api/usage/alerts?type=system", headers=self.user())
        body = client.get("/api/usage/alerts?type=system", headers=self.user("ops-admin")).json()

        assert denied.status_code == 403
        assert denied.json()["error"] == "Admin access required for system alerts"
        summary = body["data"]["summary"]
        assert summary == {"total": 3, "critical": 1, "warning": 1, "info": 1, "unresolved": 3}
        assert body["data"]["categorized"]["critical"][0]["type"] == "system_limit"

    def test_list_filters(self):
        client = self.client(environment="production")
        acknowledged = self.add_alert(user_id="user-1", alert_type="user_limit")
        self.add_alert(user_id="user-1", alert_type="user_limit")
        client.patch(f"/api/usage/alerts/{acknowledged}", json={"acknowledged": True}, headers=self.user())

        body = client.get("/api/usage/alerts?acknowledged=false", headers=self.user()).json()

        assert body["data"]["summary"]["total"] == 1
        assert client.get("/api/usage/alerts?acknowledged=maybe", headers=self.user()).status_code == 400
        assert client.get("/api/usage/alerts?type=everyone", headers=self.user()).status_code == 400

    def test_create_user_alert(self):
        response = self.client(environment="production").post(
            "/api/usage/alerts",
            json={"type": "user_limit", "message": "Close to limit", "threshold": 80, "currentValue": 85},
            headers=self.user(),
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["userId"] == "user-1"
        assert data["severity"] == "warning"
        assert data["acknowledged"] is False
        assert fetch_usage_alerts(db_path=self.db_path)[0].id == data["id"]

    def test_create_validation(self):
        client = self.client(environment="production", admin_user_ids=["ops-admin"])
        base = {"message": "Spend spike", "threshold": 90, "currentValue": 95}

        missing = client.post("/api/usage/alerts", json={"type": "budget_warning"}, headers=self.user())
        invalid = client.post("/api/usage/alerts", json={**base, "type": "surprise"}, headers=self.user())
        wrong_type = client.post(
            "/api/usage/alerts", json={**base, "type": "budget_warning", "threshold": "90"}, headers=self.user()
        )
        forbidden = client.post("/api/usage/alerts", json={**base, "type": "budget_critical"}, headers=self.user())
        admin = client.post("/api/usage/alerts", json={**base, "type": "system_limit"}, headers=self.user("ops-admin"))

        assert missing.status_code == 400
        assert missing.json()["error"] == "Missing required fields: type, message, threshold, currentValue"
        assert invalid.status_code == 400
        assert invalid.json()["error"] == "Invalid alert type"
        assert wrong_type.status_code == 400
        assert forbidden.status_code == 403
        assert admin.status_code == 200
        assert admin.json()["data"]["severity"] == "emergency"
        assert admin.json()["data"]["userId"] is None

    def test_get_alert_access(self):
        own = self.add_alert(user_id="user-1", alert_type="user_limit")
        other = self.add_alert(user_id="user-2", alert_type="user_limit")
        system = self.add_alert()
        client = self.client(environment="production", admin_user_ids=["ops-admin"])

        assert client.get(f"/api/usage/alerts/{own}", headers=self.user()).json()["data"]["id"] == own
        assert client.get(f"/api/usage/alerts/{system}", headers=self.user()).status_code == 200
        denied = client.get(f"/api/usage/alerts/{other}", headers=self.user())
        assert denied.status_code == 403
        assert denied.json() == {"success": False, "error": "Access denied"}
        assert client.get(f"/api/usage/alerts/{other}", headers=self.user("ops-admin")).status_code == 200
        missing = client.get("/api/usage/alerts/9999", headers=self.user())
        assert missing.status_code == 404
        assert missing.json()["error"] == "Alert not found"

    def test_acknowledge_alert(self):
        own = self.add_alert(user_id="user-1", alert_type="user_limit")
        other = self.add_alert(user_id="user-2", alert_type="user_limit")
        client = self.client(environment="production")

        response = client.patch(f"/api/usage/alerts/{own}", json={"acknowledged": True}, headers=self.user())

        assert response.status_code == 200
        assert response.json()["data"]["acknowledged"] is True
        assert fetch_usage_alerts(db_path=self.db_path, acknowledged=True)[0].id == own
        assert client.patch(
            f"/api/usage/alerts/{own}", json={"message": "rewritten"}, headers=self.user()
        ).status_code == 400
        assert client.patch(
            f"/api/usage/alerts/{other}", json={"acknowledged": True}, headers=self.user()
        ).status_code == 403
        assert client.patch(
            "/api/usage/alerts/9999", json={"acknowledged": True}, headers=self.user()
        ).status_code == 404

    def test_delete_is_admin_only_and_hides_alert(self):
        alert_id = self.add_alert(user_id="user-1", alert_type="user_limit")
        client = self.client(environment="production", admin_user_ids=["ops-admin"])

        denied = client.delete(f"/api/usage/alerts/{alert_id}", headers=self.user())
        deleted = client.delete(f"/api/usage/alerts/{alert_id}", headers=self.user("ops-admin"))

        assert denied.status_code == 403
        assert denied.json()["error"] == "Admin access required"
        assert deleted.status_code == 200
        assert deleted.json()["message"] == "Alert deleted successfully"
        assert client.get(f"/api/usage/alerts/{alert_id}", headers=self.user()).status_code == 404
        assert fetch_usage_alerts(db_path=self.db_path) == []
        assert client.delete(f"/api/usage/alerts/{alert_id}", headers=self.user("ops-admin")).status_code == 404

    def test_local_user_is_admin_in_development(self):
        alert_id = self.add_alert(user_id="user-2", alert_type="user_limit")

        response = self.client().delete(f"/api/usage/alerts/{alert_id}")

        assert response.status_code == 200


class TestSystemAnalytics(APITestCase):

    def add_record(self, user_id, endpoint, cost, day=13, success=True):
        insert_usage_record(UsageRecord(
            timestamp=datetime(2024, 3, day, 9),
            user_id=user_id,
            endpoint=endpoint,
            input_tokens=100,
            output_tokens=50,
            cost=cost,
            latency_ms=500,
            success=success,
        ), self.db_path)

    def admin_client(self):
        return self.client(environment="production", admin_user_ids=["ops-admin"])

    def test_admin_only(self):
        client = self.admin_client()

        assert client.get("/api/usage/analytics/system", headers={"x-user-id": "user-1"}).status_code == 403
        response = client.get("/api/usage/analytics/system")
        assert response.status_code == 403
        assert response.json() == {"success": False, "error": "Admin access required"}

    def test_no_data(self):
        body = self.admin_client().get(
            "/api/usage/analytics/system?date=2024-03-13", headers={"x-user-id": "ops-admin"}
        ).json()

        assert body["success"] is True
        assert body["data"]["hasData"] is False
        assert body["data"]["message"] == "No system usage data found for 2024-03-13"

    def test_daily_summary(self):
        self.add_record("user-1", "enhance-habit", 0.5)
        self.add_record("user-1", "quick-insight", 0.5)
        self.add_record("user-2", "enhance-habit", 3.0)
        self.add_record("user-2", "enhance-habit", 9.0, day=14)

        body = self.admin_client().get(
            "/api/usage/analytics/system?date=2024-03-13", headers={"x-user-id": "ops-admin"}
        ).json()

        assert body["data"]["hasData"] is True
        summary = body["data"]["summary"]
        assert summary["totalUsers"] == 2
        assert summary["totalRequests"] == 3
        assert summary["totalCost"] == "$4.00 USD"
        assert summary["successRate"] == 100.0
        assert summary["avgTokensPerRequest"] == 150
        assert summary["budgetStatus"] == {
            "dailyBudget": "$5.00 USD",
            "spent": "$4.00 USD",
            "percentage": 80.0,
            "remaining": "$1.00 USD",
            "isWarning": True,
            "isCritical": False,
            "isEmergency": False,
        }
        assert [e["endpoint"] for e in summary["topEndpoints"]] == ["enhance-habit", "quick-insight"]
        assert summary["topEndpoints"][0]["requests"] == 2

    def test_defaults_to_today(self):
        body = self.admin_client().get(
            "/api/usage/analytics/system", headers={"x-user-id": "ops-admin"}
        ).json()

        assert body["data"]["message"] == f"No system usage data found for {date.today().isoformat()}"

    def test_rejects_malformed_date(self):
        client = self.admin_client()

        for value in ("2024-W11-3", "20240313", "2024-02-30"):
            response = client.get(f"/api/usage/analytics/system?date={value}", headers={"x-user-id": "ops-admin"})
            assert response.status_code == 400
