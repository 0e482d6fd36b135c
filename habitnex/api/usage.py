"""Usage reporting routes: per-user usage, budget alerts and system analytics."""

import logging
import re
from datetime import date, datetime, time, timedelta
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse

from habitnex.api.auth import get_user_id
from habitnex.config.settings import AppSettings
from habitnex.core.orchestrator import Orchestrator
from habitnex.core.pricing import check_budget_thresholds, format_cost
from habitnex.storage.models import UsageAlert
from habitnex.storage.repository import (
    UsageRepository,
    dismiss_usage_alert,
    fetch_usage_alerts,
    get_usage_alert,
    insert_usage_alert,
    set_alert_acknowledged,
)

logger = logging.getLogger(__name__)

usage = APIRouter(prefix="/api/usage")

ALERT_TYPES = ("budget_warning", "budget_critical", "user_limit", "system_limit", "unusual_usage")
ADMIN_ALERT_TYPES = {"budget_critical", "system_limit"}

_ALERT_SEVERITY = {
    "budget_warning": "warning",
    "budget_critical": "critical",
    "user_limit": "warning",
    "system_limit": "emergency",
    "unusual_usage": "warning",
}
_CATEGORY_TYPES = {
    "critical": {"budget_critical", "system_limit"},
    "warning": {"budget_warning", "user_limit"},
    "info": {"unusual_usage"},
}
_DAY_PATTERN = re.compile(r"\d{4}-\d{2}-\d{2}", re.ASCII)
MAX_ALERT_LIMIT = 100


def _settings(request: Request) -> AppSettings:
    return request.app.state.settings


def _orchestrator(request: Request) -> Orchestrator:
    return request.app.state.orchestrator


def _error(message: str, status_code: int) -> JSONResponse:
    return JSONResponse({"success": False, "error": message}, status_code=status_code)


def _unauthenticated() -> JSONResponse:
    return _error("Authentication required", 401)


def alert_to_dict(alert: UsageAlert) -> Dict[str, Any]:
    return {
        "id": alert.id,
        "type": alert.alert_type,
        "severity": alert.severity,
        "message": alert.message,
        "threshold": alert.threshold_percent,
        "currentValue": alert.current_percent,
        "amount": alert.amount,
        "budget": alert.budget,
        "userId": alert.user_id,
        "endpoint": alert.endpoint,
        "acknowledged": alert.acknowledged,
        "timestamp": alert.created_at.isoformat(),
    }


def _can_access(alert: UsageAlert, user_id: str, settings: AppSettings) -> bool:
    """Admins see everything; users see their own alerts and system-wide ones."""
    return settings.is_admin(user_id) or alert.user_id is None or alert.user_id == user_id


def _parse_flag(value: Optional[str]) -> Optional[bool]:
    if value is None:
        return None
    lowered = value.strip().lower()
    if lowered in ("true", "1", "yes"):
        return True
    if lowered in ("false", "0", "no"):
        return False
    raise ValueError(value)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


@usage.get("/me")
def usage_me(
    user_id: Optional[str] = Depends(get_user_id),
    orch: Orchestrator = Depends(_orchestrator),
):
    if not user_id:
        return _unauthenticated()
    return orch.usage_summary(user_id)


@usage.get("/alerts")
def list_alerts(
    request: Request,
    scope: str = Query(default="user", alias="type"),
    acknowledged: Optional[str] = None,
    limit: int = 50,
    user_id: Optional[str] = Depends(get_user_id),
):
    """List alerts for the caller (``type=user``) or for everyone (``type=system``)."""
    if not user_id:
        return _unauthenticated()
    settings = _settings(request)
    if scope not in ("user", "system"):
        return _error("type must be 'user' or 'system'", 400)
    if scope == "system" and not settings.is_admin(user_id):
        return _error("Admin access required for system alerts", 403)
    try:
        acknowledged_filter = _parse_flag(acknowledged)
    except ValueError:
        return _error("acknowledged must be true or false", 400)

    alerts = fetch_usage_alerts(
        limit=max(1, min(limit, MAX_ALERT_LIMIT)),
        db_path=settings.db_path,
        user_id=user_id if scope == "user" else None,
        acknowledged=acknowledged_filter,
    )
    categorized = {
        category: [alert_to_dict(a) for a in alerts if a.alert_type in types]
        for category, types in _CATEGORY_TYPES.items()
    }
    return {
        "success": True,
        "data": {
            "alerts": [alert_to_dict(a) for a in alerts],
            "categorized": categorized,
            "summary": {
                "total": len(alerts),
                "critical": len(categorized["critical"]),
                "warning": len(categorized["warning"]),
                "info": len(categorized["info"]),
                "unresolved": sum(1 for a in alerts if not a.acknowledged),
            },
        },
        "timestamp": datetime.now().isoformat(),
    }


@usage.post("/alerts")
async def create_alert(request: Request, user_id: Optional[str] = Depends(get_user_id)):
    if not user_id:
        return _unauthenticated()
    settings = _settings(request)
    try:
        body = await request.json()
    except ValueError:
        return _error("Invalid JSON body", 400)
    if not isinstance(body, dict):
        return _error("Request body must be a JSON object", 400)

    alert_type = body.get("type")
    message = body.get("message")
    threshold = body.get("threshold")
    current_value = body.get("currentValue")
    if not alert_type or not message or threshold is None or current_value is None:
        return _error("Missing required fields: type, message, threshold, currentValue", 400)
    if alert_type not in ALERT_TYPES:
        return _error("Invalid alert type", 400)
    if not isinstance(message, str) or not _is_number(threshold) or not _is_number(current_value):
        return _error("message must be a string; threshold and currentValue must be numbers", 400)
    if alert_type in ADMIN_ALERT_TYPES and not settings.is_admin(user_id):
        return _error("Admin access required for system alerts", 403)

    target_user = body.get("targetUserId") or (user_id if "user" in alert_type else None)
    alert = UsageAlert(
        created_at=datetime.now(),
        alert_type=alert_type,
        severity=_ALERT_SEVERITY[alert_type],
        threshold_percent=float(threshold),
        current_percent=float(current_value),
        amount=float(current_value),
        budget=float(threshold),
        message=message,
        user_id=target_user,
        endpoint=body.get("endpoint"),
    )
    alert_id = insert_usage_alert(alert, settings.db_path)
    logger.info(
        "Alert created",
        extra={"alert_id": alert_id, "alert_type": alert_type, "created_by": user_id},
    )
    return {
        "success": True,
        "data": alert_to_dict(get_usage_alert(alert_id, settings.db_path)),
        "message": "Alert created successfully",
    }


@usage.get("/alerts/{alert_id}")
def get_alert(alert_id: int, request: Request, user_id: Optional[str] = Depends(get_user_id)):
    if not user_id:
        return _unauthenticated()
    settings = _settings(request)
    alert = get_usage_alert(alert_id, settings.db_path)
    if alert is None:
        return _error("Alert not found", 404)
    if not _can_access(alert, user_id, settings):
        return _error("Access denied", 403)
    return {"success": True, "data": alert_to_dict(alert)}


@usage.patch("/alerts/{alert_id}")
async def update_alert(alert_id: int, request: Request, user_id: Optional[str] = Depends(get_user_id)):
    """Only the acknowledged flag is writable."""
    if not user_id:
        return _unauthenticated()
    settings = _settings(request)
    try:
        body = await request.json()
    except ValueError:
        return _error("Invalid JSON body", 400)
    if not isinstance(body, dict) or set(body) != {"acknowledged"} or not isinstance(body["acknowledged"], bool):
        return _error("Body must be {\"acknowledged\": true|false}", 400)

    alert = get_usage_alert(alert_id, settings.db_path)
    if alert is None:
        return _error("Alert not found", 404)
    if not _can_access(alert, user_id, settings):
        return _error("Access denied", 403)

    set_alert_acknowledged(alert_id, body["acknowledged"], settings.db_path)
    return {
        "success": True,
        "data": alert_to_dict(get_usage_alert(alert_id, settings.db_path)),
        "message": "Alert updated successfully",
    }


@usage.delete("/alerts/{alert_id}")
def delete_alert(alert_id: int, request: Request, user_id: Optional[str] = Depends(get_user_id)):
    """Dismiss an alert. The row is kept for audit."""
    settings = _settings(request)
    if not settings.is_admin(user_id):
        return _error("Admin access required", 403)
    if not dismiss_usage_alert(alert_id, user_id, db_path=settings.db_path):
        return _error("Alert not found", 404)
    logger.info("Alert dismissed", extra={"alert_id": alert_id, "dismissed_by": user_id})
    return {"success": True, "message": "Alert deleted successfully"}


def _endpoint_summary(rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return [
        {
            "endpoint": row["endpoint"],
            "requests": row["requests"],
            "cachedRequests": row["cached_requests"],
            "cost": format_cost(row["cost"]),
            "avgResponseTime": round(row["avg_latency_ms"]),
        }
        for row in rows[:5]
    ]


@usage.get("/analytics/system")
def system_analytics(
    request: Request,
    day_param: Optional[str] = Query(default=None, alias="date"),
    user_id: Optional[str] = Depends(get_user_id),
    orch: Orchestrator = Depends(_orchestrator),
):
    """System-wide usage for one day (default today), admin only."""
    settings = _settings(request)
    if not settings.is_admin(user_id):
        return _error("Admin access required", 403)

    if day_param is None:
        day = date.today()
    elif _DAY_PATTERN.fullmatch(day_param):
        try:
            day = date.fromisoformat(day_param)
        except ValueError:
            return _error("date must be in YYYY-MM-DD format", 400)
    else:
        return _error("date must be in YYYY-MM-DD format", 400)

    start = datetime.combine(day, time.min)
    end = start + timedelta(days=1)
    repository = UsageRepository(settings.db_path)
    stats = repository.get_usage_stats(start, until=end)
    if not stats["total_requests"]:
        return {
            "success": True,
            "data": {
                "systemStats": None,
                "hasData": False,
                "message": f"No system usage data found for {day.isoformat()}",
            },
        }

    budget = orch.config.budget
    check = check_budget_thresholds(stats["total_cost"], budget.daily, budget)
    requests = stats["total_requests"]
    return {
        "success": True,
        "data": {
            "systemStats": {**stats, "date": day.isoformat()},
            "hasData": True,
            "summary": {
                "date": day.isoformat(),
                "totalUsers": stats["unique_users"],
                "totalRequests": requests,
                "cachedRequests": stats["cached_requests"],
                "totalCost": format_cost(stats["total_cost"]),
                "avgCostPerRequest": format_cost(stats["total_cost"] / requests),
                "avgTokensPerRequest": round(stats["total_tokens"] / requests),
                "successRate": round(stats["success_rate"], 2),
                "avgResponseTime": round(stats["avg_latency_ms"]),
                "budgetStatus": {
                    "dailyBudget": format_cost(budget.daily),
                    "spent": format_cost(stats["total_cost"]),
                    "percentage": round(check.percentage, 2),
                    "remaining": format_cost(max(budget.daily - stats["total_cost"], 0.0)),
                    "isWarning": check.is_warning,
                    "isCritical": check.is_critical,
                    "isEmergency": check.is_emergency,
                },
                "topEndpoints": _endpoint_summary(repository.get_endpoint_breakdown(start, until=end)),
            },
        },
        "timestamp": datetime.now().isoformat(),
    }
