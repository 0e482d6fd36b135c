"""
Budget alert detection.

Raises an alert when a request pushes today's system spend across a
configured percentage of the daily budget, and when a user nears their
daily request allowance.
"""

import math
from datetime import datetime
from enum import Enum
from typing import List, Optional

from habitnex.config.loader import BudgetConfig
from habitnex.storage.models import UsageAlert

from .pricing import check_budget_thresholds

USER_LIMIT_ALERT_RATIO = 0.8


class AlertSeverity(Enum):
    """Severity levels for budget alerts."""
    WARNING = "warning"
    CRITICAL = "critical"
    EMERGENCY = "emergency"


_ALERT_TYPES = {
    AlertSeverity.WARNING: "budget_warning",
    AlertSeverity.CRITICAL: "budget_critical",
    AlertSeverity.EMERGENCY: "system_limit",
}


def _severity_for(cost: float, budget: float, config: BudgetConfig) -> Optional[AlertSeverity]:
    check = check_budget_thresholds(cost, budget, config)
    if check.is_emergency:
        return AlertSeverity.EMERGENCY
    if check.is_critical:
        return AlertSeverity.CRITICAL
    if check.is_warning:
        return AlertSeverity.WARNING
    return None


def _threshold_for(severity: AlertSeverity, config: BudgetConfig) -> float:
    if severity == AlertSeverity.EMERGENCY:
        return config.emergency_shutoff_percent
    if severity == AlertSeverity.CRITICAL:
        return config.alert_thresholds.critical
    return config.alert_thresholds.warning


def detect_budget_alerts(
    cost_before: float,
    cost_after: float,
    config: BudgetConfig,
    now: Optional[datetime] = None,
    endpoint: Optional[str] = None,
) -> List[UsageAlert]:
    """Detect daily budget levels crossed by a single request.

    An alert fires only for the request that moves spend from below a level
    to at-or-above it, so a day produces at most one alert per level.

    Args:
        cost_before: Today's system spend before the request
        cost_after: Today's system spend including the request
        config: Budget configuration
        now: Alert timestamp, defaults to the current time
        endpoint: Endpoint that triggered the check

    Returns:
        List of alerts, most severe first (empty if no level was crossed)
    """
    budget = config.daily
    before = _severity_for(cost_before, budget, config)
    after = _severity_for(cost_after, budget, config)
    if after is None or after == before:
        return []

    created_at = now or datetime.now()
    percentage = (cost_after / budget) * 100
    order = [AlertSeverity.WARNING, AlertSeverity.CRITICAL, AlertSeverity.EMERGENCY]
    start = order.index(before) + 1 if before is not None else 0
    crossed = order[start:order.index(after) + 1]

    alerts = []
    for severity in reversed(crossed):
        if severity == AlertSeverity.EMERGENCY:
            message = f"EMERGENCY: Daily budget exceeded by {percentage - 100:.1f}%"
        else:
            message = f"{severity.value.upper()}: Daily budget at {percentage:.1f}% usage"
        alerts.append(UsageAlert(
            created_at=created_at,
            alert_type=_ALERT_TYPES[severity],
            severity=severity.value,
            threshold_percent=_threshold_for(severity, config),
            current_percent=round(percentage, 2),
            amount=cost_after,
            budget=budget,
            message=message,
            endpoint=endpoint,
        ))
    return alerts


def detect_user_limit_alert(
    user_id: str,
    requests_today: int,
    daily_limit: int,
    now: Optional[datetime] = None,
    endpoint: Optional[str] = None,
) -> Optional[UsageAlert]:
    """Alert once when a user reaches 80% of their daily allowance."""
    trigger = math.ceil(daily_limit * USER_LIMIT_ALERT_RATIO)
    if requests_today != trigger:
        return None

    percentage = (requests_today / daily_limit) * 100
    return UsageAlert(
        created_at=now or datetime.now(),
        alert_type="user_limit",
        severity=AlertSeverity.WARNING.value,
        threshold_percent=USER_LIMIT_ALERT_RATIO * 100,
        current_percent=round(percentage, 2),
        amount=float(requests_today),
        budget=float(daily_limit),
        message=f"User approaching daily limit: {requests_today}/{daily_limit} requests",
        user_id=user_id,
        endpoint=endpoint,
    )
