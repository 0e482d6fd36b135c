"""
Usage tracking for orchestrated AI requests.

Every request, successful or not, leaves one record in the append-only
ledger. Tracking must never fail the request it describes.
"""

import logging
from datetime import datetime, time
from typing import Callable, Dict, Optional

from habitnex.config.loader import AppConfig
from habitnex.storage.db import DEFAULT_DB_PATH
from habitnex.storage.models import UsageRecord
from habitnex.storage.repository import (
    UsageRepository,
    insert_usage_alert,
    insert_usage_record,
)

from .alerts import detect_budget_alerts, detect_user_limit_alert
from .pricing import calculate_cost
from .token_counter import TokenUsage

logger = logging.getLogger(__name__)


class UsageTracker:
    """Writes usage records and raises budget alerts.

    Args:
        config: Application configuration (token rates, budgets, limits)
        db_path: Path to SQLite database file
        clock: Callable returning the current local time
    """

    def __init__(
        self,
        config: AppConfig,
        db_path: str = DEFAULT_DB_PATH,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.config = config
        self.db_path = db_path
        self.repository = UsageRepository(db_path)
        self._clock = clock

    def track(
        self,
        user_id: str,
        endpoint: str,
        input_tokens: int,
        output_tokens: int,
        latency_ms: int,
        success: bool,
        error_code: Optional[str] = None,
        cached: bool = False,
        request_id: Optional[str] = None,
    ) -> str:
        """Append a usage record for one request.

        Args:
            user_id: Caller identity
            endpoint: Endpoint name
            input_tokens: Prompt tokens billed by the provider
            output_tokens: Completion tokens billed by the provider
            latency_ms: Wall-clock duration of the request
            success: Whether the request succeeded
            error_code: Short failure description for unsuccessful requests
            cached: Whether the response was served from cache
            request_id: Correlation id for the request

        Returns:
            The ledger row id, or ``tracking-failed-<timestamp>`` if the
            write failed. Never raises.
        """
        now = self._clock()
        try:
            cost = calculate_cost(TokenUsage(input_tokens, output_tokens), self.config.ai)
            cost_before = self.repository.get_cost_since(self._day_start(now))

            record = UsageRecord(
                timestamp=now,
                user_id=user_id,
                endpoint=endpoint,
                input_tokens=input_tokens,
                output_tokens=output_tokens,
                cost=cost,
                latency_ms=latency_ms,
                success=success,
                cached=cached,
                error_code=error_code,
                request_id=request_id,
            )
            row_id = insert_usage_record(record, self.db_path)
        except Exception:
            logger.exception(
                "Error tracking API usage",
                extra={"user_id": user_id, "endpoint": endpoint, "request_id": request_id},
            )
            return f"tracking-failed-{int(now.timestamp() * 1000)}"

        logger.debug(
            "Usage recorded",
            extra={
                "user_id": user_id,
                "endpoint": endpoint,
                "cost": cost,
                "success": success,
                "cached": cached,
            },
        )
        self._check_alerts(user_id, endpoint, cost_before, cost, now)
        return str(row_id)

    def _check_alerts(
        self,
        user_id: str,
        endpoint: str,
        cost_before: float,
        cost: float,
        now: datetime,
    ) -> None:
        try:
            alerts = []
            if cost > 0:
                alerts.extend(detect_budget_alerts(
                    cost_before, cost_before + cost, self.config.budget, now=now, endpoint=endpoint
                ))

            if endpoint in self.config.limits:
                requests_today = self.repository.get_usage_stats(
                    self._day_start(now), user_id=user_id, endpoint=endpoint
                )["total_requests"]
                user_alert = detect_user_limit_alert(
                    user_id, requests_today, self.config.get_limit(endpoint), now=now, endpoint=endpoint
                )
                if user_alert is not None:
                    alerts.append(user_alert)

            for alert in alerts:
                insert_usage_alert(alert, self.db_path)
                logger.warning(alert.message, extra={"alert_type": alert.alert_type})
        except Exception:
            logger.warning("Failed to check budget alerts", exc_info=True)

    def user_summary(self, user_id: str) -> Dict[str, Dict[str, float]]:
        """Today's usage for one user, overall and per configured endpoint."""
        day_start = self._day_start(self._clock())
        summary = {"total": self.repository.get_usage_stats(day_start, user_id=user_id)}
        for endpoint in self.config.limits:
            summary[endpoint] = self.repository.get_usage_stats(
                day_start, user_id=user_id, endpoint=endpoint
            )
        return summary

    @staticmethod
    def _day_start(now: datetime) -> datetime:
        return datetime.combine(now.date(), time.min)
