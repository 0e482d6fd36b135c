"""
Quota guardrails for AI endpoints.

Implements per-user request limits and system spending ceilings.

Enforcement Order:
1. Per-endpoint daily request limit - Caps how often one user can call the model
2. Daily system budget - Stops all AI spend once today's budget is used up
3. Monthly emergency shutoff - Stops AI spend at a multiple of the monthly budget
"""

import logging
from dataclasses import dataclass
from datetime import datetime, time
from typing import Callable, Dict, Optional

from habitnex.config.loader import AppConfig
from habitnex.storage.repository import UsageRepository

from .errors import ErrorKind, HabitNexError
from .rate_limiter import RateLimiter

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QuotaDecision:
    """Outcome of a quota check."""
    allowed: bool
    remaining_requests: int
    reset_time: datetime
    kind: Optional[ErrorKind] = None
    reason: Optional[str] = None

    def to_error(self) -> HabitNexError:
        """Build the client-facing error for a denied request."""
        return HabitNexError(
            self.reason or "Request denied",
            self.kind or ErrorKind.RATE_LIMITED,
            extra={
                "resetTime": self.reset_time.isoformat(),
                "remainingRequests": self.remaining_requests,
            },
        )


class QuotaGuard:
    """Holds one RateLimiter per endpoint and checks budget ceilings.

    Args:
        config: Application configuration (limits and budgets)
        repository: Usage ledger used for the budget ceilings; None skips them
        clock: Callable returning the current local time
    """

    def __init__(
        self,
        config: AppConfig,
        repository: Optional[UsageRepository] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.config = config
        self.repository = repository
        self._clock = clock
        self._limiters: Dict[str, RateLimiter] = {}

    def limiter(self, endpoint: str) -> RateLimiter:
        if endpoint not in self._limiters:
            self._limiters[endpoint] = RateLimiter(clock=self._clock)
        return self._limiters[endpoint]

    def daily_limit(self, endpoint: str) -> int:
        return self.config.get_limit(endpoint)

    def remaining(self, user_id: str, endpoint: str) -> int:
        return self.limiter(endpoint).remaining(user_id, self.daily_limit(endpoint))

    def reset_time(self, endpoint: str) -> datetime:
        return self.limiter(endpoint).reset_time()

    def check(self, user_id: str, endpoint: str) -> QuotaDecision:
        """Admit or deny one request, counting it against the user's allowance.

        Args:
            user_id: Caller identity
            endpoint: Endpoint name, e.g. ``enhance-habit``

        Returns:
            QuotaDecision; ``remaining_requests`` already accounts for this request
        """
        limit = self.daily_limit(endpoint)
        limiter = self.limiter(endpoint)
        reset_time = limiter.reset_time()

        if not limiter.allow(user_id, limit):
            logger.info(
                "Rate limit reached",
                extra={"user_id": user_id, "endpoint": endpoint, "daily_limit": limit},
            )
            return QuotaDecision(
                allowed=False,
                remaining_requests=0,
                reset_time=reset_time,
                kind=ErrorKind.RATE_LIMITED,
                reason=f"Daily AI limit reached ({limit} requests). Resets at midnight.",
            )

        remaining = limiter.remaining(user_id, limit)
        budget_reason = self._check_budget()
        if budget_reason is not None:
            return QuotaDecision(
                allowed=False,
                remaining_requests=remaining,
                reset_time=reset_time,
                kind=ErrorKind.BUDGET_EXCEEDED,
                reason=budget_reason,
            )

        return QuotaDecision(allowed=True, remaining_requests=remaining, reset_time=reset_time)

    def enforce(self, user_id: str, endpoint: str) -> QuotaDecision:
        """Like check(), but raise for a denied request.

        Raises:
            HabitNexError: With kind RATE_LIMITED or BUDGET_EXCEEDED
        """
        decision = self.check(user_id, endpoint)
        if not decision.allowed:
            raise decision.to_error()
        return decision

    def _check_budget(self) -> Optional[str]:
        if self.repository is None:
            return None

        budget = self.config.budget
        now = self._clock()
        day_start = datetime.combine(now.date(), time.min)
        month_start = day_start.replace(day=1)

        try:
            daily_cost = self.repository.get_cost_since(day_start)
            if daily_cost >= budget.daily:
                logger.warning(
                    "Daily budget exceeded",
                    extra={"daily_cost": daily_cost, "daily_budget": budget.daily},
                )
                return "System daily budget exceeded. AI features temporarily unavailable."

            monthly_cost = self.repository.get_cost_since(month_start)
            shutoff = budget.monthly * budget.emergency_shutoff_percent / 100
            if monthly_cost >= shutoff:
                logger.error(
                    "Monthly emergency shutoff reached",
                    extra={"monthly_cost": monthly_cost, "shutoff": shutoff},
                )
                return "Monthly AI budget exhausted. AI features temporarily unavailable."
        except Exception:
            logger.warning("Failed to check system budget limits", exc_info=True)

        return None
