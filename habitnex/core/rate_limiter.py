"""
Per-user daily request limiter.

Counters live in process memory and reset on the first request after local
midnight. They are not persisted and are not shared between processes.
"""

from dataclasses import dataclass
from datetime import datetime, time, timedelta
from typing import Callable, Dict


@dataclass
class RateLimitCounter:
    user_id: str
    count: int
    window_start: datetime


def _midnight(moment: datetime) -> datetime:
    return datetime.combine(moment.date(), time.min, tzinfo=moment.tzinfo)


class RateLimiter:
    """Fixed daily window limiter keyed by user id.

    Args:
        clock: Callable returning the current local time
    """

    def __init__(self, clock: Callable[[], datetime] = datetime.now):
        self._clock = clock
        self._counters: Dict[str, RateLimitCounter] = {}

    def _current(self, user_id: str, now: datetime):
        counter = self._counters.get(user_id)
        if counter is None or counter.window_start < _midnight(now):
            return None
        return counter

    def allow(self, user_id: str, daily_limit: int) -> bool:
        """Count a request against the user's daily allowance.

        Args:
            user_id: Caller identity
            daily_limit: Maximum requests per local day

        Returns:
            True if the request is admitted, False once the limit is reached
        """
        now = self._clock()
        counter = self._current(user_id, now)

        if counter is None:
            self._counters[user_id] = RateLimitCounter(user_id=user_id, count=1, window_start=now)
            return True

        if counter.count >= daily_limit:
            return False

        counter.count += 1
        return True

    def remaining(self, user_id: str, daily_limit: int) -> int:
        counter = self._current(user_id, self._clock())
        used = counter.count if counter is not None else 0
        return max(0, daily_limit - used)

    def reset_time(self) -> datetime:
        """Next local midnight, when every counter resets."""
        return _midnight(self._clock()) + timedelta(days=1)

    def reset(self) -> None:
        self._counters.clear()
