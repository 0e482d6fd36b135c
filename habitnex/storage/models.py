"""
Data models for storage layer.

Defines the usage ledger records and the habit/mood domain entities.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional


@dataclass(frozen=True)
class UsageRecord:
    """Immutable record of one orchestrated AI request.

    Append-only audit entries written after every request, success or failure.
    Once written, these records must never be modified.
    """
    timestamp: datetime
    user_id: str
    endpoint: str
    input_tokens: int
    output_tokens: int
    cost: float
    latency_ms: int
    success: bool
    cached: bool = False
    error_code: Optional[str] = None
    request_id: Optional[str] = None

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


@dataclass(frozen=True)
class UsageAlert:
    """Budget alert raised when spend crosses a configured threshold."""
    created_at: datetime
    alert_type: str
    severity: str
    threshold_percent: float
    current_percent: float
    amount: float
    budget: float
    message: str
    user_id: Optional[str] = None
    endpoint: Optional[str] = None
    acknowledged: bool = False
    id: Optional[int] = None


@dataclass
class Habit:
    id: str
    name: str
    frequency: str = "daily"  # daily | weekly | interval
    target_days: List[int] = field(default_factory=lambda: [0, 1, 2, 3, 4, 5, 6])
    interval_days: Optional[int] = None
    start_date: Optional[str] = None
    description: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    color: str = "#3b82f6"
    is_archived: bool = False
    created_at: Optional[datetime] = None


@dataclass
class HabitCompletion:
    id: str
    habit_id: str
    date: str  # YYYY-MM-DD
    completed: bool
    notes: Optional[str] = None


@dataclass
class MoodEntry:
    """Daily mood check-in. All four dimensions use a 1-5 scale.

    Stress is inverse: 1 is very low stress, 5 is very high.
    """
    id: str
    date: str  # YYYY-MM-DD
    mood: int
    energy: int
    stress: int
    sleep: int
    notes: Optional[str] = None
    tags: List[str] = field(default_factory=list)

    def __post_init__(self):
        for name in ("mood", "energy", "stress", "sleep"):
            value = getattr(self, name)
            if not 1 <= value <= 5:
                raise ValueError(f"{name} must be between 1 and 5")
