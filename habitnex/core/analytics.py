"""
Habit analytics utilities.

Pure functions over habits and completions: streaks, completion rates,
due-date scheduling for daily/weekly/interval habits, and the weekly
performance summary used by coaching features. Dates are YYYY-MM-DD
strings; weekdays follow the Sunday=0 convention stored on habits.
"""

from datetime import date, timedelta
from typing import Dict, List, Optional, Sequence, Union

from habitnex.storage.models import Habit, HabitCompletion, MoodEntry

DateLike = Union[date, str, None]


def _to_date(value: DateLike) -> date:
    if value is None:
        return date.today()
    if isinstance(value, date):
        return value
    return date.fromisoformat(value)


def day_of_week(day: date) -> int:
    """Weekday number with Sunday=0 and Saturday=6."""
    return (day.weekday() + 1) % 7


def calculate_streak(
    completions: Sequence[HabitCompletion],
    today: DateLike = None,
    habit_id: Optional[str] = None,
) -> int:
    """Count consecutive completed days ending today.

    Args:
        completions: Completion records, in any order
        today: Reference date, defaults to the current local date
        habit_id: Restrict to one habit's completions

    Returns:
        Length of the unbroken run of completed days counting back from today
    """
    if habit_id is not None:
        completions = [c for c in completions if c.habit_id == habit_id]

    completed = sorted((c for c in completions if c.completed), key=lambda c: c.date, reverse=True)
    reference = _to_date(today)

    streak = 0
    for offset, completion in enumerate(completed):
        if completion.date != (reference - timedelta(days=offset)).isoformat():
            break
        streak += 1
    return streak


def calculate_completion_rate(completions: Sequence[HabitCompletion], days: int = 30) -> int:
    """Percentage of the first `days` records that are completed, rounded."""
    if not completions:
        return 0
    recent = list(completions)[:days]
    completed = sum(1 for c in recent if c.completed)
    return int(round(completed / len(recent) * 100))


def is_habit_due_today(habit: Habit, today: DateLike = None) -> bool:
    reference = _to_date(today)

    if habit.frequency == "daily":
        return True

    if habit.frequency == "weekly":
        return day_of_week(reference) in (habit.target_days or [])

    if habit.frequency == "interval" and habit.start_date and habit.interval_days:
        days_diff = (reference - _to_date(habit.start_date)).days
        return days_diff >= 0 and days_diff % habit.interval_days == 0

    return False


def get_next_due_date(habit: Habit, from_date: DateLike = None) -> Optional[str]:
    """Next date on or after `from_date` the habit is due.

    Weekly habits look strictly after today first, then wrap to the first
    target day of next week.

    Returns:
        YYYY-MM-DD string, or None when the schedule is incomplete
    """
    reference = _to_date(from_date)

    if habit.frequency == "daily":
        return reference.isoformat()

    if habit.frequency == "weekly":
        today_dow = day_of_week(reference)
        target_days = sorted(habit.target_days or [])
        for target in target_days:
            if target > today_dow:
                return (reference + timedelta(days=target - today_dow)).isoformat()
        if target_days:
            return (reference + timedelta(days=7 - today_dow + target_days[0])).isoformat()

    if habit.frequency == "interval" and habit.start_date and habit.interval_days:
        start = _to_date(habit.start_date)
        if reference < start:
            return habit.start_date

        since_last_due = (reference - start).days % habit.interval_days
        if since_last_due == 0:
            return reference.isoformat()
        return (reference + timedelta(days=habit.interval_days - since_last_due)).isoformat()

    return None


def get_days_until_due(habit: Habit, from_date: DateLike = None) -> Optional[int]:
    next_due = get_next_due_date(habit, from_date)
    if next_due is None:
        return None
    return (_to_date(next_due) - _to_date(from_date)).days


def _expected_interval_dates(habit: Habit, reference: date) -> List[date]:
    start = _to_date(habit.start_date)
    intervals_passed = (reference - start).days // habit.interval_days
    return [
        start + timedelta(days=i * habit.interval_days)
        for i in range(intervals_passed + 1)
    ]


def _completed_on(habit: Habit, completions: Sequence[HabitCompletion], day: date) -> bool:
    day_str = day.isoformat()
    return any(c.date == day_str and c.completed and c.habit_id == habit.id for c in completions)


def is_habit_overdue(habit: Habit, completions: Sequence[HabitCompletion], from_date: DateLike = None) -> bool:
    """True when an interval habit has any missed due date up to today.

    Other frequencies are never overdue.
    """
    if habit.frequency != "interval" or not habit.start_date or not habit.interval_days:
        return False

    reference = _to_date(from_date)
    if reference < _to_date(habit.start_date):
        return False

    return any(
        not _completed_on(habit, completions, expected)
        for expected in _expected_interval_dates(habit, reference)
    )


def calculate_interval_streak(
    habit: Habit,
    completions: Sequence[HabitCompletion],
    today: DateLike = None,
) -> int:
    """Consecutive completed due dates, walking back from the latest one.

    Non-interval habits fall back to the daily streak.
    """
    if habit.frequency != "interval" or not habit.start_date or not habit.interval_days:
        return calculate_streak(completions, today=today, habit_id=habit.id)

    reference = _to_date(today)
    if reference < _to_date(habit.start_date):
        return 0

    streak = 0
    for expected in reversed(_expected_interval_dates(habit, reference)):
        if not _completed_on(habit, completions, expected):
            break
        streak += 1
    return streak


def identify_habit_issues(completion_rate: float, habit_id: str, completions: Sequence[HabitCompletion]) -> List[str]:
    issues = []

    if completion_rate == 0:
        issues.append("not started")
    elif completion_rate < 25:
        issues.append("very low frequency")
    elif completion_rate < 50:
        issues.append("inconsistent")

    weekdays = [day_of_week(_to_date(c.date)) for c in completions if c.habit_id == habit_id]
    weekend = sum(1 for d in weekdays if d in (0, 6))
    weekday = len(weekdays) - weekend
    if weekend > weekday * 2:
        issues.append("weekend struggles")

    return issues


def analyze_weekly_performance(
    habits: Sequence[Habit],
    completions: Sequence[HabitCompletion],
    moods: Sequence[MoodEntry],
    today: DateLike = None,
) -> Dict:
    """Summarize the last seven days of habit and mood data.

    Args:
        habits: The user's habits
        completions: Completion records
        moods: Mood entries
        today: Reference date, defaults to the current local date

    Returns:
        Dict with ``completionRate``, ``averageMood``, ``topPerformers``
        (best three at 70%+) and ``strugglingHabits`` (worst three under 50%)
    """
    one_week_ago = (_to_date(today) - timedelta(days=7)).isoformat()
    recent = [c for c in completions if c.date > one_week_ago]
    recent_moods = [m for m in moods if m.date > one_week_ago]

    possible = len(habits) * 7
    completed = sum(1 for c in recent if c.completed)
    completion_rate = (completed / possible) * 100 if possible > 0 else 0.0

    average_mood = sum(m.mood for m in recent_moods) / len(recent_moods) if recent_moods else 0.0

    performance = []
    for habit in habits:
        done = sum(1 for c in recent if c.habit_id == habit.id and c.completed)
        performance.append({"habitId": habit.id, "habitName": habit.name, "rate": done / 7 * 100})

    top_performers = sorted(
        (h for h in performance if h["rate"] >= 70), key=lambda h: h["rate"], reverse=True
    )[:3]

    struggling = sorted((h for h in performance if h["rate"] < 50), key=lambda h: h["rate"])[:3]
    struggling = [
        {**h, "issues": identify_habit_issues(h["rate"], h["habitId"], recent)}
        for h in struggling
    ]

    return {
        "completionRate": completion_rate,
        "averageMood": average_mood,
        "topPerformers": top_performers,
        "strugglingHabits": struggling,
    }
