"""
Mood pattern analysis.

Statistical correlation analysis between mood dimensions (mood, energy,
stress, sleep) and daily habit completion. All functions are pure apart
from perform_mood_analysis, which reads from the habit repository.
"""

import math
from collections import defaultdict
from dataclasses import dataclass
from typing import Dict, List, Sequence, Tuple

from habitnex.storage.models import Habit, HabitCompletion, MoodEntry
from habitnex.storage.repository import HabitRepository

from .errors import NoMoodDataError

DIMENSIONS = ("mood", "energy", "stress", "sleep")
SIGNIFICANT_CORRELATION = 0.3
TREND_SLOPE_THRESHOLD = 0.1
MIN_TREND_POINTS = 7
MAX_RECOMMENDATIONS = 5

DEFAULT_OPTIMAL_RANGES = {
    "mood": (3, 5),
    "energy": (3, 5),
    "stress": (1, 3),
    "sleep": (3, 5),
}


@dataclass(frozen=True)
class DailyMoodPoint:
    """One day of mood data joined with that day's habit completion."""
    date: str
    mood: int
    energy: int
    stress: int
    sleep: int
    completion_rate: float  # percent
    completed_habits: int
    total_habits: int
    composite_score: float

    def to_dict(self) -> Dict:
        return {
            "date": self.date,
            "mood": self.mood,
            "energy": self.energy,
            "stress": self.stress,
            "sleep": self.sleep,
            "completionRate": self.completion_rate,
            "completedHabits": self.completed_habits,
            "totalHabits": self.total_habits,
            "compositeScore": self.composite_score,
        }


@dataclass(frozen=True)
class MoodPatterns:
    high_performance_days: List[DailyMoodPoint]
    low_performance_days: List[DailyMoodPoint]
    improving_mood: bool
    improving_habits: bool


def pearson_correlation(x: Sequence[float], y: Sequence[float]) -> float:
    """Pearson correlation coefficient; 0 for empty, mismatched or flat input."""
    if len(x) != len(y) or not x:
        return 0.0

    n = len(x)
    sum_x = sum(x)
    sum_y = sum(y)
    sum_xy = sum(xi * yi for xi, yi in zip(x, y))
    sum_xx = sum(xi * xi for xi in x)
    sum_yy = sum(yi * yi for yi in y)

    numerator = n * sum_xy - sum_x * sum_y
    denominator_sq = (n * sum_xx - sum_x * sum_x) * (n * sum_yy - sum_y * sum_y)
    if denominator_sq <= 0:
        return 0.0
    return numerator / math.sqrt(denominator_sq)


def composite_score(entry: MoodEntry) -> float:
    """Average of the four dimensions with stress inverted."""
    return (entry.mood + entry.energy + (6 - entry.stress) + entry.sleep) / 4


def build_daily_points(
    moods: Sequence[MoodEntry],
    completions: Sequence[HabitCompletion],
    habits: Sequence[Habit],
) -> List[DailyMoodPoint]:
    """Join mood entries with the completions logged on the same date.

    A day's completion rate is completed / recorded completions for that
    day, falling back to the number of active habits when nothing was
    recorded.

    Returns:
        One point per mood entry, sorted by date
    """
    by_date: Dict[str, List[HabitCompletion]] = defaultdict(list)
    for completion in completions:
        by_date[completion.date].append(completion)

    active_habits = sum(1 for habit in habits if not habit.is_archived)

    points = []
    for entry in moods:
        day_completions = by_date.get(entry.date, [])
        completed = sum(1 for c in day_completions if c.completed)
        total = len(day_completions) or active_habits
        rate = completed / total if total > 0 else 0.0
        points.append(DailyMoodPoint(
            date=entry.date,
            mood=entry.mood,
            energy=entry.energy,
            stress=entry.stress,
            sleep=entry.sleep,
            completion_rate=rate * 100,
            completed_habits=completed,
            total_habits=total,
            composite_score=composite_score(entry),
        ))
    return sorted(points, key=lambda p: p.date)


def calculate_correlations(points: Sequence[DailyMoodPoint]) -> Dict[str, float]:
    """Correlate each mood dimension with the daily completion rate.

    Stress is expected to correlate negatively.
    """
    if not points:
        return {dim: 0.0 for dim in DIMENSIONS}

    rates = [p.completion_rate for p in points]
    return {
        dim: pearson_correlation([getattr(p, dim) for p in points], rates)
        for dim in DIMENSIONS
    }


def _mean(values: Sequence[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def identify_mood_patterns(points: Sequence[DailyMoodPoint]) -> MoodPatterns:
    """Split days into top and bottom thirds by completion rate and compare halves."""
    if not points:
        return MoodPatterns([], [], improving_mood=False, improving_habits=False)

    ranked = sorted(points, key=lambda p: p.completion_rate, reverse=True)
    third = math.ceil(len(ranked) / 3)

    midpoint = len(points) // 2
    first_half = points[:midpoint]
    second_half = points[midpoint:]

    if first_half:
        improving_mood = _mean([p.composite_score for p in second_half]) > _mean([p.composite_score for p in first_half])
        improving_habits = _mean([p.completion_rate for p in second_half]) > _mean([p.completion_rate for p in first_half])
    else:
        improving_mood = improving_habits = False

    return MoodPatterns(
        high_performance_days=ranked[:third],
        low_performance_days=ranked[-third:],
        improving_mood=improving_mood,
        improving_habits=improving_habits,
    )


def _range(points: Sequence[DailyMoodPoint], dim: str) -> Tuple[int, int]:
    values = [getattr(p, dim) for p in points]
    return (min(values), max(values))


def analyze_performance_by_mood(points: Sequence[DailyMoodPoint]) -> Dict:
    """Optimal mood ranges and average completion per composite mood level.

    Optimal ranges come from days with at least 80% completion, capped at
    the best quarter of all days.

    Returns:
        Dict with ``optimalRanges`` and ``performanceByMoodLevel``
    """
    if not points:
        return {
            "optimalRanges": {dim: list(bounds) for dim, bounds in DEFAULT_OPTIMAL_RANGES.items()},
            "performanceByMoodLevel": {"low": 0.0, "medium": 0.0, "high": 0.0},
        }

    low = [p.completion_rate for p in points if p.composite_score <= 2.5]
    medium = [p.completion_rate for p in points if 2.5 < p.composite_score <= 3.5]
    high = [p.completion_rate for p in points if p.composite_score > 3.5]

    top = sorted(
        (p for p in points if p.completion_rate >= 80),
        key=lambda p: p.completion_rate,
        reverse=True,
    )[:math.ceil(len(points) * 0.25)]

    optimal = {
        dim: list(_range(top, dim) if top else DEFAULT_OPTIMAL_RANGES[dim])
        for dim in DIMENSIONS
    }
    return {
        "optimalRanges": optimal,
        "performanceByMoodLevel": {"low": _mean(low), "medium": _mean(medium), "high": _mean(high)},
    }


def _slope_trend(values: Sequence[float]) -> str:
    n = len(values)
    xs = range(n)
    sum_x = sum(xs)
    sum_y = sum(values)
    sum_xy = sum(x * y for x, y in zip(xs, values))
    sum_xx = sum(x * x for x in xs)

    slope = (n * sum_xy - sum_x * sum_y) / (n * sum_xx - sum_x * sum_x)
    if slope > TREND_SLOPE_THRESHOLD:
        return "improving"
    if slope < -TREND_SLOPE_THRESHOLD:
        return "declining"
    return "stable"


def calculate_mood_trends(points: Sequence[DailyMoodPoint]) -> Dict[str, str]:
    """Linear-slope trend label per dimension; stress is inverted first."""
    if len(points) < MIN_TREND_POINTS:
        return {key: "stable" for key in ("moodTrend", "energyTrend", "stressTrend", "sleepTrend", "habitTrend")}

    return {
        "moodTrend": _slope_trend([p.mood for p in points]),
        "energyTrend": _slope_trend([p.energy for p in points]),
        "stressTrend": _slope_trend([6 - p.stress for p in points]),
        "sleepTrend": _slope_trend([p.sleep for p in points]),
        "habitTrend": _slope_trend([p.completion_rate for p in points]),
    }


def generate_recommendations(
    correlations: Dict[str, float],
    patterns: MoodPatterns,
    trends: Dict[str, str],
    optimal_ranges: Dict[str, List[int]],
) -> List[str]:
    recommendations = []

    dimension, coefficient = max(correlations.items(), key=lambda item: abs(item[1]))
    if abs(coefficient) > SIGNIFICANT_CORRELATION:
        direction = "higher" if coefficient > 0 else "lower"
        impact = "strong" if abs(coefficient) > 0.5 else "moderate"
        recommendations.append(
            f"Your {dimension} levels show a {impact} correlation with habit completion. "
            f"Focus on maintaining {direction} {dimension} for better performance."
        )

    if correlations["stress"] > -0.2:
        recommendations.append(
            "Stress management appears to significantly impact your habit completion. "
            "Consider stress-reduction techniques during busy periods."
        )

    if correlations["energy"] > SIGNIFICANT_CORRELATION:
        recommendations.append(
            "Your energy levels strongly predict habit success. "
            "Prioritize habits during high-energy periods and consider energy-boosting activities."
        )

    if correlations["sleep"] > SIGNIFICANT_CORRELATION:
        recommendations.append(
            "Good sleep quality significantly improves your habit completion. "
            "Maintain consistent sleep schedule for better performance."
        )

    if trends["habitTrend"] == "declining" and trends["moodTrend"] == "declining":
        recommendations.append(
            "Both mood and habit completion are declining. "
            "Consider reducing habit complexity temporarily and focusing on mood-boosting activities."
        )

    if trends["stressTrend"] == "declining" and trends["habitTrend"] == "improving":
        recommendations.append(
            "Excellent progress! Lower stress levels are supporting better habit completion. "
            "Maintain current stress management strategies."
        )

    if patterns.high_performance_days:
        avg_high = _mean([p.composite_score for p in patterns.high_performance_days])
        recommendations.append(
            f"Your best habit completion days average {avg_high:.1f} mood score. "
            "Aim to replicate conditions that support this mood level."
        )

    if sum(optimal_ranges["mood"]) / 2 >= 4:
        recommendations.append(
            "Your habit completion peaks when your overall mood is high. "
            "Schedule important habits during naturally positive periods."
        )

    if not recommendations:
        recommendations.append(
            "Continue tracking to identify patterns. "
            "Focus on maintaining consistent mood tracking for better insights."
        )
        recommendations.append(
            "Consider the relationship between your daily activities and both mood and habit completion."
        )

    return recommendations[:MAX_RECOMMENDATIONS]


def _describe(entry) -> str:
    if entry is None:
        return "None identified"
    return f"{entry[0]} ({entry[1] * 100:.1f}%)"


def analyze_points(points: List[DailyMoodPoint]) -> Dict:
    """Run the full statistical analysis over prepared daily points.

    Raises:
        NoMoodDataError: If there are no points
    """
    if not points:
        raise NoMoodDataError()

    correlations = calculate_correlations(points)
    patterns = identify_mood_patterns(points)
    trends = calculate_mood_trends(points)
    optimal_ranges = analyze_performance_by_mood(points)["optimalRanges"]

    positives = sorted(((d, c) for d, c in correlations.items() if c > 0), key=lambda item: item[1], reverse=True)
    negatives = sorted(((d, c) for d, c in correlations.items() if c < 0), key=lambda item: item[1])

    avg_scores = {dim: round(_mean([getattr(p, dim) for p in points]), 2) for dim in DIMENSIONS}

    return {
        "correlations": correlations,
        "insights": {
            "strongestPositiveCorrelation": _describe(positives[0] if positives else None),
            "strongestNegativeCorrelation": _describe(negatives[0] if negatives else None),
            "optimalMoodRange": optimal_ranges,
        },
        "recommendations": generate_recommendations(correlations, patterns, trends, optimal_ranges),
        "statistics": {
            "totalDaysAnalyzed": len(points),
            "avgCompletionRate": round(_mean([p.completion_rate for p in points]), 2),
            "avgMoodScores": avg_scores,
        },
        "patterns": [p.to_dict() for p in points],
    }


def perform_mood_analysis(
    repository: HabitRepository,
    user_id: str,
    start_date: str,
    end_date: str,
) -> Tuple[Dict, List[DailyMoodPoint]]:
    """Load a user's data for an inclusive date range and analyze it.

    Returns:
        The analysis result and the daily points it was computed from

    Raises:
        NoMoodDataError: If the user has no mood entries in the range
    """
    moods = repository.get_mood_entries(user_id, start_date, end_date)
    completions = repository.get_completions(user_id, start_date=start_date, end_date=end_date)
    habits = repository.get_user_habits(user_id)

    points = build_daily_points(moods, completions, habits)
    return analyze_points(points), points
