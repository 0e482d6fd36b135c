"""
Tests for the statistical mood analysis engine.
"""

import os
import tempfile
from datetime import date, timedelta

import pytest

from habitnex.core.errors import NoMoodDataError
from habitnex.core.mood_analysis import (
    DEFAULT_OPTIMAL_RANGES,
    MAX_RECOMMENDATIONS,
    analyze_performance_by_mood,
    analyze_points,
    build_daily_points,
    calculate_correlations,
    calculate_mood_trends,
    composite_score,
    identify_mood_patterns,
    pearson_correlation,
    perform_mood_analysis,
)
from habitnex.storage.models import Habit, HabitCompletion, MoodEntry
from habitnex.storage.repository import HabitRepository, initialize_schema


def day(offset: int) -> str:
    return (date(2024, 1, 1) + timedelta(days=offset)).isoformat()


def mood(offset: int, value: int, energy: int = 3, stress: int = 3, sleep: int = 3) -> MoodEntry:
    return MoodEntry(id=f"m{offset}", date=day(offset), mood=value, energy=energy, stress=stress, sleep=sleep)


def completions_for(offset: int, done: int, total: int = 4):
    return [
        HabitCompletion(id=f"c{offset}-{i}", habit_id=f"h{i}", date=day(offset), completed=i < done)
        for i in range(total)
    ]


HABITS = [Habit(id=f"h{i}", name=f"Habit {i}") for i in range(4)]


def correlated_points(days: int = 10):
    """Mood and completion rise together."""
    moods = []
    completions = []
    for offset in range(days):
        value = 1 + offset % 5
        moods.append(mood(offset, value, energy=value, stress=6 - value, sleep=value))
        completions.extend(completions_for(offset, done=min(4, value - 1)))
    return build_daily_points(moods, completions, HABITS)


class TestPearson:

    def test_perfect_positive(self):
        assert pearson_correlation([1, 2, 3], [2, 4, 6]) == pytest.approx(1.0)

    def test_perfect_negative(self):
        assert pearson_correlation([1, 2, 3], [6, 4, 2]) == pytest.approx(-1.0)

    def test_flat_series_is_zero(self):
        assert pearson_correlation([3, 3, 3], [1, 2, 3]) == 0.0

    def test_empty_or_mismatched_is_zero(self):
        assert pearson_correlation([], []) == 0.0
        assert pearson_correlation([1, 2], [1]) == 0.0


class TestDailyPoints:

    def test_composite_inverts_stress(self):
        assert composite_score(mood(0, 5, energy=5, stress=1, sleep=5)) == 5.0
        assert composite_score(mood(0, 1, energy=1, stress=5, sleep=1)) == 1.0

    def test_join_by_date(self):
        points = build_daily_points(
            [mood(1, 4), mood(0, 2)],
            completions_for(0, done=1) + completions_for(1, done=3),
            HABITS,
        )

        assert [p.date for p in points] == [day(0), day(1)]
        assert points[0].completion_rate == 25.0
        assert points[1].completion_rate == 75.0
        assert points[1].completed_habits == 3
        assert points[1].total_habits == 4

    def test_day_without_completions_uses_active_habits(self):
        habits = HABITS + [Habit(id="archived", name="Old", is_archived=True)]
        points = build_daily_points([mood(0, 3)], [], habits)

        assert points[0].completion_rate == 0.0
        assert points[0].total_habits == 4

    def test_to_dict_uses_camel_case(self):
        point = build_daily_points([mood(0, 3)], completions_for(0, done=2), HABITS)[0]
        assert point.to_dict()["completionRate"] == 50.0
        assert "compositeScore" in point.to_dict()


class TestAnalysis:

    def test_correlations_follow_the_data(self):
        correlations = calculate_correlations(correlated_points())

        assert correlations["mood"] > 0.9
        assert correlations["energy"] > 0.9
        assert correlations["stress"] < -0.9

    def test_patterns_split_into_thirds(self):
        points = correlated_points(9)
        patterns = identify_mood_patterns(points)

        assert len(patterns.high_performance_days) == 3
        assert len(patterns.low_performance_days) == 3
        assert min(p.completion_rate for p in patterns.high_performance_days) >= max(
            p.completion_rate for p in patterns.low_performance_days
        )

    def test_trends_need_seven_points(self):
        points = correlated_points(5)
        assert set(calculate_mood_trends(points).values()) == {"stable"}

    def test_improving_trend(self):
        moods = [mood(i, min(5, 1 + i // 2)) for i in range(8)]
        points = build_daily_points(moods, [], HABITS)

        assert calculate_mood_trends(points)["moodTrend"] == "improving"

    def test_declining_stress_is_inverted(self):
        moods = [mood(i, 3, stress=max(1, 5 - i // 2)) for i in range(8)]
        points = build_daily_points(moods, [], HABITS)

        # Falling stress reads as an improving stress trend.
        assert calculate_mood_trends(points)["stressTrend"] == "improving"

    def test_optimal_ranges_default_without_strong_days(self):
        points = build_daily_points([mood(0, 3)], completions_for(0, done=1), HABITS)

        result = analyze_performance_by_mood(points)

        assert result["optimalRanges"] == {k: list(v) for k, v in DEFAULT_OPTIMAL_RANGES.items()}

    def test_optimal_ranges_from_top_days(self):
        result = analyze_performance_by_mood(correlated_points(10))

        assert result["optimalRanges"]["mood"] == [5, 5]
        assert result["performanceByMoodLevel"]["high"] > result["performanceByMoodLevel"]["low"]

    def test_analyze_points_shape(self):
        analysis = analyze_points(correlated_points(10))

        assert set(analysis) == {"correlations", "insights", "recommendations", "statistics", "patterns"}
        assert analysis["statistics"]["totalDaysAnalyzed"] == 10
        assert analysis["insights"]["strongestPositiveCorrelation"].startswith("mood")
        assert analysis["insights"]["strongestNegativeCorrelation"].startswith("stress")
        assert 1 <= len(analysis["recommendations"]) <= MAX_RECOMMENDATIONS
        assert len(analysis["patterns"]) == 10

    def test_no_points_raises(self):
        with pytest.raises(NoMoodDataError):
            analyze_points([])


class TestPerformMoodAnalysis:

    def setup_method(self):
        self.temp_dir = tempfile.mkdtemp()
        self.db_path = os.path.join(self.temp_dir, "test.db")
        initialize_schema(self.db_path)
        self.repo = HabitRepository(self.db_path)

    def teardown_method(self):
        import shutil
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_reads_inclusive_range(self):
        for habit in HABITS:
            self.repo.add_habit("user-1", habit)
        for offset in range(10):
            self.repo.add_mood_entry("user-1", mood(offset, 1 + offset % 5))
            for completion in completions_for(offset, done=offset % 5):
                self.repo.add_completion("user-1", completion)

        analysis, points = perform_mood_analysis(self.repo, "user-1", day(2), day(8))

        assert len(points) == 7
        assert points[0].date == day(2)
        assert points[-1].date == day(8)
        assert analysis["statistics"]["totalDaysAnalyzed"] == 7

    def test_no_data_raises(self):
        with pytest.raises(NoMoodDataError):
            perform_mood_analysis(self.repo, "user-1", day(0), day(10))
