# habitnex/demo/seed_demo_data.py

import random
from dataclasses import replace
from datetime import date, datetime, timedelta
from typing import Dict, Optional

from habitnex.storage.db import DEFAULT_DB_PATH
from habitnex.storage.models import Habit, HabitCompletion, MoodEntry
from habitnex.storage.repository import HabitRepository, initialize_schema

DEMO_USER_ID = "demo-user"

DEMO_HABITS = [
    Habit(id="demo-meditation", name="Meditation", tags=["mindfulness"], color="#8b5cf6"),
    Habit(id="demo-exercise", name="Exercise", frequency="weekly", target_days=[1, 3, 5], tags=["fitness"]),
    Habit(id="demo-reading", name="Reading", tags=["learning"], color="#10b981"),
    Habit(id="demo-water", name="Drink Water", frequency="interval", interval_days=2, tags=["health"]),
]


def seed_demo_data(
    db_path: str = DEFAULT_DB_PATH,
    user_id: str = DEMO_USER_ID,
    days: int = 30,
    today: Optional[date] = None,
    seed: int = 42,
) -> Dict[str, int]:
    """Write demo habits, completions and mood entries for one user.

    Completion odds follow the day's mood so mood analysis has a signal to find.

    Returns:
        Counts of rows written, keyed by ``habits``, ``completions`` and ``moods``
    """
    initialize_schema(db_path)
    repository = HabitRepository(db_path)
    rng = random.Random(seed)
    today = today or date.today()
    start = today - timedelta(days=days - 1)

    created_at = datetime.combine(start, datetime.min.time())
    for habit in DEMO_HABITS:
        start_date = start.isoformat() if habit.frequency == "interval" else habit.start_date
        repository.add_habit(user_id, replace(habit, start_date=start_date, created_at=created_at))

    completions = 0
    for offset in range(days):
        day = (start + timedelta(days=offset)).isoformat()
        mood = rng.randint(1, 5)
        repository.add_mood_entry(user_id, MoodEntry(
            id=f"mood-{day}",
            date=day,
            mood=mood,
            energy=max(1, min(5, mood + rng.randint(-1, 1))),
            stress=max(1, min(5, 6 - mood + rng.randint(-1, 1))),
            sleep=rng.randint(2, 5),
        ))
        for habit in DEMO_HABITS:
            completed = rng.random() < 0.2 + mood * 0.15
            repository.add_completion(user_id, HabitCompletion(
                id=f"{habit.id}-{day}",
                habit_id=habit.id,
                date=day,
                completed=completed,
            ))
            completions += 1

    return {"habits": len(DEMO_HABITS), "completions": completions, "moods": days}


if __name__ == "__main__":
    counts = seed_demo_data()
    print(f"Demo data inserted: {counts}")
