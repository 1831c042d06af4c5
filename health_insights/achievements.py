from __future__ import annotations

from datetime import datetime
from typing import Collection, Mapping, Optional, Sequence

from .models import AchievementDefinition, EarnedAchievement


def _a(id: str, title: str, description: str, domain: str, metric: str, threshold: float, rarity: str, points: int) -> AchievementDefinition:
    return AchievementDefinition(
        id=id,
        title=title,
        description=description,
        domain=domain,
        metric=metric,
        threshold=threshold,
        rarity=rarity,  # type: ignore[arg-type]
        points=points,
    )


# Evaluation order is the order of this list.
CATALOG: list[AchievementDefinition] = [
    # steps
    _a("first_steps", "First Steps", "Walk your first 1,000 steps", "steps", "lifetime_steps", 1000, "common", 10),
    _a("daily_goal", "Daily Goal", "Reach 10,000 steps in a single day", "steps", "best_day_steps", 10000, "common", 25),
    _a("week_warrior", "Week Warrior", "Hit your step goal 7 days in a row", "steps", "steps_longest_streak", 7, "rare", 50),
    _a("month_master", "Month Master", "Hit your step goal 30 days in a row", "steps", "steps_longest_streak", 30, "epic", 200),
    _a("marathon_walker", "Marathon Walker", "Cover 42 km in a single day", "steps", "best_day_distance_km", 42, "legendary", 500),
    _a("hundred_k", "100K Club", "Walk 100,000 steps in total", "steps", "lifetime_steps", 100000, "rare", 100),
    _a("million_steps", "Million Steps", "Walk 1,000,000 steps in total", "steps", "lifetime_steps", 1000000, "legendary", 1000),
    # water
    _a("hydration_habit", "Hydration Habit", "Meet your water goal on 10 days", "water", "water_goal_days", 10, "common", 30),
    _a("water_master", "Water Master", "Meet your water goal 7 days in a row", "water", "water_longest_streak", 7, "rare", 50),
    # sleep
    _a("sleep_tracker", "Sleep Tracker", "Log your sleep on 7 days", "sleep", "sleep_logged_days", 7, "common", 20),
    _a("well_rested", "Well Rested", "Sleep your target hours 7 nights in a row", "sleep", "sleep_longest_streak", 7, "rare", 50),
    # workouts
    _a("exercise_starter", "Exercise Starter", "Complete your first workout", "workouts", "workout_sessions", 1, "common", 10),
    _a("ten_workouts", "Ten Workouts", "Complete 10 workouts", "workouts", "workout_sessions", 10, "rare", 50),
    _a("thousand_minutes", "Thousand Minutes", "Train for 1,000 minutes in total", "workouts", "workout_minutes_total", 1000, "epic", 150),
    # meals
    _a("first_meal", "First Meal", "Log your first meal", "meals", "meals_logged", 1, "common", 10),
    # overall
    _a("week_streak", "One Week", "Log any activity 7 days in a row", "overall", "active_longest_streak", 7, "rare", 50),
    _a("month_streak", "One Month", "Log any activity 30 days in a row", "overall", "active_longest_streak", 30, "epic", 200),
]

CATALOG_BY_ID: dict[str, AchievementDefinition] = {a.id: a for a in CATALOG}


def evaluate_achievements(
    metrics: Mapping[str, float],
    earned: Collection[str],
    now: datetime,
    catalog: Sequence[AchievementDefinition] = CATALOG,
) -> list[EarnedAchievement]:
    """Return achievements whose condition holds and that are not in `earned`.

    Pure: `earned` is not modified. Results keep catalog order; an id already
    earned is never returned again, so its earned_at stays as first recorded.
    """
    newly: list[EarnedAchievement] = []
    for a in catalog:
        if a.id in earned:
            continue
        value = float(metrics.get(a.metric, 0.0) or 0.0)
        if value >= a.threshold:
            newly.append(EarnedAchievement(**a.model_dump(), earned_at=now))
    return newly


def earned_list(earned: Mapping[str, datetime], catalog: Sequence[AchievementDefinition] = CATALOG) -> list[EarnedAchievement]:
    out: list[EarnedAchievement] = []
    for a in catalog:
        ts: Optional[datetime] = earned.get(a.id)
        if ts is not None:
            out.append(EarnedAchievement(**a.model_dump(), earned_at=ts))
    return out


def total_points(earned: Collection[str]) -> int:
    return sum(CATALOG_BY_ID[i].points for i in earned if i in CATALOG_BY_ID)
