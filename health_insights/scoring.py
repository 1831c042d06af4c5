from __future__ import annotations

from typing import Any, Iterable, Optional

from pydantic import BaseModel

from .models import (
    MealRecord,
    ProfileMetrics,
    Score,
    SleepGoals,
    SleepRecord,
    StepGoals,
    StepRecord,
    WaterGoals,
    WaterRecord,
    WorkoutGoals,
    WorkoutRecord,
    time_to_minutes,
)
from .profile import round_half_up

# Sleep score weights (sum to 100).
SLEEP_DURATION_WEIGHT = 40.0
SLEEP_QUALITY_WEIGHT = 30.0
SLEEP_SCHEDULE_WEIGHT = 20.0  # split evenly between bed time and wake time
SLEEP_LATENCY_WEIGHT = 10.0

SLEEP_DURATION_PENALTY_PER_HOUR = 10.0
SLEEP_LATENCY_PENALTY_PER_HOUR = 10.0
SCHEDULE_TOLERANCE_MIN = 30
SCHEDULE_DECAY_MIN = 60  # past the tolerance, points fade to zero over this span

# A night counts toward the sleep goal when it is at most this short of target.
SLEEP_GOAL_SLACK_HOURS = 0.5

LABEL_THRESHOLDS: tuple[tuple[int, str], ...] = (
    (80, "excellent"),
    (60, "good"),
    (40, "fair"),
)


def score_label(score: float) -> str:
    for threshold, label in LABEL_THRESHOLDS:
        if score >= threshold:
            return label
    return "poor"


def _make_score(value: float) -> Score:
    clamped = max(0.0, min(100.0, float(value)))
    s = round_half_up(clamped)
    return Score(score=s, label=score_label(s))


def clock_distance_minutes(a: str, b: str) -> int:
    """Minutes between two HH:MM clock times, going the short way around midnight."""
    d = abs(time_to_minutes(a) - time_to_minutes(b)) % (24 * 60)
    return min(d, 24 * 60 - d)


def schedule_points(actual: str, target: str, weight: float) -> float:
    diff = clock_distance_minutes(actual, target)
    if diff <= SCHEDULE_TOLERANCE_MIN:
        return weight
    over = diff - SCHEDULE_TOLERANCE_MIN
    return max(0.0, weight * (1.0 - over / SCHEDULE_DECAY_MIN))


def ratio_score(actual: float, goal: float) -> int:
    """Progress toward a goal as 0..100. A zero goal is trivially met.

    Only a met goal scores 100; short of it the score tops out at 99.
    """
    if goal <= 0:
        return 100
    if actual >= goal:
        return 100
    if actual <= 0:
        return 0
    return min(99, round_half_up(float(actual) / float(goal) * 100.0))


def progress_percent(actual: float, goal: float) -> float:
    if goal <= 0 or actual >= goal:
        return 100.0
    return min(99.9, round(max(0.0, float(actual) / float(goal)) * 100.0, 1))


# ---- per-domain scorers ----

def score_sleep(record: SleepRecord, goals: SleepGoals) -> Score:
    duration_off = abs(record.sleep_duration - goals.target_duration)
    duration = max(0.0, SLEEP_DURATION_WEIGHT - duration_off * SLEEP_DURATION_PENALTY_PER_HOUR)
    quality = (record.sleep_quality - 1) / 4.0 * SLEEP_QUALITY_WEIGHT
    half = SLEEP_SCHEDULE_WEIGHT / 2.0
    schedule = schedule_points(record.bed_time, goals.target_bed_time, half) + schedule_points(
        record.wake_time, goals.target_wake_time, half
    )
    latency = max(
        0.0,
        SLEEP_LATENCY_WEIGHT - (record.fell_asleep_minutes / 60.0) * SLEEP_LATENCY_PENALTY_PER_HOUR,
    )
    return _make_score(duration + quality + schedule + latency)


def score_steps(record: StepRecord, goals: StepGoals) -> Score:
    return _make_score(ratio_score(record.steps, goals.daily_steps))


def score_water(record: WaterRecord, goals: WaterGoals) -> Score:
    # The goal saved on the day wins over the current setting, as for goal_reached.
    return _make_score(ratio_score(record.total_intake, record.goal))


def score_workout(record: WorkoutRecord, goals: WorkoutGoals) -> Score:
    return _make_score(ratio_score(record.total_minutes, goals.session_target_minutes))


def score_workout_week(records: Iterable[WorkoutRecord], goals: WorkoutGoals) -> int:
    """Weekly consistency: the better of session count and minutes against the weekly goal."""
    sessions = 0
    minutes = 0.0
    for r in records:
        sessions += len(r.sessions)
        minutes += r.total_minutes
    return max(ratio_score(sessions, goals.weekly_workouts), ratio_score(minutes, goals.weekly_minutes))


def sleep_schedule_consistency(records: Iterable[SleepRecord], goals: SleepGoals) -> int:
    points = 0.0
    max_points = 0.0
    for r in records:
        max_points += 100.0
        points += schedule_points(r.bed_time, goals.target_bed_time, 50.0)
        points += schedule_points(r.wake_time, goals.target_wake_time, 50.0)
    if max_points <= 0:
        return 0
    return round_half_up(points / max_points * 100.0)


def sleep_goal_met(record: SleepRecord, goals: SleepGoals) -> bool:
    return record.sleep_duration >= goals.target_duration - SLEEP_GOAL_SLACK_HOURS


def goal_met(domain: str, record: Optional[BaseModel], goals: Optional[BaseModel]) -> bool:
    if record is None:
        return False
    if domain == "sleep":
        return sleep_goal_met(record, goals)  # type: ignore[arg-type]
    if domain == "steps":
        return record.steps >= goals.daily_steps  # type: ignore[attr-defined, union-attr]
    if domain == "water":
        return bool(record.goal_reached)  # type: ignore[attr-defined]
    if domain == "workouts":
        return len(record.sessions) > 0  # type: ignore[attr-defined]
    if domain == "meals":
        return len(record.entries) > 0  # type: ignore[attr-defined]
    return False


def score_record(domain: str, record: BaseModel, goals: BaseModel) -> Optional[Score]:
    if domain == "sleep":
        return score_sleep(record, goals)  # type: ignore[arg-type]
    if domain == "steps":
        return score_steps(record, goals)  # type: ignore[arg-type]
    if domain == "water":
        return score_water(record, goals)  # type: ignore[arg-type]
    if domain == "workouts":
        return score_workout(record, goals)  # type: ignore[arg-type]
    return None


def nutrition_progress(record: Optional[MealRecord], metrics: ProfileMetrics) -> dict[str, Any]:
    """Consumed calories/macros for a day and the percent of each target (not capped)."""
    totals = {"calories": 0.0, "protein_g": 0.0, "carbs_g": 0.0, "fat_g": 0.0}
    if record is not None:
        for e in record.entries:
            totals["calories"] += e.calories
            totals["protein_g"] += e.protein_g
            totals["carbs_g"] += e.carbs_g
            totals["fat_g"] += e.fat_g

    targets = {
        "calories": float(metrics.goal_calories),
        "protein_g": float(metrics.macros.protein_g),
        "carbs_g": float(metrics.macros.carbs_g),
        "fat_g": float(metrics.macros.fat_g),
    }
    percent = {k: (round(totals[k] / targets[k] * 100.0, 1) if targets[k] > 0 else 100.0) for k in totals}
    return {
        "consumed": {k: round(v, 1) for k, v in totals.items()},
        "targets": targets,
        "percent": percent,
        "remaining_calories": round(targets["calories"] - totals["calories"], 1),
    }
