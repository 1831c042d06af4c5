from __future__ import annotations

from collections import defaultdict
from datetime import date, timedelta
from typing import Any, Callable, Iterable, Mapping, Optional

from pydantic import BaseModel

from .models import (
    HealthFactor,
    HealthScore,
    Insights,
    SleepGoals,
    SleepRecord,
    StepGoals,
    StepRecord,
    WaterGoals,
    WaterRecord,
    WorkoutGoals,
    WorkoutRecord,
)
from .profile import round_half_up
from .scoring import (
    goal_met,
    progress_percent,
    ratio_score,
    score_label,
    score_record,
    score_sleep,
    score_workout_week,
    sleep_schedule_consistency,
)
from .settings import HISTORY_DAYS
from .streaks import compute_streak, history_from_days
from .trends import TREND_WINDOW_DAYS, classify_trend

# NOTE:
# Windows are anchored on `today` and count calendar days, not records:
# - averages and consistency use the trailing AVERAGE_WINDOW_DAYS,
# - trends compare the last two TREND_WINDOW_DAYS blocks,
# - streaks and weekday patterns look back over HISTORY_DAYS.

AVERAGE_WINDOW_DAYS = 7
MAX_RECOMMENDATIONS = 5
CONSISTENCY_TARGET = 70

WEEKDAYS = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")

# Water entry time-of-day buckets (local hour, end exclusive).
MORNING_END_HOUR = 12
AFTERNOON_END_HOUR = 18

EMPTY_MESSAGES: dict[str, str] = {
    "sleep": "Start logging your sleep to get personalised insights.",
    "steps": "Start tracking your steps to see your activity insights.",
    "water": "Start logging your water intake to build a hydration habit.",
    "workouts": "Log your first workout to start tracking your training.",
}

POSITIVE_MESSAGES: dict[str, str] = {
    "sleep": "Your sleep habits look great. Keep it up!",
    "steps": "You are staying active. Keep up the great work!",
    "water": "You are well hydrated. Keep it up!",
    "workouts": "Your training is on track. Keep it up!",
}


def _mean(vals: Iterable[float]) -> float:
    vals = list(vals)
    if not vals:
        return 0.0
    return sum(vals) / len(vals)


def _pct(actual: float, goal: float) -> float:
    if goal <= 0:
        return 100.0
    return float(actual) / float(goal) * 100.0


def _capped(x: float) -> int:
    return round_half_up(max(0.0, min(100.0, x)))


def _day_value(domain: str, record: BaseModel) -> float:
    if domain == "sleep":
        return float(record.sleep_duration)  # type: ignore[attr-defined]
    if domain == "steps":
        return float(record.steps)  # type: ignore[attr-defined]
    if domain == "water":
        return float(record.total_intake)  # type: ignore[attr-defined]
    if domain == "workouts":
        return float(record.total_minutes)  # type: ignore[attr-defined]
    raise ValueError(f"No insights for domain: {domain}")


def _window(by_day: dict[date, BaseModel], today: date, days: int) -> list[BaseModel]:
    """Records in the `days` ending at today, oldest first."""
    out = []
    for i in range(days - 1, -1, -1):
        rec = by_day.get(today - timedelta(days=i))
        if rec is not None:
            out.append(rec)
    return out


def _series(
    by_day: dict[date, BaseModel], today: date, days: int, value: Callable[[BaseModel], float]
) -> list[Optional[float]]:
    """Chronological daily values; None where nothing was logged."""
    out: list[Optional[float]] = []
    for i in range(days - 1, -1, -1):
        rec = by_day.get(today - timedelta(days=i))
        out.append(None if rec is None else value(rec))
    return out


def _weekday_means(records: Iterable[BaseModel], value: Callable[[BaseModel], float]) -> dict[str, float]:
    buckets: dict[int, list[float]] = defaultdict(list)
    for r in records:
        buckets[r.day.weekday()].append(value(r))  # type: ignore[attr-defined]
    return {WEEKDAYS[k]: round(_mean(v), 2) for k, v in sorted(buckets.items())}


def _day_ratio_consistency(window: list[BaseModel], met: Callable[[BaseModel], bool]) -> int:
    """Share of logged days in the window on which the goal was met."""
    if not window:
        return 0
    return _capped(sum(1 for r in window if met(r)) / len(window) * 100.0)


# ---- per-domain details and rules ----

def _sleep_details(window: list[SleepRecord], history: list[SleepRecord], goals: SleepGoals) -> dict[str, Any]:
    scores = [score_sleep(r, goals).score for r in window]
    details: dict[str, Any] = {
        "nights_logged": len(window),
        "average_quality": round(_mean(r.sleep_quality for r in window), 2),
        "average_latency_minutes": round(_mean(r.fell_asleep_minutes for r in window), 1),
        "average_times_woken": round(_mean(r.times_woken for r in window), 2),
        "average_score": round(_mean(scores), 1),
        "weekday_pattern": _weekday_means(history, lambda r: r.sleep_duration),  # type: ignore[attr-defined]
    }
    if window:
        best = max(window, key=lambda r: r.sleep_duration)
        worst = min(window, key=lambda r: r.sleep_duration)
        details["longest_night"] = {"day": best.day.isoformat(), "hours": best.sleep_duration}
        details["shortest_night"] = {"day": worst.day.isoformat(), "hours": worst.sleep_duration}
    return details


def _sleep_rules(average: float, consistency: int, window: list[SleepRecord], details: dict[str, Any]) -> list[str]:
    recs: list[str] = []
    if average < 7:
        recs.append(f"You are averaging {average:.1f} h of sleep. Try going to bed earlier to get at least 7 hours.")
    if details["average_quality"] < 3:
        recs.append("Your sleep quality is low. Keep your bedroom dark, quiet and cool.")
    if details["average_latency_minutes"] > 30:
        recs.append("It takes you over 30 minutes to fall asleep. Try a relaxing routine and avoid screens before bed.")
    elif details.get("latency_trend") == "declining":
        recs.append("You are taking longer to fall asleep than last week. Wind down earlier in the evening.")
    if consistency < CONSISTENCY_TARGET:
        recs.append("Go to bed and wake up at the same time every day, weekends included.")
    if window and window[-1].sleep_quality > details["average_quality"]:
        recs.append("Your latest night was better than your average. Keep doing what worked!")
    return recs


def _step_details(
    window: list[StepRecord], history: list[StepRecord], goals: StepGoals, consistency: int
) -> dict[str, Any]:
    average = _mean(r.steps for r in window)
    week_total = sum(r.steps for r in window)
    details: dict[str, Any] = {
        "days_logged": len(window),
        "week_total_steps": week_total,
        "weekly_goal_progress": progress_percent(week_total, goals.weekly_steps),
        "average_distance_km": round(_mean(r.distance_km for r in window), 2),
        "average_active_minutes": round(_mean(r.active_minutes for r in window), 1),
        "weekday_pattern": _weekday_means(history, lambda r: float(r.steps)),  # type: ignore[attr-defined]
        "health_metrics": {
            "cardiovascular": _capped(_pct(average, goals.daily_steps)),
            "fitness": _capped(average / 10000.0 * 60.0 + consistency * 0.4),
            "weight_management": _capped(average / 10000.0 * 50.0 + consistency * 0.5),
        },
    }
    if history:
        best = max(history, key=lambda r: r.steps)
        details["best_day"] = {"day": best.day.isoformat(), "steps": best.steps}
    return details


def _step_rules(
    average: float, consistency: int, streak_current: int, trend: str, goals: StepGoals, details: dict[str, Any]
) -> list[str]:
    recs: list[str] = []
    if average < goals.daily_steps:
        deficit = round_half_up(goals.daily_steps - average)
        recs.append(f"You are {deficit:,} steps a day short of your goal. A 15 minute walk adds about 1,500 steps.")
    if consistency < CONSISTENCY_TARGET:
        recs.append("Try to reach your step goal more days each week.")
    if streak_current == 0:
        recs.append("Hit your step goal today to start a new streak.")
    else:
        recs.append(f"You have a {streak_current}-day streak. Keep it going!")
    pattern: dict[str, float] = details["weekday_pattern"]
    if len(pattern) >= 2:
        overall = _mean(pattern.values())
        weekday, low = min(pattern.items(), key=lambda kv: kv[1])
        if low < 0.8 * overall:
            recs.append(f"{weekday} is your least active day. Plan a walk for {weekday}s.")
    if trend == "declining":
        recs.append("Your step count is trending down. Take the stairs or walk during breaks.")
    return recs


def _time_bucket(hour: int) -> str:
    if hour < MORNING_END_HOUR:
        return "morning"
    if hour < AFTERNOON_END_HOUR:
        return "afternoon"
    return "evening"


def hydration_level(intake: float, goal: float) -> str:
    if intake >= 1.2 * goal:
        return "excellent"
    if intake >= goal:
        return "good"
    if intake >= 0.7 * goal:
        return "moderate"
    return "poor"


def _water_details(window: list[WaterRecord], today_rec: Optional[WaterRecord], consistency: int) -> dict[str, Any]:
    average = _mean(r.total_intake for r in window)
    buckets = {"morning": 0.0, "afternoon": 0.0, "evening": 0.0}
    for r in window:
        for e in r.entries:
            if e.timestamp is not None:
                buckets[_time_bucket(e.timestamp.hour)] += e.amount
    days = len(window) or 1
    poor_days = sum(1 for r in window if hydration_level(r.total_intake, r.goal) == "poor")
    details: dict[str, Any] = {
        "days_logged": len(window),
        "average_volume_ml": round_half_up(_mean(r.total_volume_ml for r in window)),
        "time_of_day": {k: round(v / days, 2) for k, v in buckets.items()},
        "poor_day_share": round(poor_days / days * 100.0, 1) if window else 0.0,
        "health_benefits": {
            "skin_health": _capped(average / 8.0 * 100.0),
            "energy_level": _capped(average / 8.0 * 80.0 + consistency * 0.2),
            "detoxification": _capped(average / 10.0 * 100.0),
            "weight_management": _capped(average / 8.0 * 60.0 + consistency * 0.4),
        },
    }
    if today_rec is not None:
        details["hydration_level"] = hydration_level(today_rec.total_intake, today_rec.goal)
    return details


def _water_rules(average: float, consistency: int, streak_current: int, details: dict[str, Any]) -> list[str]:
    recs: list[str] = []
    tod = details["time_of_day"]
    if average < 6:
        recs.append("You are drinking less than 6 glasses a day. Keep a water bottle within reach.")
    if tod["morning"] < 2:
        recs.append("Start your day with a glass or two of water.")
    if streak_current == 0:
        recs.append("Reach your water goal today to start a hydration streak.")
    if consistency < CONSISTENCY_TARGET:
        recs.append("Set reminders to drink water at regular times through the day.")
    if tod["evening"] > tod["morning"] + tod["afternoon"]:
        recs.append("Most of your water comes in the evening. Spread it across the day for better sleep.")
    if details["poor_day_share"] > 30:
        recs.append("You fell well short of your water goal on several days this week.")
    return recs


def _workout_details(window: list[WorkoutRecord], goals: WorkoutGoals, consistency: int) -> dict[str, Any]:
    sessions = [s for r in window for s in r.sessions]
    minutes = sum(s.duration_minutes for s in sessions)
    type_counts: dict[str, int] = defaultdict(int)
    for s in sessions:
        type_counts[s.type] += 1
    return {
        "sessions_this_week": len(sessions),
        "minutes_this_week": round(minutes, 1),
        "calories_this_week": round(sum(s.calories_burned for s in sessions), 1),
        "average_session_minutes": round(_mean(s.duration_minutes for s in sessions), 1),
        "type_counts": dict(type_counts),
        "health_benefits": {
            "cardiovascular": _capped(_pct(minutes, goals.weekly_minutes)),
            "muscular_strength": _capped(_pct(len(sessions), goals.weekly_workouts) * 0.8 + consistency * 0.2),
            "flexibility": _capped((80.0 if "yoga" in type_counts else 40.0) + consistency * 0.2),
            "mental_health": _capped(_pct(len(sessions), goals.weekly_workouts) * 0.9 + consistency * 0.1),
        },
    }


def _workout_rules(consistency: int, goals: WorkoutGoals, details: dict[str, Any]) -> list[str]:
    recs: list[str] = []
    sessions = details["sessions_this_week"]
    if sessions < goals.weekly_workouts:
        left = goals.weekly_workouts - sessions
        recs.append(f"{left} more workout{'s' if left != 1 else ''} to reach your weekly goal.")
    if details["minutes_this_week"] < goals.weekly_minutes:
        left = round_half_up(goals.weekly_minutes - details["minutes_this_week"])
        recs.append(f"{left} more active minutes to reach your weekly goal.")
    if consistency < CONSISTENCY_TARGET:
        recs.append("Schedule your workouts on fixed days to build consistency.")
    if len(details["type_counts"]) == 1:
        recs.append("Mix in a different type of workout to train more muscle groups.")
    avg = details["average_session_minutes"]
    if avg > goals.session_max_minutes:
        recs.append("Your sessions run long. Shorter, focused workouts are easier to sustain.")
    elif 0 < avg < goals.session_min_minutes:
        recs.append(f"Try to make each session at least {goals.session_min_minutes} minutes.")
    return recs


def finalize_recommendations(domain: str, candidates: list[str]) -> list[str]:
    """Cap to MAX_RECOMMENDATIONS in rule order; never return an empty list."""
    if not candidates:
        return [POSITIVE_MESSAGES.get(domain, "Keep it up!")]
    return candidates[:MAX_RECOMMENDATIONS]


def build_insights(
    domain: str,
    records: Iterable[BaseModel],
    goals: BaseModel,
    today: date,
    *,
    history_days: int = HISTORY_DAYS,
) -> Insights:
    """Compose scores, trend, streak and recommendations for one domain.

    `records` may be in any order and may cover more than the history window;
    anything after `today` is ignored.
    """
    if domain not in EMPTY_MESSAGES:
        raise ValueError(f"No insights for domain: {domain}")

    by_day: dict[date, BaseModel] = {r.day: r for r in records if r.day <= today}  # type: ignore[attr-defined]
    window = _window(by_day, today, AVERAGE_WINDOW_DAYS)
    history = _window(by_day, today, max(history_days, AVERAGE_WINDOW_DAYS))
    today_rec = by_day.get(today)

    def met(r: BaseModel) -> bool:
        return goal_met(domain, r, goals)

    streak = compute_streak(
        history_from_days(by_day, today, max(history_days, 1), met),
        allow_pending_today=True,
    )

    if domain == "sleep":
        trend_value: Callable[[BaseModel], float] = lambda r: float(score_sleep(r, goals).score)  # type: ignore[arg-type]
    else:
        trend_value = lambda r: _day_value(domain, r)
    trend = classify_trend(_series(by_day, today, 2 * TREND_WINDOW_DAYS, trend_value))

    average = round(_mean(_day_value(domain, r) for r in window), 2)
    score = score_record(domain, today_rec, goals) if today_rec is not None else None

    if domain == "sleep":
        g_sleep: SleepGoals = goals  # type: ignore[assignment]
        consistency = sleep_schedule_consistency(window, g_sleep)  # type: ignore[arg-type]
        details = _sleep_details(window, history, g_sleep)  # type: ignore[arg-type]
        # fewer minutes to fall asleep is better
        details["latency_trend"] = classify_trend(
            _series(by_day, today, 2 * TREND_WINDOW_DAYS, lambda r: float(r.fell_asleep_minutes)),  # type: ignore[attr-defined]
            higher_is_better=False,
        )
        progress = progress_percent(today_rec.sleep_duration, g_sleep.target_duration) if today_rec else 0.0  # type: ignore[attr-defined]
        candidates = _sleep_rules(average, consistency, window, details) if window else []  # type: ignore[arg-type]
    elif domain == "steps":
        g_steps: StepGoals = goals  # type: ignore[assignment]
        consistency = _day_ratio_consistency(window, met)
        details = _step_details(window, history, g_steps, consistency)  # type: ignore[arg-type]
        progress = progress_percent(today_rec.steps, g_steps.daily_steps) if today_rec else 0.0  # type: ignore[attr-defined]
        candidates = _step_rules(average, consistency, streak.current, trend, g_steps, details) if window else []
    elif domain == "water":
        g_water: WaterGoals = goals  # type: ignore[assignment]
        consistency = _day_ratio_consistency(window, met)
        details = _water_details(window, today_rec, consistency)  # type: ignore[arg-type]
        target = today_rec.goal if today_rec is not None else g_water.daily_glasses  # type: ignore[attr-defined]
        progress = progress_percent(today_rec.total_intake, target) if today_rec else 0.0  # type: ignore[attr-defined]
        candidates = _water_rules(average, consistency, streak.current, details) if window else []
    else:
        g_work: WorkoutGoals = goals  # type: ignore[assignment]
        consistency = score_workout_week(window, g_work)  # type: ignore[arg-type]
        details = _workout_details(window, g_work, consistency)  # type: ignore[arg-type]
        progress = progress_percent(details["minutes_this_week"], g_work.weekly_minutes)
        candidates = _workout_rules(consistency, g_work, details) if window else []
        details["weekly_score"] = ratio_score(details["minutes_this_week"], g_work.weekly_minutes)

    if not window:
        candidates = [EMPTY_MESSAGES[domain]]

    return Insights(
        domain=domain,
        as_of=today,
        average_value=average,
        consistency_score=consistency,
        trend=trend,  # type: ignore[arg-type]
        streak=streak,
        score=score,
        goal_progress=progress,
        recommendations=finalize_recommendations(domain, candidates),
        details=details,
    )


# ---- overall health score ----

# (factor, weight); weights sum to 100
HEALTH_SCORE_WEIGHTS: tuple[tuple[str, int], ...] = (
    ("activity", 25),
    ("sleep", 20),
    ("hydration", 15),
    ("exercise", 20),
    ("nutrition", 20),
)


def _logged(ins: Optional[Insights], key: str) -> bool:
    return ins is not None and bool(ins.details.get(key))


def overall_health_score(
    insights: Mapping[str, Insights],
    goals: Mapping[str, BaseModel],
    nutrition: Optional[Mapping[str, Any]] = None,
) -> HealthScore:
    """Weighted blend of the per-domain results for the trailing week.

    A factor with nothing logged this week (or no meals today, for nutrition)
    is left out and the remaining weights are rescaled. With no factor at all
    the score is 0.
    """
    factor_scores: dict[str, int] = {}
    steps, sleep, water, workouts = (insights.get(d) for d in ("steps", "sleep", "water", "workouts"))

    if _logged(steps, "days_logged"):
        factor_scores["activity"] = ratio_score(steps.average_value, goals["steps"].daily_steps)  # type: ignore[union-attr, attr-defined]
    if _logged(sleep, "nights_logged"):
        factor_scores["sleep"] = ratio_score(sleep.average_value, goals["sleep"].target_duration)  # type: ignore[union-attr, attr-defined]
    if _logged(water, "days_logged"):
        factor_scores["hydration"] = ratio_score(water.average_value, goals["water"].daily_glasses)  # type: ignore[union-attr, attr-defined]
    if _logged(workouts, "sessions_this_week"):
        factor_scores["exercise"] = workouts.consistency_score  # type: ignore[union-attr]
    if nutrition is not None and nutrition["consumed"]["calories"] > 0:
        off = abs(nutrition["percent"]["calories"] - 100.0)
        factor_scores["nutrition"] = _capped(100.0 - off)

    factors = [HealthFactor(name=n, score=factor_scores[n], weight=w) for n, w in HEALTH_SCORE_WEIGHTS if n in factor_scores]
    total_weight = sum(f.weight for f in factors)
    if total_weight == 0:
        return HealthScore(score=0, label=score_label(0), factors=[])
    score = _capped(sum(f.score * f.weight for f in factors) / total_weight)
    return HealthScore(score=score, label=score_label(score), factors=factors)
