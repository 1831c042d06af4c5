from __future__ import annotations

import logging
from datetime import date, datetime, timedelta, timezone
from typing import Any, Optional

from pydantic import BaseModel

from . import profile as profile_mod
from .achievements import earned_list, evaluate_achievements, total_points
from .challenges import completed_ids, earliest_start, evaluate_challenges
from .db import LOCAL_TZ, local_today
from .insights import build_insights, overall_health_score
from .models import (
    DOMAINS,
    INSIGHT_DOMAINS,
    ChallengeProgress,
    EarnedAchievement,
    EngineEvent,
    HealthScore,
    Insights,
    LogResponse,
    MealEntry,
    MealLogRequest,
    MealRecord,
    ProfileMetrics,
    ProfileUpdateRequest,
    SleepLogRequest,
    SleepRecord,
    StepGoals,
    StepLogRequest,
    StepRecord,
    UserProfile,
    WaterEntry,
    WaterGoals,
    WaterLogRequest,
    WaterRecord,
    WorkoutGoals,
    WorkoutLogRequest,
    WorkoutRecord,
    WorkoutSession,
)
from .notify import Notifier, dispatch
from .profile import InvalidProfile, check_profile
from .reminders import NO_SLEEP_LOG_DAYS, sleep_reminders, water_reminders
from .scoring import goal_met, nutrition_progress, score_record
from .settings import ACHIEVEMENT_HISTORY_DAYS, HISTORY_DAYS, MACRO_SPLIT
from .store import DailyLogStore, UnknownDomain, goal_model
from .streaks import compute_streak, history_from_days

logger = logging.getLogger(__name__)

# Used for derived step/workout values when the user has no profile yet.
DEFAULT_WEIGHT_KG = 70.0
DEFAULT_HEIGHT_CM = 170.0


class ProfileNotFound(LookupError):
    pass


def compute_profile_metrics(profile: UserProfile, *, today: Optional[date] = None) -> ProfileMetrics:
    """Validate the profile, then derive BMR, calorie, macro and water targets."""
    check_profile(profile, today)
    return profile_mod.compute_profile_metrics(profile, today=today, split=MACRO_SPLIT)


def _longest(by_day: dict[date, BaseModel], today: date, days: int, predicate) -> int:
    return compute_streak(history_from_days(by_day, today, days, predicate)).longest


class Engine:
    """Reads logs from a DailyLogStore and derives metrics, insights and achievements.

    Log operations merge into the single record per (user, day, domain), then
    return the updated record with its score and any events raised.
    """

    def __init__(
        self,
        store: DailyLogStore,
        notifier: Optional[Notifier] = None,
        *,
        history_days: int = HISTORY_DAYS,
        achievement_history_days: int = ACHIEVEMENT_HISTORY_DAYS,
    ) -> None:
        self.store = store
        self.notifier = notifier
        self.history_days = history_days
        self.achievement_history_days = achievement_history_days

    # ---- profile ----

    def require_profile(self, user_id: str) -> UserProfile:
        p = self.store.get_profile(user_id)
        if p is None:
            raise ProfileNotFound(f"No profile for user: {user_id}")
        return p

    def profile_metrics(self, user_id: str, today: Optional[date] = None) -> ProfileMetrics:
        return compute_profile_metrics(self.require_profile(user_id), today=today)

    def update_profile(self, user_id: str, req: ProfileUpdateRequest, today: Optional[date] = None) -> UserProfile:
        """Merge the given fields into the stored profile (or create it)."""
        current = self.store.get_profile(user_id)
        data: dict[str, Any] = current.model_dump() if current else {"user_id": user_id}
        data.update(req.model_dump(exclude_none=True))

        missing = [k for k in ("gender", "birth_year", "height_cm", "weight_kg") if data.get(k) is None]
        if missing:
            raise InvalidProfile(f"Missing profile fields: {', '.join(missing)}")
        if req.activity_level is not None and profile_mod.resolve_activity_level(req.activity_level) is None:
            raise InvalidProfile(f"Unknown activity_level: {req.activity_level}")

        profile = UserProfile.model_validate(data)
        check_profile(profile, today)
        self.store.save_profile(profile)
        logger.debug("profile saved for %s", user_id)
        return profile

    def _body(self, user_id: str) -> tuple[float, float]:
        p = self.store.get_profile(user_id)
        if p is None:
            return DEFAULT_WEIGHT_KG, DEFAULT_HEIGHT_CM
        return float(p.weight_kg), float(p.height_cm)

    # ---- goals ----

    def get_goals(self, user_id: str, domain: str) -> BaseModel:
        return self.store.get_goals(user_id, domain)

    def set_goals(self, user_id: str, domain: str, payload: dict[str, Any]) -> BaseModel:
        model = goal_model(domain)
        merged = self.store.get_goals(user_id, domain).model_dump()
        merged.update(payload)
        goals = model.model_validate(merged)
        return self.store.save_goals(user_id, domain, goals)

    # ---- insights ----

    def compute_insights(self, user_id: str, domain: str, today: Optional[date] = None) -> Insights:
        if domain not in INSIGHT_DOMAINS:
            raise UnknownDomain(f"No insights for domain: {domain}")
        today = today or local_today()
        start = today - timedelta(days=self.history_days - 1)
        records = self.store.get_records(user_id, domain, start, today)
        goals = self.store.get_goals(user_id, domain)
        logger.debug("insights %s/%s: %d records since %s", user_id, domain, len(records), start)
        return build_insights(domain, records, goals, today, history_days=self.history_days)

    def weekly_summary(self, user_id: str, today: Optional[date] = None) -> dict[str, Any]:
        today = today or local_today()
        summary: dict[str, Any] = {
            "user_id": user_id,
            "as_of": today.isoformat(),
            "insights": {d: self.compute_insights(user_id, d, today) for d in INSIGHT_DOMAINS},
        }

        summary["metrics"], summary["nutrition"] = self._nutrition(user_id, today)
        summary["health_score"] = self._health_score(user_id, summary["insights"], summary["nutrition"])
        summary["challenges"] = self.step_challenges(user_id, today)

        earned = self.store.get_earned(user_id)
        summary["achievements"] = {"earned": len(earned), "points": total_points(earned)}
        return summary

    def _nutrition(self, user_id: str, today: date) -> tuple[Optional[ProfileMetrics], Optional[dict[str, Any]]]:
        profile = self.store.get_profile(user_id)
        if profile is None:
            return None, None
        metrics = compute_profile_metrics(profile, today=today)
        meals = self.store.get_record(user_id, "meals", today)
        return metrics, nutrition_progress(meals, metrics)  # type: ignore[arg-type]

    def _health_score(
        self, user_id: str, insights: dict[str, Insights], nutrition: Optional[dict[str, Any]]
    ) -> HealthScore:
        goals = {d: self.store.get_goals(user_id, d) for d in INSIGHT_DOMAINS}
        return overall_health_score(insights, goals, nutrition)

    def health_score(self, user_id: str, today: Optional[date] = None) -> HealthScore:
        """Weighted score across domains for the week ending today."""
        today = today or local_today()
        insights = {d: self.compute_insights(user_id, d, today) for d in INSIGHT_DOMAINS}
        return self._health_score(user_id, insights, self._nutrition(user_id, today)[1])

    # ---- challenges & reminders ----

    def step_challenges(self, user_id: str, today: Optional[date] = None) -> list[ChallengeProgress]:
        today = today or local_today()
        records = self.store.get_records(user_id, "steps", earliest_start(today), today)
        return evaluate_challenges(records, today)  # type: ignore[arg-type]

    def _challenge_events(
        self, user_id: str, day: date, prev: Optional[StepRecord], record: StepRecord
    ) -> list[EngineEvent]:
        others = [r for r in self.store.get_records(user_id, "steps", earliest_start(day), day) if r.day != day]  # type: ignore[attr-defined]
        before = completed_ids(evaluate_challenges([*others, *([prev] if prev else [])], day))  # type: ignore[list-item]
        events: list[EngineEvent] = []
        for c in evaluate_challenges([*others, record], day):  # type: ignore[list-item]
            if c.completed and c.id not in before:
                logger.info("challenge completed user=%s id=%s", user_id, c.id)
                events.append(
                    EngineEvent(
                        kind="challenge_completed",
                        user_id=user_id,
                        day=day,
                        message=f"Challenge completed: {c.title}",
                        data={"challenge_id": c.id, "points": c.points},
                    )
                )
        return events

    def due_reminders(self, user_id: str, now: Optional[datetime] = None) -> list[EngineEvent]:
        """Reminders whose window contains `now` (local time). Nothing is sent."""
        if now is None:
            now = datetime.now(LOCAL_TZ)
        elif now.tzinfo is not None:
            now = now.astimezone(LOCAL_TZ)
        today = now.date()
        recent = self.store.get_records(user_id, "sleep", today - timedelta(days=NO_SLEEP_LOG_DAYS - 1), today)
        events = sleep_reminders(
            user_id,
            now,
            self.store.get_goals(user_id, "sleep"),  # type: ignore[arg-type]
            {r.day for r in recent},  # type: ignore[attr-defined]
        )
        events += water_reminders(
            user_id,
            now,
            self.store.get_goals(user_id, "water"),  # type: ignore[arg-type]
            self.store.get_record(user_id, "water", today),  # type: ignore[arg-type]
        )
        return events

    def send_reminders(self, user_id: str, now: Optional[datetime] = None) -> list[EngineEvent]:
        events = self.due_reminders(user_id, now)
        delivered = dispatch(self.notifier, events)
        logger.debug("reminders for %s: %d due, %d delivered", user_id, len(events), delivered)
        return events

    # ---- achievements ----

    def achievement_metrics(self, user_id: str, today: Optional[date] = None) -> dict[str, float]:
        today = today or local_today()
        days = self.achievement_history_days
        start = today - timedelta(days=days - 1)

        by_domain: dict[str, dict[date, BaseModel]] = {}
        for domain in DOMAINS:
            recs = self.store.get_records(user_id, domain, start, today)
            by_domain[domain] = {r.day: r for r in recs}  # type: ignore[attr-defined]

        steps: list[StepRecord] = list(by_domain["steps"].values())  # type: ignore[arg-type]
        water: list[WaterRecord] = list(by_domain["water"].values())  # type: ignore[arg-type]
        workouts: list[WorkoutRecord] = list(by_domain["workouts"].values())  # type: ignore[arg-type]
        meals: list[MealRecord] = list(by_domain["meals"].values())  # type: ignore[arg-type]

        def goal_pred(domain: str):
            goals = self.store.get_goals(user_id, domain)
            return lambda r: goal_met(domain, r, goals)

        active_days = {d for recs in by_domain.values() for d in recs}

        return {
            "lifetime_steps": float(sum(r.steps for r in steps)),
            "best_day_steps": float(max((r.steps for r in steps), default=0)),
            "best_day_distance_km": float(max((r.distance_km for r in steps), default=0.0)),
            "steps_longest_streak": float(_longest(by_domain["steps"], today, days, goal_pred("steps"))),
            "water_goal_days": float(sum(1 for r in water if r.goal_reached)),
            "water_longest_streak": float(_longest(by_domain["water"], today, days, goal_pred("water"))),
            "sleep_logged_days": float(len(by_domain["sleep"])),
            "sleep_longest_streak": float(_longest(by_domain["sleep"], today, days, goal_pred("sleep"))),
            "workout_sessions": float(sum(len(r.sessions) for r in workouts)),
            "workout_minutes_total": float(sum(r.total_minutes for r in workouts)),
            "meals_logged": float(sum(len(r.entries) for r in meals)),
            "active_longest_streak": float(
                _longest({d: True for d in active_days}, today, days, lambda _: True)  # type: ignore[arg-type]
            ),
        }

    def check_achievements(self, user_id: str, now: Optional[datetime] = None) -> list[EarnedAchievement]:
        """Evaluate the catalog and record new unlocks. Returns newly unlocked only."""
        now = now or datetime.now(timezone.utc)
        today = now.astimezone(LOCAL_TZ).date() if now.tzinfo else now.date()
        earned = self.store.get_earned(user_id)
        candidates = evaluate_achievements(self.achievement_metrics(user_id, today), earned, now)

        unlocked: list[EarnedAchievement] = []
        for a in candidates:
            if self.store.mark_achievement_earned(user_id, a.id, now):
                logger.info("achievement unlocked user=%s id=%s", user_id, a.id)
                unlocked.append(a)
        return unlocked

    def earned_achievements(self, user_id: str) -> list[EarnedAchievement]:
        return earned_list(self.store.get_earned(user_id))

    # ---- logging (merge on write) ----

    def _finish(self, user_id: str, domain: str, record: BaseModel, events: list[EngineEvent]) -> LogResponse:
        """Check achievements, notify and score an already stored record."""
        for a in self.check_achievements(user_id):
            events.append(
                EngineEvent(
                    kind="achievement_unlocked",
                    user_id=user_id,
                    day=getattr(record, "day"),
                    message=f"Achievement unlocked: {a.title}",
                    data={"achievement_id": a.id, "points": a.points, "rarity": a.rarity},
                )
            )
        dispatch(self.notifier, events)

        score = None
        if domain != "meals":
            score = score_record(domain, record, self.store.get_goals(user_id, domain))
        return LogResponse(ok=True, domain=domain, record=record.model_dump(mode="json"), score=score, events=events)

    def log_sleep(self, user_id: str, req: SleepLogRequest) -> LogResponse:
        day = req.day or local_today()
        # One night per day; a new log replaces the previous one.
        record = SleepRecord.model_validate({**req.model_dump(exclude={"day"}), "day": day})
        self.store.save_record(user_id, "sleep", record)
        return self._finish(user_id, "sleep", record, [])

    def add_steps(self, user_id: str, req: StepLogRequest) -> LogResponse:
        day = req.day or local_today()
        goals: StepGoals = self.store.get_goals(user_id, "steps")  # type: ignore[assignment]
        weight, height = self._body(user_id)

        def merge(prev: Optional[StepRecord]) -> StepRecord:
            total = req.steps if req.mode == "set" else (prev.steps if prev else 0) + req.steps
            return StepRecord(
                day=day,
                steps=total,
                distance_km=profile_mod.step_distance_km(total, height),
                calories_burned=profile_mod.step_calories(total, weight),
                active_minutes=profile_mod.step_active_minutes(total),
            )

        prev, record = self.store.update_record(user_id, "steps", day, merge)  # type: ignore[arg-type]
        before = prev.steps if prev else 0  # type: ignore[attr-defined]
        total = record.steps  # type: ignore[attr-defined]

        events: list[EngineEvent] = []
        if before < goals.daily_steps <= total:
            events.append(
                EngineEvent(
                    kind="step_goal_reached",
                    user_id=user_id,
                    day=day,
                    message=f"Step goal reached: {total:,} steps",
                    data={"steps": total, "goal": goals.daily_steps},
                )
            )
        events += self._challenge_events(user_id, day, prev, record)  # type: ignore[arg-type]
        return self._finish(user_id, "steps", record, events)

    def add_water(self, user_id: str, req: WaterLogRequest) -> LogResponse:
        day = req.day or local_today()
        goals: WaterGoals = self.store.get_goals(user_id, "water")  # type: ignore[assignment]
        entry = WaterEntry(amount=req.amount, type=req.type, timestamp=req.timestamp or datetime.now(LOCAL_TZ))

        def merge(prev: Optional[WaterRecord]) -> WaterRecord:
            entries = [*(prev.entries if prev else []), entry]
            return WaterRecord(day=day, goal=goals.daily_glasses, entries=entries)

        prev, record = self.store.update_record(user_id, "water", day, merge)  # type: ignore[arg-type]

        events: list[EngineEvent] = []
        was_reached = prev is not None and prev.total_intake >= record.goal  # type: ignore[attr-defined]
        if record.goal_reached and not was_reached:  # type: ignore[attr-defined]
            events.append(
                EngineEvent(
                    kind="water_goal_reached",
                    user_id=user_id,
                    day=day,
                    message=f"Water goal reached: {record.total_intake:g} glasses",  # type: ignore[attr-defined]
                    data={"total_intake": record.total_intake, "goal": record.goal},  # type: ignore[attr-defined]
                )
            )
        return self._finish(user_id, "water", record, events)

    def add_workout(self, user_id: str, req: WorkoutLogRequest) -> LogResponse:
        day = req.day or local_today()
        goals: WorkoutGoals = self.store.get_goals(user_id, "workouts")  # type: ignore[assignment]

        weight, _ = self._body(user_id)
        session = WorkoutSession(
            type=req.type,
            name=req.name,
            duration_minutes=req.duration_minutes,
            intensity=req.intensity,
            calories_burned=profile_mod.workout_calories(req.type, req.duration_minutes, req.intensity, weight),
            started_at=req.started_at or datetime.now(LOCAL_TZ),
        )

        def merge(prev: Optional[WorkoutRecord]) -> WorkoutRecord:
            return WorkoutRecord(day=day, sessions=[*(prev.sessions if prev else []), session])

        prev, record = self.store.update_record(user_id, "workouts", day, merge)  # type: ignore[arg-type]

        week = self.store.get_records(user_id, "workouts", day - timedelta(days=6), day)
        before = sum(len(r.sessions) for r in week if r.day != day) + (len(prev.sessions) if prev else 0)  # type: ignore[attr-defined]
        events: list[EngineEvent] = []
        if before < goals.weekly_workouts <= before + 1:
            events.append(
                EngineEvent(
                    kind="workout_week_goal_reached",
                    user_id=user_id,
                    day=day,
                    message=f"Weekly workout goal reached: {before + 1} sessions",
                    data={"sessions": before + 1, "goal": goals.weekly_workouts},
                )
            )
        return self._finish(user_id, "workouts", record, events)

    def add_meal(self, user_id: str, req: MealLogRequest) -> LogResponse:
        day = req.day or local_today()
        entry = MealEntry.model_validate(req.model_dump(exclude={"day"}))

        def merge(prev: Optional[MealRecord]) -> MealRecord:
            return MealRecord(day=day, entries=[*(prev.entries if prev else []), entry])

        _, record = self.store.update_record(user_id, "meals", day, merge)  # type: ignore[arg-type]
        return self._finish(user_id, "meals", record, [])
