from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Collection, Optional

from .models import EngineEvent, SleepGoals, WaterGoals, WaterRecord, time_to_minutes

# NOTE:
# Reminder rules are evaluated against a local wall-clock `now`. Nothing here
# remembers what was already sent: a caller polling more than once inside a
# window gets the same reminder again.

DAY_MINUTES = 24 * 60

BEDTIME_LEAD_MINUTES = 30
WAKE_PROMPT_WINDOW_MINUTES = 15
SLOT_WINDOW_MINUTES = 15

NO_SLEEP_LOG_DAYS = 3
SLEEP_NUDGE_HOUR = 10
WEEKLY_REPORT_WEEKDAY = 6  # Sunday
WEEKLY_REPORT_HOUR = 9

# (slot id, HH:MM, WaterGoals flag that enables it, message)
WATER_SLOTS: tuple[tuple[str, str, str, str], ...] = (
    ("wake_up", "07:00", "wake_up_reminder", "Good morning! Time for your first glass of water."),
    ("mid_morning", "10:00", "interval_reminders", "Mid-morning water break."),
    ("lunch", "12:00", "meal_reminders", "Have a glass of water before lunch."),
    ("afternoon", "15:00", "interval_reminders", "Afternoon hydration time."),
    ("evening", "18:00", "interval_reminders", "Evening water reminder."),
)


def _clock(now: datetime) -> int:
    return now.hour * 60 + now.minute


def minutes_after(now: datetime, hhmm: str) -> int:
    """Minutes elapsed since the most recent occurrence of hhmm (0..1439)."""
    return (_clock(now) - time_to_minutes(hhmm)) % DAY_MINUTES


def _event(kind: str, user_id: str, now: datetime, message: str, **data) -> EngineEvent:
    return EngineEvent(kind=kind, user_id=user_id, day=now.date(), message=message, data=data)


def sleep_reminders(
    user_id: str,
    now: datetime,
    goals: SleepGoals,
    logged_days: Collection[date],
) -> list[EngineEvent]:
    """Bedtime, wake-up log prompt, missing-log nudge and the Sunday report prompt.

    `logged_days` holds the days with a sleep record; only the last few matter.
    """
    today = now.date()
    out: list[EngineEvent] = []

    until_bed = (time_to_minutes(goals.target_bed_time) - _clock(now)) % DAY_MINUTES
    if goals.bedtime_reminder and until_bed <= BEDTIME_LEAD_MINUTES:
        out.append(
            _event(
                "sleep_bedtime_reminder",
                user_id,
                now,
                f"Bedtime at {goals.target_bed_time}. Put your phone and screens away.",
                priority="high",
                minutes_left=until_bed,
            )
        )

    off_wake = minutes_after(now, goals.target_wake_time)
    off_wake = min(off_wake, DAY_MINUTES - off_wake)
    if off_wake <= WAKE_PROMPT_WINDOW_MINUTES and today not in logged_days:
        out.append(_event("sleep_log_prompt", user_id, now, "Good morning! How did you sleep? Log last night.", priority="medium"))

    recent = {today - timedelta(days=i) for i in range(NO_SLEEP_LOG_DAYS)}
    if now.hour == SLEEP_NUDGE_HOUR and not recent.intersection(logged_days):
        out.append(
            _event(
                "sleep_tracking_nudge",
                user_id,
                now,
                f"No sleep logged in {NO_SLEEP_LOG_DAYS} days. Tracking your sleep helps you improve it.",
                priority="low",
            )
        )

    if now.weekday() == WEEKLY_REPORT_WEEKDAY and now.hour == WEEKLY_REPORT_HOUR:
        out.append(
            _event(
                "sleep_weekly_report",
                user_id,
                now,
                "Your weekly sleep summary is ready. Review it and set a goal for next week.",
                priority="medium",
            )
        )
    return out


def water_reminders(
    user_id: str,
    now: datetime,
    goals: WaterGoals,
    today_record: Optional[WaterRecord],
) -> list[EngineEvent]:
    """Fixed daily water slots, skipped once the day's goal is reached."""
    if today_record is not None and today_record.goal_reached:
        return []
    target = today_record.goal if today_record is not None else goals.daily_glasses
    remaining = target - (today_record.total_intake if today_record is not None else 0.0)

    out: list[EngineEvent] = []
    for slot, hhmm, flag, message in WATER_SLOTS:
        if not getattr(goals, flag):
            continue
        if minutes_after(now, hhmm) < SLOT_WINDOW_MINUTES:
            out.append(
                _event(
                    "water_reminder",
                    user_id,
                    now,
                    f"{message} {remaining:g} glasses to go today.",
                    slot=slot,
                    remaining_glasses=remaining,
                )
            )
    return out
