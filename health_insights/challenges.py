from __future__ import annotations

import calendar
from datetime import date, timedelta
from typing import Iterable, Sequence

from .models import ChallengeDefinition, ChallengeProgress, StepRecord
from .scoring import progress_percent

# Challenges run over calendar periods: the day, the ISO week (Monday first)
# and the month that contain `today`.
CHALLENGES: list[ChallengeDefinition] = [
    ChallengeDefinition(
        id="daily_10k",
        title="Daily 10K",
        description="Walk 10,000 steps today",
        period="daily",
        metric="steps",
        target=10000,
        points=50,
    ),
    ChallengeDefinition(
        id="weekly_70k",
        title="Weekly 70K",
        description="Walk 70,000 steps this week",
        period="weekly",
        metric="steps",
        target=70000,
        points=200,
    ),
    ChallengeDefinition(
        id="monthly_100km",
        title="100 km Month",
        description="Cover 100 km on foot this month",
        period="monthly",
        metric="distance_km",
        target=100,
        points=500,
    ),
]


def period_bounds(period: str, today: date) -> tuple[date, date]:
    """First and last day (inclusive) of the period containing today."""
    if period == "daily":
        return today, today
    if period == "weekly":
        start = today - timedelta(days=today.weekday())
        return start, start + timedelta(days=6)
    if period == "monthly":
        last = calendar.monthrange(today.year, today.month)[1]
        return today.replace(day=1), today.replace(day=last)
    raise ValueError(f"Unknown challenge period: {period}")


def earliest_start(today: date, catalog: Sequence[ChallengeDefinition] = CHALLENGES) -> date:
    return min((period_bounds(c.period, today)[0] for c in catalog), default=today)


def _metric(record: StepRecord, metric: str) -> float:
    if metric == "steps":
        return float(record.steps)
    if metric == "distance_km":
        return float(record.distance_km)
    if metric == "active_minutes":
        return float(record.active_minutes)
    raise ValueError(f"Unknown challenge metric: {metric}")


def evaluate_challenges(
    records: Iterable[StepRecord],
    today: date,
    catalog: Sequence[ChallengeDefinition] = CHALLENGES,
) -> list[ChallengeProgress]:
    """Progress of every challenge over its current period.

    Records outside a challenge's period (including days after `today`) do
    not count. Progress is capped at the target; `completed` uses the raw sum.
    """
    records = list(records)
    out: list[ChallengeProgress] = []
    for c in catalog:
        start, end = period_bounds(c.period, today)
        total = sum(_metric(r, c.metric) for r in records if start <= r.day <= today)
        progress = min(total, c.target)
        out.append(
            ChallengeProgress(
                **c.model_dump(),
                start=start,
                end=end,
                progress=round(progress, 2),
                percent=progress_percent(total, c.target),
                completed=total >= c.target,
                days_left=(end - today).days,
            )
        )
    return out


def completed_ids(progress: Iterable[ChallengeProgress]) -> set[str]:
    return {p.id for p in progress if p.completed}
