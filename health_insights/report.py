from __future__ import annotations

from datetime import date
from typing import Any, Optional

from .engine import Engine
from .models import Insights

DOMAIN_TITLES = {
    "sleep": "Sleep",
    "steps": "Steps",
    "water": "Water",
    "workouts": "Workouts",
}

UNITS = {
    "sleep": "h",
    "steps": "steps",
    "water": "glasses",
    "workouts": "min",
}


def _fmt(n: float | None, digits: int = 1) -> str:
    if n is None:
        return "-"
    return f"{n:.{digits}f}"


def _domain_lines(domain: str, ins: Insights) -> list[str]:
    digits = 0 if domain in ("steps", "workouts") else 1
    lines = [f"■ {DOMAIN_TITLES[domain]}"]
    lines.append(f"- 7-day average: {_fmt(ins.average_value, digits)} {UNITS[domain]}")
    lines.append(f"- Consistency: {ins.consistency_score}% / trend: {ins.trend}")
    lines.append(f"- Streak: {ins.streak.current} days (best {ins.streak.longest})")
    if ins.score is not None:
        lines.append(f"- Today's score: {ins.score.score} ({ins.score.label})")
    lines.append(f"- Goal progress: {_fmt(ins.goal_progress)}%")
    for rec in ins.recommendations[:3]:
        lines.append(f"  > {rec}")
    return lines


def build_weekly_report(engine: Engine, user_id: str, today: Optional[date] = None) -> str:
    s: dict[str, Any] = engine.weekly_summary(user_id, today)

    lines: list[str] = []
    lines.append(f"[Weekly report] {user_id} / {s['as_of']}")

    metrics = s.get("metrics")
    if metrics is not None:
        lines.append("")
        lines.append("■ Targets")
        lines.append(f"- BMR: {metrics.bmr} kcal / TDEE: {_fmt(metrics.tdee, 0)} kcal")
        lines.append(f"- Calories: {metrics.goal_calories} kcal (maintenance {metrics.daily_calories})")
        m = metrics.macros
        lines.append(f"- Macros: P={m.protein_g}g / C={m.carbs_g}g / F={m.fat_g}g")
        lines.append(f"- Water: {_fmt(metrics.water_goal_glasses)} glasses")

    nutrition = s.get("nutrition")
    if nutrition is not None:
        c = nutrition["consumed"]
        lines.append("")
        lines.append("■ Nutrition today")
        if c["calories"] <= 0:
            lines.append("- (no meals logged)")
        else:
            lines.append(
                f"- {_fmt(c['calories'], 0)} kcal / P={_fmt(c['protein_g'], 0)}g / C={_fmt(c['carbs_g'], 0)}g / F={_fmt(c['fat_g'], 0)}g"
            )
            lines.append(f"- Remaining: {_fmt(nutrition['remaining_calories'], 0)} kcal")

    hs = s.get("health_score")
    if hs is not None:
        lines.append("")
        lines.append(f"■ Health score: {hs.score} ({hs.label})")
        for f in hs.factors:
            lines.append(f"- {f.name}: {f.score} (weight {f.weight})")

    for domain, ins in s["insights"].items():
        lines.append("")
        lines.extend(_domain_lines(domain, ins))

    challenges = s.get("challenges") or []
    if challenges:
        lines.append("")
        lines.append("■ Challenges")
        for ch in challenges:
            mark = "done" if ch.completed else f"{ch.days_left} days left"
            lines.append(f"- {ch.title}: {_fmt(ch.percent)}% ({mark})")

    ach = s.get("achievements") or {}
    lines.append("")
    lines.append("■ Achievements")
    lines.append(f"- Earned: {ach.get('earned', 0)} / points: {ach.get('points', 0)}")

    return "\n".join(lines)
