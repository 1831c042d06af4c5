from __future__ import annotations

import math
from datetime import date
from typing import Optional

from .models import ActivityLevel, Macros, ProfileMetrics, UserProfile
from .settings import MACRO_SPLIT

# NOTE:
# Everything here assumes a profile that already passed check_profile().
# The computations are total for valid input; unknown activity names fall
# back to the sedentary multiplier instead of failing.

HEIGHT_RANGE_CM = (100.0, 250.0)
WEIGHT_RANGE_KG = (30.0, 300.0)
AGE_RANGE_YEARS = (13, 120)

ACTIVITY_MULTIPLIERS: dict[ActivityLevel, float] = {
    ActivityLevel.SEDENTARY: 1.2,
    ActivityLevel.LIGHT: 1.375,
    ActivityLevel.MODERATE: 1.55,
    ActivityLevel.ACTIVE: 1.725,
    ActivityLevel.VERY_ACTIVE: 1.9,
}

# Three-level names used by the simpler onboarding flow.
ACTIVITY_ALIASES: dict[str, ActivityLevel] = {
    "low": ActivityLevel.SEDENTARY,
    "medium": ActivityLevel.MODERATE,
    "high": ActivityLevel.ACTIVE,
}

DEFAULT_ACTIVITY = ActivityLevel.SEDENTARY

# TDEE adjustment per body-weight goal.
GOAL_CALORIE_FACTORS: dict[str, float] = {
    "lose": 0.8,  # 20% deficit
    "maintain": 1.0,
    "gain": 1.15,  # 15% surplus
}

KCAL_PER_GRAM = {"protein": 4.0, "carbs": 4.0, "fat": 9.0}

# Water: ml per kg of body weight, scaled by activity.
WATER_ML_PER_KG = 32.0
WATER_ACTIVITY_FACTORS: dict[ActivityLevel, float] = {
    ActivityLevel.SEDENTARY: 1.0,
    ActivityLevel.LIGHT: 1.1,
    ActivityLevel.MODERATE: 1.2,
    ActivityLevel.ACTIVE: 1.4,
    ActivityLevel.VERY_ACTIVE: 1.5,
}
WATER_GOAL_RANGE_GLASSES = (6.0, 12.0)

STRIDE_RATIO = 0.415  # stride length / height
KCAL_PER_STEP_AT_70KG = 0.04
STEPS_PER_ACTIVE_MINUTE = 100

# MET values by workout type and intensity.
MET_VALUES: dict[str, dict[str, float]] = {
    "strength": {"low": 3.0, "moderate": 5.0, "high": 6.0, "extreme": 8.0},
    "cardio": {"low": 4.0, "moderate": 6.5, "high": 8.5, "extreme": 11.0},
    "hiit": {"low": 6.0, "moderate": 8.0, "high": 10.0, "extreme": 12.0},
    "yoga": {"low": 2.0, "moderate": 3.0, "high": 4.0, "extreme": 5.0},
    "pilates": {"low": 2.5, "moderate": 3.5, "high": 4.5, "extreme": 5.5},
    "running": {"low": 6.0, "moderate": 8.0, "high": 10.0, "extreme": 12.0},
    "cycling": {"low": 4.0, "moderate": 6.0, "high": 8.0, "extreme": 10.0},
    "swimming": {"low": 5.0, "moderate": 7.0, "high": 9.0, "extreme": 11.0},
}
DEFAULT_MET = 6.0


class InvalidProfile(ValueError):
    pass


def round_half_up(x: float) -> int:
    return int(math.floor(x + 0.5))


def age_for(birth_year: int, today: Optional[date] = None) -> int:
    today = today or date.today()
    return today.year - int(birth_year)


def resolve_activity_level(raw: str | ActivityLevel | None) -> Optional[ActivityLevel]:
    """Map a 5-level name or a 3-level alias onto the unified scale."""
    if isinstance(raw, ActivityLevel):
        return raw
    if not raw:
        return None
    key = str(raw).strip().lower()
    if key in ACTIVITY_ALIASES:
        return ACTIVITY_ALIASES[key]
    try:
        return ActivityLevel(key)
    except ValueError:
        return None


def activity_multiplier(raw: str | ActivityLevel | None) -> float:
    level = resolve_activity_level(raw) or DEFAULT_ACTIVITY
    return ACTIVITY_MULTIPLIERS[level]


def check_profile(profile: UserProfile, today: Optional[date] = None) -> None:
    """Raise InvalidProfile when a physical value is outside the supported range."""
    lo, hi = HEIGHT_RANGE_CM
    if not (lo <= float(profile.height_cm) <= hi):
        raise InvalidProfile(f"height_cm must be within [{lo:g}, {hi:g}], got {profile.height_cm}")
    lo, hi = WEIGHT_RANGE_KG
    if not (lo <= float(profile.weight_kg) <= hi):
        raise InvalidProfile(f"weight_kg must be within [{lo:g}, {hi:g}], got {profile.weight_kg}")
    age = age_for(profile.birth_year, today)
    lo_age, hi_age = AGE_RANGE_YEARS
    if not (lo_age <= age <= hi_age):
        raise InvalidProfile(f"age must be within [{lo_age}, {hi_age}], got {age}")


def basal_metabolic_rate(gender: str, weight_kg: float, height_cm: float, age: int) -> float:
    if gender == "male":
        return 88.362 + 13.397 * weight_kg + 4.799 * height_cm - 5.677 * age
    return 447.593 + 9.247 * weight_kg + 3.098 * height_cm - 4.330 * age


def macro_targets(calories: float, split: tuple[float, float, float] = MACRO_SPLIT) -> Macros:
    protein, carbs, fat = split
    return Macros(
        protein_g=round_half_up(calories * protein / KCAL_PER_GRAM["protein"]),
        carbs_g=round_half_up(calories * carbs / KCAL_PER_GRAM["carbs"]),
        fat_g=round_half_up(calories * fat / KCAL_PER_GRAM["fat"]),
    )


def water_goal_glasses(weight_kg: float, activity_level: str | ActivityLevel | None) -> float:
    level = resolve_activity_level(activity_level) or DEFAULT_ACTIVITY
    ml = float(weight_kg) * WATER_ML_PER_KG * WATER_ACTIVITY_FACTORS[level]
    glasses = round_half_up(ml / 250.0 * 2) / 2.0
    lo, hi = WATER_GOAL_RANGE_GLASSES
    return max(lo, min(hi, glasses))


def compute_profile_metrics(
    profile: UserProfile,
    *,
    today: Optional[date] = None,
    split: tuple[float, float, float] = MACRO_SPLIT,
) -> ProfileMetrics:
    age = age_for(profile.birth_year, today)
    level = resolve_activity_level(profile.activity_level) or DEFAULT_ACTIVITY
    multiplier = ACTIVITY_MULTIPLIERS[level]

    raw_bmr = basal_metabolic_rate(profile.gender, float(profile.weight_kg), float(profile.height_cm), age)
    tdee = raw_bmr * multiplier
    bmr = max(1, round_half_up(raw_bmr))
    daily_calories = max(bmr, round_half_up(tdee))
    goal_calories = max(1, round_half_up(daily_calories * GOAL_CALORIE_FACTORS.get(profile.goal, 1.0)))

    return ProfileMetrics(
        age=age,
        activity_level=level,
        activity_multiplier=multiplier,
        bmr=bmr,
        tdee=round(tdee, 2),
        daily_calories=daily_calories,
        goal_calories=goal_calories,
        macros=macro_targets(goal_calories, split),
        water_goal_glasses=water_goal_glasses(profile.weight_kg, level),
    )


# ---- derived activity values ----

def step_distance_km(steps: int, height_cm: float = 170.0) -> float:
    stride_cm = float(height_cm) * STRIDE_RATIO
    return round(steps * stride_cm / 100000.0, 2)


def step_calories(steps: int, weight_kg: float = 70.0) -> float:
    return round(steps * KCAL_PER_STEP_AT_70KG * float(weight_kg) / 70.0, 1)


def step_active_minutes(steps: int) -> int:
    return round_half_up(steps / STEPS_PER_ACTIVE_MINUTE)


def workout_calories(workout_type: str, duration_minutes: float, intensity: str, weight_kg: float = 70.0) -> float:
    met = MET_VALUES.get(workout_type, {}).get(intensity) or MET_VALUES["cardio"].get(intensity) or DEFAULT_MET
    return float(round_half_up(met * float(weight_kg) * (float(duration_minutes) / 60.0)))
