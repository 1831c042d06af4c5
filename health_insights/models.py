from __future__ import annotations

from datetime import date, datetime
from enum import Enum
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field, computed_field

HHMM_PATTERN = r"^([01]\d|2[0-3]):[0-5]\d$"
GLASS_SIZE_ML = 250

Gender = Literal["male", "female"]
Goal = Literal["lose", "maintain", "gain"]
Domain = Literal["sleep", "steps", "water", "workouts", "meals"]
TrendLabel = Literal["improving", "declining", "stable"]
Intensity = Literal["low", "moderate", "high", "extreme"]
BeverageType = Literal["water", "tea", "coffee", "juice", "smoothie", "other"]
MealType = Literal["breakfast", "lunch", "dinner", "snack"]
Rarity = Literal["common", "rare", "epic", "legendary"]
ChallengePeriod = Literal["daily", "weekly", "monthly"]
ChallengeMetric = Literal["steps", "distance_km", "active_minutes"]

DOMAINS: tuple[str, ...] = ("sleep", "steps", "water", "workouts", "meals")
INSIGHT_DOMAINS: tuple[str, ...] = ("sleep", "steps", "water", "workouts")


class ActivityLevel(str, Enum):
    """Five-level activity scale. The older three-level names are aliases."""

    SEDENTARY = "sedentary"
    LIGHT = "light"
    MODERATE = "moderate"
    ACTIVE = "active"
    VERY_ACTIVE = "very_active"


def time_to_minutes(hhmm: str) -> int:
    hours, minutes = hhmm.split(":")
    return int(hours) * 60 + int(minutes)


def sleep_duration_hours(bed_time: str, wake_time: str) -> float:
    bed = time_to_minutes(bed_time)
    wake = time_to_minutes(wake_time)
    # overnight sleep
    if wake < bed:
        wake += 24 * 60
    return round((wake - bed) / 60.0, 2)


# ---- profile ----

class UserProfile(BaseModel):
    user_id: str
    name: Optional[str] = None
    gender: Gender
    birth_year: int
    height_cm: float
    weight_kg: float
    activity_level: str = ActivityLevel.MODERATE.value
    goal: Goal = "maintain"


class Macros(BaseModel):
    protein_g: int
    carbs_g: int
    fat_g: int


class ProfileMetrics(BaseModel):
    age: int
    activity_level: ActivityLevel
    activity_multiplier: float
    bmr: int
    tdee: float
    daily_calories: int
    goal_calories: int
    macros: Macros
    water_goal_glasses: float


# ---- daily records ----

class SleepRecord(BaseModel):
    day: date
    bed_time: str = Field(default="23:00", pattern=HHMM_PATTERN)
    wake_time: str = Field(default="07:00", pattern=HHMM_PATTERN)
    sleep_quality: int = Field(default=3, ge=1, le=5)
    mood: int = Field(default=3, ge=1, le=5)
    energy_level: int = Field(default=3, ge=1, le=5)
    times_woken: int = Field(default=0, ge=0)
    fell_asleep_minutes: int = Field(default=15, ge=0)
    notes: Optional[str] = None

    @computed_field  # type: ignore[prop-decorator]
    @property
    def sleep_duration(self) -> float:
        return sleep_duration_hours(self.bed_time, self.wake_time)


class StepRecord(BaseModel):
    day: date
    steps: int = Field(default=0, ge=0)
    distance_km: float = Field(default=0.0, ge=0)
    calories_burned: float = Field(default=0.0, ge=0)
    active_minutes: int = Field(default=0, ge=0)


class WaterEntry(BaseModel):
    amount: float = Field(gt=0, le=10)  # glasses
    type: BeverageType = "water"
    timestamp: Optional[datetime] = None


class WaterRecord(BaseModel):
    day: date
    goal: float = Field(default=8.0, ge=0)
    entries: list[WaterEntry] = Field(default_factory=list)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def total_intake(self) -> float:
        return round(sum(e.amount for e in self.entries), 2)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def total_volume_ml(self) -> int:
        return int(round(self.total_intake * GLASS_SIZE_ML))

    @computed_field  # type: ignore[prop-decorator]
    @property
    def goal_reached(self) -> bool:
        return self.total_intake >= self.goal


class WorkoutSession(BaseModel):
    type: str = "custom"
    name: Optional[str] = None
    duration_minutes: float = Field(gt=0, le=600)
    intensity: Intensity = "moderate"
    calories_burned: float = Field(default=0.0, ge=0)
    started_at: Optional[datetime] = None


class WorkoutRecord(BaseModel):
    day: date
    sessions: list[WorkoutSession] = Field(default_factory=list)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def total_minutes(self) -> float:
        return float(sum(s.duration_minutes for s in self.sessions))

    @computed_field  # type: ignore[prop-decorator]
    @property
    def total_calories(self) -> float:
        return float(sum(s.calories_burned for s in self.sessions))


class MealEntry(BaseModel):
    name: str
    meal_type: MealType = "snack"
    calories: float = Field(default=0.0, ge=0)
    protein_g: float = Field(default=0.0, ge=0)
    carbs_g: float = Field(default=0.0, ge=0)
    fat_g: float = Field(default=0.0, ge=0)


class MealRecord(BaseModel):
    day: date
    entries: list[MealEntry] = Field(default_factory=list)


RECORD_MODELS: dict[str, type[BaseModel]] = {
    "sleep": SleepRecord,
    "steps": StepRecord,
    "water": WaterRecord,
    "workouts": WorkoutRecord,
    "meals": MealRecord,
}


# ---- goals ----

class SleepGoals(BaseModel):
    target_bed_time: str = Field(default="23:00", pattern=HHMM_PATTERN)
    target_wake_time: str = Field(default="07:00", pattern=HHMM_PATTERN)
    target_duration: float = Field(default=8.0, ge=0, le=16)
    consistency_goal: int = Field(default=7, ge=0, le=7)  # days per week on schedule
    bedtime_reminder: bool = True


class StepGoals(BaseModel):
    daily_steps: int = Field(default=10000, ge=0)
    weekly_steps: int = Field(default=70000, ge=0)
    daily_distance_km: float = Field(default=7.5, ge=0)
    daily_active_minutes: int = Field(default=30, ge=0)


class WaterGoals(BaseModel):
    daily_glasses: float = Field(default=8.0, ge=0)
    daily_volume_ml: int = Field(default=2000, ge=0)
    wake_up_reminder: bool = True
    meal_reminders: bool = True
    interval_reminders: bool = True


class WorkoutGoals(BaseModel):
    weekly_workouts: int = Field(default=3, ge=0)
    weekly_minutes: int = Field(default=150, ge=0)
    session_min_minutes: int = Field(default=20, ge=0)
    session_max_minutes: int = Field(default=60, ge=0)
    session_target_minutes: int = Field(default=45, ge=0)


GOAL_MODELS: dict[str, type[BaseModel]] = {
    "sleep": SleepGoals,
    "steps": StepGoals,
    "water": WaterGoals,
    "workouts": WorkoutGoals,
}


# ---- derived ----

class Score(BaseModel):
    score: int = Field(ge=0, le=100)
    label: str


class Streak(BaseModel):
    current: int = 0
    longest: int = 0


class Insights(BaseModel):
    domain: str
    as_of: date
    average_value: float = 0.0
    consistency_score: int = 0
    trend: TrendLabel = "stable"
    streak: Streak = Field(default_factory=Streak)
    score: Optional[Score] = None
    goal_progress: float = 0.0
    recommendations: list[str]
    details: dict[str, Any] = Field(default_factory=dict)


class AchievementDefinition(BaseModel):
    id: str
    title: str
    description: str
    domain: str
    metric: str
    threshold: float
    rarity: Rarity = "common"
    points: int = 10


class EarnedAchievement(AchievementDefinition):
    earned_at: datetime


class EngineEvent(BaseModel):
    kind: str
    user_id: str
    day: Optional[date] = None
    message: str
    data: dict[str, Any] = Field(default_factory=dict)


class ChallengeDefinition(BaseModel):
    id: str
    title: str
    description: str
    period: ChallengePeriod
    metric: ChallengeMetric
    target: float = Field(gt=0)
    points: int = 0


class ChallengeProgress(ChallengeDefinition):
    start: date
    end: date
    progress: float  # capped at target
    percent: float
    completed: bool
    days_left: int


class HealthFactor(BaseModel):
    name: str
    score: int = Field(ge=0, le=100)
    weight: int


class HealthScore(BaseModel):
    score: int = Field(ge=0, le=100)
    label: str
    factors: list[HealthFactor] = Field(default_factory=list)


# ---- HTTP payloads ----

class StatusResponse(BaseModel):
    ok: bool
    dbPath: str
    totalUsers: int
    totalRecords: int
    lastUpdatedAt: Optional[datetime] = None


class ProfileUpdateRequest(BaseModel):
    name: Optional[str] = None
    gender: Optional[Gender] = None
    birth_year: Optional[int] = Field(default=None, ge=1900, le=2100)
    height_cm: Optional[float] = Field(default=None, ge=100, le=250)
    weight_kg: Optional[float] = Field(default=None, ge=30, le=300)
    activity_level: Optional[str] = None
    goal: Optional[Goal] = None


class SleepLogRequest(BaseModel):
    day: Optional[date] = None
    bed_time: str = Field(pattern=HHMM_PATTERN)
    wake_time: str = Field(pattern=HHMM_PATTERN)
    sleep_quality: int = Field(default=3, ge=1, le=5)
    mood: int = Field(default=3, ge=1, le=5)
    energy_level: int = Field(default=3, ge=1, le=5)
    times_woken: int = Field(default=0, ge=0)
    fell_asleep_minutes: int = Field(default=15, ge=0)
    notes: Optional[str] = Field(default=None, max_length=500)


class StepLogRequest(BaseModel):
    day: Optional[date] = None
    steps: int = Field(ge=0, le=100000)
    mode: Literal["add", "set"] = "add"


class WaterLogRequest(BaseModel):
    day: Optional[date] = None
    amount: float = Field(gt=0, le=10)
    type: BeverageType = "water"
    timestamp: Optional[datetime] = None


class WorkoutLogRequest(BaseModel):
    day: Optional[date] = None
    type: str = "custom"
    name: Optional[str] = None
    duration_minutes: float = Field(gt=0, le=600)
    intensity: Intensity = "moderate"
    started_at: Optional[datetime] = None


class MealLogRequest(BaseModel):
    day: Optional[date] = None
    name: str = Field(min_length=1, max_length=100)
    meal_type: MealType = "snack"
    calories: float = Field(default=0.0, ge=0, le=5000)
    protein_g: float = Field(default=0.0, ge=0, le=500)
    carbs_g: float = Field(default=0.0, ge=0, le=1000)
    fat_g: float = Field(default=0.0, ge=0, le=200)


class LogResponse(BaseModel):
    ok: bool
    domain: str
    record: dict[str, Any]
    score: Optional[Score] = None
    events: list[EngineEvent] = Field(default_factory=list)
