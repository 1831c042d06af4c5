from __future__ import annotations

import unittest
from datetime import date, datetime, timedelta

from health_insights.insights import (
    EMPTY_MESSAGES,
    MAX_RECOMMENDATIONS,
    POSITIVE_MESSAGES,
    HEALTH_SCORE_WEIGHTS,
    build_insights,
    finalize_recommendations,
    hydration_level,
    overall_health_score,
)
from health_insights.models import (
    SleepGoals,
    SleepRecord,
    StepGoals,
    StepRecord,
    WaterEntry,
    WaterGoals,
    WaterRecord,
    WorkoutGoals,
    WorkoutRecord,
    WorkoutSession,
)

TODAY = date(2024, 6, 1)


def _days(n: int) -> list[date]:
    """The last n days ending today, oldest first."""
    return [TODAY - timedelta(days=i) for i in range(n - 1, -1, -1)]


def _water_day(d: date, morning: float, afternoon: float, evening: float) -> WaterRecord:
    entries = []
    for hour, amount in ((8, morning), (13, afternoon), (19, evening)):
        if amount > 0:
            entries.append(WaterEntry(amount=amount, timestamp=datetime(d.year, d.month, d.day, hour)))
    return WaterRecord(day=d, goal=8, entries=entries)


class EmptyHistoryTests(unittest.TestCase):
    def test_every_domain_has_defaults(self) -> None:
        goals = {"sleep": SleepGoals(), "steps": StepGoals(), "water": WaterGoals(), "workouts": WorkoutGoals()}
        for domain, g in goals.items():
            ins = build_insights(domain, [], g, TODAY)
            self.assertEqual(ins.recommendations, [EMPTY_MESSAGES[domain]])
            self.assertEqual(ins.trend, "stable")
            self.assertEqual((ins.streak.current, ins.streak.longest), (0, 0))
            self.assertEqual(ins.average_value, 0.0)
            self.assertIsNone(ins.score)

    def test_unknown_domain(self) -> None:
        with self.assertRaises(ValueError):
            build_insights("meals", [], WaterGoals(), TODAY)


class SleepInsightsTests(unittest.TestCase):
    def test_good_week_gets_positive_message(self) -> None:
        recs = [
            SleepRecord(day=d, bed_time="23:00", wake_time="07:00", sleep_quality=5, fell_asleep_minutes=15)
            for d in _days(7)
        ]
        ins = build_insights("sleep", recs, SleepGoals(), TODAY)
        self.assertEqual(ins.average_value, 8.0)
        self.assertEqual(ins.consistency_score, 100)
        self.assertEqual(ins.streak.current, 7)
        self.assertEqual(ins.score.score, 98)
        self.assertEqual(ins.goal_progress, 100.0)
        self.assertEqual(ins.recommendations, [POSITIVE_MESSAGES["sleep"]])
        self.assertEqual(ins.details["nights_logged"], 7)

    def test_rules_fire_in_order(self) -> None:
        recs = [
            SleepRecord(day=d, bed_time="01:00", wake_time="06:00", sleep_quality=2, fell_asleep_minutes=45)
            for d in _days(7)
        ]
        ins = build_insights("sleep", recs, SleepGoals(), TODAY)
        self.assertEqual(ins.consistency_score, 25)
        self.assertEqual(len(ins.recommendations), 4)
        self.assertIn("averaging 5.0 h", ins.recommendations[0])
        self.assertIn("quality is low", ins.recommendations[1])
        self.assertIn("30 minutes", ins.recommendations[2])
        self.assertIn("same time every day", ins.recommendations[3])

    def test_latency_trend_treats_fewer_minutes_as_better(self) -> None:
        days = _days(14)
        slow = [SleepRecord(day=d, fell_asleep_minutes=25) for d in days[:7]]
        fast = [SleepRecord(day=d, fell_asleep_minutes=10) for d in days[7:]]
        ins = build_insights("sleep", slow + fast, SleepGoals(), TODAY)
        self.assertEqual(ins.details["latency_trend"], "improving")

        slower = [SleepRecord(day=d, fell_asleep_minutes=25) for d in days[7:]]
        fast_then_slow = [SleepRecord(day=d, fell_asleep_minutes=10) for d in days[:7]] + slower
        ins = build_insights("sleep", fast_then_slow, SleepGoals(), TODAY)
        self.assertEqual(ins.details["latency_trend"], "declining")
        self.assertTrue(any("longer to fall asleep" in r for r in ins.recommendations))


class StepInsightsTests(unittest.TestCase):
    def test_declining_trend_and_cap(self) -> None:
        recs = [StepRecord(day=d, steps=10000) for d in _days(14)[:7]]
        recs += [StepRecord(day=d, steps=4000 if d.weekday() else 1000) for d in _days(7)]
        ins = build_insights("steps", recs, StepGoals(), TODAY)
        self.assertEqual(ins.trend, "declining")
        self.assertEqual(ins.streak.current, 0)
        self.assertEqual(ins.streak.longest, 7)
        self.assertLessEqual(len(ins.recommendations), MAX_RECOMMENDATIONS)
        self.assertIn("short of your goal", ins.recommendations[0])
        self.assertEqual(ins.details["best_day"]["steps"], 10000)

    def test_streak_message_when_on_track(self) -> None:
        recs = [StepRecord(day=d, steps=12000) for d in _days(5)]
        ins = build_insights("steps", recs, StepGoals(), TODAY)
        self.assertEqual(ins.streak.current, 5)
        self.assertEqual(ins.consistency_score, 100)
        self.assertEqual(ins.recommendations, ["You have a 5-day streak. Keep it going!"])
        self.assertEqual(ins.details["health_metrics"]["cardiovascular"], 100)

    def test_pending_today_keeps_streak(self) -> None:
        recs = [StepRecord(day=d, steps=12000) for d in _days(4)[:-1]]
        ins = build_insights("steps", recs, StepGoals(), TODAY)
        self.assertEqual(ins.streak.current, 3)
        self.assertIsNone(ins.score)
        self.assertEqual(ins.goal_progress, 0.0)


class WaterInsightsTests(unittest.TestCase):
    def test_well_hydrated_week(self) -> None:
        recs = [_water_day(d, 4, 4, 2) for d in _days(7)]
        ins = build_insights("water", recs, WaterGoals(), TODAY)
        self.assertEqual(ins.average_value, 10.0)
        self.assertEqual(ins.consistency_score, 100)
        self.assertEqual(ins.streak.current, 7)
        self.assertEqual(ins.recommendations, [POSITIVE_MESSAGES["water"]])
        self.assertEqual(ins.details["hydration_level"], "excellent")
        self.assertEqual(ins.details["health_benefits"]["skin_health"], 100)

    def test_evening_heavy_and_low(self) -> None:
        recs = [_water_day(d, 1, 0, 4) for d in _days(7)]
        ins = build_insights("water", recs, WaterGoals(), TODAY)
        self.assertEqual(ins.consistency_score, 0)
        self.assertEqual(ins.details["time_of_day"]["evening"], 4.0)
        self.assertEqual(ins.details["poor_day_share"], 100.0)
        self.assertEqual(len(ins.recommendations), MAX_RECOMMENDATIONS)
        self.assertIn("less than 6 glasses", ins.recommendations[0])

    def test_hydration_levels(self) -> None:
        self.assertEqual(hydration_level(10, 8), "excellent")
        self.assertEqual(hydration_level(8, 8), "good")
        self.assertEqual(hydration_level(6, 8), "moderate")
        self.assertEqual(hydration_level(5, 8), "poor")


class WorkoutInsightsTests(unittest.TestCase):
    def test_weekly_goal_met(self) -> None:
        days = _days(7)
        recs = [
            WorkoutRecord(day=days[0], sessions=[WorkoutSession(type="running", duration_minutes=50)]),
            WorkoutRecord(day=days[3], sessions=[WorkoutSession(type="yoga", duration_minutes=50)]),
            WorkoutRecord(day=days[6], sessions=[WorkoutSession(type="strength", duration_minutes=50)]),
        ]
        ins = build_insights("workouts", recs, WorkoutGoals(), TODAY)
        self.assertEqual(ins.consistency_score, 100)
        self.assertEqual(ins.goal_progress, 100.0)
        self.assertEqual(ins.details["sessions_this_week"], 3)
        self.assertEqual(ins.details["health_benefits"]["flexibility"], 100)
        self.assertEqual(ins.recommendations, [POSITIVE_MESSAGES["workouts"]])

    def test_behind_on_week(self) -> None:
        recs = [WorkoutRecord(day=TODAY, sessions=[WorkoutSession(type="running", duration_minutes=10)])]
        ins = build_insights("workouts", recs, WorkoutGoals(), TODAY)
        self.assertEqual(ins.recommendations[0], "2 more workouts to reach your weekly goal.")
        self.assertIn("140 more active minutes", ins.recommendations[1])
        self.assertTrue(any("at least 20 minutes" in r for r in ins.recommendations))


class HealthScoreTests(unittest.TestCase):
    GOALS = {"sleep": SleepGoals(), "steps": StepGoals(), "water": WaterGoals(), "workouts": WorkoutGoals()}

    def _insights(self, records_by_domain):
        return {
            d: build_insights(d, records_by_domain.get(d, []), g, TODAY) for d, g in self.GOALS.items()
        }

    def test_weights_sum_to_100(self) -> None:
        self.assertEqual(sum(w for _, w in HEALTH_SCORE_WEIGHTS), 100)

    def test_nothing_logged(self) -> None:
        hs = overall_health_score(self._insights({}), self.GOALS, None)
        self.assertEqual((hs.score, hs.label, hs.factors), (0, "poor", []))

    def test_missing_factors_are_left_out(self) -> None:
        insights = self._insights(
            {
                "steps": [StepRecord(day=d, steps=6000) for d in _days(7)],
                "sleep": [SleepRecord(day=d, bed_time="23:00", wake_time="07:00") for d in _days(7)],
            }
        )
        nutrition = {"consumed": {"calories": 1500.0}, "percent": {"calories": 75.0}}
        hs = overall_health_score(insights, self.GOALS, nutrition)
        self.assertEqual(
            [(f.name, f.score, f.weight) for f in hs.factors],
            [("activity", 60, 25), ("sleep", 100, 20), ("nutrition", 75, 20)],
        )
        # (60*25 + 100*20 + 75*20) / 65 = 76.9
        self.assertEqual((hs.score, hs.label), (77, "good"))


class FinalizeTests(unittest.TestCase):
    def test_never_empty_and_capped(self) -> None:
        self.assertEqual(finalize_recommendations("sleep", []), [POSITIVE_MESSAGES["sleep"]])
        many = [f"tip {i}" for i in range(9)]
        self.assertEqual(finalize_recommendations("sleep", many), many[:MAX_RECOMMENDATIONS])


if __name__ == "__main__":
    unittest.main()
