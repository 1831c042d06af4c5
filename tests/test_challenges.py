from __future__ import annotations

import unittest
from datetime import date, timedelta

from health_insights.challenges import CHALLENGES, completed_ids, earliest_start, evaluate_challenges, period_bounds
from health_insights.models import StepRecord

# a Wednesday
TODAY = date(2024, 6, 12)


def _by_id(progress):
    return {p.id: p for p in progress}


class PeriodTests(unittest.TestCase):
    def test_bounds(self) -> None:
        self.assertEqual(period_bounds("daily", TODAY), (TODAY, TODAY))
        self.assertEqual(period_bounds("weekly", TODAY), (date(2024, 6, 10), date(2024, 6, 16)))
        self.assertEqual(period_bounds("monthly", TODAY), (date(2024, 6, 1), date(2024, 6, 30)))
        self.assertEqual(period_bounds("monthly", date(2024, 2, 10))[1], date(2024, 2, 29))
        with self.assertRaises(ValueError):
            period_bounds("yearly", TODAY)

    def test_earliest_start_covers_every_period(self) -> None:
        self.assertEqual(earliest_start(TODAY), date(2024, 6, 1))
        # on the 2nd the week started in the previous month
        self.assertEqual(earliest_start(date(2024, 6, 2)), date(2024, 5, 27))


class EvaluateTests(unittest.TestCase):
    def test_default_catalog(self) -> None:
        self.assertEqual([c.id for c in CHALLENGES], ["daily_10k", "weekly_70k", "monthly_100km"])
        self.assertEqual([c.points for c in CHALLENGES], [50, 200, 500])

    def test_no_records(self) -> None:
        progress = evaluate_challenges([], TODAY)
        self.assertEqual(len(progress), 3)
        self.assertTrue(all(p.progress == 0 and not p.completed for p in progress))
        self.assertEqual(_by_id(progress)["monthly_100km"].days_left, 18)

    def test_progress_is_capped_and_completion_uses_raw_total(self) -> None:
        recs = [StepRecord(day=TODAY, steps=12500, distance_km=9.0)]
        daily = _by_id(evaluate_challenges(recs, TODAY))["daily_10k"]
        self.assertEqual(daily.progress, 10000)
        self.assertEqual(daily.percent, 100.0)
        self.assertTrue(daily.completed)

    def test_just_short_of_target_is_not_complete(self) -> None:
        daily = _by_id(evaluate_challenges([StepRecord(day=TODAY, steps=9995)], TODAY))["daily_10k"]
        self.assertFalse(daily.completed)
        self.assertEqual(daily.percent, 99.9)

    def test_periods_only_count_their_own_days(self) -> None:
        recs = [
            StepRecord(day=date(2024, 6, 9), steps=30000, distance_km=22.0),  # previous Sunday
            StepRecord(day=date(2024, 6, 10), steps=30000, distance_km=22.0),
            StepRecord(day=TODAY, steps=40000, distance_km=30.0),
            StepRecord(day=TODAY + timedelta(days=1), steps=50000, distance_km=40.0),  # future
            StepRecord(day=date(2024, 5, 31), steps=50000, distance_km=40.0),  # previous month
        ]
        progress = _by_id(evaluate_challenges(recs, TODAY))
        self.assertEqual(progress["weekly_70k"].progress, 70000)
        self.assertTrue(progress["weekly_70k"].completed)
        self.assertEqual(progress["monthly_100km"].progress, 74.0)
        self.assertFalse(progress["monthly_100km"].completed)
        self.assertEqual(completed_ids(progress.values()), {"daily_10k", "weekly_70k"})


if __name__ == "__main__":
    unittest.main()
