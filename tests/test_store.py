from __future__ import annotations

import importlib
import os
import tempfile
import unittest
from concurrent.futures import ThreadPoolExecutor
from datetime import date, datetime, timedelta, timezone

from health_insights.models import SleepRecord, StepGoals, StepRecord, UserProfile, WaterEntry, WaterRecord

DAY = date(2024, 6, 1)


class _StoreContract:
    """Behaviour shared by every DailyLogStore implementation."""

    store: object

    def test_profile_roundtrip_and_overwrite(self) -> None:
        self.assertIsNone(self.store.get_profile("u1"))
        p = UserProfile(user_id="u1", gender="female", birth_year=1990, height_cm=165, weight_kg=60)
        self.store.save_profile(p)
        self.assertEqual(self.store.get_profile("u1"), p)

        self.store.save_profile(p.model_copy(update={"weight_kg": 58.5, "name": "Kim"}))
        got = self.store.get_profile("u1")
        self.assertEqual(got.weight_kg, 58.5)
        self.assertEqual(got.name, "Kim")

    def test_one_record_per_user_day_domain(self) -> None:
        self.store.save_record("u1", "steps", StepRecord(day=DAY, steps=100))
        self.store.save_record("u1", "steps", StepRecord(day=DAY, steps=250))
        self.assertEqual(self.store.get_record("u1", "steps", DAY).steps, 250)
        self.assertEqual(len(self.store.get_records("u1", "steps", DAY, DAY)), 1)
        self.assertIsNone(self.store.get_record("u2", "steps", DAY))

    def test_get_records_is_ascending_and_bounded(self) -> None:
        for i in (3, 0, 5, 1):
            self.store.save_record("u1", "steps", StepRecord(day=DAY - timedelta(days=i), steps=i))
        got = self.store.get_records("u1", "steps", DAY - timedelta(days=3), DAY)
        self.assertEqual([r.day for r in got], [DAY - timedelta(days=3), DAY - timedelta(days=1), DAY])

    def test_records_keep_domain_types(self) -> None:
        self.store.save_record("u1", "sleep", SleepRecord(day=DAY, bed_time="22:30", wake_time="06:30"))
        self.store.save_record("u1", "water", WaterRecord(day=DAY, entries=[WaterEntry(amount=2.5)]))
        sleep = self.store.get_record("u1", "sleep", DAY)
        water = self.store.get_record("u1", "water", DAY)
        self.assertIsInstance(sleep, SleepRecord)
        self.assertEqual(sleep.sleep_duration, 8.0)
        self.assertEqual(water.total_intake, 2.5)

    def test_goals_default_when_missing(self) -> None:
        self.assertEqual(self.store.get_goals("u1", "steps"), StepGoals())
        self.store.save_goals("u1", "steps", StepGoals(daily_steps=8000))
        self.assertEqual(self.store.get_goals("u1", "steps").daily_steps, 8000)
        self.assertEqual(self.store.get_goals("u2", "steps").daily_steps, 10000)

    def test_unknown_domain(self) -> None:
        from health_insights.store import UnknownDomain

        with self.assertRaises(UnknownDomain):
            self.store.get_records("u1", "yoga", DAY, DAY)
        with self.assertRaises(UnknownDomain):
            self.store.get_goals("u1", "meals")

    def test_update_record_passes_previous_record(self) -> None:
        def add_glass(prev):
            entries = [*(prev.entries if prev else []), WaterEntry(amount=1)]
            return WaterRecord(day=DAY, entries=entries)

        prev, rec = self.store.update_record("u1", "water", DAY, add_glass)
        self.assertIsNone(prev)
        self.assertEqual(rec.total_intake, 1.0)
        prev, rec = self.store.update_record("u1", "water", DAY, add_glass)
        self.assertEqual(prev.total_intake, 1.0)
        self.assertEqual(self.store.get_record("u1", "water", DAY).total_intake, 2.0)

    def test_update_record_writes_nothing_when_merge_fails(self) -> None:
        def broken(prev):
            raise ValueError("bad entry")

        with self.assertRaises(ValueError):
            self.store.update_record("u1", "steps", DAY, broken)
        self.assertIsNone(self.store.get_record("u1", "steps", DAY))

    def test_concurrent_updates_keep_every_entry(self) -> None:
        def add_glass(prev):
            entries = [*(prev.entries if prev else []), WaterEntry(amount=0.5)]
            return WaterRecord(day=DAY, entries=entries)

        with ThreadPoolExecutor(max_workers=8) as pool:
            for f in [pool.submit(self.store.update_record, "u1", "water", DAY, add_glass) for _ in range(24)]:
                f.result()
        rec = self.store.get_record("u1", "water", DAY)
        self.assertEqual(len(rec.entries), 24)
        self.assertEqual(rec.total_intake, 12.0)

    def test_achievement_ledger_is_idempotent(self) -> None:
        first = datetime(2024, 6, 1, 8, 0, tzinfo=timezone.utc)
        later = datetime(2024, 6, 2, 8, 0, tzinfo=timezone.utc)
        self.assertTrue(self.store.mark_achievement_earned("u1", "first_steps", first))
        self.assertFalse(self.store.mark_achievement_earned("u1", "first_steps", later))
        self.assertEqual(self.store.get_earned("u1"), {"first_steps": first})
        self.assertEqual(self.store.get_earned("u2"), {})


class MemoryLogStoreTests(_StoreContract, unittest.TestCase):
    def setUp(self) -> None:
        from health_insights.store import MemoryLogStore

        self.store = MemoryLogStore()


class SqliteLogStoreTests(_StoreContract, unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.db_path = os.path.join(self._tmp.name, "test_store.db")
        self._old_db_path = os.environ.get("DB_PATH")
        os.environ["DB_PATH"] = self.db_path

        import health_insights.db as db_mod
        importlib.reload(db_mod)
        import health_insights.store as store_mod

        db_mod.init_db()
        self.store_mod = store_mod
        self.store = store_mod.SqliteLogStore()

    def tearDown(self) -> None:
        if self._old_db_path is None:
            os.environ.pop("DB_PATH", None)
        else:
            os.environ["DB_PATH"] = self._old_db_path
        self._tmp.cleanup()

    def test_init_db_is_repeatable(self) -> None:
        import health_insights.db as db_mod

        db_mod.init_db()
        db_mod.init_db()

    def test_store_stats(self) -> None:
        self.store.save_profile(UserProfile(user_id="u1", gender="male", birth_year=1990, height_cm=180, weight_kg=80))
        self.store.save_record("u1", "steps", StepRecord(day=DAY, steps=1))
        self.store.save_record("u1", "steps", StepRecord(day=DAY - timedelta(days=1), steps=1))
        stats = self.store_mod.store_stats()
        self.assertEqual(stats["totalUsers"], 1)
        self.assertEqual(stats["totalRecords"], 2)
        self.assertIsNotNone(stats["lastUpdatedAt"])


if __name__ == "__main__":
    unittest.main()
