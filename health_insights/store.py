from __future__ import annotations

import json
import logging
import sqlite3
import threading
from datetime import date, datetime
from typing import Callable, Optional, Protocol

from pydantic import BaseModel

from .db import db, dumps_payload, iso, now_iso
from .models import DOMAINS, GOAL_MODELS, RECORD_MODELS, UserProfile

logger = logging.getLogger(__name__)


class UnknownDomain(ValueError):
    pass


# Builds the new record for a day from the stored one (None when nothing is logged yet).
Merge = Callable[[Optional[BaseModel]], BaseModel]


def record_model(domain: str) -> type[BaseModel]:
    try:
        return RECORD_MODELS[domain]
    except KeyError:
        raise UnknownDomain(f"Unknown domain: {domain}") from None


def goal_model(domain: str) -> type[BaseModel]:
    if domain not in DOMAINS:
        raise UnknownDomain(f"Unknown domain: {domain}")
    try:
        return GOAL_MODELS[domain]
    except KeyError:
        raise UnknownDomain(f"Domain has no configurable goals: {domain}") from None


def default_goals(domain: str) -> BaseModel:
    return goal_model(domain)()


class DailyLogStore(Protocol):
    """Keyed map (user, day, domain) -> record, plus profile, goals and unlock ledger."""

    def get_profile(self, user_id: str) -> Optional[UserProfile]: ...

    def save_profile(self, profile: UserProfile) -> UserProfile: ...

    def get_record(self, user_id: str, domain: str, day: date) -> Optional[BaseModel]: ...

    def get_records(self, user_id: str, domain: str, start: date, end: date) -> list[BaseModel]: ...

    def save_record(self, user_id: str, domain: str, record: BaseModel) -> BaseModel: ...

    def update_record(
        self, user_id: str, domain: str, day: date, merge: Merge
    ) -> tuple[Optional[BaseModel], BaseModel]: ...

    def get_goals(self, user_id: str, domain: str) -> BaseModel: ...

    def save_goals(self, user_id: str, domain: str, goals: BaseModel) -> BaseModel: ...

    def get_earned(self, user_id: str) -> dict[str, datetime]: ...

    def mark_achievement_earned(self, user_id: str, achievement_id: str, earned_at: datetime) -> bool: ...


class SqliteLogStore:
    """DailyLogStore backed by the sqlite file at db.DB_PATH."""

    def get_profile(self, user_id: str) -> Optional[UserProfile]:
        with db() as conn:
            row = conn.execute("SELECT * FROM user_profiles WHERE user_id = ?", (user_id,)).fetchone()
        if row is None:
            return None
        data = dict(row)
        data.pop("updated_at", None)
        return UserProfile.model_validate(data)

    def save_profile(self, profile: UserProfile) -> UserProfile:
        params = profile.model_dump()
        params["updated_at"] = now_iso()
        with db() as conn:
            conn.execute(
                """
                INSERT INTO user_profiles(user_id, name, gender, birth_year, height_cm, weight_kg,
                                          activity_level, goal, updated_at)
                VALUES(:user_id, :name, :gender, :birth_year, :height_cm, :weight_kg,
                       :activity_level, :goal, :updated_at)
                ON CONFLICT(user_id) DO UPDATE SET
                  name=excluded.name,
                  gender=excluded.gender,
                  birth_year=excluded.birth_year,
                  height_cm=excluded.height_cm,
                  weight_kg=excluded.weight_kg,
                  activity_level=excluded.activity_level,
                  goal=excluded.goal,
                  updated_at=excluded.updated_at
                """,
                params,
            )
        return profile

    def get_record(self, user_id: str, domain: str, day: date) -> Optional[BaseModel]:
        model = record_model(domain)
        with db() as conn:
            row = conn.execute(
                "SELECT payload_json FROM daily_records WHERE user_id = ? AND domain = ? AND day = ?",
                (user_id, domain, day.isoformat()),
            ).fetchone()
        if row is None:
            return None
        return model.model_validate(json.loads(row["payload_json"]))

    def get_records(self, user_id: str, domain: str, start: date, end: date) -> list[BaseModel]:
        model = record_model(domain)
        with db() as conn:
            rows = conn.execute(
                """
                SELECT payload_json FROM daily_records
                WHERE user_id = ? AND domain = ? AND day >= ? AND day <= ?
                ORDER BY day ASC
                """,
                (user_id, domain, start.isoformat(), end.isoformat()),
            ).fetchall()
        return [model.model_validate(json.loads(r["payload_json"])) for r in rows]

    @staticmethod
    def _upsert_record(conn: sqlite3.Connection, user_id: str, domain: str, record: BaseModel) -> None:
        day = getattr(record, "day")
        conn.execute(
            """
            INSERT INTO daily_records(user_id, day, domain, payload_json, updated_at)
            VALUES(?,?,?,?,?)
            ON CONFLICT(user_id, day, domain) DO UPDATE SET
              payload_json=excluded.payload_json,
              updated_at=excluded.updated_at
            """,
            (user_id, day.isoformat(), domain, dumps_payload(record.model_dump(mode="json")), now_iso()),
        )

    def save_record(self, user_id: str, domain: str, record: BaseModel) -> BaseModel:
        record_model(domain)
        with db() as conn:
            self._upsert_record(conn, user_id, domain, record)
        return record

    def update_record(
        self, user_id: str, domain: str, day: date, merge: Merge
    ) -> tuple[Optional[BaseModel], BaseModel]:
        """Read, merge and write one day's record inside a single write transaction.

        BEGIN IMMEDIATE takes the write lock before the read, so concurrent
        appends to the same day queue up instead of overwriting each other.
        If `merge` raises, nothing is written.
        """
        model = record_model(domain)
        with db() as conn:
            conn.execute("BEGIN IMMEDIATE")
            row = conn.execute(
                "SELECT payload_json FROM daily_records WHERE user_id = ? AND domain = ? AND day = ?",
                (user_id, domain, day.isoformat()),
            ).fetchone()
            prev = None if row is None else model.model_validate(json.loads(row["payload_json"]))
            record = merge(prev)
            self._upsert_record(conn, user_id, domain, record)
        return prev, record

    def get_goals(self, user_id: str, domain: str) -> BaseModel:
        model = goal_model(domain)
        with db() as conn:
            row = conn.execute(
                "SELECT payload_json FROM domain_goals WHERE user_id = ? AND domain = ?",
                (user_id, domain),
            ).fetchone()
        if row is None:
            return model()
        return model.model_validate(json.loads(row["payload_json"]))

    def save_goals(self, user_id: str, domain: str, goals: BaseModel) -> BaseModel:
        goal_model(domain)
        with db() as conn:
            conn.execute(
                """
                INSERT INTO domain_goals(user_id, domain, payload_json, updated_at)
                VALUES(?,?,?,?)
                ON CONFLICT(user_id, domain) DO UPDATE SET
                  payload_json=excluded.payload_json,
                  updated_at=excluded.updated_at
                """,
                (user_id, domain, dumps_payload(goals.model_dump(mode="json")), now_iso()),
            )
        return goals

    def get_earned(self, user_id: str) -> dict[str, datetime]:
        with db() as conn:
            rows = conn.execute(
                "SELECT achievement_id, earned_at FROM earned_achievements WHERE user_id = ?",
                (user_id,),
            ).fetchall()
        return {r["achievement_id"]: datetime.fromisoformat(r["earned_at"]) for r in rows}

    def mark_achievement_earned(self, user_id: str, achievement_id: str, earned_at: datetime) -> bool:
        with db() as conn:
            cur = conn.execute(
                """
                INSERT OR IGNORE INTO earned_achievements(user_id, achievement_id, earned_at)
                VALUES(?,?,?)
                """,
                (user_id, achievement_id, iso(earned_at)),
            )
        inserted = cur.rowcount > 0
        if not inserted:
            logger.debug("achievement %s already earned by %s", achievement_id, user_id)
        return inserted


class MemoryLogStore:
    """In-process DailyLogStore, used by tests and scripts."""

    def __init__(self) -> None:
        self.profiles: dict[str, UserProfile] = {}
        self.records: dict[tuple[str, str, date], BaseModel] = {}
        self.goals: dict[tuple[str, str], BaseModel] = {}
        self.earned: dict[str, dict[str, datetime]] = {}
        self._lock = threading.Lock()

    def get_profile(self, user_id: str) -> Optional[UserProfile]:
        return self.profiles.get(user_id)

    def save_profile(self, profile: UserProfile) -> UserProfile:
        self.profiles[profile.user_id] = profile
        return profile

    def get_record(self, user_id: str, domain: str, day: date) -> Optional[BaseModel]:
        record_model(domain)
        return self.records.get((user_id, domain, day))

    def get_records(self, user_id: str, domain: str, start: date, end: date) -> list[BaseModel]:
        record_model(domain)
        hits = [
            (d, r) for (u, dom, d), r in self.records.items()
            if u == user_id and dom == domain and start <= d <= end
        ]
        return [r for _, r in sorted(hits, key=lambda x: x[0])]

    def save_record(self, user_id: str, domain: str, record: BaseModel) -> BaseModel:
        record_model(domain)
        self.records[(user_id, domain, getattr(record, "day"))] = record
        return record

    def update_record(
        self, user_id: str, domain: str, day: date, merge: Merge
    ) -> tuple[Optional[BaseModel], BaseModel]:
        record_model(domain)
        with self._lock:
            prev = self.records.get((user_id, domain, day))
            record = merge(prev)
            self.records[(user_id, domain, day)] = record
        return prev, record

    def get_goals(self, user_id: str, domain: str) -> BaseModel:
        model = goal_model(domain)
        return self.goals.get((user_id, domain)) or model()

    def save_goals(self, user_id: str, domain: str, goals: BaseModel) -> BaseModel:
        goal_model(domain)
        self.goals[(user_id, domain)] = goals
        return goals

    def get_earned(self, user_id: str) -> dict[str, datetime]:
        return dict(self.earned.get(user_id, {}))

    def mark_achievement_earned(self, user_id: str, achievement_id: str, earned_at: datetime) -> bool:
        ledger = self.earned.setdefault(user_id, {})
        if achievement_id in ledger:
            return False
        ledger[achievement_id] = earned_at
        return True


def store_stats() -> dict[str, object]:
    with db() as conn:
        users = conn.execute("SELECT COUNT(*) AS c FROM user_profiles").fetchone()["c"]
        records = conn.execute("SELECT COUNT(*) AS c FROM daily_records").fetchone()["c"]
        last = conn.execute("SELECT MAX(updated_at) AS t FROM daily_records").fetchone()["t"]
    return {"totalUsers": int(users), "totalRecords": int(records), "lastUpdatedAt": last}
