from __future__ import annotations

import json
import os
import sqlite3
from contextlib import contextmanager
from datetime import date, datetime, timezone
from typing import Any, Iterator

# Day keys follow the local timezone of the machine running the server.
LOCAL_TZ = datetime.now().astimezone().tzinfo

DB_PATH = os.getenv("DB_PATH", os.path.join(os.path.dirname(__file__), "..", "health_insights.db"))


def _connect() -> sqlite3.Connection:
    conn = sqlite3.connect(DB_PATH)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL;")
    conn.execute("PRAGMA synchronous=NORMAL;")
    return conn


@contextmanager
def db() -> Iterator[sqlite3.Connection]:
    conn = _connect()
    try:
        yield conn
        conn.commit()
    finally:
        conn.close()


def init_db() -> None:
    with db() as conn:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS user_profiles (
              user_id TEXT PRIMARY KEY,
              name TEXT,
              gender TEXT NOT NULL,
              birth_year INTEGER NOT NULL,
              height_cm REAL NOT NULL,
              weight_kg REAL NOT NULL,
              activity_level TEXT NOT NULL,
              goal TEXT NOT NULL,
              updated_at TEXT NOT NULL
            );
            """
        )

        # Exactly one row per (user, day, domain); writes merge into it.
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS daily_records (
              user_id TEXT NOT NULL,
              day TEXT NOT NULL,
              domain TEXT NOT NULL,
              payload_json TEXT NOT NULL,
              updated_at TEXT NOT NULL,
              PRIMARY KEY (user_id, day, domain)
            );
            """
        )
        conn.execute("CREATE INDEX IF NOT EXISTS idx_daily_records_domain_day ON daily_records(user_id, domain, day);")

        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS domain_goals (
              user_id TEXT NOT NULL,
              domain TEXT NOT NULL,
              payload_json TEXT NOT NULL,
              updated_at TEXT NOT NULL,
              PRIMARY KEY (user_id, domain)
            );
            """
        )

        # Unlock ledger; earned_at is never updated once written.
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS earned_achievements (
              user_id TEXT NOT NULL,
              achievement_id TEXT NOT NULL,
              earned_at TEXT NOT NULL,
              PRIMARY KEY (user_id, achievement_id)
            );
            """
        )


def iso(dt: datetime | None) -> str | None:
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat()


def dumps_payload(payload: Any) -> str:
    return json.dumps(payload, ensure_ascii=False, sort_keys=True, separators=(",", ":"), default=str)


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def local_today() -> date:
    return datetime.now().astimezone(LOCAL_TZ).date()
