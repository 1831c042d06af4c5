from __future__ import annotations

import logging
import os


def get_env(name: str, default: str | None = None) -> str:
    v = os.getenv(name, default)
    if v is None:
        raise RuntimeError(f"Missing required env var: {name}")
    return v


def _parse_split(raw: str) -> tuple[float, float, float]:
    parts = [p.strip() for p in raw.split("/")]
    if len(parts) != 3:
        raise RuntimeError(f"MACRO_SPLIT must look like 30/40/30, got: {raw}")
    try:
        protein, carbs, fat = (float(p) for p in parts)
    except ValueError as exc:
        raise RuntimeError(f"MACRO_SPLIT must be numeric, got: {raw}") from exc
    total = protein + carbs + fat
    if total <= 0:
        raise RuntimeError(f"MACRO_SPLIT must add up to a positive number, got: {raw}")
    return protein / total, carbs / total, fat / total


HOST = get_env("HOST", "0.0.0.0")
PORT = int(get_env("PORT", "8765"))
LOG_LEVEL = get_env("LOG_LEVEL", "INFO").upper()

# Days of history fetched for streaks and insight details.
HISTORY_DAYS = int(get_env("HISTORY_DAYS", "30"))
# Days of history scanned for lifetime achievement metrics.
ACHIEVEMENT_HISTORY_DAYS = int(get_env("ACHIEVEMENT_HISTORY_DAYS", "365"))

# protein / carbs / fat share of the calorie target
MACRO_SPLIT = _parse_split(get_env("MACRO_SPLIT", "30/40/30"))


def configure_logging(level: str | None = None) -> None:
    logging.basicConfig(
        level=(level or LOG_LEVEL),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
