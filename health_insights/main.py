from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import date, timedelta
from typing import Any, Iterator, Optional

from fastapi import Depends, FastAPI, HTTPException

from .achievements import CATALOG, total_points
from .db import DB_PATH, init_db, local_today
from .engine import Engine, ProfileNotFound
from .models import (
    DOMAINS,
    ChallengeProgress,
    EngineEvent,
    HealthScore,
    Insights,
    LogResponse,
    MealLogRequest,
    ProfileMetrics,
    ProfileUpdateRequest,
    SleepLogRequest,
    StatusResponse,
    StepLogRequest,
    UserProfile,
    WaterLogRequest,
    WorkoutLogRequest,
)
from .notify import LogNotifier
from .report import build_weekly_report
from .security import require_api_key
from .settings import HISTORY_DAYS
from .store import SqliteLogStore, UnknownDomain, store_stats

logger = logging.getLogger(__name__)

app = FastAPI(title="Health Insights (Local)", version="0.1.0")
engine = Engine(SqliteLogStore(), LogNotifier())


@app.on_event("startup")
def _startup() -> None:
    init_db()
    logger.info("health insights ready, db=%s", DB_PATH)


@contextmanager
def _http_errors() -> Iterator[None]:
    """Translate engine errors into HTTP status codes."""
    try:
        yield
    except (ProfileNotFound, UnknownDomain) as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ValueError as exc:
        # InvalidProfile and goal payloads that fail validation
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@app.get("/api/status", response_model=StatusResponse)
def status(_: None = Depends(require_api_key)) -> StatusResponse:
    stats = store_stats()
    return StatusResponse(
        ok=True,
        dbPath=str(DB_PATH),
        totalUsers=stats["totalUsers"],
        totalRecords=stats["totalRecords"],
        lastUpdatedAt=stats["lastUpdatedAt"],
    )


# ---- profile & goals ----

@app.get("/api/users/{user_id}/profile", response_model=UserProfile)
def get_profile(user_id: str, _: None = Depends(require_api_key)) -> UserProfile:
    with _http_errors():
        return engine.require_profile(user_id)


@app.put("/api/users/{user_id}/profile")
def put_profile(user_id: str, req: ProfileUpdateRequest, _: None = Depends(require_api_key)) -> dict[str, Any]:
    with _http_errors():
        profile = engine.update_profile(user_id, req)
        return {"profile": profile, "metrics": engine.profile_metrics(user_id)}


@app.get("/api/users/{user_id}/metrics", response_model=ProfileMetrics)
def get_metrics(user_id: str, _: None = Depends(require_api_key)) -> ProfileMetrics:
    with _http_errors():
        return engine.profile_metrics(user_id)


@app.get("/api/users/{user_id}/goals/{domain}")
def get_goals(user_id: str, domain: str, _: None = Depends(require_api_key)) -> dict[str, Any]:
    with _http_errors():
        return engine.get_goals(user_id, domain).model_dump()


@app.put("/api/users/{user_id}/goals/{domain}")
def put_goals(
    user_id: str, domain: str, payload: dict[str, Any], _: None = Depends(require_api_key)
) -> dict[str, Any]:
    with _http_errors():
        return engine.set_goals(user_id, domain, payload).model_dump()


# ---- logging ----

@app.post("/api/users/{user_id}/sleep", response_model=LogResponse)
def log_sleep(user_id: str, req: SleepLogRequest, _: None = Depends(require_api_key)) -> LogResponse:
    return engine.log_sleep(user_id, req)


@app.post("/api/users/{user_id}/steps", response_model=LogResponse)
def log_steps(user_id: str, req: StepLogRequest, _: None = Depends(require_api_key)) -> LogResponse:
    return engine.add_steps(user_id, req)


@app.post("/api/users/{user_id}/water", response_model=LogResponse)
def log_water(user_id: str, req: WaterLogRequest, _: None = Depends(require_api_key)) -> LogResponse:
    return engine.add_water(user_id, req)


@app.post("/api/users/{user_id}/workouts", response_model=LogResponse)
def log_workout(user_id: str, req: WorkoutLogRequest, _: None = Depends(require_api_key)) -> LogResponse:
    return engine.add_workout(user_id, req)


@app.post("/api/users/{user_id}/meals", response_model=LogResponse)
def log_meal(user_id: str, req: MealLogRequest, _: None = Depends(require_api_key)) -> LogResponse:
    return engine.add_meal(user_id, req)


@app.get("/api/users/{user_id}/records/{domain}")
def list_records(
    user_id: str,
    domain: str,
    start: Optional[date] = None,
    end: Optional[date] = None,
    _: None = Depends(require_api_key),
) -> dict[str, Any]:
    if domain not in DOMAINS:
        raise HTTPException(status_code=404, detail=f"Unknown domain: {domain}")
    end = end or local_today()
    start = start or (end - timedelta(days=HISTORY_DAYS - 1))
    if start > end:
        raise HTTPException(status_code=400, detail="start must not be after end")
    records = engine.store.get_records(user_id, domain, start, end)
    return {
        "domain": domain,
        "start": start.isoformat(),
        "end": end.isoformat(),
        "records": [r.model_dump(mode="json") for r in records],
    }


# ---- derived ----

@app.get("/api/users/{user_id}/insights/{domain}", response_model=Insights)
def insights(user_id: str, domain: str, _: None = Depends(require_api_key)) -> Insights:
    with _http_errors():
        return engine.compute_insights(user_id, domain)


@app.get("/api/users/{user_id}/summary")
def summary(user_id: str, _: None = Depends(require_api_key)) -> dict[str, Any]:
    with _http_errors():
        return engine.weekly_summary(user_id)


@app.get("/api/users/{user_id}/report")
def report(user_id: str, _: None = Depends(require_api_key)) -> dict[str, Any]:
    with _http_errors():
        return {"text": build_weekly_report(engine, user_id)}


@app.get("/api/users/{user_id}/achievements")
def achievements(user_id: str, _: None = Depends(require_api_key)) -> dict[str, Any]:
    earned = engine.earned_achievements(user_id)
    return {
        "earned": earned,
        "points": total_points([a.id for a in earned]),
        "catalog": CATALOG,
    }


@app.post("/api/users/{user_id}/achievements/check")
def check_achievements(user_id: str, _: None = Depends(require_api_key)) -> dict[str, Any]:
    unlocked = engine.check_achievements(user_id)
    return {"ok": True, "unlocked": unlocked}


@app.get("/api/users/{user_id}/health-score", response_model=HealthScore)
def health_score(user_id: str, _: None = Depends(require_api_key)) -> HealthScore:
    return engine.health_score(user_id)


@app.get("/api/users/{user_id}/challenges", response_model=list[ChallengeProgress])
def challenges(user_id: str, _: None = Depends(require_api_key)) -> list[ChallengeProgress]:
    return engine.step_challenges(user_id)


@app.post("/api/users/{user_id}/reminders/check", response_model=list[EngineEvent])
def check_reminders(user_id: str, _: None = Depends(require_api_key)) -> list[EngineEvent]:
    return engine.send_reminders(user_id)
