"""Streak API endpoints."""

from __future__ import annotations

from dataclasses import asdict
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Query

from streakline.dependencies import get_streak_service
from streakline.streaks.schemas import (
    ActivityLogEntryResponse,
    ActivityLogResponse,
    ActivityRequest,
    ActivityResponse,
    StreakResponse,
    SweepRequest,
    SweepResponse,
)
from streakline.streaks.service import StreakService

router = APIRouter(prefix="/api/v1", tags=["Streaks"])


# ── Per-user endpoints ──


@router.post("/users/{user_id}/streak", response_model=StreakResponse, status_code=201)
async def create_streak_record(user_id: str, service: StreakService = Depends(get_streak_service)):
    """Initialize an empty streak record for a newly created user."""
    state = await service.create_record(user_id)
    return StreakResponse.from_state(user_id, state)


@router.get("/users/{user_id}/streak", response_model=StreakResponse)
async def get_streak(user_id: str, service: StreakService = Depends(get_streak_service)):
    """Current streak snapshot with milestone progress."""
    state = await service.get_snapshot(user_id)
    if state is None:
        raise HTTPException(status_code=404, detail="Streak record not found")
    return StreakResponse.from_state(user_id, state)


@router.post("/users/{user_id}/activity", response_model=ActivityResponse)
async def submit_activity(
    user_id: str,
    body: ActivityRequest,
    service: StreakService = Depends(get_streak_service),
):
    """Log one activity event and apply it to the user's streak."""
    result = await service.record_activity(user_id, body.activity_type, body.occurred_at)
    return ActivityResponse(
        outcome=result.outcome.value,
        activity_day=result.activity_day,
        streak=StreakResponse.from_state(user_id, result.state),
    )


@router.get("/users/{user_id}/activity", response_model=ActivityLogResponse)
async def list_activity(
    user_id: str,
    limit: int = Query(50, ge=1, le=500),
    service: StreakService = Depends(get_streak_service),
):
    """Most recent activity log entries, newest first."""
    entries = await service.list_activity(user_id, limit)
    items = [
        ActivityLogEntryResponse(
            activity_type=e.activity_type,
            occurred_at=e.occurred_at,
            activity_day=e.activity_day,
        )
        for e in entries
    ]
    return ActivityLogResponse(entries=items, total=len(items))


# ── Manual sweep triggers (normally run by the arq cron worker) ──


@router.post("/admin/sweeps/at-risk", response_model=SweepResponse)
async def trigger_at_risk_sweep(
    body: SweepRequest | None = None,
    service: StreakService = Depends(get_streak_service),
):
    body = body or SweepRequest()
    now = body.now or datetime.now(timezone.utc)
    result = await service.run_at_risk_sweep(now, body.time_budget_seconds)
    return SweepResponse(**asdict(result))


@router.post("/admin/sweeps/reset", response_model=SweepResponse)
async def trigger_reset_sweep(
    body: SweepRequest | None = None,
    service: StreakService = Depends(get_streak_service),
):
    body = body or SweepRequest()
    now = body.now or datetime.now(timezone.utc)
    result = await service.run_reset_sweep(now, body.time_budget_seconds)
    return SweepResponse(**asdict(result))
