"""Pydantic request/response models for streak endpoints."""

from __future__ import annotations

from datetime import date, datetime

from pydantic import BaseModel, Field

from streakline.streaks.milestones import is_milestone, next_milestone, progress_to_next_milestone
from streakline.streaks.transition import StreakState


# --- Streak ---


class StreakResponse(BaseModel):
    user_id: str
    current_streak: int
    best_streak: int
    last_activity_date: date | None = None
    streak_start_date: date | None = None
    is_at_risk: bool = False
    freezes_available: int = 0
    freeze_active: bool = False
    active_days: list[date] = []
    is_milestone: bool = False
    next_milestone: int | None = None
    progress_to_next_milestone: float = 0.0

    @classmethod
    def from_state(cls, user_id: str, state: StreakState) -> StreakResponse:
        return cls(
            user_id=user_id,
            current_streak=state.current_streak,
            best_streak=state.best_streak,
            last_activity_date=state.last_activity_date,
            streak_start_date=state.streak_start_date,
            is_at_risk=state.is_at_risk,
            freezes_available=state.freezes_available,
            freeze_active=state.freeze_active,
            active_days=list(state.active_days),
            is_milestone=is_milestone(state.current_streak),
            next_milestone=next_milestone(state.current_streak),
            progress_to_next_milestone=progress_to_next_milestone(state.current_streak),
        )


# --- Activity ---


class ActivityRequest(BaseModel):
    activity_type: str = Field(default="app_open", min_length=1, max_length=64)
    occurred_at: datetime | None = None


class ActivityResponse(BaseModel):
    outcome: str
    activity_day: date
    streak: StreakResponse


class ActivityLogEntryResponse(BaseModel):
    activity_type: str
    occurred_at: datetime
    activity_day: date


class ActivityLogResponse(BaseModel):
    entries: list[ActivityLogEntryResponse]
    total: int


# --- Sweeps ---


class SweepRequest(BaseModel):
    now: datetime | None = None
    time_budget_seconds: float | None = Field(default=None, gt=0)


class SweepResponse(BaseModel):
    job: str
    reference_day: date
    scanned: int
    updated: int
    skipped: int
    failed: int
    timed_out: bool
