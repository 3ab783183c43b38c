"""Persistence for streak records and the activity log."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import date, datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from streakline.db.models import ActivityLogEntry, StreakRecord
from streakline.streaks.transition import StreakState


def row_to_state(row: StreakRecord) -> StreakState:
    """Read the derived state out of an ORM row."""
    return StreakState(
        current_streak=row.current_streak,
        best_streak=row.best_streak,
        last_activity_date=row.last_activity_date,
        streak_start_date=row.streak_start_date,
        is_at_risk=row.is_at_risk,
        freezes_available=row.freezes_available,
        freeze_active=row.freeze_active,
        active_days=tuple(sorted(date.fromisoformat(d) for d in row.active_days or [])),
    )


def apply_state(row: StreakRecord, state: StreakState, now: datetime) -> None:
    """Write a new derived state onto an ORM row (flushed by the caller's commit).

    Raises StreakInvariantError instead of persisting an inconsistent record.
    """
    state.check_invariants()
    row.current_streak = state.current_streak
    row.best_streak = state.best_streak
    row.last_activity_date = state.last_activity_date
    row.streak_start_date = state.streak_start_date
    row.is_at_risk = state.is_at_risk
    row.freezes_available = state.freezes_available
    row.freeze_active = state.freeze_active
    # Reassign rather than mutate so the JSON column is marked dirty.
    row.active_days = [d.isoformat() for d in state.active_days]
    row.updated_at = now


class StreakRecordStore:
    """One row per user; the only mutable derived state."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def get(self, user_id: str) -> StreakRecord | None:
        return await self.db.get(StreakRecord, user_id)

    async def create(self, user_id: str) -> StreakRecord:
        """Insert a zeroed record, or return the existing one untouched."""
        row = await self.get(user_id)
        if row is not None:
            return row
        row = StreakRecord(
            user_id=user_id,
            current_streak=0,
            best_streak=0,
            is_at_risk=False,
            freezes_available=0,
            freeze_active=False,
            active_days=[],
            streak_reminder_enabled=True,
        )
        self.db.add(row)
        await self.db.flush()
        return row

    async def list_active_user_ids(self) -> list[str]:
        """Users whose streak is live; the scan set for both sweeps."""
        result = await self.db.execute(
            select(StreakRecord.user_id)
            .where(StreakRecord.current_streak > 0)
            .order_by(StreakRecord.user_id)
        )
        return list(result.scalars())


class ActivityLogStore:
    """Append-only activity log. Duplicate entries are legal."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    def append(self, user_id: str, occurred_at: datetime, activity_type: str, day: date) -> ActivityLogEntry:
        entry = ActivityLogEntry(
            user_id=user_id,
            activity_type=activity_type,
            occurred_at=occurred_at,
            activity_day=day,
        )
        self.db.add(entry)
        return entry

    async def list_for_user(self, user_id: str, limit: int = 50) -> Sequence[ActivityLogEntry]:
        result = await self.db.execute(
            select(ActivityLogEntry)
            .where(ActivityLogEntry.user_id == user_id)
            .order_by(ActivityLogEntry.occurred_at.desc(), ActivityLogEntry.id.desc())
            .limit(limit)
        )
        return result.scalars().all()
