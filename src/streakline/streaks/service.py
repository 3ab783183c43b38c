"""Server streak engine: activity handling and the two scheduled sweeps.

Every mutation of a user's record is a read-modify-write in its own
transaction, guarded by the record's version column. A lost version race is
retried from a fresh read, never dropped or overwritten.

Sweeps re-evaluate every live record from scratch, so a crashed or
time-boxed run is finished by simply running it again.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import TypeVar

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from streakline.db.models import ActivityLogEntry, StreakRecord
from streakline.streaks.calendar import ReferenceCalendar
from streakline.streaks.errors import ConcurrentUpdateError, RecordNotFoundError
from streakline.streaks.milestones import is_milestone
from streakline.streaks.notifier import (
    EVENT_AT_RISK,
    EVENT_MILESTONE,
    EVENT_RESET,
    EVENT_UPDATED,
    StreakNotifier,
)
from streakline.streaks.store import ActivityLogStore, StreakRecordStore, apply_state, row_to_state
from streakline.streaks.transition import (
    ACTIVE_DAYS_WINDOW,
    StreakState,
    TransitionOutcome,
    mark_at_risk,
    reset_if_stale,
    transition,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class ActivityOutcome:
    """Result of one activity submission."""

    user_id: str
    activity_day: date
    outcome: TransitionOutcome
    state: StreakState


@dataclass
class SweepResult:
    """Counters for one sweep run."""

    job: str
    reference_day: date
    scanned: int = 0
    updated: int = 0
    skipped: int = 0
    failed: int = 0
    timed_out: bool = False


class StreakService:
    """Multi-tenant streak engine over the shared record store."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        calendar: ReferenceCalendar,
        notifier: StreakNotifier | None = None,
        *,
        max_retries: int = 5,
        active_days_window: int = ACTIVE_DAYS_WINDOW,
    ) -> None:
        self._session_factory = session_factory
        self.calendar = calendar
        self.notifier = notifier or StreakNotifier(None)
        self.max_retries = max_retries
        self.active_days_window = active_days_window

    # --- Records ---

    async def create_record(self, user_id: str) -> StreakState:
        """Initialize a zeroed record for a new user (idempotent)."""
        for _ in range(self.max_retries):
            async with self._session_factory() as db:
                try:
                    row = await StreakRecordStore(db).create(user_id)
                    await db.commit()
                except IntegrityError:
                    # Created concurrently; the next pass reads it back.
                    await db.rollback()
                    continue
                return row_to_state(row)
        raise ConcurrentUpdateError(user_id, self.max_retries)

    async def get_snapshot(self, user_id: str) -> StreakState | None:
        async with self._session_factory() as db:
            row = await StreakRecordStore(db).get(user_id)
            return row_to_state(row) if row is not None else None

    async def list_activity(self, user_id: str, limit: int = 50) -> Sequence[ActivityLogEntry]:
        async with self._session_factory() as db:
            return await ActivityLogStore(db).list_for_user(user_id, limit)

    # --- Activity ---

    async def record_activity(
        self,
        user_id: str,
        activity_type: str,
        occurred_at: datetime | None = None,
    ) -> ActivityOutcome:
        """Append an activity event and apply the transition exactly once.

        A user with no record yet is treated as having no prior activity.
        """
        if occurred_at is None:
            occurred_at = datetime.now(timezone.utc)
        day = self.calendar.day_of(occurred_at)

        async def _apply(db: AsyncSession, row: StreakRecord) -> TransitionOutcome:
            ActivityLogStore(db).append(user_id, occurred_at, activity_type, day)
            result = transition(row_to_state(row), day, self.active_days_window)
            if result.outcome.changed:
                apply_state(row, result.state, datetime.now(timezone.utc))
            return result.outcome

        outcome, state = await self._read_modify_write(user_id, _apply, create_missing=True)

        if outcome is TransitionOutcome.BACKDATED:
            logger.info(
                "Ignored backdated activity for %s: day %s is before last activity %s",
                user_id, day, state.last_activity_date,
            )
        elif outcome is TransitionOutcome.SAME_DAY:
            logger.debug("Repeat activity for %s on %s; streak unchanged", user_id, day)
        else:
            logger.info(
                "Streak for %s: %s -> %d day(s) (best %d)",
                user_id, outcome.value, state.current_streak, state.best_streak,
            )
            await self.notifier.publish(user_id, EVENT_UPDATED, state, outcome=outcome.value)
            if is_milestone(state.current_streak):
                await self.notifier.publish(user_id, EVENT_MILESTONE, state, milestone=state.current_streak)

        return ActivityOutcome(user_id=user_id, activity_day=day, outcome=outcome, state=state)

    # --- Sweeps ---

    async def run_at_risk_sweep(self, now: datetime, time_budget_seconds: float | None = None) -> SweepResult:
        """Flag live streaks whose last activity was exactly yesterday. Safe to re-run."""
        today = self.calendar.today(now)
        return await self._sweep(
            "at_risk", today, now, lambda s: mark_at_risk(s, today), EVENT_AT_RISK, time_budget_seconds,
        )

    async def run_reset_sweep(self, now: datetime, time_budget_seconds: float | None = None) -> SweepResult:
        """Zero live streaks idle for two or more days, skipping frozen ones. Safe to re-run."""
        today = self.calendar.today(now)
        return await self._sweep(
            "reset", today, now, lambda s: reset_if_stale(s, today), EVENT_RESET, time_budget_seconds,
        )

    async def _sweep(
        self,
        job: str,
        today: date,
        now: datetime,
        rule: Callable[[StreakState], StreakState],
        event: str,
        time_budget_seconds: float | None,
    ) -> SweepResult:
        started = time.monotonic()
        result = SweepResult(job=job, reference_day=today)

        async with self._session_factory() as db:
            user_ids = await StreakRecordStore(db).list_active_user_ids()

        for user_id in user_ids:
            if time_budget_seconds is not None and time.monotonic() - started >= time_budget_seconds:
                result.timed_out = True
                logger.warning(
                    "%s sweep for %s hit its %.1fs budget after %d of %d records",
                    job, today, time_budget_seconds, result.scanned, len(user_ids),
                )
                break

            result.scanned += 1

            async def _apply(db: AsyncSession, row: StreakRecord) -> tuple[bool, bool]:
                before = row_to_state(row)
                after = rule(before)
                if after == before:
                    return False, row.streak_reminder_enabled
                apply_state(row, after, now)
                return True, row.streak_reminder_enabled

            try:
                (changed, reminder_enabled), state = await self._read_modify_write(
                    user_id, _apply, create_missing=False,
                )
            except RecordNotFoundError:
                result.skipped += 1
                continue
            except Exception:
                logger.exception("%s sweep failed for %s", job, user_id)
                result.failed += 1
                continue

            if not changed:
                result.skipped += 1
                continue

            result.updated += 1
            if event != EVENT_AT_RISK or reminder_enabled:
                await self.notifier.publish(user_id, event, state)

        logger.info(
            "%s sweep for %s: scanned=%d updated=%d skipped=%d failed=%d timed_out=%s",
            job, today, result.scanned, result.updated, result.skipped, result.failed, result.timed_out,
        )
        return result

    # --- Per-user serialization ---

    async def _read_modify_write(
        self,
        user_id: str,
        mutate: Callable[[AsyncSession, StreakRecord], Awaitable[T]],
        *,
        create_missing: bool,
    ) -> tuple[T, StreakState]:
        """Run ``mutate`` against a fresh read of the user's row and commit.

        Retries from scratch on a version conflict (or a lost create race).
        """
        for attempt in range(1, self.max_retries + 1):
            async with self._session_factory() as db:
                try:
                    store = StreakRecordStore(db)
                    row = await store.get(user_id)
                    if row is None:
                        if not create_missing:
                            raise RecordNotFoundError(user_id)
                        row = await store.create(user_id)
                    value = await mutate(db, row)
                    await db.commit()
                except (StaleDataError, IntegrityError):
                    await db.rollback()
                    logger.info(
                        "Write conflict on streak record %s (attempt %d/%d)", user_id, attempt, self.max_retries,
                    )
                    continue
                return value, row_to_state(row)

        logger.error("Giving up on streak record %s after %d conflicting attempts", user_id, self.max_retries)
        raise ConcurrentUpdateError(user_id, self.max_retries)
