"""Per-user serialization tests: optimistic version conflicts are retried, never lost."""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

import pytest
from sqlalchemy import func, select

from streakline.db.models import ActivityLogEntry, StreakRecord
from streakline.streaks import service as service_module
from streakline.streaks.errors import ConcurrentUpdateError
from streakline.streaks.service import StreakService
from streakline.streaks.store import StreakRecordStore, apply_state, row_to_state
from streakline.streaks.transition import TransitionOutcome, transition

D1 = date(2026, 3, 2)


def interfere_on_read(monkeypatch, competitor, times: int = 1) -> list[str]:
    """Run ``competitor`` in its own committed transaction right after the service reads a row."""
    original_get = StreakRecordStore.get
    calls: list[str] = []

    async def get_then_interfere(self, user_id):
        row = await original_get(self, user_id)
        if row is not None and len(calls) < times:
            calls.append(user_id)
            await competitor(user_id)
        return row

    monkeypatch.setattr(service_module.StreakRecordStore, "get", get_then_interfere)
    return calls


class TestOptimisticRetry:
    async def test_racing_same_day_events_count_once(self, service: StreakService, session_factory, monkeypatch, at):
        """Two handlers for the same next-day event: the loser retries and sees SAME_DAY."""
        await service.record_activity("user-1", "app_open", at(D1))
        next_day = D1 + timedelta(days=1)

        async def other_handler(user_id):
            async with session_factory() as db:
                row = await db.get(StreakRecord, user_id)
                result = transition(row_to_state(row), next_day)
                apply_state(row, result.state, datetime.now(timezone.utc))
                await db.commit()

        calls = interfere_on_read(monkeypatch, other_handler)
        result = await service.record_activity("user-1", "app_open", at(next_day))

        assert calls == ["user-1"]
        assert result.outcome is TransitionOutcome.SAME_DAY
        snap = await service.get_snapshot("user-1")
        assert snap.current_streak == 2
        assert snap.best_streak == 2

        async with session_factory() as db:
            logged = await db.execute(
                select(func.count()).select_from(ActivityLogEntry).where(ActivityLogEntry.user_id == "user-1")
            )
            # The first attempt's log row was rolled back with its conflicting update.
            assert logged.scalar_one() == 2

    async def test_sweep_retries_against_fresh_activity(self, service: StreakService, session_factory, monkeypatch, at):
        """Activity lands between the sweep's read and write: the sweep must not flag the record."""
        await service.record_activity("user-1", "app_open", at(D1))
        today = D1 + timedelta(days=1)

        async def activity_lands(user_id):
            async with session_factory() as db:
                row = await db.get(StreakRecord, user_id)
                apply_state(row, transition(row_to_state(row), today).state, datetime.now(timezone.utc))
                await db.commit()

        interfere_on_read(monkeypatch, activity_lands)
        result = await service.run_at_risk_sweep(at(today, 18))

        assert result.updated == 0
        snap = await service.get_snapshot("user-1")
        assert snap.current_streak == 2
        assert snap.is_at_risk is False

    async def test_exhausted_retries_raise(self, service: StreakService, session_factory, monkeypatch, at):
        await service.record_activity("user-1", "app_open", at(D1))

        async def always_bump(user_id):
            async with session_factory() as db:
                row = await db.get(StreakRecord, user_id)
                row.freezes_available += 1
                await db.commit()

        calls = interfere_on_read(monkeypatch, always_bump, times=100)

        with pytest.raises(ConcurrentUpdateError) as excinfo:
            await service.record_activity("user-1", "app_open", at(D1 + timedelta(days=1)))

        assert excinfo.value.attempts == service.max_retries
        assert len(calls) == service.max_retries
        # Nothing from the failed call was written.
        snap = await service.get_snapshot("user-1")
        assert snap.current_streak == 1

    async def test_sweep_counts_exhausted_record_as_failed(self, service: StreakService, session_factory, monkeypatch, at):
        await service.record_activity("user-1", "app_open", at(D1))

        async def always_bump(user_id):
            async with session_factory() as db:
                row = await db.get(StreakRecord, user_id)
                row.freezes_available += 1
                await db.commit()

        interfere_on_read(monkeypatch, always_bump, times=100)
        result = await service.run_at_risk_sweep(at(D1 + timedelta(days=1), 18))

        assert result.failed == 1
        assert result.updated == 0
