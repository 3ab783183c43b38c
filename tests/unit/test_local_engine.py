"""Local (on-device) engine tests: persistence, read-time projection, listeners."""

from __future__ import annotations

import json
from datetime import date, timedelta

import pytest
from pydantic import ValidationError

from streakline.streaks.errors import StreakInvariantError
from streakline.streaks.local import LocalRecordStore, LocalStreakEngine
from streakline.streaks.transition import TransitionOutcome

D1 = date(2026, 3, 2)


@pytest.fixture
def store(tmp_path) -> LocalRecordStore:
    return LocalRecordStore(tmp_path / "device" / "streak_record.json")


@pytest.fixture
def engine(store, calendar) -> LocalStreakEngine:
    return LocalStreakEngine(store, calendar)


class TestRecordActivity:
    def test_first_activity(self, engine, at):
        result = engine.record_activity(at(D1))
        assert result.outcome is TransitionOutcome.FIRST
        assert engine.state.current_streak == 1
        assert engine.state.streak_start_date == D1

    def test_same_day_twice_counts_once(self, engine, at):
        engine.record_activity(at(D1, 8))
        result = engine.record_activity(at(D1, 21))
        assert result.outcome is TransitionOutcome.SAME_DAY
        assert engine.state.current_streak == 1
        assert len(engine.activity_log) == 2

    def test_backdated_activity_logged_but_ignored(self, engine, at):
        engine.record_activity(at(D1 + timedelta(days=3)))
        result = engine.record_activity(at(D1), activity_type="backfill")
        assert result.outcome is TransitionOutcome.BACKDATED
        assert engine.state.last_activity_date == D1 + timedelta(days=3)
        assert engine.activity_log[-1].activity_type == "backfill"

    def test_freezes_never_exist_locally(self, engine, at):
        engine.record_activity(at(D1))
        assert engine.state.freezes_available == 0
        assert engine.state.freeze_active is False


class TestPersistence:
    def test_state_survives_reload(self, store, calendar, engine, at):
        engine.record_activity(at(D1))
        engine.record_activity(at(D1 + timedelta(days=1)))

        reloaded = LocalStreakEngine(store, calendar)
        assert reloaded.state == engine.state
        assert reloaded.state.current_streak == 2
        assert len(reloaded.activity_log) == 2

    def test_missing_file_is_empty_record(self, store, calendar):
        assert not store.path.exists()
        assert LocalStreakEngine(store, calendar).state.current_streak == 0

    def test_file_is_plain_json(self, store, engine, at):
        engine.record_activity(at(D1), activity_type="lesson_completed")
        data = json.loads(store.path.read_text())
        assert data["current_streak"] == 1
        assert data["last_activity_date"] == "2026-03-02"
        assert data["activity_log"][0]["activity_type"] == "lesson_completed"

    def test_activity_log_is_bounded(self, store, calendar, at):
        engine = LocalStreakEngine(store, calendar, activity_log_limit=3)
        for hour in range(8, 14):
            engine.record_activity(at(D1, hour))
        assert len(engine.activity_log) == 3
        assert engine.activity_log[0].occurred_at.hour == 11

    def test_no_temp_files_left_behind(self, store, engine, at):
        engine.record_activity(at(D1))
        assert [p.name for p in store.path.parent.iterdir()] == [store.path.name]


class TestSnapshot:
    def test_active_today(self, engine, at):
        engine.record_activity(at(D1))
        snap = engine.snapshot(at(D1, 20))
        assert snap.current_streak == 1
        assert snap.is_at_risk is False

    def test_at_risk_computed_at_read_time(self, engine, at):
        engine.record_activity(at(D1))
        snap = engine.snapshot(at(D1 + timedelta(days=1), 18))
        assert snap.is_at_risk is True
        assert engine.state.is_at_risk is False

    def test_lapsed_streak_reads_as_zero(self, engine, at):
        engine.record_activity(at(D1))
        engine.record_activity(at(D1 + timedelta(days=1)))
        snap = engine.snapshot(at(D1 + timedelta(days=3)))
        assert snap.current_streak == 0
        assert snap.best_streak == 2
        # Stored record is untouched until the next activity.
        assert engine.state.current_streak == 2


class TestListeners:
    def test_listener_called_on_change(self, engine, at):
        seen = []
        engine.subscribe(seen.append)
        engine.record_activity(at(D1))
        engine.record_activity(at(D1, 15))
        assert [s.current_streak for s in seen] == [1]

    def test_unsubscribe(self, engine, at):
        seen = []
        unsubscribe = engine.subscribe(seen.append)
        unsubscribe()
        engine.record_activity(at(D1))
        assert seen == []

    def test_failing_listener_does_not_break_activity(self, engine, at):
        def broken(_state):
            raise RuntimeError("widget refresh failed")

        seen = []
        engine.subscribe(broken)
        engine.subscribe(seen.append)
        engine.record_activity(at(D1))
        assert engine.state.current_streak == 1
        assert len(seen) == 1


def test_from_settings(tmp_path, at):
    from streakline.config import Settings

    settings = Settings(
        local_record_path=str(tmp_path / "record.json"),
        local_activity_log_limit=2,
        reference_timezone="America/New_York",
    )
    engine = LocalStreakEngine.from_settings(settings)
    for hour in (8, 9, 10):
        engine.record_activity(at(D1, hour))

    assert engine.store.path == tmp_path / "record.json"
    assert len(engine.activity_log) == 2
    assert engine.calendar.day_of(at(D1, 23, 59)) == D1


def test_corrupted_file_is_not_rewritten(store, calendar, at):
    store.path.parent.mkdir(parents=True)
    store.path.write_text(
        json.dumps({"current_streak": 3, "best_streak": 3, "last_activity_date": "2026-03-02"}),
        encoding="utf-8",
    )
    before = store.path.read_text(encoding="utf-8")
    engine = LocalStreakEngine(store, calendar)

    with pytest.raises(StreakInvariantError):
        engine.record_activity(at(D1 + timedelta(days=1)))

    assert store.path.read_text(encoding="utf-8") == before
    assert engine.activity_log == []
    assert engine.state.current_streak == 3


class TestActivityLogLimit:
    def test_limit_must_be_positive(self, store, calendar):
        with pytest.raises(ValueError, match="activity_log_limit"):
            LocalStreakEngine(store, calendar, activity_log_limit=0)

    def test_limit_of_one_keeps_latest(self, store, calendar, at):
        engine = LocalStreakEngine(store, calendar, activity_log_limit=1)
        engine.record_activity(at(D1, 8), activity_type="first")
        engine.record_activity(at(D1, 9), activity_type="second")
        assert [a.activity_type for a in engine.activity_log] == ["second"]

    def test_setting_rejects_zero(self):
        from streakline.config import Settings

        with pytest.raises(ValidationError):
            Settings(local_activity_log_limit=0)
