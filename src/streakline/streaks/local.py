"""On-device streak engine: one user, one JSON file, no sweeps.

The local engine runs the same transition as the server. Instead of
scheduled sweeps it applies the at-risk and reset rules when the record is
read, so the stored counters only change on activity.
"""

from __future__ import annotations

import logging
import os
import tempfile
from collections.abc import Callable
from datetime import date, datetime, timezone
from pathlib import Path

from pydantic import BaseModel, Field

from streakline.config import Settings, get_settings
from streakline.streaks.calendar import ReferenceCalendar
from streakline.streaks.transition import (
    ACTIVE_DAYS_WINDOW,
    StreakState,
    TransitionOutcome,
    TransitionResult,
    project_for_display,
    transition,
)

logger = logging.getLogger(__name__)

Listener = Callable[[StreakState], None]


class LocalActivity(BaseModel):
    occurred_at: datetime
    activity_type: str


class LocalRecord(BaseModel):
    """On-disk shape of the local record. Freezes do not exist locally."""

    current_streak: int = 0
    best_streak: int = 0
    last_activity_date: date | None = None
    streak_start_date: date | None = None
    active_days: list[date] = Field(default_factory=list)
    activity_log: list[LocalActivity] = Field(default_factory=list)

    def to_state(self) -> StreakState:
        return StreakState(
            current_streak=self.current_streak,
            best_streak=self.best_streak,
            last_activity_date=self.last_activity_date,
            streak_start_date=self.streak_start_date,
            active_days=tuple(sorted(self.active_days)),
        )

    @classmethod
    def from_state(cls, state: StreakState, activity_log: list[LocalActivity]) -> LocalRecord:
        return cls(
            current_streak=state.current_streak,
            best_streak=state.best_streak,
            last_activity_date=state.last_activity_date,
            streak_start_date=state.streak_start_date,
            active_days=list(state.active_days),
            activity_log=activity_log,
        )


class LocalRecordStore:
    """Reads and atomically rewrites the single local record file."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def load(self) -> LocalRecord:
        if not self.path.exists():
            return LocalRecord()
        return LocalRecord.model_validate_json(self.path.read_text(encoding="utf-8"))

    def save(self, record: LocalRecord) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(record.model_dump_json(indent=2))
            os.replace(tmp, self.path)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise


class LocalStreakEngine:
    """Single-user engine. Each activity is applied and persisted before returning."""

    def __init__(
        self,
        store: LocalRecordStore,
        calendar: ReferenceCalendar,
        *,
        active_days_window: int = ACTIVE_DAYS_WINDOW,
        activity_log_limit: int = 500,
    ) -> None:
        self.store = store
        self.calendar = calendar
        self.active_days_window = active_days_window
        if activity_log_limit < 1:
            raise ValueError(f"activity_log_limit must be at least 1, got {activity_log_limit}")
        self.activity_log_limit = activity_log_limit
        record = store.load()
        self._state = record.to_state()
        self._activity_log = list(record.activity_log)
        self._listeners: list[Listener] = []

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> LocalStreakEngine:
        """Engine over the configured record file, day boundaries and log limit."""
        settings = settings or get_settings()
        return cls(
            LocalRecordStore(settings.local_record_path),
            ReferenceCalendar(settings.reference_timezone),
            active_days_window=settings.active_days_window,
            activity_log_limit=settings.local_activity_log_limit,
        )

    @property
    def state(self) -> StreakState:
        """Stored state, without read-time projection."""
        return self._state

    @property
    def activity_log(self) -> list[LocalActivity]:
        return list(self._activity_log)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a change listener; returns a function that unregisters it."""
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener)

    def record_activity(self, occurred_at: datetime | None = None, activity_type: str = "app_open") -> TransitionResult:
        if occurred_at is None:
            occurred_at = datetime.now(timezone.utc)
        day = self.calendar.day_of(occurred_at)
        result = transition(self._state, day, self.active_days_window)
        if result.outcome.changed:
            result.state.check_invariants()

        self._activity_log.append(LocalActivity(occurred_at=occurred_at, activity_type=activity_type))
        del self._activity_log[: -self.activity_log_limit]
        if result.outcome.changed:
            self._state = result.state
        self.store.save(LocalRecord.from_state(self._state, self._activity_log))

        if result.outcome is TransitionOutcome.BACKDATED:
            logger.info("Ignored backdated local activity on %s (last activity %s)", day, self._state.last_activity_date)
        elif result.outcome.changed:
            self._notify()
        return result

    def snapshot(self, now: datetime | None = None) -> StreakState:
        """Display view as of ``now``: at-risk and lapsed streaks are derived here."""
        if now is None:
            now = datetime.now(timezone.utc)
        return project_for_display(self._state, self.calendar.day_of(now))

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self._state)
            except Exception:
                logger.warning("Streak listener %r failed", listener, exc_info=True)
