"""Streak state machine: the activity transition plus the two sweep rules.

Everything here is pure. Both the local engine and the server service call
these functions; neither re-implements the day arithmetic.

Transition on an activity day ``d`` against ``last_activity_date``:

* no prior activity     -> streak starts at 1 on ``d``
* same day (delta 0)    -> no-op, repeated events never double count
* next day (delta 1)    -> streak + 1, start date kept
* gap (delta >= 2)      -> streak restarts at 1 on ``d``
* backdated (delta < 0) -> no-op, the record never moves backwards
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date
from enum import Enum

from streakline.streaks.calendar import ReferenceCalendar
from streakline.streaks.errors import StreakInvariantError

ACTIVE_DAYS_WINDOW = 31

days_between = ReferenceCalendar.days_between


class TransitionOutcome(str, Enum):
    """How an activity day related to the prior record."""

    FIRST = "first"
    SAME_DAY = "same_day"
    CONSECUTIVE = "consecutive"
    GAP = "gap"
    BACKDATED = "backdated"

    @property
    def changed(self) -> bool:
        return self not in (TransitionOutcome.SAME_DAY, TransitionOutcome.BACKDATED)


@dataclass(frozen=True)
class StreakState:
    """Snapshot of one user's derived streak record."""

    current_streak: int = 0
    best_streak: int = 0
    last_activity_date: date | None = None
    streak_start_date: date | None = None
    is_at_risk: bool = False
    freezes_available: int = 0
    freeze_active: bool = False
    active_days: tuple[date, ...] = field(default_factory=tuple)

    @classmethod
    def empty(cls) -> StreakState:
        return cls()

    def check_invariants(self) -> None:
        """Raise StreakInvariantError if the record is internally inconsistent."""
        if self.current_streak < 0 or self.best_streak < 0 or self.freezes_available < 0:
            raise StreakInvariantError(f"negative counter in {self!r}")
        if self.current_streak > self.best_streak:
            raise StreakInvariantError(
                f"current_streak {self.current_streak} exceeds best_streak {self.best_streak}"
            )
        if (self.current_streak > 0) != (self.streak_start_date is not None):
            raise StreakInvariantError("streak_start_date must be set exactly when current_streak > 0")
        if self.is_at_risk and self.current_streak == 0:
            raise StreakInvariantError("a zero streak cannot be at risk")


@dataclass(frozen=True)
class TransitionResult:
    state: StreakState
    outcome: TransitionOutcome


def trim_active_days(days: tuple[date, ...] | list[date], today: date, window: int = ACTIVE_DAYS_WINDOW) -> tuple[date, ...]:
    """Keep the distinct days in ``[today - window + 1, today]``, sorted."""
    return tuple(sorted({d for d in days if 0 <= days_between(d, today) < window}))


def transition(prior: StreakState, day: date, window: int = ACTIVE_DAYS_WINDOW) -> TransitionResult:
    """Apply one activity on calendar day ``day`` to ``prior``."""
    last = prior.last_activity_date

    if last is None:
        current, start, outcome = 1, day, TransitionOutcome.FIRST
    else:
        delta = days_between(last, day)
        if delta < 0:
            return TransitionResult(prior, TransitionOutcome.BACKDATED)
        if delta == 0:
            return TransitionResult(prior, TransitionOutcome.SAME_DAY)
        if delta == 1 and prior.current_streak > 0:
            current, start, outcome = prior.current_streak + 1, prior.streak_start_date, TransitionOutcome.CONSECUTIVE
        else:
            # A zeroed record (reset sweep ran) restarts like a gap.
            current, start, outcome = 1, day, TransitionOutcome.GAP

    state = replace(
        prior,
        current_streak=current,
        best_streak=max(prior.best_streak, current),
        last_activity_date=day,
        streak_start_date=start,
        is_at_risk=False,
        active_days=trim_active_days((*prior.active_days, day), day, window),
    )
    return TransitionResult(state, outcome)


def mark_at_risk(state: StreakState, today: date) -> StreakState:
    """At-risk sweep rule: flag a live streak whose last activity was exactly yesterday.

    Only ever sets the flag. Clearing is left to new activity or the reset rule.
    """
    if state.current_streak <= 0 or state.last_activity_date is None or state.is_at_risk:
        return state
    if days_between(state.last_activity_date, today) == 1:
        return replace(state, is_at_risk=True)
    return state


def reset_if_stale(state: StreakState, today: date) -> StreakState:
    """Reset sweep rule: zero a live streak idle for two or more days unless frozen."""
    if state.current_streak <= 0 or state.last_activity_date is None or state.freeze_active:
        return state
    if days_between(state.last_activity_date, today) >= 2:
        return replace(
            state,
            current_streak=0,
            streak_start_date=None,
            is_at_risk=False,
            active_days=(),
        )
    return state


def project_for_display(state: StreakState, today: date) -> StreakState:
    """Read-time view used where no sweep runs: both sweep rules applied as of ``today``."""
    return mark_at_risk(reset_if_stale(state, today), today)
