"""Streak milestones used for celebration and review-prompt triggers."""

from __future__ import annotations

MILESTONES: tuple[int, ...] = (7, 30, 50, 100, 200, 365, 500, 1000)


def is_milestone(streak: int) -> bool:
    return streak in MILESTONES


def next_milestone(streak: int) -> int | None:
    """First milestone strictly above ``streak``, or None past the last one."""
    return next((m for m in MILESTONES if m > streak), None)


def progress_to_next_milestone(streak: int) -> float:
    """Fraction of the way from the previous milestone (or 0) to the next one."""
    upcoming = next_milestone(streak)
    if upcoming is None:
        return 1.0
    previous = max((m for m in MILESTONES if m < streak), default=0)
    return (streak - previous) / (upcoming - previous)
