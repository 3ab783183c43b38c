"""Streak engine exceptions."""

from __future__ import annotations


class StreakError(Exception):
    """Base class for streak engine errors."""


class StreakInvariantError(StreakError):
    """A streak state violates one of the record invariants."""


class RecordNotFoundError(StreakError):
    """No streak record exists for the requested user."""

    def __init__(self, user_id: str) -> None:
        super().__init__(f"No streak record for user {user_id!r}")
        self.user_id = user_id


class ConcurrentUpdateError(StreakError):
    """A per-user read-modify-write kept losing the optimistic version race."""

    def __init__(self, user_id: str, attempts: int) -> None:
        super().__init__(f"Streak record for {user_id!r} still conflicting after {attempts} attempts")
        self.user_id = user_id
        self.attempts = attempts
