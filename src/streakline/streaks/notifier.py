"""Change notifications for streak records over Redis pub/sub."""

from __future__ import annotations

import json
import logging
from typing import Any

from streakline.streaks.transition import StreakState

logger = logging.getLogger(__name__)

STREAK_CHANNEL = "pubsub:streak_update"

EVENT_UPDATED = "streak_updated"
EVENT_MILESTONE = "streak_milestone"
EVENT_AT_RISK = "streak_at_risk"
EVENT_RESET = "streak_reset"


def snapshot_payload(state: StreakState) -> dict[str, Any]:
    """JSON-ready snapshot of a streak record."""
    return {
        "current_streak": state.current_streak,
        "best_streak": state.best_streak,
        "last_activity_date": state.last_activity_date.isoformat() if state.last_activity_date else None,
        "streak_start_date": state.streak_start_date.isoformat() if state.streak_start_date else None,
        "is_at_risk": state.is_at_risk,
        "freezes_available": state.freezes_available,
        "freeze_active": state.freeze_active,
        "active_days": [d.isoformat() for d in state.active_days],
    }


class StreakNotifier:
    """Fire-and-forget publisher; a failed publish never fails the mutation."""

    def __init__(self, redis: object | None) -> None:
        self.redis = redis

    async def publish(self, user_id: str, event: str, state: StreakState, **extra: Any) -> bool:
        if self.redis is None:
            return False
        message = {"user_id": user_id, "event": event, "streak": snapshot_payload(state), **extra}
        try:
            await self.redis.publish(STREAK_CHANNEL, json.dumps(message))  # type: ignore[attr-defined]
        except Exception:
            logger.warning("Failed to publish %s notification for %s", event, user_id, exc_info=True)
            return False
        return True
