"""Shared FastAPI dependencies."""

from streakline.config import get_settings
from streakline.database import get_session_factory
from streakline.redis_client import get_redis_or_none
from streakline.streaks.calendar import ReferenceCalendar
from streakline.streaks.notifier import StreakNotifier
from streakline.streaks.service import StreakService


def build_streak_service() -> StreakService:
    """Wire a StreakService from the initialized DB, Redis and settings."""
    settings = get_settings()
    return StreakService(
        get_session_factory(),
        ReferenceCalendar(settings.reference_timezone),
        StreakNotifier(get_redis_or_none()),
        max_retries=settings.max_write_retries,
        active_days_window=settings.active_days_window,
    )


async def get_streak_service() -> StreakService:
    """Streak service as a FastAPI dependency."""
    return build_streak_service()
