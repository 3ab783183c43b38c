"""Streak sweep arq worker: daily at-risk and reset sweeps.

Schedules (reference timezone):
- At-risk sweep: daily at STREAK_AT_RISK_SWEEP_HOUR:MINUTE (default 18:00)
- Reset sweep: daily at STREAK_RESET_SWEEP_HOUR:MINUTE (default 00:00)

Import path for arq CLI: arq streakline.streaks.worker.StreakWorkerSettings
"""

from __future__ import annotations

import logging
from dataclasses import asdict
from datetime import datetime, timezone
from zoneinfo import ZoneInfo

from arq import cron
from arq.connections import RedisSettings

from streakline.config import get_settings
from streakline.database import close_db, get_session_factory, init_db
from streakline.redis_client import close_redis, get_redis_or_none, init_redis
from streakline.streaks.calendar import ReferenceCalendar
from streakline.streaks.notifier import StreakNotifier
from streakline.streaks.service import StreakService

logger = logging.getLogger(__name__)


async def streak_startup(ctx: dict) -> None:  # type: ignore[type-arg]
    """Initialize DB + Redis and build the service on worker startup."""
    settings = get_settings()
    await init_db(settings.database_url)
    if settings.redis_url:
        await init_redis(settings.redis_url)
    else:
        logger.warning("STREAK_REDIS_URL is empty; sweep notifications are disabled")

    ctx["streak_service"] = StreakService(
        get_session_factory(),
        ReferenceCalendar(settings.reference_timezone),
        StreakNotifier(get_redis_or_none()),
        max_retries=settings.max_write_retries,
        active_days_window=settings.active_days_window,
    )
    logger.info("Streak worker started (reference timezone %s)", settings.reference_timezone)


async def streak_shutdown(ctx: dict) -> None:  # type: ignore[type-arg]
    """Clean up on worker shutdown."""
    await close_redis()
    await close_db()
    logger.info("Streak worker shut down")


async def at_risk_sweep(ctx: dict, now: datetime | None = None) -> dict:  # type: ignore[type-arg]
    """Scheduled task: flag streaks whose last activity was yesterday."""
    service: StreakService = ctx["streak_service"]
    budget = get_settings().sweep_time_budget_seconds
    result = await service.run_at_risk_sweep(now or datetime.now(timezone.utc), budget)
    return asdict(result)


async def reset_sweep(ctx: dict, now: datetime | None = None) -> dict:  # type: ignore[type-arg]
    """Scheduled task: zero streaks idle for two or more days."""
    service: StreakService = ctx["streak_service"]
    budget = get_settings().sweep_time_budget_seconds
    result = await service.run_reset_sweep(now or datetime.now(timezone.utc), budget)
    return asdict(result)


_settings = get_settings()


class StreakWorkerSettings:
    """arq worker settings for the streak sweeps."""

    functions = [at_risk_sweep, reset_sweep]
    cron_jobs = [
        cron(at_risk_sweep, hour=_settings.at_risk_sweep_hour, minute=_settings.at_risk_sweep_minute, run_at_startup=False),
        cron(reset_sweep, hour=_settings.reset_sweep_hour, minute=_settings.reset_sweep_minute, run_at_startup=False),
    ]
    on_startup = streak_startup
    on_shutdown = streak_shutdown
    timezone = ZoneInfo(_settings.reference_timezone)
    redis_settings = RedisSettings.from_dsn(_settings.arq_redis_url)
    max_jobs = 2
    job_timeout = int(_settings.sweep_time_budget_seconds) + 60
