"""ORM models for the streak engine.

``streak_records`` holds the single mutable derived state per user and is
guarded by a version counter (optimistic concurrency). ``activity_log`` is
append-only and may contain duplicates.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Any

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    Date,
    DateTime,
    Index,
    Integer,
    String,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from streakline.db.base import Base

_JSONList = JSON().with_variant(JSONB(), "postgresql")


# ---------------------------------------------------------------------------
# Streak records
# ---------------------------------------------------------------------------


class StreakRecord(Base):
    """Maps to the 'streak_records' table: one row per user."""

    __tablename__ = "streak_records"

    user_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    current_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    best_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    last_activity_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    streak_start_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    is_at_risk: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")
    freezes_available: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    freeze_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")
    # ISO dates, display cache only
    active_days: Mapped[list[Any]] = mapped_column(_JSONList, nullable=False, default=list)
    streak_reminder_enabled: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True, server_default="true"
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True, server_default=func.now()
    )
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __mapper_args__ = {"version_id_col": version}  # noqa: RUF012


Index("ix_streak_records_current_streak", StreakRecord.current_streak)


# ---------------------------------------------------------------------------
# Activity log
# ---------------------------------------------------------------------------


class ActivityLogEntry(Base):
    """Maps to the 'activity_log' table: append-only, never updated."""

    __tablename__ = "activity_log"

    id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer(), "sqlite"), primary_key=True, autoincrement=True
    )
    user_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    activity_type: Mapped[str] = mapped_column(String(64), nullable=False)
    occurred_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    activity_day: Mapped[date] = mapped_column(Date, nullable=False)
    created_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True, server_default=func.now()
    )
