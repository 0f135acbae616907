"""In-app activity catalogue and completion log."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from kpi_dashboard.db.base import Base


class ActivityType(Base):
    __tablename__ = "activity_types"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(128))


class Activity(Base):
    __tablename__ = "app_activities"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(255))
    activity_type: Mapped[int | None] = mapped_column(ForeignKey("activity_types.id"), nullable=True)
    category: Mapped[str | None] = mapped_column(String(128), nullable=True)

    type: Mapped[Optional[ActivityType]] = relationship()


class ActivityCompletion(Base):
    """One play of an activity by a user; statistics are derived from these rows."""

    __tablename__ = "user_completed_activities"
    __table_args__ = (
        Index("ix_completions_activity_date", "activity_id", "completion_date"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[str] = mapped_column(String(64))
    activity_id: Mapped[int] = mapped_column(ForeignKey("app_activities.id", ondelete="CASCADE"))
    completion_date: Mapped[datetime] = mapped_column(DateTime(timezone=True))


__all__ = ["Activity", "ActivityCompletion", "ActivityType"]
