"""In-app activity play statistics derived from the completion log."""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from typing import Any, Mapping

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from kpi_dashboard.core.errors import NotFound, ValidationFailed
from kpi_dashboard.db.query import Pagination, QuerySpec, day_after, day_start, fetch_page
from kpi_dashboard.models import Activity, ActivityCompletion, ActivityType
from kpi_dashboard.schemas import ActivityUpdateRequest

logger = logging.getLogger(__name__)

total_plays = func.count(ActivityCompletion.id)
unique_users = func.count(func.distinct(ActivityCompletion.user_id))
repeat_plays = total_plays - unique_users
repeat_rate = func.coalesce(func.round(repeat_plays * 100.0 / func.nullif(total_plays, 0), 1), 0)
activity_type_name = ActivityType.name

_ACTIVITY_STATS = (
    select(
        Activity.id.label("id"),
        Activity.name.label("name"),
        Activity.activity_type.label("activity_type"),
        activity_type_name.label("activity_type_name"),
        Activity.category.label("category"),
        total_plays.label("total_plays"),
        unique_users.label("unique_users"),
        repeat_plays.label("repeat_plays"),
        repeat_rate.label("repeat_rate"),
    )
    .select_from(Activity)
    .outerjoin(ActivityType, ActivityType.id == Activity.activity_type)
    .join(ActivityCompletion, ActivityCompletion.activity_id == Activity.id)
    .group_by(Activity.id, ActivityType.id)
)

_WHERE = {
    "startDate": lambda value: ActivityCompletion.completion_date >= day_start(value),
    "endDate": lambda value: ActivityCompletion.completion_date < day_after(value),
    "activityType": lambda value: ActivityType.name == value,
    "category": lambda value: Activity.category == value,
}

ACTIVITY_QUERY = QuerySpec(
    statement=_ACTIVITY_STATS,
    sort_fields={
        "id": Activity.id,
        "name": Activity.name,
        "total_plays": total_plays,
        "repeat_plays": repeat_plays,
        "unique_users": unique_users,
        "repeat_rate": repeat_rate,
        "activity_type_name": activity_type_name,
    },
    default_sort="total_plays",
    filters=_WHERE,
    having={
        "minPlays": lambda value: total_plays >= value,
        "maxPlays": lambda value: total_plays <= value,
        "minUsers": lambda value: unique_users >= value,
        "maxUsers": lambda value: unique_users <= value,
    },
    search_columns=(Activity.name, ActivityType.name, Activity.category),
    tiebreakers=(Activity.id.asc(),),
)


def resolve_window(
    start_date: date | None, end_date: date | None, *, lookback_days: int = 30, today: date | None = None
) -> tuple[date, date]:
    """Fill a missing bound so the window covers the last ``lookback_days`` days."""

    end = end_date or today or date.today()
    start = start_date or end - timedelta(days=lookback_days - 1)
    if start > end:
        raise ValidationFailed("startDate must not be after endDate")
    return start, end


def _activity_row(row: Any) -> dict[str, Any]:
    item = dict(row._mapping)
    item["activity_type_name"] = item["activity_type_name"] or "Unknown"
    item["total_plays"] = int(item["total_plays"] or 0)
    item["unique_users"] = int(item["unique_users"] or 0)
    item["repeat_plays"] = int(item["repeat_plays"] or 0)
    item["total_users"] = item["unique_users"]
    item["repeat_rate"] = float(item["repeat_rate"] or 0)
    return item


async def list_activities(
    session: AsyncSession,
    params: Mapping[str, Any],
    *,
    page: int = 1,
    limit: int = 20,
    sort_by: str | None = None,
    sort_order: str | None = None,
) -> tuple[list[dict[str, Any]], Pagination]:
    """Per-activity play statistics inside the ``startDate``/``endDate`` window.

    The play-count and user-count bounds filter groups, and the total counts
    only the groups that survive them.
    """

    rows, pagination = await fetch_page(
        session,
        ACTIVITY_QUERY,
        params,
        page=page,
        limit=limit,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    return [_activity_row(row) for row in rows], pagination


async def activity_stats(session: AsyncSession, params: Mapping[str, Any]) -> dict[str, Any]:
    filters = {name: params.get(name) for name in _WHERE}
    where = ACTIVITY_QUERY.where_clauses(filters)
    overview_stmt = (
        select(func.count(func.distinct(Activity.id)), total_plays, unique_users)
        .select_from(ActivityCompletion)
        .join(Activity, Activity.id == ActivityCompletion.activity_id)
        .outerjoin(ActivityType, ActivityType.id == Activity.activity_type)
        .where(*where)
    )
    activities, plays, users = (await session.execute(overview_stmt)).one()

    per_activity = ACTIVITY_QUERY.filtered(filters).subquery()
    average = (await session.execute(select(func.avg(per_activity.c.repeat_rate)))).scalar()

    start, end = filters["startDate"], filters["endDate"]
    return {
        "overview": {
            "total_activities": int(activities or 0),
            "total_plays": int(plays or 0),
            "unique_users": int(users or 0),
            "avg_repeat_rate": round(float(average or 0), 1),
            "date_range": f"{start} to {end}",
        },
        "applied_filters": {
            "startDate": str(start),
            "endDate": str(end),
            "activityType": filters["activityType"] or "",
            "category": filters["category"] or "",
        },
    }


async def list_types(session: AsyncSession) -> list[dict[str, Any]]:
    rows = (await session.execute(select(ActivityType.id, ActivityType.name).order_by(ActivityType.name))).all()
    return [{"id": type_id, "name": name} for type_id, name in rows]


async def list_categories(session: AsyncSession) -> list[dict[str, str]]:
    stmt = (
        select(Activity.category)
        .where(Activity.category.is_not(None), Activity.category != "")
        .distinct()
        .order_by(Activity.category)
    )
    return [{"id": name, "name": name} for name in (await session.execute(stmt)).scalars().all()]


def _as_date(value: Any) -> date | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


async def date_range(session: AsyncSession) -> dict[str, Any]:
    stmt = select(func.min(ActivityCompletion.completion_date), func.max(ActivityCompletion.completion_date))
    earliest, latest = (await session.execute(stmt)).one()
    return {"min_date": _as_date(earliest), "max_date": _as_date(latest)}


async def get_activity(session: AsyncSession, activity_id: int) -> dict[str, Any]:
    stmt = (
        select(
            Activity.id,
            Activity.name,
            Activity.activity_type,
            ActivityType.name.label("activity_type_name"),
            Activity.category,
        )
        .outerjoin(ActivityType, ActivityType.id == Activity.activity_type)
        .where(Activity.id == activity_id)
    )
    row = (await session.execute(stmt)).first()
    if row is None:
        raise NotFound("Activity not found")
    return dict(row._mapping)


async def update_activity(session: AsyncSession, activity_id: int, payload: ActivityUpdateRequest) -> None:
    activity = await session.get(Activity, activity_id)
    if activity is None:
        raise NotFound("Activity not found")
    for name, value in payload.model_dump(exclude_unset=True).items():
        setattr(activity, name, value)
    await session.commit()
    logger.info("Updated activity %s", activity_id)


async def delete_activity(session: AsyncSession, activity_id: int) -> None:
    activity = await session.get(Activity, activity_id)
    if activity is None:
        raise NotFound("Activity not found")
    await session.delete(activity)
    await session.commit()
    logger.info("Deleted activity %s", activity_id)


__all__ = [
    "ACTIVITY_QUERY",
    "activity_stats",
    "date_range",
    "delete_activity",
    "get_activity",
    "list_activities",
    "list_categories",
    "list_types",
    "resolve_window",
    "update_activity",
]
