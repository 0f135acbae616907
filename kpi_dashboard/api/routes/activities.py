"""Activity play-statistics endpoints."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from kpi_dashboard.api.params import optional_date, optional_int, optional_text
from kpi_dashboard.config import AppSettings
from kpi_dashboard.db import Database
from kpi_dashboard.schemas import ActivityUpdateRequest
from kpi_dashboard.services import activities


def get_activity_router(database: Database, settings: AppSettings) -> APIRouter:
    router = APIRouter(prefix="/activities", tags=["activities"])

    def _window_filters(
        search: str | None = None,
        activity_type: str | None = Query(None, alias="activityType"),
        category: str | None = None,
        start_date: str | None = Query(None, alias="startDate"),
        end_date: str | None = Query(None, alias="endDate"),
    ) -> dict[str, Any]:
        start, end = activities.resolve_window(
            optional_date(start_date, "startDate"),
            optional_date(end_date, "endDate"),
            lookback_days=settings.default_lookback_days,
        )
        return {
            "search": optional_text(search),
            "activityType": optional_text(activity_type),
            "category": optional_text(category),
            "startDate": start,
            "endDate": end,
        }

    @router.get("")
    async def list_activities(
        filters: dict[str, Any] = Depends(_window_filters),
        min_plays: str | None = Query(None, alias="minPlays"),
        max_plays: str | None = Query(None, alias="maxPlays"),
        min_users: str | None = Query(None, alias="minUsers"),
        max_users: str | None = Query(None, alias="maxUsers"),
        page: int = Query(1, ge=1),
        limit: int = Query(20, ge=1),
        sort_by: str | None = Query(None, alias="sortBy"),
        sort_order: str | None = Query(None, alias="sortOrder"),
        session: AsyncSession = Depends(database.get_session),
    ) -> dict[str, Any]:
        params = {
            **filters,
            "minPlays": optional_int(min_plays, "minPlays"),
            "maxPlays": optional_int(max_plays, "maxPlays"),
            "minUsers": optional_int(min_users, "minUsers"),
            "maxUsers": optional_int(max_users, "maxUsers"),
        }
        rows, pagination = await activities.list_activities(
            session, params, page=page, limit=limit, sort_by=sort_by, sort_order=sort_order
        )
        return {
            "success": True,
            "data": rows,
            "pagination": pagination.as_dict(),
            "filters_applied": {
                "date_range": f"{filters['startDate']} to {filters['endDate']}",
                "activity_type": filters["activityType"] or "",
                "category": filters["category"] or "",
                "search": filters["search"] or "",
            },
        }

    @router.get("/stats")
    async def get_stats(
        filters: dict[str, Any] = Depends(_window_filters),
        session: AsyncSession = Depends(database.get_session),
    ) -> dict[str, Any]:
        return {"success": True, "data": await activities.activity_stats(session, filters)}

    @router.get("/types")
    async def get_types(session: AsyncSession = Depends(database.get_session)) -> dict[str, Any]:
        return {"success": True, "data": await activities.list_types(session)}

    @router.get("/categories")
    async def get_categories(session: AsyncSession = Depends(database.get_session)) -> dict[str, Any]:
        return {"success": True, "data": await activities.list_categories(session)}

    @router.get("/date-range")
    async def get_date_range(session: AsyncSession = Depends(database.get_session)) -> dict[str, Any]:
        return {"success": True, "data": await activities.date_range(session)}

    @router.get("/{activity_id}")
    async def get_activity(activity_id: int, session: AsyncSession = Depends(database.get_session)) -> dict[str, Any]:
        return {"success": True, "data": await activities.get_activity(session, activity_id)}

    @router.put("/{activity_id}")
    async def put_activity(
        activity_id: int,
        payload: ActivityUpdateRequest,
        session: AsyncSession = Depends(database.get_session),
    ) -> dict[str, Any]:
        await activities.update_activity(session, activity_id, payload)
        return {"success": True, "message": "Activity updated successfully"}

    @router.delete("/{activity_id}")
    async def delete_activity(activity_id: int, session: AsyncSession = Depends(database.get_session)) -> dict[str, Any]:
        await activities.delete_activity(session, activity_id)
        return {"success": True, "message": "Activity deleted successfully"}

    return router


__all__ = ["get_activity_router"]
