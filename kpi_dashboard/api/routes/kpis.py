"""KPI dashboard, catalogue and value endpoints."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from kpi_dashboard.api.params import optional_date, optional_int, optional_text
from kpi_dashboard.config import AppSettings
from kpi_dashboard.core.errors import UpstreamError
from kpi_dashboard.db import Database
from kpi_dashboard.schemas import (
    BulkValuesRequest,
    CategorySchema,
    CategoryWriteRequest,
    KPIDataUpdateRequest,
    KPIValueWriteRequest,
    KPIWriteRequest,
)
from kpi_dashboard.services import comparison, kpis


def get_kpi_router(database: Database, settings: AppSettings) -> APIRouter:
    router = APIRouter(prefix="/kpis", tags=["kpis"])

    @router.get("/dashboard")
    async def get_dashboard(
        start_date: str | None = Query(None, alias="startDate"),
        end_date: str | None = Query(None, alias="endDate"),
        session: AsyncSession = Depends(database.get_session),
    ) -> dict[str, Any]:
        result = await kpis.dashboard(
            session,
            optional_date(start_date, "startDate"),
            optional_date(end_date, "endDate"),
            lookback_days=settings.default_lookback_days,
        )
        return {"success": True, **result}

    @router.get("/date-range")
    async def get_date_range(session: AsyncSession = Depends(database.get_session)) -> dict[str, Any]:
        return {"success": True, "data": await kpis.date_range(session)}

    @router.get("/latest")
    async def get_latest(session: AsyncSession = Depends(database.get_session)) -> dict[str, Any]:
        rows = await kpis.latest_values(session)
        return {"success": True, "data": rows, "count": len(rows)}

    @router.get("/trend/{kpi_id}")
    async def get_trend(
        kpi_id: int,
        days: int = Query(30, ge=1),
        session: AsyncSession = Depends(database.get_session),
    ) -> dict[str, Any]:
        rows = await kpis.trend(session, kpi_id, days)
        return {"success": True, "data": rows, "kpiId": kpi_id, "days": days}

    @router.get("/weekly-comparison")
    async def get_weekly_comparison(session: AsyncSession = Depends(database.get_session)) -> dict[str, Any]:
        return {"success": True, "data": await comparison.weekly_comparison(session)}

    @router.get("/comparison")
    async def get_comparison(
        start_date1: str | None = Query(None, alias="startDate1"),
        end_date1: str | None = Query(None, alias="endDate1"),
        start_date2: str | None = Query(None, alias="startDate2"),
        end_date2: str | None = Query(None, alias="endDate2"),
        kpi_id: str | None = Query(None, alias="kpiId"),
        category_id: str | None = Query(None, alias="categoryId"),
        session: AsyncSession = Depends(database.get_session),
    ) -> dict[str, Any]:
        data = await comparison.compare_periods(
            session,
            optional_date(start_date1, "startDate1"),
            optional_date(end_date1, "endDate1"),
            optional_date(start_date2, "startDate2"),
            optional_date(end_date2, "endDate2"),
            kpi_id=optional_int(kpi_id, "kpiId"),
            category_id=optional_int(category_id, "categoryId"),
        )
        return {"success": True, "data": data}

    @router.get("/categories")
    async def get_categories(session: AsyncSession = Depends(database.get_session)) -> dict[str, Any]:
        return {"success": True, "data": await kpis.list_categories(session)}

    @router.post("/categories", status_code=status.HTTP_201_CREATED)
    async def post_category(
        payload: CategoryWriteRequest, session: AsyncSession = Depends(database.get_session)
    ) -> dict[str, Any]:
        category = await kpis.create_category(session, payload)
        return {
            "success": True,
            "message": "Category created successfully",
            "data": CategorySchema.model_validate(category).model_dump(),
        }

    @router.put("/categories/{category_id}")
    async def put_category(
        category_id: int, payload: CategoryWriteRequest, session: AsyncSession = Depends(database.get_session)
    ) -> dict[str, Any]:
        category = await kpis.update_category(session, category_id, payload)
        return {
            "success": True,
            "message": "Category updated successfully",
            "data": CategorySchema.model_validate(category).model_dump(),
        }

    @router.delete("/categories/{category_id}")
    async def delete_category(category_id: int, session: AsyncSession = Depends(database.get_session)) -> dict[str, Any]:
        await kpis.delete_category(session, category_id)
        return {"success": True, "message": "Category deleted successfully"}

    @router.get("")
    async def get_kpis(session: AsyncSession = Depends(database.get_session)) -> dict[str, Any]:
        return {"success": True, "data": await kpis.list_kpis(session)}

    @router.post("", status_code=status.HTTP_201_CREATED)
    async def post_kpi(payload: KPIWriteRequest, session: AsyncSession = Depends(database.get_session)) -> dict[str, Any]:
        kpi = await kpis.create_kpi(session, payload)
        return {"success": True, "message": "KPI created successfully", "data": kpis.kpi_payload(kpi)}

    @router.get("/data")
    async def get_data(
        search: str | None = None,
        start_date: str | None = Query(None, alias="startDate"),
        end_date: str | None = Query(None, alias="endDate"),
        kpi_id: str | None = Query(None, alias="kpiId"),
        category_id: str | None = Query(None, alias="categoryId"),
        limit: int | None = None,
        offset: int | None = None,
        page: int | None = None,
        session: AsyncSession = Depends(database.get_session),
    ) -> dict[str, Any]:
        filters = {
            "search": optional_text(search),
            "startDate": optional_date(start_date, "startDate"),
            "endDate": optional_date(end_date, "endDate"),
            "kpiId": optional_int(kpi_id, "kpiId"),
            "categoryId": optional_int(category_id, "categoryId"),
        }
        rows, pagination = await kpis.list_data(
            session,
            filters,
            limit=limit,
            offset=offset,
            page=page,
            max_limit=settings.kpi_data_max_limit,
        )
        return {
            "success": True,
            "data": rows,
            "pagination": pagination.as_dict(),
            "filters": {name: str(value) if value is not None else None for name, value in filters.items()},
        }

    @router.get("/data-simple")
    async def get_data_simple(
        limit: int | None = None,
        offset: int | None = None,
        session: AsyncSession = Depends(database.get_session),
    ) -> dict[str, Any]:
        rows, pagination = await kpis.list_data(
            session, {}, limit=limit, offset=offset, max_limit=settings.kpi_data_max_limit
        )
        return {"success": True, "data": rows, "pagination": pagination.as_dict()}

    @router.get("/data/{value_id}")
    async def get_data_row(value_id: int, session: AsyncSession = Depends(database.get_session)) -> dict[str, Any]:
        return {"success": True, "data": await kpis.get_value(session, value_id, missing="KPI data not found")}

    @router.put("/data/{value_id}")
    async def put_data_row(
        value_id: int, payload: KPIDataUpdateRequest, session: AsyncSession = Depends(database.get_session)
    ) -> dict[str, Any]:
        value = await kpis.update_data(session, value_id, payload)
        return {"success": True, "message": "KPI data updated successfully", "data": kpis.value_payload(value)}

    @router.delete("/data/{value_id}")
    async def delete_data_row(value_id: int, session: AsyncSession = Depends(database.get_session)) -> dict[str, Any]:
        await kpis.delete_value(session, value_id, missing="KPI data not found")
        return {"success": True, "message": "KPI data deleted successfully"}

    @router.post("/values/bulk")
    async def post_values_bulk(
        payload: BulkValuesRequest, session: AsyncSession = Depends(database.get_session)
    ) -> dict[str, Any]:
        result = await kpis.bulk_upsert(session, payload.kpi_id, payload.values)
        return {"success": True, **result}

    @router.get("/values/{value_id}")
    async def get_value(value_id: int, session: AsyncSession = Depends(database.get_session)) -> dict[str, Any]:
        return {"success": True, "data": await kpis.get_value(session, value_id)}

    @router.post("/values", status_code=status.HTTP_201_CREATED)
    async def post_value(
        payload: KPIValueWriteRequest, session: AsyncSession = Depends(database.get_session)
    ) -> dict[str, Any]:
        value = await kpis.create_value(session, payload)
        return {"success": True, "message": "KPI value created successfully", "data": kpis.value_payload(value)}

    @router.put("/values/{value_id}")
    async def put_value(
        value_id: int, payload: KPIValueWriteRequest, session: AsyncSession = Depends(database.get_session)
    ) -> dict[str, Any]:
        value = await kpis.update_value(session, value_id, payload)
        return {"success": True, "message": "KPI value updated successfully", "data": kpis.value_payload(value)}

    @router.delete("/values/{value_id}")
    async def delete_value(value_id: int, session: AsyncSession = Depends(database.get_session)) -> dict[str, Any]:
        await kpis.delete_value(session, value_id)
        return {"success": True, "message": "KPI value deleted successfully"}

    @router.post("/add-values")
    async def post_add_values(
        payload: KPIValueWriteRequest, session: AsyncSession = Depends(database.get_session)
    ) -> dict[str, Any]:
        value = await kpis.add_values(session, payload)
        return {"success": True, "message": "KPI values added successfully", "insertId": value.id}

    @router.get("/health")
    async def get_health() -> dict[str, Any]:
        try:
            healthy = await database.ping()
        except (SQLAlchemyError, OSError) as exc:
            raise UpstreamError("Database health check failed", error=str(exc), extra={"status": "unhealthy"}) from exc
        return {
            "success": True,
            "status": "healthy",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "database": "connected" if healthy else "disconnected",
        }

    @router.put("/{kpi_id}")
    async def put_kpi(
        kpi_id: int, payload: KPIWriteRequest, session: AsyncSession = Depends(database.get_session)
    ) -> dict[str, Any]:
        kpi = await kpis.update_kpi(session, kpi_id, payload)
        return {"success": True, "message": "KPI updated successfully", "data": kpis.kpi_payload(kpi)}

    @router.delete("/{kpi_id}")
    async def delete_kpi(kpi_id: int, session: AsyncSession = Depends(database.get_session)) -> dict[str, Any]:
        message = await kpis.delete_kpi(session, kpi_id)
        return {"success": True, "message": message}

    return router


__all__ = ["get_kpi_router"]
