"""Transaction listing, statistics and maintenance endpoints."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from kpi_dashboard.api.params import optional_date, optional_int, optional_text
from kpi_dashboard.db import Database
from kpi_dashboard.schemas import TransactionUpdateRequest
from kpi_dashboard.services import transactions


def _filters(
    search: str | None = None,
    start_date: str | None = Query(None, alias="startDate"),
    end_date: str | None = Query(None, alias="endDate"),
    plan_type: str | None = Query(None, alias="planType"),
    device_type: str | None = Query(None, alias="deviceType"),
    status: str | None = None,
    payment_method: str | None = Query(None, alias="paymentMethod"),
    local_currency: str | None = Query(None, alias="localCurrency"),
) -> dict[str, Any]:
    return {
        "search": optional_text(search),
        "startDate": optional_date(start_date, "startDate"),
        "endDate": optional_date(end_date, "endDate"),
        "planType": optional_text(plan_type),
        "deviceType": optional_int(device_type, "deviceType"),
        "status": optional_text(status),
        "paymentMethod": optional_text(payment_method),
        "localCurrency": optional_text(local_currency),
    }


def get_transaction_router(database: Database) -> APIRouter:
    router = APIRouter(prefix="/transactions", tags=["transactions"])

    @router.get("")
    async def list_transactions(
        filters: dict[str, Any] = Depends(_filters),
        page: int = Query(1, ge=1),
        limit: int = Query(20, ge=1),
        sort_by: str | None = Query(None, alias="sortBy"),
        sort_order: str | None = Query(None, alias="sortOrder"),
        session: AsyncSession = Depends(database.get_session),
    ) -> dict[str, Any]:
        rows, pagination = await transactions.list_transactions(
            session, filters, page=page, limit=limit, sort_by=sort_by, sort_order=sort_order
        )
        return {"success": True, "data": rows, "pagination": pagination.as_dict()}

    @router.get("/stats")
    async def get_stats(
        filters: dict[str, Any] = Depends(_filters),
        session: AsyncSession = Depends(database.get_session),
    ) -> dict[str, Any]:
        return {"success": True, "data": await transactions.transaction_stats(session, filters)}

    @router.get("/{transaction_id}")
    async def get_transaction(
        transaction_id: int, session: AsyncSession = Depends(database.get_session)
    ) -> dict[str, Any]:
        transaction = await transactions.get_transaction(session, transaction_id)
        return {"success": True, "data": transactions.transaction_payload(transaction)}

    @router.put("/{transaction_id}")
    async def put_transaction(
        transaction_id: int,
        payload: TransactionUpdateRequest,
        session: AsyncSession = Depends(database.get_session),
    ) -> dict[str, Any]:
        transaction = await transactions.update_transaction(session, transaction_id, payload)
        return {
            "success": True,
            "message": "Transaction updated successfully",
            "data": transactions.transaction_payload(transaction),
        }

    @router.delete("/{transaction_id}")
    async def delete_transaction(
        transaction_id: int, session: AsyncSession = Depends(database.get_session)
    ) -> dict[str, Any]:
        await transactions.delete_transaction(session, transaction_id)
        return {"success": True, "message": "Transaction deleted successfully"}

    return router


__all__ = ["get_transaction_router"]
