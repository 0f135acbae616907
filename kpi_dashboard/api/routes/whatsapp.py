"""Bulk WhatsApp messaging endpoints."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter

from kpi_dashboard.core.errors import UpstreamError, ValidationFailed
from kpi_dashboard.messaging import ChatClientError, MessagingDispatcher
from kpi_dashboard.schemas import SendBulkRequest


def get_whatsapp_router(dispatcher: MessagingDispatcher) -> APIRouter:
    router = APIRouter(prefix="/whatsapp", tags=["whatsapp"])

    @router.post("/initialize")
    async def initialize() -> dict[str, Any]:
        return await dispatcher.initialize()

    @router.get("/status")
    async def get_status() -> dict[str, Any]:
        return {"success": True, **dispatcher.status()}

    @router.post("/send-bulk")
    async def send_bulk(payload: SendBulkRequest) -> dict[str, Any]:
        message = (payload.message or "").strip()
        recipients = [number.strip() for number in payload.phone_numbers or [] if number and number.strip()]
        if not message or not recipients:
            raise ValidationFailed("Message and phone numbers are required")
        result = await dispatcher.send_bulk(recipients, payload.message or message)
        return {"success": True, **result.as_dict()}

    @router.post("/cancel")
    async def cancel() -> dict[str, Any]:
        cancelled = dispatcher.cancel()
        message = "Cancellation requested" if cancelled else "No bulk send in progress"
        return {"success": True, "cancelled": cancelled, "message": message}

    @router.post("/disconnect")
    async def disconnect() -> dict[str, Any]:
        try:
            await dispatcher.disconnect()
        except ChatClientError as exc:
            raise UpstreamError("Failed to disconnect WhatsApp", error=str(exc)) from exc
        return {"success": True, "message": "WhatsApp disconnected"}

    return router


__all__ = ["get_whatsapp_router"]
