"""API router registration."""

from __future__ import annotations

from fastapi import APIRouter

from kpi_dashboard.config import AppSettings
from kpi_dashboard.db import Database
from kpi_dashboard.messaging import MessagingDispatcher

from .activities import get_activity_router
from .kpis import get_kpi_router
from .transactions import get_transaction_router
from .whatsapp import get_whatsapp_router


def build_api_router(database: Database, dispatcher: MessagingDispatcher, settings: AppSettings) -> APIRouter:
    api_router = APIRouter(prefix="/api")
    api_router.include_router(get_kpi_router(database, settings))
    api_router.include_router(get_transaction_router(database))
    api_router.include_router(get_activity_router(database, settings))
    api_router.include_router(get_whatsapp_router(dispatcher))
    return api_router


__all__ = ["build_api_router"]
