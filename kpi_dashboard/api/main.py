"""FastAPI application factory for the KPI dashboard API."""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from kpi_dashboard import __version__
from kpi_dashboard.api.routes import build_api_router
from kpi_dashboard.config import AppSettings, get_settings
from kpi_dashboard.core.errors import register_exception_handlers
from kpi_dashboard.db import Database
from kpi_dashboard.messaging import MessagingDispatcher, WhatsAppBridgeClient


@asynccontextmanager
async def _lifespan(app: FastAPI, db: Database, dispatcher: MessagingDispatcher):
    await db.create_all()
    yield
    await dispatcher.shutdown()


def build_dispatcher(settings: AppSettings) -> MessagingDispatcher:
    client = WhatsAppBridgeClient(settings.whatsapp_bridge_url, token=settings.whatsapp_bridge_token)
    return MessagingDispatcher(
        client,
        send_delay_seconds=settings.whatsapp_send_delay_seconds,
        send_timeout_seconds=settings.whatsapp_send_timeout_seconds,
    )


def create_app(
    database: Database | None = None,
    dispatcher: MessagingDispatcher | None = None,
    settings: AppSettings | None = None,
) -> FastAPI:
    settings = settings or get_settings()
    database_instance = database or Database(settings.database_url)
    dispatcher_instance = dispatcher or build_dispatcher(settings)

    app = FastAPI(
        title=settings.app_name,
        version=__version__,
        lifespan=lambda app: _lifespan(app, database_instance, dispatcher_instance),
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_exception_handlers(app)
    app.include_router(build_api_router(database_instance, dispatcher_instance, settings))
    app.state.database = database_instance
    app.state.dispatcher = dispatcher_instance

    @app.get("/api/health", tags=["health"])
    async def health() -> dict[str, Any]:
        return {
            "success": True,
            "status": "OK",
            "message": "KPI Dashboard API is running",
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    return app


__all__ = ["build_dispatcher", "create_app"]
