"""Production entrypoint: ``uvicorn kpi_dashboard.main:app``."""

from __future__ import annotations

import logging

from kpi_dashboard.api.main import create_app
from kpi_dashboard.config import get_settings
from kpi_dashboard.core.logging import setup_logging
from kpi_dashboard.core.telemetry import setup_telemetry
from kpi_dashboard.db import Database

logger = logging.getLogger(__name__)

settings = get_settings()
setup_logging(settings.log_level)
database = Database(settings.database_url)
app = create_app(database, settings=settings)
setup_telemetry(app, settings, engine=database.engine)
logger.info("Starting %s with settings %s", settings.app_name, settings.dict_for_logging())
