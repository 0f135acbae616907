import asyncio
from pathlib import Path

import pytest
from httpx import ASGITransport

from kpi_dashboard.api import create_app
from kpi_dashboard.client import DashboardClient, DashboardClientError, parse_kpi_import, validate_import_rows
from kpi_dashboard.db import Database


def test_client_round_trip_through_api(tmp_path: Path):
    database = Database(url=f"sqlite+aiosqlite:///{tmp_path / 'test_client.db'}")
    app = create_app(database)
    client = DashboardClient("http://test/api", transport=ASGITransport(app=app))

    async def _scenario():
        async with app.router.lifespan_context(app):
            assert (await client.health())["status"] == "OK"

            category = (await client.create_category("Revenue", 1))["data"]
            with pytest.raises(DashboardClientError) as excinfo:
                await client.create_category("revenue")
            assert excinfo.value.message == "Category with this name already exists"
            assert excinfo.value.status_code == 400

            kpi = (
                await client.create_kpi({"name": "Net Revenue", "code": "NREV", "category_id": category["id"]})
            )["data"]

            rows, errors = validate_import_rows(parse_kpi_import("date_value,net_value\n01-08-2025,$1200\n"))
            assert errors == []
            summary = (await client.bulk_import(kpi["id"], rows))["summary"]
            assert summary["successful"] == 1

            listing = await client.list_kpi_data(kpi_id=kpi["id"])
            assert listing["data"][0]["net_value"] == 1200.0
            assert listing["data"][0]["date_value"] == "2025-08-01"

            with pytest.raises(DashboardClientError) as missing:
                await client.get_transaction(42)
            assert missing.value.status_code == 404
            assert missing.value.message == "Transaction not found"

    asyncio.run(_scenario())
