import asyncio
from contextlib import asynccontextmanager
from datetime import date, datetime, timedelta
from pathlib import Path

from httpx import ASGITransport, AsyncClient

from kpi_dashboard.api import create_app
from kpi_dashboard.db import Database


def _database(tmp_path: Path) -> Database:
    db_path = tmp_path / "test_kpis.db"
    return Database(url=f"sqlite+aiosqlite:///{db_path}")


def _client(database: Database):
    app = create_app(database)

    @asynccontextmanager
    async def _manager():
        async with app.router.lifespan_context(app):
            transport = ASGITransport(app=app)
            async with AsyncClient(transport=transport, base_url="http://test") as client:
                yield client

    return _manager


async def _category(api_client: AsyncClient, name: str = "Engagement") -> int:
    response = await api_client.post("/api/kpis/categories", json={"name": name, "display_order": 1})
    assert response.status_code == 201
    return response.json()["data"]["id"]


async def _kpi(api_client: AsyncClient, category_id: int, code: str = "RET", **extra) -> int:
    payload = {"name": f"KPI {code}", "code": code, "category_id": category_id, "unit": "%", **extra}
    response = await api_client.post("/api/kpis", json=payload)
    assert response.status_code == 201, response.text
    return response.json()["data"]["id"]


async def _updated_at(api_client: AsyncClient, kpi_id: int) -> datetime:
    data = (await api_client.get("/api/kpis/data", params={"kpiId": str(kpi_id)})).json()["data"]
    return max(datetime.fromisoformat(row["updated_at"]) for row in data)


def test_category_with_kpis_cannot_be_deleted(tmp_path: Path):
    client_manager = _client(_database(tmp_path))

    async def _scenario():
        async with client_manager() as api_client:
            category_id = await _category(api_client)
            await _kpi(api_client, category_id, "RET")
            await _kpi(api_client, category_id, "DAU")

            response = await api_client.delete(f"/api/kpis/categories/{category_id}")
            assert response.status_code == 400
            assert response.json() == {
                "success": False,
                "message": "Cannot delete category. It has 2 associated KPI(s). Please move or delete the KPIs first.",
            }

            empty_id = await _category(api_client, "Empty")
            response = await api_client.delete(f"/api/kpis/categories/{empty_id}")
            assert response.status_code == 200

            categories = (await api_client.get("/api/kpis/categories")).json()["data"]
            assert [category["name"] for category in categories] == ["Engagement"]
            assert len(categories[0]["kpis"]) == 2

    asyncio.run(_scenario())


def test_kpi_validation_messages(tmp_path: Path):
    client_manager = _client(_database(tmp_path))

    async def _scenario():
        async with client_manager() as api_client:
            category_id = await _category(api_client)
            await _kpi(api_client, category_id, "RET")

            missing = await api_client.post("/api/kpis", json={"code": "X", "category_id": category_id})
            assert missing.status_code == 400
            assert missing.json()["message"] == "KPI name is required"

            duplicate = await api_client.post(
                "/api/kpis", json={"name": "Again", "code": "RET", "category_id": category_id}
            )
            assert duplicate.status_code == 400
            assert duplicate.json()["message"] == "KPI with this code already exists"

            bad_category = await api_client.post("/api/kpis", json={"name": "N", "code": "N", "category_id": 999})
            assert bad_category.json()["message"] == "Invalid category selected"

    asyncio.run(_scenario())


def test_kpi_with_values_is_archived_and_without_is_deleted(tmp_path: Path):
    client_manager = _client(_database(tmp_path))

    async def _scenario():
        async with client_manager() as api_client:
            category_id = await _category(api_client)
            used_id = await _kpi(api_client, category_id, "USED")
            unused_id = await _kpi(api_client, category_id, "UNUSED")

            created = await api_client.post(
                "/api/kpis/values",
                json={"kpi_id": used_id, "date_value": "2025-08-01", "net_value": 0},
            )
            assert created.status_code == 201
            assert created.json()["data"]["data_source"] == "Manual"

            archived = await api_client.delete(f"/api/kpis/{used_id}")
            assert archived.json()["message"] == "KPI archived successfully (has associated data)"
            deleted = await api_client.delete(f"/api/kpis/{unused_id}")
            assert deleted.json()["message"] == "KPI deleted successfully"

            kpis = (await api_client.get("/api/kpis")).json()["data"]
            assert kpis == []
            data = (await api_client.get("/api/kpis/data")).json()
            assert data["pagination"]["total"] == 1

    asyncio.run(_scenario())


def test_value_requires_one_platform_and_unique_date(tmp_path: Path):
    client_manager = _client(_database(tmp_path))

    async def _scenario():
        async with client_manager() as api_client:
            kpi_id = await _kpi(api_client, await _category(api_client))

            empty = await api_client.post("/api/kpis/values", json={"kpi_id": kpi_id, "date_value": "2025-08-01"})
            assert empty.status_code == 400
            assert empty.json()["message"] == "At least one value (android_value, ios_value, net_value) is required"

            body = {"kpi_id": kpi_id, "date_value": "2025-08-01", "android_value": 12.5}
            assert (await api_client.post("/api/kpis/values", json=body)).status_code == 201
            again = await api_client.post("/api/kpis/values", json=body)
            assert again.status_code == 400
            assert again.json()["message"] == "KPI value for this date already exists. Use update instead."

            missing = await api_client.get("/api/kpis/data/999")
            assert missing.status_code == 404
            assert missing.json() == {"success": False, "message": "KPI data not found"}

    asyncio.run(_scenario())


def test_bulk_import_is_all_or_nothing_and_idempotent(tmp_path: Path):
    client_manager = _client(_database(tmp_path))

    async def _scenario():
        async with client_manager() as api_client:
            kpi_id = await _kpi(api_client, await _category(api_client), has_platform_split=True)
            rows = [
                {"date_value": "2025-08-01", "android_value": "47.54", "ios_value": "72.22", "net_value": "67.09"},
                {"date_value": "2025-08-02", "android_value": "79.03", "ios_value": "", "net_value": "102.22"},
            ]

            invalid = await api_client.post(
                "/api/kpis/values/bulk",
                json={"kpi_id": kpi_id, "values": rows + [{"date_value": "not-a-date", "net_value": "x"}]},
            )
            assert invalid.status_code == 400
            payload = invalid.json()
            assert payload["message"] == "Validation errors found"
            assert payload["errors"][0]["row"] == 3
            assert (await api_client.get("/api/kpis/data")).json()["pagination"]["total"] == 0

            first = await api_client.post("/api/kpis/values/bulk", json={"kpi_id": kpi_id, "values": rows})
            assert first.status_code == 200
            assert first.json()["summary"]["successful"] == 2
            assert first.json()["summary"]["updated_existing"] == 0
            before = await _updated_at(api_client, kpi_id)
            # CURRENT_TIMESTAMP on SQLite has one-second resolution
            await asyncio.sleep(1.1)

            second = await api_client.post("/api/kpis/values/bulk", json={"kpi_id": kpi_id, "values": rows})
            summary = second.json()["summary"]
            assert summary["updated_existing"] == 2
            assert summary["conflict_dates"] == ["2025-08-01", "2025-08-02"]
            assert summary["skipped"] == 0
            assert await _updated_at(api_client, kpi_id) > before

            data = (await api_client.get("/api/kpis/data", params={"kpiId": str(kpi_id)})).json()
            assert data["pagination"]["total"] == 2
            assert {row["data_source"] for row in data["data"]} == {"Import"}

            empty = await api_client.post("/api/kpis/values/bulk", json={"kpi_id": kpi_id, "values": []})
            assert empty.json()["message"] == "Values array is required and must not be empty"

    asyncio.run(_scenario())


def test_comparison_requires_all_dates_and_reports_growth(tmp_path: Path):
    client_manager = _client(_database(tmp_path))

    async def _scenario():
        async with client_manager() as api_client:
            kpi_id = await _kpi(api_client, await _category(api_client), "REV", has_platform_split=False)
            start = date(2025, 7, 1)
            for offset, value in enumerate([100, 100, 150, 150]):
                await api_client.post(
                    "/api/kpis/values",
                    json={
                        "kpi_id": kpi_id,
                        "date_value": (start + timedelta(days=offset)).isoformat(),
                        "net_value": value,
                    },
                )

            missing = await api_client.get("/api/kpis/comparison", params={"startDate1": "2025-07-01"})
            assert missing.status_code == 400
            assert missing.json()["message"] == "All date range parameters are required"

            response = await api_client.get(
                "/api/kpis/comparison",
                params={
                    "startDate1": "2025-07-01",
                    "endDate1": "2025-07-02",
                    "startDate2": "2025-07-03",
                    "endDate2": "2025-07-04",
                },
            )
            assert response.status_code == 200
            data = response.json()["data"]
            kpi = data["categories"][0]["kpis"][0]
            assert kpi["platforms"] == [
                {"platform": "net", "label": "Overall", "period1": 100.0, "period2": 150.0, "growth": 50.0}
            ]
            assert data["summary"]["total_kpis"] == 1

    asyncio.run(_scenario())


def test_health_endpoints(tmp_path: Path):
    client_manager = _client(_database(tmp_path))

    async def _scenario():
        async with client_manager() as api_client:
            root = (await api_client.get("/api/health")).json()
            assert root["status"] == "OK"
            kpi_health = (await api_client.get("/api/kpis/health")).json()
            assert kpi_health["database"] == "connected"

    asyncio.run(_scenario())


def test_dashboard_latest_and_trend_views(tmp_path: Path):
    client_manager = _client(_database(tmp_path))

    async def _scenario():
        async with client_manager() as api_client:
            kpi_id = await _kpi(api_client, await _category(api_client), "DAU", unit="users")
            today = date.today()
            for offset, value in ((0, 10), (1, 20), (45, 99)):
                response = await api_client.post(
                    "/api/kpis/values",
                    json={
                        "kpi_id": kpi_id,
                        "date_value": (today - timedelta(days=offset)).isoformat(),
                        "net_value": value,
                    },
                )
                assert response.status_code == 201

            dashboard = (await api_client.get("/api/kpis/dashboard")).json()
            assert dashboard["totalDataPoints"] == 2
            kpi = dashboard["data"][0]["kpis"][0]
            assert kpi["currentValues"]["net"] == 15.0
            assert kpi["dataPoints"] == 2

            latest = (await api_client.get("/api/kpis/latest")).json()
            assert latest["count"] == 1
            assert latest["data"][0]["net_value"] == 10.0

            trend = (await api_client.get(f"/api/kpis/trend/{kpi_id}", params={"days": 7})).json()
            assert [row["net_value"] for row in trend["data"]] == [20.0, 10.0]

            date_range = (await api_client.get("/api/kpis/date-range")).json()["data"]
            assert date_range["total_days"] == 3
            assert date_range["max_date"] == today.isoformat()

    asyncio.run(_scenario())
