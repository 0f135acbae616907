import asyncio
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path

from httpx import ASGITransport, AsyncClient

from kpi_dashboard.api import create_app
from kpi_dashboard.db import Database
from kpi_dashboard.models import Activity, ActivityCompletion, ActivityType

WINDOW = {"startDate": "2025-08-01", "endDate": "2025-08-05"}


def _database(tmp_path: Path) -> Database:
    db_path = tmp_path / "test_activities.db"
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


def _at(day: int, month: int = 8) -> datetime:
    return datetime(2025, month, day, 9, 30, tzinfo=timezone.utc)


async def _seed(database: Database) -> None:
    async with database.session() as session:
        session.add_all(
            [
                ActivityType(id=1, name="Meditation"),
                ActivityType(id=2, name="Music"),
                Activity(id=1, name="Calm Breathing", activity_type=1, category="Sleep"),
                Activity(id=2, name="Deep Focus", activity_type=2, category="Work"),
                Activity(id=3, name="Night Story", activity_type=None, category="Sleep"),
            ]
        )
        await session.flush()
        session.add_all(
            [
                ActivityCompletion(user_id="u1", activity_id=1, completion_date=_at(1)),
                ActivityCompletion(user_id="u1", activity_id=1, completion_date=_at(2)),
                ActivityCompletion(user_id="u2", activity_id=1, completion_date=_at(5)),
                ActivityCompletion(user_id="u1", activity_id=2, completion_date=_at(3)),
                ActivityCompletion(user_id="u9", activity_id=2, completion_date=_at(1, month=7)),
                ActivityCompletion(user_id="u3", activity_id=3, completion_date=_at(4)),
                ActivityCompletion(user_id="u3", activity_id=3, completion_date=_at(4)),
            ]
        )
        await session.commit()


def test_activity_list_aggregates_window(tmp_path: Path):
    database = _database(tmp_path)
    client_manager = _client(database)

    async def _scenario():
        async with client_manager() as api_client:
            await _seed(database)

            payload = (await api_client.get("/api/activities", params=WINDOW)).json()
            assert [row["name"] for row in payload["data"]] == ["Calm Breathing", "Night Story", "Deep Focus"]
            calm, story, focus = payload["data"]
            assert calm["total_plays"] == 3
            assert calm["unique_users"] == 2
            assert calm["repeat_plays"] == 1
            assert calm["repeat_rate"] == 33.3
            assert story["activity_type_name"] == "Unknown"
            assert focus["total_plays"] == 1
            assert payload["pagination"]["total"] == 3
            assert payload["filters_applied"]["date_range"] == "2025-08-01 to 2025-08-05"

            bounded = (await api_client.get("/api/activities", params={**WINDOW, "minPlays": "2"})).json()
            assert bounded["pagination"]["total"] == 2

            typed = (await api_client.get("/api/activities", params={**WINDOW, "activityType": "Meditation"})).json()
            assert [row["id"] for row in typed["data"]] == [1]

            by_name = (
                await api_client.get("/api/activities", params={**WINDOW, "sortBy": "name", "sortOrder": "asc"})
            ).json()
            assert [row["name"] for row in by_name["data"]] == ["Calm Breathing", "Deep Focus", "Night Story"]

    asyncio.run(_scenario())


def test_activity_stats_and_lookups(tmp_path: Path):
    database = _database(tmp_path)
    client_manager = _client(database)

    async def _scenario():
        async with client_manager() as api_client:
            await _seed(database)

            stats = (await api_client.get("/api/activities/stats", params=WINDOW)).json()["data"]
            assert stats["overview"]["total_activities"] == 3
            assert stats["overview"]["total_plays"] == 6
            assert stats["overview"]["unique_users"] == 3
            assert stats["overview"]["avg_repeat_rate"] == 27.8

            types = (await api_client.get("/api/activities/types")).json()["data"]
            assert [item["name"] for item in types] == ["Meditation", "Music"]
            categories = (await api_client.get("/api/activities/categories")).json()["data"]
            assert categories == [{"id": "Sleep", "name": "Sleep"}, {"id": "Work", "name": "Work"}]
            date_range = (await api_client.get("/api/activities/date-range")).json()["data"]
            assert date_range == {"min_date": "2025-07-01", "max_date": "2025-08-05"}

            inverted = await api_client.get(
                "/api/activities", params={"startDate": "2025-08-05", "endDate": "2025-08-01"}
            )
            assert inverted.status_code == 400
            assert inverted.json()["message"] == "startDate must not be after endDate"

            bad_date = await api_client.get("/api/activities", params={"startDate": "01-08-2025"})
            assert bad_date.status_code == 400

    asyncio.run(_scenario())


def test_activity_maintenance(tmp_path: Path):
    database = _database(tmp_path)
    client_manager = _client(database)

    async def _scenario():
        async with client_manager() as api_client:
            await _seed(database)

            updated = await api_client.put("/api/activities/2", json={"category": "Focus"})
            assert updated.status_code == 200
            detail = (await api_client.get("/api/activities/2")).json()["data"]
            assert detail["category"] == "Focus"
            assert detail["activity_type_name"] == "Music"

            missing = await api_client.delete("/api/activities/999")
            assert missing.status_code == 404
            assert missing.json()["message"] == "Activity not found"

    asyncio.run(_scenario())
