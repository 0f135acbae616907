"""Pagination math and filter/sort resolution shared by every listing."""

from __future__ import annotations

import asyncio
from datetime import date, datetime, timedelta, timezone
from pathlib import Path

import pytest

from kpi_dashboard.db import Database
from kpi_dashboard.db.query import Pagination, day_after, day_start, is_present, normalize_sort_order
from kpi_dashboard.models import Transaction
from kpi_dashboard.services.transactions import TRANSACTION_QUERY, list_transactions


def test_pagination_metadata_for_last_page():
    pagination = Pagination(page=3, limit=20, total=45)

    assert pagination.total_pages == 3
    assert pagination.offset == 40
    assert pagination.as_dict() == {
        "page": 3,
        "limit": 20,
        "total": 45,
        "totalPages": 3,
        "hasNext": False,
        "hasPrev": True,
        "currentPage": 3,
        "itemsPerPage": 20,
    }


def test_pagination_first_page_of_empty_result():
    pagination = Pagination(page=1, limit=20, total=0)

    assert pagination.total_pages == 0
    assert not pagination.has_next
    assert not pagination.has_prev


@pytest.mark.parametrize(
    ("raw", "expected"),
    [("asc", "ASC"), ("ASC", "ASC"), (" Asc ", "ASC"), ("desc", "DESC"), ("sideways", "DESC"), (None, "DESC")],
)
def test_normalize_sort_order(raw, expected):
    assert normalize_sort_order(raw) == expected


def test_blank_values_are_absent():
    assert not is_present(None)
    assert not is_present("   ")
    assert is_present(0)
    assert is_present("android")


def test_unknown_sort_field_falls_back_to_default():
    assert TRANSACTION_QUERY.resolve_sort("amount; DROP TABLE") == "created_at"
    assert TRANSACTION_QUERY.resolve_sort("amount") == "amount"


def test_blank_filters_add_no_predicates():
    assert TRANSACTION_QUERY.where_clauses({"search": "", "planType": "  ", "status": None}) == []
    assert len(TRANSACTION_QUERY.where_clauses({"search": "abc", "status": "completed"})) == 2


def test_day_bounds_are_half_open():
    assert day_start(date(2025, 8, 1)) == datetime(2025, 8, 1, tzinfo=timezone.utc)
    assert day_after(date(2025, 8, 1)) == datetime(2025, 8, 2, tzinfo=timezone.utc)


def test_list_transactions_pages_and_counts_with_same_filters(tmp_path: Path):
    database = Database(url=f"sqlite+aiosqlite:///{tmp_path / 'query.db'}")
    base = datetime(2025, 8, 1, 12, tzinfo=timezone.utc)

    async def _scenario():
        await database.create_all()
        async with database.session() as session:
            session.add_all(
                Transaction(
                    transaction_id=f"T{index:03d}",
                    user_id=f"user-{index % 7}",
                    amount=10.0 + index,
                    plan_type="Monthly Plan",
                    status="completed" if index % 5 else "failed",
                    device_type=1 + index % 2,
                    created_at=base + timedelta(hours=index),
                )
                for index in range(45)
            )
            await session.commit()

        async with database.session() as session:
            rows, pagination = await list_transactions(session, {}, page=3, limit=20)
            assert len(rows) == 5
            assert pagination.as_dict()["totalPages"] == 3
            assert pagination.has_next is False

            rows, pagination = await list_transactions(
                session, {"status": "failed", "search": ""}, page=1, limit=20, sort_by="amount", sort_order="asc"
            )
            assert pagination.total == 9
            assert [row["amount"] for row in rows] == sorted(row["amount"] for row in rows)
            assert all(row["status"] == "failed" for row in rows)

            rows, pagination = await list_transactions(session, {"search": "T04"}, page=1, limit=20)
            assert {row["transaction_id"] for row in rows} == {f"T04{digit}" for digit in range(5)}
            assert pagination.total == 5
        await database.dispose()

    asyncio.run(_scenario())
