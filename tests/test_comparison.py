"""Growth arithmetic and comparison assembly."""

from __future__ import annotations

import math
from datetime import date

import pytest

from kpi_dashboard.services.comparison import (
    KPIPeriods,
    Period,
    PeriodStats,
    build_comparison,
    calculate_growth,
    platform_rows,
)


@pytest.mark.parametrize(
    ("period1", "period2", "expected"),
    [
        (100, 150, 50.0),
        (200, 150, -25.0),
        (-50, -25, 50.0),
        (0, 30, 100.0),
        (None, 30, 100.0),
        (0, 0, 0.0),
        (None, None, 0.0),
        (40, 0, -100.0),
        (40, None, -100.0),
        (math.nan, 10, 100.0),
    ],
)
def test_calculate_growth(period1, period2, expected):
    assert calculate_growth(period1, period2) == pytest.approx(expected)


def _kpi(**overrides) -> KPIPeriods:
    values = {
        "kpi_id": 1,
        "kpi_name": "Retention",
        "kpi_code": "RET",
        "category_id": 10,
        "category_name": "Engagement",
        "unit": "%",
        "benchmark_value": None,
        "has_platform_split": True,
        "period1": PeriodStats(android=40.0, ios=60.0, net=50.0, data_points=7),
        "period2": PeriodStats(android=50.0, ios=None, net=55.0, data_points=7),
    }
    values.update(overrides)
    return KPIPeriods(**values)


def test_platform_rows_for_split_kpi_label_net_as_total():
    rows = platform_rows(_kpi())

    assert [row["label"] for row in rows] == ["Android", "iOS", "Total"]
    android, ios, total = rows
    assert android["growth"] == pytest.approx(25.0)
    assert ios["period2"] is None
    assert ios["growth"] == pytest.approx(-100.0)
    assert total["growth"] == pytest.approx(10.0)


def test_platform_rows_for_unsplit_kpi_only_show_overall():
    rows = platform_rows(_kpi(has_platform_split=False))

    assert len(rows) == 1
    assert rows[0]["platform"] == "net"
    assert rows[0]["label"] == "Overall"


def test_build_comparison_groups_by_category_and_drops_empty_kpis():
    period1 = Period(date(2025, 7, 1), date(2025, 7, 7))
    period2 = Period(date(2025, 7, 8), date(2025, 7, 14))
    items = [
        _kpi(),
        _kpi(kpi_id=2, kpi_name="Installs", kpi_code="INS", unit="installs", has_platform_split=False,
             period1=PeriodStats(net=None, data_points=2), period2=PeriodStats(net=None, data_points=3)),
        _kpi(kpi_id=3, kpi_name="Revenue", kpi_code="REV", category_id=11, category_name="Money", unit="$",
             has_platform_split=False, period1=PeriodStats(net=None, data_points=0),
             period2=PeriodStats(net=900.0, data_points=4)),
    ]

    result = build_comparison(items, period1, period2)

    assert [category["name"] for category in result["categories"]] == ["Engagement", "Money"]
    assert [kpi["kpi_code"] for kpi in result["categories"][0]["kpis"]] == ["RET"]
    revenue = result["categories"][1]["kpis"][0]
    assert revenue["growth"]["net"] == pytest.approx(100.0)
    assert revenue["growth"]["android"] is None
    assert result["summary"] == {
        "total_kpis": 2,
        "total_categories": 2,
        "period1": {"startDate": "2025-07-01", "endDate": "2025-07-07"},
        "period2": {"startDate": "2025-07-08", "endDate": "2025-07-14"},
    }
