"""Period-over-period KPI comparison.

Two date ranges are averaged per KPI and platform, then compared with
:func:`calculate_growth`. The aggregation runs in SQL; everything after the
query (growth, platform rows, grouping by category) is pure and lives in
:func:`build_comparison` so it can be exercised without a database.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import Decimal
from typing import Any, Iterable, List

from sqlalchemy import and_, case, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from kpi_dashboard.core.errors import ValidationFailed
from kpi_dashboard.models import KPI, Category, KPIValue

logger = logging.getLogger(__name__)

PLATFORMS = ("android", "ios", "net")
PLATFORM_LABELS = {"android": "Android", "ios": "iOS"}


def as_float(value: Any) -> float | None:
    if value is None:
        return None
    if isinstance(value, Decimal):
        value = float(value)
    result = float(value)
    return result if math.isfinite(result) else None


def round_average(value: Any) -> float | None:
    result = as_float(value)
    return None if result is None else round(result, 2)


def calculate_growth(period1: float | None, period2: float | None) -> float | None:
    """Percentage change from ``period1`` to ``period2``.

    A null or zero baseline reports ``100`` when the recent value is non-zero
    and ``0`` otherwise. A null or zero recent value against a non-zero
    baseline reports ``-100``. Non-finite inputs are treated as null and a
    non-finite result is returned as ``None``.
    """

    p1 = as_float(period1)
    p2 = as_float(period2)
    if not p1:
        result = 100.0 if p2 else 0.0
    elif not p2:
        result = -100.0
    else:
        result = (p2 - p1) / abs(p1) * 100
    return result if math.isfinite(result) else None


@dataclass(frozen=True)
class Period:
    start: date
    end: date

    def as_dict(self) -> dict[str, str]:
        return {"startDate": self.start.isoformat(), "endDate": self.end.isoformat()}


@dataclass
class PeriodStats:
    android: float | None = None
    ios: float | None = None
    net: float | None = None
    data_points: int = 0

    def value(self, platform: str) -> float | None:
        return getattr(self, platform)

    def as_dict(self) -> dict[str, Any]:
        return {"android": self.android, "ios": self.ios, "net": self.net, "data_points": self.data_points}


@dataclass
class KPIPeriods:
    """Aggregated averages of one KPI over both periods."""

    kpi_id: int
    kpi_name: str
    kpi_code: str
    category_id: int | None
    category_name: str | None
    unit: str | None
    benchmark_value: float | None
    has_platform_split: bool
    period1: PeriodStats = field(default_factory=PeriodStats)
    period2: PeriodStats = field(default_factory=PeriodStats)


def platform_rows(item: KPIPeriods) -> List[dict[str, Any]]:
    """Display rows for a KPI; a platform appears only when one period has data."""

    platforms = PLATFORMS if item.has_platform_split else ("net",)
    rows: list[dict[str, Any]] = []
    for platform in platforms:
        previous = item.period1.value(platform)
        recent = item.period2.value(platform)
        if previous is None and recent is None:
            continue
        if platform == "net":
            label = "Total" if item.has_platform_split else "Overall"
        else:
            label = PLATFORM_LABELS[platform]
        rows.append(
            {
                "platform": platform,
                "label": label,
                "period1": previous,
                "period2": recent,
                "growth": calculate_growth(previous, recent),
            }
        )
    return rows


def _growth(item: KPIPeriods) -> dict[str, float | None]:
    growth: dict[str, float | None] = {}
    for platform in PLATFORMS:
        previous = item.period1.value(platform)
        recent = item.period2.value(platform)
        growth[platform] = None if previous is None and recent is None else calculate_growth(previous, recent)
    return growth


def build_comparison(items: Iterable[KPIPeriods], period1: Period, period2: Period) -> dict[str, Any]:
    """Group comparable KPIs by category and attach growth figures.

    ``items`` are expected in display order; categories keep the order in
    which their first KPI appears.
    """

    categories: dict[int | None, dict[str, Any]] = {}
    total_kpis = 0
    for item in items:
        if item.period1.data_points == 0 and item.period2.data_points == 0:
            continue
        rows = platform_rows(item)
        if not rows:
            continue
        bucket = categories.setdefault(
            item.category_id,
            {"id": item.category_id, "name": item.category_name, "kpis": []},
        )
        bucket["kpis"].append(
            {
                "kpi_id": item.kpi_id,
                "kpi_name": item.kpi_name,
                "kpi_code": item.kpi_code,
                "category_id": item.category_id,
                "category_name": item.category_name,
                "unit": item.unit,
                "benchmark_value": item.benchmark_value,
                "has_platform_split": item.has_platform_split,
                "period1": item.period1.as_dict(),
                "period2": item.period2.as_dict(),
                "growth": _growth(item),
                "platforms": rows,
            }
        )
        total_kpis += 1

    return {
        "categories": list(categories.values()),
        "summary": {
            "total_kpis": total_kpis,
            "total_categories": len(categories),
            "period1": period1.as_dict(),
            "period2": period2.as_dict(),
        },
    }


def _period_avg(column: Any, period: Period) -> Any:
    return func.avg(case((KPIValue.date_value.between(period.start, period.end), column)))


def _period_count(period: Period) -> Any:
    return func.count(case((KPIValue.date_value.between(period.start, period.end), KPIValue.id)))


async def compare_periods(
    session: AsyncSession,
    start_date1: date | None,
    end_date1: date | None,
    start_date2: date | None,
    end_date2: date | None,
    *,
    kpi_id: int | None = None,
    category_id: int | None = None,
) -> dict[str, Any]:
    """Compare every active KPI between a previous and a recent period."""

    if not all((start_date1, end_date1, start_date2, end_date2)):
        raise ValidationFailed("All date range parameters are required")

    period1 = Period(start_date1, end_date1)  # type: ignore[arg-type]
    period2 = Period(start_date2, end_date2)  # type: ignore[arg-type]
    count1 = _period_count(period1)
    count2 = _period_count(period2)

    stmt = (
        select(
            KPI.id,
            KPI.name,
            KPI.code,
            KPI.unit,
            KPI.benchmark_value,
            KPI.has_platform_split,
            Category.id,
            Category.name,
            _period_avg(KPIValue.android_value, period1),
            _period_avg(KPIValue.ios_value, period1),
            _period_avg(KPIValue.net_value, period1),
            _period_avg(KPIValue.android_value, period2),
            _period_avg(KPIValue.ios_value, period2),
            _period_avg(KPIValue.net_value, period2),
            count1,
            count2,
        )
        .select_from(KPI)
        .outerjoin(Category, KPI.category_id == Category.id)
        .outerjoin(KPIValue, KPIValue.kpi_id == KPI.id)
        .where(KPI.is_active.is_(True))
        .group_by(KPI.id, Category.id)
        .having(or_(count1 > 0, count2 > 0))
        .order_by(Category.display_order, KPI.display_order, KPI.name)
    )
    if kpi_id is not None:
        stmt = stmt.where(KPI.id == kpi_id)
    if category_id is not None:
        stmt = stmt.where(KPI.category_id == category_id)

    rows = (await session.execute(stmt)).all()
    items = [
        KPIPeriods(
            kpi_id=row[0],
            kpi_name=row[1],
            kpi_code=row[2],
            unit=row[3],
            benchmark_value=as_float(row[4]),
            has_platform_split=bool(row[5]),
            category_id=row[6],
            category_name=row[7],
            period1=PeriodStats(*(round_average(v) for v in row[8:11]), data_points=int(row[14] or 0)),
            period2=PeriodStats(*(round_average(v) for v in row[11:14]), data_points=int(row[15] or 0)),
        )
        for row in rows
    ]
    result = build_comparison(items, period1, period2)
    logger.info(
        "KPI comparison %s..%s vs %s..%s: %s KPIs across %s categories",
        period1.start,
        period1.end,
        period2.start,
        period2.end,
        result["summary"]["total_kpis"],
        result["summary"]["total_categories"],
    )
    return result


async def weekly_comparison(session: AsyncSession, *, today: date | None = None) -> List[dict[str, Any]]:
    """Average of the last 7 days against the 7 days before, per active KPI."""

    today = today or date.today()
    week_ago = today - timedelta(days=7)
    two_weeks_ago = today - timedelta(days=14)
    value = func.coalesce(KPIValue.net_value, KPIValue.android_value + KPIValue.ios_value)
    this_week = func.avg(case((KPIValue.date_value >= week_ago, value)))
    last_week = func.avg(
        case((and_(KPIValue.date_value >= two_weeks_ago, KPIValue.date_value < week_ago), value))
    )
    stmt = (
        select(KPI.id, KPI.name, KPI.unit, this_week, last_week)
        .join(KPIValue, KPIValue.kpi_id == KPI.id)
        .where(KPI.is_active.is_(True))
        .group_by(KPI.id)
        .order_by(KPI.display_order, KPI.name)
    )
    comparison: list[dict[str, Any]] = []
    for kpi_id, name, unit, current, previous in (await session.execute(stmt)).all():
        current = as_float(current)
        previous = as_float(previous)
        if current is None or previous is None:
            continue
        change = (current - previous) / previous * 100 if previous else 0.0
        comparison.append(
            {
                "id": kpi_id,
                "name": name,
                "unit": unit,
                "this_week": current,
                "last_week": previous,
                "change_percent": change,
            }
        )
    return comparison


__all__ = [
    "KPIPeriods",
    "PLATFORMS",
    "Period",
    "PeriodStats",
    "as_float",
    "build_comparison",
    "calculate_growth",
    "compare_periods",
    "platform_rows",
    "round_average",
    "weekly_comparison",
]
