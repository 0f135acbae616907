"""KPI catalogue, daily values and dashboard aggregation."""

from __future__ import annotations

import logging
from datetime import date, timedelta
from typing import Any, Iterable, Mapping, Sequence

from sqlalchemy import func, select
from sqlalchemy.engine import Row
from sqlalchemy.ext.asyncio import AsyncSession

from kpi_dashboard.core.errors import Conflict, NotFound, ValidationFailed
from kpi_dashboard.db.query import Pagination, QuerySpec, fetch_page
from kpi_dashboard.models import KPI, PLATFORM_FIELDS, Category, KPIValue
from kpi_dashboard.schemas import (
    CategorySchema,
    CategoryWriteRequest,
    KPIDataUpdateRequest,
    KPISchema,
    KPIValueSchema,
    KPIValueWriteRequest,
    KPIWriteRequest,
)
from kpi_dashboard.services.comparison import as_float, round_average

logger = logging.getLogger(__name__)

DEFAULT_DATA_LIMIT = 20
MISSING_PLATFORM_VALUE = "At least one value (android_value, ios_value, net_value) is required"


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None


def _row_dict(row: Row[Any]) -> dict[str, Any]:
    return dict(row._mapping)


def _require_platform_value(values: Mapping[str, Any]) -> None:
    if all(values.get(name) is None for name in PLATFORM_FIELDS):
        raise ValidationFailed(MISSING_PLATFORM_VALUE)


# ---------------------------------------------------------------------------
# Dashboard views
# ---------------------------------------------------------------------------


async def dashboard(
    session: AsyncSession,
    start_date: date | None = None,
    end_date: date | None = None,
    *,
    lookback_days: int = 30,
) -> dict[str, Any]:
    """Average each active KPI over the window, grouped by category."""

    end = end_date or date.today()
    start = start_date or end - timedelta(days=lookback_days - 1)
    data_points = func.count(KPIValue.id)
    stmt = (
        select(
            Category.id,
            Category.name,
            Category.display_order,
            KPI,
            func.avg(KPIValue.android_value),
            func.avg(KPIValue.ios_value),
            func.avg(KPIValue.net_value),
            func.max(KPIValue.date_value),
            data_points,
        )
        .join(KPI, (KPI.category_id == Category.id) & KPI.is_active.is_(True))
        .join(KPIValue, KPIValue.kpi_id == KPI.id)
        .where(KPIValue.date_value.between(start, end))
        .group_by(Category.id, KPI.id)
        .having(data_points > 0)
        .order_by(Category.display_order, KPI.display_order, KPI.name)
    )
    categories: dict[int, dict[str, Any]] = {}
    total_points = 0
    for cat_id, cat_name, cat_order, kpi, android, ios, net, latest, points in (await session.execute(stmt)).all():
        bucket = categories.setdefault(
            cat_id,
            {"id": cat_id, "name": cat_name, "display_order": cat_order, "kpis": []},
        )
        item = KPISchema.model_validate(kpi).model_dump()
        item["currentValues"] = {
            "android": round_average(android),
            "ios": round_average(ios),
            "net": round_average(net),
            "date": latest,
        }
        item["dataPoints"] = int(points)
        bucket["kpis"].append(item)
        total_points += int(points)

    return {
        "data": list(categories.values()),
        "dateRange": {"startDate": start.isoformat(), "endDate": end.isoformat()},
        "totalDataPoints": total_points,
    }


async def date_range(session: AsyncSession) -> dict[str, Any]:
    stmt = select(
        func.min(KPIValue.date_value).label("min_date"),
        func.max(KPIValue.date_value).label("max_date"),
        func.count(func.distinct(KPIValue.date_value)).label("total_days"),
    )
    return _row_dict((await session.execute(stmt)).one())


async def latest_values(session: AsyncSession) -> list[dict[str, Any]]:
    """Most recent value row of every active KPI."""

    newest = (
        select(KPIValue.kpi_id, func.max(KPIValue.date_value).label("max_date"))
        .group_by(KPIValue.kpi_id)
        .subquery()
    )
    stmt = (
        select(
            KPI.id,
            KPI.name,
            KPI.code,
            KPI.unit,
            KPI.benchmark_value,
            KPI.has_platform_split,
            KPIValue.android_value,
            KPIValue.ios_value,
            KPIValue.net_value,
            KPIValue.date_value,
            Category.name.label("category_name"),
            KPI.category_id,
        )
        .join(KPIValue, KPIValue.kpi_id == KPI.id)
        .join(newest, (newest.c.kpi_id == KPIValue.kpi_id) & (newest.c.max_date == KPIValue.date_value))
        .join(Category, Category.id == KPI.category_id)
        .where(KPI.is_active.is_(True))
        .order_by(Category.display_order, KPI.display_order, KPI.name)
    )
    return [_row_dict(row) for row in (await session.execute(stmt)).all()]


async def trend(session: AsyncSession, kpi_id: int, days: int = 30) -> list[dict[str, Any]]:
    since = date.today() - timedelta(days=days)
    stmt = (
        select(
            KPIValue.date_value,
            KPIValue.android_value,
            KPIValue.ios_value,
            KPIValue.net_value,
            KPI.name,
            KPI.unit,
            KPI.has_platform_split,
        )
        .join(KPI, KPI.id == KPIValue.kpi_id)
        .where(KPIValue.kpi_id == kpi_id, KPIValue.date_value >= since)
        .order_by(KPIValue.date_value.asc())
    )
    return [_row_dict(row) for row in (await session.execute(stmt)).all()]


# ---------------------------------------------------------------------------
# Categories
# ---------------------------------------------------------------------------


async def list_categories(session: AsyncSession) -> list[dict[str, Any]]:
    """Categories in display order, each carrying its active KPIs."""

    categories = (
        await session.execute(select(Category).order_by(Category.display_order, Category.name))
    ).scalars().all()
    kpis = (
        await session.execute(
            select(KPI).where(KPI.is_active.is_(True)).order_by(KPI.display_order, KPI.name)
        )
    ).scalars().all()
    by_category: dict[int, list[dict[str, Any]]] = {}
    for kpi in kpis:
        by_category.setdefault(kpi.category_id, []).append(KPISchema.model_validate(kpi).model_dump())
    return [
        {**CategorySchema.model_validate(category).model_dump(), "kpis": by_category.get(category.id, [])}
        for category in categories
    ]


async def _category_name_taken(session: AsyncSession, name: str, exclude_id: int | None = None) -> bool:
    stmt = select(Category.id).where(func.lower(Category.name) == name.lower())
    if exclude_id is not None:
        stmt = stmt.where(Category.id != exclude_id)
    return (await session.execute(stmt)).first() is not None


async def create_category(session: AsyncSession, payload: CategoryWriteRequest) -> Category:
    name = _clean(payload.name)
    if name is None:
        raise ValidationFailed("Category name is required")
    if await _category_name_taken(session, name):
        raise Conflict("Category with this name already exists")

    category = Category(name=name, display_order=payload.display_order)
    session.add(category)
    await session.commit()
    await session.refresh(category)
    logger.info("Created category %s (%s)", category.id, category.name)
    return category


async def update_category(session: AsyncSession, category_id: int, payload: CategoryWriteRequest) -> Category:
    name = _clean(payload.name)
    if name is None:
        raise ValidationFailed("Category name is required")
    category = await session.get(Category, category_id)
    if category is None:
        raise NotFound("Category not found")
    if await _category_name_taken(session, name, exclude_id=category_id):
        raise Conflict("Category with this name already exists")

    category.name = name
    category.display_order = payload.display_order
    await session.commit()
    await session.refresh(category)
    logger.info("Updated category %s", category_id)
    return category


async def delete_category(session: AsyncSession, category_id: int) -> None:
    category = await session.get(Category, category_id)
    if category is None:
        raise NotFound("Category not found")
    kpi_count = (
        await session.execute(select(func.count(KPI.id)).where(KPI.category_id == category_id))
    ).scalar_one()
    if kpi_count:
        raise Conflict(
            f"Cannot delete category. It has {kpi_count} associated KPI(s). "
            "Please move or delete the KPIs first."
        )
    await session.delete(category)
    await session.commit()
    logger.info("Deleted category %s", category_id)


# ---------------------------------------------------------------------------
# KPI definitions
# ---------------------------------------------------------------------------


def kpi_payload(kpi: KPI, category_name: str | None = None) -> dict[str, Any]:
    item = KPISchema.model_validate(kpi).model_dump()
    item["category_name"] = category_name
    return item


async def list_kpis(session: AsyncSession) -> list[dict[str, Any]]:
    stmt = (
        select(KPI, Category.name)
        .outerjoin(Category, Category.id == KPI.category_id)
        .where(KPI.is_active.is_(True))
        .order_by(KPI.display_order, KPI.name)
    )
    return [kpi_payload(kpi, category_name) for kpi, category_name in (await session.execute(stmt)).all()]


async def _validate_kpi_payload(
    session: AsyncSession, payload: KPIWriteRequest, exclude_id: int | None = None
) -> tuple[str, str, int]:
    name = _clean(payload.name)
    code = _clean(payload.code)
    if name is None:
        raise ValidationFailed("KPI name is required")
    if code is None:
        raise ValidationFailed("KPI code is required")
    if payload.category_id is None:
        raise ValidationFailed("Category is required")

    duplicate = select(KPI.id).where(KPI.code == code, KPI.is_active.is_(True))
    if exclude_id is not None:
        duplicate = duplicate.where(KPI.id != exclude_id)
    if (await session.execute(duplicate)).first() is not None:
        raise Conflict("KPI with this code already exists")
    if await session.get(Category, payload.category_id) is None:
        raise ValidationFailed("Invalid category selected")
    return name, code, payload.category_id


async def create_kpi(session: AsyncSession, payload: KPIWriteRequest) -> KPI:
    name, code, category_id = await _validate_kpi_payload(session, payload)
    kpi = KPI(
        name=name,
        code=code,
        category_id=category_id,
        unit=_clean(payload.unit),
        data_type=_clean(payload.data_type) or "numeric",
        benchmark_value=payload.benchmark_value,
        has_platform_split=payload.has_platform_split,
        description=_clean(payload.description),
        display_order=payload.display_order,
        is_active=True,
    )
    session.add(kpi)
    await session.commit()
    await session.refresh(kpi)
    logger.info("Created KPI %s (%s)", kpi.id, kpi.code)
    return kpi


async def update_kpi(session: AsyncSession, kpi_id: int, payload: KPIWriteRequest) -> KPI:
    kpi = await session.get(KPI, kpi_id)
    if kpi is None:
        raise NotFound("KPI not found")
    name, code, category_id = await _validate_kpi_payload(session, payload, exclude_id=kpi_id)

    kpi.name = name
    kpi.code = code
    kpi.category_id = category_id
    kpi.unit = _clean(payload.unit)
    kpi.data_type = _clean(payload.data_type) or "numeric"
    kpi.benchmark_value = payload.benchmark_value
    kpi.has_platform_split = payload.has_platform_split
    kpi.description = _clean(payload.description)
    kpi.display_order = payload.display_order
    if payload.is_active is not None:
        kpi.is_active = payload.is_active
    await session.commit()
    await session.refresh(kpi)
    logger.info("Updated KPI %s", kpi_id)
    return kpi


async def delete_kpi(session: AsyncSession, kpi_id: int) -> str:
    """Archive a KPI that has values, hard-delete one that has none."""

    kpi = await session.get(KPI, kpi_id)
    if kpi is None:
        raise NotFound("KPI not found")
    value_count = (
        await session.execute(select(func.count(KPIValue.id)).where(KPIValue.kpi_id == kpi_id))
    ).scalar_one()
    if value_count:
        kpi.is_active = False
        await session.commit()
        logger.info("Archived KPI %s with %s values", kpi_id, value_count)
        return "KPI archived successfully (has associated data)"

    await session.delete(kpi)
    await session.commit()
    logger.info("Deleted KPI %s", kpi_id)
    return "KPI deleted successfully"


# ---------------------------------------------------------------------------
# KPI values
# ---------------------------------------------------------------------------

_VALUE_COLUMNS = (
    KPIValue.id,
    KPIValue.kpi_id,
    KPIValue.date_value,
    KPIValue.android_value,
    KPIValue.ios_value,
    KPIValue.net_value,
    KPIValue.data_source,
    KPIValue.notes,
    KPIValue.created_at,
    KPIValue.updated_at,
    KPI.name.label("kpi_name"),
    KPI.code.label("kpi_code"),
    KPI.unit,
    KPI.has_platform_split,
    Category.id.label("category_id"),
    Category.name.label("category_name"),
)

_VALUES_BASE = (
    select(*_VALUE_COLUMNS)
    .join(KPI, KPI.id == KPIValue.kpi_id)
    .join(Category, Category.id == KPI.category_id)
)

KPI_DATA_QUERY = QuerySpec(
    statement=_VALUES_BASE,
    sort_fields={"date_value": KPIValue.date_value},
    default_sort="date_value",
    filters={
        "startDate": lambda value: KPIValue.date_value >= value,
        "endDate": lambda value: KPIValue.date_value <= value,
        "kpiId": lambda value: KPIValue.kpi_id == value,
        "categoryId": lambda value: KPI.category_id == value,
    },
    search_columns=(KPI.name, KPI.code, Category.name, KPIValue.data_source, KPIValue.notes),
    tiebreakers=(KPIValue.created_at.desc(), KPIValue.id.desc()),
)


def clamp_data_window(
    limit: int | None, offset: int | None, page: int | None, *, max_limit: int = 100
) -> tuple[int, int, int]:
    """Resolve ``(limit, offset, page)`` for the KPI data list.

    ``limit`` is clamped into ``[1, max_limit]``; ``page`` wins over ``offset``
    when both are supplied.
    """

    size = max(1, min(max_limit, limit or DEFAULT_DATA_LIMIT))
    if page is not None and page >= 1:
        return size, (page - 1) * size, page
    start = max(0, offset or 0)
    return size, start, start // size + 1


async def list_data(
    session: AsyncSession,
    params: Mapping[str, Any],
    *,
    limit: int | None = None,
    offset: int | None = None,
    page: int | None = None,
    max_limit: int = 100,
) -> tuple[list[dict[str, Any]], Pagination]:
    size, start, current = clamp_data_window(limit, offset, page, max_limit=max_limit)
    rows, pagination = await fetch_page(
        session, KPI_DATA_QUERY, params, page=current, limit=size, offset=start
    )
    return [_row_dict(row) for row in rows], pagination


async def get_value(session: AsyncSession, value_id: int, *, missing: str = "KPI value not found") -> dict[str, Any]:
    row = (await session.execute(_VALUES_BASE.where(KPIValue.id == value_id))).first()
    if row is None:
        raise NotFound(missing)
    return _row_dict(row)


async def _existing_value(session: AsyncSession, kpi_id: int, day: date) -> KPIValue | None:
    stmt = select(KPIValue).where(KPIValue.kpi_id == kpi_id, KPIValue.date_value == day)
    return (await session.execute(stmt)).scalar_one_or_none()


async def _require_kpi(session: AsyncSession, kpi_id: int | None, *, active_only: bool = False) -> KPI:
    if kpi_id is None:
        raise ValidationFailed("KPI is required")
    kpi = await session.get(KPI, kpi_id)
    if kpi is None or (active_only and not kpi.is_active):
        raise ValidationFailed("Invalid KPI selected")
    return kpi


async def create_value(session: AsyncSession, payload: KPIValueWriteRequest) -> KPIValue:
    if payload.kpi_id is None:
        raise ValidationFailed("KPI is required")
    if payload.date_value is None:
        raise ValidationFailed("Date is required")
    _require_platform_value(payload.model_dump())
    await _require_kpi(session, payload.kpi_id)
    if await _existing_value(session, payload.kpi_id, payload.date_value) is not None:
        raise Conflict("KPI value for this date already exists. Use update instead.")

    value = KPIValue(
        kpi_id=payload.kpi_id,
        date_value=payload.date_value,
        android_value=payload.android_value,
        ios_value=payload.ios_value,
        net_value=payload.net_value,
        data_source=_clean(payload.data_source) or "Manual",
        notes=_clean(payload.notes),
    )
    session.add(value)
    await session.commit()
    await session.refresh(value)
    logger.info("Created KPI value %s for KPI %s on %s", value.id, value.kpi_id, value.date_value)
    return value


async def update_value(session: AsyncSession, value_id: int, payload: KPIValueWriteRequest) -> KPIValue:
    if payload.kpi_id is None:
        raise ValidationFailed("KPI is required")
    if payload.date_value is None:
        raise ValidationFailed("Date is required")
    _require_platform_value(payload.model_dump())
    value = await session.get(KPIValue, value_id)
    if value is None:
        raise NotFound("KPI value not found")
    await _require_kpi(session, payload.kpi_id)
    existing = await _existing_value(session, payload.kpi_id, payload.date_value)
    if existing is not None and existing.id != value_id:
        raise Conflict("Another KPI value for this date already exists")

    value.kpi_id = payload.kpi_id
    value.date_value = payload.date_value
    value.android_value = payload.android_value
    value.ios_value = payload.ios_value
    value.net_value = payload.net_value
    value.data_source = _clean(payload.data_source)
    value.notes = _clean(payload.notes)
    await session.commit()
    await session.refresh(value)
    logger.info("Updated KPI value %s", value_id)
    return value


async def update_data(
    session: AsyncSession, value_id: int, payload: KPIDataUpdateRequest, *, missing: str = "KPI data not found"
) -> KPIValue:
    """Overwrite the platform values and provenance of one row in place."""

    value = await session.get(KPIValue, value_id)
    if value is None:
        raise NotFound(missing)
    _require_platform_value(payload.model_dump())
    value.android_value = payload.android_value
    value.ios_value = payload.ios_value
    value.net_value = payload.net_value
    value.data_source = _clean(payload.data_source)
    value.notes = _clean(payload.notes)
    await session.commit()
    await session.refresh(value)
    logger.info("Updated KPI data %s", value_id)
    return value


async def delete_value(session: AsyncSession, value_id: int, *, missing: str = "KPI value not found") -> None:
    value = await session.get(KPIValue, value_id)
    if value is None:
        raise NotFound(missing)
    await session.delete(value)
    await session.commit()
    logger.info("Deleted KPI value %s", value_id)


async def _upsert(session: AsyncSession, kpi_id: int, row: Mapping[str, Any]) -> tuple[KPIValue, bool]:
    """Insert or overwrite the value keyed by ``(kpi_id, date_value)``; flushes, does not commit."""

    value = await _existing_value(session, kpi_id, row["date_value"])
    created = value is None
    if value is None:
        value = KPIValue(kpi_id=kpi_id, date_value=row["date_value"])
        session.add(value)
    for name in (*PLATFORM_FIELDS, "data_source", "notes"):
        setattr(value, name, row.get(name))
    if not created:
        # Unchanged columns would otherwise skip the UPDATE and its onupdate
        value.updated_at = func.now()
    await session.flush()
    return value, created


async def add_values(session: AsyncSession, payload: KPIValueWriteRequest) -> KPIValue:
    """Single-row upsert kept for older import scripts."""

    if payload.kpi_id is None or payload.date_value is None:
        raise ValidationFailed("kpi_id and date_value are required")
    await _require_kpi(session, payload.kpi_id)
    row = payload.model_dump()
    row["data_source"] = _clean(payload.data_source)
    row["notes"] = _clean(payload.notes)
    value, created = await _upsert(session, payload.kpi_id, row)
    await session.commit()
    logger.info("%s KPI value for KPI %s on %s", "Inserted" if created else "Updated", value.kpi_id, value.date_value)
    return value


def _parse_number(raw: Any) -> tuple[float | None, bool]:
    """Return ``(number, ok)``; blanks are a valid absence."""

    if raw is None or (isinstance(raw, str) and not raw.strip()):
        return None, True
    if isinstance(raw, bool):
        return None, False
    try:
        number = as_float(str(raw).strip() if isinstance(raw, str) else raw)
    except (TypeError, ValueError):
        return None, False
    return number, number is not None


def _parse_date(raw: Any) -> date | None:
    if isinstance(raw, date):
        return raw
    try:
        return date.fromisoformat(str(raw).strip()[:10])
    except ValueError:
        return None


def validate_bulk_rows(values: Sequence[Mapping[str, Any]]) -> tuple[list[dict[str, Any]], list[dict[str, Any]]]:
    """Split raw import rows into normalized valid rows and ``{row, errors}`` reports.

    Row numbers are 1-based positions in ``values``.
    """

    valid: list[dict[str, Any]] = []
    errors: list[dict[str, Any]] = []
    for index, raw in enumerate(values, start=1):
        row_errors: list[str] = []
        raw_date = raw.get("date_value")
        day: date | None = None
        if raw_date is None or not str(raw_date).strip():
            row_errors.append("date_value is required")
        else:
            day = _parse_date(raw_date)
            if day is None:
                row_errors.append("Invalid date format")

        numbers: dict[str, float | None] = {}
        for name in PLATFORM_FIELDS:
            number, ok = _parse_number(raw.get(name))
            if not ok:
                row_errors.append(f"Invalid number for {name}")
            numbers[name] = number
        if all(number is None for number in numbers.values()):
            row_errors.append(MISSING_PLATFORM_VALUE)

        if row_errors:
            errors.append({"row": index, "errors": row_errors})
            continue
        valid.append(
            {
                "date_value": day,
                **numbers,
                "data_source": _clean(raw.get("data_source")) or "Import",
                "notes": _clean(raw.get("notes")),
            }
        )
    return valid, errors


async def bulk_upsert(
    session: AsyncSession, kpi_id: int | None, values: Iterable[Mapping[str, Any]] | None
) -> dict[str, Any]:
    """Validate every row, then upsert all of them in one transaction.

    Any invalid row rejects the whole request with per-row errors and nothing
    is written. Re-importing the same rows updates them in place.
    """

    if kpi_id is None:
        raise ValidationFailed("KPI ID is required")
    rows = list(values or [])
    if not rows:
        raise ValidationFailed("Values array is required and must not be empty")

    async with session.begin():
        await _require_kpi(session, kpi_id, active_only=True)
        valid, errors = validate_bulk_rows(rows)
        if errors:
            raise ValidationFailed("Validation errors found", extra={"errors": errors})

        conflict_dates: list[str] = []
        for row in valid:
            _, created = await _upsert(session, kpi_id, row)
            if not created:
                conflict_dates.append(row["date_value"].isoformat())

    successful = len(valid)
    message = f"Successfully imported {successful} records"
    if conflict_dates:
        message += f" ({len(conflict_dates)} existing records were updated)"
    logger.info("Bulk import for KPI %s: %s rows, %s updated", kpi_id, successful, len(conflict_dates))
    return {
        "message": message,
        "summary": {
            "total_processed": len(valid),
            "successful": successful,
            "skipped": 0,
            "updated_existing": len(conflict_dates),
            "conflict_dates": conflict_dates,
        },
    }


def value_payload(value: KPIValue) -> dict[str, Any]:
    return KPIValueSchema.model_validate(value).model_dump()


__all__ = [
    "KPI_DATA_QUERY",
    "add_values",
    "bulk_upsert",
    "clamp_data_window",
    "create_category",
    "create_kpi",
    "create_value",
    "dashboard",
    "date_range",
    "delete_category",
    "delete_kpi",
    "delete_value",
    "get_value",
    "kpi_payload",
    "latest_values",
    "list_categories",
    "list_data",
    "list_kpis",
    "trend",
    "update_category",
    "update_data",
    "update_kpi",
    "update_value",
    "validate_bulk_rows",
    "value_payload",
]
