"""Purchase transaction listing, maintenance and revenue statistics."""

from __future__ import annotations

import logging
import re
from datetime import datetime, timedelta, timezone
from typing import Any, Mapping

from sqlalchemy import case, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from kpi_dashboard.core.errors import NotFound
from kpi_dashboard.db.query import Pagination, QuerySpec, day_after, day_start, fetch_page
from kpi_dashboard.models import SUCCESS_STATUSES, Transaction, platform_name
from kpi_dashboard.schemas import TransactionSchema, TransactionUpdateRequest
from kpi_dashboard.services.comparison import as_float

logger = logging.getLogger(__name__)

PLAN_CATEGORIES = ("monthly", "half_yearly", "yearly", "astro_report")
STATS_FILTERS = ("startDate", "endDate", "planType", "deviceType", "paymentMethod")
_CURRENCY_CODE = re.compile(r"^[A-Z]{3}$")

_succeeded = Transaction.status.in_(SUCCESS_STATUSES)
_revenue_amount = func.coalesce(Transaction.local_amount, Transaction.amount, 0)
_success_revenue = func.sum(case((_succeeded, _revenue_amount), else_=0))
_success_count = func.count(case((_succeeded, 1)))

TRANSACTION_QUERY = QuerySpec(
    statement=select(Transaction),
    sort_fields={
        "created_at": Transaction.created_at,
        "amount": Transaction.amount,
        "premium_started_on": Transaction.premium_started_on,
        "plan_type": Transaction.plan_type,
        "status": Transaction.status,
        "id": Transaction.id,
    },
    default_sort="created_at",
    filters={
        "startDate": lambda value: Transaction.created_at >= day_start(value),
        "endDate": lambda value: Transaction.created_at < day_after(value),
        "planType": lambda value: Transaction.plan_type == value,
        "deviceType": lambda value: Transaction.device_type == value,
        "status": lambda value: Transaction.status == value,
        "paymentMethod": lambda value: Transaction.payment_method == value,
        "localCurrency": lambda value: or_(Transaction.local_currency == value, Transaction.currency == value),
    },
    search_columns=(
        Transaction.transaction_id,
        Transaction.user_id,
        Transaction.plan_type,
        Transaction.payment_method,
        Transaction.status,
        Transaction.ad_name,
    ),
    tiebreakers=(Transaction.id.desc(),),
)


def plan_category(plan_type: str | None) -> str:
    """Bucket a free-text plan name into one of :data:`PLAN_CATEGORIES` or ``other``.

    Rules are checked in order, so ``"6 month"`` is monthly rather than half-yearly.
    """

    text = (plan_type or "").lower()
    if not text:
        return "other"
    if "month" in text:
        return "monthly"
    if "half" in text or "6" in text or "semi" in text:
        return "half_yearly"
    if "year" in text or "annual" in text:
        return "yearly"
    if "astro" in text:
        return "astro_report"
    return "other"


def transaction_payload(transaction: Transaction) -> dict[str, Any]:
    item = TransactionSchema.model_validate(transaction).model_dump()
    item["platform_name"] = platform_name(transaction.device_type)
    return item


async def list_transactions(
    session: AsyncSession,
    params: Mapping[str, Any],
    *,
    page: int = 1,
    limit: int = 20,
    sort_by: str | None = None,
    sort_order: str | None = None,
) -> tuple[list[dict[str, Any]], Pagination]:
    rows, pagination = await fetch_page(
        session,
        TRANSACTION_QUERY,
        params,
        page=page,
        limit=limit,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    return [transaction_payload(row[0]) for row in rows], pagination


async def get_transaction(session: AsyncSession, transaction_id: int) -> Transaction:
    transaction = await session.get(Transaction, transaction_id)
    if transaction is None:
        raise NotFound("Transaction not found")
    return transaction


async def update_transaction(
    session: AsyncSession, transaction_id: int, payload: TransactionUpdateRequest
) -> Transaction:
    transaction = await get_transaction(session, transaction_id)
    for name, value in payload.model_dump(exclude_unset=True).items():
        setattr(transaction, name, value)
    await session.commit()
    await session.refresh(transaction)
    logger.info("Updated transaction %s", transaction_id)
    return transaction


async def delete_transaction(session: AsyncSession, transaction_id: int) -> None:
    transaction = await get_transaction(session, transaction_id)
    await session.delete(transaction)
    await session.commit()
    logger.info("Deleted transaction %s", transaction_id)


def _percent(part: float, whole: float, digits: int) -> float:
    return round(part / whole * 100, digits) if whole else 0.0


def _change(current: float, previous: float) -> float:
    return round((current - previous) / previous * 100, 2) if previous > 0 else 0.0


async def _overview(session: AsyncSession, where: list[Any]) -> dict[str, Any]:
    stmt = select(
        func.count(Transaction.id),
        _success_count,
        func.count(case((Transaction.status == "failed", 1))),
        func.count(case((Transaction.status == "pending", 1))),
        func.avg(case((_succeeded, Transaction.amount))),
    ).where(*where)
    total, successful, failed, pending, average = (await session.execute(stmt)).one()
    return {
        "total_transactions": int(total or 0),
        "successful_transactions": int(successful or 0),
        "failed_transactions": int(failed or 0),
        "pending_transactions": int(pending or 0),
        "avg_transaction_amount": as_float(average) or 0.0,
        "success_rate": _percent(successful or 0, total or 0, 2),
        "failure_rate": _percent(failed or 0, total or 0, 1),
    }


async def _revenue_by_currency(session: AsyncSession, where: list[Any]) -> dict[str, float]:
    code = func.coalesce(Transaction.local_currency, Transaction.currency, "USD")
    stmt = select(code, _success_revenue).where(*where).group_by(code).order_by(_success_revenue.desc())
    revenue: dict[str, float] = {}
    for currency, total in (await session.execute(stmt)).all():
        amount = as_float(total) or 0.0
        if currency and _CURRENCY_CODE.match(currency) and amount > 0:
            revenue[currency] = amount
    return revenue


def _user_breakdown(purchase_counts: list[int]) -> dict[str, int]:
    """New users bought once in the window; repeat users bought more than once."""

    new_users = [count for count in purchase_counts if count == 1]
    repeat_users = [count for count in purchase_counts if count > 1]
    return {
        "new_transactions": sum(new_users),
        "repeat_transactions": sum(repeat_users),
        "unique_new_users": len(new_users),
        "unique_repeat_users": len(repeat_users),
    }


async def _customer_type(session: AsyncSession, where: list[Any], total: int) -> dict[str, Any]:
    stmt = select(func.count(Transaction.id)).where(*where).group_by(Transaction.user_id)
    counts = [int(count) for count in (await session.execute(stmt)).scalars().all()]
    breakdown = _user_breakdown(counts)
    breakdown["new_customer_percentage"] = _percent(breakdown["new_transactions"], total, 2)
    return breakdown


async def _by_platform(session: AsyncSession, where: list[Any], total: int) -> list[dict[str, Any]]:
    count = func.count(Transaction.id)
    stmt = (
        select(Transaction.device_type, count, _success_revenue)
        .where(*where)
        .group_by(Transaction.device_type)
        .order_by(count.desc())
    )
    return [
        {
            "device_type": int(device_type or 0),
            "platform_name": platform_name(device_type),
            "count": int(rows),
            "revenue": as_float(revenue) or 0.0,
            "percentage": _percent(rows, total, 1),
        }
        for device_type, rows, revenue in (await session.execute(stmt)).all()
    ]


async def _plan_breakdown(session: AsyncSession, where: list[Any]) -> dict[str, Any]:
    totals_stmt = (
        select(Transaction.plan_type, func.count(Transaction.id), _success_revenue)
        .where(*where)
        .group_by(Transaction.plan_type)
    )
    breakdown: dict[str, Any] = {}
    for name in PLAN_CATEGORIES:
        breakdown[f"{name}_count"] = 0
        breakdown[f"{name}_revenue"] = 0.0
    total_revenue = 0.0
    for plan_type, rows, revenue in (await session.execute(totals_stmt)).all():
        amount = as_float(revenue) or 0.0
        total_revenue += amount
        category = plan_category(plan_type)
        if category == "other":
            continue
        breakdown[f"{category}_count"] += int(rows)
        breakdown[f"{category}_revenue"] += amount
    breakdown["total_revenue"] = total_revenue

    users_stmt = (
        select(Transaction.plan_type, func.count(Transaction.id))
        .where(*where, Transaction.plan_type.is_not(None))
        .group_by(Transaction.plan_type, Transaction.user_id)
    )
    purchases: dict[str, list[int]] = {name: [] for name in PLAN_CATEGORIES}
    for plan_type, rows in (await session.execute(users_stmt)).all():
        category = plan_category(plan_type)
        if category != "other":
            purchases[category].append(int(rows))
    for name in PLAN_CATEGORIES:
        breakdown[f"{name}_user_breakdown"] = _user_breakdown(purchases[name])
    return breakdown


async def _by_payment_method(session: AsyncSession, where: list[Any]) -> list[dict[str, Any]]:
    count = func.count(Transaction.id)
    stmt = (
        select(
            Transaction.payment_method,
            count,
            _success_count,
            func.count(case((Transaction.status == "failed", 1))),
        )
        .where(*where, Transaction.payment_method.is_not(None))
        .group_by(Transaction.payment_method)
        .order_by(count.desc())
    )
    return [
        {
            "payment_method": method,
            "count": int(rows),
            "successful_count": int(successful),
            "failed_count": int(failed),
            "success_rate": _percent(successful, rows, 1),
        }
        for method, rows, successful, failed in (await session.execute(stmt)).all()
    ]


async def _growth(session: AsyncSession, now: datetime) -> dict[str, Any]:
    """Last 30 days against the 30 days before, over all transactions."""

    async def window(start: datetime, end: datetime) -> tuple[int, float]:
        stmt = select(func.count(Transaction.id), _success_revenue).where(
            Transaction.created_at >= start, Transaction.created_at < end
        )
        rows, revenue = (await session.execute(stmt)).one()
        return int(rows or 0), as_float(revenue) or 0.0

    recent_count, recent_revenue = await window(now - timedelta(days=30), now + timedelta(seconds=1))
    previous_count, previous_revenue = await window(now - timedelta(days=60), now - timedelta(days=30))
    transaction_growth = _change(recent_count, previous_count)
    revenue_growth = _change(recent_revenue, previous_revenue)
    return {
        "transaction_growth_30d": transaction_growth,
        "revenue_growth_30d": revenue_growth,
        "is_transaction_growth_positive": transaction_growth > 0,
        "is_revenue_growth_positive": revenue_growth > 0,
    }


async def transaction_stats(
    session: AsyncSession, params: Mapping[str, Any], *, now: datetime | None = None
) -> dict[str, Any]:
    """Overview cards, breakdowns and 30-day growth for the filtered transactions."""

    filters = {name: params.get(name) for name in STATS_FILTERS}
    where = TRANSACTION_QUERY.where_clauses(filters)
    overview = await _overview(session, where)
    total = overview["total_transactions"]
    revenue_by_currency = await _revenue_by_currency(session, where)
    overview["total_revenue"] = sum(revenue_by_currency.values())

    return {
        "overview": overview,
        "revenue_by_currency": revenue_by_currency,
        "customer_type": await _customer_type(session, where, total),
        "by_platform": await _by_platform(session, where, total),
        "plan_breakdown": await _plan_breakdown(session, where),
        "by_payment_method": await _by_payment_method(session, where),
        "growth": await _growth(session, now or datetime.now(timezone.utc)),
        "applied_filters": {
            name: value.isoformat() if hasattr(value, "isoformat") else value for name, value in filters.items()
        },
    }


__all__ = [
    "PLAN_CATEGORIES",
    "TRANSACTION_QUERY",
    "delete_transaction",
    "get_transaction",
    "list_transactions",
    "plan_category",
    "transaction_payload",
    "transaction_stats",
    "update_transaction",
]
