"""Purchase transaction model."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Index, Integer, Numeric, String, func
from sqlalchemy.orm import Mapped, mapped_column

from kpi_dashboard.db.base import Base

SUCCESS_STATUSES = ("completed", "success")
DEVICE_NAMES = {1: "Android", 2: "iOS", 3: "Web"}


class Transaction(Base):
    __tablename__ = "new_transactions"
    __table_args__ = (
        Index("ix_new_transactions_created_at", "created_at"),
        Index("ix_new_transactions_user", "user_id"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    transaction_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    original_transaction_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    user_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    amount: Mapped[float | None] = mapped_column(Numeric(14, 2, asdecimal=False), nullable=True)
    currency: Mapped[str | None] = mapped_column(String(8), nullable=True)
    local_currency: Mapped[str | None] = mapped_column(String(8), nullable=True)
    local_amount: Mapped[float | None] = mapped_column(Numeric(14, 2, asdecimal=False), nullable=True)
    plan_type: Mapped[str | None] = mapped_column(String(64), nullable=True)
    device_type: Mapped[int | None] = mapped_column(Integer, nullable=True)
    payment_method: Mapped[str | None] = mapped_column(String(64), nullable=True)
    status: Mapped[str | None] = mapped_column(String(32), nullable=True)
    premium_started_on: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    premium_ends_on: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    ad_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


def platform_name(device_type: int | None) -> str:
    return DEVICE_NAMES.get(device_type or 0, "Other")


__all__ = ["DEVICE_NAMES", "SUCCESS_STATUSES", "Transaction", "platform_name"]
