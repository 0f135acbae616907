"""KPI category, definition and daily value models."""

from __future__ import annotations

from datetime import date, datetime
from typing import Optional

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from kpi_dashboard.db.base import Base

PLATFORM_FIELDS = ("android_value", "ios_value", "net_value")


class Category(Base):
    __tablename__ = "categories"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(128), unique=True)
    display_order: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    kpis: Mapped[list["KPI"]] = relationship(back_populates="category")


class KPI(Base):
    __tablename__ = "kpis"
    __table_args__ = (
        Index("ix_kpis_code_active", "code", "is_active"),
        Index("ix_kpis_category", "category_id"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(255))
    code: Mapped[str] = mapped_column(String(64))
    category_id: Mapped[int] = mapped_column(ForeignKey("categories.id"))
    unit: Mapped[str | None] = mapped_column(String(32), nullable=True)
    data_type: Mapped[str] = mapped_column(String(32), default="numeric")
    benchmark_value: Mapped[float | None] = mapped_column(Numeric(18, 4, asdecimal=False), nullable=True)
    has_platform_split: Mapped[bool] = mapped_column(Boolean, default=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    display_order: Mapped[int | None] = mapped_column(Integer, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    category: Mapped[Optional[Category]] = relationship(back_populates="kpis")
    values: Mapped[list["KPIValue"]] = relationship(back_populates="kpi")


class KPIValue(Base):
    __tablename__ = "kpi_values"
    __table_args__ = (
        UniqueConstraint("kpi_id", "date_value", name="uq_kpi_values_kpi_date"),
        Index("ix_kpi_values_date", "date_value"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    kpi_id: Mapped[int] = mapped_column(ForeignKey("kpis.id"))
    date_value: Mapped[date] = mapped_column(Date)
    android_value: Mapped[float | None] = mapped_column(Numeric(18, 4, asdecimal=False), nullable=True)
    ios_value: Mapped[float | None] = mapped_column(Numeric(18, 4, asdecimal=False), nullable=True)
    net_value: Mapped[float | None] = mapped_column(Numeric(18, 4, asdecimal=False), nullable=True)
    data_source: Mapped[str | None] = mapped_column(String(128), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    kpi: Mapped[KPI] = relationship(back_populates="values")


__all__ = ["Category", "KPI", "KPIValue", "PLATFORM_FIELDS"]
