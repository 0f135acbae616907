"""Pydantic schemas for KPI categories, definitions and daily values."""

from __future__ import annotations

from datetime import date, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class CategoryWriteRequest(BaseModel):
    name: str | None = Field(default=None, examples=["Revenue"])
    display_order: int | None = None


class CategorySchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    display_order: int | None = None
    created_at: datetime | None = None


class KPIWriteRequest(BaseModel):
    """Create/update payload; required fields are checked by the service so the
    error message can name them the way the admin form does."""

    name: str | None = Field(default=None, examples=["Daily Active Users"])
    code: str | None = Field(default=None, examples=["DAU"])
    category_id: int | None = None
    unit: str | None = Field(default=None, examples=["users"])
    data_type: str | None = None
    benchmark_value: float | None = None
    has_platform_split: bool = False
    description: str | None = None
    display_order: int | None = None
    is_active: bool | None = None


class KPISchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    code: str
    category_id: int
    unit: str | None = None
    data_type: str
    benchmark_value: float | None = None
    has_platform_split: bool
    description: str | None = None
    display_order: int | None = None
    is_active: bool
    created_at: datetime | None = None


class KPIValueWriteRequest(BaseModel):
    kpi_id: int | None = None
    date_value: date | None = None
    android_value: float | None = None
    ios_value: float | None = None
    net_value: float | None = None
    data_source: str | None = None
    notes: str | None = None


class KPIDataUpdateRequest(BaseModel):
    android_value: float | None = None
    ios_value: float | None = None
    net_value: float | None = None
    data_source: str | None = None
    notes: str | None = None


class KPIValueSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    kpi_id: int
    date_value: date
    android_value: float | None = None
    ios_value: float | None = None
    net_value: float | None = None
    data_source: str | None = None
    notes: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class BulkValuesRequest(BaseModel):
    """Rows stay loosely typed so each one can be validated and reported by index."""

    kpi_id: int | None = None
    values: list[dict[str, Any]] | None = None


__all__ = [
    "BulkValuesRequest",
    "CategorySchema",
    "CategoryWriteRequest",
    "KPIDataUpdateRequest",
    "KPISchema",
    "KPIValueSchema",
    "KPIValueWriteRequest",
    "KPIWriteRequest",
]
