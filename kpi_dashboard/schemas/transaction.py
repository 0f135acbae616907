"""Pydantic schemas for purchase transactions."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict


class TransactionSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    transaction_id: str | None = None
    original_transaction_id: str | None = None
    user_id: str | None = None
    amount: float | None = None
    currency: str | None = None
    local_currency: str | None = None
    local_amount: float | None = None
    plan_type: str | None = None
    device_type: int | None = None
    payment_method: str | None = None
    status: str | None = None
    premium_started_on: datetime | None = None
    premium_ends_on: datetime | None = None
    ad_name: str | None = None
    created_at: datetime | None = None


class TransactionUpdateRequest(BaseModel):
    amount: float | None = None
    currency: str | None = None
    local_currency: str | None = None
    local_amount: float | None = None
    plan_type: str | None = None
    device_type: int | None = None
    payment_method: str | None = None
    status: str | None = None
    premium_started_on: datetime | None = None
    premium_ends_on: datetime | None = None
    ad_name: str | None = None


__all__ = ["TransactionSchema", "TransactionUpdateRequest"]
