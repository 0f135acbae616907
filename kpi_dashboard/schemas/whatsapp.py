"""Pydantic schemas for the bulk messaging endpoints."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class SendBulkRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    message: str | None = None
    phone_numbers: list[str] | None = Field(default=None, alias="phoneNumbers")


__all__ = ["SendBulkRequest"]
