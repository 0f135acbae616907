"""Pydantic schemas for in-app activities."""

from __future__ import annotations

from pydantic import BaseModel, Field


class ActivityUpdateRequest(BaseModel):
    name: str | None = Field(default=None, examples=["Morning Meditation"])
    activity_type: int | None = None
    category: str | None = None


__all__ = ["ActivityUpdateRequest"]
