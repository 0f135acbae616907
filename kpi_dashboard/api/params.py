"""Lenient query-string parsing: blank values mean "not supplied"."""

from __future__ import annotations

from datetime import date

from kpi_dashboard.core.errors import ValidationFailed


def optional_date(raw: str | None, field: str) -> date | None:
    if raw is None or not raw.strip():
        return None
    try:
        return date.fromisoformat(raw.strip())
    except ValueError as exc:
        raise ValidationFailed(f"{field} must be a date in YYYY-MM-DD format") from exc


def optional_int(raw: str | None, field: str) -> int | None:
    if raw is None or not raw.strip():
        return None
    try:
        return int(raw.strip())
    except ValueError as exc:
        raise ValidationFailed(f"{field} must be an integer") from exc


def optional_text(raw: str | None) -> str | None:
    if raw is None or not raw.strip():
        return None
    return raw.strip()


__all__ = ["optional_date", "optional_int", "optional_text"]
