"""Parsing for KPI import files and recipient lists."""

from __future__ import annotations

import io
import re
from datetime import datetime
from pathlib import Path
from typing import Any, List

import pandas as pd
from pandas.errors import EmptyDataError

KPI_IMPORT_COLUMNS = ("date_value", "android_value", "ios_value", "net_value", "data_source", "notes")
VALUE_COLUMNS = ("android_value", "ios_value", "net_value")

KPI_IMPORT_TEMPLATE = (
    ",".join(KPI_IMPORT_COLUMNS)
    + "\n2025-08-01,47.54,72.22,67.09,Analytics,Sample data for Android and iOS"
    + "\n2025-08-02,79.03,75.00,102.22,Database,Sample data for all platforms"
    + "\n2025-08-03,73.33,57.69,97.67,Manual Entry,Data without percentage symbols\n"
)

_ISO_DATE = re.compile(r"^\d{4}-\d{1,2}-\d{1,2}$")
_DAY_FIRST_DATE = re.compile(r"^(\d{1,2})[-/](\d{1,2})[-/](\d{4})$")
_NUMERIC_NOISE = re.compile(r"[%$,\s]")
_PHONE_SEPARATORS = re.compile(r"[,\s]+")


class ImportFileError(ValueError):
    """The uploaded file cannot be read as a KPI import."""


def normalize_date(raw: str) -> str:
    """Convert ``DD-MM-YYYY`` or ``DD/MM/YYYY`` to ISO; anything else is returned unchanged."""

    if not raw or _ISO_DATE.match(raw):
        return raw
    match = _DAY_FIRST_DATE.match(raw)
    if match is None:
        return raw
    day, month, year = match.groups()
    return f"{year}-{month.zfill(2)}-{day.zfill(2)}"


def clean_numeric(raw: str) -> str:
    """Strip ``%``, ``$``, thousands separators and whitespace; non-numbers become ``""``."""

    if not raw:
        return raw
    cleaned = _NUMERIC_NOISE.sub("", raw)
    try:
        float(cleaned)
    except ValueError:
        return ""
    return cleaned


def _read_frame(source: Any, **options: Any) -> pd.DataFrame:
    """Read CSV into text cells; blank cells stay ``""`` rather than NaN."""

    if isinstance(source, str):
        source = io.StringIO(source)
    try:
        frame = pd.read_csv(source, dtype=str, keep_default_na=False, skip_blank_lines=True, **options)
    except EmptyDataError:
        return pd.DataFrame(dtype=str)
    return frame.apply(lambda column: column.str.strip())


def parse_kpi_import(text: str) -> List[dict[str, str]]:
    """Parse an uploaded KPI file into rows keyed by lower-cased header.

    Quoted cells may contain commas. Rows with more cells than the header
    are dropped; short rows are padded with blanks and left to
    :func:`validate_import_rows` to report.
    """

    frame = _read_frame(text, on_bad_lines="skip")
    if frame.empty:
        raise ImportFileError("File must have header and at least one data row")

    frame.columns = [str(column).strip().lower() for column in frame.columns]
    if "date_value" in frame:
        frame["date_value"] = frame["date_value"].map(normalize_date)
    for name in VALUE_COLUMNS:
        if name in frame:
            frame[name] = frame[name].map(clean_numeric)
    return frame.to_dict(orient="records")


def _is_number(raw: str | None) -> bool:
    if raw is None or not raw.strip():
        return False
    try:
        float(_NUMERIC_NOISE.sub("", raw))
    except ValueError:
        return False
    return True


def validate_import_rows(rows: List[dict[str, str]]) -> tuple[list[dict[str, Any]], list[dict[str, Any]]]:
    """Split parsed rows into uploadable rows and ``{row, errors, data}`` reports.

    Row numbers are 1-based positions among the parsed data rows.
    """

    valid: list[dict[str, Any]] = []
    errors: list[dict[str, Any]] = []
    for index, row in enumerate(rows, start=1):
        row_errors: list[str] = []
        raw_date = (row.get("date_value") or "").strip()
        if not raw_date:
            row_errors.append("Missing date_value")
        else:
            try:
                datetime.strptime(raw_date, "%Y-%m-%d")
            except ValueError:
                row_errors.append(f'Invalid date format "{raw_date}". Use YYYY-MM-DD format (e.g., 2025-08-16)')

        if not any(_is_number(row.get(name)) for name in VALUE_COLUMNS):
            row_errors.append("At least one value (android_value, ios_value, net_value) is required")
        for name in VALUE_COLUMNS:
            raw = row.get(name)
            if raw and raw.strip() and not _is_number(raw):
                row_errors.append(f'{name} "{raw}" is not a valid number. Use format like: 47.54 (no % symbols)')

        if row_errors:
            errors.append({"row": index, "errors": row_errors, "data": row})
        else:
            valid.append({**row, "row_number": index})
    return valid, errors


def parse_phone_numbers(text: str, default_country_code: str = "91") -> List[str]:
    numbers: list[str] = []
    for raw in _PHONE_SEPARATORS.split(text or ""):
        number = raw.strip()
        if not number:
            continue
        if not number.startswith("+") and not number.startswith(default_country_code):
            number = default_country_code + number
        numbers.append(number.replace("+", "", 1))
    return numbers


def read_recipients_csv(source: str | Path) -> List[str]:
    """Return the first column of every non-blank line of a recipients CSV (text or path)."""

    frame = _read_frame(source, header=None, usecols=[0])
    if frame.empty:
        return []
    return [number for number in frame[0] if number]


__all__ = [
    "ImportFileError",
    "KPI_IMPORT_COLUMNS",
    "KPI_IMPORT_TEMPLATE",
    "clean_numeric",
    "normalize_date",
    "parse_kpi_import",
    "parse_phone_numbers",
    "read_recipients_csv",
    "validate_import_rows",
]
