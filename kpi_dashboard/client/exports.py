"""CSV, Excel and PDF export of rows already fetched from the API."""

from __future__ import annotations

import logging
from datetime import datetime
from io import BytesIO
from typing import Any, Iterable, List, Mapping, Sequence

import pandas as pd
from openpyxl.utils import get_column_letter
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4, landscape
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

logger = logging.getLogger(__name__)

EMPTY = "—"
COUNT_UNITS = {"installs", "users", "visits", "crashes"}
COMPARISON_HEADERS = [
    "Category",
    "KPI & Platform",
    "Period 1 Value (Previous)",
    "Period 2 Value (Recent)",
    "Growth (%)",
]

Rows = Sequence[Mapping[str, Any]] | pd.DataFrame


def _grouped(value: float) -> str:
    if float(value).is_integer():
        return f"{int(value):,}"
    return f"{value:,.3f}".rstrip("0").rstrip(".")


def format_value(value: Any, unit: str | None = None) -> str:
    """Render a KPI value for display: currency, percent, counts or ratios."""

    if value is None:
        return EMPTY
    if unit == "$":
        amount = round(float(value))
        sign = "-" if amount < 0 else ""
        return f"{sign}${abs(amount):,}"
    if unit == "%":
        return f"{float(value):.1f}%"
    if unit == "ratio":
        return f"{float(value):.1f}"
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return _grouped(value)
    if unit in COUNT_UNITS:
        try:
            return _grouped(float(value))
        except (TypeError, ValueError):
            return str(value)
    return str(value)


def format_growth(growth: float | None) -> str:
    if growth is None:
        return EMPTY
    sign = "+" if growth > 0 else ""
    return f"{sign}{growth:.1f}%"


def comparison_rows(comparison: Mapping[str, Any]) -> List[dict[str, str]]:
    """Flatten a period comparison into table rows.

    The category name is shown on its first row only, and the KPI name on its
    first platform row; later platform rows are indented.
    """

    rows: list[dict[str, str]] = []
    for category in comparison.get("categories", []):
        first_in_category = True
        for kpi in category.get("kpis", []):
            for index, platform in enumerate(kpi.get("platforms", [])):
                label = platform.get("label") or platform.get("platform", "")
                name = f"{kpi.get('kpi_name')} - {label}" if index == 0 else f"  {label}"
                unit = kpi.get("unit")
                rows.append(
                    dict(
                        zip(
                            COMPARISON_HEADERS,
                            [
                                category.get("name", "") if first_in_category else "",
                                name,
                                format_value(platform.get("period1"), unit),
                                format_value(platform.get("period2"), unit),
                                format_growth(platform.get("growth")),
                            ],
                        )
                    )
                )
                first_in_category = False
    return rows


def _frame(rows: Rows, columns: Iterable[str] | None = None) -> pd.DataFrame:
    frame = rows.copy() if isinstance(rows, pd.DataFrame) else pd.DataFrame(list(rows))
    if frame.empty:
        raise ValueError("No data to export")
    if columns is not None:
        frame = frame.reindex(columns=list(columns))
    return frame


def export_csv(rows: Rows, *, columns: Iterable[str] | None = None) -> bytes:
    frame = _frame(rows, columns)
    return frame.to_csv(index=False).encode("utf-8")


def export_excel(rows: Rows, *, columns: Iterable[str] | None = None, sheet_name: str = "Data") -> bytes:
    frame = _frame(rows, columns)
    buffer = BytesIO()
    with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
        frame.to_excel(writer, index=False, sheet_name=sheet_name)
        sheet = writer.sheets[sheet_name]
        for position, column in enumerate(frame.columns, start=1):
            width = max([len(str(column))] + [len(str(value)) for value in frame[column].tolist()])
            sheet.column_dimensions[get_column_letter(position)].width = min(width + 2, 60)
    logger.debug("Exported %d rows to Excel sheet %s", len(frame), sheet_name)
    return buffer.getvalue()


def export_pdf(
    rows: Rows,
    *,
    title: str,
    columns: Iterable[str] | None = None,
    subtitle: str | None = None,
) -> bytes:
    frame = _frame(rows, columns)
    buffer = BytesIO()
    doc = SimpleDocTemplate(buffer, pagesize=landscape(A4), title=title)
    styles = getSampleStyleSheet()

    elements: list[Any] = [Paragraph(title, styles["Heading1"])]
    details = f"Generated: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}<br/>Total Records: {len(frame)}"
    if subtitle:
        details = f"{subtitle}<br/>{details}"
    elements.append(Paragraph(details, styles["Normal"]))
    elements.append(Spacer(1, 16))

    body = frame.astype(object).where(frame.notna(), EMPTY)
    table_data = [[str(column) for column in frame.columns]]
    table_data.extend([[str(value) for value in record] for record in body.itertuples(index=False)])
    table = Table(table_data, repeatRows=1)
    table.setStyle(
        TableStyle(
            [
                ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor("#1f2937")),
                ("TEXTCOLOR", (0, 0), (-1, 0), colors.whitesmoke),
                ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
                ("FONTSIZE", (0, 0), (-1, -1), 8),
                ("ROWBACKGROUNDS", (0, 1), (-1, -1), [colors.white, colors.HexColor("#f3f4f6")]),
                ("GRID", (0, 0), (-1, -1), 0.5, colors.grey),
                ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
            ]
        )
    )
    elements.append(table)
    doc.build(elements)
    return buffer.getvalue()


def export_comparison(comparison: Mapping[str, Any], fmt: str = "csv") -> bytes:
    """Export a period comparison table as ``csv``, ``excel`` or ``pdf``."""

    rows = comparison_rows(comparison)
    if fmt == "csv":
        return export_csv(rows, columns=COMPARISON_HEADERS)
    if fmt == "excel":
        return export_excel(rows, columns=COMPARISON_HEADERS, sheet_name="KPI Comparison")
    if fmt == "pdf":
        summary = comparison.get("summary", {})
        period1 = summary.get("period1") or {}
        period2 = summary.get("period2") or {}
        subtitle = (
            f"Period 1: {period1.get('startDate', '')} to {period1.get('endDate', '')}<br/>"
            f"Period 2: {period2.get('startDate', '')} to {period2.get('endDate', '')}"
        )
        return export_pdf(rows, title="KPI Period Comparison", columns=COMPARISON_HEADERS, subtitle=subtitle)
    raise ValueError(f"Unsupported export format: {fmt}")


__all__ = [
    "COMPARISON_HEADERS",
    "comparison_rows",
    "export_comparison",
    "export_csv",
    "export_excel",
    "export_pdf",
    "format_growth",
    "format_value",
]
