"""Display formatting and CSV/Excel/PDF exports."""

from __future__ import annotations

from io import BytesIO

import pytest
from openpyxl import load_workbook

from kpi_dashboard.client import (
    COMPARISON_HEADERS,
    comparison_rows,
    export_comparison,
    export_csv,
    export_excel,
    export_pdf,
    format_growth,
    format_value,
)

COMPARISON = {
    "categories": [
        {
            "id": 1,
            "name": "Engagement",
            "kpis": [
                {
                    "kpi_name": "Retention",
                    "unit": "%",
                    "platforms": [
                        {"platform": "android", "label": "Android", "period1": 40.0, "period2": 50.0, "growth": 25.0},
                        {"platform": "ios", "label": "iOS", "period1": 60.0, "period2": None, "growth": -100.0},
                    ],
                },
                {
                    "kpi_name": "Revenue",
                    "unit": "$",
                    "platforms": [
                        {"platform": "net", "label": "Overall", "period1": None, "period2": 1500.0, "growth": 100.0},
                    ],
                },
            ],
        }
    ],
    "summary": {
        "total_kpis": 2,
        "total_categories": 1,
        "period1": {"startDate": "2025-07-01", "endDate": "2025-07-07"},
        "period2": {"startDate": "2025-07-08", "endDate": "2025-07-14"},
    },
}


@pytest.mark.parametrize(
    ("value", "unit", "expected"),
    [
        (1234567, "$", "$1,234,567"),
        (-1500.4, "$", "-$1,500"),
        (47.54, "%", "47.5%"),
        (12345, "installs", "12,345"),
        (2.36, "ratio", "2.4"),
        (1234.5, None, "1,234.5"),
        ("n/a", None, "n/a"),
        (None, "%", "—"),
    ],
)
def test_format_value(value, unit, expected):
    assert format_value(value, unit) == expected


@pytest.mark.parametrize(
    ("growth", "expected"),
    [(12.345, "+12.3%"), (-5, "-5.0%"), (0, "0.0%"), (None, "—")],
)
def test_format_growth(growth, expected):
    assert format_growth(growth) == expected


def test_comparison_rows_show_category_and_kpi_once():
    rows = comparison_rows(COMPARISON)

    assert [row["Category"] for row in rows] == ["Engagement", "", ""]
    assert [row["KPI & Platform"] for row in rows] == ["Retention - Android", "  iOS", "Revenue - Overall"]
    assert rows[1]["Period 2 Value (Recent)"] == "—"
    assert rows[2]["Period 2 Value (Recent)"] == "$1,500"
    assert rows[0]["Growth (%)"] == "+25.0%"


def test_export_csv_and_excel():
    csv_bytes = export_comparison(COMPARISON, "csv")
    assert csv_bytes.decode("utf-8").splitlines()[0] == ",".join(COMPARISON_HEADERS)

    workbook = load_workbook(BytesIO(export_excel([{"id": 1, "name": "Calm"}, {"id": 2, "name": "Focus"}])))
    sheet = workbook["Data"]
    assert [cell.value for cell in sheet[1]] == ["id", "name"]
    assert sheet.max_row == 3


def test_export_pdf_produces_document():
    pdf = export_pdf([{"transaction_id": "T1", "amount": 10.0, "status": None}], title="Transactions")
    assert pdf.startswith(b"%PDF")
    assert export_comparison(COMPARISON, "pdf").startswith(b"%PDF")


def test_exports_reject_empty_input():
    for exporter in (export_csv, export_excel):
        with pytest.raises(ValueError, match="No data to export"):
            exporter([])
    with pytest.raises(ValueError, match="No data to export"):
        export_pdf([], title="Empty")
