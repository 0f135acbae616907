"""KPI import parsing and recipient list handling."""

from __future__ import annotations

from pathlib import Path

import pytest

from kpi_dashboard.client import (
    KPI_IMPORT_TEMPLATE,
    ImportFileError,
    parse_kpi_import,
    parse_phone_numbers,
    read_recipients_csv,
    validate_import_rows,
)


def test_parse_kpi_import_normalizes_dates_and_numbers():
    text = (
        "Date_Value, Android_Value ,iOS_Value,net_value,data_source,notes\n"
        "16-08-2025,47.54%,$72.22,1 234,Analytics,first\n"
        "2025-08-17,79.03,,102.22,Database,second\n"
        "\n"
        "18/8/2025,abc,75,80,Manual,third\n"
        "2025-08-19,1,2,3,Manual,too,many,cells\n"
    )

    rows = parse_kpi_import(text)

    assert len(rows) == 3
    assert rows[0]["date_value"] == "2025-08-16"
    assert rows[0]["android_value"] == "47.54"
    assert rows[0]["ios_value"] == "72.22"
    assert rows[0]["net_value"] == "1234"
    assert rows[1]["ios_value"] == ""
    assert rows[2]["date_value"] == "2025-08-18"
    assert rows[2]["android_value"] == ""


def test_parse_kpi_import_keeps_quoted_commas_and_pads_short_rows():
    text = (
        "date_value,android_value,ios_value,net_value,data_source,notes\n"
        '2025-08-01,1,2,"1,500",Manual,"Launch day, big spike"\n'
        "2025-08-02,4\n"
    )

    rows = parse_kpi_import(text)

    assert rows[0]["notes"] == "Launch day, big spike"
    assert rows[0]["net_value"] == "1500"
    assert rows[1] == {
        "date_value": "2025-08-02",
        "android_value": "4",
        "ios_value": "",
        "net_value": "",
        "data_source": "",
        "notes": "",
    }
    valid, errors = validate_import_rows(rows)
    assert [row["row_number"] for row in valid] == [1, 2]
    assert errors == []


def test_parse_kpi_import_requires_a_data_row():
    with pytest.raises(ImportFileError):
        parse_kpi_import("date_value,net_value\n")


def test_validate_import_rows_reports_row_errors():
    rows = [
        {"date_value": "2025-08-01", "android_value": "1", "ios_value": "", "net_value": ""},
        {"date_value": "", "android_value": "", "ios_value": "", "net_value": ""},
        {"date_value": "31-31-2025", "android_value": "", "ios_value": "", "net_value": "5"},
    ]

    valid, errors = validate_import_rows(rows)

    assert [row["row_number"] for row in valid] == [1]
    assert [error["row"] for error in errors] == [2, 3]
    assert errors[0]["errors"] == [
        "Missing date_value",
        "At least one value (android_value, ios_value, net_value) is required",
    ]
    assert errors[1]["errors"][0].startswith('Invalid date format "31-31-2025"')


def test_template_round_trips_through_parser():
    valid, errors = validate_import_rows(parse_kpi_import(KPI_IMPORT_TEMPLATE))

    assert len(valid) == 3
    assert errors == []
    assert valid[2]["data_source"] == "Manual Entry"


def test_parse_phone_numbers_prefixes_default_country_code():
    numbers = parse_phone_numbers("9123456789, +447700900123\n919876543210  98765 43210")

    assert numbers == ["919123456789", "447700900123", "919876543210", "9198765", "9143210"]


def test_read_recipients_csv_takes_first_column(tmp_path: Path):
    path = tmp_path / "recipients.csv"
    path.write_text("919000000001,Alice\n\n 919000000002 ,Bob\n,missing\n", encoding="utf-8")

    assert read_recipients_csv(path) == ["919000000001", "919000000002"]
    assert read_recipients_csv("123,x\n456") == ["123", "456"]
    assert read_recipients_csv('"919000000003","Doe, Jane"\n919000000004,Sam\n') == ["919000000003", "919000000004"]
    assert read_recipients_csv("") == []
