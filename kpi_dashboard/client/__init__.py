"""Python client for the dashboard API with import parsing and export helpers."""

from .api import DashboardClient, DashboardClientError
from .exports import (
    COMPARISON_HEADERS,
    comparison_rows,
    export_comparison,
    export_csv,
    export_excel,
    export_pdf,
    format_growth,
    format_value,
)
from .imports import (
    KPI_IMPORT_TEMPLATE,
    ImportFileError,
    parse_kpi_import,
    parse_phone_numbers,
    read_recipients_csv,
    validate_import_rows,
)

__all__ = [
    "COMPARISON_HEADERS",
    "DashboardClient",
    "DashboardClientError",
    "ImportFileError",
    "KPI_IMPORT_TEMPLATE",
    "comparison_rows",
    "export_comparison",
    "export_csv",
    "export_excel",
    "export_pdf",
    "format_growth",
    "format_value",
    "parse_kpi_import",
    "parse_phone_numbers",
    "read_recipients_csv",
    "validate_import_rows",
]
