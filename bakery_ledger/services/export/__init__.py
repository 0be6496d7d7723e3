"""Export services package."""

from bakery_ledger.services.export.xlsx_exporter import (
    SHEET_TITLE,
    XlsxExporter,
    export_filename,
)

__all__ = ["SHEET_TITLE", "XlsxExporter", "export_filename"]
