"""CSV export package."""

from invoicescanner.export.csv_export import (
    INVOICE_HEADER,
    UTILITY_BILL_HEADER,
    export_csv,
    export_filename,
    write_export,
)

__all__ = [
    "INVOICE_HEADER",
    "UTILITY_BILL_HEADER",
    "export_csv",
    "export_filename",
    "write_export",
]
