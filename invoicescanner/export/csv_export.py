"""
CSV Export

Renders the committed collection as a flat comma-separated table.

FORMAT RULES:
- Column order is fixed per variant
- The vendor (invoice) and name (utility bill) columns are always quoted
- Any other cell containing a comma, quote or newline is quoted, with
  embedded quotes doubled
- Amounts and readings always carry exactly two decimals
- Rows keep the collection order (newest first); nothing is re-sorted
- An empty collection produces no output at all
"""

from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from pathlib import Path
from typing import Callable, Optional, Sequence

from invoicescanner.models.document import (
    CommittedDocument,
    CommittedInvoice,
    CommittedUtilityBill,
    DocumentVariant,
)


DELIMITER = ","

INVOICE_HEADER = [
    "Invoice Date",
    "Due Date",
    "Vendor",
    "Invoice #",
    "Net",
    "Tax",
    "Total",
    "Currency",
    "IBAN",
]

UTILITY_BILL_HEADER = [
    "Customer ID",
    "Name",
    "Month",
    "Date",
    "A1 (High)",
    "A2 (Low)",
    "Total (€)",
]

FILENAME_PREFIXES: dict[DocumentVariant, str] = {
    DocumentVariant.INVOICE: "invoice_export",
    DocumentVariant.UTILITY_BILL: "meterbill_export",
}

_CENT = Decimal("0.01")


def _quoted(text: str) -> str:
    return '"' + text.replace('"', '""') + '"'


def _cell(value: Optional[str]) -> str:
    if value is None:
        return ""
    if any(ch in value for ch in (DELIMITER, '"', "\n", "\r")):
        return _quoted(value)
    return value


def _number(value: Decimal) -> str:
    return str(value.quantize(_CENT, rounding=ROUND_HALF_UP))


def _date(value: Optional[date]) -> str:
    return value.isoformat() if value else ""


def _invoice_row(record: CommittedInvoice) -> list[str]:
    return [
        _date(record.invoice_date),
        _date(record.due_date),
        _quoted(record.vendor_name),
        _cell(record.invoice_number),
        _number(record.net_amount),
        _number(record.tax_amount),
        _number(record.total_amount),
        _cell(record.currency),
        _cell(record.iban),
    ]


def _utility_bill_row(record: CommittedUtilityBill) -> list[str]:
    return [
        _cell(record.customer_id),
        _quoted(record.customer_name),
        _cell(record.billing_month),
        _date(record.invoice_date),
        _number(record.meter_readings.high_tariff),
        _number(record.meter_readings.low_tariff),
        _number(record.total_amount),
    ]


_LAYOUTS: dict[DocumentVariant, tuple[list[str], Callable]] = {
    DocumentVariant.INVOICE: (INVOICE_HEADER, _invoice_row),
    DocumentVariant.UTILITY_BILL: (UTILITY_BILL_HEADER, _utility_bill_row),
}


def export_csv(
    records: Sequence[CommittedDocument],
    variant: DocumentVariant,
) -> Optional[str]:
    """
    Serialize records to CSV text.

    Returns:
        Header plus one line per record joined by newlines, or None if
        there are no records.
    """
    if not records:
        return None

    header, to_row = _LAYOUTS[variant]
    lines = [DELIMITER.join(header)]
    for record in records:
        if record.variant != variant:
            raise ValueError(
                f"Cannot export a {record.variant.value} record as {variant.value}"
            )
        lines.append(DELIMITER.join(to_row(record)))
    return "\n".join(lines)


def export_filename(variant: DocumentVariant, on: Optional[date] = None) -> str:
    """Dated file name for an export, e.g. invoice_export_2024-05-31.csv."""
    on = on or date.today()
    return f"{FILENAME_PREFIXES[variant]}_{on.isoformat()}.csv"


def write_export(
    records: Sequence[CommittedDocument],
    variant: DocumentVariant,
    directory: Path,
    on: Optional[date] = None,
) -> Optional[Path]:
    """
    Write the CSV export into a directory.

    Returns:
        Path of the written file, or None if there was nothing to export.
    """
    content = export_csv(records, variant)
    if content is None:
        return None

    directory = Path(directory)
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / export_filename(variant, on)
    path.write_text(content, encoding="utf-8")
    return path
