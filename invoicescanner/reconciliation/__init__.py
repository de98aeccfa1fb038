"""Consistency checking package."""

from invoicescanner.reconciliation.checker import (
    HIGH_TARIFF_RATE,
    INVOICE_TOLERANCE_PERCENT,
    LOW_TARIFF_RATE,
    UTILITY_BILL_TOLERANCE_PERCENT,
    check_document,
    check_invoice,
    check_utility_bill,
    coerce_amount,
    summarize,
)

__all__ = [
    "HIGH_TARIFF_RATE",
    "INVOICE_TOLERANCE_PERCENT",
    "LOW_TARIFF_RATE",
    "UTILITY_BILL_TOLERANCE_PERCENT",
    "check_document",
    "check_invoice",
    "check_utility_bill",
    "coerce_amount",
    "summarize",
]
