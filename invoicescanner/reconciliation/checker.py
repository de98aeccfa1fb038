"""
Consistency Checker

Flags likely extraction errors by recomputing a document's total from its
other monetary fields and comparing it with the declared total.

VARIANT FORMULAS:
- Invoice: expected = net + tax. This is an exact accounting identity,
  so the tolerance is tight (2%) and only absorbs rounding.
- Utility bill: expected = high * R_high + low * R_low. This ignores fixed
  fees and VAT printed on the real bill, so the tolerance is wide (25%).

The two tolerances must stay separate.

IMPORTANT: The checker NEVER fixes anything and NEVER blocks commit.
A mismatch is a hint for the reviewer, nothing more.
"""

from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Mapping, Optional

from invoicescanner.models.document import (
    DocumentDraft,
    DocumentVariant,
    ValidationResult,
)


INVOICE_TOLERANCE_PERCENT = Decimal("2")
UTILITY_BILL_TOLERANCE_PERCENT = Decimal("25")

# Per-kWh tariff rates for the utility bill estimate
HIGH_TARIFF_RATE = Decimal("0.09")
LOW_TARIFF_RATE = Decimal("0.04")

# A zero declared total cannot be compared against
ZERO_TOTAL_DEVIATION = Decimal("100")

_ZERO = Decimal("0")
_HUNDRED = Decimal("100")
_CENT = Decimal("0.01")


def coerce_amount(value: Any) -> Optional[Decimal]:
    """
    Convert a raw field value to a non-negative Decimal.

    Returns None for missing, non-numeric, non-finite or negative values.
    """
    if value is None or isinstance(value, bool):
        return None
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    if not amount.is_finite() or amount < 0:
        return None
    return amount


def _reconcile(
    variant: DocumentVariant,
    expected_total: Decimal,
    raw_total: Any,
    missing: list[str],
    tolerance: Decimal,
) -> ValidationResult:
    declared_total = coerce_amount(raw_total)
    if declared_total is None:
        missing.append("total_amount")
        declared_total = _ZERO

    if declared_total == 0:
        deviation = ZERO_TOTAL_DEVIATION
    else:
        deviation = _HUNDRED * abs(expected_total - declared_total) / declared_total

    return ValidationResult(
        variant=variant,
        is_consistent=not missing and deviation <= tolerance,
        expected_total=expected_total,
        declared_total=declared_total,
        deviation_percent=deviation,
        tolerance_percent=tolerance,
        missing_fields=missing,
    )


def _amounts(fields: Mapping[str, Any], names: tuple[str, ...]) -> tuple[list[Decimal], list[str]]:
    values = []
    missing = []
    for name in names:
        amount = coerce_amount(fields.get(name))
        if amount is None:
            missing.append(name)
            amount = _ZERO
        values.append(amount)
    return values, missing


def check_invoice(fields: Mapping[str, Any]) -> ValidationResult:
    """
    Check net + tax against the declared total.

    Args:
        fields: Mapping with net_amount, tax_amount and total_amount.
            Values may be numbers, numeric strings, or missing.
    """
    (net, tax), missing = _amounts(fields, ("net_amount", "tax_amount"))
    return _reconcile(
        DocumentVariant.INVOICE,
        net + tax,
        fields.get("total_amount"),
        missing,
        INVOICE_TOLERANCE_PERCENT,
    )


def check_utility_bill(fields: Mapping[str, Any]) -> ValidationResult:
    """
    Check the tariff estimate against the declared total.

    Args:
        fields: Mapping with high_tariff, low_tariff and total_amount.
    """
    (high, low), missing = _amounts(fields, ("high_tariff", "low_tariff"))
    return _reconcile(
        DocumentVariant.UTILITY_BILL,
        high * HIGH_TARIFF_RATE + low * LOW_TARIFF_RATE,
        fields.get("total_amount"),
        missing,
        UTILITY_BILL_TOLERANCE_PERCENT,
    )


CHECKERS: dict[DocumentVariant, Callable[[Mapping[str, Any]], ValidationResult]] = {
    DocumentVariant.INVOICE: check_invoice,
    DocumentVariant.UTILITY_BILL: check_utility_bill,
}


def check_document(draft: DocumentDraft) -> ValidationResult:
    """Run the checker matching the draft's variant."""
    return CHECKERS[draft.variant](draft.reconciliation_fields())


def summarize(result: ValidationResult) -> str:
    """
    Reviewer-facing one-liner for a check result.

    This is what the review screen shows above the form.
    """
    expected = result.expected_total.quantize(_CENT)
    declared = result.declared_total.quantize(_CENT)

    if result.variant == DocumentVariant.INVOICE:
        label = "Net + Tax"
    else:
        label = "Tariff estimate"

    if result.is_consistent:
        return f"✅ Math verified: {label} ({expected}) matches Total ({declared})."

    lines = [
        f"⚠️ Amount mismatch: {label} ({expected}) does not equal "
        f"Total ({declared}), off by {result.deviation_percent.quantize(Decimal('0.1'))}%."
    ]
    if result.missing_fields:
        lines.append(f"   • Missing or unreadable: {', '.join(result.missing_fields)}")
    lines.append("Check the amounts before saving.")
    return "\n".join(lines)
