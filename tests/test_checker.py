"""
Tests for the consistency checker.

Amounts are compared as Decimal so rounding never creeps in.
"""

from decimal import Decimal

import pytest

from invoicescanner.models.document import DocumentVariant
from invoicescanner.reconciliation import (
    INVOICE_TOLERANCE_PERCENT,
    UTILITY_BILL_TOLERANCE_PERCENT,
    check_document,
    check_invoice,
    check_utility_bill,
    coerce_amount,
    summarize,
)
from tests.conftest import make_invoice_draft, make_utility_bill_draft


class TestCoerceAmount:
    """Tests for raw value coercion."""

    @pytest.mark.parametrize("raw, expected", [
        (Decimal("1.5"), Decimal("1.5")),
        ("12.30", Decimal("12.30")),
        (" 7 ", Decimal("7")),
        (3, Decimal("3")),
        (0, Decimal("0")),
    ])
    def test_numeric_values(self, raw, expected):
        assert coerce_amount(raw) == expected

    @pytest.mark.parametrize("raw", [None, "", "abc", "NaN", "Infinity", "-5", True])
    def test_unusable_values(self, raw):
        assert coerce_amount(raw) is None


class TestInvoiceCheck:
    """Tests for net + tax against the declared total."""

    def test_exact_match(self):
        result = check_invoice({
            "net_amount": Decimal("100"),
            "tax_amount": Decimal("20"),
            "total_amount": Decimal("120"),
        })
        assert result.is_consistent is True
        assert result.expected_total == Decimal("120")
        assert result.deviation_percent == Decimal("0")
        assert result.tolerance_percent == INVOICE_TOLERANCE_PERCENT

    def test_rounding_within_tolerance(self):
        """1.5% off is still consistent."""
        result = check_invoice({"net_amount": "100", "tax_amount": "18.2", "total_amount": "120"})
        assert result.deviation_percent == Decimal("1.5")
        assert result.is_consistent is True

    def test_tolerance_boundary_is_inclusive(self):
        result = check_invoice({"net_amount": "98", "tax_amount": "0", "total_amount": "100"})
        assert result.deviation_percent == Decimal("2")
        assert result.is_consistent is True

    def test_mismatch(self):
        result = check_invoice({"net_amount": "100", "tax_amount": "20", "total_amount": "150"})
        assert result.expected_total == Decimal("120")
        assert result.deviation_percent == Decimal("20")
        assert result.is_consistent is False

    def test_missing_tax_counts_as_zero_and_fails(self):
        result = check_invoice({"net_amount": "100", "total_amount": "100"})
        assert result.expected_total == Decimal("100")
        assert result.deviation_percent == Decimal("0")
        assert result.missing_fields == ["tax_amount"]
        assert result.is_consistent is False

    def test_non_numeric_input_is_missing(self):
        result = check_invoice({"net_amount": "n/a", "tax_amount": "20", "total_amount": "120"})
        assert result.missing_fields == ["net_amount"]
        assert result.is_consistent is False

    def test_zero_total(self):
        """A zero total cannot be compared; deviation is pinned to 100%."""
        result = check_invoice({"net_amount": "0", "tax_amount": "0", "total_amount": "0"})
        assert result.deviation_percent == Decimal("100")
        assert result.is_consistent is False

    def test_missing_total(self):
        result = check_invoice({"net_amount": "10", "tax_amount": "2"})
        assert result.declared_total == Decimal("0")
        assert result.deviation_percent == Decimal("100")
        assert "total_amount" in result.missing_fields


class TestUtilityBillCheck:
    """Tests for the tariff estimate against the declared total."""

    def test_estimate_within_tolerance(self):
        # 1000 * 0.09 + 500 * 0.04 = 110
        result = check_utility_bill({"high_tariff": 1000, "low_tariff": 500, "total_amount": "130"})
        assert result.expected_total == Decimal("110")
        assert result.is_consistent is True
        assert result.tolerance_percent == UTILITY_BILL_TOLERANCE_PERCENT

    def test_estimate_outside_tolerance(self):
        result = check_utility_bill({"high_tariff": 1000, "low_tariff": 500, "total_amount": "200"})
        assert result.deviation_percent == Decimal("45")
        assert result.is_consistent is False

    def test_wide_tolerance_only_for_utility_bills(self):
        """A 10% gap passes for a utility bill but fails for an invoice."""
        bill = check_utility_bill({"high_tariff": 1000, "low_tariff": 500, "total_amount": "100"})
        invoice = check_invoice({"net_amount": "110", "tax_amount": "0", "total_amount": "100"})
        assert bill.deviation_percent == invoice.deviation_percent == Decimal("10")
        assert bill.is_consistent is True
        assert invoice.is_consistent is False

    def test_missing_reading(self):
        result = check_utility_bill({"high_tariff": 1000, "total_amount": "90"})
        assert result.missing_fields == ["low_tariff"]
        assert result.is_consistent is False


class TestCheckDocument:
    """Tests for dispatch by draft variant."""

    def test_invoice_draft(self):
        result = check_document(make_invoice_draft())
        assert result.variant == DocumentVariant.INVOICE
        assert result.is_consistent is True

    def test_utility_bill_draft(self):
        result = check_document(make_utility_bill_draft())
        assert result.variant == DocumentVariant.UTILITY_BILL
        assert result.is_consistent is True

    def test_is_pure(self):
        draft = make_invoice_draft(total_amount=Decimal("150"))
        assert check_document(draft) == check_document(draft)


class TestSummarize:
    """Tests for the reviewer-facing message."""

    def test_consistent_message(self):
        message = summarize(check_document(make_invoice_draft()))
        assert message == "✅ Math verified: Net + Tax (120.00) matches Total (120.00)."

    def test_mismatch_message(self):
        message = summarize(check_document(make_invoice_draft(total_amount=Decimal("150"))))
        assert "Amount mismatch" in message
        assert "off by 20.0%" in message
        assert "Missing" not in message

    def test_mismatch_lists_missing(self):
        message = summarize(check_document(make_utility_bill_draft(total_amount=None)))
        assert "Tariff estimate (110.00)" in message
        assert "Missing or unreadable: total_amount" in message
