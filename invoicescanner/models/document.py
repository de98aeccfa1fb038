"""
Core Data Models for Invoice Scanner

These models define the schemas for every record flowing through the system.
There are two document variants (a generic vendor invoice and a utility
meter-bill) and each exists in two lifecycle stages:

1. DRAFT - what the extraction service proposed, possibly edited by the
   reviewer. Every field is optional because extraction is best-effort.
2. COMMITTED - a draft frozen into the collection. Required fields are
   enforced and the record carries an identity and a scan timestamp.

DESIGN DECISION: Drafts are never mutated in place. An edit produces a new,
re-validated draft so an invalid value can never leave a half-applied draft
behind.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Annotated, Any, ClassVar, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
)


# =============================================================================
# ENUMS & CONSTANTS
# =============================================================================

class DocumentVariant(str, Enum):
    """
    The closed set of document shapes the scanner understands.

    Both variants share the reconciliation capability but use
    different formulas and tolerances (see invoicescanner.reconciliation).
    """
    INVOICE = "invoice"
    UTILITY_BILL = "utility_bill"


# Utility bills are always billed in a single, fixed unit
UTILITY_BILL_CURRENCY = "EUR"

Amount = Annotated[Decimal, Field(ge=0)]

BILLING_MONTH_PATTERN = r"^(0[1-9]|1[0-2])-\d{4}$"


def _blank_to_none(value: Any) -> Any:
    """Cleared form fields arrive as empty strings; treat them as absent."""
    if isinstance(value, str) and not value.strip():
        return None
    return value


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# =============================================================================
# COMMITTED RECORDS (frozen, identity assigned)
# =============================================================================

class CommittedDocument(BaseModel):
    """
    A record frozen into the collection.

    CRITICAL: Committed records are immutable. Edits only ever happen on
    drafts, before commit.
    """
    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    variant: ClassVar[DocumentVariant]

    id: str = Field(
        ...,
        min_length=1,
        description="Opaque unique identifier assigned at commit"
    )
    scanned_at: datetime = Field(
        ...,
        description="Commit instant (UTC)"
    )
    total_amount: Amount

    @field_validator("scanned_at")
    @classmethod
    def normalize_scanned_at(cls, v: datetime) -> datetime:
        return _as_utc(v)


class CommittedInvoice(CommittedDocument):
    """An invoice in the collection."""

    variant: ClassVar[DocumentVariant] = DocumentVariant.INVOICE

    vendor_name: str = Field(..., min_length=1, max_length=200)
    invoice_number: str = Field(..., min_length=1, max_length=100)
    invoice_date: date
    due_date: Optional[date] = None
    currency: str = Field(..., min_length=1, max_length=10)
    net_amount: Amount
    tax_amount: Amount
    iban: Optional[str] = None


class RecordedMeterReadings(BaseModel):
    """Meter readings of a committed utility bill. Both are required."""
    model_config = ConfigDict(frozen=True)

    high_tariff: Amount
    low_tariff: Amount


class CommittedUtilityBill(CommittedDocument):
    """A utility bill in the collection."""

    variant: ClassVar[DocumentVariant] = DocumentVariant.UTILITY_BILL

    customer_id: str = Field(..., min_length=1, max_length=100)
    customer_name: str = Field(..., min_length=1, max_length=200)
    billing_month: str = Field(..., pattern=BILLING_MONTH_PATTERN)
    invoice_date: date
    meter_readings: RecordedMeterReadings

    @property
    def currency(self) -> str:
        return UTILITY_BILL_CURRENCY


# =============================================================================
# DRAFTS (under review, no identity yet)
# =============================================================================

class MeterReadings(BaseModel):
    """High/low tariff readings as extracted. Either may still be missing."""
    model_config = ConfigDict(extra="forbid")

    high_tariff: Optional[Amount] = None
    low_tariff: Optional[Amount] = None

    @field_validator("*", mode="before")
    @classmethod
    def blank_to_none(cls, v: Any) -> Any:
        return _blank_to_none(v)


class DocumentDraft(BaseModel, ABC):
    """
    Base class for an uncommitted, reviewable document.

    Subclasses declare which variant they are and which committed model
    they freeze into.
    """
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    variant: ClassVar[DocumentVariant]
    committed_model: ClassVar[type[CommittedDocument]]
    required_fields: ClassVar[tuple[str, ...]] = ()

    total_amount: Optional[Amount] = Field(
        default=None,
        description="Total payable amount as declared on the document"
    )

    @field_validator("*", mode="before")
    @classmethod
    def blank_to_none(cls, v: Any) -> Any:
        return _blank_to_none(v)

    def with_changes(self, **changes: Any) -> "DocumentDraft":
        """
        Return a new draft with the given field changes applied.

        Nested groups (meter readings) are merged rather than replaced, so
        `with_changes(meter_readings={"low_tariff": 12})` keeps the high
        tariff reading.

        Raises:
            pydantic.ValidationError: If a changed value is invalid or names
                a field the draft does not have.
        """
        data = self.model_dump()
        for name, value in changes.items():
            current = data.get(name)
            if isinstance(current, dict) and isinstance(value, dict):
                data[name] = {**current, **value}
            elif isinstance(value, BaseModel):
                data[name] = value.model_dump()
            else:
                data[name] = value
        return type(self).model_validate(data)

    @abstractmethod
    def reconciliation_fields(self) -> dict[str, Any]:
        """The monetary inputs the consistency checker needs."""
        pass

    def is_empty(self) -> bool:
        """True if no field at all carries a value."""
        return all(
            value is None
            or (isinstance(value, BaseModel) and all(sub is None for _, sub in value))
            for _, value in self
        )

    def missing_fields(self) -> list[str]:
        """Names of required fields that are still absent."""
        missing = []
        for name in self.required_fields:
            value = getattr(self, name)
            if value is None:
                missing.append(name)
            elif isinstance(value, BaseModel):
                missing.extend(
                    f"{name}.{sub}"
                    for sub, sub_value in value
                    if sub_value is None
                )
        return missing

    def to_committed(
        self,
        record_id: str,
        scanned_at: datetime,
    ) -> CommittedDocument:
        """
        Freeze this draft into its committed model.

        Raises:
            pydantic.ValidationError: If a required field is absent or
                a committed-only constraint (e.g. billing month format) fails.
        """
        return self.committed_model.model_validate({
            **self.model_dump(),
            "id": record_id,
            "scanned_at": scanned_at,
        })


class InvoiceDraft(DocumentDraft):
    """A generic vendor invoice under review."""

    variant: ClassVar[DocumentVariant] = DocumentVariant.INVOICE
    committed_model: ClassVar[type[CommittedDocument]] = CommittedInvoice
    required_fields: ClassVar[tuple[str, ...]] = (
        "vendor_name",
        "invoice_number",
        "invoice_date",
        "currency",
        "net_amount",
        "tax_amount",
        "total_amount",
    )

    vendor_name: Optional[str] = Field(default=None, max_length=200)
    invoice_number: Optional[str] = Field(default=None, max_length=100)
    invoice_date: Optional[date] = None
    due_date: Optional[date] = None
    currency: Optional[str] = Field(default=None, max_length=10)
    net_amount: Optional[Amount] = Field(
        default=None,
        description="Amount before tax (subtotal)"
    )
    tax_amount: Optional[Amount] = None
    iban: Optional[str] = Field(
        default=None,
        max_length=64,
        description="Payment routing identifier, stored as-is"
    )

    @field_validator("currency")
    @classmethod
    def upper_currency(cls, v: Optional[str]) -> Optional[str]:
        return v.upper() if v else v

    def reconciliation_fields(self) -> dict[str, Any]:
        return {
            "net_amount": self.net_amount,
            "tax_amount": self.tax_amount,
            "total_amount": self.total_amount,
        }


class UtilityBillDraft(DocumentDraft):
    """A utility meter-bill under review."""

    variant: ClassVar[DocumentVariant] = DocumentVariant.UTILITY_BILL
    committed_model: ClassVar[type[CommittedDocument]] = CommittedUtilityBill
    required_fields: ClassVar[tuple[str, ...]] = (
        "customer_id",
        "customer_name",
        "billing_month",
        "invoice_date",
        "meter_readings",
        "total_amount",
    )

    customer_id: Optional[str] = Field(default=None, max_length=100)
    customer_name: Optional[str] = Field(default=None, max_length=200)
    billing_month: Optional[str] = Field(
        default=None,
        description="Billing month as MM-YYYY"
    )
    invoice_date: Optional[date] = None
    meter_readings: MeterReadings = Field(default_factory=MeterReadings)

    @field_validator("meter_readings", mode="before")
    @classmethod
    def default_readings(cls, v: Any) -> Any:
        return MeterReadings() if v is None else v

    @property
    def currency(self) -> str:
        return UTILITY_BILL_CURRENCY

    def reconciliation_fields(self) -> dict[str, Any]:
        return {
            "high_tariff": self.meter_readings.high_tariff,
            "low_tariff": self.meter_readings.low_tariff,
            "total_amount": self.total_amount,
        }



# Polymorphic aliases over the two variants
ExtractedDocument = Union[InvoiceDraft, UtilityBillDraft]
CommittedRecord = Union[CommittedInvoice, CommittedUtilityBill]

DRAFT_MODELS: dict[DocumentVariant, type[DocumentDraft]] = {
    DocumentVariant.INVOICE: InvoiceDraft,
    DocumentVariant.UTILITY_BILL: UtilityBillDraft,
}

COMMITTED_MODELS: dict[DocumentVariant, type[CommittedDocument]] = {
    DocumentVariant.INVOICE: CommittedInvoice,
    DocumentVariant.UTILITY_BILL: CommittedUtilityBill,
}


# =============================================================================
# DERIVED MODELS (never persisted)
# =============================================================================

class ValidationResult(BaseModel):
    """
    Outcome of the consistency check on a draft.

    Purely advisory: an inconsistent result never blocks commit.
    Recomputed on every edit, never stored with the record.
    """

    variant: DocumentVariant
    is_consistent: bool = Field(
        ...,
        description="Declared total matches the expected total within tolerance"
    )
    expected_total: Decimal = Field(
        ...,
        description="Total computed from the other monetary fields"
    )
    declared_total: Decimal = Field(
        ...,
        description="Total as declared on the document (0 if absent)"
    )
    deviation_percent: Decimal = Field(
        ...,
        ge=0,
        description="Relative gap between expected and declared total, in percent"
    )
    tolerance_percent: Decimal = Field(
        ...,
        description="Maximum deviation accepted for this variant"
    )
    missing_fields: list[str] = Field(
        default_factory=list,
        description="Monetary inputs that were absent or non-numeric"
    )

    @property
    def has_missing_inputs(self) -> bool:
        return bool(self.missing_fields)


class CollectionSummary(BaseModel):
    """Dashboard figures for the committed collection."""

    variant: DocumentVariant
    record_count: int = Field(ge=0)
    total_value: Decimal = Field(
        ...,
        description="Sum of total_amount over all records"
    )
