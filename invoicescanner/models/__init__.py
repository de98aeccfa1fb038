"""
Data Models Package

This package contains all Pydantic models used in the Invoice Scanner.
All data flowing through the system must conform to these schemas.
"""

from invoicescanner.models.document import (
    COMMITTED_MODELS,
    DRAFT_MODELS,
    UTILITY_BILL_CURRENCY,
    CollectionSummary,
    CommittedDocument,
    CommittedInvoice,
    CommittedRecord,
    CommittedUtilityBill,
    DocumentDraft,
    DocumentVariant,
    ExtractedDocument,
    InvoiceDraft,
    MeterReadings,
    RecordedMeterReadings,
    UtilityBillDraft,
    ValidationResult,
)
from invoicescanner.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Document models
    "COMMITTED_MODELS",
    "DRAFT_MODELS",
    "UTILITY_BILL_CURRENCY",
    "CollectionSummary",
    "CommittedDocument",
    "CommittedInvoice",
    "CommittedRecord",
    "CommittedUtilityBill",
    "DocumentDraft",
    "DocumentVariant",
    "ExtractedDocument",
    "InvoiceDraft",
    "MeterReadings",
    "RecordedMeterReadings",
    "UtilityBillDraft",
    "ValidationResult",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
