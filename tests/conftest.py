"""
Shared fixtures for Invoice Scanner tests.

No real API calls or camera access: extraction and capture are faked.
"""

import asyncio
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from io import BytesIO
from typing import Optional

import pytest
from PIL import Image

from invoicescanner.audit import AuditLogger
from invoicescanner.models.document import (
    DocumentDraft,
    DocumentVariant,
    InvoiceDraft,
    UtilityBillDraft,
)
from invoicescanner.services.capture import (
    CaptureDevice,
    CaptureUnavailableError,
    EncodedImage,
)
from invoicescanner.services.extraction import (
    ExtractionFailedError,
    ExtractionServiceInterface,
)
from invoicescanner.services.storage import CollectionStore, InMemoryKeyValueStore


def make_invoice_draft(**overrides) -> InvoiceDraft:
    data = {
        "vendor_name": "Acme Supplies",
        "invoice_number": "INV-1001",
        "invoice_date": date(2024, 5, 2),
        "due_date": date(2024, 6, 1),
        "currency": "EUR",
        "net_amount": Decimal("100.00"),
        "tax_amount": Decimal("20.00"),
        "total_amount": Decimal("120.00"),
        "iban": "DE89370400440532013000",
    }
    data.update(overrides)
    return InvoiceDraft(**data)


def make_utility_bill_draft(**overrides) -> UtilityBillDraft:
    data = {
        "customer_id": "C-42",
        "customer_name": "Jane Doe",
        "billing_month": "03-2024",
        "invoice_date": date(2024, 4, 5),
        "meter_readings": {"high_tariff": Decimal("1000"), "low_tariff": Decimal("500")},
        "total_amount": Decimal("110.00"),
    }
    data.update(overrides)
    return UtilityBillDraft(**data)


def png_bytes(width: int = 64, height: int = 32, mode: str = "RGBA") -> bytes:
    buffer = BytesIO()
    Image.new(mode, (width, height), color=(200, 120, 40, 255)[: len(mode)]).save(
        buffer, format="PNG"
    )
    return buffer.getvalue()


class StepClock:
    """Deterministic clock; each call advances by one second unless pinned."""

    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2024, 5, 31, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        current = self.now
        self.now = self.now + timedelta(seconds=1)
        return current


class FakeExtractor(ExtractionServiceInterface):
    """Returns queued drafts or raises queued errors, in order."""

    def __init__(self, *results):
        self.results = list(results)
        self.calls: list[tuple[EncodedImage, DocumentVariant]] = []
        self.gate: Optional[asyncio.Event] = None

    async def extract(self, image: EncodedImage, variant: DocumentVariant) -> DocumentDraft:
        self.calls.append((image, variant))
        if self.gate is not None:
            await self.gate.wait()
        result = self.results.pop(0)
        if isinstance(result, Exception):
            raise result
        return result


class SlowExtractor(ExtractionServiceInterface):
    """Never finishes in time."""

    async def extract(self, image: EncodedImage, variant: DocumentVariant) -> DocumentDraft:
        await asyncio.sleep(10)
        raise ExtractionFailedError("unreachable")


class FakeCaptureDevice(CaptureDevice):
    """Tracks open/close calls; can fail on open or on capture."""

    def __init__(
        self,
        image: Optional[EncodedImage] = None,
        fail_open: bool = False,
        fail_capture: Optional[Exception] = None,
    ):
        self.image = image
        self.fail_open = fail_open
        self.fail_capture = fail_capture
        self.opened = 0
        self.closed = 0

    async def open(self) -> None:
        self.opened += 1
        if self.fail_open:
            raise CaptureUnavailableError("Permission denied")

    async def capture(self) -> EncodedImage:
        if self.fail_capture is not None:
            raise self.fail_capture
        return self.image

    async def close(self) -> None:
        self.closed += 1


@pytest.fixture
def audit_logger():
    return AuditLogger(name="invoicescanner.tests")


@pytest.fixture
def backend():
    return InMemoryKeyValueStore()


@pytest.fixture
def clock():
    return StepClock()


@pytest.fixture
def invoice_store(backend, audit_logger, clock):
    return CollectionStore(backend, DocumentVariant.INVOICE, audit_logger, clock=clock)


@pytest.fixture
def utility_store(backend, audit_logger, clock):
    return CollectionStore(backend, DocumentVariant.UTILITY_BILL, audit_logger, clock=clock)


@pytest.fixture
def image():
    return EncodedImage(data=b"\xff\xd8fakejpeg", mime_type="image/jpeg", width=10, height=10)
