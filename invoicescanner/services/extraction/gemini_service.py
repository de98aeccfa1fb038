"""
Extraction Service using Gemini

DESIGN DECISION: We use a multimodal LLM (Gemini) because:
1. It returns STRUCTURED data directly from a photo
2. One prompt per variant covers both invoices and utility bills
3. JSON output mode keeps parsing trivial

This service handles:
1. Sending the encoded image plus a fixed, variant-specific instruction
2. Parsing the JSON response
3. Normalizing values into a draft (bad amounts/dates become None)

CRITICAL: The model is told NOT to make up data. Whatever it could not
read stays None and the reviewer fills it in.
"""

import json
import re
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

import google.generativeai as genai
from pydantic import ValidationError
from tenacity import retry, stop_after_attempt, wait_exponential

from invoicescanner.config import get_settings
from invoicescanner.models.document import (
    DRAFT_MODELS,
    DocumentDraft,
    DocumentVariant,
)
from invoicescanner.services.capture import EncodedImage
from invoicescanner.services.extraction.interface import (
    ExtractionFailedError,
    ExtractionServiceInterface,
)


INVOICE_INSTRUCTION = """You are an expert Accounts Payable assistant.
Extract structured data from this invoice for accounting and payment purposes.
- Identify the vendor name accurately.
- Extract the invoice number (often labeled Inv No, Invoice #, Fatura, etc.).
- Extract dates: invoice date and due date. If the due date is not explicit, use null.
- Extract amounts: total amount (payable), tax amount (VAT/GST) and net amount (subtotal).
- Extract payment information: look for an IBAN or bank account number.
- Determine the ISO currency code (EUR, USD, GBP, etc.).
- Do not make up data. If a field is missing, use null.

Respond with ONLY a JSON object with these keys:
{"vendor_name": str, "invoice_number": str, "invoice_date": "YYYY-MM-DD",
 "due_date": "YYYY-MM-DD" | null, "currency": str, "net_amount": number,
 "tax_amount": number, "total_amount": number, "iban": str | null}"""

UTILITY_BILL_INSTRUCTION = """You are reading an electricity utility bill.
- Extract the customer ID and customer name.
- Extract the billing month as MM-YYYY and the invoice date.
- Extract the meter readings: high tariff (A1) and low tariff (A2) consumption.
- Extract the total amount payable in EUR.
- Do not make up data. If a field is missing, use null.

Respond with ONLY a JSON object with these keys:
{"customer_id": str, "customer_name": str, "billing_month": "MM-YYYY",
 "invoice_date": "YYYY-MM-DD",
 "meter_readings": {"high_tariff": number, "low_tariff": number},
 "total_amount": number}"""

INSTRUCTIONS: dict[DocumentVariant, str] = {
    DocumentVariant.INVOICE: INVOICE_INSTRUCTION,
    DocumentVariant.UTILITY_BILL: UTILITY_BILL_INSTRUCTION,
}

_INVOICE_TEXT_FIELDS = ("vendor_name", "invoice_number", "currency", "iban")
_INVOICE_AMOUNT_FIELDS = ("net_amount", "tax_amount", "total_amount")
_BILL_TEXT_FIELDS = ("customer_id", "customer_name")

_MONTH_YEAR = re.compile(r"^\s*(\d{1,2})\s*[-/.]\s*(\d{4})\s*$")
_YEAR_MONTH = re.compile(r"^\s*(\d{4})\s*[-/.]\s*(\d{1,2})\s*$")


class GeminiExtractionService(ExtractionServiceInterface):
    """
    Extraction via the Gemini multimodal API.

    IMPORTANT BOUNDARIES:
    1. This service ONLY extracts - it does not check consistency
    2. Unparseable values are dropped to None, never guessed
    3. An empty or non-JSON response is a failure, not an empty draft
    """

    def __init__(self, model: Optional[Any] = None):
        """
        Args:
            model: A pre-built generative model. If None, one is created
                from GeminiSettings on first use.
        """
        self._model = model

    def _get_model(self) -> Any:
        """Get or create the Gemini model."""
        if self._model is None:
            settings = get_settings().gemini
            genai.configure(api_key=settings.api_key)
            self._model = genai.GenerativeModel(
                model_name=settings.model_name,
                generation_config={
                    "temperature": settings.temperature,
                    "max_output_tokens": settings.max_tokens,
                    "response_mime_type": "application/json",
                },
            )
        return self._model

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def _generate(self, image: EncodedImage, instruction: str) -> str:
        """Send one request. Retried on any API error."""
        response = await self._get_model().generate_content_async([
            {"mime_type": image.mime_type, "data": image.data},
            instruction,
        ])
        return response.text

    async def extract(
        self,
        image: EncodedImage,
        variant: DocumentVariant,
    ) -> DocumentDraft:
        try:
            text = await self._generate(image, INSTRUCTIONS[variant])
        except Exception as e:
            raise ExtractionFailedError(f"Extraction service error: {e}") from e

        return self.parse_response(text, variant)

    def parse_response(self, text: Optional[str], variant: DocumentVariant) -> DocumentDraft:
        """
        Parse the model's JSON answer into a draft.

        Raises:
            ExtractionFailedError: If there is no JSON object or no usable field.
        """
        if not text or not text.strip():
            raise ExtractionFailedError("No data returned from extraction service")

        # Find JSON in response
        start = text.find("{")
        end = text.rfind("}") + 1
        if start < 0 or end <= start:
            raise ExtractionFailedError("Extraction response contained no JSON object")
        try:
            raw = json.loads(text[start:end])
        except json.JSONDecodeError as e:
            raise ExtractionFailedError(f"Extraction response is not valid JSON: {e}") from e
        if not isinstance(raw, dict):
            raise ExtractionFailedError("Extraction response is not a JSON object")

        if variant == DocumentVariant.INVOICE:
            data = self._normalize_invoice(raw)
        else:
            data = self._normalize_utility_bill(raw)

        try:
            draft = DRAFT_MODELS[variant].model_validate(data)
        except ValidationError as e:
            raise ExtractionFailedError(f"Extracted data has an invalid shape: {e}") from e

        if draft.is_empty():
            raise ExtractionFailedError("No meaningful data could be extracted from this image")
        return draft

    def _normalize_invoice(self, raw: dict) -> dict:
        data: dict[str, Any] = {
            name: self._safe_text(raw.get(name)) for name in _INVOICE_TEXT_FIELDS
        }
        data.update({
            name: self._safe_decimal(raw.get(name)) for name in _INVOICE_AMOUNT_FIELDS
        })
        data["invoice_date"] = self._safe_date(raw.get("invoice_date"))
        data["due_date"] = self._safe_date(raw.get("due_date"))
        return data

    def _normalize_utility_bill(self, raw: dict) -> dict:
        data: dict[str, Any] = {
            name: self._safe_text(raw.get(name)) for name in _BILL_TEXT_FIELDS
        }
        readings = raw.get("meter_readings")
        if not isinstance(readings, dict):
            readings = {}
        data["meter_readings"] = {
            "high_tariff": self._safe_decimal(readings.get("high_tariff")),
            "low_tariff": self._safe_decimal(readings.get("low_tariff")),
        }
        data["billing_month"] = self._safe_billing_month(raw.get("billing_month"))
        data["invoice_date"] = self._safe_date(raw.get("invoice_date"))
        data["total_amount"] = self._safe_decimal(raw.get("total_amount"))
        return data

    def _safe_text(self, value) -> Optional[str]:
        if value is None:
            return None
        text = str(value).strip()
        return text or None

    def _safe_decimal(self, value) -> Optional[Decimal]:
        """Safely convert a value to a non-negative Decimal."""
        if value is None or isinstance(value, bool):
            return None
        try:
            amount = Decimal(str(value).strip())
        except (InvalidOperation, TypeError, ValueError):
            return None
        if not amount.is_finite() or amount < 0:
            return None
        return amount

    def _safe_date(self, value) -> Optional[date]:
        """Safely convert a value to date."""
        if value is None:
            return None
        if isinstance(value, datetime):
            return value.date()
        if isinstance(value, date):
            return value
        if isinstance(value, str):
            # Try common formats
            for fmt in ["%Y-%m-%d", "%d-%m-%Y", "%d/%m/%Y", "%Y/%m/%d", "%d.%m.%Y"]:
                try:
                    return datetime.strptime(value.strip(), fmt).date()
                except ValueError:
                    continue
        return None

    def _safe_billing_month(self, value) -> Optional[str]:
        """Normalize MM-YYYY, MM/YYYY and YYYY-MM to MM-YYYY."""
        text = self._safe_text(value)
        if text is None:
            return None
        match = _MONTH_YEAR.match(text)
        if match:
            month, year = match.groups()
        else:
            match = _YEAR_MONTH.match(text)
            if not match:
                return text
            year, month = match.groups()
        if not 1 <= int(month) <= 12:
            return text
        return f"{int(month):02d}-{year}"
