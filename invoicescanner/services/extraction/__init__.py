"""Extraction services package."""

from invoicescanner.services.extraction.interface import (
    ExtractionError,
    ExtractionFailedError,
    ExtractionServiceInterface,
)
from invoicescanner.services.extraction.gemini_service import GeminiExtractionService

__all__ = [
    "ExtractionError",
    "ExtractionFailedError",
    "ExtractionServiceInterface",
    "GeminiExtractionService",
]
