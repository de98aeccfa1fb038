"""
Abstract Extraction Interface

The extraction service is an external collaborator: given an encoded
image it returns a best-effort draft or fails. The workflow only depends
on this interface, so providers can be swapped and faked in tests.
"""

from abc import ABC, abstractmethod

from invoicescanner.models.document import DocumentDraft, DocumentVariant
from invoicescanner.services.capture import EncodedImage


class ExtractionServiceInterface(ABC):
    """Turns a document image into a draft of the requested variant."""

    @abstractmethod
    async def extract(
        self,
        image: EncodedImage,
        variant: DocumentVariant,
    ) -> DocumentDraft:
        """
        Extract a draft record from an image.

        Missing fields are left as None, never invented.

        Raises:
            ExtractionFailedError: If no usable structured data came back.
        """
        pass


class ExtractionError(Exception):
    """Base exception for extraction errors."""
    pass


class ExtractionFailedError(ExtractionError):
    """The extraction service returned nothing usable or raised an error."""
    pass
