"""Services package."""

from invoicescanner.services.capture import (
    CaptureDevice,
    CaptureError,
    CaptureUnavailableError,
    EncodedImage,
    FileImageSource,
    capture_session,
)
from invoicescanner.services.extraction import (
    ExtractionError,
    ExtractionFailedError,
    ExtractionServiceInterface,
    GeminiExtractionService,
)
from invoicescanner.services.storage import (
    CollectionStore,
    IncompleteDraftError,
    InMemoryKeyValueStore,
    KeyValueStoreInterface,
    LocalKeyValueStore,
    PersistDecodeFailedError,
    PersistWriteFailedError,
    StorageError,
)

__all__ = [
    # Capture services
    "CaptureDevice",
    "CaptureError",
    "CaptureUnavailableError",
    "EncodedImage",
    "FileImageSource",
    "capture_session",
    # Extraction services
    "ExtractionError",
    "ExtractionFailedError",
    "ExtractionServiceInterface",
    "GeminiExtractionService",
    # Storage services
    "CollectionStore",
    "IncompleteDraftError",
    "InMemoryKeyValueStore",
    "KeyValueStoreInterface",
    "LocalKeyValueStore",
    "PersistDecodeFailedError",
    "PersistWriteFailedError",
    "StorageError",
]
