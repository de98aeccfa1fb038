"""Image capture package."""

from invoicescanner.services.capture.capture_service import (
    ALLOWED_MIME_TYPES,
    CaptureDevice,
    CaptureError,
    CaptureUnavailableError,
    EncodedImage,
    FileImageSource,
    capture_session,
    encode_image,
)

__all__ = [
    "ALLOWED_MIME_TYPES",
    "CaptureDevice",
    "CaptureError",
    "CaptureUnavailableError",
    "EncodedImage",
    "FileImageSource",
    "capture_session",
    "encode_image",
]
