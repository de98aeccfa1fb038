"""
Image Capture Service

Produces the encoded image payload handed to the extraction service.

Two sources exist:
1. A capture device (camera). Hardware access is behind the CaptureDevice
   interface; `capture_session` guarantees the device is released on every
   exit path: successful capture, error, or cancellation.
2. File selection. This is the fallback when no device is available.

Both sources downscale wide images and re-encode them as JPEG to keep the
extraction payload small.
"""

from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from io import BytesIO
from pathlib import Path
from typing import AsyncIterator, Optional

from PIL import Image, UnidentifiedImageError
from pydantic import BaseModel, ConfigDict, Field, field_validator


ALLOWED_MIME_TYPES = {"image/jpeg", "image/png", "image/webp"}


class CaptureError(Exception):
    """Base exception for capture errors."""
    pass


class CaptureUnavailableError(CaptureError):
    """The capture device or image could not be acquired."""
    pass


class EncodedImage(BaseModel):
    """An image ready to be sent to the extraction service."""
    model_config = ConfigDict(frozen=True)

    data: bytes = Field(..., min_length=1)
    mime_type: str = "image/jpeg"
    width: Optional[int] = Field(default=None, ge=1)
    height: Optional[int] = Field(default=None, ge=1)
    source_name: Optional[str] = None

    @field_validator('mime_type')
    @classmethod
    def validate_mime_type(cls, v: str) -> str:
        """Only allow image types."""
        if v.lower() not in ALLOWED_MIME_TYPES:
            raise ValueError(f"Unsupported image type: {v}. Allowed: {ALLOWED_MIME_TYPES}")
        return v.lower()


def encode_image(
    raw: bytes,
    max_width: int = 1024,
    jpeg_quality: int = 80,
    source_name: Optional[str] = None,
) -> EncodedImage:
    """
    Downscale an image to at most `max_width` pixels wide and encode as JPEG.

    Aspect ratio is preserved. Narrower images are re-encoded unscaled.

    Raises:
        CaptureUnavailableError: If the bytes are not a readable image.
    """
    try:
        img = Image.open(BytesIO(raw))
        img.load()
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError) as e:
        raise CaptureUnavailableError(f"Could not read image: {e}") from e

    if img.mode != "RGB":
        img = img.convert("RGB")

    width, height = img.size
    if width > max_width:
        height = max(1, round(height * max_width / width))
        width = max_width
        img = img.resize((width, height), Image.Resampling.LANCZOS)

    buffer = BytesIO()
    img.save(buffer, format="JPEG", quality=jpeg_quality)
    return EncodedImage(
        data=buffer.getvalue(),
        mime_type="image/jpeg",
        width=width,
        height=height,
        source_name=source_name,
    )


class CaptureDevice(ABC):
    """
    A camera-like device yielding frames.

    Implementations wrap platform hardware. The workflow only ever uses a
    device inside `capture_session`.
    """

    @abstractmethod
    async def open(self) -> None:
        """
        Acquire the device stream.

        Raises:
            CaptureUnavailableError: If the device is missing or access is denied.
        """
        pass

    @abstractmethod
    async def capture(self) -> EncodedImage:
        """Grab one frame from the open stream."""
        pass

    @abstractmethod
    async def close(self) -> None:
        """Release the device stream. Must be safe to call more than once."""
        pass


@asynccontextmanager
async def capture_session(device: CaptureDevice) -> AsyncIterator[CaptureDevice]:
    """
    Scoped device acquisition.

    The device is closed unconditionally when the block exits, including
    when open() itself fails part-way.
    """
    try:
        await device.open()
        yield device
    finally:
        await device.close()


class FileImageSource:
    """Reads and encodes a user-selected image file."""

    def __init__(
        self,
        path: Path,
        max_width: int = 1024,
        jpeg_quality: int = 80,
    ):
        self._path = Path(path)
        self._max_width = max_width
        self._jpeg_quality = jpeg_quality

    async def read(self) -> EncodedImage:
        """
        Load the file and encode it for extraction.

        Raises:
            CaptureUnavailableError: If the file is missing or not an image.
        """
        try:
            raw = self._path.read_bytes()
        except OSError as e:
            raise CaptureUnavailableError(f"Could not open {self._path}: {e}") from e

        return encode_image(
            raw,
            max_width=self._max_width,
            jpeg_quality=self._jpeg_quality,
            source_name=self._path.name,
        )
