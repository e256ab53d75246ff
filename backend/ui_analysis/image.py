"""
Image inputs and decoded pixel buffers.

``ImageInput`` is what callers hand in (encoded bytes plus a MIME type, or a
data URL); ``ImageData`` is the decoded, read-only pixel buffer every analyzer
works on.
"""

import base64
import binascii
from typing import Optional

import cv2
import numpy as np


class UIAnalysisError(Exception):
    """Base class for UI analysis errors."""
    pass


class ImageDecodeError(UIAnalysisError):
    """Raised when image bytes or a data URL cannot be decoded."""
    pass


def _parse_data_url(data_url: str):
    if not data_url or not data_url.startswith("data:image/"):
        raise ImageDecodeError("Invalid image data URL format")

    header, sep, payload = data_url.partition(",")
    if not sep:
        raise ImageDecodeError("Image data URL has no payload")

    mime_type = header[len("data:"):].split(";")[0]
    try:
        data = base64.b64decode(payload, validate=False)
    except (binascii.Error, ValueError) as e:
        raise ImageDecodeError(f"Invalid base64 payload: {str(e)}")

    return data, mime_type


class ImageInput:
    """Encoded image as received from a caller."""

    def __init__(self, data: bytes, mime_type: str = "image/png"):
        self.data = data
        self.mime_type = mime_type

    @classmethod
    def from_data_url(cls, data_url: str) -> "ImageInput":
        """
        Build an input from a ``data:image/...;base64,`` URL.

        Raises:
            ImageDecodeError: If the URL is not an image data URL
        """
        data, mime_type = _parse_data_url(data_url)
        return cls(data, mime_type)

    def to_data_url(self) -> str:
        encoded = base64.b64encode(self.data).decode("utf-8")
        return f"data:{self.mime_type};base64,{encoded}"

    def __repr__(self) -> str:
        return f"ImageInput(mime_type={self.mime_type!r}, size={len(self.data)})"


class ImageData:
    """
    Decoded image with read-only BGR, RGB and grayscale views.

    Attributes:
        pixels: BGR array as decoded by OpenCV (H x W x 3, uint8)
        gray: Grayscale array (H x W, uint8)
        rgb: RGB array (H x W x 3, uint8)
        width: Width in pixels
        height: Height in pixels
        channels: Channel count of ``pixels``
        format: Short format tag such as ``png``
        mime_type: MIME type the image was decoded from
    """

    def __init__(self, pixels: np.ndarray, format: str = "raw", mime_type: Optional[str] = None):
        if pixels is None or pixels.size == 0:
            raise ImageDecodeError("Image has no pixels")

        if pixels.ndim == 2:
            pixels = cv2.cvtColor(pixels, cv2.COLOR_GRAY2BGR)
        elif pixels.shape[2] == 4:
            pixels = cv2.cvtColor(pixels, cv2.COLOR_BGRA2BGR)

        pixels = np.array(pixels, dtype=np.uint8, order="C", copy=True)
        gray = cv2.cvtColor(pixels, cv2.COLOR_BGR2GRAY)
        rgb = cv2.cvtColor(pixels, cv2.COLOR_BGR2RGB)
        for array in (pixels, gray, rgb):
            array.setflags(write=False)

        self.pixels = pixels
        self.gray = gray
        self.rgb = rgb
        self.height, self.width = gray.shape[:2]
        self.channels = pixels.shape[2]
        self.format = format
        self.mime_type = mime_type or f"image/{format}"

    @classmethod
    def from_bytes(cls, data: bytes, mime_type: str = "image/png") -> "ImageData":
        """
        Decode encoded image bytes (PNG, JPEG, WebP, ...).

        Args:
            data: Encoded image bytes
            mime_type: MIME type reported by the caller

        Returns:
            Decoded image

        Raises:
            ImageDecodeError: If OpenCV cannot decode the bytes
        """
        if not data:
            raise ImageDecodeError("Empty image data")

        nparr = np.frombuffer(data, np.uint8)
        try:
            pixels = cv2.imdecode(nparr, cv2.IMREAD_COLOR)
        except cv2.error as e:
            raise ImageDecodeError(f"Failed to decode image data: {str(e)}")
        if pixels is None:
            raise ImageDecodeError("Failed to decode image data")

        format = mime_type.split("/")[-1] if mime_type else "raw"
        return cls(pixels, format=format, mime_type=mime_type)

    @classmethod
    def from_input(cls, image_input: ImageInput) -> "ImageData":
        return cls.from_bytes(image_input.data, image_input.mime_type)

    @classmethod
    def from_data_url(cls, data_url: str) -> "ImageData":
        """Decode a base64 image data URL."""
        data, mime_type = _parse_data_url(data_url)
        return cls.from_bytes(data, mime_type)

    @property
    def size(self):
        return self.width, self.height

    def __repr__(self) -> str:
        return f"ImageData({self.width}x{self.height}, format={self.format!r})"
