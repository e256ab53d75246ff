"""
Tests for image inputs and decoding.
"""

import base64
import io

import numpy as np
import pytest
from PIL import Image

from ui_analysis.image import ImageData, ImageDecodeError, ImageInput, UIAnalysisError


def png_bytes(image: Image.Image) -> bytes:
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


class TestImageInput:
    """Test cases for ImageInput."""

    def test_from_data_url(self):
        """A PNG data URL is split into bytes and MIME type."""
        data = png_bytes(Image.new("RGB", (4, 4), color="red"))
        data_url = "data:image/png;base64," + base64.b64encode(data).decode("utf-8")

        image_input = ImageInput.from_data_url(data_url)

        assert image_input.data == data
        assert image_input.mime_type == "image/png"
        assert image_input.to_data_url() == data_url

    def test_invalid_data_url(self):
        """A URL without the image data prefix is rejected."""
        with pytest.raises(ImageDecodeError, match="Invalid image data URL format"):
            ImageInput.from_data_url("not-a-data-url")

    def test_data_url_without_payload(self):
        with pytest.raises(ImageDecodeError):
            ImageInput.from_data_url("data:image/png;base64")

    def test_decode_error_is_analysis_error(self):
        assert issubclass(ImageDecodeError, UIAnalysisError)


class TestImageData:
    """Test cases for ImageData."""

    def test_from_bytes(self):
        """PNG bytes decode into BGR, RGB and grayscale views."""
        image = Image.new("RGB", (30, 20), color=(255, 0, 0))
        decoded = ImageData.from_bytes(png_bytes(image), "image/png")

        assert decoded.width == 30
        assert decoded.height == 20
        assert decoded.channels == 3
        assert decoded.format == "png"
        assert decoded.mime_type == "image/png"
        assert tuple(decoded.rgb[0, 0]) == (255, 0, 0)
        assert tuple(decoded.pixels[0, 0]) == (0, 0, 255)
        assert decoded.gray.shape == (20, 30)

    def test_buffers_are_read_only(self):
        decoded = ImageData.from_bytes(png_bytes(Image.new("RGB", (5, 5))))
        with pytest.raises(ValueError):
            decoded.pixels[0, 0, 0] = 1
        with pytest.raises(ValueError):
            decoded.gray[0, 0] = 1

    def test_caller_array_is_not_frozen(self):
        """Wrapping an array copies it and leaves the caller's array writable."""
        pixels = np.zeros((4, 4, 3), dtype=np.uint8)
        decoded = ImageData(pixels)
        pixels[0, 0, 0] = 9
        assert decoded.pixels[0, 0, 0] == 0

    def test_grayscale_input_is_converted(self):
        decoded = ImageData(np.full((6, 8), 128, dtype=np.uint8))
        assert decoded.channels == 3
        assert decoded.size == (8, 6)

    def test_empty_bytes(self):
        with pytest.raises(ImageDecodeError, match="Empty image data"):
            ImageData.from_bytes(b"")

    def test_garbage_bytes(self):
        with pytest.raises(ImageDecodeError):
            ImageData.from_bytes(b"definitely not an image")

    def test_malformed_data_url(self):
        with pytest.raises(ImageDecodeError):
            ImageData.from_data_url("data:image/png;base64,aGVsbG8=")
