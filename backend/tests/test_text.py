"""
Tests for OCR text extraction.
"""

from unittest.mock import MagicMock, patch

import numpy as np
import pytest

from ui_analysis.config import OcrConfig
from ui_analysis.image import ImageData
from ui_analysis.models import BoundingBox
from ui_analysis.text import (
    OcrBlock,
    OcrPage,
    OcrUnavailableError,
    TesseractEngine,
    TextExtractor,
)

TESSERACT_DATA = {
    "text": ["Hello", "world", "", "Sign"],
    "conf": ["90", 80, -1, 70.0],
    "left": [10, 60, 0, 10],
    "top": [10, 10, 0, 50],
    "width": [40, 45, 0, 30],
    "height": [12, 12, 0, 14],
    "block_num": [1, 1, 1, 2],
    "par_num": [1, 1, 1, 1],
    "line_num": [1, 1, 1, 1],
}


class FakeEngine:
    def __init__(self, page=None, error=None):
        self.page = page
        self.error = error

    def recognize(self, image):
        if self.error is not None:
            raise self.error
        return self.page


@pytest.fixture
def image():
    return ImageData(np.full((40, 60, 3), 255, dtype=np.uint8), format="png")


class TestPageFromData:
    """Test cases for grouping Tesseract word boxes into blocks."""

    def test_groups_words_by_block(self):
        page = TesseractEngine.page_from_data(TESSERACT_DATA)

        assert page.words == ["Hello", "world", "Sign"]
        assert page.text == "Hello world\nSign"
        assert page.confidence == pytest.approx(80.0)
        assert len(page.blocks) == 2

        first = page.blocks[0]
        assert first.text == "Hello world"
        assert first.confidence == pytest.approx(85.0)
        assert first.bbox == BoundingBox(x=10, y=10, width=95, height=12)
        assert first.lines == 1

    def test_min_confidence_filters_words(self):
        page = TesseractEngine.page_from_data(TESSERACT_DATA, min_confidence=75)
        assert page.words == ["Hello", "world"]
        assert len(page.blocks) == 1

    def test_empty_data(self):
        page = TesseractEngine.page_from_data({})
        assert page.text == ""
        assert page.confidence == 0.0
        assert page.blocks == []


class TestTesseractEngine:
    """Test cases for the Tesseract engine resource."""

    @patch("ui_analysis.text.OCR_AVAILABLE", False)
    def test_open_without_pytesseract(self):
        with pytest.raises(OcrUnavailableError, match="pytesseract is not installed"):
            TesseractEngine().open()

    def test_recognize_requires_open_engine(self, image):
        with pytest.raises(OcrUnavailableError, match="closed"):
            TesseractEngine().recognize(image)

    @patch("ui_analysis.text.OCR_AVAILABLE", True)
    @patch("ui_analysis.text.pytesseract", create=True)
    def test_open_fails_when_binary_missing(self, mock_pytesseract):
        mock_pytesseract.get_tesseract_version.side_effect = OSError("tesseract not found")

        engine = TesseractEngine(OcrConfig(tesseract_cmd="/opt/tesseract"))
        with pytest.raises(OcrUnavailableError, match="tesseract not found"):
            engine.open()

        assert engine.is_open is False

    @patch("ui_analysis.text.OCR_AVAILABLE", True)
    @patch("ui_analysis.text.pytesseract", create=True)
    def test_context_manager_recognize(self, mock_pytesseract, image):
        mock_pytesseract.get_tesseract_version.return_value = "5.3.0"
        mock_pytesseract.image_to_data.return_value = TESSERACT_DATA

        with TesseractEngine(OcrConfig(language="deu")) as engine:
            assert engine.is_open
            page = engine.recognize(image)

        assert engine.is_open is False
        assert page.words == ["Hello", "world", "Sign"]
        _, kwargs = mock_pytesseract.image_to_data.call_args
        assert kwargs["lang"] == "deu"


class TestTextExtractor:
    """Test cases for TextExtractor."""

    def test_normalises_engine_output(self, image):
        page = OcrPage(
            text="  Hello world\nSign ",
            confidence=80.0,
            words=["Hello", "world", "Sign"],
            blocks=[
                OcrBlock(text=" Hello world ", confidence=85.0, bbox=BoundingBox(x=10, y=10, width=95, height=8)),
                OcrBlock(text="   ", confidence=10.0),
                OcrBlock(text="Sign", confidence=70.0, bbox=BoundingBox(x=10, y=50, width=30, height=20), lines=2),
            ],
        )
        analysis = TextExtractor(FakeEngine(page)).extract(image)

        assert analysis.full_text == "Hello world\nSign"
        assert analysis.confidence == pytest.approx(0.8)
        assert analysis.word_count == 3
        assert [block.text for block in analysis.blocks] == ["Hello world", "Sign"]
        assert analysis.blocks[0].confidence == pytest.approx(0.85)
        assert analysis.blocks[0].font_size == 12
        assert analysis.blocks[1].font_size == 20
        assert analysis.blocks[1].lines == 2

    def test_without_engine(self, image):
        analysis = TextExtractor().extract(image)
        assert analysis.confidence == 0.0
        assert analysis.blocks == []

    def test_disabled(self, image):
        engine = MagicMock()
        analysis = TextExtractor(engine, OcrConfig(enabled=False)).extract(image)

        engine.recognize.assert_not_called()
        assert analysis.full_text == ""

    def test_engine_failure_gives_empty_analysis(self, image):
        analysis = TextExtractor(FakeEngine(error=RuntimeError("ocr crashed"))).extract(image)

        assert analysis.confidence == 0.0
        assert analysis.word_count == 0

    def test_font_size_without_bbox(self):
        assert TextExtractor().estimate_font_size(None) == 16
