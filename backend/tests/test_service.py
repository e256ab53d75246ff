"""
Tests for the end-to-end hybrid analysis service.
"""

import io
from unittest.mock import MagicMock, patch

import pytest
from PIL import Image, ImageDraw

from ui_analysis.config import AnalysisConfig, OcrConfig
from ui_analysis.image import ImageInput
from ui_analysis.merger import HybridMerger
from ui_analysis.service import DESCRIPTION_PROMPT, HybridAnalysisService
from ui_analysis.text import OcrPage, OcrUnavailableError


class RecordingEngine:
    """OCR engine stand-in that records whether it was opened and closed."""

    def __init__(self, config=None):
        self.config = config
        self.opened = False
        self.closed = False

    def __enter__(self):
        self.opened = True
        return self

    def __exit__(self, exc_type, exc, tb):
        self.closed = True

    def recognize(self, image):
        return OcrPage(text="Sign in", confidence=90.0, words=["Sign", "in"])


class UnavailableEngine:
    def __init__(self, config=None):
        pass

    def __enter__(self):
        raise OcrUnavailableError("Tesseract is not available")

    def __exit__(self, exc_type, exc, tb):
        pass


@pytest.fixture
def image_input():
    image = Image.new("RGB", (200, 120), color="white")
    draw = ImageDraw.Draw(image)
    draw.rectangle([20, 20, 119, 49], fill=(51, 102, 255))
    draw.rectangle([20, 70, 169, 104], outline="black")
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return ImageInput(buffer.getvalue(), "image/png")


class TestHybridAnalysisService:
    """Test cases for HybridAnalysisService."""

    def test_description_is_parsed_and_merged(self, image_input):
        service = HybridAnalysisService(ocr_engine_factory=RecordingEngine)

        merged = service.analyze([image_input], "A form with a blue button and a text input")

        assert merged.source == "hybrid-analysis"
        assert merged.metadata["elementsFromLLM"] == 3
        assert merged.metadata["imageCount"] == 1
        assert merged.text.full_text == "Sign in"

    def test_ocr_engine_is_closed_after_analysis(self, image_input):
        engines = []

        def factory(config):
            engine = RecordingEngine(config)
            engines.append(engine)
            return engine

        HybridAnalysisService(ocr_engine_factory=factory).analyze([image_input])

        assert len(engines) == 1
        assert engines[0].opened
        assert engines[0].closed

    def test_unavailable_ocr_degrades(self, image_input):
        service = HybridAnalysisService(ocr_engine_factory=UnavailableEngine)

        merged = service.analyze([image_input], "a button")

        assert merged.text.full_text == ""
        assert merged.metadata["elementsFromLLM"] == 1

    def test_ocr_disabled(self, image_input):
        factory = MagicMock()
        config = AnalysisConfig(ocr=OcrConfig(enabled=False))

        HybridAnalysisService(config, ocr_engine_factory=factory).analyze([image_input])

        factory.assert_not_called()

    def test_describer_is_preferred(self, image_input):
        describer = MagicMock(return_value='{"components": [{"type": "button", "confidence": 0.9}]}')
        service = HybridAnalysisService(describer=describer, ocr_engine_factory=RecordingEngine)

        merged = service.analyze([image_input], "a footer")

        describer.assert_called_once_with([image_input], DESCRIPTION_PROMPT)
        assert merged.metadata["elementsFromLLM"] == 1
        assert merged.metadata["llmConfidence"] == pytest.approx(0.7)

    def test_describer_failure_means_empty_description(self, image_input):
        describer = MagicMock(side_effect=TimeoutError("service down"))
        service = HybridAnalysisService(describer=describer, ocr_engine_factory=RecordingEngine)

        merged = service.analyze([image_input], "a footer")

        assert merged.metadata["elementsFromLLM"] == 0
        assert merged.metadata["llmConfidence"] == 0.0
        assert "empty-llm-analysis" in [issue.type for issue in merged.validation.issues]

    def test_no_images(self):
        merged = HybridAnalysisService(ocr_engine_factory=RecordingEngine).analyze([], "")

        assert merged.elements == []
        assert merged.validation.is_valid is False

    def test_merge_failure_is_reported(self, image_input):
        service = HybridAnalysisService(ocr_engine_factory=RecordingEngine)
        with patch.object(HybridMerger, "merge_layout", side_effect=KeyError("structure")):
            merged = service.analyze([image_input], "a button")

        assert merged.validation.is_valid is False
        assert merged.validation.issues[0].type == "merge-error"
