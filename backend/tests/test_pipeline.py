"""
Tests for the concurrent CV pipeline.
"""

import base64
import io
import time
from unittest.mock import patch

import pytest
from PIL import Image, ImageDraw

from ui_analysis.config import AnalysisConfig, PipelineConfig
from ui_analysis.image import ImageData, ImageInput
from ui_analysis.models import (
    AnalysisResult,
    BoundingBox,
    ColorSwatch,
    DetectedElement,
    GridInfo,
    LayoutDescriptor,
    TextAnalysis,
)
from ui_analysis.pipeline import ImageAnalysisPipeline
from ui_analysis.text import OcrPage


def png_bytes(image: Image.Image) -> bytes:
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


def mockup() -> Image.Image:
    image = Image.new("RGB", (240, 160), color="white")
    draw = ImageDraw.Draw(image)
    draw.rectangle([0, 0, 239, 24], fill=(30, 60, 150))
    draw.rectangle([20, 50, 169, 84], outline="black")
    draw.rectangle([20, 100, 100, 130], fill=(200, 40, 40))
    return image


class StaticEngine:
    def recognize(self, image):
        return OcrPage(text="Login", confidence=50.0, words=["Login"])


@pytest.fixture
def image_data():
    return ImageData.from_bytes(png_bytes(mockup()), "image/png")


class TestAnalyze:
    """Test cases for single-image analysis."""

    def test_result_shape(self, image_data):
        result = ImageAnalysisPipeline().analyze(image_data)

        assert result.metadata["width"] == 240
        assert result.metadata["height"] == 160
        assert result.metadata["format"] == "png"
        assert result.metadata["imageCount"] == 1
        assert "errors" not in result.metadata
        assert result.colors
        assert 0.0 <= result.confidence <= 1.0
        for element in result.elements:
            assert element.bounds.right <= 240
            assert element.bounds.bottom <= 160

    def test_ocr_engine_is_used(self, image_data):
        result = ImageAnalysisPipeline(ocr_engine=StaticEngine()).analyze(image_data)

        assert result.text.full_text == "Login"
        assert result.text.confidence == pytest.approx(0.5)

    def test_failing_analyzer_uses_fallback(self, image_data):
        pipeline = ImageAnalysisPipeline()
        with patch.object(pipeline.region_detector, "detect", side_effect=RuntimeError("boom")):
            result = pipeline.analyze(image_data)

        assert result.elements == []
        assert result.metadata["errors"] == {"elements": "boom"}
        assert result.colors

    def test_slow_analyzer_times_out(self, image_data):
        """An analyzer that misses the deadline is replaced by its fallback."""
        config = AnalysisConfig(pipeline=PipelineConfig(timeout=0.2))
        pipeline = ImageAnalysisPipeline(config)

        def slow(image):
            time.sleep(1.0)
            return LayoutDescriptor(structure="complex-grid")

        with patch.object(pipeline.layout_analyzer, "analyze", side_effect=slow):
            result = pipeline.analyze(image_data)

        assert result.layout.structure == "unknown"
        assert result.metadata["errors"]["layout"] == "timeout"


class TestCalculateConfidence:
    """Test cases for the CV confidence formula."""

    def test_weighted_sum(self):
        pipeline = ImageAnalysisPipeline()
        elements = [DetectedElement(type="button") for _ in range(5)]
        layout = LayoutDescriptor(grid=GridInfo(confidence=0.8))
        text = TextAnalysis(confidence=0.5)

        assert pipeline.calculate_confidence(elements, layout, text) == pytest.approx(0.59)

    def test_element_score_saturates(self):
        pipeline = ImageAnalysisPipeline()
        elements = [DetectedElement(type="button") for _ in range(25)]

        score = pipeline.calculate_confidence(elements, LayoutDescriptor(), TextAnalysis())

        assert score == pytest.approx(0.4)

    def test_zero_saturation_does_not_divide_by_zero(self, image_data):
        pipeline = ImageAnalysisPipeline(AnalysisConfig(pipeline=PipelineConfig(element_saturation=0)))
        elements = [DetectedElement(type="button") for _ in range(3)]

        score = pipeline.calculate_confidence(elements, LayoutDescriptor(), TextAnalysis())

        assert score == pytest.approx(0.4)
        assert 0.0 <= pipeline.analyze(image_data).confidence <= 1.0


class TestAnalyzeImages:
    """Test cases for multi-image analysis."""

    def test_no_images(self):
        result = ImageAnalysisPipeline().analyze_images([])

        assert result.elements == []
        assert result.confidence == 0.0
        assert result.metadata["imageCount"] == 0

    def test_data_url_and_input(self):
        data = png_bytes(mockup())
        data_url = "data:image/png;base64," + base64.b64encode(data).decode("utf-8")

        result = ImageAnalysisPipeline().analyze_images([data_url, ImageInput(data, "image/png")])

        assert result.metadata["imageCount"] == 2
        assert len(result.metadata["images"]) == 2
        assert all("imageIndex" in element.properties for element in result.elements)

    def test_undecodable_image_is_skipped(self):
        data = png_bytes(mockup())

        result = ImageAnalysisPipeline().analyze_images([ImageInput(b"garbage"), ImageInput(data)])

        assert result.metadata["imageCount"] == 1
        assert "image0" in result.metadata["errors"]


class TestCombine:
    """Test cases for combining per-image results."""

    def test_combine(self):
        first = AnalysisResult(
            elements=[DetectedElement(type="button", bounds=BoundingBox(x=0, y=0, width=50, height=20), confidence=0.9)],
            layout=LayoutDescriptor(structure="simple", confidence=0.2),
            colors=[ColorSwatch(r=255, g=255, b=255, hex="#ffffff", confidence=0.9)],
            text=TextAnalysis(full_text="Hello", confidence=0.6, word_count=1),
            confidence=0.4,
            metadata={"width": 100, "height": 80},
        )
        second = AnalysisResult(
            elements=[
                DetectedElement(type="container", bounds=BoundingBox(x=2, y=0, width=50, height=20), confidence=0.5),
                DetectedElement(type="button", bounds=BoundingBox(x=200, y=0, width=50, height=20), confidence=0.7),
            ],
            layout=LayoutDescriptor(structure="multi-column", confidence=0.6),
            colors=[
                ColorSwatch(r=250, g=250, b=250, hex="#fafafa", confidence=0.8),
                ColorSwatch(r=255, g=0, b=0, hex="#ff0000", confidence=0.3),
            ],
            text=TextAnalysis(full_text="World", confidence=0.2, word_count=1),
            confidence=0.6,
            metadata={"width": 300, "height": 60, "errors": {"text": "timeout"}},
        )

        combined = ImageAnalysisPipeline().combine([first, second])

        assert [e.confidence for e in combined.elements] == [0.9, 0.7]
        assert [e.properties["imageIndex"] for e in combined.elements] == [0, 1]
        assert combined.layout.structure == "multi-column"
        assert [c.hex for c in combined.colors] == ["#ffffff", "#ff0000"]
        assert combined.text.full_text == "Hello\n\nWorld"
        assert combined.text.confidence == pytest.approx(0.4)
        assert combined.text.word_count == 2
        assert combined.confidence == pytest.approx(0.5)
        assert combined.metadata["width"] == 300
        assert combined.metadata["height"] == 80
        assert combined.metadata["errors"] == {"image1.text": "timeout"}

    def test_single_result_is_returned_unchanged(self):
        result = AnalysisResult(confidence=0.3)
        assert ImageAnalysisPipeline().combine([result]) is result
