"""
Tests for layout inference.
"""

import io
from unittest.mock import patch

import pytest
from PIL import Image, ImageDraw

from ui_analysis.config import LayoutConfig
from ui_analysis.image import ImageData
from ui_analysis.layout import LayoutAnalyzer, classify_structure


def to_image_data(image: Image.Image) -> ImageData:
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return ImageData.from_bytes(buffer.getvalue(), "image/png")


class TestClassifyStructure:
    """Test cases for structure classification."""

    @pytest.mark.parametrize("columns,rows,expected", [
        (5, 5, "complex-grid"),
        (3, 1, "multi-column"),
        (4, 2, "multi-column"),
        (1, 3, "multi-row"),
        (2, 2, "simple"),
        (1, 1, "simple"),
    ])
    def test_classification(self, columns, rows, expected):
        assert classify_structure(columns, rows) == expected


class TestLayoutAnalyzer:
    """Test cases for LayoutAnalyzer."""

    @pytest.fixture
    def analyzer(self):
        return LayoutAnalyzer()

    def test_two_vertical_lines_make_three_columns(self, analyzer):
        image = Image.new("RGB", (200, 200), color="white")
        draw = ImageDraw.Draw(image)
        draw.line([(60, 0), (60, 199)], fill="black")
        draw.line([(140, 0), (140, 199)], fill="black")

        layout = analyzer.analyze(to_image_data(image))

        assert layout.structure == "multi-column"
        assert layout.grid.columns == 3
        assert layout.grid.rows == 1
        assert sorted(d.position for d in layout.grid.vertical_divisions) == [60, 140]
        assert layout.semantic.has_sidebar is False
        assert layout.patterns == {"verticalDivisions": 2, "horizontalDivisions": 0}

    def test_grid_lines_make_complex_grid(self, analyzer):
        image = Image.new("RGB", (200, 200), color="white")
        draw = ImageDraw.Draw(image)
        for position in (40, 80, 120, 160):
            draw.line([(position, 0), (position, 199)], fill="black")
            draw.line([(0, position), (199, position)], fill="black")

        layout = analyzer.analyze(to_image_data(image))

        assert layout.structure == "complex-grid"
        assert layout.grid.columns == 5
        assert layout.grid.rows == 5
        assert layout.grid.confidence == pytest.approx(0.8)
        assert layout.confidence == pytest.approx(0.8)
        assert layout.semantic.has_header is False
        assert layout.semantic.has_footer is False
        assert layout.semantic.has_sidebar is True

    def test_blank_image_is_simple(self, analyzer):
        layout = analyzer.analyze(to_image_data(Image.new("RGB", (100, 80), color="white")))

        assert layout.structure == "simple"
        assert layout.grid.confidence == 0.0
        assert layout.dimensions == {"width": 100, "height": 80}
        assert layout.aspect_ratio == pytest.approx(1.25)
        assert layout.spacing.horizontal == 2
        assert layout.spacing.vertical == 1
        assert layout.spacing.padding == 2

    def test_max_divisions(self):
        """Only the configured number of strongest lines is kept."""
        image = Image.new("RGB", (200, 200), color="white")
        draw = ImageDraw.Draw(image)
        for position in (40, 80, 120, 160):
            draw.line([(position, 0), (position, 199)], fill="black")

        layout = LayoutAnalyzer(LayoutConfig(max_divisions=2)).analyze(to_image_data(image))

        assert len(layout.grid.vertical_divisions) == 2

    def test_failure_returns_unknown_layout(self, analyzer):
        image = to_image_data(Image.new("RGB", (50, 50)))
        with patch.object(LayoutAnalyzer, "find_divisions", side_effect=ValueError("bad")):
            layout = analyzer.analyze(image)

        assert layout.structure == "unknown"
        assert layout.grid.columns == 1
        assert layout.confidence == 0.0

    def test_top_line_marks_header(self, analyzer):
        image = Image.new("RGB", (200, 200), color="white")
        ImageDraw.Draw(image).line([(0, 20), (199, 20)], fill="black")

        layout = analyzer.analyze(to_image_data(image))

        assert [d.position for d in layout.grid.horizontal_divisions] == [20]
        assert layout.semantic.has_header is True
        assert layout.structure == "simple"
