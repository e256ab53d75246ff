"""
Representative color palette extraction and color helpers.
"""

import logging
import math
from typing import List, Optional, Sequence, Tuple

import numpy as np

from ui_analysis.config import PaletteConfig
from ui_analysis.image import ImageData
from ui_analysis.models import ColorSwatch

logger = logging.getLogger(__name__)

RGB = Tuple[int, int, int]


def rgb_to_hex(r: int, g: int, b: int) -> str:
    return f"#{int(r):02x}{int(g):02x}{int(b):02x}"


def hex_to_rgb(value: Optional[str]) -> Optional[RGB]:
    """Parse ``#rrggbb`` (the ``#`` is optional); returns None when malformed."""
    if not value:
        return None
    value = value.strip().lstrip("#")
    if len(value) != 6:
        return None
    try:
        return int(value[0:2], 16), int(value[2:4], 16), int(value[4:6], 16)
    except ValueError:
        return None


def color_distance(a: Sequence[int], b: Sequence[int]) -> float:
    """Euclidean distance in RGB space."""
    return math.sqrt(sum((int(x) - int(y)) ** 2 for x, y in zip(a, b)))


def colors_are_similar(hex1: Optional[str], hex2: Optional[str], threshold: float = 30.0) -> bool:
    rgb1 = hex_to_rgb(hex1)
    rgb2 = hex_to_rgb(hex2)
    if rgb1 is None or rgb2 is None:
        return False
    return color_distance(rgb1, rgb2) < threshold


def infer_usage(rgb: RGB, dominant: bool = False) -> str:
    """Guess how a color is used from its RGB value alone."""
    r, g, b = rgb
    if dominant or min(r, g, b) > 230:
        return "background"
    if max(r, g, b) < 50:
        return "text"
    return "accent"


def make_swatch(rgb: RGB, frequency: float, usage: str) -> ColorSwatch:
    r, g, b = (int(c) for c in rgb)
    return ColorSwatch(
        r=r,
        g=g,
        b=b,
        hex=rgb_to_hex(r, g, b),
        usage=usage,
        confidence=max(0.1, min(1.0, frequency)),
        frequency=frequency,
    )


FALLBACK_PALETTE = (
    make_swatch((255, 255, 255), 0.5, "background"),
    make_swatch((0, 0, 0), 0.3, "text"),
)


class ColorPaletteExtractor:
    """Extracts a small ranked set of representative colors."""

    def __init__(self, config: Optional[PaletteConfig] = None):
        self.config = config or PaletteConfig()

    def extract(self, image: ImageData) -> List[ColorSwatch]:
        """
        Extract the dominant color plus a few distinct sampled colors.

        Args:
            image: Decoded image

        Returns:
            Up to ``max_colors`` swatches ranked by frequency; the white/black
            fallback palette if extraction fails
        """
        try:
            return self._extract(image)
        except Exception as e:
            logger.warning(f"Color extraction failed: {str(e)}")
            return list(FALLBACK_PALETTE)

    def _extract(self, image: ImageData) -> List[ColorSwatch]:
        cfg = self.config
        pixels = image.rgb.reshape(-1, 3).astype(np.int32)

        dominant, _ = self.dominant_color(pixels)

        stride = max(1, pixels.shape[0] // cfg.target_samples)
        samples = pixels[::stride]
        kept: List[RGB] = [dominant]
        for pixel in samples.tolist():
            if len(kept) > cfg.max_sampled_colors:
                break
            if all(color_distance(pixel, color) >= cfg.distinct_distance for color in kept):
                kept.append(tuple(pixel))

        swatches = []
        for index, color in enumerate(kept):
            distances = np.sqrt(((samples - np.array(color)) ** 2).sum(axis=1))
            share = float(np.count_nonzero(distances < cfg.distinct_distance)) / samples.shape[0]
            swatches.append(make_swatch(color, share, infer_usage(color, dominant=index == 0)))

        # stable sort: the dominant color stays first on ties
        swatches.sort(key=lambda swatch: swatch.frequency, reverse=True)
        return swatches[:cfg.max_colors]

    def dominant_color(self, pixels: np.ndarray) -> Tuple[RGB, float]:
        """
        Mean color of the most populated cell of a coarse RGB histogram.

        Returns:
            Tuple of (rgb, share of pixels in that cell)
        """
        levels = self.config.histogram_levels
        bin_size = 256 // levels
        quantized = pixels // bin_size
        index = (quantized[:, 0] * levels + quantized[:, 1]) * levels + quantized[:, 2]
        counts = np.bincount(index, minlength=levels ** 3)
        best = int(np.argmax(counts))

        members = pixels[index == best]
        mean = np.floor(members.mean(axis=0) + 0.5).astype(int)
        return (int(mean[0]), int(mean[1]), int(mean[2])), float(counts[best]) / pixels.shape[0]
