"""
Coarse layout inference from edge division lines.
"""

import logging
import math
from typing import List, Optional

import numpy as np

from ui_analysis.config import LayoutConfig
from ui_analysis.image import ImageData
from ui_analysis.models import (
    Alignment,
    Division,
    GridInfo,
    LayoutDescriptor,
    SemanticLayout,
    Spacing,
)

logger = logging.getLogger(__name__)


def classify_structure(columns: int, rows: int) -> str:
    if columns > 3 and rows > 3:
        return "complex-grid"
    if columns > 2:
        return "multi-column"
    if rows > 2:
        return "multi-row"
    return "simple"


class LayoutAnalyzer:
    """Estimates grid, alignment and spacing of a UI screenshot."""

    def __init__(self, config: Optional[LayoutConfig] = None):
        self.config = config or LayoutConfig()

    def analyze(self, image: ImageData) -> LayoutDescriptor:
        """
        Infer a layout descriptor for the image.

        Args:
            image: Decoded image

        Returns:
            LayoutDescriptor; the unknown 1x1 fallback if analysis fails
        """
        try:
            return self._analyze(image)
        except Exception as e:
            logger.warning(f"Layout analysis failed: {str(e)}")
            return LayoutDescriptor()

    def _analyze(self, image: ImageData) -> LayoutDescriptor:
        cfg = self.config
        width, height = image.width, image.height
        gray = image.gray.astype(np.int32)

        vertical = self.find_divisions(gray, axis=1)
        horizontal = self.find_divisions(gray, axis=0)
        columns = len(vertical) + 1
        rows = len(horizontal) + 1

        grid = GridInfo(
            columns=columns,
            rows=rows,
            vertical_divisions=vertical,
            horizontal_divisions=horizontal,
            confidence=min((len(vertical) + len(horizontal)) / 10, 1.0),
        )

        semantic = SemanticLayout(
            has_header=any(d.position < height * 0.2 for d in horizontal),
            has_footer=any(d.position > height * 0.8 for d in horizontal),
            has_sidebar=any(d.position < width * 0.25 or d.position > width * 0.75 for d in vertical),
        )

        return LayoutDescriptor(
            structure=classify_structure(columns, rows),
            grid=grid,
            alignment=Alignment(
                primary=cfg.alignment_primary,
                secondary=cfg.alignment_secondary,
                confidence=cfg.alignment_confidence,
            ),
            spacing=Spacing(
                horizontal=int(math.floor(width * cfg.spacing_horizontal_ratio)),
                vertical=int(math.floor(height * cfg.spacing_vertical_ratio)),
                padding=int(math.floor(min(width, height) * cfg.padding_ratio)),
            ),
            semantic=semantic,
            patterns={"verticalDivisions": len(vertical), "horizontalDivisions": len(horizontal)},
            confidence=grid.confidence,
            aspect_ratio=width / height,
            dimensions={"width": width, "height": height},
        )

    def find_divisions(self, gray: np.ndarray, axis: int) -> List[Division]:
        """
        Find the strongest straight edge lines across one axis.

        ``axis=1`` looks for vertical lines (positions are x coordinates),
        ``axis=0`` for horizontal lines (positions are y coordinates).

        For every line position inside the central band the contrast with
        both neighbours is sampled every ``sample_step`` pixels along the
        line. Each ``scan_step`` bin keeps its strongest line; a line counts
        when its mean contrast exceeds ``min_strength`` and its edge pixels
        cover ``min_span_ratio`` of the line length.
        """
        cfg = self.config
        lines = gray if axis == 1 else gray.T
        length, extent = lines.shape
        if extent < 3:
            return []

        sampled = lines[::cfg.sample_step, :]
        center = sampled[:, 1:-1]
        contrast = np.zeros_like(sampled)
        contrast[:, 1:-1] = np.abs(center - sampled[:, :-2]) + np.abs(center - sampled[:, 2:])

        strength = contrast.mean(axis=0)
        span = np.count_nonzero(contrast > cfg.pixel_edge_threshold, axis=0) * cfg.sample_step

        start = int(math.ceil(extent * cfg.band_start))
        end = int(math.ceil(extent * cfg.band_end))
        candidates = []
        for bin_start in range(start, end, cfg.scan_step):
            bin_end = min(bin_start + cfg.scan_step, end)
            position = bin_start + int(np.argmax(strength[bin_start:bin_end]))
            if strength[position] > cfg.min_strength and span[position] >= length * cfg.min_span_ratio:
                candidates.append(Division(
                    position=position,
                    strength=float(strength[position]),
                    span=int(span[position]),
                ))

        candidates.sort(key=lambda d: d.strength, reverse=True)
        kept: List[Division] = []
        for candidate in candidates:
            if all(abs(candidate.position - d.position) >= cfg.min_gap for d in kept):
                kept.append(candidate)
            if len(kept) >= cfg.max_divisions:
                break

        return kept
