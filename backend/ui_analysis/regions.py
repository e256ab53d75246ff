"""
Pixel-level detection of UI element regions.

Four independent scans run over the grayscale image: rectangular regions
(buttons, cards, containers, separators), circular elements, text lines and
input fields. Every scan is a plain edge/contrast heuristic with strides and
thresholds taken from ``DetectionConfig``; none of them is a general purpose
vision algorithm.
"""

import logging
import math
from typing import Dict, List, Optional, Tuple

import numpy as np

from ui_analysis.config import DetectionConfig
from ui_analysis.geometry import horizontal_overlap, remove_duplicates
from ui_analysis.image import ImageData
from ui_analysis.models import BoundingBox, DetectedElement, ElementType

logger = logging.getLogger(__name__)


class StridedSums:
    """
    Constant-time sums over a strided sample grid of a 2D array.

    ``window(x0, x1, y0, y1)`` sums ``values[y, x]`` for
    ``y = y0, y0 + row_step, ... < y1`` and ``x = x0, x0 + col_step, ... < x1``,
    which is exactly what the sampling loops of the detectors visit.
    Summed-area tables are built lazily per sampling phase.
    """

    def __init__(self, values: np.ndarray, row_step: int = 1, col_step: int = 1):
        self.values = values
        self.row_step = max(1, int(row_step))
        self.col_step = max(1, int(col_step))
        self._tables: Dict[Tuple[int, int], np.ndarray] = {}

    def _table(self, row_phase: int, col_phase: int) -> np.ndarray:
        key = (row_phase, col_phase)
        table = self._tables.get(key)
        if table is None:
            sub = self.values[row_phase::self.row_step, col_phase::self.col_step].astype(np.int64)
            table = np.zeros((sub.shape[0] + 1, sub.shape[1] + 1), dtype=np.int64)
            table[1:, 1:] = sub.cumsum(axis=0).cumsum(axis=1)
            self._tables[key] = table
        return table

    def window(self, x0: int, x1: int, y0: int, y1: int) -> Tuple[int, int]:
        """
        Sum the sampled values inside a window.

        Returns:
            Tuple of (sum, number of samples)
        """
        height, width = self.values.shape[:2]
        x0, y0 = max(0, x0), max(0, y0)
        x1, y1 = min(width, x1), min(height, y1)
        if x1 <= x0 or y1 <= y0:
            return 0, 0

        row_phase = y0 % self.row_step
        col_phase = x0 % self.col_step
        r0 = (y0 - row_phase) // self.row_step
        r1 = (y1 - 1 - row_phase) // self.row_step + 1
        c0 = (x0 - col_phase) // self.col_step
        c1 = (x1 - 1 - col_phase) // self.col_step + 1

        table = self._table(row_phase, col_phase)
        total = table[r1, c1] - table[r0, c1] - table[r1, c0] + table[r0, c0]
        return int(total), (r1 - r0) * (c1 - c0)


class PixelMaps:
    """Per-image gradient maps and sample tables shared by the scans."""

    def __init__(self, image: ImageData, config: DetectionConfig):
        gray = image.gray.astype(np.int32)
        height, width = gray.shape
        self.gray = gray
        self.width = width
        self.height = height

        # |c - above| + |c - below|, zero on the first and last row
        self.hdiff = np.zeros_like(gray)
        if height >= 3:
            center = gray[1:-1, :]
            self.hdiff[1:-1, :] = np.abs(center - gray[:-2, :]) + np.abs(center - gray[2:, :])

        # |c - left| + |c - right|, zero on the first and last column
        self.vdiff = np.zeros_like(gray)
        if width >= 3:
            center = gray[:, 1:-1]
            self.vdiff[:, 1:-1] = np.abs(center - gray[:, :-2]) + np.abs(center - gray[:, 2:])

        step = config.edge_sample_step
        self._hsums = StridedSums(self.hdiff, row_step=1, col_step=step)
        self._vsums = StridedSums(self.vdiff, row_step=step, col_step=1)
        self._light = StridedSums((gray > config.paper_threshold).astype(np.int32), row_step=2, col_step=2)

    def horizontal_edge(self, x: int, y: int, length: int) -> float:
        """Mean vertical contrast along row ``y`` from ``x``, normalised by 255."""
        if y < 1 or y >= self.height - 1:
            return 0.0
        total, samples = self._hsums.window(x, min(x + length, self.width - 1), y, y + 1)
        return total / samples / 255.0 if samples else 0.0

    def vertical_edge(self, x: int, y: int, length: int) -> float:
        """Mean horizontal contrast along column ``x`` from ``y``, normalised by 255."""
        if x < 1 or x >= self.width - 1:
            return 0.0
        total, samples = self._vsums.window(x, x + 1, y, min(y + length, self.height - 1))
        return total / samples / 255.0 if samples else 0.0

    def border_score(self, x: int, y: int, width: int, height: int) -> float:
        top = self.horizontal_edge(x, y, width)
        bottom = self.horizontal_edge(x, y + height - 1, width)
        left = self.vertical_edge(x, y, height)
        right = self.vertical_edge(x + width - 1, y, height)
        return (top + bottom + left + right) / 4

    def emptiness(self, x: int, y: int, width: int, height: int) -> float:
        """Fraction of near-white pixels sampled every 2px inside the window."""
        if width <= 0 or height <= 0:
            return 0.0
        light, samples = self._light.window(x, x + width, y, y + height)
        return light / samples if samples else 0.0


class CandidateSet:
    """Indexed arena of candidate elements; suppression works on indices."""

    def __init__(self):
        self.items: List[DetectedElement] = []

    def __len__(self) -> int:
        return len(self.items)

    def extend(self, elements: List[DetectedElement]) -> None:
        self.items.extend(elements)

    def clipped(self, width: int, height: int) -> "CandidateSet":
        """Clip every box to the image and drop boxes left without area."""
        result = CandidateSet()
        for element in self.items:
            if element.bounds is None:
                continue
            bounds = element.bounds.clip(width, height)
            if bounds.area <= 0:
                continue
            result.items.append(element if bounds == element.bounds else element.model_copy(update={"bounds": bounds}))
        return result

    def deduplicated(self, threshold: float) -> List[DetectedElement]:
        return remove_duplicates(self.items, lambda element: element.bounds, threshold)


def classify_rectangle(width: int, height: int) -> str:
    """Map a rectangle's size and aspect ratio to an element type."""
    aspect_ratio = width / height
    if aspect_ratio > 3:
        return ElementType.HORIZONTAL_SEPARATOR.value
    if aspect_ratio < 0.3:
        return ElementType.VERTICAL_SEPARATOR.value
    if aspect_ratio > 2 and height < 50:
        return ElementType.BUTTON.value
    if aspect_ratio > 2 and 30 < height < 60:
        return ElementType.INPUT_FIELD.value
    if width > 200 and height > 100:
        return ElementType.CONTAINER.value
    if width < 150 and height < 150:
        return ElementType.BUTTON.value
    return ElementType.CONTAINER.value


def count_ink_runs(dark: np.ndarray, light: np.ndarray) -> int:
    """
    Count character starts in a flattened pixel sequence.

    A run starts on a dark pixel and only ends on a light pixel; pixels that
    are neither dark nor light keep the current state.
    """
    events = np.zeros(dark.shape[0], dtype=np.int8)
    events[light] = -1
    events[dark] = 1
    events = events[events != 0]
    if events.size == 0:
        return 0

    previous = np.empty_like(events)
    previous[0] = -1
    previous[1:] = events[:-1]
    return int(np.count_nonzero((events == 1) & (previous != 1)))


class RegionDetector:
    """Detects UI element regions in an image using edge-strength heuristics."""

    def __init__(self, config: Optional[DetectionConfig] = None):
        self.config = config or DetectionConfig()

    def detect(self, image: ImageData) -> List[DetectedElement]:
        """
        Run all scans and return de-duplicated elements.

        Never raises: a failing scan is logged and contributes nothing.

        Args:
            image: Decoded image

        Returns:
            Elements clipped to the image, sorted by descending confidence
        """
        try:
            maps = PixelMaps(image, self.config)
        except Exception as e:
            logger.warning(f"Region detection could not prepare pixel maps: {str(e)}")
            return []

        scans = (
            ("rectangle", self.detect_rectangles),
            ("circle", self.detect_circles),
            ("text", self.detect_text_regions),
            ("input field", self.detect_input_fields),
        )

        candidates = CandidateSet()
        for name, scan in scans:
            try:
                candidates.extend(scan(image, maps))
            except Exception as e:
                logger.warning(f"{name.capitalize()} detection failed: {str(e)}")

        elements = candidates.clipped(image.width, image.height).deduplicated(
            self.config.duplicate_overlap_threshold
        )
        elements.sort(key=lambda element: element.confidence, reverse=True)

        logger.info(f"Detected {len(elements)} regions from {len(candidates)} candidates")
        return elements

    def detect_rectangles(self, image: ImageData, maps: Optional[PixelMaps] = None) -> List[DetectedElement]:
        """Slide a window and keep positions whose four borders carry strong edges."""
        cfg = self.config
        maps = maps or PixelMaps(image, cfg)
        width, height = image.width, image.height

        min_w = int(width * cfg.min_width_ratio)
        min_h = int(height * cfg.min_height_ratio)
        max_w = int(width * cfg.max_width_ratio)
        max_h = int(height * cfg.max_height_ratio)

        elements = []
        for y in range(0, height - min_h, cfg.rect_step):
            for x in range(0, width - min_w, cfg.rect_step):
                w = min(max_w, width - x)
                h = min(max_h, height - y)
                if w < min_w or h < min_h or w <= 0 or h <= 0:
                    continue

                edge_score = maps.border_score(x, y, w, h)
                if edge_score <= cfg.rect_edge_threshold:
                    continue

                elements.append(DetectedElement(
                    type=classify_rectangle(w, h),
                    bounds=BoundingBox(x=x, y=y, width=w, height=h),
                    confidence=min(edge_score * cfg.rect_confidence_scale, 1.0),
                    properties={
                        "aspectRatio": w / h,
                        "edgeScore": edge_score,
                        "center": {"x": x + w / 2, "y": y + h / 2},
                    },
                ))

        return elements

    def detect_circles(self, image: ImageData, maps: Optional[PixelMaps] = None) -> List[DetectedElement]:
        """Probe a grid of centres with rings of growing radius."""
        cfg = self.config
        maps = maps or PixelMaps(image, cfg)
        gray = maps.gray
        width, height = image.width, image.height

        max_radius = min(width, height) / 4
        radii = np.arange(cfg.circle_min_radius, max_radius + 1e-9, cfg.circle_radius_step, dtype=np.float64)
        if radii.size == 0:
            return []

        angles = np.radians(np.arange(0, 360, cfg.circle_angle_step, dtype=np.float64))
        cos_a, sin_a = np.cos(angles), np.sin(angles)
        outer_dx, outer_dy = radii[:, None] * cos_a, radii[:, None] * sin_a
        inner = radii[:, None] - cfg.circle_ring_offset
        inner_dx, inner_dy = inner * cos_a, inner * sin_a

        elements = []
        cy = max_radius
        while cy < height - max_radius:
            cx = max_radius
            while cx < width - max_radius:
                ox = np.floor(cx + outer_dx + 0.5).astype(np.int64)
                oy = np.floor(cy + outer_dy + 0.5).astype(np.int64)
                valid = (ox >= 1) & (ox < width - 1) & (oy >= 1) & (oy < height - 1)

                ix = np.clip(np.floor(cx + inner_dx + 0.5).astype(np.int64), 0, width - 1)
                iy = np.clip(np.floor(cy + inner_dy + 0.5).astype(np.int64), 0, height - 1)
                ring = gray[np.clip(oy, 0, height - 1), np.clip(ox, 0, width - 1)]
                contrast = np.abs(ring - gray[iy, ix]) > cfg.circle_contrast_threshold

                samples = valid.sum(axis=1)
                edges = (contrast & valid).sum(axis=1)
                scores = np.where(samples > 0, edges / np.maximum(samples, 1), 0.0)

                best = int(np.argmax(scores))
                confidence = float(scores[best])
                if confidence > cfg.circle_confidence_threshold:
                    radius = int(radii[best])
                    center_x = int(math.floor(cx + 0.5))
                    center_y = int(math.floor(cy + 0.5))
                    elements.append(DetectedElement(
                        type=ElementType.CIRCULAR_ELEMENT.value,
                        bounds=BoundingBox(
                            x=center_x - radius, y=center_y - radius, width=radius * 2, height=radius * 2
                        ),
                        confidence=confidence,
                        properties={"radius": radius, "center": {"x": center_x, "y": center_y}},
                    ))
                cx += cfg.circle_step
            cy += cfg.circle_step

        return elements

    def detect_text_regions(self, image: ImageData, maps: Optional[PixelMaps] = None) -> List[DetectedElement]:
        """Scan horizontal strips for ink runs, then merge lines into blocks."""
        cfg = self.config
        maps = maps or PixelMaps(image, cfg)
        gray = maps.gray
        width, height = image.width, image.height
        line_height = cfg.text_line_height

        lines = []
        for y in range(0, height - line_height, cfg.text_scan_step):
            # column-major order: down each column, then to the next one
            strip = gray[y:y + line_height, :].T
            dark = strip < cfg.ink_threshold
            light = strip > cfg.paper_threshold

            dark_count = int(np.count_nonzero(dark))
            if dark_count == 0:
                continue

            density = dark_count / strip.size
            chars = count_ink_runs(dark.ravel(), light.ravel())
            confidence = min(density * 2, 1.0) * min(chars / 5, 1.0)
            if confidence <= cfg.text_confidence_threshold:
                continue

            ink_columns = np.flatnonzero(dark.any(axis=1))
            first_x, last_x = int(ink_columns[0]), int(ink_columns[-1])
            line_width = max(last_x - first_x, cfg.text_min_width)
            lines.append(DetectedElement(
                type=ElementType.TEXT_REGION.value,
                bounds=BoundingBox(x=first_x, y=y, width=line_width, height=line_height),
                confidence=confidence,
                properties={"textDensity": density, "estimatedChars": chars},
            ))

        return self.merge_text_lines(lines)

    def merge_text_lines(self, lines: List[DetectedElement]) -> List[DetectedElement]:
        """
        Group text lines that sit close together into text blocks.

        A line joins the group of the first unused line above it when their
        vertical distance is below ``text_merge_distance`` and their
        horizontal overlap exceeds ``text_merge_overlap``.
        """
        cfg = self.config
        merged = []
        used = set()

        for i, current in enumerate(lines):
            if i in used:
                continue
            used.add(i)
            group = [current]

            for j in range(i + 1, len(lines)):
                if j in used:
                    continue
                other = lines[j]
                vertical_distance = abs(current.bounds.y - other.bounds.y)
                if vertical_distance < cfg.text_merge_distance and \
                        horizontal_overlap(current.bounds, other.bounds) > cfg.text_merge_overlap:
                    group.append(other)
                    used.add(j)

            if len(group) == 1:
                merged.append(current)
                continue

            merged.append(DetectedElement(
                type=ElementType.TEXT_BLOCK.value,
                bounds=BoundingBox.union(line.bounds for line in group),
                confidence=sum(line.confidence for line in group) / len(group),
                properties={
                    "lineCount": len(group),
                    "avgTextDensity": sum(line.properties["textDensity"] for line in group) / len(group),
                },
            ))

        return merged

    def detect_input_fields(self, image: ImageData, maps: Optional[PixelMaps] = None) -> List[DetectedElement]:
        """Look for bordered, mostly empty boxes of input-field height."""
        cfg = self.config
        maps = maps or PixelMaps(image, cfg)
        width, height = image.width, image.height
        field_h = cfg.input_height
        min_w = cfg.input_min_width

        elements = []
        for y in range(0, height - field_h, cfg.input_y_step):
            for x in range(0, width - min_w, cfg.input_x_step):
                max_w = min(min_w * 3, width - x)
                best_width, best_score = min_w, 0.0

                for w in range(min_w, max_w + 1, cfg.input_width_step):
                    border = maps.border_score(x, y, w, field_h)
                    empty = maps.emptiness(x + 2, y + 2, w - 4, field_h - 4)
                    score = border * cfg.input_border_weight + empty * cfg.input_emptiness_weight
                    if score > best_score:
                        best_width, best_score = w, score

                if best_score <= cfg.input_confidence_threshold:
                    continue

                is_empty = maps.emptiness(x + 2, y + 2, best_width - 4, field_h - 4) > 0.7
                elements.append(DetectedElement(
                    type=ElementType.INPUT_FIELD.value,
                    bounds=BoundingBox(x=x, y=y, width=best_width, height=field_h),
                    confidence=min(best_score, 1.0),
                    properties={"borderStrength": best_score, "isEmpty": is_empty},
                ))

        return elements
