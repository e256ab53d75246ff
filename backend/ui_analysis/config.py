"""
Tunable constants for the UI analysis pipeline.

Every threshold, stride and weight used by the detectors and the merger lives
here so callers can override them per request instead of editing code.
"""

import logging
import math
import os
from typing import Any, Dict, List, Optional

from ui_analysis.image import UIAnalysisError

logger = logging.getLogger(__name__)


class InvalidConfigError(UIAnalysisError):
    """Raised when a configuration override has an unusable value."""


class DetectionConfig:
    """Configuration for pixel-level region detection."""

    def __init__(
        self,
        rect_step: int = 10,
        edge_sample_step: int = 5,
        min_width_ratio: float = 0.05,
        max_width_ratio: float = 0.8,
        min_height_ratio: float = 0.02,
        max_height_ratio: float = 0.6,
        rect_edge_threshold: float = 0.3,
        rect_confidence_scale: float = 1.5,
        circle_step: int = 20,
        circle_min_radius: int = 10,
        circle_radius_step: int = 5,
        circle_angle_step: int = 15,
        circle_ring_offset: int = 5,
        circle_contrast_threshold: int = 30,
        circle_confidence_threshold: float = 0.4,
        text_line_height: int = 20,
        text_scan_step: int = 5,
        ink_threshold: int = 128,
        paper_threshold: int = 200,
        text_confidence_threshold: float = 0.3,
        text_min_width: int = 50,
        text_merge_distance: int = 30,
        text_merge_overlap: float = 0.3,
        input_min_width: int = 100,
        input_height: int = 35,
        input_x_step: int = 20,
        input_y_step: int = 10,
        input_width_step: int = 10,
        input_border_weight: float = 0.7,
        input_emptiness_weight: float = 0.3,
        input_confidence_threshold: float = 0.5,
        duplicate_overlap_threshold: float = 0.7,
    ):
        self.rect_step = rect_step
        self.edge_sample_step = edge_sample_step
        self.min_width_ratio = min_width_ratio
        self.max_width_ratio = max_width_ratio
        self.min_height_ratio = min_height_ratio
        self.max_height_ratio = max_height_ratio
        self.rect_edge_threshold = rect_edge_threshold
        self.rect_confidence_scale = rect_confidence_scale
        self.circle_step = circle_step
        self.circle_min_radius = circle_min_radius
        self.circle_radius_step = circle_radius_step
        self.circle_angle_step = circle_angle_step
        self.circle_ring_offset = circle_ring_offset
        self.circle_contrast_threshold = circle_contrast_threshold
        self.circle_confidence_threshold = circle_confidence_threshold
        self.text_line_height = text_line_height
        self.text_scan_step = text_scan_step
        self.ink_threshold = ink_threshold
        self.paper_threshold = paper_threshold
        self.text_confidence_threshold = text_confidence_threshold
        self.text_min_width = text_min_width
        self.text_merge_distance = text_merge_distance
        self.text_merge_overlap = text_merge_overlap
        self.input_min_width = input_min_width
        self.input_height = input_height
        self.input_x_step = input_x_step
        self.input_y_step = input_y_step
        self.input_width_step = input_width_step
        self.input_border_weight = input_border_weight
        self.input_emptiness_weight = input_emptiness_weight
        self.input_confidence_threshold = input_confidence_threshold
        self.duplicate_overlap_threshold = duplicate_overlap_threshold


class LayoutConfig:
    """Configuration for grid and spacing inference."""

    def __init__(
        self,
        scan_step: int = 10,
        sample_step: int = 5,
        band_start: float = 0.1,
        band_end: float = 0.9,
        min_strength: float = 20.0,
        pixel_edge_threshold: int = 20,
        min_span_ratio: float = 0.3,
        min_gap: int = 20,
        max_divisions: int = 5,
        alignment_primary: str = "left",
        alignment_secondary: str = "top",
        alignment_confidence: float = 0.7,
        spacing_horizontal_ratio: float = 0.02,
        spacing_vertical_ratio: float = 0.02,
        padding_ratio: float = 0.03,
    ):
        self.scan_step = scan_step
        self.sample_step = sample_step
        self.band_start = band_start
        self.band_end = band_end
        self.min_strength = min_strength
        self.pixel_edge_threshold = pixel_edge_threshold
        self.min_span_ratio = min_span_ratio
        self.min_gap = min_gap
        self.max_divisions = max_divisions
        self.alignment_primary = alignment_primary
        self.alignment_secondary = alignment_secondary
        self.alignment_confidence = alignment_confidence
        self.spacing_horizontal_ratio = spacing_horizontal_ratio
        self.spacing_vertical_ratio = spacing_vertical_ratio
        self.padding_ratio = padding_ratio


class PaletteConfig:
    """Configuration for color palette extraction."""

    def __init__(
        self,
        max_colors: int = 8,
        max_sampled_colors: int = 5,
        target_samples: int = 10000,
        distinct_distance: float = 30.0,
        histogram_levels: int = 16,
    ):
        self.max_colors = max_colors
        self.max_sampled_colors = max_sampled_colors
        self.target_samples = target_samples
        self.distinct_distance = distinct_distance
        self.histogram_levels = histogram_levels


class OcrConfig:
    """Configuration for the Tesseract OCR engine."""

    def __init__(
        self,
        enabled: bool = True,
        language: str = "eng",
        tesseract_cmd: Optional[str] = None,
        min_word_confidence: float = 0.0,
        min_font_size: int = 12,
    ):
        self.enabled = enabled
        self.language = language
        # TESSERACT_CMD wins over the default so deployments can point at a custom binary
        self.tesseract_cmd = tesseract_cmd or os.getenv("TESSERACT_CMD")
        self.min_word_confidence = min_word_confidence
        self.min_font_size = min_font_size


class PipelineConfig:
    """Configuration for the concurrent CV pass."""

    def __init__(
        self,
        max_workers: int = 4,
        timeout: Optional[float] = None,
        element_weight: float = 0.4,
        layout_weight: float = 0.3,
        text_weight: float = 0.3,
        element_saturation: int = 10,
    ):
        self.max_workers = max_workers
        self.timeout = timeout
        self.element_weight = element_weight
        self.layout_weight = layout_weight
        self.text_weight = text_weight
        self.element_saturation = element_saturation


class MergeConfig:
    """Weights and discount factors used when fusing CV and free-text results."""

    def __init__(
        self,
        cv_weight: float = 0.4,
        llm_weight: float = 0.6,
        unmatched_cv_factor: float = 0.8,
        llm_only_factor: float = 0.7,
        llm_only_min_confidence: float = 0.8,
        unmatched_cv_color_factor: float = 0.9,
        cv_color_prior: float = 0.8,
        llm_color_min_confidence: float = 0.7,
        color_match_distance: float = 30.0,
        duplicate_overlap_threshold: float = 0.7,
        element_count_tolerance: int = 5,
        min_color_overlap: float = 0.3,
        warning_penalty: float = 0.1,
        issue_penalty: float = 0.3,
        valid_threshold: float = 0.5,
        placeholder_bounds: Optional[Dict[str, int]] = None,
    ):
        self.cv_weight = cv_weight
        self.llm_weight = llm_weight
        self.unmatched_cv_factor = unmatched_cv_factor
        self.llm_only_factor = llm_only_factor
        self.llm_only_min_confidence = llm_only_min_confidence
        self.unmatched_cv_color_factor = unmatched_cv_color_factor
        self.cv_color_prior = cv_color_prior
        self.llm_color_min_confidence = llm_color_min_confidence
        self.color_match_distance = color_match_distance
        self.duplicate_overlap_threshold = duplicate_overlap_threshold
        self.element_count_tolerance = element_count_tolerance
        self.min_color_overlap = min_color_overlap
        self.warning_penalty = warning_penalty
        self.issue_penalty = issue_penalty
        self.valid_threshold = valid_threshold
        self.placeholder_bounds = placeholder_bounds or {"x": 50, "y": 50, "width": 200, "height": 40}


# Descriptions surfaced by the /config/defaults endpoint
PARAMETER_DESCRIPTIONS: Dict[str, str] = {
    "detection.rect_step": "Stride in pixels of the rectangular region scan",
    "detection.rect_edge_threshold": "Minimum mean border edge score for a rectangle",
    "detection.circle_confidence_threshold": "Minimum ring contrast score for a circle",
    "detection.text_confidence_threshold": "Minimum ink score for a text line",
    "detection.text_merge_distance": "Maximum vertical distance when merging text lines",
    "detection.input_confidence_threshold": "Minimum border/emptiness score for an input field",
    "detection.duplicate_overlap_threshold": "Overlap ratio above which detections are duplicates",
    "layout.max_divisions": "Maximum division lines kept per axis",
    "layout.min_span_ratio": "Fraction of the axis a division line must span",
    "palette.max_colors": "Maximum number of colors returned",
    "palette.distinct_distance": "RGB distance under which sampled colors are merged",
    "pipeline.timeout": "Seconds to wait for the CV pass before degrading",
    "merge.cv_weight": "Weight of the CV confidence in fused elements",
    "merge.llm_weight": "Weight of the free-text confidence in fused elements",
    "merge.unmatched_cv_factor": "Confidence factor for CV elements without a match",
    "merge.llm_only_factor": "Confidence factor for free-text components with estimated bounds",
    "merge.color_match_distance": "RGB distance under which colors are considered the same",
    "merge.duplicate_overlap_threshold": "Overlap ratio above which merged elements are duplicates",
}


# Parameters used as loop strides, divisors or pool sizes
POSITIVE_PARAMETERS = frozenset({
    "rect_step",
    "edge_sample_step",
    "circle_step",
    "circle_min_radius",
    "circle_radius_step",
    "circle_angle_step",
    "text_line_height",
    "text_scan_step",
    "input_height",
    "input_x_step",
    "input_y_step",
    "input_width_step",
    "scan_step",
    "sample_step",
    "max_colors",
    "target_samples",
    "histogram_levels",
    "max_workers",
    "element_saturation",
})

PARAMETER_MAXIMUMS = {"histogram_levels": 256}

PLACEHOLDER_KEYS = {"x", "y", "width", "height"}


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def validate_parameter(name: str, current: Any, value: Any) -> Optional[str]:
    """
    Check an override against the type and range of the parameter it replaces.

    Args:
        name: Parameter name within its section
        current: Value the parameter holds now
        value: Proposed value

    Returns:
        A description of the problem, or None when the value is usable
    """
    if name == "timeout":
        if value is None:
            return None
        if not _is_number(value) or not math.isfinite(value) or value <= 0:
            return "must be a positive number of seconds or null"
        return None
    if name == "tesseract_cmd":
        return None if value is None or isinstance(value, str) else "must be a string or null"
    if name == "placeholder_bounds":
        if not isinstance(value, dict) or set(value) != PLACEHOLDER_KEYS:
            return "must be an object with x, y, width and height"
        if not all(isinstance(v, int) and not isinstance(v, bool) and v >= 0 for v in value.values()):
            return "must hold non-negative integers"
        return None

    if isinstance(current, bool):
        return None if isinstance(value, bool) else "must be a boolean"
    if isinstance(current, str):
        return None if isinstance(value, str) else "must be a string"
    if isinstance(current, int):
        if not isinstance(value, int) or isinstance(value, bool):
            return "must be an integer"
        minimum = 1 if name in POSITIVE_PARAMETERS else 0
        if value < minimum:
            return f"must be at least {minimum}"
        maximum = PARAMETER_MAXIMUMS.get(name)
        if maximum is not None and value > maximum:
            return f"must be at most {maximum}"
        return None
    if isinstance(current, float):
        if not _is_number(value) or not math.isfinite(value):
            return "must be a finite number"
        if value < 0:
            return "must not be negative"
    return None


class AnalysisConfig:
    """Bundle of all section configurations."""

    SECTIONS = ("detection", "layout", "palette", "ocr", "pipeline", "merge")

    def __init__(
        self,
        detection: Optional[DetectionConfig] = None,
        layout: Optional[LayoutConfig] = None,
        palette: Optional[PaletteConfig] = None,
        ocr: Optional[OcrConfig] = None,
        pipeline: Optional[PipelineConfig] = None,
        merge: Optional[MergeConfig] = None,
    ):
        self.detection = detection or DetectionConfig()
        self.layout = layout or LayoutConfig()
        self.palette = palette or PaletteConfig()
        self.ocr = ocr or OcrConfig()
        self.pipeline = pipeline or PipelineConfig()
        self.merge = merge or MergeConfig()

    def update(self, overrides: Dict[str, Any]) -> List[str]:
        """
        Apply overrides given as ``"section.name"`` or bare ``"name"`` keys.

        Args:
            overrides: Mapping of parameter names to new values

        Returns:
            The keys that did not match any known parameter

        Raises:
            InvalidConfigError: If a known parameter gets a value of the wrong
                type or out of range; no override is applied in that case
        """
        unknown = []
        changes = []
        for key, value in overrides.items():
            target = self._resolve(key)
            if target is None:
                logger.warning(f"Unknown config parameter: {key}")
                unknown.append(key)
                continue
            section, name = target
            current = getattr(section, name)
            problem = validate_parameter(name, current, value)
            if problem is not None:
                raise InvalidConfigError(f"Invalid value for config parameter {key}: {problem}")
            if isinstance(current, float) or (name == "timeout" and value is not None):
                value = float(value)
            changes.append((section, name, value))

        for section, name, value in changes:
            setattr(section, name, value)
        return unknown

    def _resolve(self, key: str):
        if "." in key:
            section_name, name = key.split(".", 1)
            section = getattr(self, section_name, None) if section_name in self.SECTIONS else None
            if section is not None and hasattr(section, name):
                return section, name
            return None

        for section_name in self.SECTIONS:
            section = getattr(self, section_name)
            if hasattr(section, key):
                return section, key
        return None

    def describe(self) -> Dict[str, Dict[str, Any]]:
        """Return the documented parameters with their current values."""
        described = {}
        for key, description in PARAMETER_DESCRIPTIONS.items():
            section_name, name = key.split(".", 1)
            value = getattr(getattr(self, section_name), name)
            described[key] = {
                "value": value,
                "description": description,
                "type": type(value).__name__ if value is not None else "float",
            }
        return described
