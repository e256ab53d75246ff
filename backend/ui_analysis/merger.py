"""
Fusion of the CV pass and the parsed free-text description.

``HybridMerger.merge`` matches CV elements with described components through
a type-alias table, weights their confidences, cross-validates the two
analyses and derives recommendations and code-generation hints. It never
raises: any internal failure yields ``MergedAnalysis.empty``.
"""

import logging
from typing import Dict, List, Optional, Sequence, Set, Tuple

from ui_analysis.colors import colors_are_similar
from ui_analysis.config import MergeConfig
from ui_analysis.geometry import remove_duplicates
from ui_analysis.insights import (
    RecommendationContext,
    build_code_generation_hints,
    build_recommendations,
    enhanced_type,
    semantic_role,
)
from ui_analysis.models import (
    AnalysisResult,
    BoundingBox,
    ColorSwatch,
    ConfidenceMetrics,
    DetectedElement,
    ElementSource,
    ElementValidation,
    GridInfo,
    LayoutDescriptor,
    MergedAnalysis,
    MergeInsights,
    SemanticLayout,
    Severity,
    TextAnalysis,
    ValidationMessage,
    ValidationReport,
)

logger = logging.getLogger(__name__)

# CV element type -> described component types it can be matched with
TYPE_ALIASES: Dict[str, Tuple[str, ...]] = {
    "button": ("button", "buttons"),
    "input-field": ("input", "inputs", "form"),
    "text-region": ("text", "paragraph", "content"),
    "text-block": ("text", "paragraph", "content"),
    "text-heading": ("header", "heading", "title"),
    "container": ("container", "card", "div"),
    "circular-element": ("icon", "image", "avatar"),
}

STRUCTURE_SPECIFICITY = {
    "complex-grid": 5,
    "multi-column": 4,
    "multi-row": 3,
    "simple": 2,
    "unknown": 1,
}


class HybridMerger:
    """Cross-validates and fuses a CV analysis with a free-text analysis."""

    def __init__(self, config: Optional[MergeConfig] = None):
        self.config = config or MergeConfig()

    def fused_confidence(self, cv_confidence: float, llm_confidence: float) -> float:
        return cv_confidence * self.config.cv_weight + llm_confidence * self.config.llm_weight

    def merge(self, cv: AnalysisResult, llm: AnalysisResult) -> MergedAnalysis:
        """
        Merge both analyses into one confidence-scored result.

        Args:
            cv: Result of the image analysis pipeline
            llm: Result of the free-text parser

        Returns:
            MergedAnalysis; ``MergedAnalysis.empty`` with the error recorded
            if anything goes wrong
        """
        logger.info("Starting hybrid analysis merge")
        try:
            result = self._merge(cv, llm)
        except Exception as e:
            logger.error(f"Hybrid analysis merge failed: {str(e)}")
            return MergedAnalysis.empty(str(e))

        logger.info(
            f"Hybrid analysis merge completed: {len(result.elements)} elements, "
            f"confidence {result.confidence.overall:.2f}, valid {result.validation.is_valid}"
        )
        return result

    def _merge(self, cv: AnalysisResult, llm: AnalysisResult) -> MergedAnalysis:
        elements = self.merge_elements(cv.elements, llm.elements, cv.image_size)
        layout = self.merge_layout(cv.layout, llm.layout)
        colors = self.merge_colors(cv.colors, llm.colors)
        text = self.merge_text(cv.text, llm.text)

        return MergedAnalysis(
            elements=elements,
            layout=layout,
            colors=colors,
            text=text,
            confidence=self.confidence_metrics(cv, llm, elements, layout, colors),
            validation=self.cross_validate(cv, llm),
            recommendations=build_recommendations(RecommendationContext(elements, layout, cv, llm)),
            code_generation_hints=build_code_generation_hints(elements, layout, colors),
            insights=self.merge_insights(cv, llm, elements),
            metadata={
                "cvConfidence": cv.confidence,
                "llmConfidence": llm.confidence,
                "elementsFromCV": len(cv.elements),
                "elementsFromLLM": len(llm.elements),
                "mergedElements": len(elements),
                "imageCount": cv.metadata.get("imageCount", 0),
            },
        )

    # Elements

    @staticmethod
    def find_matching_component(element: DetectedElement, components: Sequence[DetectedElement]) -> Optional[int]:
        """Index of the first described component whose type matches the element's aliases."""
        aliases = TYPE_ALIASES.get(element.type, (element.type,))
        for index, component in enumerate(components):
            component_type = component.type.lower()
            if any(alias in component_type for alias in aliases):
                return index
        return None

    def merge_elements(
        self,
        cv_elements: Sequence[DetectedElement],
        components: Sequence[DetectedElement],
        image_size: Optional[Tuple[int, int]] = None,
    ) -> List[DetectedElement]:
        """
        Fuse CV elements with described components.

        1. CV elements with a matching component become hybrid elements.
        2. Unmatched CV elements are kept at a discounted confidence.
        3. Unmatched, highly confident components get placeholder bounds.
        4. Everything is sorted by confidence and de-duplicated.
        """
        cfg = self.config
        merged: List[DetectedElement] = []
        matched: Set[int] = set()

        for element in cv_elements:
            index = self.find_matching_component(element, components)
            if index is None:
                merged.append(element.model_copy(update={
                    "source": ElementSource.CV_ONLY.value,
                    "confidence": element.confidence * cfg.unmatched_cv_factor,
                    "validation": ElementValidation(cv_validated=True),
                }))
                continue

            matched.add(index)
            component = components[index]
            merged.append(element.model_copy(update={
                "source": ElementSource.HYBRID.value,
                "confidence": self.fused_confidence(element.confidence, component.confidence),
                "validation": ElementValidation(cv_validated=True, llm_validated=True, cross_validated=True),
                "enhanced_type": enhanced_type(element.type, component.type),
                "semantic_role": semantic_role(element.type),
                "matched_component": component.type,
                "mentions": component.mentions,
                "priority": component.priority,
                "properties": {
                    **element.properties,
                    "llmInsights": {"mentions": component.mentions or 1, "priority": component.priority},
                },
            }))

        for index, component in enumerate(components):
            if index in matched or component.confidence <= cfg.llm_only_min_confidence:
                continue
            merged.append(component.model_copy(update={
                "bounds": self.placeholder_bounds(image_size),
                "source": ElementSource.LLM_ONLY.value,
                "confidence": component.confidence * cfg.llm_only_factor,
                "validation": ElementValidation(llm_validated=True),
                "semantic_role": semantic_role(component.type),
            }))

        merged.sort(key=lambda element: element.confidence, reverse=True)
        return remove_duplicates(merged, lambda element: element.bounds, cfg.duplicate_overlap_threshold)

    def placeholder_bounds(self, image_size: Optional[Tuple[int, int]]) -> Optional[BoundingBox]:
        bounds = BoundingBox(**self.config.placeholder_bounds)
        if image_size is None:
            return bounds
        bounds = bounds.clip(*image_size)
        return bounds if bounds.area > 0 else None

    # Layout, colors, text

    def merge_layout(self, cv_layout: LayoutDescriptor, llm_layout: LayoutDescriptor) -> LayoutDescriptor:
        structure = self.select_structure(cv_layout.structure, llm_layout.structure)
        semantic = SemanticLayout(
            has_header=cv_layout.semantic.has_header or llm_layout.semantic.has_header,
            has_sidebar=cv_layout.semantic.has_sidebar or llm_layout.semantic.has_sidebar,
            has_footer=cv_layout.semantic.has_footer or llm_layout.semantic.has_footer,
            is_responsive=cv_layout.semantic.is_responsive or llm_layout.semantic.is_responsive,
        )
        grid = GridInfo(
            columns=cv_layout.grid.columns,
            rows=cv_layout.grid.rows,
            vertical_divisions=cv_layout.grid.vertical_divisions,
            horizontal_divisions=cv_layout.grid.horizontal_divisions,
            confidence=max(cv_layout.grid.confidence, llm_layout.confidence),
        )
        patterns = {f"cv.{key}": value for key, value in cv_layout.patterns.items()}
        patterns.update({f"llm.{key}": value for key, value in llm_layout.patterns.items()})

        return LayoutDescriptor(
            structure=structure,
            grid=grid,
            alignment=cv_layout.alignment,
            spacing=cv_layout.spacing,
            semantic=semantic,
            patterns=patterns,
            confidence=self.fused_confidence(cv_layout.confidence, llm_layout.confidence),
            aspect_ratio=cv_layout.aspect_ratio,
            dimensions=cv_layout.dimensions,
        )

    @staticmethod
    def select_structure(cv_structure: str, llm_structure: str) -> str:
        if cv_structure == "unknown":
            return llm_structure
        if llm_structure == "unknown":
            return cv_structure
        cv_rank = STRUCTURE_SPECIFICITY.get(cv_structure, 1)
        llm_rank = STRUCTURE_SPECIFICITY.get(llm_structure, 1)
        return cv_structure if cv_rank >= llm_rank else llm_structure

    def merge_colors(self, cv_colors: Sequence[ColorSwatch], llm_colors: Sequence[ColorSwatch]) -> List[ColorSwatch]:
        cfg = self.config
        distance = cfg.color_match_distance
        merged: List[ColorSwatch] = []

        for color in cv_colors:
            match = next(
                (other for other in llm_colors if other.hex and colors_are_similar(color.hex, other.hex, distance)),
                None,
            )
            if match is None:
                merged.append(color.model_copy(update={
                    "confidence": color.confidence * cfg.unmatched_cv_color_factor,
                    "cv_validated": True,
                    "llm_validated": False,
                }))
                continue

            usage = match.usage if match.usage and match.usage != "unknown" else color.usage
            merged.append(color.model_copy(update={
                "usage": usage,
                "name": color.name or match.name,
                "confidence": self.fused_confidence(cfg.cv_color_prior, match.confidence),
                "source": ElementSource.HYBRID.value,
                "cv_validated": True,
                "llm_validated": True,
            }))

        for color in llm_colors:
            if color.confidence <= cfg.llm_color_min_confidence or not color.hex:
                continue
            if any(colors_are_similar(existing.hex, color.hex, distance) for existing in merged):
                continue
            merged.append(color.model_copy(update={
                "source": ElementSource.LLM.value,
                "cv_validated": False,
            }))

        merged.sort(key=lambda color: color.confidence, reverse=True)
        return merged

    @staticmethod
    def merge_text(cv_text: TextAnalysis, llm_text: TextAnalysis) -> TextAnalysis:
        return TextAnalysis(
            full_text=cv_text.full_text,
            confidence=max(cv_text.confidence, llm_text.confidence),
            blocks=cv_text.blocks,
            word_count=cv_text.word_count,
            language=cv_text.language,
            elements={**cv_text.elements, **llm_text.elements},
        )

    # Validation and scores

    def color_overlap(self, cv_colors: Sequence[ColorSwatch], llm_colors: Sequence[ColorSwatch]) -> float:
        if not cv_colors or not llm_colors:
            return 0.0
        distance = self.config.color_match_distance
        overlaps = sum(
            1 for color in cv_colors
            if any(other.hex and colors_are_similar(color.hex, other.hex, distance) for other in llm_colors)
        )
        return overlaps / max(len(cv_colors), len(llm_colors))

    def cross_validate(self, cv: AnalysisResult, llm: AnalysisResult) -> ValidationReport:
        cfg = self.config
        warnings: List[ValidationMessage] = []
        issues: List[ValidationMessage] = []

        cv_count, llm_count = len(cv.elements), len(llm.elements)
        if abs(cv_count - llm_count) > cfg.element_count_tolerance:
            warnings.append(ValidationMessage(
                type="element-count-mismatch",
                message=f"Large difference in detected elements: CV({cv_count}) vs description({llm_count})",
                severity=Severity.MEDIUM.value,
            ))

        cv_structure, llm_structure = cv.layout.structure, llm.layout.structure
        if "unknown" not in (cv_structure, llm_structure) and cv_structure != llm_structure:
            warnings.append(ValidationMessage(
                type="layout-mismatch",
                message=f"Layout structure mismatch: CV({cv_structure}) vs description({llm_structure})",
                severity=Severity.LOW.value,
            ))

        overlap = self.color_overlap(cv.colors, llm.colors)
        if overlap < cfg.min_color_overlap:
            warnings.append(ValidationMessage(
                type="color-mismatch",
                message=f"Low color overlap between CV and description: {overlap * 100:.1f}%",
                severity=Severity.MEDIUM.value,
            ))

        if cv_count == 0 and cv.confidence == 0:
            issues.append(ValidationMessage(
                type="empty-cv-analysis",
                message="Image analysis produced no elements",
                severity=Severity.HIGH.value,
            ))
        if llm_count == 0 and llm.confidence == 0:
            issues.append(ValidationMessage(
                type="empty-llm-analysis",
                message="Description produced no components",
                severity=Severity.HIGH.value,
            ))

        confidence = max(0.0, 1 - len(warnings) * cfg.warning_penalty - len(issues) * cfg.issue_penalty)
        return ValidationReport(
            is_valid=confidence > cfg.valid_threshold,
            confidence=confidence,
            warnings=warnings,
            issues=issues,
        )

    def confidence_metrics(
        self,
        cv: AnalysisResult,
        llm: AnalysisResult,
        elements: List[DetectedElement],
        layout: LayoutDescriptor,
        colors: List[ColorSwatch],
    ) -> ConfidenceMetrics:
        cross_validated = sum(1 for element in elements if element.validation.cross_validated)

        element_detection = 0.0
        if elements:
            average = sum(element.confidence for element in elements) / len(elements)
            element_detection = min(average + cross_validated / len(elements) * 0.2, 1.0)

        color_extraction = 0.0
        if colors:
            average = sum(color.confidence for color in colors) / len(colors)
            validated = sum(1 for color in colors if color.llm_validated)
            color_extraction = min(average + validated / len(colors) * 0.1, 1.0)

        return ConfidenceMetrics(
            overall=min(self.fused_confidence(cv.confidence, llm.confidence), 1.0),
            element_detection=element_detection,
            layout_analysis=layout.confidence,
            color_extraction=color_extraction,
            cross_validation=cross_validated / len(elements) if elements else 0.0,
        )

    def merge_insights(self, cv: AnalysisResult, llm: AnalysisResult, elements: List[DetectedElement]) -> MergeInsights:
        cv_count, llm_count = len(cv.elements), len(llm.elements)
        total = max(cv_count, llm_count)
        cross_validated = sum(1 for element in elements if element.validation.cross_validated)

        precision = cross_validated / len(elements) if elements else 0.0
        recall = 0.8
        f1_score = 2 * precision * recall / (precision + recall) if precision + recall > 0 else 0.0

        return MergeInsights(
            accuracy={
                "elementDetection": min(cv_count, llm_count) / total if total else 0.0,
                "layoutAnalysis": 1.0 if cv.layout.structure == llm.layout.structure else 0.5,
                "colorExtraction": self.color_overlap(cv.colors, llm.colors),
            },
            improvements={
                "cvEnhanced": sum(1 for element in elements if element.source == ElementSource.HYBRID.value),
                "llmValidated": sum(1 for element in elements if element.validation.llm_validated),
                "crossValidated": cross_validated,
            },
            quality_metrics={
                "precision": precision,
                "recall": min(len(elements) / cv_count, 1.0) if cv_count else 0.0,
                "f1Score": f1_score,
            },
        )
