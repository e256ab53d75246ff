"""
Deterministic rule tables that turn a merged analysis into recommendations
and code-generation hints.

Rules are evaluated in table order; adding a rule means adding a row, not a
branch.
"""

import math
from dataclasses import dataclass
from typing import Any, Callable, Dict, List

from ui_analysis.models import (
    AnalysisResult,
    CodeGenerationHints,
    ColorHint,
    ColorSwatch,
    ComponentHint,
    DetectedElement,
    ElementSource,
    LayoutDescriptor,
    Recommendation,
    Severity,
)


@dataclass(frozen=True)
class RecommendationContext:
    elements: List[DetectedElement]
    layout: LayoutDescriptor
    cv: AnalysisResult
    llm: AnalysisResult


@dataclass(frozen=True)
class RecommendationRule:
    type: str
    message: str
    priority: str
    applies: Callable[[RecommendationContext], bool]


INTERACTIVE_TYPES = ("button", "input-field")

RECOMMENDATION_RULES = (
    RecommendationRule(
        "framework",
        "Consider using a component-based framework like React for better organization",
        Severity.MEDIUM.value,
        lambda ctx: len(ctx.elements) > 10,
    ),
    RecommendationRule(
        "styling",
        "Use CSS Grid or Flexbox for complex layouts",
        Severity.HIGH.value,
        lambda ctx: ctx.layout.structure == "complex-grid",
    ),
    RecommendationRule(
        "responsive",
        "Implement responsive design with mobile-first approach",
        Severity.HIGH.value,
        lambda ctx: len(ctx.elements) > 5,
    ),
    RecommendationRule(
        "accessibility",
        "Add proper ARIA labels and keyboard navigation support",
        Severity.HIGH.value,
        lambda ctx: any(element.type in INTERACTIVE_TYPES for element in ctx.elements),
    ),
    RecommendationRule(
        "cv-quality",
        "CV analysis confidence is low, consider image preprocessing",
        Severity.MEDIUM.value,
        lambda ctx: ctx.cv.confidence < 0.5,
    ),
    RecommendationRule(
        "llm-analysis",
        "Description did not mention UI components, review the analysis prompt",
        Severity.HIGH.value,
        lambda ctx: len(ctx.llm.elements) == 0,
    ),
)


def build_recommendations(context: RecommendationContext) -> List[Recommendation]:
    return [
        Recommendation(type=rule.type, message=rule.message, priority=rule.priority)
        for rule in RECOMMENDATION_RULES
        if rule.applies(context)
    ]


# Element type -> (HTML tag, semantic role, type priority)
ELEMENT_TRAITS: Dict[str, tuple] = {
    "button": ("button", "interactive", 5),
    "input-field": ("input", "form-control", 5),
    "text-heading": ("h2", "heading", 4),
    "container": ("div", "layout", 3),
    "text-region": ("p", "content", 2),
    "text-block": ("p", "content", 2),
    "circular-element": ("img", "media", 1),
    "horizontal-separator": ("hr", "separator", 1),
    "vertical-separator": ("div", "separator", 1),
    "input": ("input", "form-control", 1),
    "form": ("form", "form", 1),
    "header": ("header", "banner", 1),
    "navigation": ("nav", "navigation", 1),
    "menu": ("nav", "navigation", 1),
    "sidebar": ("aside", "complementary", 1),
    "footer": ("footer", "contentinfo", 1),
    "card": ("div", "layout", 1),
    "image": ("img", "media", 1),
    "icon": ("img", "media", 1),
}


def html_tag(element_type: str) -> str:
    return ELEMENT_TRAITS.get(element_type, ("div", None, 1))[0]


def semantic_role(element_type: str) -> str:
    return ELEMENT_TRAITS.get(element_type, (None, "content", 1))[1]


def type_priority(element_type: str) -> int:
    return ELEMENT_TRAITS.get(element_type, (None, None, 1))[2]


def enhanced_type(cv_type: str, llm_type: str) -> str:
    """Pick the more specific of a CV element type and a described component type."""
    return cv_type if type_priority(cv_type) >= type_priority(llm_type) else llm_type


def css_classes(element: DetectedElement) -> List[str]:
    classes = [f"ui-{element.type}"]
    if element.semantic_role:
        classes.append(f"role-{element.semantic_role}")
    if element.source == ElementSource.HYBRID.value:
        classes.append("cv-llm-validated")
    return classes


def component_properties(element: DetectedElement) -> Dict[str, Any]:
    properties: Dict[str, Any] = {}
    if element.type == "button":
        properties["type"] = "button"
        properties["role"] = "button"
    if element.type in ("input-field", "input"):
        properties["type"] = "text"
        properties["placeholder"] = "Enter text..."
    if element.bounds is not None:
        properties["style"] = {
            "width": f"{element.bounds.width}px",
            "height": f"{element.bounds.height}px",
        }
    return properties


def complexity(elements: List[DetectedElement], layout: LayoutDescriptor) -> float:
    score = len(elements) * 0.1 + layout.grid.columns * 0.2 + layout.grid.rows * 0.15
    if layout.structure == "complex-grid":
        score += 0.5
    return min(score, 1.0)


def estimated_development_hours(elements: List[DetectedElement]) -> int:
    # two hours of setup plus half an hour per element
    return int(math.floor(2 + len(elements) * 0.5 + 0.5))


FRAMEWORK_RULES = (
    ("React", lambda elements, layout: len(elements) > 10),
    ("Vue", lambda elements, layout: layout.structure == "complex-grid"),
)


def suggest_framework(elements: List[DetectedElement], layout: LayoutDescriptor) -> str:
    for framework, applies in FRAMEWORK_RULES:
        if applies(elements, layout):
            return framework
    return "Vanilla"


def build_code_generation_hints(
    elements: List[DetectedElement],
    layout: LayoutDescriptor,
    colors: List[ColorSwatch],
) -> CodeGenerationHints:
    """
    Suggest markup and style tokens for the merged analysis.

    Component ids and CSS variable names are derived from list positions so
    the same analysis always yields the same hints.
    """
    components = [
        ComponentHint(
            id=f"component-{index}",
            type=element.enhanced_type or element.type,
            html_tag=html_tag(element.type),
            role=element.semantic_role,
            css_classes=css_classes(element),
            properties=component_properties(element),
            bounds=element.bounds,
            confidence=element.confidence,
        )
        for index, element in enumerate(elements)
    ]

    color_hints = []
    for index, color in enumerate(colors):
        usage = color.usage if color.usage and color.usage != "unknown" else "accent"
        color_hints.append(ColorHint(
            hex=color.hex,
            usage=usage,
            css_variable=f"--color-{usage}-{index}",
            confidence=color.confidence,
        ))

    return CodeGenerationHints(
        components=components,
        layout_structure=layout.structure,
        grid=layout.grid,
        semantic=layout.semantic,
        colors=color_hints,
        complexity=complexity(elements, layout),
        estimated_development_hours=estimated_development_hours(elements),
        recommended_framework=suggest_framework(elements, layout),
    )
