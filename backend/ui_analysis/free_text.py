"""
Parser that maps a free-text UI description onto the ``AnalysisResult`` schema.

This is a bag-of-patterns parser, not natural language understanding: every
field is filled by counting regular-expression matches from the rule tables
below, and the confidence values are fixed heuristic constants rather than
probabilities. When the description embeds a JSON object with ``components``,
``layout`` or ``colors`` keys, that object is used instead.
"""

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Pattern

from ui_analysis.colors import hex_to_rgb
from ui_analysis.models import (
    AnalysisResult,
    ColorSwatch,
    DetectedElement,
    ElementSource,
    LayoutDescriptor,
    SemanticLayout,
    TextAnalysis,
)

logger = logging.getLogger(__name__)

DEFAULT_COMPONENT_CONFIDENCE = 0.7
HEX_COLOR_CONFIDENCE = 0.8
NAMED_COLOR_CONFIDENCE = 0.6
DESCRIPTION_CONFIDENCE = 0.7
USAGE_CONTEXT_CHARS = 40


def _compile(pattern: str) -> Pattern:
    return re.compile(pattern, re.IGNORECASE)


@dataclass(frozen=True)
class ComponentRule:
    type: str
    pattern: Pattern


@dataclass(frozen=True)
class KeywordRule:
    field: str
    pattern: Pattern
    weight: float = 0.0


COMPONENT_RULES = (
    ComponentRule("button", _compile(r"\bbuttons?\b")),
    ComponentRule("input", _compile(r"\binputs?\b")),
    ComponentRule("form", _compile(r"\bforms?\b")),
    ComponentRule("header", _compile(r"\bheaders?\b")),
    ComponentRule("navigation", _compile(r"\bnavigation\b")),
    ComponentRule("card", _compile(r"\bcards?\b")),
    ComponentRule("container", _compile(r"\bcontainers?\b")),
    ComponentRule("sidebar", _compile(r"\bsidebars?\b")),
    ComponentRule("footer", _compile(r"\bfooters?\b")),
    ComponentRule("image", _compile(r"\bimages?\b")),
    ComponentRule("icon", _compile(r"\bicons?\b")),
    ComponentRule("menu", _compile(r"\bmenus?\b")),
)

# Only weighted keywords can name the structure; ties go to the earlier rule
LAYOUT_RULES = (
    KeywordRule("grid", _compile(r"\bgrids?\b|\bcolumns?\b|\brows?\b"), 0.4),
    KeywordRule("flexbox", _compile(r"\bflex(?:box|ible)?\b"), 0.3),
    KeywordRule("responsive", _compile(r"\bresponsive\b|\bmobile\b|\bdesktop\b")),
    KeywordRule("centered", _compile(r"\bcent(?:er|re)(?:ed|d)?\b")),
    KeywordRule("sidebar", _compile(r"\bsidebars?\b|\bside\s*nav(?:igation)?\b"), 0.2),
    KeywordRule("header", _compile(r"\bheaders?\b|\btop\s+nav(?:igation)?\b"), 0.1),
    KeywordRule("footer", _compile(r"\bfooters?\b|\bbottom\b")),
)

TYPOGRAPHY_RULES = (
    KeywordRule("headings", _compile(r"\bh[1-6]\b|\bheadings?\b|\btitles?\b")),
    KeywordRule("paragraphs", _compile(r"\bparagraphs?\b|\btext\b|\bcontent\b")),
    KeywordRule("labels", _compile(r"\blabels?\b")),
    KeywordRule("links", _compile(r"\blinks?\b|\banchors?\b")),
)

THEME_RULES = (
    KeywordRule("modern", _compile(r"\bmodern\b|\bcontemporary\b|\bclean\b|\bminimal(?:ist)?\b")),
    KeywordRule("corporate", _compile(r"\bcorporate\b|\bbusiness\b|\bprofessional\b")),
    KeywordRule("creative", _compile(r"\bcreative\b|\bartist(?:ic)?\b|\bdesign\b")),
    KeywordRule("dark", _compile(r"\bdark\s+(?:mode|theme)\b|\bnight\b")),
    KeywordRule("light", _compile(r"\blight\s+(?:mode|theme)\b|\bbright\b")),
)

COLOR_USAGE_RULES = (
    KeywordRule("background", _compile(r"\bbackground\b|\bbg\b")),
    KeywordRule("text", _compile(r"\btext\b|\bfont\b")),
    KeywordRule("button", _compile(r"\bbuttons?\b|\bcta\b|\baction\b")),
    KeywordRule("accent", _compile(r"\baccent\b|\bhighlight\b|\bprimary\b")),
)

NAMED_COLORS = {
    "red": "#ff0000",
    "blue": "#0000ff",
    "green": "#008000",
    "yellow": "#ffff00",
    "orange": "#ffa500",
    "purple": "#800080",
    "pink": "#ffc0cb",
    "black": "#000000",
    "white": "#ffffff",
    "gray": "#808080",
    "grey": "#808080",
    "brown": "#a52a2a",
    "cyan": "#00ffff",
    "magenta": "#ff00ff",
}

HEX_PATTERN = _compile(r"#[0-9a-f]{6}\b")
NAMED_COLOR_PATTERNS = {name: _compile(rf"\b{name}\b") for name in NAMED_COLORS}
JSON_KEYS = ("components", "layout", "colors")
FENCED_JSON = re.compile(r"```(?:json)?\s*(\{.*?\})\s*```", re.DOTALL)


def count_matches(rules, text: str) -> Dict[str, int]:
    return {rule.field: len(rule.pattern.findall(text)) for rule in rules}


def component_priority(mentions: int, text: str) -> float:
    bonus = 0.2 if "important" in text.lower() else 0.0
    return min(min(mentions / 3, 1.0) + bonus, 1.0)


def infer_layout_structure(counts: Dict[str, int]) -> str:
    best_field, best_score = None, 0.0
    for rule in LAYOUT_RULES:
        score = counts.get(rule.field, 0) * rule.weight
        if score > best_score:
            best_field, best_score = rule.field, score
    return f"{best_field}-layout" if best_field else "simple"


def infer_color_usage(context: str) -> str:
    for rule in COLOR_USAGE_RULES:
        if rule.pattern.search(context):
            return rule.field
    return "unknown"


def _swatch(hex_value: str, confidence: float, **fields: Any) -> Optional[ColorSwatch]:
    rgb = hex_to_rgb(hex_value)
    if rgb is None:
        return None
    r, g, b = rgb
    return ColorSwatch(
        r=r,
        g=g,
        b=b,
        hex=f"#{hex_value.strip().lstrip('#').lower()}",
        confidence=confidence,
        source=ElementSource.LLM.value,
        **fields,
    )


class FreeTextAnalysisParser:
    """Turns an external service's free-text description into an AnalysisResult."""

    def parse(self, free_text: Optional[str]) -> AnalysisResult:
        """
        Parse a description.

        Tries an embedded JSON object first, then the pattern rules, and
        finally falls back to default metadata (unknown structure,
        confidence 0, no components).

        Args:
            free_text: Description text; may be empty or None

        Returns:
            AnalysisResult in the same shape as the CV pass
        """
        text = free_text or ""
        if not text.strip():
            return self.default_result()

        data = self.extract_json(text)
        if data is not None:
            try:
                return self.from_json(data)
            except (TypeError, ValueError, AttributeError) as e:
                logger.warning(f"Ignoring malformed JSON analysis: {str(e)}")

        result = self.from_patterns(text)
        if result is None:
            return self.default_result()
        return result

    @staticmethod
    def default_result() -> AnalysisResult:
        return AnalysisResult(
            layout=LayoutDescriptor(structure="unknown"),
            confidence=0.0,
            metadata={"parser": "default"},
        )

    @staticmethod
    def extract_json(text: str) -> Optional[Dict[str, Any]]:
        """Return the first JSON object (fenced or bare) carrying analysis keys."""
        candidates = [match.group(1) for match in FENCED_JSON.finditer(text)]

        decoder = json.JSONDecoder()
        for candidate in candidates:
            try:
                data = json.loads(candidate)
            except json.JSONDecodeError:
                continue
            if isinstance(data, dict) and any(key in data for key in JSON_KEYS):
                return data

        position = text.find("{")
        while position != -1:
            try:
                data, _ = decoder.raw_decode(text, position)
            except json.JSONDecodeError:
                data = None
            if isinstance(data, dict) and any(key in data for key in JSON_KEYS):
                return data
            position = text.find("{", position + 1)

        return None

    def from_json(self, data: Dict[str, Any]) -> AnalysisResult:
        components = []
        for item in data.get("components") or []:
            if isinstance(item, str):
                item = {"type": item}
            component_type = str(item.get("type") or item.get("name") or "").strip().lower()
            if not component_type:
                continue
            mentions = int(item.get("mentions", 1))
            components.append(DetectedElement(
                type=component_type,
                confidence=float(item.get("confidence", DEFAULT_COMPONENT_CONFIDENCE)),
                source=ElementSource.LLM.value,
                mentions=mentions,
                priority=float(item.get("priority", min(mentions / 3, 1.0))),
                properties={"mentions": mentions},
            ))

        layout_data = data.get("layout") or {}
        if isinstance(layout_data, str):
            layout_data = {"structure": layout_data}
        semantic_data = layout_data.get("semantic") or {}
        layout = LayoutDescriptor(
            structure=str(layout_data.get("structure", "unknown")),
            semantic=SemanticLayout(
                has_header=bool(semantic_data.get("hasHeader", layout_data.get("hasHeader", False))),
                has_sidebar=bool(semantic_data.get("hasSidebar", layout_data.get("hasSidebar", False))),
                has_footer=bool(semantic_data.get("hasFooter", layout_data.get("hasFooter", False))),
                is_responsive=bool(semantic_data.get("isResponsive", layout_data.get("isResponsive", False))),
            ),
            confidence=float(layout_data.get("confidence", DESCRIPTION_CONFIDENCE if layout_data else 0.0)),
        )

        colors = []
        for item in data.get("colors") or []:
            if isinstance(item, str):
                item = {"hex": item}
            name = item.get("name")
            hex_value = item.get("hex") or NAMED_COLORS.get(str(name).lower() if name else "")
            swatch = _swatch(
                hex_value or "",
                float(item.get("confidence", HEX_COLOR_CONFIDENCE)),
                usage=str(item.get("usage", "unknown")),
                name=name,
                mentions=int(item.get("mentions", 1)),
            )
            if swatch is not None:
                colors.append(swatch)

        themes = data.get("themes") or {}
        if isinstance(themes, list):
            themes = {str(theme): 1 for theme in themes}

        return AnalysisResult(
            elements=components,
            layout=layout,
            colors=colors,
            text=TextAnalysis(confidence=0.0, elements=dict(data.get("typography") or {})),
            confidence=float(data.get("confidence", DESCRIPTION_CONFIDENCE)),
            themes={str(k): int(v) for k, v in themes.items()},
            metadata={"parser": "json"},
        )

    def from_patterns(self, text: str) -> Optional[AnalysisResult]:
        """Apply the rule tables; returns None when nothing matched."""
        components = self.parse_components(text)
        layout_counts = count_matches(LAYOUT_RULES, text)
        colors = self.parse_colors(text)
        typography = count_matches(TYPOGRAPHY_RULES, text)
        themes = count_matches(THEME_RULES, text)

        if not components and not colors and not any(layout_counts.values()) \
                and not any(typography.values()):
            return None

        layout = LayoutDescriptor(
            structure=infer_layout_structure(layout_counts),
            semantic=SemanticLayout(
                has_header=layout_counts["header"] > 0,
                has_sidebar=layout_counts["sidebar"] > 0,
                has_footer=layout_counts["footer"] > 0,
                is_responsive=layout_counts["responsive"] > 0,
            ),
            patterns=layout_counts,
            confidence=min(sum(layout_counts.values()) / 10, 1.0),
        )

        text_analysis = TextAnalysis(
            confidence=min(sum(typography.values()) / 10, 1.0),
            elements=typography,
        )

        logger.info(f"Parsed description: {len(components)} components, {len(colors)} colors, layout {layout.structure}")
        return AnalysisResult(
            elements=components,
            layout=layout,
            colors=colors,
            text=text_analysis,
            confidence=DESCRIPTION_CONFIDENCE,
            themes=themes,
            metadata={"parser": "patterns"},
        )

    def parse_components(self, text: str) -> List[DetectedElement]:
        components = []
        for rule in COMPONENT_RULES:
            mentions = len(rule.pattern.findall(text))
            if not mentions:
                continue
            components.append(DetectedElement(
                type=rule.type,
                confidence=DEFAULT_COMPONENT_CONFIDENCE,
                source=ElementSource.LLM.value,
                mentions=mentions,
                priority=component_priority(mentions, text),
                properties={"mentions": mentions},
            ))
        return components

    def parse_colors(self, text: str) -> List[ColorSwatch]:
        colors: List[ColorSwatch] = []

        hex_mentions: Dict[str, int] = {}
        hex_usage: Dict[str, str] = {}
        for match in HEX_PATTERN.finditer(text):
            value = match.group(0).lower()
            hex_mentions[value] = hex_mentions.get(value, 0) + 1
            if value not in hex_usage:
                start = max(0, match.start() - USAGE_CONTEXT_CHARS)
                hex_usage[value] = infer_color_usage(text[start:match.end() + USAGE_CONTEXT_CHARS])

        for value, mentions in hex_mentions.items():
            swatch = _swatch(value, HEX_COLOR_CONFIDENCE, usage=hex_usage[value], mentions=mentions)
            if swatch is not None:
                colors.append(swatch)

        for name, pattern in NAMED_COLOR_PATTERNS.items():
            matches = list(pattern.finditer(text))
            if not matches:
                continue
            first = matches[0]
            start = max(0, first.start() - USAGE_CONTEXT_CHARS)
            colors.append(_swatch(
                NAMED_COLORS[name],
                NAMED_COLOR_CONFIDENCE,
                usage=infer_color_usage(text[start:first.end() + USAGE_CONTEXT_CHARS]),
                name=name,
                mentions=len(matches),
            ))

        return colors
