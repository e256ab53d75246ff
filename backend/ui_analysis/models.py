"""
Data models shared by the CV pass, the free-text parser and the hybrid merger.

All models are immutable once constructed. Field names are snake_case in
Python and camelCase on the wire (``model_dump(by_alias=True)``).
"""

from enum import Enum
from typing import Annotated, Any, Dict, Iterable, List, Optional

from pydantic import AfterValidator, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def clamp_confidence(value: float) -> float:
    """Clamp a heuristic score into [0, 1]."""
    return max(0.0, min(1.0, float(value)))


Confidence = Annotated[float, AfterValidator(clamp_confidence)]


class ElementType(str, Enum):
    """Element kinds produced by the CV pass."""

    BUTTON = "button"
    INPUT_FIELD = "input-field"
    CONTAINER = "container"
    TEXT_REGION = "text-region"
    TEXT_BLOCK = "text-block"
    TEXT_HEADING = "text-heading"
    CIRCULAR_ELEMENT = "circular-element"
    HORIZONTAL_SEPARATOR = "horizontal-separator"
    VERTICAL_SEPARATOR = "vertical-separator"


class ElementSource(str, Enum):
    """Where an element came from."""

    CV = "cv"
    LLM = "llm"
    CV_ONLY = "cv-only"
    LLM_ONLY = "llm-only"
    HYBRID = "hybrid"


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class AnalysisModel(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, alias_generator=to_camel)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the camelCase JSON representation."""
        return self.model_dump(by_alias=True, mode="json")


class BoundingBox(AnalysisModel):
    """Axis-aligned rectangle in pixel coordinates."""

    x: int
    y: int
    width: int
    height: int

    @property
    def right(self) -> int:
        return self.x + self.width

    @property
    def bottom(self) -> int:
        return self.y + self.height

    @property
    def area(self) -> int:
        return max(0, self.width) * max(0, self.height)

    def clip(self, image_width: int, image_height: int) -> "BoundingBox":
        """Return the box clipped to ``[0, image_width] x [0, image_height]``."""
        x = min(max(0, self.x), image_width)
        y = min(max(0, self.y), image_height)
        right = min(max(x, self.right), image_width)
        bottom = min(max(y, self.bottom), image_height)
        return BoundingBox(x=x, y=y, width=right - x, height=bottom - y)

    @classmethod
    def union(cls, boxes: Iterable["BoundingBox"]) -> "BoundingBox":
        boxes = list(boxes)
        min_x = min(b.x for b in boxes)
        min_y = min(b.y for b in boxes)
        max_x = max(b.right for b in boxes)
        max_y = max(b.bottom for b in boxes)
        return cls(x=min_x, y=min_y, width=max_x - min_x, height=max_y - min_y)


class ElementValidation(AnalysisModel):
    cv_validated: bool = False
    llm_validated: bool = False
    cross_validated: bool = False


class DetectedElement(AnalysisModel):
    """A UI element found by the CV pass or named in the free-text description."""

    type: str
    bounds: Optional[BoundingBox] = None
    confidence: Confidence = 0.0
    properties: Dict[str, Any] = Field(default_factory=dict)
    source: str = ElementSource.CV.value
    validation: ElementValidation = Field(default_factory=ElementValidation)
    semantic_role: Optional[str] = None
    enhanced_type: Optional[str] = None
    matched_component: Optional[str] = None
    mentions: int = 0
    priority: float = 0.0


class ColorSwatch(AnalysisModel):
    r: int
    g: int
    b: int
    hex: str
    usage: str = "unknown"
    confidence: Confidence = 0.0
    frequency: float = 0.0
    name: Optional[str] = None
    mentions: int = 0
    source: str = ElementSource.CV.value
    cv_validated: bool = False
    llm_validated: bool = False

    @property
    def rgb(self):
        return self.r, self.g, self.b


class TextBlock(AnalysisModel):
    text: str
    confidence: Confidence = 0.0
    bbox: Optional[BoundingBox] = None
    font_size: int = 16
    lines: int = 1


class TextAnalysis(AnalysisModel):
    """OCR output (CV pass) or typography mentions (free text)."""

    full_text: str = ""
    confidence: Confidence = 0.0
    blocks: List[TextBlock] = Field(default_factory=list)
    word_count: int = 0
    language: str = "eng"
    elements: Dict[str, int] = Field(default_factory=dict)


class Division(AnalysisModel):
    """A vertical (position = x) or horizontal (position = y) edge line."""

    position: int
    strength: float
    span: int


class GridInfo(AnalysisModel):
    columns: int = 1
    rows: int = 1
    vertical_divisions: List[Division] = Field(default_factory=list)
    horizontal_divisions: List[Division] = Field(default_factory=list)
    confidence: Confidence = 0.0


class Alignment(AnalysisModel):
    primary: str = "left"
    secondary: str = "top"
    confidence: Confidence = 0.7


class Spacing(AnalysisModel):
    horizontal: int = 10
    vertical: int = 10
    padding: int = 0


class SemanticLayout(AnalysisModel):
    has_header: bool = False
    has_sidebar: bool = False
    has_footer: bool = False
    is_responsive: bool = False


class LayoutDescriptor(AnalysisModel):
    structure: str = "unknown"
    grid: GridInfo = Field(default_factory=GridInfo)
    alignment: Alignment = Field(default_factory=Alignment)
    spacing: Spacing = Field(default_factory=Spacing)
    semantic: SemanticLayout = Field(default_factory=SemanticLayout)
    patterns: Dict[str, int] = Field(default_factory=dict)
    confidence: Confidence = 0.0
    aspect_ratio: Optional[float] = None
    dimensions: Optional[Dict[str, int]] = None


class AnalysisResult(AnalysisModel):
    """Common shape of the CV pass and the parsed free-text description."""

    elements: List[DetectedElement] = Field(default_factory=list)
    layout: LayoutDescriptor = Field(default_factory=LayoutDescriptor)
    colors: List[ColorSwatch] = Field(default_factory=list)
    text: TextAnalysis = Field(default_factory=TextAnalysis)
    confidence: Confidence = 0.0
    themes: Dict[str, int] = Field(default_factory=dict)
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def empty(cls, **metadata: Any) -> "AnalysisResult":
        return cls(metadata=metadata)

    @property
    def image_size(self) -> Optional[tuple]:
        width = self.metadata.get("width")
        height = self.metadata.get("height")
        if width is None or height is None:
            return None
        return int(width), int(height)


class ConfidenceMetrics(AnalysisModel):
    overall: Confidence = 0.0
    element_detection: Confidence = 0.0
    layout_analysis: Confidence = 0.0
    color_extraction: Confidence = 0.0
    cross_validation: Confidence = 0.0


class ValidationMessage(AnalysisModel):
    type: str
    message: str
    severity: str = Severity.MEDIUM.value


class ValidationReport(AnalysisModel):
    is_valid: bool = False
    confidence: Confidence = 0.0
    warnings: List[ValidationMessage] = Field(default_factory=list)
    issues: List[ValidationMessage] = Field(default_factory=list)


class Recommendation(AnalysisModel):
    type: str
    message: str
    priority: str


class ComponentHint(AnalysisModel):
    """Suggested markup for one merged element."""

    id: str
    type: str
    html_tag: str
    role: Optional[str] = None
    css_classes: List[str] = Field(default_factory=list)
    properties: Dict[str, Any] = Field(default_factory=dict)
    bounds: Optional[BoundingBox] = None
    confidence: Confidence = 0.0


class ColorHint(AnalysisModel):
    hex: str
    usage: str
    css_variable: str
    confidence: Confidence = 0.0


class CodeGenerationHints(AnalysisModel):
    components: List[ComponentHint] = Field(default_factory=list)
    layout_structure: str = "unknown"
    grid: GridInfo = Field(default_factory=GridInfo)
    semantic: SemanticLayout = Field(default_factory=SemanticLayout)
    colors: List[ColorHint] = Field(default_factory=list)
    complexity: Confidence = 0.0
    estimated_development_hours: int = 0
    recommended_framework: str = "Vanilla"


class MergeInsights(AnalysisModel):
    accuracy: Dict[str, float] = Field(default_factory=dict)
    improvements: Dict[str, int] = Field(default_factory=dict)
    quality_metrics: Dict[str, float] = Field(default_factory=dict)


class MergedAnalysis(AnalysisModel):
    """Fused, confidence-scored analysis handed to code generation."""

    source: str = "hybrid-analysis"
    elements: List[DetectedElement] = Field(default_factory=list)
    layout: LayoutDescriptor = Field(default_factory=LayoutDescriptor)
    colors: List[ColorSwatch] = Field(default_factory=list)
    text: TextAnalysis = Field(default_factory=TextAnalysis)
    confidence: ConfidenceMetrics = Field(default_factory=ConfidenceMetrics)
    validation: ValidationReport = Field(default_factory=ValidationReport)
    recommendations: List[Recommendation] = Field(default_factory=list)
    code_generation_hints: CodeGenerationHints = Field(default_factory=CodeGenerationHints)
    insights: MergeInsights = Field(default_factory=MergeInsights)
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def empty(cls, error: Optional[str] = None) -> "MergedAnalysis":
        """The explicit result returned when merging fails."""
        message = error or "Unknown error"
        return cls(
            validation=ValidationReport(
                is_valid=False,
                confidence=0.0,
                issues=[ValidationMessage(type="merge-error", message=message, severity=Severity.HIGH.value)],
            ),
            metadata={"error": message},
        )
