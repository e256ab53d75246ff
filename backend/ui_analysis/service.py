"""
End-to-end hybrid analysis: CV pass, free-text description, parse, merge.
"""

import contextlib
import logging
from typing import Callable, List, Optional, Sequence

from ui_analysis.config import AnalysisConfig, OcrConfig
from ui_analysis.free_text import FreeTextAnalysisParser
from ui_analysis.image import ImageInput
from ui_analysis.merger import HybridMerger
from ui_analysis.models import MergedAnalysis
from ui_analysis.pipeline import ImageAnalysisPipeline
from ui_analysis.text import OcrEngine, OcrUnavailableError, TesseractEngine

logger = logging.getLogger(__name__)

# Sends the images and a prompt to a text-generation service and returns its reply
Describer = Callable[[List[ImageInput], str], str]

DESCRIPTION_PROMPT = """Analyze this UI design and describe it in detail.

Return a JSON object with these keys:
- "components": a list of objects with "type", "mentions", "confidence" and "priority"
  (button, input, form, header, navigation, card, container, sidebar, footer, image, icon, menu)
- "layout": an object with "structure" (for example grid-layout, flexbox-layout, simple),
  "hasHeader", "hasSidebar", "hasFooter", "isResponsive" and "confidence"
- "colors": a list of objects with "hex", "usage" (background, text, button, accent) and "confidence"
- "typography": counts of "headings", "paragraphs", "labels" and "links"
- "themes": counts of "modern", "corporate", "creative", "dark" and "light"

If you cannot produce JSON, describe the components, layout, colors and
typography in plain sentences, mentioning hex color codes where you can."""


class HybridAnalysisService:
    """
    Runs the whole hybrid analysis for one request.

    The CV pass, the description, parsing and merging run strictly in that
    order. An OCR engine is opened for each call and closed before returning.
    """

    def __init__(
        self,
        config: Optional[AnalysisConfig] = None,
        describer: Optional[Describer] = None,
        ocr_engine_factory: Callable[[OcrConfig], OcrEngine] = TesseractEngine,
    ):
        self.config = config or AnalysisConfig()
        self.describer = describer
        self.ocr_engine_factory = ocr_engine_factory
        self.parser = FreeTextAnalysisParser()
        self.merger = HybridMerger(self.config.merge)

    def analyze(self, images: Sequence[ImageInput], description: Optional[str] = None) -> MergedAnalysis:
        """
        Analyze UI images together with a free-text description.

        Args:
            images: Encoded images to analyze
            description: Free-text description, used when no describer is configured

        Returns:
            MergedAnalysis; analysis failures degrade the result instead of raising
        """
        logger.info(f"Starting hybrid analysis of {len(images)} image(s)")

        with contextlib.ExitStack() as stack:
            engine = self._open_ocr_engine(stack)
            pipeline = ImageAnalysisPipeline(self.config, ocr_engine=engine)
            cv_result = pipeline.analyze_images(images)

        free_text = self.describe(images, description)
        llm_result = self.parser.parse(free_text)

        return self.merger.merge(cv_result, llm_result)

    def _open_ocr_engine(self, stack: contextlib.ExitStack) -> Optional[OcrEngine]:
        if not self.config.ocr.enabled:
            return None
        try:
            engine = self.ocr_engine_factory(self.config.ocr)
            return stack.enter_context(engine)
        except OcrUnavailableError as e:
            logger.warning(f"OCR disabled for this request: {str(e)}")
            return None

    def describe(self, images: Sequence[ImageInput], description: Optional[str] = None) -> str:
        """Ask the describer for a description, falling back to ``description``."""
        if self.describer is None:
            return description or ""

        try:
            return self.describer(list(images), DESCRIPTION_PROMPT) or ""
        except Exception as e:
            logger.warning(f"Description service failed: {str(e)}")
            return ""
