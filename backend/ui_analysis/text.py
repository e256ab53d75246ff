"""
OCR wrapper that turns engine output into a normalised ``TextAnalysis``.

The OCR engine is an explicit resource: open it (or use it as a context
manager), pass it to ``TextExtractor``, and close it when done.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Protocol, Tuple

from PIL import Image

try:
    import pytesseract
    OCR_AVAILABLE = True
except ImportError:
    OCR_AVAILABLE = False

from ui_analysis.config import OcrConfig
from ui_analysis.image import ImageData, UIAnalysisError
from ui_analysis.models import BoundingBox, TextAnalysis, TextBlock

logger = logging.getLogger(__name__)


class OcrUnavailableError(UIAnalysisError):
    """Raised when the OCR engine cannot be started or is used while closed."""
    pass


@dataclass(frozen=True)
class OcrBlock:
    """One text block as reported by an OCR engine (confidence on a 0-100 scale)."""

    text: str
    confidence: float
    bbox: Optional[BoundingBox] = None
    lines: int = 1


@dataclass(frozen=True)
class OcrPage:
    text: str = ""
    confidence: float = 0.0
    words: List[str] = field(default_factory=list)
    blocks: List[OcrBlock] = field(default_factory=list)


class OcrEngine(Protocol):
    def recognize(self, image: ImageData) -> OcrPage:
        ...


class TesseractEngine:
    """
    OCR engine backed by the Tesseract binary through pytesseract.

    Usage:
        with TesseractEngine(config) as engine:
            page = engine.recognize(image)
    """

    def __init__(self, config: Optional[OcrConfig] = None):
        self.config = config or OcrConfig()
        self._open = False

    @property
    def is_open(self) -> bool:
        return self._open

    def open(self) -> "TesseractEngine":
        """
        Verify that pytesseract and the Tesseract binary are usable.

        Raises:
            OcrUnavailableError: If pytesseract is missing or the binary cannot run
        """
        if not OCR_AVAILABLE:
            raise OcrUnavailableError("pytesseract is not installed. Install with: pip install pytesseract")

        if self.config.tesseract_cmd:
            pytesseract.pytesseract.tesseract_cmd = self.config.tesseract_cmd

        try:
            version = pytesseract.get_tesseract_version()
        except Exception as e:
            raise OcrUnavailableError(f"Tesseract is not available: {str(e)}")

        logger.info(f"Tesseract {version} ready")
        self._open = True
        return self

    def close(self) -> None:
        self._open = False

    def __enter__(self) -> "TesseractEngine":
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def recognize(self, image: ImageData) -> OcrPage:
        """
        Run Tesseract and group its word boxes into blocks.

        Args:
            image: Decoded image

        Returns:
            OcrPage with confidences on a 0-100 scale
        """
        if not self._open:
            raise OcrUnavailableError("Tesseract engine is closed")

        data = pytesseract.image_to_data(
            Image.fromarray(image.rgb),
            lang=self.config.language,
            output_type=pytesseract.Output.DICT,
        )
        return self.page_from_data(data, self.config.min_word_confidence)

    @staticmethod
    def page_from_data(data: Dict[str, list], min_confidence: float = 0.0) -> OcrPage:
        """Build an OcrPage from pytesseract's ``image_to_data`` dictionary."""
        grouped: Dict[int, Dict] = {}
        words: List[str] = []
        confidences: List[float] = []

        for i in range(len(data.get("text", []))):
            text = str(data["text"][i]).strip()
            confidence = float(data["conf"][i])
            if not text or confidence < 0 or confidence < min_confidence:
                continue

            words.append(text)
            confidences.append(confidence)

            box = BoundingBox(
                x=int(data["left"][i]),
                y=int(data["top"][i]),
                width=int(data["width"][i]),
                height=int(data["height"][i]),
            )
            block = grouped.setdefault(int(data["block_num"][i]), {"words": [], "boxes": [], "conf": [], "lines": set()})
            block["words"].append(text)
            block["boxes"].append(box)
            block["conf"].append(confidence)
            block["lines"].add(_line_key(data, i))

        blocks = []
        for block_num in sorted(grouped):
            block = grouped[block_num]
            blocks.append(OcrBlock(
                text=" ".join(block["words"]),
                confidence=sum(block["conf"]) / len(block["conf"]),
                bbox=BoundingBox.union(block["boxes"]),
                lines=len(block["lines"]),
            ))

        return OcrPage(
            text="\n".join(block.text for block in blocks),
            confidence=sum(confidences) / len(confidences) if confidences else 0.0,
            words=words,
            blocks=blocks,
        )


def _line_key(data: Dict[str, list], i: int) -> Tuple[int, int]:
    par = data["par_num"][i] if "par_num" in data else 0
    line = data["line_num"][i] if "line_num" in data else 0
    return int(par), int(line)


class TextExtractor:
    """Normalises OCR engine output; never lets an OCR failure escape."""

    def __init__(self, engine: Optional[OcrEngine] = None, config: Optional[OcrConfig] = None):
        self.engine = engine
        self.config = config or OcrConfig()

    def extract(self, image: ImageData) -> TextAnalysis:
        """
        Extract text blocks from the image.

        Args:
            image: Decoded image

        Returns:
            TextAnalysis with confidence normalised to [0, 1]; an empty
            analysis with confidence 0 when OCR is disabled or fails
        """
        if self.engine is None or not self.config.enabled:
            return self.empty()

        try:
            page = self.engine.recognize(image)
        except Exception as e:
            logger.warning(f"OCR failed: {str(e)}")
            return self.empty()

        blocks = []
        for block in page.blocks:
            text = (block.text or "").strip()
            if not text:
                continue
            blocks.append(TextBlock(
                text=text,
                confidence=block.confidence / 100,
                bbox=block.bbox,
                font_size=self.estimate_font_size(block.bbox),
                lines=block.lines or 1,
            ))

        return TextAnalysis(
            full_text=(page.text or "").strip(),
            confidence=page.confidence / 100,
            blocks=blocks,
            word_count=len(page.words),
            language=self.config.language,
        )

    def estimate_font_size(self, bbox: Optional[BoundingBox]) -> int:
        if bbox is None:
            return 16
        return max(self.config.min_font_size, bbox.height)

    def empty(self) -> TextAnalysis:
        return TextAnalysis(language=self.config.language)
