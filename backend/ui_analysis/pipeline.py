"""
Computer-vision pass: fans an image out to the four analyzers and joins
their results into one ``AnalysisResult``.
"""

import concurrent.futures
import logging
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Union

from ui_analysis.colors import FALLBACK_PALETTE, ColorPaletteExtractor, colors_are_similar
from ui_analysis.config import AnalysisConfig
from ui_analysis.geometry import remove_duplicates
from ui_analysis.image import ImageData, ImageDecodeError, ImageInput
from ui_analysis.layout import LayoutAnalyzer
from ui_analysis.models import AnalysisResult, DetectedElement, LayoutDescriptor, TextAnalysis
from ui_analysis.regions import RegionDetector
from ui_analysis.text import OcrEngine, TextExtractor

logger = logging.getLogger(__name__)

ImageSource = Union[ImageInput, ImageData, str]


class ImageAnalysisPipeline:
    """Runs region, layout, color and text analysis concurrently over an image."""

    def __init__(self, config: Optional[AnalysisConfig] = None, ocr_engine: Optional[OcrEngine] = None):
        self.config = config or AnalysisConfig()
        self.region_detector = RegionDetector(self.config.detection)
        self.layout_analyzer = LayoutAnalyzer(self.config.layout)
        self.color_extractor = ColorPaletteExtractor(self.config.palette)
        self.text_extractor = TextExtractor(ocr_engine, self.config.ocr)

    def _tasks(self) -> Dict[str, Tuple[Callable[[ImageData], Any], Callable[[], Any]]]:
        # name -> (analyzer, fallback)
        return {
            "elements": (self.region_detector.detect, list),
            "layout": (self.layout_analyzer.analyze, LayoutDescriptor),
            "colors": (self.color_extractor.extract, lambda: list(FALLBACK_PALETTE)),
            "text": (self.text_extractor.extract, self.text_extractor.empty),
        }

    def analyze(self, image: ImageData) -> AnalysisResult:
        """
        Analyze a single decoded image.

        The four analyzers run on a thread pool that lives for this call only.
        An analyzer that raises or does not finish within ``pipeline.timeout``
        seconds is replaced by its fallback value.

        Args:
            image: Decoded image

        Returns:
            AnalysisResult with the combined CV confidence
        """
        cfg = self.config.pipeline
        tasks = self._tasks()
        results: Dict[str, Any] = {}
        errors: Dict[str, str] = {}

        executor = concurrent.futures.ThreadPoolExecutor(max_workers=cfg.max_workers)
        try:
            futures = {name: executor.submit(analyzer, image) for name, (analyzer, _) in tasks.items()}
            done, _ = concurrent.futures.wait(list(futures.values()), timeout=cfg.timeout)

            for name, future in futures.items():
                fallback = tasks[name][1]
                if future not in done:
                    logger.warning(f"{name} analysis did not finish within {cfg.timeout}s, using fallback")
                    errors[name] = "timeout"
                    results[name] = fallback()
                    continue
                try:
                    results[name] = future.result()
                except Exception as e:
                    logger.warning(f"{name} analysis failed: {str(e)}")
                    errors[name] = str(e)
                    results[name] = fallback()
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        elements: List[DetectedElement] = results["elements"]
        layout: LayoutDescriptor = results["layout"]
        text: TextAnalysis = results["text"]

        metadata: Dict[str, Any] = {
            "width": image.width,
            "height": image.height,
            "format": image.format,
            "channels": image.channels,
            "imageCount": 1,
        }
        if errors:
            metadata["errors"] = errors

        result = AnalysisResult(
            elements=elements,
            layout=layout,
            colors=results["colors"],
            text=text,
            confidence=self.calculate_confidence(elements, layout, text),
            metadata=metadata,
        )

        logger.info(
            f"CV analysis completed: {len(result.elements)} elements, "
            f"{len(result.text.blocks)} text blocks, {len(result.colors)} colors, "
            f"confidence {result.confidence:.2f}"
        )
        return result

    def calculate_confidence(self, elements: List[DetectedElement], layout: LayoutDescriptor, text: TextAnalysis) -> float:
        cfg = self.config.pipeline
        element_score = min(len(elements) / max(cfg.element_saturation, 1), 1.0)
        text_score = min(text.confidence, 1.0)
        return (
            element_score * cfg.element_weight
            + layout.grid.confidence * cfg.layout_weight
            + text_score * cfg.text_weight
        )

    def analyze_images(self, images: Sequence[ImageSource]) -> AnalysisResult:
        """
        Decode and analyze several images, then combine the results.

        Images that fail to decode are skipped and reported in
        ``metadata["errors"]``.

        Args:
            images: ImageInput objects, decoded ImageData, or data URLs

        Returns:
            Combined AnalysisResult; an empty result with confidence 0 when
            nothing could be analyzed
        """
        results = []
        errors: Dict[str, str] = {}

        for index, source in enumerate(images):
            try:
                image = self._decode(source)
            except ImageDecodeError as e:
                logger.warning(f"Skipping image {index}: {str(e)}")
                errors[f"image{index}"] = str(e)
                continue
            results.append(self.analyze(image))

        combined = self.combine(results)
        if errors:
            metadata = dict(combined.metadata)
            metadata["errors"] = {**metadata.get("errors", {}), **errors}
            combined = combined.model_copy(update={"metadata": metadata})
        return combined

    @staticmethod
    def _decode(source: ImageSource) -> ImageData:
        if isinstance(source, ImageData):
            return source
        if isinstance(source, ImageInput):
            return ImageData.from_input(source)
        if isinstance(source, str):
            return ImageData.from_data_url(source)
        raise ImageDecodeError(f"Unsupported image source: {type(source).__name__}")

    def combine(self, results: List[AnalysisResult]) -> AnalysisResult:
        """
        Combine per-image results into one.

        Elements are concatenated (tagged with ``imageIndex``) and
        de-duplicated, the most confident layout wins, colors are
        de-duplicated by RGB distance, text is concatenated and the
        confidence is the mean of the per-image confidences.
        """
        if not results:
            return AnalysisResult.empty(imageCount=0)
        if len(results) == 1:
            return results[0]

        elements = []
        for index, result in enumerate(results):
            for element in result.elements:
                properties = {**element.properties, "imageIndex": index}
                elements.append(element.model_copy(update={"properties": properties}))
        elements.sort(key=lambda element: element.confidence, reverse=True)
        elements = remove_duplicates(
            elements, lambda element: element.bounds, self.config.detection.duplicate_overlap_threshold
        )

        layout = max((result.layout for result in results), key=lambda layout: layout.confidence)

        colors = sorted(
            (color for result in results for color in result.colors),
            key=lambda color: color.confidence,
            reverse=True,
        )
        distinct = []
        for color in colors:
            if not any(colors_are_similar(color.hex, kept.hex, self.config.palette.distinct_distance) for kept in distinct):
                distinct.append(color)

        texts = [result.text for result in results]
        text = TextAnalysis(
            full_text="\n\n".join(t.full_text for t in texts if t.full_text),
            confidence=sum(t.confidence for t in texts) / len(texts),
            blocks=[block for t in texts for block in t.blocks],
            word_count=sum(t.word_count for t in texts),
            language=texts[0].language,
        )

        metadata: Dict[str, Any] = {
            "width": max(result.metadata.get("width", 0) for result in results),
            "height": max(result.metadata.get("height", 0) for result in results),
            "imageCount": len(results),
            "images": [result.metadata for result in results],
        }
        errors = {}
        for index, result in enumerate(results):
            for name, message in result.metadata.get("errors", {}).items():
                errors[f"image{index}.{name}"] = message
        if errors:
            metadata["errors"] = errors

        return AnalysisResult(
            elements=elements,
            layout=layout,
            colors=distinct[:self.config.palette.max_colors],
            text=text,
            confidence=sum(result.confidence for result in results) / len(results),
            metadata=metadata,
        )
