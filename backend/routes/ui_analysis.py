"""
Hybrid UI analysis API routes.

This module exposes the CV + free-text analysis pipeline over HTTP.
"""

import logging
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from ui_analysis.config import AnalysisConfig
from ui_analysis.image import ImageInput, UIAnalysisError
from ui_analysis.models import ElementType
from ui_analysis.service import Describer, HybridAnalysisService

logger = logging.getLogger(__name__)

router = APIRouter()


class AnalysisRequest(BaseModel):
    """Request model for hybrid UI analysis."""

    images: List[str] = Field(..., min_length=1, description="Base64 encoded image data URLs")
    description: Optional[str] = Field(None, description="Free-text description of the design")
    config: Optional[Dict] = Field(None, description="Optional analysis configuration overrides")


class AnalysisResponse(BaseModel):
    """Response model for hybrid UI analysis results."""

    success: bool = Field(..., description="Whether analysis was successful")
    message: str = Field(..., description="Status message")
    analysis: Dict = Field(default_factory=dict, description="Merged analysis (camelCase JSON)")
    stats: Dict = Field(default_factory=dict, description="Analysis statistics")


def get_describer() -> Optional[Describer]:
    """
    Describer used to obtain the free-text description.

    Returns None so the request's ``description`` is used; applications
    that call a text-generation service override this dependency.
    """
    return None


@router.post("/analyze", response_model=AnalysisResponse)
def analyze_ui(
    request: AnalysisRequest,
    describer: Optional[Describer] = Depends(get_describer),
) -> AnalysisResponse:
    """
    Analyze UI images and their description.

    Args:
        request: Analysis request containing image data URLs, an optional
            description and optional config overrides
        describer: Text-generation callable injected by the application

    Returns:
        AnalysisResponse with the merged analysis and statistics

    Raises:
        HTTPException: 400 for invalid images, 500 for unexpected failures
    """
    try:
        config = AnalysisConfig()
        unknown_keys = config.update(request.config) if request.config else []

        images = [ImageInput.from_data_url(data_url) for data_url in request.images]

        logger.info(f"Starting hybrid UI analysis of {len(images)} image(s)")
        service = HybridAnalysisService(config, describer=describer)
        merged = service.analyze(images, request.description)

        stats = {
            "total_elements": len(merged.elements),
            "element_sources": _count_by(merged.elements, "source"),
            "element_types": _count_by(merged.elements, "type"),
            "total_colors": len(merged.colors),
            "overall_confidence": merged.confidence.overall,
            "is_valid": merged.validation.is_valid,
            "unknown_config_keys": unknown_keys,
        }

        logger.info(f"Hybrid UI analysis finished with {len(merged.elements)} elements")

        return AnalysisResponse(
            success=True,
            message=f"Successfully analyzed {len(images)} image(s)",
            analysis=merged.to_dict(),
            stats=stats,
        )

    except UIAnalysisError as e:
        logger.error(f"UI analysis failed: {str(e)}")
        raise HTTPException(status_code=400, detail=f"UI analysis failed: {str(e)}")

    except Exception as e:
        logger.error(f"Unexpected error during UI analysis: {str(e)}")
        raise HTTPException(status_code=500, detail="Internal server error during UI analysis")


@router.get("/config/defaults")
async def get_default_config() -> Dict:
    """
    Get the tunable analysis parameters with their default values.

    Returns:
        Dictionary containing default configuration values and descriptions
    """
    return {
        "config": AnalysisConfig().describe(),
        "element_types": [element_type.value for element_type in ElementType],
        "supported_formats": [
            "image/png",
            "image/jpeg",
            "image/webp",
        ],
    }


@router.get("/health")
async def health_check() -> Dict:
    """
    Check if UI analysis dependencies are available.

    Returns:
        Health status and available features
    """
    try:
        import cv2
        import numpy

        versions = {"opencv": cv2.__version__, "numpy": numpy.__version__}
        opencv_available = True
        status = "healthy"
        message = "UI analysis service is ready"
    except ImportError as e:
        versions = {}
        opencv_available = False
        status = "unhealthy"
        message = str(e)

    try:
        import pytesseract
        pytesseract.get_tesseract_version()
        ocr_available = True
    except Exception:
        ocr_available = False

    return {
        "status": status,
        "message": message,
        "versions": versions,
        "dependencies": {
            "opencv": opencv_available,
            "numpy": opencv_available,
            "tesseract": ocr_available,
        },
        "features": {
            "region_detection": opencv_available,
            "layout_analysis": opencv_available,
            "color_extraction": opencv_available,
            "text_extraction": ocr_available,
            "free_text_parsing": True,
        },
    }


def _count_by(elements, attribute: str) -> Dict[str, int]:
    """Count elements by one of their attributes for statistics."""
    counts = {}
    for element in elements:
        key = getattr(element, attribute)
        counts[key] = counts.get(key, 0) + 1
    return counts
