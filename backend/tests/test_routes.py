"""
Tests for the UI analysis API routes.
"""

import base64
import io
from unittest.mock import patch

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from PIL import Image, ImageDraw

from routes.ui_analysis import get_describer, router
from ui_analysis.text import OcrUnavailableError


@pytest.fixture
def app():
    app = FastAPI()
    app.include_router(router, prefix="/api/ui-analysis")
    return app


@pytest.fixture
def client(app):
    # keep the tests independent of a local Tesseract install
    with patch("ui_analysis.service.TesseractEngine.open", side_effect=OcrUnavailableError("disabled in tests")):
        yield TestClient(app)


@pytest.fixture
def sample_data_url():
    image = Image.new("RGB", (200, 120), color="white")
    draw = ImageDraw.Draw(image)
    draw.rectangle([0, 0, 199, 20], fill=(20, 40, 90))
    draw.rectangle([20, 50, 169, 84], outline="black")
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return "data:image/png;base64," + base64.b64encode(buffer.getvalue()).decode("utf-8")


class TestAnalyzeEndpoint:
    """Test cases for POST /analyze."""

    def test_successful_analysis(self, client, sample_data_url):
        response = client.post("/api/ui-analysis/analyze", json={
            "images": [sample_data_url],
            "description": "A header with a login form, an input and a button on a white background",
        })

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["analysis"]["source"] == "hybrid-analysis"
        assert "codeGenerationHints" in body["analysis"]
        assert "isValid" in body["analysis"]["validation"]
        assert body["stats"]["total_elements"] == len(body["analysis"]["elements"])
        assert body["stats"]["unknown_config_keys"] == []

    def test_config_overrides(self, client, sample_data_url):
        response = client.post("/api/ui-analysis/analyze", json={
            "images": [sample_data_url],
            "config": {"merge.cv_weight": 0.5, "not_a_parameter": 1},
        })

        assert response.status_code == 200
        assert response.json()["stats"]["unknown_config_keys"] == ["not_a_parameter"]

    @pytest.mark.parametrize("overrides,key", [
        ({"circle_step": 0}, "circle_step"),
        ({"detection.rect_step": -10}, "detection.rect_step"),
        ({"pipeline.element_saturation": 0}, "pipeline.element_saturation"),
    ])
    def test_unusable_config_values(self, client, sample_data_url, overrides, key):
        with patch("routes.ui_analysis.HybridAnalysisService") as service:
            response = client.post("/api/ui-analysis/analyze", json={
                "images": [sample_data_url],
                "config": overrides,
            })

        assert response.status_code == 400
        assert key in response.json()["detail"]
        service.assert_not_called()

    def test_invalid_data_url(self, client):
        response = client.post("/api/ui-analysis/analyze", json={"images": ["not-a-data-url"]})

        assert response.status_code == 400
        assert "Invalid image data URL format" in response.json()["detail"]

    def test_no_images(self, client):
        response = client.post("/api/ui-analysis/analyze", json={"images": []})
        assert response.status_code == 422

    def test_unexpected_error(self, client, sample_data_url):
        with patch("routes.ui_analysis.HybridAnalysisService", side_effect=RuntimeError("boom")):
            response = client.post("/api/ui-analysis/analyze", json={"images": [sample_data_url]})

        assert response.status_code == 500
        assert response.json()["detail"] == "Internal server error during UI analysis"

    def test_injected_describer(self, app, client, sample_data_url):
        prompts = []

        def describer(images, prompt):
            prompts.append(prompt)
            return '```json\n{"components": [{"type": "card"}, {"type": "footer"}]}\n```'

        app.dependency_overrides[get_describer] = lambda: describer
        response = client.post("/api/ui-analysis/analyze", json={"images": [sample_data_url]})

        assert response.status_code == 200
        assert response.json()["analysis"]["metadata"]["elementsFromLLM"] == 2
        assert len(prompts) == 1


class TestConfigDefaultsEndpoint:
    """Test cases for GET /config/defaults."""

    def test_defaults(self, client):
        response = client.get("/api/ui-analysis/config/defaults")

        assert response.status_code == 200
        body = response.json()
        assert body["config"]["merge.cv_weight"]["value"] == 0.4
        assert "description" in body["config"]["detection.rect_step"]
        assert "input-field" in body["element_types"]


class TestHealthEndpoint:
    """Test cases for GET /health."""

    def test_health(self, client):
        response = client.get("/api/ui-analysis/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["dependencies"]["opencv"] is True
        assert body["features"]["free_text_parsing"] is True
