"""
Tests for settings loaded from the environment.
"""

import os
from unittest.mock import patch

import pytest


class TestSettingsFromEnv:

    @patch.dict(os.environ, {}, clear=True)
    def test_defaults(self):
        from assessment.config import DEFAULT_THRESHOLDS, Settings
        settings = Settings.from_env()

        assert settings.ocr_provider == "google"
        assert settings.max_image_dim == 2000
        assert settings.pdf_render_scale == 2.0
        assert settings.auto_correct is True
        assert settings.secondary_verifier == "none"
        assert settings.thresholds == DEFAULT_THRESHOLDS

    @patch.dict(os.environ, {
        "ASSESS_OCR_PROVIDER": "stub",
        "ASSESS_MAX_IMAGE_DIM": "1500",
        "ASSESS_AUTO_CORRECT": "false",
        "ASSESS_EMBED_PAGE_IMAGES": "0",
        "ASSESS_MAX_GLARE": "0.5",
        "ASSESS_MIN_BLUR": "0.1",
        "ASSESS_SECONDARY_VERIFIER": "OpenAI",
        "ASSESS_SECONDARY_MAX_LINES": "3",
        "OPENAI_MODEL": "gpt-4o",
    }, clear=True)
    def test_overrides(self):
        from assessment.config import Settings
        settings = Settings.from_env()

        assert settings.ocr_provider == "stub"
        assert settings.max_image_dim == 1500
        assert settings.auto_correct is False
        assert settings.embed_page_images is False
        assert settings.thresholds.max_glare_score == 0.5
        assert settings.thresholds.min_blur_score == 0.1
        assert settings.secondary_verifier == "openai"
        assert settings.secondary_max_lines == 3
        assert settings.openai_model == "gpt-4o"

    @patch.dict(os.environ, {"ASSESS_MAX_GLARE": "lots"}, clear=True)
    def test_invalid_number_raises(self):
        from assessment.config import Settings
        with pytest.raises(ValueError, match="ASSESS_MAX_GLARE"):
            Settings.from_env()

    def test_grading_thresholds_fixed(self):
        from assessment.config import DEFAULT_THRESHOLDS
        assert DEFAULT_THRESHOLDS.ocr_high_confidence == 0.85
        assert DEFAULT_THRESHOLDS.finding_confidence == 0.92
        assert DEFAULT_THRESHOLDS.min_coverage == 0.6
        assert DEFAULT_THRESHOLDS.line_confidence_uncertain == 0.70
        assert DEFAULT_THRESHOLDS.handwriting_confidence == 0.95
        with pytest.raises(Exception):
            DEFAULT_THRESHOLDS.min_coverage = 0.1
