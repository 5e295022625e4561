"""
Tests for line cropping and the OpenAI secondary verifier (mocked client).
"""

import base64
import io
import json
import os
from unittest.mock import MagicMock, patch

import numpy as np
import pytest
from PIL import Image


def _raster(width=500, height=300):
    from assessment.raster import PageRaster
    return PageRaster.from_luminance(np.full((height, width), 200.0))


def _decoded_size(image_b64):
    return Image.open(io.BytesIO(base64.b64decode(image_b64))).size


def _box(x, y, w, h):
    from assessment.schema import BoundingBox
    return BoundingBox(x=x, y=y, w=w, h=h)


class TestCropLineImage:

    def test_no_data_url_prefix(self):
        from assessment.secondary import crop_line_image
        result = crop_line_image(_raster(), _box(50, 30, 200, 40))
        assert not result.startswith("data:")
        assert base64.b64decode(result)[:2] == b"\xff\xd8"

    def test_padding_applied(self):
        from assessment.secondary import crop_line_image
        assert _decoded_size(crop_line_image(_raster(), _box(100, 50, 200, 40))) == (220, 60)

    def test_origin_clamped_at_left_edge(self):
        from assessment.secondary import crop_line_image
        assert _decoded_size(crop_line_image(_raster(), _box(0, 50, 200, 40))) == (220, 60)

    def test_width_clamped_at_right_edge(self):
        from assessment.secondary import crop_line_image
        # x 440, width min(500 - 440, 220) = 60
        assert _decoded_size(crop_line_image(_raster(), _box(450, 30, 200, 40))) == (60, 60)

    def test_height_clamped_at_bottom_edge(self):
        from assessment.secondary import crop_line_image
        # y 270, height min(300 - 270, 60) = 30
        assert _decoded_size(crop_line_image(_raster(), _box(50, 280, 200, 40))) == (220, 30)


class TestParseVerdict:

    def test_parses_json(self):
        from assessment.secondary import parse_verdict
        verdict = parse_verdict(json.dumps({
            "transcription": "the cat",
            "matches_expected": True,
            "confidence": "High",
            "reasoning": "clear",
        }))
        assert verdict.transcription == "the cat"
        assert verdict.matches_expected is True
        assert verdict.confidence == "high"

    def test_unknown_tier_is_low(self):
        from assessment.secondary import parse_verdict
        assert parse_verdict('{"confidence": "certain"}').confidence == "low"


class TestOpenAiVisionVerifier:

    def test_request_and_response(self):
        from assessment.secondary import OpenAiVisionVerifier
        mock_response = MagicMock()
        mock_response.choices = [MagicMock()]
        mock_response.choices[0].message.content = json.dumps({
            "transcription": "hello",
            "matches_expected": False,
            "confidence": "medium",
        })
        mock_client = MagicMock()
        mock_client.chat.completions.create.return_value = mock_response

        verifier = OpenAiVisionVerifier(client=mock_client)
        verdict = verifier.verify_line("abc123", "hello world", 2)

        assert verdict.confidence == "medium"
        kwargs = mock_client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "gpt-4o-mini"
        assert kwargs["temperature"] == 0.1
        assert kwargs["response_format"] == {"type": "json_object"}
        content = kwargs["messages"][1]["content"]
        assert "hello world" in content[0]["text"]
        assert content[1]["image_url"]["url"] == "data:image/jpeg;base64,abc123"

    def test_api_errors_propagate(self):
        from assessment.secondary import OpenAiVisionVerifier
        mock_client = MagicMock()
        mock_client.chat.completions.create.side_effect = Exception("API error")
        verifier = OpenAiVisionVerifier(client=mock_client)

        with pytest.raises(Exception, match="API error"):
            verifier.verify_line("abc", "hello", 0)


class TestGetSecondaryVerifier:

    def test_none(self):
        from assessment.secondary import get_secondary_verifier
        assert get_secondary_verifier("none") is None

    @patch.dict(os.environ, {"OPENAI_API_KEY": ""})
    def test_openai_requires_key(self):
        from assessment.secondary import get_secondary_verifier
        with pytest.raises(RuntimeError, match="OPENAI_API_KEY"):
            get_secondary_verifier("openai")

    @patch.dict(os.environ, {"OPENAI_API_KEY": "fake-key"})
    @patch("openai.OpenAI")
    def test_openai(self, mock_openai_class):
        from assessment.secondary import OpenAiVisionVerifier, get_secondary_verifier
        verifier = get_secondary_verifier("openai", model="gpt-4o")

        assert isinstance(verifier, OpenAiVisionVerifier)
        assert verifier.model == "gpt-4o"
        mock_openai_class.assert_called_once_with(api_key="fake-key")

    def test_unknown(self):
        from assessment.secondary import get_secondary_verifier
        with pytest.raises(ValueError):
            get_secondary_verifier("claude")
