"""
Optional second opinion on uncertain lines from a vision-capable LLM.

The pipeline crops an uncertain line out of the page, sends it with the
expected text, and folds the verdict back into the content finding.
"""

import base64
import json
import logging
import os
from typing import Optional, Protocol

from assessment.raster import PageRaster
from assessment.schema import BoundingBox, SecondaryVerdict

logger = logging.getLogger(__name__)

CROP_PADDING = 10

SYSTEM_PROMPT = (
    "You are checking a student's handwriting exercise. "
    "Read the handwritten line in the image exactly as written and return only valid JSON."
)


class SecondaryVerifier(Protocol):
    """Protocol for secondary line verifiers."""

    def verify_line(self, image_b64: str, expected_text: str, line_index: int) -> SecondaryVerdict:
        ...


def crop_line_image(raster: PageRaster, bbox: BoundingBox, padding: int = CROP_PADDING) -> str:
    """
    Crop one line with padding and return it as base64 JPEG (no data URL prefix).

    The padded origin is clamped at 0 and the size is clamped so the crop
    never extends past the right or bottom edge.
    """
    x = max(0, int(bbox.x) - padding)
    y = max(0, int(bbox.y) - padding)
    w = min(raster.width - x, int(bbox.w) + padding * 2)
    h = min(raster.height - y, int(bbox.h) + padding * 2)
    if w <= 0 or h <= 0:
        raise ValueError(f"Line box {bbox} lies outside the page")

    crop = raster.with_pixels(raster.pixels[y:y + h, x:x + w].copy())
    return base64.b64encode(crop.to_jpeg_bytes(quality=90)).decode("ascii")


def _build_prompt(expected_text: str, line_index: int) -> str:
    return f"""This image shows line {line_index + 1} of a handwriting exercise.

EXPECTED TEXT: "{expected_text}"

Transcribe what is actually written, then judge whether it matches the expected
text. Ignore letter case and minor spacing differences. Do not correct spelling.

Return JSON with these keys:
- "transcription": the text you read
- "matches_expected": true or false
- "confidence": "high", "medium" or "low"
- "reasoning": one short sentence"""


def parse_verdict(content: str) -> SecondaryVerdict:
    """Parse the model's JSON reply; unknown confidence tiers fall back to low."""
    data = json.loads(content)
    confidence = str(data.get("confidence", "low")).lower()
    if confidence not in ("high", "medium", "low"):
        confidence = "low"
    return SecondaryVerdict(
        transcription=str(data.get("transcription") or ""),
        matches_expected=bool(data.get("matches_expected", False)),
        confidence=confidence,
        reasoning=data.get("reasoning"),
    )


class OpenAiVisionVerifier:
    """Secondary verifier backed by an OpenAI vision model."""

    def __init__(self, api_key: Optional[str] = None, model: str = "gpt-4o-mini", client=None):
        if client is None:
            from openai import OpenAI
            client = OpenAI(api_key=api_key or os.environ.get("OPENAI_API_KEY"))
        self.client = client
        self.model = model

    def verify_line(self, image_b64: str, expected_text: str, line_index: int) -> SecondaryVerdict:
        response = self.client.chat.completions.create(
            model=self.model,
            messages=[
                {
                    "role": "system",
                    "content": SYSTEM_PROMPT,
                },
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": _build_prompt(expected_text, line_index)},
                        {
                            "type": "image_url",
                            "image_url": {"url": f"data:image/jpeg;base64,{image_b64}"},
                        },
                    ],
                },
            ],
            temperature=0.1,
            max_tokens=500,
            response_format={"type": "json_object"},
        )

        verdict = parse_verdict(response.choices[0].message.content)
        logger.info(
            f"Secondary verification line {line_index + 1}: "
            f"match={verdict.matches_expected}, confidence={verdict.confidence}"
        )
        return verdict


def get_secondary_verifier(name: str = "none", model: str = "gpt-4o-mini") -> Optional[SecondaryVerifier]:
    """
    Factory function for secondary verifiers.

    Args:
        name: "none" or "openai"
        model: Model name for the openai verifier

    Returns:
        A verifier, or None when secondary verification is disabled
    """
    if name == "none":
        return None
    elif name == "openai":
        if not os.environ.get("OPENAI_API_KEY"):
            raise RuntimeError(
                "Secondary verification with OpenAI requires OPENAI_API_KEY to be set."
            )
        return OpenAiVisionVerifier(model=model)
    else:
        raise ValueError(f"Unknown secondary verifier: {name}")
