"""
OCR provider abstraction with stub and Google Cloud Vision implementations.

A provider takes the bytes of one page image and returns every recognized word
with its bounding box and per-symbol boxes and confidences.
"""

import json
import logging
import os
import tempfile
from collections import deque
from typing import Iterable, Optional, Protocol

from assessment.schema import BoundingBox, OcrResult, OcrSymbol, OcrWord

logger = logging.getLogger(__name__)


class OcrError(RuntimeError):
    """The OCR service could not be reached or returned an error."""


class OcrProvider(Protocol):
    """Protocol for OCR providers."""

    def process_image(self, image_bytes: bytes) -> OcrResult:
        """Process one page image and return word/symbol level results."""
        ...


def vertices_to_bbox(vertices) -> BoundingBox:
    """
    Convert a Vision bounding polygon to an axis-aligned box.
    Vision omits zero coordinates, so missing x/y count as 0.
    """
    if not vertices or len(vertices) < 4:
        return BoundingBox()
    xs = [getattr(v, "x", 0) or 0 for v in vertices]
    ys = [getattr(v, "y", 0) or 0 for v in vertices]
    min_x, min_y = min(xs), min(ys)
    return BoundingBox.from_extent(min_x, min_y, max(xs) - min_x, max(ys) - min_y)


class StubOcrProvider:
    """
    Stub OCR provider that replays canned results.

    Each call returns the next queued OcrResult; once the queue is empty it
    returns an empty result, like a page with no legible text.
    """

    def __init__(self, results: Optional[Iterable[OcrResult]] = None):
        self._results = deque(results or [])
        self.calls = 0

    def process_image(self, image_bytes: bytes) -> OcrResult:
        self.calls += 1
        if self._results:
            return self._results.popleft()
        return OcrResult(text="", confidence_avg=0.0, words=[])


class GoogleVisionOcrProvider:
    """
    Google Cloud Vision OCR provider with handwriting support.

    Credentials can be provided in two ways:
        1. GOOGLE_APPLICATION_CREDENTIALS env var (file path to JSON)
        2. GOOGLE_CLOUD_VISION_CREDENTIALS_JSON env var (JSON content directly)

    Also requires:
        - Cloud Vision API enabled in Google Cloud Console
        - Billing enabled (if required)
    """

    def __init__(self, client=None):
        if client is not None:
            self.client = client
            return
        try:
            from google.cloud import vision
            from google.oauth2 import service_account

            credentials_json = os.environ.get('GOOGLE_CLOUD_VISION_CREDENTIALS_JSON')

            if credentials_json:
                try:
                    credentials_dict = json.loads(credentials_json)
                    credentials = service_account.Credentials.from_service_account_info(
                        credentials_dict
                    )
                    self.client = vision.ImageAnnotatorClient(credentials=credentials)
                except json.JSONDecodeError:
                    # JSON invalid (e.g. .env escaping issues) - fall back to file
                    credentials_json = None
            if not credentials_json:
                self.client = vision.ImageAnnotatorClient()

        except Exception as e:
            raise RuntimeError(
                f"Failed to initialize Google Cloud Vision client: {e}\n\n"
                "Credentials can be provided in two ways:\n"
                "1. File path: GOOGLE_APPLICATION_CREDENTIALS=/path/to/key.json\n"
                "2. JSON content: GOOGLE_CLOUD_VISION_CREDENTIALS_JSON='{...}'\n\n"
                "Also ensure Cloud Vision API is enabled in Google Cloud Console."
            ) from e

    def process_image(self, image_bytes: bytes) -> OcrResult:
        """
        Run DOCUMENT_TEXT_DETECTION on one page image.

        Language hints are left empty: handwriting is detected automatically.

        Raises:
            OcrError: the API reported an error for this image
        """
        from google.cloud import vision

        image = vision.Image(content=image_bytes)
        response = self.client.document_text_detection(
            image=image,
            image_context={"language_hints": []},
        )
        if response.error.message:
            raise OcrError(f"Google Cloud Vision API error: {response.error.message}")

        return parse_vision_response(response)


def parse_vision_response(response) -> OcrResult:
    """Flatten a Vision annotate response into words with symbol boxes."""
    annotation = response.full_text_annotation
    if not annotation or not annotation.pages:
        return OcrResult(text="", confidence_avg=0.0, words=[])

    words = []
    total_confidence = 0.0
    for page in annotation.pages:
        for block in page.blocks:
            for paragraph in block.paragraphs:
                for word in paragraph.words:
                    symbols = [
                        OcrSymbol(
                            text=symbol.text,
                            confidence=symbol.confidence or 0.0,
                            bbox=vertices_to_bbox(symbol.bounding_box.vertices),
                        )
                        for symbol in word.symbols
                    ]
                    word_confidence = word.confidence or 0.0
                    words.append(OcrWord(
                        text="".join(s.text for s in symbols),
                        confidence=word_confidence,
                        bbox=vertices_to_bbox(word.bounding_box.vertices),
                        symbols=symbols,
                    ))
                    total_confidence += word_confidence

    return OcrResult(
        text=annotation.text or "",
        confidence_avg=total_confidence / len(words) if words else 0.0,
        words=words,
    )


def _require_google_credentials() -> None:
    """
    Ensure Google Cloud Vision API credentials are configured.
    Accepts either a file path or inline JSON (the key itself) in GOOGLE_APPLICATION_CREDENTIALS,
    or inline JSON in GOOGLE_CLOUD_VISION_CREDENTIALS_JSON.
    Raises RuntimeError with setup instructions if missing or invalid.
    """
    if (os.environ.get("GOOGLE_CLOUD_VISION_CREDENTIALS_JSON") or "").strip():
        return
    raw = (os.environ.get("GOOGLE_APPLICATION_CREDENTIALS") or "").strip()
    if not raw:
        raise RuntimeError(
            "Google Cloud Vision API requires GOOGLE_APPLICATION_CREDENTIALS to be set. "
            "In the terminal export the key (inline JSON) or a file path: "
            "export GOOGLE_APPLICATION_CREDENTIALS='{\"type\":\"service_account\", ...}'"
        )
    # Inline JSON: value is the key itself (starts with {)
    if raw.startswith("{"):
        try:
            json.loads(raw)
        except json.JSONDecodeError as e:
            raise RuntimeError(
                f"GOOGLE_APPLICATION_CREDENTIALS looks like JSON but is invalid: {e}"
            ) from e
        fd, path = tempfile.mkstemp(suffix=".json", prefix="gcreds_")
        try:
            with os.fdopen(fd, "w") as f:
                f.write(raw)
        except OSError:
            if os.path.exists(path):
                os.unlink(path)
            raise
        os.environ["GOOGLE_APPLICATION_CREDENTIALS"] = path
        return
    if not os.path.isfile(raw):
        raise RuntimeError(
            "GOOGLE_APPLICATION_CREDENTIALS is set to a path that does not exist or is not a file. "
            "Use a file path or export the key JSON directly."
        )


def ensure_google_credentials() -> None:
    """
    Verify Google Cloud Vision API credentials are set and the key file exists.
    Call this at startup or before using Google OCR. Raises RuntimeError if not configured.
    """
    _require_google_credentials()


def get_ocr_provider(name: str = "stub") -> OcrProvider:
    """
    Factory function to get OCR provider by name.

    Args:
        name: Provider name ("stub" or "google")

    Returns:
        OcrProvider instance
    """
    if name == "stub":
        return StubOcrProvider()
    elif name == "google":
        _require_google_credentials()
        return GoogleVisionOcrProvider()
    else:
        raise ValueError(f"Unknown OCR provider: {name}")
