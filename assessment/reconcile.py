"""
Maps OCR words onto detected line regions.

OCR returns words in reading order with their own boxes; the grader needs text
per expected line. Each word goes to the line whose band holds its vertical
center (largest overlap wins), or to the nearest line when no band holds it.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from assessment.ocr import OcrProvider
from assessment.raster import PageRaster
from assessment.schema import CharacterObservation, DetectedLine, ExtractedLine, OcrWord

logger = logging.getLogger(__name__)


@dataclass
class PageOcrOutcome:
    """
    OCR lines for one page.

    failed distinguishes a provider fault from a successful call that simply
    read little or nothing.
    """
    lines: List[ExtractedLine] = field(default_factory=list)
    failed: bool = False
    error_message: Optional[str] = None


def _best_line_for_word(word: OcrWord, lines: List[DetectedLine]) -> int:
    word_center = word.bbox.center_y
    word_bottom = word.bbox.bottom

    best_idx = -1
    best_overlap = 0.0
    for i, line in enumerate(lines):
        top, bottom = line.bbox.y, line.bbox.bottom
        if top <= word_center <= bottom:
            overlap = min(bottom, word_bottom) - max(top, word.bbox.y)
            if overlap > best_overlap:
                best_overlap = overlap
                best_idx = i

    if best_idx == -1:
        min_dist = float("inf")
        for i, line in enumerate(lines):
            dist = abs(word_center - line.bbox.center_y)
            if dist < min_dist:
                min_dist = dist
                best_idx = i

    return best_idx


def assign_words_to_lines(
    words: List[OcrWord],
    lines: List[DetectedLine],
    page_index: int = 0,
) -> List[ExtractedLine]:
    """
    Build one ExtractedLine per detected line from OCR words.

    Args:
        words: OCR words in provider order
        lines: Detected lines of the page
        page_index: Page the words came from

    Returns:
        ExtractedLines with page-local line indices
    """
    texts: List[List[str]] = [[] for _ in lines]
    characters: List[List[CharacterObservation]] = [[] for _ in lines]

    for word in words:
        line_idx = _best_line_for_word(word, lines)
        if line_idx < 0:
            continue
        texts[line_idx].append(word.text)
        for symbol in word.symbols:
            characters[line_idx].append(CharacterObservation(
                text=symbol.text,
                confidence=symbol.confidence,
                bbox=symbol.bbox,
                line_index=line_idx,
                page_index=page_index,
            ))

    results = []
    for i, line in enumerate(lines):
        chars = characters[i]
        confidence = sum(c.confidence for c in chars) / len(chars) if chars else 0.0
        results.append(ExtractedLine(
            line_index=i,
            page_index=page_index,
            text=" ".join(texts[i]),
            confidence=confidence,
            bbox=line.bbox,
            characters=chars,
        ))
    return results


def _empty_lines(lines: List[DetectedLine], page_index: int) -> List[ExtractedLine]:
    return [
        ExtractedLine(line_index=i, page_index=page_index, text="", confidence=0.0, bbox=line.bbox)
        for i, line in enumerate(lines)
    ]


def reconcile_page(
    provider: OcrProvider,
    raster: PageRaster,
    lines: List[DetectedLine],
) -> PageOcrOutcome:
    """
    OCR one page and map the result onto its detected lines.

    A provider failure is reported through PageOcrOutcome.failed (with one
    empty line per detected line) instead of being raised.
    """
    page_index = raster.page_index
    try:
        image_bytes = raster.to_jpeg_bytes(quality=90)
        ocr_result = provider.process_image(image_bytes)
    except Exception as e:
        logger.error(f"OCR failed for page {page_index + 1}: {e}")
        return PageOcrOutcome(
            lines=_empty_lines(lines, page_index),
            failed=True,
            error_message=str(e) or e.__class__.__name__,
        )

    if ocr_result is None:
        logger.error(f"OCR returned no response for page {page_index + 1}")
        return PageOcrOutcome(
            lines=_empty_lines(lines, page_index),
            failed=True,
            error_message="Text recognition service returned no response",
        )

    extracted = assign_words_to_lines(ocr_result.words, lines, page_index)
    logger.info(
        f"Page {page_index + 1}: OCR returned {len(ocr_result.words)} word(s) "
        f"across {len(extracted)} line(s)"
    )
    return PageOcrOutcome(lines=extracted, failed=False)
