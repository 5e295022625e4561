"""
Handwriting mechanics checks: dotted i's and crossed t's.

Uses the per-symbol boxes from OCR and inspects the ink where the dot or the
cross stroke should be. Only very confident characters are examined, since
these findings are about the writer rather than the OCR.
"""

import logging
import math
import uuid
from typing import List, Tuple

import numpy as np

from assessment.config import DEFAULT_THRESHOLDS, Thresholds
from assessment.raster import PageRaster
from assessment.schema import BoundingBox, CharacterObservation, ExtractedLine, Finding, FindingType
from assessment.scoring import round_half_up

logger = logging.getLogger(__name__)


def count_dark_pixels(
    luminance: np.ndarray,
    x: float,
    y: float,
    w: float,
    h: float,
    threshold: float = 128.0,
) -> Tuple[int, int]:
    """
    Count pixels darker than threshold inside a region clamped to the page.

    Returns:
        (dark, total) where total is the clamped region's pixel count
    """
    height, width = luminance.shape
    x0 = max(0, math.floor(x))
    y0 = max(0, math.floor(y))
    x1 = min(width, math.ceil(x + w))
    y1 = min(height, math.ceil(y + h))
    if x1 <= x0 or y1 <= y0:
        return 0, 0
    region = luminance[y0:y1, x0:x1]
    return int(np.count_nonzero(region < threshold)), int(region.size)


def _finding_bbox(x: float, y: float, w: float, h: float, raster: PageRaster) -> BoundingBox:
    box = BoundingBox.from_extent(round_half_up(x), round_half_up(y), round_half_up(w), round_half_up(h))
    return box.clamped(raster.width, raster.height)


def _check_i_dot(
    char: CharacterObservation,
    raster: PageRaster,
    thresholds: Thresholds,
) -> List[Finding]:
    box = char.bbox
    region_y = box.y - box.h * 0.6
    if region_y < 0:
        return []

    dark, total = count_dark_pixels(
        raster.luminance,
        box.x + box.w * 0.2,
        region_y,
        box.w * 0.6,
        box.h * 0.4,
        thresholds.dark_pixel_luminance,
    )
    if total == 0 or dark / total >= thresholds.min_i_dot_ratio:
        return []

    return [Finding(
        id=str(uuid.uuid4()),
        page_index=char.page_index,
        type=FindingType.MISSING_I_DOT,
        bbox=_finding_bbox(box.x, region_y, box.w, box.h * 1.6, raster),
        line_index=char.line_index,
        confidence=char.confidence * thresholds.handwriting_confidence_discount,
        message=f"Line {char.line_index + 1}: Missing dot above letter 'i'",
    )]


def _check_t_cross(
    char: CharacterObservation,
    raster: PageRaster,
    thresholds: Thresholds,
) -> List[Finding]:
    box = char.bbox
    dark, total = count_dark_pixels(
        raster.luminance,
        box.x - box.w * 0.2,
        box.y + box.h * 0.15,
        box.w * 1.4,
        box.h * 0.2,
        thresholds.dark_pixel_luminance,
    )
    if total == 0 or dark / total >= thresholds.min_t_cross_ratio:
        return []

    return [Finding(
        id=str(uuid.uuid4()),
        page_index=char.page_index,
        type=FindingType.UNCROSSED_T,
        bbox=_finding_bbox(box.x - box.w * 0.2, box.y, box.w * 1.4, box.h, raster),
        line_index=char.line_index,
        confidence=char.confidence * thresholds.handwriting_confidence_discount,
        message=f"Line {char.line_index + 1}: Letter 't' appears to be uncrossed",
    )]


def check_handwriting(
    raster: PageRaster,
    lines: List[ExtractedLine],
    thresholds: Thresholds = DEFAULT_THRESHOLDS,
) -> List[Finding]:
    """
    Inspect i's and t's on one page.

    Args:
        raster: The page the characters were read from
        lines: Extracted lines of this page, with character observations
        thresholds: Pipeline thresholds

    Returns:
        missing_i_dot and uncrossed_t findings
    """
    findings: List[Finding] = []
    for line in lines:
        for char in line.characters:
            if char.confidence < thresholds.handwriting_confidence:
                continue
            letter = char.text.lower()
            if letter == "i":
                findings.extend(_check_i_dot(char, raster, thresholds))
            elif letter == "t":
                findings.extend(_check_t_cross(char, raster, thresholds))

    if findings:
        logger.info(f"Page {raster.page_index + 1}: {len(findings)} handwriting finding(s)")
    return findings
